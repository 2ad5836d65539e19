from __future__ import annotations

import hmac
import logging
import os
import secrets
import time

import bcrypt
from fastapi import Depends, HTTPException, Request
from fastapi.responses import Response
from sqlmodel import Session

from .database import ROLE_ADMIN, User, get_session

logger = logging.getLogger(__name__)

SESSION_COOKIE_NAME = os.getenv("SESSION_COOKIE_NAME", "gameon_session")
SESSION_SECRET = os.getenv("SESSION_SECRET") or os.getenv("SECRET_KEY") or secrets.token_hex(32)
SESSION_MAX_AGE = int(os.getenv("SESSION_MAX_AGE", "604800"))  # 7 days default
BCRYPT_ROUNDS = int(os.getenv("BCRYPT_ROUNDS", "12"))
MASTER_ADMIN_EMAIL = (os.getenv("MASTER_ADMIN_EMAIL") or "").strip().lower() or None


def hash_password(password: str) -> str:
    hashed = bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=BCRYPT_ROUNDS))
    return hashed.decode("utf-8")


def verify_password(password: str, password_hash: str | None) -> bool:
    if not password_hash:
        return False
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        return False


def _sign_payload(payload: str) -> str:
    secret = SESSION_SECRET.encode("utf-8")
    return hmac.new(secret, payload.encode("utf-8"), "sha256").hexdigest()


def encode_session(user_id: int) -> str:
    timestamp = str(int(time.time()))
    payload = f"{user_id}|{timestamp}"
    signature = _sign_payload(payload)
    return f"{payload}|{signature}"


def decode_session(raw: str | None) -> int | None:
    """Return the user id carried by a valid, unexpired session cookie."""
    if not raw:
        return None
    try:
        user_id, timestamp, signature = raw.split("|")
    except ValueError:
        return None
    payload = f"{user_id}|{timestamp}"
    expected = _sign_payload(payload)
    if not hmac.compare_digest(expected, signature):
        return None
    try:
        issued_at = int(timestamp)
        parsed_id = int(user_id)
    except ValueError:
        return None
    if int(time.time()) - issued_at > SESSION_MAX_AGE:
        return None
    return parsed_id


def set_session_cookie(response: Response, user_id: int) -> None:
    response.set_cookie(
        SESSION_COOKIE_NAME,
        encode_session(user_id),
        max_age=SESSION_MAX_AGE,
        httponly=True,
        secure=os.getenv("SESSION_COOKIE_SECURE", "true").lower() != "false",
        samesite="lax",
    )


def clear_session_cookie(response: Response) -> None:
    response.delete_cookie(SESSION_COOKIE_NAME)


def session_user(session: Session, raw: str | None) -> User | None:
    user_id = decode_session(raw)
    if user_id is None:
        return None
    return session.get(User, user_id)


def user_payload(user: User) -> dict[str, object]:
    return {
        "id": user.id,
        "name": user.name,
        "email": user.email,
        "image": user.image,
        "role": user.role,
        "provider": user.provider,
        "bio": user.bio,
        "phoneNumber": user.phone_number,
        "location": user.location,
        "interests": user.interests or [],
        "isBanned": user.is_banned,
        "gamesPlayed": user.games_played,
        "averageRating": user.average_rating,
        "totalRatings": user.total_ratings,
        "lastSeen": user.last_seen,
        "createdAt": user.created_at,
    }


def is_master_admin(user: User) -> bool:
    return bool(MASTER_ADMIN_EMAIL) and user.email == MASTER_ADMIN_EMAIL


def current_user(request: Request, session: Session = Depends(get_session)) -> User:
    user = session_user(session, request.cookies.get(SESSION_COOKIE_NAME))
    if not user:
        raise HTTPException(status_code=401, detail="Unauthorized")
    if user.is_banned:
        raise HTTPException(status_code=403, detail="Your account has been banned")
    return user


def admin_user(user: User = Depends(current_user)) -> User:
    if user.role != ROLE_ADMIN:
        raise HTTPException(status_code=403, detail="Forbidden: Admin access required")
    return user
