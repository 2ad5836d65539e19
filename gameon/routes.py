from __future__ import annotations

import logging
import math
import os
from datetime import datetime

from fastapi import APIRouter, Depends, File, HTTPException, Query, Response, UploadFile
from sqlmodel import Session, func, select

from .auth import (
    clear_session_cookie,
    current_user,
    hash_password,
    set_session_cookie,
    user_payload,
    verify_password,
)
from .database import (
    GAME_COMPLETED,
    OPEN_GAME_STATUSES,
    ROLE_ADMIN,
    ActivityEntry,
    Attendance,
    Game,
    GamePlayer,
    JoinRequest,
    Message,
    Notification,
    Report,
    User,
    get_privacy_policy,
    get_session,
)
from .games import (
    accept_join_request,
    assign_teams,
    cancel_game,
    create_game,
    delete_game,
    game_attendance,
    game_payload,
    get_game,
    join_game,
    leave_game,
    mark_attendance,
    players_rated_by,
    rate_player,
    reject_join_request,
    remove_player,
    require_host,
    transfer_host,
    update_game,
)
from .notifications import mark_read, notification_payload
from .reports import (
    create_report,
    get_report,
    pending_counts,
    report_payload,
    require_reporter_or_admin,
    update_report,
)
from .schemas import (
    AttendancePayload,
    GameCreate,
    GameUpdate,
    JoinPayload,
    LoginPayload,
    NotificationsUpdate,
    PlayerIdPayload,
    ProfileUpdate,
    RatingPayload,
    ReportCreate,
    ReportUpdate,
    SignupPayload,
    TeamsPayload,
    TransferHostPayload,
)
from .sports import sports_for_display
from .storage import ImageRejected, store_image

router = APIRouter()

logger = logging.getLogger(__name__)

RESERVED_SIGNUP_EMAILS = {
    email.strip().lower()
    for email in os.getenv("RESERVED_SIGNUP_EMAILS", "admin@gmail.com").split(",")
    if email.strip()
}
DEFAULT_BAN_MESSAGE = "Your account has been permanently banned for violating the GameOn policies."
DEFAULT_BIO = "Passionate sports player who loves team games and staying active."
MAX_INTERESTS = 5


def _pagination(page: int, limit: int, total: int) -> dict[str, int]:
    return {"page": page, "limit": limit, "total": total, "pages": math.ceil(total / limit) if limit else 0}


def _page_args(page: int, limit: int, default_limit: int = 10) -> tuple[int, int]:
    page = max(page, 1)
    limit = limit if limit > 0 else default_limit
    return page, min(limit, 100)


def _normalize_email(email: str | None) -> str:
    return (email or "").strip().lower()


# --- auth -----------------------------------------------------------------


@router.post("/api/auth/signup", status_code=201)
async def signup(payload: SignupPayload, session: Session = Depends(get_session)):
    if not payload.first_name or not payload.last_name or not payload.email or not payload.password:
        raise HTTPException(status_code=400, detail="Missing required fields")
    email = _normalize_email(payload.email)
    if email in RESERVED_SIGNUP_EMAILS:
        raise HTTPException(status_code=403, detail="This email cannot be used for signup")
    if session.exec(select(User).where(User.email == email)).first():
        raise HTTPException(status_code=409, detail="Email is already in use")

    user = User(
        name=f"{payload.first_name.strip()} {payload.last_name.strip()}",
        email=email,
        password_hash=hash_password(payload.password),
    )
    session.add(user)
    session.commit()
    session.refresh(user)
    logger.info("New account %s", user.id)
    return {
        "success": True,
        "message": "User created successfully",
        "user": {"id": user.id, "email": user.email, "name": user.name},
    }


@router.post("/api/auth/login")
async def login(payload: LoginPayload, response: Response, session: Session = Depends(get_session)):
    email = _normalize_email(payload.email)
    user = session.exec(select(User).where(User.email == email)).first() if email else None
    if not user or not verify_password(payload.password or "", user.password_hash):
        raise HTTPException(status_code=401, detail="Invalid email or password")
    if user.is_banned:
        raise HTTPException(status_code=403, detail=user.ban_reason or DEFAULT_BAN_MESSAGE)

    user.last_seen = datetime.utcnow()
    session.add(user)
    session.commit()
    session.refresh(user)
    set_session_cookie(response, user.id)
    return {"success": True, "data": user_payload(user)}


@router.post("/api/auth/logout")
async def logout(response: Response):
    clear_session_cookie(response)
    return {"success": True}


@router.get("/api/auth/me")
async def me(user: User = Depends(current_user)):
    return {"success": True, "data": user_payload(user)}


# --- users ----------------------------------------------------------------


@router.get("/api/users/check-email")
async def check_email(email: str | None = None, session: Session = Depends(get_session)):
    if not email:
        raise HTTPException(status_code=400, detail="Email parameter is required")
    user = session.exec(select(User).where(User.email == _normalize_email(email))).first()
    if not user:
        return {"success": True, "exists": False}
    return {"success": True, "exists": True, "isBanned": user.is_banned, "provider": user.provider}


@router.get("/api/users/ban-info")
async def ban_info(email: str | None = None, session: Session = Depends(get_session)):
    if not email:
        raise HTTPException(status_code=400, detail="Email is required")
    user = session.exec(select(User).where(User.email == _normalize_email(email))).first()
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    if not user.is_banned:
        raise HTTPException(status_code=400, detail="User is not banned")
    return {"success": True, "banReason": user.ban_reason or DEFAULT_BAN_MESSAGE, "bannedAt": user.banned_at}


@router.get("/api/users/profile")
async def get_profile(user: User = Depends(current_user)):
    return {"success": True, "data": user_payload(user)}


@router.put("/api/users/profile")
async def update_profile(
    payload: ProfileUpdate,
    session: Session = Depends(get_session),
    user: User = Depends(current_user),
):
    if payload.name is not None:
        if not payload.name.strip():
            raise HTTPException(status_code=400, detail="Name cannot be empty")
        user.name = payload.name.strip()
    if payload.bio is not None:
        user.bio = payload.bio
    if payload.phone_number is not None:
        user.phone_number = payload.phone_number
    if payload.location is not None:
        user.location = payload.location
    if payload.image is not None:
        user.image = payload.image or None
    if payload.interests is not None:
        if len(payload.interests) > MAX_INTERESTS:
            raise HTTPException(status_code=400, detail=f"You can select up to {MAX_INTERESTS} interests")
        user.interests = [interest.strip() for interest in payload.interests if interest and interest.strip()]
    user.updated_at = datetime.utcnow()
    session.add(user)
    session.commit()
    session.refresh(user)
    return {"success": True, "data": user_payload(user), "message": "Profile updated successfully"}


@router.delete("/api/users/profile")
async def delete_profile(session: Session = Depends(get_session), user: User = Depends(current_user)):
    if user.role == ROLE_ADMIN:
        raise HTTPException(status_code=403, detail="Admin accounts cannot be deleted")

    user_id = user.id
    owned = [
        select(Notification).where(Notification.user_id == user_id),
        select(Message).where(Message.user_id == user_id),
        select(Report).where(Report.reported_by == user_id),
        select(GamePlayer).where(GamePlayer.user_id == user_id),
        select(JoinRequest).where(JoinRequest.user_id == user_id),
        select(Attendance).where(Attendance.user_id == user_id),
    ]
    for statement in owned:
        for row in session.exec(statement).all():
            session.delete(row)

    hosted = session.exec(
        select(Game).where((Game.host_id == user_id) & (Game.status.in_(OPEN_GAME_STATUSES)))
    ).all()
    for game in hosted:
        cancel_game(session, game)

    session.delete(user)
    session.commit()
    logger.info("Account %s deleted by its owner", user_id)
    return {"success": True, "message": "Account deleted successfully"}


@router.post("/api/users/activity")
async def record_activity(session: Session = Depends(get_session), user: User = Depends(current_user)):
    user.last_seen = datetime.utcnow()
    session.add(user)
    session.commit()
    return {"success": True}


@router.post("/api/users/upload-image")
async def upload_profile_image(image: UploadFile = File(...), user: User = Depends(current_user)):
    return await _store_upload(image, folder="profiles")


@router.get("/api/users/{user_id}")
async def public_profile(
    user_id: int,
    session: Session = Depends(get_session),
    viewer: User = Depends(current_user),
):
    user = session.get(User, user_id)
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    activities = session.exec(
        select(ActivityEntry)
        .where(ActivityEntry.user_id == user_id)
        .order_by(ActivityEntry.date.desc(), ActivityEntry.id.desc())
        .limit(3)
    ).all()
    return {
        "success": True,
        "data": {
            "id": user.id,
            "name": user.name,
            "email": user.email,
            "image": user.image,
            "bio": user.bio or DEFAULT_BIO,
            "location": user.location or "Not specified",
            "gamesPlayed": user.games_played,
            "averageRating": user.average_rating,
            "totalRatings": user.total_ratings,
            "memberSince": user.created_at.strftime("%b %Y"),
            "recentActivity": [
                {"sport": entry.sport, "date": entry.date, "attended": entry.attended} for entry in activities
            ],
        },
    }


async def _store_upload(image: UploadFile, *, folder: str) -> dict[str, object]:
    data = await image.read()
    try:
        url = store_image(data, filename=image.filename, content_type=image.content_type, folder=folder)
    except ImageRejected as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except RuntimeError as exc:
        logger.exception("Image upload failed: %s", exc)
        raise HTTPException(status_code=500, detail="Failed to upload image") from exc
    return {"success": True, "imageUrl": url}


# --- games ----------------------------------------------------------------


@router.get("/api/games")
async def list_games(
    sport: str | None = None,
    status: str | None = None,
    city: str | None = None,
    host_id: int | None = Query(default=None, alias="hostId"),
    page: int = 1,
    limit: int = 10,
    session: Session = Depends(get_session),
):
    page, limit = _page_args(page, limit)
    statement = select(Game)
    if sport:
        statement = statement.where(Game.sport == sport)
    if status:
        statement = statement.where(Game.status == status)
    if city:
        statement = statement.where(func.lower(Game.city).contains(city.strip().lower()))
    if host_id is not None:
        statement = statement.where(Game.host_id == host_id)
    if not status and host_id is None:
        statement = statement.where(Game.status.in_(OPEN_GAME_STATUSES))

    total = session.exec(select(func.count()).select_from(statement.subquery())).one()
    games = session.exec(
        statement.order_by(Game.date, Game.start_time).offset((page - 1) * limit).limit(limit)
    ).all()
    return {
        "success": True,
        "data": [game_payload(session, game) for game in games],
        "pagination": _pagination(page, limit, total),
    }


@router.post("/api/games", status_code=201)
async def create_game_route(
    payload: GameCreate,
    session: Session = Depends(get_session),
    user: User = Depends(current_user),
):
    game = create_game(session, user, payload)
    session.commit()
    session.refresh(game)
    logger.info("Game %s created by %s", game.id, user.id)
    return {"success": True, "data": game_payload(session, game, detail=True)}


@router.get("/api/games/completed")
async def completed_games(session: Session = Depends(get_session), user: User = Depends(current_user)):
    played = select(GamePlayer.game_id).where(GamePlayer.user_id == user.id)
    games = session.exec(
        select(Game)
        .where((Game.status == GAME_COMPLETED) & ((Game.host_id == user.id) | (Game.id.in_(played))))
        .order_by(Game.completed_at.desc(), Game.date.desc())
    ).all()
    data = []
    for game in games:
        payload = game_payload(session, game, detail=True)
        row = next((row for row in game_attendance(session, game.id) if row.user_id == user.id), None)
        payload["userAttended"] = bool(row and row.attended)
        payload["isHost"] = game.host_id == user.id
        payload["playersRated"] = players_rated_by(session, game.id, user.id)
        data.append(payload)
    return {"success": True, "data": data}


@router.get("/api/games/pending-requests")
async def pending_requests(session: Session = Depends(get_session), user: User = Depends(current_user)):
    requested = select(JoinRequest.game_id).where(JoinRequest.user_id == user.id)
    games = session.exec(
        select(Game)
        .where(Game.id.in_(requested) & Game.status.in_(OPEN_GAME_STATUSES))
        .order_by(Game.date, Game.start_time)
    ).all()
    return {"success": True, "data": [game_payload(session, game) for game in games]}


@router.get("/api/games/{game_id}")
async def get_game_route(game_id: int, session: Session = Depends(get_session)):
    game = get_game(session, game_id)
    return {"success": True, "data": game_payload(session, game, detail=True)}


@router.patch("/api/games/{game_id}")
async def update_game_route(
    game_id: int,
    payload: GameUpdate,
    session: Session = Depends(get_session),
    user: User = Depends(current_user),
):
    game = get_game(session, game_id)
    require_host(game, user, "update this game")
    update_game(session, game, payload)
    session.commit()
    session.refresh(game)
    return {"success": True, "data": game_payload(session, game, detail=True)}


@router.delete("/api/games/{game_id}")
async def delete_game_route(
    game_id: int,
    session: Session = Depends(get_session),
    user: User = Depends(current_user),
):
    game = get_game(session, game_id)
    require_host(game, user, "delete this game")
    delete_game(session, game)
    session.commit()
    logger.info("Game %s deleted by its host", game_id)
    return {"success": True, "message": "Game deleted successfully"}


@router.post("/api/games/{game_id}/cancel")
async def cancel_game_route(
    game_id: int,
    session: Session = Depends(get_session),
    user: User = Depends(current_user),
):
    game = get_game(session, game_id)
    require_host(game, user, "cancel this game")
    cancel_game(session, game)
    session.commit()
    session.refresh(game)
    return {"success": True, "data": game_payload(session, game, detail=True)}


@router.post("/api/games/{game_id}/join")
async def join_game_route(
    game_id: int,
    payload: JoinPayload | None = None,
    session: Session = Depends(get_session),
    user: User = Depends(current_user),
):
    game = get_game(session, game_id)
    joined = join_game(session, game, user, payload or JoinPayload())
    session.commit()
    session.refresh(game)
    return {
        "success": True,
        "data": game_payload(session, game, detail=True),
        "message": (
            "Successfully joined the game" if joined else "Join request submitted. Waiting for host approval."
        ),
    }


@router.post("/api/games/{game_id}/join-requests/{request_id}/accept")
async def accept_join_request_route(
    game_id: int,
    request_id: int,
    session: Session = Depends(get_session),
    user: User = Depends(current_user),
):
    game = get_game(session, game_id)
    require_host(game, user, "accept join requests")
    accept_join_request(session, game, request_id)
    session.commit()
    session.refresh(game)
    return {"success": True, "data": game_payload(session, game, detail=True)}


@router.post("/api/games/{game_id}/join-requests/{request_id}/reject")
async def reject_join_request_route(
    game_id: int,
    request_id: int,
    session: Session = Depends(get_session),
    user: User = Depends(current_user),
):
    game = get_game(session, game_id)
    require_host(game, user, "reject join requests")
    reject_join_request(session, game, request_id)
    session.commit()
    session.refresh(game)
    return {"success": True, "data": game_payload(session, game, detail=True)}


@router.post("/api/games/{game_id}/leave")
async def leave_game_route(
    game_id: int,
    session: Session = Depends(get_session),
    user: User = Depends(current_user),
):
    game = get_game(session, game_id)
    outcome = leave_game(session, game, user)
    session.commit()
    if outcome == "deleted":
        return {
            "success": True,
            "message": "Successfully left the game. The game has been deleted since there were no players.",
        }
    session.refresh(game)
    message = "Join request withdrawn" if outcome == "withdrawn" else "Successfully left the game"
    return {"success": True, "data": game_payload(session, game, detail=True), "message": message}


@router.post("/api/games/{game_id}/remove-player")
async def remove_player_route(
    game_id: int,
    payload: PlayerIdPayload,
    session: Session = Depends(get_session),
    user: User = Depends(current_user),
):
    game = get_game(session, game_id)
    require_host(game, user, "remove players")
    remove_player(session, game, payload.player_id)
    session.commit()
    session.refresh(game)
    return {"success": True, "data": game_payload(session, game, detail=True)}


@router.post("/api/games/{game_id}/transfer-host")
async def transfer_host_route(
    game_id: int,
    payload: TransferHostPayload,
    session: Session = Depends(get_session),
    user: User = Depends(current_user),
):
    game = get_game(session, game_id)
    require_host(game, user, "transfer host ownership")
    transfer_host(session, game, user, payload.new_host_id)
    session.commit()
    session.refresh(game)
    return {
        "success": True,
        "data": game_payload(session, game, detail=True),
        "message": "Host ownership transferred successfully",
    }


@router.post("/api/games/{game_id}/teams")
async def assign_teams_route(
    game_id: int,
    payload: TeamsPayload,
    session: Session = Depends(get_session),
    user: User = Depends(current_user),
):
    game = get_game(session, game_id)
    require_host(game, user, "assign teams")
    assign_teams(session, game, payload.blue, payload.red)
    session.commit()
    session.refresh(game)
    return {"success": True, "data": game_payload(session, game, detail=True)}


@router.post("/api/games/{game_id}/attendance")
async def attendance_route(
    game_id: int,
    payload: AttendancePayload,
    session: Session = Depends(get_session),
    user: User = Depends(current_user),
):
    game = get_game(session, game_id)
    require_host(game, user, "mark attendance")
    marked = mark_attendance(session, game, user, payload.player_ids, payload.mark_all)
    session.commit()
    session.refresh(game)
    return {
        "success": True,
        "data": game_payload(session, game, detail=True),
        "message": f"Attendance marked for {len(marked)} player(s)",
    }


@router.post("/api/games/{game_id}/rate-player")
async def rate_player_route(
    game_id: int,
    payload: RatingPayload,
    session: Session = Depends(get_session),
    user: User = Depends(current_user),
):
    game = get_game(session, game_id)
    rate_player(session, game, user, payload.player_id, payload.rating, payload.comment)
    session.commit()
    rated = session.get(User, payload.player_id)
    return {
        "success": True,
        "data": {
            "playerId": rated.id,
            "averageRating": rated.average_rating,
            "totalRatings": rated.total_ratings,
        },
        "message": "Rating submitted successfully",
    }


# --- notifications --------------------------------------------------------


@router.get("/api/notifications")
async def list_notifications(
    read: str | None = None,
    limit: int = 50,
    skip: int = 0,
    session: Session = Depends(get_session),
    user: User = Depends(current_user),
):
    statement = select(Notification).where(Notification.user_id == user.id)
    if read == "true":
        statement = statement.where(Notification.read == True)
    elif read == "false":
        statement = statement.where(Notification.read == False)
    notifications = session.exec(
        statement.order_by(Notification.created_at.desc(), Notification.id.desc())
        .offset(max(skip, 0))
        .limit(max(min(limit, 100), 1))
    ).all()
    total = session.exec(
        select(func.count()).select_from(Notification).where(Notification.user_id == user.id)
    ).one()
    unread = session.exec(
        select(func.count())
        .select_from(Notification)
        .where((Notification.user_id == user.id) & (Notification.read == False))
    ).one()

    data = []
    for notification in notifications:
        payload = notification_payload(notification)
        game = session.get(Game, notification.game_id) if notification.game_id else None
        payload["gameTitle"] = game.title if game else None
        payload["gameSport"] = game.sport if game else None
        related = session.get(User, notification.related_user_id) if notification.related_user_id else None
        payload["relatedUserName"] = related.name if related else None
        data.append(payload)
    return {
        "success": True,
        "data": data,
        "pagination": {"total": total, "unread": unread, "limit": limit, "skip": skip},
    }


@router.patch("/api/notifications")
async def mark_notifications(
    payload: NotificationsUpdate,
    session: Session = Depends(get_session),
    user: User = Depends(current_user),
):
    statement = select(Notification).where(
        (Notification.user_id == user.id) & (Notification.read == False)
    )
    if not payload.mark_all_as_read:
        if not payload.notification_ids:
            raise HTTPException(
                status_code=400,
                detail="Invalid request. Provide notificationIds array or markAllAsRead: true",
            )
        statement = statement.where(Notification.id.in_(payload.notification_ids))
    for notification in session.exec(statement).all():
        mark_read(notification)
        session.add(notification)
    session.commit()
    return {"success": True, "message": "Notifications marked as read"}


# --- reports --------------------------------------------------------------


@router.post("/api/reports/upload-image")
async def upload_report_image(image: UploadFile = File(...), user: User = Depends(current_user)):
    return await _store_upload(image, folder="reports")


@router.post("/api/reports", status_code=201)
async def create_report_route(
    payload: ReportCreate,
    session: Session = Depends(get_session),
    user: User = Depends(current_user),
):
    report = create_report(session, user, payload)
    return {"success": True, "data": report_payload(session, report)}


@router.get("/api/reports")
async def list_reports(
    status: str | None = None,
    page: int = 1,
    limit: int = 20,
    session: Session = Depends(get_session),
    user: User = Depends(current_user),
):
    page, limit = _page_args(page, limit, default_limit=20)
    statement = select(Report)
    if status:
        statement = statement.where(Report.status == status)
    if user.role != ROLE_ADMIN:
        statement = statement.where(Report.reported_by == user.id)
    total = session.exec(select(func.count()).select_from(statement.subquery())).one()
    reports = session.exec(
        statement.order_by(Report.created_at.desc(), Report.id.desc()).offset((page - 1) * limit).limit(limit)
    ).all()
    counts = pending_counts(session)
    return {
        "success": True,
        "data": [report_payload(session, report, counts) for report in reports],
        "pagination": _pagination(page, limit, total),
    }


@router.get("/api/reports/{report_id}")
async def get_report_route(
    report_id: int,
    session: Session = Depends(get_session),
    user: User = Depends(current_user),
):
    report = get_report(session, report_id)
    require_reporter_or_admin(report, user)
    return {"success": True, "data": report_payload(session, report)}


@router.put("/api/reports/{report_id}")
async def update_report_route(
    report_id: int,
    payload: ReportUpdate,
    session: Session = Depends(get_session),
    user: User = Depends(current_user),
):
    report = get_report(session, report_id)
    update_report(session, report, user, payload)
    session.commit()
    session.refresh(report)
    return {"success": True, "data": report_payload(session, report)}


@router.delete("/api/reports/{report_id}")
async def delete_report_route(
    report_id: int,
    session: Session = Depends(get_session),
    user: User = Depends(current_user),
):
    report = get_report(session, report_id)
    require_reporter_or_admin(report, user)
    session.delete(report)
    session.commit()
    return {"success": True, "message": "Report deleted successfully"}


# --- public catalogue -----------------------------------------------------


@router.get("/api/stats")
async def stats(session: Session = Depends(get_session)):
    total_players = session.exec(
        select(func.count()).select_from(User).where(User.role != ROLE_ADMIN)
    ).one()
    total_games = session.exec(
        select(func.count()).select_from(Game).where(Game.status == "upcoming")
    ).one()
    return {"success": True, "stats": {"totalPlayers": total_players, "totalGames": total_games}}


@router.get("/api/sports")
async def sports():
    return {"success": True, "data": sports_for_display()}


@router.get("/api/privacy-policy")
async def privacy_policy(session: Session = Depends(get_session)):
    sections = get_privacy_policy(session)
    last_updated = max((section.updated_at for section in sections), default=None)
    return {
        "success": True,
        "data": {
            "sections": [
                {"id": section.id, "title": section.title, "icon": section.icon, "content": section.content, "order": section.position}
                for section in sections
            ],
            "lastUpdated": last_updated,
        },
    }
