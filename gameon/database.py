"""Database models and helpers for users, games, reports and chat."""

from __future__ import annotations

import os
import logging
from datetime import datetime
from pathlib import Path
from typing import Iterator

from sqlalchemy import JSON, Column
from sqlmodel import Field, Session, SQLModel, create_engine, select

BASE_DIR = Path(__file__).resolve().parent

DEFAULT_SQLITE_PATH = "sqlite:///./gameon.db"
ADMIN_EMAIL = os.getenv("ADMIN_EMAIL")
ADMIN_PASSWORD = os.getenv("ADMIN_PASSWORD")
ADMIN_NAME = os.getenv("ADMIN_NAME", "GameOn Admin")

logger = logging.getLogger(__name__)

ROLE_USER = "user"
ROLE_ADMIN = "admin"

GAME_UPCOMING = "upcoming"
GAME_ONGOING = "ongoing"
GAME_COMPLETED = "completed"
GAME_CANCELLED = "cancelled"
GAME_STATUSES = (GAME_UPCOMING, GAME_ONGOING, GAME_COMPLETED, GAME_CANCELLED)
OPEN_GAME_STATUSES = (GAME_UPCOMING, GAME_ONGOING)

REPORT_PENDING = "pending"
REPORT_RESOLVED = "resolved"
REPORT_DISMISSED = "dismissed"

DEFAULT_GAME_IMAGE = "/default-game.jpg"

PRIVACY_POLICY_DEFINITIONS = [
    {
        "title": "Introduction",
        "icon": "FileText",
        "content": (
            "Welcome to GameOn. We are committed to protecting your privacy and ensuring the "
            "security of your personal information. This Privacy Policy explains how we collect, "
            "use, store, and protect your data when you use our platform."
        ),
    },
    {
        "title": "Location Data",
        "icon": "MapPin",
        "content": (
            "**Collection:** GameOn collects the location you give a game (a map link or "
            "coordinates and a city) and the city you search for.\n\n"
            "**How We Use Location Data:** to display games near you, filter games by city and "
            "help you create games at specific locations.\n\n"
            "**Important:** We do **NOT** share your location data with third parties, "
            "advertisers, or external services."
        ),
    },
    {
        "title": "Information We Collect",
        "icon": "Eye",
        "content": (
            "- **Account Information:** Name, email address, profile picture (if provided)\n"
            "- **Game Information:** Games you create, join, or participate in\n"
            "- **Location Data:** As described in the Location Data section above\n"
            "- **Usage Data:** When you were last active on the platform"
        ),
    },
    {
        "title": "Data Security & Protection",
        "icon": "Lock",
        "content": (
            "Passwords are stored as salted hashes and login sessions are signed. However, no "
            "method of transmission over the internet is 100% secure, so we cannot guarantee "
            "absolute security."
        ),
    },
    {
        "title": "Third-Party Sharing",
        "icon": "Shield",
        "content": (
            "**We do NOT sell, rent, or share your personal information or location data with "
            "third parties.** Uploaded images may be stored with a cloud storage provider that is "
            "bound by its own privacy policy."
        ),
    },
    {
        "title": "Your Rights",
        "icon": "Shield",
        "content": (
            "- **Access:** View your profile and game history at any time\n"
            "- **Correction:** Update or correct your personal information\n"
            "- **Deletion:** Delete your account and associated data from your profile settings"
        ),
    },
    {
        "title": "Cookies & Tracking",
        "icon": "FileText",
        "content": (
            "We use a single signed cookie to maintain your login session. We do not use "
            "cookies for advertising or tracking purposes."
        ),
    },
    {
        "title": "Children's Privacy",
        "icon": "Shield",
        "content": (
            "GameOn is not intended for users under the age of 13. We do not knowingly collect "
            "personal information from children under 13."
        ),
    },
    {
        "title": "Changes to This Policy",
        "icon": "FileText",
        "content": (
            "We may update this Privacy Policy from time to time. Significant changes are posted "
            "on this page together with the date of the update."
        ),
    },
    {
        "title": "Contact Us",
        "icon": "FileText",
        "content": (
            "If you have any questions about this Privacy Policy, please contact our support "
            "team through your account settings page."
        ),
    },
]


def _build_engine_url() -> str:
    """Return the configured database URL or fall back to SQLite."""
    return os.environ.get("DATABASE_URL", DEFAULT_SQLITE_PATH)


def _build_engine() -> "Engine":
    url = _build_engine_url()
    engine_kwargs = {}
    if url.startswith("sqlite"):
        # SQLite needs check_same_thread disabled for FastAPI concurrency,
        # but passing this flag to other drivers (e.g., psycopg2) raises errors.
        engine_kwargs["connect_args"] = {"check_same_thread": False}
    return create_engine(url, **engine_kwargs)


engine = _build_engine()

STATIC_DIR = BASE_DIR / "static"
UPLOAD_DIR = STATIC_DIR / "uploads"


class User(SQLModel, table=True):
    id: int | None = Field(default=None, primary_key=True)
    name: str = Field(nullable=False, max_length=120)
    email: str = Field(nullable=False, unique=True, index=True, max_length=255)
    password_hash: str | None = Field(default=None)
    image: str | None = Field(default=None)
    role: str = Field(default=ROLE_USER, nullable=False)
    provider: str = Field(default="credentials", nullable=False)
    bio: str | None = Field(default=None)
    phone_number: str | None = Field(default=None, max_length=40)
    location: str | None = Field(default=None)
    interests: list[str] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    is_banned: bool = Field(default=False, nullable=False)
    banned_at: datetime | None = Field(default=None)
    banned_by: int | None = Field(default=None)
    ban_reason: str | None = Field(default=None)
    games_played: int = Field(default=0, nullable=False)
    average_rating: float = Field(default=0, nullable=False)
    total_ratings: int = Field(default=0, nullable=False)
    last_seen: datetime | None = Field(default=None)
    created_at: datetime = Field(default_factory=datetime.utcnow, nullable=False)
    updated_at: datetime = Field(default_factory=datetime.utcnow, nullable=False)


class Game(SQLModel, table=True):
    id: int | None = Field(default=None, primary_key=True)
    host_id: int = Field(nullable=False, index=True)
    title: str = Field(nullable=False, max_length=200)
    sport: str = Field(nullable=False, index=True)
    description: str = Field(nullable=False)
    address: str = Field(nullable=False)
    city: str | None = Field(default=None, index=True)
    country: str | None = Field(default=None)
    latitude: float | None = Field(default=None)
    longitude: float | None = Field(default=None)
    date: datetime = Field(nullable=False, index=True)
    start_time: str = Field(nullable=False, max_length=5)
    end_time: str = Field(nullable=False, max_length=5)
    max_players: int = Field(nullable=False)
    skill_level: str = Field(default="all", nullable=False)
    min_skill_level: str | None = Field(default=None)
    image: str = Field(default=DEFAULT_GAME_IMAGE, nullable=False)
    host_whatsapp: str | None = Field(default=None)
    status: str = Field(default=GAME_UPCOMING, nullable=False, index=True)
    completed_at: datetime | None = Field(default=None)
    completed_by: int | None = Field(default=None)
    created_at: datetime = Field(default_factory=datetime.utcnow, nullable=False)
    updated_at: datetime = Field(default_factory=datetime.utcnow, nullable=False)


class GamePlayer(SQLModel, table=True):
    id: int | None = Field(default=None, primary_key=True)
    game_id: int = Field(foreign_key="game.id", nullable=False, index=True)
    user_id: int = Field(nullable=False, index=True)
    name: str = Field(nullable=False)
    age: int | None = Field(default=None)
    skill_level: str | None = Field(default=None)
    image: str | None = Field(default=None)
    whatsapp: str | None = Field(default=None)
    team: str | None = Field(default=None, max_length=10)
    joined_at: datetime = Field(default_factory=datetime.utcnow, nullable=False)


class JoinRequest(SQLModel, table=True):
    id: int | None = Field(default=None, primary_key=True)
    game_id: int = Field(foreign_key="game.id", nullable=False, index=True)
    user_id: int = Field(nullable=False, index=True)
    name: str = Field(nullable=False)
    age: int | None = Field(default=None)
    skill_level: str | None = Field(default=None)
    image: str | None = Field(default=None)
    whatsapp: str | None = Field(default=None)
    requested_at: datetime = Field(default_factory=datetime.utcnow, nullable=False)


class Attendance(SQLModel, table=True):
    id: int | None = Field(default=None, primary_key=True)
    game_id: int = Field(foreign_key="game.id", nullable=False, index=True)
    user_id: int = Field(nullable=False, index=True)
    attended: bool = Field(default=False, nullable=False)
    marked_at: datetime | None = Field(default=None)
    marked_by: int | None = Field(default=None)


class ActivityEntry(SQLModel, table=True):
    id: int | None = Field(default=None, primary_key=True)
    user_id: int = Field(nullable=False, index=True)
    game_id: int = Field(nullable=False, index=True)
    sport: str = Field(nullable=False)
    date: datetime = Field(nullable=False)
    attended: bool = Field(default=True, nullable=False)
    created_at: datetime = Field(default_factory=datetime.utcnow, nullable=False)


class PlayerRating(SQLModel, table=True):
    id: int | None = Field(default=None, primary_key=True)
    game_id: int = Field(nullable=False, index=True)
    rater_id: int = Field(nullable=False, index=True)
    rated_id: int = Field(nullable=False, index=True)
    rating: int = Field(nullable=False)
    comment: str = Field(default="", nullable=False)
    created_at: datetime = Field(default_factory=datetime.utcnow, nullable=False)


class Report(SQLModel, table=True):
    id: int | None = Field(default=None, primary_key=True)
    game_id: int | None = Field(default=None, index=True)
    user_id: int | None = Field(default=None, index=True)
    reported_by: int = Field(nullable=False, index=True)
    report_type: str = Field(nullable=False)
    description: str = Field(nullable=False)
    images: list[str] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    status: str = Field(default=REPORT_PENDING, nullable=False, index=True)
    action: str | None = Field(default=None)
    action_reason: str | None = Field(default=None)
    action_date: datetime | None = Field(default=None)
    resolved_by: int | None = Field(default=None)
    created_at: datetime = Field(default_factory=datetime.utcnow, nullable=False)
    updated_at: datetime = Field(default_factory=datetime.utcnow, nullable=False)


class Notification(SQLModel, table=True):
    id: int | None = Field(default=None, primary_key=True)
    user_id: int = Field(nullable=False, index=True)
    type: str = Field(nullable=False)
    title: str = Field(nullable=False)
    message: str = Field(nullable=False)
    game_id: int | None = Field(default=None)
    related_user_id: int | None = Field(default=None)
    read: bool = Field(default=False, nullable=False, index=True)
    read_at: datetime | None = Field(default=None)
    created_at: datetime = Field(default_factory=datetime.utcnow, nullable=False)


class Message(SQLModel, table=True):
    id: int | None = Field(default=None, primary_key=True)
    game_id: int = Field(foreign_key="game.id", nullable=False, index=True)
    user_id: int = Field(nullable=False, index=True)
    user_name: str = Field(nullable=False)
    user_image: str = Field(default="", nullable=False)
    message: str = Field(nullable=False, max_length=1000)
    created_at: datetime = Field(default_factory=datetime.utcnow, nullable=False, index=True)


class PrivacyPolicySection(SQLModel, table=True):
    id: int | None = Field(default=None, primary_key=True)
    title: str = Field(nullable=False)
    icon: str = Field(default="FileText", nullable=False)
    content: str = Field(nullable=False)
    position: int = Field(default=0, nullable=False, index=True)
    updated_at: datetime = Field(default_factory=datetime.utcnow, nullable=False)
    updated_by: int | None = Field(default=None)


def init_db() -> None:
    """Create tables if they don't already exist."""
    SQLModel.metadata.create_all(engine)
    _ensure_upload_dir()
    _ensure_privacy_policy()
    _ensure_admin_account()


def get_session() -> Iterator[Session]:
    """Yield a SQLModel session for dependency injection."""
    with Session(engine) as session:
        yield session


def _ensure_upload_dir() -> None:
    UPLOAD_DIR.mkdir(parents=True, exist_ok=True)


def _ensure_privacy_policy() -> None:
    with Session(engine) as session:
        existing = session.exec(select(PrivacyPolicySection).limit(1)).first()
        if existing:
            return
        for position, definition in enumerate(PRIVACY_POLICY_DEFINITIONS, start=1):
            session.add(PrivacyPolicySection(position=position, **definition))
        session.commit()


def _ensure_admin_account() -> None:
    if not ADMIN_EMAIL or not ADMIN_PASSWORD:
        return

    from .auth import hash_password

    email = ADMIN_EMAIL.strip().lower()
    with Session(engine) as session:
        user = session.exec(select(User).where(User.email == email)).first()
        if user:
            if user.role != ROLE_ADMIN:
                user.role = ROLE_ADMIN
                session.add(user)
                session.commit()
                logger.info("Promoted seeded account %s to admin", email)
            return
        session.add(
            User(
                name=ADMIN_NAME,
                email=email,
                password_hash=hash_password(ADMIN_PASSWORD),
                role=ROLE_ADMIN,
            )
        )
        session.commit()
        logger.info("Created admin account %s", email)


def get_privacy_policy(session: Session) -> list[PrivacyPolicySection]:
    return session.exec(select(PrivacyPolicySection).order_by(PrivacyPolicySection.position)).all()
