"""In-app notifications and moderator e-mail alerts."""

from __future__ import annotations

import logging
import os
import smtplib
from datetime import datetime
from email.message import EmailMessage

from sqlmodel import Session

from .database import Notification

logger = logging.getLogger(__name__)

NOTIFICATION_TYPES = (
    "join_request_accepted",
    "join_request_rejected",
    "join_request_sent",
    "game_cancelled",
    "game_updated",
    "new_join_request",
    "player_left",
    "game_reminder",
    "host_assigned",
    "game_attended",
    "game_completed",
    "admin_message",
)

REPORTS_EMAIL = os.getenv("REPORTS_EMAIL")
SMTP_HOST = os.getenv("SMTP_HOST")
SMTP_PORT_RAW = os.getenv("SMTP_PORT")
SMTP_PORT = int(SMTP_PORT_RAW) if SMTP_PORT_RAW and SMTP_PORT_RAW.isdigit() else None
SMTP_USERNAME = os.getenv("SMTP_USERNAME")
SMTP_PASSWORD = os.getenv("SMTP_PASSWORD")
SMTP_USE_TLS = os.getenv("SMTP_USE_TLS", "true").lower() in {"1", "true", "yes"}
SMTP_USE_SSL = os.getenv("SMTP_USE_SSL", "false").lower() in {"1", "true", "yes"}
SMTP_SENDER = os.getenv("SMTP_SENDER")


def notify(
    session: Session,
    user_id: int,
    kind: str,
    title: str,
    message: str,
    *,
    game_id: int | None = None,
    related_user_id: int | None = None,
) -> Notification:
    """Queue a notification on the caller's transaction; the caller commits."""
    if kind not in NOTIFICATION_TYPES:
        raise ValueError(f"Unknown notification type: {kind}")
    notification = Notification(
        user_id=user_id,
        type=kind,
        title=title,
        message=message,
        game_id=game_id,
        related_user_id=related_user_id,
    )
    session.add(notification)
    return notification


def mark_read(notification: Notification) -> None:
    if notification.read:
        return
    notification.read = True
    notification.read_at = datetime.utcnow()


def notification_payload(notification: Notification) -> dict[str, object]:
    return {
        "id": notification.id,
        "userId": notification.user_id,
        "type": notification.type,
        "title": notification.title,
        "message": notification.message,
        "gameId": notification.game_id,
        "relatedUserId": notification.related_user_id,
        "read": notification.read,
        "readAt": notification.read_at,
        "createdAt": notification.created_at,
    }


def notify_moderators(subject: str, body: str) -> None:
    if not REPORTS_EMAIL:
        logger.info("Reports email not configured. Skipping alert: %s", subject)
        logger.debug("Alert body: %s", body)
        return

    sender = SMTP_SENDER or SMTP_USERNAME or REPORTS_EMAIL
    message = EmailMessage()
    message["Subject"] = subject
    message["From"] = sender
    message["To"] = REPORTS_EMAIL
    message.set_content(body)

    if not SMTP_HOST:
        logger.info("SMTP host not configured. Logging alert instead: %s", subject)
        logger.debug("Alert body: %s", body)
        return

    try:
        if SMTP_USE_SSL:
            with smtplib.SMTP_SSL(SMTP_HOST, SMTP_PORT or 465) as server:
                if SMTP_USERNAME and SMTP_PASSWORD:
                    server.login(SMTP_USERNAME, SMTP_PASSWORD)
                server.send_message(message)
        else:
            with smtplib.SMTP(SMTP_HOST, SMTP_PORT or 587) as server:
                if SMTP_USE_TLS:
                    server.starttls()
                if SMTP_USERNAME and SMTP_PASSWORD:
                    server.login(SMTP_USERNAME, SMTP_PASSWORD)
                server.send_message(message)
    except Exception as exc:  # pragma: no cover - best effort logging
        logger.warning("Failed to send moderator alert '%s': %s", subject, exc)
