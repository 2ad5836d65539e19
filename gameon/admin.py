"""Moderation console API: users, games, reports, broadcasts and analytics."""

from __future__ import annotations

import hmac
import logging
import math
import os
from collections import Counter
from datetime import datetime, timedelta

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlmodel import Session, func, select

from .auth import admin_user, is_master_admin, user_payload
from .chat import message_history, message_payload
from .database import (
    GAME_COMPLETED,
    GAME_ONGOING,
    GAME_UPCOMING,
    REPORT_PENDING,
    REPORT_RESOLVED,
    ROLE_ADMIN,
    ROLE_USER,
    Game,
    GamePlayer,
    Message,
    PrivacyPolicySection,
    Report,
    User,
    get_privacy_policy,
    get_session,
)
from .games import cancel_game, delete_game, game_payload, get_game
from .moderation import WARNING_TEMPLATES, game_report_flag, warning_template
from .notifications import notify
from .reports import pending_counts, priority_for, report_payload
from .schemas import (
    AdminNotificationPayload,
    AssignAdminPayload,
    BanPayload,
    PrivacyPolicyPayload,
    RolePayload,
    WarnPayload,
)

router = APIRouter(prefix="/api/admin")

logger = logging.getLogger(__name__)

ADMIN_SECRET_KEY = os.getenv("ADMIN_SECRET_KEY")
DEFAULT_BAN_REASON = "Account banned by administrator"
ONLINE_WINDOW = timedelta(minutes=15)
ADMIN_GAME_MESSAGE_LIMIT = 500


def _admin_pagination(page: int, limit: int, total: int) -> dict[str, int]:
    return {"page": page, "limit": limit, "total": total, "totalPages": math.ceil(total / limit) if limit else 0}


def _page_args(page: int, limit: int) -> tuple[int, int]:
    return max(page, 1), max(min(limit, 200), 1)


def _get_user(session: Session, user_id: int) -> User:
    user = session.get(User, user_id)
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return user


def _admin_user_payload(user: User) -> dict[str, object]:
    payload = user_payload(user)
    payload["image"] = user.image or "/placeholder-user.jpg"
    payload["bannedAt"] = user.banned_at
    payload["banReason"] = user.ban_reason
    return payload


def _game_report_counts(session: Session) -> dict[int, int]:
    rows = session.exec(
        select(Report.game_id, func.count()).where(Report.game_id != None).group_by(Report.game_id)
    ).all()
    return {game_id: count for game_id, count in rows}


def _count(session: Session, model, *conditions) -> int:
    statement = select(func.count()).select_from(model)
    for condition in conditions:
        statement = statement.where(condition)
    return session.exec(statement).one()


# --- users ----------------------------------------------------------------


@router.get("/users")
async def list_users(
    search: str = "",
    show_banned: str | None = Query(default=None, alias="showBanned"),
    page: int = 1,
    limit: int = 50,
    session: Session = Depends(get_session),
    admin: User = Depends(admin_user),
):
    page, limit = _page_args(page, limit)
    statement = select(User).where(User.role != ROLE_ADMIN)
    if search:
        pattern = f"%{search.lower()}%"
        statement = statement.where(func.lower(User.name).like(pattern) | func.lower(User.email).like(pattern))
    if show_banned == "true":
        statement = statement.where(User.is_banned == True)
    elif show_banned == "false":
        statement = statement.where(User.is_banned == False)

    total = session.exec(select(func.count()).select_from(statement.subquery())).one()
    users = session.exec(
        statement.order_by(User.created_at.desc(), User.id.desc()).offset((page - 1) * limit).limit(limit)
    ).all()
    return {
        "success": True,
        "users": [_admin_user_payload(user) for user in users],
        "pagination": _admin_pagination(page, limit, total),
    }


@router.get("/users/{user_id}/games")
async def user_games(user_id: int, session: Session = Depends(get_session), admin: User = Depends(admin_user)):
    _get_user(session, user_id)
    played = select(GamePlayer.game_id).where(GamePlayer.user_id == user_id)
    games = session.exec(
        select(Game)
        .where((Game.host_id == user_id) | Game.id.in_(played))
        .order_by(Game.date.desc(), Game.id.desc())
        .limit(50)
    ).all()
    data = []
    for game in games:
        payload = game_payload(session, game)
        payload["isHost"] = game.host_id == user_id
        data.append(payload)
    return {"success": True, "games": data}


@router.post("/users/{user_id}/ban")
async def ban_user(
    user_id: int,
    payload: BanPayload | None = None,
    session: Session = Depends(get_session),
    admin: User = Depends(admin_user),
):
    user = _get_user(session, user_id)
    if user.role == ROLE_ADMIN:
        raise HTTPException(status_code=403, detail="Cannot ban admin users")
    if is_master_admin(user):
        raise HTTPException(status_code=403, detail="Cannot ban the master admin")
    if user.is_banned:
        raise HTTPException(status_code=400, detail="User is already banned")

    reason = (payload.reason if payload and payload.reason else "").strip() or DEFAULT_BAN_REASON
    user.is_banned = True
    user.banned_at = datetime.utcnow()
    user.banned_by = admin.id
    user.ban_reason = reason
    user.updated_at = datetime.utcnow()
    session.add(user)
    notify(
        session,
        user.id,
        "admin_message",
        "Account Banned",
        f"Your account has been banned. Reason: {reason}",
        related_user_id=admin.id,
    )
    session.commit()
    session.refresh(user)
    logger.info("User %s banned by admin %s", user.id, admin.id)
    return {"success": True, "message": "User banned successfully", "user": _admin_user_payload(user)}


@router.delete("/users/{user_id}/ban")
async def unban_user(user_id: int, session: Session = Depends(get_session), admin: User = Depends(admin_user)):
    user = _get_user(session, user_id)
    if not user.is_banned:
        raise HTTPException(status_code=400, detail="User is not banned")
    user.is_banned = False
    user.banned_at = None
    user.banned_by = None
    user.ban_reason = None
    user.updated_at = datetime.utcnow()
    session.add(user)
    session.commit()
    session.refresh(user)
    logger.info("User %s unbanned by admin %s", user.id, admin.id)
    return {"success": True, "message": "User unbanned successfully", "user": _admin_user_payload(user)}


@router.put("/users/{user_id}/role")
async def change_role(
    user_id: int,
    payload: RolePayload,
    session: Session = Depends(get_session),
    admin: User = Depends(admin_user),
):
    if payload.role not in (ROLE_USER, ROLE_ADMIN):
        raise HTTPException(status_code=400, detail='Invalid role. Must be "user" or "admin"')
    user = _get_user(session, user_id)
    if payload.role == ROLE_USER:
        if user.id == admin.id:
            raise HTTPException(status_code=400, detail="Cannot remove admin role from yourself")
        if is_master_admin(user):
            raise HTTPException(status_code=403, detail="Cannot change the master admin's role")
    user.role = payload.role
    user.updated_at = datetime.utcnow()
    session.add(user)
    session.commit()
    session.refresh(user)
    logger.info("User %s role set to %s by admin %s", user.id, user.role, admin.id)
    return {"success": True, "message": f"User role updated to {user.role}", "user": _admin_user_payload(user)}


@router.post("/users/{user_id}/warn")
async def warn_user(
    user_id: int,
    payload: WarnPayload,
    session: Session = Depends(get_session),
    admin: User = Depends(admin_user),
):
    user = _get_user(session, user_id)
    template = warning_template(payload.report_type)
    notify(session, user.id, "admin_message", template["title"], template["message"], related_user_id=admin.id)
    session.commit()
    logger.info("Warning %s sent to user %s by admin %s", template["type"], user.id, admin.id)
    return {"success": True, "message": "Warning sent successfully"}


@router.get("/warning-templates")
async def warning_templates(admin: User = Depends(admin_user)):
    return {"success": True, "data": list(WARNING_TEMPLATES.values())}


@router.post("/assign-admin")
async def assign_admin(payload: AssignAdminPayload, session: Session = Depends(get_session)):
    if not ADMIN_SECRET_KEY:
        raise HTTPException(status_code=403, detail="Admin assignment is disabled")
    if not payload.email or not payload.secret_key:
        raise HTTPException(status_code=400, detail="Email and secret key are required")
    if not hmac.compare_digest(payload.secret_key, ADMIN_SECRET_KEY):
        raise HTTPException(status_code=403, detail="Invalid secret key")
    user = session.exec(select(User).where(User.email == payload.email.strip().lower())).first()
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    user.role = ROLE_ADMIN
    user.updated_at = datetime.utcnow()
    session.add(user)
    session.commit()
    logger.info("User %s promoted to admin with the secret key", user.id)
    return {"success": True, "message": f"{user.email} is now an admin"}


# --- games ----------------------------------------------------------------


@router.get("/games")
async def list_games(
    search: str = "",
    status: str | None = None,
    sport: str | None = None,
    priority: str | None = None,
    page: int = 1,
    limit: int = 50,
    session: Session = Depends(get_session),
    admin: User = Depends(admin_user),
):
    page, limit = _page_args(page, limit)
    statement = select(Game)
    if search:
        pattern = f"%{search.lower()}%"
        statement = statement.where(
            func.lower(Game.title).like(pattern)
            | func.lower(Game.sport).like(pattern)
            | func.lower(Game.address).like(pattern)
        )
    if status and status != "all":
        statement = statement.where(Game.status == status)
    if sport and sport != "all":
        statement = statement.where(Game.sport == sport)
    games = session.exec(statement.order_by(Game.created_at.desc(), Game.id.desc())).all()

    counts = _game_report_counts(session)
    entries = []
    for game in games:
        report_count = counts.get(game.id, 0)
        flag = game_report_flag(report_count)
        if priority and flag != priority:
            continue
        host = session.get(User, game.host_id)
        entries.append(
            {
                "id": game.id,
                "title": game.title,
                "sport": game.sport,
                "location": game.address,
                "city": game.city or "",
                "date": game.date,
                "startTime": game.start_time,
                "endTime": game.end_time,
                "maxPlayers": game.max_players,
                "status": game.status,
                "hostId": game.host_id,
                "hostName": host.name if host else "Unknown",
                "hostEmail": host.email if host else "",
                "image": game.image,
                "createdAt": game.created_at,
                "reportCount": report_count,
                "priority": flag,
            }
        )
    total = len(entries)
    start = (page - 1) * limit
    return {
        "success": True,
        "games": entries[start : start + limit],
        "pagination": _admin_pagination(page, limit, total),
    }


@router.get("/games/sports")
async def game_sports(session: Session = Depends(get_session), admin: User = Depends(admin_user)):
    sports = session.exec(select(Game.sport).distinct().order_by(Game.sport)).all()
    return {"success": True, "sports": sports}


@router.get("/games/{game_id}")
async def get_game_detail(game_id: int, session: Session = Depends(get_session), admin: User = Depends(admin_user)):
    game = get_game(session, game_id)
    payload = game_payload(session, game, detail=True)
    report_count = _game_report_counts(session).get(game.id, 0)
    payload["reportCount"] = report_count
    payload["priority"] = game_report_flag(report_count)
    return {"success": True, "data": payload}


@router.post("/games/{game_id}/cancel")
async def cancel_game_as_admin(
    game_id: int,
    session: Session = Depends(get_session),
    admin: User = Depends(admin_user),
):
    game = get_game(session, game_id)
    cancel_game(session, game, by="an administrator")
    session.commit()
    session.refresh(game)
    logger.info("Game %s cancelled by admin %s", game_id, admin.id)
    return {"success": True, "data": game_payload(session, game, detail=True)}


@router.delete("/games/{game_id}")
async def delete_game_as_admin(
    game_id: int,
    session: Session = Depends(get_session),
    admin: User = Depends(admin_user),
):
    game = get_game(session, game_id)
    title = game.title
    now = datetime.utcnow()
    open_reports = session.exec(
        select(Report).where((Report.game_id == game_id) & (Report.status == REPORT_PENDING))
    ).all()
    reporters: list[int] = []
    for report in open_reports:
        report.status = REPORT_RESOLVED
        report.action = "delete"
        report.action_reason = report.action_reason or "Game removed by administrator"
        report.action_date = now
        report.resolved_by = admin.id
        report.updated_at = now
        session.add(report)
        if report.reported_by not in reporters:
            reporters.append(report.reported_by)
    for reporter_id in reporters:
        notify(
            session,
            reporter_id,
            "admin_message",
            "Report Resolved - Thank You",
            (
                f'Thank you for your report regarding "{title}". We have reviewed your report and '
                "taken appropriate action. The game has been removed from the platform. Your "
                "contribution helps us maintain a safe and enjoyable community for everyone."
            ),
            related_user_id=admin.id,
        )
    delete_game(session, game)
    session.commit()
    logger.info("Game %s deleted by admin %s; %s reports resolved", game_id, admin.id, len(open_reports))
    return {
        "success": True,
        "message": "Game deleted successfully",
        "resolvedReports": len(open_reports),
        "notifiedReporters": len(reporters),
    }


@router.get("/games/{game_id}/reports")
async def game_reports(game_id: int, session: Session = Depends(get_session), admin: User = Depends(admin_user)):
    reports = session.exec(
        select(Report).where(Report.game_id == game_id).order_by(Report.created_at.desc(), Report.id.desc())
    ).all()
    counts = pending_counts(session)
    return {"success": True, "reports": [report_payload(session, report, counts) for report in reports]}


@router.get("/games/{game_id}/messages")
async def game_messages(game_id: int, session: Session = Depends(get_session), admin: User = Depends(admin_user)):
    get_game(session, game_id)
    messages = message_history(session, game_id, limit=ADMIN_GAME_MESSAGE_LIMIT)
    return {"success": True, "messages": [message_payload(message) for message in messages]}


# --- reports --------------------------------------------------------------


@router.get("/reports")
async def list_reports(
    search: str = "",
    status: str | None = None,
    report_type: str | None = Query(default=None, alias="reportType"),
    priority: str | None = None,
    page: int = 1,
    limit: int = 50,
    session: Session = Depends(get_session),
    admin: User = Depends(admin_user),
):
    page, limit = _page_args(page, limit)
    statement = select(Report)
    if report_type == "game":
        statement = statement.where(Report.game_id != None)
    elif report_type == "user":
        statement = statement.where(Report.user_id != None)
    if status:
        statement = statement.where(Report.status == status)
    reports = session.exec(statement.order_by(Report.created_at.desc(), Report.id.desc())).all()

    counts = pending_counts(session)
    payloads = []
    needle = search.lower()
    for report in reports:
        if priority and priority_for(report, counts) != priority:
            continue
        payload = report_payload(session, report, counts)
        if needle:
            haystack = " ".join(
                str(value or "")
                for value in (
                    payload["gameTitle"],
                    payload["reportedUserName"],
                    payload["reportedBy"]["name"],
                    payload["description"],
                )
            ).lower()
            if needle not in haystack:
                continue
        payloads.append(payload)
    total = len(payloads)
    start = (page - 1) * limit
    return {
        "success": True,
        "reports": payloads[start : start + limit],
        "pagination": _admin_pagination(page, limit, total),
    }


# --- notifications --------------------------------------------------------


@router.post("/notifications/send")
async def send_notification(
    payload: AdminNotificationPayload,
    session: Session = Depends(get_session),
    admin: User = Depends(admin_user),
):
    if not payload.title or not payload.message:
        raise HTTPException(status_code=400, detail="Title and message are required")
    if payload.user_id is not None:
        recipients = [_get_user(session, payload.user_id).id]
    else:
        recipients = session.exec(select(User.id)).all()
    for recipient in recipients:
        notify(
            session,
            recipient,
            "admin_message",
            payload.title,
            payload.message,
            game_id=payload.game_id,
            related_user_id=payload.related_user_id,
        )
    session.commit()
    logger.info("Admin %s sent a notification to %s users", admin.id, len(recipients))
    return {
        "success": True,
        "message": f"Notification sent to {len(recipients)} user(s)",
        "notificationCount": len(recipients),
    }


# --- analytics ------------------------------------------------------------


@router.get("/analytics")
async def analytics(session: Session = Depends(get_session), admin: User = Depends(admin_user)):
    now = datetime.utcnow()
    today = now.replace(hour=0, minute=0, second=0, microsecond=0)
    week_ago = now - timedelta(days=7)
    month_ago = now - timedelta(days=30)

    total_users = _count(session, User, User.role != ROLE_ADMIN)
    user_growth = []
    for offset in range(6, -1, -1):
        day_start = today - timedelta(days=offset)
        day_end = day_start + timedelta(days=1)
        user_growth.append(
            {
                "date": day_start.date().isoformat(),
                "count": _count(
                    session,
                    User,
                    User.role != ROLE_ADMIN,
                    User.created_at >= day_start,
                    User.created_at < day_end,
                ),
            }
        )

    games_by_sport = session.exec(
        select(Game.sport, func.count()).group_by(Game.sport).order_by(func.count().desc()).limit(10)
    ).all()
    games_by_status = session.exec(select(Game.status, func.count()).group_by(Game.status)).all()
    report_types = Counter(session.exec(select(Report.report_type)).all())

    recent_reports = _count(session, Report, Report.created_at >= month_ago)
    recent_closed = _count(session, Report, Report.created_at >= month_ago, Report.status != REPORT_PENDING)
    completed_games = _count(session, Game, Game.status == GAME_COMPLETED)

    most_active = session.exec(
        select(User)
        .where(User.role != ROLE_ADMIN)
        .order_by(User.games_played.desc(), User.id)
        .limit(5)
    ).all()

    data = {
        "users": {
            "totalUsers": total_users,
            "newUsersThisWeek": _count(session, User, User.role != ROLE_ADMIN, User.created_at >= week_ago),
            "newUsersThisMonth": _count(session, User, User.role != ROLE_ADMIN, User.created_at >= month_ago),
            "onlineUsers": _count(session, User, User.last_seen >= now - ONLINE_WINDOW),
            "bannedUsers": _count(session, User, User.is_banned == True),
            "userGrowth": user_growth,
        },
        "games": {
            "totalGames": _count(session, Game),
            "upcomingGames": _count(session, Game, Game.status == GAME_UPCOMING, Game.date >= now),
            "gamesThisWeek": _count(session, Game, Game.created_at >= week_ago),
            "gamesThisMonth": _count(session, Game, Game.created_at >= month_ago),
            "completedGames": completed_games,
            "ongoingGames": _count(session, Game, Game.status == GAME_ONGOING),
            "gamesBySport": [{"sport": sport, "count": count} for sport, count in games_by_sport],
            "gamesByStatus": {status: count for status, count in games_by_status},
        },
        "reports": {
            "totalReports": _count(session, Report),
            "pendingReports": _count(session, Report, Report.status == REPORT_PENDING),
            "resolvedReports": _count(session, Report, Report.status == REPORT_RESOLVED),
            "reportsThisWeek": _count(session, Report, Report.created_at >= week_ago),
            "reportsByType": dict(report_types),
            "resolutionRate": round(recent_closed / recent_reports * 100) if recent_reports else 0,
        },
        "messages": {
            "totalMessages": _count(session, Message),
            "messagesToday": _count(session, Message, Message.created_at >= today),
        },
        "engagement": {
            "avgGamesPerUser": f"{completed_games / total_users:.1f}" if total_users else "0.0",
            "mostActiveUsers": [
                {"id": user.id, "name": user.name, "email": user.email, "gamesPlayed": user.games_played}
                for user in most_active
            ],
        },
    }
    return {"success": True, "data": data}


# --- privacy policy -------------------------------------------------------


def _policy_payload(sections: list[PrivacyPolicySection]) -> dict[str, object]:
    return {
        "sections": [
            {
                "id": section.id,
                "title": section.title,
                "icon": section.icon,
                "content": section.content,
                "order": section.position,
            }
            for section in sections
        ],
        "lastUpdated": max((section.updated_at for section in sections), default=None),
    }


@router.get("/privacy-policy")
async def get_policy(session: Session = Depends(get_session), admin: User = Depends(admin_user)):
    return {"success": True, "data": _policy_payload(get_privacy_policy(session))}


@router.put("/privacy-policy")
async def update_policy(
    payload: PrivacyPolicyPayload,
    session: Session = Depends(get_session),
    admin: User = Depends(admin_user),
):
    if not payload.sections:
        raise HTTPException(status_code=400, detail="At least one section is required")
    for section in payload.sections:
        if not section.title or not section.title.strip() or not section.content or not section.content.strip():
            raise HTTPException(status_code=400, detail="Each section must have a title and content")

    for existing in get_privacy_policy(session):
        session.delete(existing)
    now = datetime.utcnow()
    for position, section in enumerate(payload.sections, start=1):
        session.add(
            PrivacyPolicySection(
                title=section.title.strip(),
                icon=section.icon or "FileText",
                content=section.content,
                position=position,
                updated_at=now,
                updated_by=admin.id,
            )
        )
    session.commit()
    logger.info("Privacy policy updated by admin %s", admin.id)
    return {"success": True, "data": _policy_payload(get_privacy_policy(session))}
