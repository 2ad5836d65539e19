from __future__ import annotations

import logging
from collections import Counter
from datetime import datetime

from fastapi import HTTPException
from sqlmodel import Session, select

from .database import REPORT_PENDING, ROLE_ADMIN, Game, Report, User
from .moderation import (
    MAX_REPORT_IMAGES,
    REPORT_ACTIONS,
    REPORT_STATUSES,
    REPORT_TYPES,
    report_priority,
)
from .notifications import notify, notify_moderators
from .schemas import ReportCreate, ReportUpdate

logger = logging.getLogger(__name__)


def report_target(report: Report) -> tuple[str, int]:
    if report.game_id is not None:
        return ("game", report.game_id)
    return ("user", report.user_id)


def pending_counts(session: Session) -> Counter:
    """Count pending reports per (kind, id) target."""
    pending = session.exec(select(Report).where(Report.status == REPORT_PENDING)).all()
    return Counter(report_target(report) for report in pending)


def priority_for(report: Report, counts: Counter) -> str:
    if report.status != REPORT_PENDING:
        return "low"
    return report_priority(counts.get(report_target(report), 0))


def get_report(session: Session, report_id: int) -> Report:
    report = session.get(Report, report_id)
    if not report:
        raise HTTPException(status_code=404, detail="Report not found")
    return report


def require_reporter_or_admin(report: Report, user: User) -> None:
    if user.role != ROLE_ADMIN and report.reported_by != user.id:
        raise HTTPException(status_code=403, detail="Unauthorized")


def _validate_images(images: list[str]) -> list[str]:
    if len(images) > MAX_REPORT_IMAGES:
        raise HTTPException(status_code=400, detail=f"Maximum {MAX_REPORT_IMAGES} images allowed")
    return [image for image in images if image]


def create_report(session: Session, reporter: User, payload: ReportCreate) -> Report:
    if not payload.game_id and not payload.user_id:
        raise HTTPException(status_code=400, detail="A game or user to report is required")
    if payload.game_id and payload.user_id:
        raise HTTPException(status_code=400, detail="Report a game or a user, not both")
    if not payload.report_type or not payload.description or not payload.description.strip():
        raise HTTPException(status_code=400, detail="Missing required fields: reportType, description")
    if payload.report_type not in REPORT_TYPES:
        raise HTTPException(status_code=400, detail="Invalid report type")
    images = _validate_images(payload.images)

    duplicate = select(Report).where(
        (Report.reported_by == reporter.id) & (Report.status == REPORT_PENDING)
    )
    if payload.game_id:
        game = session.get(Game, payload.game_id)
        if not game:
            raise HTTPException(status_code=404, detail="Game not found")
        if session.exec(duplicate.where(Report.game_id == game.id)).first():
            raise HTTPException(
                status_code=400,
                detail="You have already submitted a pending report for this game",
            )
        subject = f'Game "{game.title}"'
    else:
        target = session.get(User, payload.user_id)
        if not target:
            raise HTTPException(status_code=404, detail="User not found")
        if target.id == reporter.id:
            raise HTTPException(status_code=400, detail="You cannot report yourself")
        if session.exec(duplicate.where(Report.user_id == target.id)).first():
            raise HTTPException(
                status_code=400,
                detail="You have already submitted a pending report for this user",
            )
        subject = f"User {target.name}"

    report = Report(
        game_id=payload.game_id or None,
        user_id=payload.user_id or None,
        reported_by=reporter.id,
        report_type=payload.report_type,
        description=payload.description.strip(),
        images=images,
    )
    session.add(report)
    session.commit()
    session.refresh(report)
    notify_moderators(
        f"New {report.report_type} report",
        f"{subject} was reported by {reporter.name} ({reporter.email}).\n\n{report.description}",
    )
    return report


def update_report(session: Session, report: Report, user: User, payload: ReportUpdate) -> Report:
    is_admin = user.role == ROLE_ADMIN
    if payload.status or payload.action or payload.action_reason:
        if not is_admin:
            raise HTTPException(status_code=403, detail="Only admins can update report status and action")
        if payload.status and payload.status not in REPORT_STATUSES:
            raise HTTPException(status_code=400, detail="Invalid status")
        if payload.action and payload.action not in REPORT_ACTIONS:
            raise HTTPException(status_code=400, detail="Invalid action")
        if payload.action:
            report.action = payload.action
        if payload.action_reason is not None:
            report.action_reason = payload.action_reason
        if payload.status and payload.status != report.status:
            report.status = payload.status
            if report.status != REPORT_PENDING:
                close_report(session, report, user)

    require_reporter_or_admin(report, user)
    if payload.description is not None:
        if not payload.description.strip():
            raise HTTPException(status_code=400, detail="Description cannot be empty")
        report.description = payload.description.strip()
    if payload.images is not None:
        report.images = _validate_images(payload.images)

    report.updated_at = datetime.utcnow()
    session.add(report)
    return report


def close_report(session: Session, report: Report, admin: User) -> None:
    """Stamp a resolved or dismissed report and tell the reporter."""
    report.resolved_by = admin.id
    report.action_date = datetime.utcnow()
    notify(
        session,
        report.reported_by,
        "admin_message",
        "Report Update",
        f"Your report has been {report.status}. Thank you for helping keep GameOn safe.",
        game_id=report.game_id,
        related_user_id=admin.id,
    )
    logger.info("Report %s %s by admin %s", report.id, report.status, admin.id)


def report_payload(session: Session, report: Report, counts: Counter | None = None) -> dict[str, object]:
    game = session.get(Game, report.game_id) if report.game_id is not None else None
    reported_user = session.get(User, report.user_id) if report.user_id is not None else None
    reporter = session.get(User, report.reported_by)
    resolver = session.get(User, report.resolved_by) if report.resolved_by is not None else None
    if counts is None:
        counts = pending_counts(session)
    return {
        "id": report.id,
        "type": report_target(report)[0],
        "gameId": report.game_id,
        "gameTitle": game.title if game else ("Deleted Game" if report.game_id else None),
        "gameSport": game.sport if game else None,
        "userId": report.user_id,
        "reportedUserName": reported_user.name if reported_user else None,
        "reportedBy": {
            "id": report.reported_by,
            "name": reporter.name if reporter else "Unknown User",
            "email": reporter.email if reporter else "",
        },
        "reportType": report.report_type,
        "description": report.description,
        "images": report.images or [],
        "status": report.status,
        "action": report.action,
        "actionReason": report.action_reason,
        "actionDate": report.action_date,
        "resolvedBy": {"id": resolver.id, "name": resolver.name} if resolver else None,
        "priority": priority_for(report, counts),
        "createdAt": report.created_at,
        "updatedAt": report.updated_at,
    }
