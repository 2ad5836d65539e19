"""Content rules shared by chat, reports and the admin console."""

from __future__ import annotations

import os
import re

SUPPORT_EMAIL = os.getenv("SUPPORT_EMAIL", "support@gameon.app")

REPORT_TYPES = ("spam", "harassment", "inappropriate", "fake_scam", "violence", "other")
REPORT_STATUSES = ("pending", "resolved", "dismissed")
REPORT_ACTIONS = ("delete", "keep", "dismiss")
MAX_REPORT_IMAGES = 3

MAX_MESSAGE_LENGTH = 1000
ATTACHMENT_PATTERN = re.compile(
    r"\.(jpg|jpeg|png|gif|bmp|webp|svg|ico|pdf|doc|docx|xls|xlsx|zip|rar|tar|gz"
    r"|mp4|avi|mov|wmv|flv|webm|mp3|wav|ogg)(\?|$)",
    re.IGNORECASE,
)
DATA_URI_PREFIXES = ("data:image/", "data:application/")
ATTACHMENT_ERROR = "File and image uploads are not allowed. Only text and links are permitted."


def message_error(text: str | None) -> str | None:
    """Return why a chat message is rejected, or None when it may be posted."""
    if not text or not text.strip():
        return "Message is required"
    cleaned = text.strip()
    if len(cleaned) > MAX_MESSAGE_LENGTH:
        return f"Message too long (max {MAX_MESSAGE_LENGTH} characters)"
    if ATTACHMENT_PATTERN.search(cleaned):
        return ATTACHMENT_ERROR
    lower = cleaned.lower()
    if any(prefix in lower for prefix in DATA_URI_PREFIXES):
        return ATTACHMENT_ERROR
    return None


def report_priority(pending_count: int) -> str:
    if pending_count >= 5:
        return "high"
    if pending_count >= 2:
        return "medium"
    return "low"


def game_report_flag(report_count: int) -> str:
    if report_count == 0:
        return "green"
    if report_count <= 5:
        return "yellow"
    return "red"


def _consequences(*lines: str) -> str:
    return "\n".join(f"- {line}" for line in lines)


def _closing(text: str) -> str:
    return f"{text} If you have any questions or concerns, please contact our support team at {SUPPORT_EMAIL}."


WARNING_TEMPLATES = {
    "spam": {
        "type": "spam",
        "label": "Spam",
        "title": "Warning: Spam Activity Detected",
        "message": (
            "We have received reports regarding spam activity associated with your account. "
            "Posting promotional content, unsolicited messages, or repetitive content that "
            "disrupts the community is strictly prohibited.\n\n"
            "This is a formal warning. Continued spam activity may result in:\n"
            + _consequences(
                "Temporary suspension of your account",
                "Permanent ban from the platform",
                "Loss of access to all games and features",
            )
            + "\n\n"
            + _closing("Please review our community guidelines and ensure your future activity complies with our terms of service.")
        ),
    },
    "harassment": {
        "type": "harassment",
        "label": "Harassment or Bullying",
        "title": "Warning: Harassment or Bullying Violation",
        "message": (
            "We have received reports of harassment or bullying behavior associated with your "
            "account. Harassment, bullying, or any form of abusive behavior towards other users "
            "is strictly prohibited and will not be tolerated.\n\n"
            "This is a formal warning. Further violations may result in:\n"
            + _consequences(
                "Immediate temporary suspension",
                "Permanent ban from the platform",
            )
            + "\n\n"
            + _closing("Please make sure your interactions with others are respectful and appropriate.")
        ),
    },
    "inappropriate": {
        "type": "inappropriate",
        "label": "Inappropriate Content",
        "title": "Warning: Inappropriate Content Violation",
        "message": (
            "We have received reports regarding inappropriate content posted by your account. "
            "Posting sexually explicit, offensive, or otherwise inappropriate content is strictly "
            "prohibited.\n\n"
            "This is a formal warning. Continued violations may result in:\n"
            + _consequences(
                "Content removal and account restrictions",
                "Temporary suspension of your account",
                "Permanent ban from the platform",
            )
            + "\n\n"
            + _closing("Please review our community guidelines regarding acceptable content.")
        ),
    },
    "fake_scam": {
        "type": "fake_scam",
        "label": "Fake or Scam Activity",
        "title": "Warning: Fake or Scam Activity Detected",
        "message": (
            "We have received reports of potentially fraudulent or scam activity associated with "
            "your account. Creating fake games, misleading other users, or engaging in any form "
            "of deceptive practices is strictly prohibited.\n\n"
            "This is a formal warning. Further violations may result in:\n"
            + _consequences(
                "Immediate account suspension",
                "Permanent ban from the platform",
            )
            + "\n\n"
            + _closing("Please ensure all your activities on the platform are genuine and transparent.")
        ),
    },
    "violence": {
        "type": "violence",
        "label": "Violence or Threats",
        "title": "Warning: Violence or Threats Violation",
        "message": (
            "We have received reports of violent language, threats, or behavior associated with "
            "your account. Our platform has zero tolerance for any form of violence, threats, or "
            "intimidation.\n\n"
            "This is a formal warning. Further violations will result in:\n"
            + _consequences(
                "Immediate and permanent ban from the platform",
                "Reporting to law enforcement authorities",
            )
            + "\n\n"
            + _closing("Please review our community guidelines immediately.")
        ),
    },
    "other": {
        "type": "other",
        "label": "Other Violation",
        "title": "Warning: Community Guidelines Violation",
        "message": (
            "We have received reports of behavior that violates our community guidelines. All "
            "users are expected to follow our terms of service and community guidelines at all "
            "times.\n\n"
            "This is a formal warning. Continued violations may result in:\n"
            + _consequences(
                "Account restrictions or limitations",
                "Temporary suspension",
                "Permanent ban from the platform",
            )
            + "\n\n"
            + _closing("Please review our community guidelines.")
        ),
    },
}


def warning_template(report_type: str | None) -> dict[str, str]:
    return WARNING_TEMPLATES.get(report_type or "", WARNING_TEMPLATES["other"])
