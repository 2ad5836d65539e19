"""Request bodies accepted by the JSON API (camelCase on the wire)."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class Payload(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class SignupPayload(Payload):
    first_name: str | None = None
    last_name: str | None = None
    email: str | None = None
    password: str | None = None


class LoginPayload(Payload):
    email: str | None = None
    password: str | None = None


class Coordinates(Payload):
    lat: float | str | None = None
    lng: float | str | None = None


class LocationPayload(Payload):
    address: str | None = None
    city: str | None = None
    country: str | None = None
    coordinates: Coordinates | None = None


class GameCreate(Payload):
    title: str | None = None
    sport: str | None = None
    description: str | None = None
    location: LocationPayload | None = None
    date: str | None = None
    start_time: str | None = None
    end_time: str | None = None
    max_players: int | None = None
    skill_level: str | None = None
    min_skill_level: str | None = None
    image: str | None = None
    host_whatsapp: str | None = Field(default=None, alias="hostWhatsApp")


class GameUpdate(GameCreate):
    status: str | None = None


class JoinPayload(Payload):
    name: str | None = None
    age: int | None = None
    skill_level: str | None = None
    image: str | None = None
    whatsapp: str | None = Field(default=None, alias="whatsApp")
    auto_approve: bool = False


class PlayerIdPayload(Payload):
    player_id: int | None = None


class TransferHostPayload(Payload):
    new_host_id: int | None = None


class TeamsPayload(Payload):
    blue: list[int] = Field(default_factory=list)
    red: list[int] = Field(default_factory=list)


class AttendancePayload(Payload):
    player_ids: list[int] = Field(default_factory=list)
    mark_all: bool = False


class RatingPayload(Payload):
    player_id: int | None = None
    rating: int | None = None
    comment: str | None = None


class MessagePayload(Payload):
    message: str | None = None


class ReportCreate(Payload):
    game_id: int | None = None
    user_id: int | None = None
    report_type: str | None = None
    description: str | None = None
    images: list[str] = Field(default_factory=list)


class ReportUpdate(Payload):
    status: str | None = None
    action: str | None = None
    action_reason: str | None = None
    description: str | None = None
    images: list[str] | None = None


class NotificationsUpdate(Payload):
    notification_ids: list[int] = Field(default_factory=list)
    mark_all_as_read: bool = False


class ProfileUpdate(Payload):
    name: str | None = None
    bio: str | None = None
    phone_number: str | None = None
    location: str | None = None
    image: str | None = None
    interests: list[str] | None = None


class BanPayload(Payload):
    reason: str | None = None


class RolePayload(Payload):
    role: str | None = None


class WarnPayload(Payload):
    report_type: str | None = None


class AssignAdminPayload(Payload):
    email: str | None = None
    secret_key: str | None = None


class AdminNotificationPayload(Payload):
    user_id: int | None = None
    title: str | None = None
    message: str | None = None
    game_id: int | None = None
    related_user_id: int | None = None


class PrivacySectionPayload(Payload):
    title: str | None = None
    icon: str | None = None
    content: str | None = None


class PrivacyPolicyPayload(Payload):
    sections: list[PrivacySectionPayload] = Field(default_factory=list)
