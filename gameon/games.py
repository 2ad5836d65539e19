"""Game workflow: roster changes, attendance, ratings and status changes.

Helpers here validate, mutate and queue notifications on the session they are
given. Route handlers own the transaction and commit once the helper returns.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from fastapi import HTTPException
from sqlmodel import Session, func, select

from .database import (
    GAME_CANCELLED,
    GAME_COMPLETED,
    GAME_ONGOING,
    GAME_UPCOMING,
    OPEN_GAME_STATUSES,
    ActivityEntry,
    Attendance,
    Game,
    GamePlayer,
    JoinRequest,
    Message,
    PlayerRating,
    User,
)
from .notifications import notify
from .schemas import GameCreate, GameUpdate, JoinPayload
from .sports import SKILL_LEVELS, is_valid_sport

logger = logging.getLogger(__name__)

TEAM_BLUE = "blue"
TEAM_RED = "red"

# "completed" is only reached through attendance, never set directly.
ALLOWED_TRANSITIONS = {
    GAME_UPCOMING: {GAME_ONGOING, GAME_CANCELLED},
    GAME_ONGOING: {GAME_CANCELLED},
    GAME_COMPLETED: set(),
    GAME_CANCELLED: set(),
}


def get_game(session: Session, game_id: int) -> Game:
    game = session.get(Game, game_id)
    if not game:
        raise HTTPException(status_code=404, detail="Game not found")
    return game


def require_host(game: Game, user: User, action: str) -> None:
    if game.host_id != user.id:
        raise HTTPException(status_code=403, detail=f"Only the host can {action}")


def game_players(session: Session, game_id: int) -> list[GamePlayer]:
    return session.exec(
        select(GamePlayer).where(GamePlayer.game_id == game_id).order_by(GamePlayer.joined_at, GamePlayer.id)
    ).all()


def game_join_requests(session: Session, game_id: int) -> list[JoinRequest]:
    return session.exec(
        select(JoinRequest)
        .where(JoinRequest.game_id == game_id)
        .order_by(JoinRequest.requested_at, JoinRequest.id)
    ).all()


def game_attendance(session: Session, game_id: int) -> list[Attendance]:
    return session.exec(
        select(Attendance).where(Attendance.game_id == game_id).order_by(Attendance.id)
    ).all()


def find_player(session: Session, game_id: int, user_id: int) -> GamePlayer | None:
    return session.exec(
        select(GamePlayer).where((GamePlayer.game_id == game_id) & (GamePlayer.user_id == user_id))
    ).first()


def find_join_request(session: Session, game_id: int, user_id: int) -> JoinRequest | None:
    return session.exec(
        select(JoinRequest).where((JoinRequest.game_id == game_id) & (JoinRequest.user_id == user_id))
    ).first()


def player_count(session: Session, game_id: int) -> int:
    return session.exec(select(func.count()).select_from(GamePlayer).where(GamePlayer.game_id == game_id)).one()


def participant_ids(session: Session, game: Game) -> list[int]:
    """Host first, then registered players in join order."""
    return [game.host_id] + [player.user_id for player in game_players(session, game.id)]


def _touch(game: Game) -> None:
    game.updated_at = datetime.utcnow()


def parse_game_date(value: str) -> datetime:
    raw = value.strip()
    if raw.endswith("Z"):
        raw = raw[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(raw)
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid date") from None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def _coordinate(value: float | str | None) -> float | None:
    if value is None:
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _apply_location(game: Game, location) -> None:
    game.address = location.address
    game.city = location.city or None
    game.country = location.country or None
    game.latitude = None
    game.longitude = None
    if location.coordinates is None:
        return
    lat = _coordinate(location.coordinates.lat)
    lng = _coordinate(location.coordinates.lng)
    if lat is None or lng is None:
        return
    if -90 <= lat <= 90 and -180 <= lng <= 180:
        game.latitude = lat
        game.longitude = lng
    else:
        logger.warning("Dropping out-of-range coordinates for game %s: %s, %s", game.title, lat, lng)


def _validate_skill_level(value: str | None) -> None:
    if value and value not in SKILL_LEVELS:
        raise HTTPException(status_code=400, detail="Invalid skill level")


def create_game(session: Session, host: User, payload: GameCreate) -> Game:
    location = payload.location
    required = [
        payload.title,
        payload.sport,
        payload.description,
        location.address if location else None,
        payload.date,
        payload.start_time,
        payload.end_time,
        payload.max_players,
    ]
    if any(value in (None, "") for value in required):
        raise HTTPException(status_code=400, detail="Missing required fields")
    if payload.max_players < 2:
        raise HTTPException(status_code=400, detail="maxPlayers must be at least 2")
    if not is_valid_sport(payload.sport):
        raise HTTPException(status_code=400, detail="Invalid sport")
    _validate_skill_level(payload.skill_level)
    _validate_skill_level(payload.min_skill_level)

    game = Game(
        host_id=host.id,
        title=payload.title.strip(),
        sport=payload.sport,
        description=payload.description.strip(),
        address=location.address,
        date=parse_game_date(payload.date),
        start_time=payload.start_time,
        end_time=payload.end_time,
        max_players=payload.max_players,
        skill_level=payload.skill_level or "all",
        min_skill_level=payload.min_skill_level or None,
        host_whatsapp=payload.host_whatsapp or host.phone_number,
        status=GAME_UPCOMING,
    )
    if payload.image:
        game.image = payload.image
    _apply_location(game, location)
    session.add(game)
    return game


def update_game(session: Session, game: Game, payload: GameUpdate) -> Game:
    changes = payload.model_dump(exclude_unset=True)
    new_status = changes.pop("status", None)

    if "max_players" in changes and payload.max_players is not None:
        if payload.max_players < 2:
            raise HTTPException(status_code=400, detail="maxPlayers must be at least 2")
        if payload.max_players < player_count(session, game.id):
            raise HTTPException(
                status_code=400,
                detail="maxPlayers cannot be lower than the number of registered players",
            )
        game.max_players = payload.max_players
    if "sport" in changes and payload.sport is not None:
        if not is_valid_sport(payload.sport):
            raise HTTPException(status_code=400, detail="Invalid sport")
        game.sport = payload.sport
    if "skill_level" in changes and payload.skill_level:
        _validate_skill_level(payload.skill_level)
        game.skill_level = payload.skill_level
    if "min_skill_level" in changes:
        _validate_skill_level(payload.min_skill_level)
        game.min_skill_level = payload.min_skill_level or None
    for field in ("title", "description", "start_time", "end_time", "image", "host_whatsapp"):
        value = getattr(payload, field)
        if field in changes and value:
            setattr(game, field, value)
    if "date" in changes and payload.date:
        game.date = parse_game_date(payload.date)
    if "location" in changes and payload.location and payload.location.address:
        _apply_location(game, payload.location)

    if new_status and new_status != game.status:
        if new_status == GAME_CANCELLED:
            cancel_game(session, game)
            return game
        change_status(game, new_status)

    _touch(game)
    session.add(game)
    for player in game_players(session, game.id):
        notify(
            session,
            player.user_id,
            "game_updated",
            "Game Updated",
            f'The game "{game.title}" has been updated by the host.',
            game_id=game.id,
            related_user_id=game.host_id,
        )
    return game


def change_status(game: Game, new_status: str) -> None:
    if new_status == GAME_COMPLETED:
        raise HTTPException(
            status_code=400,
            detail="Games are completed by marking attendance for every participant",
        )
    if new_status not in ALLOWED_TRANSITIONS:
        raise HTTPException(status_code=400, detail="Invalid status")
    if new_status not in ALLOWED_TRANSITIONS[game.status]:
        raise HTTPException(
            status_code=400,
            detail=f"Cannot change status from {game.status} to {new_status}",
        )
    game.status = new_status


def cancel_game(session: Session, game: Game, *, by: str = "the host") -> None:
    if game.status not in OPEN_GAME_STATUSES:
        raise HTTPException(status_code=400, detail=f"Cannot cancel a game that is {game.status}")
    game.status = GAME_CANCELLED
    _touch(game)
    session.add(game)

    recipients = [player.user_id for player in game_players(session, game.id)]
    for request in game_join_requests(session, game.id):
        recipients.append(request.user_id)
        session.delete(request)
    for user_id in recipients:
        notify(
            session,
            user_id,
            "game_cancelled",
            "Game Cancelled",
            f'The game "{game.title}" has been cancelled by {by}.',
            game_id=game.id,
            related_user_id=game.host_id,
        )
    logger.info("Game %s cancelled", game.id)


def delete_game(session: Session, game: Game) -> None:
    """Remove a game with its roster, requests, attendance and chat."""
    for model in (GamePlayer, JoinRequest, Attendance, Message):
        rows = session.exec(select(model).where(model.game_id == game.id)).all()
        for row in rows:
            session.delete(row)
    session.delete(game)


def join_game(session: Session, game: Game, user: User, payload: JoinPayload) -> bool:
    """Register the user or queue a join request. Returns True when registered directly."""
    if game.status not in OPEN_GAME_STATUSES:
        raise HTTPException(status_code=400, detail="Cannot join a game that is not upcoming or ongoing")
    if game.host_id == user.id:
        raise HTTPException(status_code=400, detail="You are the host of this game")
    if find_player(session, game.id, user.id):
        raise HTTPException(status_code=400, detail="You are already registered for this game")
    if find_join_request(session, game.id, user.id):
        raise HTTPException(status_code=400, detail="You already have a pending join request")
    if player_count(session, game.id) >= game.max_players:
        raise HTTPException(status_code=400, detail="Game is full")

    details = {
        "game_id": game.id,
        "user_id": user.id,
        "name": payload.name or user.name,
        "age": payload.age,
        "skill_level": payload.skill_level,
        "image": payload.image or user.image,
        "whatsapp": payload.whatsapp or user.phone_number,
    }

    if payload.auto_approve:
        session.add(GamePlayer(**details))
        _touch(game)
        session.add(game)
        return True

    session.add(JoinRequest(**details))
    notify(
        session,
        game.host_id,
        "new_join_request",
        "New Join Request",
        f'{user.name} wants to join your game "{game.title}"',
        game_id=game.id,
        related_user_id=user.id,
    )
    notify(
        session,
        user.id,
        "join_request_sent",
        "Join Request Sent",
        f'Your request to join "{game.title}" has been sent. Waiting for host approval.',
        game_id=game.id,
        related_user_id=game.host_id,
    )
    return False


def _get_join_request(session: Session, game: Game, request_id: int) -> JoinRequest:
    request = session.get(JoinRequest, request_id)
    if not request or request.game_id != game.id:
        raise HTTPException(status_code=404, detail="Join request not found")
    return request


def accept_join_request(session: Session, game: Game, request_id: int) -> GamePlayer:
    request = _get_join_request(session, game, request_id)
    if game.status not in OPEN_GAME_STATUSES:
        raise HTTPException(status_code=400, detail="Cannot join a game that is not upcoming or ongoing")
    if player_count(session, game.id) >= game.max_players:
        raise HTTPException(status_code=400, detail="Game is full")

    player = GamePlayer(
        game_id=game.id,
        user_id=request.user_id,
        name=request.name,
        age=request.age,
        skill_level=request.skill_level,
        image=request.image,
        whatsapp=request.whatsapp,
    )
    session.add(player)
    session.delete(request)
    _touch(game)
    session.add(game)
    notify(
        session,
        request.user_id,
        "join_request_accepted",
        "Join Request Accepted",
        f'Your request to join "{game.title}" has been accepted. See you at the game!',
        game_id=game.id,
        related_user_id=game.host_id,
    )
    return player


def reject_join_request(session: Session, game: Game, request_id: int) -> None:
    request = _get_join_request(session, game, request_id)
    session.delete(request)
    _touch(game)
    session.add(game)
    notify(
        session,
        request.user_id,
        "join_request_rejected",
        "Join Request Rejected",
        f'Your request to join "{game.title}" has been rejected.',
        game_id=game.id,
        related_user_id=game.host_id,
    )


def _drop_attendance(session: Session, game_id: int, user_id: int) -> None:
    rows = session.exec(
        select(Attendance).where((Attendance.game_id == game_id) & (Attendance.user_id == user_id))
    ).all()
    for row in rows:
        session.delete(row)


def leave_game(session: Session, game: Game, user: User) -> str:
    """Take the user off the game. Returns "deleted", "withdrawn" or "left"."""
    if game.host_id == user.id:
        if player_count(session, game.id) > 0:
            raise HTTPException(
                status_code=400,
                detail=(
                    "Host cannot leave while there are registered players. "
                    "Please transfer host ownership to another player first."
                ),
            )
        delete_game(session, game)
        return "deleted"

    player = find_player(session, game.id, user.id)
    request = find_join_request(session, game.id, user.id)
    if not player:
        if request:
            session.delete(request)
            return "withdrawn"
        raise HTTPException(status_code=400, detail="You are not registered for this game")

    session.delete(player)
    if request:
        session.delete(request)
    _drop_attendance(session, game.id, user.id)
    _touch(game)
    session.add(game)
    notify(
        session,
        game.host_id,
        "player_left",
        "Player Left",
        f'{user.name} has left your game "{game.title}"',
        game_id=game.id,
        related_user_id=user.id,
    )
    return "left"


def remove_player(session: Session, game: Game, player_id: int | None) -> GamePlayer:
    if not player_id:
        raise HTTPException(status_code=400, detail="Player ID is required")
    if player_id == game.host_id:
        raise HTTPException(status_code=400, detail="Cannot remove the host. Transfer host ownership first.")
    player = find_player(session, game.id, player_id)
    if not player:
        raise HTTPException(status_code=404, detail="Player not found in this game")

    session.delete(player)
    _drop_attendance(session, game.id, player_id)
    _touch(game)
    session.add(game)
    notify(
        session,
        player_id,
        "player_left",
        "Removed from Game",
        f'You have been removed from "{game.title}" by the host.',
        game_id=game.id,
        related_user_id=game.host_id,
    )
    return player


def transfer_host(session: Session, game: Game, host: User, new_host_id: int | None) -> None:
    if not new_host_id:
        raise HTTPException(status_code=400, detail="New host ID is required")
    if new_host_id == host.id:
        raise HTTPException(status_code=400, detail="You are already the host of this game")
    new_host_player = find_player(session, game.id, new_host_id)
    if not new_host_player:
        raise HTTPException(status_code=400, detail="New host must be a registered player in the game")

    session.delete(new_host_player)
    session.add(
        GamePlayer(
            game_id=game.id,
            user_id=host.id,
            name=host.name,
            image=host.image,
            whatsapp=game.host_whatsapp or host.phone_number,
        )
    )
    game.host_id = new_host_id
    game.host_whatsapp = new_host_player.whatsapp
    _touch(game)
    session.add(game)
    notify(
        session,
        new_host_id,
        "host_assigned",
        "You are now the host!",
        f'{host.name} has transferred host ownership of "{game.title}" to you. You can now manage the game.',
        game_id=game.id,
        related_user_id=host.id,
    )
    logger.info("Host of game %s transferred from %s to %s", game.id, host.id, new_host_id)


def assign_teams(session: Session, game: Game, blue: list[int], red: list[int]) -> None:
    players = {player.user_id: player for player in game_players(session, game.id)}
    blue_ids = set(blue)
    red_ids = set(red)
    if blue_ids & red_ids:
        raise HTTPException(status_code=400, detail="A player cannot be on both teams")
    unknown = (blue_ids | red_ids) - set(players)
    if unknown:
        raise HTTPException(status_code=400, detail="All team members must be registered players")

    for user_id, player in players.items():
        if user_id in blue_ids:
            player.team = TEAM_BLUE
        elif user_id in red_ids:
            player.team = TEAM_RED
        else:
            player.team = None
        session.add(player)
    _touch(game)
    session.add(game)


def _sync_attendance(session: Session, game: Game) -> list[Attendance]:
    """Keep one attendance row per current participant, in participant order."""
    participants = participant_ids(session, game)
    rows = {row.user_id: row for row in game_attendance(session, game.id)}
    for user_id, row in list(rows.items()):
        if user_id not in participants:
            session.delete(row)
            del rows[user_id]
    for user_id in participants:
        if user_id not in rows:
            rows[user_id] = Attendance(game_id=game.id, user_id=user_id)
            session.add(rows[user_id])
    return [rows[user_id] for user_id in participants]


def mark_attendance(
    session: Session,
    game: Game,
    host: User,
    player_ids: list[int],
    mark_all: bool = False,
) -> list[int]:
    """Mark players present and complete the game once everyone is marked.

    Returns the ids that were newly marked.
    """
    if game.status == GAME_CANCELLED:
        raise HTTPException(status_code=400, detail="Cannot mark attendance for a cancelled game")

    rows = _sync_attendance(session, game)
    targets = set(player_ids)
    now = datetime.utcnow()
    newly_marked: list[int] = []
    for row in rows:
        if not mark_all and row.user_id not in targets:
            continue
        if not row.attended:
            newly_marked.append(row.user_id)
        row.attended = True
        row.marked_at = now
        row.marked_by = host.id
        session.add(row)

    for user_id in newly_marked:
        if user_id == host.id:
            continue
        notify(
            session,
            user_id,
            "game_attended",
            "Game Attendance Confirmed",
            f'Your attendance for "{game.title}" has been confirmed by the host. Enjoy your game!',
            game_id=game.id,
            related_user_id=host.id,
        )

    if rows and all(row.attended for row in rows) and game.status != GAME_COMPLETED:
        _complete_game(session, game, host, [row.user_id for row in rows])

    _touch(game)
    session.add(game)
    return newly_marked


def _complete_game(session: Session, game: Game, host: User, participants: list[int]) -> None:
    game.status = GAME_COMPLETED
    game.completed_at = datetime.utcnow()
    game.completed_by = host.id
    for user_id in participants:
        notify(
            session,
            user_id,
            "game_completed",
            "Game Completed",
            f'The game "{game.title}" has been completed! You can now rate other players.',
            game_id=game.id,
            related_user_id=host.id,
        )
        user = session.get(User, user_id)
        if not user:
            continue
        user.games_played = (user.games_played or 0) + 1
        session.add(user)
        session.add(ActivityEntry(user_id=user_id, game_id=game.id, sport=game.sport, date=game.date))
    logger.info("Game %s completed with %s participants", game.id, len(participants))


def rate_player(
    session: Session,
    game: Game,
    rater: User,
    player_id: int | None,
    rating: int | None,
    comment: str | None = None,
) -> PlayerRating:
    if game.status != GAME_COMPLETED:
        raise HTTPException(
            status_code=400,
            detail=f"Can only rate players in completed games. Current status: {game.status}",
        )
    participants = participant_ids(session, game)
    if rater.id not in participants:
        raise HTTPException(status_code=403, detail="You can only rate players in games you participated in")
    if not player_id or rating is None:
        raise HTTPException(status_code=400, detail="Missing required fields: playerId, rating")
    if rating < 1 or rating > 5:
        raise HTTPException(status_code=400, detail="Rating must be between 1 and 5")
    if player_id not in participants:
        raise HTTPException(status_code=404, detail="Player not found in this game")
    if player_id == rater.id:
        raise HTTPException(status_code=400, detail="You cannot rate yourself")

    existing = session.exec(
        select(PlayerRating).where(
            (PlayerRating.game_id == game.id)
            & (PlayerRating.rater_id == rater.id)
            & (PlayerRating.rated_id == player_id)
        )
    ).first()
    if existing:
        raise HTTPException(
            status_code=400,
            detail="You have already rated this player for this game. You can only rate each player once per game.",
        )
    rated = session.get(User, player_id)
    if not rated:
        raise HTTPException(status_code=404, detail="User not found")

    entry = PlayerRating(
        game_id=game.id,
        rater_id=rater.id,
        rated_id=player_id,
        rating=rating,
        comment=(comment or "").strip(),
    )
    session.add(entry)
    session.flush()

    ratings = session.exec(select(PlayerRating.rating).where(PlayerRating.rated_id == player_id)).all()
    rated.total_ratings = len(ratings)
    rated.average_rating = round(sum(ratings) / len(ratings), 2) if ratings else 0
    session.add(rated)
    return entry


def players_rated_by(session: Session, game_id: int, rater_id: int) -> list[int]:
    return session.exec(
        select(PlayerRating.rated_id).where(
            (PlayerRating.game_id == game_id) & (PlayerRating.rater_id == rater_id)
        )
    ).all()


def _player_payload(player: GamePlayer) -> dict[str, object]:
    return {
        "id": player.id,
        "userId": player.user_id,
        "name": player.name,
        "age": player.age,
        "skillLevel": player.skill_level,
        "image": player.image,
        "whatsApp": player.whatsapp,
        "joinedAt": player.joined_at,
    }


def _join_request_payload(request: JoinRequest) -> dict[str, object]:
    return {
        "id": request.id,
        "userId": request.user_id,
        "userName": request.name,
        "userAge": request.age,
        "userSkillLevel": request.skill_level,
        "userImage": request.image,
        "userWhatsApp": request.whatsapp,
        "requestDate": request.requested_at,
    }


def game_payload(session: Session, game: Game, *, detail: bool = False) -> dict[str, object]:
    """Serialize a game the way the API returns it; ``detail`` adds requests and attendance."""
    host = session.get(User, game.host_id)
    players = game_players(session, game.id)
    coordinates = None
    if game.latitude is not None and game.longitude is not None:
        coordinates = {"lat": game.latitude, "lng": game.longitude}
    payload: dict[str, object] = {
        "id": game.id,
        "hostId": game.host_id,
        "hostName": host.name if host else None,
        "hostImage": host.image if host else None,
        "title": game.title,
        "sport": game.sport,
        "description": game.description,
        "location": {
            "address": game.address,
            "city": game.city,
            "country": game.country,
            "coordinates": coordinates,
        },
        "date": game.date,
        "startTime": game.start_time,
        "endTime": game.end_time,
        "maxPlayers": game.max_players,
        "skillLevel": game.skill_level,
        "minSkillLevel": game.min_skill_level,
        "image": game.image,
        "status": game.status,
        "hostWhatsApp": game.host_whatsapp,
        "registeredPlayers": [_player_payload(player) for player in players],
        "teamBlue": [_player_payload(player) for player in players if player.team == TEAM_BLUE],
        "teamRed": [_player_payload(player) for player in players if player.team == TEAM_RED],
        "seatsLeft": game.max_players - len(players),
        "completedAt": game.completed_at,
        "completedBy": game.completed_by,
        "createdAt": game.created_at,
        "updatedAt": game.updated_at,
    }
    if detail:
        payload["joinRequests"] = [
            _join_request_payload(request) for request in game_join_requests(session, game.id)
        ]
        attendance = []
        for row in game_attendance(session, game.id):
            user = session.get(User, row.user_id)
            attendance.append(
                {
                    "userId": row.user_id,
                    "userName": user.name if user else None,
                    "userImage": user.image if user else None,
                    "attended": row.attended,
                    "markedAt": row.marked_at,
                    "markedBy": row.marked_by,
                }
            )
        payload["attendance"] = attendance
    return payload
