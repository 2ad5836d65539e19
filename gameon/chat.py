"""Per-game chat: message history, posting and the WebSocket relay."""

from __future__ import annotations

import logging
from collections import defaultdict
from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, WebSocket, WebSocketDisconnect
from fastapi.encoders import jsonable_encoder
from sqlmodel import Session, select

from .auth import SESSION_COOKIE_NAME, current_user, session_user
from .database import Game, Message, User, engine, get_session
from .games import get_game, parse_game_date
from .moderation import message_error
from .schemas import MessagePayload

logger = logging.getLogger(__name__)

router = APIRouter()

DEFAULT_HISTORY_LIMIT = 50
MAX_HISTORY_LIMIT = 100


def room_name(game_id: int) -> str:
    return f"game:{game_id}"


class ChatRelay:
    """Fan chat events out to the sockets that joined a game room."""

    def __init__(self) -> None:
        self.rooms: dict[str, set[WebSocket]] = defaultdict(set)

    def join(self, room: str, socket: WebSocket) -> None:
        self.rooms[room].add(socket)

    def leave(self, room: str, socket: WebSocket) -> None:
        members = self.rooms.get(room)
        if not members:
            return
        members.discard(socket)
        if not members:
            del self.rooms[room]

    def disconnect(self, socket: WebSocket) -> None:
        for room in list(self.rooms):
            self.leave(room, socket)

    async def broadcast(self, room: str, event: str, data: object) -> None:
        frame = {"event": event, "data": jsonable_encoder(data)}
        for socket in list(self.rooms.get(room, ())):
            try:
                await socket.send_json(frame)
            except Exception as exc:  # pragma: no cover - socket closed mid-send
                logger.warning("Dropping chat socket from %s: %s", room, exc)
                self.leave(room, socket)


relay = ChatRelay()


def message_payload(message: Message) -> dict[str, object]:
    return {
        "id": message.id,
        "gameId": message.game_id,
        "userId": message.user_id,
        "userName": message.user_name,
        "userImage": message.user_image,
        "message": message.message,
        "createdAt": message.created_at,
    }


def post_message(session: Session, game: Game, user: User, text: str | None) -> Message:
    error = message_error(text)
    if error:
        raise HTTPException(status_code=400, detail=error)
    message = Message(
        game_id=game.id,
        user_id=user.id,
        user_name=user.name,
        user_image=user.image or "",
        message=text.strip(),
    )
    session.add(message)
    session.commit()
    session.refresh(message)
    return message


def message_history(
    session: Session,
    game_id: int,
    *,
    limit: int = DEFAULT_HISTORY_LIMIT,
    before: datetime | None = None,
) -> list[Message]:
    """Return the newest ``limit`` messages (older than ``before``), oldest first."""
    statement = select(Message).where(Message.game_id == game_id)
    if before is not None:
        statement = statement.where(Message.created_at < before)
    statement = statement.order_by(Message.created_at.desc(), Message.id.desc()).limit(limit)
    return list(reversed(session.exec(statement).all()))


@router.get("/api/messages/{game_id}")
async def list_messages(
    game_id: int,
    limit: int = DEFAULT_HISTORY_LIMIT,
    before: str | None = None,
    session: Session = Depends(get_session),
    user: User = Depends(current_user),
):
    get_game(session, game_id)
    limit = max(1, min(limit, MAX_HISTORY_LIMIT))
    cutoff = parse_game_date(before) if before else None
    messages = message_history(session, game_id, limit=limit, before=cutoff)
    return {"success": True, "data": [message_payload(message) for message in messages]}


@router.post("/api/messages/{game_id}", status_code=201)
async def create_message(
    game_id: int,
    payload: MessagePayload,
    session: Session = Depends(get_session),
    user: User = Depends(current_user),
):
    game = get_game(session, game_id)
    message = post_message(session, game, user, payload.message)
    data = message_payload(message)
    await relay.broadcast(room_name(game_id), "new-message", data)
    return {"success": True, "data": data}


def _game_id(value: object) -> int | None:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


async def _handle_send(socket: WebSocket, user_id: int, data: object) -> None:
    if not isinstance(data, dict):
        await socket.send_json({"event": "message-error", "data": {"error": "Invalid message"}})
        return
    game_id = _game_id(data.get("gameId"))
    text = data.get("message")
    if not isinstance(text, str):
        await socket.send_json({"event": "message-error", "data": {"error": "Message is required"}})
        return
    with Session(engine) as session:
        user = session.get(User, user_id)
        if not user or user.is_banned:
            await socket.send_json({"event": "message-error", "data": {"error": "Unauthorized"}})
            return
        game = session.get(Game, game_id) if game_id is not None else None
        if not game:
            await socket.send_json({"event": "message-error", "data": {"error": "Game not found"}})
            return
        try:
            message = post_message(session, game, user, text)
        except HTTPException as exc:
            await socket.send_json({"event": "message-error", "data": {"error": exc.detail}})
            return
        except Exception:
            logger.exception("Failed to store chat message for game %s", game_id)
            session.rollback()
            await socket.send_json({"event": "message-error", "data": {"error": "Failed to send message"}})
            return
        payload = message_payload(message)
    await relay.broadcast(room_name(game_id), "new-message", payload)


@router.websocket("/api/socket")
async def chat_socket(socket: WebSocket):
    await socket.accept()

    with Session(engine) as session:
        user = session_user(session, socket.cookies.get(SESSION_COOKIE_NAME))
        user_id = user.id if user and not user.is_banned else None
    if user_id is None:
        await socket.send_json({"event": "error", "data": {"error": "Unauthorized"}})
        await socket.close(code=1008)
        return

    try:
        while True:
            try:
                frame = await socket.receive_json()
            except ValueError:
                await socket.send_json({"event": "error", "data": {"error": "Invalid JSON"}})
                continue
            if not isinstance(frame, dict):
                await socket.send_json({"event": "error", "data": {"error": "Unknown event"}})
                continue
            event = frame.get("event")
            data = frame.get("data")
            if event == "join-game":
                game_id = _game_id(data)
                if game_id is not None:
                    relay.join(room_name(game_id), socket)
                    await socket.send_json({"event": "joined-game", "data": game_id})
            elif event == "leave-game":
                game_id = _game_id(data)
                if game_id is not None:
                    relay.leave(room_name(game_id), socket)
            elif event == "send-message":
                await _handle_send(socket, user_id, data)
            else:
                await socket.send_json({"event": "error", "data": {"error": "Unknown event"}})
    except WebSocketDisconnect:
        pass
    finally:
        relay.disconnect(socket)
