"""
Room-based realtime hub behind the /ws endpoint.

Frames in both directions are JSON objects: {"event": <name>, "data": <payload>}.
A socket joins rooms explicitly (join_project / join_chat / join_dashboard) and
relay events are fanned out to every member of the target room, sender included.
Chat rooms admit conversation participants only, and chat events are accepted only
from sockets already in the room.

Room names:
    <project_id>           project room (bid_update, work_submission, project_update)
    <conversation_id>      chat room (receive_message, messages_read)
    dashboard_<user_id>    a user's dashboard room (dashboard_data_update)
"""

import logging
from collections import defaultdict
from typing import Any, Dict, Optional, Set

from fastapi import WebSocket, WebSocketDisconnect

from skillswap.db.firebase_ops import FirestoreBaseModel, get_firestore_ops_instance

logger = logging.getLogger(__name__)


def dashboard_room(user_id: str) -> str:
    return f"dashboard_{user_id}"


def is_participant(conversation_id: str, user_id: Optional[str]) -> bool:
    firestore_ops: FirestoreBaseModel = get_firestore_ops_instance()

    conversation = firestore_ops.get(collection_name="conversations", document_id=conversation_id)
    return bool(conversation) and user_id in conversation.get("participants", [])


class RealtimeHub:
    """
    Tracks which sockets are in which rooms and relays events between them.
    """

    def __init__(self):
        self.rooms: Dict[str, Set[WebSocket]] = defaultdict(set)
        self.users: Dict[WebSocket, str] = {}

    async def connect(self, websocket: WebSocket, user_id: str) -> None:
        await websocket.accept()
        self.users[websocket] = user_id
        logger.info(f"Realtime connection opened for user {user_id}")

    def disconnect(self, websocket: WebSocket) -> None:
        user_id = self.users.pop(websocket, None)
        for room in list(self.rooms):
            self._discard(room, websocket)
        logger.info(f"Realtime connection closed for user {user_id}")

    def join(self, websocket: WebSocket, room: str) -> None:
        self.rooms[room].add(websocket)
        logger.debug(f"User {self.users.get(websocket)} joined room {room}")

    def leave(self, websocket: WebSocket, room: str) -> None:
        self._discard(room, websocket)
        logger.debug(f"User {self.users.get(websocket)} left room {room}")

    def _discard(self, room: str, websocket: WebSocket) -> None:
        members = self.rooms.get(room)
        if members is None:
            return
        members.discard(websocket)
        if not members:
            del self.rooms[room]

    def members(self, room: str) -> Set[WebSocket]:
        return set(self.rooms.get(room, ()))

    async def emit(self, room: str, event: str, data: Any) -> int:
        """
        Send an event to every socket in `room`. Sockets that fail to receive are dropped.
        Returns the number of successful deliveries.
        """
        delivered = 0
        for websocket in self.members(room):
            try:
                await websocket.send_json({"event": event, "data": data})
                delivered += 1
            except (WebSocketDisconnect, RuntimeError) as e:
                logger.warning(f"Dropping dead socket from room {room}: {e}")
                self.disconnect(websocket)
        return delivered

    async def send_error(self, websocket: WebSocket, message: str) -> None:
        await websocket.send_json({"event": "error", "data": {"message": message}})

    async def handle(self, websocket: WebSocket, frame: Dict[str, Any]) -> None:
        """Dispatch one client frame."""
        event = frame.get("event")
        data = frame.get("data")

        if event == "join_project":
            self.join(websocket, str(data))
        elif event == "join_chat":
            chat_id = str(data)
            if not is_participant(chat_id, self.users.get(websocket)):
                await self.send_error(websocket, "You are not a participant in this conversation")
                return
            self.join(websocket, chat_id)
        elif event == "join_dashboard":
            user_id = str(data)
            # Owner only
            if user_id != self.users.get(websocket):
                await self.send_error(websocket, "Cannot join another user's dashboard")
                return
            self.join(websocket, dashboard_room(user_id))
        elif event == "leave_room":
            self.leave(websocket, str(data))
        elif event == "new_bid":
            await self._relay(websocket, data, "projectId", "bid_update")
        elif event in ("work_submission", "project_update"):
            await self._relay(websocket, data, "projectId", event)
        elif event == "dashboard_update":
            user_id = _get(data, "userId")
            if user_id != self.users.get(websocket):
                await self.send_error(websocket, "Cannot update another user's dashboard")
                return
            await self.emit(dashboard_room(user_id), "dashboard_data_update", data)
        elif event == "send_message":
            chat_id = await self._joined_chat(websocket, data)
            if chat_id:
                await self.emit(chat_id, "receive_message", data)
        elif event == "mark_messages_read":
            chat_id = await self._joined_chat(websocket, data)
            if chat_id:
                await self.emit(chat_id, "messages_read", {"chatId": chat_id, "userId": self.users.get(websocket)})
        else:
            logger.warning(f"Unknown realtime event: {event!r}")
            await self.send_error(websocket, f"Unknown event: {event}")

    async def _joined_chat(self, websocket: WebSocket, data: Any) -> Optional[str]:
        """Chat traffic is only accepted from sockets already admitted to the chat room."""
        chat_id = _get(data, "chatId")
        if not chat_id:
            await self.send_error(websocket, "Missing chatId")
            return None
        if websocket not in self.rooms.get(chat_id, ()):
            await self.send_error(websocket, "Join the conversation before sending to it")
            return None
        return chat_id

    async def _relay(self, websocket: WebSocket, data: Any, room_key: str, event: str) -> None:
        room = _get(data, room_key)
        if not room:
            await self.send_error(websocket, f"Missing {room_key}")
            return
        await self.emit(room, event, data)


def _get(data: Any, key: str) -> Optional[str]:
    if isinstance(data, dict) and data.get(key):
        return str(data[key])
    return None


realtime_hub = RealtimeHub()
