"""
One realtime connection per session, shared by every open page.

Pages join rooms and subscribe to events through the RealtimeManager;
rooms are reference counted so that a room is only left once the last
page that joined it has closed.

Handlers mutate page state, so they only ever run on the thread that owns
the pages: either that thread calls pump(), or start() reads on a background
thread and the owner drains the queued frames with process_pending().
"""

import json
import logging
import queue
import threading
from collections import defaultdict
from typing import Any, Callable, Dict, List, Optional, Protocol, Tuple
from urllib.parse import urlencode

from websockets.exceptions import ConnectionClosed, InvalidHandshake
from websockets.sync.client import connect

from skillswap.client.errors import NetworkError
from skillswap.client.session import Session
from skillswap.core.config import settings

logger = logging.getLogger(__name__)

Handler = Callable[[Any], None]


class Transport(Protocol):
    def send(self, message: str) -> None: ...

    def recv(self, timeout: Optional[float] = None) -> str: ...

    def close(self) -> None: ...


def websocket_transport(url: str) -> Transport:
    try:
        return connect(url)
    except (OSError, InvalidHandshake) as e:
        raise NetworkError(f"Unable to open realtime connection: {e}") from e


class Subscription:
    def __init__(self, event: str, handler: Handler):
        self.event = event
        self.handler = handler


class RealtimeManager:
    def __init__(
        self,
        session: Session,
        url: Optional[str] = None,
        transport_factory: Callable[[str], Transport] = websocket_transport,
    ):
        self.session = session
        self.url = url or settings.WS_URL
        self.transport_factory = transport_factory
        self.transport: Optional[Transport] = None
        self.handlers: Dict[str, List[Subscription]] = defaultdict(list)
        self.room_refs: Dict[str, int] = defaultdict(int)
        self._lock = threading.Lock()
        self._reader: Optional[threading.Thread] = None
        self.pending: "queue.Queue[Dict[str, Any]]" = queue.Queue()

    @property
    def connected(self) -> bool:
        return self.transport is not None

    def connect(self) -> None:
        if self.transport is not None:
            return
        url = f"{self.url}?{urlencode({'token': self.session.token or ''})}"
        self.transport = self.transport_factory(url)
        logger.info(f"Realtime connected for user {self.session.user_id}")

    def close(self) -> None:
        if self.transport is None:
            return
        self.transport.close()
        self.transport = None
        self.room_refs.clear()
        logger.info("Realtime connection closed")

    def emit(self, event: str, data: Any) -> None:
        self.connect()
        try:
            with self._lock:
                self.transport.send(json.dumps({"event": event, "data": data}))
        except ConnectionClosed as e:
            self.transport = None
            raise NetworkError(f"Realtime connection lost: {e}") from e

    def join(self, join_event: str, room: str) -> None:
        """Join a room via `join_event` (join_project, join_chat, join_dashboard)."""
        self.room_refs[room] += 1
        if self.room_refs[room] == 1:
            self.emit(join_event, room)

    def leave(self, room: str) -> None:
        if self.room_refs.get(room, 0) == 0:
            return
        self.room_refs[room] -= 1
        if self.room_refs[room] == 0:
            del self.room_refs[room]
            if self.transport is not None:
                self.emit("leave_room", room)

    def subscribe(self, event: str, handler: Handler) -> Subscription:
        subscription = Subscription(event, handler)
        self.handlers[event].append(subscription)
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        handlers = self.handlers.get(subscription.event, [])
        if subscription in handlers:
            handlers.remove(subscription)

    def dispatch(self, frame: Dict[str, Any]) -> int:
        """Hand an incoming frame to every subscriber of its event."""
        event = frame.get("event")
        if event == "error":
            logger.warning(f"Realtime server error: {frame.get('data')}")
        handlers = list(self.handlers.get(event, []))
        for subscription in handlers:
            subscription.handler(frame.get("data"))
        return len(handlers)

    def _receive(self, timeout: Optional[float]) -> Tuple[bool, Optional[Dict[str, Any]]]:
        """(still connected, decoded frame or None)."""
        transport = self.transport
        if transport is None:
            return False, None
        try:
            raw = transport.recv(timeout=timeout)
        except TimeoutError:
            return True, None
        except ConnectionClosed:
            logger.info("Realtime connection closed by server")
            self.transport = None
            return False, None

        try:
            frame = json.loads(raw)
        except ValueError:
            logger.warning(f"Ignoring malformed realtime frame: {raw!r}")
            return True, None
        if not isinstance(frame, dict):
            logger.warning(f"Ignoring non-object realtime frame: {raw!r}")
            return True, None
        return True, frame

    def pump(self, timeout: Optional[float] = None) -> bool:
        """Read and dispatch one frame on the calling thread. Returns False once the connection is gone."""
        alive, frame = self._receive(timeout)
        if frame is not None:
            self.dispatch(frame)
        return alive

    def start(self) -> None:
        """
        Read frames on a background thread until the connection closes.
        Frames are queued, not dispatched; call process_pending() from the page thread.
        """
        self.connect()
        if self._reader and self._reader.is_alive():
            return

        def _run():
            while True:
                alive, frame = self._receive(timeout=1.0)
                if frame is not None:
                    self.pending.put(frame)
                if not alive:
                    break

        self._reader = threading.Thread(target=_run, name="skillswap-realtime", daemon=True)
        self._reader.start()

    def process_pending(self, limit: Optional[int] = None) -> int:
        """Dispatch frames queued by the reader thread. Returns how many were handled."""
        handled = 0
        while limit is None or handled < limit:
            try:
                frame = self.pending.get_nowait()
            except queue.Empty:
                break
            self.dispatch(frame)
            handled += 1
        return handled
