import logging
from typing import Any, Callable, List, Optional, Tuple, TypeVar

from skillswap.client.api import ApiClient
from skillswap.client.errors import SkillSwapClientError
from skillswap.client.feedback import Notifier
from skillswap.client.realtime import Handler, RealtimeManager, Subscription
from skillswap.client.session import Session

logger = logging.getLogger(__name__)

T = TypeVar("T")


class LoadToken:
    """Handed out per load; a load whose token is stale must not touch page state."""

    def __init__(self, generation: int):
        self.generation = generation


class Page:
    """
    Common plumbing for page objects: injected collaborators, load generations,
    realtime subscriptions released on close, and the catch-log-notify policy.
    """

    def __init__(
        self,
        session: Session,
        api: ApiClient,
        notifier: Notifier,
        realtime: Optional[RealtimeManager] = None,
    ):
        self.session = session
        self.api = api
        self.notifier = notifier
        self.realtime = realtime
        self.loading = False
        self.closed = False
        self.redirect_to: Optional[str] = None
        self._generation = 0
        self._subscriptions: List[Subscription] = []
        self._rooms: List[str] = []

    # --- Load generations ---

    def begin_load(self) -> LoadToken:
        self._generation += 1
        self.loading = True
        return LoadToken(self._generation)

    def is_current(self, token: LoadToken) -> bool:
        return not self.closed and token.generation == self._generation

    def finish_load(self, token: LoadToken) -> bool:
        """True if the load may apply its results."""
        if not self.is_current(token):
            logger.debug(f"{type(self).__name__}: discarding stale load {token.generation}")
            return False
        self.loading = False
        return True

    def fetch(self, *requests: Tuple[str, Optional[dict]]) -> Optional[List[Any]]:
        """
        GET each (path, params) under one load token. Returns the bodies, or None
        if the load failed or was superseded while in flight.
        """
        token = self.begin_load()
        try:
            results = [self.api.get(path, params) for path, params in requests]
        except SkillSwapClientError as e:
            if self.is_current(token):
                self.loading = False
                self.report(e, "Failed to load data")
            return None
        return results if self.finish_load(token) else None

    # --- Actions ---

    def report(self, error: SkillSwapClientError, fallback: str) -> None:
        logger.error(f"{type(self).__name__}: {error}")
        message = error.message or fallback
        self.notifier.error(message)

    def attempt(self, action: Callable[[], T], fallback: str) -> Optional[T]:
        """Run a mutation; on failure log, surface a notice and return None."""
        try:
            return action()
        except SkillSwapClientError as e:
            self.report(e, fallback)
            return None

    # --- Realtime ---

    def join_room(self, join_event: str, room: str) -> None:
        if self.realtime is None:
            return
        self.realtime.join(join_event, room)
        self._rooms.append(room)

    def on(self, event: str, handler: Handler) -> None:
        if self.realtime is None:
            return
        self._subscriptions.append(self.realtime.subscribe(event, handler))

    def emit(self, event: str, data: Any) -> None:
        if self.realtime is None:
            return
        try:
            self.realtime.emit(event, data)
        except SkillSwapClientError as e:
            logger.warning(f"{type(self).__name__}: could not emit {event}: {e}")

    def close(self) -> None:
        """Cancel in-flight loads and release realtime subscriptions."""
        self.closed = True
        self._generation += 1
        if self.realtime is not None:
            for subscription in self._subscriptions:
                self.realtime.unsubscribe(subscription)
            for room in self._rooms:
                self.realtime.leave(room)
        self._subscriptions.clear()
        self._rooms.clear()
