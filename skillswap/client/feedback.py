import logging
from typing import List, Literal, NamedTuple

logger = logging.getLogger(__name__)

Level = Literal["info", "success", "error"]


class Notice(NamedTuple):
    level: Level
    message: str


class Notifier:
    """
    Collects user-facing notices (toasts/banners) raised by page actions.

    A UI shell drains `notices`; tests inspect it directly.
    """

    def __init__(self):
        self.notices: List[Notice] = []

    def _push(self, level: Level, message: str) -> None:
        self.notices.append(Notice(level, message))
        logger.debug(f"[{level}] {message}")

    def info(self, message: str) -> None:
        self._push("info", message)

    def success(self, message: str) -> None:
        self._push("success", message)

    def error(self, message: str) -> None:
        self._push("error", message)

    @property
    def errors(self) -> List[str]:
        return [n.message for n in self.notices if n.level == "error"]

    @property
    def last(self) -> Notice:
        return self.notices[-1]

    def clear(self) -> None:
        self.notices.clear()
