import json
import logging
import platform
from datetime import date, datetime
from typing import Any, Dict, List, NamedTuple, Optional, Tuple

from skillswap.client.api import parse_timestamp, ref_id
from skillswap.client.errors import ApiError, SkillSwapClientError, ValidationError
from skillswap.client.pages.base import Page
from skillswap.core.config import settings
from skillswap.models.schemas import is_object_id

logger = logging.getLogger(__name__)

USER_AGENT = f"skillswap-client (Python {platform.python_version()}; {platform.system()})"
USER_NOT_FOUND = "User not found. The user you are trying to message may not exist in the system."

Message = Dict[str, Any]


class OutgoingFile(NamedTuple):
    name: str
    content: bytes
    content_type: str = "application/octet-stream"


def message_date(message: Message) -> Optional[date]:
    stamp = parse_timestamp(message.get("created_at"))
    return stamp.date() if stamp else None


def group_by_date(messages: List[Message]) -> List[Tuple[Optional[date], List[Message]]]:
    """Consecutive runs of messages sharing a calendar date, in the order given."""
    groups: List[Tuple[Optional[date], List[Message]]] = []
    for message in messages:
        day = message_date(message)
        if groups and groups[-1][0] == day:
            groups[-1][1].append(message)
        else:
            groups.append((day, [message]))
    return groups


class ConversationDetails(Page):
    """
    One two-party conversation: either an existing one opened by id, or a new
    one started with `recipient_id` (optionally about `project_id`).
    """

    def __init__(
        self,
        *args,
        conversation_id: Optional[str] = None,
        recipient_id: Optional[str] = None,
        project_id: Optional[str] = None,
        **kwargs,
    ):
        super().__init__(*args, **kwargs)
        self.conversation_id = conversation_id
        self.recipient_id = recipient_id
        self.project_id = project_id
        self.conversation: Optional[Dict[str, Any]] = None
        self.messages: List[Message] = []
        self.files: List[OutgoingFile] = []
        self.error: Optional[str] = None
        self.location: Optional[str] = None
        self.sending = False

    # --- Opening ---

    def open(self) -> bool:
        if self.conversation_id:
            opened = self._open_existing()
        elif self.recipient_id is not None:
            opened = self._start_new()
        else:
            self._fail(ValidationError("Missing or invalid recipient ID"))
            opened = False

        if opened:
            self.join_room("join_chat", self.conversation["id"])
            self.on("receive_message", self._on_receive_message)
            self.on("messages_read", self._on_messages_read)
            self.mark_read()
        return opened

    def _fail(self, error: SkillSwapClientError) -> None:
        self.error = error.message
        self.report(error, "Failed to load conversation")

    def _open_existing(self) -> bool:
        results = self.fetch(
            (f"/api/messages/conversations/{self.conversation_id}", None),
            (f"/api/messages/conversations/{self.conversation_id}/messages", None),
        )
        if results is None:
            self.error = "Failed to load conversation"
            return False
        conversation, page = results
        self.conversation = conversation["conversation"]
        self.messages = page.get("messages", [])
        self.location = f"/messages/conversations/{self.conversation['id']}"
        return True

    def _start_new(self) -> bool:
        token = self.begin_load()
        try:
            if not self.recipient_id or self.recipient_id in ("undefined", "null"):
                raise ValidationError("Missing or invalid recipient ID")
            if not is_object_id(self.recipient_id):
                raise ValidationError("Invalid recipient ID format")

            try:
                self.api.get(f"/api/users/exists/{self.recipient_id}")
            except ApiError as e:
                if e.status_code == 404:
                    raise ApiError(404, USER_NOT_FOUND) from e
                raise

            if self.project_id and not is_object_id(self.project_id):
                raise ValidationError("Invalid project ID format")

            created = self.api.post(
                "/api/messages/conversations",
                json={"participant_id": self.recipient_id, "project_id": self.project_id or None},
            )
        except SkillSwapClientError as e:
            if self.is_current(token):
                self.loading = False
                self._fail(e)
            return False

        if not self.finish_load(token):
            return False
        self.conversation = created["conversation"]
        self.conversation_id = self.conversation["id"]
        self.messages = []
        # The page stays where it is; only the address changes
        self.location = f"/messages/conversations/{self.conversation_id}"
        return True

    @property
    def grouped_messages(self) -> List[Tuple[Optional[date], List[Message]]]:
        return group_by_date(self.messages)

    # --- Sending ---

    def select_files(self, files: List[OutgoingFile]) -> bool:
        if len(files) > settings.MAX_MESSAGE_ATTACHMENTS:
            self.files = []
            self.notifier.error(f"You can only upload up to {settings.MAX_MESSAGE_ATTACHMENTS} files at once.")
            return False
        self.files = list(files)
        return True

    def _metadata(self, **extra: Any) -> str:
        return json.dumps({
            "timestamp": datetime.utcnow().isoformat() + "Z",
            "device": USER_AGENT,
            "client_id": self.session.user_id,
            **extra,
        })

    def send(self, content: str) -> Optional[Message]:
        if not self.conversation or (not content.strip() and not self.files):
            return None

        base = f"/api/messages/conversations/{self.conversation['id']}/messages"
        self.sending = True
        try:
            if self.files:
                response = self.attempt(
                    lambda: self.api.post(
                        f"{base}/attachments",
                        data={"content": content, "metadata": self._metadata(file_count=len(self.files))},
                        files=[("files", (f.name, f.content, f.content_type)) for f in self.files],
                    ),
                    "Failed to send message. Please try again.",
                )
            else:
                response = self.attempt(
                    lambda: self.api.post(base, json={"content": content, "metadata": self._metadata()}),
                    "Failed to send message. Please try again.",
                )
        finally:
            self.sending = False
        if response is None:
            return None

        message = response["data"]
        self.messages.append(message)
        self.files = []
        self.emit("send_message", {
            "chatId": self.conversation["id"],
            "messageId": message.get("id"),
            "senderId": self.session.user_id,
            "message": message,
        })
        return message

    # --- Read receipts ---

    def mark_read(self) -> bool:
        if not self.conversation:
            return False
        try:
            self.api.put(f"/api/messages/conversations/{self.conversation['id']}/read")
        except SkillSwapClientError as e:
            logger.error(f"Could not mark conversation {self.conversation['id']} read: {e}")
            return False

        self.emit("mark_messages_read", {"chatId": self.conversation["id"], "userId": self.session.user_id})
        me = self.session.user_id
        self.messages = [m if ref_id(m.get("sender_id")) == me else {**m, "read_status": True} for m in self.messages]
        return True

    def _on_receive_message(self, data: Any) -> None:
        if not isinstance(data, dict) or not self.conversation or data.get("chatId") != self.conversation["id"]:
            return
        if data.get("senderId") == self.session.user_id:
            return
        message = data.get("message") or {
            "id": data.get("messageId"),
            "sender_id": data.get("senderId"),
            "content": data.get("content", ""),
            "attachments": data.get("attachments", []),
            "created_at": data.get("timestamp"),
            "read_status": False,
        }
        self.messages.append(message)
        self.mark_read()

    def _on_messages_read(self, data: Any) -> None:
        if not isinstance(data, dict) or not self.conversation or data.get("chatId") != self.conversation["id"]:
            return
        if data.get("userId") == self.session.user_id:
            return
        me = self.session.user_id
        self.messages = [{**m, "read_status": True} if ref_id(m.get("sender_id")) == me else m for m in self.messages]
