import hashlib
import logging
import os
import re
from datetime import datetime, timedelta
from typing import List, Optional

from fastapi import APIRouter, HTTPException, Depends, File, Form, Query, UploadFile, status

from skillswap.core.config import settings
from skillswap.core.dependencies import get_current_user
from skillswap.db.firebase_ops import get_firestore_ops_instance, FirestoreBaseModel, generate_object_id, as_utc_naive
from skillswap.models.schemas import (
    Attachment,
    Conversation,
    ConversationCreate,
    ConversationView,
    Message,
    MessageCreate,
    MessagePage,
    User,
    is_object_id,
)
from skillswap.services.lookups import paginate, user_summary
from skillswap.services.notifications import notify

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/messages", tags=["Messaging"])

UNSAFE_FILENAME_CHARS = re.compile(r"[^A-Za-z0-9._-]")


def digest_metadata(metadata: Optional[str]) -> Optional[str]:
    """Message provenance is kept only as a SHA-256 digest of the client's blob."""
    if not metadata:
        return None
    return hashlib.sha256(metadata.encode("utf-8")).hexdigest()


def _get_conversation_for(firestore_ops: FirestoreBaseModel, conversation_id: str, current_user: User) -> Conversation:
    conversation = firestore_ops.get(collection_name="conversations", document_id=conversation_id, pydantic_model=Conversation)
    if not conversation:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Conversation not found")
    if current_user.id not in conversation.participants:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="You are not authorized to access this conversation")
    return conversation


def _view(firestore_ops: FirestoreBaseModel, conversation: Conversation, current_user: User) -> ConversationView:
    participants = [s for s in (user_summary(firestore_ops, uid, with_email=True) for uid in conversation.participants) if s]

    project = None
    if conversation.project_id:
        project_doc = firestore_ops.get(collection_name="projects", document_id=conversation.project_id)
        if project_doc:
            project = {"id": project_doc["id"], "title": project_doc.get("title")}

    last_message = None
    if conversation.last_message_id:
        message_doc = firestore_ops.get(collection_name="messages", document_id=conversation.last_message_id)
        if message_doc:
            last_message = {key: message_doc.get(key) for key in ("id", "content", "sender_id", "read_status", "created_at")}

    return ConversationView(
        id=conversation.id,
        participants=participants,
        other_participants=[p for p in participants if p["id"] != current_user.id],
        project=project,
        last_message=last_message,
        unread_count=conversation.unread_count.get(current_user.id, 0),
        updated_at=conversation.updated_at,
    )


def _mark_read(firestore_ops: FirestoreBaseModel, conversation: Conversation, reader_id: str) -> int:
    """Flip every unread message addressed to `reader_id` and zero their unread counter."""
    unread = firestore_ops.query_many(
        collection_name="messages",
        filters=[("conversation_id", "==", conversation.id), ("receiver_id", "==", reader_id), ("read_status", "==", False)],
    )
    now = datetime.utcnow()
    for message in unread:
        firestore_ops.update(collection_name="messages", document_id=message["id"], updates={"read_status": True, "read_at": now})

    if conversation.unread_count.get(reader_id):
        counts = {**conversation.unread_count, reader_id: 0}
        firestore_ops.update(collection_name="conversations", document_id=conversation.id, updates={"unread_count": counts})
    return len(unread)


def _store_message(
    firestore_ops: FirestoreBaseModel,
    conversation: Conversation,
    sender: User,
    content: str,
    metadata: Optional[str],
    attachments: List[Attachment],
) -> Message:
    receiver_id = next(uid for uid in conversation.participants if uid != sender.id)

    message_id = generate_object_id()
    message_record = {
        "conversation_id": conversation.id,
        "sender_id": sender.id,
        "receiver_id": receiver_id,
        "content": content,
        "attachments": [a.model_dump() for a in attachments],
        "metadata": digest_metadata(metadata),
        "read_status": False,
        "read_at": None,
    }
    if not firestore_ops.save(collection_name="messages", data_model=message_record, document_id=message_id):
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Could not send message")

    counts = {**conversation.unread_count, receiver_id: conversation.unread_count.get(receiver_id, 0) + 1}
    firestore_ops.update(
        collection_name="conversations",
        document_id=conversation.id,
        updates={"last_message_id": message_id, "unread_count": counts},
    )

    notify(
        firestore_ops,
        recipient_id=receiver_id,
        type="message",
        title="New Message with Attachments" if attachments else "New Message",
        message="You have received a new message with attachments" if attachments else "You have received a new message",
        link=f"/messages/conversations/{conversation.id}",
        related_id=message_id,
        related_model="Message",
    )
    return firestore_ops.get(collection_name="messages", document_id=message_id, pydantic_model=Message)


@router.get("/conversations")
async def list_conversations(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    current_user: User = Depends(get_current_user),
):
    firestore_ops: FirestoreBaseModel = get_firestore_ops_instance()

    conversations = firestore_ops.query(
        collection_name="conversations",
        field="participants",
        operator="array_contains",
        value=current_user.id,
        pydantic_model=Conversation,
    )
    conversations.sort(key=lambda c: as_utc_naive(c.updated_at) or datetime.min, reverse=True)

    result = paginate(conversations, page, limit, key="conversations")
    result["conversations"] = [_view(firestore_ops, c, current_user) for c in result["conversations"]]
    return result


@router.post("/conversations")
async def create_conversation(conversation_in: ConversationCreate, current_user: User = Depends(get_current_user)):
    """Return the existing conversation between the two users (for the same project), or start one."""
    firestore_ops: FirestoreBaseModel = get_firestore_ops_instance()

    participant_id = conversation_in.participant_id
    if not is_object_id(participant_id):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid user ID format")
    if participant_id == current_user.id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="You cannot start a conversation with yourself")
    if not firestore_ops.get(collection_name="users", document_id=participant_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"User not found. The user with ID {participant_id} does not exist.")

    project_id = conversation_in.project_id
    if project_id:
        if not is_object_id(project_id):
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid project ID format")
        if not firestore_ops.get(collection_name="projects", document_id=project_id):
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Project not found")

    mine = firestore_ops.query(
        collection_name="conversations",
        field="participants",
        operator="array_contains",
        value=current_user.id,
        pydantic_model=Conversation,
    )
    existing = next(
        (c for c in mine if participant_id in c.participants and c.project_id == project_id),
        None,
    )

    if existing:
        conversation = existing
        logger.debug(f"Reusing conversation {conversation.id}")
    else:
        conversation_id = generate_object_id()
        record = {
            "participants": [current_user.id, participant_id],
            "project_id": project_id,
            "last_message_id": None,
            "unread_count": {current_user.id: 0, participant_id: 0},
        }
        if not firestore_ops.save(collection_name="conversations", data_model=record, document_id=conversation_id):
            raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Could not create conversation")
        conversation = firestore_ops.get(collection_name="conversations", document_id=conversation_id, pydantic_model=Conversation)
        logger.info(f"Created conversation {conversation_id} between {current_user.id} and {participant_id}")

    return {
        "message": "Conversation created/retrieved successfully",
        "conversation": _view(firestore_ops, conversation, current_user),
    }


@router.get("/conversations/{conversation_id}")
async def get_conversation(conversation_id: str, current_user: User = Depends(get_current_user)):
    firestore_ops: FirestoreBaseModel = get_firestore_ops_instance()

    conversation = _get_conversation_for(firestore_ops, conversation_id, current_user)
    return {"conversation": _view(firestore_ops, conversation, current_user)}


@router.get("/conversations/{conversation_id}/messages", response_model=MessagePage)
async def list_messages(
    conversation_id: str,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=50, ge=1, le=200),
    current_user: User = Depends(get_current_user),
):
    """
    Page `page` counts back from the newest message; each page is returned oldest first.
    Fetching marks the caller's unread messages as read.
    """
    firestore_ops: FirestoreBaseModel = get_firestore_ops_instance()

    if not is_object_id(conversation_id):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid conversation ID format")
    conversation = _get_conversation_for(firestore_ops, conversation_id, current_user)

    messages = firestore_ops.query(
        collection_name="messages",
        field="conversation_id",
        operator="==",
        value=conversation_id,
        pydantic_model=Message,
    )
    messages.sort(key=lambda m: as_utc_naive(m.created_at) or datetime.min, reverse=True)
    result = paginate(messages, page, limit, key="messages")
    result["messages"] = list(reversed(result["messages"]))

    _mark_read(firestore_ops, conversation, current_user.id)
    return result


@router.post("/conversations/{conversation_id}/messages", status_code=status.HTTP_201_CREATED)
async def send_message(conversation_id: str, message_in: MessageCreate, current_user: User = Depends(get_current_user)):
    firestore_ops: FirestoreBaseModel = get_firestore_ops_instance()

    conversation = _get_conversation_for(firestore_ops, conversation_id, current_user)
    if not message_in.content.strip():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Message content is required")

    message = _store_message(firestore_ops, conversation, current_user, message_in.content, message_in.metadata, [])
    return {"message": "Message sent successfully", "data": message}


def _save_upload(upload: UploadFile) -> Attachment:
    target_dir = os.path.join(settings.UPLOAD_DIR, "messages")
    os.makedirs(target_dir, exist_ok=True)

    original_name = upload.filename or "attachment"
    stored_name = f"{generate_object_id()}_{UNSAFE_FILENAME_CHARS.sub('_', os.path.basename(original_name))}"
    with open(os.path.join(target_dir, stored_name), "wb") as out:
        out.write(upload.file.read())

    return Attachment(name=original_name, url=f"/uploads/messages/{stored_name}", type=upload.content_type)


@router.post("/conversations/{conversation_id}/messages/attachments", status_code=status.HTTP_201_CREATED)
async def send_message_with_attachments(
    conversation_id: str,
    files: List[UploadFile] = File(...),
    content: str = Form(default=""),
    metadata: Optional[str] = Form(default=None),
    current_user: User = Depends(get_current_user),
):
    firestore_ops: FirestoreBaseModel = get_firestore_ops_instance()

    conversation = _get_conversation_for(firestore_ops, conversation_id, current_user)
    if len(files) > settings.MAX_MESSAGE_ATTACHMENTS:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"You can attach at most {settings.MAX_MESSAGE_ATTACHMENTS} files per message",
        )

    attachments = [_save_upload(upload) for upload in files]
    message = _store_message(firestore_ops, conversation, current_user, content, metadata, attachments)
    return {"message": "Message with attachments sent successfully", "data": message}


@router.put("/conversations/{conversation_id}/read")
async def mark_conversation_read(conversation_id: str, current_user: User = Depends(get_current_user)):
    firestore_ops: FirestoreBaseModel = get_firestore_ops_instance()

    conversation = _get_conversation_for(firestore_ops, conversation_id, current_user)
    marked = _mark_read(firestore_ops, conversation, current_user.id)
    return {"message": "Messages marked as read", "marked": marked}


@router.get("/unread-count")
async def unread_count(current_user: User = Depends(get_current_user)):
    firestore_ops: FirestoreBaseModel = get_firestore_ops_instance()

    conversations = firestore_ops.query(
        collection_name="conversations",
        field="participants",
        operator="array_contains",
        value=current_user.id,
        pydantic_model=Conversation,
    )
    return {"unread_count": sum(c.unread_count.get(current_user.id, 0) for c in conversations)}


@router.delete("/{message_id}")
async def delete_message(message_id: str, current_user: User = Depends(get_current_user)):
    firestore_ops: FirestoreBaseModel = get_firestore_ops_instance()

    message = firestore_ops.get(collection_name="messages", document_id=message_id, pydantic_model=Message)
    if not message:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Message not found")
    if message.sender_id != current_user.id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="You are not authorized to delete this message")

    window = timedelta(minutes=settings.MESSAGE_DELETE_WINDOW_MINUTES)
    sent_at = as_utc_naive(message.created_at)
    if sent_at is None or sent_at < datetime.utcnow() - window:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Messages can only be deleted within one hour of sending")

    if not firestore_ops.delete(collection_name="messages", document_id=message_id):
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Could not delete message")

    conversation = firestore_ops.get(collection_name="conversations", document_id=message.conversation_id, pydantic_model=Conversation)
    if conversation and conversation.last_message_id == message_id:
        remaining = firestore_ops.query(collection_name="messages", field="conversation_id", operator="==", value=conversation.id)
        newest = max(remaining, key=lambda m: as_utc_naive(m.get("created_at")) or datetime.min, default=None)
        firestore_ops.update(
            collection_name="conversations",
            document_id=conversation.id,
            updates={"last_message_id": newest["id"] if newest else None},
        )

    return {"message": "Message deleted successfully"}
