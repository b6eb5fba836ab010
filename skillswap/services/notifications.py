import logging
from typing import Optional

from skillswap.db.firebase_ops import FirestoreBaseModel
from skillswap.models.schemas import Notification

logger = logging.getLogger(__name__)


def notify(
    firestore_ops: FirestoreBaseModel,
    recipient_id: str,
    type: str,
    title: str,
    message: str,
    link: Optional[str] = None,
    related_id: Optional[str] = None,
    related_model: Optional[str] = None,
) -> Optional[str]:
    """
    Store an in-app notification for `recipient_id`.

    A failed write is logged; the triggering action still succeeds.
    """
    record = {
        "recipient_id": recipient_id,
        "type": type,
        "title": title,
        "message": message,
        "link": link,
        "related_id": related_id,
        "related_model": related_model,
        "read": False,
    }
    # Validate the shape before it reaches Firestore
    Notification(id="pending", **record)

    notification_id = firestore_ops.save(collection_name="notifications", data_model=record)
    if not notification_id:
        logger.error(f"Could not store '{type}' notification for user {recipient_id}")
    return notification_id
