from datetime import datetime
from typing import Optional

from fastapi import APIRouter, HTTPException, Depends, Query, status

from skillswap.core.dependencies import get_current_user
from skillswap.db.firebase_ops import get_firestore_ops_instance, FirestoreBaseModel, as_utc_naive
from skillswap.models.schemas import Notification, User
from skillswap.services.lookups import paginate

router = APIRouter(prefix="/notifications", tags=["Notifications"])


def _get_own_notification_or_404(firestore_ops: FirestoreBaseModel, notification_id: str, current_user: User) -> Notification:
    notification = firestore_ops.get(collection_name="notifications", document_id=notification_id, pydantic_model=Notification)
    # Someone else's notification is reported as missing
    if not notification or notification.recipient_id != current_user.id:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Notification not found")
    return notification


@router.get("")
async def list_notifications(
    unread_only: bool = False,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    current_user: User = Depends(get_current_user),
):
    firestore_ops: FirestoreBaseModel = get_firestore_ops_instance()

    filters = [("recipient_id", "==", current_user.id)]
    if unread_only:
        filters.append(("read", "==", False))
    notifications = firestore_ops.query_many(collection_name="notifications", filters=filters, pydantic_model=Notification)
    notifications.sort(key=lambda n: as_utc_naive(n.created_at) or datetime.min, reverse=True)
    return paginate(notifications, page, limit, key="notifications")


@router.get("/unread-count")
async def unread_notification_count(current_user: User = Depends(get_current_user)):
    firestore_ops: FirestoreBaseModel = get_firestore_ops_instance()

    unread = firestore_ops.query_many(
        collection_name="notifications",
        filters=[("recipient_id", "==", current_user.id), ("read", "==", False)],
    )
    return {"unread_count": len(unread)}


@router.put("/read-all")
async def mark_all_read(current_user: User = Depends(get_current_user)):
    firestore_ops: FirestoreBaseModel = get_firestore_ops_instance()

    unread = firestore_ops.query_many(
        collection_name="notifications",
        filters=[("recipient_id", "==", current_user.id), ("read", "==", False)],
    )
    for notification in unread:
        firestore_ops.update(collection_name="notifications", document_id=notification["id"], updates={"read": True})
    return {"message": "All notifications marked as read", "updated": len(unread)}


@router.put("/{notification_id}/read", response_model=Notification)
async def mark_read(notification_id: str, current_user: User = Depends(get_current_user)):
    firestore_ops: FirestoreBaseModel = get_firestore_ops_instance()

    _get_own_notification_or_404(firestore_ops, notification_id, current_user)
    if not firestore_ops.update(collection_name="notifications", document_id=notification_id, updates={"read": True}):
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Could not update notification")
    return _get_own_notification_or_404(firestore_ops, notification_id, current_user)


@router.delete("/{notification_id}")
async def delete_notification(notification_id: str, current_user: User = Depends(get_current_user)):
    firestore_ops: FirestoreBaseModel = get_firestore_ops_instance()

    _get_own_notification_or_404(firestore_ops, notification_id, current_user)
    if not firestore_ops.delete(collection_name="notifications", document_id=notification_id):
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Could not delete notification")
    return {"message": "Notification deleted"}
