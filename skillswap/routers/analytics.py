from datetime import datetime, timedelta
from typing import Optional, Tuple

from fastapi import APIRouter, HTTPException, Depends, status

from skillswap.core.config import settings
from skillswap.core.dependencies import require_roles
from skillswap.db.firebase_ops import get_firestore_ops_instance, FirestoreBaseModel, as_utc_naive
from skillswap.models.schemas import User
from skillswap.services import analytics

router = APIRouter(prefix="/analytics", tags=["Analytics"])

DEFAULT_RANGE_DAYS = 30


def parse_date_range(start_date: Optional[str], end_date: Optional[str], now: datetime) -> Tuple[datetime, datetime]:
    """ISO dates from the query string; defaults to the last 30 days."""
    try:
        end = as_utc_naive(datetime.fromisoformat(end_date)) if end_date else now
        start = as_utc_naive(datetime.fromisoformat(start_date)) if start_date else end - timedelta(days=DEFAULT_RANGE_DAYS)
    except ValueError:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid date format")
    if start > end:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="start_date must be before end_date")
    return start, end


@router.get("/client")
async def client_analytics(
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
    current_user: User = Depends(require_roles("client")),
):
    firestore_ops: FirestoreBaseModel = get_firestore_ops_instance()

    now = datetime.utcnow()
    start, end = parse_date_range(start_date, end_date, now)
    projects = firestore_ops.query(collection_name="projects", field="client_id", operator="==", value=current_user.id)
    return analytics.client_analytics(projects, start, end, now)


@router.get("/freelancer")
async def freelancer_analytics(
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
    current_user: User = Depends(require_roles("freelancer")),
):
    firestore_ops: FirestoreBaseModel = get_firestore_ops_instance()

    now = datetime.utcnow()
    start, end = parse_date_range(start_date, end_date, now)
    projects = firestore_ops.query(
        collection_name="projects",
        field="assigned_freelancer_id",
        operator="==",
        value=current_user.id,
    )
    bids = firestore_ops.query(collection_name="bids", field="freelancer_id", operator="==", value=current_user.id)
    profile = firestore_ops.get(collection_name="freelancer_profiles", document_id=current_user.id) or {}
    return analytics.freelancer_analytics(projects, analytics.in_range(bids, start, end), profile, start, end, now)


@router.get("/admin")
async def admin_analytics(current_user: User = Depends(require_roles("admin"))):
    firestore_ops: FirestoreBaseModel = get_firestore_ops_instance()

    return analytics.admin_analytics(
        users=firestore_ops.get_all(collection_name="users"),
        projects=firestore_ops.get_all(collection_name="projects"),
        now=datetime.utcnow(),
        fee_rate=settings.PLATFORM_FEE_RATE,
    )
