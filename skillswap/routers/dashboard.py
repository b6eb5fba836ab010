import logging
from datetime import datetime
from typing import Any, Dict

from fastapi import APIRouter, Depends
from fastapi.encoders import jsonable_encoder

from skillswap.core.config import settings
from skillswap.core.dependencies import require_roles
from skillswap.db.firebase_ops import get_firestore_ops_instance, FirestoreBaseModel
from skillswap.models.schemas import User
from skillswap.realtime.hub import dashboard_room, realtime_hub
from skillswap.services import analytics

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/dashboard", tags=["Dashboard"])


async def push_dashboard(user_id: str, dashboard_type: str, data: Dict[str, Any]) -> Dict[str, Any]:
    """Encode a dashboard payload and mirror it to the user's dashboard room."""
    payload = jsonable_encoder(data)
    delivered = await realtime_hub.emit(
        dashboard_room(user_id),
        "dashboard_data_update",
        {"userId": user_id, "type": dashboard_type, "data": payload},
    )
    logger.debug(f"{dashboard_type} pushed to {delivered} sockets for user {user_id}")
    return payload


@router.get("/client")
async def client_dashboard(current_user: User = Depends(require_roles("client"))):
    firestore_ops: FirestoreBaseModel = get_firestore_ops_instance()

    projects = firestore_ops.query(collection_name="projects", field="client_id", operator="==", value=current_user.id)
    project_ids = {p["id"] for p in projects}
    bids = [b for b in firestore_ops.get_all(collection_name="bids") if b.get("project_id") in project_ids]

    return await push_dashboard(current_user.id, "client_dashboard", analytics.client_dashboard(projects, bids))


@router.get("/freelancer")
async def freelancer_dashboard(current_user: User = Depends(require_roles("freelancer"))):
    firestore_ops: FirestoreBaseModel = get_firestore_ops_instance()

    projects = firestore_ops.query(
        collection_name="projects",
        field="assigned_freelancer_id",
        operator="==",
        value=current_user.id,
    )
    bids = firestore_ops.query(collection_name="bids", field="freelancer_id", operator="==", value=current_user.id)

    data = analytics.freelancer_dashboard(projects, bids)
    data["profile"] = firestore_ops.get(collection_name="freelancer_profiles", document_id=current_user.id)
    return await push_dashboard(current_user.id, "freelancer_dashboard", data)


@router.get("/admin")
async def admin_dashboard(current_user: User = Depends(require_roles("admin"))):
    firestore_ops: FirestoreBaseModel = get_firestore_ops_instance()

    data = analytics.admin_dashboard(
        users=firestore_ops.get_all(collection_name="users"),
        projects=firestore_ops.get_all(collection_name="projects"),
        freelancer_profiles=firestore_ops.get_all(collection_name="freelancer_profiles"),
        now=datetime.utcnow(),
        fee_rate=settings.PLATFORM_FEE_RATE,
    )
    return await push_dashboard(current_user.id, "admin_dashboard", data)
