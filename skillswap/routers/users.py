import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, HTTPException, Depends, Query, status
from fastapi.responses import JSONResponse

from skillswap.core.dependencies import get_current_user, require_roles
from skillswap.db.firebase_ops import get_firestore_ops_instance, FirestoreBaseModel, generate_object_id, as_utc_naive
from skillswap.models.schemas import (
    User,
    ClientProfile,
    FreelancerProfile,
    ProfileUpdate,
    VerificationDocument,
    VerificationDocumentCreate,
)
from skillswap.services.lookups import contains_text, paginate

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/users", tags=["Users"])

CLIENT_PROFILE_FIELDS = {"company", "website", "bio"}
FREELANCER_PROFILE_FIELDS = {"title", "skills", "bio", "hourly_rate", "work_experience", "availability"}
FREELANCER_SORT_KEYS = {"rating": "average_rating", "hourly_rate": "hourly_rate", "completed_projects": "completed_projects"}


def _profile_collection(role: str) -> Optional[str]:
    return {"client": "client_profiles", "freelancer": "freelancer_profiles"}.get(role)


@router.get("/exists/{user_id}")
async def check_user_exists(user_id: str):
    """Public existence check used before opening a conversation."""
    firestore_ops: FirestoreBaseModel = get_firestore_ops_instance()

    user = firestore_ops.get(collection_name="users", document_id=user_id)
    if not user:
        return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={"exists": False, "message": "User not found"})
    return {"exists": True, "user": {"id": user["id"], "name": user.get("name")}}


@router.get("/freelancers/search")
async def search_freelancers(
    keyword: Optional[str] = None,
    skills: Optional[str] = Query(default=None, description="Comma-separated skill names"),
    min_hourly_rate: Optional[float] = None,
    max_hourly_rate: Optional[float] = None,
    min_rating: Optional[float] = None,
    availability: Optional[str] = None,
    sort: str = "rating",
    order: str = "desc",
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
):
    firestore_ops: FirestoreBaseModel = get_firestore_ops_instance()

    users_by_id = {u["id"]: u for u in firestore_ops.query(collection_name="users", field="role", operator="==", value="freelancer")}
    wanted_skills = [s.strip().lower() for s in skills.split(",") if s.strip()] if skills else []

    results = []
    for profile in firestore_ops.get_all(collection_name="freelancer_profiles"):
        user = users_by_id.get(profile.get("user_id"))
        if not user or not contains_text(keyword, user.get("name")):
            continue
        profile_skills = [(s.get("name") or "").lower() for s in profile.get("skills") or []]
        if wanted_skills and not any(w in s for w in wanted_skills for s in profile_skills):
            continue
        rate = profile.get("hourly_rate")
        if min_hourly_rate is not None and (rate is None or rate < min_hourly_rate):
            continue
        if max_hourly_rate is not None and (rate is None or rate > max_hourly_rate):
            continue
        if min_rating is not None and (profile.get("average_rating") or 0) < min_rating:
            continue
        if availability and profile.get("availability") != availability:
            continue
        profile.pop("verification_documents", None)
        profile["user"] = {"id": user["id"], "name": user.get("name"), "email": user.get("email")}
        results.append(profile)

    sort_key = FREELANCER_SORT_KEYS.get(sort)
    if sort_key:
        results.sort(key=lambda p: p.get(sort_key) or 0, reverse=(order != "asc"))
    else:
        results.sort(key=lambda p: as_utc_naive(p.get("created_at")) or datetime.min, reverse=(order != "asc"))

    return paginate(results, page, limit, key="freelancers")


@router.get("/me/profile")
async def get_my_profile(current_user: User = Depends(get_current_user)):
    firestore_ops: FirestoreBaseModel = get_firestore_ops_instance()

    collection = _profile_collection(current_user.role)
    profile = firestore_ops.get(collection_name=collection, document_id=current_user.id) if collection else None
    return {"user": current_user, "profile": profile}


@router.put("/me/profile")
async def update_my_profile(profile_in: ProfileUpdate, current_user: User = Depends(get_current_user)):
    firestore_ops: FirestoreBaseModel = get_firestore_ops_instance()

    collection = _profile_collection(current_user.role)
    if not collection:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="This account has no editable profile")

    allowed = CLIENT_PROFILE_FIELDS if current_user.role == "client" else FREELANCER_PROFILE_FIELDS
    updates = {k: v for k, v in profile_in.model_dump(exclude_unset=True).items() if k in allowed}
    if not updates:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No profile fields to update")

    # save() merges, so a missing profile document is created on first edit
    if not firestore_ops.save(collection_name=collection, data_model={"user_id": current_user.id, **updates}, document_id=current_user.id):
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Could not update profile")

    model = ClientProfile if current_user.role == "client" else FreelancerProfile
    return firestore_ops.get(collection_name=collection, document_id=current_user.id, pydantic_model=model)


@router.post("/me/verification-documents", response_model=VerificationDocument, status_code=status.HTTP_201_CREATED)
async def upload_verification_document(
    document_in: VerificationDocumentCreate,
    current_user: User = Depends(require_roles("freelancer")),
):
    firestore_ops: FirestoreBaseModel = get_firestore_ops_instance()

    profile = firestore_ops.get(collection_name="freelancer_profiles", document_id=current_user.id)
    if not profile:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Freelancer profile not found")

    document = VerificationDocument(
        id=generate_object_id(),
        document_type=document_in.document_type,
        document_url=document_in.document_url,
        uploaded_at=datetime.utcnow(),
    )
    documents = (profile.get("verification_documents") or []) + [document.model_dump()]

    # A fresh document puts the freelancer back in the review queue
    if not firestore_ops.update(
        collection_name="freelancer_profiles",
        document_id=current_user.id,
        updates={"verification_documents": documents, "verification_status": "pending"},
    ):
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Could not store document")

    logger.info(f"Freelancer {current_user.id} uploaded a {document.document_type} document")
    return document


@router.get("/{user_id}")
async def get_user(user_id: str, current_user: User = Depends(get_current_user)):
    firestore_ops: FirestoreBaseModel = get_firestore_ops_instance()

    user = firestore_ops.get(collection_name="users", document_id=user_id, pydantic_model=User)
    if not user:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")

    profile = None
    collection = _profile_collection(user.role)
    if collection:
        profile = firestore_ops.get(collection_name=collection, document_id=user.id)
        if profile:
            profile.pop("verification_documents", None)
    return {"user": user, "profile": profile}
