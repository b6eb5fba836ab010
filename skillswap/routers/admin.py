import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, HTTPException, Depends, Query, status

from skillswap.core.dependencies import require_roles
from skillswap.core.security import get_password_hash
from skillswap.db.firebase_ops import get_firestore_ops_instance, FirestoreBaseModel, generate_object_id, as_utc_naive
from skillswap.models.schemas import (
    BulkVerify,
    DocumentVerify,
    FreelancerReject,
    FreelancerVerify,
    FreelancerWithUser,
    Project,
    ProjectStatusUpdate,
    User,
    UserCreate,
    UserStatusUpdate,
    UserUpdate,
)
from skillswap.routers.projects import delete_project_cascade, get_project_or_404
from skillswap.services.analytics import has_pending_documents, most_recent
from skillswap.services.lookups import contains_text, paginate, user_summary
from skillswap.services.notifications import notify

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["Admin"], dependencies=[Depends(require_roles("admin"))])

VERIFY_ACTIONS = {"approve": "approved", "reject": "rejected"}
PROFILE_COLLECTIONS = {"client": "client_profiles", "freelancer": "freelancer_profiles"}


def _with_user(firestore_ops: FirestoreBaseModel, profile: Dict[str, Any]) -> FreelancerWithUser:
    return FreelancerWithUser(**profile, user=user_summary(firestore_ops, profile.get("user_id"), with_email=True))


def _get_freelancer_profile_or_404(firestore_ops: FirestoreBaseModel, freelancer_id: str) -> Dict[str, Any]:
    profile = firestore_ops.get(collection_name="freelancer_profiles", document_id=freelancer_id)
    if not profile:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Freelancer not found")
    return profile


def _set_document_status(documents: List[Dict[str, Any]], document_ids: Optional[List[str]], new_status: str) -> List[Dict[str, Any]]:
    """Mark the listed documents (or, with no list, every pending one) with `new_status`."""
    for document in documents:
        if (document_ids and document.get("id") in document_ids) or (not document_ids and document.get("status") == "pending"):
            document["status"] = new_status
    return documents


# --- Freelancer verification ---

@router.get("/freelancers/pending", response_model=List[FreelancerWithUser])
async def list_pending_freelancers():
    firestore_ops: FirestoreBaseModel = get_firestore_ops_instance()

    profiles = [p for p in firestore_ops.get_all(collection_name="freelancer_profiles") if has_pending_documents(p)]
    return [_with_user(firestore_ops, p) for p in most_recent(profiles, limit=None)]


@router.get("/freelancers/verification", response_model=List[FreelancerWithUser])
async def list_freelancers_for_verification(verification_status: Optional[str] = Query(default=None, alias="status")):
    firestore_ops: FirestoreBaseModel = get_firestore_ops_instance()

    if verification_status and verification_status != "all":
        profiles = firestore_ops.query(
            collection_name="freelancer_profiles",
            field="verification_status",
            operator="==",
            value=verification_status,
        )
    else:
        profiles = firestore_ops.get_all(collection_name="freelancer_profiles")
    return [_with_user(firestore_ops, p) for p in most_recent(profiles, limit=50)]


@router.put("/freelancers/bulk-verify")
async def bulk_verify_freelancers(bulk_in: BulkVerify):
    firestore_ops: FirestoreBaseModel = get_firestore_ops_instance()

    if not bulk_in.freelancer_ids:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No freelancer IDs provided")
    new_status = VERIFY_ACTIONS.get(bulk_in.action or "")
    if not new_status:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail='Invalid action. Must be "approve" or "reject"')

    updated = 0
    for freelancer_id in bulk_in.freelancer_ids:
        profile = firestore_ops.get(collection_name="freelancer_profiles", document_id=freelancer_id)
        if not profile:
            logger.warning(f"Bulk verify skipped unknown freelancer {freelancer_id}")
            continue
        if not firestore_ops.update(
            collection_name="freelancer_profiles",
            document_id=freelancer_id,
            updates={"verification_status": new_status},
        ):
            raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Could not update verification status")
        updated += 1
        notify(
            firestore_ops,
            recipient_id=freelancer_id,
            type="verification",
            title="Verification Status Update",
            message=f"Your account verification has been {new_status}",
            link="/freelancer/profile",
        )

    logger.info(f"Bulk {bulk_in.action} applied to {updated} freelancers")
    return {"message": f"{updated} freelancers {new_status} successfully", "updated": updated}


@router.get("/freelancers/{freelancer_id}", response_model=FreelancerWithUser)
async def get_freelancer(freelancer_id: str):
    firestore_ops: FirestoreBaseModel = get_firestore_ops_instance()
    return _with_user(firestore_ops, _get_freelancer_profile_or_404(firestore_ops, freelancer_id))


@router.put("/freelancers/{freelancer_id}/verify")
async def verify_freelancer(freelancer_id: str, verify_in: FreelancerVerify):
    """
    Set a freelancer's verification status; `action` approve/reject, anything else resets to pending.
    The listed documents (or all pending ones) follow the decision.
    """
    firestore_ops: FirestoreBaseModel = get_firestore_ops_instance()

    profile = _get_freelancer_profile_or_404(firestore_ops, freelancer_id)
    if verify_in.action is None:
        new_status = "approved"
    else:
        new_status = VERIFY_ACTIONS.get(verify_in.action, "pending")

    updates: Dict[str, Any] = {"verification_status": new_status}
    if verify_in.verification_level:
        updates["verification_level"] = verify_in.verification_level
    if verify_in.verification_notes is not None:
        updates["verification_notes"] = verify_in.verification_notes
    if new_status != "pending":
        updates["verification_documents"] = _set_document_status(
            profile.get("verification_documents") or [],
            verify_in.document_ids,
            "approved" if new_status == "approved" else "rejected",
        )

    if not firestore_ops.update(collection_name="freelancer_profiles", document_id=freelancer_id, updates=updates):
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Could not update verification status")

    notify(
        firestore_ops,
        recipient_id=freelancer_id,
        type="verification",
        title="Verification Status Update",
        message=f"Your account verification status is now {new_status}",
        link="/freelancer/profile",
    )
    logger.info(f"Freelancer {freelancer_id} verification set to {new_status}")

    freelancer = _with_user(firestore_ops, _get_freelancer_profile_or_404(firestore_ops, freelancer_id))
    return {"message": f"Freelancer verification status updated to {new_status}", "freelancer": freelancer}


@router.put("/freelancers/{freelancer_id}/reject")
async def reject_freelancer(freelancer_id: str, reject_in: FreelancerReject):
    firestore_ops: FirestoreBaseModel = get_firestore_ops_instance()

    profile = _get_freelancer_profile_or_404(firestore_ops, freelancer_id)
    updates = {
        "verification_status": "rejected",
        "verification_documents": _set_document_status(
            profile.get("verification_documents") or [], reject_in.document_ids, "rejected"
        ),
    }
    if reject_in.reason:
        updates["verification_notes"] = reject_in.reason

    if not firestore_ops.update(collection_name="freelancer_profiles", document_id=freelancer_id, updates=updates):
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Could not reject freelancer")

    notify(
        firestore_ops,
        recipient_id=freelancer_id,
        type="verification",
        title="Verification Rejected",
        message=f"Your verification was rejected{': ' + reject_in.reason if reject_in.reason else ''}",
        link="/freelancer/profile",
    )
    freelancer = _with_user(firestore_ops, _get_freelancer_profile_or_404(firestore_ops, freelancer_id))
    return {"message": "Freelancer verification rejected", "freelancer": freelancer}


@router.put("/freelancers/{freelancer_id}/documents/{document_id}")
async def verify_document(freelancer_id: str, document_id: str, document_in: DocumentVerify):
    firestore_ops: FirestoreBaseModel = get_firestore_ops_instance()

    profile = _get_freelancer_profile_or_404(firestore_ops, freelancer_id)
    documents = profile.get("verification_documents") or []
    document = next((d for d in documents if d.get("id") == document_id), None)
    if document is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Document not found")

    document["status"] = document_in.status
    if document_in.notes is not None:
        document["notes"] = document_in.notes

    if not firestore_ops.update(collection_name="freelancer_profiles", document_id=freelancer_id, updates={"verification_documents": documents}):
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Could not update document")

    notify(
        firestore_ops,
        recipient_id=freelancer_id,
        type="verification",
        title="Document Verification Update",
        message=f"Your {document.get('document_type', 'verification')} document has been {document_in.status}",
        link="/freelancer/profile",
    )
    return {"message": "Document verification updated", "document": document}


@router.get("/documents/{user_id}")
async def get_verification_documents(user_id: str):
    firestore_ops: FirestoreBaseModel = get_firestore_ops_instance()

    profile = _get_freelancer_profile_or_404(firestore_ops, user_id)
    return {
        "user": user_summary(firestore_ops, user_id, with_email=True),
        "verification_status": profile.get("verification_status"),
        "documents": profile.get("verification_documents") or [],
    }


# --- Users ---

def _get_user_or_404(firestore_ops: FirestoreBaseModel, user_id: str) -> User:
    user = firestore_ops.get(collection_name="users", document_id=user_id, pydantic_model=User)
    if not user:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    return user


@router.get("/users")
async def list_users(
    role: Optional[str] = None,
    search: Optional[str] = None,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
):
    firestore_ops: FirestoreBaseModel = get_firestore_ops_instance()

    if role:
        users = firestore_ops.query(collection_name="users", field="role", operator="==", value=role, pydantic_model=User)
    else:
        users = firestore_ops.get_all(collection_name="users", pydantic_model=User)
    users = [u for u in users if contains_text(search, u.name, u.email)]
    users.sort(key=lambda u: as_utc_naive(u.created_at) or datetime.min, reverse=True)
    return paginate(users, page, limit, key="users")


@router.post("/users", response_model=User, status_code=status.HTTP_201_CREATED)
async def create_user(user_in: UserCreate):
    """Admin-created accounts start verified; freelancers start approved."""
    firestore_ops: FirestoreBaseModel = get_firestore_ops_instance()

    if firestore_ops.query(collection_name="users", field="email", operator="==", value=user_in.email):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="User with this email already exists")

    user_id = generate_object_id()
    user_record = user_in.model_dump(exclude={"password"})
    user_record.update({
        "hashed_password": get_password_hash(user_in.password),
        "is_verified": True,
        "account_status": "active",
        "is_active": True,
    })
    if not firestore_ops.save(collection_name="users", data_model=user_record, document_id=user_id):
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Could not create user")

    collection = PROFILE_COLLECTIONS.get(user_in.role)
    if collection:
        profile_record: Dict[str, Any] = {"user_id": user_id}
        if user_in.role == "freelancer":
            profile_record["verification_status"] = "approved"
        firestore_ops.save(collection_name=collection, data_model=profile_record, document_id=user_id)

    notify(
        firestore_ops,
        recipient_id=user_id,
        type="system",
        title="Welcome to SkillSwap",
        message="An administrator has created your account. Welcome aboard!",
    )
    logger.info(f"Admin created {user_in.role} account {user_id}")
    return _get_user_or_404(firestore_ops, user_id)


@router.get("/users/{user_id}")
async def get_user(user_id: str):
    firestore_ops: FirestoreBaseModel = get_firestore_ops_instance()

    user = _get_user_or_404(firestore_ops, user_id)
    collection = PROFILE_COLLECTIONS.get(user.role)
    profile = firestore_ops.get(collection_name=collection, document_id=user_id) if collection else None
    return {"user": user, "profile": profile}


@router.put("/users/{user_id}")
async def update_user(user_id: str, user_in: UserUpdate):
    firestore_ops: FirestoreBaseModel = get_firestore_ops_instance()

    user = _get_user_or_404(firestore_ops, user_id)
    changes = user_in.model_dump(exclude_unset=True)
    if not changes:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No fields to update")

    updates: Dict[str, Any] = {}
    if "name" in changes:
        updates["name"] = changes["name"]
    if "phone" in changes:
        updates["phone"] = changes["phone"]
    if "country" in changes:
        updates["address"] = {**(user.address.model_dump() if user.address else {}), "country": changes["country"]}
    if changes.get("status"):
        if user.role == "admin" and changes["status"] != "active":
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Cannot deactivate admin accounts")
        updates["account_status"] = changes["status"]

    if not firestore_ops.update(collection_name="users", document_id=user_id, updates=updates):
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Could not update user")

    notify(
        firestore_ops,
        recipient_id=user_id,
        type="system",
        title="Account Updated",
        message="Your account details have been updated by an administrator",
    )
    return {"message": "User updated successfully", "user": _get_user_or_404(firestore_ops, user_id)}


@router.put("/users/{user_id}/status")
async def update_user_status(user_id: str, status_in: UserStatusUpdate):
    firestore_ops: FirestoreBaseModel = get_firestore_ops_instance()

    user = _get_user_or_404(firestore_ops, user_id)
    if user.role == "admin" and not status_in.is_active:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Cannot deactivate admin accounts")

    if not firestore_ops.update(collection_name="users", document_id=user_id, updates={"is_active": status_in.is_active}):
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Could not update user status")

    state = "activated" if status_in.is_active else "deactivated"
    logger.info(f"User {user_id} {state}")
    return {"message": f"User {state} successfully", "user": _get_user_or_404(firestore_ops, user_id)}


@router.delete("/users/{user_id}")
async def delete_user(user_id: str):
    firestore_ops: FirestoreBaseModel = get_firestore_ops_instance()

    user = _get_user_or_404(firestore_ops, user_id)
    if user.role == "admin":
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Cannot delete admin accounts")

    collection = PROFILE_COLLECTIONS.get(user.role)
    if collection:
        firestore_ops.delete(collection_name=collection, document_id=user_id)
    for notification in firestore_ops.query(collection_name="notifications", field="recipient_id", operator="==", value=user_id):
        firestore_ops.delete(collection_name="notifications", document_id=notification["id"])

    if not firestore_ops.delete(collection_name="users", document_id=user_id):
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Could not delete user")
    logger.info(f"Admin deleted user {user_id}")
    return {"message": "User deleted successfully"}


# --- Projects ---

@router.get("/projects")
async def list_projects(
    project_status: Optional[str] = Query(default=None, alias="status"),
    search: Optional[str] = None,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
):
    firestore_ops: FirestoreBaseModel = get_firestore_ops_instance()

    if project_status and project_status != "all":
        projects = firestore_ops.query(collection_name="projects", field="status", operator="==", value=project_status)
    else:
        projects = firestore_ops.get_all(collection_name="projects")
    projects = [p for p in projects if contains_text(search, p.get("title"), p.get("description"))]

    result = paginate(most_recent(projects, limit=None), page, limit, key="projects")
    result["projects"] = [{**p, "client": user_summary(firestore_ops, p.get("client_id"))} for p in result["projects"]]
    return result


@router.get("/projects/{project_id}")
async def get_project(project_id: str):
    firestore_ops: FirestoreBaseModel = get_firestore_ops_instance()

    project = get_project_or_404(firestore_ops, project_id)
    bids = firestore_ops.query(collection_name="bids", field="project_id", operator="==", value=project_id)
    return {
        **project.model_dump(),
        "client": user_summary(firestore_ops, project.client_id, with_email=True),
        "assigned_freelancer": user_summary(firestore_ops, project.assigned_freelancer_id, with_email=True),
        "bids": bids,
    }


def _notify_project_parties(firestore_ops: FirestoreBaseModel, project: Project, title: str, message: str, link: Optional[str]) -> None:
    for recipient_id in filter(None, (project.client_id, project.assigned_freelancer_id)):
        notify(
            firestore_ops,
            recipient_id=recipient_id,
            type="project",
            title=title,
            message=message,
            link=link,
            related_id=project.id,
            related_model="Project",
        )


@router.put("/projects/{project_id}/status", response_model=Project)
async def update_project_status(project_id: str, status_in: ProjectStatusUpdate):
    firestore_ops: FirestoreBaseModel = get_firestore_ops_instance()

    project = get_project_or_404(firestore_ops, project_id)
    if not firestore_ops.update(collection_name="projects", document_id=project_id, updates={"status": status_in.status}):
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Could not update project status")

    message = f'Project "{project.title}" status has been changed to {status_in.status} by an administrator'
    if status_in.reason:
        message += f". Reason: {status_in.reason}"
    _notify_project_parties(firestore_ops, project, "Project Status Update", message, f"/projects/{project_id}")
    logger.info(f"Admin moved project {project_id} {project.status} -> {status_in.status}")
    return get_project_or_404(firestore_ops, project_id)


@router.delete("/projects/{project_id}")
async def delete_project(project_id: str):
    firestore_ops: FirestoreBaseModel = get_firestore_ops_instance()

    project = get_project_or_404(firestore_ops, project_id)
    for notification in firestore_ops.query(collection_name="notifications", field="related_id", operator="==", value=project_id):
        firestore_ops.delete(collection_name="notifications", document_id=notification["id"])
    delete_project_cascade(firestore_ops, project_id)

    _notify_project_parties(
        firestore_ops,
        project,
        "Project Removed",
        f'Project "{project.title}" has been removed by an administrator',
        None,
    )
    return {"message": "Project deleted successfully"}
