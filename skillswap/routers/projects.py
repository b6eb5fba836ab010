import logging
from typing import List, Optional

from fastapi import APIRouter, HTTPException, Depends, Query, status

from skillswap.core.dependencies import get_current_user, require_roles
from skillswap.db.firebase_ops import get_firestore_ops_instance, FirestoreBaseModel, generate_object_id
from skillswap.models.schemas import (
    Project,
    ProjectCreate,
    ProjectUpdate,
    ProjectStatusUpdate,
    ProjectProgressUpdate,
    User,
)
from skillswap.services.analytics import most_recent
from skillswap.services.lookups import contains_text, paginate, user_summary
from skillswap.services.notifications import notify

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/projects", tags=["Projects"])

# (current status, requested status) pairs each role may perform on its own project
CLIENT_TRANSITIONS = {("open", "cancelled"), ("in_progress", "completed")}
FREELANCER_TRANSITIONS = {("in_progress", "completed")}


def get_project_or_404(firestore_ops: FirestoreBaseModel, project_id: str) -> Project:
    project = firestore_ops.get(collection_name="projects", document_id=project_id, pydantic_model=Project)
    if not project:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Project not found")
    return project


@router.get("")
async def list_projects(
    keyword: Optional[str] = None,
    category: Optional[str] = None,
    skill: Optional[str] = None,
    min_budget: Optional[float] = None,
    max_budget: Optional[float] = None,
    project_status: str = Query(default="open", alias="status"),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
):
    """Public project listing with search and filters; defaults to open projects."""
    firestore_ops: FirestoreBaseModel = get_firestore_ops_instance()

    projects = firestore_ops.query(collection_name="projects", field="status", operator="==", value=project_status)
    matches = [
        p for p in projects
        if contains_text(keyword, p.get("title"), p.get("description"))
        and (not category or p.get("category") == category)
        and (not skill or any(skill.lower() == s.lower() for s in p.get("skills") or []))
        and (min_budget is None or (p.get("budget") or 0) >= min_budget)
        and (max_budget is None or (p.get("budget") or 0) <= max_budget)
    ]
    return paginate(most_recent(matches, limit=None), page, limit, key="projects")


@router.post("", response_model=Project, status_code=status.HTTP_201_CREATED)
async def create_project(project_in: ProjectCreate, current_user: User = Depends(require_roles("client"))):
    firestore_ops: FirestoreBaseModel = get_firestore_ops_instance()

    if not current_user.is_verified:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Please verify your email before posting projects")

    project_id = generate_object_id()
    project_record = project_in.model_dump()
    project_record.update({
        "client_id": current_user.id,
        "assigned_freelancer_id": None,
        "status": "open",
        "bid_ids": [],
        "progress": 0,
    })

    if not firestore_ops.save(collection_name="projects", data_model=project_record, document_id=project_id):
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Could not create project")

    client_profile = firestore_ops.get(collection_name="client_profiles", document_id=current_user.id)
    if client_profile:
        firestore_ops.update(
            collection_name="client_profiles",
            document_id=current_user.id,
            updates={"projects_posted": (client_profile.get("projects_posted") or 0) + 1},
        )

    logger.info(f"Client {current_user.id} posted project {project_id}")
    return get_project_or_404(firestore_ops, project_id)


@router.get("/client/my-projects", response_model=List[Project])
async def list_client_projects(
    project_status: Optional[str] = Query(default=None, alias="status"),
    current_user: User = Depends(require_roles("client")),
):
    firestore_ops: FirestoreBaseModel = get_firestore_ops_instance()

    filters = [("client_id", "==", current_user.id)]
    if project_status:
        filters.append(("status", "==", project_status))
    return most_recent(firestore_ops.query_many(collection_name="projects", filters=filters), limit=None)


@router.get("/freelancer/my-projects", response_model=List[Project])
async def list_freelancer_projects(
    project_status: Optional[str] = Query(default=None, alias="status"),
    current_user: User = Depends(require_roles("freelancer")),
):
    firestore_ops: FirestoreBaseModel = get_firestore_ops_instance()

    filters = [("assigned_freelancer_id", "==", current_user.id)]
    if project_status:
        filters.append(("status", "==", project_status))
    return most_recent(firestore_ops.query_many(collection_name="projects", filters=filters), limit=None)


@router.get("/{project_id}")
async def get_project(project_id: str):
    firestore_ops: FirestoreBaseModel = get_firestore_ops_instance()

    project = get_project_or_404(firestore_ops, project_id)
    return {
        **project.model_dump(),
        "client": user_summary(firestore_ops, project.client_id),
        "assigned_freelancer": user_summary(firestore_ops, project.assigned_freelancer_id),
    }


@router.put("/{project_id}", response_model=Project)
async def update_project(project_id: str, project_in: ProjectUpdate, current_user: User = Depends(require_roles("client"))):
    firestore_ops: FirestoreBaseModel = get_firestore_ops_instance()

    project = get_project_or_404(firestore_ops, project_id)
    if project.client_id != current_user.id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="You are not authorized to update this project")
    if project.status != "open":
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Only open projects can be edited")

    updates = project_in.model_dump(exclude_unset=True)
    if not updates:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No fields to update")

    if not firestore_ops.update(collection_name="projects", document_id=project_id, updates=updates):
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Could not update project")
    return get_project_or_404(firestore_ops, project_id)


@router.delete("/{project_id}")
async def delete_project(project_id: str, current_user: User = Depends(require_roles("client"))):
    firestore_ops: FirestoreBaseModel = get_firestore_ops_instance()

    project = get_project_or_404(firestore_ops, project_id)
    if project.client_id != current_user.id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="You are not authorized to delete this project")
    if project.status == "in_progress":
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Cannot delete a project that is in progress")

    delete_project_cascade(firestore_ops, project_id)
    return {"message": "Project deleted successfully"}


def delete_project_cascade(firestore_ops: FirestoreBaseModel, project_id: str) -> None:
    """Remove a project together with every bid placed on it."""
    for bid in firestore_ops.query(collection_name="bids", field="project_id", operator="==", value=project_id):
        firestore_ops.delete(collection_name="bids", document_id=bid["id"])
    if not firestore_ops.delete(collection_name="projects", document_id=project_id):
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Could not delete project")
    logger.info(f"Deleted project {project_id} and its bids")


@router.put("/{project_id}/status", response_model=Project)
async def update_project_status(project_id: str, status_in: ProjectStatusUpdate, current_user: User = Depends(get_current_user)):
    firestore_ops: FirestoreBaseModel = get_firestore_ops_instance()

    project = get_project_or_404(firestore_ops, project_id)
    transition = (project.status, status_in.status)

    if current_user.role == "client":
        if project.client_id != current_user.id:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="You are not authorized to update this project status")
        if transition not in CLIENT_TRANSITIONS:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid status transition for client")
        recipient_id = project.assigned_freelancer_id
    elif current_user.role == "freelancer":
        if project.assigned_freelancer_id != current_user.id:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="You are not authorized to update this project status")
        if transition not in FREELANCER_TRANSITIONS:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid status transition for freelancer")
        recipient_id = project.client_id
    else:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Use the admin endpoint to override project status")

    # Guard against a concurrent transition (e.g. a bid being accepted meanwhile)
    if not firestore_ops.update_if(
        collection_name="projects",
        document_id=project_id,
        expected={"status": project.status},
        updates={"status": status_in.status},
    ):
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Project status changed; reload and try again")

    if status_in.status == "completed":
        record_completion(firestore_ops, project)

    if recipient_id:
        notify(
            firestore_ops,
            recipient_id=recipient_id,
            type="project",
            title="Project Status Update",
            message=f'Project "{project.title}" has been marked as {status_in.status} by the {current_user.role}',
            link=f"/projects/{project_id}",
            related_id=project_id,
            related_model="Project",
        )
    logger.info(f"Project {project_id} moved {project.status} -> {status_in.status} by {current_user.id}")
    return get_project_or_404(firestore_ops, project_id)


def record_completion(firestore_ops: FirestoreBaseModel, project: Project) -> None:
    if not project.assigned_freelancer_id:
        return
    profile = firestore_ops.get(collection_name="freelancer_profiles", document_id=project.assigned_freelancer_id)
    if profile:
        firestore_ops.update(
            collection_name="freelancer_profiles",
            document_id=project.assigned_freelancer_id,
            updates={"completed_projects": (profile.get("completed_projects") or 0) + 1},
        )


@router.put("/{project_id}/progress", response_model=Project)
async def update_project_progress(
    project_id: str,
    progress_in: ProjectProgressUpdate,
    current_user: User = Depends(require_roles("freelancer")),
):
    firestore_ops: FirestoreBaseModel = get_firestore_ops_instance()

    project = get_project_or_404(firestore_ops, project_id)
    if project.assigned_freelancer_id != current_user.id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="You are not authorized to update this project progress")
    if project.status != "in_progress":
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Cannot update progress for a project that is not in progress")

    if not firestore_ops.update(collection_name="projects", document_id=project_id, updates={"progress": progress_in.progress}):
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Could not update progress")

    notify(
        firestore_ops,
        recipient_id=project.client_id,
        type="project",
        title="Project Progress Update",
        message=f'Project "{project.title}" progress has been updated to {progress_in.progress}%',
        link=f"/projects/{project_id}",
        related_id=project_id,
        related_model="Project",
    )
    return get_project_or_404(firestore_ops, project_id)
