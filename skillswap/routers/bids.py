import logging
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, HTTPException, Depends, Query, status

from skillswap.core.dependencies import get_current_user, require_roles
from skillswap.db.firebase_ops import get_firestore_ops_instance, FirestoreBaseModel, generate_object_id, as_utc_naive
from skillswap.models.schemas import (
    Bid,
    BidCreate,
    BidUpdate,
    BidWithFreelancer,
    BidWithProject,
    CounterOfferCreate,
    CounterOfferResponse,
    Project,
    User,
)
from skillswap.routers.projects import get_project_or_404
from skillswap.services import analytics
from skillswap.services.notifications import notify

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/projects", tags=["Bids"])


def get_bid_or_404(firestore_ops: FirestoreBaseModel, project_id: str, bid_id: str) -> Bid:
    bid = firestore_ops.get(collection_name="bids", document_id=bid_id, pydantic_model=Bid)
    if not bid or bid.project_id != project_id:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Bid not found")
    return bid


def _bid_link(project_id: str, bid_id: str) -> str:
    return f"/projects/{project_id}/bids/{bid_id}"


def _with_freelancer(firestore_ops: FirestoreBaseModel, bid: dict) -> BidWithFreelancer:
    freelancer = None
    user = firestore_ops.get(collection_name="users", document_id=bid["freelancer_id"])
    if user:
        profile = firestore_ops.get(collection_name="freelancer_profiles", document_id=bid["freelancer_id"]) or {}
        freelancer = {
            "id": user["id"],
            "name": user.get("name"),
            "rating": profile.get("average_rating") or 0.0,
            "completed_projects": profile.get("completed_projects") or 0,
        }
    return BidWithFreelancer(**bid, freelancer=freelancer)


@router.post("/{project_id}/bids", response_model=Bid, status_code=status.HTTP_201_CREATED)
async def submit_bid(project_id: str, bid_in: BidCreate, current_user: User = Depends(require_roles("freelancer"))):
    firestore_ops: FirestoreBaseModel = get_firestore_ops_instance()

    if not current_user.is_verified:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Please verify your email before bidding")

    project = get_project_or_404(firestore_ops, project_id)
    if project.status != "open":
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Project is not open for bidding")

    # One live bid per freelancer per project
    existing_bids = firestore_ops.query_many(
        collection_name="bids",
        filters=[("project_id", "==", project_id), ("freelancer_id", "==", current_user.id)],
    )
    if any(b.get("status") != "withdrawn" for b in existing_bids):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="You have already bid on this project")

    bid_id = generate_object_id()
    bid_record = {
        **bid_in.model_dump(),
        "project_id": project_id,
        "freelancer_id": current_user.id,
        "status": "pending",
        "counter_offer": {"status": "none"},
    }
    if not firestore_ops.save(collection_name="bids", data_model=bid_record, document_id=bid_id):
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Could not submit bid")

    firestore_ops.update(collection_name="projects", document_id=project_id, updates={"bid_ids": project.bid_ids + [bid_id]})

    notify(
        firestore_ops,
        recipient_id=project.client_id,
        type="bid",
        title="New Bid Received",
        message=f"You have received a new bid on your project: {project.title}",
        link=_bid_link(project_id, bid_id),
        related_id=bid_id,
        related_model="Bid",
    )
    logger.info(f"Freelancer {current_user.id} bid {bid_in.amount} on project {project_id}")
    return get_bid_or_404(firestore_ops, project_id, bid_id)


@router.get("/{project_id}/bids", response_model=List[BidWithFreelancer])
async def list_project_bids(project_id: str, current_user: User = Depends(get_current_user)):
    """
    Bids on a project in submission order. The owning client and admins see every bid;
    a freelancer only sees their own.
    """
    firestore_ops: FirestoreBaseModel = get_firestore_ops_instance()

    project = get_project_or_404(firestore_ops, project_id)
    bids = firestore_ops.query(collection_name="bids", field="project_id", operator="==", value=project_id)

    if current_user.role == "freelancer":
        bids = [b for b in bids if b.get("freelancer_id") == current_user.id]
    elif current_user.role == "client" and project.client_id != current_user.id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="You are not authorized to view bids for this project")

    bids.sort(key=lambda b: as_utc_naive(b.get("created_at")) or datetime.min)
    return [_with_freelancer(firestore_ops, bid) for bid in bids]


@router.get("/freelancer/my-bids", response_model=List[BidWithProject])
async def list_my_bids(
    bid_status: Optional[str] = Query(default=None, alias="status"),
    current_user: User = Depends(require_roles("freelancer")),
):
    firestore_ops: FirestoreBaseModel = get_firestore_ops_instance()

    filters = [("freelancer_id", "==", current_user.id)]
    if bid_status:
        filters.append(("status", "==", bid_status))

    results = []
    for bid in analytics.most_recent(firestore_ops.query_many(collection_name="bids", filters=filters), limit=None):
        project = firestore_ops.get(collection_name="projects", document_id=bid["project_id"])
        summary = None
        if project:
            summary = {key: project.get(key) for key in ("id", "title", "budget", "status")}
        results.append(BidWithProject(**bid, project=summary))
    return results


@router.get("/stats/bid-analytics")
async def bid_statistics(current_user: User = Depends(get_current_user)):
    firestore_ops: FirestoreBaseModel = get_firestore_ops_instance()

    if current_user.role == "freelancer":
        bids = firestore_ops.query(collection_name="bids", field="freelancer_id", operator="==", value=current_user.id)
        return analytics.freelancer_bid_statistics(bids)

    if current_user.role == "client":
        projects = firestore_ops.query(collection_name="projects", field="client_id", operator="==", value=current_user.id)
        project_ids = [p["id"] for p in projects]
        bids = [
            bid for bid in firestore_ops.get_all(collection_name="bids")
            if bid.get("project_id") in project_ids
        ]
        return analytics.client_bid_statistics(projects, bids)

    return analytics.platform_bid_statistics(
        firestore_ops.get_all(collection_name="projects"),
        firestore_ops.get_all(collection_name="bids"),
    )


@router.get("/{project_id}/bids/{bid_id}", response_model=BidWithFreelancer)
async def get_bid(project_id: str, bid_id: str, current_user: User = Depends(get_current_user)):
    firestore_ops: FirestoreBaseModel = get_firestore_ops_instance()

    project = get_project_or_404(firestore_ops, project_id)
    bid = get_bid_or_404(firestore_ops, project_id, bid_id)

    if current_user.role == "client" and project.client_id != current_user.id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="You are not authorized to view this bid")
    if current_user.role == "freelancer" and bid.freelancer_id != current_user.id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="You are not authorized to view this bid")

    return _with_freelancer(firestore_ops, bid.model_dump())


def _own_pending_bid(firestore_ops: FirestoreBaseModel, project: Project, bid_id: str, current_user: User, verb: str) -> Bid:
    bid = get_bid_or_404(firestore_ops, project.id, bid_id)
    if bid.freelancer_id != current_user.id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=f"You are not authorized to {verb} this bid")
    if bid.status != "pending":
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Cannot {verb} a bid that is not pending")
    return bid


@router.put("/{project_id}/bids/{bid_id}", response_model=Bid)
async def update_bid(project_id: str, bid_id: str, bid_in: BidUpdate, current_user: User = Depends(require_roles("freelancer"))):
    firestore_ops: FirestoreBaseModel = get_firestore_ops_instance()

    project = get_project_or_404(firestore_ops, project_id)
    if project.status != "open":
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Project is no longer open for bidding")
    _own_pending_bid(firestore_ops, project, bid_id, current_user, "update")

    updates = bid_in.model_dump(exclude_unset=True)
    if not updates:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No fields to update")
    if not firestore_ops.update(collection_name="bids", document_id=bid_id, updates=updates):
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Could not update bid")

    notify(
        firestore_ops,
        recipient_id=project.client_id,
        type="bid",
        title="Bid Updated",
        message=f'A bid on your project "{project.title}" has been updated',
        link=_bid_link(project_id, bid_id),
        related_id=bid_id,
        related_model="Bid",
    )
    return get_bid_or_404(firestore_ops, project_id, bid_id)


@router.delete("/{project_id}/bids/{bid_id}")
async def withdraw_bid(project_id: str, bid_id: str, current_user: User = Depends(require_roles("freelancer"))):
    firestore_ops: FirestoreBaseModel = get_firestore_ops_instance()

    project = get_project_or_404(firestore_ops, project_id)
    _own_pending_bid(firestore_ops, project, bid_id, current_user, "withdraw")

    if not firestore_ops.update_if(
        collection_name="bids",
        document_id=bid_id,
        expected={"status": "pending"},
        updates={"status": "withdrawn"},
    ):
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Bid is no longer pending")

    notify(
        firestore_ops,
        recipient_id=project.client_id,
        type="bid",
        title="Bid Withdrawn",
        message=f'A bid on your project "{project.title}" has been withdrawn',
        link=f"/projects/{project_id}",
        related_id=bid_id,
        related_model="Bid",
    )
    return {"message": "Bid withdrawn successfully"}


@router.post("/{project_id}/bids/{bid_id}/counter-offer", response_model=Bid)
async def create_counter_offer(
    project_id: str,
    bid_id: str,
    offer_in: CounterOfferCreate,
    current_user: User = Depends(require_roles("client")),
):
    firestore_ops: FirestoreBaseModel = get_firestore_ops_instance()

    project = get_project_or_404(firestore_ops, project_id)
    if project.client_id != current_user.id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="You are not authorized to create a counter offer for this project")

    bid = get_bid_or_404(firestore_ops, project_id, bid_id)
    if bid.status != "pending":
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Cannot create counter offer for a bid that is not pending")

    counter_offer = {**offer_in.model_dump(), "status": "pending"}
    if not firestore_ops.update(collection_name="bids", document_id=bid_id, updates={"counter_offer": counter_offer}):
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Could not create counter offer")

    notify(
        firestore_ops,
        recipient_id=bid.freelancer_id,
        type="bid",
        title="Counter Offer Received",
        message=f"You have received a counter offer for your bid on project: {project.title}",
        link=_bid_link(project_id, bid_id),
        related_id=bid_id,
        related_model="Bid",
    )
    logger.info(f"Client {current_user.id} countered bid {bid_id} with {offer_in.amount}")
    return get_bid_or_404(firestore_ops, project_id, bid_id)


@router.put("/{project_id}/bids/{bid_id}/counter-offer", response_model=Bid)
async def respond_to_counter_offer(
    project_id: str,
    bid_id: str,
    response_in: CounterOfferResponse,
    current_user: User = Depends(require_roles("freelancer")),
):
    firestore_ops: FirestoreBaseModel = get_firestore_ops_instance()

    project = get_project_or_404(firestore_ops, project_id)
    bid = get_bid_or_404(firestore_ops, project_id, bid_id)
    if bid.freelancer_id != current_user.id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="You are not authorized to respond to this counter offer")
    if bid.counter_offer.status != "pending":
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No pending counter offer found")

    counter_offer = bid.counter_offer.model_dump()
    if response_in.response == "accept":
        counter_offer["status"] = "accepted"
        # Accepting the counter offer makes its terms the bid's terms
        updates = {
            "counter_offer": counter_offer,
            "amount": bid.counter_offer.amount,
            "delivery_time": bid.counter_offer.delivery_time,
        }
    elif response_in.response == "reject":
        counter_offer["status"] = "rejected"
        updates = {"counter_offer": counter_offer}
    else:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail='Invalid response. Must be "accept" or "reject"')

    if not firestore_ops.update(collection_name="bids", document_id=bid_id, updates=updates):
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Could not record response")

    notify(
        firestore_ops,
        recipient_id=project.client_id,
        type="bid",
        title="Counter Offer Response",
        message=f'Your counter offer for project "{project.title}" has been {counter_offer["status"]}',
        link=_bid_link(project_id, bid_id),
        related_id=bid_id,
        related_model="Bid",
    )
    return get_bid_or_404(firestore_ops, project_id, bid_id)


@router.put("/{project_id}/bids/{bid_id}/accept")
async def accept_bid(project_id: str, bid_id: str, current_user: User = Depends(require_roles("client"))):
    """
    Accept one bid: the project moves open -> in_progress with the bidder assigned,
    and every other pending bid on the project is rejected.
    """
    firestore_ops: FirestoreBaseModel = get_firestore_ops_instance()

    project = get_project_or_404(firestore_ops, project_id)
    if project.client_id != current_user.id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="You are not authorized to accept bids for this project")
    if project.status != "open":
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Project is not open for bidding")

    bid = get_bid_or_404(firestore_ops, project_id, bid_id)
    if bid.status != "pending":
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Cannot accept a bid that is not pending")

    # The project document is the lock: only one acceptance can flip it out of 'open'
    if not firestore_ops.update_if(
        collection_name="projects",
        document_id=project_id,
        expected={"status": "open"},
        updates={"status": "in_progress", "assigned_freelancer_id": bid.freelancer_id},
    ):
        logger.warning(f"Lost race accepting bid {bid_id} on project {project_id}")
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Project is no longer open; another bid was accepted")

    firestore_ops.update(collection_name="bids", document_id=bid_id, updates={"status": "accepted"})
    for other in firestore_ops.query(collection_name="bids", field="project_id", operator="==", value=project_id):
        if other["id"] != bid_id and other.get("status") == "pending":
            firestore_ops.update(collection_name="bids", document_id=other["id"], updates={"status": "rejected"})

    notify(
        firestore_ops,
        recipient_id=bid.freelancer_id,
        type="bid",
        title="Bid Accepted",
        message=f'Your bid on project "{project.title}" has been accepted! You can now start working on the project.',
        link=f"/projects/{project_id}",
        related_id=bid_id,
        related_model="Bid",
    )
    notify(
        firestore_ops,
        recipient_id=project.client_id,
        type="project",
        title="Project Started",
        message=f'You have accepted a bid for your project "{project.title}". The project is now in progress.',
        link=f"/projects/{project_id}",
        related_id=project_id,
        related_model="Project",
    )
    logger.info(f"Project {project_id} assigned to {bid.freelancer_id} via bid {bid_id}")

    return {
        "message": "Bid accepted successfully",
        "bid": get_bid_or_404(firestore_ops, project_id, bid_id),
        "project": get_project_or_404(firestore_ops, project_id),
    }
