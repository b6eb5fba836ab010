"""
Bid workflow pages: the client reviewing bids on one project (ManageBids),
the freelancer's own bids (FreelancerBids) and the open-project browser
freelancers bid from (BrowseProjects).
"""

import logging
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from skillswap.client.api import parse_timestamp, ref_id
from skillswap.client.errors import ValidationError
from skillswap.client.pages.base import Page

logger = logging.getLogger(__name__)

Bid = Dict[str, Any]


def _timestamp(bid: Bid) -> datetime:
    return parse_timestamp(bid.get("created_at")) or datetime.min


def _freelancer(bid: Bid) -> Dict[str, Any]:
    return bid.get("freelancer") or {}


BID_SORTS: Dict[str, tuple] = {
    "amount_asc": (lambda b: b.get("amount") or 0, False),
    "amount_desc": (lambda b: b.get("amount") or 0, True),
    "rating_desc": (lambda b: _freelancer(b).get("rating") or 0, True),
    "experience_desc": (lambda b: _freelancer(b).get("completed_projects") or 0, True),
    "date_desc": (_timestamp, True),
    "date_asc": (_timestamp, False),
}


def sort_bids(bids: List[Bid], sort_by: str) -> List[Bid]:
    """Sort a copy of `bids`; equal keys keep server order (sorted() is stable)."""
    key, descending = BID_SORTS.get(sort_by, BID_SORTS["amount_asc"])
    return sorted(bids, key=key, reverse=descending)


def _positive_number(value: Any, label: str, cast: Callable[[Any], Any]) -> Any:
    try:
        number = cast(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{label} must be a number")
    if number <= 0:
        raise ValidationError(f"{label} must be greater than zero")
    return number


class ManageBids(Page):
    def __init__(self, *args, project_id: str, **kwargs):
        super().__init__(*args, **kwargs)
        self.project_id = project_id
        self.project: Optional[Dict[str, Any]] = None
        self.bids: List[Bid] = []
        self.sort_by = "amount_asc"

    def open(self) -> None:
        self.load()
        self.join_room("join_project", self.project_id)
        self.on("bid_update", self._on_bid_update)

    def load(self) -> None:
        results = self.fetch(
            (f"/api/projects/{self.project_id}", None),
            (f"/api/projects/{self.project_id}/bids", None),
        )
        if results is not None:
            self.project, self.bids = results

    def reload_bids(self) -> None:
        results = self.fetch((f"/api/projects/{self.project_id}/bids", None))
        if results is not None:
            self.bids = results[0]

    def _on_bid_update(self, data: Any) -> None:
        if isinstance(data, dict) and str(data.get("projectId")) == self.project_id:
            self.reload_bids()

    @property
    def sorted_bids(self) -> List[Bid]:
        return sort_bids(self.bids, self.sort_by)

    @property
    def can_accept(self) -> bool:
        return bool(self.project) and self.project.get("status") == "open"

    def accept(self, bid_id: str) -> bool:
        if not self.can_accept:
            logger.debug(f"Accept ignored: project {self.project_id} is not open")
            return False

        result = self.attempt(
            lambda: self.api.put(f"/api/projects/{self.project_id}/bids/{bid_id}/accept"),
            "Failed to accept bid. Please try again.",
        )
        if result is None:
            return False

        self.project = result.get("project") or {**self.project, "status": "in_progress"}
        self.notifier.success("Bid accepted successfully!")
        self.redirect_to = f"/client/projects/{self.project_id}"
        return True

    def send_counter_offer(self, bid_id: str, amount: Any, delivery_time: Any, message: Optional[str]) -> bool:
        try:
            if amount in (None, "") or delivery_time in (None, "") or not (message or "").strip():
                raise ValidationError("Please fill in all counter offer fields")
            payload = {
                "amount": _positive_number(amount, "Amount", float),
                "delivery_time": _positive_number(delivery_time, "Delivery time", int),
                "message": message.strip(),
            }
        except ValidationError as e:
            self.report(e, "Invalid counter offer")
            return False

        result = self.attempt(
            lambda: self.api.post(f"/api/projects/{self.project_id}/bids/{bid_id}/counter-offer", json=payload),
            "Failed to send counter offer. Please try again.",
        )
        if result is None:
            return False

        self.reload_bids()
        self.emit("new_bid", {"projectId": self.project_id, "type": "counter_offer", "bidId": bid_id})
        self.notifier.success("Counter offer sent successfully!")
        return True


class FreelancerBids(Page):
    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.bids: List[Bid] = []
        self.status_filter: Optional[str] = None
        self.statistics: Optional[Dict[str, Any]] = None

    def load(self, status_filter: Optional[str] = None) -> None:
        self.status_filter = status_filter
        results = self.fetch(
            ("/api/projects/freelancer/my-bids", {"status": status_filter}),
            ("/api/projects/stats/bid-analytics", None),
        )
        if results is not None:
            self.bids, self.statistics = results

    def _replace(self, bid: Bid) -> None:
        self.bids = [{**b, **bid} if b.get("id") == bid.get("id") else b for b in self.bids]

    def _project_id(self, bid: Bid) -> Optional[str]:
        return ref_id(bid.get("project")) or ref_id(bid.get("project_id"))

    def withdraw(self, bid: Bid) -> bool:
        project_id = self._project_id(bid)
        result = self.attempt(
            lambda: self.api.delete(f"/api/projects/{project_id}/bids/{bid['id']}"),
            "Failed to withdraw bid. Please try again later.",
        )
        if result is None:
            return False
        self._replace({"id": bid["id"], "status": "withdrawn"})
        self.notifier.success("Bid withdrawn successfully")
        return True

    def respond_to_counter_offer(self, bid: Bid, response: str) -> bool:
        if response not in ("accept", "reject"):
            self.report(ValidationError("Response must be accept or reject"), "Invalid response")
            return False
        if (bid.get("counter_offer") or {}).get("status") != "pending":
            self.report(ValidationError("This bid has no pending counter offer"), "No pending counter offer")
            return False

        project_id = self._project_id(bid)
        updated = self.attempt(
            lambda: self.api.put(f"/api/projects/{project_id}/bids/{bid['id']}/counter-offer", json={"response": response}),
            "Failed to respond to counter offer.",
        )
        if updated is None:
            return False
        self._replace(updated)
        self.emit("new_bid", {"projectId": project_id, "type": f"counter_offer_{response}ed", "bidId": bid["id"]})
        self.notifier.success(f"Counter offer {response}ed")
        return True


class BrowseProjects(Page):
    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.projects: List[Dict[str, Any]] = []
        self.total_pages = 0
        self.bid_project_ids: set = set()

    def load(
        self,
        keyword: Optional[str] = None,
        category: Optional[str] = None,
        skill: Optional[str] = None,
        page: int = 1,
    ) -> None:
        results = self.fetch(
            ("/api/projects", {"keyword": keyword, "category": category, "skill": skill, "page": page}),
            ("/api/projects/freelancer/my-bids", None),
        )
        if results is None:
            return
        listing, my_bids = results
        self.projects = listing.get("projects", [])
        self.total_pages = listing.get("total_pages", 0)
        self.bid_project_ids = {
            ref_id(b.get("project")) or b.get("project_id") for b in my_bids if b.get("status") != "withdrawn"
        }

    def has_bid_on(self, project_id: str) -> bool:
        return project_id in self.bid_project_ids

    def submit_bid(self, project_id: str, amount: Any, delivery_time: Any, proposal: Optional[str]) -> Optional[Bid]:
        try:
            if not (proposal or "").strip():
                raise ValidationError("Please write a proposal")
            payload = {
                "amount": _positive_number(amount, "Amount", float),
                "delivery_time": _positive_number(delivery_time, "Delivery time", int),
                "proposal": proposal.strip(),
            }
        except ValidationError as e:
            self.report(e, "Invalid bid")
            return None

        bid = self.attempt(
            lambda: self.api.post(f"/api/projects/{project_id}/bids", json=payload),
            "Failed to submit bid. Please try again.",
        )
        if bid is None:
            return None

        self.bid_project_ids.add(project_id)
        self.emit("new_bid", {"projectId": project_id, "type": "new_bid", "bidId": bid.get("id")})
        self.notifier.success("Bid submitted successfully!")
        return bid
