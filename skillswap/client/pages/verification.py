import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from skillswap.client.api import parse_timestamp, ref_id
from skillswap.client.pages.base import Page

logger = logging.getLogger(__name__)

Freelancer = Dict[str, Any]

BULK_ACTIONS = {"approve": "approved", "reject": "rejected"}


def freelancer_id(freelancer: Freelancer) -> Optional[str]:
    return ref_id(freelancer.get("user")) or freelancer.get("user_id")


def _name(freelancer: Freelancer) -> str:
    return ((freelancer.get("user") or {}).get("name") or "").lower()


def _created(freelancer: Freelancer) -> datetime:
    return parse_timestamp(freelancer.get("created_at")) or datetime.min


FREELANCER_SORTS = {
    "newest": (_created, True),
    "oldest": (_created, False),
    "name_asc": (_name, False),
    "name_desc": (_name, True),
    "rate_high": (lambda f: f.get("hourly_rate") or 0, True),
    "rate_low": (lambda f: f.get("hourly_rate") or 0, False),
}


def matches_search(freelancer: Freelancer, term: str) -> bool:
    if not term:
        return True
    term = term.lower()
    user = freelancer.get("user") or {}
    skills = [(s.get("name") if isinstance(s, dict) else str(s)) or "" for s in freelancer.get("skills") or []]
    return (
        term in (user.get("name") or "").lower()
        or term in (user.get("email") or "").lower()
        or any(term in skill.lower() for skill in skills)
    )


class VerifyFreelancers(Page):
    """Admin list of freelancers awaiting (or past) verification, with bulk actions."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.freelancers: List[Freelancer] = []
        self.search = ""
        self.status_filter = "pending"
        self.sort_by = "newest"
        self.selected: List[str] = []

    def load(self) -> None:
        results = self.fetch(("/api/admin/freelancers/verification", None))
        if results is not None:
            self.freelancers = results[0]
            self.selected = []

    @property
    def visible(self) -> List[Freelancer]:
        filtered = [
            f for f in self.freelancers
            if matches_search(f, self.search)
            and (self.status_filter == "all" or f.get("verification_status") == self.status_filter)
        ]
        key, descending = FREELANCER_SORTS.get(self.sort_by, FREELANCER_SORTS["newest"])
        return sorted(filtered, key=key, reverse=descending)

    def toggle(self, fid: str) -> None:
        if fid in self.selected:
            self.selected.remove(fid)
        else:
            self.selected.append(fid)

    def toggle_all(self) -> None:
        visible_ids = [freelancer_id(f) for f in self.visible]
        if visible_ids and len(self.selected) == len(visible_ids):
            self.selected = []
        else:
            self.selected = visible_ids

    def bulk_verify(self, action: str) -> bool:
        if not self.selected or not action:
            return False

        result = self.attempt(
            lambda: self.api.put(
                "/api/admin/freelancers/bulk-verify",
                json={"freelancer_ids": list(self.selected), "action": action},
            ),
            f"Failed to {action} selected freelancers",
        )
        if result is None:
            return False

        new_status = BULK_ACTIONS.get(action, action)
        chosen = set(self.selected)
        self.freelancers = [
            {**f, "verification_status": new_status} if freelancer_id(f) in chosen else f
            for f in self.freelancers
        ]
        self.selected = []
        self.notifier.success(result.get("message") or f"Freelancers {new_status}")
        return True

    def verify(self, fid: str, action: str, verification_level: Optional[str] = None) -> Optional[Freelancer]:
        echoed = _send_verify(self, fid, action, verification_level)
        if echoed is not None:
            self.freelancers = [echoed if freelancer_id(f) == fid else f for f in self.freelancers]
        return echoed


def _send_verify(page: Page, fid: str, action: str, verification_level: Optional[str]) -> Optional[Freelancer]:
    payload: Dict[str, Any] = {"action": action}
    if verification_level:
        payload["verification_level"] = verification_level
    result = page.attempt(
        lambda: page.api.put(f"/api/admin/freelancers/{fid}/verify", json=payload),
        "Failed to update verification status",
    )
    if result is None:
        return None
    page.notifier.success(result.get("message") or "Verification status updated")
    return result.get("freelancer")


class FreelancerVerificationDetails(Page):
    def __init__(self, *args, freelancer_id: str, **kwargs):
        super().__init__(*args, **kwargs)
        self.freelancer_id = freelancer_id
        self.freelancer: Optional[Freelancer] = None

    def load(self) -> None:
        results = self.fetch((f"/api/admin/freelancers/{self.freelancer_id}", None))
        if results is not None:
            self.freelancer = results[0]

    def verify(self, action: str, verification_level: Optional[str] = None) -> bool:
        echoed = _send_verify(self, self.freelancer_id, action, verification_level)
        if echoed is None:
            return False
        self.freelancer = echoed
        return True

    def reset_status(self) -> bool:
        return self.verify("pending")

    def verify_document(self, document_id: str, status: str, notes: Optional[str] = None) -> bool:
        result = self.attempt(
            lambda: self.api.put(
                f"/api/admin/freelancers/{self.freelancer_id}/documents/{document_id}",
                json={"status": status, "notes": notes},
            ),
            "Failed to update document status",
        )
        if result is None:
            return False

        if self.freelancer:
            documents = self.freelancer.get("verification_documents") or []
            self.freelancer["verification_documents"] = [
                {**d, "status": status, "notes": notes} if d.get("id") == document_id else d for d in documents
            ]
        self.notifier.success(f"Document {status}")
        return True
