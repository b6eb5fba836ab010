import logging
from datetime import date
from typing import Any, Dict, Iterable, Optional

from skillswap.client.pages.base import Page

logger = logging.getLogger(__name__)

DASHBOARD_SLICES = ("stats", "recent_projects", "recent_bids", "recent_users", "pending_freelancers", "profile")


def percent(part: float, whole: float) -> float:
    if not whole:
        return 0.0
    return round(part / whole * 100, 1)


def bar_scale(values: Iterable[float]) -> float:
    """Largest value in a series, never below 1 so bars can be scaled by it."""
    return max([1.0, *values])


class DashboardPage(Page):
    """
    Client, freelancer or admin dashboard. Listens on the user's dashboard room:
    a push carrying data replaces the matching slices, an action-only push
    triggers a full reload.
    """

    def __init__(self, *args, kind: str, **kwargs):
        super().__init__(*args, **kwargs)
        self.kind = kind
        self.data: Dict[str, Any] = {}
        self.last_updated: Optional[str] = None

    @property
    def update_type(self) -> str:
        return f"{self.kind}_dashboard"

    def open(self) -> None:
        self.load()
        self.join_room("join_dashboard", self.session.user_id)
        self.on("dashboard_data_update", self._on_update)

    def load(self) -> None:
        results = self.fetch((f"/api/dashboard/{self.kind}", None))
        if results is not None:
            self.data = results[0] or {}

    def _on_update(self, payload: Any) -> None:
        if not isinstance(payload, dict):
            return
        if payload.get("userId") != self.session.user_id or payload.get("type") != self.update_type:
            return

        data = payload.get("data")
        if isinstance(data, dict) and data:
            for key in DASHBOARD_SLICES:
                if key in data:
                    self.data[key] = data[key]
            self.last_updated = payload.get("timestamp")
        elif payload.get("action"):
            logger.debug(f"{self.update_type}: action {payload['action']!r}, reloading")
            self.load()

    @property
    def stats(self) -> Dict[str, Any]:
        return self.data.get("stats") or {}

    def completion_rate(self) -> float:
        stats = self.stats
        total = (stats.get("active_projects") or 0) + (stats.get("completed_projects") or 0)
        return percent(stats.get("completed_projects") or 0, total)


class AnalyticsPage(Page):
    def __init__(self, *args, kind: str, **kwargs):
        super().__init__(*args, **kwargs)
        self.kind = kind
        self.data: Dict[str, Any] = {}

    def load(self, start_date: Optional[date] = None, end_date: Optional[date] = None) -> None:
        params = {
            "start_date": start_date.isoformat() if start_date else None,
            "end_date": end_date.isoformat() if end_date else None,
        }
        results = self.fetch((f"/api/analytics/{self.kind}", params))
        if results is not None:
            self.data = results[0] or {}

    def monthly_series(self) -> list:
        key = {"client": "monthly_spending", "freelancer": "monthly_earnings"}.get(self.kind)
        if key:
            return self.data.get(key) or []
        return self.data.get("revenue_data") or []

    def series_scale(self) -> float:
        return bar_scale(float(point.get("amount", point.get("revenue", 0)) or 0) for point in self.monthly_series())

    def category_shares(self) -> list:
        categories = self.data.get("top_categories") or self.data.get("category_data") or []
        total = sum(c.get("count") or 0 for c in categories)
        return [{**c, "share": percent(c.get("count") or 0, total)} for c in categories]
