"""
Aggregations behind the dashboard and analytics endpoints.

Everything here works on plain document dicts (as returned by FirestoreBaseModel)
so the routers stay thin and the numbers can be tested without a database.
"""

from collections import Counter, defaultdict
from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional, Tuple

from skillswap.db.firebase_ops import as_utc_naive

RECENT_LIMIT = 5

Doc = Dict[str, Any]


def percentage(part: float, whole: float) -> float:
    """part / whole as a percentage; 0 when there is nothing to divide by."""
    if not whole:
        return 0.0
    return part / whole * 100


def average(total: float, count: int) -> float:
    return total / count if count else 0.0


def _created(doc: Doc) -> datetime:
    return as_utc_naive(doc.get("created_at")) or datetime.min


def _updated(doc: Doc) -> Optional[datetime]:
    return as_utc_naive(doc.get("updated_at"))


def most_recent(docs: Iterable[Doc], limit: Optional[int] = RECENT_LIMIT) -> List[Doc]:
    return sorted(docs, key=_created, reverse=True)[:limit]


def _budget(project: Doc) -> float:
    return float(project.get("budget") or 0)


def _with_status(docs: Iterable[Doc], *statuses: str) -> List[Doc]:
    return [doc for doc in docs if doc.get("status") in statuses]


def month_start(moment: datetime, months_back: int = 0) -> datetime:
    """First instant of the month `months_back` months before `moment`'s month."""
    index = moment.year * 12 + (moment.month - 1) - months_back
    return datetime(index // 12, index % 12 + 1, 1)


def month_buckets(end: datetime, count: int) -> List[Tuple[int, int]]:
    """(year, month) pairs for the `count` months ending with `end`'s month, oldest first."""
    starts = [month_start(end, back) for back in range(count - 1, -1, -1)]
    return [(start.year, start.month) for start in starts]


def month_label(year: int, month: int, now: datetime) -> str:
    label = datetime(year, month, 1).strftime("%b")
    return label if year == now.year else f"{label} {year}"


def months_between(start: datetime, end: datetime) -> int:
    return (end.year - start.year) * 12 + (end.month - start.month) + 1


# --- Dashboards ---

def client_dashboard(projects: List[Doc], bids: List[Doc]) -> Dict[str, Any]:
    completed = _with_status(projects, "completed")
    return {
        "stats": {
            "active_projects": len(_with_status(projects, "open", "in_progress")),
            "completed_projects": len(completed),
            "pending_bids": len(_with_status(bids, "pending")),
            "total_spent": sum(_budget(p) for p in completed),
        },
        "recent_projects": most_recent(projects),
        "recent_bids": most_recent(bids),
    }


def freelancer_dashboard(assigned_projects: List[Doc], bids: List[Doc]) -> Dict[str, Any]:
    completed = _with_status(assigned_projects, "completed")
    return {
        "stats": {
            "active_projects": len(_with_status(assigned_projects, "in_progress")),
            "completed_projects": len(completed),
            "pending_bids": len(_with_status(bids, "pending")),
            "total_earned": sum(_budget(p) for p in completed),
        },
        "recent_bids": most_recent(bids),
        "recent_projects": most_recent(assigned_projects),
    }


def has_pending_documents(profile: Doc) -> bool:
    return any(doc.get("status") == "pending" for doc in profile.get("verification_documents") or [])


def admin_dashboard(
    users: List[Doc],
    projects: List[Doc],
    freelancer_profiles: List[Doc],
    now: datetime,
    fee_rate: float,
) -> Dict[str, Any]:
    month_ago = now - timedelta(days=30)
    pending = [p for p in freelancer_profiles if has_pending_documents(p)]
    return {
        "stats": {
            "total_users": len(users),
            "new_users_last_month": sum(1 for u in users if _created(u) >= month_ago),
            "total_projects": len(projects),
            "new_projects_last_month": sum(1 for p in projects if _created(p) >= month_ago),
            "pending_verifications": len(pending),
            "total_revenue": sum(_budget(p) * fee_rate for p in _with_status(projects, "completed")),
        },
        "recent_users": [
            {"id": u["id"], "name": u.get("name"), "email": u.get("email"), "role": u.get("role"), "created_at": u.get("created_at")}
            for u in most_recent(users)
        ],
        "recent_projects": most_recent(projects),
        "pending_freelancers": pending[:RECENT_LIMIT],
    }


# --- Analytics ---

def _top_categories(projects: List[Doc], value_key: str) -> List[Dict[str, Any]]:
    counts: Counter = Counter()
    values: Dict[str, float] = defaultdict(float)
    for project in projects:
        category = project.get("category")
        if not category:
            continue
        counts[category] += 1
        if project.get("status") == "completed":
            values[category] += _budget(project)
    # Counter.most_common keeps first-seen order for ties
    return [
        {"name": name, "count": count, value_key: values.get(name, 0.0)}
        for name, count in counts.most_common(RECENT_LIMIT)
    ]


def _monthly_totals(projects: List[Doc], start: datetime, end: datetime, now: datetime) -> List[Dict[str, Any]]:
    count = min(12, max(1, months_between(start, end)))
    buckets = month_buckets(end, count)
    totals = {bucket: 0.0 for bucket in buckets}
    for project in _with_status(projects, "completed"):
        completed_at = _updated(project)
        if completed_at and (completed_at.year, completed_at.month) in totals:
            totals[(completed_at.year, completed_at.month)] += _budget(project)
    return [{"month": month_label(y, m, now), "amount": totals[(y, m)]} for y, m in buckets]


def _average_completion_days(projects: List[Doc]) -> float:
    durations = []
    for project in _with_status(projects, "completed"):
        created, updated = as_utc_naive(project.get("created_at")), _updated(project)
        if created and updated:
            durations.append(round((updated - created).total_seconds() / 86400))
    return average(sum(durations), len(durations))


def in_range(docs: List[Doc], start: datetime, end: datetime) -> List[Doc]:
    return [doc for doc in docs if start <= _created(doc) <= end]


def client_analytics(projects: List[Doc], start: datetime, end: datetime, now: datetime) -> Dict[str, Any]:
    projects = in_range(projects, start, end)
    completed = _with_status(projects, "completed")
    total_spent = sum(_budget(p) for p in completed)
    return {
        "date_range": {"start_date": start, "end_date": end},
        "total_projects": len(projects),
        "active_projects": len(_with_status(projects, "open", "in_progress")),
        "completed_projects": len(completed),
        "cancelled_projects": len(_with_status(projects, "cancelled")),
        "total_spent": total_spent,
        "average_project_cost": average(total_spent, len(completed)),
        "average_completion_time": _average_completion_days(projects),
        "top_categories": _top_categories(projects, "spent"),
        "monthly_spending": _monthly_totals(projects, start, end, now),
    }


def freelancer_analytics(
    projects: List[Doc],
    bids: List[Doc],
    profile: Doc,
    start: datetime,
    end: datetime,
    now: datetime,
) -> Dict[str, Any]:
    projects = in_range(projects, start, end)
    completed = _with_status(projects, "completed")
    total_earnings = sum(_budget(p) for p in completed)
    return {
        "date_range": {"start_date": start, "end_date": end},
        "total_projects": len(projects),
        "active_projects": len(_with_status(projects, "in_progress")),
        "completed_projects": len(completed),
        "total_earnings": total_earnings,
        "average_project_value": average(total_earnings, len(completed)),
        "average_rating": float(profile.get("average_rating") or 0),
        "bid_success_rate": percentage(len(_with_status(bids, "accepted")), len(bids)),
        "top_categories": _top_categories(projects, "earnings"),
        "monthly_earnings": _monthly_totals(projects, start, end, now),
    }


def admin_analytics(users: List[Doc], projects: List[Doc], now: datetime, fee_rate: float) -> Dict[str, Any]:
    thirty_days_ago = now - timedelta(days=30)
    completed = _with_status(projects, "completed")
    total_earnings = sum(_budget(p) for p in completed)

    user_growth, project_growth, revenue = [], [], []
    for year, month in month_buckets(now, 6):
        start = datetime(year, month, 1)
        end = month_start(start, -1)

        def within(moment: Optional[datetime]) -> bool:
            return moment is not None and start <= moment < end

        user_growth.append({
            "date": start,
            "freelancers": sum(1 for u in users if u.get("role") == "freelancer" and within(_created(u))),
            "clients": sum(1 for u in users if u.get("role") == "client" and within(_created(u))),
        })
        completed_in_month = [p for p in completed if within(_updated(p))]
        project_growth.append({
            "date": start,
            "posted": sum(1 for p in projects if within(_created(p))),
            "completed": len(completed_in_month),
        })
        revenue.append({"date": start, "revenue": sum(_budget(p) * fee_rate for p in completed_in_month)})

    category_counts: Counter = Counter()
    category_budgets: Dict[str, float] = defaultdict(float)
    for project in projects:
        category = project.get("category") or "uncategorized"
        category_counts[category] += 1
        category_budgets[category] += _budget(project)

    return {
        "stats": {
            "total_users": len(users),
            "new_users": sum(1 for u in users if _created(u) >= thirty_days_ago),
            "total_projects": len(projects),
            "new_projects": sum(1 for p in projects if _created(p) >= thirty_days_ago),
            "total_earnings": total_earnings,
            "platform_fees": total_earnings * fee_rate,
        },
        "user_growth_data": user_growth,
        "project_growth_data": project_growth,
        "revenue_data": revenue,
        "category_data": [
            {"name": name, "count": count, "total_budget": category_budgets[name]}
            for name, count in category_counts.most_common(RECENT_LIMIT)
        ],
    }


# --- Bid statistics ---

def freelancer_bid_statistics(bids: List[Doc]) -> Dict[str, Any]:
    by_status = Counter(bid.get("status") for bid in bids)
    return {
        "total_bids": len(bids),
        "accepted_bids": by_status["accepted"],
        "pending_bids": by_status["pending"],
        "rejected_bids": by_status["rejected"],
        "withdrawn_bids": by_status["withdrawn"],
        "average_bid_amount": average(sum(float(b.get("amount") or 0) for b in bids), len(bids)),
        "success_rate": percentage(by_status["accepted"], len(bids)),
    }


def client_bid_statistics(projects: List[Doc], bids: List[Doc]) -> Dict[str, Any]:
    bids_by_project: Dict[str, List[Doc]] = defaultdict(list)
    for bid in bids:
        bids_by_project[bid.get("project_id")].append(bid)
    project_stats = []
    for project in projects:
        project_bids = bids_by_project.get(project["id"], [])
        project_stats.append({
            "project_id": project["id"],
            "title": project.get("title"),
            "bid_count": len(project_bids),
            "average_bid_amount": average(sum(float(b.get("amount") or 0) for b in project_bids), len(project_bids)),
        })
    return {
        "total_projects": len(projects),
        "total_bids": len(bids),
        "average_bids_per_project": average(len(bids), len(projects)),
        "project_bid_stats": project_stats,
    }


def platform_bid_statistics(projects: List[Doc], bids: List[Doc]) -> Dict[str, Any]:
    by_status = Counter(bid.get("status") for bid in bids)
    category_by_project = {p["id"]: p.get("category") for p in projects}
    category_counts: Counter = Counter()
    for bid in bids:
        category = category_by_project.get(bid.get("project_id"))
        if category:
            category_counts[category] += 1
    return {
        "total_bids": len(bids),
        "accepted_bids": by_status["accepted"],
        "pending_bids": by_status["pending"],
        "average_bid_amount": average(sum(float(b.get("amount") or 0) for b in bids), len(bids)),
        "top_categories": [{"category": c, "count": n} for c, n in category_counts.most_common(RECENT_LIMIT)],
    }
