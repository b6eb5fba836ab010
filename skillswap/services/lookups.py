import math
from typing import Any, Dict, List, Optional

from skillswap.db.firebase_ops import FirestoreBaseModel


def user_summary(firestore_ops: FirestoreBaseModel, user_id: Optional[str], with_email: bool = False) -> Optional[Dict[str, Any]]:
    """{id, name, role[, email]} for a user id, or None if the user is gone."""
    if not user_id:
        return None
    user = firestore_ops.get(collection_name="users", document_id=user_id)
    if not user:
        return None
    summary = {"id": user["id"], "name": user.get("name"), "role": user.get("role")}
    if with_email:
        summary["email"] = user.get("email")
    return summary


def contains_text(needle: Optional[str], *haystacks: Optional[str]) -> bool:
    """Case-insensitive substring match against any of the haystacks; an empty needle matches everything."""
    if not needle:
        return True
    needle = needle.lower()
    return any(needle in (haystack or "").lower() for haystack in haystacks)


def paginate(items: List[Any], page: int, limit: int, key: str) -> Dict[str, Any]:
    start = (page - 1) * limit
    return {
        key: items[start:start + limit],
        "total_pages": math.ceil(len(items) / limit) if limit else 0,
        "current_page": page,
        "total": len(items),
    }
