from typing import Any, Dict, Optional

from pydantic import BaseModel

DASHBOARD_BY_ROLE = {
    "client": "/client/dashboard",
    "freelancer": "/freelancer/dashboard",
    "admin": "/admin/dashboard",
}


class Session(BaseModel):
    """
    The signed-in user as seen by the client pages.

    Passed explicitly to every page object; `loading` is True while the
    user is still being resolved from a stored token.
    """
    user: Optional[Dict[str, Any]] = None
    token: Optional[str] = None
    loading: bool = False

    @property
    def user_id(self) -> Optional[str]:
        return self.user.get("id") if self.user else None

    @property
    def role(self) -> Optional[str]:
        return self.user.get("role") if self.user else None

    @property
    def is_authenticated(self) -> bool:
        return self.user is not None and self.token is not None

    def sign_out(self) -> None:
        self.user = None
        self.token = None
        self.loading = False


def default_dashboard(role: Optional[str]) -> str:
    return DASHBOARD_BY_ROLE.get(role or "", "/login")
