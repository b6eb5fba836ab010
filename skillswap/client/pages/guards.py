from typing import Iterable, NamedTuple, Optional

from skillswap.client.session import Session, default_dashboard


class RouteDecision(NamedTuple):
    action: str  # 'loading', 'redirect' or 'render'
    target: Optional[str] = None

    @property
    def renders(self) -> bool:
        return self.action == "render"


LOADING = RouteDecision("loading")
RENDER = RouteDecision("render")


def role_based_route(session: Session, allowed_roles: Iterable[str]) -> RouteDecision:
    """
    Decide what a role-restricted route does for the current session.
    Users with the wrong role are sent to their own dashboard.
    """
    if session.loading:
        return LOADING
    if not session.user:
        return RouteDecision("redirect", "/login")
    if session.role not in set(allowed_roles):
        return RouteDecision("redirect", default_dashboard(session.role))
    return RENDER


def protected_route(session: Session) -> RouteDecision:
    if session.loading:
        return LOADING
    if not session.user:
        return RouteDecision("redirect", "/login")
    return RENDER
