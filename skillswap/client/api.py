"""
HTTP client for the SkillSwap REST API.

Wraps httpx so pages see three outcomes only: a decoded JSON body, an
ApiError carrying the server's status and message, or a NetworkError.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import httpx

from skillswap.client.errors import ApiError, NetworkError
from skillswap.client.session import Session
from skillswap.core.config import settings

logger = logging.getLogger(__name__)


def ref_id(value: Any) -> Optional[str]:
    """
    A reference field may arrive as a bare id or as the populated object;
    return the id either way.
    """
    if value is None:
        return None
    if isinstance(value, dict):
        return value.get("id") or value.get("_id")
    return str(value)


def parse_timestamp(value: Any) -> Optional[datetime]:
    """ISO-8601 string or datetime as naive UTC, the form the server stores."""
    if not value:
        return None
    if not isinstance(value, datetime):
        value = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text or response.reason_phrase
    if isinstance(body, dict):
        detail = body.get("detail") or body.get("message")
        if isinstance(detail, list):
            # FastAPI validation errors
            return "; ".join(str(item.get("msg", item)) for item in detail)
        if detail:
            return str(detail)
    return response.reason_phrase


class ApiClient:
    """
    Synchronous REST client bound to a Session; the session's bearer token is
    attached to every request.
    """

    def __init__(
        self,
        session: Session,
        base_url: Optional[str] = None,
        transport: Optional[httpx.BaseTransport] = None,
        timeout: float = 30.0,
    ):
        self.session = session
        self.client = httpx.Client(
            base_url=base_url or settings.API_URL,
            transport=transport,
            timeout=timeout,
        )

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    def close(self) -> None:
        self.client.close()

    def _headers(self) -> Dict[str, str]:
        if self.session.token:
            return {"Authorization": f"Bearer {self.session.token}"}
        return {}

    def request(self, method: str, path: str, **kwargs) -> Any:
        try:
            response = self.client.request(method, path, headers=self._headers(), **kwargs)
        except httpx.TransportError as e:
            logger.error(f"{method} {path} failed: {e}")
            raise NetworkError("Unable to reach the server. Please check your connection.") from e

        if response.is_error:
            message = error_message(response)
            logger.warning(f"{method} {path} -> {response.status_code}: {message}")
            raise ApiError(response.status_code, message, payload=_json_or_none(response))

        return _json_or_none(response)

    def get(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        if params:
            params = {k: v for k, v in params.items() if v is not None and v != ""}
        return self.request("GET", path, params=params)

    def post(self, path: str, json: Any = None, **kwargs) -> Any:
        return self.request("POST", path, json=json, **kwargs)

    def put(self, path: str, json: Any = None) -> Any:
        return self.request("PUT", path, json=json)

    def delete(self, path: str) -> Any:
        return self.request("DELETE", path)

    def login(self, email: str, password: str) -> Dict[str, Any]:
        """Exchange credentials for a token and load the user into the session."""
        self.session.loading = True
        try:
            token = self.request("POST", "/api/auth/login", data={"username": email, "password": password})
            self.session.token = token["access_token"]
            self.session.user = self.get("/api/auth/me")
        except Exception:
            self.session.sign_out()
            raise
        finally:
            self.session.loading = False
        logger.info(f"Signed in as {self.session.user_id} ({self.session.role})")
        return self.session.user


def _json_or_none(response: httpx.Response) -> Any:
    if not response.content:
        return None
    try:
        return response.json()
    except ValueError:
        return None
