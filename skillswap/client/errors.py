from typing import Any, Optional


class SkillSwapClientError(Exception):
    """Base class for everything the client layer raises."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NetworkError(SkillSwapClientError):
    """The request never got a response (connection refused, timeout, DNS...)."""


class ApiError(SkillSwapClientError):
    """The server answered with an error status."""

    def __init__(self, status_code: int, message: str, payload: Optional[Any] = None):
        super().__init__(message)
        self.status_code = status_code
        self.payload = payload

    def __str__(self) -> str:
        return f"{self.status_code}: {self.message}"


class ValidationError(SkillSwapClientError):
    """A form failed client-side checks; no request was sent."""
