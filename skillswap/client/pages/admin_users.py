import logging
import re
from typing import Any, Dict, List, Optional

from pydantic import BaseModel

from skillswap.client.errors import ValidationError
from skillswap.client.pages.base import Page

logger = logging.getLogger(__name__)

ROLES = ("client", "freelancer", "admin")
ACCOUNT_STATUSES = ("active", "suspended", "deactivated")
EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


class AddUserForm(BaseModel):
    name: str = ""
    email: str = ""
    password: str = ""
    role: str = "client"
    phone: Optional[str] = None

    def payload(self) -> Dict[str, Any]:
        if not self.name.strip() or not self.email.strip() or not self.password or not self.role:
            raise ValidationError("Name, email, password and role are required")
        if not EMAIL_PATTERN.match(self.email.strip()):
            raise ValidationError("Please enter a valid email address")
        if len(self.password) < 6:
            raise ValidationError("Password must be at least 6 characters")
        if self.role not in ROLES:
            raise ValidationError(f"Role must be one of: {', '.join(ROLES)}")

        payload = {"name": self.name.strip(), "email": self.email.strip(), "password": self.password, "role": self.role}
        if self.phone:
            payload["phone"] = self.phone
        return payload


class EditUserForm(BaseModel):
    name: str = ""
    phone: Optional[str] = None
    country: Optional[str] = None
    status: Optional[str] = None

    @classmethod
    def from_user(cls, user: Dict[str, Any]) -> "EditUserForm":
        return cls(
            name=user.get("name") or "",
            phone=user.get("phone"),
            country=(user.get("address") or {}).get("country"),
            status=user.get("account_status"),
        )

    def payload(self) -> Dict[str, Any]:
        if not self.name.strip():
            raise ValidationError("Name is required")
        if self.status and self.status not in ACCOUNT_STATUSES:
            raise ValidationError(f"Status must be one of: {', '.join(ACCOUNT_STATUSES)}")
        return {"name": self.name.strip(), "phone": self.phone, "country": self.country, "status": self.status}


class ManageUsers(Page):
    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.users: List[Dict[str, Any]] = []
        self.total_pages = 0
        self.page = 1
        self.role_filter: Optional[str] = None
        self.search: Optional[str] = None

    def load(self, page: int = 1, role: Optional[str] = None, search: Optional[str] = None) -> None:
        self.page, self.role_filter, self.search = page, role, search
        results = self.fetch(("/api/admin/users", {"page": page, "role": role, "search": search}))
        if results is not None:
            listing = results[0]
            self.users = listing.get("users", [])
            self.total_pages = listing.get("total_pages", 0)

    def _replace(self, user: Dict[str, Any]) -> None:
        self.users = [user if u.get("id") == user.get("id") else u for u in self.users]

    def add_user(self, form: AddUserForm) -> Optional[Dict[str, Any]]:
        try:
            payload = form.payload()
        except ValidationError as e:
            self.report(e, "Invalid user details")
            return None

        user = self.attempt(lambda: self.api.post("/api/admin/users", json=payload), "Failed to create user")
        if user is not None:
            self.users = [user, *self.users]
            self.notifier.success(f"User {user.get('name')} created")
        return user

    def edit_user(self, user_id: str, form: EditUserForm) -> Optional[Dict[str, Any]]:
        try:
            payload = form.payload()
        except ValidationError as e:
            self.report(e, "Invalid user details")
            return None

        result = self.attempt(lambda: self.api.put(f"/api/admin/users/{user_id}", json=payload), "Failed to update user")
        if result is None:
            return None
        self._replace(result["user"])
        self.notifier.success("User updated successfully")
        return result["user"]

    def set_active(self, user_id: str, is_active: bool) -> bool:
        result = self.attempt(
            lambda: self.api.put(f"/api/admin/users/{user_id}/status", json={"is_active": is_active}),
            "Failed to update user status",
        )
        if result is None:
            return False
        self._replace(result["user"])
        self.notifier.success(result.get("message") or "User status updated")
        return True

    def delete_user(self, user_id: str) -> bool:
        result = self.attempt(lambda: self.api.delete(f"/api/admin/users/{user_id}"), "Failed to delete user")
        if result is None:
            return False
        self.users = [u for u in self.users if u.get("id") != user_id]
        self.notifier.success("User deleted successfully")
        return True


class ManageProjects(Page):
    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.projects: List[Dict[str, Any]] = []
        self.total_pages = 0

    def load(self, status: Optional[str] = None, search: Optional[str] = None, page: int = 1) -> None:
        results = self.fetch(("/api/admin/projects", {"status": status, "search": search, "page": page}))
        if results is not None:
            listing = results[0]
            self.projects = listing.get("projects", [])
            self.total_pages = listing.get("total_pages", 0)

    def change_status(self, project_id: str, status: str, reason: Optional[str] = None) -> bool:
        project = self.attempt(
            lambda: self.api.put(f"/api/admin/projects/{project_id}/status", json={"status": status, "reason": reason}),
            "Failed to update project status",
        )
        if project is None:
            return False
        self.projects = [{**p, **project} if p.get("id") == project_id else p for p in self.projects]
        self.notifier.success(f"Project marked as {status}")
        return True

    def delete_project(self, project_id: str) -> bool:
        result = self.attempt(lambda: self.api.delete(f"/api/admin/projects/{project_id}"), "Failed to delete project")
        if result is None:
            return False
        self.projects = [p for p in self.projects if p.get("id") != project_id]
        self.notifier.success("Project deleted successfully")
        return True
