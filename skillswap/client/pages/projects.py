from typing import Any, Dict, List, Optional

from skillswap.client.errors import ValidationError
from skillswap.client.pages.base import Page


class ClientProjects(Page):
    """The signed-in client's own projects."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.projects: List[Dict[str, Any]] = []
        self.status_filter: Optional[str] = None

    def load(self, status_filter: Optional[str] = None) -> None:
        self.status_filter = status_filter
        results = self.fetch(("/api/projects/client/my-projects", {"status": status_filter}))
        if results is not None:
            self.projects = results[0]

    def post_project(self, title: str, description: str, budget: Any, **extra: Any) -> Optional[Dict[str, Any]]:
        try:
            if not title.strip() or not description.strip():
                raise ValidationError("Title and description are required")
            try:
                amount = float(budget)
            except (TypeError, ValueError):
                raise ValidationError("Budget must be a number")
            if amount < 0:
                raise ValidationError("Budget cannot be negative")
        except ValidationError as e:
            self.report(e, "Invalid project")
            return None

        payload = {"title": title.strip(), "description": description.strip(), "budget": amount, **extra}
        project = self.attempt(lambda: self.api.post("/api/projects", json=payload), "Failed to post project")
        if project is not None:
            self.projects = [project, *self.projects]
            self.notifier.success("Project posted successfully")
        return project

    def set_status(self, project_id: str, status: str) -> bool:
        project = self.attempt(
            lambda: self.api.put(f"/api/projects/{project_id}/status", json={"status": status}),
            "Failed to update project status",
        )
        if project is None:
            return False
        self.projects = [project if p.get("id") == project_id else p for p in self.projects]
        self.emit("project_update", {"projectId": project_id, "status": status})
        return True

    def delete(self, project_id: str) -> bool:
        result = self.attempt(lambda: self.api.delete(f"/api/projects/{project_id}"), "Failed to delete project")
        if result is None:
            return False
        self.projects = [p for p in self.projects if p.get("id") != project_id]
        return True
