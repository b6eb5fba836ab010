from fastapi.testclient import TestClient

from skillswap.main import app

client = TestClient(app)

PROJECT_PAYLOAD = {
    "title": "Mobile app",
    "description": "Flutter app for a bakery",
    "category": "mobile",
    "skills": ["flutter"],
    "budget": 1200,
}


def test_create_project(store, make_user):
    client_id, headers = make_user("client")
    response = client.post("/api/projects", json=PROJECT_PAYLOAD, headers=headers)
    assert response.status_code == 201
    project = response.json()
    assert project["client_id"] == client_id
    assert project["status"] == "open"
    assert project["bid_ids"] == []
    assert store.get("client_profiles", client_id)["projects_posted"] == 1


def test_create_project_requires_verified_client(store, make_user):
    _, headers = make_user("client", is_verified=False)
    response = client.post("/api/projects", json=PROJECT_PAYLOAD, headers=headers)
    assert response.status_code == 403


def test_freelancer_cannot_create_project(store, make_user):
    _, headers = make_user("freelancer")
    response = client.post("/api/projects", json=PROJECT_PAYLOAD, headers=headers)
    assert response.status_code == 403


def test_list_projects_defaults_to_open(store, make_user, make_project):
    client_id, _ = make_user("client")
    make_project(client_id, title="Open one")
    make_project(client_id, title="Busy one", status="in_progress")

    response = client.get("/api/projects")
    assert response.status_code == 200
    body = response.json()
    assert [p["title"] for p in body["projects"]] == ["Open one"]
    assert body["total"] == 1


def test_list_projects_keyword_and_budget(store, make_user, make_project):
    client_id, _ = make_user("client")
    make_project(client_id, title="Python scraper", budget=100)
    make_project(client_id, title="Python API", budget=900)
    make_project(client_id, title="Logo design", budget=900)

    response = client.get("/api/projects", params={"keyword": "python", "min_budget": 500})
    assert [p["title"] for p in response.json()["projects"]] == ["Python API"]


def test_get_project_includes_client(store, make_user, make_project):
    client_id, headers = make_user("client", name="Carol")
    project_id = make_project(client_id)
    response = client.get(f"/api/projects/{project_id}")
    assert response.status_code == 200
    assert response.json()["client"]["name"] == "Carol"
    assert response.json()["assigned_freelancer"] is None


def test_get_project_not_found(store):
    response = client.get("/api/projects/aaaaaaaaaaaaaaaaaaaaaaaa")
    assert response.status_code == 404
    assert response.json()["detail"] == "Project not found"


def test_update_project_only_owner_and_open(store, make_user, make_project):
    owner_id, owner_headers = make_user("client")
    _, other_headers = make_user("client")
    project_id = make_project(owner_id)

    response = client.put(f"/api/projects/{project_id}", json={"budget": 800}, headers=other_headers)
    assert response.status_code == 403

    response = client.put(f"/api/projects/{project_id}", json={"budget": 800}, headers=owner_headers)
    assert response.status_code == 200
    assert response.json()["budget"] == 800

    store.update("projects", project_id, {"status": "in_progress"})
    response = client.put(f"/api/projects/{project_id}", json={"budget": 900}, headers=owner_headers)
    assert response.status_code == 400


def test_delete_project_cascades_bids(store, make_user, make_project, make_bid):
    owner_id, headers = make_user("client")
    freelancer_id, _ = make_user("freelancer")
    project_id = make_project(owner_id)
    make_bid(project_id, freelancer_id)

    response = client.delete(f"/api/projects/{project_id}", headers=headers)
    assert response.status_code == 200
    assert store.get("projects", project_id) is None
    assert store.docs("bids") == []


def test_delete_in_progress_project_refused(store, make_user, make_project):
    owner_id, headers = make_user("client")
    project_id = make_project(owner_id, status="in_progress")
    response = client.delete(f"/api/projects/{project_id}", headers=headers)
    assert response.status_code == 400


def test_client_completes_project_and_freelancer_is_credited(store, make_user, make_project):
    owner_id, headers = make_user("client")
    freelancer_id, _ = make_user("freelancer")
    project_id = make_project(owner_id, status="in_progress", assigned_freelancer_id=freelancer_id)

    response = client.put(f"/api/projects/{project_id}/status", json={"status": "completed"}, headers=headers)
    assert response.status_code == 200
    assert response.json()["status"] == "completed"
    assert store.get("freelancer_profiles", freelancer_id)["completed_projects"] == 1

    notifications = store.query("notifications", "recipient_id", "==", freelancer_id)
    assert notifications[0]["title"] == "Project Status Update"


def test_invalid_status_transition(store, make_user, make_project):
    owner_id, headers = make_user("client")
    project_id = make_project(owner_id)
    response = client.put(f"/api/projects/{project_id}/status", json={"status": "completed"}, headers=headers)
    assert response.status_code == 400


def test_freelancer_cannot_cancel(store, make_user, make_project):
    owner_id, _ = make_user("client")
    freelancer_id, headers = make_user("freelancer")
    project_id = make_project(owner_id, status="in_progress", assigned_freelancer_id=freelancer_id)
    response = client.put(f"/api/projects/{project_id}/status", json={"status": "cancelled"}, headers=headers)
    assert response.status_code == 400


def test_progress_update(store, make_user, make_project):
    owner_id, _ = make_user("client")
    freelancer_id, headers = make_user("freelancer")
    project_id = make_project(owner_id, status="in_progress", assigned_freelancer_id=freelancer_id)

    response = client.put(f"/api/projects/{project_id}/progress", json={"progress": 60}, headers=headers)
    assert response.status_code == 200
    assert response.json()["progress"] == 60

    response = client.put(f"/api/projects/{project_id}/progress", json={"progress": 120}, headers=headers)
    assert response.status_code == 422


def test_my_projects(store, make_user, make_project):
    owner_id, headers = make_user("client")
    freelancer_id, freelancer_headers = make_user("freelancer")
    make_project(owner_id, title="Mine")
    make_project(owner_id, title="Assigned", status="in_progress", assigned_freelancer_id=freelancer_id)

    response = client.get("/api/projects/client/my-projects", headers=headers)
    assert {p["title"] for p in response.json()} == {"Mine", "Assigned"}

    response = client.get("/api/projects/freelancer/my-projects", headers=freelancer_headers)
    assert [p["title"] for p in response.json()] == ["Assigned"]
