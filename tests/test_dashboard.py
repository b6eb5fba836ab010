from datetime import datetime, timedelta

import pytest
from fastapi.testclient import TestClient

from skillswap.main import app
from skillswap.realtime.hub import dashboard_room, realtime_hub
from skillswap.services import analytics

client = TestClient(app)


class RecordingSocket:
    def __init__(self):
        self.sent = []

    async def send_json(self, data):
        self.sent.append(data)


@pytest.fixture
def dashboard_listener():
    """Put a recording socket into a user's dashboard room for the duration of a test."""
    sockets = []

    def _listen(user_id):
        socket = RecordingSocket()
        realtime_hub.users[socket] = user_id
        realtime_hub.join(socket, dashboard_room(user_id))
        sockets.append(socket)
        return socket

    yield _listen
    for socket in sockets:
        realtime_hub.disconnect(socket)


def test_client_dashboard_stats_and_push(store, make_user, make_project, make_bid, dashboard_listener):
    client_id, headers = make_user("client")
    freelancer_id, _ = make_user("freelancer")
    open_project = make_project(client_id)
    make_project(client_id, status="completed", budget=800)
    make_bid(open_project, freelancer_id)
    socket = dashboard_listener(client_id)

    response = client.get("/api/dashboard/client", headers=headers)
    assert response.status_code == 200
    stats = response.json()["stats"]
    assert stats == {"active_projects": 1, "completed_projects": 1, "pending_bids": 1, "total_spent": 800}

    assert len(socket.sent) == 1
    frame = socket.sent[0]
    assert frame["event"] == "dashboard_data_update"
    assert frame["data"]["userId"] == client_id
    assert frame["data"]["type"] == "client_dashboard"
    assert frame["data"]["data"] == response.json()


def test_freelancer_dashboard_includes_profile(store, make_user, make_project):
    client_id, _ = make_user("client")
    freelancer_id, headers = make_user("freelancer", profile={"title": "Data engineer"})
    make_project(client_id, status="in_progress", assigned_freelancer_id=freelancer_id)

    response = client.get("/api/dashboard/freelancer", headers=headers)
    assert response.status_code == 200
    body = response.json()
    assert body["stats"]["active_projects"] == 1
    assert body["profile"]["title"] == "Data engineer"


def test_dashboard_role_enforced(store, make_user):
    _, headers = make_user("freelancer")
    assert client.get("/api/dashboard/client", headers=headers).status_code == 403
    assert client.get("/api/dashboard/admin", headers=headers).status_code == 403


def test_admin_dashboard(store, make_user, make_project):
    _, headers = make_user("admin")
    client_id, _ = make_user("client")
    make_user("freelancer", profile={"verification_documents": [{"id": "d1", "document_type": "id", "status": "pending"}]})
    make_project(client_id, status="completed", budget=1000)

    response = client.get("/api/dashboard/admin", headers=headers)
    assert response.status_code == 200
    stats = response.json()["stats"]
    assert stats["total_users"] == 3
    assert stats["total_projects"] == 1
    assert stats["pending_verifications"] == 1
    assert stats["total_revenue"] == pytest.approx(100)


def test_client_analytics_defaults_to_last_30_days(store, make_user, make_project):
    client_id, headers = make_user("client")
    make_project(client_id, status="completed", budget=600, category="web")
    make_project(client_id, status="open", budget=300, category="web")
    old = make_project(client_id, status="completed", budget=999)
    stamp = datetime.utcnow() - timedelta(days=90)
    store.collections["projects"][old].update({"created_at": stamp, "updated_at": stamp})

    response = client.get("/api/analytics/client", headers=headers)
    assert response.status_code == 200
    body = response.json()
    assert body["total_projects"] == 2
    assert body["completed_projects"] == 1
    assert body["total_spent"] == 600
    assert body["top_categories"] == [{"name": "web", "count": 2, "spent": 600}]
    assert body["monthly_spending"][-1]["amount"] == 600


def test_analytics_invalid_dates(store, make_user):
    _, headers = make_user("client")

    response = client.get("/api/analytics/client", params={"start_date": "yesterday"}, headers=headers)
    assert response.status_code == 400
    assert response.json()["detail"] == "Invalid date format"

    response = client.get(
        "/api/analytics/client",
        params={"start_date": "2024-05-01", "end_date": "2024-01-01"},
        headers=headers,
    )
    assert response.status_code == 400


def test_freelancer_analytics_bid_success_rate(store, make_user, make_project, make_bid):
    client_id, _ = make_user("client")
    freelancer_id, headers = make_user("freelancer", profile={"average_rating": 4.2})
    won = make_project(client_id, status="completed", budget=400, assigned_freelancer_id=freelancer_id)
    make_bid(won, freelancer_id, status="accepted")
    make_bid(make_project(client_id), freelancer_id, status="rejected")

    response = client.get("/api/analytics/freelancer", headers=headers)
    assert response.status_code == 200
    body = response.json()
    assert body["total_earnings"] == 400
    assert body["bid_success_rate"] == 50
    assert body["average_rating"] == 4.2


def test_admin_analytics_growth_series(store, make_user, make_project):
    _, headers = make_user("admin")
    client_id, _ = make_user("client")
    make_user("freelancer")
    make_project(client_id, status="completed", budget=2000, category="design")

    response = client.get("/api/analytics/admin", headers=headers)
    assert response.status_code == 200
    body = response.json()
    assert len(body["user_growth_data"]) == 6
    current = body["user_growth_data"][-1]
    assert (current["clients"], current["freelancers"]) == (1, 1)
    assert body["stats"]["platform_fees"] == pytest.approx(200)
    assert body["category_data"] == [{"name": "design", "count": 1, "total_budget": 2000}]


def test_month_buckets_cross_year_boundary():
    assert analytics.month_buckets(datetime(2024, 2, 15), 4) == [(2023, 11), (2023, 12), (2024, 1), (2024, 2)]
    assert analytics.month_label(2023, 12, now=datetime(2024, 2, 15)) == "Dec 2023"
    assert analytics.month_label(2024, 1, now=datetime(2024, 2, 15)) == "Jan"


def test_percentage_and_average_guard_zero():
    assert analytics.percentage(3, 0) == 0
    assert analytics.average(10, 0) == 0
    assert analytics.percentage(1, 4) == 25
