from fastapi.testclient import TestClient

from skillswap.main import app

client = TestClient(app)

BID_PAYLOAD = {"amount": 450, "delivery_time": 10, "proposal": "Done in two sprints"}


def test_submit_bid(store, make_user, make_project):
    client_id, _ = make_user("client")
    freelancer_id, headers = make_user("freelancer")
    project_id = make_project(client_id, title="Landing page")

    response = client.post(f"/api/projects/{project_id}/bids", json=BID_PAYLOAD, headers=headers)
    assert response.status_code == 201
    bid = response.json()
    assert bid["status"] == "pending"
    assert bid["freelancer_id"] == freelancer_id
    assert bid["counter_offer"]["status"] == "none"

    assert store.get("projects", project_id)["bid_ids"] == [bid["id"]]
    notifications = store.query("notifications", "recipient_id", "==", client_id)
    assert notifications[0]["title"] == "New Bid Received"


def test_duplicate_bid_rejected(store, make_user, make_project):
    client_id, _ = make_user("client")
    _, headers = make_user("freelancer")
    project_id = make_project(client_id)

    assert client.post(f"/api/projects/{project_id}/bids", json=BID_PAYLOAD, headers=headers).status_code == 201
    response = client.post(f"/api/projects/{project_id}/bids", json=BID_PAYLOAD, headers=headers)
    assert response.status_code == 400
    assert response.json()["detail"] == "You have already bid on this project"


def test_bid_on_closed_project(store, make_user, make_project):
    client_id, _ = make_user("client")
    _, headers = make_user("freelancer")
    project_id = make_project(client_id, status="in_progress")
    response = client.post(f"/api/projects/{project_id}/bids", json=BID_PAYLOAD, headers=headers)
    assert response.status_code == 400


def test_client_cannot_bid(store, make_user, make_project):
    client_id, headers = make_user("client")
    project_id = make_project(client_id)
    response = client.post(f"/api/projects/{project_id}/bids", json=BID_PAYLOAD, headers=headers)
    assert response.status_code == 403


def test_list_bids_visibility(store, make_user, make_project, make_bid):
    client_id, client_headers = make_user("client")
    _, stranger_headers = make_user("client")
    first_id, first_headers = make_user("freelancer", profile={"average_rating": 4.5, "completed_projects": 3})
    second_id, _ = make_user("freelancer")
    project_id = make_project(client_id)
    make_bid(project_id, first_id, amount=300)
    make_bid(project_id, second_id, amount=500)

    response = client.get(f"/api/projects/{project_id}/bids", headers=client_headers)
    assert response.status_code == 200
    bids = response.json()
    assert [b["amount"] for b in bids] == [300, 500]
    assert bids[0]["freelancer"]["rating"] == 4.5
    assert bids[0]["freelancer"]["completed_projects"] == 3

    response = client.get(f"/api/projects/{project_id}/bids", headers=first_headers)
    assert [b["freelancer_id"] for b in response.json()] == [first_id]

    response = client.get(f"/api/projects/{project_id}/bids", headers=stranger_headers)
    assert response.status_code == 403


def test_accept_bid_assigns_and_rejects_others(store, make_user, make_project, make_bid):
    client_id, headers = make_user("client")
    winner_id, _ = make_user("freelancer")
    loser_id, _ = make_user("freelancer")
    project_id = make_project(client_id)
    winning_bid = make_bid(project_id, winner_id)
    losing_bid = make_bid(project_id, loser_id)

    response = client.put(f"/api/projects/{project_id}/bids/{winning_bid}/accept", headers=headers)
    assert response.status_code == 200
    body = response.json()
    assert body["bid"]["status"] == "accepted"
    assert body["project"]["status"] == "in_progress"
    assert body["project"]["assigned_freelancer_id"] == winner_id

    assert store.get("bids", losing_bid)["status"] == "rejected"
    titles = [n["title"] for n in store.query("notifications", "recipient_id", "==", winner_id)]
    assert titles == ["Bid Accepted"]


def test_second_accept_is_refused(store, make_user, make_project, make_bid):
    client_id, headers = make_user("client")
    first_id, _ = make_user("freelancer")
    second_id, _ = make_user("freelancer")
    project_id = make_project(client_id)
    first_bid = make_bid(project_id, first_id)
    second_bid = make_bid(project_id, second_id)

    assert client.put(f"/api/projects/{project_id}/bids/{first_bid}/accept", headers=headers).status_code == 200
    response = client.put(f"/api/projects/{project_id}/bids/{second_bid}/accept", headers=headers)
    assert response.status_code == 400
    assert store.get("projects", project_id)["assigned_freelancer_id"] == first_id


def test_accept_loses_race(store, make_user, make_project, make_bid, monkeypatch):
    client_id, headers = make_user("client")
    freelancer_id, _ = make_user("freelancer")
    project_id = make_project(client_id)
    bid_id = make_bid(project_id, freelancer_id)

    # Another acceptance lands between the read and the conditional write
    monkeypatch.setattr(store, "update_if", lambda *args, **kwargs: False)
    response = client.put(f"/api/projects/{project_id}/bids/{bid_id}/accept", headers=headers)
    assert response.status_code == 409
    assert store.get("bids", bid_id)["status"] == "pending"


def test_counter_offer_accept_rewrites_terms(store, make_user, make_project, make_bid):
    client_id, client_headers = make_user("client")
    freelancer_id, freelancer_headers = make_user("freelancer")
    project_id = make_project(client_id)
    bid_id = make_bid(project_id, freelancer_id, amount=400)

    response = client.post(
        f"/api/projects/{project_id}/bids/{bid_id}/counter-offer",
        json={"amount": 350, "delivery_time": 5, "message": "Tighter budget"},
        headers=client_headers,
    )
    assert response.status_code == 200
    assert response.json()["counter_offer"]["status"] == "pending"

    response = client.put(
        f"/api/projects/{project_id}/bids/{bid_id}/counter-offer",
        json={"response": "accept"},
        headers=freelancer_headers,
    )
    assert response.status_code == 200
    bid = response.json()
    assert bid["amount"] == 350
    assert bid["delivery_time"] == 5
    assert bid["counter_offer"]["status"] == "accepted"
    assert bid["status"] == "pending"


def test_counter_offer_reject_keeps_terms(store, make_user, make_project, make_bid):
    client_id, _ = make_user("client")
    freelancer_id, headers = make_user("freelancer")
    project_id = make_project(client_id)
    bid_id = make_bid(
        project_id,
        freelancer_id,
        amount=400,
        counter_offer={"amount": 200, "delivery_time": 3, "message": "Cheaper?", "status": "pending"},
    )

    response = client.put(
        f"/api/projects/{project_id}/bids/{bid_id}/counter-offer",
        json={"response": "reject"},
        headers=headers,
    )
    assert response.status_code == 200
    assert response.json()["amount"] == 400
    assert response.json()["counter_offer"]["status"] == "rejected"


def test_respond_without_pending_counter_offer(store, make_user, make_project, make_bid):
    client_id, _ = make_user("client")
    freelancer_id, headers = make_user("freelancer")
    project_id = make_project(client_id)
    bid_id = make_bid(project_id, freelancer_id)
    response = client.put(
        f"/api/projects/{project_id}/bids/{bid_id}/counter-offer",
        json={"response": "accept"},
        headers=headers,
    )
    assert response.status_code == 400
    assert response.json()["detail"] == "No pending counter offer found"


def test_withdraw_bid(store, make_user, make_project, make_bid):
    client_id, _ = make_user("client")
    freelancer_id, headers = make_user("freelancer")
    _, other_headers = make_user("freelancer")
    project_id = make_project(client_id)
    bid_id = make_bid(project_id, freelancer_id)

    response = client.delete(f"/api/projects/{project_id}/bids/{bid_id}", headers=other_headers)
    assert response.status_code == 403

    response = client.delete(f"/api/projects/{project_id}/bids/{bid_id}", headers=headers)
    assert response.status_code == 200
    assert store.get("bids", bid_id)["status"] == "withdrawn"

    # A withdrawn bid does not block a fresh one
    response = client.post(f"/api/projects/{project_id}/bids", json=BID_PAYLOAD, headers=headers)
    assert response.status_code == 201


def test_my_bids_with_project_summary(store, make_user, make_project, make_bid):
    client_id, _ = make_user("client")
    freelancer_id, headers = make_user("freelancer")
    project_id = make_project(client_id, title="Data pipeline")
    make_bid(project_id, freelancer_id)

    response = client.get("/api/projects/freelancer/my-bids", headers=headers)
    assert response.status_code == 200
    assert response.json()[0]["project"]["title"] == "Data pipeline"

    response = client.get("/api/projects/freelancer/my-bids", params={"status": "accepted"}, headers=headers)
    assert response.json() == []


def test_freelancer_bid_statistics(store, make_user, make_project, make_bid):
    client_id, _ = make_user("client")
    freelancer_id, headers = make_user("freelancer")
    make_bid(make_project(client_id), freelancer_id, amount=100, status="accepted")
    make_bid(make_project(client_id), freelancer_id, amount=300, status="rejected")

    response = client.get("/api/projects/stats/bid-analytics", headers=headers)
    assert response.status_code == 200
    stats = response.json()
    assert stats["total_bids"] == 2
    assert stats["accepted_bids"] == 1
    assert stats["average_bid_amount"] == 200
    assert stats["success_rate"] == 50
