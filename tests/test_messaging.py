import hashlib
import os
from datetime import timedelta

import pytest
from fastapi.testclient import TestClient

from skillswap.core.config import settings
from skillswap.main import app

client = TestClient(app)


@pytest.fixture
def pair(store, make_user):
    """A client and a freelancer with a conversation between them."""
    client_id, client_headers = make_user("client", name="Cleo")
    freelancer_id, freelancer_headers = make_user("freelancer", name="Finn")
    conversation_id = store.put(
        "conversations",
        {
            "participants": [client_id, freelancer_id],
            "project_id": None,
            "last_message_id": None,
            "unread_count": {client_id: 0, freelancer_id: 0},
        },
    )
    return {
        "conversation_id": conversation_id,
        "client": (client_id, client_headers),
        "freelancer": (freelancer_id, freelancer_headers),
    }


@pytest.fixture
def uploads(monkeypatch, tmp_path):
    monkeypatch.setattr(settings, "UPLOAD_DIR", str(tmp_path))
    return tmp_path


def test_create_conversation(store, make_user):
    user_id, headers = make_user("client")
    other_id, _ = make_user("freelancer", name="Finn")

    response = client.post("/api/messages/conversations", json={"participant_id": other_id}, headers=headers)
    assert response.status_code == 200
    conversation = response.json()["conversation"]
    assert {p["id"] for p in conversation["participants"]} == {user_id, other_id}
    assert [p["name"] for p in conversation["other_participants"]] == ["Finn"]

    # Asking again returns the same conversation
    again = client.post("/api/messages/conversations", json={"participant_id": other_id}, headers=headers)
    assert again.json()["conversation"]["id"] == conversation["id"]
    assert len(store.docs("conversations")) == 1


def test_create_conversation_validation(store, make_user):
    user_id, headers = make_user("client")

    response = client.post("/api/messages/conversations", json={"participant_id": "not-an-id"}, headers=headers)
    assert response.status_code == 400
    assert response.json()["detail"] == "Invalid user ID format"

    response = client.post("/api/messages/conversations", json={"participant_id": user_id}, headers=headers)
    assert response.status_code == 400

    missing = "bbbbbbbbbbbbbbbbbbbbbbbb"
    response = client.post("/api/messages/conversations", json={"participant_id": missing}, headers=headers)
    assert response.status_code == 404
    assert response.json()["detail"] == f"User not found. The user with ID {missing} does not exist."


def test_create_conversation_bad_project(store, make_user):
    _, headers = make_user("client")
    other_id, _ = make_user("freelancer")
    response = client.post(
        "/api/messages/conversations",
        json={"participant_id": other_id, "project_id": "xyz"},
        headers=headers,
    )
    assert response.status_code == 400
    assert response.json()["detail"] == "Invalid project ID format"


def test_outsider_cannot_read_conversation(store, make_user, pair):
    _, outsider_headers = make_user("client")
    response = client.get(f"/api/messages/conversations/{pair['conversation_id']}", headers=outsider_headers)
    assert response.status_code == 403


def test_send_message_updates_unread_and_notifies(store, pair):
    conversation_id = pair["conversation_id"]
    client_id, client_headers = pair["client"]
    freelancer_id, freelancer_headers = pair["freelancer"]

    response = client.post(
        f"/api/messages/conversations/{conversation_id}/messages",
        json={"content": "Hello there", "metadata": "device=web"},
        headers=client_headers,
    )
    assert response.status_code == 201
    message = response.json()["data"]
    assert message["receiver_id"] == freelancer_id
    assert message["metadata"] == hashlib.sha256(b"device=web").hexdigest()

    conversation = store.get("conversations", conversation_id)
    assert conversation["unread_count"][freelancer_id] == 1
    assert conversation["last_message_id"] == message["id"]

    unread = client.get("/api/messages/unread-count", headers=freelancer_headers)
    assert unread.json() == {"unread_count": 1}

    titles = [n["title"] for n in store.query("notifications", "recipient_id", "==", freelancer_id)]
    assert titles == ["New Message"]


def test_send_empty_message_rejected(store, pair):
    _, headers = pair["client"]
    response = client.post(
        f"/api/messages/conversations/{pair['conversation_id']}/messages",
        json={"content": "   "},
        headers=headers,
    )
    assert response.status_code == 400


def test_list_messages_pages_from_newest_and_marks_read(store, pair):
    conversation_id = pair["conversation_id"]
    client_id, _ = pair["client"]
    freelancer_id, freelancer_headers = pair["freelancer"]
    for minutes_ago, text in [(30, "first"), (20, "second"), (10, "third")]:
        store.put(
            "messages",
            {
                "conversation_id": conversation_id,
                "sender_id": client_id,
                "receiver_id": freelancer_id,
                "content": text,
                "read_status": False,
            },
            age=timedelta(minutes=minutes_ago),
        )
    store.update("conversations", conversation_id, {"unread_count": {client_id: 0, freelancer_id: 3}})

    response = client.get(
        f"/api/messages/conversations/{conversation_id}/messages",
        params={"limit": 2},
        headers=freelancer_headers,
    )
    assert response.status_code == 200
    body = response.json()
    assert [m["content"] for m in body["messages"]] == ["second", "third"]
    assert body["total"] == 3
    assert body["total_pages"] == 2

    page_two = client.get(
        f"/api/messages/conversations/{conversation_id}/messages",
        params={"limit": 2, "page": 2},
        headers=freelancer_headers,
    )
    assert [m["content"] for m in page_two.json()["messages"]] == ["first"]

    assert all(m["read_status"] for m in store.docs("messages"))
    assert store.get("conversations", conversation_id)["unread_count"][freelancer_id] == 0


def test_list_messages_invalid_id(store, make_user):
    _, headers = make_user()
    response = client.get("/api/messages/conversations/nope/messages", headers=headers)
    assert response.status_code == 400
    assert response.json()["detail"] == "Invalid conversation ID format"


def test_send_attachments(store, pair, uploads):
    conversation_id = pair["conversation_id"]
    _, headers = pair["freelancer"]
    client_id, _ = pair["client"]

    response = client.post(
        f"/api/messages/conversations/{conversation_id}/messages/attachments",
        files=[("files", ("brief v2.pdf", b"%PDF-1.4", "application/pdf"))],
        data={"content": "See attached"},
        headers=headers,
    )
    assert response.status_code == 201
    attachment = response.json()["data"]["attachments"][0]
    assert attachment["name"] == "brief v2.pdf"
    assert attachment["type"] == "application/pdf"
    assert attachment["url"].startswith("/uploads/messages/")

    stored_name = attachment["url"].rsplit("/", 1)[-1]
    assert " " not in stored_name
    assert os.path.exists(os.path.join(uploads, "messages", stored_name))

    titles = [n["title"] for n in store.query("notifications", "recipient_id", "==", client_id)]
    assert titles == ["New Message with Attachments"]


def test_too_many_attachments(store, pair, uploads):
    _, headers = pair["client"]
    files = [("files", (f"f{i}.txt", b"x", "text/plain")) for i in range(settings.MAX_MESSAGE_ATTACHMENTS + 1)]
    response = client.post(
        f"/api/messages/conversations/{pair['conversation_id']}/messages/attachments",
        files=files,
        headers=headers,
    )
    assert response.status_code == 400
    assert store.docs("messages") == []


def test_mark_conversation_read(store, pair):
    conversation_id = pair["conversation_id"]
    client_id, client_headers = pair["client"]
    freelancer_id, freelancer_headers = pair["freelancer"]
    client.post(
        f"/api/messages/conversations/{conversation_id}/messages",
        json={"content": "Ping"},
        headers=client_headers,
    )

    response = client.put(f"/api/messages/conversations/{conversation_id}/read", headers=freelancer_headers)
    assert response.status_code == 200
    assert response.json()["marked"] == 1
    assert store.get("conversations", conversation_id)["unread_count"][freelancer_id] == 0


def test_delete_message_within_window(store, pair):
    conversation_id = pair["conversation_id"]
    _, client_headers = pair["client"]
    _, freelancer_headers = pair["freelancer"]
    sent = client.post(
        f"/api/messages/conversations/{conversation_id}/messages",
        json={"content": "Oops"},
        headers=client_headers,
    ).json()["data"]

    response = client.delete(f"/api/messages/{sent['id']}", headers=freelancer_headers)
    assert response.status_code == 403

    response = client.delete(f"/api/messages/{sent['id']}", headers=client_headers)
    assert response.status_code == 200
    assert store.get("messages", sent["id"]) is None
    assert store.get("conversations", conversation_id)["last_message_id"] is None


def test_delete_old_message_refused(store, pair):
    client_id, headers = pair["client"]
    freelancer_id, _ = pair["freelancer"]
    message_id = store.put(
        "messages",
        {
            "conversation_id": pair["conversation_id"],
            "sender_id": client_id,
            "receiver_id": freelancer_id,
            "content": "Too late",
        },
        age=timedelta(minutes=settings.MESSAGE_DELETE_WINDOW_MINUTES + 5),
    )
    response = client.delete(f"/api/messages/{message_id}", headers=headers)
    assert response.status_code == 400
    assert store.get("messages", message_id) is not None
