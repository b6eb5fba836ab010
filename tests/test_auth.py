from fastapi.testclient import TestClient

from skillswap.main import app
from conftest import TEST_PASSWORD

client = TestClient(app)


def _register(email="test@example.com", role="client", password="password123"):
    return client.post(
        "/api/auth/register",
        json={"name": "Test User", "email": email, "password": password, "role": role},
    )


def test_register_user_success(store):
    """Registration stores a hashed password and creates the role profile."""
    response = _register()
    assert response.status_code == 201
    data = response.json()
    assert data["email"] == "test@example.com"
    assert data["role"] == "client"
    assert data["is_verified"] is False
    assert len(data["id"]) == 24
    assert "hashed_password" not in data

    stored = store.get("users", data["id"])
    assert stored["hashed_password"] != "password123"
    assert store.get("client_profiles", data["id"])["user_id"] == data["id"]


def test_register_freelancer_creates_freelancer_profile(store):
    response = _register(email="dev@example.com", role="freelancer")
    assert response.status_code == 201
    profile = store.get("freelancer_profiles", response.json()["id"])
    assert profile is not None


def test_register_user_duplicate_email(store):
    assert _register().status_code == 201
    response = _register()
    assert response.status_code == 400
    assert response.json()["detail"] == "User with this email already exists"


def test_register_admin_is_forbidden(store):
    response = _register(email="boss@example.com", role="admin")
    assert response.status_code == 403
    assert store.docs("users") == []


def test_register_short_password_rejected(store):
    response = _register(password="123")
    assert response.status_code == 422


def test_login_success_and_me(store, make_user):
    user_id, _ = make_user("freelancer", email="free@example.com")

    response = client.post("/api/auth/login", data={"username": "free@example.com", "password": TEST_PASSWORD})
    assert response.status_code == 200
    token = response.json()["access_token"]
    assert response.json()["token_type"] == "bearer"
    assert store.get("users", user_id)["last_login"] is not None

    me = client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert me.status_code == 200
    assert me.json()["id"] == user_id
    assert me.json()["role"] == "freelancer"


def test_login_wrong_password(store, make_user):
    make_user(email="someone@example.com")
    response = client.post("/api/auth/login", data={"username": "someone@example.com", "password": "nope-nope"})
    assert response.status_code == 401
    assert response.json()["detail"] == "Invalid email or password"


def test_login_suspended_account(store, make_user):
    make_user(email="bad@example.com", account_status="suspended")
    response = client.post("/api/auth/login", data={"username": "bad@example.com", "password": TEST_PASSWORD})
    assert response.status_code == 403


def test_me_requires_token(store):
    response = client.get("/api/auth/me")
    assert response.status_code == 401


def test_me_with_garbage_token(store):
    response = client.get("/api/auth/me", headers={"Authorization": "Bearer not-a-jwt"})
    assert response.status_code == 401
    assert response.json()["detail"] == "Could not validate credentials"


def test_deactivated_user_token_rejected(store, make_user):
    _, headers = make_user(is_active=False)
    response = client.get("/api/auth/me", headers=headers)
    assert response.status_code == 403
    assert response.json()["detail"] == "Account is not active"


def test_forgot_and_reset_password_flow(store, make_user):
    user_id, _ = make_user(email="forgetful@example.com")

    response = client.post("/api/auth/forgot-password", json={"email": "forgetful@example.com"})
    assert response.status_code == 200
    reset_token = response.json()["reset_token"]
    # Only a digest is persisted
    assert store.get("users", user_id)["reset_password_token"] != reset_token

    response = client.post("/api/auth/reset-password", json={"token": reset_token, "password": "brand-new-pass"})
    assert response.status_code == 200

    login = client.post("/api/auth/login", data={"username": "forgetful@example.com", "password": "brand-new-pass"})
    assert login.status_code == 200

    # Tokens are single use
    again = client.post("/api/auth/reset-password", json={"token": reset_token, "password": "another-pass"})
    assert again.status_code == 400


def test_forgot_password_unknown_email_is_generic(store):
    response = client.post("/api/auth/forgot-password", json={"email": "ghost@example.com"})
    assert response.status_code == 200
    assert "reset_token" not in response.json()


def test_verify_email(store):
    response = _register(email="verify@example.com")
    user_id = response.json()["id"]

    bad = client.post("/api/auth/verify-email", json={"token": "wrong"})
    assert bad.status_code == 400
    assert store.get("users", user_id)["is_verified"] is False


def test_change_password(store, make_user):
    _, headers = make_user(email="changer@example.com")

    wrong = client.post(
        "/api/auth/change-password",
        json={"current_password": "incorrect", "new_password": "new-password"},
        headers=headers,
    )
    assert wrong.status_code == 401
    assert wrong.json()["detail"] == "Current password is incorrect"

    ok = client.post(
        "/api/auth/change-password",
        json={"current_password": TEST_PASSWORD, "new_password": "new-password"},
        headers=headers,
    )
    assert ok.status_code == 200
    login = client.post("/api/auth/login", data={"username": "changer@example.com", "password": "new-password"})
    assert login.status_code == 200
