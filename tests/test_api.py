"""Endpoint tests through the FastAPI test client."""

import json
from unittest.mock import MagicMock

import pytest

from fieldtrack.main import app
from fieldtrack.models import PRODUCT_APPROVED
from fieldtrack.services.identity import SessionManager, get_session_manager

from .conftest import make_image_bytes, slot


@pytest.fixture
def provider():
    provider = MagicMock()
    provider.create_account.return_value = "uid-new"
    provider.verify_password.return_value = {
        "localId": "uid-new",
        "idToken": "id-token",
        "refreshToken": "refresh-token",
        "expiresIn": "3600",
    }
    return provider


@pytest.fixture
def sessions(provider):
    manager = SessionManager(provider)
    app.dependency_overrides[get_session_manager] = lambda: manager
    return manager


def test_health(client):
    assert client.get("/health").json() == {"status": "healthy"}


def test_requires_bearer_token(client):
    response = client.get("/products")
    assert response.status_code == 401


class TestProductsApi:
    def test_create_with_upload(self, client, login, owner, r2_client):
        login(owner)
        body = {"name": "Cordless Drill", "status": "approved", "warranty": {"type": "extended", "duration": 24}}
        response = client.post(
            "/products",
            data={"data": json.dumps(body)},
            files=[("files", ("drill.png", make_image_bytes(), "image/png"))],
        )

        assert response.status_code == 201
        product = response.json()
        assert product["status"] == "unapproved"
        assert product["userId"] == "uid-owner"
        assert product["warranty"]["type"] == "extended"
        assert len(product["images"]) == 1
        r2_client.put_object.assert_called_once()

    def test_create_without_images(self, client, login, owner):
        login(owner)
        response = client.post("/products", data={"data": json.dumps({"name": "Drill"})})
        assert response.status_code == 422
        assert response.json() == {
            "detail": "Please add at least one image",
            "code": "validation_error",
            "slotIndex": None,
        }

    def test_malformed_data_field(self, client, login, owner):
        login(owner)
        response = client.post("/products", data={"data": "{not json"})
        assert response.status_code == 422
        assert response.json()["code"] == "validation_error"

    def test_list_filters(self, client, login, owner, make_product):
        make_product(owner, serial_number=None)
        make_product(owner, name="Label printer")
        login(owner)

        response = client.get("/products", params={"hasSerialNumber": "true"})

        body = response.json()
        assert body["totalCount"] == 1
        assert body["items"][0]["name"] == "Label printer"
        assert body["pageSize"] == 10

    def test_other_users_product_is_missing(self, client, login, owner, other_user, make_product):
        product = make_product(owner)
        login(other_user)
        response = client.delete(f"/products/{product.id}")
        assert response.status_code == 404
        assert response.json()["code"] == "not_found"

    def test_admin_approves(self, client, login, admin, owner, make_product):
        product = make_product(owner)
        login(admin)
        response = client.patch(f"/products/{product.id}/status", json={"status": PRODUCT_APPROVED})
        assert response.json()["status"] == PRODUCT_APPROVED

        login(owner)
        response = client.patch(f"/products/{product.id}", data={"data": json.dumps({"name": "Renamed"})})
        assert response.status_code == 403


class TestTasksApi:
    def test_create_missing_start(self, client, login, owner):
        login(owner)
        body = {"title": "Fix gate", "site": "Yard", "timeSlots": [slot()]}
        response = client.post("/tasks", data={"data": json.dumps(body)})
        assert response.status_code == 422
        assert response.json() == {
            "detail": "Start time is required",
            "code": "missing_start_time",
            "slotIndex": 0,
        }

    def test_create(self, client, login, owner):
        login(owner)
        body = {"title": "Fix gate", "site": "Yard", "timeSlots": [slot(start="07:30", end="09:00")]}
        response = client.post("/tasks", data={"data": json.dumps(body)})
        assert response.status_code == 201
        task = response.json()
        assert task["status"] == "in-progress"
        assert task["timeSlots"][0]["startTime"] == "07:30"
        assert task["schedule"] == [
            {"date": "Mon, Jan 6", "timeRange": "7:30 AM - 9:00 AM", "duration": "1 hour 30 minutes"}
        ]

    def test_approved_slot_is_locked(self, client, login, admin, owner, make_task):
        task = make_task(owner)
        login(admin)
        response = client.patch(f"/tasks/{task.id}/slots/0/approval", json={"approved": True})
        assert response.json()["timeSlots"][0]["approved"] is True

        login(owner)
        moved = {"timeSlots": [slot(start="08:00", end="11:00", approved=True)]}
        response = client.patch(f"/tasks/{task.id}", data={"data": json.dumps(moved)})
        assert response.status_code == 423
        assert response.json()["code"] == "locked"
        assert response.json()["slotIndex"] == 0

    def test_owner_cannot_approve(self, client, login, owner, make_task):
        task = make_task(owner)
        login(owner)
        response = client.patch(f"/tasks/{task.id}/slots/0/approval", json={"approved": True})
        assert response.status_code == 403

    def test_pagination(self, client, login, owner, make_task):
        for n in range(25):
            make_task(owner, title=f"Task {n}")
        login(owner)
        body = client.get("/tasks", params={"page": 3}).json()
        assert len(body["items"]) == 5
        assert body["totalPages"] == 3

    def test_end_times(self, client):
        body = client.get("/tasks/slots/end-times", params={"start": "9:00 PM"}).json()
        assert body["start"] == "21:00"
        assert body["endTimes"] == ["21:30", "22:00", "22:30", "23:00", "23:30"]
        assert body["options"][0] == {"time": "21:30", "label": "9:30 PM", "duration": "30 minutes"}
        assert body["options"][-1]["duration"] == "2 hours 30 minutes"

    def test_end_times_bad_start(self, client):
        response = client.get("/tasks/slots/end-times", params={"start": "late"})
        assert response.status_code == 422


class TestAuthApi:
    def test_signup_user(self, client, sessions, provider):
        payload = {"email": "New@Example.com", "password": "secret1", "name": "Nina New", "code": "user-secret"}
        response = client.post("/auth/signup", json=payload)

        assert response.status_code == 201
        body = response.json()
        assert body["idToken"] == "id-token"
        assert body["user"]["role"] == "user"
        assert body["user"]["email"] == "new@example.com"
        provider.create_account.assert_called_once_with("new@example.com", "secret1", "Nina New")

    def test_signup_validation_message(self, client, sessions):
        payload = {"email": "bad", "password": "secret1", "name": "Nina", "code": "user-secret"}
        response = client.post("/auth/signup", json=payload)
        assert response.json()["detail"] == "Please enter a valid email address."

    def test_admin_code_attempts_limited(self, client, sessions):
        payload = {
            "email": "eve@example.com",
            "password": "secret1",
            "name": "Eve",
            "accountType": "admin",
            "code": "guess",
        }
        details = [client.post("/auth/signup", json=payload).json()["detail"] for _ in range(3)]
        assert details[0] == "Invalid admin code. Please check and try again."
        assert details[1] == "Invalid admin code. Please check and try again."
        assert details[2] == "Too many failed attempts. Please sign up with a user account."

    def test_signin_wrong_tab(self, client, sessions, provider, admin):
        provider.verify_password.return_value = {"localId": admin.firebase_uid, "idToken": "t", "expiresIn": "3600"}
        response = client.post("/auth/signin", json={"email": admin.email, "password": "secret1"})
        assert response.status_code == 401
        assert response.json()["detail"] == "Please use the Admin Account tab to sign in."
        provider.revoke.assert_called_once_with(admin.firebase_uid)

    def test_signin_admin(self, client, sessions, provider, admin):
        provider.verify_password.return_value = {"localId": admin.firebase_uid, "idToken": "t", "expiresIn": "3600"}
        payload = {"email": admin.email, "password": "secret1", "accountType": "admin"}
        response = client.post("/auth/signin", json=payload)
        assert response.status_code == 200
        assert response.json()["user"]["role"] == "admin"

    def test_users_admin_only(self, client, login, admin, owner):
        login(owner)
        assert client.get("/auth/users").status_code == 403
        login(admin)
        emails = [u["email"] for u in client.get("/auth/users").json()]
        assert emails == ["admin@example.com", "olivia@example.com"]

    def test_signout(self, client, login, sessions, provider, owner):
        login(owner)
        response = client.post("/auth/signout")
        assert response.json() == {"message": "Signed out"}
        provider.revoke.assert_called_once_with("uid-owner")
