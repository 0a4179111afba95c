"""Tests for Firebase-backed sign-up, sign-in and session tracking."""

from unittest.mock import MagicMock

import httpx
import pytest

from fieldtrack.errors import AuthError, PermissionDenied, ValidationError
from fieldtrack.models import ROLE_ADMIN, ROLE_USER
from fieldtrack.services.identity import (
    EMAIL_IN_USE,
    INVALID_CREDENTIALS,
    IdentityProvider,
    SessionManager,
    check_signup_code,
)


def token_for(uid):
    return {"localId": uid, "idToken": f"token-{uid}", "refreshToken": "r", "expiresIn": "1800"}


@pytest.fixture
def provider():
    provider = MagicMock()
    provider.create_account.return_value = "uid-new"
    provider.verify_password.side_effect = lambda email, password: token_for("uid-new")
    return provider


@pytest.fixture
def manager(provider):
    return SessionManager(provider)


class TestSignupCodes:
    def test_codes_per_role(self):
        check_signup_code(ROLE_ADMIN, "admin-secret")
        check_signup_code(ROLE_USER, "user-secret")

    def test_wrong_code(self):
        with pytest.raises(PermissionDenied, match="Invalid user code"):
            check_signup_code(ROLE_USER, "admin-secret")
        with pytest.raises(PermissionDenied, match="Invalid admin code"):
            check_signup_code(ROLE_ADMIN, None)


class TestSignUp:
    def test_creates_user_row_and_session(self, manager, db):
        events = []
        manager.on_auth_change(events.append)

        session = manager.sign_up(db, "nina@example.com", "secret1", "Nina", ROLE_ADMIN, "admin-secret")

        assert session.is_admin
        assert session.id_token == "token-uid-new"
        assert session.expires_in == 1800
        assert manager.current("uid-new") is session
        assert events == [session]

    def test_existing_email(self, manager, db, owner, provider):
        with pytest.raises(ValidationError, match=EMAIL_IN_USE):
            manager.sign_up(db, owner.email, "secret1", "Olivia", ROLE_USER, "user-secret")
        provider.create_account.assert_not_called()

    def test_bad_code_creates_nothing(self, manager, db, provider):
        with pytest.raises(PermissionDenied):
            manager.sign_up(db, "x@example.com", "secret1", "X", ROLE_USER, "nope")
        provider.create_account.assert_not_called()


class TestSignIn:
    def test_user_tab(self, manager, provider, db, owner):
        provider.verify_password.side_effect = None
        provider.verify_password.return_value = token_for(owner.firebase_uid)
        session = manager.sign_in(db, owner.email, "secret1")
        assert session.role == ROLE_USER
        provider.revoke.assert_not_called()

    def test_admin_tab_rejects_user(self, manager, provider, db, owner):
        provider.verify_password.side_effect = None
        provider.verify_password.return_value = token_for(owner.firebase_uid)
        with pytest.raises(AuthError, match="Invalid admin credentials"):
            manager.sign_in(db, owner.email, "secret1", ROLE_ADMIN)
        provider.revoke.assert_called_once_with(owner.firebase_uid)
        assert manager.current(owner.firebase_uid) is None

    def test_missing_account_row(self, manager, provider, db):
        provider.verify_password.side_effect = None
        provider.verify_password.return_value = token_for("uid-ghost")
        with pytest.raises(AuthError, match="not properly set up"):
            manager.sign_in(db, "ghost@example.com", "secret1")
        provider.revoke.assert_called_once_with("uid-ghost")

    def test_sign_out_notifies(self, manager, provider, db, owner):
        provider.verify_password.side_effect = None
        provider.verify_password.return_value = token_for(owner.firebase_uid)
        manager.sign_in(db, owner.email, "secret1")
        events = []
        unsubscribe = manager.on_auth_change(events.append)

        manager.sign_out(owner.firebase_uid)
        unsubscribe()
        manager.sign_out(owner.firebase_uid)

        assert events == [None]
        assert manager.current(owner.firebase_uid) is None


class TestVerifyPassword:
    def provider_for(self, handler):
        return IdentityProvider(api_key="web-key", http=httpx.Client(transport=httpx.MockTransport(handler)))

    def test_success(self):
        def handler(request):
            assert request.url.params["key"] == "web-key"
            return httpx.Response(200, json=token_for("uid-1"))

        assert self.provider_for(handler).verify_password("a@b.co", "secret1")["localId"] == "uid-1"

    @pytest.mark.parametrize(
        "reason,message",
        [
            ("INVALID_LOGIN_CREDENTIALS", INVALID_CREDENTIALS),
            ("USER_DISABLED", "This account has been disabled."),
            ("TOO_MANY_ATTEMPTS_TRY_LATER : Access disabled", "Too many failed attempts"),
        ],
    )
    def test_rejections(self, reason, message):
        provider = self.provider_for(lambda request: httpx.Response(400, json={"error": {"message": reason}}))
        with pytest.raises(AuthError) as exc:
            provider.verify_password("a@b.co", "wrong")
        assert exc.value.message.startswith(message)

    def test_network_failure(self):
        def handler(request):
            raise httpx.ConnectError("offline")

        with pytest.raises(AuthError, match="unavailable"):
            self.provider_for(handler).verify_password("a@b.co", "secret1")

    def test_missing_api_key(self):
        with pytest.raises(AuthError, match="not configured"):
            IdentityProvider(api_key="").verify_password("a@b.co", "secret1")
