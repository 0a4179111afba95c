"""
Identity and session management backed by Firebase Authentication.

Accounts are created with the Admin SDK and passwords are checked through the
Identity Toolkit REST endpoint, which hands back a Firebase ID token the API
then accepts as a Bearer token. The role lives on our own User row and is
fixed when the account is created.
"""

import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass
from typing import Optional

import firebase_admin
import httpx
from firebase_admin import auth as firebase_auth
from firebase_admin import credentials
from firebase_admin import exceptions as firebase_exceptions
from sqlalchemy.orm import Session

from ..config import (
    ADMIN_SIGNUP_CODE,
    FIREBASE_CREDENTIALS_FILE,
    FIREBASE_PROJECT_ID,
    FIREBASE_WEB_API_KEY,
    USER_SIGNUP_CODE,
)
from ..domain.users.repository import UserRepository
from ..errors import AuthError, FieldTrackError, PermissionDenied, ValidationError
from ..models import ROLE_ADMIN, ROLE_USER, User

logger = logging.getLogger(__name__)

SIGN_IN_URL = "https://identitytoolkit.googleapis.com/v1/accounts:signInWithPassword"

INVALID_CREDENTIALS = "Invalid email id or password. Please try again."
EMAIL_IN_USE = "This email is already registered. Please sign in instead."


def init_firebase() -> None:
    """Initialize the Firebase Admin SDK once per process."""
    try:
        firebase_admin.get_app()
        return
    except ValueError:
        pass

    if FIREBASE_CREDENTIALS_FILE:
        cred = credentials.Certificate(FIREBASE_CREDENTIALS_FILE)
        firebase_admin.initialize_app(cred, {"projectId": FIREBASE_PROJECT_ID})
        logger.info("✅ Firebase Admin initialized with service account")
        return
    try:
        firebase_admin.initialize_app(credentials.ApplicationDefault(), {"projectId": FIREBASE_PROJECT_ID})
        logger.info("✅ Firebase Admin initialized with default credentials")
    except Exception as e:
        logger.warning(f"⚠️ No default credentials ({e}), initializing with project ID only")
        firebase_admin.initialize_app(options={"projectId": FIREBASE_PROJECT_ID})


@dataclass
class AuthSession:
    """An authenticated session; id_token is what clients send as Bearer"""

    uid: str
    email: str
    name: str
    role: str
    id_token: str
    refresh_token: Optional[str] = None
    expires_in: int = 3600

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN


class IdentityProvider:
    """Thin wrapper over the Firebase Admin SDK and Identity Toolkit REST API."""

    def __init__(self, api_key: Optional[str] = FIREBASE_WEB_API_KEY, http: Optional[httpx.Client] = None):
        self.api_key = api_key
        self._http = http

    @property
    def http(self) -> httpx.Client:
        if self._http is None:
            self._http = httpx.Client(timeout=10.0)
        return self._http

    def create_account(self, email: str, password: str, name: str) -> str:
        init_firebase()
        try:
            record = firebase_auth.create_user(email=email, password=password, display_name=name)
        except firebase_auth.EmailAlreadyExistsError as e:
            raise ValidationError(EMAIL_IN_USE) from e
        except (ValueError, firebase_exceptions.FirebaseError) as e:
            logger.error(f"❌ Firebase account creation failed for {email}: {e}")
            raise AuthError("Failed to create account") from e
        logger.info(f"🆕 Firebase account created: {email}")
        return record.uid

    def delete_account(self, uid: str) -> None:
        init_firebase()
        try:
            firebase_auth.delete_user(uid)
        except firebase_exceptions.FirebaseError as e:
            logger.error(f"❌ Failed to delete Firebase account {uid}: {e}")

    def verify_password(self, email: str, password: str) -> dict:
        """Returns the Identity Toolkit payload (localId, idToken, refreshToken, expiresIn)."""
        if not self.api_key:
            logger.error("❌ FIREBASE_WEB_API_KEY not configured")
            raise AuthError("Authentication is not configured")
        try:
            response = self.http.post(
                SIGN_IN_URL,
                params={"key": self.api_key},
                json={"email": email, "password": password, "returnSecureToken": True},
            )
        except httpx.HTTPError as e:
            logger.error(f"❌ Identity Toolkit request failed: {e}")
            raise AuthError("Authentication service unavailable. Please try again.") from e

        if response.status_code == 200:
            return response.json()

        try:
            reason = response.json().get("error", {}).get("message", "")
        except ValueError:
            reason = ""
        logger.info(f"🔐 Sign-in rejected for {email}: {reason or response.status_code}")
        if reason.startswith("USER_DISABLED"):
            raise AuthError("This account has been disabled.")
        if reason.startswith("TOO_MANY_ATTEMPTS_TRY_LATER"):
            raise AuthError("Too many failed attempts. Please try again later.")
        raise AuthError(INVALID_CREDENTIALS)

    def revoke(self, uid: str) -> None:
        init_firebase()
        try:
            firebase_auth.revoke_refresh_tokens(uid)
        except firebase_exceptions.FirebaseError as e:
            logger.warning(f"⚠️ Failed to revoke tokens for {uid}: {e}")


def signup_code_for(role: str) -> str:
    return ADMIN_SIGNUP_CODE if role == ROLE_ADMIN else USER_SIGNUP_CODE


def check_signup_code(role: str, code: Optional[str]) -> None:
    expected = signup_code_for(role)
    if not expected or code != expected:
        label = "admin" if role == ROLE_ADMIN else "user"
        raise PermissionDenied(f"Invalid {label} code. Please check and try again.")


AuthListener = Callable[[Optional[AuthSession]], None]


class SessionManager:
    """
    Owns sign-up, sign-in and sign-out and tracks active sessions by uid.

    Listeners registered with on_auth_change receive the new session after a
    successful sign-in/sign-up and None after sign-out.
    """

    def __init__(self, provider: Optional[IdentityProvider] = None):
        self.provider = provider or IdentityProvider()
        self._sessions: dict[str, AuthSession] = {}
        self._listeners: list[AuthListener] = []
        self._lock = threading.Lock()

    def current(self, uid: str) -> Optional[AuthSession]:
        return self._sessions.get(uid)

    def on_auth_change(self, callback: AuthListener) -> Callable[[], None]:
        with self._lock:
            self._listeners.append(callback)

        def unsubscribe() -> None:
            with self._lock:
                if callback in self._listeners:
                    self._listeners.remove(callback)

        return unsubscribe

    def _notify(self, session: Optional[AuthSession]) -> None:
        for listener in list(self._listeners):
            try:
                listener(session)
            except Exception as e:
                logger.error(f"❌ Auth listener failed: {e}")

    def _open(self, user: User, token: dict) -> AuthSession:
        session = AuthSession(
            uid=user.firebase_uid,
            email=user.email,
            name=user.full_name or "",
            role=user.role,
            id_token=token["idToken"],
            refresh_token=token.get("refreshToken"),
            expires_in=int(token.get("expiresIn", 3600)),
        )
        with self._lock:
            self._sessions[session.uid] = session
        self._notify(session)
        return session

    def sign_up(
        self, db: Session, email: str, password: str, name: str, role: str = ROLE_USER, code: Optional[str] = None
    ) -> AuthSession:
        if role not in (ROLE_USER, ROLE_ADMIN):
            raise ValidationError(f"Unknown account type: {role}")
        check_signup_code(role, code)
        if UserRepository.get_by_email(db, email):
            raise ValidationError(EMAIL_IN_USE)

        uid = self.provider.create_account(email, password, name)
        try:
            user = UserRepository.create_user(db, uid, email, name, role)
        except FieldTrackError:
            # Do not leave an orphaned Firebase account behind
            self.provider.delete_account(uid)
            raise

        token = self.provider.verify_password(email, password)
        logger.info(f"✅ {role.capitalize()} account created: {email}")
        return self._open(user, token)

    def sign_in(self, db: Session, email: str, password: str, attempted_role: str = ROLE_USER) -> AuthSession:
        token = self.provider.verify_password(email, password)
        user = UserRepository.get_by_firebase_uid(db, token["localId"])

        if user is None:
            self.provider.revoke(token["localId"])
            raise AuthError("Account not properly set up. Please contact support.")
        if attempted_role == ROLE_ADMIN and not user.is_admin:
            self.provider.revoke(user.firebase_uid)
            raise AuthError("Invalid admin credentials. Please use the User Account tab.")
        if attempted_role == ROLE_USER and user.is_admin:
            self.provider.revoke(user.firebase_uid)
            raise AuthError("Please use the Admin Account tab to sign in.")

        logger.info(f"🔓 Signed in: {email} ({user.role})")
        return self._open(user, token)

    def sign_out(self, uid: str) -> None:
        self.provider.revoke(uid)
        with self._lock:
            self._sessions.pop(uid, None)
        logger.info(f"👋 Signed out: {uid}")
        self._notify(None)


_session_manager: Optional[SessionManager] = None


def get_session_manager() -> SessionManager:
    global _session_manager
    if _session_manager is None:
        _session_manager = SessionManager()
    return _session_manager
