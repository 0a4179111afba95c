import logging

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from ..auth import get_current_user, require_admin
from ..database import get_db
from ..domain.users.repository import UserRepository
from ..errors import PermissionDenied
from ..models import ROLE_ADMIN, User
from ..rate_limiter import check_rate_limit, client_ip, create_rate_limiter, get_redis_client
from ..schemas import MessageResponse, SessionResponse, SignInRequest, SignUpRequest, UserResponse
from ..services.identity import AuthSession, SessionManager, check_signup_code, get_session_manager
from ..shared.validators import validate_auth_form

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["Authentication"])

rate_limit_signup = create_rate_limiter(limit=10, window_seconds=3600, key_prefix="signup")
rate_limit_signin = create_rate_limiter(limit=20, window_seconds=900, key_prefix="signin")

# Wrong admin codes allowed per IP before the admin sign-up is refused
ADMIN_CODE_MAX_FAILURES = 2
ADMIN_CODE_WINDOW_SECONDS = 900


def user_response(user: User) -> UserResponse:
    return UserResponse(
        id=user.id,
        uid=user.firebase_uid,
        name=user.full_name,
        email=user.email,
        role=user.role,
        createdAt=user.created_at,
    )


def session_response(session: AuthSession, user: User) -> SessionResponse:
    return SessionResponse(
        idToken=session.id_token,
        refreshToken=session.refresh_token,
        expiresIn=session.expires_in,
        user=user_response(user),
    )


def check_admin_code(request: Request, code: str) -> None:
    """Verify the admin sign-up code, refusing after repeated wrong guesses from one IP."""
    try:
        check_signup_code(ROLE_ADMIN, code)
    except PermissionDenied:
        key = f"admin_code_failures:{client_ip(request)}"
        allowed, failures, _ = check_rate_limit(
            key, ADMIN_CODE_MAX_FAILURES, ADMIN_CODE_WINDOW_SECONDS, get_redis_client()
        )
        if not allowed:
            logger.warning(f"🚫 Too many wrong admin codes from {client_ip(request)}")
            raise PermissionDenied("Too many failed attempts. Please sign up with a user account.")
        raise


@router.post("/signup", response_model=SessionResponse, status_code=201)
async def signup(
    data: SignUpRequest,
    request: Request,
    db: Session = Depends(get_db),
    sessions: SessionManager = Depends(get_session_manager),
    _: None = Depends(rate_limit_signup),
):
    """Create an account; the role is fixed here and never changes"""
    email = validate_auth_form(data.email, data.password, data.name, is_sign_up=True)
    if data.accountType == ROLE_ADMIN:
        check_admin_code(request, data.code)

    session = sessions.sign_up(db, email, data.password, data.name.strip(), data.accountType, data.code)
    user = UserRepository.get_by_firebase_uid(db, session.uid)
    return session_response(session, user)


@router.post("/signin", response_model=SessionResponse)
async def signin(
    data: SignInRequest,
    db: Session = Depends(get_db),
    sessions: SessionManager = Depends(get_session_manager),
    _: None = Depends(rate_limit_signin),
):
    email = validate_auth_form(data.email, data.password)
    session = sessions.sign_in(db, email, data.password, data.accountType)
    user = UserRepository.get_by_firebase_uid(db, session.uid)
    return session_response(session, user)


@router.post("/signout", response_model=MessageResponse)
async def signout(
    current_user: User = Depends(get_current_user),
    sessions: SessionManager = Depends(get_session_manager),
):
    sessions.sign_out(current_user.firebase_uid)
    return MessageResponse(message="Signed out")


@router.get("/me", response_model=UserResponse)
async def get_me(current_user: User = Depends(get_current_user)):
    return user_response(current_user)


@router.get("/users", response_model=list[UserResponse])
async def list_users(
    _: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    """Accounts for the admin owner filter"""
    return [user_response(u) for u in db.query(User).order_by(User.full_name, User.email).all()]
