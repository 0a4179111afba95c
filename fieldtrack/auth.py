import base64
import json
import logging
import time

import httpx
from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import padding
from cryptography.x509 import load_pem_x509_certificate
from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from .config import FIREBASE_PROJECT_ID
from .database import get_db
from .domain.users.repository import UserRepository
from .models import User

logger = logging.getLogger(__name__)

security = HTTPBearer(auto_error=False)

GOOGLE_CERTS_URL = "https://www.googleapis.com/robot/v1/metadata/x509/securetoken@system.gserviceaccount.com"
CLOCK_SKEW_SECONDS = 60

# Cache for Google's public keys
_cached_keys = None


async def get_google_public_keys(refresh: bool = False):
    """Fetch Google's public keys for Firebase token verification"""
    global _cached_keys
    if _cached_keys and not refresh:
        return _cached_keys

    try:
        async with httpx.AsyncClient(timeout=10.0) as client:
            response = await client.get(GOOGLE_CERTS_URL)
    except httpx.HTTPError as e:
        logger.error(f"❌ Error fetching Google public keys: {e}")
        return None

    if response.status_code != 200:
        logger.error(f"❌ Failed to fetch Google public keys: HTTP {response.status_code}")
        return None

    _cached_keys = response.json()
    logger.info(f"✅ Fetched {len(_cached_keys)} Google public keys")
    return _cached_keys


def _b64decode(segment: str) -> bytes:
    return base64.urlsafe_b64decode(segment + "=" * (-len(segment) % 4))


def _unauthorized(detail: str, **kwargs) -> HTTPException:
    return HTTPException(status_code=401, detail=detail, **kwargs)


def check_claims(claims: dict, now: float = None) -> None:
    """Validate audience, issuer and timing claims of a decoded Firebase ID token."""
    now = time.time() if now is None else now

    if claims.get("aud") != FIREBASE_PROJECT_ID:
        logger.error("❌ Token audience mismatch")
        raise _unauthorized("Invalid token audience")
    if claims.get("iss") != f"https://securetoken.google.com/{FIREBASE_PROJECT_ID}":
        logger.error("❌ Token issuer mismatch")
        raise _unauthorized("Invalid token issuer")
    if claims.get("exp", 0) < now:
        raise _unauthorized(
            "Token has expired. Please sign in again.", headers={"X-Token-Expired": "true"}
        )
    if claims.get("iat", 0) > now + CLOCK_SKEW_SECONDS:
        logger.warning("⚠️ Token issued in the future")
        raise _unauthorized("Invalid token")
    if not claims.get("sub"):
        raise _unauthorized("Invalid token claims")


async def verify_firebase_token(token: str) -> dict:
    """
    Verify a Firebase ID token: RS256 signature against Google's published
    certificates, then the standard claims. Returns the decoded payload.
    """
    if not FIREBASE_PROJECT_ID:
        logger.error("❌ FIREBASE_PROJECT_ID not configured")
        raise HTTPException(status_code=500, detail="Firebase not configured")

    parts = token.split(".")
    if len(parts) != 3:
        raise _unauthorized("Invalid token format. Expected a valid JWT token.")
    header_b64, payload_b64, signature_b64 = parts

    try:
        header = json.loads(_b64decode(header_b64))
        claims = json.loads(_b64decode(payload_b64))
        signature = _b64decode(signature_b64)
    except ValueError as e:
        logger.error(f"❌ Failed to decode token: {e}")
        raise _unauthorized("Invalid token") from e

    if header.get("alg") != "RS256" or not header.get("kid"):
        logger.error(f"❌ Unsupported token header: alg={header.get('alg')}")
        raise _unauthorized("Invalid token algorithm")

    kid = header["kid"]
    keys = await get_google_public_keys()
    if not keys or kid not in keys:
        # Google rotates keys; retry once with a fresh set
        logger.warning(f"⚠️ Key ID {kid} not cached, refreshing public keys")
        keys = await get_google_public_keys(refresh=True)
        if not keys or kid not in keys:
            raise _unauthorized("Unable to verify token signature")

    public_key = load_pem_x509_certificate(keys[kid].encode()).public_key()
    try:
        public_key.verify(
            signature, f"{header_b64}.{payload_b64}".encode(), padding.PKCS1v15(), hashes.SHA256()
        )
    except (InvalidSignature, TypeError) as e:
        logger.error(f"❌ Token signature verification failed: {e}")
        raise _unauthorized("Invalid token signature") from e

    check_claims(claims)
    logger.debug(f"✅ Token verified for user: {claims.get('email')}")
    return claims


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: Session = Depends(get_db),
) -> User:
    """Resolve the Bearer token to the stored account"""
    if not credentials:
        raise _unauthorized("Not authenticated. Please sign in.")

    claims = await verify_firebase_token(credentials.credentials)
    user = UserRepository.get_by_firebase_uid(db, claims["sub"])
    if user is None:
        # Accounts are only created through sign-up, which fixes the role
        logger.warning(f"⚠️ Verified token for unknown account: {claims.get('email')}")
        raise _unauthorized("Account not properly set up. Please contact support.")
    return user


async def require_admin(user: User = Depends(get_current_user)) -> User:
    if not user.is_admin:
        logger.warning(f"⚠️ Non-admin {user.email} attempted an admin action")
        raise HTTPException(status_code=403, detail="Admin access required")
    return user
