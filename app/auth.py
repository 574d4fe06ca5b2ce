import base64
import json
import logging
import time

import httpx
from cryptography.hazmat.backends import default_backend
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import padding
from cryptography.x509 import load_pem_x509_certificate
from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from .config import FIREBASE_PROJECT_ID
from .database import get_db
from .models import MANAGER_ROLES, User, UserRole

logger = logging.getLogger(__name__)

security = HTTPBearer()

GOOGLE_CERTS_URL = (
    "https://www.googleapis.com/robot/v1/metadata/x509/securetoken@system.gserviceaccount.com"
)

# Cache for Google's public keys
_cached_keys = None


async def get_google_public_keys():
    """Fetch Google's public keys for Firebase token verification"""
    global _cached_keys
    if _cached_keys:
        logger.debug("✅ Using cached Google public keys")
        return _cached_keys

    try:
        async with httpx.AsyncClient() as client:
            response = await client.get(GOOGLE_CERTS_URL)
            if response.status_code == 200:
                _cached_keys = response.json()
                logger.info(f"✅ Fetched {len(_cached_keys)} Google public keys")
                return _cached_keys
            else:
                logger.error(f"❌ Failed to fetch Google public keys: HTTP {response.status_code}")
    except Exception as e:
        logger.error(f"❌ Error fetching Google public keys: {str(e)}")
    return None


def _b64decode(segment: str) -> bytes:
    pad = 4 - len(segment) % 4
    return base64.urlsafe_b64decode(segment + ("=" * pad if pad != 4 else ""))


async def verify_firebase_token(token: str) -> dict:
    """
    Verify Firebase ID token with full cryptographic signature verification.
    Uses Google's public keys to verify the JWT signature.
    """
    global _cached_keys

    if not FIREBASE_PROJECT_ID:
        logger.error("❌ FIREBASE_PROJECT_ID not configured")
        raise HTTPException(status_code=500, detail="Firebase not configured")

    try:
        parts = token.split(".")
        if len(parts) != 3:
            logger.error("❌ Invalid token format: wrong number of parts")
            raise HTTPException(status_code=401, detail="Invalid token format")

        header_b64, payload_b64, signature_b64 = parts

        try:
            header = json.loads(_b64decode(header_b64))
        except Exception as e:
            logger.error(f"❌ Failed to decode token header: {str(e)}")
            raise HTTPException(status_code=401, detail="Invalid token header") from e

        kid = header.get("kid")
        if header.get("alg") != "RS256":
            logger.error(f"❌ Invalid token algorithm: {header.get('alg')}")
            raise HTTPException(status_code=401, detail="Invalid token algorithm")
        if not kid:
            logger.error("❌ Token missing key ID")
            raise HTTPException(status_code=401, detail="Token missing key ID")

        public_keys = await get_google_public_keys()
        if not public_keys or kid not in public_keys:
            logger.warning(f"⚠️ Key ID {kid} not found in public keys, invalidating cache and retrying")
            _cached_keys = None
            public_keys = await get_google_public_keys()
            if not public_keys or kid not in public_keys:
                logger.error(f"❌ Key ID {kid} not found in public keys after retry")
                raise HTTPException(status_code=401, detail="Unable to verify token signature")

        cert = load_pem_x509_certificate(public_keys[kid].encode(), default_backend())

        try:
            cert.public_key().verify(
                _b64decode(signature_b64),
                f"{header_b64}.{payload_b64}".encode(),
                padding.PKCS1v15(),
                hashes.SHA256(),
            )
        except Exception as e:
            logger.error(f"❌ Token signature verification failed: {str(e)}")
            raise HTTPException(status_code=401, detail="Invalid token signature") from e

        decoded_payload = json.loads(_b64decode(payload_b64))

        if decoded_payload.get("aud") != FIREBASE_PROJECT_ID:
            logger.error("❌ Token audience mismatch")
            raise HTTPException(status_code=401, detail="Invalid token audience")

        if decoded_payload.get("iss") != f"https://securetoken.google.com/{FIREBASE_PROJECT_ID}":
            logger.error("❌ Token issuer mismatch")
            raise HTTPException(status_code=401, detail="Invalid token issuer")

        if decoded_payload.get("exp", 0) < time.time():
            raise HTTPException(
                status_code=401,
                detail="Token has expired. Please refresh your session.",
                headers={"X-Token-Expired": "true"},
            )

        # Allow 60 seconds clock skew
        if decoded_payload.get("iat", 0) > time.time() + 60:
            logger.warning("⚠️ Token issued in the future")
            raise HTTPException(status_code=401, detail="Invalid token")

        logger.debug(f"✅ Token cryptographically verified for user: {decoded_payload.get('email')}")
        return decoded_payload

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"❌ Token verification failed: {type(e).__name__}: {str(e)}")
        raise HTTPException(status_code=401, detail="Token verification failed") from e


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: Session = Depends(get_db),
) -> User:
    """Get current user from Firebase token"""
    if not credentials:
        raise HTTPException(
            status_code=401,
            detail="Not authenticated. Please provide a valid Bearer token in the Authorization header.",
        )

    token = credentials.credentials
    if len(token.split(".")) != 3:
        logger.warning(f"⚠️ Malformed token received, token length: {len(token)}")
        raise HTTPException(status_code=401, detail="Invalid token format. Expected a valid JWT token.")

    decoded_token = await verify_firebase_token(token)

    # Firebase ID tokens use 'sub' as the user ID claim
    firebase_uid = decoded_token.get("sub") or decoded_token.get("user_id")
    if not firebase_uid:
        logger.error(f"❌ Token missing user ID claim. Available claims: {list(decoded_token.keys())}")
        raise HTTPException(status_code=401, detail="Invalid token claims")

    user = db.query(User).filter(User.firebase_uid == firebase_uid).first()
    if not user:
        email = decoded_token.get("email") or ""
        logger.info(f"🆕 Creating new user: {email}")
        user = User(
            firebase_uid=firebase_uid,
            email=email,
            full_name=decoded_token.get("name", ""),
            role=UserRole.TEAM_MEMBER.value,
        )
        db.add(user)
        try:
            db.commit()
            db.refresh(user)
        except Exception as e:
            db.rollback()
            logger.error(f"❌ Failed to create user {email}: {str(e)}")
            raise HTTPException(
                status_code=409,
                detail="This email is already registered. Please sign in with your existing account.",
            ) from e

    logger.debug(f"✅ User authenticated: {user.email}")
    return user


async def require_manager_role(user: User = Depends(get_current_user)) -> User:
    """
    Current user, restricted to admins and service managers.
    Use this dependency for routes that manage calendars on behalf of hosts.
    """
    if user.role not in MANAGER_ROLES:
        logger.warning(f"⚠️ User {user.email} ({user.role}) attempted a manager-only route")
        raise HTTPException(status_code=403, detail="Admin or service manager role required")
    return user
