"""
Identity token verification.

Tokens are issued by the external identity provider and signed with a shared
secret. A valid token yields the caller's ``user_id`` and ``platform_role``.
"""

import os
import logging
from typing import Optional, Dict
from jose import jwt, JWTError
from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)

IDENTITY_JWT_SECRET = os.getenv("IDENTITY_JWT_SECRET", "dev-identity-secret-change-me")
IDENTITY_JWT_ALGORITHM = os.getenv("IDENTITY_JWT_ALGORITHM", "HS256")


def verify_token(token: str) -> Optional[Dict]:
    """
    Decode and verify an identity token.

    Args:
        token: Encoded JWT

    Returns:
        ``{"user_id": int, "platform_role": str}`` or None if the token is
        invalid, expired, or carries no usable user id
    """
    try:
        payload = jwt.decode(
            token,
            IDENTITY_JWT_SECRET,
            algorithms=[IDENTITY_JWT_ALGORITHM],
            options={"verify_aud": False},
        )
    except JWTError as e:
        logger.debug(f"Token verification failed: {e}")
        return None

    raw_user_id = payload.get("user_id", payload.get("sub"))
    try:
        user_id = int(raw_user_id)
    except (TypeError, ValueError):
        return None

    return {
        "user_id": user_id,
        "platform_role": payload.get("platform_role") or "user",
    }


def create_token(user_id: int, platform_role: str = "user", expires_at: Optional[int] = None) -> str:
    """Sign an identity token (used by tooling and tests that stand in for the provider)."""
    claims = {"user_id": user_id, "platform_role": platform_role}
    if expires_at is not None:
        claims["exp"] = expires_at
    return jwt.encode(claims, IDENTITY_JWT_SECRET, algorithm=IDENTITY_JWT_ALGORITHM)
