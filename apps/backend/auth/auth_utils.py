# apps/backend/auth/auth_utils.py
from __future__ import annotations

import os
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt
from fastapi import Header

from linguista.errors import Unauthenticated

logger = logging.getLogger(__name__)

JWT_SECRET = os.getenv("JWT_SECRET")
JWT_ALG = os.getenv("JWT_ALG", "HS256")
JWT_AUDIENCE = os.getenv("JWT_AUDIENCE", "authenticated")

if not JWT_SECRET:
    # fail at startup rather than accepting every request as anonymous
    raise RuntimeError("JWT_SECRET is not set in environment variables")


@dataclass(frozen=True)
class Principal:
    """The authenticated caller as issued by the auth provider."""
    id: str
    email: Optional[str] = None


def create_access_token(
    user_id: str,
    email: Optional[str],
    expires_minutes: int = 60,
) -> str:
    payload = {
        "sub": str(user_id),
        "email": email,
        "aud": JWT_AUDIENCE,
        "exp": datetime.now(timezone.utc) + timedelta(minutes=expires_minutes),
    }
    return jwt.encode(payload, JWT_SECRET, algorithm=JWT_ALG)


def decode_token(token: str) -> Optional[dict]:
    try:
        return jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALG], audience=JWT_AUDIENCE)
    except jwt.PyJWTError as e:
        logger.info("Rejected bearer token: %s", type(e).__name__)
        return None


def get_current_user(authorization: Optional[str] = Header(default=None)) -> Principal:
    """
    FastAPI dependency: Authorization: Bearer <jwt> -> Principal.

    Runs before any store access; every failure is Unauthenticated.
    """
    if not authorization or not authorization.startswith("Bearer "):
        raise Unauthenticated()

    token = authorization[len("Bearer "):].strip()
    payload = decode_token(token) if token else None
    if not payload or not payload.get("sub"):
        raise Unauthenticated()

    return Principal(id=str(payload["sub"]), email=payload.get("email"))
