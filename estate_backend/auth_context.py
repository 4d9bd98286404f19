"""
estate_backend/auth_context.py

Shared authentication primitives for FastAPI dependency injection.

Contains:
- AuthContext: immutable identity resolved from a signed token
- resolve_identity: optional resolver (bearer header or auth cookie)
- require_auth_context: FastAPI dependency for auth enforcement
- create_access_token / verify_token: JWT helpers
- hash_password / verify_password: salted PBKDF2 credentials

This module MUST NOT import estate_backend.main to avoid circular imports.
"""

from __future__ import annotations

import hashlib
import hmac
import secrets
from datetime import datetime, timedelta
from typing import Optional

import jwt
from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel

from estate_backend.config import (
    ACCESS_TOKEN_MINUTES,
    ALGORITHM,
    AUTH_COOKIE_NAME,
    IS_DEV,
    SECRET_KEY,
)
from estate_backend.errors import ApiError, ErrorKind
from estate_backend.models import Role

# auto_error=False so a missing header falls through to the cookie
security = HTTPBearer(auto_error=False)

PBKDF2_ITERATIONS = 260_000


# ---------------------------------------------------------
# Password hashing
# ---------------------------------------------------------
def hash_password(password: str) -> str:
    salt = secrets.token_hex(16)
    digest = hashlib.pbkdf2_hmac("sha256", password.encode(), salt.encode(), PBKDF2_ITERATIONS).hex()
    return f"pbkdf2_sha256${PBKDF2_ITERATIONS}${salt}${digest}"


def verify_password(password: str, password_hash: str) -> bool:
    try:
        _, iterations, salt, digest = password_hash.split("$")
    except (AttributeError, ValueError):
        return False
    candidate = hashlib.pbkdf2_hmac("sha256", password.encode(), salt.encode(), int(iterations)).hex()
    return hmac.compare_digest(candidate, digest)


def generate_numeric_code(digits: int = 6) -> str:
    """Random zero-padded numeric code (verification codes and OTPs)."""
    return str(secrets.randbelow(10 ** digits)).zfill(digits)


# ---------------------------------------------------------
# JWT Tokens
# ---------------------------------------------------------
def create_access_token(user_id: str, role: str, email: str, minutes: int = ACCESS_TOKEN_MINUTES) -> str:
    now = datetime.utcnow()
    payload = {
        "sub": str(user_id),
        "role": role,
        "email": email,
        "iat": now,
        "exp": now + timedelta(minutes=minutes),
    }
    return jwt.encode(payload, SECRET_KEY, algorithm=ALGORITHM)


def verify_token(token: str) -> dict:
    """
    Verify a JWT access token and return the decoded payload.

    Raises:
        ApiError(401): If the token is expired or invalid
    """
    try:
        return jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
    except jwt.ExpiredSignatureError:
        raise ApiError(ErrorKind.AUTHENTICATION, "Token expired")
    except jwt.InvalidTokenError:
        raise ApiError(ErrorKind.AUTHENTICATION, "Invalid token")


# ---------------------------------------------------------
# AuthContext
# ---------------------------------------------------------
class AuthContext(BaseModel):
    """
    Identity derived from a verified token.

    The only source of truth for user_id and role inside protected handlers.
    Never trust owner ids from request bodies.
    """
    user_id: str
    role: Role
    email: str

    class Config:
        frozen = True


def extract_token(request: Request, credentials: Optional[HTTPAuthorizationCredentials]) -> Optional[str]:
    if credentials and credentials.credentials:
        return credentials.credentials
    return request.cookies.get(AUTH_COOKIE_NAME) or None


def resolve_identity(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> Optional[AuthContext]:
    """
    Resolve the caller's identity without enforcing it.

    Returns None when no token is presented; raises 401 when a token is
    presented but cannot be verified.
    """
    token = extract_token(request, credentials)
    if not token:
        return None

    payload = verify_token(token)
    user_id = payload.get("sub")
    role = payload.get("role")
    if not user_id or not role:
        print("[AUTH] Missing sub/role in token payload")
        raise ApiError(ErrorKind.AUTHENTICATION, "Invalid token payload")

    try:
        role_value = Role(role)
    except ValueError:
        print(f"[AUTH] Unknown role in token: {role!r}")
        raise ApiError(ErrorKind.AUTHENTICATION, "Invalid token payload")

    ctx = AuthContext(user_id=str(user_id), role=role_value, email=payload.get("email", ""))
    if IS_DEV:
        print(f"[AUTH] Authenticated: user_id={ctx.user_id}, role={ctx.role.value}")
    return ctx


def require_auth_context(identity: Optional[AuthContext] = Depends(resolve_identity)) -> AuthContext:
    """
    Auth context dependency for protected routes.

    Raises:
        ApiError(401): If no token was presented (or it failed verification)
    """
    if identity is None:
        raise ApiError(ErrorKind.AUTHENTICATION, "Authentication required")
    return identity
