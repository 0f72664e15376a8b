"""
Bearer credential resolution.

Access tokens are issued by the platform's auth service as HS256 JWTs.
User tokens carry the user id in ``sub`` and the ``authenticated``
audience; the service token used by admin tooling carries
``role: service_role`` and no audience. This module only verifies and
decodes them; who may do what is decided elsewhere.
"""

import os
from typing import Optional

import jwt
from fastapi import Header

from phynetix.exceptions import MissingAuthorization, Unauthorized
from phynetix.logging_config import get_logger, log_with_context

logger = get_logger("auth")

# No default: without a configured secret every token is rejected
JWT_SECRET = os.getenv("JWT_SECRET")
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
JWT_AUDIENCE = os.getenv("JWT_AUDIENCE", "authenticated")

SERVICE_ROLE = "service_role"


def _bearer_token(authorization: Optional[str]) -> str:
    if not authorization:
        raise MissingAuthorization()
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise Unauthorized()
    return token.strip()


def decode_claims(authorization: Optional[str], verify_audience: bool = True) -> dict:
    """Verify the token in an ``Authorization`` header and return its claims."""
    token = _bearer_token(authorization)
    if not JWT_SECRET:
        log_with_context(logger, "ERROR", "JWT_SECRET is not configured; rejecting bearer token")
        raise Unauthorized()
    try:
        if verify_audience:
            return jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALGORITHM],
                              audience=JWT_AUDIENCE)
        return jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALGORITHM],
                          options={"verify_aud": False})
    except jwt.PyJWTError as exc:
        log_with_context(logger, "WARNING",
            "Rejected bearer token: {}".format(exc.__class__.__name__))
        raise Unauthorized()


def resolve_user_id(authorization: Optional[str]) -> str:
    """Turn an ``Authorization`` header value into a user id or raise."""
    user_id = decode_claims(authorization).get("sub")
    if not user_id:
        raise Unauthorized()
    return str(user_id)


def get_current_user_id(authorization: Optional[str] = Header(None)) -> str:
    """FastAPI dependency: the authenticated caller's user id."""
    return resolve_user_id(authorization)


def require_service_role(authorization: Optional[str] = Header(None)) -> dict:
    """FastAPI dependency for maintenance endpoints run with the service token."""
    claims = decode_claims(authorization, verify_audience=False)
    if claims.get("role") != SERVICE_ROLE:
        log_with_context(logger, "WARNING", "Service endpoint called without service role",
            context={"user_id": str(claims.get("sub", ""))})
        raise Unauthorized()
    return claims
