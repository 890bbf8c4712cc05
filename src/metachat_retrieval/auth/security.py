"""
JWT Verification & Scope Enforcement

1. Verifies bearer JWTs issued by the platform API.
2. Enforces scope-based authorization rules.
3. Produces a validated `CallerContext` for downstream routes.

Expected claims: iss, aud, iat, exp, sub, tenant_id, scope (list).
"""

from __future__ import annotations

import jwt
from typing import Callable

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from pydantic import ValidationError

from ..config import settings
from .models import CallerContext


# ---------------------------------------------------------------------
# Security Scheme
# ---------------------------------------------------------------------

security = HTTPBearer(auto_error=True)


class JWTVerificationError(RuntimeError):
    """Raised internally when token verification cannot proceed."""


# ---------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------

def _decode_token(token: str) -> dict:
    if not settings.jwt_secret:
        raise JWTVerificationError("Missing jwt_secret in configuration.")

    return jwt.decode(
        token,
        settings.jwt_secret.get_secret_value(),
        algorithms=[settings.jwt_algo],
        audience=settings.jwt_audience,
        issuer=settings.jwt_issuer,
        options={
            "require": ["iss", "aud", "iat", "exp", "sub", "tenant_id", "scope"],
        },
    )


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=detail)


# ---------------------------------------------------------------------
# Public Authentication Dependency
# ---------------------------------------------------------------------

def verify_jwt(
    creds: HTTPAuthorizationCredentials = Depends(security),
) -> CallerContext:
    """
    Verify the bearer token and construct a CallerContext.

    Raises
    ------
    HTTPException(401) for invalid or expired tokens, 500 if no secret is
    configured.
    """
    try:
        payload = _decode_token(creds.credentials)
    except jwt.ExpiredSignatureError:
        raise _unauthorized("Token has expired.")
    except jwt.InvalidAudienceError:
        raise _unauthorized("Invalid token audience.")
    except jwt.InvalidIssuerError:
        raise _unauthorized("Invalid token issuer.")
    except jwt.InvalidTokenError:
        raise _unauthorized("Invalid or malformed token.")
    except JWTVerificationError:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="JWT verification configuration error.",
        )

    scopes = payload.get("scope")
    if not isinstance(scopes, list):
        raise _unauthorized("'scope' claim must be a list.")

    try:
        return CallerContext(
            subject=str(payload["sub"]),
            tenant_id=payload["tenant_id"],
            scopes=scopes,
        )
    except (ValidationError, ValueError):
        raise _unauthorized("Token carries an invalid 'tenant_id' claim.")


# ---------------------------------------------------------------------
# Scope enforcement helper
# ---------------------------------------------------------------------

def require_scopes(*required_scopes: str) -> Callable:
    """
    Create a FastAPI dependency that enforces scope-based access control.

    Example:
        @router.post("/retrieve")
        async def retrieve(caller = Depends(require_scopes("retrieve"))):
            ...
    """

    def check_scopes(
        caller: CallerContext = Depends(verify_jwt),
    ) -> CallerContext:
        missing = [s for s in required_scopes if s not in caller.scopes]

        if missing:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Missing required scope(s): {', '.join(missing)}",
            )

        return caller

    return check_scopes
