"""Bearer token authentication for the upload API."""

import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Mapping, Optional

from fastapi import Request
from jose import ExpiredSignatureError, JWTError, jwt

from api.errors import UnauthorizedError

# Security event logger - separate from regular application logging
security_logger = logging.getLogger("security.auth")

logger = logging.getLogger(__name__)

TOKEN_ISSUER = "vidvault-access"


def get_bearer_token(headers: Mapping[str, str]) -> str:
    """
    Extract the token from an `Authorization: Bearer <token>` header.

    Raises UnauthorizedError if the header is missing or not a bearer credential.
    """
    auth_header = headers.get("authorization") or headers.get("Authorization")
    if not auth_header:
        raise UnauthorizedError("Missing Authorization header")

    scheme, _, token = auth_header.strip().partition(" ")
    token = token.strip()
    if scheme.lower() != "bearer" or not token:
        raise UnauthorizedError("Malformed Authorization header")
    return token


def make_jwt(user_id: str, secret: str, expires_in: timedelta, algorithm: str = "HS256") -> str:
    """Sign an access token whose subject is the user id."""
    now = datetime.now(timezone.utc)
    payload = {
        "iss": TOKEN_ISSUER,
        "sub": str(user_id),
        "iat": now,
        "exp": now + expires_in,
        "jti": str(uuid.uuid4()),
    }
    return jwt.encode(payload, secret, algorithm=algorithm)


def validate_jwt(token: str, secret: str, algorithm: str = "HS256") -> str:
    """
    Validate a signed token and return the user id it was issued for.

    Raises UnauthorizedError for bad signatures, expired tokens, a foreign
    issuer or a missing subject.
    """
    if not secret:
        # Refuse to validate against an empty key rather than accept forged tokens
        logger.error("JWT secret is not configured; rejecting all tokens")
        raise UnauthorizedError("Invalid token")

    try:
        claims = jwt.decode(token, secret, algorithms=[algorithm], issuer=TOKEN_ISSUER)
    except ExpiredSignatureError:
        security_logger.warning("Authentication failed: expired token", extra={"event": "auth_failure", "reason": "expired"})
        raise UnauthorizedError("Token expired")
    except JWTError as e:
        security_logger.warning(
            "Authentication failed: invalid token",
            extra={"event": "auth_failure", "reason": "invalid", "error": str(e)},
        )
        raise UnauthorizedError("Invalid token")

    user_id: Optional[str] = claims.get("sub")
    if not user_id:
        security_logger.warning("Authentication failed: token has no subject", extra={"event": "auth_failure", "reason": "no_subject"})
        raise UnauthorizedError("Invalid token")
    return user_id


def authenticate_request(request: Request, secret: str, algorithm: str = "HS256") -> str:
    """Resolve the calling user id from the request headers."""
    token = get_bearer_token(request.headers)
    return validate_jwt(token, secret, algorithm)
