"""Access token verification.

Tokens are issued by the identity service with the shared signing key; this
service only validates them.
"""

from typing import Any

from jose import JWTError, jwt

from coursemarket.config.settings import get_settings


def decode_access_token(token: str) -> dict[str, Any]:
    """Decode and validate an access token.

    Validates:
    - JWT signature
    - Expiration time
    - Token type == "access"
    - Presence of sub/email/role claims

    Raises:
        JWTError: If token is invalid, expired, or wrong type
    """
    settings = get_settings()

    payload = jwt.decode(
        token,
        settings.auth_secret_key,
        algorithms=[settings.auth_algorithm],
    )

    if payload.get("type") != "access":
        msg = "Invalid token type: expected 'access'"
        raise JWTError(msg)

    missing = {"sub", "email", "role"} - payload.keys()
    if missing:
        msg = f"Access token missing claims: {', '.join(sorted(missing))}"
        raise JWTError(msg)

    return payload
