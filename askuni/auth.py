"""Bearer credential resolution.

Tokens are issued by the account service; this module only verifies
them. Chat endpoints treat a missing, invalid or expired token as a
guest caller, history endpoints reject it.
"""

import logging
import time

import jwt

from askuni.config import AuthConfig, get_auth_config

logger = logging.getLogger(__name__)


def extract_bearer_token(authorization: str | None) -> str | None:
    """Extract the token from an ``Authorization`` header value."""
    if authorization and authorization.startswith("Bearer "):
        return authorization[7:].strip() or None
    return None


def create_access_token(
    email: str,
    expires_in: int = 7 * 24 * 3600,
    config: AuthConfig | None = None,
) -> str:
    """Create a signed token for ``email``.

    Args:
        email: Identity carried in the token.
        expires_in: Lifetime in seconds.
        config: Optional settings override.

    Returns:
        Encoded JWT string.
    """
    config = config or get_auth_config()
    now = int(time.time())
    payload = {"email": email, "sub": email, "iat": now, "exp": now + expires_in}
    return jwt.encode(payload, config.jwt_secret, algorithm=config.jwt_algorithm)


def decode_access_token(token: str, config: AuthConfig | None = None) -> str | None:
    """Return the identity in a token, or None if it is invalid or expired."""
    config = config or get_auth_config()
    try:
        payload = jwt.decode(token, config.jwt_secret, algorithms=[config.jwt_algorithm])
    except jwt.InvalidTokenError as e:
        logger.warning(f"Rejected bearer token: {e}")
        return None
    email = payload.get("email") or payload.get("sub")
    return str(email) if email else None


def resolve_identity(authorization: str | None, config: AuthConfig | None = None) -> str | None:
    """Resolve an ``Authorization`` header to an identity, None for guests."""
    token = extract_bearer_token(authorization)
    if token is None:
        return None
    return decode_access_token(token, config)
