"""JWT access token validation (ES256).

Tokens are issued by the platform's identity service; this service only
verifies them. The claims it relies on are ``sub`` (the user id, which
for students is also the id keying their attempts) and ``roles``.
"""

from __future__ import annotations

import uuid
from datetime import UTC, datetime, timedelta

import jwt
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec

from attempt_service.core.config import SETTINGS

# ---------------------------------------------------------------------------
# Key management
# ---------------------------------------------------------------------------
# Verification uses the issuer's public key from JWT_PUBLIC_KEY. Without
# one (dev/test) it falls back to an ephemeral EC key pair generated on
# import, so tokens minted by create_access_token verify against it.
_private_key = ec.generate_private_key(ec.SECP256R1())


def load_public_key(pem: str | None) -> ec.EllipticCurvePublicKey:
    """Parse the issuer's PEM public key, or use the ephemeral dev key."""
    if pem is None:
        return _private_key.public_key()
    key = serialization.load_pem_public_key(pem.encode())
    if not isinstance(key, ec.EllipticCurvePublicKey):
        raise ValueError("JWT_PUBLIC_KEY must be an EC public key for ES256")
    return key


_public_key = load_public_key(SETTINGS.jwt_public_key)

ALGORITHM = "ES256"
ISSUER = "auth-service"
AUDIENCE = "attempt-service"
ACCESS_TOKEN_TTL_MIN = 15


def create_access_token(
    *,
    sub: str,
    roles: list[str] | None = None,
    ttl_minutes: int = ACCESS_TOKEN_TTL_MIN,
) -> str:
    """Build and sign an access token (dev tooling and tests).

    Signed with the ephemeral key, so these only verify while
    JWT_PUBLIC_KEY is unset.
    """
    now = datetime.now(UTC)
    payload = {
        "sub": sub,
        "iss": ISSUER,
        "aud": AUDIENCE,
        "exp": now + timedelta(minutes=ttl_minutes),
        "iat": now,
        "jti": str(uuid.uuid4()),
        "roles": roles or ["student"],
    }
    return jwt.encode(payload, _private_key, algorithm=ALGORITHM)


def decode_access_token(token: str) -> dict:
    """Verify signature and claims, return the payload.

    Pins algorithm to ES256 to prevent alg:none and alg-switching attacks.

    Raises jwt.ExpiredSignatureError, jwt.InvalidTokenError on failure.
    """
    return jwt.decode(
        token,
        _public_key,
        algorithms=[ALGORITHM],
        issuer=ISSUER,
        audience=AUDIENCE,
        options={"require": ["sub", "exp", "iat", "jti"]},
    )
