"""JWT access token creation and validation (ES256).

Centralizes all token logic so the login endpoint (issuance) and
api/dependencies.py (validation) share the same key and claims schema.

Claims: sub (usuarios.id as a string), rol (admin|student), iss, aud,
exp, iat, jti.
"""

from __future__ import annotations

import uuid
from datetime import UTC, datetime, timedelta

import jwt
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec

from course_platform.core.config import SETTINGS

ALGORITHM = "ES256"
ISSUER = "course-platform"
AUDIENCE = "course-platform"


def _load_private_key() -> ec.EllipticCurvePrivateKey:
    # Production: PEM from JWT_PRIVATE_KEY so every instance verifies the
    # same tokens.  Dev/test: an ephemeral key, tokens die with the process.
    if SETTINGS.jwt_private_key:
        key = serialization.load_pem_private_key(
            SETTINGS.jwt_private_key.encode(), password=None
        )
        if not isinstance(key, ec.EllipticCurvePrivateKey):
            raise ValueError("JWT_PRIVATE_KEY must be an EC (P-256) private key")
        return key
    return ec.generate_private_key(ec.SECP256R1())


_private_key = _load_private_key()
_public_key = _private_key.public_key()


def create_access_token(
    *,
    sub: str,
    role: str,
    ttl: timedelta | None = None,
) -> str:
    """Build and sign a JWT access token."""
    now = datetime.now(UTC)
    payload = {
        "sub": sub,
        "rol": role,
        "iss": ISSUER,
        "aud": AUDIENCE,
        "exp": now + (ttl or timedelta(minutes=SETTINGS.access_token_ttl_min)),
        "iat": now,
        "jti": str(uuid.uuid4()),
    }
    return jwt.encode(payload, _private_key, algorithm=ALGORITHM)


def decode_access_token(token: str) -> dict:
    """Verify signature and claims, return the payload.

    Pins the algorithm to ES256 to prevent alg:none and alg-switching
    attacks.  Raises jwt.ExpiredSignatureError, jwt.InvalidTokenError.
    """
    return jwt.decode(
        token,
        _public_key,
        algorithms=[ALGORITHM],
        issuer=ISSUER,
        audience=AUDIENCE,
        options={"require": ["sub", "rol", "exp", "iat", "jti"]},
    )
