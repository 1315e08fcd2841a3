"""ES256 bearer tokens.

The platform's auth service signs access tokens; this service verifies
them against the issuer's public key from JWT_PUBLIC_KEY.  Without that
setting (dev, tests) a key pair is generated at import time, and
``create_access_token`` signs with its private half so local callers get
tokens this process accepts.
"""

from __future__ import annotations

import uuid
from datetime import UTC, datetime, timedelta

import jwt
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec

from app.core.config import SETTINGS

ALGORITHM = "ES256"
ISSUER = "auth-service"
AUDIENCE = "lms-api"
DEV_TOKEN_TTL = timedelta(minutes=15)
REQUIRED_CLAIMS = ["sub", "exp", "iat", "jti"]

_signing_key = ec.generate_private_key(ec.SECP256R1())

if SETTINGS.jwt_public_key:
    # Env files often carry the PEM on one line with literal \n
    _pem = SETTINGS.jwt_public_key.replace("\\n", "\n").encode()
    _verifying_key = serialization.load_pem_public_key(_pem)
else:
    _verifying_key = _signing_key.public_key()


def create_access_token(
    *,
    sub: int | str,
    roles: list[str] | None = None,
    ttl_minutes: int | None = None,
) -> str:
    issued_at = datetime.now(UTC)
    ttl = DEV_TOKEN_TTL if ttl_minutes is None else timedelta(minutes=ttl_minutes)
    claims = {
        "iss": ISSUER,
        "aud": AUDIENCE,
        "sub": str(sub),
        "roles": roles or ["student"],
        "iat": issued_at,
        "exp": issued_at + ttl,
        "jti": uuid.uuid4().hex,
    }
    return jwt.encode(claims, _signing_key, algorithm=ALGORITHM)


def decode_access_token(token: str) -> dict:
    """Return the claims of a valid token.

    Raises ``jwt.ExpiredSignatureError`` for an expired token and
    ``jwt.InvalidTokenError`` for anything else wrong with it.
    """
    return jwt.decode(
        token,
        _verifying_key,
        algorithms=[ALGORITHM],
        audience=AUDIENCE,
        issuer=ISSUER,
        options={"require": REQUIRED_CLAIMS},
    )
