from __future__ import annotations

import jwt
import pytest

from app.services import token_service


def test_minted_token_verifies_with_string_sub() -> None:
    claims = token_service.decode_access_token(
        token_service.create_access_token(sub=7, roles=["instructor"])
    )
    assert claims["sub"] == "7"
    assert claims["roles"] == ["instructor"]
    assert claims["aud"] == "lms-api"


def test_default_role_is_student() -> None:
    claims = token_service.decode_access_token(token_service.create_access_token(sub=8))
    assert claims["roles"] == ["student"]


def test_expired_token_raises_expired() -> None:
    token = token_service.create_access_token(sub=7, ttl_minutes=-1)
    with pytest.raises(jwt.ExpiredSignatureError):
        token_service.decode_access_token(token)


def test_token_for_another_audience_is_rejected() -> None:
    token = jwt.encode(
        {
            "sub": "7",
            "aud": "billing",
            "iss": token_service.ISSUER,
            "exp": 4_000_000_000,
            "iat": 1_700_000_000,
            "jti": "x",
        },
        token_service._signing_key,
        algorithm="ES256",
    )
    with pytest.raises(jwt.InvalidAudienceError):
        token_service.decode_access_token(token)


def test_hs256_token_is_rejected() -> None:
    token = jwt.encode({"sub": "7"}, "a-shared-secret-that-is-long-enough-for-hs256", algorithm="HS256")
    with pytest.raises(jwt.InvalidTokenError):
        token_service.decode_access_token(token)
