from __future__ import annotations

import jwt
import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec, rsa
from fastapi.testclient import TestClient

from attempt_service.services import token_service


def test_round_trip_keeps_sub_and_roles() -> None:
    token = token_service.create_access_token(sub="instructor-1", roles=["instructor"])
    claims = token_service.decode_access_token(token)
    assert claims["sub"] == "instructor-1"
    assert claims["roles"] == ["instructor"]
    assert claims["aud"] == token_service.AUDIENCE


def test_default_role_is_student() -> None:
    claims = token_service.decode_access_token(
        token_service.create_access_token(sub="s1")
    )
    assert claims["roles"] == ["student"]


def test_expired_token_rejected() -> None:
    token = token_service.create_access_token(sub="s1", ttl_minutes=-1)
    with pytest.raises(jwt.ExpiredSignatureError):
        token_service.decode_access_token(token)


def test_wrong_audience_rejected() -> None:
    token = jwt.encode(
        {"sub": "s1", "aud": "some-other-service", "iss": token_service.ISSUER,
         "exp": 9_999_999_999, "iat": 0, "jti": "x"},
        token_service._private_key,
        algorithm=token_service.ALGORITHM,
    )
    with pytest.raises(jwt.InvalidAudienceError):
        token_service.decode_access_token(token)


def test_expired_token_gets_401(client: TestClient) -> None:
    token = token_service.create_access_token(sub="s1", ttl_minutes=-1)
    resp = client.get("/v1/attempts", headers={"Authorization": f"Bearer {token}"})
    assert resp.status_code == 401
    assert resp.json()["detail"] == "Token expired"


# ---- issuer public key ----


def _pem(private_key) -> str:
    return (
        private_key.public_key()
        .public_bytes(
            serialization.Encoding.PEM,
            serialization.PublicFormat.SubjectPublicKeyInfo,
        )
        .decode()
    )


def _issuer_token(private_key, sub: str = "s1") -> str:
    return jwt.encode(
        {"sub": sub, "aud": token_service.AUDIENCE, "iss": token_service.ISSUER,
         "exp": 9_999_999_999, "iat": 0, "jti": "x", "roles": ["student"]},
        private_key,
        algorithm=token_service.ALGORITHM,
    )


def test_configured_issuer_key_verifies_issuer_tokens(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    issuer = ec.generate_private_key(ec.SECP256R1())
    monkeypatch.setattr(
        token_service, "_public_key", token_service.load_public_key(_pem(issuer))
    )

    assert token_service.decode_access_token(_issuer_token(issuer))["sub"] == "s1"

    with pytest.raises(jwt.InvalidSignatureError):
        token_service.decode_access_token(token_service.create_access_token(sub="s1"))


def test_issuer_key_accepted_by_the_api(
    client: TestClient, monkeypatch: pytest.MonkeyPatch
) -> None:
    issuer = ec.generate_private_key(ec.SECP256R1())
    monkeypatch.setattr(
        token_service, "_public_key", token_service.load_public_key(_pem(issuer))
    )
    headers = {"Authorization": f"Bearer {_issuer_token(issuer)}"}
    assert client.get("/v1/attempts", headers=headers).status_code == 200


def test_without_pem_falls_back_to_dev_key() -> None:
    key = token_service.load_public_key(None)
    assert key.public_numbers() == token_service._private_key.public_key().public_numbers()


def test_non_ec_issuer_key_rejected() -> None:
    pem = _pem(rsa.generate_private_key(public_exponent=65537, key_size=2048))
    with pytest.raises(ValueError, match="EC public key"):
        token_service.load_public_key(pem)
