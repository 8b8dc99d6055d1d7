"""Tests for password hashing and access tokens."""

from datetime import timedelta

import bcrypt
import pytest
from jose import jwt

from core import (
    create_access_token,
    decode_token,
    hash_password,
    needs_rehash,
    resolve_token_subject,
    settings,
    verify_password,
)


def test_hash_and_verify_password() -> None:
    digest = hash_password("Sup3rSecret")

    assert digest != "Sup3rSecret"
    assert verify_password("Sup3rSecret", digest) is True
    assert verify_password("wrong", digest) is False


def test_verify_password_rejects_malformed_digest() -> None:
    assert verify_password("anything", "not-a-bcrypt-digest") is False


def test_needs_rehash_tracks_configured_cost() -> None:
    current = hash_password("pw")
    outdated = bcrypt.hashpw(b"pw", bcrypt.gensalt(rounds=settings.password_hash_rounds + 1))

    assert needs_rehash(current) is False
    assert needs_rehash(outdated.decode("utf-8")) is True
    assert needs_rehash("garbage") is True


def test_access_token_round_trip_carries_user_id() -> None:
    token = create_access_token("17")

    payload = decode_token(token)
    assert payload["sub"] == "17"
    assert payload["type"] == "access"
    assert payload["exp"] - payload["iat"] == settings.access_token_expire_minutes * 60
    assert resolve_token_subject(token) == 17


def test_expired_and_tampered_tokens_are_rejected() -> None:
    expired = create_access_token("17", expires_delta=timedelta(seconds=-1))
    forged = jwt.encode({"sub": "17", "type": "access"}, "other-secret", algorithm="HS256")

    for token in (expired, forged, "not-a-token"):
        with pytest.raises(ValueError):
            decode_token(token)


@pytest.mark.parametrize(
    "claims",
    [
        {"sub": "17", "type": "refresh"},
        {"sub": "abc", "type": "access"},
        {"sub": "0", "type": "access"},
        {"sub": str(2**31), "type": "access"},
        {"type": "access"},
    ],
)
def test_resolve_token_subject_rejects_unusable_claims(claims: dict[str, str]) -> None:
    token = jwt.encode(claims, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)

    with pytest.raises(ValueError):
        resolve_token_subject(token)
