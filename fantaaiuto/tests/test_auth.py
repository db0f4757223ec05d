"""
Tests for password hashing and the bearer token service.
"""
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest
from jose import jwt

import sys
sys.path.insert(0, str(Path(__file__).resolve().parent.parent.parent))

from fantaaiuto.auth import TokenService, hash_password, verify_password
from fantaaiuto.config import Settings
from fantaaiuto.errors import InvalidToken


@pytest.fixture
def cfg():
    return Settings(jwt_secret_key="unit-test-secret", log_file="")


@pytest.fixture
def tokens(cfg):
    return TokenService(cfg)


def test_hash_password_round_trip():
    hashed = hash_password("s3cret!")
    assert hashed != "s3cret!"
    assert verify_password("s3cret!", hashed)
    assert not verify_password("wrong", hashed)


def test_verify_password_empty_hash_is_false():
    assert not verify_password("anything", "")


def test_issue_and_verify_carries_identity(tokens):
    token = tokens.issue("user-1", "alice")
    claims = tokens.verify(token)
    assert claims.user_id == "user-1"
    assert claims.username == "alice"
    assert claims.expires_at > datetime.now(timezone.utc)


def test_default_expiry_is_seven_days(tokens):
    claims = tokens.verify(tokens.issue("user-1", "alice"))
    remaining = claims.expires_at - datetime.now(timezone.utc)
    assert timedelta(days=6, hours=23) < remaining <= timedelta(days=7)


def test_expired_token_is_invalid(cfg):
    expired = TokenService(cfg.model_copy(update={"access_token_expire_minutes": -5}))
    token = expired.issue("user-1", "alice")
    with pytest.raises(InvalidToken):
        TokenService(cfg).verify(token)


def test_token_signed_with_other_secret_is_invalid(cfg, tokens):
    other = TokenService(cfg.model_copy(update={"jwt_secret_key": "someone-else"}))
    with pytest.raises(InvalidToken):
        tokens.verify(other.issue("user-1", "alice"))


def test_tampered_payload_is_invalid(tokens):
    header, payload, signature = tokens.issue("user-1", "alice").split(".")
    forged = jwt.encode(
        {"sub": "admin", "username": "admin", "exp": datetime.now(timezone.utc) + timedelta(days=1)},
        "guessed-secret",
        algorithm="HS256",
    )
    forged_payload = forged.split(".")[1]
    with pytest.raises(InvalidToken):
        tokens.verify(f"{header}.{forged_payload}.{signature}")


def test_malformed_token_is_invalid(tokens):
    with pytest.raises(InvalidToken):
        tokens.verify("not-a-token")


def test_token_without_subject_is_invalid(cfg, tokens):
    token = jwt.encode(
        {"username": "ghost", "exp": datetime.now(timezone.utc) + timedelta(hours=1)},
        cfg.jwt_secret_key,
        algorithm=cfg.jwt_algorithm,
    )
    with pytest.raises(InvalidToken):
        tokens.verify(token)
