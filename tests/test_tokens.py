"""Unit tests for auth/tokens.py -- password hashing, JWTs and login checks."""

from __future__ import annotations

from datetime import datetime, timezone

from auth.models import User
from auth.tokens import (
    authenticate_user,
    create_access_token,
    decode_access_token,
    email_verification_hash,
    hash_password,
    token_expiry,
    verification_hash_matches,
    verify_password,
)


def test_password_hash_verifies():
    hashed = hash_password("correct horse")
    assert hashed != "correct horse"
    assert verify_password("correct horse", hashed) is True
    assert verify_password("wrong horse", hashed) is False


def test_verify_password_rejects_malformed_hash():
    assert verify_password("anything", "not-a-bcrypt-hash") is False


def test_access_token_claims():
    token = create_access_token(7, "ann@example.com", expire_seconds=120)
    payload = decode_access_token(token)
    assert payload["user_id"] == 7
    assert payload["sub"] == "ann@example.com"
    assert payload["jti"]
    remaining = (token_expiry(payload) - datetime.now(timezone.utc)).total_seconds()
    assert 0 < remaining <= 120


def test_each_token_gets_its_own_jti():
    first = decode_access_token(create_access_token(1, "a@example.com"))
    second = decode_access_token(create_access_token(1, "a@example.com"))
    assert first["jti"] != second["jti"]


def test_tampered_or_garbage_token_rejected():
    header, body, _signature = create_access_token(1, "a@example.com").split(".")
    assert decode_access_token(f"{header}.{body}.{'A' * 43}") is None
    assert decode_access_token("not.a.jwt") is None


def test_verification_hash():
    digest = email_verification_hash("ann@example.com")
    assert len(digest) == 40
    assert verification_hash_matches("ann@example.com", digest) is True
    assert verification_hash_matches("bob@example.com", digest) is False


class TestAuthenticateUser:
    def test_success(self, store):
        store.create_user(User(name="Ann", email="ann@example.com", hashed_password=hash_password("secret123")))
        user = authenticate_user(store, "ann@example.com", "secret123")
        assert user is not None and user.email == "ann@example.com"

    def test_wrong_password_and_unknown_email(self, store):
        store.create_user(User(name="Ann", email="ann@example.com", hashed_password=hash_password("secret123")))
        assert authenticate_user(store, "ann@example.com", "nope") is None
        assert authenticate_user(store, "ghost@example.com", "secret123") is None

    def test_banned_and_inactive_refused(self, store):
        pw = hash_password("secret123")
        store.create_user(User(name="B", email="banned@example.com", hashed_password=pw, ban=True))
        store.create_user(User(name="I", email="inactive@example.com", hashed_password=pw, is_active=False))
        assert authenticate_user(store, "banned@example.com", "secret123") is None
        assert authenticate_user(store, "inactive@example.com", "secret123") is None
