"""
Tests for upnext/core/security.py - session tokens and passwords.
"""
from datetime import datetime, timedelta, timezone

from jose import jwt

from upnext.core.config import settings
from upnext.core.security import (
    get_password_hash,
    is_password_hash,
    issue_session,
    verify_password,
    verify_session,
)
from upnext.models.user import Role, User


def make_user(**overrides):
    data = {
        "id": "u1",
        "username": "sally",
        "password": "pw",
        "name": "Sally Sales",
        "role": Role.SALESPERSON,
        "created_at": datetime.now(timezone.utc),
    }
    data.update(overrides)
    return User(**data)


class TestSessionTokens:
    """Test issue_session / verify_session."""

    def test_round_trip(self):
        now = datetime.now(timezone.utc)
        token, issued = issue_session(make_user(), now=now)

        session = verify_session(token, now=lambda: now + timedelta(hours=1))

        assert session == issued
        assert session.user_id == "u1"
        assert session.role == Role.SALESPERSON
        assert session.expires_at - session.issued_at == timedelta(hours=settings.SESSION_TTL_HOURS)

    def test_expired_token_is_anonymous(self):
        now = datetime.now(timezone.utc)
        token, _ = issue_session(make_user(), now=now)

        assert verify_session(token, now=lambda: now + timedelta(hours=24, seconds=1)) is None

    def test_tampered_token_is_anonymous(self):
        token, _ = issue_session(make_user())
        tampered = token[:-2] + ("AA" if token[-2:] != "AA" else "BB")

        assert verify_session(tampered) is None

    def test_token_signed_with_other_key_is_anonymous(self):
        claims = {"sub": "u1", "username": "x", "role": "manager", "name": "X",
                  "iat": 0, "exp": 4102444800}
        forged = jwt.encode(claims, "some-other-secret-key-that-is-long-enough", algorithm="HS256")

        assert verify_session(forged) is None

    def test_token_with_unknown_role_is_anonymous(self):
        claims = {"sub": "u1", "username": "x", "role": "owner", "name": "X",
                  "iat": 0, "exp": 4102444800}
        token = jwt.encode(claims, settings.SECRET_KEY, algorithm=settings.ALGORITHM)

        assert verify_session(token) is None

    def test_missing_token(self):
        assert verify_session(None) is None
        assert verify_session("") is None
        assert verify_session("not-a-jwt") is None


class TestPasswords:
    """Test password verification."""

    def test_plaintext_comparison(self):
        assert verify_password("secret", "secret") is True
        assert verify_password("Secret", "secret") is False

    def test_bcrypt_hash(self):
        hashed = get_password_hash("secret")

        assert is_password_hash(hashed)
        assert verify_password("secret", hashed) is True
        assert verify_password("wrong", hashed) is False

    def test_hash_is_salted(self):
        assert get_password_hash("secret") != get_password_hash("secret")
