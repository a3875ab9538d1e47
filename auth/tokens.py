"""
auth/tokens.py -- JWT, password hashing, one-time secrets and the auth cookie.

Security design decisions:
  JWT: python-jose with HS256. Tokens carry user_id, sub (email), a random
       jti, iat and exp. The jti is what logout and refresh put on the
       revoked-token deny-list. Verification returns None on any failure --
       the dependency layer turns that into a 401.

  Passwords: bcrypt directly. The _DUMMY_HASH constant enables timing
       equalization in authenticate_user() so response time does not reveal
       whether an email is registered [C1].

  Reset tokens: 64 URL-safe characters from secrets, stored bcrypt-hashed.
       The raw value only exists in the emailed link.

  Email verification links carry sha1(email), compared in constant time.

  SECRET_KEY: sourced from core.config.get_settings(), validated at startup.

Layer rule: no imports from api/. Import from core/ is allowed.
"""

from __future__ import annotations

import hashlib
import hmac
import logging
import secrets
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING

import bcrypt
from jose import JWTError, jwt

from core.config import get_settings

if TYPE_CHECKING:
    from auth.models import User
    from auth.store import UserStore

logger = logging.getLogger("bonusauth.auth")

# ---------------------------------------------------------------------------
# Config -- read once at module load via the lru_cache singleton [M6]
# ---------------------------------------------------------------------------

_settings = get_settings()

_ALGORITHM = "HS256"

# ---------------------------------------------------------------------------
# Password hashing (bcrypt -- direct usage, no passlib wrapper)
# ---------------------------------------------------------------------------


def hash_password(plain: str) -> str:
    """Return a bcrypt hash of the given plaintext password.

    bcrypt refuses input beyond 72 bytes; the API layer rejects longer
    passwords with a 422 before they get here.
    """
    return bcrypt.hashpw(plain.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext matches the bcrypt hash."""
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        # Malformed stored hash or over-long input.
        return False


# Computed once at module load so the first login attempt is not measurably
# slower than subsequent ones [C1].
_DUMMY_HASH: str = hash_password("bonusauth_timing_dummy")


# ---------------------------------------------------------------------------
# JWT encode / decode
# ---------------------------------------------------------------------------


def create_access_token(user_id: int, email: str, expire_seconds: int = 0) -> str:
    """Encode a signed JWT for the given user.

    Args:
        user_id:        Numeric user ID stored in the DB.
        email:          Stored as the JWT subject claim.
        expire_seconds: Session duration in seconds. If 0 (default), uses
                        Settings.token_expire_seconds.
    """
    duration = expire_seconds if expire_seconds > 0 else _settings.token_expire_seconds
    now = datetime.now(timezone.utc)
    payload = {
        "sub": email,
        "user_id": user_id,
        "jti": secrets.token_hex(16),
        "iat": now,
        "exp": now + timedelta(seconds=duration),
    }
    return jwt.encode(payload, _settings.secret_key, algorithm=_ALGORITHM)


def decode_access_token(token: str) -> dict | None:
    """Decode and verify a JWT. Returns the payload dict or None on any failure."""
    try:
        payload = jwt.decode(token, _settings.secret_key, algorithms=[_ALGORITHM])
    except JWTError:
        return None
    if "user_id" not in payload or "jti" not in payload:
        return None
    return payload


def token_expiry(payload: dict) -> datetime:
    """Return the exp claim of a decoded payload as an aware datetime."""
    return datetime.fromtimestamp(payload["exp"], tz=timezone.utc)


# ---------------------------------------------------------------------------
# User authentication (constant-time) [C1]
# ---------------------------------------------------------------------------


def authenticate_user(store: UserStore, email: str, password: str) -> User | None:
    """Authenticate an email/password login with timing equalization.

    Always runs bcrypt whether or not the user exists, so an attacker cannot
    enumerate registered emails by measuring response time. Banned and
    inactive accounts fail like a wrong password.

    Returns the User on success, None on any failure.
    """
    user = store.find_by_email(email)
    if user is None or user.hashed_password is None:
        verify_password(password, _DUMMY_HASH)
        return None
    if not verify_password(password, user.hashed_password):
        return None
    if user.ban or not user.is_active:
        logger.warning("Login refused for disabled account user_id=%s", user.id)
        return None
    return user


# ---------------------------------------------------------------------------
# One-time secrets
# ---------------------------------------------------------------------------


def generate_reset_token() -> str:
    """Return a 64-character URL-safe password reset token."""
    return secrets.token_urlsafe(48)


def email_verification_hash(email: str) -> str:
    """Return the hash embedded in email verification links."""
    return hashlib.sha1(email.encode("utf-8")).hexdigest()  # noqa: S324 # nosec B324 -- link fingerprint, not a credential


def verification_hash_matches(email: str, presented: str) -> bool:
    return hmac.compare_digest(email_verification_hash(email), presented)


# ---------------------------------------------------------------------------
# Cookie helpers
# ---------------------------------------------------------------------------


def set_auth_cookie(response, token: str, domain: str | None = None, expire_seconds: int = 0) -> None:
    """Write the JWT access token as an httpOnly cookie on the response.

    domain comes from auth.cookies.resolve_cookie_domain(): ".bonus5.ru" shares
    the session across that tenant's subdomains, None scopes it to the host
    that answered. secure/samesite come from settings; SameSite=None (needed
    for cross-origin frontends) is only honoured by browsers with Secure.
    """
    duration = expire_seconds if expire_seconds > 0 else _settings.token_expire_seconds
    response.set_cookie(
        _settings.auth_cookie_name,
        value=token,
        max_age=duration,
        path="/",
        domain=domain,
        secure=_settings.secure_cookies,
        httponly=True,
        samesite=_settings.cookie_samesite,
    )


def clear_auth_cookie(response, domain: str | None = None) -> None:
    """Expire the auth cookie. domain must match the one it was set with."""
    response.delete_cookie(
        _settings.auth_cookie_name,
        path="/",
        domain=domain,
        secure=_settings.secure_cookies,
        httponly=True,
        samesite=_settings.cookie_samesite,
    )
