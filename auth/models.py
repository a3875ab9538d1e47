"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic). Stores and services do
the work; routes map these onto the pydantic transport models in api/models.py.

Layer rule: no imports from api/ or referral/.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass
class User:
    """A registered account.

    key is the public referral code handed out in invite links. It is distinct
    from id so the auto-increment primary key never leaks into URLs; the store
    generates one on insert when it is empty.

    referrer_id points at the user who invited this one. It is written once at
    creation time and never updated afterwards (the store refuses to).

    status is a role slug derived from the frontend the user registered on
    (see auth.accounts.user_status_for_domain).

    Timestamps are ISO 8601 strings in UTC, matching what the store writes.
    """

    name: str
    email: str
    id: int | None = None
    key: str = ""
    hashed_password: str | None = None
    referrer_id: int | None = None
    ban: bool = False
    is_active: bool = True
    email_verified_at: str | None = None
    registration_domain: str | None = None
    status: str = "not-defined"
    company_id: int | None = None
    region: str | None = None
    phone: str | None = None
    created_at: str | None = None

    @property
    def is_email_verified(self) -> bool:
        return self.email_verified_at is not None


@dataclass
class PasswordResetToken:
    """A pending password reset for one email address.

    token_hash is bcrypt(raw_token). The raw token only ever exists in the
    reset link sent to the user; the row is replaced on every new request and
    deleted on success or expiry.
    """

    email: str
    token_hash: str
    created_at: str


@dataclass
class Company:
    """An organisation a user may create while registering. legal_name starts out equal to name."""

    name: str
    legal_name: str
    id: int | None = None
    ban: bool = False
    is_active: bool = True
    status: str = "not-defined"
    created_at: str | None = None
