"""
referral/directory.py -- The user directory as seen by the referral service.

The referral layer never owns storage. It reads the referral forest through
this protocol, one lookup at a time, and never holds the graph in memory.
auth.store.UserStore satisfies it structurally; tests substitute an in-memory
fake.

Layer rule: no imports from api/ or auth/. referral/ depends on nothing but
the standard library, so the auth layer can depend on it and not vice versa.
"""

from __future__ import annotations

from datetime import datetime
from typing import NewType, Protocol

# Internal auto-increment id vs public referral code. Kept as distinct types so
# a key is never passed where an id is expected (and the other way round).
UserId = NewType("UserId", int)
ReferralKey = NewType("ReferralKey", str)


class ReferralNode(Protocol):
    """The fields of a user record the referral service reads."""

    id: int | None
    key: str
    referrer_id: int | None
    ban: bool
    is_active: bool
    created_at: str | datetime | None


class UserDirectory(Protocol):
    """Lookup and write capabilities the referral service composes with.

    Lookups return None for a missing record. Any other failure (database
    unreachable, broken schema) is raised and must not be converted into None.
    """

    def find_by_key(self, key: str) -> ReferralNode | None: ...

    def find_by_id(self, user_id: int) -> ReferralNode | None: ...

    def find_referrals(self, referrer_id: int) -> list[ReferralNode]: ...

    def count_referrals_since(self, referrer_id: int, cutoff: datetime) -> int: ...

    def create_user(self, user) -> int: ...
