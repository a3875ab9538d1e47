"""
referral/service.py -- Referrer validation and referral-forest queries.

Every user points at no more than one referrer, so the referral graph is a
forest of parent-pointer chains. This module keeps it that way:

  validate_referrer()  decides whether an invite key may become the referrer
                       of a (possibly not yet created) user. Rejections are
                       business outcomes, not errors: the caller gets None
                       and registration carries on without a referrer.

  has_cycle()          walks up from the candidate referrer with a visited
                       set and a hard depth cap. MAX_CHAIN_DEPTH bounds the
                       number of directory reads per call; a chain longer
                       than the cap is reported as acyclic.

  is_program_active()  and the aggregate queries answer "does this referral
                       still earn benefits" for the REFERRAL_PROGRAM_YEARS
                       window.

The service is a stateless policy layer over a UserDirectory. Directory
failures propagate unchanged; only missing records map to safe defaults.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime, timezone

from dateutil.relativedelta import relativedelta

from referral.directory import ReferralNode, UserDirectory, UserId

logger = logging.getLogger("bonusauth.referral")

REFERRAL_PROGRAM_YEARS = 2
MAX_CHAIN_DEPTH = 10


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_datetime(value: str | datetime) -> datetime:
    """Normalize a stored timestamp to an aware UTC datetime.

    The store writes ISO 8601 strings; fakes may hand over datetimes. Naive
    values are taken to be UTC.
    """
    parsed = value if isinstance(value, datetime) else datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _shift_years(value: datetime, years: int) -> datetime:
    """Move value by whole years; a Feb 29 with no counterpart spills into Mar 1.

    relativedelta alone would clamp to Feb 28.
    """
    shifted = value + relativedelta(years=years)
    if shifted.day != value.day:
        shifted += relativedelta(days=1)
    return shifted


class ReferralService:
    """Referral policy over an injected user directory.

    Usage:
        service = ReferralService(user_store)
        referrer_id = service.validate_referrer(body.ref)
        user_store.create_user(User(..., referrer_id=referrer_id))
    """

    def __init__(self, directory: UserDirectory, clock: Callable[[], datetime] = _utcnow) -> None:
        self.directory = directory
        self._clock = clock

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def validate_referrer(self, referrer_key: str | None, new_user_id: int = 0) -> UserId | None:
        """Return the id of the user behind referrer_key, or None if it may not refer.

        new_user_id is 0 while the referral does not exist yet; self-referral
        and cycle checks only apply once it has an id.
        """
        if not referrer_key:
            return None

        referrer = self.directory.find_by_key(referrer_key)
        if referrer is None:
            logger.info("Referrer not found referrer_key=%s", referrer_key)
            return None

        if new_user_id > 0 and referrer.id == new_user_id:
            logger.info(
                "Self-referral attempt rejected referrer_id=%s new_user_id=%s",
                referrer.id,
                new_user_id,
            )
            return None

        if referrer.ban or not referrer.is_active:
            logger.info(
                "Referrer is banned or inactive referrer_id=%s ban=%s is_active=%s",
                referrer.id,
                referrer.ban,
                referrer.is_active,
            )
            return None

        if new_user_id > 0 and self.has_cycle(referrer.id, new_user_id):
            logger.warning(
                "Cycle detected in referral chain referrer_id=%s new_user_id=%s",
                referrer.id,
                new_user_id,
            )
            return None

        logger.info("Referrer validated referrer_id=%s", referrer.id)
        return UserId(referrer.id)

    def has_cycle(self, referrer_id: int, referral_id: int, max_depth: int = MAX_CHAIN_DEPTH) -> bool:
        """Return True if making referrer_id the parent of referral_id closes a loop.

        That happens when referral_id is already an ancestor of referrer_id,
        so the walk goes up from referrer_id looking for it. A missing record
        or a null referrer_id ends the chain (tree root), which means no cycle.
        """
        if referrer_id == referral_id:
            return True

        visited = {referral_id}
        current: int | None = referrer_id
        depth = 0

        while current is not None and depth < max_depth:
            if current in visited:
                return True
            visited.add(current)

            node = self.directory.find_by_id(current)
            if node is None:
                break

            current = node.referrer_id
            depth += 1

        return False

    # ------------------------------------------------------------------
    # Program window
    # ------------------------------------------------------------------

    def is_program_active(self, user_id: int) -> bool:
        """Return True while the referral is inside its benefit window.

        The window closes REFERRAL_PROGRAM_YEARS after registration; the
        closing instant itself counts as expired.
        """
        return self.is_node_program_active(self.directory.find_by_id(user_id))

    def is_node_program_active(self, node: ReferralNode | None) -> bool:
        """Same window check for a record the caller already holds."""
        if node is None or node.created_at is None:
            return False

        expires_at = _shift_years(_as_datetime(node.created_at), REFERRAL_PROGRAM_YEARS)
        return self._clock() < expires_at

    # ------------------------------------------------------------------
    # Read-side queries
    # ------------------------------------------------------------------

    def get_referrer_id(self, user_id: int) -> UserId | None:
        user = self.directory.find_by_id(user_id)
        if user is None or user.referrer_id is None:
            return None
        return UserId(user.referrer_id)

    def get_referrals(self, referrer_id: int) -> list[ReferralNode]:
        """Direct referrals only -- one level down, no ordering guarantee."""
        return self.directory.find_referrals(referrer_id)

    def get_active_referrals_count(self, referrer_id: int) -> int:
        """Count direct referrals registered within the program window."""
        cutoff = _shift_years(self._clock(), -REFERRAL_PROGRAM_YEARS)
        return self.directory.count_referrals_since(referrer_id, cutoff)
