"""
auth/accounts.py -- Registration, email verification and password reset.

AccountService orchestrates the store, the referral policy and the notifier.
It raises AccountError subclasses for expected failures and lets everything
else (database errors) propagate.

Registration never fails because of the invite link: an unknown, banned or
otherwise rejected referrer key just yields a user without a referrer.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from urllib.parse import urlencode, urlsplit

from sqlalchemy.exc import IntegrityError

from auth.errors import (
    EmailAlreadyRegistered,
    EmailAlreadyVerified,
    InvalidResetToken,
    InvalidVerificationLink,
    ResetTokenExpired,
    UserNotFound,
)
from auth.models import User
from auth.notifier import Notifier
from auth.store import UserStore
from auth.tokens import (
    email_verification_hash,
    generate_reset_token,
    hash_password,
    verification_hash_matches,
    verify_password,
)
from core.config import Settings, get_settings
from referral.service import ReferralService

logger = logging.getLogger("bonusauth.auth")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


DEFAULT_USER_STATUS = "not-defined"

# Exact host match: admin.bonus.band is checked as itself, not as bonus.band.
_STATUS_BY_HOST = {
    "admin.bonus.band": "admin",
    "bonus.band": "curator",
    "rubonus.info": "manager",
    "bonus5.ru": "agent",
}


def user_status_for_domain(registration_domain: str | None) -> str:
    """Map the frontend a user registered on to their initial status slug."""
    if not registration_domain:
        return DEFAULT_USER_STATUS
    host = urlsplit(registration_domain).hostname or registration_domain
    return _STATUS_BY_HOST.get(host.lower(), DEFAULT_USER_STATUS)


class AccountService:
    def __init__(
        self,
        store: UserStore,
        referrals: ReferralService,
        notifier: Notifier,
        settings: Settings | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.store = store
        self.referrals = referrals
        self.notifier = notifier
        self.settings = settings or get_settings()
        self._clock = clock

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def register(
        self,
        name: str,
        email: str,
        password: str,
        referrer_key: str | None = None,
        registration_domain: str | None = None,
        company_name: str | None = None,
        region: str | None = None,
        phone: str | None = None,
    ) -> User:
        """Create an account and send the verification email.

        The referrer is validated before the insert (new_user_id=0: the user
        has no id yet, so only existence and ban/active status are checked).
        A non-empty company_name creates the user's company in the same
        transaction. The initial status follows registration_domain.
        """
        if self.store.find_by_email(email) is not None:
            raise EmailAlreadyRegistered("The email has already been taken.")

        referrer_id = self.referrals.validate_referrer(referrer_key)

        try:
            user_id = self.store.create_user(
                User(
                    name=name,
                    email=email,
                    hashed_password=hash_password(password),
                    referrer_id=referrer_id,
                    registration_domain=registration_domain,
                    status=user_status_for_domain(registration_domain),
                    region=region or None,
                    phone=phone or None,
                ),
                company_name=company_name or None,
            )
        except IntegrityError as exc:
            # A concurrent registration won the race for this email.
            raise EmailAlreadyRegistered("The email has already been taken.") from exc

        user = self.store.find_by_id(user_id)
        logger.info(
            "User registered user_id=%s referrer_id=%s registration_domain=%s status=%s company_id=%s",
            user_id,
            referrer_id,
            registration_domain,
            user.status,
            user.company_id,
        )

        try:
            self._notify_verification(user)
        except Exception:
            # The account exists; the user can ask for another link.
            logger.exception("Failed to send verification email user_id=%s", user_id)

        return user

    # ------------------------------------------------------------------
    # Email verification
    # ------------------------------------------------------------------

    def send_verification(self, user: User) -> None:
        if user.is_email_verified:
            raise EmailAlreadyVerified("Email is already verified.")
        self._notify_verification(user)

    def verify_email(self, user_id: int, presented_hash: str) -> tuple[User, bool]:
        """Mark the user's email verified. Returns (user, was_already_verified)."""
        user = self.store.find_by_id(user_id)
        if user is None:
            logger.warning("Email verification for unknown user_id=%s", user_id)
            raise UserNotFound("User not found.")

        if not verification_hash_matches(user.email, presented_hash):
            logger.warning("Email verification hash mismatch user_id=%s", user_id)
            raise InvalidVerificationLink("Invalid verification link.")

        if user.is_email_verified:
            return user, True

        self.store.mark_email_verified(user_id)
        logger.info("Email verified user_id=%s", user_id)
        return self.store.find_by_id(user_id), False

    def _notify_verification(self, user: User) -> None:
        link = self.settings.verification_url.format(user_id=user.id, hash=email_verification_hash(user.email))
        self.notifier.send_verification(user.email, user.name, link)

    # ------------------------------------------------------------------
    # Password reset
    # ------------------------------------------------------------------

    def request_password_reset(self, email: str) -> None:
        """Issue a reset link. Unknown emails are ignored so the response never
        reveals whether an address is registered."""
        user = self.store.find_by_email(email)
        if user is None:
            logger.warning("Password reset requested for unknown email=%s", email)
            return

        token = generate_reset_token()
        self.store.replace_reset_token(user.email, hash_password(token))
        self.notifier.send_password_reset(user.email, self._reset_link(user, token))
        logger.info("Password reset link issued user_id=%s", user.id)

    def _reset_link(self, user: User, token: str) -> str:
        """Point the user back at the frontend they registered on."""
        base = (user.registration_domain or self.settings.frontend_url).rstrip("/")
        return f"{base}/reset-password?{urlencode({'token': token, 'email': user.email})}"

    def reset_password(self, email: str, token: str, new_password: str) -> User:
        record = self.store.get_reset_token(email)
        if record is None:
            logger.warning("Password reset without pending token email=%s", email)
            raise InvalidResetToken("Invalid or expired token.")

        issued_at = datetime.fromisoformat(record.created_at)
        lifetime = timedelta(minutes=self.settings.password_reset_expire_minutes)
        if issued_at + lifetime < self._clock():
            self.store.delete_reset_token(email)
            logger.warning("Password reset token expired email=%s", email)
            raise ResetTokenExpired("Token expired. Request a new password reset link.")

        if not verify_password(token, record.token_hash):
            logger.warning("Password reset token mismatch email=%s", email)
            raise InvalidResetToken("Invalid token.")

        user = self.store.find_by_email(email)
        if user is None:
            raise UserNotFound("User not found.")

        self.store.update_user(user.id, hashed_password=hash_password(new_password))
        self.store.delete_reset_token(email)
        logger.info("Password reset user_id=%s", user.id)
        return user
