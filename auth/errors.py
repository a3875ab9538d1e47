"""
auth/errors.py -- Account-flow failures.

Each error carries a machine-readable code. The route layer maps these onto
HTTPException(detail={"code": ..., "message": ...}) so every failure reaches
the client in the same ErrorResponse envelope.
"""

from __future__ import annotations


class AccountError(Exception):
    """Base class for expected, user-facing account-flow failures."""

    code = "account_error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class EmailAlreadyRegistered(AccountError):
    code = "email_taken"


class EmailAlreadyVerified(AccountError):
    code = "already_verified"


class UserNotFound(AccountError):
    code = "not_found"


class InvalidVerificationLink(AccountError):
    code = "invalid_verification_link"


class InvalidResetToken(AccountError):
    code = "invalid_token"


class ResetTokenExpired(AccountError):
    code = "token_expired"
