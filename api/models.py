"""
API request and response models for Bonus Auth REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py, which
own the internal domain representation. Route handlers map between the two.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from auth.models import User

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"
PHONE_PATTERN = r"^\+?[0-9\s()-]{10,20}$"

# bcrypt rejects secrets longer than 72 bytes.
_BCRYPT_MAX_BYTES = 72


def _check_password_bytes(value: str) -> str:
    if len(value.encode("utf-8")) > _BCRYPT_MAX_BYTES:
        raise ValueError(f"password must be at most {_BCRYPT_MAX_BYTES} bytes")
    return value


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class RegisterRequest(BaseModel):
    """Request body for POST /api/v1/auth/register.

    ref is the referrer's public key from the invite link. It is optional and
    never causes a validation error: a bad key just means no referrer.

    company_name, region and phone are optional; blank strings count as absent.
    """

    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(min_length=1, max_length=255)
    email: str = Field(max_length=255, pattern=EMAIL_PATTERN)
    password: str = Field(min_length=8)
    password_confirmation: str
    ref: Optional[str] = Field(default=None, max_length=255)
    company_name: Optional[str] = Field(default=None, min_length=2, max_length=255)
    region: Optional[str] = Field(default=None, max_length=255)
    phone: Optional[str] = Field(default=None, pattern=PHONE_PATTERN)

    @field_validator("company_name", "region", "phone", mode="before")
    @classmethod
    def blank_is_absent(cls, value):
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator("password")
    @classmethod
    def password_fits_bcrypt(cls, value: str) -> str:
        return _check_password_bytes(value)

    @model_validator(mode="after")
    def passwords_match(self) -> "RegisterRequest":
        if self.password != self.password_confirmation:
            raise ValueError("password confirmation does not match")
        return self


class LoginRequest(BaseModel):
    """Request body for POST /api/v1/auth/login."""

    model_config = ConfigDict(str_strip_whitespace=True)

    email: str = Field(max_length=255, pattern=EMAIL_PATTERN)
    password: str = Field(min_length=1, max_length=255)


class ForgotPasswordRequest(BaseModel):
    """Request body for POST /api/v1/auth/password/forgot."""

    model_config = ConfigDict(str_strip_whitespace=True)

    email: str = Field(max_length=255, pattern=EMAIL_PATTERN)


class ResetPasswordRequest(BaseModel):
    """Request body for POST /api/v1/auth/password/reset."""

    model_config = ConfigDict(str_strip_whitespace=True)

    token: str = Field(min_length=1, max_length=255)
    email: str = Field(max_length=255, pattern=EMAIL_PATTERN)
    password: str = Field(min_length=8)
    password_confirmation: str

    @field_validator("password")
    @classmethod
    def password_fits_bcrypt(cls, value: str) -> str:
        return _check_password_bytes(value)

    @model_validator(mode="after")
    def passwords_match(self) -> "ResetPasswordRequest":
        if self.password != self.password_confirmation:
            raise ValueError("password confirmation does not match")
        return self


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class UserResponse(BaseModel):
    """Public view of an account. Never includes the password hash."""

    model_config = ConfigDict(frozen=True)

    id: int
    key: str
    name: str
    email: str
    referrer_id: Optional[int]
    email_verified: bool
    registration_domain: Optional[str]
    status: str
    company_id: Optional[int]
    region: Optional[str]
    phone: Optional[str]
    created_at: str

    @classmethod
    def from_user(cls, user: User) -> "UserResponse":
        """Build a UserResponse from the auth-layer dataclass."""
        return cls(
            id=user.id,
            key=user.key,
            name=user.name,
            email=user.email,
            referrer_id=user.referrer_id,
            email_verified=user.is_email_verified,
            registration_domain=user.registration_domain,
            status=user.status,
            company_id=user.company_id,
            region=user.region,
            phone=user.phone,
            created_at=user.created_at or "",
        )


class AuthTokenResponse(BaseModel):
    """Response for register, login and refresh. The token is also set as a cookie."""

    model_config = ConfigDict(frozen=True)

    token: str
    token_type: str = "bearer"  # noqa: S105 # nosec B105 -- OAuth token type, not a password
    expires_in: int
    message: str
    user: Optional[UserResponse] = None


class MessageResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    message: str


class VerifyEmailResponse(BaseModel):
    """Response for GET /api/v1/auth/email/verify/{user_id}/{hash}."""

    model_config = ConfigDict(frozen=True)

    message: str
    already_verified: bool
    user: UserResponse


class ReferralRow(BaseModel):
    """One direct referral of the current user."""

    model_config = ConfigDict(frozen=True)

    id: int
    name: str
    created_at: str
    program_active: bool


class ReferralStatsResponse(BaseModel):
    """Response for GET /api/v1/referrals/stats."""

    model_config = ConfigDict(frozen=True)

    referral_key: str
    referrer_id: Optional[int]
    total_referrals: int
    active_referrals: int


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "healthy"
    version: str
    components: dict[str, str] = Field(default_factory=dict)
