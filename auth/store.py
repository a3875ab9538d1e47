"""
auth/store.py -- SQLAlchemy Core persistence layer for auth entities.

Pattern: Repository + Data Mapper.
UserStore is the repository; _row_to_user / _row_to_company / _row_to_reset_token are the
mappers. Service and route code never touches SQL directly.

UserStore is also the production UserDirectory for referral.service: it
provides find_by_key / find_by_id / find_referrals / count_referrals_since /
create_user with the same semantics (None for missing records, exceptions
for everything else).

Security:
  All queries use bound parameters. No f-strings in SQL.

Timestamps are stored as ISO 8601 UTC strings with a fixed microsecond
precision, so lexicographic comparison in SQL matches chronological order.
"""

from __future__ import annotations

import secrets
from datetime import datetime, timezone

from sqlalchemy import Column, Integer, MetaData, String, Table, Text, create_engine, event, func, select
from sqlalchemy.engine import Engine

from auth.models import Company, PasswordResetToken, User
from core.config import get_settings

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_users = Table(
    "users",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("key", String(32), nullable=False, unique=True),  # public referral code
    Column("name", String(255), nullable=False),
    Column("email", String(255), nullable=False, unique=True),
    Column("hashed_password", Text),
    Column("referrer_id", Integer, index=True),  # parent in the referral forest
    Column("ban", Integer, nullable=False, server_default="0"),
    Column("is_active", Integer, nullable=False, server_default="1"),
    Column("email_verified_at", String(32)),
    Column("registration_domain", String(255)),
    Column("status", String(32), nullable=False, server_default="not-defined"),
    Column("company_id", Integer, index=True),
    Column("region", String(255)),
    Column("phone", String(32)),
    Column("created_at", String(32), nullable=False, index=True),
)

_companies = Table(
    "companies",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("name", String(255), nullable=False),
    Column("legal_name", String(255), nullable=False),
    Column("ban", Integer, nullable=False, server_default="0"),
    Column("is_active", Integer, nullable=False, server_default="1"),
    Column("status", String(32), nullable=False, server_default="not-defined"),
    Column("created_at", String(32), nullable=False),
)

_password_reset_tokens = Table(
    "password_reset_tokens",
    _metadata,
    Column("email", String(255), primary_key=True),
    Column("token_hash", Text, nullable=False),  # bcrypt of the raw token
    Column("created_at", String(32), nullable=False),
)

_revoked_tokens = Table(
    "revoked_tokens",
    _metadata,
    Column("jti", String(64), primary_key=True),
    Column("expires_at", String(32), nullable=False),
)

# Fields update_user() may change. referrer_id is deliberately absent: the
# referral forest is only ever extended at creation time, after validation.
_MUTABLE_USER_FIELDS = {"name", "hashed_password", "ban", "is_active", "email_verified_at"}


# ---------------------------------------------------------------------------
# WAL mode
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode for concurrent read safety.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _iso(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def _now_iso() -> str:
    return _iso(datetime.now(timezone.utc))


def _new_referral_key() -> str:
    # 128 bits, URL-safe: the key travels in invite links (?ref=...).
    return secrets.token_urlsafe(16)


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class UserStore:
    """Repository for users, their companies, password reset tokens and revoked sessions.

    Usage:
        store = UserStore()
        user_id = store.create_user(User(name="Ann", email="ann@example.com"))
        user = store.find_by_id(user_id)
        store.close()
    """

    def __init__(self, db_url: str | None = None) -> None:
        db_url = db_url or get_settings().database_url
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_wal_mode)
        _metadata.create_all(self.engine)

    def ping(self) -> bool:
        """Return True if the database answers a trivial query."""
        with self.engine.connect() as conn:
            return conn.execute(select(1)).scalar() == 1

    # ------------------------------------------------------------------
    # User writes
    # ------------------------------------------------------------------

    def create_user(self, user: User, company_name: str | None = None) -> int:
        """Insert a new user and return its assigned database ID.

        Generates the referral key if user.key is empty. created_at defaults to
        now; an explicit value (imports, fixtures) is normalized to the stored
        format. Raises sqlalchemy.exc.IntegrityError if the email or key is
        already taken.

        With company_name, a company is created in the same transaction and
        the user is linked to it; if the user insert fails, neither row is kept.
        """
        created_at = _iso(datetime.fromisoformat(user.created_at)) if user.created_at else _now_iso()
        with self.engine.begin() as conn:
            company_id = user.company_id
            if company_name:
                company = conn.execute(
                    _companies.insert().values(name=company_name, legal_name=company_name, created_at=_now_iso())
                )
                company_id = company.inserted_primary_key[0]

            result = conn.execute(
                _users.insert().values(
                    key=user.key or _new_referral_key(),
                    name=user.name,
                    email=user.email.strip().lower(),
                    hashed_password=user.hashed_password,
                    referrer_id=user.referrer_id,
                    ban=1 if user.ban else 0,
                    is_active=1 if user.is_active else 0,
                    email_verified_at=user.email_verified_at,
                    registration_domain=user.registration_domain,
                    status=user.status,
                    company_id=company_id,
                    region=user.region,
                    phone=user.phone,
                    created_at=created_at,
                )
            )
            return result.inserted_primary_key[0]

    def update_user(self, user_id: int, **fields) -> bool:
        """Update mutable fields on an existing user.

        Accepted fields: name, hashed_password, ban, is_active, email_verified_at.
        Anything else (notably referrer_id) raises ValueError.

        Returns True if a row was updated, False if user_id was not found.
        """
        unknown = set(fields) - _MUTABLE_USER_FIELDS
        if unknown:
            raise ValueError(f"Immutable or unknown user fields: {sorted(unknown)!r}")
        for flag in ("ban", "is_active"):
            if flag in fields:
                fields[flag] = 1 if fields[flag] else 0
        with self.engine.connect() as conn:
            result = conn.execute(_users.update().where(_users.c.id == user_id).values(**fields))
            conn.commit()
        return result.rowcount > 0

    def mark_email_verified(self, user_id: int) -> None:
        self.update_user(user_id, email_verified_at=_now_iso())

    # ------------------------------------------------------------------
    # User lookups
    # ------------------------------------------------------------------

    def find_by_id(self, user_id: int) -> User | None:
        """Look up a user by primary key. Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.id == user_id)).fetchone()
        return _row_to_user(row) if row is not None else None

    def find_by_key(self, key: str) -> User | None:
        """Look up a user by public referral key. Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.key == key)).fetchone()
        return _row_to_user(row) if row is not None else None

    def find_by_email(self, email: str) -> User | None:
        """Look up a user by email (case-insensitive). Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.email == email.strip().lower())).fetchone()
        return _row_to_user(row) if row is not None else None

    def find_referrals(self, referrer_id: int) -> list[User]:
        """Return the direct referrals of referrer_id, oldest first."""
        with self.engine.connect() as conn:
            rows = conn.execute(
                _users.select().where(_users.c.referrer_id == referrer_id).order_by(_users.c.id)
            ).fetchall()
        return [_row_to_user(r) for r in rows]

    def find_company(self, company_id: int) -> Company | None:
        with self.engine.connect() as conn:
            row = conn.execute(_companies.select().where(_companies.c.id == company_id)).fetchone()
        return _row_to_company(row) if row is not None else None

    def count_companies(self) -> int:
        with self.engine.connect() as conn:
            return conn.execute(select(func.count()).select_from(_companies)).scalar() or 0

    def count_referrals_since(self, referrer_id: int, cutoff: datetime) -> int:
        """Count direct referrals of referrer_id created at or after cutoff."""
        with self.engine.connect() as conn:
            result = conn.execute(
                select(func.count())
                .select_from(_users)
                .where((_users.c.referrer_id == referrer_id) & (_users.c.created_at >= _iso(cutoff)))
            ).scalar()
        return result or 0

    # ------------------------------------------------------------------
    # Password reset tokens
    # ------------------------------------------------------------------

    def replace_reset_token(self, email: str, token_hash: str) -> None:
        """Store a new reset token for email, discarding any previous one."""
        email = email.strip().lower()
        with self.engine.connect() as conn:
            conn.execute(_password_reset_tokens.delete().where(_password_reset_tokens.c.email == email))
            conn.execute(
                _password_reset_tokens.insert().values(email=email, token_hash=token_hash, created_at=_now_iso())
            )
            conn.commit()

    def get_reset_token(self, email: str) -> PasswordResetToken | None:
        with self.engine.connect() as conn:
            row = conn.execute(
                _password_reset_tokens.select().where(_password_reset_tokens.c.email == email.strip().lower())
            ).fetchone()
        return _row_to_reset_token(row) if row is not None else None

    def delete_reset_token(self, email: str) -> None:
        with self.engine.connect() as conn:
            conn.execute(
                _password_reset_tokens.delete().where(_password_reset_tokens.c.email == email.strip().lower())
            )
            conn.commit()

    # ------------------------------------------------------------------
    # Revoked sessions
    # ------------------------------------------------------------------

    def revoke_token(self, jti: str, expires_at: datetime) -> None:
        """Deny-list a JWT id until its natural expiry. Revoking twice is a no-op."""
        if self.is_token_revoked(jti):
            return
        with self.engine.connect() as conn:
            conn.execute(_revoked_tokens.insert().values(jti=jti, expires_at=_iso(expires_at)))
            conn.commit()

    def is_token_revoked(self, jti: str) -> bool:
        with self.engine.connect() as conn:
            row = conn.execute(select(_revoked_tokens.c.jti).where(_revoked_tokens.c.jti == jti)).fetchone()
        return row is not None

    def purge_revoked_tokens(self) -> int:
        """Drop deny-list rows whose tokens have expired anyway. Returns rows deleted."""
        with self.engine.connect() as conn:
            result = conn.execute(_revoked_tokens.delete().where(_revoked_tokens.c.expires_at < _now_iso()))
            conn.commit()
        return result.rowcount

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row) -> User:
    return User(
        id=row.id,
        key=row.key,
        name=row.name,
        email=row.email,
        hashed_password=row.hashed_password,
        referrer_id=row.referrer_id,
        ban=bool(row.ban),
        is_active=bool(row.is_active),
        email_verified_at=row.email_verified_at,
        registration_domain=row.registration_domain,
        status=row.status,
        company_id=row.company_id,
        region=row.region,
        phone=row.phone,
        created_at=row.created_at,
    )


def _row_to_company(row) -> Company:
    return Company(
        id=row.id,
        name=row.name,
        legal_name=row.legal_name,
        ban=bool(row.ban),
        is_active=bool(row.is_active),
        status=row.status,
        created_at=row.created_at,
    )


def _row_to_reset_token(row) -> PasswordResetToken:
    return PasswordResetToken(
        email=row.email,
        token_hash=row.token_hash,
        created_at=row.created_at,
    )
