"""Ports (protocols) consumed by the two-factor core.

The identity provider, profile store and audit store are external
collaborators. The core depends only on these protocols; concrete
implementations live in ``memory`` (tests, development) and
``db`` (relational backend). All ports use @runtime_checkable for
isinstance checks.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from .audit import AuthAuditEvent, AuthEventType
    from .models import AuthSession, ProfileRecord, TwoFactorEnrollment


# ═══════════════════════════════════════════════════════════════
# IDENTITY PROVIDER PORT
# ═══════════════════════════════════════════════════════════════


@runtime_checkable
class IIdentityProvider(Protocol):
    """Protocol for the identity/session provider.

    Handles password hashing, session tokens and password reset. Failures are
    raised as IdentityProviderError and passed to the user unchanged.
    """

    async def sign_up(self, email: str, password: str) -> AuthSession | None:
        """Register an account. Returns a session if sign-up signs in."""
        ...

    async def sign_in_with_password(self, email: str, password: str) -> AuthSession:
        """Check the password and issue a session.

        Raises:
            IdentityProviderError: Invalid credentials or provider failure.
        """
        ...

    async def sign_out(self, session: AuthSession | None = None) -> None:
        """Invalidate the current session."""
        ...

    async def reset_password(self, email: str) -> None:
        """Start the password reset flow for ``email``."""
        ...

    async def get_session(self) -> AuthSession | None:
        """Return the current session, if any."""
        ...


# ═══════════════════════════════════════════════════════════════
# PROFILE STORE PORT
# ═══════════════════════════════════════════════════════════════


@runtime_checkable
class IProfileStore(Protocol):
    """Protocol for CRUD on a single profile record.

    Implementations raise StorageError on read/write failures.
    """

    async def fetch(self, account_id: str) -> ProfileRecord | None:
        """Fetch a profile by account id, or None."""
        ...

    async def fetch_by_email(self, email: str) -> ProfileRecord | None:
        """Fetch a profile by email, or None."""
        ...

    async def upsert(self, account_id: str, fields: dict[str, Any]) -> ProfileRecord:
        """Insert or update the profile row keyed by ``account_id``.

        Args:
            account_id: Profile id (same as the identity provider's user id).
            fields: Columns to set. ``email`` is required on insert.

        Returns:
            The stored record.
        """
        ...


# ═══════════════════════════════════════════════════════════════
# SECRET GATEWAY PORT
# ═══════════════════════════════════════════════════════════════


@runtime_checkable
class ISecretGateway(Protocol):
    """Protocol for reading and writing enrollment state.

    The single source of truth for whether an account uses 2FA. Writes for
    one account must not interleave.
    """

    async def read_enrollment(self, account_id: str) -> TwoFactorEnrollment:
        """Read enrollment by account id.

        Raises:
            EnrollmentNotFoundError: No profile for this account.
            StorageError: Read failed.
        """
        ...

    async def read_enrollment_by_email(self, email: str) -> TwoFactorEnrollment:
        """Read enrollment by the account's email.

        Raises:
            EnrollmentNotFoundError: No profile for this email.
            StorageError: Read failed.
        """
        ...

    async def write_enrollment(
        self, account_id: str, enrollment: TwoFactorEnrollment
    ) -> None:
        """Persist both enrollment fields together.

        Raises:
            StorageError: Write failed; prior state is untouched.
        """
        ...


# ═══════════════════════════════════════════════════════════════
# QR ENCODER PORT
# ═══════════════════════════════════════════════════════════════


@runtime_checkable
class IQrEncoder(Protocol):
    """Protocol for rendering a provisioning URI as a scannable image."""

    def encode(self, data: str) -> str:
        """Return an image for ``data`` (e.g. a PNG data URL)."""
        ...


# ═══════════════════════════════════════════════════════════════
# ATTEMPT LIMITER PORT
# ═══════════════════════════════════════════════════════════════


@runtime_checkable
class IAttemptLimiter(Protocol):
    """Protocol for counting rejected codes and locking accounts."""

    async def record_failure(self, key: str) -> int:
        """Record a rejected code. Returns the failure count."""
        ...

    async def lock(self, key: str, seconds: float) -> None:
        """Lock ``key`` for ``seconds``."""
        ...

    async def locked_for(self, key: str) -> float | None:
        """Seconds left on the lock, or None if not locked."""
        ...

    async def clear(self, key: str) -> None:
        """Reset failures and lock for ``key``."""
        ...


# ═══════════════════════════════════════════════════════════════
# AUDIT STORE PORT
# ═══════════════════════════════════════════════════════════════


@runtime_checkable
class IAuthAuditStore(Protocol):
    """Protocol for authentication audit event storage."""

    async def record(self, event: AuthAuditEvent) -> None:
        """Record an audit event."""
        ...

    async def get_events(
        self,
        principal_id: str,
        *,
        event_types: list[AuthEventType] | None = None,
        limit: int = 100,
    ) -> list[AuthAuditEvent]:
        """Get audit events for a principal, most recent first."""
        ...


__all__: list[str] = [
    "IIdentityProvider",
    "IProfileStore",
    "ISecretGateway",
    "IQrEncoder",
    "IAttemptLimiter",
    "IAuthAuditStore",
]
