"""Sign-in gate with a pending two-factor state.

States per sign-in attempt::

    NO_ATTEMPT -> CREDENTIALS_SUBMITTED -> SESSION_ISSUED | REJECTED
                                        -> TWO_FACTOR_PENDING
    TWO_FACTOR_PENDING -> SESSION_ISSUED | REJECTED
    TWO_FACTOR_PENDING -> NO_ATTEMPT (cancel, expiry)

For an enrolled account no session is issued until a code validates. By
default the password is only checked with the identity provider after the
code. With ``TwoFactorConfig.verify_password_first`` the password is also
checked up front; the provider session that check opens is signed out at
once, so no provider session exists until the code validates.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING

from pydantic import SecretStr

from . import audit
from .audit import AuthEventType
from .config import TwoFactorConfig
from .exceptions import (
    EnrollmentNotFoundError,
    IdentityProviderError,
    InvalidCodeError,
    NoPendingAuthenticationError,
    PendingAuthenticationExpiredError,
    SignInInProgressError,
    StorageError,
    TooManyAttemptsError,
)
from .models import AuthSession, PendingAuthentication, TwoFactorEnrollment
from .totp import TotpEngine

if TYPE_CHECKING:
    from .ports import (
        IAttemptLimiter,
        IAuthAuditStore,
        IIdentityProvider,
        ISecretGateway,
    )

logger = logging.getLogger(__name__)

_SOURCE = "sign_in"


class SignInState(str, Enum):
    NO_ATTEMPT = "no_attempt"
    CREDENTIALS_SUBMITTED = "credentials_submitted"
    TWO_FACTOR_PENDING = "two_factor_pending"
    SESSION_ISSUED = "session_issued"
    REJECTED = "rejected"


@dataclass(frozen=True)
class SignInResult:
    """Outcome of a sign-in step.

    Attributes:
        state: State the gate is in after the step.
        session: The issued session when ``state`` is SESSION_ISSUED.
    """

    state: SignInState
    session: AuthSession | None = None

    @property
    def two_factor_required(self) -> bool:
        """True when the caller must prompt for a one-time code."""
        return self.state is SignInState.TWO_FACTOR_PENDING


class AuthenticationGate:
    """Wraps password sign-in with a TOTP second step.

    Holds at most one PendingAuthentication. A second sign-in while one is
    pending (or still being processed) is rejected with
    SignInInProgressError; code checks are serialized.

    Example:
        ```python
        gate = AuthenticationGate(identity_provider=provider, gateway=gateway)

        result = await gate.sign_in("jane@example.com", "hunter2")
        if result.two_factor_required:
            result = await gate.verify_code(code_from_user)
        session = result.session
        ```
    """

    def __init__(
        self,
        *,
        identity_provider: IIdentityProvider,
        gateway: ISecretGateway,
        engine: TotpEngine | None = None,
        config: TwoFactorConfig | None = None,
        attempt_limiter: IAttemptLimiter | None = None,
        audit_store: IAuthAuditStore | None = None,
    ) -> None:
        """Initialize the gate.

        Args:
            identity_provider: Checks passwords and issues sessions.
            gateway: Enrollment lookup.
            engine: TOTP engine; its clock also times pending challenges.
            config: Two-factor configuration.
            attempt_limiter: Limits rejected codes per account (optional).
            audit_store: Records sign-in events (optional).
        """
        self.identity_provider = identity_provider
        self.gateway = gateway
        self.config = config or (engine.config if engine else TwoFactorConfig())
        self.engine = engine or TotpEngine(self.config)
        self.attempt_limiter = attempt_limiter
        self.audit_store = audit_store

        self._state = SignInState.NO_ATTEMPT
        self._pending: PendingAuthentication | None = None
        self._lock = asyncio.Lock()

    @property
    def state(self) -> SignInState:
        return self._state

    @property
    def pending(self) -> PendingAuthentication | None:
        return self._pending

    def _now(self) -> datetime:
        return datetime.fromtimestamp(self.engine.clock(), tz=timezone.utc)

    def _expired(self, pending: PendingAuthentication) -> bool:
        return pending.age_seconds(self._now()) > self.config.pending_ttl_seconds

    # ───────────────────────────────────────────────────────────
    # Credentials
    # ───────────────────────────────────────────────────────────

    async def sign_in(self, email: str, password: str) -> SignInResult:
        """Submit primary credentials.

        Returns:
            SESSION_ISSUED with a session for accounts without 2FA, or
            TWO_FACTOR_PENDING when a code must be entered next.

        Raises:
            SignInInProgressError: Another sign-in is pending or in flight.
            TooManyAttemptsError: The account is locked after wrong codes.
            StorageError: Enrollment lookup failed (retryable).
            IdentityProviderError: The provider rejected the credentials.
        """
        if self._lock.locked():
            raise SignInInProgressError()

        async with self._lock:
            if self._pending is not None:
                if not self._expired(self._pending):
                    raise SignInInProgressError()
                self._drop_pending(SignInState.NO_ATTEMPT)

            self._state = SignInState.CREDENTIALS_SUBMITTED
            await self._check_lockout(email)

            try:
                enrollment = await self.gateway.read_enrollment_by_email(email)
            except EnrollmentNotFoundError:
                enrollment = TwoFactorEnrollment.disabled()
            except StorageError as e:
                logger.warning("Enrollment lookup failed during sign-in: %s", e)
                self._state = SignInState.REJECTED
                raise

            if enrollment.is_active and enrollment.secret is not None:
                if self.config.verify_password_first:
                    await self._check_password(email, password)
                self._pending = PendingAuthentication(
                    account_identifier=email,
                    primary_credential=SecretStr(password),
                    secret=enrollment.secret,
                    created_at=self._now(),
                    password_verified=self.config.verify_password_first,
                )
                self._state = SignInState.TWO_FACTOR_PENDING
                logger.info("Two-factor code required for %s", email)
                await audit.record(
                    self.audit_store,
                    audit.success_event(AuthEventType.MFA_CHALLENGED, email, _SOURCE),
                )
                return SignInResult(state=self._state)

            session = await self._password_sign_in(email, password)
            return await self._issue(session)

    # ───────────────────────────────────────────────────────────
    # Second factor
    # ───────────────────────────────────────────────────────────

    async def verify_code(
        self, code: str, *, now: int | float | datetime | None = None
    ) -> SignInResult:
        """Submit the one-time code for the pending sign-in.

        Args:
            code: 6-digit code from the authenticator app.
            now: Reference time for the code (default: the engine's clock).

        Returns:
            SESSION_ISSUED with the session.

        Raises:
            NoPendingAuthenticationError: Nothing is awaiting a code.
            PendingAuthenticationExpiredError: The challenge timed out.
            InvalidCodeError: Wrong code; still pending, the user may retry.
            TooManyAttemptsError: Too many wrong codes; the sign-in is rejected.
            IdentityProviderError: The password was rejected after the code.
        """
        async with self._lock:
            pending = self._pending
            if pending is None:
                raise NoPendingAuthenticationError()
            email = pending.account_identifier

            if self._expired(pending):
                logger.warning("Two-factor challenge for %s expired", email)
                self._drop_pending(SignInState.NO_ATTEMPT)
                await audit.record(
                    self.audit_store,
                    audit.failure_event(
                        AuthEventType.MFA_EXPIRED,
                        email,
                        _SOURCE,
                        PendingAuthenticationExpiredError(),
                    ),
                )
                raise PendingAuthenticationExpiredError()

            try:
                await self._check_lockout(email)
            except TooManyAttemptsError:
                self._drop_pending(SignInState.REJECTED)
                raise

            if not self.engine.validate_code(pending.secret, code, now):
                await self._reject_code(email)
                raise InvalidCodeError()

            logger.info("Two-factor code accepted for %s", email)
            await audit.record(
                self.audit_store,
                audit.success_event(AuthEventType.MFA_VERIFIED, email, _SOURCE),
            )
            if self.attempt_limiter:
                await self.attempt_limiter.clear(email)

            self._pending = None
            session = await self._password_sign_in(
                email, pending.primary_credential.get_secret_value()
            )
            return await self._issue(session)

    async def cancel(self) -> None:
        """Abandon the pending sign-in and return to NO_ATTEMPT."""
        async with self._lock:
            if self._pending is None:
                return
            email = self._pending.account_identifier
            self._drop_pending(SignInState.NO_ATTEMPT)
            logger.info("Two-factor sign-in cancelled for %s", email)
            await audit.record(
                self.audit_store,
                audit.success_event(AuthEventType.MFA_CANCELLED, email, _SOURCE),
            )

    def discard_pending(self) -> None:
        """Drop any pending sign-in without contacting the provider.

        Called on sign-out; never fails.
        """
        self._pending = None
        self._state = SignInState.NO_ATTEMPT

    # ───────────────────────────────────────────────────────────
    # Internals
    # ───────────────────────────────────────────────────────────

    async def _password_sign_in(self, email: str, password: str) -> AuthSession:
        try:
            return await self.identity_provider.sign_in_with_password(email, password)
        except IdentityProviderError as e:
            self._state = SignInState.REJECTED
            logger.warning("Sign-in rejected for %s: %s", email, e)
            await audit.record(
                self.audit_store,
                audit.failure_event(AuthEventType.LOGIN_FAILED, email, _SOURCE, e),
            )
            raise

    async def _check_password(self, email: str, password: str) -> None:
        # No provider session may exist while the code is pending
        session = await self._password_sign_in(email, password)
        try:
            await self.identity_provider.sign_out(session)
        except IdentityProviderError:
            self._state = SignInState.REJECTED
            raise

    async def _issue(self, session: AuthSession) -> SignInResult:
        self._state = SignInState.SESSION_ISSUED
        logger.info("Session issued for account %s", session.user.id)
        await audit.record(
            self.audit_store,
            audit.success_event(
                AuthEventType.LOGIN_SUCCESS, session.user.email, _SOURCE
            ),
        )
        return SignInResult(state=self._state, session=session)

    def _drop_pending(self, state: SignInState) -> None:
        self._pending = None
        self._state = state

    async def _check_lockout(self, email: str) -> None:
        if self.attempt_limiter is None:
            return
        remaining = await self.attempt_limiter.locked_for(email)
        if remaining is not None:
            self._state = SignInState.REJECTED
            raise TooManyAttemptsError(retry_after=remaining)

    async def _reject_code(self, email: str) -> None:
        logger.warning("Rejected two-factor code for %s", email)
        await audit.record(
            self.audit_store,
            audit.failure_event(
                AuthEventType.MFA_FAILED, email, _SOURCE, InvalidCodeError()
            ),
        )
        if self.attempt_limiter is None or self.config.max_code_attempts == 0:
            return
        count = await self.attempt_limiter.record_failure(email)
        if count < self.config.max_code_attempts:
            return
        await self.attempt_limiter.lock(email, self.config.lockout_seconds)
        self._drop_pending(SignInState.REJECTED)
        logger.warning("Locked %s after %d rejected codes", email, count)
        await audit.record(
            self.audit_store,
            audit.failure_event(
                AuthEventType.MFA_LOCKED, email, _SOURCE, TooManyAttemptsError()
            ),
        )
        raise TooManyAttemptsError(retry_after=self.config.lockout_seconds)


__all__: list[str] = ["SignInState", "SignInResult", "AuthenticationGate"]
