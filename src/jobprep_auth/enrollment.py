"""Two-factor enrollment flow.

States::

    IDLE -> SECRET_GENERATED <-> AWAITING_VERIFICATION -> VERIFIED

A secret-generation failure moves the flow to ERROR.

The new secret is held in memory only. Nothing is persisted until the user
proves possession with a valid code, so cancelling leaves the stored
enrollment untouched.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

from . import audit
from .audit import AuthEventType
from .config import TwoFactorConfig
from .exceptions import (
    EntropyError,
    FlowStateError,
    InvalidCodeError,
    InvalidParameterError,
    StorageError,
    TooManyAttemptsError,
)
from .models import TotpSecret, TwoFactorEnrollment
from .totp import TotpEngine, is_well_formed_code

if TYPE_CHECKING:
    from datetime import datetime

    from .ports import IAttemptLimiter, IAuthAuditStore, IQrEncoder, ISecretGateway

logger = logging.getLogger(__name__)

_SOURCE = "enrollment"


class EnrollmentState(str, Enum):
    IDLE = "idle"
    SECRET_GENERATED = "secret_generated"
    AWAITING_VERIFICATION = "awaiting_verification"
    VERIFIED = "verified"
    ERROR = "error"


@dataclass(frozen=True)
class EnrollmentSetup:
    """What the user needs to configure an authenticator app.

    Attributes:
        secret: The new secret (not yet persisted).
        provisioning_uri: otpauth:// URI for the QR code.
        manual_key: Secret in groups of 4 for manual entry.
        qr_data_url: PNG data URL of the QR code, if an encoder is set.
    """

    secret: TotpSecret
    provisioning_uri: str
    manual_key: str
    qr_data_url: str | None = None


class TwoFactorEnrollmentFlow:
    """Enroll an authenticated account in TOTP two-factor authentication.

    One instance per enrollment attempt. An entropy failure moves the flow
    to ERROR for good; start a new instance to try again.

    Example:
        ```python
        flow = TwoFactorEnrollmentFlow(
            account_id=user.id,
            account_label=user.email,
            gateway=gateway,
            qr_encoder=PngQrEncoder(),
        )
        setup = await flow.start()
        # show setup.qr_data_url / setup.manual_key
        flow.begin_verification()
        enrollment = await flow.submit_code("123456")
        ```
    """

    def __init__(
        self,
        *,
        account_id: str,
        account_label: str,
        gateway: ISecretGateway,
        engine: TotpEngine | None = None,
        config: TwoFactorConfig | None = None,
        qr_encoder: IQrEncoder | None = None,
        attempt_limiter: IAttemptLimiter | None = None,
        audit_store: IAuthAuditStore | None = None,
    ) -> None:
        """Initialize the flow.

        Args:
            account_id: Profile id the enrollment is written to.
            account_label: Label shown in the authenticator app (email).
            gateway: Where the verified enrollment is persisted.
            engine: TOTP engine (default built from ``config``).
            config: Two-factor configuration.
            qr_encoder: Renders the provisioning URI (optional).
            attempt_limiter: Limits rejected codes per account (optional).
            audit_store: Records enrollment events (optional).
        """
        self.account_id = account_id
        self.account_label = account_label
        self.gateway = gateway
        self.config = config or (engine.config if engine else TwoFactorConfig())
        self.engine = engine or TotpEngine(self.config)
        self.qr_encoder = qr_encoder
        self.attempt_limiter = attempt_limiter
        self.audit_store = audit_store

        self._state = EnrollmentState.IDLE
        self._setup: EnrollmentSetup | None = None
        self._error: Exception | None = None

    @property
    def state(self) -> EnrollmentState:
        return self._state

    @property
    def setup(self) -> EnrollmentSetup | None:
        """Setup data while a secret is held, else None."""
        return self._setup

    @property
    def error(self) -> Exception | None:
        """The error that moved the flow to ERROR."""
        return self._error

    def _require(self, *states: EnrollmentState) -> None:
        if self._state not in states:
            raise FlowStateError(
                f"Cannot do this while enrollment is {self._state.value}"
            )

    def _fail(self, error: Exception) -> None:
        self._state = EnrollmentState.ERROR
        self._setup = None
        self._error = error

    async def start(self) -> EnrollmentSetup:
        """Generate a secret and its provisioning data.

        Returns:
            Setup data to show the user.

        Raises:
            EntropyError: No secure randomness; the flow is now in ERROR.
            InvalidParameterError: Empty account label; the flow is in ERROR.
        """
        self._require(EnrollmentState.IDLE)
        try:
            secret = self.engine.generate_secret(self.config.secret_bytes)
            uri = self.engine.build_provisioning_uri(secret, self.account_label)
        except (EntropyError, InvalidParameterError) as e:
            logger.error(
                "Could not start 2FA enrollment for account %s: %s",
                self.account_id,
                e,
            )
            self._fail(e)
            raise

        qr_data_url = self.qr_encoder.encode(uri) if self.qr_encoder else None
        self._setup = EnrollmentSetup(
            secret=secret,
            provisioning_uri=uri,
            manual_key=secret.manual_key(),
            qr_data_url=qr_data_url,
        )
        self._state = EnrollmentState.SECRET_GENERATED
        logger.info("Started 2FA enrollment for account %s", self.account_id)
        return self._setup

    def begin_verification(self) -> None:
        """Move on from showing the QR code to asking for a code."""
        self._require(EnrollmentState.SECRET_GENERATED)
        self._state = EnrollmentState.AWAITING_VERIFICATION

    def back(self) -> None:
        """Go back to showing the QR code. The secret is kept."""
        self._require(EnrollmentState.AWAITING_VERIFICATION)
        self._state = EnrollmentState.SECRET_GENERATED

    async def submit_code(
        self, code: str, *, now: int | float | datetime | None = None
    ) -> TwoFactorEnrollment:
        """Verify a code and, on success, persist the enrollment.

        Args:
            code: 6-digit code from the authenticator app.
            now: Reference time (default: the engine's clock).

        Returns:
            The persisted enrollment.

        Raises:
            InvalidCodeError: Malformed or wrong code; still awaiting a code.
            TooManyAttemptsError: Too many wrong codes; still awaiting a code.
            StorageError: Persisting failed; the secret is kept for a retry.
        """
        self._require(EnrollmentState.AWAITING_VERIFICATION)
        setup = self._setup
        if setup is None:
            raise FlowStateError("No secret is held for verification")

        if not is_well_formed_code(code, self.config.digits):
            raise InvalidCodeError("Please enter a valid 6-digit code")

        await self._check_lockout()

        if not self.engine.validate_code(setup.secret, code, now):
            await self._record_rejection()
            raise InvalidCodeError()

        enrollment = TwoFactorEnrollment.active(setup.secret)
        try:
            await self.gateway.write_enrollment(self.account_id, enrollment)
        except StorageError as e:
            logger.warning(
                "Could not save 2FA enrollment for account %s: %s",
                self.account_id,
                e,
            )
            await audit.record(
                self.audit_store,
                audit.failure_event(
                    AuthEventType.MFA_ENABLED, self.account_id, _SOURCE, error=e
                ),
            )
            raise

        if self.attempt_limiter:
            await self.attempt_limiter.clear(self._limiter_key)
        self._state = EnrollmentState.VERIFIED
        self._setup = None
        logger.info("2FA enabled for account %s", self.account_id)
        await audit.record(
            self.audit_store,
            audit.success_event(AuthEventType.MFA_ENABLED, self.account_id, _SOURCE),
        )
        return enrollment

    def cancel(self) -> None:
        """Discard the in-memory secret. Nothing was persisted.

        A no-op once the flow is VERIFIED.
        """
        if self._state is EnrollmentState.VERIFIED:
            return
        self._setup = None
        if self._state is not EnrollmentState.ERROR:
            self._state = EnrollmentState.IDLE
        logger.info("2FA enrollment cancelled for account %s", self.account_id)

    @property
    def _limiter_key(self) -> str:
        return f"enroll:{self.account_id}"

    async def _check_lockout(self) -> None:
        if self.attempt_limiter is None:
            return
        remaining = await self.attempt_limiter.locked_for(self._limiter_key)
        if remaining is not None:
            raise TooManyAttemptsError(retry_after=remaining)

    async def _record_rejection(self) -> None:
        logger.warning("Rejected enrollment code for account %s", self.account_id)
        await audit.record(
            self.audit_store,
            audit.failure_event(
                AuthEventType.MFA_FAILED, self.account_id, _SOURCE, InvalidCodeError()
            ),
        )
        if self.attempt_limiter is None or self.config.max_code_attempts == 0:
            return
        count = await self.attempt_limiter.record_failure(self._limiter_key)
        if count >= self.config.max_code_attempts:
            await self.attempt_limiter.lock(
                self._limiter_key, self.config.lockout_seconds
            )
            raise TooManyAttemptsError(retry_after=self.config.lockout_seconds)


__all__: list[str] = [
    "EnrollmentState",
    "EnrollmentSetup",
    "TwoFactorEnrollmentFlow",
]
