"""Disable two-factor authentication for an account."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from . import audit
from .audit import AuthEventType
from .config import TwoFactorConfig
from .exceptions import InvalidCodeError, StorageError, TwoFactorNotEnabledError
from .models import TwoFactorEnrollment
from .totp import TotpEngine

if TYPE_CHECKING:
    from datetime import datetime

    from .ports import IAuthAuditStore, ISecretGateway

logger = logging.getLogger(__name__)

_SOURCE = "disable"


async def disable_two_factor(
    account_id: str,
    *,
    gateway: ISecretGateway,
    config: TwoFactorConfig | None = None,
    engine: TotpEngine | None = None,
    code: str | None = None,
    now: int | float | datetime | None = None,
    audit_store: IAuthAuditStore | None = None,
) -> TwoFactorEnrollment:
    """Clear the secret and the enabled flag together.

    Idempotent: disabling an account that is not enrolled writes the same
    cleared state again.

    No code is asked for unless ``config.require_code_to_disable`` is set,
    in which case ``code`` must validate against the stored secret.

    Args:
        account_id: Profile id.
        gateway: Enrollment storage.
        config: Two-factor configuration.
        engine: TOTP engine used when a code is required.
        code: Current code, when required.
        now: Reference time for the code check.
        audit_store: Records the event (optional).

    Returns:
        The cleared enrollment.

    Raises:
        TwoFactorNotEnabledError: A code is required but none is enrolled.
        InvalidCodeError: A code is required and it does not validate.
        StorageError: The write failed; the stored state is unchanged.
    """
    config = config or (engine.config if engine else TwoFactorConfig())

    if config.require_code_to_disable:
        engine = engine or TotpEngine(config)
        current = await gateway.read_enrollment(account_id)
        if not current.is_active or current.secret is None:
            raise TwoFactorNotEnabledError("Two-factor authentication is not enabled")
        if not engine.validate_code(current.secret, code, now):
            logger.warning("Rejected disable code for account %s", account_id)
            raise InvalidCodeError()

    cleared = TwoFactorEnrollment.disabled()
    try:
        await gateway.write_enrollment(account_id, cleared)
    except StorageError as e:
        logger.warning("Could not disable 2FA for account %s: %s", account_id, e)
        await audit.record(
            audit_store,
            audit.failure_event(AuthEventType.MFA_DISABLED, account_id, _SOURCE, e),
        )
        raise

    logger.info("2FA disabled for account %s", account_id)
    await audit.record(
        audit_store,
        audit.success_event(AuthEventType.MFA_DISABLED, account_id, _SOURCE),
    )
    return cleared


__all__: list[str] = ["disable_two_factor"]
