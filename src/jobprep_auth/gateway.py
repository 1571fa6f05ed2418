"""Secret gateway backed by the profile store.

Enrollment state lives on the profile record as ``two_factor_enabled`` and
``two_factor_secret``. Both columns are always written in one upsert.
"""

from __future__ import annotations

import asyncio
import logging
from collections import Counter
from typing import TYPE_CHECKING

from pydantic import ValidationError

from .exceptions import EnrollmentNotFoundError, StorageError
from .ports import ISecretGateway

if TYPE_CHECKING:
    from .models import ProfileRecord, TwoFactorEnrollment
    from .ports import IProfileStore

logger = logging.getLogger(__name__)


def _enrollment_of(profile: ProfileRecord) -> TwoFactorEnrollment:
    try:
        return profile.enrollment
    except ValidationError as e:
        logger.error("Profile %s holds a malformed 2FA secret", profile.id)
        raise StorageError("Stored two-factor secret is corrupt") from e


class ProfileSecretGateway(ISecretGateway):
    """ISecretGateway over an IProfileStore.

    Writes for the same account are serialized with a per-account lock, so
    the enabled flag and the secret never come from two different writers.
    A lock is dropped once no writer holds or waits for it. Storage errors
    raised by the profile store propagate unchanged; a stored secret that is
    not valid base32 is reported as a StorageError.

    Example:
        ```python
        gateway = ProfileSecretGateway(SQLAlchemyProfileStore(session_factory))

        enrollment = await gateway.read_enrollment("user-123")
        if enrollment.is_active:
            ...
        ```
    """

    def __init__(self, profile_store: IProfileStore) -> None:
        self.profile_store = profile_store
        self._write_locks: dict[str, asyncio.Lock] = {}
        self._lock_users: Counter[str] = Counter()

    async def read_enrollment(self, account_id: str) -> TwoFactorEnrollment:
        profile = await self.profile_store.fetch(account_id)
        if profile is None:
            raise EnrollmentNotFoundError(f"No profile for account {account_id}")
        return _enrollment_of(profile)

    async def read_enrollment_by_email(self, email: str) -> TwoFactorEnrollment:
        profile = await self.profile_store.fetch_by_email(email)
        if profile is None:
            raise EnrollmentNotFoundError("No profile for this email")
        return _enrollment_of(profile)

    async def is_enabled(self, account_id: str) -> bool:
        """True if the account has an active enrollment.

        Missing profiles read as not enrolled.
        """
        try:
            enrollment = await self.read_enrollment(account_id)
        except EnrollmentNotFoundError:
            return False
        return enrollment.is_active

    async def write_enrollment(
        self, account_id: str, enrollment: TwoFactorEnrollment
    ) -> None:
        lock = self._write_locks.setdefault(account_id, asyncio.Lock())
        self._lock_users[account_id] += 1
        try:
            async with lock:
                profile = await self.profile_store.fetch(account_id)
                if profile is None:
                    raise EnrollmentNotFoundError(
                        f"No profile for account {account_id}"
                    )
                await self.profile_store.upsert(account_id, enrollment.to_fields())
        finally:
            self._lock_users[account_id] -= 1
            if not self._lock_users[account_id]:
                del self._lock_users[account_id]
                del self._write_locks[account_id]
        logger.debug(
            "Wrote enrollment for account %s (enabled=%s)",
            account_id,
            enrollment.enabled,
        )


__all__: list[str] = ["ProfileSecretGateway"]
