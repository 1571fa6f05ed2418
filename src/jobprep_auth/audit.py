"""Audit events for enrollment and sign-in.

Events are recorded only when an IAuthAuditStore is supplied to a flow.
Secrets, passwords and codes are never put in an event.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from .ports import IAuthAuditStore


class AuthEventType(Enum):
    """Types of authentication audit events.

    Event naming follows the pattern: `auth.<resource>.<action>`
    """

    # Sign-in events
    LOGIN_SUCCESS = "auth.login.success"
    LOGIN_FAILED = "auth.login.failed"
    LOGOUT = "auth.logout"

    # Two-factor events
    MFA_ENABLED = "auth.mfa.enabled"
    MFA_DISABLED = "auth.mfa.disabled"
    MFA_CHALLENGED = "auth.mfa.challenged"
    MFA_VERIFIED = "auth.mfa.verified"
    MFA_FAILED = "auth.mfa.failed"
    MFA_CANCELLED = "auth.mfa.cancelled"
    MFA_EXPIRED = "auth.mfa.expired"
    MFA_LOCKED = "auth.mfa.locked"


@dataclass(frozen=True)
class AuthAuditEvent:
    """Authentication audit event.

    Attributes:
        event_type: The type of event.
        principal_id: Account id or email the event is about.
        source: Component that emitted the event (``enrollment``,
            ``sign_in``, ``disable``).
        timestamp: When the event occurred (UTC).
        success: Whether the operation succeeded.
        error_code: Error code if the operation failed.
        error_message: Human-readable message if it failed.
        metadata: Additional event-specific data.
    """

    event_type: AuthEventType
    principal_id: str | None = None
    source: str = "unknown"
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    success: bool = True
    error_code: str | None = None
    error_message: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not self.success and not self.error_code:
            object.__setattr__(self, "error_code", "UNKNOWN_ERROR")

    def to_dict(self) -> dict[str, Any]:
        return {
            "event_type": self.event_type.value,
            "principal_id": self.principal_id,
            "source": self.source,
            "timestamp": self.timestamp.isoformat(),
            "success": self.success,
            "error_code": self.error_code,
            "error_message": self.error_message,
            "metadata": self.metadata,
        }


def success_event(
    event_type: AuthEventType,
    principal_id: str | None,
    source: str,
    **metadata: Any,
) -> AuthAuditEvent:
    """Create a successful event."""
    return AuthAuditEvent(
        event_type=event_type,
        principal_id=principal_id,
        source=source,
        metadata=metadata,
    )


def failure_event(
    event_type: AuthEventType,
    principal_id: str | None,
    source: str,
    error: BaseException | None = None,
    **metadata: Any,
) -> AuthAuditEvent:
    """Create a failed event from the error that caused it."""
    return AuthAuditEvent(
        event_type=event_type,
        principal_id=principal_id,
        source=source,
        success=False,
        error_code=type(error).__name__ if error is not None else None,
        error_message=str(error) if error is not None else None,
        metadata=metadata,
    )


async def record(store: IAuthAuditStore | None, event: AuthAuditEvent) -> None:
    """Record ``event`` if a store is configured."""
    if store is None:
        return
    await store.record(event)


class InMemoryAuthAuditStore(IAuthAuditStore):
    """In-memory audit store for testing and development.

    Events are lost on restart. Not suitable for production use.
    """

    def __init__(self) -> None:
        self._events: list[AuthAuditEvent] = []
        self._by_principal: dict[str, list[int]] = defaultdict(list)

    async def record(self, event: AuthAuditEvent) -> None:
        index = len(self._events)
        self._events.append(event)
        if event.principal_id:
            self._by_principal[event.principal_id].append(index)

    async def get_events(
        self,
        principal_id: str,
        *,
        event_types: list[AuthEventType] | None = None,
        limit: int = 100,
    ) -> list[AuthAuditEvent]:
        results: list[AuthAuditEvent] = []
        for idx in reversed(self._by_principal.get(principal_id, [])):
            event = self._events[idx]
            if event_types and event.event_type not in event_types:
                continue
            results.append(event)
            if len(results) >= limit:
                break
        return results

    def event_types(self) -> list[AuthEventType]:
        """All recorded event types, oldest first."""
        return [event.event_type for event in self._events]

    def clear(self) -> None:
        self._events.clear()
        self._by_principal.clear()


__all__: list[str] = [
    "AuthEventType",
    "AuthAuditEvent",
    "success_event",
    "failure_event",
    "record",
    "InMemoryAuthAuditStore",
]
