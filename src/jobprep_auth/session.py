"""Session context: owns the signed-in user and the sign-in gate.

Replaces ambient, app-wide auth state with an explicit object. Build one at
app start, ``await start()`` it, and ``await close()`` it on shutdown. Sign-out
always drops any pending two-factor sign-in and every locally cached session
artifact.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

from . import audit
from .audit import AuthEventType
from .exceptions import IdentityProviderError

if TYPE_CHECKING:
    from types import TracebackType

    from .gate import AuthenticationGate, SignInResult
    from .models import AuthSession, AuthUser
    from .ports import IAuthAuditStore, IIdentityProvider

logger = logging.getLogger(__name__)

SESSION_KEY = "auth.session"

_SOURCE = "session"


class LocalSessionCache:
    """In-process cache for session artifacts.

    Holds what a client keeps between requests (current session, tokens).
    Entries may carry an expiry time; expired entries read as missing.
    """

    def __init__(self) -> None:
        self._store: dict[str, tuple[Any, datetime | None]] = {}

    def store(self, key: str, data: Any, expires_at: datetime | None = None) -> None:
        if expires_at is not None and expires_at.tzinfo is None:
            expires_at = expires_at.replace(tzinfo=timezone.utc)
        self._store[key] = (data, expires_at)

    def get(self, key: str) -> Any | None:
        entry = self._store.get(key)
        if entry is None:
            return None
        data, expires_at = entry
        if expires_at is not None and datetime.now(timezone.utc) > expires_at:
            del self._store[key]
            return None
        return data

    def delete(self, key: str) -> None:
        self._store.pop(key, None)

    def clear_all(self) -> None:
        self._store.clear()

    def __len__(self) -> int:
        return len(self._store)


class AuthSessionContext:
    """Explicit auth state for one client context.

    Example:
        ```python
        async with AuthSessionContext(
            identity_provider=provider, gate=gate
        ) as auth:
            result = await auth.sign_in("jane@example.com", "hunter2")
            if result.two_factor_required:
                await auth.verify_two_factor(code)
            print(auth.user)
        ```
    """

    def __init__(
        self,
        *,
        identity_provider: IIdentityProvider,
        gate: AuthenticationGate,
        cache: LocalSessionCache | None = None,
        audit_store: IAuthAuditStore | None = None,
    ) -> None:
        self.identity_provider = identity_provider
        self.gate = gate
        self.cache = cache if cache is not None else LocalSessionCache()
        self.audit_store = audit_store
        self._loading = True

    @property
    def session(self) -> AuthSession | None:
        """The cached session, or None once it has expired."""
        session: AuthSession | None = self.cache.get(SESSION_KEY)
        return session

    @property
    def user(self) -> AuthUser | None:
        session = self.session
        return session.user if session else None

    @property
    def loading(self) -> bool:
        return self._loading

    @property
    def two_factor_pending(self) -> bool:
        """True while the code prompt should be shown."""
        return self.gate.pending is not None

    async def start(self) -> None:
        """Load the provider's existing session, if any."""
        self._loading = True
        try:
            self._set_session(await self.identity_provider.get_session())
        finally:
            self._loading = False

    async def close(self) -> None:
        """Tear down local state without contacting the provider."""
        self.gate.discard_pending()
        self.cache.clear_all()

    async def __aenter__(self) -> AuthSessionContext:
        await self.start()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.close()

    def _set_session(self, session: AuthSession | None) -> None:
        if session is None:
            self.cache.delete(SESSION_KEY)
        else:
            self.cache.store(SESSION_KEY, session, expires_at=session.expires_at)

    async def sign_up(self, email: str, password: str) -> AuthSession | None:
        session = await self.identity_provider.sign_up(email, password)
        if session is not None:
            self._set_session(session)
        return session

    async def sign_in(self, email: str, password: str) -> SignInResult:
        result = await self.gate.sign_in(email, password)
        if result.session is not None:
            self._set_session(result.session)
        return result

    async def verify_two_factor(self, code: str) -> SignInResult:
        result = await self.gate.verify_code(code)
        if result.session is not None:
            self._set_session(result.session)
        return result

    async def cancel_two_factor(self) -> None:
        await self.gate.cancel()

    async def reset_password(self, email: str) -> None:
        await self.identity_provider.reset_password(email)

    async def sign_out(self) -> None:
        """Sign out everywhere this context knows about.

        Local state is cleared even if the provider's sign-out fails.
        """
        session = self.session
        self.gate.discard_pending()
        self.cache.clear_all()
        principal_id = session.user.email if session else None
        try:
            await self.identity_provider.sign_out(session)
        except IdentityProviderError as e:
            logger.error("Provider sign-out failed: %s", e)
            await audit.record(
                self.audit_store,
                audit.failure_event(AuthEventType.LOGOUT, principal_id, _SOURCE, e),
            )
            return
        logger.info(
            "Signed out account %s", session.user.id if session else "(none)"
        )
        await audit.record(
            self.audit_store,
            audit.success_event(AuthEventType.LOGOUT, principal_id, _SOURCE),
        )


__all__: list[str] = ["LocalSessionCache", "AuthSessionContext", "SESSION_KEY"]
