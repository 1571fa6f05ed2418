"""In-memory collaborators for development and testing.

WARNING: Not suitable for production. Data lives in process memory and
is lost on restart; nothing is shared between workers.
"""

from __future__ import annotations

import secrets
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any

import bcrypt

from .exceptions import IdentityProviderError, StorageError
from .models import AuthSession, AuthUser, ProfileRecord
from .ports import IIdentityProvider, IProfileStore

_PROFILE_FIELDS = frozenset(ProfileRecord.model_fields) - {
    "id",
    "created_at",
    "updated_at",
}


class InMemoryProfileStore(IProfileStore):
    """In-memory profile store keyed by account id."""

    def __init__(self) -> None:
        self._profiles: dict[str, ProfileRecord] = {}

    async def fetch(self, account_id: str) -> ProfileRecord | None:
        return self._profiles.get(account_id)

    async def fetch_by_email(self, email: str) -> ProfileRecord | None:
        for profile in self._profiles.values():
            if profile.email == email:
                return profile
        return None

    async def upsert(self, account_id: str, fields: dict[str, Any]) -> ProfileRecord:
        unknown = set(fields) - _PROFILE_FIELDS
        if unknown:
            raise StorageError(f"Unknown profile fields: {sorted(unknown)}")

        now = datetime.now(timezone.utc)
        existing = self._profiles.get(account_id)
        if existing is None:
            if not fields.get("email"):
                raise StorageError("email is required to create a profile")
            data: dict[str, Any] = {"id": account_id, "created_at": now}
        else:
            data = existing.model_dump()
        data.update(fields)
        data["updated_at"] = now

        profile = ProfileRecord.model_validate(data)
        self._profiles[account_id] = profile
        return profile

    def clear(self) -> None:
        self._profiles.clear()


class InMemoryIdentityProvider(IIdentityProvider):
    """In-memory identity provider with bcrypt-hashed passwords.

    Example:
        ```python
        provider = InMemoryIdentityProvider()
        await provider.sign_up("jane@example.com", "hunter2")
        session = await provider.sign_in_with_password("jane@example.com", "hunter2")
        ```
    """

    def __init__(self, *, rounds: int = 12, session_ttl_seconds: int = 3600) -> None:
        """Initialize the provider.

        Args:
            rounds: bcrypt cost factor.
            session_ttl_seconds: Session lifetime (default 3600 = 1 hour).
        """
        self.rounds = rounds
        self.session_ttl_seconds = session_ttl_seconds
        self._accounts: dict[str, tuple[AuthUser, bytes]] = {}
        self._sessions: dict[str, AuthSession] = {}
        self._current: AuthSession | None = None
        self.password_resets: list[str] = []
        self.sign_in_calls: list[str] = []

    @staticmethod
    def _encode(password: str) -> bytes:
        # bcrypt only uses the first 72 bytes
        return password.encode("utf-8")[:72]

    async def sign_up(self, email: str, password: str) -> AuthSession | None:
        if email in self._accounts:
            raise IdentityProviderError("User already registered")
        if not password:
            raise IdentityProviderError("Password should not be empty")
        user = AuthUser(id=str(uuid.uuid4()), email=email)
        hashed = bcrypt.hashpw(self._encode(password), bcrypt.gensalt(self.rounds))
        self._accounts[email] = (user, hashed)
        return None

    async def sign_in_with_password(self, email: str, password: str) -> AuthSession:
        self.sign_in_calls.append(email)
        account = self._accounts.get(email)
        if account is None or not bcrypt.checkpw(self._encode(password), account[1]):
            raise IdentityProviderError("Invalid login credentials")

        user = account[0]
        session = AuthSession(
            access_token=secrets.token_urlsafe(32),
            refresh_token=secrets.token_urlsafe(32),
            user=user,
            expires_at=datetime.now(timezone.utc)
            + timedelta(seconds=self.session_ttl_seconds),
        )
        self._sessions[session.access_token] = session
        self._current = session
        return session

    async def sign_out(self, session: AuthSession | None = None) -> None:
        session = session or self._current
        if session is not None:
            self._sessions.pop(session.access_token, None)
        if self._current is session:
            self._current = None

    async def reset_password(self, email: str) -> None:
        # Unknown emails are accepted without error
        self.password_resets.append(email)

    async def get_session(self) -> AuthSession | None:
        return self._current

    def user_for(self, email: str) -> AuthUser | None:
        account = self._accounts.get(email)
        return account[0] if account else None

    def is_active(self, session: AuthSession) -> bool:
        return session.access_token in self._sessions

    @property
    def active_session_count(self) -> int:
        return len(self._sessions)


__all__: list[str] = ["InMemoryProfileStore", "InMemoryIdentityProvider"]
