"""Tests for the auth session context."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from datetime import datetime, timedelta, timezone

import pytest

from jobprep_auth import (
    AuthenticationGate,
    AuthEventType,
    AuthSession,
    AuthSessionContext,
    AuthUser,
    IdentityProviderError,
    InMemoryAuthAuditStore,
    InMemoryIdentityProvider,
    InMemoryProfileStore,
    LocalSessionCache,
    ProfileSecretGateway,
    TotpEngine,
    TotpSecret,
    TwoFactorConfig,
    TwoFactorEnrollment,
)
from jobprep_auth.session import SESSION_KEY
from tests.conftest import PASSWORD

Register = Callable[..., Awaitable[AuthUser]]

EMAIL = "jane@example.com"


class UnreachableProvider(InMemoryIdentityProvider):
    """Provider whose sign-out always fails."""

    async def sign_out(self, session: AuthSession | None = None) -> None:
        raise IdentityProviderError("Network request failed")


@pytest.fixture
def cache() -> LocalSessionCache:
    return LocalSessionCache()


@pytest.fixture
def context(
    provider: InMemoryIdentityProvider,
    gate: AuthenticationGate,
    cache: LocalSessionCache,
) -> AuthSessionContext:
    return AuthSessionContext(identity_provider=provider, gate=gate, cache=cache)


class TestLocalSessionCache:
    def test_store_and_get(self, cache: LocalSessionCache) -> None:
        cache.store("k", "v")
        assert cache.get("k") == "v"
        assert len(cache) == 1

    def test_entry_without_expiry_is_kept(self, cache: LocalSessionCache) -> None:
        cache.store("k", "v", expires_at=None)
        assert cache.get("k") == "v"

    def test_expired_entry_reads_as_missing(self, cache: LocalSessionCache) -> None:
        cache.store("k", "v", expires_at=datetime.now(timezone.utc) - timedelta(1))

        assert cache.get("k") is None
        assert len(cache) == 0

    def test_naive_expiry_is_utc(self, cache: LocalSessionCache) -> None:
        later = datetime.now(timezone.utc).replace(tzinfo=None) + timedelta(hours=1)
        cache.store("k", "v", expires_at=later)

        assert cache.get("k") == "v"

    def test_delete_and_clear(self, cache: LocalSessionCache) -> None:
        cache.store("a", 1)
        cache.store("b", 2)

        cache.delete("a")
        assert cache.get("a") is None

        cache.clear_all()
        assert len(cache) == 0


class TestAuthSessionContext:
    @pytest.mark.asyncio
    async def test_start_loads_existing_session(
        self,
        context: AuthSessionContext,
        provider: InMemoryIdentityProvider,
        register: Register,
    ) -> None:
        assert context.loading
        await register(EMAIL)
        session = await provider.sign_in_with_password(EMAIL, PASSWORD)

        await context.start()

        assert not context.loading
        assert context.session == session

    @pytest.mark.asyncio
    async def test_sign_in_sets_user(
        self,
        context: AuthSessionContext,
        cache: LocalSessionCache,
        register: Register,
    ) -> None:
        user = await register(EMAIL)

        async with context:
            await context.sign_in(EMAIL, PASSWORD)

            assert context.user == user
            assert cache.get(SESSION_KEY) == context.session

    @pytest.mark.asyncio
    async def test_two_factor_sign_in(
        self,
        context: AuthSessionContext,
        register: Register,
        engine: TotpEngine,
        secret: TotpSecret,
    ) -> None:
        user = await register(EMAIL, secret)
        await context.start()

        result = await context.sign_in(EMAIL, PASSWORD)

        assert result.two_factor_required
        assert context.two_factor_pending
        assert context.user is None

        await context.verify_two_factor(engine.compute_code(secret))

        assert not context.two_factor_pending
        assert context.user == user

    @pytest.mark.asyncio
    async def test_cancel_two_factor(
        self, context: AuthSessionContext, register: Register, secret: TotpSecret
    ) -> None:
        await register(EMAIL, secret)
        await context.sign_in(EMAIL, PASSWORD)

        await context.cancel_two_factor()

        assert not context.two_factor_pending
        assert context.user is None

    @pytest.mark.asyncio
    async def test_sign_out(
        self,
        context: AuthSessionContext,
        provider: InMemoryIdentityProvider,
        cache: LocalSessionCache,
        audit_store: InMemoryAuthAuditStore,
        register: Register,
    ) -> None:
        context.audit_store = audit_store
        await register(EMAIL)
        result = await context.sign_in(EMAIL, PASSWORD)
        assert result.session is not None

        await context.sign_out()

        assert context.session is None
        assert len(cache) == 0
        assert not provider.is_active(result.session)
        [logout] = await audit_store.get_events(
            EMAIL, event_types=[AuthEventType.LOGOUT]
        )
        assert logout.success

    @pytest.mark.asyncio
    async def test_sign_out_clears_pending_two_factor(
        self, context: AuthSessionContext, register: Register, secret: TotpSecret
    ) -> None:
        await register(EMAIL, secret)
        await context.sign_in(EMAIL, PASSWORD)

        await context.sign_out()

        assert not context.two_factor_pending

    @pytest.mark.asyncio
    async def test_sign_out_clears_local_state_when_provider_fails(
        self,
        profile_store: InMemoryProfileStore,
        engine: TotpEngine,
        cache: LocalSessionCache,
        audit_store: InMemoryAuthAuditStore,
        secret: TotpSecret,
    ) -> None:
        provider = UnreachableProvider(rounds=4)
        gate = AuthenticationGate(
            identity_provider=provider,
            gateway=ProfileSecretGateway(profile_store),
            engine=engine,
        )
        context = AuthSessionContext(
            identity_provider=provider, gate=gate, cache=cache, audit_store=audit_store
        )
        await provider.sign_up(EMAIL, PASSWORD)
        user = provider.user_for(EMAIL)
        assert user is not None
        await profile_store.upsert(
            user.id, {"email": EMAIL, **TwoFactorEnrollment.active(secret).to_fields()}
        )
        cache.store("draft", {"full_name": "Jane"})
        await context.sign_in(EMAIL, PASSWORD)
        assert context.two_factor_pending

        await context.sign_out()

        assert context.session is None
        assert len(cache) == 0
        assert not context.two_factor_pending
        assert audit_store.event_types() == [AuthEventType.LOGOUT]

    @pytest.mark.asyncio
    async def test_sign_up_and_reset_password(
        self, context: AuthSessionContext, provider: InMemoryIdentityProvider
    ) -> None:
        session = await context.sign_up(EMAIL, PASSWORD)
        await context.reset_password(EMAIL)

        assert session is None
        assert context.user is None
        assert provider.user_for(EMAIL) is not None
        assert provider.password_resets == [EMAIL]

    @pytest.mark.asyncio
    async def test_duplicate_sign_up(
        self, context: AuthSessionContext, register: Register
    ) -> None:
        await register(EMAIL)

        with pytest.raises(IdentityProviderError, match="User already registered"):
            await context.sign_up(EMAIL, PASSWORD)

    @pytest.mark.asyncio
    async def test_close_drops_local_state(
        self, context: AuthSessionContext, cache: LocalSessionCache, register: Register
    ) -> None:
        await register(EMAIL)
        async with context:
            await context.sign_in(EMAIL, PASSWORD)

        assert context.session is None
        assert len(cache) == 0

    @pytest.mark.asyncio
    async def test_injected_empty_cache_is_used(
        self,
        provider: InMemoryIdentityProvider,
        gate: AuthenticationGate,
        register: Register,
    ) -> None:
        cache = LocalSessionCache()
        context = AuthSessionContext(identity_provider=provider, gate=gate, cache=cache)
        assert context.cache is cache

        await register(EMAIL)
        cache.store("draft", {"full_name": "Jane"})
        await context.sign_in(EMAIL, PASSWORD)
        assert cache.get(SESSION_KEY) == context.session

        await context.sign_out()

        assert len(cache) == 0

    @pytest.mark.asyncio
    async def test_expired_session_reads_as_signed_out(
        self,
        context: AuthSessionContext,
        provider: InMemoryIdentityProvider,
        register: Register,
    ) -> None:
        provider.session_ttl_seconds = -1
        await register(EMAIL)
        await provider.sign_in_with_password(EMAIL, PASSWORD)

        await context.start()

        assert context.session is None
        assert context.user is None


class TestPasswordFirstContext:
    @pytest.fixture
    def strict_gate(
        self,
        provider: InMemoryIdentityProvider,
        gateway: ProfileSecretGateway,
        engine: TotpEngine,
    ) -> AuthenticationGate:
        return AuthenticationGate(
            identity_provider=provider,
            gateway=gateway,
            engine=engine,
            config=TwoFactorConfig(verify_password_first=True),
        )

    @pytest.mark.asyncio
    async def test_no_user_while_code_pending(
        self,
        provider: InMemoryIdentityProvider,
        strict_gate: AuthenticationGate,
        register: Register,
        secret: TotpSecret,
    ) -> None:
        await register(EMAIL, secret)
        context = AuthSessionContext(identity_provider=provider, gate=strict_gate)
        await context.sign_in(EMAIL, PASSWORD)
        assert context.two_factor_pending

        other = AuthSessionContext(identity_provider=provider, gate=strict_gate)
        await other.start()

        assert other.session is None
        assert other.user is None

    @pytest.mark.asyncio
    async def test_close_leaves_no_provider_session(
        self,
        provider: InMemoryIdentityProvider,
        strict_gate: AuthenticationGate,
        register: Register,
        secret: TotpSecret,
    ) -> None:
        await register(EMAIL, secret)

        async with AuthSessionContext(
            identity_provider=provider, gate=strict_gate
        ) as context:
            await context.sign_in(EMAIL, PASSWORD)
            assert context.two_factor_pending

        assert strict_gate.pending is None
        assert provider.active_session_count == 0

    @pytest.mark.asyncio
    async def test_code_opens_provider_session(
        self,
        provider: InMemoryIdentityProvider,
        strict_gate: AuthenticationGate,
        register: Register,
        engine: TotpEngine,
        secret: TotpSecret,
    ) -> None:
        user = await register(EMAIL, secret)
        context = AuthSessionContext(identity_provider=provider, gate=strict_gate)
        await context.sign_in(EMAIL, PASSWORD)

        await context.verify_two_factor(engine.compute_code(secret))

        assert context.user == user
        assert provider.active_session_count == 1
        assert await provider.get_session() == context.session
