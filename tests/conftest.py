"""Test configuration and fixtures."""

from __future__ import annotations

from collections.abc import Awaitable, Callable

import pytest

from jobprep_auth import (
    AuthenticationGate,
    AuthUser,
    InMemoryAttemptLimiter,
    InMemoryAuthAuditStore,
    InMemoryIdentityProvider,
    InMemoryProfileStore,
    ProfileSecretGateway,
    TotpEngine,
    TotpSecret,
    TwoFactorConfig,
    TwoFactorEnrollment,
)

# Start of a 30 second step: 1_700_000_010 == 56_666_667 * 30
T0 = 1_700_000_010

PASSWORD = "correct horse battery staple"


class FakeClock:
    """Manually advanced clock returning Unix seconds."""

    def __init__(self, start: float = T0) -> None:
        self.now = float(start)

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def wrong_code(code: str) -> str:
    """A well-formed code that differs from ``code``."""
    return f"{(int(code) + 1) % 1_000_000:06d}"


def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line(
        "markers",
        "integration: marks tests as integration tests that need a real database",
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def config() -> TwoFactorConfig:
    return TwoFactorConfig()


@pytest.fixture
def engine(config: TwoFactorConfig, clock: FakeClock) -> TotpEngine:
    return TotpEngine(config, clock=clock)


@pytest.fixture
def secret() -> TotpSecret:
    """A fixed 20-byte secret."""
    return TotpSecret(value="JBSWY3DPEHPK3PXPJBSWY3DPEHPK3PXP")


@pytest.fixture
def profile_store() -> InMemoryProfileStore:
    return InMemoryProfileStore()


@pytest.fixture
def gateway(profile_store: InMemoryProfileStore) -> ProfileSecretGateway:
    return ProfileSecretGateway(profile_store)


@pytest.fixture
def provider() -> InMemoryIdentityProvider:
    # Minimum bcrypt cost keeps the suite fast
    return InMemoryIdentityProvider(rounds=4)


@pytest.fixture
def audit_store() -> InMemoryAuthAuditStore:
    return InMemoryAuthAuditStore()


@pytest.fixture
def limiter(clock: FakeClock) -> InMemoryAttemptLimiter:
    return InMemoryAttemptLimiter(clock=clock)


@pytest.fixture
def gate(
    provider: InMemoryIdentityProvider,
    gateway: ProfileSecretGateway,
    engine: TotpEngine,
    limiter: InMemoryAttemptLimiter,
    audit_store: InMemoryAuthAuditStore,
) -> AuthenticationGate:
    return AuthenticationGate(
        identity_provider=provider,
        gateway=gateway,
        engine=engine,
        attempt_limiter=limiter,
        audit_store=audit_store,
    )


@pytest.fixture
def register(
    provider: InMemoryIdentityProvider, profile_store: InMemoryProfileStore
) -> Callable[..., Awaitable[AuthUser]]:
    """Sign up an account and create its profile, optionally enrolled."""

    async def _register(
        email: str, secret: TotpSecret | None = None, password: str = PASSWORD
    ) -> AuthUser:
        await provider.sign_up(email, password)
        user = provider.user_for(email)
        assert user is not None
        fields: dict[str, object] = {"email": email}
        if secret is not None:
            fields.update(TwoFactorEnrollment.active(secret).to_fields())
        await profile_store.upsert(user.id, fields)
        return user

    return _register
