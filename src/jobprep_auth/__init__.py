"""Job Prep two-factor authentication.

TOTP secrets, enrollment, and a sign-in gate that holds sessions back until a
one-time code is verified.

Usage:
    ```python
    from jobprep_auth import (
        AuthenticationGate,
        InMemoryIdentityProvider,
        InMemoryProfileStore,
        ProfileSecretGateway,
    )

    gateway = ProfileSecretGateway(InMemoryProfileStore())
    gate = AuthenticationGate(identity_provider=provider, gateway=gateway)

    result = await gate.sign_in("jane@example.com", "hunter2")
    if result.two_factor_required:
        result = await gate.verify_code("123456")
    ```

Submodules:
    - `db`: SQLAlchemy profile store (install the ``db`` extra)
    - `qr`: PNG QR encoder for provisioning URIs (install the ``qr`` extra)
"""

from __future__ import annotations

from .attempts import InMemoryAttemptLimiter
from .audit import AuthAuditEvent, AuthEventType, InMemoryAuthAuditStore
from .config import TwoFactorConfig
from .disable import disable_two_factor
from .enrollment import EnrollmentSetup, EnrollmentState, TwoFactorEnrollmentFlow
from .exceptions import (
    AuthenticationError,
    EnrollmentNotFoundError,
    EntropyError,
    FlowStateError,
    IdentityProviderError,
    InvalidCodeError,
    InvalidParameterError,
    JobPrepAuthError,
    NoPendingAuthenticationError,
    PendingAuthenticationExpiredError,
    SignInInProgressError,
    StorageError,
    TooManyAttemptsError,
    TwoFactorError,
    TwoFactorNotEnabledError,
)
from .gate import AuthenticationGate, SignInResult, SignInState
from .gateway import ProfileSecretGateway
from .memory import InMemoryIdentityProvider, InMemoryProfileStore
from .models import (
    AuthSession,
    AuthUser,
    PendingAuthentication,
    ProfileRecord,
    TotpSecret,
    TwoFactorEnrollment,
)
from .ports import (
    IAttemptLimiter,
    IAuthAuditStore,
    IIdentityProvider,
    IProfileStore,
    IQrEncoder,
    ISecretGateway,
)
from .profile import is_profile_complete, next_route
from .session import AuthSessionContext, LocalSessionCache
from .totp import TotpEngine, is_well_formed_code

__version__ = "0.1.0"

__all__: list[str] = [
    # Config
    "TwoFactorConfig",
    # Models
    "TotpSecret",
    "TwoFactorEnrollment",
    "PendingAuthentication",
    "AuthSession",
    "AuthUser",
    "ProfileRecord",
    # Ports
    "IIdentityProvider",
    "IProfileStore",
    "ISecretGateway",
    "IQrEncoder",
    "IAttemptLimiter",
    "IAuthAuditStore",
    # TOTP
    "TotpEngine",
    "is_well_formed_code",
    # Flows
    "ProfileSecretGateway",
    "TwoFactorEnrollmentFlow",
    "EnrollmentSetup",
    "EnrollmentState",
    "disable_two_factor",
    "AuthenticationGate",
    "SignInResult",
    "SignInState",
    "AuthSessionContext",
    "LocalSessionCache",
    # Profile
    "is_profile_complete",
    "next_route",
    # In-memory implementations
    "InMemoryProfileStore",
    "InMemoryIdentityProvider",
    "InMemoryAttemptLimiter",
    "InMemoryAuthAuditStore",
    # Audit
    "AuthAuditEvent",
    "AuthEventType",
    # Exceptions
    "JobPrepAuthError",
    "InvalidParameterError",
    "FlowStateError",
    "TwoFactorError",
    "InvalidCodeError",
    "EntropyError",
    "TwoFactorNotEnabledError",
    "TooManyAttemptsError",
    "StorageError",
    "EnrollmentNotFoundError",
    "AuthenticationError",
    "IdentityProviderError",
    "SignInInProgressError",
    "NoPendingAuthenticationError",
    "PendingAuthenticationExpiredError",
]
