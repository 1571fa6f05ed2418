"""Authentication and two-factor errors.

Every error carries a short message that can be shown to the user as-is.
Storage errors are retryable; code mismatches are user-correctable; entropy
failures end the flow instance that raised them.
"""

from __future__ import annotations


class JobPrepAuthError(Exception):
    """Root exception for the jobprep-auth package."""


class InvalidParameterError(JobPrepAuthError, ValueError):
    """Raised when an engine or config input is empty or out of range."""


class FlowStateError(JobPrepAuthError):
    """Raised when an operation is invoked in a state that does not allow it."""


# ═══════════════════════════════════════════════════════════════
# TWO-FACTOR ERRORS
# ═══════════════════════════════════════════════════════════════


class TwoFactorError(JobPrepAuthError):
    """Base class for two-factor errors."""


class InvalidCodeError(TwoFactorError):
    """Raised when a one-time code is malformed or does not validate.

    User-correctable: the caller should re-prompt, never retry on its own.
    """

    def __init__(
        self, message: str = "Invalid verification code. Please try again."
    ) -> None:
        super().__init__(message)


class EntropyError(TwoFactorError):
    """Raised when the secure random source cannot produce a secret.

    Fatal for the flow instance; enrollment must be restarted.
    """


class TwoFactorNotEnabledError(TwoFactorError):
    """Raised when a code is required but the account is not enrolled."""


class TooManyAttemptsError(TwoFactorError):
    """Raised when too many codes were rejected for one account.

    Attributes:
        retry_after: Seconds until a new attempt is accepted.
    """

    def __init__(
        self,
        message: str = "Too many invalid codes. Please try again later.",
        retry_after: float | None = None,
    ) -> None:
        super().__init__(message)
        self.retry_after = retry_after


# ═══════════════════════════════════════════════════════════════
# STORAGE ERRORS
# ═══════════════════════════════════════════════════════════════


class StorageError(JobPrepAuthError):
    """Raised when the profile store cannot be read or written.

    The operation may be retried; in-memory flow state is kept.
    """

    retryable = True


class EnrollmentNotFoundError(StorageError):
    """Raised when no profile record exists for the account."""

    retryable = False


# ═══════════════════════════════════════════════════════════════
# SIGN-IN ERRORS
# ═══════════════════════════════════════════════════════════════


class AuthenticationError(JobPrepAuthError):
    """Base class for sign-in failures."""


class IdentityProviderError(AuthenticationError):
    """Wraps a failure reported by the identity provider.

    The provider's message is passed through unchanged.

    Attributes:
        original: The exception raised by the provider, if any.
    """

    def __init__(self, message: str, original: BaseException | None = None) -> None:
        super().__init__(message)
        self.original = original


class SignInInProgressError(AuthenticationError):
    """Raised when a sign-in is submitted while another awaits its code."""

    def __init__(
        self,
        message: str = "A sign-in is already waiting for a verification code",
    ) -> None:
        super().__init__(message)


class NoPendingAuthenticationError(AuthenticationError):
    """Raised when a code is submitted with no sign-in awaiting one."""

    def __init__(self, message: str = "No sign-in is awaiting verification") -> None:
        super().__init__(message)


class PendingAuthenticationExpiredError(AuthenticationError):
    """Raised when the two-factor challenge outlived its time limit."""

    def __init__(
        self,
        message: str = "Verification timed out. Please sign in again.",
    ) -> None:
        super().__init__(message)


__all__: list[str] = [
    "JobPrepAuthError",
    "InvalidParameterError",
    "FlowStateError",
    # Two-factor
    "TwoFactorError",
    "InvalidCodeError",
    "EntropyError",
    "TwoFactorNotEnabledError",
    "TooManyAttemptsError",
    # Storage
    "StorageError",
    "EnrollmentNotFoundError",
    # Sign-in
    "AuthenticationError",
    "IdentityProviderError",
    "SignInInProgressError",
    "NoPendingAuthenticationError",
    "PendingAuthenticationExpiredError",
]
