"""Two-factor configuration."""

from __future__ import annotations

from dataclasses import dataclass

from .exceptions import InvalidParameterError

MIN_SECRET_BYTES = 20


@dataclass(frozen=True)
class TwoFactorConfig:
    """Two-factor configuration.

    Attributes:
        issuer: Application name shown in authenticator apps.
        digits: Number of digits in a code. Authenticator apps expect 6.
        interval: Length of one time step in seconds.
        valid_window: Neighbouring steps accepted on each side for clock drift.
        secret_bytes: Length of a generated secret in bytes.
        pending_ttl_seconds: Lifetime of a sign-in awaiting its code.
        max_code_attempts: Rejected codes before the challenge is dropped.
            0 disables the limit.
        lockout_seconds: How long an account stays locked after the limit.
        verify_password_first: Check the password before asking for a code.
            Off by default, so an enrolled account is challenged before its
            password is checked.
        require_code_to_disable: Ask for a fresh code before disabling 2FA.
    """

    issuer: str = "Job Prep Heatmap"
    digits: int = 6
    interval: int = 30
    valid_window: int = 1
    secret_bytes: int = MIN_SECRET_BYTES
    pending_ttl_seconds: int = 300  # 5 minutes
    max_code_attempts: int = 5
    lockout_seconds: int = 900  # 15 minutes
    verify_password_first: bool = False
    require_code_to_disable: bool = False

    def __post_init__(self) -> None:
        if not self.issuer:
            raise InvalidParameterError("issuer must not be empty")
        if self.digits != 6:
            raise InvalidParameterError("digits must be 6")
        if self.interval <= 0:
            raise InvalidParameterError("interval must be positive")
        if self.valid_window < 0:
            raise InvalidParameterError("valid_window must not be negative")
        if self.secret_bytes < MIN_SECRET_BYTES:
            raise InvalidParameterError(
                f"secret_bytes must be at least {MIN_SECRET_BYTES}"
            )
        if self.pending_ttl_seconds <= 0:
            raise InvalidParameterError("pending_ttl_seconds must be positive")
        if self.max_code_attempts < 0:
            raise InvalidParameterError("max_code_attempts must not be negative")


__all__: list[str] = ["TwoFactorConfig", "MIN_SECRET_BYTES"]
