"""TOTP (Time-based One-Time Password) engine.

Generates secrets, builds ``otpauth://`` provisioning URIs and computes or
validates codes per RFC 6238 (SHA1, 6 digits, 30 second period). Works with
any RFC 6238 authenticator app:
- Google Authenticator
- Microsoft Authenticator
- Authy
- 1Password

Uses pyotp internally. No I/O besides the secure random source.
"""

from __future__ import annotations

import logging
import math
import time
from datetime import datetime, timezone
from typing import TYPE_CHECKING
from urllib.parse import quote

import pyotp
from pyotp.utils import strings_equal

from .config import MIN_SECRET_BYTES, TwoFactorConfig
from .exceptions import EntropyError, InvalidParameterError
from .models import TotpSecret

if TYPE_CHECKING:
    from collections.abc import Callable

logger = logging.getLogger(__name__)

ALGORITHM = "SHA1"


def _to_unix(for_time: int | float | datetime) -> int:
    if isinstance(for_time, datetime):
        if for_time.tzinfo is None:
            for_time = for_time.replace(tzinfo=timezone.utc)
        return int(for_time.timestamp())
    return int(for_time)


def _coerce_secret(secret: TotpSecret | str) -> TotpSecret:
    if isinstance(secret, TotpSecret):
        return secret
    if not secret:
        raise InvalidParameterError("secret must not be empty")
    try:
        return TotpSecret(value=secret)
    except ValueError as e:
        raise InvalidParameterError("secret is not valid base32") from e


def is_well_formed_code(code: object, digits: int = 6) -> bool:
    """Check that ``code`` is exactly ``digits`` ASCII digits."""
    return (
        isinstance(code, str)
        and len(code) == digits
        and code.isascii()
        and code.isdigit()
    )


class TotpEngine:
    """TOTP engine for authenticator apps.

    Example:
        ```python
        engine = TotpEngine()

        secret = engine.generate_secret()
        uri = engine.build_provisioning_uri(secret, "jane@example.com")

        if engine.validate_code(secret, "123456"):
            print("Valid!")
        ```
    """

    def __init__(
        self,
        config: TwoFactorConfig | None = None,
        *,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the engine.

        Args:
            config: Two-factor configuration (issuer, period, window).
            clock: Wall-clock source returning Unix seconds. Must agree with
                authenticator apps to within one period.
        """
        self.config = config or TwoFactorConfig()
        self.clock = clock

    def _totp(self, secret: TotpSecret) -> pyotp.TOTP:
        return pyotp.TOTP(
            secret.value,
            digits=self.config.digits,
            interval=self.config.interval,
        )

    def now(self) -> int:
        return int(self.clock())

    def generate_secret(self, byte_length: int | None = None) -> TotpSecret:
        """Generate a fresh random secret.

        Args:
            byte_length: Secret length in bytes (default from config, 20).

        Returns:
            The new secret, base32-encoded.

        Raises:
            InvalidParameterError: ``byte_length`` is below 20 bytes.
            EntropyError: The secure random source is unavailable.
        """
        byte_length = byte_length or self.config.secret_bytes
        if byte_length < MIN_SECRET_BYTES:
            raise InvalidParameterError(
                f"secret must be at least {MIN_SECRET_BYTES} bytes"
            )
        # 5 bits per base32 character
        length = math.ceil(byte_length * 8 / 5)
        try:
            value = pyotp.random_base32(length=length)
        except (OSError, NotImplementedError) as e:
            logger.error("Secure random source unavailable: %s", e)
            raise EntropyError(
                "Failed to generate 2FA setup. Please try again."
            ) from e
        return TotpSecret(value=value)

    def build_provisioning_uri(
        self,
        secret: TotpSecret | str,
        account_label: str,
        issuer: str | None = None,
    ) -> str:
        """Build the ``otpauth://`` URI that authenticator apps import.

        Shape::

            otpauth://totp/{issuer}:{label}?secret=..&issuer={issuer}
                &algorithm=SHA1&digits=6&period=30

        Raises:
            InvalidParameterError: Empty label, issuer or secret.
        """
        issuer = issuer if issuer is not None else self.config.issuer
        if not account_label:
            raise InvalidParameterError("account label must not be empty")
        if not issuer:
            raise InvalidParameterError("issuer must not be empty")
        totp_secret = _coerce_secret(secret)

        quoted_issuer = quote(issuer, safe="")
        label = f"{quoted_issuer}:{quote(account_label, safe='@')}"
        return (
            f"otpauth://totp/{label}"
            f"?secret={totp_secret.value}"
            f"&issuer={quoted_issuer}"
            f"&algorithm={ALGORITHM}"
            f"&digits={self.config.digits}"
            f"&period={self.config.interval}"
        )

    def compute_code(
        self,
        secret: TotpSecret | str,
        for_time: int | float | datetime | None = None,
    ) -> str:
        """Compute the code for the time step containing ``for_time``.

        Returns:
            Zero-padded ``digits``-length decimal string.
        """
        totp_secret = _coerce_secret(secret)
        at = self.now() if for_time is None else _to_unix(for_time)
        return self._totp(totp_secret).at(at)

    def match_offset(
        self,
        secret: TotpSecret | str,
        code: object,
        reference_time: int | float | datetime | None = None,
        window: int | None = None,
    ) -> int | None:
        """Find the step offset at which ``code`` is valid.

        Checks ``2 * window + 1`` candidate steps around ``reference_time``.

        Returns:
            The matching offset in ``[-window, window]``, or None.
        """
        window = self.config.valid_window if window is None else window
        if window < 0:
            raise InvalidParameterError("window must not be negative")
        if not isinstance(code, str) or not is_well_formed_code(
            code, self.config.digits
        ):
            return None

        totp = self._totp(_coerce_secret(secret))
        at = self.now() if reference_time is None else _to_unix(reference_time)
        for offset in range(-window, window + 1):
            if strings_equal(code, totp.at(at, offset)):
                logger.debug("Code matched at step offset %d", offset)
                return offset
        return None

    def validate_code(
        self,
        secret: TotpSecret | str,
        code: object,
        reference_time: int | float | datetime | None = None,
        window: int | None = None,
    ) -> bool:
        """Validate a code against the steps around ``reference_time``.

        Malformed codes (wrong length, non-digits) return False.

        Args:
            secret: The shared secret.
            code: Code typed by the user.
            reference_time: Unix seconds or datetime (default: now).
            window: Accepted neighbouring steps (default from config, 1).
        """
        return self.match_offset(secret, code, reference_time, window) is not None


__all__: list[str] = ["TotpEngine", "is_well_formed_code", "ALGORITHM"]
