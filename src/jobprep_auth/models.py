"""Value objects for two-factor enrollment and sign-in.

All models are immutable pydantic models with structural equality.
"""

from __future__ import annotations

import binascii
from base64 import b32decode
from datetime import datetime, timezone
from typing import Any

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    SecretStr,
    field_validator,
    model_validator,
)


class ValueObject(BaseModel):
    """Base class for immutable value objects.

    Equality is structural (all fields compared).
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, self.__class__):
            return False
        return self.model_dump() == other.model_dump()

    def __hash__(self) -> int:
        return hash(repr(sorted(self.model_dump().items())))


class TotpSecret(ValueObject):
    """A shared TOTP secret, base32-encoded without padding.

    The value is hidden from ``repr`` so secrets never end up in logs.
    """

    value: str = Field(repr=False)

    @field_validator("value")
    @classmethod
    def _normalize(cls, value: str) -> str:
        normalized = value.replace(" ", "").rstrip("=").upper()
        if not normalized:
            raise ValueError("TOTP secret must not be empty")
        padded = normalized + "=" * (-len(normalized) % 8)
        try:
            b32decode(padded)
        except (binascii.Error, ValueError) as e:
            raise ValueError("TOTP secret is not valid base32") from e
        return normalized

    def to_bytes(self) -> bytes:
        """Decode the secret to raw bytes."""
        return b32decode(self.value + "=" * (-len(self.value) % 8))

    def manual_key(self) -> str:
        """Format the secret in groups of 4 for manual entry."""
        return " ".join(
            self.value[i : i + 4] for i in range(0, len(self.value), 4)
        )

    def __str__(self) -> str:
        return self.value


class TwoFactorEnrollment(ValueObject):
    """Two-factor fields of a profile record.

    ``enabled`` implies ``secret`` is present.
    """

    enabled: bool = False
    secret: TotpSecret | None = None

    @model_validator(mode="after")
    def _enabled_requires_secret(self) -> TwoFactorEnrollment:
        if self.enabled and self.secret is None:
            raise ValueError("two-factor cannot be enabled without a secret")
        return self

    @classmethod
    def disabled(cls) -> TwoFactorEnrollment:
        return cls(enabled=False, secret=None)

    @classmethod
    def active(cls, secret: TotpSecret) -> TwoFactorEnrollment:
        return cls(enabled=True, secret=secret)

    @property
    def is_active(self) -> bool:
        return self.enabled and self.secret is not None

    def to_fields(self) -> dict[str, Any]:
        """Profile columns as persisted (secret stored as base32 text)."""
        return {
            "two_factor_enabled": self.enabled,
            "two_factor_secret": self.secret.value if self.secret else None,
        }


class AuthUser(ValueObject):
    """The account an identity provider signed in."""

    id: str
    email: str


class AuthSession(ValueObject):
    """A session issued by the identity provider."""

    access_token: str = Field(repr=False)
    user: AuthUser
    refresh_token: str | None = Field(default=None, repr=False)
    expires_at: datetime | None = None


class PendingAuthentication(ValueObject):
    """A sign-in held back until the second factor is verified.

    Lives only in memory and is never persisted.

    Attributes:
        account_identifier: Email the sign-in was submitted for.
        primary_credential: Password, checked with the provider after the code.
        secret: The account's enrolled secret.
        created_at: When the challenge was issued.
        password_verified: The password was already accepted by the
            provider. It is checked again after the code to open the session.
    """

    account_identifier: str
    primary_credential: SecretStr
    secret: TotpSecret
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    password_verified: bool = False

    def age_seconds(self, now: datetime) -> float:
        return (now - self.created_at).total_seconds()


class ProfileRecord(ValueObject):
    """A user's profile row."""

    id: str
    email: str
    full_name: str | None = None
    skills: tuple[str, ...] = ()
    preferred_locations: tuple[str, ...] = ()
    resume_url: str | None = None
    certifications: tuple[str, ...] = ()
    achievements: str | None = None
    mobile_number: str | None = None
    two_factor_enabled: bool = False
    two_factor_secret: str | None = Field(default=None, repr=False)
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def enrollment(self) -> TwoFactorEnrollment:
        """Two-factor fields as a checked value object.

        A stored flag without a secret reads as not enrolled.
        """
        if not self.two_factor_secret:
            return TwoFactorEnrollment.disabled()
        return TwoFactorEnrollment(
            enabled=self.two_factor_enabled,
            secret=TotpSecret(value=self.two_factor_secret),
        )


__all__: list[str] = [
    "ValueObject",
    "TotpSecret",
    "TwoFactorEnrollment",
    "AuthUser",
    "AuthSession",
    "PendingAuthentication",
    "ProfileRecord",
]
