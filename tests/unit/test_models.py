"""Tests for value objects and configuration."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from jobprep_auth import (
    InvalidParameterError,
    ProfileRecord,
    TotpSecret,
    TwoFactorConfig,
    TwoFactorEnrollment,
)


class TestTotpSecret:
    def test_normalizes_input(self) -> None:
        secret = TotpSecret(value="jbsw y3dp ehpk 3pxp====")
        assert secret.value == "JBSWY3DPEHPK3PXP"

    @pytest.mark.parametrize("value", ["", "   ", "not base32!", "ABC1"])
    def test_rejects_invalid_values(self, value: str) -> None:
        with pytest.raises(ValidationError):
            TotpSecret(value=value)

    def test_value_hidden_from_repr(self, secret: TotpSecret) -> None:
        assert secret.value not in repr(secret)

    def test_manual_key_groups(self) -> None:
        secret = TotpSecret(value="JBSWY3DPEHPK3PXP")
        assert secret.manual_key() == "JBSW Y3DP EHPK 3PXP"

    def test_to_bytes(self) -> None:
        assert TotpSecret(value="JBSWY3DPEHPK3PXP").to_bytes() == (
            b"Hello!\xde\xad\xbe\xef"
        )

    def test_structural_equality(self) -> None:
        a = TotpSecret(value="JBSWY3DPEHPK3PXP")
        b = TotpSecret(value="jbswy3dpehpk3pxp")

        assert a == b
        assert hash(a) == hash(b)

    def test_immutable(self, secret: TotpSecret) -> None:
        with pytest.raises(ValidationError):
            secret.value = "GEZDGNBVGY3TQOJQ"  # type: ignore[misc]


class TestTwoFactorEnrollment:
    def test_disabled(self) -> None:
        enrollment = TwoFactorEnrollment.disabled()

        assert not enrollment.is_active
        assert enrollment.to_fields() == {
            "two_factor_enabled": False,
            "two_factor_secret": None,
        }

    def test_active(self, secret: TotpSecret) -> None:
        enrollment = TwoFactorEnrollment.active(secret)

        assert enrollment.is_active
        assert enrollment.to_fields() == {
            "two_factor_enabled": True,
            "two_factor_secret": secret.value,
        }

    def test_enabled_requires_secret(self) -> None:
        with pytest.raises(ValidationError, match="without a secret"):
            TwoFactorEnrollment(enabled=True, secret=None)

    def test_secret_without_flag_is_not_active(self, secret: TotpSecret) -> None:
        assert not TwoFactorEnrollment(enabled=False, secret=secret).is_active


class TestProfileRecordEnrollment:
    def test_enrolled_profile(self, secret: TotpSecret) -> None:
        profile = ProfileRecord(
            id="u1",
            email="jane@example.com",
            two_factor_enabled=True,
            two_factor_secret=secret.value,
        )
        assert profile.enrollment == TwoFactorEnrollment.active(secret)

    def test_flag_without_secret_reads_as_disabled(self) -> None:
        profile = ProfileRecord(
            id="u1", email="jane@example.com", two_factor_enabled=True
        )
        assert profile.enrollment == TwoFactorEnrollment.disabled()

    def test_secret_hidden_from_repr(self, secret: TotpSecret) -> None:
        profile = ProfileRecord(
            id="u1", email="jane@example.com", two_factor_secret=secret.value
        )
        assert secret.value not in repr(profile)


class TestTwoFactorConfig:
    def test_defaults(self) -> None:
        config = TwoFactorConfig()

        assert config.issuer == "Job Prep Heatmap"
        assert config.digits == 6
        assert config.interval == 30
        assert config.valid_window == 1
        assert config.secret_bytes == 20
        assert config.pending_ttl_seconds == 300
        assert not config.verify_password_first
        assert not config.require_code_to_disable

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"issuer": ""},
            {"digits": 8},
            {"interval": 0},
            {"valid_window": -1},
            {"secret_bytes": 16},
            {"pending_ttl_seconds": 0},
            {"max_code_attempts": -1},
        ],
    )
    def test_invalid_values(self, kwargs: dict[str, object]) -> None:
        with pytest.raises(InvalidParameterError):
            TwoFactorConfig(**kwargs)  # type: ignore[arg-type]

    def test_invalid_parameter_is_value_error(self) -> None:
        with pytest.raises(ValueError):
            TwoFactorConfig(interval=-30)
