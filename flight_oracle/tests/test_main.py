"""Unit tests for CLI argument parsing helpers."""

import pytest

from flight_oracle.main import build_parser, parse_optional_int, parse_stake
from flight_oracle.src.FlightStatus import StatusCode
from flight_oracle.src.StatusPolicy import FixedStatusPolicy, get_policy


class TestParseStake:
    """Test parse_stake function."""

    def test_whole_ether(self) -> None:
        """Whole ether amounts should convert to wei."""
        assert parse_stake("1") == 10**18

    def test_fractional_ether(self) -> None:
        """Fractions should convert exactly."""
        assert parse_stake("0.5") == 5 * 10**17

    def test_invalid(self) -> None:
        """Non-numeric input should raise ValueError."""
        with pytest.raises(ValueError, match="Invalid stake amount"):
            parse_stake("one")

    def test_not_positive(self) -> None:
        """Zero and negative stakes should raise ValueError."""
        with pytest.raises(ValueError, match="Stake must be positive"):
            parse_stake("0")
        with pytest.raises(ValueError, match="Stake must be positive"):
            parse_stake("-1")


class TestParseOptionalInt:
    """Test parse_optional_int function."""

    def test_empty(self) -> None:
        """Unset or blank values should give None."""
        assert parse_optional_int(None) is None
        assert parse_optional_int("  ") is None

    def test_value(self) -> None:
        """Numbers should be parsed."""
        assert parse_optional_int("120") == 120


class TestDefaults:
    """Test command line defaults."""

    ADDRESS = "0x000000000000000000000000000000000000f117"

    def test_reports_on_time_by_default(self, monkeypatch) -> None:
        """Without options every oracle should report ON_TIME."""
        monkeypatch.delenv("STATUS_POLICY", raising=False)
        monkeypatch.delenv("STATUS_CODE", raising=False)
        args = build_parser().parse_args(["--app-address", self.ADDRESS])

        assert args.status_policy == "fixed"
        policy = get_policy(args.status_policy, args.status_code)
        assert isinstance(policy, FixedStatusPolicy)
        assert policy(None) is StatusCode.ON_TIME

    def test_env_overrides_policy(self, monkeypatch) -> None:
        """STATUS_POLICY should select another policy."""
        monkeypatch.setenv("STATUS_POLICY", "random")
        args = build_parser().parse_args(["--app-address", self.ADDRESS])
        assert args.status_policy == "random"
