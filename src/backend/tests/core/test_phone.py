"""
Tests for phone normalization.
"""

import pytest

from core.phone import mask_phone, normalize_phone


@pytest.mark.unit
class TestNormalizePhone:
    """Canonicalization of free-form phone input."""

    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("+91 98765 43210", "+919876543210"),
            ("9876543210", "+919876543210"),
            ("98765-43210", "+919876543210"),
            ("0091 98765 43210", "+919876543210"),
            ("+1 (415) 555-0100", "+14155550100"),
            ("  +44 20 7946 0958  ", "+442079460958"),
            ("98765‑43210", "+919876543210"),  # non-breaking hyphen from iOS
            ("91+9876543210", "+919876543210"),  # stray inner plus collapses
        ],
    )
    def test_valid_inputs(self, raw: str, expected: str) -> None:
        assert normalize_phone(raw) == expected

    @pytest.mark.parametrize(
        "raw",
        ["", "abc", "12345", "+1234567", "+1234567890123456", "123456789", None, 9876543210, ["+91"]],
    )
    def test_invalid_inputs_return_none(self, raw: object) -> None:
        assert normalize_phone(raw) is None

    def test_default_country_code_is_configurable(self) -> None:
        assert normalize_phone("4155550100", default_country_code="1") == "+14155550100"

    @pytest.mark.parametrize(
        "raw",
        ["9876543210", "0044 20 7946 0958", "+1 415 555 0100", "+12345678", "+123456789012345"],
    )
    def test_idempotent(self, raw: str) -> None:
        once = normalize_phone(raw)
        assert once is not None
        assert normalize_phone(once) == once

    def test_length_bounds(self) -> None:
        assert normalize_phone("+12345678") == "+12345678"
        assert normalize_phone("+123456789012345") == "+123456789012345"


@pytest.mark.unit
def test_mask_phone_hides_subscriber_digits() -> None:
    assert mask_phone("+919876543210") == "+91987***"
    assert mask_phone(None) == "-"
