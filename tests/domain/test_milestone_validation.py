"""
Tests for write-boundary validation of milestone values and identity keys.
"""

from decimal import Decimal

import pytest

from progress_kernel.domain.categories import MilestoneCategory
from progress_kernel.domain.templates import MilestoneSpec
from progress_kernel.domain.validation import normalize_milestone_value, validate_identity_key
from progress_kernel.exceptions import InvalidIdentityKeyError, InvalidMilestoneValue

DISCRETE = MilestoneSpec("Install", Decimal("60"), MilestoneCategory.INSTALL, False, 1)
PARTIAL = MilestoneSpec("Fabricate", Decimal("16"), MilestoneCategory.INSTALL, True, 0)


class TestDiscreteValues:
    @pytest.mark.parametrize("raw, expected", [(0, "0"), (100, "100"), ("100", "100"), (100.0, "100")])
    def test_accepts_zero_and_hundred(self, raw, expected):
        assert normalize_milestone_value(DISCRETE, raw) == Decimal(expected)

    def test_boolean_aliases(self):
        assert normalize_milestone_value(DISCRETE, True) == Decimal("100")
        assert normalize_milestone_value(DISCRETE, False) == Decimal("0")

    @pytest.mark.parametrize("raw", [50, 1, 99.99])
    def test_rejects_mid_values(self, raw):
        with pytest.raises(InvalidMilestoneValue) as exc_info:
            normalize_milestone_value(DISCRETE, raw)
        assert "exactly 0 or 100" in exc_info.value.reason


class TestPartialValues:
    def test_accepts_range(self):
        assert normalize_milestone_value(PARTIAL, 42.5) == Decimal("42.5")
        assert normalize_milestone_value(PARTIAL, 0) == Decimal("0")
        assert normalize_milestone_value(PARTIAL, 100) == Decimal("100")

    def test_rounded_to_two_places(self):
        assert normalize_milestone_value(PARTIAL, "33.335") == Decimal("33.34")

    def test_booleans_rejected(self):
        with pytest.raises(InvalidMilestoneValue):
            normalize_milestone_value(PARTIAL, True)

    def test_strips_whitespace(self):
        assert normalize_milestone_value(PARTIAL, " 25 ") == Decimal("25")


class TestRejectedValues:
    @pytest.mark.parametrize("raw", [-1, 100.01, 101, "-0.5"])
    def test_out_of_range(self, raw):
        with pytest.raises(InvalidMilestoneValue) as exc_info:
            normalize_milestone_value(PARTIAL, raw)
        assert "between 0 and 100" in exc_info.value.reason

    @pytest.mark.parametrize("raw", ["abc", "", None, [50], {"v": 1}])
    def test_not_numeric(self, raw):
        with pytest.raises(InvalidMilestoneValue) as exc_info:
            normalize_milestone_value(PARTIAL, raw)
        assert "number" in exc_info.value.reason

    @pytest.mark.parametrize("raw", [float("nan"), float("inf"), "Infinity", "NaN"])
    def test_not_finite(self, raw):
        with pytest.raises(InvalidMilestoneValue):
            normalize_milestone_value(PARTIAL, raw)

    def test_error_carries_milestone_and_code(self):
        with pytest.raises(InvalidMilestoneValue) as exc_info:
            normalize_milestone_value(DISCRETE, 50)
        assert exc_info.value.milestone_name == "Install"
        assert exc_info.value.code == "INVALID_MILESTONE_VALUE"


class TestIdentityKey:
    FIELDS = ("drawing_norm", "commodity_code", "size", "seq")

    def test_canonical_text(self):
        key = {"drawing_norm": "P-001", "commodity_code": "VBALL", "size": "2", "seq": 1}
        assert validate_identity_key("valve", key, self.FIELDS) == (
            "drawing_norm=P-001|commodity_code=VBALL|size=2|seq=1"
        )

    def test_extra_fields_ignored(self):
        assert validate_identity_key("spool", {"spool_id": "SP-1", "note": "x"}, ("spool_id",)) == "spool_id=SP-1"

    def test_missing_and_blank_fields(self):
        with pytest.raises(InvalidIdentityKeyError) as exc_info:
            validate_identity_key("valve", {"drawing_norm": "P-001", "size": "  "}, self.FIELDS)
        assert exc_info.value.missing_fields == ["commodity_code", "size", "seq"]
