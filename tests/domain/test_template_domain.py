"""
Tests for template value objects and pure validation.

Verifies:
- Weights must total exactly 100 with unique names
- Overrides must name exactly the current milestones
- Category weights and ordering
- Out-of-sequence detection
"""

from decimal import Decimal

import pytest

from progress_kernel.domain.categories import MilestoneCategory, category_for
from progress_kernel.domain.sequencing import find_missing_prerequisites
from progress_kernel.domain.templates import (
    MilestoneSpec,
    ResolvedTemplate,
    milestones_from_rows,
    normalize_weights,
    validate_template_definition,
    validate_template_override,
)

SPOOL = ResolvedTemplate(
    component_type="spool",
    milestones=(
        MilestoneSpec("Restore", Decimal("5"), MilestoneCategory.RESTORE, False, 5),
        MilestoneSpec("Receive", Decimal("5"), MilestoneCategory.RECEIVE, False, 0),
        MilestoneSpec("Erect", Decimal("40"), MilestoneCategory.INSTALL, False, 1),
        MilestoneSpec("Connect", Decimal("40"), MilestoneCategory.INSTALL, False, 2),
        MilestoneSpec("Punch", Decimal("5"), MilestoneCategory.PUNCH, False, 3),
        MilestoneSpec("Test", Decimal("5"), MilestoneCategory.TEST, False, 4),
    ),
)


class TestResolvedTemplate:
    def test_milestones_sorted_by_order(self):
        assert SPOOL.names == ("Receive", "Erect", "Connect", "Punch", "Test", "Restore")

    def test_total_weight(self):
        assert SPOOL.total_weight == Decimal("100")

    def test_category_weights(self):
        weights = SPOOL.category_weights()
        assert weights[MilestoneCategory.INSTALL] == Decimal("80")
        assert weights[MilestoneCategory.RECEIVE] == Decimal("5")
        assert sum(weights.values()) == Decimal("100")

    def test_category_weight_accepts_string(self):
        assert SPOOL.category_weight("punch") == Decimal("5")

    def test_lookup(self):
        assert SPOOL.milestone("Erect").weight == Decimal("40")
        assert SPOOL.milestone("Weld Made") is None

    def test_global_is_not_override(self):
        assert not SPOOL.is_override

    def test_with_weights_keeps_order_and_categories(self):
        changed = SPOOL.with_weights(
            {"Receive": Decimal("10"), "Erect": Decimal("30"), "Connect": Decimal("40"),
             "Punch": Decimal("5"), "Test": Decimal("10"), "Restore": Decimal("5")}
        )
        assert changed.names == SPOOL.names
        assert changed.milestone("Erect").category == MilestoneCategory.INSTALL
        assert changed.milestone("Test").weight == Decimal("10")


class TestDefinitionValidation:
    def test_valid(self):
        assert validate_template_definition(SPOOL.milestones) == []

    def test_weights_must_total_hundred(self):
        specs = [
            MilestoneSpec("Receive", Decimal("10"), MilestoneCategory.RECEIVE),
            MilestoneSpec("Install", Decimal("80"), MilestoneCategory.INSTALL, order=1),
        ]
        issues = validate_template_definition(specs)
        assert issues == ["weights total 90, expected 100"]

    def test_duplicate_names(self):
        specs = [
            MilestoneSpec("Install", Decimal("50"), MilestoneCategory.INSTALL),
            MilestoneSpec("Install", Decimal("50"), MilestoneCategory.INSTALL, order=1),
        ]
        assert "duplicate milestone 'Install'" in validate_template_definition(specs)

    def test_empty(self):
        assert validate_template_definition([]) == ["template has no milestones"]

    def test_negative_weight(self):
        specs = [
            MilestoneSpec("Receive", Decimal("-10"), MilestoneCategory.RECEIVE),
            MilestoneSpec("Install", Decimal("110"), MilestoneCategory.INSTALL, order=1),
        ]
        issues = validate_template_definition(specs)
        assert any("'Receive' must be between 0 and 100" in i for i in issues)
        assert any("'Install' must be between 0 and 100" in i for i in issues)

    def test_weight_finer_than_four_places(self):
        specs = [
            MilestoneSpec("Receive", Decimal("33.33333"), MilestoneCategory.RECEIVE),
            MilestoneSpec("Install", Decimal("66.66667"), MilestoneCategory.INSTALL, order=1),
        ]
        issues = validate_template_definition(specs)
        assert any("'Receive' has more than 4 decimal places" in i for i in issues)
        assert any("'Install' has more than 4 decimal places" in i for i in issues)

    def test_trailing_zeros_are_not_extra_places(self):
        specs = [
            MilestoneSpec("Receive", Decimal("20.500000"), MilestoneCategory.RECEIVE),
            MilestoneSpec("Install", Decimal("79.5"), MilestoneCategory.INSTALL, order=1),
        ]
        assert validate_template_definition(specs) == []


class TestOverrideValidation:
    VALVE = ResolvedTemplate(
        component_type="valve",
        milestones=(
            MilestoneSpec("Receive", Decimal("10"), MilestoneCategory.RECEIVE, False, 0),
            MilestoneSpec("Install", Decimal("80"), MilestoneCategory.INSTALL, False, 1),
            MilestoneSpec("Test", Decimal("10"), MilestoneCategory.TEST, False, 2),
        ),
    )

    def test_valid_override(self):
        assert validate_template_override(self.VALVE, {"Receive": 20, "Install": "70", "Test": 10.0}) == []

    def test_bad_total(self):
        issues = validate_template_override(self.VALVE, {"Receive": 20, "Install": 80, "Test": 10})
        assert issues == ["weights total 110, expected 100"]

    def test_unknown_and_missing(self):
        issues = validate_template_override(self.VALVE, {"Receive": 20, "Install": 80, "Paint": 0})
        assert "unknown milestone 'Paint'" in issues
        assert "missing milestones: Test" in issues

    def test_non_numeric_weight(self):
        issues = validate_template_override(self.VALVE, {"Receive": "ten", "Install": 80, "Test": 10})
        assert "weight of 'Receive' is not numeric: 'ten'" in issues

    def test_pairs_with_duplicates(self):
        parsed, issues = normalize_weights([("Receive", 10), ("Receive", 20)])
        assert parsed == {"Receive": Decimal("10")}
        assert issues == ["duplicate milestone 'Receive'"]

    def test_boolean_weight_rejected(self):
        _, issues = normalize_weights({"Receive": True})
        assert issues


class TestParsing:
    def test_rows_default_order_to_position(self):
        specs = milestones_from_rows([
            {"name": "Fit-Up", "weight": "10"},
            {"name": "Weld Made", "weight": 90, "is_partial": False},
        ])
        assert [s.order for s in specs] == [0, 1]
        assert specs[1].category == MilestoneCategory.INSTALL

    def test_round_trip_dict(self):
        spec = MilestoneSpec("Fabricate", Decimal("16"), MilestoneCategory.INSTALL, True, 3)
        assert MilestoneSpec.from_dict(spec.to_dict()) == spec

    def test_unknown_name_without_category(self):
        with pytest.raises(ValueError):
            MilestoneSpec.from_dict({"name": "Paint", "weight": 10})

    def test_non_numeric_weight(self):
        with pytest.raises(ValueError):
            MilestoneSpec.from_dict({"name": "Receive", "weight": "x"})

    def test_category_defaults(self):
        assert category_for("Weld Made") == MilestoneCategory.INSTALL
        assert category_for("Paint") is None


class TestSequencing:
    def test_earlier_milestones_at_zero_reported(self):
        missing = find_missing_prerequisites(SPOOL, {"Receive": 0, "Erect": 100}, "Punch", Decimal("100"))
        assert missing == ["Receive", "Connect"]

    def test_only_on_completion(self):
        assert find_missing_prerequisites(SPOOL, {}, "Punch", Decimal("0")) == []

    def test_first_milestone_has_no_prerequisites(self):
        assert find_missing_prerequisites(SPOOL, {}, "Receive", Decimal("100")) == []

    def test_unknown_milestone(self):
        assert find_missing_prerequisites(SPOOL, {}, "Paint", Decimal("100")) == []
