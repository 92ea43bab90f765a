"""
Tests for grouping attribute inheritance (component -> drawing).

Verifies:
- Component value wins over the drawing's
- Drawing value is used when the component has none
- Unassigned when neither has one
- Resolution is idempotent and reports its source
"""

from types import SimpleNamespace
from uuid import uuid4

import pytest

from progress_kernel.domain.inheritance import (
    GROUPING_ATTRIBUTES,
    AttributeSource,
    check_grouping_attribute,
    resolve_attribute,
    resolve_grouping,
)
from progress_kernel.exceptions import InvalidGroupingAttributeError

G1 = uuid4()
G2 = uuid4()
G3 = uuid4()


def _component(**values):
    base = {name: None for name in GROUPING_ATTRIBUTES}
    base.update(values)
    return SimpleNamespace(**base)


def _drawing(**values):
    return _component(**values)


class TestResolveAttribute:
    def test_inherits_from_drawing(self):
        resolved = resolve_attribute(_component(), _drawing(area_id=G1), "area_id")
        assert resolved.value == G1
        assert resolved.source == AttributeSource.INHERITED

    def test_override_wins(self):
        resolved = resolve_attribute(_component(area_id=G3), _drawing(area_id=G1), "area_id")
        assert resolved.value == G3
        assert resolved.source == AttributeSource.ASSIGNED

    def test_override_without_drawing(self):
        resolved = resolve_attribute(_component(system_id=G2), None, "system_id")
        assert resolved.value == G2
        assert resolved.source == AttributeSource.ASSIGNED

    def test_unassigned(self):
        resolved = resolve_attribute(_component(), _drawing(), "test_package_id")
        assert resolved.value is None
        assert resolved.source == AttributeSource.NONE
        assert not resolved.is_assigned

    def test_no_drawing_unassigned(self):
        assert resolve_attribute(_component(), None, "area_id").value is None

    def test_unknown_attribute_rejected(self):
        with pytest.raises(InvalidGroupingAttributeError):
            resolve_attribute(_component(), None, "drawing_id")

    def test_idempotent(self):
        component, drawing = _component(), _drawing(area_id=G1, system_id=G2)
        first = resolve_grouping(component, drawing)
        second = resolve_grouping(component, drawing)
        assert first == second


class TestResolveGrouping:
    def test_each_attribute_resolved_independently(self):
        grouping = resolve_grouping(
            _component(system_id=G3),
            _drawing(area_id=G1, system_id=G2),
        )
        assert grouping["area_id"].value == G1
        assert grouping["system_id"].value == G3
        assert grouping["test_package_id"].value is None
        assert set(grouping) == set(GROUPING_ATTRIBUTES)

    def test_check_grouping_attribute(self):
        assert check_grouping_attribute("area_id") == "area_id"
        with pytest.raises(InvalidGroupingAttributeError):
            check_grouping_attribute("area")
