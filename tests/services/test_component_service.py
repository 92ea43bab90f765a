"""
Tests for component intake and lifecycle writes.
"""

from decimal import Decimal
from uuid import uuid4

import pytest

from progress_kernel.exceptions import (
    ComponentNotFoundError,
    ComponentRetiredError,
    ConfigurationError,
    DrawingNotFoundError,
    DuplicateComponentError,
    GroupingNotFoundError,
    InvalidBudgetError,
    InvalidGroupingAttributeError,
    InvalidIdentityKeyError,
    ProjectNotFoundError,
)
from progress_kernel.models.review import ReviewItem, ReviewType
from progress_kernel.services.component_service import ComponentService, parse_budget
from progress_kernel.services.structure_service import StructureService

VALVE_KEY = {"drawing_norm": "P-001", "commodity_code": "VBALL", "size": "2", "seq": 1}


@pytest.fixture
def structure(seeded_session):
    return StructureService(seeded_session)


@pytest.fixture
def project(structure, actor_id):
    return structure.create_project("P-300", "Intake tests", actor_id)


@pytest.fixture
def service(seeded_session, identity_schemas, clock, resolver):
    return ComponentService(seeded_session, identity_schemas, clock, resolver)


class TestCreateComponent:
    def test_all_milestones_start_at_zero(self, service, project, actor_id):
        component = service.create_component(project.id, "valve", VALVE_KEY, "12.5", actor_id)
        assert component.milestones == {"Receive": 0, "Install": 0, "Punch": 0, "Test": 0, "Restore": 0}
        assert component.percent_complete == Decimal("0")
        assert component.budget_hours == Decimal("12.5")
        assert component.identity_text == "drawing_norm=P-001|commodity_code=VBALL|size=2|seq=1"
        assert component.last_event_sequence == 0

    def test_spool_identity(self, service, project, actor_id):
        component = service.create_component(project.id, "spool", {"spool_id": "SP-101"}, 40, actor_id)
        assert component.identity_text == "spool_id=SP-101"
        assert set(component.milestones) == {"Receive", "Erect", "Connect", "Punch", "Test", "Restore"}

    def test_missing_identity_field(self, service, project, actor_id):
        with pytest.raises(InvalidIdentityKeyError) as exc_info:
            service.create_component(project.id, "field_weld", {"weld_no": "W-1"}, 4, actor_id)
        assert exc_info.value.missing_fields == ["weld_number"]

    def test_unknown_type(self, service, project, actor_id):
        with pytest.raises(InvalidIdentityKeyError):
            service.create_component(project.id, "bolt", {"tag": "B"}, 1, actor_id)

    def test_type_without_template(self, seeded_session, clock, resolver, project, actor_id):
        service = ComponentService(seeded_session, {"bolt": ("tag",)}, clock, resolver)
        with pytest.raises(ConfigurationError):
            service.create_component(project.id, "bolt", {"tag": "B"}, 1, actor_id)

    def test_duplicate_identity_rejected(self, service, project, actor_id):
        first = service.create_component(project.id, "valve", VALVE_KEY, 1, actor_id)
        with pytest.raises(DuplicateComponentError) as exc_info:
            service.create_component(project.id, "valve", dict(VALVE_KEY), 1, actor_id)
        assert str(first.id) in str(exc_info.value)

    def test_retired_identity_can_be_reused(self, service, project, actor_id):
        first = service.create_component(project.id, "valve", VALVE_KEY, 1, actor_id)
        service.retire_component(first.id, "superseded", actor_id)
        second = service.create_component(project.id, "valve", VALVE_KEY, 1, actor_id)
        assert second.id != first.id

    def test_unknown_project(self, service, actor_id):
        with pytest.raises(ProjectNotFoundError):
            service.create_component(uuid4(), "valve", VALVE_KEY, 1, actor_id)

    def test_drawing_from_other_project_rejected(self, service, structure, project, actor_id):
        other = structure.create_project("P-301", "Other", actor_id)
        drawing = structure.create_drawing(other.id, "ISO-9", actor_id)
        with pytest.raises(DrawingNotFoundError):
            service.create_component(project.id, "valve", VALVE_KEY, 1, actor_id, drawing_id=drawing.id)

    def test_override_must_match_kind(self, service, structure, project, actor_id):
        system = structure.create_grouping(project.id, "system", "SYS-1", actor_id)
        with pytest.raises(InvalidGroupingAttributeError):
            service.create_component(
                project.id, "valve", VALVE_KEY, 1, actor_id, overrides={"area_id": system.id}
            )

    def test_override_unknown_grouping(self, service, project, actor_id):
        with pytest.raises(GroupingNotFoundError):
            service.create_component(
                project.id, "valve", VALVE_KEY, 1, actor_id, overrides={"area_id": uuid4()}
            )


class TestBudget:
    @pytest.mark.parametrize("raw, expected", [("10", "10"), (2.5, "2.5"), (0, "0"), ("1.0000004", "1.000000")])
    def test_parse(self, raw, expected):
        assert parse_budget(raw) == Decimal(expected)

    @pytest.mark.parametrize("raw", [-1, "abc", True, float("inf")])
    def test_rejected(self, raw):
        with pytest.raises(InvalidBudgetError):
            parse_budget(raw)

    def test_set_budget(self, service, project, actor_id):
        component = service.create_component(project.id, "valve", VALVE_KEY, 10, actor_id)
        version = component.version
        service.set_budget(component.id, "20", actor_id)
        assert component.budget_hours == Decimal("20")
        assert component.version == version + 1


class TestDrawingAssignment:
    def test_move_opens_review_item(self, service, structure, project, actor_id, seeded_session):
        d1 = structure.create_drawing(project.id, "ISO-1", actor_id)
        d2 = structure.create_drawing(project.id, "ISO-2", actor_id)
        component = service.create_component(project.id, "valve", VALVE_KEY, 1, actor_id, drawing_id=d1.id)

        service.assign_drawing(component.id, d2.id, actor_id)

        assert component.drawing_id == d2.id
        items = seeded_session.query(ReviewItem).filter_by(component_id=component.id).all()
        assert [i.review_type for i in items] == [ReviewType.DRAWING_CHANGE.value]
        assert items[0].payload["previous_drawing_id"] == str(d1.id)

    def test_first_assignment_not_flagged(self, service, structure, project, actor_id, seeded_session):
        d1 = structure.create_drawing(project.id, "ISO-1", actor_id)
        component = service.create_component(project.id, "valve", VALVE_KEY, 1, actor_id)
        service.assign_drawing(component.id, d1.id, actor_id)
        assert seeded_session.query(ReviewItem).count() == 0

    def test_same_drawing_is_noop(self, service, structure, project, actor_id):
        d1 = structure.create_drawing(project.id, "ISO-1", actor_id)
        component = service.create_component(project.id, "valve", VALVE_KEY, 1, actor_id, drawing_id=d1.id)
        version = component.version
        service.assign_drawing(component.id, d1.id, actor_id)
        assert component.version == version


class TestOverridesAndRetirement:
    def test_set_and_clear_override(self, service, structure, project, actor_id):
        area = structure.create_grouping(project.id, "area", "A-1", actor_id)
        component = service.create_component(project.id, "valve", VALVE_KEY, 1, actor_id)
        service.set_grouping_override(component.id, "area_id", area.id, actor_id)
        assert component.area_id == area.id
        service.set_grouping_override(component.id, "area_id", None, actor_id)
        assert component.area_id is None

    def test_retire(self, service, project, actor_id, clock):
        component = service.create_component(project.id, "valve", VALVE_KEY, 1, actor_id)
        service.retire_component(component.id, "deleted from drawing rev B", actor_id)
        assert component.is_retired
        assert component.retire_reason == "deleted from drawing rev B"
        assert component.retired_at == clock.now()

    def test_retired_components_reject_writes(self, service, project, actor_id):
        component = service.create_component(project.id, "valve", VALVE_KEY, 1, actor_id)
        service.retire_component(component.id, "gone", actor_id)
        with pytest.raises(ComponentRetiredError):
            service.set_budget(component.id, 2, actor_id)

    def test_unknown_component(self, service, actor_id):
        with pytest.raises(ComponentNotFoundError):
            service.retire_component(uuid4(), "gone", actor_id)
