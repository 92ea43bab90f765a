"""
Tests for MilestoneRecorder, the only writer of milestone state.

Verifies:
- Component state, percent and event are written together
- previous_value comes from the stored state
- Invalid values and unknown milestones leave the component untouched
- Event sequence numbers are gapless per component
- Out-of-sequence completions and (optionally) rollbacks open review items
"""

from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import select

from progress_kernel.exceptions import (
    ComponentNotFoundError,
    ComponentRetiredError,
    ConfigurationError,
    ImmutabilityViolationError,
    InvalidMilestoneValue,
)
from progress_kernel.models.component import Component
from progress_kernel.models.milestone_event import MilestoneEvent
from progress_kernel.models.review import ReviewItem, ReviewType
from progress_kernel.services.component_service import ComponentService
from progress_kernel.services.milestone_recorder import MilestoneRecorder
from progress_kernel.services.structure_service import StructureService
from tests.conftest import SCENARIO_TYPE


@pytest.fixture
def project(seeded_session, actor_id):
    return StructureService(seeded_session).create_project("P-200", "Recorder tests", actor_id)


@pytest.fixture
def components(seeded_session, identity_schemas, clock, resolver):
    return ComponentService(seeded_session, identity_schemas, clock, resolver)


@pytest.fixture
def recorder(seeded_session, clock, resolver):
    return MilestoneRecorder(seeded_session, clock, resolver)


@pytest.fixture
def component(components, project, actor_id):
    return components.create_component(project.id, SCENARIO_TYPE, {"tag": "V-1"}, "10", actor_id)


def _events(session, component_id):
    return session.execute(
        select(MilestoneEvent)
        .where(MilestoneEvent.component_id == component_id)
        .order_by(MilestoneEvent.sequence)
    ).scalars().all()


class TestRecordUpdate:
    def test_install_complete(self, recorder, component, actor_id, seeded_session):
        result = recorder.record_milestone_update(component.id, "Install", 100, actor_id)

        assert result.previous_value == Decimal("0")
        assert result.new_value == Decimal("100")
        assert result.delta_hours == Decimal("8")
        assert result.percent_complete == Decimal("80")
        assert result.action == "complete"
        assert result.category == "install"
        assert result.sequence == 1

        assert component.percent_complete == Decimal("80")
        assert component.milestones["Install"] == 100

        events = _events(seeded_session, component.id)
        assert len(events) == 1
        assert events[0].delta_hours == Decimal("8")
        assert events[0].weight == Decimal("80")
        assert events[0].actor_id == actor_id

    def test_previous_value_is_stored_state(self, recorder, component, actor_id):
        recorder.record_milestone_update(component.id, "Receive", 100, actor_id)
        result = recorder.record_milestone_update(component.id, "Receive", 0, actor_id)
        assert result.previous_value == Decimal("100")
        assert result.delta_hours == Decimal("-1")
        assert result.action == "rollback"
        assert result.percent_complete == Decimal("0")

    def test_recorded_at_from_clock(self, recorder, component, actor_id, clock, seeded_session):
        clock.advance(3600)
        recorder.record_milestone_update(component.id, "Receive", True, actor_id)
        event = _events(seeded_session, component.id)[0]
        assert event.recorded_at.replace(tzinfo=None) == clock.now().replace(tzinfo=None)

    def test_sequences_are_gapless(self, recorder, component, actor_id, seeded_session):
        for value in (100, 0, 100):
            recorder.record_milestone_update(component.id, "Receive", value, actor_id)
        assert [e.sequence for e in _events(seeded_session, component.id)] == [1, 2, 3]
        assert component.last_event_sequence == 3

    def test_metadata_stored(self, recorder, component, actor_id, seeded_session):
        recorder.record_milestone_update(component.id, "Receive", 100, actor_id, {"source": "field-tablet"})
        assert _events(seeded_session, component.id)[0].event_metadata == {"source": "field-tablet"}


class TestRejectedUpdates:
    def test_mid_value_on_discrete_rejected(self, recorder, component, actor_id, seeded_session):
        with pytest.raises(InvalidMilestoneValue):
            recorder.record_milestone_update(component.id, "Install", 50, actor_id)
        assert component.percent_complete == Decimal("0")
        assert _events(seeded_session, component.id) == []

    def test_unknown_milestone(self, recorder, component, actor_id):
        with pytest.raises(InvalidMilestoneValue) as exc_info:
            recorder.record_milestone_update(component.id, "Weld Made", 100, actor_id)
        assert "not a milestone" in exc_info.value.reason

    def test_unknown_component(self, recorder, actor_id):
        with pytest.raises(ComponentNotFoundError):
            recorder.record_milestone_update(uuid4(), "Install", 100, actor_id)

    def test_retired_component(self, recorder, components, component, actor_id):
        components.retire_component(component.id, "deleted from drawing", actor_id)
        with pytest.raises(ComponentRetiredError):
            recorder.record_milestone_update(component.id, "Install", 100, actor_id)

    def test_missing_template_blocks_writes(self, recorder, project, actor_id, seeded_session):
        orphan = Component(
            project_id=project.id,
            component_type="not_configured",
            identity_key={"tag": "X"},
            identity_text="tag=X",
            milestones={},
            percent_complete=Decimal("0"),
            budget_hours=Decimal("1"),
            is_retired=False,
            last_event_sequence=0,
            created_by_id=actor_id,
        )
        seeded_session.add(orphan)
        seeded_session.flush()
        with pytest.raises(ConfigurationError):
            recorder.record_milestone_update(orphan.id, "Install", 100, actor_id)


class TestReviewFlags:
    def test_out_of_sequence_flagged(self, recorder, component, actor_id, seeded_session):
        result = recorder.record_milestone_update(component.id, "Test", 100, actor_id)
        assert len(result.review_item_ids) == 1
        item = seeded_session.get(ReviewItem, result.review_item_ids[0])
        assert item.review_type == ReviewType.OUT_OF_SEQUENCE.value
        assert item.payload["missing"] == ["Receive", "Install"]
        # Still recorded
        assert result.percent_complete == Decimal("10")

    def test_in_sequence_not_flagged(self, recorder, component, actor_id):
        recorder.record_milestone_update(component.id, "Receive", 100, actor_id)
        result = recorder.record_milestone_update(component.id, "Install", 100, actor_id)
        assert result.review_item_ids == ()

    def test_flag_disabled(self, seeded_session, clock, resolver, component, actor_id):
        quiet = MilestoneRecorder(seeded_session, clock, resolver, flag_out_of_sequence=False)
        assert quiet.record_milestone_update(component.id, "Test", 100, actor_id).review_item_ids == ()

    def test_rollback_flag(self, seeded_session, clock, resolver, component, actor_id):
        strict = MilestoneRecorder(seeded_session, clock, resolver, flag_rollbacks=True)
        strict.record_milestone_update(component.id, "Receive", 100, actor_id)
        result = strict.record_milestone_update(
            component.id, "Receive", 0, actor_id, {"reason": "damaged on arrival"}
        )
        item = seeded_session.get(ReviewItem, result.review_item_ids[0])
        assert item.review_type == ReviewType.ROLLBACK.value
        assert item.payload["reason"] == "damaged on arrival"


class TestRecomputePercent:
    def test_no_change_returns_false(self, recorder, component, actor_id):
        recorder.record_milestone_update(component.id, "Install", 100, actor_id)
        assert recorder.recompute_percent(component, actor_id) is False

    def test_discrete_anomaly_logged(self, recorder, component, actor_id, seeded_session, captured_logs):
        component.milestones = {"Receive": 100, "Install": 50, "Test": 0}
        seeded_session.flush()
        assert recorder.recompute_percent(component, actor_id) is True
        assert component.percent_complete == Decimal("10")
        anomalies = [r for r in captured_logs() if r["message"] == "discrete_milestone_anomaly"]
        assert anomalies and anomalies[0]["milestone"] == "Install"


class TestEventImmutability:
    def test_events_cannot_be_updated(self, recorder, component, actor_id, seeded_session):
        recorder.record_milestone_update(component.id, "Receive", 100, actor_id)
        event = _events(seeded_session, component.id)[0]
        event.delta_hours = Decimal("999")
        with pytest.raises(ImmutabilityViolationError):
            seeded_session.flush()

    def test_events_cannot_be_deleted(self, recorder, component, actor_id, seeded_session):
        recorder.record_milestone_update(component.id, "Receive", 100, actor_id)
        seeded_session.delete(_events(seeded_session, component.id)[0])
        with pytest.raises(ImmutabilityViolationError):
            seeded_session.flush()
