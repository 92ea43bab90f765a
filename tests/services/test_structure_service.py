"""Tests for projects, drawings and grouping entities."""

from uuid import uuid4

import pytest

from progress_kernel.exceptions import (
    DrawingNotFoundError,
    GroupingNotFoundError,
    InvalidGroupingAttributeError,
    ProjectNotFoundError,
)
from progress_kernel.services.structure_service import StructureService


@pytest.fixture
def structure(session):
    return StructureService(session)


@pytest.fixture
def project(structure, actor_id):
    return structure.create_project("P-400", "Structure tests", actor_id)


class TestGroupings:
    def test_create_each_kind(self, structure, project, actor_id):
        for kind in ("area", "system", "test_package"):
            grouping = structure.create_grouping(project.id, kind, f"{kind}-1", actor_id)
            assert grouping.kind == kind

    def test_unknown_kind(self, structure, project, actor_id):
        with pytest.raises(ValueError):
            structure.create_grouping(project.id, "building", "B-1", actor_id)

    def test_unknown_project(self, structure, actor_id):
        with pytest.raises(ProjectNotFoundError):
            structure.create_grouping(uuid4(), "area", "A-1", actor_id)


class TestDrawings:
    def test_create_with_grouping(self, structure, project, actor_id):
        area = structure.create_grouping(project.id, "area", "A-1", actor_id)
        drawing = structure.create_drawing(project.id, "ISO-100", actor_id, area_id=area.id)
        assert drawing.area_id == area.id
        assert drawing.system_id is None

    def test_grouping_from_other_project_rejected(self, structure, project, actor_id):
        other = structure.create_project("P-401", "Other", actor_id)
        foreign = structure.create_grouping(other.id, "area", "A-X", actor_id)
        with pytest.raises(GroupingNotFoundError):
            structure.create_drawing(project.id, "ISO-101", actor_id, area_id=foreign.id)

    def test_grouping_kind_mismatch(self, structure, project, actor_id):
        package = structure.create_grouping(project.id, "test_package", "TP-1", actor_id)
        with pytest.raises(InvalidGroupingAttributeError):
            structure.create_drawing(project.id, "ISO-102", actor_id, system_id=package.id)

    def test_set_drawing_grouping(self, structure, project, actor_id, captured_logs):
        a1 = structure.create_grouping(project.id, "area", "A-1", actor_id)
        a2 = structure.create_grouping(project.id, "area", "A-2", actor_id)
        drawing = structure.create_drawing(project.id, "ISO-103", actor_id, area_id=a1.id)

        structure.set_drawing_grouping(drawing.id, "area_id", a2.id, actor_id)

        assert drawing.area_id == a2.id
        record = [r for r in captured_logs() if r["message"] == "drawing_grouping_changed"][0]
        assert record["previous"] == str(a1.id)
        assert record["kind"] == "area"

    def test_clear_drawing_grouping(self, structure, project, actor_id):
        a1 = structure.create_grouping(project.id, "area", "A-1", actor_id)
        drawing = structure.create_drawing(project.id, "ISO-104", actor_id, area_id=a1.id)
        structure.set_drawing_grouping(drawing.id, "area_id", None, actor_id)
        assert drawing.area_id is None

    def test_unknown_drawing(self, structure, actor_id):
        with pytest.raises(DrawingNotFoundError):
            structure.set_drawing_grouping(uuid4(), "area_id", None, actor_id)

    def test_unknown_attribute(self, structure, project, actor_id):
        drawing = structure.create_drawing(project.id, "ISO-105", actor_id)
        with pytest.raises(InvalidGroupingAttributeError):
            structure.set_drawing_grouping(drawing.id, "drawing_id", None, actor_id)
