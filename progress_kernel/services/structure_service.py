"""
StructureService -- projects, drawings and grouping entities.

Responsibility:
    Intake of the containers components hang off, and reassignment of a
    drawing's grouping attributes.

Invariants enforced:
    - A grouping attribute only ever holds the id of a grouping entity of
      the matching kind in the same project.
    - set_drawing_grouping writes the drawing row only.  Children inherit
      the new value through resolve_attribute(); their rows are untouched.
"""

from uuid import UUID

from progress_kernel.domain.inheritance import ATTRIBUTE_TO_KIND, KIND_TO_ATTRIBUTE, check_grouping_attribute
from progress_kernel.exceptions import (
    DrawingNotFoundError,
    GroupingNotFoundError,
    InvalidGroupingAttributeError,
    ProjectNotFoundError,
)
from progress_kernel.logging_config import get_logger
from progress_kernel.models.drawing import Drawing
from progress_kernel.models.grouping import GroupingEntity, GroupingKind
from progress_kernel.models.project import Project
from progress_kernel.services.base import BaseService

logger = get_logger("services.structure")


class StructureService(BaseService[Drawing]):
    """Creates projects, drawings and grouping entities.  Flush-only."""

    def require_project(self, project_id: UUID) -> Project:
        project = self.session.get(Project, project_id)
        if project is None:
            raise ProjectNotFoundError(str(project_id))
        return project

    def require_drawing(self, drawing_id: UUID) -> Drawing:
        drawing = self.session.get(Drawing, drawing_id)
        if drawing is None:
            raise DrawingNotFoundError(str(drawing_id))
        return drawing

    def check_grouping_value(self, project_id: UUID, attribute: str, value: UUID | None) -> None:
        """
        Verify that ``value`` may be stored in ``attribute``.

        Raises:
            InvalidGroupingAttributeError: attribute unknown, or the entity
                is of another kind.
            GroupingNotFoundError: no such entity in the project.
        """
        check_grouping_attribute(attribute)
        if value is None:
            return
        grouping = self.session.get(GroupingEntity, value)
        if grouping is None or grouping.project_id != project_id:
            raise GroupingNotFoundError(str(value))
        if KIND_TO_ATTRIBUTE[grouping.kind] != attribute:
            raise InvalidGroupingAttributeError(attribute, (KIND_TO_ATTRIBUTE[grouping.kind],))

    def create_project(self, code: str, name: str, actor_id: UUID) -> Project:
        project = Project(code=code, name=name, created_by_id=actor_id)
        self.session.add(project)
        self.session.flush()
        logger.info("project_created", extra={"project_id": str(project.id), "code": code})
        return project

    def create_grouping(
        self,
        project_id: UUID,
        kind: GroupingKind | str,
        name: str,
        actor_id: UUID,
        description: str | None = None,
    ) -> GroupingEntity:
        kind = GroupingKind(kind)
        self.require_project(project_id)
        grouping = GroupingEntity(
            project_id=project_id,
            kind=kind.value,
            name=name,
            description=description,
            created_by_id=actor_id,
        )
        self.session.add(grouping)
        self.session.flush()
        logger.info(
            "grouping_created",
            extra={"grouping_id": str(grouping.id), "kind": kind.value, "grouping_name": name},
        )
        return grouping

    def create_drawing(
        self,
        project_id: UUID,
        drawing_no: str,
        actor_id: UUID,
        title: str | None = None,
        area_id: UUID | None = None,
        system_id: UUID | None = None,
        test_package_id: UUID | None = None,
    ) -> Drawing:
        self.require_project(project_id)
        grouping = {"area_id": area_id, "system_id": system_id, "test_package_id": test_package_id}
        for attribute, value in grouping.items():
            self.check_grouping_value(project_id, attribute, value)

        drawing = Drawing(
            project_id=project_id,
            drawing_no=drawing_no,
            title=title,
            created_by_id=actor_id,
            **grouping,
        )
        self.session.add(drawing)
        self.session.flush()
        logger.info(
            "drawing_created",
            extra={"drawing_id": str(drawing.id), "drawing_no": drawing_no},
        )
        return drawing

    def set_drawing_grouping(
        self,
        drawing_id: UUID,
        attribute: str,
        value: UUID | None,
        actor_id: UUID,
    ) -> Drawing:
        """Reassign (or clear) one grouping attribute of a drawing."""
        drawing = self.require_drawing(drawing_id)
        self.check_grouping_value(drawing.project_id, attribute, value)

        previous = getattr(drawing, attribute)
        setattr(drawing, attribute, value)
        drawing.updated_by_id = actor_id
        self.session.flush()

        logger.info(
            "drawing_grouping_changed",
            extra={
                "drawing_id": str(drawing_id),
                "attribute": attribute,
                "kind": ATTRIBUTE_TO_KIND[attribute],
                "previous": str(previous) if previous else None,
                "value": str(value) if value else None,
            },
        )
        return drawing

