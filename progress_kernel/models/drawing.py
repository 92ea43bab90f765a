"""
Module: progress_kernel.models.drawing
Responsibility: ORM persistence for drawings, the parent containers whose
    grouping attributes are inherited by their components.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - Reassigning a drawing's grouping attribute changes the effective
      grouping of every non-overriding child without writing the children.
"""

from uuid import UUID

from sqlalchemy import ForeignKey, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from progress_kernel.db.base import TrackedBase, UUIDString


class Drawing(TrackedBase):
    """
    A drawing (isometric sheet) grouping zero or more components.

    Grouping attributes hold GroupingEntity ids and may be null.
    """

    __tablename__ = "drawings"

    __table_args__ = (
        UniqueConstraint("project_id", "drawing_no", name="uq_drawing_project_no"),
    )

    project_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("projects.id"),
        nullable=False,
    )

    drawing_no: Mapped[str] = mapped_column(String(100), nullable=False)

    title: Mapped[str | None] = mapped_column(String(255), nullable=True)

    area_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("grouping_entities.id"),
        nullable=True,
    )

    system_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("grouping_entities.id"),
        nullable=True,
    )

    test_package_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("grouping_entities.id"),
        nullable=True,
    )

    def __repr__(self) -> str:
        return f"<Drawing {self.drawing_no}>"
