"""
Module: progress_kernel.models.project
Responsibility: ORM persistence for the project, the tenancy boundary for
    components, drawings, grouping entities and template overrides.
Architecture position: Kernel > Models.  May import from db/base.py only.
"""

from sqlalchemy import String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from progress_kernel.db.base import TrackedBase


class Project(TrackedBase):
    """
    A construction project.

    Guarantees:
        - code is unique across the installation.
    """

    __tablename__ = "projects"

    __table_args__ = (UniqueConstraint("code", name="uq_project_code"),)

    code: Mapped[str] = mapped_column(String(50), nullable=False)

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    def __repr__(self) -> str:
        return f"<Project {self.code}>"
