"""
Module: progress_kernel.selectors.template_selector
Responsibility: Template resolution -- which milestones, weights and
    categories apply to a work-item type in a project (active project
    override first, else the active global default).
Architecture position: Kernel > Selectors.  Read-only; shared by the
    milestone recorder, the delta report and the aggregation refresher.

Invariants enforced:
    - A resolved template always totals exactly 100.  Anything else is a
      ConfigurationError and blocks writes for that type.

Failure modes:
    - ConfigurationError: no template for the type, or a malformed one.
"""

from uuid import UUID

from sqlalchemy import select

from progress_kernel.domain.templates import (
    ResolvedTemplate,
    milestones_from_rows,
    validate_template_definition,
)
from progress_kernel.exceptions import ConfigurationError
from progress_kernel.logging_config import get_logger
from progress_kernel.models.template import ProgressTemplate

logger = get_logger("selectors.template")


def _to_resolved(row: ProgressTemplate) -> ResolvedTemplate:
    try:
        milestones = milestones_from_rows(row.milestones)
    except (KeyError, ValueError, TypeError) as exc:
        raise ConfigurationError(
            row.component_type,
            str(row.project_id) if row.project_id else None,
            f"malformed template v{row.version}: {exc}",
        ) from exc
    return ResolvedTemplate(
        component_type=row.component_type,
        milestones=milestones,
        template_id=row.id,
        project_id=row.project_id,
        version=row.version,
    )


class TemplateResolver:
    """
    Resolves the active template of a (work-item type, project) pair.

    Results are memoized for the resolver's lifetime, which is one
    transaction; call invalidate() after saving a template in the same
    session.
    """

    def __init__(self, session):
        self.session = session
        self._cache: dict[tuple[str, UUID | None], ResolvedTemplate] = {}

    def invalidate(self) -> None:
        self._cache.clear()

    def active_row(self, component_type: str, project_id: UUID | None) -> ProgressTemplate | None:
        """The active template row for exactly this scope (no fallback)."""
        stmt = select(ProgressTemplate).where(
            ProgressTemplate.component_type == component_type,
            ProgressTemplate.is_active.is_(True),
        )
        if project_id is None:
            stmt = stmt.where(ProgressTemplate.project_id.is_(None))
        else:
            stmt = stmt.where(ProgressTemplate.project_id == project_id)
        return self.session.execute(
            stmt.order_by(ProgressTemplate.version.desc())
        ).scalars().first()

    def resolve(self, component_type: str, project_id: UUID | None) -> ResolvedTemplate:
        """
        Project override if one is active, else the global default.

        Raises:
            ConfigurationError: none exists, or weights do not total 100.
        """
        key = (component_type, project_id)
        cached = self._cache.get(key)
        if cached is not None:
            return cached

        row = None
        if project_id is not None:
            row = self.active_row(component_type, project_id)
        if row is None:
            row = self.active_row(component_type, None)
        if row is None:
            raise ConfigurationError(
                component_type,
                str(project_id) if project_id else None,
                "no template defined",
            )

        template = _to_resolved(row)
        issues = validate_template_definition(template.milestones)
        if issues:
            logger.error(
                "template_integrity_failure",
                extra={
                    "component_type": component_type,
                    "template_id": str(row.id),
                    "issues": issues,
                },
            )
            raise ConfigurationError(
                component_type,
                str(project_id) if project_id else None,
                "; ".join(issues),
            )

        self._cache[key] = template
        return template
