"""
Template administration.

Responsibility:
    Seeds global default templates, clones them into project overrides and
    saves validated weight overrides as new template versions.  Resolution
    lives in selectors/template_selector.py.

Architecture position:
    Kernel > Services.  Flush-only; the caller owns the transaction.

Invariants enforced:
    - An override is validated BEFORE activation.  A rejected override
      leaves the prior template active and writes nothing.
    - Template rows are never edited: saving writes version N+1, flips the
      previous version's is_active off and appends a TemplateChange row.

Failure modes:
    - TemplateIntegrityViolation: proposed override rejected.
    - ConcurrentModificationConflict: expected_version does not match.
    - ProjectNotFoundError: unknown project.
"""

from collections.abc import Iterable, Mapping, Sequence
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError

from progress_kernel.db.engine import is_postgres
from progress_kernel.domain.clock import Clock, SystemClock
from progress_kernel.domain.dtos import TemplateUpdateResult, TemplateValidationResult
from progress_kernel.domain.templates import (
    MilestoneSpec,
    normalize_weights,
    validate_template_definition,
    validate_template_override,
)
from progress_kernel.exceptions import (
    ConcurrentModificationConflict,
    ProjectNotFoundError,
    TemplateIntegrityViolation,
)
from progress_kernel.logging_config import get_logger
from progress_kernel.models.project import Project
from progress_kernel.models.template import ProgressTemplate, TemplateChange
from progress_kernel.selectors.template_selector import TemplateResolver
from progress_kernel.services.base import BaseService

logger = get_logger("services.template")


class TemplateService(BaseService[ProgressTemplate]):
    """Seeds, clones and overrides progress templates."""

    def __init__(self, session, clock: Clock | None = None, resolver: TemplateResolver | None = None):
        super().__init__(session)
        self._clock = clock or SystemClock()
        self.resolver = resolver or TemplateResolver(session)

    def _require_project(self, project_id: UUID) -> Project:
        project = self.session.get(Project, project_id)
        if project is None:
            raise ProjectNotFoundError(str(project_id))
        return project

    def _next_version(self, component_type: str, project_id: UUID | None) -> int:
        stmt = select(func.max(ProgressTemplate.version)).where(
            ProgressTemplate.component_type == component_type
        )
        if project_id is None:
            stmt = stmt.where(ProgressTemplate.project_id.is_(None))
        else:
            stmt = stmt.where(ProgressTemplate.project_id == project_id)
        current = self.session.execute(stmt).scalar()
        return (current or 0) + 1

    def _add_version(
        self,
        component_type: str,
        project_id: UUID | None,
        milestones: Sequence[MilestoneSpec],
        actor_id: UUID,
    ) -> ProgressTemplate:
        row = ProgressTemplate(
            component_type=component_type,
            project_id=project_id,
            version=self._next_version(component_type, project_id),
            is_active=True,
            milestones=[m.to_dict() for m in milestones],
            created_by_id=actor_id,
        )
        self.session.add(row)
        return row

    def seed_default_templates(
        self,
        definitions: Mapping[str, Sequence[MilestoneSpec]],
        actor_id: UUID,
    ) -> list[UUID]:
        """
        Install global default templates.

        Types whose active default already has identical milestones are
        skipped; a changed definition becomes a new default version.

        Raises:
            TemplateIntegrityViolation: a definition does not total 100.
        """
        created: list[UUID] = []
        for component_type, milestones in definitions.items():
            milestones = tuple(milestones)
            issues = validate_template_definition(milestones)
            if issues:
                raise TemplateIntegrityViolation(component_type, issues)

            existing = self.resolver.active_row(component_type, None)
            if existing is not None:
                if existing.milestones == [m.to_dict() for m in milestones]:
                    continue
                existing.is_active = False
                existing.updated_by_id = actor_id
                self.session.flush()

            row = self._add_version(component_type, None, milestones, actor_id)
            self.session.flush()
            created.append(row.id)

        self.resolver.invalidate()
        logger.info(
            "default_templates_seeded",
            extra={"created_count": len(created), "definition_count": len(definitions)},
        )
        return created

    def clone_defaults_for_project(self, project_id: UUID, actor_id: UUID) -> list[UUID]:
        """
        Copy every active default into an override for the project.

        Returns the new template ids; returns [] without writing when the
        project already has any override.
        """
        self._require_project(project_id)

        has_overrides = self.session.execute(
            select(func.count(ProgressTemplate.id)).where(
                ProgressTemplate.project_id == project_id
            )
        ).scalar()
        if has_overrides:
            logger.info(
                "template_clone_skipped",
                extra={"project_id": str(project_id), "existing_overrides": has_overrides},
            )
            return []

        defaults = self.session.execute(
            select(ProgressTemplate).where(
                ProgressTemplate.project_id.is_(None),
                ProgressTemplate.is_active.is_(True),
            ).order_by(ProgressTemplate.component_type)
        ).scalars().all()

        created = []
        for default in defaults:
            row = ProgressTemplate(
                component_type=default.component_type,
                project_id=project_id,
                version=1,
                is_active=True,
                milestones=list(default.milestones),
                created_by_id=actor_id,
            )
            self.session.add(row)
            self.session.flush()
            created.append(row.id)

        self.resolver.invalidate()
        logger.info(
            "templates_cloned_for_project",
            extra={"project_id": str(project_id), "template_count": len(created)},
        )
        return created

    def current_override_version(self, project_id: UUID, component_type: str) -> int:
        """Version of the project's active override, 0 when it uses the default."""
        row = self.resolver.active_row(component_type, project_id)
        return row.version if row is not None else 0

    def validate_template_override(
        self,
        project_id: UUID,
        component_type: str,
        weights: Mapping[str, object] | Iterable[tuple[str, object]],
    ) -> TemplateValidationResult:
        """Check a proposed override without writing anything."""
        self._require_project(project_id)
        current = self.resolver.resolve(component_type, project_id)
        issues = validate_template_override(current, weights)
        return TemplateValidationResult(valid=not issues, issues=tuple(issues))

    def set_template_override(
        self,
        project_id: UUID,
        component_type: str,
        weights: Mapping[str, object] | Iterable[tuple[str, object]],
        actor_id: UUID,
        expected_version: int | None = None,
        apply_to_existing: bool = False,
    ) -> tuple[TemplateUpdateResult, TemplateChange]:
        """
        Validate and activate new weights for a project.

        Returns the update result and the TemplateChange audit row (the
        caller links a recompute job to it when apply_to_existing is set).

        Raises:
            TemplateIntegrityViolation: weights rejected; prior template stays.
            ConcurrentModificationConflict: expected_version is stale.
        """
        self._require_project(project_id)
        weights = list(weights.items()) if isinstance(weights, Mapping) else list(weights)

        current_row = self.resolver.active_row(component_type, project_id)
        if current_row is not None and is_postgres(self.session):
            current_row = self.session.execute(
                select(ProgressTemplate)
                .where(ProgressTemplate.id == current_row.id)
                .with_for_update()
            ).scalar_one()

        current_version = current_row.version if current_row is not None else 0
        if expected_version is not None and expected_version != current_version:
            raise ConcurrentModificationConflict(
                "ProgressTemplate",
                f"{project_id}/{component_type}",
                f"expected version {expected_version}, found {current_version}",
            )

        current = self.resolver.resolve(component_type, project_id)
        issues = validate_template_override(current, weights)
        if issues:
            logger.warning(
                "template_override_rejected",
                extra={
                    "project_id": str(project_id),
                    "component_type": component_type,
                    "issues": issues,
                },
            )
            raise TemplateIntegrityViolation(component_type, issues)

        parsed, _ = normalize_weights(weights)
        proposed = current.with_weights(parsed)

        if current_row is not None:
            current_row.is_active = False
            current_row.updated_by_id = actor_id
            self.session.flush()

        new_row = self._add_version(component_type, project_id, proposed.milestones, actor_id)
        try:
            self.session.flush()
        except IntegrityError as exc:
            raise ConcurrentModificationConflict(
                "ProgressTemplate",
                f"{project_id}/{component_type}",
                "template version already taken",
            ) from exc

        change = TemplateChange(
            project_id=project_id,
            component_type=component_type,
            template_id=new_row.id,
            previous_template_id=current.template_id,
            old_weights={m.name: str(m.weight) for m in current.milestones},
            new_weights={m.name: str(m.weight) for m in proposed.milestones},
            apply_to_existing=apply_to_existing,
            changed_by_id=actor_id,
            changed_at=self._clock.now(),
        )
        self.session.add(change)
        self.session.flush()
        self.resolver.invalidate()

        logger.info(
            "template_override_saved",
            extra={
                "project_id": str(project_id),
                "component_type": component_type,
                "template_id": str(new_row.id),
                "version": new_row.version,
                "apply_to_existing": apply_to_existing,
            },
        )
        result = TemplateUpdateResult(
            template_id=new_row.id,
            version=new_row.version,
            previous_template_id=current.template_id,
            weights={m.name: m.weight for m in proposed.milestones},
        )
        return result, change
