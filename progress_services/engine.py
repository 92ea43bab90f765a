"""
progress_services.engine -- ProgressEngine, the facade collaborators call.

Responsibility:
    Exposes the engine's external operations (record a milestone update,
    read components, list by grouping, read the aggregation cache, build
    delta reports, administer templates) plus the intake glue around them.
    Owns transaction boundaries, the per-component lock registry, the
    clock and the configuration; kernel services stay flush-only.

Architecture position:
    Services -- top of the stack.  Wires progress_config values into
    progress_kernel services and progress_batch jobs.  Nothing below
    imports this module.

Invariants enforced:
    - Every component write runs as: acquire that component's lock, open
      one transaction, call the kernel service, commit, release.  The
      component update and its event append commit together or not at all.
    - Different components never share a lock.
    - Reads never take component locks and never wait on aggregation
      refresh.
    - Everything returned is a detached DTO (or an id).

Failure modes:
    - Kernel exceptions propagate unchanged after the transaction is
      rolled back (see progress_kernel.exceptions).
    - ConcurrentModificationConflict: lock wait timed out or a stale row
      version was detected; nothing was written and the caller retries.

Usage:
    engine = ProgressEngine.from_settings()
    engine.seed_default_templates(actor_id)
    result = engine.record_milestone_update(component_id, "Install", 100, actor_id)
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping, Sequence
from dataclasses import replace
from datetime import datetime
from pathlib import Path
from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session

from progress_batch.domain.types import RecomputeJob, RecomputeRunResult, RefreshSummary
from progress_batch.services.aggregation_refresher import AggregationRefresher
from progress_batch.services.recompute_executor import RecomputeExecutor
from progress_batch.services.scheduler import AggregationScheduler
from progress_config import get_settings, load_default_templates, load_identity_schemas
from progress_config.schema import EngineSettings
from progress_kernel.db.engine import get_session_factory, init_engine_from_url, session_scope
from progress_kernel.domain.clock import Clock, SystemClock
from progress_kernel.domain.dtos import (
    AggregationSnapshot,
    ComponentView,
    DeltaReport,
    MilestoneEventRecord,
    MilestoneUpdateResult,
    ReviewItemView,
    TemplateUpdateResult,
    TemplateValidationResult,
)
from progress_kernel.domain.templates import MilestoneSpec, ResolvedTemplate
from progress_kernel.logging_config import LogContext
from progress_kernel.models.aggregation import AggregationScope
from progress_kernel.models.grouping import GroupingKind
from progress_kernel.models.review import ReviewStatus
from progress_kernel.selectors.aggregation_selector import AggregationSelector
from progress_kernel.selectors.component_selector import ComponentSelector, to_review_view
from progress_kernel.selectors.delta_selector import DeltaSelector
from progress_kernel.selectors.template_selector import TemplateResolver
from progress_kernel.services.component_lock import ComponentLockRegistry
from progress_kernel.services.component_service import ComponentService
from progress_kernel.services.milestone_recorder import MilestoneRecorder
from progress_kernel.services.review_service import ReviewService
from progress_kernel.services.structure_service import StructureService
from progress_kernel.services.template_service import TemplateService


class _SessionServices:
    """Kernel services for one transaction, sharing one template resolver."""

    def __init__(
        self,
        session: Session,
        clock: Clock,
        settings: EngineSettings,
        identity_schemas: Mapping[str, Sequence[str]],
    ):
        self.session = session
        self.resolver = TemplateResolver(session)
        self.structure = StructureService(session)
        self.reviews = ReviewService(session, clock)
        self.templates = TemplateService(session, clock, self.resolver)
        self.components = ComponentService(
            session,
            identity_schemas,
            clock,
            self.resolver,
            flag_drawing_changes=settings.flag_drawing_changes,
        )
        self.recorder = MilestoneRecorder(
            session,
            clock,
            self.resolver,
            flag_out_of_sequence=settings.flag_out_of_sequence,
            flag_rollbacks=settings.flag_rollbacks,
        )
        self.component_reads = ComponentSelector(session)


class ProgressEngine:
    """Facade over the progress kernel.

    Contract:
        Receives a session factory and optional settings, clock, identity
        schemas and lock registry.  Every public method runs in its own
        transaction.

    Non-goals:
        - Does NOT authenticate or authorize actors; actor ids are recorded
          as given.
        - Does NOT parse import files or render reports.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        settings: EngineSettings | None = None,
        clock: Clock | None = None,
        identity_schemas: Mapping[str, Sequence[str]] | None = None,
        locks: ComponentLockRegistry | None = None,
    ):
        self._session_factory = session_factory
        self.settings = settings or EngineSettings()
        self.clock = clock or SystemClock()
        if identity_schemas is None:
            identity_schemas = {t: s.fields for t, s in load_identity_schemas().items()}
        self._identity_schemas = dict(identity_schemas)
        self.locks = locks or ComponentLockRegistry(self.settings.lock_timeout_seconds)

        self.refresher = AggregationRefresher(session_factory, self.clock)
        self.recompute = RecomputeExecutor(
            session_factory,
            self.locks,
            self.clock,
            chunk_size=self.settings.recompute_chunk_size,
        )
        self.scheduler = AggregationScheduler(
            self.refresher,
            refresh_interval_seconds=self.settings.refresh_interval_seconds,
        )

    @classmethod
    def from_settings(
        cls,
        settings: EngineSettings | None = None,
        config_dir: Path | None = None,
        clock: Clock | None = None,
    ) -> ProgressEngine:
        """Initialize the database engine from configuration and build a facade."""
        settings = settings or get_settings(config_dir)
        init_engine_from_url(
            settings.database_url,
            echo=settings.database_echo,
            pool_size=settings.pool_size,
            max_overflow=settings.max_overflow,
        )
        schemas = {t: s.fields for t, s in load_identity_schemas(config_dir).items()}
        return cls(get_session_factory(), settings, clock, schemas)

    # -------------------------------------------------------------------------
    # Internal
    # -------------------------------------------------------------------------

    def _services(self, session: Session) -> _SessionServices:
        return _SessionServices(session, self.clock, self.settings, self._identity_schemas)

    def _component_write(self, component_id: UUID, action: Callable[[_SessionServices], Any]) -> ComponentView:
        with LogContext.bind(component_id=str(component_id)), self.locks.hold(component_id):
            with session_scope(self._session_factory) as session:
                services = self._services(session)
                action(services)
                session.flush()
                return services.component_reads.get_component(component_id)

    # -------------------------------------------------------------------------
    # Milestones
    # -------------------------------------------------------------------------

    def record_milestone_update(
        self,
        component_id: UUID,
        milestone_name: str,
        new_value: Any,
        actor_id: UUID,
        metadata: dict[str, Any] | None = None,
    ) -> MilestoneUpdateResult:
        """
        Record one milestone change: new state, new percent, appended event.

        Raises:
            InvalidMilestoneValue: rejected input; nothing written.
            ConfigurationError: no valid template for the component's type.
            ConcurrentModificationConflict: retry.
        """
        with LogContext.bind(component_id=str(component_id), actor_id=str(actor_id)):
            with self.locks.hold(component_id), session_scope(self._session_factory) as session:
                return self._services(session).recorder.record_milestone_update(
                    component_id, milestone_name, new_value, actor_id, metadata
                )

    # -------------------------------------------------------------------------
    # Component reads
    # -------------------------------------------------------------------------

    def get_component(self, component_id: UUID) -> ComponentView:
        with session_scope(self._session_factory) as session:
            return ComponentSelector(session).get_component(component_id)

    def list_components_by_grouping(self, grouping_id: UUID, project_id: UUID) -> list[ComponentView]:
        with session_scope(self._session_factory) as session:
            return ComponentSelector(session).list_components_by_grouping(grouping_id, project_id)

    def list_components_by_drawing(self, drawing_id: UUID) -> list[ComponentView]:
        with session_scope(self._session_factory) as session:
            return ComponentSelector(session).list_components_by_drawing(drawing_id)

    def list_project_components(self, project_id: UUID, include_retired: bool = False) -> list[ComponentView]:
        with session_scope(self._session_factory) as session:
            return list(ComponentSelector(session).iter_project_components(project_id, include_retired))

    def get_component_history(self, component_id: UUID) -> list[MilestoneEventRecord]:
        with session_scope(self._session_factory) as session:
            return ComponentSelector(session).get_component_history(component_id)

    # -------------------------------------------------------------------------
    # Aggregation cache
    # -------------------------------------------------------------------------

    def get_aggregation(self, scope_kind: AggregationScope | str, scope_id: UUID) -> AggregationSnapshot | None:
        """Cached rollup with its refreshed_at marker; None if never refreshed."""
        with session_scope(self._session_factory) as session:
            return AggregationSelector(session).get_aggregation(scope_kind, scope_id)

    def list_project_aggregations(
        self,
        project_id: UUID,
        scope_kind: AggregationScope | str | None = None,
    ) -> list[AggregationSnapshot]:
        with session_scope(self._session_factory) as session:
            return AggregationSelector(session).list_project_aggregations(project_id, scope_kind)

    def refresh_aggregations(self, project_id: UUID | None = None) -> RefreshSummary:
        """
        Rebuild the cache for one project, or for every project.

        A single-project refresh raises AggregationRefreshFailure; a full
        refresh reports failed projects in the summary instead.
        """
        if project_id is None:
            return self.refresher.refresh_all()
        started_at = self.clock.now()
        count = self.refresher.refresh_project(project_id)
        return RefreshSummary(
            refreshed=(project_id,),
            record_count=count,
            started_at=started_at,
            completed_at=self.clock.now(),
        )

    def start_scheduler(self) -> None:
        self.scheduler.start()

    def stop_scheduler(self, timeout: float = 30.0) -> None:
        self.scheduler.stop(timeout)

    # -------------------------------------------------------------------------
    # Delta reports
    # -------------------------------------------------------------------------

    def get_delta(self, dimension: str, project_id: UUID, start: datetime, end: datetime) -> DeltaReport:
        """Per-category and total earned-value deltas over [start, end)."""
        with session_scope(self._session_factory) as session:
            return DeltaSelector(session).get_delta(project_id, dimension, start, end)

    # -------------------------------------------------------------------------
    # Templates
    # -------------------------------------------------------------------------

    def seed_default_templates(
        self,
        actor_id: UUID,
        definitions: Mapping[str, Sequence[MilestoneSpec]] | None = None,
        config_dir: Path | None = None,
    ) -> list[UUID]:
        """Install the global defaults (from templates.yaml unless given)."""
        if definitions is None:
            definitions = {t: d.milestones for t, d in load_default_templates(config_dir).items()}
        with session_scope(self._session_factory) as session:
            return self._services(session).templates.seed_default_templates(definitions, actor_id)

    def resolve_template(self, component_type: str, project_id: UUID | None) -> ResolvedTemplate:
        with session_scope(self._session_factory) as session:
            return TemplateResolver(session).resolve(component_type, project_id)

    def clone_defaults_for_project(self, project_id: UUID, actor_id: UUID) -> list[UUID]:
        with session_scope(self._session_factory) as session:
            return self._services(session).templates.clone_defaults_for_project(project_id, actor_id)

    def validate_template_override(
        self,
        project_id: UUID,
        component_type: str,
        weights: Mapping[str, object] | Iterable[tuple[str, object]],
    ) -> TemplateValidationResult:
        with session_scope(self._session_factory) as session:
            return self._services(session).templates.validate_template_override(
                project_id, component_type, weights
            )

    def set_template_override(
        self,
        project_id: UUID,
        component_type: str,
        weights: Mapping[str, object] | Iterable[tuple[str, object]],
        actor_id: UUID,
        expected_version: int | None = None,
        apply_to_existing: bool = False,
        run_recompute: bool = True,
    ) -> TemplateUpdateResult:
        """
        Validate and activate a project override.

        With apply_to_existing, a recompute job is submitted in the same
        transaction as the template change and, unless run_recompute is
        False, executed right after commit.  A failed recompute leaves the
        override active and the job resumable.

        Raises:
            TemplateIntegrityViolation: rejected; the prior template stays.
            ConcurrentModificationConflict: expected_version is stale.
        """
        job: RecomputeJob | None = None
        with session_scope(self._session_factory) as session:
            services = self._services(session)
            result, change = services.templates.set_template_override(
                project_id,
                component_type,
                weights,
                actor_id,
                expected_version=expected_version,
                apply_to_existing=apply_to_existing,
            )
            if apply_to_existing:
                job = self.recompute.submit_job(session, change.id, project_id, component_type, actor_id)

        if job is None:
            return result
        if run_recompute:
            self.recompute.execute_job(job.job_id, actor_id)
        return replace(result, recompute_job_id=job.job_id)

    def get_recompute_job(self, job_id: UUID) -> RecomputeJob:
        return self.recompute.get_job(job_id)

    def resume_recompute(self, job_id: UUID, actor_id: UUID) -> RecomputeRunResult:
        return self.recompute.resume_job(job_id, actor_id)

    # -------------------------------------------------------------------------
    # Project structure
    # -------------------------------------------------------------------------

    def create_project(self, code: str, name: str, actor_id: UUID) -> UUID:
        with session_scope(self._session_factory) as session:
            return self._services(session).structure.create_project(code, name, actor_id).id

    def create_grouping(
        self,
        project_id: UUID,
        kind: GroupingKind | str,
        name: str,
        actor_id: UUID,
        description: str | None = None,
    ) -> UUID:
        with session_scope(self._session_factory) as session:
            return self._services(session).structure.create_grouping(
                project_id, kind, name, actor_id, description
            ).id

    def create_drawing(
        self,
        project_id: UUID,
        drawing_no: str,
        actor_id: UUID,
        title: str | None = None,
        area_id: UUID | None = None,
        system_id: UUID | None = None,
        test_package_id: UUID | None = None,
    ) -> UUID:
        with session_scope(self._session_factory) as session:
            return self._services(session).structure.create_drawing(
                project_id,
                drawing_no,
                actor_id,
                title=title,
                area_id=area_id,
                system_id=system_id,
                test_package_id=test_package_id,
            ).id

    def set_drawing_grouping(self, drawing_id: UUID, attribute: str, value: UUID | None, actor_id: UUID) -> None:
        """Reassign a drawing's grouping; non-overriding children follow with no writes."""
        with session_scope(self._session_factory) as session:
            self._services(session).structure.set_drawing_grouping(drawing_id, attribute, value, actor_id)

    # -------------------------------------------------------------------------
    # Component lifecycle
    # -------------------------------------------------------------------------

    def create_component(
        self,
        project_id: UUID,
        component_type: str,
        identity_key: Mapping[str, Any],
        budget_hours: Any,
        actor_id: UUID,
        drawing_id: UUID | None = None,
        overrides: Mapping[str, UUID | None] | None = None,
    ) -> ComponentView:
        with session_scope(self._session_factory) as session:
            services = self._services(session)
            component = services.components.create_component(
                project_id,
                component_type,
                identity_key,
                budget_hours,
                actor_id,
                drawing_id=drawing_id,
                overrides=overrides,
            )
            return services.component_reads.get_component(component.id)

    def assign_drawing(self, component_id: UUID, drawing_id: UUID | None, actor_id: UUID) -> ComponentView:
        return self._component_write(
            component_id,
            lambda s: s.components.assign_drawing(component_id, drawing_id, actor_id),
        )

    def set_grouping_override(
        self,
        component_id: UUID,
        attribute: str,
        value: UUID | None,
        actor_id: UUID,
    ) -> ComponentView:
        return self._component_write(
            component_id,
            lambda s: s.components.set_grouping_override(component_id, attribute, value, actor_id),
        )

    def set_budget(self, component_id: UUID, budget_hours: Any, actor_id: UUID) -> ComponentView:
        return self._component_write(
            component_id,
            lambda s: s.components.set_budget(component_id, budget_hours, actor_id),
        )

    def retire_component(self, component_id: UUID, reason: str, actor_id: UUID) -> ComponentView:
        return self._component_write(
            component_id,
            lambda s: s.components.retire_component(component_id, reason, actor_id),
        )

    # -------------------------------------------------------------------------
    # Review queue
    # -------------------------------------------------------------------------

    def list_review_items(
        self,
        project_id: UUID,
        status: ReviewStatus | str | None = ReviewStatus.PENDING,
    ) -> list[ReviewItemView]:
        with session_scope(self._session_factory) as session:
            return ComponentSelector(session).list_review_items(project_id, status)

    def resolve_review(
        self,
        review_id: UUID,
        status: ReviewStatus | str,
        actor_id: UUID,
        note: str | None = None,
    ) -> ReviewItemView:
        with session_scope(self._session_factory) as session:
            item = self._services(session).reviews.resolve_review(review_id, status, actor_id, note)
            return to_review_view(item)
