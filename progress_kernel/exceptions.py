"""
Typed Exception Hierarchy for the Progress Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Progress tracking feeds earned-value reports that drive payroll forecasts and
client invoicing.  Callers (UI, import pipelines, report generators) must be
able to react to a failure by TYPE and CODE, never by parsing message text:

    try:
        engine.record_milestone_update(component_id, "Install", 100, user_id)
    except InvalidMilestoneValue as e:
        api_response(code=e.code, milestone=e.milestone_name, reason=e.reason)
    except ConcurrentModificationConflict:
        retry_later()

Every exception:
  1. Has a ``code`` class attribute (machine-readable, API-safe).
  2. Carries its context as attributes (component_id, milestone_name, ...).

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    ProgressKernelError (base)
    |
    +-- TemplateError
    |   +-- ConfigurationError
    |   +-- TemplateIntegrityViolation
    |
    +-- MilestoneError
    |   +-- InvalidMilestoneValue
    |
    +-- ComponentError
    |   +-- ComponentNotFoundError
    |   +-- ComponentRetiredError
    |   +-- InvalidIdentityKeyError
    |   +-- DuplicateComponentError
    |   +-- InvalidBudgetError
    |
    +-- StructureError
    |   +-- ProjectNotFoundError
    |   +-- DrawingNotFoundError
    |   +-- GroupingNotFoundError
    |   +-- InvalidGroupingAttributeError
    |
    +-- ConcurrencyError
    |   +-- ConcurrentModificationConflict
    |
    +-- AggregationError
    |   +-- AggregationRefreshFailure
    |
    +-- ReportError
    |   +-- InvalidDimensionError
    |   +-- InvalidReportWindowError
    |
    +-- ReviewError
    |   +-- ReviewItemNotFoundError
    |   +-- ReviewAlreadyResolvedError
    |
    +-- RecomputeError
    |   +-- RecomputeJobNotFoundError
    |   +-- RecomputeJobStateError
    |
    +-- ImmutabilityError
        +-- ImmutabilityViolationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category     | Code                          | When Raised
-------------|-------------------------------|----------------------------------------
Template     | CONFIGURATION_ERROR           | No template / weights do not total 100
             | TEMPLATE_INTEGRITY_VIOLATION  | Override rejected before activation
-------------|-------------------------------|----------------------------------------
Milestone    | INVALID_MILESTONE_VALUE       | Unknown milestone or out-of-range value
-------------|-------------------------------|----------------------------------------
Component    | COMPONENT_NOT_FOUND           | Component ID does not exist
             | COMPONENT_RETIRED             | Write against a retired component
             | INVALID_IDENTITY_KEY          | Identity key misses required fields
             | DUPLICATE_COMPONENT           | Identity already used in the project
             | INVALID_BUDGET                | Budget hours negative or not numeric
-------------|-------------------------------|----------------------------------------
Structure    | PROJECT_NOT_FOUND             | Project ID does not exist
             | DRAWING_NOT_FOUND             | Drawing ID does not exist
             | GROUPING_NOT_FOUND            | Grouping entity ID does not exist
             | INVALID_GROUPING_ATTRIBUTE    | Attribute is not an inheritable grouping
-------------|-------------------------------|----------------------------------------
Concurrency  | CONCURRENT_MODIFICATION       | Lock contention / stale row; retry
-------------|-------------------------------|----------------------------------------
Aggregation  | AGGREGATION_REFRESH_FAILURE   | Refresh failed; prior snapshot kept
-------------|-------------------------------|----------------------------------------
Report       | INVALID_DIMENSION             | Unknown delta report dimension
             | INVALID_REPORT_WINDOW         | start >= end
-------------|-------------------------------|----------------------------------------
Review       | REVIEW_ITEM_NOT_FOUND         | Review item ID does not exist
             | REVIEW_ALREADY_RESOLVED       | Item is no longer pending
-------------|-------------------------------|----------------------------------------
Recompute    | RECOMPUTE_JOB_NOT_FOUND       | Job ID does not exist
             | RECOMPUTE_JOB_STATE           | Job cannot run in its current state
-------------|-------------------------------|----------------------------------------
Immutability | IMMUTABILITY_VIOLATION        | Update/delete of an append-only row

===============================================================================
HANDLING PATTERNS
===============================================================================

1. Write-path errors are synchronous.  ``session_scope()`` rolls back, so the
   event append and the component update fail together.

2. ConcurrencyError -> retry.  The conflicting write was rejected in full;
   nothing was lost.

3. AggregationError never reaches writers.  The scheduler logs it and the
   previous snapshot stays readable, visibly stale through ``refreshed_at``.
"""


class ProgressKernelError(Exception):
    """
    Base exception for all progress kernel errors.

    All subclasses must have a ``code`` class attribute for machine-readable
    error identification.
    """

    code: str = "PROGRESS_KERNEL_ERROR"


# Template-related exceptions


class TemplateError(ProgressKernelError):
    """Base exception for progress template errors."""

    code: str = "TEMPLATE_ERROR"


class ConfigurationError(TemplateError):
    """
    No usable template exists for a (work-item type, project) pair.

    Fatal for writes of that type: the recorder refuses to compute deltas
    against a missing or malformed template rather than guessing.
    """

    code: str = "CONFIGURATION_ERROR"

    def __init__(self, component_type: str, project_id: str | None, reason: str):
        self.component_type = component_type
        self.project_id = project_id
        self.reason = reason
        super().__init__(
            f"Template configuration error for {component_type} "
            f"(project {project_id}): {reason}"
        )


class TemplateIntegrityViolation(TemplateError):
    """A proposed template was rejected before activation."""

    code: str = "TEMPLATE_INTEGRITY_VIOLATION"

    def __init__(self, component_type: str, issues: list[str]):
        self.component_type = component_type
        self.issues = issues
        super().__init__(
            f"Template for {component_type} rejected: {'; '.join(issues)}"
        )


# Milestone-related exceptions


class MilestoneError(ProgressKernelError):
    """Base exception for milestone errors."""

    code: str = "MILESTONE_ERROR"


class InvalidMilestoneValue(MilestoneError):
    """Milestone name unknown for the template, or value out of range."""

    code: str = "INVALID_MILESTONE_VALUE"

    def __init__(self, milestone_name: str, value: object, reason: str):
        self.milestone_name = milestone_name
        self.value = value
        self.reason = reason
        super().__init__(
            f"Invalid value {value!r} for milestone '{milestone_name}': {reason}"
        )


# Component-related exceptions


class ComponentError(ProgressKernelError):
    """Base exception for component errors."""

    code: str = "COMPONENT_ERROR"


class ComponentNotFoundError(ComponentError):
    """Component with given ID was not found."""

    code: str = "COMPONENT_NOT_FOUND"

    def __init__(self, component_id: str):
        self.component_id = component_id
        super().__init__(f"Component not found: {component_id}")


class ComponentRetiredError(ComponentError):
    """Component is retired and no longer accepts writes."""

    code: str = "COMPONENT_RETIRED"

    def __init__(self, component_id: str):
        self.component_id = component_id
        super().__init__(f"Component {component_id} is retired")


class InvalidIdentityKeyError(ComponentError):
    """Identity key does not satisfy the type's identity schema."""

    code: str = "INVALID_IDENTITY_KEY"

    def __init__(self, component_type: str, missing_fields: list[str]):
        self.component_type = component_type
        self.missing_fields = missing_fields
        super().__init__(
            f"Identity key for {component_type} is missing: "
            f"{', '.join(missing_fields)}"
        )


class DuplicateComponentError(ComponentError):
    """A non-retired component with the same identity already exists."""

    code: str = "DUPLICATE_COMPONENT"

    def __init__(self, component_type: str, identity: str, existing_id: str):
        self.component_type = component_type
        self.identity = identity
        self.existing_id = existing_id
        super().__init__(
            f"{component_type} {identity} already exists as component {existing_id}"
        )


class InvalidBudgetError(ComponentError):
    """Labor-hour budget is negative or not a finite number."""

    code: str = "INVALID_BUDGET"

    def __init__(self, value: object, reason: str):
        self.value = value
        self.reason = reason
        super().__init__(f"Invalid budget {value!r}: {reason}")


# Project structure exceptions


class StructureError(ProgressKernelError):
    """Base exception for project structure (project/drawing/grouping) errors."""

    code: str = "STRUCTURE_ERROR"


class ProjectNotFoundError(StructureError):
    """Project with given ID was not found."""

    code: str = "PROJECT_NOT_FOUND"

    def __init__(self, project_id: str):
        self.project_id = project_id
        super().__init__(f"Project not found: {project_id}")


class DrawingNotFoundError(StructureError):
    """Drawing with given ID was not found."""

    code: str = "DRAWING_NOT_FOUND"

    def __init__(self, drawing_id: str):
        self.drawing_id = drawing_id
        super().__init__(f"Drawing not found: {drawing_id}")


class GroupingNotFoundError(StructureError):
    """Grouping entity with given ID was not found."""

    code: str = "GROUPING_NOT_FOUND"

    def __init__(self, grouping_id: str):
        self.grouping_id = grouping_id
        super().__init__(f"Grouping entity not found: {grouping_id}")


class InvalidGroupingAttributeError(StructureError):
    """Attribute name is not one of the inheritable grouping attributes."""

    code: str = "INVALID_GROUPING_ATTRIBUTE"

    def __init__(self, attribute: str, allowed: tuple[str, ...]):
        self.attribute = attribute
        self.allowed = allowed
        super().__init__(
            f"'{attribute}' is not a grouping attribute "
            f"(expected one of {', '.join(allowed)})"
        )


# Concurrency-related exceptions


class ConcurrencyError(ProgressKernelError):
    """Base exception for concurrency-related errors."""

    code: str = "CONCURRENCY_ERROR"


class ConcurrentModificationConflict(ConcurrencyError):
    """
    Another writer holds or changed the same entity.

    The rejected write left no partial state behind; the caller retries.
    """

    code: str = "CONCURRENT_MODIFICATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Concurrent modification of {entity_type} {entity_id}: {reason}"
        )


# Aggregation-related exceptions


class AggregationError(ProgressKernelError):
    """Base exception for aggregation cache errors."""

    code: str = "AGGREGATION_ERROR"


class AggregationRefreshFailure(AggregationError):
    """A refresh cycle failed; the previous snapshot is retained."""

    code: str = "AGGREGATION_REFRESH_FAILURE"

    def __init__(self, project_id: str | None, reason: str):
        self.project_id = project_id
        self.reason = reason
        scope = f"project {project_id}" if project_id else "all projects"
        super().__init__(f"Aggregation refresh failed for {scope}: {reason}")


# Report-related exceptions


class ReportError(ProgressKernelError):
    """Base exception for delta report errors."""

    code: str = "REPORT_ERROR"


class InvalidDimensionError(ReportError):
    """Requested report dimension is not supported."""

    code: str = "INVALID_DIMENSION"

    def __init__(self, dimension: str, allowed: tuple[str, ...]):
        self.dimension = dimension
        self.allowed = allowed
        super().__init__(
            f"Invalid dimension '{dimension}'. Must be one of: {', '.join(allowed)}"
        )


class InvalidReportWindowError(ReportError):
    """Report window start is not before its end."""

    code: str = "INVALID_REPORT_WINDOW"

    def __init__(self, start: str, end: str):
        self.start = start
        self.end = end
        super().__init__(f"Report window start {start} must be before end {end}")


# Review queue exceptions


class ReviewError(ProgressKernelError):
    """Base exception for needs-review queue errors."""

    code: str = "REVIEW_ERROR"


class ReviewItemNotFoundError(ReviewError):
    """Review item with given ID was not found."""

    code: str = "REVIEW_ITEM_NOT_FOUND"

    def __init__(self, review_id: str):
        self.review_id = review_id
        super().__init__(f"Review item not found: {review_id}")


class ReviewAlreadyResolvedError(ReviewError):
    """Review item is no longer pending."""

    code: str = "REVIEW_ALREADY_RESOLVED"

    def __init__(self, review_id: str, status: str):
        self.review_id = review_id
        self.status = status
        super().__init__(f"Review item {review_id} is already {status}")


# Retroactive recompute exceptions


class RecomputeError(ProgressKernelError):
    """Base exception for retroactive recompute jobs."""

    code: str = "RECOMPUTE_ERROR"


class RecomputeJobNotFoundError(RecomputeError):
    """Recompute job with given ID was not found."""

    code: str = "RECOMPUTE_JOB_NOT_FOUND"

    def __init__(self, job_id: str):
        self.job_id = job_id
        super().__init__(f"Recompute job not found: {job_id}")


class RecomputeJobStateError(RecomputeError):
    """Recompute job cannot be run from its current status."""

    code: str = "RECOMPUTE_JOB_STATE"

    def __init__(self, job_id: str, status: str):
        self.job_id = job_id
        self.status = status
        super().__init__(f"Recompute job {job_id} cannot run from status {status}")


# Immutability-related exceptions


class ImmutabilityError(ProgressKernelError):
    """Base exception for immutability-related errors."""

    code: str = "IMMUTABILITY_ERROR"


class ImmutabilityViolationError(ImmutabilityError):
    """
    Attempted to modify or delete an append-only record.

    Milestone events and template change records are immutable from creation;
    template versions only ever flip ``is_active``.
    """

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )
