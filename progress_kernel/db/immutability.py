"""
ORM-level immutability enforcement for template history.

===============================================================================
PROTECTED ENTITIES
===============================================================================

Entity            | Rule                                   | Why
------------------|----------------------------------------|-------------------------------
ProgressTemplate  | Only is_active may change; no DELETE   | Events reference old versions
TemplateChange    | ALWAYS immutable; no DELETE            | Audit trail of weight changes

MilestoneEvent carries its own always-on listeners in
models/milestone_event.py.

===============================================================================
USAGE
===============================================================================

Called during application initialization (init_engine_from_url, the CLI and
the test suite):

    from progress_kernel.db.immutability import register_immutability_listeners
    register_immutability_listeners()

Registration is idempotent.  Tests that deliberately violate the rules call
unregister_immutability_listeners() first.
"""

from sqlalchemy import event, inspect

from progress_kernel.exceptions import ImmutabilityViolationError
from progress_kernel.logging_config import get_logger

logger = get_logger("db.immutability")

_TEMPLATE_MUTABLE_FIELDS = frozenset({"is_active", "updated_at", "updated_by_id"})


def _check_template_immutability(mapper, connection, target):
    """
    Allow a template version to be deactivated, nothing else.

    Weight changes always create a new version via TemplateService.
    """
    insp = inspect(target)
    for attr in insp.attrs:
        if attr.key in _TEMPLATE_MUTABLE_FIELDS:
            continue
        if attr.history.has_changes():
            logger.error(
                "immutability_violation_blocked",
                extra={
                    "entity_type": "ProgressTemplate",
                    "entity_id": str(target.id),
                    "operation": "UPDATE",
                    "field": attr.key,
                },
            )
            raise ImmutabilityViolationError(
                entity_type="ProgressTemplate",
                entity_id=str(target.id),
                reason=f"Cannot modify field '{attr.key}'; save a new template version",
            )


def _check_template_delete(mapper, connection, target):
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": "ProgressTemplate",
            "entity_id": str(target.id),
            "operation": "DELETE",
        },
    )
    raise ImmutabilityViolationError(
        entity_type="ProgressTemplate",
        entity_id=str(target.id),
        reason="Template versions cannot be deleted",
    )


def _check_template_change_immutability(mapper, connection, target):
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": "TemplateChange",
            "entity_id": str(target.id),
            "operation": "UPDATE",
        },
    )
    raise ImmutabilityViolationError(
        entity_type="TemplateChange",
        entity_id=str(target.id),
        reason="Template change records are immutable",
    )


def _check_template_change_delete(mapper, connection, target):
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": "TemplateChange",
            "entity_id": str(target.id),
            "operation": "DELETE",
        },
    )
    raise ImmutabilityViolationError(
        entity_type="TemplateChange",
        entity_id=str(target.id),
        reason="Template change records cannot be deleted",
    )


def _listeners():
    from progress_kernel.models.template import ProgressTemplate, TemplateChange

    return (
        (ProgressTemplate, "before_update", _check_template_immutability),
        (ProgressTemplate, "before_delete", _check_template_delete),
        (TemplateChange, "before_update", _check_template_change_immutability),
        (TemplateChange, "before_delete", _check_template_change_delete),
    )


def register_immutability_listeners():
    """Register the template immutability listeners (idempotent)."""
    for target, event_name, fn in _listeners():
        if not event.contains(target, event_name, fn):
            event.listen(target, event_name, fn)


def unregister_immutability_listeners():
    """
    Remove the template immutability listeners.

    WARNING: Only use this in tests.
    """
    for target, event_name, fn in _listeners():
        if event.contains(target, event_name, fn):
            event.remove(target, event_name, fn)
