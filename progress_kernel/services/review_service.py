"""Needs-review queue: flagging conditions on components and resolving them."""

from typing import Any
from uuid import UUID

from progress_kernel.domain.clock import Clock, SystemClock
from progress_kernel.exceptions import ReviewAlreadyResolvedError, ReviewItemNotFoundError
from progress_kernel.logging_config import get_logger
from progress_kernel.models.component import Component
from progress_kernel.models.review import ReviewItem, ReviewStatus, ReviewType
from progress_kernel.services.base import BaseService

logger = get_logger("services.review")


class ReviewService(BaseService[ReviewItem]):
    """Creates and resolves review items.  Flush-only."""

    def __init__(self, session, clock: Clock | None = None):
        super().__init__(session)
        self._clock = clock or SystemClock()

    def flag(
        self,
        component: Component,
        review_type: ReviewType,
        payload: dict[str, Any],
        actor_id: UUID,
    ) -> ReviewItem:
        """Open a pending review item for a component."""
        item = ReviewItem(
            project_id=component.project_id,
            component_id=component.id,
            review_type=review_type.value,
            status=ReviewStatus.PENDING.value,
            payload=payload,
            created_by_id=actor_id,
        )
        self.session.add(item)
        self.session.flush()
        logger.info(
            "review_item_flagged",
            extra={
                "review_id": str(item.id),
                "component_id": str(component.id),
                "review_type": review_type.value,
            },
        )
        return item

    def resolve_review(
        self,
        review_id: UUID,
        status: ReviewStatus | str,
        actor_id: UUID,
        note: str | None = None,
    ) -> ReviewItem:
        """
        Close a pending review item as resolved or ignored.

        Raises:
            ReviewItemNotFoundError: unknown id.
            ReviewAlreadyResolvedError: item is not pending.
            ValueError: status is not resolved or ignored.
        """
        status = ReviewStatus(status)
        if status == ReviewStatus.PENDING:
            raise ValueError("a review item can only be closed as resolved or ignored")

        item = self.session.get(ReviewItem, review_id)
        if item is None:
            raise ReviewItemNotFoundError(str(review_id))
        if item.status != ReviewStatus.PENDING.value:
            raise ReviewAlreadyResolvedError(str(review_id), item.status)

        item.status = status.value
        item.resolved_at = self._clock.now()
        item.resolved_by_id = actor_id
        item.resolution_note = note
        item.updated_by_id = actor_id
        self.session.flush()

        logger.info(
            "review_item_closed",
            extra={"review_id": str(review_id), "status": status.value},
        )
        return item
