"""Leave requests: pending -> approved, or pending -> rejected with a reason."""

import logging
from datetime import UTC, date, datetime

from invigilation import notifier
from invigilation.access import require_role
from invigilation.database import InMemoryDocumentStore
from invigilation.exceptions import (
    NotFoundError,
    TransitionError,
    ValidationError,
)
from invigilation.models import (
    MANAGER_ROLES,
    ActorContext,
    LeaveRequest,
    ReviewStatus,
)

logger = logging.getLogger(__name__)

LEAVE_REQUESTS = "leave_requests"


def get_leave_request(
    store: InMemoryDocumentStore, leave_id: str
) -> LeaveRequest:
    document = store.get(LEAVE_REQUESTS, leave_id)
    if document is None:
        raise NotFoundError(LEAVE_REQUESTS, leave_id)
    return LeaveRequest.model_validate(document)


def submit_leave_request(
    store: InMemoryDocumentStore,
    actor: ActorContext,
    start_date: date | None,
    end_date: date | None,
    reason: str,
) -> LeaveRequest:
    errors = {}
    if start_date is None:
        errors["start_date"] = "Start date is required"
    if end_date is None:
        errors["end_date"] = "End date is required"
    if not (reason or "").strip():
        errors["reason"] = "Reason is required"
    if start_date and end_date and start_date > end_date:
        errors["end_date"] = "End date must be after start date"
    if errors:
        raise ValidationError(errors)

    leave_id = store.add(
        LEAVE_REQUESTS,
        {
            "user_id": actor.user_id,
            "start_date": start_date,
            "end_date": end_date,
            "reason": reason.strip(),
            "status": ReviewStatus.PENDING.value,
            "reviewed_by": None,
            "reviewed_at": None,
            "rejection_reason": None,
        },
    )
    leave = get_leave_request(store, leave_id)
    logger.info("Leave request %s submitted by %s", leave_id, actor.user_id)
    notifier.notify_leave_submitted(store, leave)
    return leave


def list_leave_requests(
    store: InMemoryDocumentStore,
    actor: ActorContext,
    status: ReviewStatus | None = None,
) -> list[LeaveRequest]:
    """Managers see every request; everyone else sees their own."""
    filters = []
    if not actor.is_manager:
        filters.append(("user_id", "==", actor.user_id))
    if status is not None:
        filters.append(("status", "==", status.value))
    documents = store.query(
        LEAVE_REQUESTS, filters, order_by="created_at", descending=True
    )
    return [LeaveRequest.model_validate(d) for d in documents]


def _review(
    store: InMemoryDocumentStore,
    actor: ActorContext,
    leave_id: str,
    status: ReviewStatus,
    reason: str | None,
    now: datetime | None,
) -> LeaveRequest:
    require_role(actor, MANAGER_ROLES, "review leave requests")
    leave = get_leave_request(store, leave_id)
    if leave.status == status:
        return leave
    if not store.update_if(
        LEAVE_REQUESTS,
        leave_id,
        {"status": [ReviewStatus.PENDING.value]},
        {
            "status": status.value,
            "reviewed_by": actor.user_id,
            "reviewed_at": now or datetime.now(UTC),
            "rejection_reason": reason,
        },
    ):
        raise TransitionError(f"Leave request is already {leave.status.value}")
    leave = get_leave_request(store, leave_id)
    logger.info("Leave request %s %s by %s", leave_id, status.value, actor.user_id)
    notifier.notify_leave_decided(store, leave)
    return leave


def approve_leave_request(
    store: InMemoryDocumentStore,
    actor: ActorContext,
    leave_id: str,
    now: datetime | None = None,
) -> LeaveRequest:
    return _review(store, actor, leave_id, ReviewStatus.APPROVED, None, now)


def reject_leave_request(
    store: InMemoryDocumentStore,
    actor: ActorContext,
    leave_id: str,
    reason: str,
    now: datetime | None = None,
) -> LeaveRequest:
    if not (reason or "").strip():
        raise ValidationError({"reason": "A reason is required to reject"})
    return _review(
        store, actor, leave_id, ReviewStatus.REJECTED, reason.strip(), now
    )
