"""
Invigilation request lifecycle and venue conflict checks.

Requested --assign (fully staffed)--> Assigned --confirm--> Confirmed
Assigned/Confirmed --end time passes--> Completed (auto-completion sweep)
any non-terminal --cancel--> Cancelled
any non-terminal --postpone--> Postponed --edit--> Requested

Every operation takes the store and an explicit ActorContext; none of them
read ambient user state.
"""

import logging
from collections.abc import Iterable, Mapping
from datetime import UTC, date, datetime
from typing import Any

import pydantic

from invigilation import notifier
from invigilation.access import USERS, require_role
from invigilation.database import InMemoryDocumentStore
from invigilation.exceptions import (
    ConflictError,
    NotFoundError,
    ParseError,
    PermissionDeniedError,
    TransitionError,
    ValidationError,
)
from invigilation.models import (
    MANAGER_ROLES,
    REQUESTER_ROLES,
    SCHEDULED_STATUSES,
    TERMINAL_STATUSES,
    ActorContext,
    InvigilationRequest,
    RequestStatus,
    ReviewStatus,
    Role,
)
from invigilation.timerange import overlaps, parse_time_range
from invigilation.validation import ensure_valid, parse_count

logger = logging.getLogger(__name__)

INVIGILATIONS = "invigilations"

EDITABLE_FIELDS = (
    "subject",
    "date",
    "time",
    "venue",
    "student_count",
    "invigilator_count",
    "type",
    "notes",
)

_SCHEDULED_VALUES = [s.value for s in SCHEDULED_STATUSES]
# partially staffed requests still hold their invigilators
_STAFFED_VALUES = [RequestStatus.REQUESTED.value, *_SCHEDULED_VALUES]
_OPEN_VALUES = [
    s.value
    for s in RequestStatus
    if s not in TERMINAL_STATUSES and s != RequestStatus.SCHEDULED
]


def get_request(
    store: InMemoryDocumentStore, request_id: str
) -> InvigilationRequest:
    document = store.get(INVIGILATIONS, request_id)
    if document is None:
        raise NotFoundError(INVIGILATIONS, request_id)
    return InvigilationRequest.model_validate(document)


def check_availability(
    store: InMemoryDocumentStore,
    venue: str,
    date: str,
    time: str,
    exclude_id: str | None = None,
) -> bool:
    """
    Return False if an Assigned or Confirmed request already holds `venue`
    for an overlapping slot on `date`. Pure read.
    """
    parse_time_range(time)  # a malformed candidate fails here, not per record
    booked = store.query(
        INVIGILATIONS,
        [
            ("venue", "==", venue),
            ("date", "==", date),
            ("status", "in", _SCHEDULED_VALUES),
        ],
    )
    for other in booked:
        if other["id"] == exclude_id:
            continue
        try:
            if overlaps(other["date"], other["time"], date, time):
                logger.info(
                    "Venue %s on %s at %s conflicts with request %s (%s)",
                    venue,
                    date,
                    time,
                    other["id"],
                    other["time"],
                )
                return False
        except ParseError:
            logger.warning(
                "Skipping request %s with unparsable time %r",
                other["id"],
                other.get("time"),
            )
    return True


def ensure_available(
    store: InMemoryDocumentStore,
    venue: str,
    date: str,
    time: str,
    exclude_id: str | None = None,
) -> None:
    if not check_availability(store, venue, date, time, exclude_id):
        raise ConflictError(venue, date, time)


def _clean(fields: Mapping[str, Any]) -> dict[str, Any]:
    cleaned = {k: fields[k] for k in EDITABLE_FIELDS if k in fields}
    for key in ("subject", "date", "time", "venue", "type"):
        if isinstance(cleaned.get(key), str):
            cleaned[key] = cleaned[key].strip()
    return cleaned


def create_request(
    store: InMemoryDocumentStore,
    actor: ActorContext,
    fields: Mapping[str, Any],
) -> InvigilationRequest:
    require_role(actor, REQUESTER_ROLES, "request invigilation")
    form = _clean(fields)
    ensure_valid(form)
    ensure_available(store, form["venue"], form["date"], form["time"])

    request_id = store.add(
        INVIGILATIONS,
        {
            **form,
            "student_count": parse_count(form["student_count"]),
            "invigilator_count": parse_count(form["invigilator_count"]),
            "type": form.get("type") or "Final Exam",
            "notes": form.get("notes") or None,
            "lecturer": actor.name,
            "user_id": actor.user_id,
            "status": RequestStatus.REQUESTED.value,
            "assigned_invigilators": [],
            "assignment_history": [],
            "cancellation_reason": None,
        },
    )
    logger.info(
        "Invigilation request %s created by %s for %s on %s at %s",
        request_id,
        actor.user_id,
        form["venue"],
        form["date"],
        form["time"],
    )
    return get_request(store, request_id)


def _ensure_open(request: InvigilationRequest, action: str) -> None:
    if request.status in TERMINAL_STATUSES:
        raise TransitionError(
            f"Cannot {action} a {request.status.value.lower()} request"
        )


def edit_request(
    store: InMemoryDocumentStore,
    actor: ActorContext,
    request_id: str,
    changes: Mapping[str, Any],
) -> InvigilationRequest:
    request = get_request(store, request_id)
    if not actor.is_manager:
        if actor.user_id != request.user_id:
            raise PermissionDeniedError("Only the requester may edit this request")
        if request.assigned_invigilators:
            raise PermissionDeniedError(
                "This request already has assigned invigilators"
            )
    _ensure_open(request, "edit")

    current = request.model_dump(include=set(EDITABLE_FIELDS))
    form = {**current, **_clean(changes)}
    ensure_valid(form)
    ensure_available(
        store, form["venue"], form["date"], form["time"], exclude_id=request_id
    )

    update = {
        **form,
        "student_count": parse_count(form["student_count"]),
        "invigilator_count": parse_count(form["invigilator_count"]),
    }
    if len(request.assigned_invigilators) > update["invigilator_count"]:
        raise ValidationError(
            {
                "invigilator_count": "Fewer invigilators than already assigned"
            }
        )
    if request.status == RequestStatus.POSTPONED:
        update["status"] = RequestStatus.REQUESTED.value
    store.update(INVIGILATIONS, request_id, update)
    logger.info("Invigilation request %s edited by %s", request_id, actor.user_id)
    return get_request(store, request_id)


def _eligible_invigilator(store: InMemoryDocumentStore, user_id: str) -> bool:
    user = store.get(USERS, user_id)
    return (
        user is not None
        and user.get("status") == ReviewStatus.APPROVED.value
        and user.get("is_active", True)
    )


def is_double_booked(
    store: InMemoryDocumentStore,
    user_id: str,
    request: InvigilationRequest,
) -> bool:
    """True if `user_id` already covers an overlapping request that day."""
    others = store.query(
        INVIGILATIONS,
        [
            ("assigned_invigilators", "array-contains", user_id),
            ("date", "==", request.date),
            ("status", "in", _STAFFED_VALUES),
        ],
    )
    for other in others:
        if other["id"] == request.id:
            continue
        try:
            if overlaps(
                other["date"], other["time"], request.date, request.time
            ):
                logger.info(
                    "Invigilator %s is busy with request %s at %s",
                    user_id,
                    other["id"],
                    other["time"],
                )
                return True
        except ParseError:
            logger.warning(
                "Skipping request %s with unparsable time %r",
                other["id"],
                other.get("time"),
            )
    return False


def assign_invigilators(
    store: InMemoryDocumentStore,
    actor: ActorContext,
    request_id: str,
    invigilator_ids: Iterable[str],
    now: datetime | None = None,
) -> InvigilationRequest:
    """
    Replace the request's invigilators. Once fully staffed the request
    becomes Assigned and takes the venue, which is re-checked first.
    """
    require_role(actor, MANAGER_ROLES, "assign invigilators")
    request = get_request(store, request_id)
    _ensure_open(request, "assign")
    if request.status == RequestStatus.POSTPONED:
        raise TransitionError("Reschedule a postponed request before assigning")

    assigned = list(dict.fromkeys(i for i in invigilator_ids if i))
    if not assigned:
        raise ValidationError(
            {"assigned_invigilators": "Assign at least one invigilator"}
        )
    if len(assigned) > request.invigilator_count:
        raise ValidationError(
            {
                "assigned_invigilators": (
                    f"At most {request.invigilator_count} invigilator(s) needed"
                )
            }
        )
    unknown = [i for i in assigned if not _eligible_invigilator(store, i)]
    if unknown:
        raise ValidationError(
            {
                "assigned_invigilators": (
                    "Not approved active users: " + ", ".join(unknown)
                )
            }
        )
    busy = [i for i in assigned if is_double_booked(store, i, request)]
    if busy:
        raise ValidationError(
            {
                "assigned_invigilators": (
                    "Already invigilating at this time: " + ", ".join(busy)
                )
            }
        )

    if len(assigned) >= request.invigilator_count:
        new_status = (
            request.status
            if request.status in SCHEDULED_STATUSES
            else RequestStatus.ASSIGNED
        )
        ensure_available(
            store, request.venue, request.date, request.time, exclude_id=request_id
        )
    else:
        new_status = RequestStatus.REQUESTED

    previous = set(request.assigned_invigilators)
    history = [h.model_dump() for h in request.assignment_history]
    history.append(
        {
            "at": now or datetime.now(UTC),
            "by": actor.user_id,
            "action": "assign",
            "assigned": assigned,
        }
    )
    store.update(
        INVIGILATIONS,
        request_id,
        {
            "assigned_invigilators": assigned,
            "status": new_status.value,
            "assignment_history": history,
        },
    )
    logger.info(
        "Assigned %d/%d invigilators to request %s, status %s",
        len(assigned),
        request.invigilator_count,
        request_id,
        new_status.value,
    )

    newly_assigned = [i for i in assigned if i not in previous]
    request = get_request(store, request_id)
    if newly_assigned:
        notifier.notify_invigilation_assigned(store, request, newly_assigned)
    return request


def confirm_request(
    store: InMemoryDocumentStore, actor: ActorContext, request_id: str
) -> InvigilationRequest:
    request = get_request(store, request_id)
    if not actor.is_manager and actor.user_id not in request.assigned_invigilators:
        raise PermissionDeniedError(
            "Only coordinators or assigned invigilators may confirm"
        )
    if request.status == RequestStatus.CONFIRMED:
        return request
    if request.status != RequestStatus.ASSIGNED:
        raise TransitionError(
            f"Only assigned requests can be confirmed, not {request.status.value}"
        )
    if not store.update_if(
        INVIGILATIONS,
        request_id,
        {"status": [RequestStatus.ASSIGNED.value]},
        {"status": RequestStatus.CONFIRMED.value},
    ):
        raise TransitionError("Request status changed while confirming")
    logger.info("Request %s confirmed by %s", request_id, actor.user_id)
    return get_request(store, request_id)


def postpone_request(
    store: InMemoryDocumentStore, actor: ActorContext, request_id: str
) -> InvigilationRequest:
    require_role(actor, MANAGER_ROLES, "postpone requests")
    request = get_request(store, request_id)
    if request.status == RequestStatus.POSTPONED:
        return request
    _ensure_open(request, "postpone")
    if not store.update_if(
        INVIGILATIONS,
        request_id,
        {"status": _OPEN_VALUES},
        {"status": RequestStatus.POSTPONED.value},
    ):
        raise TransitionError("Request status changed while postponing")
    logger.info("Request %s postponed by %s", request_id, actor.user_id)
    return get_request(store, request_id)


def cancel_request(
    store: InMemoryDocumentStore,
    actor: ActorContext,
    request_id: str,
    reason: str | None = None,
) -> InvigilationRequest:
    request = get_request(store, request_id)
    if not actor.is_manager and actor.user_id != request.user_id:
        raise PermissionDeniedError("Only the requester or a coordinator may cancel")
    if request.status == RequestStatus.CANCELLED:
        return request
    _ensure_open(request, "cancel")

    reason = (reason or "").strip() or None
    if not store.update_if(
        INVIGILATIONS,
        request_id,
        {"status": _OPEN_VALUES},
        {
            "status": RequestStatus.CANCELLED.value,
            "cancellation_reason": reason,
        },
    ):
        raise TransitionError("Request was completed before it could be cancelled")
    logger.info("Request %s cancelled by %s", request_id, actor.user_id)

    request = get_request(store, request_id)
    notifier.notify_invigilation_cancelled(store, request, actor.user_id, reason)
    return request


def is_due(request: InvigilationRequest, now: datetime) -> bool:
    """
    True when a scheduled request's slot has ended: any earlier date, or
    today once the current minute is past the parsed end time.
    """
    if request.status not in SCHEDULED_STATUSES:
        return False
    exam_date = date.fromisoformat(request.date)
    today = now.date()
    if exam_date < today:
        return True
    if exam_date > today:
        return False
    return now.hour * 60 + now.minute > parse_time_range(request.time).end


def complete_due_requests(
    store: InMemoryDocumentStore, now: datetime
) -> list[str]:
    """Mark every past-due Assigned/Confirmed request as Completed."""
    completed = []
    for document in store.query(
        INVIGILATIONS, [("status", "in", _SCHEDULED_VALUES)]
    ):
        try:
            request = InvigilationRequest.model_validate(document)
        except pydantic.ValidationError:
            logger.warning(
                "Cannot auto-complete request %s: unreadable document",
                document.get("id"),
                exc_info=True,
            )
            continue
        try:
            due = is_due(request, now)
        except (ParseError, ValueError):
            logger.warning(
                "Cannot auto-complete request %s: bad date/time %r %r",
                request.id,
                request.date,
                request.time,
            )
            continue
        if not due:
            continue
        if store.update_if(
            INVIGILATIONS,
            request.id,
            {"status": _SCHEDULED_VALUES},
            {"status": RequestStatus.COMPLETED.value},
        ):
            logger.info(
                "Auto-marked request %s (%s) as completed",
                request.id,
                request.subject,
            )
            completed.append(request.id)
            notifier.notify_invigilation_completed(store, request)
    return completed


def list_requests(
    store: InMemoryDocumentStore,
    actor: ActorContext,
    search: str = "",
    status: RequestStatus | None = None,
    type: str | None = None,
) -> list[InvigilationRequest]:
    """
    Requests visible to `actor`: everything for coordinators and admins,
    their own for lecturers, and their assignments for staff and interns.
    """
    filters: list[tuple[str, str, Any]] = []
    if actor.role == Role.LECTURER:
        filters.append(("user_id", "==", actor.user_id))
    elif not actor.is_manager:
        filters.append(("assigned_invigilators", "array-contains", actor.user_id))
    if status == RequestStatus.SCHEDULED:
        filters.append(("status", "in", _SCHEDULED_VALUES))
    elif status is not None:
        filters.append(("status", "==", status.value))

    term = (search or "").strip().lower()
    results = []
    for document in store.query(INVIGILATIONS, filters, order_by="date"):
        request = InvigilationRequest.model_validate(document)
        if type and request.type.lower() != type.lower():
            continue
        if term and not any(
            term in value.lower()
            for value in (request.subject, request.lecturer, request.venue)
        ):
            continue
        results.append(request)
    return results


def get_request_for(
    store: InMemoryDocumentStore, actor: ActorContext, request_id: str
) -> InvigilationRequest:
    """Fetch a request the actor is allowed to see."""
    request = get_request(store, request_id)
    if not (
        actor.is_manager
        or actor.user_id == request.user_id
        or actor.user_id in request.assigned_invigilators
    ):
        raise PermissionDeniedError("Not allowed to view this request")
    return request
