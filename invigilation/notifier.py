"""
Templated in-app notifications.

Each helper writes one document per recipient to the ``notifications``
collection. A failed write is logged and never undoes the action that
triggered it.
"""

import logging
from collections.abc import Iterable
from typing import Any

from invigilation.database import InMemoryDocumentStore
from invigilation.exceptions import NotFoundError, PermissionDeniedError, StoreError
from invigilation.models import (
    InvigilationRequest,
    LeaveRequest,
    Notification,
    NotificationType,
    ReviewStatus,
    Role,
    User,
)

logger = logging.getLogger(__name__)

NOTIFICATIONS = "notifications"
USERS = "users"


def create_notification(
    store: InMemoryDocumentStore,
    user_id: str,
    title: str,
    message: str,
    type: NotificationType = NotificationType.INFO,
    *,
    action_url: str | None = None,
    action_text: str | None = None,
    metadata: dict[str, Any] | None = None,
) -> str | None:
    try:
        return store.add(
            NOTIFICATIONS,
            {
                "user_id": user_id,
                "title": title,
                "message": message,
                "type": NotificationType(type).value,
                "read": False,
                "action_url": action_url,
                "action_text": action_text,
                "metadata": metadata or {},
            },
        )
    except StoreError:
        logger.exception("Error creating notification for user %s", user_id)
        return None


def notify_users(
    store: InMemoryDocumentStore,
    user_ids: Iterable[str],
    title: str,
    message: str,
    type: NotificationType = NotificationType.INFO,
    **kwargs: Any,
) -> list[str]:
    """Send the same notification to each distinct user id, in order."""
    created = []
    seen: set[str] = set()
    for user_id in user_ids:
        if not user_id or user_id in seen:
            continue
        seen.add(user_id)
        notification_id = create_notification(
            store, user_id, title, message, type, **kwargs
        )
        if notification_id is not None:
            created.append(notification_id)
    return created


def notify_role(
    store: InMemoryDocumentStore,
    role: Role,
    title: str,
    message: str,
    type: NotificationType = NotificationType.INFO,
    **kwargs: Any,
) -> list[str]:
    """Notify every approved user holding `role`."""
    try:
        recipients = store.query(
            USERS,
            [
                ("role", "==", role.value),
                ("status", "==", ReviewStatus.APPROVED.value),
            ],
        )
    except StoreError:
        logger.exception("Error looking up %s users to notify", role.value)
        return []
    return notify_users(
        store, (u["id"] for u in recipients), title, message, type, **kwargs
    )


def notify_coordinators(
    store: InMemoryDocumentStore,
    title: str,
    message: str,
    type: NotificationType = NotificationType.INFO,
    **kwargs: Any,
) -> list[str]:
    return notify_role(store, Role.COORDINATOR, title, message, type, **kwargs)


# -- invigilations -----------------------------------------------------------


def notify_invigilation_assigned(
    store: InMemoryDocumentStore,
    request: InvigilationRequest,
    invigilator_ids: Iterable[str],
) -> None:
    invigilator_ids = list(invigilator_ids)
    notify_users(
        store,
        invigilator_ids,
        "Invigilation Duty Assigned",
        f'You have been assigned to invigilate "{request.subject}" on '
        f"{request.date} at {request.time} in {request.venue}",
        NotificationType.WARNING,
        action_url="/invigilations",
        action_text="View Details",
        metadata={
            "requestId": request.id,
            "type": "invigilation_assignment",
            "examDate": request.date,
        },
    )
    notify_users(
        store,
        [request.user_id],
        "Invigilation Request Assigned",
        f'Your invigilation request for "{request.subject}" has been '
        f"assigned to {len(invigilator_ids)} invigilator(s)",
        NotificationType.SUCCESS,
        action_url="/invigilations",
        action_text="View Request",
        metadata={
            "requestId": request.id,
            "type": "invigilation_assigned",
            "assignedIds": invigilator_ids,
        },
    )


def notify_invigilation_cancelled(
    store: InMemoryDocumentStore,
    request: InvigilationRequest,
    cancelled_by: str,
    reason: str | None,
) -> None:
    message = (
        f'The invigilation for "{request.subject}" on {request.date} '
        "has been cancelled."
    )
    if reason:
        message += f" Reason: {reason}"
    recipients = [*request.assigned_invigilators, request.user_id]
    notify_users(
        store,
        (r for r in recipients if r != cancelled_by),
        "Invigilation Cancelled",
        message,
        NotificationType.WARNING,
        action_url="/invigilations",
        action_text="View Updated Schedule",
        metadata={
            "requestId": request.id,
            "type": "invigilation_cancelled",
            "reason": reason,
        },
    )


def notify_invigilation_completed(
    store: InMemoryDocumentStore, request: InvigilationRequest
) -> None:
    notify_users(
        store,
        [request.user_id],
        "Invigilation Completed",
        f'"{request.subject}" on {request.date} has been marked as completed.',
        NotificationType.INFO,
        action_url="/exam-schedule",
        metadata={"requestId": request.id, "type": "invigilation_completed"},
    )


# -- leave -------------------------------------------------------------------


def notify_leave_submitted(
    store: InMemoryDocumentStore, leave: LeaveRequest
) -> None:
    notify_coordinators(
        store,
        "New Leave Request",
        "A staff member has requested leave from "
        f"{leave.start_date.isoformat()} to {leave.end_date.isoformat()}",
        NotificationType.INFO,
        action_url="/attendance",
        action_text="Review Request",
        metadata={"leaveRequestId": leave.id, "type": "leave_request_pending"},
    )


def notify_leave_decided(
    store: InMemoryDocumentStore, leave: LeaveRequest
) -> None:
    if leave.status == ReviewStatus.APPROVED:
        title = "Leave Request Approved"
        message = (
            f"Your leave request from {leave.start_date.isoformat()} to "
            f"{leave.end_date.isoformat()} has been approved."
        )
        type = NotificationType.SUCCESS
    else:
        title = "Leave Request Rejected"
        message = (
            f"Your leave request has been rejected. Reason: {leave.rejection_reason}"
        )
        type = NotificationType.WARNING
    create_notification(
        store,
        leave.user_id,
        title,
        message,
        type,
        action_url="/attendance",
        metadata={
            "leaveRequestId": leave.id,
            "type": f"leave_request_{leave.status.value}",
        },
    )


# -- access ------------------------------------------------------------------


def notify_access_requested(store: InMemoryDocumentStore, user: User) -> None:
    notify_coordinators(
        store,
        "New Access Request",
        f"{user.name} ({user.email}) has requested {user.role.value} access",
        NotificationType.WARNING,
        action_url="/access-management",
        action_text="Review Request",
        metadata={"requestId": user.id, "type": "access_request_pending"},
    )


def notify_access_decided(store: InMemoryDocumentStore, user: User) -> None:
    approved = user.status == ReviewStatus.APPROVED
    if approved:
        message = (
            f"Your request for {user.role.value} access has been approved. "
            "Welcome to the Innovation Lab!"
        )
    else:
        message = (
            f"Your request for {user.role.value} access has been rejected. "
            f"{user.rejection_reason or ''}"
        ).strip()
    create_notification(
        store,
        user.id,
        f"Access Request {user.status.value.capitalize()}",
        message,
        NotificationType.SUCCESS if approved else NotificationType.ERROR,
        action_url="/" if approved else "/help",
        action_text="Go to Dashboard" if approved else "Get Help",
        metadata={
            "requestId": user.id,
            "type": f"access_request_{user.status.value}",
            "reason": user.rejection_reason,
        },
    )


def notify_account_status(
    store: InMemoryDocumentStore, user: User, reason: str | None = None
) -> None:
    if user.is_active:
        title = "Account Activated"
        message = "Your account has been reactivated. Welcome back!"
        type = NotificationType.SUCCESS
    else:
        title = "Account Deactivated"
        message = "Your account has been deactivated. " + (
            reason or "Please contact your coordinator for more information."
        )
        type = NotificationType.ERROR
    create_notification(
        store,
        user.id,
        title,
        message,
        type,
        action_url="/" if user.is_active else "/help",
        metadata={
            "type": "account_active" if user.is_active else "account_inactive",
            "reason": reason,
        },
    )


# -- inbox -------------------------------------------------------------------


def list_notifications(
    store: InMemoryDocumentStore, user_id: str, unread_only: bool = False
) -> list[Notification]:
    """A user's notifications, newest first."""
    filters = [("user_id", "==", user_id)]
    if unread_only:
        filters.append(("read", "==", False))
    documents = store.query(
        NOTIFICATIONS, filters, order_by="created_at", descending=True
    )
    return [Notification.model_validate(d) for d in documents]


def mark_as_read(
    store: InMemoryDocumentStore, notification_id: str, user_id: str
) -> Notification:
    """Mark a notification as read. Only its owner may do this."""
    document = store.get(NOTIFICATIONS, notification_id)
    if document is None:
        raise NotFoundError(NOTIFICATIONS, notification_id)
    if document["user_id"] != user_id:
        raise PermissionDeniedError("Cannot modify another user's notification")
    if not document["read"]:
        store.update(NOTIFICATIONS, notification_id, {"read": True})
        document = store.get(NOTIFICATIONS, notification_id)
    return Notification.model_validate(document)
