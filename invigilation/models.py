"""
Domain models for invigilation requests, leave, users and notifications.
"""

from datetime import date, datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class Role(StrEnum):
    ADMIN = "admin"
    COORDINATOR = "coordinator"
    LECTURER = "lecturer"
    STAFF = "staff"
    INTERN = "intern"


MANAGER_ROLES = frozenset({Role.ADMIN, Role.COORDINATOR})
REQUESTER_ROLES = frozenset({Role.ADMIN, Role.COORDINATOR, Role.LECTURER})
INVIGILATOR_ROLES = frozenset({Role.STAFF, Role.INTERN})


class RequestStatus(StrEnum):
    REQUESTED = "Requested"
    ASSIGNED = "Assigned"
    CONFIRMED = "Confirmed"
    SCHEDULED = "Scheduled"  # display label only, never persisted
    COMPLETED = "Completed"
    CANCELLED = "Cancelled"
    POSTPONED = "Postponed"


# statuses that hold the venue
SCHEDULED_STATUSES = frozenset({RequestStatus.ASSIGNED, RequestStatus.CONFIRMED})
TERMINAL_STATUSES = frozenset({RequestStatus.COMPLETED, RequestStatus.CANCELLED})


class ReviewStatus(StrEnum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class NotificationType(StrEnum):
    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


class Document(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ActorContext(BaseModel):
    """The user performing an operation, passed explicitly to every service call."""

    user_id: str
    role: Role
    name: str = ""

    @property
    def is_manager(self) -> bool:
        return self.role in MANAGER_ROLES


class AssignmentHistoryEntry(Document):
    at: datetime
    by: str
    action: str
    assigned: list[str] = Field(default_factory=list)


class InvigilationRequest(Document):
    id: str
    subject: str
    venue: str
    lecturer: str = ""
    user_id: str
    date: str  # YYYY-MM-DD
    time: str  # "HH:MM - HH:MM"
    student_count: int = Field(default=0, ge=0)
    invigilator_count: int = Field(default=1, ge=1)
    type: str = "Final Exam"
    status: RequestStatus = RequestStatus.REQUESTED
    assigned_invigilators: list[str] = Field(default_factory=list)
    assignment_history: list[AssignmentHistoryEntry] = Field(
        default_factory=list
    )
    notes: str | None = None
    cancellation_reason: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


class User(Document):
    id: str
    name: str
    email: str
    role: Role
    status: ReviewStatus = ReviewStatus.PENDING
    is_active: bool = True
    rejection_reason: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


class LeaveRequest(Document):
    id: str
    user_id: str
    start_date: date
    end_date: date
    reason: str
    status: ReviewStatus = ReviewStatus.PENDING
    reviewed_by: str | None = None
    reviewed_at: datetime | None = None
    rejection_reason: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


class Notification(Document):
    id: str
    user_id: str
    title: str
    message: str
    type: NotificationType = NotificationType.INFO
    read: bool = False
    action_url: str | None = None
    action_text: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime | None = None
    updated_at: datetime | None = None
