from datetime import UTC, date, datetime

import pytest

from invigilation import access
from invigilation.exceptions import (
    NotFoundError,
    PermissionDeniedError,
    TransitionError,
    ValidationError,
)
from invigilation.leave import (
    approve_leave_request,
    list_leave_requests,
    reject_leave_request,
    submit_leave_request,
)
from invigilation.models import ReviewStatus, Role
from invigilation.notifier import list_notifications, mark_as_read
from tests.helpers import add_user


# -- leave ---------------------------------------------------------------------


def _submit(store, actor):
    return submit_leave_request(
        store, actor, date(2024, 2, 1), date(2024, 2, 3), "Family event"
    )


def test_submit_leave_notifies_coordinators(store, actors):
    leave = _submit(store, actors.staff)
    assert leave.status == ReviewStatus.PENDING
    assert leave.user_id == "staff-id"

    [notice] = list_notifications(store, "coord-id")
    assert notice.title == "New Leave Request"
    assert notice.metadata["leaveRequestId"] == leave.id
    # admins are not coordinators
    assert list_notifications(store, "admin-id") == []


def test_submit_leave_validation(store, actors):
    with pytest.raises(ValidationError) as excinfo:
        submit_leave_request(store, actors.staff, date(2024, 2, 3), date(2024, 2, 1), " ")
    assert set(excinfo.value.errors) == {"end_date", "reason"}


def test_approve_leave(store, actors):
    leave = _submit(store, actors.staff)
    reviewed_at = datetime(2024, 1, 16, 9, 0, tzinfo=UTC)

    approved = approve_leave_request(store, actors.coordinator, leave.id, now=reviewed_at)
    assert approved.status == ReviewStatus.APPROVED
    assert approved.reviewed_by == "coord-id"
    assert approved.reviewed_at == reviewed_at
    assert approved.rejection_reason is None

    [notice] = list_notifications(store, "staff-id")
    assert notice.title == "Leave Request Approved"


def test_reject_leave_requires_reason(store, actors):
    leave = _submit(store, actors.staff)
    with pytest.raises(ValidationError):
        reject_leave_request(store, actors.coordinator, leave.id, "  ")

    rejected = reject_leave_request(store, actors.coordinator, leave.id, "Exam week")
    assert rejected.status == ReviewStatus.REJECTED
    assert rejected.rejection_reason == "Exam week"
    assert "Exam week" in list_notifications(store, "staff-id")[0].message


def test_decided_leave_cannot_flip(store, actors):
    leave = _submit(store, actors.staff)
    approve_leave_request(store, actors.coordinator, leave.id)
    # same decision again is a no-op
    approve_leave_request(store, actors.coordinator, leave.id)
    with pytest.raises(TransitionError):
        reject_leave_request(store, actors.coordinator, leave.id, "Changed my mind")


def test_only_managers_review_leave(store, actors):
    leave = _submit(store, actors.staff)
    with pytest.raises(PermissionDeniedError):
        approve_leave_request(store, actors.staff2, leave.id)
    with pytest.raises(NotFoundError):
        approve_leave_request(store, actors.admin, "missing")


def test_leave_listing_scope(store, actors):
    mine = _submit(store, actors.staff)
    _submit(store, actors.intern)
    assert [l.id for l in list_leave_requests(store, actors.staff)] == [mine.id]
    assert len(list_leave_requests(store, actors.coordinator)) == 2
    assert list_leave_requests(store, actors.coordinator, ReviewStatus.APPROVED) == []


# -- access --------------------------------------------------------------------


def test_registration_awaits_approval(store, actors):
    user = access.register_user(store, "Thandi M", "Thandi@Lab.example", Role.INTERN)
    assert user.status == ReviewStatus.PENDING
    assert user.email == "thandi@lab.example"

    with pytest.raises(PermissionDeniedError):
        access.resolve_actor(store, user.id)
    assert list_notifications(store, "coord-id")[0].title == "New Access Request"

    access.approve_user(store, actors.coordinator, user.id)
    actor = access.resolve_actor(store, user.id)
    assert actor.role == Role.INTERN
    assert actor.name == "Thandi M"
    assert list_notifications(store, user.id)[0].title == "Access Request Approved"


def test_registration_validation(store, actors):
    with pytest.raises(ValidationError) as excinfo:
        access.register_user(store, "", "staff-id@lab.example", Role.STAFF)
    assert excinfo.value.errors == {
        "name": "Name is required",
        "email": "Email is already registered",
    }


def test_reject_user_requires_reason(store, actors):
    user = access.register_user(store, "Sam", "sam@lab.example", Role.STAFF)
    with pytest.raises(ValidationError):
        access.reject_user(store, actors.admin, user.id, "")
    rejected = access.reject_user(store, actors.admin, user.id, "Not a lab member")
    assert rejected.status == ReviewStatus.REJECTED
    with pytest.raises(TransitionError):
        access.approve_user(store, actors.admin, user.id)


def test_deactivated_users_cannot_act(store, actors):
    access.set_user_active(store, actors.coordinator, "staff-id", False, "Contract ended")
    with pytest.raises(PermissionDeniedError):
        access.resolve_actor(store, "staff-id")
    assert "Contract ended" in list_notifications(store, "staff-id")[0].message

    access.set_user_active(store, actors.coordinator, "staff-id", True)
    assert access.resolve_actor(store, "staff-id").user_id == "staff-id"


def test_access_management_requires_manager(store, actors):
    with pytest.raises(PermissionDeniedError):
        access.set_user_active(store, actors.lecturer, "staff-id", False)
    with pytest.raises(PermissionDeniedError):
        access.set_user_active(store, actors.admin, "admin-id", False)
    with pytest.raises(PermissionDeniedError):
        access.list_users(store, actors.staff)


def test_ensure_admin_restores_access(store):
    add_user(store, "root", Role.STAFF, status="rejected", active=False)
    admin = access.ensure_admin(store, "root", "Root", "root@lab.example")
    assert admin.role == Role.ADMIN
    assert access.resolve_actor(store, "root").is_manager


def test_unknown_user_cannot_act(store):
    with pytest.raises(PermissionDeniedError):
        access.resolve_actor(store, "nobody")


# -- inbox ---------------------------------------------------------------------


def test_mark_notification_read(store, actors):
    _submit(store, actors.staff)
    [notice] = list_notifications(store, "coord-id", unread_only=True)

    with pytest.raises(PermissionDeniedError):
        mark_as_read(store, notice.id, "staff-id")

    assert mark_as_read(store, notice.id, "coord-id").read is True
    assert list_notifications(store, "coord-id", unread_only=True) == []
    with pytest.raises(NotFoundError):
        mark_as_read(store, "missing", "coord-id")
