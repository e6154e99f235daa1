from datetime import UTC, datetime
from types import SimpleNamespace

import pytest

from invigilation.database import InMemoryDocumentStore
from invigilation.models import Role
from invigilation.scheduling import (
    assign_invigilators,
    confirm_request,
    create_request,
)
from tests.helpers import FakeClock, add_user, request_form


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(datetime(2024, 1, 15, 8, 0, tzinfo=UTC))


@pytest.fixture
def store(clock) -> InMemoryDocumentStore:
    return InMemoryDocumentStore(now_fn=clock)


@pytest.fixture
def actors(store) -> SimpleNamespace:
    return SimpleNamespace(
        admin=add_user(store, "admin-id", Role.ADMIN),
        coordinator=add_user(store, "coord-id", Role.COORDINATOR),
        lecturer=add_user(store, "lect-id", Role.LECTURER, name="Dr. Naidoo"),
        other_lecturer=add_user(store, "lect2-id", Role.LECTURER),
        staff=add_user(store, "staff-id", Role.STAFF),
        staff2=add_user(store, "staff2-id", Role.STAFF),
        intern=add_user(store, "intern-id", Role.INTERN),
    )


@pytest.fixture
def schedule(store, actors):
    """Create a request and drive it to Assigned (or Confirmed)."""

    def _schedule(
        confirm: bool = False, invigilator_id: str = "staff-id", **overrides
    ):
        request = create_request(store, actors.lecturer, request_form(**overrides))
        request = assign_invigilators(
            store, actors.coordinator, request.id, [invigilator_id]
        )
        if confirm:
            request = confirm_request(store, actors.coordinator, request.id)
        return request

    return _schedule
