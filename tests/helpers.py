from datetime import datetime, timedelta

from invigilation.database import InMemoryDocumentStore
from invigilation.models import ActorContext, Role


class FakeClock:
    """Manually advanced clock for store timestamps."""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


def add_user(
    store: InMemoryDocumentStore,
    user_id: str,
    role: Role,
    *,
    name: str | None = None,
    status: str = "approved",
    active: bool = True,
) -> ActorContext:
    name = name or user_id.replace("-", " ").title()
    store.put(
        "users",
        user_id,
        {
            "name": name,
            "email": f"{user_id}@lab.example",
            "role": role.value,
            "status": status,
            "is_active": active,
        },
    )
    return ActorContext(user_id=user_id, role=role, name=name)


def request_form(**overrides) -> dict:
    form = {
        "subject": "Data Structures",
        "date": "2024-01-20",
        "time": "09:00 - 12:00",
        "venue": "Lab A",
        "student_count": 40,
        "invigilator_count": 1,
        "type": "Final Exam",
    }
    form.update(overrides)
    return form
