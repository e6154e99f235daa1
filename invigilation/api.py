import asyncio
from contextlib import asynccontextmanager
from datetime import date
from typing import Any

from fastapi import APIRouter, Depends, FastAPI, Header, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import Field
from pydantic.alias_generators import to_camel

from invigilation import access, leave, notifier, scheduling
from invigilation.config import settings
from invigilation.database import InMemoryDocumentStore
from invigilation.exceptions import (
    ConflictError,
    LabError,
    NotFoundError,
    ParseError,
    PermissionDeniedError,
    StoreError,
    TransitionError,
    ValidationError,
)
from invigilation.models import (
    MANAGER_ROLES,
    SCHEDULED_STATUSES,
    ActorContext,
    Document,
    InvigilationRequest,
    LeaveRequest,
    Notification,
    RequestStatus,
    ReviewStatus,
    Role,
    User,
)
from invigilation.sweeper import lab_now, run_auto_completion

router = APIRouter()

_STATUS_CODES: dict[type[LabError], int] = {
    ValidationError: 422,
    ParseError: 422,
    ConflictError: 409,
    TransitionError: 409,
    PermissionDeniedError: 403,
    NotFoundError: 404,
    StoreError: 503,
}


def display_status(status: RequestStatus) -> str:
    """Label shown to users: Assigned and Confirmed read as Scheduled."""
    if status in SCHEDULED_STATUSES:
        return RequestStatus.SCHEDULED.value
    return status.value


class InvigilationView(InvigilationRequest):
    display_status: str

    @classmethod
    def of(cls, request: InvigilationRequest) -> "InvigilationView":
        return cls(
            **request.model_dump(), display_status=display_status(request.status)
        )


class InvigilationForm(Document):
    subject: str = ""
    date: str = ""
    time: str = ""
    venue: str = ""
    student_count: int | str | None = 0
    invigilator_count: int | str | None = 1
    type: str = "Final Exam"
    notes: str | None = None


class InvigilationChanges(Document):
    subject: str | None = None
    date: str | None = None
    time: str | None = None
    venue: str | None = None
    student_count: int | str | None = None
    invigilator_count: int | str | None = None
    type: str | None = None
    notes: str | None = None


class AvailabilityQuery(Document):
    venue: str
    date: str
    time: str
    exclude_id: str | None = None


class AssignBody(Document):
    invigilator_ids: list[str] = Field(default_factory=list)


class ReasonBody(Document):
    reason: str | None = None


class LeaveForm(Document):
    start_date: date | None = None
    end_date: date | None = None
    reason: str = ""


class RegisterBody(Document):
    name: str
    email: str
    role: Role


class ActiveBody(Document):
    active: bool
    reason: str | None = None


def get_store(request: Request) -> InMemoryDocumentStore:
    return request.app.state.database


async def get_actor(
    request: Request, x_user_id: str | None = Header(default=None)
) -> ActorContext:
    if not x_user_id:
        raise HTTPException(status_code=401, detail="Missing X-User-Id header")
    return access.resolve_actor(get_store(request), x_user_id)


async def handle_lab_error(request: Request, exc: LabError) -> JSONResponse:
    status_code = next(
        (
            code
            for cls, code in _STATUS_CODES.items()
            if isinstance(exc, cls)
        ),
        500,
    )
    body: dict[str, Any] = {"detail": str(exc)}
    if isinstance(exc, ValidationError):
        body["errors"] = {to_camel(k): v for k, v in exc.errors.items()}
    return JSONResponse(status_code=status_code, content=body)


@router.get("/health")
async def health_check() -> dict[str, str]:
    return {"status": "ok"}


# -- invigilations -----------------------------------------------------------


@router.post(
    "/invigilations", response_model=InvigilationView, status_code=201
)
async def create_invigilation(
    form: InvigilationForm,
    request: Request,
    actor: ActorContext = Depends(get_actor),
):
    created = scheduling.create_request(
        get_store(request), actor, form.model_dump()
    )
    return InvigilationView.of(created)


@router.get("/invigilations", response_model=list[InvigilationView])
async def list_invigilations(
    request: Request,
    search: str = "",
    status: RequestStatus | None = None,
    type: str | None = None,
    actor: ActorContext = Depends(get_actor),
):
    requests = scheduling.list_requests(
        get_store(request), actor, search=search, status=status, type=type
    )
    return [InvigilationView.of(r) for r in requests]


@router.post("/invigilations/availability")
async def check_venue_availability(
    body: AvailabilityQuery,
    request: Request,
    actor: ActorContext = Depends(get_actor),
) -> dict:
    available = scheduling.check_availability(
        get_store(request), body.venue, body.date, body.time, body.exclude_id
    )
    return {
        "venue": body.venue,
        "date": body.date,
        "time": body.time,
        "available": available,
    }


@router.post("/invigilations/sweep")
async def sweep_invigilations(
    request: Request, actor: ActorContext = Depends(get_actor)
) -> dict:
    access.require_role(actor, MANAGER_ROLES, "run the sweep")
    completed = scheduling.complete_due_requests(
        get_store(request), request.app.state.now_fn()
    )
    return {"completed": completed}


@router.get("/invigilations/{request_id}", response_model=InvigilationView)
async def get_invigilation(
    request_id: str, request: Request, actor: ActorContext = Depends(get_actor)
):
    return InvigilationView.of(
        scheduling.get_request_for(get_store(request), actor, request_id)
    )


@router.patch("/invigilations/{request_id}", response_model=InvigilationView)
async def edit_invigilation(
    request_id: str,
    changes: InvigilationChanges,
    request: Request,
    actor: ActorContext = Depends(get_actor),
):
    updated = scheduling.edit_request(
        get_store(request),
        actor,
        request_id,
        changes.model_dump(exclude_unset=True),
    )
    return InvigilationView.of(updated)


@router.post(
    "/invigilations/{request_id}/assign", response_model=InvigilationView
)
async def assign_invigilation(
    request_id: str,
    body: AssignBody,
    request: Request,
    actor: ActorContext = Depends(get_actor),
):
    updated = scheduling.assign_invigilators(
        get_store(request),
        actor,
        request_id,
        body.invigilator_ids,
        now=request.app.state.now_fn(),
    )
    return InvigilationView.of(updated)


@router.post(
    "/invigilations/{request_id}/confirm", response_model=InvigilationView
)
async def confirm_invigilation(
    request_id: str, request: Request, actor: ActorContext = Depends(get_actor)
):
    return InvigilationView.of(
        scheduling.confirm_request(get_store(request), actor, request_id)
    )


@router.post(
    "/invigilations/{request_id}/postpone", response_model=InvigilationView
)
async def postpone_invigilation(
    request_id: str, request: Request, actor: ActorContext = Depends(get_actor)
):
    return InvigilationView.of(
        scheduling.postpone_request(get_store(request), actor, request_id)
    )


@router.post(
    "/invigilations/{request_id}/cancel", response_model=InvigilationView
)
async def cancel_invigilation(
    request_id: str,
    request: Request,
    body: ReasonBody | None = None,
    actor: ActorContext = Depends(get_actor),
):
    reason = body.reason if body else None
    return InvigilationView.of(
        scheduling.cancel_request(get_store(request), actor, request_id, reason)
    )


# -- leave -------------------------------------------------------------------


@router.post("/leave-requests", response_model=LeaveRequest, status_code=201)
async def submit_leave(
    form: LeaveForm, request: Request, actor: ActorContext = Depends(get_actor)
):
    return leave.submit_leave_request(
        get_store(request), actor, form.start_date, form.end_date, form.reason
    )


@router.get("/leave-requests", response_model=list[LeaveRequest])
async def list_leave(
    request: Request,
    status: ReviewStatus | None = None,
    actor: ActorContext = Depends(get_actor),
):
    return leave.list_leave_requests(get_store(request), actor, status)


@router.post("/leave-requests/{leave_id}/approve", response_model=LeaveRequest)
async def approve_leave(
    leave_id: str, request: Request, actor: ActorContext = Depends(get_actor)
):
    return leave.approve_leave_request(
        get_store(request), actor, leave_id, now=request.app.state.now_fn()
    )


@router.post("/leave-requests/{leave_id}/reject", response_model=LeaveRequest)
async def reject_leave(
    leave_id: str,
    body: ReasonBody,
    request: Request,
    actor: ActorContext = Depends(get_actor),
):
    return leave.reject_leave_request(
        get_store(request),
        actor,
        leave_id,
        body.reason or "",
        now=request.app.state.now_fn(),
    )


# -- users -------------------------------------------------------------------


@router.post("/users", response_model=User, status_code=201)
async def register(body: RegisterBody, request: Request):
    return access.register_user(get_store(request), body.name, body.email, body.role)


@router.get("/users", response_model=list[User])
async def list_users(
    request: Request,
    status: ReviewStatus | None = None,
    actor: ActorContext = Depends(get_actor),
):
    return access.list_users(get_store(request), actor, status)


@router.post("/users/{user_id}/approve", response_model=User)
async def approve_user(
    user_id: str, request: Request, actor: ActorContext = Depends(get_actor)
):
    return access.approve_user(get_store(request), actor, user_id)


@router.post("/users/{user_id}/reject", response_model=User)
async def reject_user(
    user_id: str,
    body: ReasonBody,
    request: Request,
    actor: ActorContext = Depends(get_actor),
):
    return access.reject_user(get_store(request), actor, user_id, body.reason or "")


@router.post("/users/{user_id}/active", response_model=User)
async def set_user_active(
    user_id: str,
    body: ActiveBody,
    request: Request,
    actor: ActorContext = Depends(get_actor),
):
    return access.set_user_active(
        get_store(request), actor, user_id, body.active, body.reason
    )


# -- notifications -----------------------------------------------------------


@router.get("/notifications", response_model=list[Notification])
async def list_notifications(
    request: Request,
    unread_only: bool = False,
    actor: ActorContext = Depends(get_actor),
):
    return notifier.list_notifications(
        get_store(request), actor.user_id, unread_only
    )


@router.post(
    "/notifications/{notification_id}/read", response_model=Notification
)
async def read_notification(
    notification_id: str,
    request: Request,
    actor: ActorContext = Depends(get_actor),
):
    return notifier.mark_as_read(get_store(request), notification_id, actor.user_id)


@asynccontextmanager
async def lifespan(app: FastAPI):
    if settings.SWEEPER_ENABLED:
        # one sweeper per service, not per client
        task = asyncio.create_task(
            run_auto_completion(
                app.state.database,
                now_fn=lambda: app.state.now_fn(),
                sleep_fn=lambda seconds: app.state.sleep_fn(seconds),
                interval=settings.SWEEP_INTERVAL_SECONDS,
            )
        )
        app.state.background_tasks.add(task)
        task.add_done_callback(app.state.background_tasks.discard)
    yield
    tasks = list(app.state.background_tasks)
    for task in tasks:
        task.cancel()
    if tasks:
        await asyncio.gather(*tasks, return_exceptions=True)


def create_app() -> FastAPI:
    app = FastAPI(title="Innovation Lab Invigilation Service", lifespan=lifespan)

    app.state.now_fn = lab_now
    app.state.sleep_fn = asyncio.sleep
    app.state.background_tasks = set()

    db = InMemoryDocumentStore(now_fn=lambda: app.state.now_fn())
    app.state.database = db

    if settings.BOOTSTRAP_ADMIN_ID:
        access.ensure_admin(
            db,
            settings.BOOTSTRAP_ADMIN_ID,
            settings.BOOTSTRAP_ADMIN_NAME,
            settings.BOOTSTRAP_ADMIN_EMAIL,
        )

    app.add_exception_handler(LabError, handle_lab_error)
    app.include_router(router)
    return app
