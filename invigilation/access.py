"""User registration, access approval and actor resolution."""

import logging
from collections.abc import Collection

from invigilation import notifier
from invigilation.database import InMemoryDocumentStore
from invigilation.exceptions import (
    NotFoundError,
    PermissionDeniedError,
    TransitionError,
    ValidationError,
)
from invigilation.models import (
    MANAGER_ROLES,
    ActorContext,
    ReviewStatus,
    Role,
    User,
)

logger = logging.getLogger(__name__)

USERS = "users"


def require_role(actor: ActorContext, roles: Collection[Role], action: str) -> None:
    if actor.role not in roles:
        raise PermissionDeniedError(
            f"Role '{actor.role.value}' may not {action}"
        )


def get_user(store: InMemoryDocumentStore, user_id: str) -> User:
    document = store.get(USERS, user_id)
    if document is None:
        raise NotFoundError(USERS, user_id)
    return User.model_validate(document)


def resolve_actor(store: InMemoryDocumentStore, user_id: str) -> ActorContext:
    """
    Build the ActorContext for `user_id`. Only approved, active accounts may
    act; anything else is refused.
    """
    document = store.get(USERS, user_id)
    if document is None:
        raise PermissionDeniedError("Unknown user")
    user = User.model_validate(document)
    if user.status != ReviewStatus.APPROVED:
        raise PermissionDeniedError(
            f"Account access is {user.status.value}"
        )
    if not user.is_active:
        raise PermissionDeniedError("Account is deactivated")
    return ActorContext(user_id=user.id, role=user.role, name=user.name)


def register_user(
    store: InMemoryDocumentStore, name: str, email: str, role: Role
) -> User:
    errors = {}
    if not (name or "").strip():
        errors["name"] = "Name is required"
    if not (email or "").strip():
        errors["email"] = "Email is required"
    elif store.query(USERS, [("email", "==", email.strip().lower())]):
        errors["email"] = "Email is already registered"
    if errors:
        raise ValidationError(errors)

    user_id = store.add(
        USERS,
        {
            "name": name.strip(),
            "email": email.strip().lower(),
            "role": Role(role).value,
            "status": ReviewStatus.PENDING.value,
            "is_active": True,
            "rejection_reason": None,
        },
    )
    user = get_user(store, user_id)
    logger.info("Registered user %s requesting %s access", user.id, user.role.value)
    notifier.notify_access_requested(store, user)
    return user


def ensure_admin(
    store: InMemoryDocumentStore, user_id: str, name: str, email: str
) -> User:
    """Create or restore an approved, active admin account under `user_id`."""
    document = store.get(USERS, user_id) or {}
    document.update(
        {
            "name": document.get("name") or name,
            "email": document.get("email") or email.lower(),
            "role": Role.ADMIN.value,
            "status": ReviewStatus.APPROVED.value,
            "is_active": True,
        }
    )
    store.put(USERS, user_id, document)
    return get_user(store, user_id)


def _decide(
    store: InMemoryDocumentStore,
    actor: ActorContext,
    user_id: str,
    status: ReviewStatus,
    reason: str | None = None,
) -> User:
    require_role(actor, MANAGER_ROLES, "review access requests")
    user = get_user(store, user_id)
    if user.status == status:
        return user
    if user.status != ReviewStatus.PENDING:
        raise TransitionError(
            f"Access request is already {user.status.value}"
        )
    store.update(
        USERS,
        user_id,
        {"status": status.value, "rejection_reason": reason},
    )
    user = get_user(store, user_id)
    logger.info(
        "User %s access %s by %s", user_id, status.value, actor.user_id
    )
    notifier.notify_access_decided(store, user)
    return user


def approve_user(
    store: InMemoryDocumentStore, actor: ActorContext, user_id: str
) -> User:
    return _decide(store, actor, user_id, ReviewStatus.APPROVED)


def reject_user(
    store: InMemoryDocumentStore,
    actor: ActorContext,
    user_id: str,
    reason: str,
) -> User:
    if not (reason or "").strip():
        raise ValidationError({"reason": "A reason is required to reject"})
    return _decide(store, actor, user_id, ReviewStatus.REJECTED, reason.strip())


def set_user_active(
    store: InMemoryDocumentStore,
    actor: ActorContext,
    user_id: str,
    active: bool,
    reason: str | None = None,
) -> User:
    require_role(actor, MANAGER_ROLES, "change account status")
    if user_id == actor.user_id and not active:
        raise PermissionDeniedError("Cannot deactivate your own account")
    user = get_user(store, user_id)
    if user.is_active == active:
        return user
    store.update(USERS, user_id, {"is_active": active})
    user = get_user(store, user_id)
    logger.info(
        "User %s %s by %s",
        user_id,
        "activated" if active else "deactivated",
        actor.user_id,
    )
    notifier.notify_account_status(store, user, reason)
    return user


def list_users(
    store: InMemoryDocumentStore,
    actor: ActorContext,
    status: ReviewStatus | None = None,
) -> list[User]:
    require_role(actor, MANAGER_ROLES, "list users")
    filters = []
    if status is not None:
        filters.append(("status", "==", status.value))
    documents = store.query(USERS, filters, order_by="created_at")
    return [User.model_validate(d) for d in documents]
