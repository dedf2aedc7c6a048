from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from accounts_api.api.deps import get_current_actor, get_db, get_notifier, get_optional_actor
from accounts_api.domain.auth_context import AuthContext
from accounts_api.domain.roles import Role
from accounts_api.schemas.pagination import PaginatedResponse
from accounts_api.schemas.user import (
    ClientCreate,
    PartnerCounts,
    User,
    UserCreate,
    UserRoleCounts,
    UserUpdate,
)
from accounts_api.services import user as user_service
from accounts_api.services.events import EventNotifier

router = APIRouter(prefix="/users", tags=["users"])


# ============================================================================
# CREATE
# ============================================================================


@router.post("/admins", response_model=User, status_code=status.HTTP_201_CREATED)
def create_admin(
    user_data: UserCreate,
    db: Session = Depends(get_db),
    notifier: EventNotifier = Depends(get_notifier),
    actor: AuthContext = Depends(get_current_actor),
):
    """Create an ADMIN. Only the SUPER_ADMIN can do this."""
    user = user_service.create_admin(db, notifier, actor, user_data)
    return User.model_validate(user)


@router.post("/admin-assistants", response_model=User, status_code=status.HTTP_201_CREATED)
def create_admin_assistant(
    user_data: UserCreate,
    db: Session = Depends(get_db),
    notifier: EventNotifier = Depends(get_notifier),
    actor: AuthContext = Depends(get_current_actor),
):
    """
    Create an ADMIN_ASSISTANT. Only ADMIN users can create assistants.

    The assistant inherits the admin's zone of responsibility.
    """
    user = user_service.create_admin_assistant(db, notifier, actor, user_data)
    return User.model_validate(user)


@router.post("/partners", response_model=User, status_code=status.HTTP_201_CREATED)
def create_partner(
    user_data: UserCreate,
    db: Session = Depends(get_db),
    notifier: EventNotifier = Depends(get_notifier),
    actor: AuthContext | None = Depends(get_optional_actor),
):
    """Partner signup. No authentication required; the account starts pending validation."""
    user = user_service.create_partner(db, notifier, actor, user_data)
    return User.model_validate(user)


@router.post("/clients", response_model=User, status_code=status.HTTP_201_CREATED)
def create_client(
    client_data: ClientCreate,
    db: Session = Depends(get_db),
    notifier: EventNotifier = Depends(get_notifier),
    actor: AuthContext = Depends(get_current_actor),
):
    """Create a CLIENT owned by the calling PARTNER."""
    user = user_service.create_client(db, notifier, actor, client_data)
    return User.model_validate(user)


@router.post("/drivers", response_model=User, status_code=status.HTTP_201_CREATED)
def create_driver(
    user_data: UserCreate,
    db: Session = Depends(get_db),
    notifier: EventNotifier = Depends(get_notifier),
    actor: AuthContext = Depends(get_current_actor),
):
    user = user_service.create_driver(db, notifier, actor, user_data)
    return User.model_validate(user)


# ============================================================================
# READ
# ============================================================================


@router.get("", response_model=PaginatedResponse[User])
def get_all_users_paginated(
    page: int = Query(1, ge=1, description="Page number (1-indexed)"),
    page_size: int = Query(100, ge=1, le=1000, description="Number of items per page"),
    role: Role | None = Query(None, description="Only return accounts with this role"),
    db: Session = Depends(get_db),
    actor: AuthContext = Depends(get_current_actor),
):
    """
    Get users with pagination.

    Without a role filter only SUPER_ADMIN and ADMIN users can access this
    endpoint. With a role filter results are restricted to what the caller
    is allowed to list.
    """
    users, total = user_service.get_all_users(
        db, actor, page=page, page_size=page_size, role=role
    )
    return PaginatedResponse(
        items=[User.model_validate(user) for user in users],
        total=total,
        page=page,
        page_size=page_size,
    )


@router.get("/by-role", response_model=list[User])
def get_users_by_role(
    role: Role = Query(...),
    db: Session = Depends(get_db),
    actor: AuthContext = Depends(get_current_actor),
):
    users = user_service.get_users_by_role(db, actor, role)
    return [User.model_validate(user) for user in users]


@router.get("/zone", response_model=list[User])
def get_users_in_my_zone(
    role: Role = Query(...),
    db: Session = Depends(get_db),
    actor: AuthContext = Depends(get_current_actor),
):
    """Accounts of the given role in the caller's zone of responsibility."""
    users = user_service.get_users_by_role_in_my_zone(db, actor, role)
    return [User.model_validate(user) for user in users]


@router.get("/by-email", response_model=User)
def get_user_by_email(
    email: str = Query(..., description="Exact email address"),
    db: Session = Depends(get_db),
    actor: AuthContext = Depends(get_current_actor),
):
    user = user_service.get_user_by_email(db, actor, email)
    return User.model_validate(user)


@router.get("/clients", response_model=list[User])
def get_partner_clients(
    db: Session = Depends(get_db),
    actor: AuthContext = Depends(get_current_actor),
):
    """CLIENT accounts. A PARTNER only sees the clients it created."""
    users = user_service.get_partner_clients(db, actor)
    return [User.model_validate(user) for user in users]


@router.get("/stats/roles", response_model=UserRoleCounts)
def get_user_role_counts(
    db: Session = Depends(get_db),
    actor: AuthContext = Depends(get_current_actor),
):
    return UserRoleCounts(**user_service.get_user_role_counts(db, actor))


@router.get("/stats/partners", response_model=PartnerCounts)
def get_partner_counts(
    db: Session = Depends(get_db),
    actor: AuthContext = Depends(get_current_actor),
):
    return PartnerCounts(**user_service.get_partner_counts(db, actor))


# ============================================================================
# UPDATE
# ============================================================================


@router.put("/me", response_model=User)
def update_own_profile(
    user_data: UserUpdate,
    db: Session = Depends(get_db),
    notifier: EventNotifier = Depends(get_notifier),
    actor: AuthContext = Depends(get_current_actor),
):
    """Update the caller's own profile. Role and zone are not editable."""
    user = user_service.update_own_profile(db, notifier, actor, user_data)
    return User.model_validate(user)


@router.get("/{user_id}", response_model=User)
def get_user_by_id(
    user_id: str,
    db: Session = Depends(get_db),
    actor: AuthContext = Depends(get_current_actor),
):
    """
    Get a user by ID.

    - Everyone can get themselves
    - SUPER_ADMIN and ADMIN can get any user
    - ADMIN_ASSISTANT can get users in its zone
    - PARTNER can get the clients it created
    """
    user = user_service.get_user(db, actor, user_id)
    return User.model_validate(user)


@router.put("/{user_id}", response_model=User)
def update_user_by_id(
    user_id: str,
    user_data: UserUpdate,
    db: Session = Depends(get_db),
    notifier: EventNotifier = Depends(get_notifier),
    actor: AuthContext = Depends(get_current_actor),
):
    """
    Update a user by ID.

    Which roles the caller may update is decided by the permission matrix.
    No caller can change a role, a zone of responsibility or a validity flag
    through this endpoint.
    """
    user = user_service.update_user(db, notifier, actor, user_id, user_data)
    return User.model_validate(user)


@router.post("/{user_id}/validate", response_model=User)
def validate_partner(
    user_id: str,
    db: Session = Depends(get_db),
    notifier: EventNotifier = Depends(get_notifier),
    actor: AuthContext = Depends(get_current_actor),
):
    user = user_service.validate_partner(db, notifier, actor, user_id)
    return User.model_validate(user)


@router.post("/{user_id}/invalidate", response_model=User)
def invalidate_partner(
    user_id: str,
    db: Session = Depends(get_db),
    notifier: EventNotifier = Depends(get_notifier),
    actor: AuthContext = Depends(get_current_actor),
):
    user = user_service.invalidate_partner(db, notifier, actor, user_id)
    return User.model_validate(user)


# ============================================================================
# DELETE
# ============================================================================


@router.delete("/{user_id}", response_model=User)
def delete_user_by_id(
    user_id: str,
    db: Session = Depends(get_db),
    notifier: EventNotifier = Depends(get_notifier),
    actor: AuthContext = Depends(get_current_actor),
):
    """
    Soft-delete a user by ID and return the deleted account.

    Deleting an account that is already deleted is a 404.
    """
    user = user_service.soft_delete_user(db, notifier, actor, user_id)
    return User.model_validate(user)
