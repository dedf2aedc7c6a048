from fastapi import APIRouter, Depends, Form
from sqlalchemy.orm import Session

from accounts_api.api.deps import get_current_actor, get_db, get_notifier
from accounts_api.domain.auth_context import AuthContext
from accounts_api.schemas.user import Token, User
from accounts_api.services.auth import login as login_service
from accounts_api.services.events import EventNotifier
from accounts_api.services.user import get_user

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/login", response_model=Token)
def login(
    username: str = Form(...),  # OAuth2 uses "username", but we treat it as email
    password: str = Form(...),
    db: Session = Depends(get_db),
    notifier: EventNotifier = Depends(get_notifier),
):
    """
    Login endpoint - returns JWT token.
    Uses form data for OAuth2 compatibility (Swagger UI authorization).
    The 'username' field should contain the user's email address.
    """
    return login_service(db, notifier, username, password)


@router.get("/me", response_model=User)
def get_current_user_info(
    db: Session = Depends(get_db),
    actor: AuthContext = Depends(get_current_actor),
):
    """Get current authenticated user information."""
    return User.model_validate(get_user(db, actor, actor.actor_id))
