"""
Authentication API endpoints for iReporter.
Handles signup, email/password login and the caller's own profile.
"""
from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.orm import Session

from ..core.config import settings
from ..infrastructure.database import get_db
from ..infrastructure.models import User
from ..domain.models import LoginRequest, SignupResponse, TokenResponse, UserCreate, UserResponse
from ..domain.services.auth_service import auth_service
from .deps import get_current_user, check_rate_limit


router = APIRouter()


@router.post("/signup", response_model=SignupResponse, status_code=status.HTTP_201_CREATED)
async def signup(
    request: UserCreate,
    db: Session = Depends(get_db)
):
    """
    Register a new user with email and password.

    Emails are unique regardless of case. New accounts always get the
    'user' role; a role in the request body is ignored.
    """
    user = auth_service.register(request, db)
    return SignupResponse(user=UserResponse.model_validate(user))


@router.post("/login", response_model=TokenResponse)
async def login(
    request: LoginRequest,
    http_request: Request,
    db: Session = Depends(get_db)
):
    """
    Exchange email/password credentials for a bearer token.

    Unknown email and wrong password return the same 401.
    Rate limited per client IP.
    """
    client_ip = http_request.client.host if http_request.client else "unknown"
    check_rate_limit(
        f"login:{client_ip}",
        max_requests=settings.LOGIN_RATE_LIMIT,
        window_seconds=settings.LOGIN_RATE_WINDOW_SECONDS,
    )

    user = auth_service.verify(request.email, request.password, db)
    session = auth_service.issue_session(user)

    return TokenResponse(user=UserResponse.model_validate(user), **session)


@router.get("/me", response_model=UserResponse)
async def get_current_user_profile(
    current_user: User = Depends(get_current_user)
):
    """Profile of the currently authenticated user."""
    return current_user


@router.get("/check")
async def check_auth(
    current_user: User = Depends(get_current_user)
):
    """
    Check if the current token is valid.
    Returns 200 if authenticated, 401 if not.
    """
    return {"authenticated": True, "user_id": str(current_user.id), "role": current_user.role}
