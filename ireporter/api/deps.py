"""
Authentication dependencies for FastAPI routes.
Provides dependency injection for protected endpoints.
"""
from typing import Optional
from collections import defaultdict
from datetime import datetime, timedelta

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session

from ..infrastructure.database import get_db
from ..infrastructure.models import User
from ..domain.errors import Forbidden, NotFound, Unauthenticated
from ..domain.services.access_policy import is_admin
from ..domain.services.auth_service import auth_service
from ..domain.services.report_service import ReportService
from ..domain.services.security import verify_token


# =============================================================================
# Rate Limiting
# =============================================================================

# In-memory rate limit store: key -> list of timestamps
_rate_limit_store: dict[str, list[datetime]] = defaultdict(list)


def check_rate_limit(
    key: str,
    max_requests: int = 5,
    window_seconds: int = 60
) -> None:
    """
    Simple in-memory sliding-window rate limiter.

    Args:
        key: Unique identifier for rate limiting (e.g., "login:192.168.1.1")
        max_requests: Maximum allowed requests in the window
        window_seconds: Time window in seconds

    Raises:
        HTTPException: 429 Too Many Requests if limit exceeded
    """
    now = datetime.utcnow()
    cutoff = now - timedelta(seconds=window_seconds)

    _rate_limit_store[key] = [t for t in _rate_limit_store[key] if t > cutoff]

    if len(_rate_limit_store[key]) >= max_requests:
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail=f"Too many requests. Please wait {window_seconds} seconds before trying again.",
        )

    _rate_limit_store[key].append(now)


# HTTP Bearer token security scheme
security = HTTPBearer(auto_error=False)


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: Session = Depends(get_db)
) -> User:
    """
    Dependency to get the current authenticated user.

    Missing, malformed, expired or orphaned tokens all raise Unauthenticated.
    """
    if not credentials:
        raise Unauthenticated()

    payload = verify_token(credentials.credentials, token_type="access")
    if not payload:
        raise Unauthenticated("Invalid or expired token")

    user_id = payload.get("sub")
    if not user_id:
        raise Unauthenticated("Invalid token payload")

    try:
        return auth_service.find_by_id(user_id, db)
    except NotFound:
        raise Unauthenticated("Invalid or expired token")


async def get_current_admin_user(
    current_user: User = Depends(get_current_user)
) -> User:
    """
    Dependency to get the current user and verify they are an admin.
    Raises Forbidden if not.
    """
    if not is_admin(current_user):
        raise Forbidden("Admin access required")

    return current_user


def get_report_service(db: Session = Depends(get_db)) -> ReportService:
    return ReportService(db)
