from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from uuid import UUID
from typing import List

from ..infrastructure.database import get_db
from ..infrastructure import models
from ..domain.models import UserResponse
from ..domain.services.access_policy import authorize_view_user
from ..domain.services.auth_service import auth_service
from .deps import get_current_user, get_current_admin_user

router = APIRouter()


@router.get("/", response_model=List[UserResponse])
def list_users(
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
    admin: models.User = Depends(get_current_admin_user),
    db: Session = Depends(get_db)
):
    """
    List all users (admin only).
    """
    return (
        db.query(models.User)
        .order_by(models.User.created_at.desc())
        .offset(offset)
        .limit(limit)
        .all()
    )


@router.get("/{user_id}", response_model=UserResponse)
def get_user(
    user_id: UUID,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """
    Get a user profile by ID. Users may only look themselves up.
    """
    authorize_view_user(current_user, user_id)
    return auth_service.find_by_id(user_id, db)
