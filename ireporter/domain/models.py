from pydantic import BaseModel, Field, ConfigDict, field_validator, model_validator
from typing import Optional, List, Dict
from datetime import datetime
from uuid import UUID
import re

from .services.lifecycle import normalize_status, normalize_type

# "lat,lng" pair, e.g. "6.5244,3.3792"
LOCATION_PAIR_PATTERN = re.compile(r"^\s*(-?\d{1,2}(?:\.\d+)?)\s*,\s*(-?\d{1,3}(?:\.\d+)?)\s*$")

EMAIL_PATTERN = r"^[\w\.+-]+@[\w\.-]+\.\w+$"


def normalize_location(value: Optional[str]) -> Optional[str]:
    """
    Accept a free-text address or a "lat,lng" pair.

    Pairs are range-checked and stored without whitespace; anything else is
    kept as trimmed free text.
    """
    if value is None:
        return None
    value = value.strip()
    match = LOCATION_PAIR_PATTERN.match(value)
    if not match:
        return value
    lat, lng = float(match.group(1)), float(match.group(2))
    if not (-90 <= lat <= 90 and -180 <= lng <= 180):
        raise ValueError("Coordinates out of range: latitude must be within ±90 and longitude within ±180")
    return f"{match.group(1)},{match.group(2)}"


def _clean_media(value: Optional[List[str]]) -> Optional[List[str]]:
    if value is None:
        return None
    if any(not item.strip() for item in value):
        raise ValueError("Media references must be non-empty strings")
    return list(value)


def _require_text(value: Optional[str], field: str) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    if not value:
        raise ValueError(f"'{field}' cannot be blank")
    return value


# ============================================================================
# REQUEST DTOs (For API input validation)
# ============================================================================

class UserCreate(BaseModel):
    """Request DTO for user registration. Any client-supplied role is ignored."""
    firstname: str = Field(..., min_length=1, max_length=100)
    lastname: str = Field(..., min_length=1, max_length=100)
    othernames: Optional[str] = Field(None, max_length=100)
    email: str = Field(..., pattern=EMAIL_PATTERN, max_length=255)
    phone_number: Optional[str] = Field(None, min_length=7, max_length=30)
    username: str = Field(..., min_length=3, max_length=50)
    password: str = Field(..., min_length=8, max_length=128)

    model_config = ConfigDict(extra="ignore")


class LoginRequest(BaseModel):
    """Request DTO for email/password login"""
    email: str
    password: str


class ReportCreate(BaseModel):
    """
    Request DTO for filing a report.
    Ownership comes from the session; a client `created_by` is ignored.
    """
    type: str
    title: str = Field(..., min_length=1, max_length=255)
    comment: str = Field(..., min_length=1)
    location: Optional[str] = Field(None, max_length=255)
    images: List[str] = Field(default_factory=list)
    videos: List[str] = Field(default_factory=list)
    status: Optional[str] = None  # "draft" (default) or "submitted"

    model_config = ConfigDict(extra="ignore")

    @field_validator("type")
    @classmethod
    def validate_type(cls, v):
        return normalize_type(v).value

    @field_validator("status")
    @classmethod
    def validate_status(cls, v):
        if v is None:
            return v
        return normalize_status(v).value

    @field_validator("title", "comment")
    @classmethod
    def validate_text(cls, v, info):
        return _require_text(v, info.field_name)

    @field_validator("location")
    @classmethod
    def validate_location(cls, v):
        return normalize_location(v)

    @field_validator("images", "videos")
    @classmethod
    def validate_media(cls, v):
        return _clean_media(v)


class ReportUpdate(BaseModel):
    """
    Request DTO for partial report updates.
    Only these fields are mutable; anything else is rejected.
    """
    type: Optional[str] = None
    title: Optional[str] = Field(None, min_length=1, max_length=255)
    comment: Optional[str] = Field(None, min_length=1)
    location: Optional[str] = Field(None, max_length=255)
    images: Optional[List[str]] = None
    videos: Optional[List[str]] = None
    status: Optional[str] = None

    model_config = ConfigDict(extra="forbid")

    @model_validator(mode="after")
    def reject_nulls(self):
        for name in ("type", "title", "comment", "images", "videos", "status"):
            if name in self.model_fields_set and getattr(self, name) is None:
                raise ValueError(f"'{name}' cannot be null")
        return self

    @field_validator("type")
    @classmethod
    def validate_type(cls, v):
        if v is None:
            return v
        return normalize_type(v).value

    @field_validator("status")
    @classmethod
    def validate_status(cls, v):
        if v is None:
            return v
        return normalize_status(v).value

    @field_validator("title", "comment")
    @classmethod
    def validate_text(cls, v, info):
        return _require_text(v, info.field_name)

    @field_validator("location")
    @classmethod
    def validate_location(cls, v):
        return normalize_location(v)

    @field_validator("images", "videos")
    @classmethod
    def validate_media(cls, v):
        return _clean_media(v)


class StatusChangeRequest(BaseModel):
    """Request DTO for an admin status change"""
    status: str
    notes: Optional[str] = Field(None, max_length=500)

    model_config = ConfigDict(extra="forbid")

    @field_validator("status")
    @classmethod
    def validate_status(cls, v):
        return normalize_status(v).value


class ReportFilter(BaseModel):
    """Query filters for listing reports"""
    owner_id: Optional[UUID] = None
    search: Optional[str] = None
    type: Optional[str] = None
    status: Optional[str] = None
    created_from: Optional[datetime] = None
    created_to: Optional[datetime] = None
    newest_first: bool = True
    limit: int = Field(100, ge=1, le=500)
    offset: int = Field(0, ge=0)


# ============================================================================
# RESPONSE DTOs (For API output)
# ============================================================================

class UserResponse(BaseModel):
    """Response DTO for user data (never includes the password hash)"""
    id: UUID
    firstname: str
    lastname: str
    othernames: Optional[str] = None
    email: str
    phone_number: Optional[str] = None
    username: str
    role: str
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class TokenResponse(BaseModel):
    """Response for a successful login"""
    success: bool = True
    message: str = "Login successful"
    access_token: str
    token_type: str = "bearer"
    expires_in: int  # seconds
    user: UserResponse


class SignupResponse(BaseModel):
    success: bool = True
    message: str = "Signup successful"
    user: UserResponse


class ReportResponse(BaseModel):
    """Response DTO for a report. Media arrays are always decoded."""
    id: UUID
    created_by: UUID
    type: str
    title: str
    comment: str
    location: Optional[str] = None
    images: List[str]
    videos: List[str]
    status: str
    created_on: datetime
    updated_on: datetime
    last_modified_by: Optional[UUID] = None

    model_config = ConfigDict(from_attributes=True)


class AuditEntryResponse(BaseModel):
    """One status transition in a report's history"""
    sequence: int
    actor_id: UUID
    old_status: str
    new_status: str
    notes: Optional[str] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ReportStats(BaseModel):
    """Dashboard counts over the reports visible to the caller"""
    total: int
    red_flags: int
    interventions: int
    by_status: Dict[str, int]
    resolution_rate: float  # percentage of reports resolved


class DeleteResponse(BaseModel):
    success: bool
    report_id: UUID
