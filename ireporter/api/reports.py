from fastapi import APIRouter, Depends, Query, Response, status
from typing import Optional, List
from uuid import UUID
from datetime import datetime

from ..infrastructure import models
from ..domain.models import (
    AuditEntryResponse,
    DeleteResponse,
    ReportCreate,
    ReportFilter,
    ReportResponse,
    ReportStats,
    ReportUpdate,
    StatusChangeRequest,
)
from ..domain.services.lifecycle import normalize_status, normalize_type
from ..domain.services.report_service import ReportService
from .deps import get_current_user, get_report_service

router = APIRouter()

TOTAL_COUNT_HEADER = "X-Total-Count"


def report_filters(
    search: Optional[str] = Query(None, max_length=200, description="Match against title or comment"),
    type: Optional[str] = Query(None, description="red-flag or intervention"),
    status: Optional[str] = Query(None),
    created_from: Optional[datetime] = Query(None),
    created_to: Optional[datetime] = Query(None),
    oldest_first: bool = Query(False),
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
) -> ReportFilter:
    return ReportFilter(
        search=search or None,
        type=normalize_type(type).value if type else None,
        status=normalize_status(status).value if status else None,
        created_from=created_from,
        created_to=created_to,
        newest_first=not oldest_first,
        limit=limit,
        offset=offset,
    )


@router.post("/", response_model=ReportResponse, status_code=status.HTTP_201_CREATED)
def create_report(
    report: ReportCreate,
    current_user: models.User = Depends(get_current_user),
    service: ReportService = Depends(get_report_service)
):
    """
    File a red-flag or intervention report.

    The report belongs to the authenticated user. It starts as a draft
    unless `status` is "submitted".
    """
    return service.create_report(current_user, report)


@router.get("/", response_model=List[ReportResponse])
def list_reports(
    response: Response,
    filters: ReportFilter = Depends(report_filters),
    current_user: models.User = Depends(get_current_user),
    service: ReportService = Depends(get_report_service)
):
    """
    List reports, newest first. Admins see all reports; users see their own.

    Paginated: at most `limit` (default 100, max 500) reports per page,
    starting at `offset`. The `X-Total-Count` header holds the number of
    matching reports across all pages.
    """
    response.headers[TOTAL_COUNT_HEADER] = str(service.count_reports(current_user, filters))
    return service.list_reports(current_user, filters)


@router.get("/stats", response_model=ReportStats)
def report_stats(
    current_user: models.User = Depends(get_current_user),
    service: ReportService = Depends(get_report_service)
):
    """Counts by type and status over the reports the caller can see."""
    return service.stats(current_user)


@router.get("/user/{user_id}", response_model=List[ReportResponse])
def list_user_reports(
    user_id: UUID,
    response: Response,
    filters: ReportFilter = Depends(report_filters),
    current_user: models.User = Depends(get_current_user),
    service: ReportService = Depends(get_report_service)
):
    """
    Reports filed by one user. Admins may query anyone; users only themselves.
    Paginated like the main listing, with the same `X-Total-Count` header.
    """
    response.headers[TOTAL_COUNT_HEADER] = str(service.count_user_reports(current_user, user_id, filters))
    return service.list_user_reports(current_user, user_id, filters)


@router.get("/{report_id}", response_model=ReportResponse)
def get_report(
    report_id: UUID,
    current_user: models.User = Depends(get_current_user),
    service: ReportService = Depends(get_report_service)
):
    return service.get_report(current_user, report_id)


@router.patch("/{report_id}", response_model=ReportResponse)
@router.put("/{report_id}", response_model=ReportResponse, include_in_schema=False)
def update_report(
    report_id: UUID,
    updates: ReportUpdate,
    current_user: models.User = Depends(get_current_user),
    service: ReportService = Depends(get_report_service)
):
    """
    Partially update a report.

    Owners may edit their drafts and submit them (`"status": "submitted"`).
    Admins may edit any report; a status in the body must be a legal transition.
    """
    return service.update_report(current_user, report_id, updates)


@router.patch("/{report_id}/status", response_model=ReportResponse)
def change_report_status(
    report_id: UUID,
    request: StatusChangeRequest,
    current_user: models.User = Depends(get_current_user),
    service: ReportService = Depends(get_report_service)
):
    """
    Move a report through its lifecycle (admin only).

    Allowed: submitted -> under-investigation | resolved | rejected,
    under-investigation -> resolved | rejected.
    """
    return service.change_status(current_user, report_id, request.status, notes=request.notes)


@router.get("/{report_id}/history", response_model=List[AuditEntryResponse])
def report_history(
    report_id: UUID,
    current_user: models.User = Depends(get_current_user),
    service: ReportService = Depends(get_report_service)
):
    """Status transitions of a report, oldest first."""
    return service.history(current_user, report_id)


@router.delete("/{report_id}", response_model=DeleteResponse)
def delete_report(
    report_id: UUID,
    current_user: models.User = Depends(get_current_user),
    service: ReportService = Depends(get_report_service)
):
    """
    Delete a report. Owners may only delete drafts; admins may delete any report.
    """
    deleted = service.delete_report(current_user, report_id)
    return DeleteResponse(success=deleted, report_id=report_id)
