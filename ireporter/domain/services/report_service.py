"""
Report Service

Every report operation goes through here: authorize with the access policy,
validate any status change against the lifecycle, then hand off to the
repository. Validation and authorization run before anything is written.
"""
from typing import List, Optional
from uuid import UUID
import logging

from sqlalchemy.orm import Session

from ..errors import Forbidden, NotFound
from ..models import (
    AuditEntryResponse,
    ReportCreate,
    ReportFilter,
    ReportResponse,
    ReportStats,
    ReportUpdate,
)
from ...infrastructure.report_repository import ReportRepository, to_response
from . import access_policy as policy
from .lifecycle import ReportStatus, ReportType, ensure_transition, initial_status, normalize_status

logger = logging.getLogger(__name__)


class ReportService:
    """
    Report lifecycle and access control on top of the repository.

    Actors are User rows (anything with id and role).
    """

    def __init__(self, db: Session):
        self.db = db
        self.repository = ReportRepository(db)

    def _load_readable(self, actor, report_id: UUID):
        report = self.repository.get_record(report_id)
        policy.authorize_read(actor, report)
        return report

    # =========================================================================
    # Create / Read
    # =========================================================================

    def create_report(self, actor, data: ReportCreate) -> ReportResponse:
        """File a report owned by the actor, as a draft unless submission is requested."""
        if not policy.can_create(actor):
            raise Forbidden()

        status = initial_status(data.status)
        report_id = self.repository.create(
            created_by=actor.id,
            type=data.type,
            title=data.title,
            comment=data.comment,
            status=status.value,
            location=data.location,
            images=data.images,
            videos=data.videos,
        )
        logger.info(f"Report {report_id} created by {actor.id} as {status.value}")
        return self.repository.get(report_id)

    def get_report(self, actor, report_id: UUID) -> ReportResponse:
        return to_response(self._load_readable(actor, report_id))

    def _visible(self, actor, filters: Optional[ReportFilter]) -> ReportFilter:
        """Admins see every report; everyone else only their own."""
        filters = filters or ReportFilter()
        if not policy.is_admin(actor):
            filters = filters.model_copy(update={"owner_id": actor.id})
        return filters

    def _owned_by(self, actor, user_id: UUID, filters: Optional[ReportFilter]) -> ReportFilter:
        policy.authorize_view_user(actor, user_id)
        return (filters or ReportFilter()).model_copy(update={"owner_id": user_id})

    def list_reports(self, actor, filters: Optional[ReportFilter] = None) -> List[ReportResponse]:
        return self.repository.list(self._visible(actor, filters))

    def count_reports(self, actor, filters: Optional[ReportFilter] = None) -> int:
        """Total matching reports the actor can see, before pagination."""
        return self.repository.count(self._visible(actor, filters))

    def list_user_reports(self, actor, user_id: UUID, filters: Optional[ReportFilter] = None) -> List[ReportResponse]:
        return self.repository.list(self._owned_by(actor, user_id, filters))

    def count_user_reports(self, actor, user_id: UUID, filters: Optional[ReportFilter] = None) -> int:
        return self.repository.count(self._owned_by(actor, user_id, filters))

    def history(self, actor, report_id: UUID) -> List[AuditEntryResponse]:
        self._load_readable(actor, report_id)
        return [AuditEntryResponse.model_validate(e) for e in self.repository.audit_trail(report_id)]

    def stats(self, actor) -> ReportStats:
        owner_id = None if policy.is_admin(actor) else actor.id
        by_type = self.repository.count_by("type", owner_id=owner_id)
        by_status = self.repository.count_by("status", owner_id=owner_id)

        counts = {s.value: by_status.get(s.value, 0) for s in ReportStatus}
        total = sum(by_type.values())
        resolved = counts[ReportStatus.RESOLVED.value]
        return ReportStats(
            total=total,
            red_flags=by_type.get(ReportType.RED_FLAG.value, 0),
            interventions=by_type.get(ReportType.INTERVENTION.value, 0),
            by_status=counts,
            resolution_rate=round(resolved / total * 100, 1) if total else 0.0,
        )

    # =========================================================================
    # Mutations
    # =========================================================================

    def update_report(self, actor, report_id: UUID, data: ReportUpdate) -> ReportResponse:
        """
        Partial update. A status in the body is a lifecycle transition: owners
        may only submit their draft, admins follow the admin transition table.
        """
        report = self.repository.get_record(report_id)
        policy.authorize_write(actor, report)

        fields = data.model_dump(exclude_unset=True)
        new_status = fields.pop("status", None)

        old_status = report.status
        if new_status is not None and normalize_status(new_status).value == old_status:
            # Re-sending the current status is not a transition
            new_status = None
        if new_status is not None:
            target = ensure_transition(
                old_status,
                new_status,
                as_admin=policy.is_admin(actor),
                as_owner=policy.is_owner(actor, report),
            )
            fields["status"] = target.value
            self.repository.append_audit(report, actor.id, old_status, target.value)

        fields["last_modified_by"] = actor.id
        updated = self.repository.update(report_id, fields)

        if "status" in fields:
            logger.info(f"Report {report_id}: {old_status} -> {fields['status']} by {actor.id}")
        return updated

    def change_status(self, actor, report_id: UUID, status: str, notes: Optional[str] = None) -> ReportResponse:
        """
        Admin status transition.

        Raises:
            Forbidden: actor is not an admin
            InvalidTransition: target not reachable; the report is left untouched
        """
        report = self.repository.get_record(report_id)
        policy.authorize_change_status(actor, report)

        old_status = report.status
        target = ensure_transition(old_status, status, as_admin=True, as_owner=policy.is_owner(actor, report))

        self.repository.append_audit(report, actor.id, old_status, target.value, notes=notes)
        updated = self.repository.update(
            report_id,
            {"status": target.value, "last_modified_by": actor.id},
        )
        logger.info(f"Report {report_id}: {old_status} -> {target.value} by admin {actor.id}")
        return updated

    def delete_report(self, actor, report_id: UUID) -> bool:
        report = self.repository.get_record(report_id)
        policy.authorize_write(actor, report)

        deleted = self.repository.delete(report_id)
        if not deleted:
            raise NotFound("Report not found")
        logger.info(f"Report {report_id} deleted by {actor.id}")
        return deleted
