"""
Report persistence.

Owns every read and write of the ``reports`` and ``report_audit_entries``
tables. Media lists are stored as JSON text and always come back out as
lists of strings. Database errors are rolled back and re-raised as
StorageFailure; nothing here retries.
"""
from datetime import datetime
from typing import Dict, Iterable, List, Optional
from uuid import UUID
import json
import logging

from sqlalchemy import func, or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from . import models
from ..domain.errors import NotFound, StorageFailure, ValidationFailed
from ..domain.models import ReportFilter, ReportResponse

logger = logging.getLogger(__name__)

# Columns a caller may change through update()
MUTABLE_FIELDS = frozenset({
    "type", "title", "comment", "location", "images", "videos", "status", "last_modified_by",
})

MEDIA_FIELDS = ("images", "videos")

LIKE_ESCAPE = "\\"


def escape_like(text: str) -> str:
    """Escape LIKE wildcards so `text` matches literally."""
    return (
        text.replace(LIKE_ESCAPE, LIKE_ESCAPE * 2)
        .replace("%", LIKE_ESCAPE + "%")
        .replace("_", LIKE_ESCAPE + "_")
    )


def encode_media(items: Optional[Iterable[str]]) -> str:
    return json.dumps(list(items or []))


def decode_media(raw) -> List[str]:
    """
    Decode a stored media column.

    Empty/NULL becomes []. A value that is not a JSON array of strings is
    returned as a single-element list holding the raw text, so one corrupt
    row never fails a whole read.
    """
    if raw is None:
        return []
    if isinstance(raw, list):
        return [str(item) for item in raw]
    if isinstance(raw, bytes):
        raw = raw.decode("utf-8", errors="replace")
    text = str(raw)
    if not text.strip():
        return []
    try:
        parsed = json.loads(text)
    except (json.JSONDecodeError, ValueError):
        logger.warning("Unparseable media column value; returning raw value")
        return [text]
    if isinstance(parsed, list):
        return [item if isinstance(item, str) else json.dumps(item) for item in parsed]
    if isinstance(parsed, str):
        return [parsed]
    return [text]


def to_response(report: models.Report) -> ReportResponse:
    return ReportResponse(
        id=report.id,
        created_by=report.created_by,
        type=report.type,
        title=report.title,
        comment=report.comment,
        location=report.location,
        images=decode_media(report.images),
        videos=decode_media(report.videos),
        status=report.status,
        created_on=report.created_on,
        updated_on=report.updated_on,
        last_modified_by=report.last_modified_by,
    )


class ReportRepository:
    """CRUD for reports against the relational store."""

    def __init__(self, db: Session):
        self.db = db

    def _commit(self, action: str) -> None:
        try:
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Database error while trying to {action}: {e}")
            raise StorageFailure(f"Failed to {action}") from e

    def _load(self, report_id: UUID) -> Optional[models.Report]:
        try:
            return self.db.query(models.Report).filter(models.Report.id == report_id).first()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Database error loading report {report_id}: {e}")
            raise StorageFailure("Failed to load report") from e

    def get_record(self, report_id: UUID) -> models.Report:
        """Return the ORM row, raising NotFound if it does not exist."""
        report = self._load(report_id)
        if report is None:
            raise NotFound("Report not found")
        return report

    # =========================================================================
    # CRUD
    # =========================================================================

    def create(
        self,
        created_by: UUID,
        type: str,
        title: str,
        comment: str,
        status: str,
        location: Optional[str] = None,
        images: Optional[List[str]] = None,
        videos: Optional[List[str]] = None,
    ) -> UUID:
        """Persist a new report; id and timestamps are assigned here."""
        now = datetime.utcnow()
        report = models.Report(
            created_by=created_by,
            type=type,
            title=title,
            comment=comment,
            location=location,
            images=encode_media(images),
            videos=encode_media(videos),
            status=status,
            created_on=now,
            updated_on=now,
        )
        self.db.add(report)
        self._commit("create report")
        self.db.refresh(report)
        return report.id

    def get(self, report_id: UUID) -> ReportResponse:
        return to_response(self.get_record(report_id))

    def _filtered(self, filters: ReportFilter):
        query = self.db.query(models.Report)

        if filters.owner_id is not None:
            query = query.filter(models.Report.created_by == filters.owner_id)
        if filters.search:
            # Search is literal text; % and _ never act as wildcards
            term = f"%{escape_like(filters.search.strip())}%"
            query = query.filter(or_(
                models.Report.title.ilike(term, escape=LIKE_ESCAPE),
                models.Report.comment.ilike(term, escape=LIKE_ESCAPE),
            ))
        if filters.type:
            query = query.filter(models.Report.type == filters.type)
        if filters.status:
            query = query.filter(models.Report.status == filters.status)
        if filters.created_from is not None:
            query = query.filter(models.Report.created_on >= filters.created_from)
        if filters.created_to is not None:
            query = query.filter(models.Report.created_on <= filters.created_to)
        return query

    def list(self, filters: Optional[ReportFilter] = None) -> List[ReportResponse]:
        """
        List reports matching the filter, newest first by default.
        Owner scoping is the caller's responsibility.
        """
        filters = filters or ReportFilter()
        query = self._filtered(filters)

        if filters.newest_first:
            query = query.order_by(models.Report.created_on.desc(), models.Report.id.desc())
        else:
            query = query.order_by(models.Report.created_on.asc(), models.Report.id.asc())

        try:
            rows = query.offset(filters.offset).limit(filters.limit).all()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Database error listing reports: {e}")
            raise StorageFailure("Failed to list reports") from e

        return [to_response(row) for row in rows]

    def count(self, filters: Optional[ReportFilter] = None) -> int:
        """Number of reports matching the filter, ignoring limit/offset."""
        try:
            return self._filtered(filters or ReportFilter()).count()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Database error counting reports: {e}")
            raise StorageFailure("Failed to count reports") from e

    def update(self, report_id: UUID, fields: Dict) -> ReportResponse:
        """
        Apply a partial update. Only keys present in `fields` change;
        updated_on is refreshed on every successful write.
        """
        unknown = set(fields) - MUTABLE_FIELDS
        if unknown:
            raise ValidationFailed(f"Fields not updatable: {', '.join(sorted(unknown))}")

        report = self.get_record(report_id)
        for field, value in fields.items():
            if field in MEDIA_FIELDS:
                value = encode_media(value)
            setattr(report, field, value)
        report.updated_on = datetime.utcnow()

        self._commit("update report")
        self.db.refresh(report)
        return to_response(report)

    def delete(self, report_id: UUID) -> bool:
        """Hard delete. Returns False if the report did not exist."""
        report = self._load(report_id)
        if report is None:
            return False
        self.db.delete(report)
        self._commit("delete report")
        return True

    # =========================================================================
    # Audit trail
    # =========================================================================

    def append_audit(
        self,
        report: models.Report,
        actor_id: UUID,
        old_status: str,
        new_status: str,
        notes: Optional[str] = None,
    ) -> models.ReportAuditEntry:
        """
        Stage an audit entry at the end of the report's trail.
        Committed together with the status change it records.
        """
        entry = models.ReportAuditEntry(
            report_id=report.id,
            sequence=len(report.audit_entries) + 1,
            actor_id=actor_id,
            old_status=old_status,
            new_status=new_status,
            notes=notes,
            created_at=datetime.utcnow(),
        )
        report.audit_entries.append(entry)
        return entry

    def audit_trail(self, report_id: UUID) -> List[models.ReportAuditEntry]:
        try:
            return (
                self.db.query(models.ReportAuditEntry)
                .filter(models.ReportAuditEntry.report_id == report_id)
                .order_by(models.ReportAuditEntry.sequence.asc())
                .all()
            )
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Database error loading audit trail for {report_id}: {e}")
            raise StorageFailure("Failed to load report history") from e

    # =========================================================================
    # Stats
    # =========================================================================

    def count_by(self, column: str, owner_id: Optional[UUID] = None) -> Dict[str, int]:
        """Count reports grouped by `type` or `status`."""
        col = getattr(models.Report, column)
        query = self.db.query(col, func.count(models.Report.id))
        if owner_id is not None:
            query = query.filter(models.Report.created_by == owner_id)
        try:
            rows = query.group_by(col).all()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Database error counting reports by {column}: {e}")
            raise StorageFailure("Failed to compute report statistics") from e
        return {value: count for value, count in rows}
