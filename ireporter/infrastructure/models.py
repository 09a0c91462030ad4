from sqlalchemy import Column, String, DateTime, ForeignKey, Integer, Text, Uuid, Index, UniqueConstraint
from sqlalchemy.orm import relationship
from .database import Base
import uuid
from datetime import datetime


class User(Base):
    __tablename__ = "users"
    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    firstname = Column(String(100), nullable=False)
    lastname = Column(String(100), nullable=False)
    othernames = Column(String(100), nullable=True)
    email = Column(String(255), unique=True, index=True, nullable=False)  # stored lowercase
    phone_number = Column(String(30), nullable=True)
    username = Column(String(50), unique=True, index=True, nullable=False)
    password_hash = Column(String(255), nullable=False)
    role = Column(String(20), default="user", nullable=False)  # 'user' | 'admin'
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    reports = relationship("Report", back_populates="owner", foreign_keys="Report.created_by")


class Report(Base):
    __tablename__ = "reports"
    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    created_by = Column(Uuid, ForeignKey("users.id"), nullable=False, index=True)
    type = Column(String(20), nullable=False)  # red-flag, intervention
    title = Column(String(255), nullable=False)
    comment = Column(Text, nullable=False)
    location = Column(String(255), nullable=True)  # free-text address or "lat,lng"
    images = Column(Text, default="[]")  # JSON array
    videos = Column(Text, default="[]")  # JSON array
    status = Column(String(30), default="draft", nullable=False, index=True)
    created_on = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_on = Column(DateTime, default=datetime.utcnow, nullable=False)
    last_modified_by = Column(Uuid, ForeignKey("users.id"), nullable=True)

    owner = relationship("User", back_populates="reports", foreign_keys=[created_by])
    audit_entries = relationship(
        "ReportAuditEntry",
        back_populates="report",
        cascade="all, delete-orphan",
        order_by="ReportAuditEntry.sequence",
    )

    __table_args__ = (
        Index('idx_reports_owner_created', 'created_by', 'created_on'),
    )


class ReportAuditEntry(Base):
    """Append-only record of a status transition."""
    __tablename__ = "report_audit_entries"
    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    report_id = Column(Uuid, ForeignKey("reports.id", ondelete="CASCADE"), nullable=False, index=True)
    sequence = Column(Integer, nullable=False)  # 1-based position within the report's trail
    actor_id = Column(Uuid, ForeignKey("users.id"), nullable=False)
    old_status = Column(String(30), nullable=False)
    new_status = Column(String(30), nullable=False)
    notes = Column(String(500), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    report = relationship("Report", back_populates="audit_entries")

    __table_args__ = (
        UniqueConstraint('report_id', 'sequence', name='uq_audit_report_sequence'),
    )
