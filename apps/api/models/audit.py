"""Audit model for storefront SEO audits."""

from datetime import datetime, timezone

from sqlalchemy import Column, String, DateTime, ForeignKey, Index, Integer, text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import uuid

from database import Base


AUDIT_STATUS_PENDING = "PENDING"
AUDIT_STATUS_RUNNING = "RUNNING"
AUDIT_STATUS_COMPLETED = "COMPLETED"
AUDIT_STATUS_FAILED = "FAILED"

ACTIVE_AUDIT_STATUSES = (AUDIT_STATUS_PENDING, AUDIT_STATUS_RUNNING)

_ACTIVE_STATUS_CLAUSE = text("status IN ('PENDING', 'RUNNING')")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Audit(Base):
    """One run of the full check suite against a store's content snapshot."""

    __tablename__ = "audits"
    __table_args__ = (
        # At most one PENDING/RUNNING audit per store.
        Index(
            "uq_audits_active_store",
            "store_id",
            unique=True,
            sqlite_where=_ACTIVE_STATUS_CLAUSE,
            postgresql_where=_ACTIVE_STATUS_CLAUSE,
        ),
        Index("ix_audits_store_created", "store_id", "created_at"),
    )

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    store_id = Column(String, ForeignKey("stores.id", ondelete="CASCADE"), nullable=False)
    status = Column(String, nullable=False, default=AUDIT_STATUS_PENDING)  # PENDING, RUNNING, COMPLETED, FAILED
    progress = Column(Integer, nullable=False, default=0)
    total_urls = Column(Integer, nullable=False, default=0)
    completed_urls = Column(Integer, nullable=False, default=0)
    critical_issues = Column(Integer, nullable=False, default=0)
    high_issues = Column(Integer, nullable=False, default=0)
    medium_issues = Column(Integer, nullable=False, default=0)
    low_issues = Column(Integer, nullable=False, default=0)
    total_issues = Column(Integer, nullable=False, default=0)
    overall_score = Column(Integer, nullable=True)
    error_message = Column(String, nullable=True)
    queue_job_id = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow, server_default=func.now(), nullable=False)
    started_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    updated_at = Column(DateTime(timezone=True), onupdate=_utcnow)

    # Relationships
    store = relationship("Store", back_populates="audits")
    issues = relationship("AuditIssue", back_populates="audit", cascade="all, delete-orphan")
