"""Audit issue model."""

from sqlalchemy import Boolean, Column, String, DateTime, ForeignKey, JSON, Text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import uuid

from database import Base


class AuditIssue(Base):
    """A single finding produced by one check for one storefront resource."""

    __tablename__ = "audit_issues"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    audit_id = Column(String, ForeignKey("audits.id", ondelete="CASCADE"), nullable=False, index=True)
    resource_type = Column(String, nullable=False)  # PRODUCT, COLLECTION, PAGE
    resource_id = Column(String, nullable=False)
    resource_title = Column(String, nullable=True)
    resource_handle = Column(String, nullable=True)
    url = Column(String, nullable=True)
    issue_type = Column(String, nullable=False, index=True)
    severity = Column(String, nullable=False, index=True)  # CRITICAL, HIGH, MEDIUM, LOW
    message = Column(Text, nullable=False)
    suggestion = Column(Text, nullable=True)
    details = Column(JSON, nullable=True)
    is_fixed = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    # Relationships
    audit = relationship("Audit", back_populates="issues")
