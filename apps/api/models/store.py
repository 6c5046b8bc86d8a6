"""Store model for installed Shopify shops."""

from sqlalchemy import Column, String, DateTime, Text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import uuid

from database import Base


class Store(Base):
    """A Shopify shop with the Admin API token issued at install time."""

    __tablename__ = "stores"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    shop_domain = Column(String, unique=True, nullable=False)
    access_token = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    # Relationships
    audits = relationship("Audit", back_populates="store", cascade="all, delete-orphan")
