import uuid
from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship

from vaultshare.core.database import Base


class DocumentBundle(Base):
    __tablename__ = "document_bundles"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    name = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    items = relationship(
        "BundleDocument",
        back_populates="bundle",
        cascade="all, delete-orphan",
        lazy="selectin",
    )


class BundleDocument(Base):
    __tablename__ = "bundle_documents"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    bundle_id = Column(String(36), ForeignKey("document_bundles.id"), nullable=False, index=True)
    document_id = Column(String(36), ForeignKey("secure_documents.id"), nullable=False)
    display_order = Column(Integer, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    bundle = relationship("DocumentBundle", back_populates="items")
    document = relationship("SecureDocument", lazy="selectin")
