import uuid
from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import relationship

from vaultshare.core.database import Base

LINK_STATUS_ACTIVE = "active"
LINK_STATUS_REVOKED = "revoked"
LINK_STATUS_EXPIRED = "expired"

ACCESS_LEVEL_VIEW_ONLY = "view_only"
ACCESS_LEVEL_DOWNLOAD = "download"


class SecureLink(Base):
    __tablename__ = "secure_links"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    link_token = Column(String(64), unique=True, index=True, nullable=False)
    link_name = Column(String, nullable=True)
    status = Column(String(16), default=LINK_STATUS_ACTIVE, nullable=False)
    access_level = Column(String(16), default=ACCESS_LEVEL_VIEW_ONLY, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    expires_at = Column(DateTime, nullable=True)
    max_views = Column(Integer, nullable=True)
    current_views = Column(Integer, default=0, nullable=False)
    last_accessed_at = Column(DateTime, nullable=True)
    password_hash = Column(String, nullable=True)
    nda_required = Column(Boolean, default=False, nullable=False)
    nda_signed_at = Column(DateTime, nullable=True)
    recipient_name = Column(String, nullable=True)
    recipient_email = Column(String, nullable=True)

    document_id = Column(String(36), ForeignKey("secure_documents.id"), nullable=True)
    bundle_id = Column(String(36), ForeignKey("document_bundles.id"), nullable=True)
    folder_id = Column(String(36), ForeignKey("secure_folders.id"), nullable=True)

    document = relationship("SecureDocument", lazy="selectin")
    bundle = relationship("DocumentBundle", lazy="selectin")
    folder = relationship("SecureFolder", lazy="selectin")

    @property
    def content_kind(self) -> str | None:
        """``document``, ``bundle`` or ``folder``; None unless exactly one reference is set."""
        refs = [
            kind
            for kind, ref in (
                ("document", self.document_id),
                ("bundle", self.bundle_id),
                ("folder", self.folder_id),
            )
            if ref
        ]
        return refs[0] if len(refs) == 1 else None

    @property
    def allows_download(self) -> bool:
        return self.access_level == ACCESS_LEVEL_DOWNLOAD
