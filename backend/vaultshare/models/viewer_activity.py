import uuid
from datetime import datetime

from sqlalchemy import Column, DateTime, ForeignKey, String

from vaultshare.core.database import Base


class ViewerActivity(Base):
    __tablename__ = "viewer_activity"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    link_id = Column(String(36), ForeignKey("secure_links.id"), nullable=False, index=True)
    document_id = Column(String(36), ForeignKey("secure_documents.id"), nullable=True)
    viewer_name = Column(String, nullable=False)
    viewer_email = Column(String, nullable=False)
    viewer_ip = Column(String, nullable=True)
    user_agent = Column(String, nullable=True)
    opened_at = Column(DateTime, default=datetime.utcnow, nullable=False)
