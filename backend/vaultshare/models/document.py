import uuid
from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String, Text

from vaultshare.core.database import Base


class SecureDocument(Base):
    __tablename__ = "secure_documents"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    storage_path = Column(String, nullable=False)
    file_name = Column(String, index=True, nullable=False)
    file_type = Column(String, nullable=True)
    file_size = Column(Integer, default=0)
    description = Column(Text, nullable=True)
    folder_id = Column(String(36), ForeignKey("secure_folders.id"), nullable=True, index=True)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)
