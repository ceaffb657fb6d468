import uuid
from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, String, Text

from vaultshare.core.database import Base


class SecureFolder(Base):
    __tablename__ = "secure_folders"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    parent_folder_id = Column(String(36), ForeignKey("secure_folders.id"), nullable=True, index=True)
    name = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)
