import uuid
from datetime import datetime

from sqlalchemy import Column, DateTime, ForeignKey, String

from vaultshare.core.database import Base


class NdaSignature(Base):
    __tablename__ = "nda_signatures"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    link_id = Column(String(36), ForeignKey("secure_links.id"), nullable=False, index=True)
    signer_name = Column(String, nullable=False)
    signer_email = Column(String, nullable=False)
    signer_ip = Column(String, nullable=True)
    signed_at = Column(DateTime, default=datetime.utcnow, nullable=False)
