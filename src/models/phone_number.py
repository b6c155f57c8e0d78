from sqlalchemy import Column, Integer, String, DateTime, Boolean
from sqlalchemy.sql import func
from src.core.database import Base


class PhoneNumber(Base):
    """Saved numbers, maintained by the profile service."""
    __tablename__ = "phone_numbers"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String(64), nullable=False, index=True)
    phone_number = Column(String(11), nullable=False)
    network_provider = Column(String(20), nullable=True)
    label = Column(String(50), nullable=True)
    is_verified = Column(Boolean, default=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
