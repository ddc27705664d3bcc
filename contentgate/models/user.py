"""
User model for authentication and reviewer identity.
"""
from sqlalchemy import Column, Integer, String, DateTime, Boolean, JSON
from datetime import datetime, timezone
from ..database import Base


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(255), unique=True, index=True, nullable=False)
    username = Column(String(100), unique=True, index=True, nullable=False)  # reviewer identity in workflows
    hashed_password = Column(String(255), nullable=False)
    display_name = Column(String(100))
    organization_id = Column(String(100), nullable=True, index=True)
    roles = Column(JSON, default=list)  # e.g. ["content_manager", "legal"]
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(DateTime, default=lambda: datetime.now(timezone.utc), onupdate=lambda: datetime.now(timezone.utc))

    def has_role(self, role: str) -> bool:
        return role in (self.roles or [])
