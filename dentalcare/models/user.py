"""User model definitions."""

from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, Integer, String
from dentalcare.database import Base


class User(Base):
    """Represents an application user."""
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String, unique=True, index=True, nullable=False)
    hashed_password = Column(String, nullable=False)
    first_name = Column(String, nullable=False, default="")
    last_name = Column(String, nullable=False, default="")
    phone = Column(String)
    role = Column(String, nullable=False, default="patient")  # patient/dentist/admin
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()
