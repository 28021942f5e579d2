"""Dentist profile and working hours model definitions."""

from sqlalchemy import Boolean, Column, Float, ForeignKey, Integer, String, Time, UniqueConstraint
from sqlalchemy.orm import relationship
from dentalcare.database import Base


class Dentist(Base):
    """Clinical profile attached to a user with the dentist role."""
    __tablename__ = "dentists"

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id"), unique=True, nullable=False)
    license_number = Column(String, nullable=False, default="")
    specialization = Column(String, nullable=False, default="")
    bio = Column(String, nullable=False, default="")
    consultation_fee = Column(Float, nullable=False, default=0.0)
    is_active = Column(Boolean, nullable=False, default=True)

    user = relationship("User", lazy="joined")
    working_hours = relationship(
        "WorkingHoursEntry",
        cascade="all, delete-orphan",
        order_by="WorkingHoursEntry.weekday",
    )


class WorkingHoursEntry(Base):
    """One weekday of a dentist's weekly template. A missing row means the day is not configured."""
    __tablename__ = "working_hours"
    __table_args__ = (UniqueConstraint("dentist_id", "weekday", name="uq_working_hours_dentist_weekday"),)

    id = Column(Integer, primary_key=True)
    dentist_id = Column(Integer, ForeignKey("dentists.id"), nullable=False, index=True)
    weekday = Column(Integer, nullable=False)  # 0 = Monday
    start = Column(Time, nullable=False)
    end = Column(Time, nullable=False)
    is_working = Column(Boolean, nullable=False, default=False)
