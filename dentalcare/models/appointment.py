"""Appointment model definitions."""

from datetime import datetime, timezone

from sqlalchemy import Column, Date, DateTime, ForeignKey, Index, Integer, String, Time, UniqueConstraint, text
from dentalcare.database import Base

ACTIVE_SLOT_CONDITION = "status != 'cancelled'"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Appointment(Base):
    """Represents a booked appointment. Cancelled appointments are kept, not deleted."""
    __tablename__ = "appointments"
    __table_args__ = (
        # One live booking per dentist and slot; the database is the final arbiter of races.
        Index(
            "uq_appointments_active_slot",
            "dentist_id",
            "date",
            "time",
            unique=True,
            sqlite_where=text(ACTIVE_SLOT_CONDITION),
            postgresql_where=text(ACTIVE_SLOT_CONDITION),
        ),
        UniqueConstraint("patient_id", "idempotency_key", name="uq_appointments_patient_attempt"),
    )

    id = Column(Integer, primary_key=True)
    patient_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    dentist_id = Column(Integer, ForeignKey("dentists.id"), nullable=False, index=True)
    service_id = Column(Integer, ForeignKey("services.id"), nullable=False)
    date = Column(Date, nullable=False)
    time = Column(Time, nullable=False)
    duration = Column(Integer, nullable=False)
    notes = Column(String)
    status = Column(String, nullable=False, default="pending")
    idempotency_key = Column(String)
    created_at = Column(DateTime, default=_utcnow)
    updated_at = Column(DateTime, default=_utcnow, onupdate=_utcnow)
