"""Service catalog model definitions."""

from sqlalchemy import Boolean, Column, Float, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import relationship
from dentalcare.database import Base


class Service(Base):
    """Catalog entry, independent of any dentist."""
    __tablename__ = "services"

    id = Column(Integer, primary_key=True)
    name = Column(String, unique=True, nullable=False)
    category = Column(String, nullable=False, default="general")
    default_duration = Column(Integer, nullable=False, default=30)
    default_price = Column(Float, nullable=False, default=0.0)
    description = Column(String, nullable=False, default="")
    is_active = Column(Boolean, nullable=False, default=True)


class DentistService(Base):
    """A service a dentist offers, optionally with their own price and duration."""
    __tablename__ = "dentist_services"
    __table_args__ = (UniqueConstraint("dentist_id", "service_id", name="uq_dentist_services_pair"),)

    id = Column(Integer, primary_key=True)
    dentist_id = Column(Integer, ForeignKey("dentists.id"), nullable=False, index=True)
    service_id = Column(Integer, ForeignKey("services.id"), nullable=False)
    custom_price = Column(Float)
    custom_duration = Column(Integer)
    notes = Column(String)

    service = relationship("Service", lazy="joined")

    @property
    def duration(self) -> int:
        return self.custom_duration or self.service.default_duration

    @property
    def price(self) -> float:
        return self.custom_price if self.custom_price is not None else self.service.default_price
