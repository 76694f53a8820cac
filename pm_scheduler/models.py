from sqlalchemy import Column, Integer, String, DateTime, Text, Boolean, ForeignKey, Date, JSON, Index
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from sqlalchemy.types import TypeDecorator
from pm_scheduler.database import Base
from pm_scheduler.utils.technician_ids import coerce_technician_ids, serialize_technician_ids


class TechnicianIdSet(TypeDecorator):
    """Stores a set of technician ids as a JSON array, always loads a set of ints"""
    impl = Text
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return serialize_technician_ids([])
        return serialize_technician_ids(coerce_technician_ids(value))

    def process_result_value(self, value, dialect):
        return coerce_technician_ids(value)


class Company(Base):
    """Tenant - every scheduling entity is scoped by company_id"""
    __tablename__ = "companies"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=func.now())

    # Relationships
    clients = relationship("Client", back_populates="company")
    technicians = relationship("Technician", back_populates="company")


class Technician(Base):
    """Technician/Field worker belonging to exactly one company"""
    __tablename__ = "technicians"

    id = Column(Integer, primary_key=True, index=True)
    company_id = Column(Integer, ForeignKey("companies.id"), nullable=False, index=True)
    name = Column(String, nullable=False)
    email = Column(String, nullable=True)
    phone = Column(String, nullable=True)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=func.now())

    # Relationships
    company = relationship("Company", back_populates="technicians")


class Client(Base):
    """Client location serviced on a recurring maintenance schedule"""
    __tablename__ = "clients"

    id = Column(Integer, primary_key=True, index=True)
    company_id = Column(Integer, ForeignKey("companies.id"), nullable=False, index=True)
    company_name = Column(String, nullable=False)
    location = Column(String, nullable=True)  # Site name, e.g. "Toronto Warehouse"

    # Service address
    address = Column(Text, nullable=True)
    city = Column(String, nullable=True)
    province = Column(String, nullable=True)
    postal_code = Column(String, nullable=True)

    # Contact info
    contact_name = Column(String, nullable=True)
    email = Column(String, nullable=True)
    phone = Column(String, nullable=True)
    roof_ladder_code = Column(String, nullable=True)
    notes = Column(Text, nullable=True)

    # PM scheduling
    selected_months = Column(JSON, nullable=False, default=list)  # month indices 0-11
    inactive = Column(Boolean, nullable=False, default=False)
    next_due = Column(Date, nullable=False)  # derived, see services.due_dates

    created_at = Column(DateTime, default=func.now())
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now())

    # Relationships
    company = relationship("Company", back_populates="clients")
    parts = relationship("ClientPart", back_populates="client", cascade="all, delete-orphan", order_by="ClientPart.id")
    equipment = relationship("Equipment", back_populates="client", cascade="all, delete-orphan", order_by="Equipment.id")


class Part(Base):
    """Parts catalog entry (filters, belts, other consumables)"""
    __tablename__ = "parts"

    id = Column(Integer, primary_key=True, index=True)
    company_id = Column(Integer, ForeignKey("companies.id"), nullable=False, index=True)
    type = Column(String, nullable=False, default="other")  # filter, belt, other
    filter_type = Column(String, nullable=True)  # Pleated, Media, Ecology, Throwaway
    belt_type = Column(String, nullable=True)  # A, B
    size = Column(String, nullable=True)
    name = Column(String, nullable=True)
    description = Column(Text, nullable=True)
    created_at = Column(DateTime, default=func.now())

    @property
    def display_name(self) -> str:
        if self.type == "filter" and self.filter_type and self.size:
            return f"{self.filter_type} Filter {self.size}"
        if self.type == "belt" and self.belt_type and self.size:
            return f"Belt {self.belt_type}{self.size}"
        if self.name:
            return self.name
        return "Unknown Part"


class ClientPart(Base):
    """Quantity of a catalog part used at each visit to a client"""
    __tablename__ = "client_parts"

    id = Column(Integer, primary_key=True, index=True)
    company_id = Column(Integer, ForeignKey("companies.id"), nullable=False, index=True)
    client_id = Column(Integer, ForeignKey("clients.id", ondelete="CASCADE"), nullable=False, index=True)
    part_id = Column(Integer, ForeignKey("parts.id", ondelete="CASCADE"), nullable=False)
    quantity = Column(Integer, nullable=False, default=1)

    # Relationships
    client = relationship("Client", back_populates="parts")
    part = relationship("Part")

    @property
    def name(self) -> str:
        return self.part.display_name if self.part else "Unknown Part"


class Equipment(Base):
    """Equipment installed at a client location"""
    __tablename__ = "equipment"

    id = Column(Integer, primary_key=True, index=True)
    company_id = Column(Integer, ForeignKey("companies.id"), nullable=False, index=True)
    client_id = Column(Integer, ForeignKey("clients.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String, nullable=False)
    type = Column(String, nullable=True)
    model_number = Column(String, nullable=True)
    serial_number = Column(String, nullable=True)
    location = Column(String, nullable=True)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime, default=func.now())

    # Relationships
    client = relationship("Client", back_populates="equipment")


class MaintenanceRecord(Base):
    """Ground truth of whether a due cycle was serviced"""
    __tablename__ = "maintenance_records"

    id = Column(Integer, primary_key=True, index=True)
    company_id = Column(Integer, ForeignKey("companies.id"), nullable=False, index=True)
    client_id = Column(Integer, ForeignKey("clients.id", ondelete="CASCADE"), nullable=False, index=True)
    due_date = Column(Date, nullable=True)
    completed_at = Column(DateTime, nullable=True)

    # Relationships
    client = relationship("Client")


class CalendarAssignment(Base):
    """A client placed on the schedule for a given month, optionally a day/hour"""
    __tablename__ = "calendar_assignments"

    id = Column(Integer, primary_key=True, index=True)
    company_id = Column(Integer, ForeignKey("companies.id"), nullable=False, index=True)
    client_id = Column(Integer, ForeignKey("clients.id", ondelete="CASCADE"), nullable=False, index=True)
    job_number = Column(Integer, nullable=False)
    assigned_technician_ids = Column(TechnicianIdSet, nullable=False, default=set)
    year = Column(Integer, nullable=False)
    month = Column(Integer, nullable=False)  # 1-12
    day = Column(Integer, nullable=True)  # null = needs scheduling
    scheduled_date = Column(Date, nullable=False)
    scheduled_hour = Column(Integer, nullable=True)
    auto_due_date = Column(Boolean, nullable=False, default=True)
    completed = Column(Boolean, nullable=False, default=False)
    completion_notes = Column(Text, nullable=True)
    created_at = Column(DateTime, default=func.now())
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now())

    # Relationships
    client = relationship("Client")

    __table_args__ = (
        Index("ix_calendar_assignments_period", "company_id", "year", "month"),
        Index("ix_calendar_assignments_job_number", "company_id", "job_number", unique=True),
    )


class CompanyCounter(Base):
    """Per-tenant sequence counters, one row per company"""
    __tablename__ = "company_counters"

    id = Column(Integer, primary_key=True, index=True)
    company_id = Column(Integer, ForeignKey("companies.id", ondelete="CASCADE"), nullable=False, unique=True)
    next_job_number = Column(Integer, nullable=False, default=10000)
