from pydantic import BaseModel, Field, field_validator, model_validator
from datetime import datetime, date
from typing import Optional, List, Any

from pm_scheduler.utils.technician_ids import coerce_technician_ids


# ============================================================================
# Client Schemas
# ============================================================================

class ClientBase(BaseModel):
    company_name: str = Field(..., min_length=1)
    location: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    province: Optional[str] = None
    postal_code: Optional[str] = None
    contact_name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    roof_ladder_code: Optional[str] = None
    notes: Optional[str] = None
    selected_months: List[int] = Field(default_factory=list, description="Month indices 0-11")
    inactive: bool = False


class ClientCreate(ClientBase):
    pass


class ClientUpdate(BaseModel):
    company_name: Optional[str] = None
    location: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    province: Optional[str] = None
    postal_code: Optional[str] = None
    contact_name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    roof_ladder_code: Optional[str] = None
    notes: Optional[str] = None
    selected_months: Optional[List[int]] = None
    inactive: Optional[bool] = None


class Client(ClientBase):
    id: int
    company_id: int
    next_due: date
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class ClientPartCreate(BaseModel):
    part_name: str = Field(..., min_length=1)
    quantity: int = Field(1, ge=1)


class ClientPartResponse(BaseModel):
    id: int
    client_id: int
    part_id: int
    name: str
    quantity: int

    class Config:
        from_attributes = True


class EquipmentCreate(BaseModel):
    name: str = Field(..., min_length=1)
    type: Optional[str] = None
    model_number: Optional[str] = None
    serial_number: Optional[str] = None
    location: Optional[str] = None
    notes: Optional[str] = None


class EquipmentResponse(EquipmentCreate):
    id: int
    client_id: int

    class Config:
        from_attributes = True


class DueDateRefreshResponse(BaseModel):
    updated: int


# ============================================================================
# Calendar Assignment Schemas
# ============================================================================

class CalendarAssignmentCreate(BaseModel):
    client_id: int
    year: int = Field(..., ge=1900, le=9998)
    month: int = Field(..., ge=1, le=12)
    day: Optional[int] = Field(None, ge=1, le=31)
    scheduled_date: Optional[date] = None
    scheduled_hour: Optional[int] = Field(None, ge=0, le=23)
    assigned_technician_ids: List[int] = Field(default_factory=list)

    @field_validator('assigned_technician_ids', mode='before')
    @classmethod
    def parse_technician_ids(cls, v):
        return sorted(coerce_technician_ids(v))


class CalendarAssignmentUpdate(BaseModel):
    day: Optional[int] = Field(None, ge=1, le=31)
    scheduled_date: Optional[date] = None
    scheduled_hour: Optional[int] = Field(None, ge=0, le=23)
    auto_due_date: Optional[bool] = None
    completed: Optional[bool] = None
    completion_notes: Optional[str] = None
    assigned_technician_ids: Optional[List[int]] = None
    assigned_technician_id: Optional[int] = None  # Legacy single-technician field

    @field_validator('assigned_technician_ids', mode='before')
    @classmethod
    def parse_technician_ids(cls, v):
        if v is None:
            return None
        return sorted(coerce_technician_ids(v))

    @model_validator(mode='after')
    def fold_legacy_technician(self):
        if self.assigned_technician_ids is None and 'assigned_technician_id' in self.model_fields_set:
            self.assigned_technician_ids = [self.assigned_technician_id] if self.assigned_technician_id else []
            self.model_fields_set.add('assigned_technician_ids')
        return self

    def changes(self) -> dict:
        """Only the fields the caller actually sent, legacy field folded in"""
        data = self.model_dump(exclude_unset=True)
        data.pop('assigned_technician_id', None)
        return data


class ClientSummary(BaseModel):
    id: int
    company_name: str
    location: Optional[str] = None
    selected_months: List[int] = Field(default_factory=list)
    inactive: bool = False
    next_due: date

    class Config:
        from_attributes = True


class CalendarAssignment(BaseModel):
    id: int
    company_id: int
    client_id: int
    job_number: int
    assigned_technician_ids: List[int] = Field(default_factory=list)
    year: int
    month: int
    day: Optional[int] = None
    scheduled_date: date
    scheduled_hour: Optional[int] = None
    auto_due_date: bool
    completed: bool
    completion_notes: Optional[str] = None

    @field_validator('assigned_technician_ids', mode='before')
    @classmethod
    def parse_technician_ids(cls, v):
        return sorted(coerce_technician_ids(v))

    class Config:
        from_attributes = True


class CalendarAssignmentWithClient(CalendarAssignment):
    client: Optional[ClientSummary] = None


# ============================================================================
# Maintenance Schemas
# ============================================================================

class MaintenanceCompletionCreate(BaseModel):
    client_id: int
    due_date: Optional[date] = None
    completed_at: Optional[datetime] = None


class MaintenanceRecord(BaseModel):
    id: int
    client_id: int
    due_date: Optional[date] = None
    completed_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class CompletedUnscheduledItem(BaseModel):
    id: int
    client_id: int
    company_name: Optional[str] = None
    location: Optional[str] = None
    due_date: Optional[date] = None
    completed_at: Optional[datetime] = None


class MaintenanceToggleRequest(BaseModel):
    due_date: date


class MaintenanceToggleResult(BaseModel):
    completed: bool
    record: MaintenanceRecord
    assignment: Optional[CalendarAssignment] = None
    next_assignment: Optional[CalendarAssignment] = None


class RecentlyCompletedItem(BaseModel):
    id: str  # "<client_id>|<due_date>"
    client_id: int
    company_name: str
    location: Optional[str] = None
    selected_months: List[int] = Field(default_factory=list)
    due_date: Optional[date] = None
    completed_at: datetime


class MaintenanceStatus(BaseModel):
    completed: bool
    completed_due_date: Optional[date] = None


# ============================================================================
# Report Schemas
# ============================================================================

class PartSummary(BaseModel):
    id: int
    type: str
    display_name: str
    filter_type: Optional[str] = None
    belt_type: Optional[str] = None
    size: Optional[str] = None

    class Config:
        from_attributes = True


class PartsReportRow(BaseModel):
    part: PartSummary
    total_quantity: int


class ScheduleReportItem(Client):
    parts: List[ClientPartResponse] = Field(default_factory=list)
    equipment: List[EquipmentResponse] = Field(default_factory=list)
    is_completed: bool = False


# ============================================================================
# Import / Export Schemas
# ============================================================================

class ImportResult(BaseModel):
    success: bool
    message: str
    imported: int
    skipped: int
    total: int
    rows_rejected: int = 0
    errors: List[str] = Field(default_factory=list)
