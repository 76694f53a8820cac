"""
Client maintenance schedule.

next_due is never written by callers: it is re-derived here whenever a
client's selected months or inactive flag change.
"""
import logging
from datetime import date, datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from pm_scheduler.models import Client, ClientPart, Equipment, MaintenanceRecord, Part
from pm_scheduler.services.due_dates import compute_next_due, normalize_months
from pm_scheduler.services.exceptions import NotFoundError, ValidationError

logger = logging.getLogger(__name__)

ACTION_CLIENT_CREATE = "CLIENT_CREATE"
ACTION_CLIENT_UPDATE = "CLIENT_UPDATE"

CLIENT_FIELDS = {
    "company_name", "location", "address", "city", "province", "postal_code",
    "contact_name", "email", "phone", "roof_ladder_code", "notes",
}


def _schedule_fields(selected_months, inactive: bool, as_of: date) -> Dict[str, Any]:
    months = normalize_months(selected_months)
    if not inactive and not months:
        raise ValidationError("Active clients need at least one maintenance month")
    return {
        "selected_months": months,
        "inactive": bool(inactive),
        "next_due": compute_next_due(months, inactive, as_of),
    }


def get_client(db: Session, company_id: int, client_id: int) -> Client:
    client = db.query(Client).filter(
        Client.id == client_id,
        Client.company_id == company_id
    ).first()
    if not client:
        raise NotFoundError(f"Client {client_id} not found")
    return client


def list_clients(db: Session, company_id: int, include_inactive: bool = True) -> List[Client]:
    query = db.query(Client).filter(Client.company_id == company_id)
    if not include_inactive:
        query = query.filter(Client.inactive == False)
    return query.order_by(Client.company_name).all()


def find_client_by_name(db: Session, company_id: int, company_name: str) -> Optional[Client]:
    return db.query(Client).filter(
        Client.company_id == company_id,
        func.lower(Client.company_name) == company_name.strip().lower()
    ).first()


def build_client(company_id: int, data: Dict[str, Any], as_of: date) -> Client:
    """Construct an unsaved client, deriving next_due from its schedule"""
    company_name = (data.get("company_name") or "").strip()
    if not company_name:
        raise ValidationError("Company name is required")

    fields = {k: v for k, v in data.items() if k in CLIENT_FIELDS}
    fields["company_name"] = company_name
    fields.update(_schedule_fields(data.get("selected_months") or [], data.get("inactive", False), as_of))
    return Client(company_id=company_id, **fields)


def create_client(db: Session, company_id: int, data: Dict[str, Any], as_of: date) -> Client:
    client = build_client(company_id, data, as_of)
    db.add(client)
    db.commit()
    db.refresh(client)
    logger.info(
        f"Created client {client.id} '{client.company_name}' for company {company_id}",
        extra={"action": ACTION_CLIENT_CREATE},
    )
    return client


def update_client(db: Session, company_id: int, client_id: int, changes: Dict[str, Any], as_of: date) -> Client:
    if "next_due" in changes:
        raise ValidationError("next_due is derived from the maintenance schedule and cannot be set")

    client = get_client(db, company_id, client_id)

    for field, value in changes.items():
        if field not in CLIENT_FIELDS:
            continue
        if field == "company_name":
            value = (value or "").strip()
            if not value:
                raise ValidationError("Company name is required")
        setattr(client, field, value)

    if "selected_months" in changes or "inactive" in changes:
        months = changes.get("selected_months", client.selected_months)
        inactive = changes.get("inactive", client.inactive)
        if inactive is None:
            inactive = client.inactive
        for field, value in _schedule_fields(months, inactive, as_of).items():
            setattr(client, field, value)

    db.commit()
    db.refresh(client)
    logger.info(
        f"Updated client {client.id} for company {company_id}",
        extra={"action": ACTION_CLIENT_UPDATE, "fields": sorted(changes)},
    )
    return client


def refresh_due_dates(db: Session, company_id: int, as_of: date) -> int:
    """Re-derive next_due for every client of the company; returns how many changed"""
    changed = 0
    for client in db.query(Client).filter(Client.company_id == company_id).all():
        next_due = compute_next_due(client.selected_months or [], client.inactive, as_of)
        if client.next_due != next_due:
            client.next_due = next_due
            changed += 1
    db.commit()
    logger.info(f"Refreshed due dates for company {company_id}: {changed} changed")
    return changed


# ============ Parts & Equipment ============

def get_or_create_part(db: Session, company_id: int, name: str, cache: Optional[Dict[str, Part]] = None) -> Part:
    """Find a catalog part by display name (case-insensitive) or create an 'other' part"""
    key = name.strip().lower()
    if cache is not None and key in cache:
        return cache[key]

    if cache is None:
        cache = {}
    if not cache:
        for part in db.query(Part).filter(Part.company_id == company_id).all():
            cache.setdefault(part.display_name.lower(), part)
        if key in cache:
            return cache[key]

    part = Part(company_id=company_id, type="other", name=name.strip())
    db.add(part)
    db.flush()
    cache[key] = part
    return part


def add_client_part(db: Session, company_id: int, client_id: int, part_name: str, quantity: int = 1) -> ClientPart:
    if quantity is None or quantity < 1:
        raise ValidationError("Part quantity must be a positive integer")
    client = get_client(db, company_id, client_id)
    part = get_or_create_part(db, company_id, part_name)
    client_part = ClientPart(company_id=company_id, client_id=client.id, part_id=part.id, quantity=quantity)
    db.add(client_part)
    db.commit()
    db.refresh(client_part)
    return client_part


def add_equipment(db: Session, company_id: int, client_id: int, data: Dict[str, Any]) -> Equipment:
    name = (data.get("name") or "").strip()
    if not name:
        raise ValidationError("Equipment name is required")
    client = get_client(db, company_id, client_id)
    equipment = Equipment(
        company_id=company_id,
        client_id=client.id,
        name=name,
        type=data.get("type"),
        model_number=data.get("model_number"),
        serial_number=data.get("serial_number"),
        location=data.get("location"),
        notes=data.get("notes"),
    )
    db.add(equipment)
    db.commit()
    db.refresh(equipment)
    return equipment


# ============ Maintenance history ============

def record_maintenance_completion(
    db: Session,
    company_id: int,
    client_id: int,
    due_date: Optional[date],
    completed_at: Optional[datetime] = None,
) -> MaintenanceRecord:
    """Log a serviced cycle directly (walk-in or emergency work, no calendar slot needed)"""
    client = get_client(db, company_id, client_id)
    completed_at = completed_at or datetime.utcnow()

    record = None
    if due_date is not None:
        record = db.query(MaintenanceRecord).filter(
            MaintenanceRecord.company_id == company_id,
            MaintenanceRecord.client_id == client.id,
            MaintenanceRecord.due_date == due_date
        ).first()

    if record:
        record.completed_at = completed_at
    else:
        record = MaintenanceRecord(
            company_id=company_id,
            client_id=client.id,
            due_date=due_date,
            completed_at=completed_at,
        )
        db.add(record)

    db.commit()
    db.refresh(record)
    logger.info(f"Recorded maintenance for client {client.id} due {due_date} (company {company_id})")
    return record
