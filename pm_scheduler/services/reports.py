"""
Month reports: parts to pull from stock and the clients due for service.

Months are 0-based indices (0 = January) like Client.selected_months. A
client counts as serviced for a month when it has a completed maintenance
record whose due_date falls in that month of the given year.
"""
import logging
from typing import Dict, List, Set

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, joinedload

from pm_scheduler.models import Client, ClientPart, MaintenanceRecord
from pm_scheduler.services.exceptions import ReconciliationError, ValidationError

logger = logging.getLogger(__name__)


def _check_month(month_index: int):
    if not 0 <= month_index <= 11:
        raise ValidationError("Invalid month. Must be 0-11.")


def _part_key(part) -> tuple:
    if part.type == "filter":
        return ("filter", part.filter_type or "", part.size or "")
    if part.type == "belt":
        return ("belt", part.belt_type or "", part.size or "")
    return ("other", (part.name or "").strip().lower(), "")


def _due_clients(db: Session, company_id: int, month_index: int) -> List[Client]:
    clients = db.query(Client).options(
        joinedload(Client.parts).joinedload(ClientPart.part),
        joinedload(Client.equipment)
    ).filter(
        Client.company_id == company_id,
        Client.inactive == False
    ).order_by(Client.company_name, Client.id).all()
    return [c for c in clients if month_index in (c.selected_months or [])]


def _serviced_client_ids(db: Session, company_id: int, year: int, month_index: int) -> Set[int]:
    records = db.query(MaintenanceRecord.client_id, MaintenanceRecord.due_date).filter(
        MaintenanceRecord.company_id == company_id,
        MaintenanceRecord.completed_at.isnot(None),
        MaintenanceRecord.due_date.isnot(None)
    ).all()
    return {
        client_id for client_id, due_date in records
        if due_date.year == year and due_date.month == month_index + 1
    }


def parts_report(
    db: Session,
    company_id: int,
    month_index: int,
    year: int,
    outstanding_only: bool = False,
) -> List[Dict]:
    """Total quantity of each part needed by the active clients due in a month.

    Catalog entries describing the same part (same filter type and size, same
    belt, or same free-text name) are summed together. With outstanding_only,
    clients already serviced for that month are left out.
    """
    _check_month(month_index)
    try:
        clients = _due_clients(db, company_id, month_index)
        if outstanding_only:
            serviced = _serviced_client_ids(db, company_id, year, month_index)
            clients = [c for c in clients if c.id not in serviced]
    except SQLAlchemyError as e:
        logger.error(f"Parts report failed for company {company_id} month {month_index}: {e}")
        raise ReconciliationError("Failed to generate parts report") from e

    totals: Dict[tuple, Dict] = {}
    for client in clients:
        for client_part in client.parts:
            if client_part.part is None:
                continue
            key = _part_key(client_part.part)
            if key in totals:
                totals[key]["total_quantity"] += client_part.quantity
            else:
                totals[key] = {"part": client_part.part, "total_quantity": client_part.quantity}

    return sorted(totals.values(), key=lambda row: (_part_key(row["part"])[0], row["part"].display_name.lower()))


def schedule_report(db: Session, company_id: int, month_index: int, year: int) -> List[Dict]:
    """Active clients due in a month with their parts, equipment and serviced flag"""
    _check_month(month_index)
    try:
        clients = _due_clients(db, company_id, month_index)
        serviced = _serviced_client_ids(db, company_id, year, month_index)
    except SQLAlchemyError as e:
        logger.error(f"Schedule report failed for company {company_id} month {month_index}: {e}")
        raise ReconciliationError("Failed to generate schedule report") from e

    return [
        {
            "client": client,
            "parts": list(client.parts),
            "equipment": list(client.equipment),
            "is_completed": client.id in serviced,
        }
        for client in clients
    ]
