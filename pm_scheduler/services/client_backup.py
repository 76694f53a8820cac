"""
Client backup file format (CSV).

One fixed header row, then one or more rows per client. Parts and
equipment are variable-length, so a client with N parts and M equipment
items takes max(N, M) rows: the first tagged MAIN, the rest ADDITIONAL, each
repeating the client columns and carrying the i-th part and i-th equipment
item. A client with neither takes a single MAIN row.

On restore, rows are grouped by company name and next_due is recomputed
from the restored schedule; it is never read from the file.
"""
import csv
import io
import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Dict, Iterable, List, Mapping, Optional, Sequence

from openpyxl import Workbook, load_workbook
from openpyxl.styles import Font, PatternFill, Alignment, Border, Side
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, joinedload

from pm_scheduler.models import Client, ClientPart, Equipment
from pm_scheduler.services import clients as client_service
from pm_scheduler.services.due_dates import compute_next_due, format_months, parse_months
from pm_scheduler.services.exceptions import ValidationError

logger = logging.getLogger(__name__)

ROW_MAIN = "MAIN"
ROW_ADDITIONAL = "ADDITIONAL"

STATUS_ACTIVE = "Active"
STATUS_INACTIVE = "Inactive"

BACKUP_COLUMNS = [
    "Row Type",
    "Company Name",       # Required - groups rows into one client
    "Location",
    "Address",
    "City",
    "Province/State",
    "Postal Code",
    "Contact Name",
    "Email",
    "Phone",
    "Roof/Ladder Code",
    "Notes",
    "Status",             # Active / Inactive
    "Maintenance Months", # e.g. "Mar, Sep"
    "Part Name",
    "Part Quantity",
    "Equipment Name",
    "Model Number",
    "Serial Number",
]

# Client attributes in column order (after Row Type, up to Notes)
CLIENT_TEXT_COLUMNS = [
    "company_name", "location", "address", "city", "province", "postal_code",
    "contact_name", "email", "phone", "roof_ladder_code", "notes",
]

STATUS_INDEX = BACKUP_COLUMNS.index("Status")
MONTHS_INDEX = BACKUP_COLUMNS.index("Maintenance Months")
PART_NAME_INDEX = BACKUP_COLUMNS.index("Part Name")


@dataclass
class BackupPart:
    name: str
    quantity: int = 1


@dataclass
class BackupEquipment:
    name: str
    model_number: Optional[str] = None
    serial_number: Optional[str] = None


@dataclass
class BackupClient:
    company_name: str
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
    selected_months: List[int] = field(default_factory=list)
    inactive: bool = False
    next_due: Optional[date] = None
    parts: List[BackupPart] = field(default_factory=list)
    equipment: List[BackupEquipment] = field(default_factory=list)

    def client_fields(self) -> dict:
        data = {name: getattr(self, name) for name in CLIENT_TEXT_COLUMNS}
        data["selected_months"] = list(self.selected_months)
        data["inactive"] = self.inactive
        return data


@dataclass
class DecodedBackup:
    clients: List[BackupClient]
    errors: List[str]
    rows_read: int
    rows_rejected: int = 0


# =============================================================================
# Encoding
# =============================================================================

def _quote(value) -> str:
    """Quote a free-text field, doubling embedded quotes; empty stays empty"""
    if value is None or value == "":
        return ""
    return '"' + str(value).replace('"', '""') + '"'


def backup_rows(clients: Iterable, parts_by_client: Mapping, equipment_by_client: Mapping) -> List[List]:
    """Raw (unquoted) cell values for every backup row, header excluded"""
    rows = []
    for client in clients:
        parts = list(parts_by_client.get(client.id, []))
        equipment = list(equipment_by_client.get(client.id, []))

        client_cells = [getattr(client, name) for name in CLIENT_TEXT_COLUMNS]
        client_cells.append(STATUS_INACTIVE if client.inactive else STATUS_ACTIVE)
        client_cells.append(format_months(client.selected_months or []))

        if not parts and not equipment:
            rows.append([ROW_MAIN] + client_cells + [None] * 5)
            continue

        for i in range(max(len(parts), len(equipment))):
            part = parts[i] if i < len(parts) else None
            equip = equipment[i] if i < len(equipment) else None
            rows.append(
                [ROW_MAIN if i == 0 else ROW_ADDITIONAL]
                + client_cells
                + [
                    part.name if part else None,
                    part.quantity if part else None,
                    equip.name if equip else None,
                    equip.model_number if equip else None,
                    equip.serial_number if equip else None,
                ]
            )
    return rows


def _encode_row(row: Sequence) -> str:
    cells = []
    for index, value in enumerate(row):
        if index == 0 or index == STATUS_INDEX:
            cells.append(value or "")
        elif index == MONTHS_INDEX:
            cells.append('"' + (value or "").replace('"', '""') + '"')
        elif index == PART_NAME_INDEX + 1:
            cells.append("" if value is None else str(value))
        else:
            cells.append(_quote(value))
    return ",".join(cells)


def encode_backup(clients: Iterable, parts_by_client: Mapping, equipment_by_client: Mapping) -> str:
    """Render clients with their parts and equipment as backup CSV text.

    parts_by_client / equipment_by_client map client.id to a list of objects
    with name/quantity and name/model_number/serial_number attributes.
    """
    lines = [",".join(BACKUP_COLUMNS)]
    lines.extend(_encode_row(row) for row in backup_rows(clients, parts_by_client, equipment_by_client))
    return "\n".join(lines) + "\n"


def encode_backup_workbook(clients: Iterable, parts_by_client: Mapping, equipment_by_client: Mapping) -> bytes:
    """Same rows as encode_backup, as a styled Excel workbook"""
    wb = Workbook()
    ws = wb.active
    ws.title = "Clients"

    header_font = Font(bold=True, color="FFFFFF")
    header_fill = PatternFill(start_color="4472C4", end_color="4472C4", fill_type="solid")
    header_alignment = Alignment(horizontal="center", vertical="center")
    thin_border = Border(
        left=Side(style='thin'),
        right=Side(style='thin'),
        top=Side(style='thin'),
        bottom=Side(style='thin')
    )

    for col_idx, column in enumerate(BACKUP_COLUMNS, 1):
        cell = ws.cell(row=1, column=col_idx, value=column)
        cell.font = header_font
        cell.fill = header_fill
        cell.alignment = header_alignment
        cell.border = thin_border
        ws.column_dimensions[cell.column_letter].width = max(15, len(column) + 5)

    ws.freeze_panes = "A2"

    for row_idx, row in enumerate(backup_rows(clients, parts_by_client, equipment_by_client), 2):
        for col_idx, value in enumerate(row, 1):
            ws.cell(row=row_idx, column=col_idx, value=value)

    output = io.BytesIO()
    wb.save(output)
    return output.getvalue()


# =============================================================================
# Decoding
# =============================================================================

def _clean(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    return value or None


def _parse_quantity(raw: str) -> int:
    """Quantity cell as a positive int; empty means 1"""
    raw = (raw or "").strip()
    if not raw:
        return 1
    try:
        quantity = int(raw)
    except ValueError:
        raise ValidationError(f"Invalid part quantity '{raw}', using 1")
    if quantity < 1:
        raise ValidationError(f"Invalid part quantity '{raw}', using 1")
    return quantity


def _csv_rows(text: str):
    """(line number, cells, parse error) for every physical CSV record"""
    reader = csv.reader(io.StringIO(text.lstrip("\ufeff")))
    while True:
        try:
            fields = next(reader)
        except StopIteration:
            return
        except csv.Error as e:
            yield reader.line_num, None, f"Malformed CSV ({e})"
            continue
        yield reader.line_num, fields, None


def _cell_text(value) -> str:
    if value is None:
        return ""
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return str(value)


def _workbook_rows(content: bytes):
    try:
        wb = load_workbook(io.BytesIO(content), data_only=True)
    except Exception as e:
        raise ValidationError(f"Could not read Excel workbook: {e}")

    ws = wb.active
    for row_number, values in enumerate(ws.iter_rows(values_only=True), 1):
        yield row_number, [_cell_text(v) for v in values], None


def _decode_rows(rows, as_of: date) -> DecodedBackup:
    clients: Dict[str, BackupClient] = {}
    errors: List[str] = []
    rows_read = 0
    rows_rejected = 0
    header_seen = False

    for row_number, fields, parse_error in rows:
        if parse_error:
            errors.append(f"Row {row_number}: {parse_error}")
            rows_rejected += 1
            continue

        if not header_seen:
            header_seen = True
            continue
        if not fields or not any(f.strip() for f in fields):
            continue

        rows_read += 1
        fields = list(fields) + [""] * (len(BACKUP_COLUMNS) - len(fields))

        company_name = fields[1].strip()
        if not company_name:
            errors.append(f"Row {row_number}: Company name is required")
            rows_rejected += 1
            continue

        part_name = _clean(fields[PART_NAME_INDEX])
        quantity = None
        if part_name:
            try:
                quantity = _parse_quantity(fields[PART_NAME_INDEX + 1])
            except ValidationError as e:
                # The client and equipment on this row are still kept
                errors.append(f"Row {row_number}: {e}")
                quantity = 1

        entry = clients.get(company_name)
        if entry is None:
            selected_months = sorted(parse_months(fields[MONTHS_INDEX]))
            inactive = fields[STATUS_INDEX].strip().lower() == STATUS_INACTIVE.lower()
            entry = BackupClient(
                company_name=company_name,
                **{name: _clean(fields[i + 2]) for i, name in enumerate(CLIENT_TEXT_COLUMNS[1:])},
                selected_months=selected_months,
                inactive=inactive,
                next_due=compute_next_due(selected_months, inactive, as_of),
            )
            clients[company_name] = entry

        if part_name:
            entry.parts.append(BackupPart(name=part_name, quantity=quantity))

        equipment_name = _clean(fields[PART_NAME_INDEX + 2])
        if equipment_name:
            entry.equipment.append(BackupEquipment(
                name=equipment_name,
                model_number=_clean(fields[PART_NAME_INDEX + 3]),
                serial_number=_clean(fields[PART_NAME_INDEX + 4]),
            ))

    return DecodedBackup(
        clients=list(clients.values()),
        errors=errors,
        rows_read=rows_read,
        rows_rejected=rows_rejected,
    )


def decode_backup(text: str, as_of: date) -> DecodedBackup:
    """Parse backup CSV text into clients with their parts and equipment.

    Bad rows are collected as "Row N: reason" errors (N is the 1-based line
    number, header = 1) and skipped; they never abort the file. An unreadable
    part quantity is reported the same way but the row is kept with quantity 1.
    """
    return _decode_rows(_csv_rows(text), as_of)


def decode_backup_workbook(content: bytes, as_of: date) -> DecodedBackup:
    """Same as decode_backup for the .xlsx export (first sheet, same columns)"""
    return _decode_rows(_workbook_rows(content), as_of)


# Company list import: Company Name, Location, Address, City, Province/State,
# Postal/Zip, Contact, Phone, Email, Roof/Ladder Code, Notes
SIMPLE_IMPORT_FIELDS = [
    "company_name", "location", "address", "city", "province", "postal_code",
    "contact_name", "phone", "email", "roof_ladder_code", "notes",
]


def decode_simple_clients(text: str, as_of: date) -> DecodedBackup:
    """Parse a plain company list CSV.

    There is no schedule in this format, so every client comes in inactive
    with no maintenance months; months are picked per client afterwards.
    """
    clients: Dict[str, BackupClient] = {}
    errors: List[str] = []
    rows_read = 0
    rows_rejected = 0
    header_seen = False

    for row_number, fields, parse_error in _csv_rows(text):
        if parse_error:
            errors.append(f"Row {row_number}: {parse_error}")
            rows_rejected += 1
            continue
        if not header_seen:
            header_seen = True
            continue
        if not fields or not any(f.strip() for f in fields):
            continue

        rows_read += 1
        fields = list(fields) + [""] * (len(SIMPLE_IMPORT_FIELDS) - len(fields))
        values = {name: _clean(fields[i]) for i, name in enumerate(SIMPLE_IMPORT_FIELDS)}
        if not values["company_name"]:
            errors.append(f"Row {row_number}: Company name is required")
            rows_rejected += 1
            continue

        if values["company_name"] not in clients:
            clients[values["company_name"]] = BackupClient(
                inactive=True,
                next_due=compute_next_due([], True, as_of),
                **values,
            )

    return DecodedBackup(
        clients=list(clients.values()),
        errors=errors,
        rows_read=rows_read,
        rows_rejected=rows_rejected,
    )


# =============================================================================
# Persistence
# =============================================================================

def load_backup_data(db: Session, company_id: int):
    """Clients of a company plus their parts and equipment, keyed by client id"""
    clients = db.query(Client).options(
        joinedload(Client.parts).joinedload(ClientPart.part),
        joinedload(Client.equipment)
    ).filter(Client.company_id == company_id).order_by(Client.company_name, Client.id).all()

    parts_by_client = {c.id: list(c.parts) for c in clients}
    equipment_by_client = {c.id: list(c.equipment) for c in clients}
    return clients, parts_by_client, equipment_by_client


def restore_backup(db: Session, company_id: int, decoded: DecodedBackup, as_of: date, skip_existing: bool = True) -> dict:
    """Persist decoded clients; failures are per client and never abort the batch"""
    imported = 0
    skipped = 0
    errors = list(decoded.errors)
    part_cache: Dict[str, object] = {}

    for entry in decoded.clients:
        try:
            if skip_existing and client_service.find_client_by_name(db, company_id, entry.company_name):
                skipped += 1
                continue

            client = client_service.build_client(company_id, entry.client_fields(), as_of)
            db.add(client)
            db.flush()

            for backup_part in entry.parts:
                part = client_service.get_or_create_part(db, company_id, backup_part.name, part_cache)
                db.add(ClientPart(
                    company_id=company_id,
                    client_id=client.id,
                    part_id=part.id,
                    quantity=backup_part.quantity,
                ))

            for backup_equipment in entry.equipment:
                db.add(Equipment(
                    company_id=company_id,
                    client_id=client.id,
                    name=backup_equipment.name,
                    model_number=backup_equipment.model_number,
                    serial_number=backup_equipment.serial_number,
                ))

            db.commit()
            imported += 1
        except ValidationError as e:
            db.rollback()
            part_cache.clear()
            skipped += 1
            errors.append(f"Client '{entry.company_name}': {e}")
        except SQLAlchemyError as e:
            db.rollback()
            part_cache.clear()
            skipped += 1
            logger.error(f"Failed to restore client '{entry.company_name}' for company {company_id}: {e}")
            errors.append(f"Client '{entry.company_name}': failed to save")

    total = len(decoded.clients)
    logger.info(f"Backup restore for company {company_id}: {imported} imported, {skipped} skipped of {total}")

    return {
        "imported": imported,
        "skipped": skipped,
        "total": total,
        "rows_rejected": decoded.rows_rejected,
        "errors": errors,
    }
