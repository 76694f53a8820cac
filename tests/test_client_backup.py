import io
from datetime import date
from types import SimpleNamespace

from openpyxl import load_workbook

from pm_scheduler.models import Client, ClientPart, Equipment
from pm_scheduler.services import clients as client_service
from pm_scheduler.services.client_backup import (
    BACKUP_COLUMNS,
    decode_backup,
    decode_backup_workbook,
    decode_simple_clients,
    encode_backup,
    encode_backup_workbook,
    load_backup_data,
    restore_backup,
)

AS_OF = date(2024, 3, 20)
HEADER = ",".join(BACKUP_COLUMNS)


def _client(client_id, company_name, selected_months=(2, 8), inactive=False, **fields):
    values = {name: None for name in (
        "location", "address", "city", "province", "postal_code",
        "contact_name", "email", "phone", "roof_ladder_code", "notes",
    )}
    values.update(fields)
    return SimpleNamespace(
        id=client_id,
        company_name=company_name,
        selected_months=list(selected_months),
        inactive=inactive,
        **values,
    )


def _part(name, quantity):
    return SimpleNamespace(name=name, quantity=quantity)


def _equipment(name, model_number=None, serial_number=None):
    return SimpleNamespace(name=name, model_number=model_number, serial_number=serial_number)


def test_header_is_fixed():
    assert HEADER == (
        "Row Type,Company Name,Location,Address,City,Province/State,Postal Code,"
        "Contact Name,Email,Phone,Roof/Ladder Code,Notes,Status,Maintenance Months,"
        "Part Name,Part Quantity,Equipment Name,Model Number,Serial Number"
    )


def test_client_without_parts_or_equipment_is_one_main_row():
    text = encode_backup([_client(1, "Acme")], {}, {})

    lines = text.splitlines()
    assert lines[0] == HEADER
    assert lines[1] == 'MAIN,"Acme",,,,,,,,,,,Active,"Mar, Sep",,,,,'
    assert len(lines) == 2


def test_parts_and_equipment_are_zipped_by_index():
    text = encode_backup(
        [_client(1, "Acme")],
        {1: [_part("Belt A42", 2), _part("Filter 20x20", 6), _part("Coil Cleaner", 1)]},
        {1: [_equipment("RTU-1", "48TC", "SN1")]},
    )

    rows = text.splitlines()[1:]
    assert [r.split(",")[0] for r in rows] == ["MAIN", "ADDITIONAL", "ADDITIONAL"]
    assert rows[0].endswith('"Belt A42",2,"RTU-1","48TC","SN1"')
    assert rows[1].endswith('"Filter 20x20",6,,,')
    assert rows[2].endswith('"Coil Cleaner",1,,,')


def test_free_text_quotes_are_doubled():
    text = encode_backup([_client(1, 'Bob\'s "Best" Diner, Inc', notes="Ring twice")], {}, {})
    assert '"Bob\'s ""Best"" Diner, Inc"' in text

    decoded = decode_backup(text, AS_OF)
    assert decoded.errors == []
    assert decoded.clients[0].company_name == 'Bob\'s "Best" Diner, Inc'
    assert decoded.clients[0].notes == "Ring twice"


def test_inactive_status_round_trips():
    text = encode_backup([_client(1, "Dormant", selected_months=(), inactive=True)], {}, {})
    assert ",Inactive," in text

    entry = decode_backup(text, AS_OF).clients[0]
    assert entry.inactive is True
    assert entry.selected_months == []


def test_rows_for_the_same_company_are_grouped():
    text = "\n".join([
        HEADER,
        'MAIN,"Acme",,,,,,,,,,,Active,"Mar, Sep","Belt A42",2,,,',
        'ADDITIONAL,"Acme",,,,,,,,,,,Active,"Mar, Sep",,,"RTU-1","48TC","SN1"',
    ])

    decoded = decode_backup(text, AS_OF)

    assert decoded.errors == []
    assert len(decoded.clients) == 1
    acme = decoded.clients[0]
    assert acme.company_name == "Acme"
    assert [(p.name, p.quantity) for p in acme.parts] == [("Belt A42", 2)]
    assert [(e.name, e.model_number, e.serial_number) for e in acme.equipment] == [("RTU-1", "48TC", "SN1")]


def test_next_due_is_recomputed_not_read():
    text = "\n".join([HEADER, 'MAIN,"Acme",,,,,,,,,,,Active,"Mar, Sep",,,,,'])
    assert decode_backup(text, AS_OF).clients[0].next_due == date(2024, 9, 15)
    assert decode_backup(text, date(2024, 3, 1)).clients[0].next_due == date(2024, 3, 15)


def test_bad_rows_are_collected_not_fatal():
    text = "\n".join([
        HEADER,
        'MAIN,"  ",,,,,,,,,,,Active,"Mar",,,,,',
        'MAIN,"Globex",,,,,,,,,,,Active,"Mar","Belt",many,"RTU-1",,',
        "",
        'MAIN,"Initech",,,,,,,,,,,Active,"Jun, Smarch",,,,,',
    ])

    decoded = decode_backup(text, AS_OF)

    assert decoded.errors == [
        "Row 2: Company name is required",
        "Row 3: Invalid part quantity 'many', using 1",
    ]
    assert decoded.rows_rejected == 1
    assert [c.company_name for c in decoded.clients] == ["Globex", "Initech"]
    assert decoded.clients[1].selected_months == [5]


def test_unreadable_part_quantity_keeps_client_and_equipment():
    text = "\n".join([HEADER, 'MAIN,"Globex",,,,,,,,,,,Active,"Mar","Belt A42",0,"RTU-1","48TC",'])

    globex = decode_backup(text, AS_OF).clients[0]

    assert [(p.name, p.quantity) for p in globex.parts] == [("Belt A42", 1)]
    assert [(e.name, e.model_number) for e in globex.equipment] == [("RTU-1", "48TC")]


def test_empty_part_quantity_defaults_to_one():
    text = "\n".join([HEADER, 'MAIN,"Acme",,,,,,,,,,,Active,"Mar","Belt",,,,'])
    assert decode_backup(text, AS_OF).clients[0].parts[0].quantity == 1


def test_byte_order_mark_and_short_rows_are_tolerated():
    text = "\ufeff" + HEADER + "\r\n" + 'MAIN,"Acme",Downtown\r\n'

    decoded = decode_backup(text, AS_OF)

    assert decoded.errors == []
    assert decoded.clients[0].location == "Downtown"
    assert decoded.clients[0].selected_months == []


def test_round_trip_preserves_clients_parts_and_equipment():
    clients = [_client(1, "Acme", city="Toronto"), _client(2, "Globex", selected_months=(0,))]
    parts = {1: [_part("Belt A42", 2), _part("Belt A42", 2)]}
    equipment = {2: [_equipment("RTU-1"), _equipment("RTU-2", serial_number="X9")]}

    decoded = decode_backup(encode_backup(clients, parts, equipment), AS_OF)

    by_name = {c.company_name: c for c in decoded.clients}
    assert set(by_name) == {"Acme", "Globex"}
    assert by_name["Acme"].city == "Toronto"
    assert by_name["Acme"].selected_months == [2, 8]
    assert [(p.name, p.quantity) for p in by_name["Acme"].parts] == [("Belt A42", 2), ("Belt A42", 2)]
    assert [e.name for e in by_name["Globex"].equipment] == ["RTU-1", "RTU-2"]
    assert by_name["Globex"].equipment[1].serial_number == "X9"


def test_workbook_has_header_and_rows():
    content = encode_backup_workbook(
        [_client(1, "Acme")], {1: [_part("Belt A42", 2)]}, {}
    )

    ws = load_workbook(io.BytesIO(content)).active
    rows = list(ws.iter_rows(values_only=True))
    assert list(rows[0]) == BACKUP_COLUMNS
    assert rows[1][0] == "MAIN"
    assert rows[1][1] == "Acme"
    assert rows[1][13] == "Mar, Sep"
    assert rows[1][14] == "Belt A42"
    assert rows[1][15] == 2


def test_restore_persists_clients_and_skips_existing(db, company, make_client):
    make_client(company, "Acme")
    text = "\n".join([
        HEADER,
        'MAIN,"acme",,,,,,,,,,,Active,"Mar",,,,,',
        'MAIN,"Globex",,,,,,,,,,,Active,"Jun","Belt A42",3,"RTU-1",,',
        'ADDITIONAL,"Globex",,,,,,,,,,,Active,"Jun","Belt A42",1,,,',
    ])

    result = restore_backup(db, company.id, decode_backup(text, AS_OF), AS_OF)

    assert result == {"imported": 1, "skipped": 1, "total": 2, "rows_rejected": 0, "errors": []}
    globex = db.query(Client).filter(Client.company_name == "Globex").one()
    assert globex.next_due == date(2024, 6, 15)
    assert [cp.quantity for cp in db.query(ClientPart).filter(ClientPart.client_id == globex.id)] == [3, 1]
    assert db.query(Equipment).filter(Equipment.client_id == globex.id).count() == 1


def test_restore_reports_invalid_clients(db, company):
    text = "\n".join([
        HEADER,
        'MAIN,"No Months",,,,,,,,,,,Active,"",,,,,',
        'MAIN,"Fine",,,,,,,,,,,Active,"Mar",,,,,',
    ])

    result = restore_backup(db, company.id, decode_backup(text, AS_OF), AS_OF)

    assert result["imported"] == 1
    assert result["skipped"] == 1
    assert result["errors"] == ["Client 'No Months': Active clients need at least one maintenance month"]


def test_export_of_restored_data_matches(db, company, client):
    client_service.add_client_part(db, company.id, client.id, "Belt A42", 2)
    client_service.add_equipment(db, company.id, client.id, {"name": "RTU-1"})

    clients, parts_by_client, equipment_by_client = load_backup_data(db, company.id)
    text = encode_backup(clients, parts_by_client, equipment_by_client)

    assert text.splitlines()[1] == 'MAIN,"Acme",,,,,,,,,,,Active,"Mar, Sep","Belt A42",2,"RTU-1",,'


def test_simple_company_list_comes_in_inactive():
    text = "\n".join([
        "Company Name,Location,Address,City,Province/State,Postal/Zip,Contact,Phone,Email,Roof/Ladder Code,Notes",
        '"Acme, Ltd",Plant 2,1 Main St,Toronto,ON,M1M 1M1,Ann,555-0100,ann@acme.test,4321,',
        ",Nowhere",
        "Globex",
        "Globex,Second Row",
    ])

    decoded = decode_simple_clients(text, AS_OF)

    assert decoded.errors == ["Row 3: Company name is required"]
    assert decoded.rows_rejected == 1
    assert [c.company_name for c in decoded.clients] == ["Acme, Ltd", "Globex"]
    acme = decoded.clients[0]
    assert (acme.phone, acme.email, acme.roof_ladder_code, acme.notes) == ("555-0100", "ann@acme.test", "4321", None)
    assert acme.inactive is True
    assert acme.selected_months == []
    assert acme.next_due == date(9999, 12, 31)


def test_restore_simple_company_list(db, company):
    text = "Company Name,Location\nAcme,Plant 2\n"

    result = restore_backup(db, company.id, decode_simple_clients(text, AS_OF), AS_OF)

    assert result["imported"] == 1
    acme = db.query(Client).filter(Client.company_name == "Acme").one()
    assert (acme.location, acme.inactive, acme.selected_months) == ("Plant 2", True, [])


def test_workbook_decodes_like_csv():
    clients = [_client(1, "Acme", city="Toronto")]
    parts = {1: [_part("Belt A42", 2)]}
    equipment = {1: [_equipment("RTU-1", serial_number="SN1")]}

    decoded = decode_backup_workbook(encode_backup_workbook(clients, parts, equipment), AS_OF)

    assert decoded.errors == []
    acme = decoded.clients[0]
    assert (acme.company_name, acme.city, acme.selected_months) == ("Acme", "Toronto", [2, 8])
    assert [(p.name, p.quantity) for p in acme.parts] == [("Belt A42", 2)]
    assert [(e.name, e.serial_number) for e in acme.equipment] == [("RTU-1", "SN1")]
