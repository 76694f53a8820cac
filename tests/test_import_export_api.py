import io

from openpyxl import load_workbook

from pm_scheduler.models import ClientPart, Equipment
from pm_scheduler.services import clients as client_service
from pm_scheduler.services.client_backup import BACKUP_COLUMNS

HEADER = ",".join(BACKUP_COLUMNS)


def test_export_csv(api, auth_headers, db, company, client):
    client_service.add_client_part(db, company.id, client.id, "Belt A42", 2)

    response = api.get("/api/import-export/clients/export", headers=auth_headers(company))

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/csv")
    assert "client-backup-" in response.headers["content-disposition"]
    lines = response.text.splitlines()
    assert lines[0] == HEADER
    assert lines[1].startswith('MAIN,"Acme",')
    assert '"Belt A42",2' in lines[1]


def test_export_xlsx(api, auth_headers, company, client):
    response = api.get(
        "/api/import-export/clients/export", params={"format": "xlsx"}, headers=auth_headers(company)
    )

    assert response.status_code == 200
    assert response.headers["content-disposition"].endswith(".xlsx")
    ws = load_workbook(io.BytesIO(response.content)).active
    assert ws.cell(row=2, column=2).value == "Acme"


def test_export_rejects_unknown_format(api, auth_headers, company):
    response = api.get(
        "/api/import-export/clients/export", params={"format": "pdf"}, headers=auth_headers(company)
    )
    assert response.status_code == 422


def test_import_csv(api, auth_headers, company, client):
    csv_text = "\n".join([
        HEADER,
        'MAIN,"Acme",,,,,,,,,,,Active,"Mar",,,,,',
        'MAIN,"Globex",,,,,,,,,,,Active,"Jun","Belt A42",3,"RTU-1",,',
        'MAIN,"",,,,,,,,,,,Active,"Jun",,,,,',
    ])

    response = api.post(
        "/api/import-export/clients/import",
        files={"file": ("backup.csv", csv_text.encode("utf-8"), "text/csv")},
        headers=auth_headers(company),
    )

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["imported"] == 1
    assert body["skipped"] == 1
    assert body["rows_rejected"] == 1
    assert body["errors"] == ["Row 4: Company name is required"]

    names = [c["company_name"] for c in api.get("/api/clients", headers=auth_headers(company)).json()]
    assert names == ["Acme", "Globex"]


def test_import_rejects_unknown_extension(api, auth_headers, company):
    response = api.post(
        "/api/import-export/clients/import",
        files={"file": ("backup.pdf", b"%PDF-1.4", "application/pdf")},
        headers=auth_headers(company),
    )
    assert response.status_code == 400


def test_import_rejects_unreadable_workbook(api, auth_headers, company):
    response = api.post(
        "/api/import-export/clients/import",
        files={"file": ("backup.xlsx", b"not a workbook", "application/octet-stream")},
        headers=auth_headers(company),
    )
    assert response.status_code == 400


def test_xlsx_export_can_be_restored(api, auth_headers, db, company, other_company, client):
    client_service.add_client_part(db, company.id, client.id, "Belt A42", 2)
    client_service.add_equipment(db, company.id, client.id, {"name": "RTU-1", "serial_number": "SN1"})
    exported = api.get(
        "/api/import-export/clients/export", params={"format": "xlsx"}, headers=auth_headers(company)
    )

    response = api.post(
        "/api/import-export/clients/import",
        files={"file": ("backup.xlsx", exported.content, "application/octet-stream")},
        headers=auth_headers(other_company),
    )

    assert response.status_code == 200
    assert response.json()["imported"] == 1
    restored = api.get("/api/clients", headers=auth_headers(other_company)).json()
    assert [(c["company_name"], c["selected_months"]) for c in restored] == [("Acme", [2, 8])]
    restored_id = restored[0]["id"]
    parts = db.query(ClientPart).filter(ClientPart.client_id == restored_id).all()
    assert [(cp.name, cp.quantity) for cp in parts] == [("Belt A42", 2)]
    equipment = db.query(Equipment).filter(Equipment.client_id == restored_id).one()
    assert equipment.serial_number == "SN1"


def test_import_with_no_valid_clients(api, auth_headers, company):
    response = api.post(
        "/api/import-export/clients/import",
        files={"file": ("backup.csv", HEADER.encode("utf-8"), "text/csv")},
        headers=auth_headers(company),
    )

    assert response.status_code == 200
    assert response.json()["success"] is False
    assert response.json()["total"] == 0


def test_import_simple_company_list(api, auth_headers, company, client):
    csv_text = "\n".join([
        "Company Name,Location,Address,City,Province/State,Postal/Zip,Contact,Phone,Email,Roof/Ladder Code,Notes",
        "Globex,Plant 2,,Springfield,,,,555-0100,,,",
        "Acme,,,,,,,,,,",
    ])

    response = api.post(
        "/api/clients/import-simple",
        files={"file": ("companies.csv", csv_text.encode("utf-8"), "text/csv")},
        headers=auth_headers(company),
    )

    assert response.status_code == 200
    body = response.json()
    assert (body["success"], body["imported"], body["skipped"], body["total"]) == (True, 1, 1, 2)
    globex = api.get("/api/clients", params={"include_inactive": True}, headers=auth_headers(company)).json()[1]
    assert (globex["company_name"], globex["inactive"], globex["phone"]) == ("Globex", True, "555-0100")
    assert globex["next_due"] == "9999-12-31"


def test_import_simple_rejects_non_csv(api, auth_headers, company):
    response = api.post(
        "/api/clients/import-simple",
        files={"file": ("companies.xlsx", b"PK", "application/octet-stream")},
        headers=auth_headers(company),
    )
    assert response.status_code == 400
