from datetime import date, datetime

import pytest

from pm_scheduler.models import ClientPart, Part
from pm_scheduler.services import clients as client_service
from pm_scheduler.services import reports
from pm_scheduler.services.exceptions import ValidationError

MARCH = 2


@pytest.fixture
def add_filter(db, company):
    def _add(client, quantity, size="20x20"):
        part = Part(company_id=company.id, type="filter", filter_type="Pleated", size=size)
        db.add(part)
        db.flush()
        db.add(ClientPart(company_id=company.id, client_id=client.id, part_id=part.id, quantity=quantity))
        db.commit()

    return _add


@pytest.fixture
def march_clients(db, company, make_client, add_filter):
    acme = make_client(company, "Acme", selected_months=[2, 8])
    globex = make_client(company, "Globex", selected_months=[2])
    initech = make_client(company, "Initech", selected_months=[5])
    retired = make_client(company, "Retired", selected_months=[2], inactive=True)

    client_service.add_client_part(db, company.id, acme.id, "Belt A42", 2)
    add_filter(acme, 4)
    client_service.add_client_part(db, company.id, globex.id, "belt a42", 1)
    add_filter(globex, 6)
    client_service.add_client_part(db, company.id, initech.id, "Belt A42", 10)
    client_service.add_client_part(db, company.id, retired.id, "Belt A42", 100)
    return acme, globex


def _totals(rows):
    return [(row["part"].display_name, row["total_quantity"]) for row in rows]


def test_parts_report_sums_matching_parts_across_due_clients(db, company, march_clients):
    rows = reports.parts_report(db, company.id, MARCH, 2024)

    assert _totals(rows) == [("Pleated Filter 20x20", 10), ("Belt A42", 3)]


def test_parts_report_outstanding_leaves_out_serviced_clients(db, company, march_clients):
    acme, globex = march_clients
    client_service.record_maintenance_completion(
        db, company.id, globex.id, date(2024, 3, 15), datetime(2024, 3, 15, 9, 0)
    )

    outstanding = reports.parts_report(db, company.id, MARCH, 2024, outstanding_only=True)
    assert _totals(outstanding) == [("Pleated Filter 20x20", 4), ("Belt A42", 2)]

    next_year = reports.parts_report(db, company.id, MARCH, 2025, outstanding_only=True)
    assert _totals(next_year) == [("Pleated Filter 20x20", 10), ("Belt A42", 3)]


def test_different_filter_sizes_are_separate_lines(db, company, make_client, add_filter):
    acme = make_client(company, "Acme", selected_months=[2])
    add_filter(acme, 2, size="16x25")
    add_filter(acme, 3, size="20x20")

    rows = reports.parts_report(db, company.id, MARCH, 2024)

    assert sorted(_totals(rows)) == [("Pleated Filter 16x25", 2), ("Pleated Filter 20x20", 3)]


@pytest.mark.parametrize("month", [-1, 12])
def test_reports_reject_month_outside_range(db, company, month):
    with pytest.raises(ValidationError):
        reports.parts_report(db, company.id, month, 2024)
    with pytest.raises(ValidationError):
        reports.schedule_report(db, company.id, month, 2024)


def test_schedule_report_lists_due_clients_with_completion(db, company, march_clients):
    acme, globex = march_clients
    client_service.add_equipment(db, company.id, acme.id, {"name": "RTU-1"})
    client_service.record_maintenance_completion(
        db, company.id, globex.id, date(2024, 3, 15), datetime(2024, 3, 15, 9, 0)
    )

    rows = reports.schedule_report(db, company.id, MARCH, 2024)

    assert [(r["client"].company_name, r["is_completed"]) for r in rows] == [("Acme", False), ("Globex", True)]
    assert [cp.name for cp in rows[0]["parts"]] == ["Belt A42", "Pleated Filter 20x20"]
    assert [e.name for e in rows[0]["equipment"]] == ["RTU-1"]
