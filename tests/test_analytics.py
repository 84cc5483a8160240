from datetime import date
from decimal import Decimal

import pytest

from ledgerlite import db
from ledgerlite.analytics import chart_data, date_range, growth_rate, previous_window
from ledgerlite.exceptions import ValidationError
from ledgerlite.models import Invoice, JournalEntry

TODAY = date(2026, 5, 14)  # a Thursday


def _sale(client, amount, on, description="Sale"):
    response = client.post(
        "/api/transactions",
        json={"type": "income", "amount": amount, "description": description, "customer_name": "Bisi", "date": on},
    )
    assert response.status_code == 201


def _spend(client, amount, on):
    response = client.post(
        "/api/transactions",
        json={"type": "expense", "amount": amount, "description": "Diesel", "vendor": "Total", "date": on},
    )
    assert response.status_code == 201


@pytest.mark.parametrize(
    "period, expected",
    [
        ("today", (TODAY, TODAY, "today")),
        ("week", (date(2026, 5, 10), TODAY, "week")),
        ("month", (date(2026, 5, 1), TODAY, "month")),
        ("quarter", (date(2026, 4, 1), TODAY, "quarter")),
        ("year", (date(2026, 1, 1), TODAY, "year")),
        ("fortnight", (date(2026, 5, 1), TODAY, "month")),
    ],
)
def test_date_range(period, expected):
    assert date_range(period, today=TODAY) == expected


def test_custom_date_range():
    assert date_range(start="2026-01-05", end="2026-02-05") == (date(2026, 1, 5), date(2026, 2, 5), "custom")
    with pytest.raises(ValidationError):
        date_range(start="2026-02-05", end="2026-01-05")
    with pytest.raises(ValidationError):
        date_range(start="2026-02-05")


def test_growth_and_previous_window():
    assert growth_rate(Decimal("150"), Decimal("100")) == 50.0
    assert growth_rate(Decimal("50"), Decimal("0")) == 100.0
    assert growth_rate(Decimal("0"), Decimal("0")) == 0.0
    assert previous_window(date(2026, 5, 1), date(2026, 5, 14)) == (date(2026, 4, 17), date(2026, 4, 30))


def test_chart_is_daily_for_short_windows_and_monthly_for_long_ones():
    flows = [{"date": date(2026, 5, 3), "amount": Decimal("40")}, {"date": date(2026, 5, 3), "amount": Decimal("2")}]
    daily = chart_data(flows, date(2026, 5, 1), date(2026, 5, 14), "month")
    assert len(daily) == 14
    assert daily[2] == {"label": "3", "date": "2026-05-03", "value": Decimal("42")}

    monthly = chart_data(flows, date(2026, 1, 1), date(2026, 5, 14), "year")
    assert [point["label"] for point in monthly] == ["Jan", "Feb", "Mar", "Apr", "May"]
    assert monthly[-1]["value"] == Decimal("42")


def test_revenue_expense_and_profit(client, owner):
    _sale(client, 6000, "2026-05-02")
    _sale(client, 4000, "2026-05-09")
    _sale(client, 5000, "2026-04-20")
    _spend(client, 2500, "2026-05-05")

    window = "start_date=2026-05-01&end_date=2026-05-14"
    revenue = client.get(f"/api/analytics/revenue?{window}").get_json()
    assert revenue["total_revenue"] == 10000.0
    assert revenue["total_transactions"] == 2
    assert revenue["average_order"] == 5000.0
    assert revenue["previous_revenue"] == 5000.0
    assert revenue["growth"] == 100.0
    assert len(revenue["chart_data"]) == 14
    assert revenue["transactions"][0]["amount"] == 4000.0

    expenses = client.get(f"/api/analytics/expenses?{window}").get_json()
    assert expenses["total_expenses"] == 2500.0

    profit = client.get(f"/api/analytics/profit?{window}").get_json()
    assert profit["revenue"] == 10000.0
    assert profit["expenses"] == 2500.0
    assert profit["profit"] == 7500.0
    assert profit["margin"] == 75.0

    bad = client.get("/api/analytics/revenue?start_date=2026-05-14&end_date=2026-05-01")
    assert bad.status_code == 400


def test_reports_follow_the_personal_context(client, owner):
    _sale(client, 6000, "2026-05-02")
    client.post("/api/context", json={"context": "personal"})
    revenue = client.get("/api/analytics/revenue?start_date=2026-05-01&end_date=2026-05-14").get_json()
    assert revenue["total_revenue"] == 0.0


def _invoice(client, on="2026-05-03"):
    return client.post(
        "/api/invoices",
        json={
            "customer_name": "Chidi Stores",
            "invoice_date": on,
            "due_date": "2026-06-30",
            "items": [{"description": "Shelving", "quantity": 1, "unit_price": 8000}],
        },
    ).get_json()["invoice"]


def test_cleanup_analysis(client, app, owner):
    invoice = _invoice(client)
    client.patch(f"/api/invoices/{invoice['id']}", json={"status": "paid"})
    _sale(client, 1000, "2026-05-03")

    # an entry left behind by an invoice removed outside the API
    client.post(
        "/api/journal",
        json={
            "date": "2026-05-07",
            "reference": "ADE-0042",
            "lines": [{"account_code": "1110", "debit": 300}, {"account_code": "4100", "credit": 300}],
        },
    )

    body = client.get("/api/analytics/revenue/cleanup?month=2026-05").get_json()
    assert body["month"] == "2026-05"
    assert body["analysis"]["total_revenue"] == 9300.0
    assert body["analysis"]["total_invoices"] == 1
    assert body["analysis"]["suspicious_dates"] == 1
    assert [row["reference"] for row in body["orphaned_entries"]] == ["ADE-0042"]
    assert {rec["type"] for rec in body["recommendations"]} == {"cleanup_orphaned", "review_duplicates"}

    assert client.get("/api/analytics/revenue/cleanup?month=May").status_code == 400


def test_deleted_invoices_are_not_reported_as_orphans(client, owner):
    invoice = _invoice(client)
    client.patch(f"/api/invoices/{invoice['id']}", json={"status": "paid"})
    client.delete(f"/api/invoices/{invoice['id']}")

    body = client.get("/api/analytics/revenue/cleanup?month=2026-05").get_json()
    assert body["orphaned_entries"] == []


def test_cleanup_orphaned_removes_only_orphans(client, app, owner):
    client.post(
        "/api/journal",
        json={
            "date": "2026-05-07",
            "reference": "ADE-0042",
            "lines": [{"account_code": "1110", "debit": 300}, {"account_code": "4100", "credit": 300}],
        },
    )
    invoice = _invoice(client)
    with app.app_context():
        orphan_id = JournalEntry.query.filter_by(reference="ADE-0042").one().id
        live_id = JournalEntry.query.filter_by(reference=invoice["invoice_number"]).one().id

    response = client.post(
        "/api/analytics/revenue/cleanup",
        json={"action": "cleanup_orphaned", "entry_ids": [orphan_id, live_id]},
    )
    assert response.status_code == 200
    body = response.get_json()
    assert body["deleted_entry_ids"] == [orphan_id]
    assert body["skipped"] == [live_id]

    with app.app_context():
        assert db.session.get(JournalEntry, orphan_id) is None
        assert db.session.get(JournalEntry, live_id) is not None


def test_fix_date_mismatches(client, app, owner):
    invoice = _invoice(client, on="2026-05-03")
    with app.app_context():
        entry = JournalEntry.query.filter_by(reference=invoice["invoice_number"]).one()
        entry.entry_date = date(2026, 5, 20)
        db.session.commit()
        entry_id = entry.id

    body = client.get("/api/analytics/revenue/cleanup?month=2026-05").get_json()
    assert [row["id"] for row in body["date_mismatches"]] == [entry_id]
    assert body["date_mismatches"][0]["expected_date"] == "2026-05-03"

    response = client.post(
        "/api/analytics/revenue/cleanup",
        json={"action": "fix_date_mismatches", "date_corrections": [{"entry_id": entry_id, "new_date": "2026-05-03"}]},
    )
    assert response.get_json()["fixed_entry_ids"] == [entry_id]
    with app.app_context():
        assert db.session.get(JournalEntry, entry_id).entry_date == date(2026, 5, 3)


def test_nuclear_cleanup_needs_confirmation(client, app, owner):
    _invoice(client)
    _sale(client, 1000, "2026-05-03")

    refused = client.post("/api/analytics/revenue/cleanup", json={"action": "nuclear_cleanup"})
    assert refused.status_code == 400
    assert refused.get_json()["error"] == "Invalid action or parameters"

    done = client.post("/api/analytics/revenue/cleanup", json={"action": "nuclear_cleanup", "confirm": True})
    assert done.status_code == 200
    assert done.get_json()["deleted_invoices"] == 1
    assert done.get_json()["deleted_entries"] == 2

    with app.app_context():
        assert JournalEntry.query.count() == 0
        assert Invoice.query.count() == 0

    assert client.post("/api/analytics/revenue/cleanup", json={"action": "cleanup_orphaned"}).status_code == 400


def test_recorded_expenses_and_sales_are_never_orphans(client, app, owner):
    _spend(client, 2500, "2026-05-05")
    _sale(client, 1000, "2026-05-06")
    with app.app_context():
        entry_ids = [entry.id for entry in JournalEntry.query.order_by(JournalEntry.id).all()]

    body = client.get("/api/analytics/revenue/cleanup?month=2026-05").get_json()
    assert body["orphaned_entries"] == []

    response = client.post(
        "/api/analytics/revenue/cleanup",
        json={"action": "cleanup_orphaned", "entry_ids": entry_ids},
    )
    assert response.status_code == 200
    assert response.get_json()["deleted_entry_ids"] == []
    assert response.get_json()["skipped"] == entry_ids

    with app.app_context():
        assert JournalEntry.query.count() == 2


def test_references_from_another_prefix_are_not_orphans(client, owner):
    client.post(
        "/api/journal",
        json={
            "date": "2026-05-07",
            "reference": "XYZ-0042",
            "lines": [{"account_code": "1110", "debit": 300}, {"account_code": "4100", "credit": 300}],
        },
    )
    body = client.get("/api/analytics/revenue/cleanup?month=2026-05").get_json()
    assert body["orphaned_entries"] == []
