"""Revenue/expense reporting and the revenue cleanup tool."""
import logging
import re
from collections import OrderedDict
from datetime import date, timedelta

from ledgerlite import db
from ledgerlite.exceptions import ValidationError
from ledgerlite.invoices import invoice_prefix
from ledgerlite.models import Account, Company, Invoice, InvoiceItem, JournalEntry, JournalLine
from ledgerlite.money import ZERO, to_decimal
from ledgerlite.time_utils import add_months, local_today, month_start, parse_date

PERIODS = ("today", "week", "month", "quarter", "year", "ytd", "all")
ALL_TIME_START = date(2020, 1, 1)
DAILY_CHART_MAX_DAYS = 31

# posted by flows that never carry an invoice number
NON_INVOICE_SOURCES = ("sale", "expense", "personal_income", "personal_expense", "invoice_reversal", "reversal")


def date_range(period="month", start=None, end=None, today=None):
    """
    Resolve a reporting window to ``(start, end, label)``.

    An explicit ``start``/``end`` pair wins over ``period``. Unknown periods fall
    back to the current month.
    """
    today = today or local_today()
    if start or end:
        start_date, end_date = parse_date(start), parse_date(end)
        if not start_date or not end_date:
            raise ValidationError("start_date and end_date must both be YYYY-MM-DD")
        if end_date < start_date:
            raise ValidationError("end_date cannot be before start_date")
        return start_date, end_date, "custom"

    if period == "today":
        return today, today, period
    if period == "week":
        return today - timedelta(days=(today.weekday() + 1) % 7), today, period
    if period == "quarter":
        return date(today.year, (today.month - 1) // 3 * 3 + 1, 1), today, period
    if period in ("year", "ytd"):
        return date(today.year, 1, 1), today, period
    if period == "all":
        return ALL_TIME_START, today, period
    return month_start(today), today, "month"


def previous_window(start, end):
    length = (end - start).days + 1
    prev_end = start - timedelta(days=1)
    return prev_end - timedelta(days=length - 1), prev_end


def growth_rate(current, previous):
    if previous > 0:
        return round(float((current - previous) / previous * 100), 1)
    if current > 0:
        return 100.0
    return 0.0


def entry_flows(company_id, acc_type, start, end):
    """
    Net amount per journal entry on accounts of ``acc_type`` within a window.

    Revenue nets credits minus debits and expenses debits minus credits, so a
    reversal inside the window cancels what it reverses.
    """
    rows = (
        db.session.query(
            JournalEntry.id,
            JournalEntry.entry_date,
            JournalEntry.reference,
            JournalEntry.narration,
            JournalLine.debit,
            JournalLine.credit,
        )
        .join(JournalLine, JournalLine.entry_id == JournalEntry.id)
        .join(Account, Account.id == JournalLine.account_id)
        .filter(
            JournalEntry.company_id == company_id,
            JournalEntry.status == "posted",
            Account.type == acc_type,
            JournalEntry.entry_date >= start,
            JournalEntry.entry_date <= end,
        )
        .order_by(JournalEntry.entry_date, JournalEntry.id)
        .all()
    )
    flows = OrderedDict()
    for entry_id, entry_date, reference, narration, debit, credit in rows:
        amount = to_decimal(credit, 0) - to_decimal(debit, 0)
        if acc_type != "revenue":
            amount = -amount
        item = flows.setdefault(
            entry_id,
            {"id": entry_id, "date": entry_date, "reference": reference, "narration": narration, "amount": ZERO},
        )
        item["amount"] += amount
    return [item for item in flows.values() if item["amount"] != 0]


def chart_data(flows, start, end, label):
    by_day = {}
    for item in flows:
        by_day[item["date"]] = by_day.get(item["date"], ZERO) + item["amount"]

    days = (end - start).days + 1
    data = []
    if days <= DAILY_CHART_MAX_DAYS:
        for offset in range(days):
            day = start + timedelta(days=offset)
            if label == "week":
                text = day.strftime("%a")
            elif label == "month":
                text = str(day.day)
            else:
                text = f"{day.strftime('%b')} {day.day}"
            data.append({"label": text, "date": day.isoformat(), "value": by_day.get(day, ZERO)})
        return data

    current = month_start(start)
    while current <= end:
        following = add_months(current, 1)
        total = sum(
            (amount for day, amount in by_day.items() if current <= day < following), ZERO
        )
        text = current.strftime("%b") if current.year == end.year else current.strftime("%b %Y")
        data.append({"label": text, "date": current.isoformat(), "value": total})
        current = following
    return data


def flow_report(company_id, acc_type, period="month", start=None, end=None, today=None):
    start_date, end_date, label = date_range(period, start, end, today)
    flows = entry_flows(company_id, acc_type, start_date, end_date)
    prev_start, prev_end = previous_window(start_date, end_date)
    previous = entry_flows(company_id, acc_type, prev_start, prev_end)

    total = sum((item["amount"] for item in flows), ZERO)
    previous_total = sum((item["amount"] for item in previous), ZERO)
    count = len([item for item in flows if item["amount"] > 0])
    return {
        "period": label,
        "start_date": start_date,
        "end_date": end_date,
        "total": total,
        "previous_total": previous_total,
        "growth": growth_rate(total, previous_total),
        "transaction_count": count,
        "average": to_decimal(total / count) if count else ZERO,
        "chart_data": chart_data(flows, start_date, end_date, label),
        "transactions": list(reversed(flows)),
    }


def revenue_report(company_id, period="month", start=None, end=None, today=None):
    return flow_report(company_id, "revenue", period, start, end, today)


def expense_report(company_id, period="month", start=None, end=None, today=None):
    return flow_report(company_id, "expense", period, start, end, today)


def profit_report(company_id, period="month", start=None, end=None, today=None):
    revenue = revenue_report(company_id, period, start, end, today)
    expenses = expense_report(company_id, period, start, end, today)
    profit = revenue["total"] - expenses["total"]
    margin = round(float(profit / revenue["total"] * 100), 1) if revenue["total"] > 0 else 0.0
    return {
        "period": revenue["period"],
        "start_date": revenue["start_date"],
        "end_date": revenue["end_date"],
        "revenue": revenue["total"],
        "expenses": expenses["total"],
        "profit": profit,
        "margin": margin,
        "previous_profit": revenue["previous_total"] - expenses["previous_total"],
    }


# --- revenue cleanup -------------------------------------------------------


def _invoice_number_for(reference, prefix):
    if not reference:
        return None
    number = reference[len("PAY-"):] if reference.startswith("PAY-") else reference
    if re.fullmatch(rf"{re.escape(prefix)}-\d{{4,}}", number):
        return number
    return None


def find_orphaned_entries(company_id, start=None, end=None):
    """
    Entries that point at an invoice number that no longer exists.

    An invoice deleted through the API leaves a ``DEL-<number>`` reversal
    behind; its entries are accounted for and are not reported.
    """
    company = db.session.get(Company, company_id)
    prefix = company.invoice_prefix or invoice_prefix(company.name)
    query = JournalEntry.query.filter_by(company_id=company_id, status="posted").filter(
        JournalEntry.source.notin_(NON_INVOICE_SOURCES)
    )
    if start:
        query = query.filter(JournalEntry.entry_date >= start)
    if end:
        query = query.filter(JournalEntry.entry_date <= end)
    existing = {
        number for (number,) in db.session.query(Invoice.invoice_number).filter_by(company_id=company_id)
    }
    references = {
        ref for (ref,) in db.session.query(JournalEntry.reference).filter_by(company_id=company_id)
    }
    orphaned = []
    for entry in query.order_by(JournalEntry.entry_date, JournalEntry.id).all():
        number = _invoice_number_for(entry.reference, prefix)
        if not number or number in existing or f"DEL-{number}" in references:
            continue
        if entry.reference.startswith("PAY-"):
            reason = f"References deleted invoice {number}"
        else:
            reason = f"References deleted invoice {number} (company format)"
        orphaned.append({"entry": entry, "invoice_number": number, "reason": reason})
    return orphaned


def find_date_mismatches(company_id, start=None, end=None):
    query = (
        db.session.query(JournalEntry, Invoice)
        .join(Invoice, Invoice.id == JournalEntry.invoice_id)
        .filter(
            JournalEntry.company_id == company_id,
            JournalEntry.status == "posted",
            JournalEntry.source.in_(("invoice", "invoice_payment")),
            JournalEntry.entry_date != Invoice.invoice_date,
        )
    )
    if start:
        query = query.filter(JournalEntry.entry_date >= start)
    if end:
        query = query.filter(JournalEntry.entry_date <= end)
    return [
        {
            "entry": entry,
            "invoice_number": invoice.invoice_number,
            "current_date": entry.entry_date,
            "expected_date": invoice.invoice_date,
            "reason": f"Entry date {entry.entry_date} doesn't match invoice date {invoice.invoice_date}",
        }
        for entry, invoice in query.order_by(JournalEntry.entry_date, JournalEntry.id).all()
    ]


def analyze_revenue(company_id, start, end):
    flows = entry_flows(company_id, "revenue", start, end)
    by_date = OrderedDict()
    for item in flows:
        bucket = by_date.setdefault(item["date"], {"date": item["date"], "count": 0, "total": ZERO, "entries": []})
        bucket["count"] += 1
        bucket["total"] += item["amount"]
        bucket["entries"].append(item)

    suspicious = [
        {"date": day, "count": bucket["count"], "total": bucket["total"]}
        for day, bucket in by_date.items()
        if bucket["count"] > 1
    ]
    orphaned = find_orphaned_entries(company_id, start, end)
    mismatches = find_date_mismatches(company_id, start, end)
    invoices = (
        Invoice.query.filter_by(company_id=company_id)
        .filter(Invoice.invoice_date >= start, Invoice.invoice_date <= end)
        .order_by(Invoice.invoice_date)
        .all()
    )

    recommendations = []
    if orphaned:
        recommendations.append(
            {
                "type": "cleanup_orphaned",
                "description": f"Remove {len(orphaned)} orphaned journal entries from deleted invoices",
                "entry_ids": [item["entry"].id for item in orphaned],
            }
        )
    if mismatches:
        recommendations.append(
            {
                "type": "fix_date_mismatches",
                "description": f"Fix {len(mismatches)} journal entries with incorrect dates",
                "details": [
                    f"{item['invoice_number']}: {item['current_date']} -> {item['expected_date']}"
                    for item in mismatches
                ],
            }
        )
    if suspicious:
        recommendations.append(
            {
                "type": "review_duplicates",
                "description": f"Review {len(suspicious)} dates with multiple revenue entries",
                "dates": [item["date"] for item in suspicious],
            }
        )

    return {
        "start_date": start,
        "end_date": end,
        "total_revenue": sum((item["amount"] for item in flows), ZERO),
        "revenue_by_date": list(by_date.values()),
        "invoices": invoices,
        "orphaned": orphaned,
        "date_mismatches": mismatches,
        "suspicious_dates": suspicious,
        "recommendations": recommendations,
    }


def nuclear_cleanup(company_id):
    """Delete every journal entry and invoice of a company. Returns the row counts."""
    entry_ids = [row.id for row in db.session.query(JournalEntry.id).filter_by(company_id=company_id)]
    invoice_ids = [row.id for row in db.session.query(Invoice.id).filter_by(company_id=company_id)]
    counts = {"deleted_lines": 0, "deleted_entries": 0, "deleted_invoice_items": 0, "deleted_invoices": 0}
    if entry_ids:
        counts["deleted_lines"] = JournalLine.query.filter(JournalLine.entry_id.in_(entry_ids)).delete(
            synchronize_session=False
        )
        counts["deleted_entries"] = JournalEntry.query.filter(JournalEntry.id.in_(entry_ids)).delete(
            synchronize_session=False
        )
    if invoice_ids:
        counts["deleted_invoice_items"] = InvoiceItem.query.filter(
            InvoiceItem.invoice_id.in_(invoice_ids)
        ).delete(synchronize_session=False)
        counts["deleted_invoices"] = Invoice.query.filter(Invoice.id.in_(invoice_ids)).delete(
            synchronize_session=False
        )
    db.session.expire_all()
    logging.warning(
        "Nuclear cleanup for company %s removed %s entries and %s invoices",
        company_id,
        counts["deleted_entries"],
        counts["deleted_invoices"],
    )
    return counts


def cleanup_orphaned(company_id, entry_ids):
    if not isinstance(entry_ids, list) or not entry_ids:
        raise ValidationError("Invalid action or parameters")
    orphaned = {item["entry"].id: item["entry"] for item in find_orphaned_entries(company_id)}
    deleted, skipped = [], []
    for raw_id in entry_ids:
        try:
            entry_id = int(raw_id)
        except (TypeError, ValueError):
            skipped.append(raw_id)
            continue
        entry = orphaned.get(entry_id)
        if not entry:
            skipped.append(raw_id)
            continue
        db.session.delete(entry)
        deleted.append(entry_id)
    db.session.flush()
    return deleted, skipped


def fix_date_mismatches(company_id, corrections):
    if not isinstance(corrections, list) or not corrections:
        raise ValidationError("Invalid action or parameters")
    fixed, skipped = [], []
    for item in corrections:
        entry_id = item.get("entry_id") if isinstance(item, dict) else None
        new_date = parse_date(item.get("new_date")) if isinstance(item, dict) else None
        entry = (
            JournalEntry.query.filter_by(company_id=company_id, id=entry_id).first()
            if entry_id and new_date
            else None
        )
        if not entry:
            skipped.append(entry_id)
            continue
        entry.entry_date = new_date
        fixed.append(entry.id)
    db.session.flush()
    return fixed, skipped
