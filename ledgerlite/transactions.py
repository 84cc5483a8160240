"""Quick sale and expense recording, and reading the journal back as transactions."""
import re

from sqlalchemy.orm import joinedload, selectinload

from ledgerlite.exceptions import ValidationError
from ledgerlite.invoices import find_or_create_customer
from ledgerlite.ledger import (
    credit,
    debit,
    infer_transaction_type,
    next_reference,
    payment_account,
    post_entry,
    posting_account,
)
from ledgerlite.models import JournalEntry, JournalLine
from ledgerlite.money import to_decimal
from ledgerlite.time_utils import local_today, parse_date

TRANSACTION_TYPES = ("income", "expense")

_CATEGORY_RE = re.compile(r"\s*\[([^\]]+)\]\s*$")
_COUNTERPARTY_RE = re.compile(r"^(Sale to|Expense to)\s+(.+?):\s*(.*)$", re.DOTALL)


def record_transaction(
    company,
    user,
    txn_type,
    amount,
    description,
    txn_date=None,
    category=None,
    customer_name=None,
    vendor=None,
    payment_method=None,
):
    if txn_type not in TRANSACTION_TYPES:
        raise ValidationError("Type must be income or expense")
    try:
        amount = to_decimal(amount)
    except ValueError:
        raise ValidationError("A valid amount is required")
    if amount <= 0:
        raise ValidationError("Amount must be greater than zero")
    description = (description or "").strip()
    if not description:
        raise ValidationError("Description is required")
    entry_date = parse_date(txn_date) or local_today()
    category = (category or "").strip()
    tag = f" [{category}]" if category else ""
    money_account = payment_account(company.id, payment_method)

    if txn_type == "income":
        if not (customer_name or "").strip():
            raise ValidationError("Customer is required for income")
        customer = find_or_create_customer(company.id, customer_name)
        return post_entry(
            company.id,
            next_reference(company.id, "SALE"),
            entry_date,
            f"Sale to {customer.name}: {description}{tag}",
            [
                debit(money_account, amount, description),
                credit(posting_account(company.id, "sales"), amount, description),
            ],
            source="sale",
            created_by=user.id if user else None,
        )

    vendor = (vendor or "").strip()
    if not vendor:
        raise ValidationError("Vendor is required for expenses")
    return post_entry(
        company.id,
        next_reference(company.id, "EXP"),
        entry_date,
        f"Expense to {vendor}: {description}{tag}",
        [
            debit(posting_account(company.id, "expense"), amount, description),
            credit(money_account, amount, description),
        ],
        source="expense",
        created_by=user.id if user else None,
    )


def split_narration(narration, txn_type):
    """Pull ``(counterparty, description, category)`` out of a stored narration."""
    text = (narration or "").strip()
    category = None
    match = _CATEGORY_RE.search(text)
    if match:
        category = match.group(1).strip()
        text = text[: match.start()].rstrip()

    counterparty = None
    match = _COUNTERPARTY_RE.match(text)
    if match:
        counterparty = match.group(2).strip()
        text = match.group(3).strip()

    if not category:
        category = "Sales" if txn_type == "income" else "General"
    return counterparty, text, category


def describe_entry(entry):
    txn_type, amount = infer_transaction_type(entry.lines)
    counterparty, description, category = split_narration(entry.narration, txn_type)
    return {
        "id": entry.id,
        "reference": entry.reference,
        "date": entry.entry_date,
        "type": txn_type,
        "amount": amount,
        "description": description,
        "counterparty": counterparty,
        "category": category,
        "source": entry.source,
        "status": entry.status,
    }


def list_transactions(company_id, txn_type=None, limit=None):
    query = (
        JournalEntry.query.filter_by(company_id=company_id, status="posted")
        .options(selectinload(JournalEntry.lines).joinedload(JournalLine.account))
        .order_by(JournalEntry.entry_date.desc(), JournalEntry.id.desc())
    )
    rows = [describe_entry(entry) for entry in query.all()]
    if txn_type:
        rows = [row for row in rows if row["type"] == txn_type]
    if limit:
        rows = rows[:limit]
    return rows


def entry_with_lines(company_id, entry_id):
    return (
        JournalEntry.query.filter_by(company_id=company_id, id=entry_id)
        .options(joinedload(JournalEntry.lines))
        .first()
    )
