"""
Double-entry posting engine.

Every business event goes through :func:`post_entry`, which checks that the
lines balance before anything reaches the session. Services only flush; the
route that started the unit of work commits once or rolls back, so an entry is
never written without all of its lines.
"""
from collections import OrderedDict
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import event, func
from sqlalchemy.orm import Session

from ledgerlite import db
from ledgerlite.chart_of_accounts import PARENT_CODES
from ledgerlite.exceptions import DuplicatePosting, UnbalancedJournalError, ValidationError
from ledgerlite.models import Account, JournalEntry, JournalLine
from ledgerlite.money import ZERO, to_decimal

# category key -> (code, name, type, stored category)
POSTING_ACCOUNTS = {
    "cash": ("1110", "Cash", "asset", "cash"),
    "bank": ("1120", "Bank Accounts", "asset", "bank"),
    "receivable": ("1130", "Accounts Receivable", "asset", "receivable"),
    "vat_payable": ("2120", "VAT Payable", "liability", "vat_payable"),
    "deferred_revenue": ("2150", "Deferred Revenue", "liability", "deferred_revenue"),
    "sales": ("4100", "Sales Revenue", "revenue", "sales"),
    "expense": ("6430", "General Expenses", "expense", "expense"),
    "personal_cash": ("P-1001", "Personal Cash", "asset", "cash"),
    "personal_bank": ("P-1002", "Personal Bank Account", "asset", "bank"),
}

DEBIT_NORMAL_TYPES = ("asset", "expense")
BANK_PAYMENT_METHODS = ("card", "bank_transfer", "transfer", "pos")


@dataclass(frozen=True)
class PostingLine:
    account: Account
    debit: Decimal = ZERO
    credit: Decimal = ZERO
    description: Optional[str] = None


def debit(account, amount, description=None):
    return PostingLine(account=account, debit=to_decimal(amount), description=description)


def credit(account, amount, description=None):
    return PostingLine(account=account, credit=to_decimal(amount), description=description)


def get_or_create_account(company_id, code, name, acc_type, category=None):
    account = Account.query.filter_by(company_id=company_id, code=code).first()
    if account:
        return account
    parent = None
    parent_code = PARENT_CODES.get(code)
    if parent_code:
        parent = Account.query.filter_by(company_id=company_id, code=parent_code).first()
    account = Account(
        company_id=company_id,
        code=code,
        name=name,
        type=acc_type,
        category=category,
        parent=parent,
    )
    db.session.add(account)
    db.session.flush()
    return account


def posting_account(company_id, key):
    """Resolve the account an event posts to, creating it on first use."""
    try:
        code, name, acc_type, category = POSTING_ACCOUNTS[key]
    except KeyError:
        raise ValueError(f"No posting account configured for '{key}'")
    return get_or_create_account(company_id, code, name, acc_type, category)


def payment_account(company_id, payment_method=None, personal=False):
    is_bank = (payment_method or "").lower() in BANK_PAYMENT_METHODS
    if personal:
        return posting_account(company_id, "personal_bank" if is_bank else "personal_cash")
    return posting_account(company_id, "bank" if is_bank else "cash")


def ensure_balanced(lines):
    total_debit = sum((to_decimal(line.debit, 0) for line in lines), ZERO)
    total_credit = sum((to_decimal(line.credit, 0) for line in lines), ZERO)
    if total_debit != total_credit:
        raise UnbalancedJournalError(total_debit, total_credit)
    return total_debit


def next_reference(company_id, prefix):
    base = f"{prefix}-{datetime.utcnow().strftime('%Y%m%d%H%M%S')}"
    candidate = base
    counter = 1
    while JournalEntry.query.filter_by(company_id=company_id, reference=candidate).first():
        candidate = f"{base}-{counter}"
        counter += 1
    return candidate


def post_entry(
    company_id,
    reference,
    entry_date,
    narration,
    lines,
    source="manual",
    invoice=None,
    created_by=None,
):
    lines = [line for line in lines if line.debit or line.credit]
    if len(lines) < 2:
        raise ValidationError("A journal entry needs at least two non-zero lines")
    for line in lines:
        if line.debit < 0 or line.credit < 0:
            raise ValidationError("Debit and credit amounts cannot be negative")
        if line.debit and line.credit:
            raise ValidationError("A journal line is either a debit or a credit")
        if line.account.company_id != company_id:
            raise ValidationError(f"Account {line.account.code} belongs to another company")
    ensure_balanced(lines)

    if JournalEntry.query.filter_by(company_id=company_id, reference=reference).first():
        raise DuplicatePosting(f"Journal reference {reference} already exists")

    entry = JournalEntry(
        company_id=company_id,
        reference=reference,
        entry_date=entry_date,
        narration=narration,
        status="posted",
        source=source,
        invoice=invoice,
        created_by=created_by,
    )
    for line in lines:
        entry.lines.append(
            JournalLine(
                account=line.account,
                debit=line.debit,
                credit=line.credit,
                description=line.description,
            )
        )
    db.session.add(entry)
    db.session.flush()
    return entry


def reverse_entries(
    company_id,
    entries,
    reference,
    entry_date,
    narration,
    source="reversal",
    invoice=None,
    created_by=None,
):
    """
    Post one entry that cancels the net effect of ``entries``.

    Lines are netted per account first, so accounts the entries already
    settled between themselves do not appear. Returns ``None`` when the
    entries net to zero everywhere.
    """
    net = OrderedDict()
    for entry in entries:
        if entry.status != "posted":
            continue
        for line in entry.lines:
            amount = to_decimal(line.debit, 0) - to_decimal(line.credit, 0)
            net[line.account] = net.get(line.account, ZERO) + amount

    lines = []
    for account, amount in net.items():
        if amount > 0:
            lines.append(credit(account, amount, "Reversal"))
        elif amount < 0:
            lines.append(debit(account, -amount, "Reversal"))
    if not lines:
        return None
    return post_entry(
        company_id,
        reference,
        entry_date,
        narration,
        lines,
        source=source,
        invoice=invoice,
        created_by=created_by,
    )


def natural_balance(acc_type, total_debit, total_credit):
    if acc_type in DEBIT_NORMAL_TYPES:
        return total_debit - total_credit
    return total_credit - total_debit


def account_balances(company_id):
    totals = {
        row.account_id: (to_decimal(row.debit, 0), to_decimal(row.credit, 0))
        for row in db.session.query(
            JournalLine.account_id,
            func.sum(JournalLine.debit).label("debit"),
            func.sum(JournalLine.credit).label("credit"),
        )
        .join(JournalEntry, JournalEntry.id == JournalLine.entry_id)
        .filter(JournalEntry.company_id == company_id, JournalEntry.status == "posted")
        .group_by(JournalLine.account_id)
    }
    rows = []
    for account in Account.query.filter_by(company_id=company_id).order_by(Account.code).all():
        total_debit, total_credit = totals.get(account.id, (ZERO, ZERO))
        rows.append(
            {
                "account": account,
                "debit": total_debit,
                "credit": total_credit,
                "balance": natural_balance(account.type, total_debit, total_credit),
            }
        )
    return rows


def balance_for_code(company_id, code):
    for row in account_balances(company_id):
        if row["account"].code == code:
            return row["balance"]
    return ZERO


def infer_transaction_type(lines):
    """
    Work out whether a journal entry reads as income, expense or something else.

    Returns ``(type, amount)``. Revenue lines netting to a credit make it
    income; expense lines netting to a debit make it an expense; an entry with
    neither that pays money out of an asset account is treated as an expense.
    """
    revenue = [line for line in lines if line.account.type == "revenue"]
    expense = [line for line in lines if line.account.type == "expense"]

    if revenue:
        amount = sum((to_decimal(l.credit, 0) - to_decimal(l.debit, 0) for l in revenue), ZERO)
        if amount > 0:
            return "income", amount
    if expense:
        amount = sum((to_decimal(l.debit, 0) - to_decimal(l.credit, 0) for l in expense), ZERO)
        if amount > 0:
            return "expense", amount
    if not revenue and not expense:
        asset_credit = sum(
            (to_decimal(l.credit, 0) for l in lines if l.account.type == "asset"), ZERO
        )
        if asset_credit > 0:
            return "expense", asset_credit
    return "other", sum((to_decimal(l.debit, 0) for l in lines), ZERO)


@event.listens_for(Session, "before_flush")
def _check_posted_entries_balance(session, flush_context, instances):
    entries = set()
    for obj in list(session.new) + list(session.dirty):
        if isinstance(obj, JournalEntry):
            entries.add(obj)
        elif isinstance(obj, JournalLine) and obj.entry is not None:
            entries.add(obj.entry)
    with session.no_autoflush:
        for entry in entries:
            # column default applies at INSERT, so a new entry may still read None
            if entry in session.deleted or entry.status not in (None, "posted"):
                continue
            lines = [line for line in entry.lines if line not in session.deleted]
            if not lines:
                continue
            ensure_balanced(lines)
