"""Invoice lifecycle and the journal entries each step posts."""
import re
from decimal import Decimal

from flask import current_app
from sqlalchemy import func

from ledgerlite import db
from ledgerlite.exceptions import InvalidStatusTransition, NotFound, ValidationError
from ledgerlite.ledger import credit, debit, post_entry, posting_account, reverse_entries
from ledgerlite.models import INVOICE_STATUSES, Company, Customer, Invoice, InvoiceItem
from ledgerlite.money import ZERO, percentage_of, to_decimal
from ledgerlite.time_utils import local_today, parse_date

ALLOWED_TRANSITIONS = {
    "draft": {"sent", "paid", "cancelled"},
    "sent": {"paid", "overdue", "cancelled", "draft"},
    "overdue": {"paid", "sent", "cancelled"},
    "paid": set(),
    "cancelled": set(),
}

OUTSTANDING_STATUSES = ("sent", "overdue")
OPEN_STATUSES = ("draft", "sent", "overdue")


def invoice_prefix(company_name):
    letters = re.sub(r"[^A-Za-z]", "", company_name or "")[:3].upper()
    return letters if len(letters) == 3 else "INV"


def next_invoice_number(company):
    """
    Allocate the next invoice number for ``company``.

    The company row is locked while the counter moves, so two requests never
    get the same number, and the prefix is fixed the first time it is used.
    """
    locked = (
        Company.query.filter_by(id=company.id).with_for_update().populate_existing().one()
    )
    if not locked.invoice_prefix:
        locked.invoice_prefix = invoice_prefix(locked.name)
    locked.invoice_sequence = (locked.invoice_sequence or 0) + 1
    db.session.flush()
    return f"{locked.invoice_prefix}-{locked.invoice_sequence:04d}"


def find_or_create_customer(company_id, name, **details):
    name = (name or "").strip()
    if not name:
        raise ValidationError("Customer name is required")
    customer = Customer.query.filter_by(company_id=company_id, name=name).first()
    if customer:
        return customer
    customer = Customer(company_id=company_id, name=name, **{k: v for k, v in details.items() if v})
    db.session.add(customer)
    db.session.flush()
    return customer


def parse_items(raw_items):
    """Validate the item rows of an invoice payload. Returns ``(items, error)``."""
    if not isinstance(raw_items, list) or not raw_items:
        return None, "At least one item is required"
    items = []
    for index, raw in enumerate(raw_items, start=1):
        if not isinstance(raw, dict):
            return None, f"Item {index} is invalid"
        description = (raw.get("description") or "").strip()
        if not description:
            return None, f"Item {index} needs a description"
        try:
            quantity = to_decimal(raw.get("quantity"), 1)
            unit_price = to_decimal(raw.get("unit_price", raw.get("unitPrice")))
        except ValueError:
            return None, f"Item {index} has an invalid quantity or price"
        if quantity <= 0:
            return None, f"Item {index} quantity must be greater than zero"
        if unit_price < 0:
            return None, f"Item {index} price cannot be negative"
        items.append(
            {
                "description": description,
                "quantity": quantity,
                "unit_price": unit_price,
                "amount": to_decimal(quantity * unit_price),
            }
        )
    return items, None


def create_invoice(
    company,
    user,
    customer_name,
    due_date,
    items,
    include_vat=True,
    invoice_date=None,
    notes=None,
    status="draft",
    customer_details=None,
):
    """
    Create an invoice and post its receivable.

    Revenue is deferred until payment: A/R is debited for the total,
    Deferred Revenue credited for the subtotal and VAT Payable for the VAT.
    """
    due = parse_date(due_date)
    if not due:
        raise ValidationError("A valid due date is required")
    issued = parse_date(invoice_date) or local_today()
    if due < issued:
        raise ValidationError("Due date cannot be before the invoice date")
    if status not in ("draft", "sent"):
        raise ValidationError("New invoices start as draft or sent")
    rows, error = parse_items(items)
    if error:
        raise ValidationError(error)

    customer = find_or_create_customer(company.id, customer_name, **(customer_details or {}))
    vat_rate = Decimal(str(current_app.config.get("VAT_RATE", 7.5))) if include_vat else ZERO
    subtotal = sum((row["amount"] for row in rows), ZERO)
    vat_amount = percentage_of(subtotal, vat_rate) if include_vat else ZERO
    total = subtotal + vat_amount
    if total <= 0:
        raise ValidationError("Invoice total must be greater than zero")

    invoice = Invoice(
        company_id=company.id,
        customer=customer,
        invoice_number=next_invoice_number(company),
        invoice_date=issued,
        due_date=due,
        status=status,
        subtotal=subtotal,
        vat_amount=vat_amount,
        total_amount=total,
        paid_amount=ZERO,
        notes=notes,
        created_by=user.id if user else None,
    )
    sales = posting_account(company.id, "sales")
    for row in rows:
        invoice.items.append(
            InvoiceItem(
                description=row["description"],
                quantity=row["quantity"],
                unit_price=row["unit_price"],
                vat_rate=vat_rate,
                amount=row["amount"],
                account=sales,
            )
        )
    db.session.add(invoice)
    db.session.flush()

    lines = [
        debit(posting_account(company.id, "receivable"), total, "Accounts Receivable"),
        credit(posting_account(company.id, "deferred_revenue"), subtotal, "Deferred Revenue"),
    ]
    if vat_amount > 0:
        lines.append(credit(posting_account(company.id, "vat_payable"), vat_amount, "VAT Payable"))
    post_entry(
        company.id,
        invoice.invoice_number,
        issued,
        f"Invoice {invoice.invoice_number} for {customer.name} (A/R only)",
        lines,
        source="invoice",
        invoice=invoice,
        created_by=invoice.created_by,
    )
    return invoice


def get_invoice(company_id, invoice_id, lock=False):
    query = Invoice.query.filter_by(id=invoice_id, company_id=company_id)
    if lock:
        query = query.with_for_update().populate_existing()
    invoice = query.first()
    if not invoice:
        raise NotFound("Invoice not found")
    return invoice


def _post_payment(invoice, user):
    company_id = invoice.company_id
    total = to_decimal(invoice.total_amount)
    subtotal = to_decimal(invoice.subtotal)
    post_entry(
        company_id,
        f"PAY-{invoice.invoice_number}",
        invoice.invoice_date,
        f"Payment received for invoice {invoice.invoice_number}",
        [
            debit(posting_account(company_id, "cash"), total, "Cash received"),
            credit(posting_account(company_id, "receivable"), total, "Accounts Receivable settled"),
            debit(posting_account(company_id, "deferred_revenue"), subtotal, "Deferred revenue released"),
            credit(posting_account(company_id, "sales"), subtotal, "Sales recognized"),
        ],
        source="invoice_payment",
        invoice=invoice,
        created_by=user.id if user else None,
    )


def change_status(invoice, new_status, user=None):
    """
    Move ``invoice`` to ``new_status`` and post what the transition requires.

    Returns True when the status changed. Re-applying the current status is a
    no-op, so a repeated "mark paid" never posts revenue twice.
    """
    if new_status not in INVOICE_STATUSES:
        raise ValidationError(
            f"Invalid status. Must be one of: {', '.join(INVOICE_STATUSES)}"
        )
    invoice = get_invoice(invoice.company_id, invoice.id, lock=True)
    current = invoice.status
    if new_status == current:
        return False
    if new_status not in ALLOWED_TRANSITIONS.get(current, set()):
        raise InvalidStatusTransition(current, new_status)

    if new_status == "paid":
        invoice.paid_amount = invoice.total_amount
        _post_payment(invoice, user)
    elif new_status == "cancelled":
        reverse_entries(
            invoice.company_id,
            list(invoice.journal_entries),
            f"CAN-{invoice.invoice_number}",
            local_today(),
            f"Invoice {invoice.invoice_number} cancelled",
            source="invoice_reversal",
            invoice=invoice,
            created_by=user.id if user else None,
        )
    invoice.status = new_status
    db.session.flush()
    return True


def delete_invoice(invoice, user=None):
    """
    Delete an invoice after reversing everything it posted.

    The reversal nets the invoice's entries per account, so a paid invoice is
    undone with Cr Cash, Dr Sales and Dr VAT Payable while A/R and Deferred
    Revenue, already settled by the payment, stay untouched. The journal keeps
    the original entries; only their link to the invoice goes away.
    """
    invoice = get_invoice(invoice.company_id, invoice.id, lock=True)
    entries = list(invoice.journal_entries)
    reverse_entries(
        invoice.company_id,
        entries,
        f"DEL-{invoice.invoice_number}",
        local_today(),
        f"Invoice {invoice.invoice_number} deleted",
        source="invoice_reversal",
        created_by=user.id if user else None,
    )
    for entry in entries:
        entry.invoice = None
    db.session.delete(invoice)
    db.session.flush()


def invoice_summary(company_id, status=None, limit=10):
    query = Invoice.query.filter_by(company_id=company_id)
    if status:
        query = query.filter(Invoice.status == status)
    invoices = query.order_by(Invoice.created_at.desc(), Invoice.id.desc()).limit(limit).all()

    outstanding_total = (
        db.session.query(func.coalesce(func.sum(Invoice.total_amount - Invoice.paid_amount), 0))
        .filter(Invoice.company_id == company_id, Invoice.status.in_(OUTSTANDING_STATUSES))
        .scalar()
    )
    total_invoices = Invoice.query.filter_by(company_id=company_id).count()
    open_count = (
        Invoice.query.filter_by(company_id=company_id)
        .filter(Invoice.status.in_(OPEN_STATUSES))
        .count()
    )
    return {
        "invoices": invoices,
        "outstanding_total": to_decimal(outstanding_total, 0),
        "total_invoices": total_invoices,
        "outstanding_invoices_count": open_count,
    }


def mark_overdue(today=None):
    """Flag sent invoices whose due date has passed. Returns how many changed."""
    today = today or local_today()
    overdue = Invoice.query.filter(Invoice.status == "sent", Invoice.due_date < today).all()
    for invoice in overdue:
        invoice.status = "overdue"
    db.session.flush()
    return len(overdue)
