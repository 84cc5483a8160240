import logging
from io import BytesIO

import pandas as pd
from flask import Blueprint, current_app, g, jsonify, make_response, request
from flask_wtf.csrf import generate_csrf
from sqlalchemy.exc import IntegrityError

from ledgerlite import csrf, db
from ledgerlite.analytics import (
    analyze_revenue,
    cleanup_orphaned,
    expense_report,
    fix_date_mismatches,
    nuclear_cleanup,
    profit_report,
    revenue_report,
)
from ledgerlite.auth import (
    PERMISSIONS,
    check_otp,
    clear_session_cookie,
    company_required,
    end_session,
    get_current_session,
    get_current_user,
    issue_otp,
    login_required,
    login_user,
    permission_required,
    set_session_cookie,
    user_permissions,
)
from ledgerlite.categories import (
    BUDGET_PRESETS,
    PERSONAL_EXPENSE_CATEGORIES,
    PERSONAL_INCOME_CATEGORIES,
    category_groups,
)
from ledgerlite.chart_of_accounts import create_account, seed_accounts
from ledgerlite.exceptions import (
    CompanyRequired,
    DuplicatePosting,
    LedgerError,
    PermissionDenied,
    ValidationError,
)
from ledgerlite.forms import (
    CURRENCY_SYMBOLS,
    BudgetForm,
    CompanyForm,
    CompanyUpdateForm,
    ContextForm,
    CustomerForm,
    InvoiceForm,
    InvoiceStatusForm,
    JournalForm,
    PersonalExpenseForm,
    PersonalIncomeForm,
    SendOtpForm,
    TransactionForm,
    UserUpdateForm,
    VerifyOtpForm,
    first_error,
)
from ledgerlite.invoices import change_status, create_invoice, delete_invoice, get_invoice, invoice_summary
from ledgerlite.ledger import PostingLine, account_balances, next_reference, post_entry
from ledgerlite.models import Account, Company, CompanyUser, Customer, Invoice, JournalEntry
from ledgerlite.money import money, to_decimal
from ledgerlite.personal import (
    current_budget,
    ensure_personal_company,
    record_personal_expense,
    record_personal_income,
    save_budget,
)
from ledgerlite.time_utils import local_today, parse_date, parse_month
from ledgerlite.transactions import describe_entry, list_transactions, record_transaction

bp = Blueprint("main", __name__)

SYNC_TYPES = ("accounts", "journalEntries", "invoices", "expenses", "customers")

# same permission the matching direct route asks for
SYNC_PERMISSIONS = {
    "accounts": PERMISSIONS["MANAGE_ACCOUNTS"],
    "journalEntries": PERMISSIONS["CREATE_JOURNAL"],
    "invoices": PERMISSIONS["CREATE_INVOICE"],
    "expenses": PERMISSIONS["CREATE_EXPENSE"],
}


# --- helpers ---------------------------------------------------------------


def _error(message, status=400):
    return jsonify({"error": message}), status


def _json_body():
    payload = request.get_json(silent=True)
    return payload if isinstance(payload, dict) else {}


def _parse_int_param(name, default=None, minimum=1, maximum=500):
    raw = request.args.get(name)
    if raw is None or raw == "":
        return default
    try:
        value = int(raw)
    except (TypeError, ValueError):
        raise ValidationError(f"{name} must be a whole number")
    return max(minimum, min(value, maximum))


def _iso(value):
    return value.isoformat() if value else None


def _require_permission(user, company, permission):
    if company.is_personal:
        return
    if permission not in user_permissions(user, company.id):
        raise PermissionDenied()


def _current_context():
    auth_session = get_current_session()
    return auth_session.context if auth_session else "business"


def _context_company(user):
    """The company the signed-in user is working in: their business or their personal ledger."""
    if _current_context() == "personal":
        return ensure_personal_company(user)
    company = db.session.get(Company, user.company_id) if user.company_id else None
    if not company:
        raise CompanyRequired()
    return company


def _personal_company(user):
    if _current_context() != "personal":
        raise ValidationError("This action is only available in personal context")
    return ensure_personal_company(user)


def _serialize_user(user):
    return {
        "id": user.id,
        "phone_number": user.phone_number,
        "country_code": user.country_code,
        "name": user.name,
        "email": user.email,
        "role": user.role,
        "company_id": user.company_id,
        "last_login_at": _iso(user.last_login_at),
    }


def _serialize_company(company):
    return {
        "id": company.id,
        "name": company.name,
        "currency": company.currency,
        "currency_symbol": company.currency_symbol,
        "financial_year_start": company.financial_year_start,
        "phone": company.phone,
        "email": company.email,
        "address": company.address,
        "website": company.website,
        "tax_number": company.tax_number,
        "is_personal": company.is_personal,
        "created_at": _iso(company.created_at),
    }


def _serialize_customer(customer):
    return {
        "id": customer.id,
        "name": customer.name,
        "email": customer.email,
        "phone": customer.phone,
        "address": customer.address,
        "tax_number": customer.tax_number,
        "balance": money(customer.balance),
    }


def _serialize_invoice(invoice, with_items=False):
    data = {
        "id": invoice.id,
        "invoice_number": invoice.invoice_number,
        "customer_id": invoice.customer_id,
        "customer_name": invoice.customer.name if invoice.customer else None,
        "invoice_date": _iso(invoice.invoice_date),
        "due_date": _iso(invoice.due_date),
        "status": invoice.status,
        "subtotal": money(invoice.subtotal),
        "vat_amount": money(invoice.vat_amount),
        "total_amount": money(invoice.total_amount),
        "paid_amount": money(invoice.paid_amount),
        "outstanding": money(invoice.outstanding),
        "notes": invoice.notes,
        "created_at": _iso(invoice.created_at),
    }
    if with_items:
        data["items"] = [
            {
                "id": item.id,
                "description": item.description,
                "quantity": money(item.quantity),
                "unit_price": money(item.unit_price),
                "vat_rate": money(item.vat_rate),
                "amount": money(item.amount),
            }
            for item in invoice.items
        ]
        data["journal_entries"] = [
            {"id": entry.id, "reference": entry.reference, "source": entry.source}
            for entry in invoice.journal_entries
        ]
    return data


def _serialize_entry(entry):
    return {
        "id": entry.id,
        "reference": entry.reference,
        "entry_date": _iso(entry.entry_date),
        "narration": entry.narration,
        "status": entry.status,
        "source": entry.source,
        "invoice_id": entry.invoice_id,
        "total_debit": money(entry.total_debit),
        "total_credit": money(entry.total_credit),
        "lines": [
            {
                "id": line.id,
                "account_id": line.account_id,
                "account_code": line.account.code,
                "account_name": line.account.name,
                "description": line.description,
                "debit": money(line.debit),
                "credit": money(line.credit),
            }
            for line in entry.lines
        ],
    }


def _serialize_transaction(row):
    return dict(row, date=_iso(row["date"]), amount=money(row["amount"]))


def _serialize_budget(budget):
    return {
        "id": budget.id,
        "total_income": money(budget.total_income),
        "budget_type": budget.budget_type,
        "period": budget.period,
        "budgets": budget.budgets,
        "status": budget.status,
        "created_at": _iso(budget.created_at),
        "updated_at": _iso(budget.updated_at),
    }


def _serialize_report(report):
    data = {key: value for key, value in report.items() if key not in ("chart_data", "transactions")}
    for key, value in data.items():
        if hasattr(value, "isoformat"):
            data[key] = value.isoformat()
        elif key not in ("growth", "margin", "transaction_count", "period"):
            data[key] = money(value)
    if "chart_data" in report:
        data["chart_data"] = [dict(point, value=money(point["value"])) for point in report["chart_data"]]
    if "transactions" in report:
        data["transactions"] = [
            dict(item, date=_iso(item["date"]), amount=money(item["amount"])) for item in report["transactions"]
        ]
    return data


def _excel_response(rows, filename):
    df = pd.DataFrame(rows)
    output = BytesIO()
    with pd.ExcelWriter(output, engine="openpyxl") as writer:
        df.to_excel(writer, index=False)
    output.seek(0)

    response = make_response(output.read())
    response.headers["Content-Disposition"] = f"attachment; filename={filename}"
    response.headers["Content-Type"] = (
        "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
    )
    return response


def _parse_journal_lines(company_id, raw_lines):
    """Validate manual journal lines. Returns ``(lines, error)``."""
    if not isinstance(raw_lines, list) or len(raw_lines) < 2:
        return None, "At least two journal lines (debit/credit) are required"
    lines = []
    for idx, raw in enumerate(raw_lines, start=1):
        if not isinstance(raw, dict):
            return None, f"Line {idx} is invalid"
        code = str(raw.get("account_code") or "").strip()
        account = None
        if code:
            account = Account.query.filter_by(company_id=company_id, code=code).first()
        elif raw.get("account_id"):
            try:
                account = Account.query.filter_by(company_id=company_id, id=int(raw["account_id"])).first()
            except (TypeError, ValueError):
                account = None
        if not account:
            return None, f"Account not found (line {idx})"
        try:
            debit = to_decimal(raw.get("debit"), 0)
            credit = to_decimal(raw.get("credit"), 0)
        except ValueError:
            return None, f"Invalid amount (line {idx})"
        if debit < 0 or credit < 0:
            return None, f"Debit/credit cannot be negative (line {idx})"
        if debit == 0 and credit == 0:
            return None, f"Enter either a debit or a credit (line {idx})"
        if debit > 0 and credit > 0:
            return None, f"Debit and credit cannot both be filled (line {idx})"
        lines.append(
            PostingLine(
                account=account,
                debit=debit,
                credit=credit,
                description=(raw.get("description") or "").strip() or None,
            )
        )
    return lines, None


def _post_manual_entry(company, user, payload):
    form_date = parse_date(payload.get("date"))
    if not form_date:
        raise ValidationError("A valid date is required")
    lines, error = _parse_journal_lines(company.id, payload.get("lines"))
    if error:
        raise ValidationError(error)
    reference = (payload.get("reference") or "").strip() or next_reference(company.id, "JV")
    return post_entry(
        company.id,
        reference,
        form_date,
        (payload.get("narration") or "").strip() or None,
        lines,
        source="manual",
        created_by=user.id,
    )


# --- auth ------------------------------------------------------------------


@bp.route("/api/csrf-token", methods=["GET"])
def csrf_token():
    return jsonify({"csrf_token": generate_csrf()})


@bp.route("/api/auth/send-otp", methods=["POST"])
@csrf.exempt
def send_otp():
    form = SendOtpForm()
    if not form.validate():
        return _error(first_error(form))
    try:
        phone, code, is_new_user = issue_otp(form.phone_number.data)
        db.session.commit()
    except ValidationError as exc:
        db.session.rollback()
        return _error(exc.message)
    except Exception:
        db.session.rollback()
        logging.exception("Failed to send OTP")
        return _error("Failed to send OTP. Please try again.", 500)

    body = {
        "success": True,
        "message": "OTP sent successfully",
        "phone_number": phone,
        "is_new_user": is_new_user,
    }
    if current_app.config.get("OTP_EXPOSE_CODE"):
        body["otp"] = code
    return jsonify(body)


@bp.route("/api/auth/verify-otp", methods=["POST"])
@csrf.exempt
def verify_otp():
    form = VerifyOtpForm()
    if not form.validate():
        return _error(first_error(form))
    try:
        phone = check_otp(form.phone_number.data, form.code.data)
    except ValidationError as exc:
        # keep the failed attempt on record
        db.session.commit()
        return _error(exc.message)

    try:
        user, auth_session = login_user(
            phone,
            name=(form.name.data or "").strip() or None,
            email=(form.email.data or "").strip() or None,
            device_info=request.user_agent.string,
        )
        db.session.commit()
    except Exception:
        db.session.rollback()
        logging.exception("Failed to complete login")
        return _error("Internal server error", 500)

    response = jsonify({"success": True, "message": "Login successful", "user": _serialize_user(user)})
    return set_session_cookie(response, auth_session)


@bp.route("/api/auth/logout", methods=["POST"])
def logout():
    try:
        end_session()
        db.session.commit()
    except Exception:
        db.session.rollback()
        logging.exception("Failed to end session")
        return _error("Logout failed", 500)
    return clear_session_cookie(jsonify({"success": True, "message": "Logged out"}))


# --- user, company, context ------------------------------------------------


@bp.route("/api/user", methods=["GET"])
@login_required
def current_user_api():
    user = get_current_user()
    company = db.session.get(Company, user.company_id) if user.company_id else None
    return jsonify(
        {
            "success": True,
            "user": _serialize_user(user),
            "company": _serialize_company(company) if company else None,
        }
    )


@bp.route("/api/user/update", methods=["PUT"])
@login_required
def update_user():
    form = UserUpdateForm()
    if not form.validate():
        return _error(first_error(form))
    user = get_current_user()
    try:
        user.name = form.name.data.strip()
        user.email = (form.email.data or "").strip() or None
        db.session.commit()
    except Exception:
        db.session.rollback()
        logging.exception("Failed to update user")
        return _error("Failed to update profile", 500)
    return jsonify({"success": True, "user": _serialize_user(user)})


@bp.route("/api/company", methods=["GET"])
@company_required
def company_detail():
    return jsonify({"success": True, "company": _serialize_company(g.company)})


@bp.route("/api/company/setup", methods=["POST"])
@login_required
def company_setup():
    user = get_current_user()
    if user.company_id:
        return _error("User already has a company")
    form = CompanyForm()
    if not form.validate():
        return _error(first_error(form))

    currency = form.currency.data or "NGN"
    try:
        company = Company(
            owner_id=user.id,
            name=form.name.data.strip(),
            currency=currency,
            currency_symbol=CURRENCY_SYMBOLS[currency],
            financial_year_start=form.financial_year_start.data or 1,
            phone=form.phone.data or None,
            email=form.email.data or None,
            address=form.address.data or None,
            website=form.website.data or None,
            tax_number=form.tax_number.data or None,
        )
        db.session.add(company)
        db.session.flush()
        db.session.add(
            CompanyUser(
                company_id=company.id,
                user_id=user.id,
                role="owner",
                permissions=sorted(PERMISSIONS.values()),
            )
        )
        seed_accounts(company.id)
        user.company_id = company.id
        user.role = "owner"
        db.session.commit()
    except Exception:
        db.session.rollback()
        logging.exception("Failed to set up company")
        return _error("Failed to create company", 500)
    return jsonify({"success": True, "company": _serialize_company(company)}), 201


@bp.route("/api/company/update", methods=["PUT"])
@permission_required(PERMISSIONS["MANAGE_COMPANY"])
def company_update():
    payload = _json_body()
    form = CompanyUpdateForm()
    if not form.validate():
        return _error(first_error(form))
    company = g.company
    try:
        for field in ("name", "phone", "email", "address", "website", "tax_number"):
            if field in payload:
                value = getattr(form, field).data
                setattr(company, field, value.strip() if isinstance(value, str) and value.strip() else None)
        if not company.name:
            raise ValidationError("Company name is required")
        if payload.get("currency"):
            company.currency = form.currency.data
            company.currency_symbol = CURRENCY_SYMBOLS[form.currency.data]
        if payload.get("financial_year_start"):
            company.financial_year_start = form.financial_year_start.data
        db.session.commit()
    except LedgerError as exc:
        db.session.rollback()
        return _error(exc.message, exc.status_code)
    except Exception:
        db.session.rollback()
        logging.exception("Failed to update company")
        return _error("Failed to update company", 500)
    return jsonify({"success": True, "company": _serialize_company(company)})


@bp.route("/api/context", methods=["GET"])
@login_required
def context_detail():
    user = get_current_user()
    context = _current_context()
    company_id = user.personal_company_id if context == "personal" else user.company_id
    return jsonify(
        {
            "success": True,
            "context": context,
            "company_id": company_id,
            "has_business": bool(user.company_id),
            "has_personal": bool(user.personal_company_id),
        }
    )


@bp.route("/api/context", methods=["POST"])
@login_required
def switch_context():
    form = ContextForm()
    if not form.validate():
        return _error(first_error(form))
    user = get_current_user()
    auth_session = get_current_session()
    context = form.context.data
    try:
        if context == "business":
            if not user.company_id:
                raise CompanyRequired("Set up a business before switching to business context")
            company_id = user.company_id
        else:
            company_id = ensure_personal_company(user).id
        auth_session.context = context
        db.session.commit()
    except LedgerError as exc:
        db.session.rollback()
        return _error(exc.message, exc.status_code)
    except Exception:
        db.session.rollback()
        logging.exception("Failed to switch context")
        return _error("Failed to switch context", 500)
    return jsonify({"success": True, "context": context, "company_id": company_id})


# --- customers and accounts ------------------------------------------------


@bp.route("/api/customers", methods=["GET"])
@company_required
def customers_list():
    limit = _parse_int_param("limit", current_app.config.get("CUSTOMER_LIST_LIMIT", 50))
    customers = (
        Customer.query.filter_by(company_id=g.company.id).order_by(Customer.name).limit(limit).all()
    )
    return jsonify({"success": True, "customers": [_serialize_customer(c) for c in customers]})


def _create_customer(company_id, data):
    name = (data.get("name") or "").strip()
    if not name:
        raise ValidationError("Customer name is required")
    if Customer.query.filter_by(company_id=company_id, name=name).first():
        raise DuplicatePosting(f"Customer {name} already exists")
    customer = Customer(
        company_id=company_id,
        name=name,
        email=data.get("email") or None,
        phone=data.get("phone") or None,
        address=data.get("address") or None,
        tax_number=data.get("tax_number") or None,
    )
    db.session.add(customer)
    db.session.flush()
    return customer


@bp.route("/api/customers", methods=["POST"])
@company_required
def customers_create():
    form = CustomerForm()
    if not form.validate():
        return _error(first_error(form))
    try:
        customer = _create_customer(g.company.id, form.data)
        db.session.commit()
    except LedgerError as exc:
        db.session.rollback()
        return _error(exc.message, exc.status_code)
    except Exception:
        db.session.rollback()
        logging.exception("Failed to create customer")
        return _error("Failed to create customer", 500)
    return jsonify({"success": True, "customer": _serialize_customer(customer)}), 201


@bp.route("/api/accounts", methods=["GET"])
@login_required
def accounts_list():
    company = _context_company(get_current_user())
    rows = account_balances(company.id)
    return jsonify(
        {
            "success": True,
            "accounts": [
                {
                    "id": row["account"].id,
                    "code": row["account"].code,
                    "name": row["account"].name,
                    "type": row["account"].type,
                    "category": row["account"].category,
                    "parent_id": row["account"].parent_id,
                    "is_active": row["account"].is_active,
                    "debit": money(row["debit"]),
                    "credit": money(row["credit"]),
                    "balance": money(row["balance"]),
                }
                for row in rows
            ],
        }
    )


@bp.route("/api/accounts", methods=["POST"])
@permission_required(PERMISSIONS["MANAGE_ACCOUNTS"])
def accounts_create():
    try:
        account = create_account(g.company.id, _json_body())
        db.session.commit()
    except LedgerError as exc:
        db.session.rollback()
        return _error(exc.message, exc.status_code)
    except Exception:
        db.session.rollback()
        logging.exception("Failed to create account")
        return _error("Failed to create account", 500)
    return jsonify({"success": True, "account": {"id": account.id, "code": account.code, "name": account.name}}), 201


# --- journal ---------------------------------------------------------------


@bp.route("/api/journal", methods=["GET"])
@login_required
def journal_list():
    company = _context_company(get_current_user())
    limit = _parse_int_param("limit", 50)
    entries = (
        JournalEntry.query.filter_by(company_id=company.id)
        .order_by(JournalEntry.entry_date.desc(), JournalEntry.id.desc())
        .limit(limit)
        .all()
    )
    return jsonify({"success": True, "entries": [_serialize_entry(entry) for entry in entries]})


@bp.route("/api/journal/<int:entry_id>", methods=["GET"])
@login_required
def journal_detail(entry_id):
    company = _context_company(get_current_user())
    entry = JournalEntry.query.filter_by(company_id=company.id, id=entry_id).first()
    if not entry:
        return _error("Journal entry not found", 404)
    return jsonify({"success": True, "entry": _serialize_entry(entry)})


@bp.route("/api/journal", methods=["POST"])
@permission_required(PERMISSIONS["CREATE_JOURNAL"])
def journal_create():
    if not request.is_json:
        return _error("Send a JSON payload", 415)
    form = JournalForm()
    if not form.validate():
        return _error(first_error(form))
    try:
        entry = _post_manual_entry(g.company, get_current_user(), _json_body())
        db.session.commit()
    except LedgerError as exc:
        db.session.rollback()
        return _error(exc.message, exc.status_code)
    except Exception:
        db.session.rollback()
        logging.exception("Failed to save journal entry")
        return _error("Failed to save journal entry", 500)
    return jsonify({"success": True, "entry": _serialize_entry(entry)}), 201


# --- invoices --------------------------------------------------------------


@bp.route("/api/invoices", methods=["POST"])
@permission_required(PERMISSIONS["CREATE_INVOICE"])
def invoices_create():
    payload = _json_body()
    form = InvoiceForm()
    if not form.validate():
        return _error(first_error(form))
    include_vat = payload.get("include_vat", True)
    if not isinstance(include_vat, bool):
        return _error("include_vat must be true or false")
    try:
        invoice = create_invoice(
            g.company,
            get_current_user(),
            form.customer_name.data,
            form.due_date.data,
            payload.get("items"),
            include_vat=include_vat,
            invoice_date=form.invoice_date.data,
            notes=form.notes.data or None,
            status=form.status.data or "draft",
            customer_details={"email": form.customer_email.data, "phone": form.customer_phone.data},
        )
        db.session.commit()
    except LedgerError as exc:
        db.session.rollback()
        return _error(exc.message, exc.status_code)
    except IntegrityError:
        db.session.rollback()
        logging.exception("Invoice number collision")
        return _error("Invoice could not be numbered, please retry", 409)
    except Exception:
        db.session.rollback()
        logging.exception("Failed to create invoice")
        return _error("Failed to create invoice", 500)
    return jsonify({"success": True, "invoice": _serialize_invoice(invoice, with_items=True)}), 201


@bp.route("/api/invoices", methods=["GET"])
@company_required
def invoices_list():
    status = request.args.get("status") or None
    limit = _parse_int_param("limit", current_app.config.get("DEFAULT_LIST_LIMIT", 10))
    summary = invoice_summary(g.company.id, status=status, limit=limit)
    return jsonify(
        {
            "success": True,
            "invoices": [_serialize_invoice(invoice) for invoice in summary["invoices"]],
            "outstanding_total": money(summary["outstanding_total"]),
            "total_invoices": summary["total_invoices"],
            "outstanding_invoices_count": summary["outstanding_invoices_count"],
        }
    )


@bp.route("/api/invoices/<int:invoice_id>", methods=["GET"])
@company_required
def invoices_detail(invoice_id):
    invoice = get_invoice(g.company.id, invoice_id)
    return jsonify({"success": True, "invoice": _serialize_invoice(invoice, with_items=True)})


@bp.route("/api/invoices/<int:invoice_id>", methods=["PATCH"])
@permission_required(PERMISSIONS["EDIT_INVOICE"])
def invoices_update_status(invoice_id):
    form = InvoiceStatusForm()
    if not form.validate():
        return _error(first_error(form))
    try:
        invoice = get_invoice(g.company.id, invoice_id)
        changed = change_status(invoice, form.status.data, get_current_user())
        db.session.commit()
    except LedgerError as exc:
        db.session.rollback()
        return _error(exc.message, exc.status_code)
    except IntegrityError:
        db.session.rollback()
        logging.warning("Concurrent status update on invoice %s", invoice_id)
        return _error("Invoice was updated by another request", 409)
    except Exception:
        db.session.rollback()
        logging.exception("Failed to update invoice %s", invoice_id)
        return _error("Failed to update invoice", 500)
    return jsonify({"success": True, "changed": changed, "invoice": _serialize_invoice(invoice, with_items=True)})


@bp.route("/api/invoices/<int:invoice_id>", methods=["DELETE"])
@permission_required(PERMISSIONS["DELETE_INVOICE"])
def invoices_delete(invoice_id):
    try:
        invoice = get_invoice(g.company.id, invoice_id)
        number = invoice.invoice_number
        delete_invoice(invoice, get_current_user())
        db.session.commit()
    except LedgerError as exc:
        db.session.rollback()
        return _error(exc.message, exc.status_code)
    except Exception:
        db.session.rollback()
        logging.exception("Failed to delete invoice %s", invoice_id)
        return _error("Failed to delete invoice", 500)
    return jsonify({"success": True, "message": f"Invoice {number} deleted"})


@bp.route("/api/invoices/export", methods=["GET"])
@permission_required(PERMISSIONS["EXPORT_REPORTS"])
def invoices_export():
    invoices = Invoice.query.filter_by(company_id=g.company.id).order_by(Invoice.invoice_date).all()
    rows = [
        {
            "Invoice Number": invoice.invoice_number,
            "Customer": invoice.customer.name if invoice.customer else "",
            "Invoice Date": _iso(invoice.invoice_date),
            "Due Date": _iso(invoice.due_date),
            "Status": invoice.status,
            "Subtotal": money(invoice.subtotal),
            "VAT": money(invoice.vat_amount),
            "Total": money(invoice.total_amount),
            "Paid": money(invoice.paid_amount),
        }
        for invoice in invoices
    ]
    return _excel_response(rows, "invoices.xlsx")


# --- transactions ----------------------------------------------------------


@bp.route("/api/transactions", methods=["POST"])
@company_required
def transactions_create():
    form = TransactionForm()
    if not form.validate():
        return _error(first_error(form))
    user = get_current_user()
    needed = PERMISSIONS["CREATE_EXPENSE"] if form.type.data == "expense" else PERMISSIONS["CREATE_JOURNAL"]
    _require_permission(user, g.company, needed)
    try:
        entry = record_transaction(
            g.company,
            user,
            form.type.data,
            form.amount.data,
            form.description.data,
            txn_date=form.date.data,
            category=form.category.data,
            customer_name=form.customer_name.data,
            vendor=form.vendor.data,
            payment_method=form.payment_method.data,
        )
        db.session.commit()
    except LedgerError as exc:
        db.session.rollback()
        return _error(exc.message, exc.status_code)
    except Exception:
        db.session.rollback()
        logging.exception("Failed to record transaction")
        return _error("Failed to record transaction", 500)
    return jsonify({"success": True, "transaction": _serialize_transaction(describe_entry(entry))}), 201


@bp.route("/api/transactions", methods=["GET"])
@login_required
def transactions_list():
    company = _context_company(get_current_user())
    txn_type = request.args.get("type") or None
    if txn_type and txn_type not in ("income", "expense", "other"):
        return _error("type must be income, expense or other")
    limit = _parse_int_param("limit", 50)
    rows = list_transactions(company.id, txn_type=txn_type, limit=limit)
    return jsonify({"success": True, "transactions": [_serialize_transaction(row) for row in rows]})


@bp.route("/api/transactions/export", methods=["GET"])
@login_required
def transactions_export():
    user = get_current_user()
    company = _context_company(user)
    _require_permission(user, company, PERMISSIONS["EXPORT_REPORTS"])
    rows = [
        {
            "Date": _iso(row["date"]),
            "Reference": row["reference"],
            "Type": row["type"],
            "Category": row["category"],
            "Counterparty": row["counterparty"] or "",
            "Description": row["description"],
            "Amount": money(row["amount"]),
        }
        for row in list_transactions(company.id)
    ]
    return _excel_response(rows, "transactions.xlsx")


# --- personal --------------------------------------------------------------


@bp.route("/api/personal/categories", methods=["GET"])
@login_required
def personal_categories():
    return jsonify(
        {
            "success": True,
            "income": PERSONAL_INCOME_CATEGORIES,
            "expense": PERSONAL_EXPENSE_CATEGORIES,
            "groups": category_groups(),
            "budget_presets": BUDGET_PRESETS,
        }
    )


@bp.route("/api/personal/initialize", methods=["POST"])
@login_required
def personal_initialize():
    user = get_current_user()
    try:
        company = ensure_personal_company(user)
        db.session.commit()
    except Exception:
        db.session.rollback()
        logging.exception("Failed to initialize personal accounts")
        return _error("Failed to initialize personal accounts", 500)
    count = Account.query.filter_by(company_id=company.id).count()
    return jsonify({"success": True, "company_id": company.id, "accounts": count})


@bp.route("/api/personal/expense", methods=["POST"])
@login_required
def personal_expense():
    form = PersonalExpenseForm()
    if not form.validate():
        return _error(first_error(form))
    user = get_current_user()
    try:
        company = _personal_company(user)
        entry = record_personal_expense(
            company,
            user,
            form.amount.data,
            form.category.data,
            description=form.description.data,
            expense_date=form.date.data,
            payment_method=form.payment_method.data or "cash",
            vendor=form.vendor.data,
            is_recurring=form.is_recurring.data,
            frequency=form.frequency.data,
        )
        db.session.commit()
    except LedgerError as exc:
        db.session.rollback()
        return _error(exc.message, exc.status_code)
    except Exception:
        db.session.rollback()
        logging.exception("Failed to record personal expense")
        return _error("Failed to record expense", 500)
    return jsonify({"success": True, "entry": _serialize_entry(entry)}), 201


@bp.route("/api/personal/income", methods=["POST"])
@login_required
def personal_income():
    form = PersonalIncomeForm()
    if not form.validate():
        return _error(first_error(form))
    user = get_current_user()
    try:
        company = _personal_company(user)
        entry = record_personal_income(
            company,
            user,
            form.amount.data,
            form.category.data,
            description=form.description.data,
            income_date=form.date.data,
            payment_method=form.payment_method.data or "cash",
            source_name=form.source.data,
        )
        db.session.commit()
    except LedgerError as exc:
        db.session.rollback()
        return _error(exc.message, exc.status_code)
    except Exception:
        db.session.rollback()
        logging.exception("Failed to record personal income")
        return _error("Failed to record income", 500)
    return jsonify({"success": True, "entry": _serialize_entry(entry)}), 201


@bp.route("/api/personal/budget", methods=["GET"])
@login_required
def personal_budget_detail():
    user = get_current_user()
    if _current_context() != "personal":
        return _error("Budgets are only available in personal context")
    budget = current_budget(user)
    if not budget:
        return jsonify({"success": True, "budget": None, "message": "No budget found"})
    return jsonify({"success": True, "budget": _serialize_budget(budget)})


@bp.route("/api/personal/budget", methods=["POST"])
@login_required
def personal_budget_save():
    payload = _json_body()
    form = BudgetForm()
    if not form.validate():
        return _error(first_error(form))
    user = get_current_user()
    try:
        company = _personal_company(user)
        budget = save_budget(
            company,
            user,
            form.total_income.data,
            form.budget_type.data,
            budgets=payload.get("budgets"),
            period=form.period.data or "monthly",
        )
        db.session.commit()
    except LedgerError as exc:
        db.session.rollback()
        return _error(exc.message, exc.status_code)
    except Exception:
        db.session.rollback()
        logging.exception("Failed to save budget")
        return _error("Failed to save budget", 500)
    return jsonify({"success": True, "budget": _serialize_budget(budget)}), 201


# --- analytics -------------------------------------------------------------


def _report_company():
    user = get_current_user()
    company = _context_company(user)
    _require_permission(user, company, PERMISSIONS["VIEW_REPORTS"])
    return company


def _report_args():
    return {
        "period": request.args.get("period") or "month",
        "start": request.args.get("start_date"),
        "end": request.args.get("end_date"),
    }


@bp.route("/api/analytics/revenue", methods=["GET"])
@login_required
def analytics_revenue():
    report = revenue_report(_report_company().id, **_report_args())
    data = _serialize_report(report)
    return jsonify(
        {
            "success": True,
            "period": data["period"],
            "start_date": data["start_date"],
            "end_date": data["end_date"],
            "total_revenue": data["total"],
            "previous_revenue": data["previous_total"],
            "growth": data["growth"],
            "average_order": data["average"],
            "total_transactions": data["transaction_count"],
            "chart_data": data["chart_data"],
            "transactions": data["transactions"],
        }
    )


@bp.route("/api/analytics/expenses", methods=["GET"])
@login_required
def analytics_expenses():
    report = expense_report(_report_company().id, **_report_args())
    data = _serialize_report(report)
    return jsonify(
        {
            "success": True,
            "period": data["period"],
            "start_date": data["start_date"],
            "end_date": data["end_date"],
            "total_expenses": data["total"],
            "previous_expenses": data["previous_total"],
            "growth": data["growth"],
            "average_expense": data["average"],
            "total_transactions": data["transaction_count"],
            "chart_data": data["chart_data"],
            "transactions": data["transactions"],
        }
    )


@bp.route("/api/analytics/profit", methods=["GET"])
@login_required
def analytics_profit():
    report = profit_report(_report_company().id, **_report_args())
    return jsonify(dict(_serialize_report(report), success=True))


@bp.route("/api/analytics/revenue/cleanup", methods=["GET"])
@permission_required(PERMISSIONS["MANAGE_COMPANY"])
def revenue_cleanup_analysis():
    month = request.args.get("month") or local_today().strftime("%Y-%m")
    window = parse_month(month)
    if not window:
        return _error("month must use the YYYY-MM format")
    analysis = analyze_revenue(g.company.id, *window)
    return jsonify(
        {
            "success": True,
            "month": month,
            "analysis": {
                "total_revenue": money(analysis["total_revenue"]),
                "total_invoices": len(analysis["invoices"]),
                "suspicious_dates": len(analysis["suspicious_dates"]),
                "orphaned_entries": len(analysis["orphaned"]),
                "date_mismatches": len(analysis["date_mismatches"]),
            },
            "revenue_by_date": [
                {
                    "date": _iso(bucket["date"]),
                    "count": bucket["count"],
                    "total": money(bucket["total"]),
                    "entries": [
                        {
                            "id": item["id"],
                            "amount": money(item["amount"]),
                            "reference": item["reference"],
                            "narration": item["narration"],
                        }
                        for item in bucket["entries"]
                    ],
                }
                for bucket in analysis["revenue_by_date"]
            ],
            "invoices": [
                {
                    "invoice_number": invoice.invoice_number,
                    "invoice_date": _iso(invoice.invoice_date),
                    "total": money(invoice.total_amount),
                    "status": invoice.status,
                }
                for invoice in analysis["invoices"]
            ],
            "orphaned_entries": [
                {
                    "id": item["entry"].id,
                    "reference": item["entry"].reference,
                    "date": _iso(item["entry"].entry_date),
                    "amount": money(item["entry"].total_debit),
                    "reason": item["reason"],
                }
                for item in analysis["orphaned"]
            ],
            "date_mismatches": [
                {
                    "id": item["entry"].id,
                    "reference": item["entry"].reference,
                    "invoice_number": item["invoice_number"],
                    "current_date": _iso(item["current_date"]),
                    "expected_date": _iso(item["expected_date"]),
                    "reason": item["reason"],
                }
                for item in analysis["date_mismatches"]
            ],
            "suspicious_dates": [
                {"date": _iso(item["date"]), "count": item["count"], "total": money(item["total"])}
                for item in analysis["suspicious_dates"]
            ],
            "recommendations": [
                dict(item, dates=[_iso(d) for d in item["dates"]]) if "dates" in item else item
                for item in analysis["recommendations"]
            ],
        }
    )


@bp.route("/api/analytics/revenue/cleanup", methods=["POST"])
@permission_required(PERMISSIONS["MANAGE_COMPANY"])
def revenue_cleanup_action():
    payload = _json_body()
    action = payload.get("action")
    try:
        if action == "nuclear_cleanup" and payload.get("confirm") is True:
            counts = nuclear_cleanup(g.company.id)
            db.session.commit()
            return jsonify(dict(counts, success=True, message="All business data removed"))
        if action == "cleanup_orphaned":
            deleted, skipped = cleanup_orphaned(g.company.id, payload.get("entry_ids"))
            db.session.commit()
            return jsonify(
                {
                    "success": True,
                    "message": f"Removed {len(deleted)} orphaned entries",
                    "deleted_entry_ids": deleted,
                    "skipped": skipped,
                }
            )
        if action == "fix_date_mismatches":
            fixed, skipped = fix_date_mismatches(g.company.id, payload.get("date_corrections"))
            db.session.commit()
            return jsonify(
                {
                    "success": True,
                    "message": f"Fixed {len(fixed)} entry dates",
                    "fixed_entry_ids": fixed,
                    "skipped": skipped,
                }
            )
    except LedgerError as exc:
        db.session.rollback()
        return _error(exc.message, exc.status_code)
    except Exception:
        db.session.rollback()
        logging.exception("Revenue cleanup failed")
        return _error("Cleanup failed", 500)
    return _error("Invalid action or parameters")


# --- offline sync ----------------------------------------------------------


def _sync_item(sync_type, company, user, data):
    if sync_type == "accounts":
        return create_account(company.id, data).id
    if sync_type == "customers":
        return _create_customer(company.id, data).id
    if sync_type == "journalEntries":
        return _post_manual_entry(company, user, data).id
    if sync_type == "invoices":
        include_vat = data.get("include_vat", True)
        return create_invoice(
            company,
            user,
            data.get("customer_name"),
            data.get("due_date"),
            data.get("items"),
            include_vat=include_vat is not False,
            invoice_date=data.get("invoice_date"),
            notes=data.get("notes"),
        ).id
    return record_transaction(
        company,
        user,
        "expense",
        data.get("amount"),
        data.get("description"),
        txn_date=data.get("date"),
        category=data.get("category"),
        vendor=data.get("vendor"),
        payment_method=data.get("payment_method"),
    ).id


@bp.route("/api/sync", methods=["POST"])
@company_required
def sync():
    payload = _json_body()
    sync_type = payload.get("type")
    items = payload.get("items")
    if sync_type not in SYNC_TYPES:
        return _error(f"Unknown sync type. Must be one of: {', '.join(SYNC_TYPES)}")
    if not isinstance(items, list):
        return _error("items must be a list")

    company = g.company
    user = get_current_user()
    if sync_type in SYNC_PERMISSIONS:
        _require_permission(user, company, SYNC_PERMISSIONS[sync_type])
    results = []
    for item in items:
        client_id = item.get("id") if isinstance(item, dict) else None
        data = item.get("data") if isinstance(item, dict) else None
        if not isinstance(data, dict):
            results.append({"id": client_id, "success": False, "error": "Item data is missing"})
            continue
        # one transaction per item so a bad row never undoes the good ones
        try:
            server_id = _sync_item(sync_type, company, user, data)
            db.session.commit()
            results.append({"id": client_id, "success": True, "server_id": server_id})
        except LedgerError as exc:
            db.session.rollback()
            results.append({"id": client_id, "success": False, "error": exc.message})
        except Exception:
            db.session.rollback()
            logging.exception("Sync of %s item %s failed", sync_type, client_id)
            results.append({"id": client_id, "success": False, "error": "Failed to sync item"})

    synced = len([r for r in results if r["success"]])
    return jsonify({"success": True, "type": sync_type, "synced": synced, "failed": len(results) - synced, "results": results})
