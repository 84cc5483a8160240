"""Personal finance: a private ledger per user, category postings and budgets."""
from ledgerlite import db
from ledgerlite.categories import (
    BUDGET_PRESETS,
    BUDGET_TYPES,
    account_code_for,
    get_category,
)
from ledgerlite.chart_of_accounts import seed_personal_accounts
from ledgerlite.exceptions import ValidationError
from ledgerlite.ledger import (
    credit,
    debit,
    get_or_create_account,
    next_reference,
    payment_account,
    post_entry,
)
from ledgerlite.models import Company, PersonalBudget
from ledgerlite.money import to_decimal
from ledgerlite.time_utils import local_today, parse_date

FREQUENCIES = ("weekly", "monthly", "quarterly", "yearly")
BUDGET_PERIODS = ("monthly", "yearly")


def ensure_personal_company(user):
    """Return the user's personal ledger, creating and seeding it on first use."""
    company = db.session.get(Company, user.personal_company_id) if user.personal_company_id else None
    if company is None:
        company = Company(
            owner_id=user.id,
            name=f"{user.name or user.phone_number} (Personal)",
            is_personal=True,
        )
        db.session.add(company)
        db.session.flush()
        user.personal_company_id = company.id
    seed_personal_accounts(company.id)
    return company


def category_account(company_id, category_id, kind):
    category = get_category(category_id, kind)
    if not category:
        raise ValidationError(f"Unknown {kind} category: {category_id}")
    return category, get_or_create_account(
        company_id,
        account_code_for(category_id, kind),
        f"Personal {category['name']}",
        "revenue" if kind == "income" else "expense",
        "personal_income" if kind == "income" else "personal_expense",
    )


def _amount(value):
    try:
        amount = to_decimal(value)
    except ValueError:
        raise ValidationError("A valid amount is required")
    if amount <= 0:
        raise ValidationError("Amount must be greater than zero")
    return amount


def record_personal_expense(
    company,
    user,
    amount,
    category_id,
    description=None,
    expense_date=None,
    payment_method="cash",
    vendor=None,
    is_recurring=False,
    frequency=None,
):
    amount = _amount(amount)
    if is_recurring and frequency not in FREQUENCIES:
        raise ValidationError(f"Frequency must be one of: {', '.join(FREQUENCIES)}")
    category, expense_account = category_account(company.id, category_id, "expense")
    description = (description or "").strip() or category["name"]
    narration = f"{category['icon']} {category['name']}: {description}"
    if vendor:
        narration += f" at {vendor.strip()}"
    if is_recurring:
        narration += f" ({frequency})"

    return post_entry(
        company.id,
        next_reference(company.id, "PE"),
        parse_date(expense_date) or local_today(),
        narration,
        [
            debit(expense_account, amount, description),
            credit(payment_account(company.id, payment_method, personal=True), amount, description),
        ],
        source="personal_expense",
        created_by=user.id,
    )


def record_personal_income(
    company,
    user,
    amount,
    category_id,
    description=None,
    income_date=None,
    payment_method="cash",
    source_name=None,
):
    amount = _amount(amount)
    category, income_account = category_account(company.id, category_id, "income")
    description = (description or "").strip() or category["name"]
    narration = f"{category['icon']} {category['name']}: {description}"
    if source_name:
        narration += f" from {source_name.strip()}"

    return post_entry(
        company.id,
        next_reference(company.id, "PI"),
        parse_date(income_date) or local_today(),
        narration,
        [
            debit(payment_account(company.id, payment_method, personal=True), amount, description),
            credit(income_account, amount, description),
        ],
        source="personal_income",
        created_by=user.id,
    )


def parse_budget_rows(raw_rows, total_income):
    if not isinstance(raw_rows, list) or not raw_rows:
        return None, "At least one budget category is required"
    rows = []
    for index, raw in enumerate(raw_rows, start=1):
        if not isinstance(raw, dict) or not raw.get("category_id"):
            return None, f"Budget row {index} needs a category_id"
        try:
            amount = to_decimal(raw.get("amount"), 0)
            percentage = to_decimal(raw.get("percentage"), 0)
        except ValueError:
            return None, f"Budget row {index} has an invalid amount"
        if amount < 0 or percentage < 0:
            return None, f"Budget row {index} cannot be negative"
        if not amount and percentage:
            amount = to_decimal(total_income * percentage / 100)
        rows.append(
            {"category_id": str(raw["category_id"]), "amount": float(amount), "percentage": float(percentage)}
        )
    return rows, None


def preset_rows(budget_type, total_income):
    return [
        {
            "category_id": bucket,
            "amount": float(to_decimal(total_income * percentage / 100)),
            "percentage": float(percentage),
        }
        for bucket, percentage in BUDGET_PRESETS[budget_type].items()
    ]


def save_budget(company, user, total_income, budget_type, budgets=None, period="monthly"):
    """Store a new budget and void the one it replaces."""
    try:
        total_income = to_decimal(total_income)
    except ValueError:
        raise ValidationError("Total income is required")
    if total_income <= 0:
        raise ValidationError("Total income must be greater than zero")
    if budget_type not in BUDGET_TYPES:
        raise ValidationError(f"Budget type must be one of: {', '.join(BUDGET_TYPES)}")
    if period not in BUDGET_PERIODS:
        raise ValidationError("Period must be monthly or yearly")

    if budgets:
        rows, error = parse_budget_rows(budgets, total_income)
        if error:
            raise ValidationError(error)
    elif budget_type in BUDGET_PRESETS:
        rows = preset_rows(budget_type, total_income)
    else:
        raise ValidationError("Total income, budget type, and budget categories are required")

    PersonalBudget.query.filter_by(user_id=user.id, status="active").update(
        {"status": "void"}, synchronize_session="fetch"
    )
    budget = PersonalBudget(
        company_id=company.id,
        user_id=user.id,
        total_income=total_income,
        budget_type=budget_type,
        period=period,
        budgets=rows,
        status="active",
    )
    db.session.add(budget)
    db.session.flush()
    return budget


def current_budget(user):
    return (
        PersonalBudget.query.filter_by(user_id=user.id, status="active")
        .order_by(PersonalBudget.created_at.desc(), PersonalBudget.id.desc())
        .first()
    )
