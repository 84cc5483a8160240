"""Default charts of accounts seeded for new business and personal companies."""
from ledgerlite import db
from ledgerlite.exceptions import DuplicatePosting, ValidationError
from ledgerlite.models import ACCOUNT_TYPES, Account

# (code, name, type, category, parent_code)
DEFAULT_BUSINESS_ACCOUNTS = [
    ("1000", "Assets", "asset", None, None),
    ("1100", "Current Assets", "asset", None, "1000"),
    ("1110", "Cash", "asset", "cash", "1100"),
    ("1120", "Bank Accounts", "asset", "bank", "1100"),
    ("1130", "Accounts Receivable", "asset", "receivable", "1100"),
    ("1140", "Inventory", "asset", None, "1100"),
    ("1150", "VAT Receivable", "asset", "vat_receivable", "1100"),
    ("1200", "Fixed Assets", "asset", None, "1000"),
    ("1210", "Equipment", "asset", None, "1200"),
    ("1220", "Vehicles", "asset", None, "1200"),
    ("1230", "Furniture & Fixtures", "asset", None, "1200"),
    ("2000", "Liabilities", "liability", None, None),
    ("2100", "Current Liabilities", "liability", None, "2000"),
    ("2110", "Accounts Payable", "liability", None, "2100"),
    ("2120", "VAT Payable", "liability", "vat_payable", "2100"),
    ("2130", "Salaries Payable", "liability", None, "2100"),
    ("2140", "Income Tax Payable", "liability", None, "2100"),
    ("2150", "Deferred Revenue", "liability", "deferred_revenue", "2100"),
    ("2200", "Long-term Liabilities", "liability", None, "2000"),
    ("2210", "Bank Loans", "liability", None, "2200"),
    ("3000", "Equity", "equity", None, None),
    ("3100", "Owner's Capital", "equity", None, "3000"),
    ("3200", "Owner's Drawings", "equity", None, "3000"),
    ("3300", "Retained Earnings", "equity", None, "3000"),
    ("4000", "Revenue", "revenue", None, None),
    ("4100", "Sales Revenue", "revenue", "sales", "4000"),
    ("4110", "Product Sales", "revenue", "sales", "4100"),
    ("4120", "Service Revenue", "revenue", "sales", "4100"),
    ("4200", "Other Income", "revenue", None, "4000"),
    ("4210", "Interest Income", "revenue", None, "4200"),
    ("4220", "Rental Income", "revenue", None, "4200"),
    ("5000", "Cost of Goods Sold", "expense", "cogs", None),
    ("5100", "Purchases", "expense", "cogs", "5000"),
    ("5200", "Direct Labor", "expense", "cogs", "5000"),
    ("5300", "Manufacturing Overhead", "expense", "cogs", "5000"),
    ("6000", "Operating Expenses", "expense", "expense", None),
    ("6100", "Administrative Expenses", "expense", "expense", "6000"),
    ("6110", "Salaries & Wages", "expense", "expense", "6100"),
    ("6120", "Rent Expense", "expense", "expense", "6100"),
    ("6130", "Utilities", "expense", "expense", "6100"),
    ("6140", "Insurance", "expense", "expense", "6100"),
    ("6150", "Office Supplies", "expense", "expense", "6100"),
    ("6160", "Telephone & Internet", "expense", "expense", "6100"),
    ("6170", "Professional Fees", "expense", "expense", "6100"),
    ("6180", "Bank Charges", "expense", "expense", "6100"),
    ("6200", "Marketing & Sales", "expense", "expense", "6000"),
    ("6210", "Advertising", "expense", "expense", "6200"),
    ("6220", "Marketing Materials", "expense", "expense", "6200"),
    ("6230", "Travel & Entertainment", "expense", "expense", "6200"),
    ("6300", "Vehicle Expenses", "expense", "expense", "6000"),
    ("6310", "Fuel", "expense", "expense", "6300"),
    ("6320", "Vehicle Maintenance", "expense", "expense", "6300"),
    ("6330", "Vehicle Insurance", "expense", "expense", "6300"),
    ("6400", "Other Expenses", "expense", "expense", "6000"),
    ("6410", "Depreciation", "expense", "expense", "6400"),
    ("6420", "Miscellaneous", "expense", "expense", "6400"),
    ("6430", "General Expenses", "expense", "expense", "6400"),
    ("6500", "Financial Expenses", "expense", "expense", "6000"),
    ("6510", "Interest Expense", "expense", "expense", "6500"),
    ("6520", "Exchange Loss", "expense", "expense", "6500"),
]

PERSONAL_ACCOUNTS = [
    ("P-1001", "Personal Cash", "asset", "cash", None),
    ("P-1002", "Personal Bank Account", "asset", "bank", None),
    ("P-1003", "Personal Savings", "asset", "bank", None),
    ("P-1004", "Personal Investments", "asset", "investments", None),
    ("P-2001", "Personal Credit Card", "liability", "credit_card", None),
    ("P-2002", "Personal Loans", "liability", "loans", None),
    ("P-3001", "Personal Net Worth", "equity", "equity", None),
]

PARENT_CODES = {code: parent for code, _name, _type, _cat, parent in DEFAULT_BUSINESS_ACCOUNTS}


def seed_accounts(company_id, templates=None):
    """
    Create every template account the company does not have yet.

    Existing codes are left untouched, so seeding twice is harmless. Returns
    the number of accounts created. The caller commits.
    """
    templates = DEFAULT_BUSINESS_ACCOUNTS if templates is None else templates
    existing = {
        acc.code: acc for acc in Account.query.filter_by(company_id=company_id).all()
    }
    created = 0
    for code, name, acc_type, category, parent_code in templates:
        if code in existing:
            continue
        account = Account(
            company_id=company_id,
            code=code,
            name=name,
            type=acc_type,
            category=category,
            parent=existing.get(parent_code) if parent_code else None,
        )
        db.session.add(account)
        existing[code] = account
        created += 1
    if created:
        db.session.flush()
    return created


def seed_personal_accounts(company_id):
    return seed_accounts(company_id, PERSONAL_ACCOUNTS)


def create_account(company_id, data):
    """Add a custom account from a JSON payload. The caller commits."""
    code = str(data.get("code") or "").strip()
    name = (data.get("name") or "").strip()
    acc_type = data.get("type")
    if not code or not name:
        raise ValidationError("Account code and name are required")
    if acc_type not in ACCOUNT_TYPES:
        raise ValidationError(f"Account type must be one of: {', '.join(ACCOUNT_TYPES)}")
    if Account.query.filter_by(company_id=company_id, code=code).first():
        raise DuplicatePosting(f"Account code {code} already exists")

    parent = None
    parent_code = str(data.get("parent_code") or "").strip()
    if parent_code:
        parent = Account.query.filter_by(company_id=company_id, code=parent_code).first()
        if not parent:
            raise ValidationError(f"Parent account {parent_code} not found")
        if parent.type != acc_type:
            raise ValidationError("A sub-account must have the same type as its parent")

    account = Account(
        company_id=company_id,
        code=code,
        name=name,
        type=acc_type,
        category=(data.get("category") or "").strip() or None,
        parent=parent,
    )
    db.session.add(account)
    db.session.flush()
    return account
