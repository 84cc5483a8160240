from datetime import datetime
from decimal import Decimal

from sqlalchemy.orm import validates

from ledgerlite import db


ACCOUNT_TYPES = ('asset', 'liability', 'equity', 'revenue', 'expense')
ENTRY_STATUSES = ('draft', 'posted', 'void')
INVOICE_STATUSES = ('draft', 'sent', 'paid', 'overdue', 'cancelled')


class User(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    phone_number = db.Column(db.String(20), unique=True, nullable=False, index=True)
    country_code = db.Column(db.String(5), nullable=False, default='+234')
    name = db.Column(db.String(255), nullable=True)
    email = db.Column(db.String(255), nullable=True)
    role = db.Column(db.String(20), nullable=False, default='owner')
    company_id = db.Column(
        db.Integer,
        db.ForeignKey('company.id', ondelete='SET NULL', use_alter=True, name='fk_user_company_id'),
        nullable=True,
    )
    personal_company_id = db.Column(
        db.Integer,
        db.ForeignKey('company.id', ondelete='SET NULL', use_alter=True, name='fk_user_personal_company_id'),
        nullable=True,
    )
    last_login_at = db.Column(db.DateTime, nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    company = db.relationship('Company', foreign_keys=[company_id], post_update=True)
    personal_company = db.relationship('Company', foreign_keys=[personal_company_id], post_update=True)

    def __repr__(self):
        return f'<User {self.phone_number}>'


class AuthSession(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('user.id', ondelete='CASCADE'), nullable=False)
    device_token = db.Column(db.String(128), unique=True, nullable=False, index=True)
    device_info = db.Column(db.String(255), nullable=True)
    context = db.Column(db.String(20), nullable=False, default='business')
    expires_at = db.Column(db.DateTime, nullable=False)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    user = db.relationship('User', backref=db.backref('auth_sessions', lazy=True, cascade='all, delete-orphan'))

    def is_expired(self, now=None):
        return self.expires_at <= (now or datetime.utcnow())


class OtpCode(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    phone_number = db.Column(db.String(20), nullable=False, index=True)
    code_hash = db.Column(db.String(255), nullable=False)
    attempts = db.Column(db.Integer, nullable=False, default=0)
    expires_at = db.Column(db.DateTime, nullable=False)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)


class Company(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    owner_id = db.Column(db.Integer, db.ForeignKey('user.id', ondelete='CASCADE'), nullable=False)
    name = db.Column(db.String(255), nullable=False)
    currency = db.Column(db.String(3), nullable=False, default='NGN')
    currency_symbol = db.Column(db.String(5), nullable=False, default='₦')
    financial_year_start = db.Column(db.Integer, nullable=False, default=1)
    phone = db.Column(db.String(20), nullable=True)
    email = db.Column(db.String(255), nullable=True)
    address = db.Column(db.Text, nullable=True)
    website = db.Column(db.String(255), nullable=True)
    tax_number = db.Column(db.String(50), nullable=True)
    is_personal = db.Column(db.Boolean, nullable=False, default=False)
    invoice_prefix = db.Column(db.String(10), nullable=True)
    invoice_sequence = db.Column(db.Integer, nullable=False, default=0)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    owner = db.relationship('User', foreign_keys=[owner_id], backref=db.backref('owned_companies', lazy=True))

    def __repr__(self):
        return f'<Company {self.name}>'


class CompanyUser(db.Model):
    __table_args__ = (db.UniqueConstraint('company_id', 'user_id', name='uq_company_user'),)

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey('company.id', ondelete='CASCADE'), nullable=False)
    user_id = db.Column(db.Integer, db.ForeignKey('user.id', ondelete='CASCADE'), nullable=False)
    role = db.Column(db.String(20), nullable=False, default='staff')
    permissions = db.Column(db.JSON, nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    company = db.relationship('Company', backref=db.backref('members', lazy=True, cascade='all, delete-orphan'))
    user = db.relationship('User', backref=db.backref('memberships', lazy=True, cascade='all, delete-orphan'))


class Account(db.Model):
    __table_args__ = (db.UniqueConstraint('company_id', 'code', name='uq_account_company_code'),)

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey('company.id', ondelete='CASCADE'), nullable=False, index=True)
    code = db.Column(db.String(20), nullable=False)
    name = db.Column(db.String(255), nullable=False)
    type = db.Column(db.String(20), nullable=False)  # asset, liability, equity, revenue, expense
    category = db.Column(db.String(50), nullable=True)
    parent_id = db.Column(db.Integer, db.ForeignKey('account.id', ondelete='SET NULL'), nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    company = db.relationship('Company', backref=db.backref('accounts', lazy=True, cascade='all, delete-orphan'))
    parent = db.relationship('Account', remote_side=[id], backref=db.backref('children', lazy=True))

    @validates('type')
    def _validate_type(self, key, value):
        if value not in ACCOUNT_TYPES:
            raise ValueError(f'Unknown account type: {value}')
        return value

    def __repr__(self):
        return f"<Account {self.code} - {self.name}>"


class JournalEntry(db.Model):
    __table_args__ = (db.UniqueConstraint('company_id', 'reference', name='uq_journal_entry_reference'),)

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey('company.id', ondelete='CASCADE'), nullable=False, index=True)
    entry_date = db.Column(db.Date, nullable=False)
    reference = db.Column(db.String(100), nullable=False)
    narration = db.Column(db.Text, nullable=True)
    status = db.Column(db.String(20), nullable=False, default='posted')
    source = db.Column(db.String(30), nullable=False, default='manual')
    invoice_id = db.Column(db.Integer, db.ForeignKey('invoice.id', ondelete='SET NULL'), nullable=True, index=True)
    created_by = db.Column(db.Integer, db.ForeignKey('user.id', ondelete='SET NULL'), nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    company = db.relationship('Company', backref=db.backref('journal_entries', lazy=True, cascade='all, delete-orphan'))
    invoice = db.relationship('Invoice', backref=db.backref('journal_entries', lazy=True))
    user = db.relationship('User', backref=db.backref('journal_entries', lazy=True))

    @property
    def total_debit(self):
        return sum((line.debit or Decimal('0') for line in self.lines), Decimal('0'))

    @property
    def total_credit(self):
        return sum((line.credit or Decimal('0') for line in self.lines), Decimal('0'))

    def __repr__(self):
        return f"<JournalEntry {self.reference} ({self.status})>"


class JournalLine(db.Model):
    __table_args__ = (
        db.CheckConstraint('debit >= 0 AND credit >= 0', name='ck_journal_line_non_negative'),
        db.CheckConstraint('debit = 0 OR credit = 0', name='ck_journal_line_one_side'),
    )

    id = db.Column(db.Integer, primary_key=True)
    entry_id = db.Column(db.Integer, db.ForeignKey('journal_entry.id', ondelete='CASCADE'), nullable=False)
    account_id = db.Column(db.Integer, db.ForeignKey('account.id', ondelete='CASCADE'), nullable=False)
    description = db.Column(db.String(255), nullable=True)
    debit = db.Column(db.Numeric(15, 2), nullable=False, default=Decimal('0'))
    credit = db.Column(db.Numeric(15, 2), nullable=False, default=Decimal('0'))

    entry = db.relationship('JournalEntry', backref=db.backref('lines', lazy=True, cascade='all, delete-orphan'))
    account = db.relationship('Account', backref=db.backref('journal_lines', lazy=True))

    @validates('debit', 'credit')
    def _validate_amount(self, key, value):
        value = Decimal(str(value or 0))
        if value < 0:
            raise ValueError(f'{key} cannot be negative')
        other = self.credit if key == 'debit' else self.debit
        if value and other:
            raise ValueError('A journal line is either a debit or a credit')
        return value


class Customer(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey('company.id', ondelete='CASCADE'), nullable=False, index=True)
    name = db.Column(db.String(255), nullable=False)
    email = db.Column(db.String(255), nullable=True)
    phone = db.Column(db.String(20), nullable=True)
    address = db.Column(db.Text, nullable=True)
    tax_number = db.Column(db.String(50), nullable=True)
    balance = db.Column(db.Numeric(15, 2), nullable=False, default=Decimal('0'))
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    company = db.relationship('Company', backref=db.backref('customers', lazy=True, cascade='all, delete-orphan'))

    def __repr__(self):
        return f"<Customer {self.name}>"


class Invoice(db.Model):
    __table_args__ = (db.UniqueConstraint('company_id', 'invoice_number', name='uq_invoice_company_number'),)

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey('company.id', ondelete='CASCADE'), nullable=False, index=True)
    customer_id = db.Column(db.Integer, db.ForeignKey('customer.id', ondelete='SET NULL'), nullable=True)
    invoice_number = db.Column(db.String(50), nullable=False)
    invoice_date = db.Column(db.Date, nullable=False)
    due_date = db.Column(db.Date, nullable=False)
    status = db.Column(db.String(20), nullable=False, default='draft')
    subtotal = db.Column(db.Numeric(15, 2), nullable=False, default=Decimal('0'))
    vat_amount = db.Column(db.Numeric(15, 2), nullable=False, default=Decimal('0'))
    total_amount = db.Column(db.Numeric(15, 2), nullable=False, default=Decimal('0'))
    paid_amount = db.Column(db.Numeric(15, 2), nullable=False, default=Decimal('0'))
    notes = db.Column(db.Text, nullable=True)
    created_by = db.Column(db.Integer, db.ForeignKey('user.id', ondelete='SET NULL'), nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    company = db.relationship('Company', backref=db.backref('invoices', lazy=True, cascade='all, delete-orphan'))
    customer = db.relationship('Customer', backref=db.backref('invoices', lazy=True))

    @property
    def outstanding(self):
        return (self.total_amount or Decimal('0')) - (self.paid_amount or Decimal('0'))

    def __repr__(self):
        return f"<Invoice {self.invoice_number} ({self.status})>"


class InvoiceItem(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    invoice_id = db.Column(db.Integer, db.ForeignKey('invoice.id', ondelete='CASCADE'), nullable=False)
    description = db.Column(db.Text, nullable=False)
    quantity = db.Column(db.Numeric(10, 2), nullable=False, default=Decimal('1'))
    unit_price = db.Column(db.Numeric(15, 2), nullable=False)
    vat_rate = db.Column(db.Numeric(5, 2), nullable=False, default=Decimal('7.5'))
    amount = db.Column(db.Numeric(15, 2), nullable=False)
    account_id = db.Column(db.Integer, db.ForeignKey('account.id', ondelete='SET NULL'), nullable=True)

    invoice = db.relationship(
        'Invoice',
        backref=db.backref('items', lazy=True, cascade='all, delete-orphan', order_by='InvoiceItem.id'),
    )
    account = db.relationship('Account')


class PersonalBudget(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey('company.id', ondelete='CASCADE'), nullable=False)
    user_id = db.Column(db.Integer, db.ForeignKey('user.id', ondelete='CASCADE'), nullable=False, index=True)
    total_income = db.Column(db.Numeric(15, 2), nullable=False)
    budget_type = db.Column(db.String(20), nullable=False, default='custom')
    period = db.Column(db.String(20), nullable=False, default='monthly')
    budgets = db.Column(db.JSON, nullable=False, default=list)
    status = db.Column(db.String(20), nullable=False, default='active')
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    user = db.relationship('User', backref=db.backref('budgets', lazy=True, cascade='all, delete-orphan'))

    def __repr__(self):
        return f"<PersonalBudget {self.budget_type} ({self.status})>"
