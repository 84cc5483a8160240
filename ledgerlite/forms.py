from flask_wtf import FlaskForm
from wtforms import BooleanField, IntegerField, StringField
from wtforms.validators import AnyOf, DataRequired, Length, NumberRange, Optional, Regexp, ValidationError

from ledgerlite.money import to_decimal

EMAIL_PATTERN = r"^[^\s@]+@[^\s@]+\.[^\s@]+$"
URL_PATTERN = r"^https?://[^\s/$.?#].[^\s]*$"
CURRENCY_SYMBOLS = {"NGN": "₦", "USD": "$", "EUR": "€", "GBP": "£"}


class Amount:
    """A positive money amount; the raw value is kept for ``to_decimal``."""

    def __init__(self, message=None):
        self.message = message or "A valid amount greater than zero is required"

    def __call__(self, form, field):
        try:
            value = to_decimal(field.data)
        except ValueError:
            raise ValidationError(self.message)
        if value <= 0:
            raise ValidationError(self.message)


class IsoDate:
    def __init__(self, message=None):
        self.message = message or "Dates must use the YYYY-MM-DD format"

    def __call__(self, form, field):
        if field.data in (None, ""):
            return
        if not Regexp(r"^\d{4}-\d{2}-\d{2}").regex.match(str(field.data)):
            raise ValidationError(self.message)


class JsonForm(FlaskForm):
    """Validates the flat part of a JSON body; CSRFProtect covers the request itself."""

    class Meta:
        csrf = False


def first_error(form):
    for field_name, errors in form.errors.items():
        if errors:
            return errors[0]
    return "Invalid request"


class SendOtpForm(JsonForm):
    phone_number = StringField(validators=[DataRequired(message="Phone number is required")])


class VerifyOtpForm(JsonForm):
    phone_number = StringField(validators=[DataRequired(message="Phone number and code are required")])
    code = StringField(validators=[DataRequired(message="Phone number and code are required")])
    name = StringField(validators=[Optional(), Length(max=255)])
    email = StringField(validators=[Optional(), Regexp(EMAIL_PATTERN, message="Invalid email format")])


class CompanyForm(JsonForm):
    name = StringField(validators=[DataRequired(message="Company name is required"), Length(max=255)])
    currency = StringField(
        validators=[Optional(), AnyOf(list(CURRENCY_SYMBOLS), message="Currency must be one of NGN, USD, EUR, GBP")]
    )
    financial_year_start = IntegerField(
        validators=[Optional(), NumberRange(min=1, max=12, message="Financial year start must be a month (1-12)")]
    )
    phone = StringField(validators=[Optional(), Length(max=20)])
    email = StringField(validators=[Optional(), Regexp(EMAIL_PATTERN, message="Invalid email format")])
    address = StringField(validators=[Optional()])
    website = StringField(
        validators=[Optional(), Regexp(URL_PATTERN, message="Website must start with http:// or https://")]
    )
    tax_number = StringField(validators=[Optional(), Length(max=50)])


class CompanyUpdateForm(CompanyForm):
    name = StringField(validators=[Optional(), Length(min=1, max=255)])


class UserUpdateForm(JsonForm):
    name = StringField(validators=[DataRequired(message="Name is required"), Length(max=255)])
    email = StringField(validators=[Optional(), Regexp(EMAIL_PATTERN, message="Invalid email format")])


class CustomerForm(JsonForm):
    name = StringField(validators=[DataRequired(message="Customer name is required"), Length(max=255)])
    email = StringField(validators=[Optional(), Regexp(EMAIL_PATTERN, message="Invalid email format")])
    phone = StringField(validators=[Optional(), Length(max=20)])
    address = StringField(validators=[Optional()])
    tax_number = StringField(validators=[Optional(), Length(max=50)])


class TransactionForm(JsonForm):
    type = StringField(
        validators=[DataRequired(message="Type is required"), AnyOf(["income", "expense"], message="Type must be income or expense")]
    )
    amount = StringField(validators=[Amount()])
    description = StringField(validators=[DataRequired(message="Description is required")])
    date = StringField(validators=[Optional(), IsoDate()])
    category = StringField(validators=[Optional(), Length(max=100)])
    customer_name = StringField(validators=[Optional()])
    vendor = StringField(validators=[Optional()])
    payment_method = StringField(validators=[Optional()])


class InvoiceForm(JsonForm):
    customer_name = StringField(validators=[DataRequired(message="Customer name is required")])
    customer_email = StringField(validators=[Optional(), Regexp(EMAIL_PATTERN, message="Invalid email format")])
    customer_phone = StringField(validators=[Optional()])
    due_date = StringField(validators=[DataRequired(message="Due date is required"), IsoDate()])
    invoice_date = StringField(validators=[Optional(), IsoDate()])
    notes = StringField(validators=[Optional()])
    status = StringField(validators=[Optional(), AnyOf(["draft", "sent"], message="New invoices start as draft or sent")])


class InvoiceStatusForm(JsonForm):
    status = StringField(validators=[DataRequired(message="Status is required")])


class PersonalExpenseForm(JsonForm):
    amount = StringField(validators=[Amount()])
    category = StringField(validators=[DataRequired(message="Category is required")])
    description = StringField(validators=[Optional()])
    date = StringField(validators=[Optional(), IsoDate()])
    payment_method = StringField(validators=[Optional()])
    vendor = StringField(validators=[Optional()])
    is_recurring = BooleanField()
    frequency = StringField(validators=[Optional()])


class PersonalIncomeForm(JsonForm):
    amount = StringField(validators=[Amount()])
    category = StringField(validators=[DataRequired(message="Category is required")])
    description = StringField(validators=[Optional()])
    date = StringField(validators=[Optional(), IsoDate()])
    payment_method = StringField(validators=[Optional()])
    source = StringField(validators=[Optional()])


class BudgetForm(JsonForm):
    total_income = StringField(validators=[Amount("Total income must be greater than zero")])
    budget_type = StringField(validators=[DataRequired(message="Budget type is required")])
    period = StringField(validators=[Optional(), AnyOf(["monthly", "yearly"], message="Period must be monthly or yearly")])


class ContextForm(JsonForm):
    context = StringField(
        validators=[
            DataRequired(message="Context is required"),
            AnyOf(["business", "personal"], message="Context must be business or personal"),
        ]
    )


class JournalForm(JsonForm):
    date = StringField(validators=[DataRequired(message="Date is required"), IsoDate()])
    reference = StringField(validators=[Optional(), Length(max=100)])
    narration = StringField(validators=[Optional()])
