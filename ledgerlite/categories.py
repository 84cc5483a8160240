"""Personal finance categories and budget presets."""

PERSONAL_INCOME_CATEGORIES = [
    {"id": "salary", "name": "Salary", "icon": "💼"},
    {"id": "freelance", "name": "Freelance/Contract", "icon": "💻"},
    {"id": "business_income", "name": "Business Income", "icon": "🏢"},
    {"id": "investments", "name": "Investments", "icon": "📈"},
    {"id": "rental", "name": "Rental Income", "icon": "🏠"},
    {"id": "dividends", "name": "Dividends", "icon": "💰"},
    {"id": "interest", "name": "Interest", "icon": "🏦"},
    {"id": "gifts", "name": "Gifts/Donations", "icon": "🎁"},
    {"id": "refunds", "name": "Refunds/Reimbursements", "icon": "🔄"},
    {"id": "other_income", "name": "Other Income", "icon": "📊"},
]

PERSONAL_EXPENSE_CATEGORIES = [
    {"id": "rent", "name": "Rent", "icon": "🏠", "group": "Housing"},
    {"id": "mortgage", "name": "Mortgage", "icon": "🏡", "group": "Housing"},
    {"id": "utilities", "name": "Utilities", "icon": "💡", "group": "Housing"},
    {"id": "maintenance", "name": "Home Maintenance", "icon": "🔧", "group": "Housing"},
    {"id": "fuel", "name": "Fuel/Gas", "icon": "⛽", "group": "Transportation"},
    {"id": "public_transport", "name": "Public Transport", "icon": "🚌", "group": "Transportation"},
    {"id": "car_maintenance", "name": "Car Maintenance", "icon": "🚗", "group": "Transportation"},
    {"id": "parking", "name": "Parking/Tolls", "icon": "🅿️", "group": "Transportation"},
    {"id": "groceries", "name": "Groceries", "icon": "🛒", "group": "Food"},
    {"id": "restaurants", "name": "Restaurants/Dining", "icon": "🍽️", "group": "Food"},
    {"id": "coffee", "name": "Coffee/Snacks", "icon": "☕", "group": "Food"},
    {"id": "healthcare", "name": "Healthcare", "icon": "🏥", "group": "Personal"},
    {"id": "pharmacy", "name": "Pharmacy", "icon": "💊", "group": "Personal"},
    {"id": "personal_care", "name": "Personal Care", "icon": "💅", "group": "Personal"},
    {"id": "clothing", "name": "Clothing", "icon": "👔", "group": "Personal"},
    {"id": "entertainment", "name": "Entertainment", "icon": "🎬", "group": "Lifestyle"},
    {"id": "subscriptions", "name": "Subscriptions", "icon": "📱", "group": "Lifestyle"},
    {"id": "hobbies", "name": "Hobbies", "icon": "🎨", "group": "Lifestyle"},
    {"id": "fitness", "name": "Fitness/Gym", "icon": "💪", "group": "Lifestyle"},
    {"id": "salary_payment", "name": "Salary Payment", "icon": "💰", "group": "Business Operations"},
    {"id": "contractor_payment", "name": "Contractor Payment", "icon": "🤝", "group": "Business Operations"},
    {"id": "office_supplies", "name": "Office Supplies", "icon": "📎", "group": "Business Operations"},
    {"id": "business_services", "name": "Business Services", "icon": "🔧", "group": "Business Operations"},
    {"id": "insurance", "name": "Insurance", "icon": "🛡️", "group": "Financial"},
    {"id": "loans", "name": "Loan Payments", "icon": "🏦", "group": "Financial"},
    {"id": "savings", "name": "Savings", "icon": "💰", "group": "Financial"},
    {"id": "investments_expense", "name": "Investment", "icon": "📊", "group": "Financial"},
    {"id": "education", "name": "Education", "icon": "📚", "group": "Others"},
    {"id": "gifts_given", "name": "Gifts Given", "icon": "🎁", "group": "Others"},
    {"id": "charity", "name": "Charity/Donations", "icon": "❤️", "group": "Others"},
    {"id": "other_expense", "name": "Other Expenses", "icon": "📌", "group": "Others"},
]

# percentage of monthly income per bucket
BUDGET_PRESETS = {
    "conservative": {
        "housing": 30, "transportation": 15, "food": 12, "utilities": 5, "insurance": 5,
        "personal": 5, "entertainment": 5, "savings": 20, "other": 3,
    },
    "moderate": {
        "housing": 35, "transportation": 20, "food": 15, "utilities": 5, "insurance": 5,
        "personal": 7, "entertainment": 8, "savings": 10, "other": 5,
    },
    "aggressive": {
        "housing": 25, "transportation": 10, "food": 10, "utilities": 5, "insurance": 5,
        "personal": 5, "entertainment": 5, "savings": 30, "other": 5,
    },
}

BUDGET_TYPES = ("custom",) + tuple(BUDGET_PRESETS)

_INCOME_BY_ID = {cat["id"]: cat for cat in PERSONAL_INCOME_CATEGORIES}
_EXPENSE_BY_ID = {cat["id"]: cat for cat in PERSONAL_EXPENSE_CATEGORIES}


def get_category(category_id, kind="expense"):
    table = _INCOME_BY_ID if kind == "income" else _EXPENSE_BY_ID
    return table.get(category_id)


def category_groups():
    groups = []
    for cat in PERSONAL_EXPENSE_CATEGORIES:
        if cat["group"] not in groups:
            groups.append(cat["group"])
    return groups


def account_code_for(category_id, kind="expense"):
    """``P-4SAL`` for salary income, ``P-5GRO`` for groceries, and so on."""
    prefix = "P-4" if kind == "income" else "P-5"
    return f"{prefix}{category_id[:3].upper()}"
