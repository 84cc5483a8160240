from conftest import login
from ledgerlite.categories import account_code_for
from ledgerlite.chart_of_accounts import PERSONAL_ACCOUNTS
from ledgerlite.ledger import balance_for_code
from ledgerlite.models import Account, PersonalBudget


def _to_personal(client):
    response = client.post("/api/context", json={"context": "personal"})
    assert response.status_code == 200, response.get_json()
    return response.get_json()["company_id"]


def test_account_codes_for_categories():
    assert account_code_for("groceries") == "P-5GRO"
    assert account_code_for("salary", "income") == "P-4SAL"


def test_switching_context(client, app):
    login(client)
    assert client.get("/api/context").get_json()["context"] == "business"

    # no business yet
    assert client.post("/api/context", json={"context": "business"}).status_code == 400
    assert client.post("/api/context", json={"context": "holiday"}).status_code == 400

    company_id = _to_personal(client)
    body = client.get("/api/context").get_json()
    assert body["context"] == "personal"
    assert body["company_id"] == company_id
    assert body["has_personal"] is True
    assert body["has_business"] is False

    with app.app_context():
        assert Account.query.filter_by(company_id=company_id).count() == len(PERSONAL_ACCOUNTS)


def test_personal_ledger_is_separate_from_the_business(client, app, owner):
    client.post(
        "/api/transactions",
        json={"type": "income", "amount": 900, "description": "Flyers", "customer_name": "Bisi"},
    )
    personal_id = _to_personal(client)
    assert personal_id != owner["company"]["id"]

    assert client.get("/api/transactions").get_json()["transactions"] == []

    client.post("/api/context", json={"context": "business"})
    assert len(client.get("/api/transactions").get_json()["transactions"]) == 1


def test_personal_expense_posts_to_its_category(client, app):
    login(client)
    company_id = _to_personal(client)

    response = client.post(
        "/api/personal/expense",
        json={"amount": "3500", "category": "groceries", "vendor": "Shoprite", "payment_method": "card"},
    )
    assert response.status_code == 201
    entry = response.get_json()["entry"]
    assert entry["reference"].startswith("PE-")
    assert "Groceries" in entry["narration"]
    assert "at Shoprite" in entry["narration"]

    with app.app_context():
        assert balance_for_code(company_id, "P-5GRO") == 3500
        assert balance_for_code(company_id, "P-1002") == -3500

    rows = client.get("/api/transactions").get_json()["transactions"]
    assert rows[0]["type"] == "expense"
    assert rows[0]["amount"] == 3500.0


def test_personal_income(client, app):
    login(client)
    company_id = _to_personal(client)

    response = client.post(
        "/api/personal/income", json={"amount": 250000, "category": "salary", "source": "Ade Ventures"}
    )
    assert response.status_code == 201
    assert "from Ade Ventures" in response.get_json()["entry"]["narration"]

    with app.app_context():
        assert balance_for_code(company_id, "P-4SAL") == 250000
        assert balance_for_code(company_id, "P-1001") == 250000


def test_personal_validation(client):
    login(client)
    # personal endpoints refuse the business context
    business = client.post("/api/personal/expense", json={"amount": 100, "category": "groceries"})
    assert business.status_code == 400

    _to_personal(client)
    assert client.post("/api/personal/expense", json={"amount": 100, "category": "yachts"}).status_code == 400
    assert client.post("/api/personal/expense", json={"amount": 0, "category": "groceries"}).status_code == 400
    recurring = client.post(
        "/api/personal/expense",
        json={"amount": 100, "category": "rent", "is_recurring": True, "frequency": "daily"},
    )
    assert recurring.status_code == 400
    assert client.post("/api/personal/income", json={"amount": 100, "category": "groceries"}).status_code == 400


def test_budget_from_preset_and_replacement(client, app):
    login(client)
    _to_personal(client)

    assert client.get("/api/personal/budget").get_json()["budget"] is None

    first = client.post("/api/personal/budget", json={"total_income": 200000, "budget_type": "moderate"})
    assert first.status_code == 201
    rows = {row["category_id"]: row for row in first.get_json()["budget"]["budgets"]}
    assert rows["housing"]["amount"] == 70000.0
    assert rows["savings"]["percentage"] == 10.0

    custom = client.post(
        "/api/personal/budget",
        json={
            "total_income": 100000,
            "budget_type": "custom",
            "budgets": [
                {"category_id": "rent", "amount": 40000},
                {"category_id": "groceries", "percentage": 25},
            ],
        },
    )
    assert custom.status_code == 201

    current = client.get("/api/personal/budget").get_json()["budget"]
    assert current["budget_type"] == "custom"
    assert [row["amount"] for row in current["budgets"]] == [40000.0, 25000.0]

    with app.app_context():
        assert PersonalBudget.query.filter_by(status="active").count() == 1
        assert PersonalBudget.query.filter_by(status="void").count() == 1


def test_budget_validation(client):
    login(client)
    _to_personal(client)
    assert client.post("/api/personal/budget", json={"total_income": 0, "budget_type": "moderate"}).status_code == 400
    assert client.post("/api/personal/budget", json={"total_income": 100, "budget_type": "lavish"}).status_code == 400
    assert client.post("/api/personal/budget", json={"total_income": 100, "budget_type": "custom"}).status_code == 400
    negative = client.post(
        "/api/personal/budget",
        json={"total_income": 100, "budget_type": "custom", "budgets": [{"category_id": "rent", "amount": -1}]},
    )
    assert negative.status_code == 400


def test_categories_and_initialize(client):
    login(client)
    body = client.get("/api/personal/categories").get_json()
    assert len(body["income"]) == 10
    assert "Housing" in body["groups"]
    assert set(body["budget_presets"]) == {"conservative", "moderate", "aggressive"}

    first = client.post("/api/personal/initialize").get_json()
    second = client.post("/api/personal/initialize").get_json()
    assert first["company_id"] == second["company_id"]
    assert second["accounts"] == len(PERSONAL_ACCOUNTS)
