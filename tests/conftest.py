# tests/conftest.py
import os

import pytest

# --- force a safe test environment ---
os.environ.setdefault("SECRET_KEY", "test")
# in-memory SQLite so CI never needs MySQL
os.environ["DATABASE_URL"] = "sqlite://"
for k in ("MYSQL_HOST", "MYSQL_PORT", "MYSQL_USER", "MYSQL_PASSWORD", "MYSQL_DATABASE"):
    os.environ[k] = ""

from ledgerlite import create_app, db  # noqa: E402
from ledgerlite.models import Company, User  # noqa: E402

OWNER_PHONE = "08031234567"
STAFF_PHONE = "08059876543"


@pytest.fixture(scope="session")
def app():
    return create_app("testing")


@pytest.fixture(autouse=True)
def _fresh_database(app):
    with app.app_context():
        db.drop_all()
        db.create_all()
    yield
    with app.app_context():
        db.session.remove()


@pytest.fixture()
def client(app):
    return app.test_client()


@pytest.fixture()
def runner(app):
    return app.test_cli_runner()


def login(client, phone=OWNER_PHONE, name="Ada Obi"):
    sent = client.post("/api/auth/send-otp", json={"phone_number": phone})
    assert sent.status_code == 200, sent.get_json()
    verified = client.post(
        "/api/auth/verify-otp",
        json={"phone_number": phone, "code": sent.get_json()["otp"], "name": name},
    )
    assert verified.status_code == 200, verified.get_json()
    return verified.get_json()["user"]


def setup_company(client, name="Ade Ventures", **extra):
    response = client.post("/api/company/setup", json=dict({"name": name}, **extra))
    assert response.status_code == 201, response.get_json()
    return response.get_json()["company"]


@pytest.fixture()
def owner(client):
    """A signed-in owner with a freshly set up business."""
    user = login(client)
    company = setup_company(client)
    return {"user": user, "company": company}


def make_company(name="Ade Ventures", phone=OWNER_PHONE):
    """Create a user and business directly, for service-level tests (needs an app context)."""
    from ledgerlite.chart_of_accounts import seed_accounts

    user = User(phone_number=phone, name="Ada Obi")
    db.session.add(user)
    db.session.flush()
    company = Company(owner_id=user.id, name=name)
    db.session.add(company)
    db.session.flush()
    user.company_id = company.id
    seed_accounts(company.id)
    db.session.flush()
    return user, company
