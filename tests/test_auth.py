from datetime import datetime, timedelta

from conftest import OWNER_PHONE, STAFF_PHONE, login, setup_company
from ledgerlite import db, normalize_phone
from ledgerlite.auth import DEFAULT_STAFF_PERMISSIONS, is_valid_phone
from ledgerlite.chart_of_accounts import DEFAULT_BUSINESS_ACCOUNTS
from ledgerlite.models import Account, AuthSession, CompanyUser, OtpCode, User


def test_phone_numbers_are_validated_and_normalized():
    assert is_valid_phone("08031234567")
    assert is_valid_phone("+234 803 123 4567")
    assert is_valid_phone("2348031234567")
    assert not is_valid_phone("0803123")
    assert not is_valid_phone("05031234567")
    assert normalize_phone("+234 803 123 4567") == "08031234567"
    assert normalize_phone("8031234567") == "08031234567"


def test_send_otp_rejects_bad_phone(client):
    response = client.post("/api/auth/send-otp", json={"phone_number": "12345"})
    assert response.status_code == 400
    assert "Invalid phone number" in response.get_json()["error"]

    missing = client.post("/api/auth/send-otp", json={})
    assert missing.status_code == 400


def test_send_otp_stores_only_a_hash(client, app):
    body = client.post("/api/auth/send-otp", json={"phone_number": OWNER_PHONE}).get_json()
    assert body["is_new_user"] is True
    assert len(body["otp"]) == 6 and body["otp"].isdigit()

    with app.app_context():
        stored = OtpCode.query.filter_by(phone_number=OWNER_PHONE).one()
        assert stored.code_hash != body["otp"]


def test_login_creates_user_and_session_cookie(client, app):
    user = login(client)
    assert user["phone_number"] == OWNER_PHONE
    assert user["name"] == "Ada Obi"
    assert user["company_id"] is None

    me = client.get("/api/user")
    assert me.status_code == 200
    assert me.get_json()["user"]["id"] == user["id"]

    with app.app_context():
        assert AuthSession.query.filter_by(user_id=user["id"]).count() == 1
        assert OtpCode.query.count() == 0

    second = client.post("/api/auth/send-otp", json={"phone_number": OWNER_PHONE}).get_json()
    assert second["is_new_user"] is False


def test_wrong_code_attempts_run_out(client, app):
    sent = client.post("/api/auth/send-otp", json={"phone_number": OWNER_PHONE}).get_json()
    wrong = "000000" if sent["otp"] != "000000" else "111111"

    for _ in range(2):
        response = client.post("/api/auth/verify-otp", json={"phone_number": OWNER_PHONE, "code": wrong})
        assert response.status_code == 400
        assert response.get_json()["error"] == "Invalid or expired code"

    third = client.post("/api/auth/verify-otp", json={"phone_number": OWNER_PHONE, "code": wrong})
    assert third.status_code == 400
    assert "Too many attempts" in third.get_json()["error"]

    # the real code is gone with the exhausted one
    late = client.post("/api/auth/verify-otp", json={"phone_number": OWNER_PHONE, "code": sent["otp"]})
    assert late.status_code == 400
    with app.app_context():
        assert User.query.count() == 0


def test_expired_code_is_refused(client, app):
    sent = client.post("/api/auth/send-otp", json={"phone_number": OWNER_PHONE}).get_json()
    with app.app_context():
        otp = OtpCode.query.filter_by(phone_number=OWNER_PHONE).one()
        otp.expires_at = datetime.utcnow() - timedelta(seconds=1)
        db.session.commit()

    response = client.post("/api/auth/verify-otp", json={"phone_number": OWNER_PHONE, "code": sent["otp"]})
    assert response.status_code == 400
    assert client.get("/api/user").status_code == 401


def test_logout_ends_the_session(client, app):
    login(client)
    assert client.post("/api/auth/logout").status_code == 200
    assert client.get("/api/user").status_code == 401
    with app.app_context():
        assert AuthSession.query.count() == 0


def test_expired_session_is_not_accepted(client, app):
    login(client)
    with app.app_context():
        auth_session = AuthSession.query.one()
        auth_session.expires_at = datetime.utcnow() - timedelta(minutes=1)
        db.session.commit()
    assert client.get("/api/user").status_code == 401


def test_protected_routes_need_login(client):
    assert client.get("/api/user").status_code == 401
    assert client.get("/api/invoices").status_code == 401
    assert client.get("/api/transactions").status_code == 401
    assert client.post("/api/company/setup", json={"name": "X"}).status_code == 401


def test_company_setup_seeds_the_chart(client, app):
    user = login(client)
    company = setup_company(client, currency="USD", email="hello@ade.ng")
    assert company["currency"] == "USD"
    assert company["currency_symbol"] == "$"

    with app.app_context():
        assert Account.query.filter_by(company_id=company["id"]).count() == len(DEFAULT_BUSINESS_ACCOUNTS)
        membership = CompanyUser.query.filter_by(company_id=company["id"], user_id=user["id"]).one()
        assert membership.role == "owner"

    again = client.post("/api/company/setup", json={"name": "Second"})
    assert again.status_code == 400
    assert again.get_json()["error"] == "User already has a company"


def test_company_setup_validation(client):
    login(client)
    assert client.post("/api/company/setup", json={}).status_code == 400
    assert client.post("/api/company/setup", json={"name": "Ade", "email": "nope"}).status_code == 400
    assert client.post("/api/company/setup", json={"name": "Ade", "currency": "JPY"}).status_code == 400
    bad_site = client.post("/api/company/setup", json={"name": "Ade", "website": "ade.ng"})
    assert bad_site.status_code == 400
    assert "http" in bad_site.get_json()["error"]


def test_company_update(client, owner):
    response = client.put(
        "/api/company/update", json={"address": "12 Allen Avenue, Ikeja", "currency": "GBP"}
    )
    assert response.status_code == 200
    company = response.get_json()["company"]
    assert company["address"] == "12 Allen Avenue, Ikeja"
    assert company["currency_symbol"] == "£"
    assert company["name"] == "Ade Ventures"

    assert client.put("/api/company/update", json={"email": "bad"}).status_code == 400
    assert client.get("/api/company").get_json()["company"]["currency"] == "GBP"


def test_user_update(client, owner):
    response = client.put("/api/user/update", json={"name": "Ada Obi-Eze", "email": "ada@ade.ng"})
    assert response.status_code == 200
    assert response.get_json()["user"]["email"] == "ada@ade.ng"

    assert client.put("/api/user/update", json={"name": ""}).status_code == 400
    assert client.put("/api/user/update", json={"name": "Ada", "email": "x@"}).status_code == 400


def test_staff_permissions_are_enforced(app, owner):
    company_id = owner["company"]["id"]
    staff_client = app.test_client()
    staff = login(staff_client, phone=STAFF_PHONE, name="Tunde")

    with app.app_context():
        user = db.session.get(User, staff["id"])
        user.company_id = company_id
        user.role = "staff"
        db.session.add(
            CompanyUser(company_id=company_id, user_id=user.id, role="staff", permissions=list(DEFAULT_STAFF_PERMISSIONS))
        )
        db.session.commit()

    created = staff_client.post(
        "/api/invoices",
        json={
            "customer_name": "Chidi Stores",
            "due_date": "2099-01-31",
            "items": [{"description": "Chairs", "quantity": 4, "unit_price": 2500}],
        },
    )
    assert created.status_code == 201
    invoice_id = created.get_json()["invoice"]["id"]

    denied = staff_client.delete(f"/api/invoices/{invoice_id}")
    assert denied.status_code == 403
    assert denied.get_json()["required_permissions"] == ["delete_invoice"]
    assert staff_client.put("/api/company/update", json={"name": "Mine now"}).status_code == 403
    assert staff_client.get("/api/invoices/export").status_code == 403


def test_csrf_token_endpoint(client):
    body = client.get("/api/csrf-token").get_json()
    assert body["csrf_token"]


def test_unknown_route_returns_json(client):
    response = client.get("/api/nowhere")
    assert response.status_code == 404
    assert response.get_json() == {"error": "Not found"}
