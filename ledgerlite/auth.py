"""Phone/OTP login, device sessions and the access decorators used by the routes."""
import logging
import re
import secrets
from datetime import datetime, timedelta
from functools import wraps

from flask import current_app, g, jsonify, request
from werkzeug.security import check_password_hash, generate_password_hash

from ledgerlite import db, normalize_phone
from ledgerlite.exceptions import Unauthorized, ValidationError
from ledgerlite.models import AuthSession, Company, CompanyUser, OtpCode, User

PHONE_PATTERN = re.compile(r"^(234|0)?[789][01]\d{8}$")

PERMISSIONS = {
    "CREATE_JOURNAL": "create_journal",
    "EDIT_JOURNAL": "edit_journal",
    "DELETE_JOURNAL": "delete_journal",
    "CREATE_INVOICE": "create_invoice",
    "EDIT_INVOICE": "edit_invoice",
    "DELETE_INVOICE": "delete_invoice",
    "CREATE_EXPENSE": "create_expense",
    "EDIT_EXPENSE": "edit_expense",
    "DELETE_EXPENSE": "delete_expense",
    "VIEW_REPORTS": "view_reports",
    "EXPORT_REPORTS": "export_reports",
    "MANAGE_COMPANY": "manage_company",
    "MANAGE_USERS": "manage_users",
    "MANAGE_ACCOUNTS": "manage_accounts",
}

DEFAULT_STAFF_PERMISSIONS = (
    PERMISSIONS["CREATE_JOURNAL"],
    PERMISSIONS["CREATE_INVOICE"],
    PERMISSIONS["CREATE_EXPENSE"],
    PERMISSIONS["VIEW_REPORTS"],
)


def is_valid_phone(value):
    if not value:
        return False
    cleaned = re.sub(r"[\s\-()]", "", str(value)).lstrip("+")
    return bool(PHONE_PATTERN.match(cleaned))


def _now():
    return datetime.utcnow()


def deliver_otp(phone_number, code):
    # SMS gateways are not wired in; the code only reaches the log.
    logging.info("OTP for %s: %s", phone_number, code)


def issue_otp(raw_phone):
    """Create a fresh one-time code for ``raw_phone``. Returns ``(phone, code, is_new_user)``."""
    if not is_valid_phone(raw_phone):
        raise ValidationError(
            "Invalid phone number format. Please use Nigerian format (e.g., 08012345678)"
        )
    phone = normalize_phone(raw_phone)
    config = current_app.config
    length = config.get("OTP_LENGTH", 6)
    code = "".join(secrets.choice("0123456789") for _ in range(length))

    OtpCode.query.filter_by(phone_number=phone).delete()
    db.session.add(
        OtpCode(
            phone_number=phone,
            code_hash=generate_password_hash(code),
            attempts=0,
            expires_at=_now() + timedelta(minutes=config.get("OTP_TTL_MINUTES", 5)),
        )
    )
    is_new_user = User.query.filter_by(phone_number=phone).first() is None
    deliver_otp(phone, code)
    return phone, code, is_new_user


def check_otp(raw_phone, code):
    """
    Validate ``code`` for ``raw_phone`` and consume it.

    A wrong code counts as an attempt; once the attempts run out the code is
    dropped and a new one has to be requested.
    """
    if not is_valid_phone(raw_phone):
        raise ValidationError("Invalid phone number format")
    phone = normalize_phone(raw_phone)
    otp = (
        OtpCode.query.filter_by(phone_number=phone)
        .order_by(OtpCode.created_at.desc(), OtpCode.id.desc())
        .first()
    )
    if not otp or otp.expires_at <= _now():
        raise ValidationError("Invalid or expired code")

    max_attempts = current_app.config.get("OTP_MAX_ATTEMPTS", 3)
    if otp.attempts >= max_attempts:
        db.session.delete(otp)
        raise ValidationError("Too many attempts. Please request a new code")

    if not check_password_hash(otp.code_hash, str(code).strip()):
        otp.attempts += 1
        if otp.attempts >= max_attempts:
            db.session.delete(otp)
            raise ValidationError("Too many attempts. Please request a new code")
        raise ValidationError("Invalid or expired code")

    OtpCode.query.filter_by(phone_number=phone).delete()
    return phone


def login_user(phone, name=None, email=None, device_info=None):
    user = User.query.filter_by(phone_number=phone).first()
    if not user:
        user = User(phone_number=phone, country_code="+234", role="owner", name=name, email=email)
        db.session.add(user)
    user.last_login_at = _now()
    db.session.flush()

    days = current_app.config.get("SESSION_DAYS", 30)
    auth_session = AuthSession(
        user=user,
        device_token=secrets.token_hex(32),
        device_info=(device_info or "")[:255] or None,
        context="business",
        expires_at=_now() + timedelta(days=days),
    )
    db.session.add(auth_session)
    return user, auth_session


def session_cookie_name():
    return current_app.config.get("LEDGERLITE_SESSION_COOKIE", "ledgerlite_session")


def set_session_cookie(response, auth_session):
    response.set_cookie(
        session_cookie_name(),
        auth_session.device_token,
        expires=auth_session.expires_at,
        httponly=True,
        secure=current_app.config.get("SESSION_COOKIE_SECURE", False),
        samesite="Lax",
        path="/",
    )
    return response


def clear_session_cookie(response):
    response.delete_cookie(session_cookie_name(), path="/")
    return response


def get_current_session():
    if hasattr(g, "_auth_session"):
        return g._auth_session

    auth_session = None
    token = request.cookies.get(session_cookie_name())
    if token:
        auth_session = AuthSession.query.filter_by(device_token=token).first()
        if auth_session and auth_session.is_expired():
            auth_session = None

    g._auth_session = auth_session
    return auth_session


def get_current_user():
    if hasattr(g, "_current_user"):
        return g._current_user
    auth_session = get_current_session()
    user = auth_session.user if auth_session else None
    g._current_user = user
    return user


def require_auth():
    user = get_current_user()
    if not user:
        raise Unauthorized()
    return user


def end_session():
    auth_session = get_current_session()
    if auth_session:
        db.session.delete(auth_session)
    g._auth_session = None
    g._current_user = None


def user_permissions(user, company_id):
    company = db.session.get(Company, company_id) if company_id else None
    if not company:
        return set()
    if company.owner_id == user.id:
        return set(PERMISSIONS.values())
    membership = CompanyUser.query.filter_by(company_id=company_id, user_id=user.id).first()
    if not membership:
        return set()
    if membership.role == "owner":
        return set(PERMISSIONS.values())
    return set(membership.permissions or DEFAULT_STAFF_PERMISSIONS)


def _auth_required_response():
    return jsonify({"error": "Authentication required"}), 401


def _company_required_response():
    return jsonify({"error": "Company setup required"}), 400


def _forbidden_response(permissions):
    return jsonify({"error": "Forbidden", "required_permissions": sorted(permissions)}), 403


def login_required(view_func):
    @wraps(view_func)
    def wrapped_view(*args, **kwargs):
        if not get_current_user():
            return _auth_required_response()
        return view_func(*args, **kwargs)

    return wrapped_view


def company_required(view_func):
    """Needs a signed-in user with a business company; exposes it as ``g.company``."""

    @wraps(view_func)
    def wrapped_view(*args, **kwargs):
        user = get_current_user()
        if not user:
            return _auth_required_response()
        company = db.session.get(Company, user.company_id) if user.company_id else None
        if not company:
            return _company_required_response()
        g.company = company
        return view_func(*args, **kwargs)

    return wrapped_view


def permission_required(*required):
    required_set = {perm for perm in required if perm}

    def decorator(view_func):
        @wraps(view_func)
        @company_required
        def wrapped_view(*args, **kwargs):
            granted = user_permissions(get_current_user(), g.company.id)
            if not required_set.issubset(granted):
                return _forbidden_response(required_set - granted)
            return view_func(*args, **kwargs)

        return wrapped_view

    return decorator
