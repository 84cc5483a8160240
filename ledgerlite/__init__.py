import logging
import os
import re
from dotenv import load_dotenv
from flask import Flask, jsonify
from flask_migrate import Migrate
from flask_sqlalchemy import SQLAlchemy
from flask_wtf import CSRFProtect
from flask_wtf.csrf import CSRFError
from sqlalchemy.orm import configure_mappers

from .config_db import load_env_once, redact_uri, resolve_database_uri, resolve_secret_key

load_dotenv()  # reads .env at the project root

db = SQLAlchemy()
migrate = Migrate()
csrf = CSRFProtect()


def normalize_phone(value):
    """Nigerian mobile numbers in local form: ``+234 803 123 4567`` -> ``08031234567``."""
    if value is None:
        return ""
    if isinstance(value, float):
        value = str(int(value)) if value.is_integer() else str(value)
    else:
        value = str(value)
    value = value.strip()
    if not value:
        return ""
    if re.fullmatch(r"\d+\.0+", value):
        value = value.split(".", 1)[0]
    digits = re.sub(r"\D", "", value)
    if not digits:
        return ""
    if digits.startswith("234"):
        digits = "0" + digits[3:]
    elif not digits.startswith("0"):
        digits = "0" + digits
    return digits


def _configure_logging(level_name):
    root = logging.getLogger()
    if not root.handlers:
        logging.basicConfig(
            level=getattr(logging, str(level_name).upper(), logging.INFO),
            format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
        )


def create_app(config_name=None):
    from .config import CONFIGS

    app = Flask(__name__)
    config_name = config_name or os.environ.get("LEDGERLITE_CONFIG") or "default"
    app.config.from_object(CONFIGS.get(config_name, CONFIGS["default"]))

    # Load .env and resolve DSN/SECRET unless the config class pins them
    load_env_once()
    if not app.config.get("SQLALCHEMY_DATABASE_URI"):
        app.config["SQLALCHEMY_DATABASE_URI"] = resolve_database_uri()
    if not app.config.get("SECRET_KEY"):
        app.config["SECRET_KEY"] = resolve_secret_key()

    _configure_logging(app.config.get("LOG_LEVEL", "INFO"))
    logging.info("LedgerLite using database %s", redact_uri(app.config["SQLALCHEMY_DATABASE_URI"]))

    db.init_app(app)
    migrate.init_app(app, db)
    csrf.init_app(app)

    from . import ledger  # noqa: F401  registers the balance check on flush
    from .commands import register_commands
    from .exceptions import LedgerError
    from .routes import bp

    app.register_blueprint(bp)
    register_commands(app)
    configure_mappers()

    @app.errorhandler(LedgerError)
    def _ledger_error(exc):
        db.session.rollback()
        return jsonify({"error": exc.message}), exc.status_code

    @app.errorhandler(CSRFError)
    def _csrf_error(exc):
        return jsonify({"error": exc.description}), 400

    @app.errorhandler(404)
    def _not_found(_exc):
        return jsonify({"error": "Not found"}), 404

    @app.errorhandler(405)
    def _method_not_allowed(_exc):
        return jsonify({"error": "Method not allowed"}), 405

    @app.shell_context_processor
    def _ctx():
        # models available directly in `flask shell`
        from . import models

        ctx = {"db": db}
        for name in dir(models):
            if not name.startswith("_"):
                ctx[name] = getattr(models, name)
        return ctx

    return app
