import logging
import os
from typing import Callable, List, Mapping, Optional, Tuple
from urllib.parse import quote_plus, urlsplit, urlunsplit

from dotenv import dotenv_values, load_dotenv

SQLITE_FILENAME = "ledgerlite.db"
DEV_SECRET_KEY = "ledgerlite-dev-secret"

_state = {"loaded": False, "dotenv": {}}


def load_env_once(dotenv_path: Optional[str] = None) -> Mapping[str, Optional[str]]:
    """
    Read ``.env`` a single time per process.

    Shell variables keep priority in ``os.environ``; the untouched file values
    are kept apart so a ``.env`` database URL can still beat a shell
    ``DATABASE_URL`` left over from another project.
    """
    if not _state["loaded"]:
        path = dotenv_path or os.path.join(os.getcwd(), ".env")
        load_dotenv(path)
        _state["dotenv"] = dict(dotenv_values(path))
        _state["loaded"] = True
    return _state["dotenv"]


def _clean(value: Optional[str]) -> Optional[str]:
    value = (value or "").strip()
    return value or None


def setting(key: str, default: Optional[str] = None) -> Optional[str]:
    """A value from the environment, else from ``.env``, else ``default``."""
    return _clean(os.environ.get(key)) or _clean(_state["dotenv"].get(key)) or default


def env_flag(key: str, default: bool = False) -> bool:
    raw = setting(key)
    if raw is None:
        return default
    return raw.lower() in ("1", "true", "yes", "on")


def _postgres_scheme(url: str) -> str:
    # Heroku-style URLs still use the scheme SQLAlchemy dropped
    if url.startswith("postgres://"):
        return "postgresql://" + url[len("postgres://"):]
    return url


def mysql_uri_from_parts() -> Optional[str]:
    """``mysql+pymysql://`` DSN from ``MYSQL_*`` settings; needs a user and a database."""
    user = setting("MYSQL_USER") or setting("MYSQL_USERNAME")
    database = setting("MYSQL_DB") or setting("MYSQL_DATABASE")
    if not (user and database):
        return None
    password = quote_plus(setting("MYSQL_PASSWORD", ""))
    host = setting("MYSQL_HOST", "127.0.0.1")
    port = setting("MYSQL_PORT", "3306")
    charset = setting("MYSQL_CHARSET", "utf8mb4")
    return f"mysql+pymysql://{user}:{password}@{host}:{port}/{database}?charset={charset}"


def _sqlite_fallback() -> str:
    instance_dir = os.path.abspath(os.path.join(os.getcwd(), "instance"))
    os.makedirs(instance_dir, exist_ok=True)
    return f"sqlite:///{os.path.join(instance_dir, SQLITE_FILENAME)}"


def _uri_sources() -> List[Tuple[str, Callable[[], Optional[str]]]]:
    dotenv = _state["dotenv"]
    return [
        ("SQLALCHEMY_DATABASE_URI", lambda: _clean(os.environ.get("SQLALCHEMY_DATABASE_URI"))),
        (".env SQLALCHEMY_DATABASE_URI", lambda: _clean(dotenv.get("SQLALCHEMY_DATABASE_URI"))),
        (".env DATABASE_URL", lambda: _clean(dotenv.get("DATABASE_URL"))),
        ("DATABASE_URL", lambda: _clean(os.environ.get("DATABASE_URL"))),
        ("MYSQL_*", mysql_uri_from_parts),
    ]


def resolve_database_uri() -> str:
    """First configured source wins; SQLite under ``instance/`` otherwise."""
    for label, source in _uri_sources():
        url = source()
        if url:
            logging.debug("Database URI taken from %s", label)
            return _postgres_scheme(url)
    return _sqlite_fallback()


def redact_uri(url: str) -> str:
    """The URI with its password masked, for log lines."""
    parts = urlsplit(url)
    if not parts.password:
        return url
    netloc = parts.netloc.replace(f":{parts.password}@", ":***@", 1)
    return urlunsplit(parts._replace(netloc=netloc))


def resolve_secret_key() -> str:
    return setting("SECRET_KEY", DEV_SECRET_KEY)
