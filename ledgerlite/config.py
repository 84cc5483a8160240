from .config_db import env_flag, setting


class Config:
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    # CSRF tokens do not expire so long-lived app sessions keep working
    WTF_CSRF_TIME_LIMIT = None
    WTF_CSRF_CHECK_DEFAULT = True

    LOG_LEVEL = setting("LOG_LEVEL", "INFO")

    LEDGERLITE_SESSION_COOKIE = "ledgerlite_session"
    SESSION_DAYS = 30
    SESSION_COOKIE_SECURE = env_flag("SESSION_COOKIE_SECURE")

    OTP_LENGTH = 6
    OTP_TTL_MINUTES = 5
    OTP_MAX_ATTEMPTS = 3
    OTP_EXPOSE_CODE = False

    VAT_RATE = 7.5
    DEFAULT_LIST_LIMIT = 10
    CUSTOMER_LIST_LIMIT = 50


class DevelopmentConfig(Config):
    DEBUG = True
    OTP_EXPOSE_CODE = True


class TestingConfig(Config):
    TESTING = True
    WTF_CSRF_ENABLED = False
    OTP_EXPOSE_CODE = True
    SECRET_KEY = "test"
    SQLALCHEMY_DATABASE_URI = "sqlite://"


class ProductionConfig(Config):
    SESSION_COOKIE_SECURE = True


CONFIGS = {
    "default": Config,
    "development": DevelopmentConfig,
    "testing": TestingConfig,
    "test": TestingConfig,
    "production": ProductionConfig,
}
