import os


def _flag(name: str, default: str = "0") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


class Config:
    SECRET_KEY = os.getenv("SECRET_KEY", "super-secret-key")

    SQLALCHEMY_DATABASE_URI = os.getenv(
        "SQLALCHEMY_DATABASE_URI",
        "sqlite:///lablink.db"
    )

    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {"pool_pre_ping": True}

    JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY", "jwt-super-secret")

    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

    # Mail: approval/rejection mails ride on the outbox, off by default
    MAIL_ENABLED = _flag("MAIL_ENABLED")
    MAIL_SERVER = os.getenv("MAIL_SERVER", "smtp.gmail.com")
    MAIL_PORT = int(os.getenv("MAIL_PORT", "587"))
    MAIL_USE_TLS = True
    MAIL_USERNAME = os.getenv("MAIL_USERNAME", "")
    MAIL_PASSWORD = os.getenv("MAIL_PASSWORD", "")
    MAIL_DEFAULT_SENDER = os.getenv("MAIL_DEFAULT_SENDER", "noreply@lablink.local")

    # Outbox relay
    OUTBOX_DISPATCH_INLINE = _flag("OUTBOX_DISPATCH_INLINE", "1")
    OUTBOX_BATCH_SIZE = int(os.getenv("OUTBOX_BATCH_SIZE", "100"))
    OUTBOX_MAX_ATTEMPTS = int(os.getenv("OUTBOX_MAX_ATTEMPTS", "5"))
    OUTBOX_RELAY_MINUTES = int(os.getenv("OUTBOX_RELAY_MINUTES", "2"))

    SCHEDULER_ENABLED = _flag("SCHEDULER_ENABLED", "1")


class TestConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite://"
    SQLALCHEMY_ENGINE_OPTIONS = {}
    JWT_SECRET_KEY = "test-jwt-secret-with-enough-length-for-hs256"
    MAIL_ENABLED = False
    MAIL_SUPPRESS_SEND = True
    OUTBOX_DISPATCH_INLINE = True
    SCHEDULER_ENABLED = False
