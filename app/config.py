import os


def normalize_database_url(raw_url: str) -> str:
    if raw_url.startswith("postgres://"):
        return raw_url.replace("postgres://", "postgresql://", 1)
    return raw_url


def env_flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes"}


class BaseConfig:
    SECRET_KEY = os.getenv("SECRET_KEY", "dev-unsafe-key")
    SQLALCHEMY_DATABASE_URI = normalize_database_url(
        os.getenv("DATABASE_URL", "sqlite:///instance/aquasurvey.db")
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {
        "pool_pre_ping": True,
        "pool_recycle": 300,
    }
    CACHE_TYPE = os.getenv("CACHE_TYPE", "SimpleCache")
    CACHE_DEFAULT_TIMEOUT = int(os.getenv("CACHE_DEFAULT_TIMEOUT", "120"))
    RATELIMIT_STORAGE_URI = os.getenv("RATELIMIT_STORAGE_URI", "memory://")
    RATELIMIT_DEFAULT = os.getenv("RATELIMIT_DEFAULT", "600 per hour;120 per minute")
    PAYMENT_CALLBACK_RATE_LIMIT = os.getenv("PAYMENT_CALLBACK_RATE_LIMIT", "60 per minute")

    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = "Lax"
    SESSION_COOKIE_SECURE = env_flag("SESSION_COOKIE_SECURE")

    SENTRY_DSN = os.getenv("SENTRY_DSN")
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

    # Identity is resolved by an upstream auth gateway; see app.load_user_from_request.
    TRUST_ACTOR_HEADER = env_flag("TRUST_ACTOR_HEADER", "false")
    ACTOR_HEADER = os.getenv("ACTOR_HEADER", "X-User-Id")

    # Payment confirmations come from an admin or from the gateway, signed with this secret.
    PAYMENT_WEBHOOK_SECRET = os.getenv("PAYMENT_WEBHOOK_SECRET")
    PAYMENT_SIGNATURE_HEADER = os.getenv("PAYMENT_SIGNATURE_HEADER", "X-Payment-Signature")

    # Who may submit the borewell result: "user", "vendor" or "any".
    BOREWELL_RESULT_UPLOADER = os.getenv("BOREWELL_RESULT_UPLOADER", "user").strip().lower()
    CONFLICT_RETRY_ATTEMPTS = int(os.getenv("CONFLICT_RETRY_ATTEMPTS", "3"))

    DEFAULT_TRAVEL_CHARGE_PER_KM = os.getenv("DEFAULT_TRAVEL_CHARGE_PER_KM", "10")
    DEFAULT_BASE_RADIUS_KM = os.getenv("DEFAULT_BASE_RADIUS_KM", "30")
    DEFAULT_GST_PERCENTAGE = os.getenv("DEFAULT_GST_PERCENTAGE", "18")


class DevelopmentConfig(BaseConfig):
    DEBUG = True
    SESSION_COOKIE_SECURE = False
    TRUST_ACTOR_HEADER = env_flag("TRUST_ACTOR_HEADER", "true")


class ProductionConfig(BaseConfig):
    DEBUG = False
    TESTING = False
    SESSION_COOKIE_SECURE = True


class TestingConfig(BaseConfig):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    SQLALCHEMY_ENGINE_OPTIONS = {}
    CACHE_TYPE = "NullCache"
    RATELIMIT_ENABLED = False
    TRUST_ACTOR_HEADER = True
    PAYMENT_WEBHOOK_SECRET = "test-webhook-secret"
    BOREWELL_RESULT_UPLOADER = "user"


config_by_env = {
    "development": DevelopmentConfig,
    "production": ProductionConfig,
    "testing": TestingConfig,
}
