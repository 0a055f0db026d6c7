import os

from dotenv import load_dotenv

BASE_DIR = os.path.abspath(os.path.dirname(__file__))

load_dotenv(os.path.join(BASE_DIR, ".env"), override=False)


def _csv(value: str):
    return [item.strip() for item in value.split(",") if item.strip()]


class Config:
    # Secrets
    SECRET_KEY = os.getenv("SECRET_KEY", "dev-only-change-me")
    JWT_SECRET = os.getenv("JWT_SECRET", "dev-only-jwt-secret-change-me")
    JWT_ALGORITHM = "HS256"
    JWT_EXPIRES_HOURS = int(os.getenv("JWT_EXPIRES_HOURS", "24"))

    # bcrypt cost factor
    BCRYPT_ROUNDS = int(os.getenv("BCRYPT_ROUNDS", "12"))

    PORT = int(os.getenv("PORT", "3001"))

    # CORS
    ALLOWED_ORIGINS = _csv(os.getenv("ALLOWED_ORIGINS", "http://localhost:3000,http://localhost:8080"))

    # Storage: "json" keeps users.json / swap-requests.json in DATA_DIR,
    # "sql" uses SQLALCHEMY_DATABASE_URI
    STORAGE_BACKEND = os.getenv("STORAGE_BACKEND", "json")
    DATA_DIR = os.getenv("DATA_DIR", BASE_DIR)

    SQLALCHEMY_DATABASE_URI = os.getenv(
        "DATABASE_URL",
        "sqlite:///" + os.path.join(BASE_DIR, "skillswap.db")
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Account lockout
    MAX_LOGIN_ATTEMPTS = 5
    LOCKOUT_MINUTES = 15

    # Fixed-window rate limits per route class
    RATE_LIMIT_STORAGE = os.getenv("RATE_LIMIT_STORAGE", "memory")  # memory | sql | redis
    REDIS_URL = os.getenv("REDIS_URL", "redis://localhost:6379/0")
    RATE_LIMIT_WINDOW_SECONDS = 15 * 60
    RATE_LIMIT_AUTH = int(os.getenv("RATE_LIMIT_AUTH", "5"))
    RATE_LIMIT_SWAP = int(os.getenv("RATE_LIMIT_SWAP", "20"))
    RATE_LIMIT_GENERAL = int(os.getenv("RATE_LIMIT_GENERAL", "100"))

    # Brute-force counter keyed by (ip, path)
    BRUTEFORCE_WINDOW_SECONDS = 15 * 60
    BRUTEFORCE_MAX_ATTEMPTS = 10
    BRUTEFORCE_PROTECTED_PREFIXES = ("/api/auth",)

    # Use the first X-Forwarded-For hop as client ip (only behind a trusted proxy)
    TRUST_PROXY_HEADERS = os.getenv("TRUST_PROXY_HEADERS", "false").lower() == "true"

    # Request size limit (1 MB)
    MAX_CONTENT_LENGTH = 1024 * 1024

    # Body fields left untouched by the sanitizer (hashed, never rendered)
    SANITIZE_EXEMPT_FIELDS = ("password",)

    # Logging
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
    LOG_DIR = os.getenv("LOG_DIR")

    # Basic app settings
    DEBUG = False
    JSON_SORT_KEYS = False


class TestConfig(Config):
    __test__ = False
    TESTING = True
    BCRYPT_ROUNDS = 4
    JWT_SECRET = "test-secret"
    SQLALCHEMY_DATABASE_URI = "sqlite://"
    RATE_LIMIT_STORAGE = "memory"
    # generous limits; tests that exercise limiting override these
    RATE_LIMIT_AUTH = 1000
    RATE_LIMIT_SWAP = 1000
    RATE_LIMIT_GENERAL = 1000
    LOG_DIR = None
