import os

from security.policy import IDLE_TIMEOUT_SECONDS, SESSION_LIFETIME_SECONDS

BASE_DIR = os.path.abspath(os.path.dirname(__file__))

class Config:
    # Secrets
    SECRET_KEY = os.getenv("SECRET_KEY", "dev-only-change-me")
    JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY", "dev-only-change-me-jwt")
    JWT_ALGORITHM = "HS256"

    # SQLite database file stored next to the app as act_university.db
    SQLALCHEMY_DATABASE_URI = os.getenv(
        "DATABASE_URL",
        "sqlite:///" + os.path.join(BASE_DIR, "act_university.db")
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Session policy (fixed, shared with the client cache)
    SESSION_LIFETIME_SECONDS = SESSION_LIFETIME_SECONDS
    IDLE_TIMEOUT_SECONDS = IDLE_TIMEOUT_SECONDS

    # bcrypt work factor
    BCRYPT_ROUNDS = int(os.getenv("BCRYPT_ROUNDS", "10"))

    # Audit log listing cap
    AUDIT_LOG_MAX_LIMIT = 500

    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
    PORT = int(os.getenv("PORT", "4000"))

    SERVICE_NAME = "Act University Backend API"

    # Basic app settings
    DEBUG = False


class TestConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite://"
    JWT_SECRET_KEY = "test-secret-key-with-enough-length-for-hs256"
    BCRYPT_ROUNDS = 4
    LOG_LEVEL = "DEBUG"
