"""
Application Configuration
Handles environment-specific settings
"""

import os

from dotenv import load_dotenv

load_dotenv()


DEFAULT_SECRET_KEY = "smarttryout_secret_key_change_later"


def env_flag(name, default="False"):
    return os.getenv(name, default).lower() == "true"


class Config:
    """Base configuration"""

    # ================= SECURITY =================
    SECRET_KEY = os.getenv("SECRET_KEY", DEFAULT_SECRET_KEY)

    # ================= BACKEND =================
    # "supabase" talks to the hosted backend, "sql" uses the local stand-in
    BACKEND = os.getenv("BACKEND", "supabase").lower()

    SUPABASE_URL = os.getenv("SUPABASE_URL", "")
    SUPABASE_ANON_KEY = os.getenv("SUPABASE_ANON_KEY", "")

    # Local stand-in backend (BACKEND=sql)
    SQLALCHEMY_DATABASE_URI = os.getenv("DATABASE_URL", "sqlite:///smarttryout.db")

    # Fix Render / Heroku old postgres:// url
    if SQLALCHEMY_DATABASE_URI.startswith("postgres://"):
        SQLALCHEMY_DATABASE_URI = SQLALCHEMY_DATABASE_URI.replace(
            "postgres://", "postgresql://", 1
        )

    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {"pool_pre_ping": True}

    STORAGE_ROOT = os.getenv("STORAGE_ROOT", os.path.join(os.getcwd(), "storage"))

    # ================= UPLOADS =================
    PDF_BUCKET = os.getenv("PDF_BUCKET", "soal_pdf")
    MAX_PDF_BYTES = int(os.getenv("MAX_PDF_BYTES", 10 * 1024 * 1024))
    # Leave room for the other form fields around the PDF
    MAX_CONTENT_LENGTH = MAX_PDF_BYTES + 1024 * 1024

    # ================= NOTIFICATIONS =================
    NOTIFY_URL = os.getenv("NOTIFY_URL", "")
    NOTIFY_TOKEN = os.getenv("NOTIFY_TOKEN", SUPABASE_ANON_KEY)
    NOTIFY_TIMEOUT = float(os.getenv("NOTIFY_TIMEOUT", 10))

    # ================= EXAM ROOM =================
    EXAM_TIMER_ENABLED = env_flag("EXAM_TIMER_ENABLED", "True")
    EXAM_TICK_SECONDS = float(os.getenv("EXAM_TICK_SECONDS", 1))
    EXAM_RESYNC_SECONDS = int(os.getenv("EXAM_RESYNC_SECONDS", 30))
    # Sessions of socket-less clients are dropped after this long without activity
    EXAM_SESSION_IDLE_SECONDS = int(os.getenv("EXAM_SESSION_IDLE_SECONDS", 2 * 60 * 60))
    PASS_SCORE = float(os.getenv("PASS_SCORE", 70))

    # ================= SESSION =================
    SESSION_COOKIE_SAMESITE = "Lax"
    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SECURE = env_flag("SESSION_COOKIE_SECURE")

    # ================= SOCKET.IO =================
    SOCKETIO_ASYNC_MODE = "threading"
    SOCKETIO_CORS_ALLOWED_ORIGINS = "*"

    # ================= APP =================
    TIMEZONE = os.getenv("TIMEZONE", "Asia/Jakarta")
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
    # Run notification tasks inline instead of in a background task
    INLINE_BACKGROUND_TASKS = False


class DevelopmentConfig(Config):
    """Development configuration"""
    DEBUG = True
    SESSION_COOKIE_SECURE = False
    LOG_LEVEL = os.getenv("LOG_LEVEL", "DEBUG").upper()


class ProductionConfig(Config):
    """Production configuration"""
    DEBUG = False
    SESSION_COOKIE_SECURE = True
    SQLALCHEMY_ENGINE_OPTIONS = {
        "pool_size": int(os.getenv("DB_POOL_SIZE", 10)),
        "max_overflow": int(os.getenv("DB_MAX_OVERFLOW", 20)),
        "pool_recycle": int(os.getenv("DB_POOL_RECYCLE", 1800)),
        "pool_pre_ping": True,
    }
    # create_app refuses to start with the default SECRET_KEY
    REQUIRE_SECRET_KEY = True


class TestingConfig(Config):
    """Test configuration: local backend, no live countdown"""
    TESTING = True
    SECRET_KEY = "testing"
    BACKEND = "sql"
    SQLALCHEMY_DATABASE_URI = "sqlite://"
    SQLALCHEMY_ENGINE_OPTIONS = {}
    NOTIFY_URL = ""
    EXAM_TIMER_ENABLED = False
    INLINE_BACKGROUND_TASKS = True
    TIMEZONE = "UTC"
    LOG_LEVEL = "DEBUG"


# ================= CONFIG MAP =================
config = {
    "development": DevelopmentConfig,
    "production": ProductionConfig,
    "testing": TestingConfig,
    "default": DevelopmentConfig,
}


def get_config():
    """Return config class based on FLASK_ENV"""
    env = os.getenv("FLASK_ENV", "development").lower()
    return config.get(env, config["default"])
