import os
from pathlib import Path


BASE_DIR = Path(__file__).resolve().parent.parent


class Config:
    SECRET_KEY = os.environ.get("SECRET_KEY", "default-secret-key")
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", f"sqlite:///{BASE_DIR / 'smartmark.db'}"
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SCHEDULER_ENABLED = os.environ.get("SCHEDULER_ENABLED", "1") == "1"

    OAUTH_CLIENT_ID = os.environ.get("OAUTH_CLIENT_ID", "")
    OAUTH_CLIENT_SECRET = os.environ.get("OAUTH_CLIENT_SECRET", "")
    OAUTH_AUTHORIZE_URL = os.environ.get(
        "OAUTH_AUTHORIZE_URL", "https://accounts.google.com/o/oauth2/v2/auth"
    )
    OAUTH_TOKEN_URL = os.environ.get(
        "OAUTH_TOKEN_URL", "https://oauth2.googleapis.com/token"
    )
    OAUTH_USERINFO_URL = os.environ.get(
        "OAUTH_USERINFO_URL", "https://openidconnect.googleapis.com/v1/userinfo"
    )
    OAUTH_SCOPES = os.environ.get("OAUTH_SCOPES", "openid email profile")
    OAUTH_TIMEOUT = float(os.environ.get("OAUTH_TIMEOUT", "10"))
    OAUTH_STATE_MAX_AGE_SECONDS = int(
        os.environ.get("OAUTH_STATE_MAX_AGE_SECONDS", "600")
    )
    SESSION_REFRESH_LEEWAY_SECONDS = int(
        os.environ.get("SESSION_REFRESH_LEEWAY_SECONDS", "60")
    )

    REALTIME_PULL_LIMIT = int(os.environ.get("REALTIME_PULL_LIMIT", "200"))
    REALTIME_EVENT_RETENTION_MINUTES = int(
        os.environ.get("REALTIME_EVENT_RETENTION_MINUTES", "1440")
    )
    REALTIME_PRUNE_INTERVAL_MINUTES = int(
        os.environ.get("REALTIME_PRUNE_INTERVAL_MINUTES", "60")
    )


class TestConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    SCHEDULER_ENABLED = False
    OAUTH_CLIENT_ID = "test-client"
    OAUTH_CLIENT_SECRET = "test-secret"
