"""Configuration"""
import os
from dotenv import load_dotenv

load_dotenv()


class Settings:
    APP_NAME = os.getenv("APP_NAME", "Event Scoring")
    VERSION = "1.0.0"
    PORT = int(os.getenv("PORT", 8000))

    # Persisted file next to the package unless overridden
    DB_PATH = os.getenv("DB_PATH", os.path.join(os.path.dirname(__file__), "scoring.sqlite"))

    # Remote copy of the state; empty keeps everything local
    SYNC_URL = os.getenv("SYNC_URL", "").rstrip("/")
    SYNC_MAX_ATTEMPTS = int(os.getenv("SYNC_MAX_ATTEMPTS", 3))
    SYNC_RETRY_DELAY = float(os.getenv("SYNC_RETRY_DELAY", 1.0))
    SYNC_TIMEOUT = float(os.getenv("SYNC_TIMEOUT", 10.0))

    ADMIN_PASSWORD = os.getenv("ADMIN_PASSWORD", "admin")
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

    @property
    def sync_enabled(self) -> bool:
        return bool(self.SYNC_URL)

    def validate(self):
        if self.SYNC_MAX_ATTEMPTS < 1:
            raise ValueError("SYNC_MAX_ATTEMPTS must be at least 1")
        if self.SYNC_RETRY_DELAY < 0:
            raise ValueError("SYNC_RETRY_DELAY must not be negative")
        return True


settings = Settings()
