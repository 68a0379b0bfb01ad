# fxjournal/config.py
import logging
from pathlib import Path
from decouple import config

BASE_DIR = Path(__file__).parent.parent

DEFAULT_SECRET_KEY = "your-secret-key-here-change-in-production"
DEFAULT_PASSWORD = "0000"


class Settings:
    # App
    APP_NAME = "FX Trade Journal"
    VERSION = "1.0.0"
    SECRET_KEY = config("SECRET_KEY", default=DEFAULT_SECRET_KEY)
    DEBUG = config("DEBUG", default=True, cast=bool)
    ENVIRONMENT = config("ENVIRONMENT", default="development")
    LOG_LEVEL = config("LOG_LEVEL", default="INFO")

    # Database
    DATABASE_URL = config("DATABASE_URL", default=f"sqlite:///{BASE_DIR}/trade_journal.db")

    # Login gate
    JOURNAL_USERNAME = config("JOURNAL_USERNAME", default="FX SYNDICATE")
    JOURNAL_PASSWORD = config("JOURNAL_PASSWORD", default=DEFAULT_PASSWORD)

    # JWT
    ALGORITHM = config("ALGORITHM", default="HS256")
    ACCESS_TOKEN_EXPIRE_MINUTES = config("ACCESS_TOKEN_EXPIRE_MINUTES", default=60 * 12, cast=int)

    # OpenAI API (trade analysis, economic calendar, price lookup)
    OPENAI_API_KEY = config("OPENAI_API_KEY", default="")
    OPENAI_MODEL = config("OPENAI_MODEL", default="gpt-4o-search-preview")
    OPENAI_TIMEOUT = config("OPENAI_TIMEOUT", default=60.0, cast=float)
    OPENAI_WEB_SEARCH = config("OPENAI_WEB_SEARCH", default=True, cast=bool)

    # Finnhub API (market quotes)
    FINNHUB_API_KEY = config("FINNHUB_API_KEY", default="")
    FINNHUB_RATE_LIMIT_PER_MINUTE = config("FINNHUB_RATE_LIMIT_PER_MINUTE", default=60, cast=int)

    # Upload
    MAX_UPLOAD_SIZE = config("MAX_UPLOAD_SIZE", default=5, cast=int)  # MB

    # CORS
    CORS_ORIGINS = config("CORS_ORIGINS", default="http://localhost:8000,http://localhost:3000").split(",")

    @property
    def is_development(self):
        """Check if running in development environment"""
        return self.ENVIRONMENT.lower() == "development"

    @property
    def is_production(self):
        """Check if running in production environment"""
        return self.ENVIRONMENT.lower() == "production"

    @property
    def max_upload_bytes(self) -> int:
        return self.MAX_UPLOAD_SIZE * 1024 * 1024

    def validate_settings(self):
        """Validate critical settings"""
        errors = []

        if not self.DATABASE_URL:
            errors.append("DATABASE_URL is not configured")

        if self.is_production and self.SECRET_KEY == DEFAULT_SECRET_KEY:
            errors.append("SECRET_KEY must be changed in production")

        if self.is_production and self.JOURNAL_PASSWORD == DEFAULT_PASSWORD:
            errors.append("JOURNAL_PASSWORD must be changed in production")

        if errors:
            raise ValueError(f"Configuration errors: {'; '.join(errors)}")

    def config_summary(self) -> list:
        """Lines describing the current configuration, secrets masked"""
        return [
            f"{self.APP_NAME} v{self.VERSION}",
            f"Environment: {self.ENVIRONMENT}",
            f"Debug Mode: {self.DEBUG}",
            f"Database: {self.DATABASE_URL}",
            f"OpenAI API Key: {'Configured' if self.OPENAI_API_KEY else 'Not configured'}",
            f"OpenAI Model: {self.OPENAI_MODEL}",
            f"Finnhub API Key: {'Configured' if self.FINNHUB_API_KEY else 'Not configured'}",
        ]


def configure_logging(level: str = None):
    """Configure root logging once for the whole application"""
    logging.basicConfig(
        level=(level or settings.LOG_LEVEL).upper(),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


# Initialize settings
settings = Settings()
