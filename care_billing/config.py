from pydantic_settings import BaseSettings
from pydantic import field_validator
from functools import lru_cache


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database
    DATABASE_URL: str = "postgresql+asyncpg://localhost:5432/care_billing"

    @field_validator('DATABASE_URL', mode='before')
    @classmethod
    def convert_database_url(cls, v: str) -> str:
        """Convert postgresql:// to postgresql+asyncpg:// for async support."""
        if v and v.startswith('postgresql://'):
            return v.replace('postgresql://', 'postgresql+asyncpg://', 1)
        return v

    # CORS
    FRONTEND_URL: str = "http://localhost:5173"

    # Invoicing
    INVOICE_NUMBER_PREFIX: str = "INV"
    INVOICE_DUE_DAYS: int = 30
    VAT_RATE: float = 0.2
    # Bill planned visit duration unless actual times are trusted
    USE_ACTUAL_TIME: bool = False
    BILLABLE_BOOKING_STATUSES: list[str] = ["done", "completed"]

    # Source-mark repair job
    SOURCE_REPAIR_ENABLED: bool = False
    SOURCE_REPAIR_INTERVAL_MINUTES: int = 60

    # Environment
    ENVIRONMENT: str = "development"
    DEBUG: bool = True
    DOCS_ENABLED: bool = True

    @property
    def sqlalchemy_echo(self) -> bool:
        """SQL echo only outside production."""
        return self.DEBUG and self.ENVIRONMENT != "production"

    class Config:
        env_file = ".env"
        case_sensitive = True


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
