"""
Application configuration with environment variables.
"""
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field, field_validator
from typing import Optional, List


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="ignore",
    )

    # Application
    APP_NAME: str = "Medical Standards Review"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    SECRET_KEY: str = "your-secret-key-change-in-production"

    # Database
    POSTGRES_USER: str = "medreview"
    POSTGRES_PASSWORD: str = "medreview"
    POSTGRES_HOST: str = "postgres"
    POSTGRES_PORT: str = "5432"
    POSTGRES_DB: str = "medreview"
    DATABASE_URL: Optional[str] = Field(default=None, validate_default=True)

    # Redis (background jobs and queued event dispatch)
    REDIS_URL: str = "redis://redis:6379/0"

    # JWT Settings (tokens are issued by the identity provider, only verified here)
    JWT_ALGORITHM: str = "HS256"

    # CORS
    CORS_ORIGINS: List[str] = ["http://localhost:5173", "http://localhost:3000"]

    # =========================================
    # Review Workflow Settings
    # =========================================

    # Automatic retries of a transition after an optimistic-concurrency conflict
    REVIEW_MAX_RETRIES: int = 3

    # Grades that flag a brand as at-risk while it is still a commercial prospect
    AT_RISK_GRADES: List[str] = ["A", "B"]

    # "inline" = in-process subscribers only, "queue" = also enqueue on RQ
    EVENT_DISPATCH: str = "inline"

    # Cached grade drift check
    GRADE_REVALIDATION_INTERVAL_MINUTES: int = 60

    # Demo seeding - MUST be false in production
    SEED_DEMO: bool = False

    @field_validator('DATABASE_URL', mode='before')
    @classmethod
    def assemble_db_url(cls, v: Optional[str], info) -> str:
        if isinstance(v, str) and v:
            return v

        # Access individual fields from the values dict
        data = info.data
        user = data.get("POSTGRES_USER", "medreview")
        password = data.get("POSTGRES_PASSWORD", "medreview")
        host = data.get("POSTGRES_HOST", "postgres")
        port = data.get("POSTGRES_PORT", "5432")
        db = data.get("POSTGRES_DB", "medreview")

        return f"postgresql://{user}:{password}@{host}:{port}/{db}"

    @field_validator('SECRET_KEY')
    @classmethod
    def validate_secret_key(cls, v: str, info) -> str:
        """Reject weak SECRET_KEY in production, warn in development."""
        weak_keys = {
            "your-secret-key-change-in-production",
            "change-me-in-production",
            "secret",
            "changeme",
        }
        is_weak = v in weak_keys or len(v) < 32
        if is_weak:
            debug = info.data.get("DEBUG", False)
            if not debug:
                raise ValueError(
                    "SECRET_KEY is weak or default. "
                    "Generate a strong key with: openssl rand -hex 32"
                )
            import warnings
            warnings.warn(
                "SECRET_KEY is weak or default! Set a strong key before deploying.",
                UserWarning,
                stacklevel=2,
            )
        return v

    @field_validator('POSTGRES_PASSWORD')
    @classmethod
    def validate_postgres_password(cls, v: str, info) -> str:
        """Reject default database password in production."""
        weak = {"medreview", "postgres", "password", "changeme", ""}
        if v in weak and not info.data.get("DEBUG", False):
            raise ValueError(
                "POSTGRES_PASSWORD is set to a default value. "
                "Set a strong database password for production."
            )
        return v

    @field_validator('REVIEW_MAX_RETRIES')
    @classmethod
    def validate_max_retries(cls, v: int) -> int:
        if v < 1:
            raise ValueError("REVIEW_MAX_RETRIES must be at least 1")
        return v

    @field_validator('AT_RISK_GRADES')
    @classmethod
    def validate_at_risk_grades(cls, v: List[str]) -> List[str]:
        grades = [g.strip().upper() for g in v]
        invalid = [g for g in grades if g not in {"A", "B", "C", "D", "F"}]
        if invalid:
            raise ValueError(f"AT_RISK_GRADES contains unknown grades: {invalid}")
        return grades

    @field_validator('EVENT_DISPATCH')
    @classmethod
    def validate_event_dispatch(cls, v: str) -> str:
        if v not in ("inline", "queue"):
            raise ValueError("EVENT_DISPATCH must be 'inline' or 'queue'")
        return v

    @field_validator('SEED_DEMO')
    @classmethod
    def validate_seed_demo(cls, v: bool, info) -> bool:
        """Prevent demo seeding in production."""
        if v and not info.data.get("DEBUG", False):
            raise ValueError(
                "SEED_DEMO=true is not allowed when DEBUG=false. "
                "Demo seeding creates fabricated review records."
            )
        return v


settings = Settings()
