"""
Application configuration using environment variables.
"""
import os
import secrets
from functools import lru_cache
from pydantic_settings import BaseSettings
from typing import List


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Application
    app_name: str = "ContentGate API"
    debug: bool = False
    environment: str = "development"

    # Security
    secret_key: str = os.getenv("SECRET_KEY", secrets.token_urlsafe(32))
    algorithm: str = "HS256"
    access_token_expire_minutes: int = 60  # 1 hour
    refresh_token_expire_days: int = 7

    # Server
    host: str = "0.0.0.0"
    port: int = 8000

    # Database
    database_url: str = os.getenv("DATABASE_URL", "sqlite:///./contentgate.db")

    # CORS
    cors_origins: List[str] = [
        "http://localhost:5173",
        "http://localhost:3000",
    ]

    # Rate limiting
    rate_limit_requests: int = 100
    rate_limit_period: int = 60  # seconds
    login_rate_limit: str = "5/minute"

    # Policy checks
    policy_check_max_attempts: int = 3
    policy_check_backoff_min: float = 1.0  # seconds
    policy_check_backoff_max: float = 10.0
    brand_safety_blocked_terms: List[str] = ["controversial", "offensive", "hate", "violence"]
    compliance_flagged_claims: List[str] = ["guaranteed", "risk-free", "cure", "100% safe"]
    min_body_length: int = 10

    # Escalation / timeouts
    escalation_sweeper_enabled: bool = False
    escalation_sweep_interval_seconds: int = 60
    system_reviewer_id: str = "system"

    # Notifications
    notification_webhooks_enabled: bool = True
    notification_workers: int = 4  # threads delivering notifications after commit

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


# Validate secret key on startup
settings = get_settings()
if settings.environment == "production" and "SECRET_KEY" not in os.environ:
    raise ValueError(
        "SECRET_KEY must be set in production! "
        "Generate one with: python -c \"import secrets; print(secrets.token_urlsafe(32))\""
    )
