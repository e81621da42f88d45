"""
App configuration: all credentials from environment (no hardcoded secrets).

Load from .env via pydantic_settings. In production, set ENVIRONMENT=production
so the credential encryption key is validated at startup.
"""
from pydantic import model_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings from environment."""

    database_url: str = "sqlite:///./ledgerboard.db"  # Use postgresql://... for production
    environment: str = "development"  # development | production (production validates secrets)

    # Symmetric key for provider credentials at rest. Empty means the development key.
    encryption_key: str = ""

    # Accounting provider (SIIGO)
    provider_base_url: str = "https://api.siigo.com"
    provider_partner_id: str = "LedgerboardDashboard"
    provider_page_size: int = 100
    provider_page_delay_seconds: float = 0.5
    provider_timeout_seconds: float = 30.0

    # Each dashboard module fetch is cancelled on its own after this
    dashboard_call_timeout_seconds: float = 15.0

    # Credential store retry policy
    store_retry_attempts: int = 3
    store_retry_backoff_seconds: float = 0.5

    # Tenancy: <subdomain>.<root_domain>
    root_domain: str = "ledgerboard.local"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"

    @model_validator(mode="after")
    def validate_production_secrets(self):
        """Fail fast in production if the credential encryption key is missing."""
        if self.environment != "production":
            return self
        if not self.encryption_key:
            raise ValueError("In production, ENCRYPTION_KEY must be set in .env")
        return self


settings = Settings()
