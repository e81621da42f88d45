"""Company (tenant) model."""
from sqlalchemy import Column, Integer, String, DateTime, Boolean
from sqlalchemy.sql import func

from ledgerboard.database import Base


class Company(Base):
    """Tenant of the dashboard, isolated by subdomain."""

    __tablename__ = "companies"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    subdomain = Column(String(63), nullable=False, unique=True, index=True)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    # API authentication
    api_key = Column(String(64), unique=True, index=True)

    # Accounting provider connection (SIIGO). Access key is encrypted at rest.
    siigo_username = Column(String(255))
    siigo_access_key = Column(String(1024))  # ivHex:cipherHex
    siigo_partner_id = Column(String(100))

    @property
    def has_provider_credentials(self) -> bool:
        """Username and encrypted key both present; either alone is "not configured"."""
        return bool(self.siigo_username and self.siigo_access_key)
