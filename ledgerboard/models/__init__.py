"""SQLAlchemy models."""
from ledgerboard.models.company import Company

__all__ = [
    "Company",
]
