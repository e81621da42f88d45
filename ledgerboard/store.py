"""Company credential store with bounded retry.

The database is assumed to drop connections now and then, so every read and
write is retried (3 attempts, fixed backoff by default). Blocking SQLAlchemy
work runs in Starlette's threadpool. After the last attempt a ``StoreError``
is raised; read paths turn it into "not found", write paths surface it.
"""
import asyncio
import logging
import secrets
from dataclasses import dataclass
from typing import Any, Callable, Optional, TypeVar, Union

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
from starlette.concurrency import run_in_threadpool

from ledgerboard.config import settings
from ledgerboard.database import SessionLocal
from ledgerboard.exceptions import StoreError
from ledgerboard.models import Company

logger = logging.getLogger(__name__)

T = TypeVar("T")
CompanyKey = Union[int, str]  # internal id or subdomain

WRITABLE_FIELDS = {
    "name",
    "subdomain",
    "is_active",
    "api_key",
    "siigo_username",
    "siigo_access_key",
    "siigo_partner_id",
}


@dataclass(frozen=True)
class RetryPolicy:
    attempts: int = 3
    backoff_seconds: float = 0.5

    @classmethod
    def from_settings(cls) -> "RetryPolicy":
        return cls(attempts=max(1, settings.store_retry_attempts), backoff_seconds=settings.store_retry_backoff_seconds)


async def with_retry(fn: Callable[[], T], label: str, policy: RetryPolicy) -> T:
    """Run blocking ``fn`` in the threadpool, retrying database errors."""
    last_error: Optional[Exception] = None
    for attempt in range(1, policy.attempts + 1):
        try:
            return await run_in_threadpool(fn)
        except SQLAlchemyError as e:
            last_error = e
            logger.warning("%s failed (attempt %d/%d): %s", label, attempt, policy.attempts, e)
            if attempt < policy.attempts:
                await asyncio.sleep(policy.backoff_seconds)
    logger.error("%s failed after %d attempts", label, policy.attempts)
    raise StoreError(f"{label} failed after {policy.attempts} attempts", policy.attempts, last_error) from last_error


def _filter_for(key: CompanyKey):
    """Integers are company ids, strings are subdomains."""
    if isinstance(key, int):
        return Company.id == key
    return Company.subdomain == key


def _apply(company: Company, fields: dict[str, Any]) -> None:
    unknown = set(fields) - WRITABLE_FIELDS
    if unknown:
        raise ValueError(f"Unknown company fields: {sorted(unknown)}")
    for name, value in fields.items():
        setattr(company, name, value)


class CompanyStore:
    """Keyed company store: find_one / upsert / update, each independently retried."""

    def __init__(
        self,
        session_factory: Optional[sessionmaker] = None,
        policy: Optional[RetryPolicy] = None,
    ) -> None:
        self._session_factory = session_factory or SessionLocal
        self.policy = policy or RetryPolicy.from_settings()

    def _active(self, db: Session, key: CompanyKey) -> Optional[Company]:
        return db.query(Company).filter(_filter_for(key), Company.is_active.is_(True)).first()

    async def find_one(self, key: CompanyKey) -> Optional[Company]:
        """Active company by id or subdomain; None when absent."""
        def op() -> Optional[Company]:
            with self._session_factory() as db:
                return self._active(db, key)

        return await with_retry(op, f"Company lookup {key!r}", self.policy)

    async def find_by_api_key(self, api_key: str) -> Optional[Company]:
        def op() -> Optional[Company]:
            with self._session_factory() as db:
                return (
                    db.query(Company)
                    .filter(Company.api_key == api_key, Company.is_active.is_(True))
                    .first()
                )

        return await with_retry(op, "Company lookup by API key", self.policy)

    async def update(self, key: CompanyKey, fields: dict[str, Any]) -> Optional[Company]:
        """Update an existing company; None when it does not exist."""
        def op() -> Optional[Company]:
            with self._session_factory() as db:
                company = self._active(db, key)
                if company is None:
                    return None
                _apply(company, fields)
                db.commit()
                db.refresh(company)
                return company

        return await with_retry(op, f"Company update {key!r}", self.policy)

    async def upsert(self, key: CompanyKey, fields: dict[str, Any]) -> Company:
        """Update the company at ``key`` or create it (``key`` is taken as the subdomain)."""
        def op() -> Company:
            with self._session_factory() as db:
                company = db.query(Company).filter(_filter_for(key)).first()
                if company is None:
                    company = Company(subdomain=str(key))
                    db.add(company)
                _apply(company, fields)
                db.commit()
                db.refresh(company)
                return company

        return await with_retry(op, f"Company upsert {key!r}", self.policy)

    async def provision(self, name: str, subdomain: str) -> Company:
        """Create (or re-activate) a tenant with a fresh API key."""
        return await self.upsert(subdomain, {"name": name, "is_active": True, "api_key": secrets.token_hex(32)})


def get_store() -> CompanyStore:
    """Dependency for the company store."""
    return CompanyStore()
