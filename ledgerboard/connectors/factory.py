"""
Safe construction of tenant-bound SIIGO clients and safe API calls.

``create_safe`` and ``safe_call`` never raise: every configuration,
authentication, rate-limit, transport or timeout failure becomes an
``empty`` result carrying an error string, so dashboard views always have a
schema-valid payload to render.
"""
import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, AsyncIterator, Awaitable, Callable, Generic, Literal, Optional, TypeVar

from ledgerboard.config import settings
from ledgerboard.connectors.siigo import SiigoClient
from ledgerboard.crypto import decrypt
from ledgerboard.exceptions import ConfigurationError, LedgerboardError
from ledgerboard.models import Company

logger = logging.getLogger(__name__)

T = TypeVar("T")
Source = Literal["real", "empty"]

NO_TENANT = "no tenant"
NOT_CONFIGURED = "not configured"


@dataclass
class ClientOutcome:
    """Result of ``create_safe``: a live client, or the reason there is none."""

    client: Optional[SiigoClient]
    source: Source
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.client is not None

    async def aclose(self) -> None:
        if self.client is not None:
            await self.client.aclose()


@dataclass
class SafeResult(Generic[T]):
    """Result of ``safe_call``: real data, or the caller's empty value plus the error."""

    data: T
    source: Source
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.source == "real"


def error_message(exc: BaseException) -> str:
    if isinstance(exc, LedgerboardError):
        return exc.message
    return str(exc) or exc.__class__.__name__


def build_client(company: Optional[Company], **client_kwargs: Any) -> SiigoClient:
    """Client for the company's stored credentials. Raises ConfigurationError if not configured."""
    if company is None:
        raise ConfigurationError("Company not found")
    if not company.has_provider_credentials:
        raise ConfigurationError(
            "SIIGO configuration not found for this company. "
            "Please configure SIIGO credentials in company settings."
        )
    return SiigoClient(
        username=company.siigo_username,
        access_key=decrypt(company.siigo_access_key),
        partner_id=company.siigo_partner_id or settings.provider_partner_id,
        **client_kwargs,
    )


async def create_safe(company: Optional[Company], **client_kwargs: Any) -> ClientOutcome:
    """Build and probe (authenticate once) a client for the company. Never raises."""
    if company is None:
        return ClientOutcome(client=None, source="empty", error=NO_TENANT)
    if not company.has_provider_credentials:
        return ClientOutcome(client=None, source="empty", error=NOT_CONFIGURED)

    client = None
    try:
        client = build_client(company, **client_kwargs)
        await client.authenticate()
    except Exception as e:
        logger.warning("SIIGO client unavailable for company %s: %s", company.id, error_message(e))
        if client is not None:
            await client.aclose()
        return ClientOutcome(client=None, source="empty", error=error_message(e))
    return ClientOutcome(client=client, source="real")


@asynccontextmanager
async def provider_client(company: Optional[Company], **client_kwargs: Any) -> AsyncIterator[ClientOutcome]:
    """``create_safe`` that closes the client when the block exits."""
    outcome = await create_safe(company, **client_kwargs)
    try:
        yield outcome
    finally:
        await outcome.aclose()


async def safe_call(
    op: Callable[[], Awaitable[T]],
    empty_value: T,
    label: str,
    timeout: Optional[float] = None,
) -> SafeResult[T]:
    """Run one provider operation; any failure or timeout yields ``empty_value``."""
    try:
        if timeout:
            data = await asyncio.wait_for(op(), timeout)
        else:
            data = await op()
    except asyncio.TimeoutError:
        logger.warning("%s: timed out after %ss, serving empty data", label, timeout)
        return SafeResult(data=empty_value, source="empty", error=f"{label} timed out after {timeout}s")
    except Exception as e:
        logger.warning("%s: %s, serving empty data", label, error_message(e))
        return SafeResult(data=empty_value, source="empty", error=error_message(e))
    return SafeResult(data=data, source="real")


async def safe_client_call(
    outcome: ClientOutcome,
    op: Callable[[SiigoClient], Awaitable[T]],
    empty_value: T,
    label: str,
    timeout: Optional[float] = None,
) -> SafeResult[T]:
    """``safe_call`` bound to a factory outcome; no client means empty without calling ``op``."""
    if outcome.client is None:
        return SafeResult(data=empty_value, source="empty", error=outcome.error)
    client = outcome.client
    return await safe_call(lambda: op(client), empty_value, label, timeout)
