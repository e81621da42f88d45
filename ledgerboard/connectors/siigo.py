"""SIIGO accounting API connector: token auth + paginated reads.

One ``SiigoClient`` is bound to exactly one tenant's credentials. It owns a
``ProviderSession`` (bearer token + expiry) in memory and re-authenticates
whenever the token is missing or expired. Errors are mapped to the
``ledgerboard.exceptions`` provider taxonomy and never retried here.
"""
import asyncio
import logging
import math
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Optional

import httpx

from ledgerboard.config import settings
from ledgerboard.exceptions import (
    AuthenticationError,
    ProviderError,
    RateLimitError,
    TransportError,
)

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class ProviderSession:
    """Bearer token issued by ``POST /auth``. Never persisted."""

    token: str
    expires_at: datetime

    def is_valid(self, now: datetime) -> bool:
        return now < self.expires_at


@dataclass(frozen=True)
class DateFilter:
    """Optional YYYY-MM-DD bounds forwarded to the provider (advisory only)."""

    start: Optional[str] = None
    end: Optional[str] = None

    def to_params(self) -> dict[str, str]:
        params = {}
        if self.start:
            params["start_date"] = self.start
        if self.end:
            params["end_date"] = self.end
        return params


class ConstantDelay:
    """Page pacing: fixed pause between consecutive page fetches."""

    def __init__(self, seconds: float) -> None:
        self.seconds = seconds

    async def wait(self) -> None:
        if self.seconds > 0:
            await asyncio.sleep(self.seconds)


class SiigoClient:
    """Async client for the SIIGO REST API, bound to one tenant."""

    AUTH_PATH = "/auth"

    def __init__(
        self,
        username: str,
        access_key: str,
        partner_id: Optional[str] = None,
        base_url: Optional[str] = None,
        page_size: Optional[int] = None,
        pacing: Optional[ConstantDelay] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.username = username
        self._access_key = access_key
        self.partner_id = partner_id or settings.provider_partner_id
        self.base_url = (base_url or settings.provider_base_url).rstrip("/")
        self.page_size = page_size or settings.provider_page_size
        self.pacing = pacing or ConstantDelay(settings.provider_page_delay_seconds)
        self._timeout = timeout or settings.provider_timeout_seconds
        self._transport = transport
        self._clock = clock

        self.session: Optional[ProviderSession] = None
        self._http: Optional[httpx.AsyncClient] = None

    def _get_http(self) -> httpx.AsyncClient:
        if self._http is None:
            self._http = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=httpx.Timeout(self._timeout),
                transport=self._transport,
            )
        return self._http

    async def aclose(self) -> None:
        """Close the underlying HTTP connection pool."""
        if self._http is not None:
            await self._http.aclose()
            self._http = None

    async def __aenter__(self) -> "SiigoClient":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.aclose()

    # === Authentication ===

    async def authenticate(self) -> ProviderSession:
        """POST credentials to /auth and store a fresh session."""
        http = self._get_http()
        try:
            response = await http.post(
                self.AUTH_PATH,
                json={"username": self.username, "access_key": self._access_key},
                headers={"Partner-Id": self.partner_id, "Content-Type": "application/json"},
            )
        except httpx.RequestError as e:
            raise TransportError(f"Could not reach SIIGO auth endpoint: {e}", original_error=e) from e

        if not response.is_success:
            logger.warning("SIIGO authentication rejected: HTTP %s", response.status_code)
            raise AuthenticationError(
                f"SIIGO Auth failed: {response.status_code} {response.reason_phrase}. {response.text}",
                status_code=response.status_code,
                body=response.text,
            )

        data = _json(response)
        token = data.get("access_token")
        if not token or not isinstance(token, str):
            raise AuthenticationError("SIIGO Auth failed: response has no access_token", status_code=response.status_code)
        try:
            expires_in = int(data.get("expires_in") or 0)
        except (TypeError, ValueError) as e:
            raise AuthenticationError(
                f"SIIGO Auth failed: invalid expires_in {data.get('expires_in')!r}",
                status_code=response.status_code,
            ) from e
        self.session = ProviderSession(token=token, expires_at=self._clock() + timedelta(seconds=expires_in))
        logger.info("Authenticated with SIIGO (partner=%s, expires_in=%ss)", self.partner_id, expires_in)
        return self.session

    async def get_valid_token(self) -> str:
        """Current token, re-authenticating when missing or expired."""
        if self.session is None or not self.session.is_valid(self._clock()):
            await self.authenticate()
        return self.session.token

    # === Requests ===

    async def _request(self, path: str, params: Optional[dict[str, Any]] = None) -> dict[str, Any]:
        token = await self.get_valid_token()
        http = self._get_http()
        try:
            response = await http.get(
                path,
                params=params,
                headers={
                    "Authorization": f"Bearer {token}",
                    "Content-Type": "application/json",
                    "Partner-Id": self.partner_id,
                },
            )
        except httpx.RequestError as e:
            raise TransportError(f"SIIGO request to {path} failed: {e}", original_error=e) from e

        if response.status_code in (401, 403):
            raise AuthenticationError(
                f"SIIGO rejected token: {response.status_code}. {response.text}",
                status_code=response.status_code,
                body=response.text,
            )
        if response.status_code == 429:
            retry_after = response.headers.get("Retry-After")
            raise RateLimitError(
                f"SIIGO rate limit exceeded on {path}",
                retry_after=int(retry_after) if retry_after and retry_after.isdigit() else None,
                body=response.text,
            )
        if not response.is_success:
            raise ProviderError(
                f"SIIGO API error: {response.status_code} {response.reason_phrase}. {response.text}",
                status_code=response.status_code,
                body=response.text,
            )
        return _json(response)

    async def get_page(
        self,
        resource: str,
        page: int = 1,
        page_size: Optional[int] = None,
        date_filter: Optional[DateFilter] = None,
    ) -> dict[str, Any]:
        """Fetch one page envelope: {pagination: {...}, results: [...]}."""
        params: dict[str, Any] = {"page": page, "page_size": page_size or self.page_size}
        if date_filter:
            params.update(date_filter.to_params())
        return await self._request(f"/v1/{resource}", params)

    async def _drain(self, resource: str, date_filter: Optional[DateFilter] = None) -> list[dict[str, Any]]:
        """Fetch pages in order until exhausted. A failing page ends the drain with what was collected."""
        results: list[dict[str, Any]] = []
        page = 1
        while True:
            try:
                envelope = await self.get_page(resource, page, self.page_size, date_filter)
            except ProviderError as e:
                logger.warning("Stopped reading %s at page %d (%d collected): %s", resource, page, len(results), e.message)
                break
            results.extend(envelope.get("results") or [])

            pagination = envelope.get("pagination")
            if not pagination:
                break
            total_results = int(pagination.get("total_results") or 0)
            page_size = int(pagination.get("page_size") or self.page_size)
            if len(results) >= total_results or page_size <= 0:
                break
            if page >= math.ceil(total_results / page_size):
                break
            page += 1
            await self.pacing.wait()
        return results

    async def get_all_customers(self) -> list[dict[str, Any]]:
        return await self._drain("customers")

    async def get_all_invoices(self, date_filter: Optional[DateFilter] = None) -> list[dict[str, Any]]:
        return await self._drain("invoices", date_filter)

    async def get_purchases(self, date_filter: Optional[DateFilter] = None) -> list[dict[str, Any]]:
        return await self._drain("purchases", date_filter)

    async def get_all_accounts(self) -> list[dict[str, Any]]:
        return await self._drain("accounts")

    async def get_products(self) -> list[dict[str, Any]]:
        return await self._drain("products")

    async def get_trial_balance_report(self, date_filter: Optional[DateFilter] = None) -> dict[str, Any]:
        """Raw trial-balance report payload (single request, not paginated)."""
        return await self._request("/v1/trial-balance", date_filter.to_params() if date_filter else None)


def _json(response: httpx.Response) -> dict[str, Any]:
    try:
        data = response.json()
    except ValueError as e:
        raise ProviderError(f"SIIGO returned invalid JSON: {e}", status_code=response.status_code) from e
    if not isinstance(data, dict):
        raise ProviderError("SIIGO returned an unexpected payload", status_code=response.status_code)
    return data
