"""API routes: dashboard reads, provider credential configuration, tenants."""
import asyncio
import logging
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Any, Awaitable, Callable, Optional, TypeVar

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import JSONResponse

from ledgerboard import metrics
from ledgerboard.api.auth import get_company_by_key
from ledgerboard.config import settings
from ledgerboard.connectors.factory import (
    NO_TENANT,
    NOT_CONFIGURED,
    ClientOutcome,
    SafeResult,
    build_client,
    provider_client,
    safe_client_call,
)
from ledgerboard.connectors.siigo import DateFilter, SiigoClient
from ledgerboard.crypto import encrypt
from ledgerboard.exceptions import (
    AuthenticationError,
    ConfigurationError,
    ProviderError,
    RateLimitError,
    StoreError,
)
from ledgerboard.models import Company
from ledgerboard.schemas import (
    AccountsPayable,
    AccountsReceivable,
    CompanyCreate,
    CompanyCreateResponse,
    CompanyOut,
    ConnectionStatus,
    ConnectionTestResponse,
    DashboardModule,
    DashboardResponse,
    DateRangeOut,
    Filters,
    Overview,
    ProfitLoss,
    ProviderConfigBody,
    ProviderConfigOut,
    ProviderConfigResponse,
    ProviderStatus,
    ProviderStatusResponse,
    TrialBalance,
)
from ledgerboard.store import CompanyStore, get_store
from ledgerboard.tenancy import build_subdomain_url, get_request_subdomain

router = APIRouter()
logger = logging.getLogger(__name__)

T = TypeVar("T")

INVALID_CREDENTIALS = "Credenciales SIIGO inválidas. Verifique su usuario y access key."
RATE_LIMITED = "Límite de peticiones excedido. Intente nuevamente en unos segundos."
CONNECTION_FAILED = "Error conectando con SIIGO API"
NOT_CONFIGURED_MESSAGE = "No SIIGO integration configured"


def get_client_options() -> dict[str, Any]:
    """Dependency: extra SiigoClient keyword arguments (transport, pacing) for every request."""
    return {}


# --- Dashboard query parsing ---

@dataclass
class DashboardQuery:
    company: Optional[Company]
    date_range: metrics.DateRange
    provider_filter: DateFilter
    filters: Filters


def _parse_day(value: Optional[str], name: str) -> Optional[date]:
    if not value:
        return None
    try:
        return datetime.strptime(value, "%Y-%m-%d").date()
    except ValueError:
        raise HTTPException(400, f"{name} must be a date in YYYY-MM-DD format")


async def dashboard_query(
    company_id: Optional[str] = Query(None, alias="companyId", max_length=64),
    start_date: Optional[str] = Query(None, alias="startDate", max_length=10),
    end_date: Optional[str] = Query(None, alias="endDate", max_length=10),
    store: CompanyStore = Depends(get_store),
    subdomain: Optional[str] = Depends(get_request_subdomain),
) -> DashboardQuery:
    """Dependency: validate companyId/startDate/endDate and load the tenant."""
    if not company_id:
        raise HTTPException(400, "Company ID is required")
    start = _parse_day(start_date, "startDate")
    end = _parse_day(end_date, "endDate")

    # companyId is the numeric id; a non-numeric value is looked up as a subdomain
    key = int(company_id) if company_id.isdigit() else company_id
    try:
        company = await store.find_one(key)
    except StoreError as e:
        # Store unavailable after retries: serve empty data rather than an error page
        logger.error("Company %s unavailable, serving empty data: %s", company_id, e.message)
        company = None
    else:
        if company is None or (subdomain and company.subdomain != subdomain):
            raise HTTPException(404, "Company not found")

    today = date.today()
    filters = Filters(date_range=DateRangeOut(
        start=(start or date(today.year, 1, 1)).isoformat(),
        end=(end or today).isoformat(),
    ))
    return DashboardQuery(
        company=company,
        date_range=metrics.DateRange(start=start, end=end),
        provider_filter=DateFilter(start=start_date or None, end=end_date or None),
        filters=filters,
    )


# --- Dashboard module fetchers (client -> derived metric) ---

async def fetch_profit_loss(client: SiigoClient, q: DashboardQuery) -> ProfitLoss:
    invoices = await client.get_all_invoices(q.provider_filter)
    return metrics.profit_and_loss(invoices, q.date_range)


async def fetch_accounts_receivable(client: SiigoClient, q: DashboardQuery) -> AccountsReceivable:
    invoices, customers = await asyncio.gather(
        client.get_all_invoices(q.provider_filter),
        client.get_all_customers(),
    )
    return metrics.accounts_receivable(invoices, customers, q.date_range)


async def fetch_accounts_payable(client: SiigoClient, q: DashboardQuery) -> AccountsPayable:
    purchases = await client.get_purchases(q.provider_filter)
    return metrics.accounts_payable(purchases, q.date_range)


async def fetch_trial_balance(client: SiigoClient, q: DashboardQuery) -> TrialBalance:
    invoices, purchases = await asyncio.gather(
        client.get_all_invoices(q.provider_filter),
        client.get_purchases(q.provider_filter),
    )
    return metrics.trial_balance(invoices, purchases, q.date_range)


Fetcher = Callable[[SiigoClient, DashboardQuery], Awaitable[T]]


async def _run_module(
    outcome: ClientOutcome,
    q: DashboardQuery,
    fetch: Fetcher,
    empty: T,
    label: str,
) -> SafeResult[T]:
    return await safe_client_call(
        outcome,
        lambda client: fetch(client, q),
        empty,
        label,
        timeout=settings.dashboard_call_timeout_seconds,
    )


async def _dashboard(q: DashboardQuery, client_options: dict[str, Any], fetch: Fetcher, empty: T, label: str) -> DashboardResponse[T]:
    async with provider_client(q.company, **client_options) as outcome:
        result = await _run_module(outcome, q, fetch, empty, label)
    message = NOT_CONFIGURED_MESSAGE if outcome.error in (NO_TENANT, NOT_CONFIGURED) else None
    return DashboardResponse(
        success=True,
        data=result.data,
        filters=q.filters,
        source=result.source,
        error=result.error,
        message=message,
    )


@router.get("/profit-loss", response_model=DashboardResponse[ProfitLoss], response_model_exclude_none=True)
async def profit_loss(
    q: DashboardQuery = Depends(dashboard_query),
    client_options: dict = Depends(get_client_options),
):
    """Profit & loss from invoices (expenses estimated)."""
    return await _dashboard(q, client_options, fetch_profit_loss, ProfitLoss(), "profit-loss")


@router.get("/accounts-receivable", response_model=DashboardResponse[AccountsReceivable], response_model_exclude_none=True)
async def accounts_receivable(
    q: DashboardQuery = Depends(dashboard_query),
    client_options: dict = Depends(get_client_options),
):
    """Open receivables with aging buckets and top debtors."""
    return await _dashboard(q, client_options, fetch_accounts_receivable, AccountsReceivable(), "accounts-receivable")


@router.get("/accounts-payable", response_model=DashboardResponse[AccountsPayable], response_model_exclude_none=True)
async def accounts_payable(
    q: DashboardQuery = Depends(dashboard_query),
    client_options: dict = Depends(get_client_options),
):
    """Open payables by supplier and upcoming due dates."""
    return await _dashboard(q, client_options, fetch_accounts_payable, AccountsPayable(), "accounts-payable")


@router.get("/trial-balance", response_model=DashboardResponse[TrialBalance], response_model_exclude_none=True)
async def trial_balance(
    q: DashboardQuery = Depends(dashboard_query),
    client_options: dict = Depends(get_client_options),
):
    """Approximate trial balance from invoice and purchase totals."""
    return await _dashboard(q, client_options, fetch_trial_balance, TrialBalance(), "trial-balance")


@router.get("/overview", response_model=DashboardResponse[Overview], response_model_exclude_none=True)
async def overview(
    q: DashboardQuery = Depends(dashboard_query),
    client_options: dict = Depends(get_client_options),
):
    """All four dashboard modules fetched concurrently; each one may fail or time out on its own."""
    async with provider_client(q.company, **client_options) as outcome:
        pl, ar, ap, tb = await asyncio.gather(
            _run_module(outcome, q, fetch_profit_loss, ProfitLoss(), "profit-loss"),
            _run_module(outcome, q, fetch_accounts_receivable, AccountsReceivable(), "accounts-receivable"),
            _run_module(outcome, q, fetch_accounts_payable, AccountsPayable(), "accounts-payable"),
            _run_module(outcome, q, fetch_trial_balance, TrialBalance(), "trial-balance"),
        )
    modules = [pl, ar, ap, tb]
    errors = [m.error for m in modules if m.error]
    data = Overview(
        profit_loss=DashboardModule(data=pl.data, source=pl.source, error=pl.error),
        accounts_receivable=DashboardModule(data=ar.data, source=ar.source, error=ar.error),
        accounts_payable=DashboardModule(data=ap.data, source=ap.source, error=ap.error),
        trial_balance=DashboardModule(data=tb.data, source=tb.source, error=tb.error),
    )
    return DashboardResponse(
        success=True,
        data=data,
        filters=q.filters,
        source="real" if any(m.ok for m in modules) else "empty",
        error=errors[0] if errors else None,
        message=NOT_CONFIGURED_MESSAGE if outcome.error in (NO_TENANT, NOT_CONFIGURED) else None,
    )


# --- Provider credential configuration ---

def _config_out(company: Company) -> ProviderConfigOut:
    return ProviderConfigOut(
        id=company.id,
        name=company.name,
        siigo_username=company.siigo_username,
        siigo_partner_id=company.siigo_partner_id,
        has_access_key=bool(company.siigo_access_key),
    )


@router.get("/config", response_model=ProviderConfigResponse, response_model_exclude_none=True)
def get_config(company: Company = Depends(get_company_by_key)):
    """Stored SIIGO configuration (the access key itself is never returned)."""
    return ProviderConfigResponse(success=True, data=_config_out(company))


@router.post("/config", response_model=ProviderConfigResponse, response_model_exclude_none=True)
async def save_config(
    body: ProviderConfigBody,
    company: Company = Depends(get_company_by_key),
    store: CompanyStore = Depends(get_store),
    client_options: dict = Depends(get_client_options),
):
    """Encrypt and store SIIGO credentials, then probe them. A failed probe does not undo the save."""
    fields = {
        "siigo_username": body.username,
        "siigo_access_key": encrypt(body.access_key),
        "siigo_partner_id": body.partner_id or settings.provider_partner_id,
    }
    try:
        updated = await store.update(company.id, fields)
    except StoreError as e:
        logger.error("Saving SIIGO config for company %s failed: %s", company.id, e.message)
        raise HTTPException(500, "Failed to save SIIGO configuration")
    if updated is None:
        raise HTTPException(404, "Company not found")
    logger.info("SIIGO credentials saved for company %s", company.id)

    try:
        async with build_client(updated, **client_options) as client:
            await client.authenticate()
    except ProviderError as e:
        logger.warning("SIIGO credentials saved for company %s but connection test failed: %s", company.id, e.message)
        return ProviderConfigResponse(
            success=True,
            message="Credenciales guardadas, pero la conexión con SIIGO falló. Verifique que sean correctas.",
            warning=True,
            test_error=e.message,
            data=_config_out(updated),
        )
    return ProviderConfigResponse(
        success=True,
        message="SIIGO configuration saved successfully",
        data=_config_out(updated),
    )


@router.delete("/config", response_model=ProviderConfigResponse, response_model_exclude_none=True)
async def delete_config(
    company: Company = Depends(get_company_by_key),
    store: CompanyStore = Depends(get_store),
):
    """Remove SIIGO credentials from the company."""
    try:
        await store.update(company.id, {"siigo_username": None, "siigo_access_key": None, "siigo_partner_id": None})
    except StoreError as e:
        logger.error("Removing SIIGO config for company %s failed: %s", company.id, e.message)
        raise HTTPException(500, "Failed to remove SIIGO configuration")
    logger.info("SIIGO credentials removed for company %s", company.id)
    return ProviderConfigResponse(success=True, message="SIIGO configuration removed successfully")


@router.get("/status", response_model=ProviderStatusResponse)
def provider_status(company: Company = Depends(get_company_by_key)):
    """Whether the company has SIIGO credentials configured."""
    configured = company.has_provider_credentials
    return ProviderStatusResponse(data=ProviderStatus(
        company_id=company.id,
        company_name=company.name,
        has_credentials=configured,
        is_configured=configured,
    ))


def _connection_failure(company: Company, status_code: int, error: str, exc: ProviderError) -> JSONResponse:
    logger.warning("SIIGO connection test failed for company %s: %s", company.id, exc.to_dict())
    body = ConnectionTestResponse(success=False, error=error, details=exc.message)
    return JSONResponse(status_code=status_code, content=body.model_dump(by_alias=True, exclude_none=True))


@router.post("/test-connection", response_model=ConnectionTestResponse, response_model_exclude_none=True)
async def test_connection(
    company: Company = Depends(get_company_by_key),
    client_options: dict = Depends(get_client_options),
):
    """Authenticate against SIIGO with the stored credentials. Provider failures are 4xx, never 5xx."""
    try:
        async with build_client(company, **client_options) as client:
            await client.authenticate()
    except ConfigurationError as e:
        return _connection_failure(company, 400, "SIIGO no está configurado para esta empresa.", e)
    except RateLimitError as e:
        return _connection_failure(company, 429, RATE_LIMITED, e)
    except AuthenticationError as e:
        if e.status_code == 429:
            return _connection_failure(company, 429, RATE_LIMITED, e)
        return _connection_failure(company, 400, INVALID_CREDENTIALS, e)
    except ProviderError as e:
        return _connection_failure(company, 400, CONNECTION_FAILED, e)

    logger.info("SIIGO connection test succeeded for company %s", company.id)
    return ConnectionTestResponse(
        success=True,
        message="Conexión exitosa con SIIGO API",
        data=ConnectionStatus(status="connected", timestamp=datetime.now(timezone.utc).isoformat()),
    )


# --- Tenants ---

@router.get("/tenant", response_model=CompanyOut)
async def current_tenant(
    subdomain: Optional[str] = Depends(get_request_subdomain),
    store: CompanyStore = Depends(get_store),
):
    """Company for the subdomain of the request host."""
    if not subdomain:
        raise HTTPException(404, "No tenant for this host")
    try:
        company = await store.find_one(subdomain)
    except StoreError:
        company = None
    if not company:
        raise HTTPException(404, "Company not found")
    return company


@router.post("/companies", response_model=CompanyCreateResponse, status_code=201)
async def create_company(data: CompanyCreate, store: CompanyStore = Depends(get_store)):
    """Provision a company. The API key is returned only in this response."""
    try:
        if await store.find_one(data.subdomain) is not None:
            raise HTTPException(409, "Subdomain already registered")
        company = await store.provision(data.name, data.subdomain)
    except StoreError as e:
        logger.error("Provisioning company %s failed: %s", data.subdomain, e.message)
        raise HTTPException(500, "Failed to create company")
    logger.info("Company created: id=%s subdomain=%s", company.id, company.subdomain)
    return CompanyCreateResponse(
        id=company.id,
        name=company.name,
        subdomain=company.subdomain,
        api_key=company.api_key,
        url=build_subdomain_url(company.subdomain),
    )
