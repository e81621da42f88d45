"""
Pydantic schemas for the API: strict request validation, camelCase dashboard payloads.

- All string inputs have explicit max_length.
- Request body models use extra="forbid" to reject unexpected fields.
- Dashboard payloads default to zeroed/empty values, so ``Model()`` is always a
  valid "no data" response for the UI.
"""
from typing import Generic, Literal, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

MAX_LEN_NAME = 255
MAX_LEN_SUBDOMAIN = 63
MAX_LEN_USERNAME = 255
MAX_LEN_ACCESS_KEY = 512
MAX_LEN_PARTNER_ID = 100

T = TypeVar("T")
Source = Literal["real", "empty"]


class CamelModel(BaseModel):
    """Serialized with camelCase keys (netProfit, topDebtors, ...); accepts either form."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# --- Profit & loss ---

class IncomeSummary(CamelModel):
    total: float = 0
    invoices: int = 0
    average: float = 0
    taxes: float = 0
    retentions: float = 0
    net: float = 0


class ExpenseSummary(CamelModel):
    total: float = 0
    purchases: int = 0
    average: float = 0


class ProfitLoss(CamelModel):
    income: IncomeSummary = Field(default_factory=IncomeSummary)
    expenses: ExpenseSummary = Field(default_factory=ExpenseSummary)
    net_profit: float = 0
    margin: float = 0


# --- Accounts receivable ---

class AgingBuckets(CamelModel):
    current: float = 0
    days30: float = 0
    days60: float = 0
    days90: float = 0


class OverdueSummary(CamelModel):
    total: float = 0
    count: int = 0


class Debtor(CamelModel):
    id: str
    name: str
    total: float
    count: int
    days_overdue: int


class AccountsReceivable(CamelModel):
    total: float = 0
    count: int = 0
    overdue: OverdueSummary = Field(default_factory=OverdueSummary)
    aging: AgingBuckets = Field(default_factory=AgingBuckets)
    top_debtors: list[Debtor] = Field(default_factory=list)


# --- Accounts payable ---

class SupplierBalance(CamelModel):
    id: str
    name: str
    total: float
    count: int


class SupplierRef(CamelModel):
    name: str


class DuePurchase(CamelModel):
    id: str
    supplier: SupplierRef
    balance: float
    date: str


class AccountsPayable(CamelModel):
    total: float = 0
    count: int = 0
    by_supplier: list[SupplierBalance] = Field(default_factory=list)
    due_soon: list[DuePurchase] = Field(default_factory=list)


# --- Trial balance ---

class LedgerAccount(BaseModel):
    code: str
    name: str
    level: int
    type: Literal["Asset", "Liability", "Equity", "Income", "Expense"]


class TrialBalanceEntry(BaseModel):
    """Provider wire format keeps snake_case keys."""
    account: LedgerAccount
    initial_balance: float = 0
    debit_movement: float = 0
    credit_movement: float = 0
    final_balance: float = 0


class TrialBalanceGroups(CamelModel):
    assets: list[TrialBalanceEntry] = Field(default_factory=list)
    liabilities: list[TrialBalanceEntry] = Field(default_factory=list)
    equity: list[TrialBalanceEntry] = Field(default_factory=list)
    income: list[TrialBalanceEntry] = Field(default_factory=list)
    expenses: list[TrialBalanceEntry] = Field(default_factory=list)


class TrialBalanceTotals(CamelModel):
    assets: float = 0
    liabilities: float = 0
    equity: float = 0
    income: float = 0
    expenses: float = 0


class TrialBalance(CamelModel):
    grouped: TrialBalanceGroups = Field(default_factory=TrialBalanceGroups)
    totals: TrialBalanceTotals = Field(default_factory=TrialBalanceTotals)
    is_balanced: bool = True
    accounts: list[TrialBalanceEntry] = Field(default_factory=list)


# --- Dashboard envelopes ---

class DateRangeOut(CamelModel):
    start: str
    end: str


class Filters(CamelModel):
    date_range: DateRangeOut


class DashboardResponse(CamelModel, Generic[T]):
    """Uniform envelope for every dashboard read."""
    success: bool = True
    data: T
    filters: Filters
    source: Source
    error: Optional[str] = None
    message: Optional[str] = None


class DashboardModule(CamelModel, Generic[T]):
    data: T
    source: Source
    error: Optional[str] = None


class Overview(CamelModel):
    profit_loss: DashboardModule[ProfitLoss]
    accounts_receivable: DashboardModule[AccountsReceivable]
    accounts_payable: DashboardModule[AccountsPayable]
    trial_balance: DashboardModule[TrialBalance]


# --- Provider credential configuration ---

class ProviderConfigBody(CamelModel):
    """Request body for saving SIIGO credentials; extra fields rejected."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid")
    username: str = Field(..., min_length=1, max_length=MAX_LEN_USERNAME)
    access_key: str = Field(..., min_length=1, max_length=MAX_LEN_ACCESS_KEY)
    partner_id: Optional[str] = Field(None, max_length=MAX_LEN_PARTNER_ID)


class ProviderConfigOut(CamelModel):
    """Stored configuration; never includes the access key itself."""
    id: int
    name: str
    siigo_username: Optional[str] = None
    siigo_partner_id: Optional[str] = None
    has_access_key: bool = False


class ProviderConfigResponse(CamelModel):
    success: bool = True
    message: Optional[str] = None
    warning: Optional[bool] = None
    test_error: Optional[str] = None
    data: Optional[ProviderConfigOut] = None


class ProviderStatus(CamelModel):
    company_id: int
    company_name: str
    has_credentials: bool
    is_configured: bool


class ProviderStatusResponse(CamelModel):
    success: bool = True
    data: ProviderStatus


class ConnectionStatus(CamelModel):
    status: str
    timestamp: str


class ConnectionTestResponse(CamelModel):
    success: bool
    message: Optional[str] = None
    error: Optional[str] = None
    details: Optional[str] = None
    data: Optional[ConnectionStatus] = None


# --- Tenants ---

class CompanyCreate(BaseModel):
    """Request body for provisioning a company; extra fields rejected."""
    model_config = ConfigDict(extra="forbid")
    name: str = Field(..., min_length=1, max_length=MAX_LEN_NAME)
    subdomain: str = Field(..., min_length=1, max_length=MAX_LEN_SUBDOMAIN, pattern=r"^[a-z0-9](?:[a-z0-9-]*[a-z0-9])?$")

    @field_validator("subdomain")
    @classmethod
    def not_numeric(cls, value: str) -> str:
        """All-digit subdomains would read as company ids in companyId."""
        if value.isdigit():
            raise ValueError("subdomain must contain at least one letter or hyphen")
        return value


class CompanyOut(BaseModel):
    """Company response; never includes api_key or provider credentials."""
    model_config = ConfigDict(from_attributes=True)
    id: int
    name: str
    subdomain: str


class CompanyCreateResponse(CompanyOut):
    """Returned once on create; only response that includes api_key."""
    api_key: str  # Shown only once; client must store it securely
    url: str
