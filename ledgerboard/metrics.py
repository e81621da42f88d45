"""Derived financial views from raw SIIGO invoices and purchases.

Pure functions, rebuilt per request. Each one re-filters its input by the
requested date range because the provider's own date filter is advisory.
Missing numbers count as 0, empty inputs give zeroed results and every ratio
with a zero denominator is 0.
"""
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Any, Iterable, Optional

from ledgerboard.schemas import (
    AccountsPayable,
    AccountsReceivable,
    AgingBuckets,
    Debtor,
    DuePurchase,
    ExpenseSummary,
    IncomeSummary,
    LedgerAccount,
    OverdueSummary,
    ProfitLoss,
    SupplierBalance,
    SupplierRef,
    TrialBalance,
    TrialBalanceEntry,
    TrialBalanceGroups,
    TrialBalanceTotals,
)

Record = dict[str, Any]

# Expenses are not measured from purchases: legacy estimate of 70% of sales
ESTIMATED_EXPENSE_RATIO = 0.70
TOP_N = 10
DUE_SOON_DAYS = 30
BALANCE_TOLERANCE = 1.0  # currency units
EARLIEST_DATE = date(1900, 1, 1)
UNKNOWN_CUSTOMER = "Cliente Desconocido"
UNNAMED_SUPPLIER = "Proveedor sin nombre"


@dataclass(frozen=True)
class DateRange:
    """Inclusive bounds. Open start means 1900-01-01, open end means today; inverted ranges match nothing."""

    start: Optional[date] = None
    end: Optional[date] = None

    def contains(self, day: date, today: date) -> bool:
        return (self.start or EARLIEST_DATE) <= day <= (self.end or today)


def parse_date(value: Any) -> Optional[date]:
    """YYYY-MM-DD prefix of a provider date/datetime string."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str) or len(value) < 10:
        return None
    try:
        return datetime.strptime(value[:10], "%Y-%m-%d").date()
    except ValueError:
        return None


def amount(value: Any) -> float:
    try:
        return float(value or 0)
    except (TypeError, ValueError):
        return 0.0


def ratio(numerator: float, denominator: float) -> float:
    return numerator / denominator if denominator else 0.0


def filter_by_date(records: Iterable[Record], date_range: DateRange, today: date) -> list[Record]:
    """Records whose ``date`` parses and falls in the range."""
    kept = []
    for r in records:
        d = parse_date(r.get("date"))
        if d is not None and date_range.contains(d, today):
            kept.append(r)
    return kept


def _ref_id(ref: Any) -> Optional[str]:
    if isinstance(ref, dict) and ref.get("id"):
        return str(ref["id"])
    return None


# --- Profit & loss ---

def profit_and_loss(invoices: Iterable[Record], date_range: DateRange, today: Optional[date] = None) -> ProfitLoss:
    today = today or date.today()
    filtered = filter_by_date(invoices, date_range, today)

    total_sales = sum(amount(inv.get("total")) for inv in filtered)
    taxes = sum(
        amount(tax.get("value"))
        for inv in filtered
        for item in inv.get("items") or []
        for tax in item.get("taxes") or []
    )
    retentions = sum(amount(ret.get("value")) for inv in filtered for ret in inv.get("retentions") or [])
    net_income = total_sales - retentions
    estimated_expenses = total_sales * ESTIMATED_EXPENSE_RATIO
    net_profit = net_income - estimated_expenses

    return ProfitLoss(
        income=IncomeSummary(
            total=total_sales,
            invoices=len(filtered),
            average=ratio(total_sales, len(filtered)),
            taxes=taxes,
            retentions=retentions,
            net=net_income,
        ),
        expenses=ExpenseSummary(total=estimated_expenses, purchases=0, average=0),
        net_profit=net_profit,
        margin=ratio(net_profit, total_sales) * 100 if total_sales > 0 else 0,
    )


# --- Accounts receivable ---

def aging_bucket(days: int) -> str:
    """Lower-inclusive buckets: 0-30 current, 31-60 days30, 61-90 days60, 91+ days90."""
    if days <= 30:
        return "current"
    if days <= 60:
        return "days30"
    if days <= 90:
        return "days60"
    return "days90"


def customer_names(customers: Iterable[Record]) -> dict[str, str]:
    names = {}
    for c in customers:
        cid = c.get("id")
        if not cid:
            continue
        parts = c.get("name")
        name = " ".join(str(p) for p in parts if p) if isinstance(parts, list) else (parts or "")
        names[str(cid)] = name or str(c.get("identification") or "")
    return names


def accounts_receivable(
    invoices: Iterable[Record],
    customers: Iterable[Record],
    date_range: DateRange,
    today: Optional[date] = None,
) -> AccountsReceivable:
    """
    Open invoices (balance > 0), aged per customer.

    Each customer's whole outstanding balance goes into the bucket of its
    oldest unpaid invoice. Invoices without a customer id count toward the
    totals but are not grouped.
    """
    today = today or date.today()
    receivable = [inv for inv in filter_by_date(invoices, date_range, today) if amount(inv.get("balance")) > 0]
    names = customer_names(customers)

    balances: dict[str, dict[str, Any]] = {}
    for inv in receivable:
        customer = inv.get("customer")
        customer_id = _ref_id(customer)
        if customer_id is None:
            continue
        inv_date = parse_date(inv.get("date"))
        entry = balances.setdefault(customer_id, {"balance": 0.0, "count": 0, "oldest": inv_date, "ref": customer})
        entry["balance"] += amount(inv.get("balance"))
        entry["count"] += 1
        if inv_date < entry["oldest"]:
            entry["oldest"] = inv_date

    aging = AgingBuckets()
    debtors = []
    for customer_id, entry in balances.items():
        days = (today - entry["oldest"]).days
        bucket = aging_bucket(days)
        setattr(aging, bucket, getattr(aging, bucket) + entry["balance"])
        ref = entry["ref"]
        name = names.get(customer_id) or ref.get("name") or ref.get("identification") or UNKNOWN_CUSTOMER
        debtors.append(Debtor(id=customer_id, name=str(name), total=entry["balance"], count=entry["count"], days_overdue=days))

    overdue_count = sum(1 for inv in receivable if (today - parse_date(inv.get("date"))).days > 30)

    return AccountsReceivable(
        total=sum(amount(inv.get("balance")) for inv in receivable),
        count=len(receivable),
        overdue=OverdueSummary(total=aging.days30 + aging.days60 + aging.days90, count=overdue_count),
        aging=aging,
        top_debtors=sorted(debtors, key=lambda d: d.total, reverse=True)[:TOP_N],
    )


# --- Accounts payable ---

def accounts_payable(purchases: Iterable[Record], date_range: DateRange, today: Optional[date] = None) -> AccountsPayable:
    """Open purchases (balance > 0) by supplier, plus those due in the next 30 days."""
    today = today or date.today()
    payable = [p for p in filter_by_date(purchases, date_range, today) if amount(p.get("balance")) > 0]

    suppliers: dict[str, dict[str, Any]] = {}
    for p in payable:
        vendor = p.get("vendor")
        vendor_id = _ref_id(vendor)
        if vendor_id is None:
            # Counted in the totals, but there is no supplier to group under
            continue
        entry = suppliers.setdefault(vendor_id, {"name": vendor.get("name") or UNNAMED_SUPPLIER, "total": 0.0, "count": 0})
        entry["total"] += amount(p.get("balance"))
        entry["count"] += 1

    by_supplier = sorted(
        (SupplierBalance(id=vid, name=str(e["name"]), total=e["total"], count=e["count"]) for vid, e in suppliers.items()),
        key=lambda s: s.total,
        reverse=True,
    )[:TOP_N]

    horizon = today + timedelta(days=DUE_SOON_DAYS)
    upcoming = []
    for p in payable:
        due = parse_date(p.get("due_date"))
        if due is None or not (today <= due <= horizon):
            continue
        vendor = p.get("vendor") if isinstance(p.get("vendor"), dict) else {}
        upcoming.append((due, DuePurchase(
            id=str(p.get("id") or ""),
            supplier=SupplierRef(name=str(vendor.get("name") or UNNAMED_SUPPLIER)),
            balance=amount(p.get("balance")),
            date=due.isoformat(),
        )))
    upcoming.sort(key=lambda pair: pair[0])

    return AccountsPayable(
        total=sum(amount(p.get("balance")) for p in payable),
        count=len(payable),
        by_supplier=by_supplier,
        due_soon=[item for _, item in upcoming[:TOP_N]],
    )


# --- Trial balance ---

def _entry(code: str, name: str, kind: str, debit: float, credit: float, final: float) -> TrialBalanceEntry:
    return TrialBalanceEntry(
        account=LedgerAccount(code=code, name=name, level=4, type=kind),
        initial_balance=0,
        debit_movement=debit,
        credit_movement=credit,
        final_balance=final,
    )


def trial_balance(
    invoices: Iterable[Record],
    purchases: Iterable[Record],
    date_range: DateRange,
    today: Optional[date] = None,
) -> TrialBalance:
    """
    Approximate trial balance from transactional totals, not a ledger read.

    Receivables are the only asset and payables the only liability; equity is
    their difference, so the result balances by construction.
    """
    today = today or date.today()
    inv = filter_by_date(invoices, date_range, today)
    pur = filter_by_date(purchases, date_range, today)

    assets = sum(amount(i.get("balance")) for i in inv)
    liabilities = sum(amount(p.get("balance")) for p in pur)
    income = sum(amount(i.get("total")) for i in inv)
    expenses = sum(amount(p.get("total")) for p in pur)
    equity = assets - liabilities

    # PUC (Colombian chart of accounts) codes for each class
    grouped = TrialBalanceGroups(
        assets=[_entry("1305", "Clientes", "Asset", income, income - assets, assets)],
        liabilities=[_entry("2205", "Proveedores", "Liability", expenses - liabilities, expenses, liabilities)],
        equity=[_entry("3105", "Capital Social", "Equity", 0, equity, equity)],
        income=[_entry("4135", "Ventas", "Income", 0, income, income)],
        expenses=[_entry("5135", "Compras", "Expense", expenses, 0, expenses)],
    )
    return TrialBalance(
        grouped=grouped,
        totals=TrialBalanceTotals(assets=assets, liabilities=liabilities, equity=equity, income=income, expenses=expenses),
        is_balanced=abs(assets - (liabilities + equity)) < BALANCE_TOLERANCE,
        accounts=grouped.assets + grouped.liabilities + grouped.equity + grouped.income + grouped.expenses,
    )
