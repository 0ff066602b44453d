"""
Report aggregators: pure reductions over ledger rows.

Nothing in here touches the database except load_ledger_rows(), so the
builders can be fed hand-made LedgerRow lists in tests.

Percentages are Decimal values rounded to two places (20.00 == 20 %).
A division by a zero revenue / zero prior amount yields None, the
"undefined" marker, never NaN or infinity.
"""
import datetime
from collections import OrderedDict
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal
from typing import Dict, List, Optional

from django.utils import timezone

from ..models import AccountingEntry

HUNDRED = Decimal("100")
CENT = Decimal("0.01")

UNKNOWN_COUNTERPARTY = "Unknown counterparty"
# label of expense rows whose type has no text
UNASSIGNED_EXPENSE_TYPE = "Unassigned"

ENTRY_TYPE_FILTERS = ("all", "income", "expense")
OVERVIEW_SORTS = (
    "documentDateDesc",
    "documentDateAsc",
    "amountDesc",
    "amountAsc",
    "documentNumberDesc",
    "documentNumberAsc",
)

# category -> Totals attribute
CATEGORY_TOTALS = OrderedDict(
    [
        ("direct_cost", "direct_costs"),
        ("operating_expense", "operating_expenses"),
        ("financial_other", "financial_other"),
        ("tax", "taxes"),
    ]
)


@dataclass(frozen=True)
class LedgerRow:
    """The part of an AccountingEntry the reports need"""

    id: int
    entry_type: str
    document_number: int
    document_date: datetime.date
    counterparty_name: str
    amount_gross: int
    booking_text: str = ""
    type_of_expense_id: Optional[int] = None
    type_of_expense_text: Optional[str] = None
    expense_pl_category: Optional[str] = None

    @property
    def document_year(self):
        return self.document_date.year


@dataclass(frozen=True)
class Totals:
    revenue: int = 0
    direct_costs: int = 0
    operating_expenses: int = 0
    financial_other: int = 0
    taxes: int = 0
    categorized_expenses: int = 0
    uncategorized_expenses: int = 0

    @property
    def gross_profit(self):
        return self.revenue - self.direct_costs

    @property
    def operating_result(self):
        return self.gross_profit - self.operating_expenses

    @property
    def net_result(self):
        return self.operating_result - self.financial_other - self.taxes


@dataclass(frozen=True)
class StatementLine:
    key: str
    label: str
    current: int
    prior: int
    current_share: Optional[Decimal]
    prior_share: Optional[Decimal]
    delta_percent: Optional[Decimal]
    share_delta_points: Optional[Decimal]
    is_subtotal: bool = False


@dataclass(frozen=True)
class KpiCard:
    key: str
    label: str
    current: int
    prior: int
    delta_percent: Optional[Decimal]
    current_share: Optional[Decimal]


@dataclass(frozen=True)
class DetailRow:
    id: Optional[int]
    label: str
    current: int
    prior: int
    current_share: Optional[Decimal]
    delta_percent: Optional[Decimal]


@dataclass(frozen=True)
class AnnualPl:
    year: int
    prior_year: int
    available_years: List[int]
    totals: Totals
    prior_totals: Totals
    lines: List[StatementLine]
    kpis: List[KpiCard]
    details: Dict[str, List[DetailRow]] = field(default_factory=dict)
    has_unassigned_expenses: bool = False


@dataclass(frozen=True)
class YearlyOverview:
    year: int
    entry_type_filter: str
    sort: str
    entries: List[LedgerRow]
    income_total: int
    expense_total: int
    result: int
    available_years: List[int]


# ----------------------------
# Percent helpers
# ----------------------------
def _percent(numerator, denominator):
    return (Decimal(numerator) * HUNDRED / Decimal(denominator)).quantize(CENT, ROUND_HALF_UP)


def share_of_revenue(amount, revenue):
    if revenue == 0:
        return None
    return _percent(amount, revenue)


def delta_percent(current, prior):
    """Change relative to the prior value, measured against |prior|"""
    if prior == 0:
        return None
    return _percent(current - prior, abs(prior))


def percentage_point_delta(current, prior, current_revenue, prior_revenue):
    """Difference between two shares of revenue, in percentage points"""
    if current_revenue == 0 or prior_revenue == 0:
        return None
    # exact shares, rounded once
    points = (
        Decimal(current) / Decimal(current_revenue) - Decimal(prior) / Decimal(prior_revenue)
    ) * HUNDRED
    return points.quantize(CENT, ROUND_HALF_UP)


# ----------------------------
# Reductions
# ----------------------------
def available_years(rows, today=None):
    years = sorted({row.document_year for row in rows}, reverse=True)
    if not years:
        today = today or timezone.localdate()
        return [today.year]
    return years


def rows_for_year(rows, year):
    return [row for row in rows if row.document_year == year]


def build_totals(rows):
    """Sum gross amounts by entry type and by expense P&L category"""
    sums = {
        "revenue": 0,
        "direct_costs": 0,
        "operating_expenses": 0,
        "financial_other": 0,
        "taxes": 0,
        "categorized_expenses": 0,
        "uncategorized_expenses": 0,
    }
    for row in rows:
        if row.entry_type == "income":
            sums["revenue"] += row.amount_gross
            continue
        attribute = CATEGORY_TOTALS.get(row.expense_pl_category)
        if attribute is None:
            sums["uncategorized_expenses"] += row.amount_gross
        else:
            sums[attribute] += row.amount_gross
            sums["categorized_expenses"] += row.amount_gross
    return Totals(**sums)


def _detail_sort_key(row):
    # biggest first, then label (case-folded, then exact), then id with nulls last
    return (-row.current, row.label.casefold(), row.label, row.id is None, row.id or 0)


def _detail_rows(groups, revenue):
    rows = [
        DetailRow(
            id=group["id"],
            label=group["label"],
            current=group["current"],
            prior=group["prior"],
            current_share=share_of_revenue(group["current"], revenue),
            delta_percent=delta_percent(group["current"], group["prior"]),
        )
        for group in groups.values()
    ]
    return sorted(rows, key=_detail_sort_key)


def expense_detail_rows(current_rows, prior_rows, category, revenue):
    """Per expense type totals of one P&L category, current vs prior year"""
    groups = OrderedDict()
    for bucket, rows in (("current", current_rows), ("prior", prior_rows)):
        for row in rows:
            if row.entry_type != "expense" or row.expense_pl_category != category:
                continue
            group = groups.setdefault(
                row.type_of_expense_id,
                {
                    "id": row.type_of_expense_id,
                    "label": (
                        UNASSIGNED_EXPENSE_TYPE
                        if row.type_of_expense_text is None
                        else row.type_of_expense_text
                    ),
                    "current": 0,
                    "prior": 0,
                },
            )
            group[bucket] += row.amount_gross
    return _detail_rows(groups, revenue)


def income_detail_rows(current_rows, prior_rows, revenue):
    """Revenue per counterparty; names match trimmed and case-insensitively"""
    groups = OrderedDict()
    for bucket, rows in (("current", current_rows), ("prior", prior_rows)):
        for row in rows:
            if row.entry_type != "income":
                continue
            name = (row.counterparty_name or "").strip()
            label = name or UNKNOWN_COUNTERPARTY
            group = groups.setdefault(
                name.casefold(), {"id": None, "label": label, "current": 0, "prior": 0}
            )
            group[bucket] += row.amount_gross
    return _detail_rows(groups, revenue)


def _line(key, label, current, prior, totals, prior_totals, is_subtotal=False):
    return StatementLine(
        key=key,
        label=label,
        current=current,
        prior=prior,
        current_share=share_of_revenue(current, totals.revenue),
        prior_share=share_of_revenue(prior, prior_totals.revenue),
        delta_percent=delta_percent(current, prior),
        share_delta_points=percentage_point_delta(
            current, prior, totals.revenue, prior_totals.revenue),
        is_subtotal=is_subtotal,
    )


def build_annual_pl(rows, year, today=None):
    """Annual P&L of `year` compared with the year before"""
    prior_year = year - 1
    current_rows = rows_for_year(rows, year)
    prior_rows = rows_for_year(rows, prior_year)
    totals = build_totals(current_rows)
    prior_totals = build_totals(prior_rows)

    def line(key, label, attribute, is_subtotal=False):
        return _line(
            key, label, getattr(totals, attribute), getattr(prior_totals, attribute),
            totals, prior_totals, is_subtotal,
        )

    lines = [
        line("revenue", "Revenue", "revenue"),
        line("direct_costs", "Direct costs", "direct_costs"),
        line("gross_profit", "Gross profit", "gross_profit", is_subtotal=True),
        line("operating_expenses", "Operating expenses", "operating_expenses"),
        line("operating_result", "Operating result", "operating_result", is_subtotal=True),
    ]
    # optional lines only show up when one of the two years has an amount
    for key, label, attribute in (
        ("financial_other", "Financial / other", "financial_other"),
        ("taxes", "Taxes", "taxes"),
    ):
        if getattr(totals, attribute) or getattr(prior_totals, attribute):
            lines.append(line(key, label, attribute))
    lines.append(line("net_result", "Net result", "net_result", is_subtotal=True))
    if totals.uncategorized_expenses or prior_totals.uncategorized_expenses:
        lines.append(line("uncategorized_expenses", "Unassigned expenses", "uncategorized_expenses"))

    kpis = [
        KpiCard(
            key=key,
            label=label,
            current=getattr(totals, key),
            prior=getattr(prior_totals, key),
            delta_percent=delta_percent(getattr(totals, key), getattr(prior_totals, key)),
            current_share=share_of_revenue(getattr(totals, key), totals.revenue),
        )
        for key, label in (
            ("revenue", "Revenue"),
            ("gross_profit", "Gross profit"),
            ("operating_result", "Operating result"),
            ("net_result", "Net result"),
        )
    ]

    details = {
        "income": income_detail_rows(
            current_rows, prior_rows, totals.revenue),
    }
    for category in CATEGORY_TOTALS:
        details[category] = expense_detail_rows(
            current_rows, prior_rows, category, totals.revenue)

    return AnnualPl(
        year=year,
        prior_year=prior_year,
        available_years=available_years(rows, today),
        totals=totals,
        prior_totals=prior_totals,
        lines=lines,
        kpis=kpis,
        details=details,
        has_unassigned_expenses=totals.uncategorized_expenses > 0,
    )


_SORT_KEYS = {
    "documentDate": lambda row: (row.document_date, row.id),
    "amount": lambda row: (row.amount_gross, row.id),
    "documentNumber": lambda row: (row.document_number, row.document_date, row.id),
}


def build_yearly_overview(rows, year, entry_type_filter="all", sort="documentDateDesc", today=None):
    """Entries of one year, filtered and sorted, with income/expense totals"""
    if entry_type_filter not in ENTRY_TYPE_FILTERS:
        raise ValueError(f"Unknown entry type filter: {entry_type_filter}")
    if sort not in OVERVIEW_SORTS:
        raise ValueError(f"Unknown sort: {sort}")

    entries = rows_for_year(rows, year)
    if entry_type_filter != "all":
        entries = [row for row in entries if row.entry_type == entry_type_filter]
    # totals follow the listed (filtered) entries
    income_total = sum(row.amount_gross for row in entries if row.entry_type == "income")
    expense_total = sum(row.amount_gross for row in entries if row.entry_type == "expense")

    # "amountDesc" -> ("amount", descending); document numbers tie on date, then id
    descending = sort.endswith("Desc")
    sort_key = _SORT_KEYS[sort[:-4] if descending else sort[:-3]]
    entries = sorted(entries, key=sort_key, reverse=descending)

    return YearlyOverview(
        year=year,
        entry_type_filter=entry_type_filter,
        sort=sort,
        entries=entries,
        income_total=income_total,
        expense_total=expense_total,
        result=income_total - expense_total,
        available_years=available_years(rows, today),
    )


def load_ledger_rows(company_id):
    """Ledger rows of one company as LedgerRow values"""
    entries = (
        AccountingEntry.objects.for_company(company_id)
        .select_related("type_of_expense")
        .order_by("document_date", "id")
    )
    return [
        LedgerRow(
            id=entry.pk,
            entry_type=entry.entry_type,
            document_number=entry.document_number,
            document_date=entry.document_date,
            counterparty_name=entry.counterparty_name,
            amount_gross=entry.amount_gross,
            booking_text=entry.booking_text,
            type_of_expense_id=entry.type_of_expense_id,
            type_of_expense_text=entry.type_of_expense.text if entry.type_of_expense else None,
            expense_pl_category=entry.expense_pl_category,
        )
        for entry in entries
    ]
