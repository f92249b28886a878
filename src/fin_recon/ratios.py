"""Derived financial metrics for one canonical statement.

Input is a raw statement record: line-item codes from the balance sheet
(form 1, ``R1xxx``) and the income statement (form 2, ``R2xxx``) plus the
entity metadata ``TIN``, ``Y`` (year), ``M`` (period length in months) and
``FC`` (form code).  Column ``G3`` is the reporting period for income items
and the opening balance for balance items; ``G4`` is the closing balance for
balance items and the comparative period for income items.

Report kind
  ``FC == S0100115`` selects the full schema, anything else the short
  (abbreviated) schema.  The kind decides which line items feed long-term
  loans, depreciation, operating profit and net debt.

Missing values
  Absent or unparsable line items read as 0.  Ratios with a zero
  denominator return None, except equity ratio, debt/EBITDA,
  EBITDA/financial expenses, inventory and receivables turnover days,
  operating cycle and cash conversion cycle, which return 0.

Annualization
  ``multiplier = 12 / M`` scales period EBITDA to a year; turnover days
  divide by it instead.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Callable, Iterable, Mapping
from typing import Any

from fin_recon.models import DerivedMetricsReport, ReportType

log = logging.getLogger(__name__)

FULL_FORM_CODE = "S0100115"
SHORT_FORM_CODE = "S0110014"

# Older extractors spell the form-code key with a Cyrillic "С"
FORM_CODE_KEYS = ("FC", "F\u0421")

DAYS_IN_YEAR = 365
MONTHS_IN_YEAR = 12


# ═══════════════════════════════════════════════════════════════════════════
#  Safe numeric helpers
# ═══════════════════════════════════════════════════════════════════════════

def _num(v: Any) -> float:
    """Convert a line-item value to float; missing or invalid values become 0."""
    if v is None or isinstance(v, bool):
        return 0.0
    if hasattr(v, "item"):
        v = v.item()
    if isinstance(v, str):
        v = v.replace("\u00a0", "").replace(" ", "").replace(",", ".")
    try:
        f = float(v)
    except (TypeError, ValueError):
        return 0.0
    if math.isnan(f) or math.isinf(f):
        return 0.0
    return f


def _div(a: float, b: float) -> float | None:
    """Division that returns None on a zero divisor."""
    if b == 0:
        return None
    return a / b


def _pct(a: float, b: float) -> float | None:
    ratio = _div(a, b)
    return None if ratio is None else ratio * 100


def _growth(current: float, previous: float) -> float | None:
    return _pct(current - previous, previous)


def report_type_of(record: Mapping[str, Any]) -> ReportType:
    for key in FORM_CODE_KEYS:
        code = record.get(key)
        if code:
            return ReportType.FULL if str(code).strip().upper() == FULL_FORM_CODE else ReportType.SHORT
    return ReportType.SHORT


def annualization_multiplier(record: Mapping[str, Any]) -> float:
    """12 / period months; an unusable period counts as a full year."""
    months = _num(record.get("M"))
    if months <= 0:
        log.debug("No usable period length for %s, assuming 12 months", record.get("TIN"))
        return 1.0
    return MONTHS_IN_YEAR / months


# ═══════════════════════════════════════════════════════════════════════════
#  Formula table
# ═══════════════════════════════════════════════════════════════════════════

class StatementMetrics:
    """Named formulas over one raw statement record.

    Every method is a pure function of the record; nothing is cached, so
    the same record always yields the same figures.
    """

    def __init__(self, record: Mapping[str, Any]):
        self.record = record
        self.report_type = report_type_of(record)
        self.is_full = self.report_type is ReportType.FULL
        self.multiplier = annualization_multiplier(record)

    def _get(self, code: str) -> float:
        return _num(self.record.get(code))

    # -- balance sheet and income statement figures --------------------------

    def net_revenue(self) -> float:
        return self._get("R2000G3")

    def equity(self) -> float:
        return self._get("R1495G4")

    def total_assets(self) -> float:
        return self._get("R1300G4")

    def short_term_loans(self) -> float:
        return self._get("R1600G4")

    def long_term_loans(self) -> float:
        return self._get("R1510G4") if self.is_full else self._get("R1595G4")

    def other_long_term_obligations(self) -> float:
        return self._get("R1515G4")

    def other_financial_obligations(self) -> float:
        return self._get("R1690G4")

    def net_profit(self) -> float:
        return self._get("R2350G3")

    def assets_dynamics(self) -> float:
        return self._get("R1300G4") - self._get("R1300G3")

    def depreciation(self) -> float:
        if self.is_full:
            return self._get("R2515G3")
        # Short form has no depreciation line: use the change in accumulated wear
        return self._get("R1012G4") - self._get("R1012G3")

    def cost_of_goods_sold(self) -> float:
        return abs(self._get("R2050G3"))

    def other_operating_income(self) -> float:
        return self._get("R2120G3")

    def other_operating_expenses(self) -> float:
        return abs(self._get("R2180G3"))

    def financial_expenses(self) -> float:
        return abs(self._get("R2250G3"))

    def operating_profit(self) -> float:
        if self.is_full:
            return self._get("R2190G3") or self._get("R2195G3")
        return (
            self.net_revenue()
            + self.other_operating_income()
            - self.cost_of_goods_sold()
            - self.other_operating_expenses()
        )

    def ebitda(self) -> float:
        return self.operating_profit() + max(self.depreciation(), 0.0)

    def cash(self) -> float:
        return self._get("R1165G4")

    def current_assets(self) -> float:
        return self._get("R1195G4")

    def current_liabilities(self) -> float:
        return self._get("R1695G4")

    def inventory(self) -> float:
        return self._get("R1100G4")

    def accounts_receivable(self) -> float:
        return self._get("R1125G4")

    def accounts_payable(self) -> float:
        return self._get("R1615G4")

    def current_portion_of_long_term_debt(self) -> float:
        return self._get("R1610G4")

    def fixed_assets(self) -> float:
        return self._get("R1010G4")

    def fixed_assets_original_cost(self) -> float:
        return self._get("R1011G4")

    def fixed_assets_accumulated_wear(self) -> float:
        return self._get("R1012G4")

    # -- debt ----------------------------------------------------------------

    def net_debt(self) -> float:
        result = (
            self.long_term_loans()
            + self.short_term_loans()
            + self.current_portion_of_long_term_debt()
            - self.cash()
        )
        if self.is_full:
            result += self.other_long_term_obligations()
        return result

    def annual_ebitda(self) -> float:
        return self.ebitda() * self.multiplier

    def debt_to_ebitda(self) -> float:
        if self.ebitda() == 0:
            return 0.0
        return self.net_debt() / self.annual_ebitda()

    def ebitda_to_financial_expenses(self) -> float:
        expenses = self.financial_expenses()
        if expenses == 0:
            return 0.0
        return self.annual_ebitda() / expenses

    def debt_to_revenue_ratio(self) -> float:
        """Indicative annual credit capacity: annualized EBITDA less net debt."""
        return self.annual_ebitda() - self.net_debt()

    # -- liquidity -----------------------------------------------------------

    def current_ratio(self) -> float | None:
        return _div(self.current_assets(), self.current_liabilities())

    def cash_ratio(self) -> float | None:
        return _div(self.cash(), self.current_liabilities())

    def quick_ratio(self) -> float | None:
        return _div(self.current_assets() - self.inventory(), self.current_liabilities())

    # -- profitability -------------------------------------------------------

    def equity_ratio(self) -> float:
        return _pct(self.equity(), self.total_assets()) or 0.0

    def financial_independence_ratio(self) -> float:
        return self.equity_ratio()

    def ebitda_margin(self) -> float | None:
        return _pct(self.ebitda(), self.net_revenue())

    def operating_margin(self) -> float | None:
        return _pct(self.operating_profit(), self.net_revenue())

    # -- turnover, days ------------------------------------------------------

    def _days(self, balance: float, flow: float) -> float | None:
        ratio = _div(balance, flow)
        if ratio is None:
            return None
        return ratio * DAYS_IN_YEAR / self.multiplier

    def inventory_turnover_days(self) -> float:
        return self._days(self.inventory(), self.cost_of_goods_sold()) or 0.0

    def receivables_turnover_days(self) -> float:
        return self._days(self.accounts_receivable(), self.net_revenue()) or 0.0

    def payables_turnover_days(self) -> float | None:
        return self._days(self.accounts_payable(), self.cost_of_goods_sold())

    def operating_cycle(self) -> float:
        return self.inventory_turnover_days() + self.receivables_turnover_days()

    def cash_conversion_cycle(self) -> float:
        payables_days = self.payables_turnover_days()
        if payables_days is None:
            return 0.0
        return self.operating_cycle() - payables_days

    # -- growth and structure ------------------------------------------------

    def revenue_growth_rate(self) -> float | None:
        return _growth(self._get("R2000G3"), self._get("R2000G4"))

    def receivables_growth_rate(self) -> float | None:
        return _growth(self._get("R1125G4"), self._get("R1125G3"))

    def payables_growth_rate(self) -> float | None:
        return _growth(self._get("R1615G4"), self._get("R1615G3"))

    def fixed_assets_ratio(self) -> float | None:
        return _pct(self.fixed_assets(), self.total_assets())

    def fixed_assets_wear_rate(self) -> float | None:
        return _pct(self.fixed_assets_accumulated_wear(), self.fixed_assets_original_cost())


# Report field -> formula, in display order
METRIC_FORMULAS: dict[str, Callable[[StatementMetrics], float | None]] = {
    "net_revenue": StatementMetrics.net_revenue,
    "equity": StatementMetrics.equity,
    "short_term_loans": StatementMetrics.short_term_loans,
    "long_term_loans": StatementMetrics.long_term_loans,
    "other_financial_obligations": StatementMetrics.other_financial_obligations,
    "equity_ratio": StatementMetrics.equity_ratio,
    "net_profit": StatementMetrics.net_profit,
    "assets_dynamics": StatementMetrics.assets_dynamics,
    "ebitda": StatementMetrics.ebitda,
    "operating_profit": StatementMetrics.operating_profit,
    "depreciation": StatementMetrics.depreciation,
    "net_debt": StatementMetrics.net_debt,
    "debt_to_ebitda": StatementMetrics.debt_to_ebitda,
    "ebitda_to_financial_expenses": StatementMetrics.ebitda_to_financial_expenses,
    "current_ratio": StatementMetrics.current_ratio,
    "cash_ratio": StatementMetrics.cash_ratio,
    "quick_ratio": StatementMetrics.quick_ratio,
    "ebitda_margin": StatementMetrics.ebitda_margin,
    "operating_margin": StatementMetrics.operating_margin,
    "inventory_turnover_days": StatementMetrics.inventory_turnover_days,
    "receivables_turnover_days": StatementMetrics.receivables_turnover_days,
    "payables_turnover_days": StatementMetrics.payables_turnover_days,
    "operating_cycle": StatementMetrics.operating_cycle,
    "cash_conversion_cycle": StatementMetrics.cash_conversion_cycle,
    "revenue_growth_rate": StatementMetrics.revenue_growth_rate,
    "receivables_growth_rate": StatementMetrics.receivables_growth_rate,
    "payables_growth_rate": StatementMetrics.payables_growth_rate,
    "financial_independence_ratio": StatementMetrics.financial_independence_ratio,
    "fixed_assets_ratio": StatementMetrics.fixed_assets_ratio,
    "fixed_assets_wear_rate": StatementMetrics.fixed_assets_wear_rate,
    "debt_to_revenue_ratio": StatementMetrics.debt_to_revenue_ratio,
}


def _int_or_none(v: Any) -> int | None:
    try:
        return int(v)
    except (TypeError, ValueError):
        return None


def compute_metrics(record: Mapping[str, Any]) -> dict[str, float | None]:
    """Evaluate the whole formula table over *record*."""
    statement = StatementMetrics(record)
    return {name: formula(statement) for name, formula in METRIC_FORMULAS.items()}


def compute_report(record: Mapping[str, Any]) -> DerivedMetricsReport:
    """Raw statement record -> DerivedMetricsReport."""
    tin = record.get("TIN")
    return DerivedMetricsReport(
        entity_code=str(tin) if tin is not None else None,
        year=_int_or_none(record.get("Y")),
        month=_int_or_none(record.get("M")),
        report_type=report_type_of(record),
        **compute_metrics(record),
    )


def compute_reports(records: Iterable[Mapping[str, Any]]) -> list[DerivedMetricsReport]:
    return [compute_report(record) for record in records]
