"""Display formatting for derived metrics reports."""

from __future__ import annotations

import math
from typing import Any

from fin_recon.models import DerivedMetricsReport, ReportType

MISSING = "-"

REPORT_TYPE_LABELS = {
    ReportType.FULL: "Full",
    ReportType.SHORT: "Short",
}

# (report field, display label, decimals)
METRIC_LABELS: list[tuple[str, str, int]] = [
    ("net_revenue", "Net revenue, UAH k", 2),
    ("equity", "Equity, UAH k", 2),
    ("short_term_loans", "Short-term bank loans, UAH k", 2),
    ("long_term_loans", "Long-term bank loans, UAH k", 2),
    ("other_financial_obligations", "Other financial obligations, UAH k", 2),
    ("equity_ratio", "Equity ratio, %", 2),
    ("net_profit", "Net profit (loss), UAH k", 2),
    ("assets_dynamics", "Change in total assets, UAH k", 2),
    ("ebitda", "EBITDA, UAH k", 2),
    ("operating_profit", "Operating profit (loss), UAH k", 2),
    ("depreciation", "Depreciation, UAH k", 2),
    ("net_debt", "Net financial debt, UAH k", 2),
    ("debt_to_ebitda", "Net debt to EBITDA", 2),
    ("ebitda_to_financial_expenses", "EBITDA to financial expenses", 2),
    ("current_ratio", "Current ratio", 2),
    ("cash_ratio", "Cash ratio", 2),
    ("quick_ratio", "Quick ratio", 2),
    ("ebitda_margin", "EBITDA margin, %", 2),
    ("operating_margin", "Operating margin, %", 2),
    ("inventory_turnover_days", "Inventory turnover, days", 0),
    ("receivables_turnover_days", "Receivables turnover, days", 0),
    ("payables_turnover_days", "Payables turnover, days", 0),
    ("operating_cycle", "Operating cycle, days", 0),
    ("cash_conversion_cycle", "Cash conversion cycle, days", 0),
    ("revenue_growth_rate", "Revenue growth, %", 2),
    ("receivables_growth_rate", "Receivables growth, %", 2),
    ("payables_growth_rate", "Payables growth, %", 2),
    ("financial_independence_ratio", "Financial independence ratio, %", 2),
    ("fixed_assets_ratio", "Fixed assets share of total assets, %", 2),
    ("fixed_assets_wear_rate", "Fixed assets wear rate, %", 2),
    ("debt_to_revenue_ratio", "Indicative annual credit capacity, UAH k", 2),
]


def format_value(value: Any, decimals: int = 2) -> str:
    """Render a number with space-grouped thousands, or "-" when missing.

    The fractional part is dropped when it rounds to zero:
    1234.5 -> "1 234.50", 1000 -> "1 000", None -> "-".
    """
    if value is None or value == "":
        return MISSING
    try:
        num = float(value)
    except (TypeError, ValueError):
        return MISSING
    if math.isnan(num) or math.isinf(num):
        return MISSING

    fixed = f"{num:.{decimals}f}"
    sign = ""
    if fixed.startswith("-"):
        sign, fixed = "-", fixed[1:]

    integer, _, fraction = fixed.partition(".")
    if fraction and int(fraction) == 0:
        fraction = ""
    if not fraction and int(integer) == 0:
        sign = ""

    grouped = f"{int(integer):,}".replace(",", " ")
    return f"{sign}{grouped}.{fraction}" if fraction else f"{sign}{grouped}"


def format_report(report: DerivedMetricsReport) -> dict[str, str]:
    """Label -> display string, starting with the report type."""
    values = report.metrics()
    formatted = {"Report type": REPORT_TYPE_LABELS[report.report_type]}
    for field, label, decimals in METRIC_LABELS:
        formatted[label] = format_value(values.get(field), decimals)
    return formatted
