"""fin-recon: MCP server over the statement catalog and derived metrics.

Tool hierarchy
──────────────
  Catalog
    1. resolve_catalog      — which file(s) represent each entity right now

  Metrics
    2. calculate_ratios     — derive metrics from a raw statement record
    3. get_stored_report    — stored statement + metrics for entity/period
"""

from __future__ import annotations

from datetime import date

from fastmcp import FastMCP

from fin_recon.config import get_config
from fin_recon.db import get_report
from fin_recon.formatting import format_report
from fin_recon.pipeline import make_resolver
from fin_recon.ratios import compute_report

mcp = FastMCP(name="fin-recon")


@mcp.tool()
def resolve_catalog(mode: str = "micro", min_date: str | None = None) -> dict:
    """Resolve the statement catalog.

    mode: 'micro' (one self-contained file per entity) or 'paired'
    (latest date with both companion forms).  min_date (YYYY-MM-DD) keeps
    only statements dated strictly after it.
    Returns the chosen filenames per entity and the scan counters.
    """
    if mode not in ("micro", "paired"):
        raise ValueError("mode must be 'micro' or 'paired'")
    resolver = make_resolver(get_config(), date.fromisoformat(min_date) if min_date else None)
    resolution = resolver.resolve_micro() if mode == "micro" else resolver.resolve_paired()
    return {
        "entities": resolution.filenames(),
        "stats": resolution.stats.model_dump(),
    }


@mcp.tool()
def calculate_ratios(record: dict, formatted: bool = False) -> dict:
    """Derive the full metric table from a raw statement record.

    The record maps line-item codes (e.g. 'R2000G3') to values and carries
    TIN, Y, M and FC.  Set formatted=True for labelled display strings.
    """
    report = compute_report(record)
    if formatted:
        return format_report(report)
    return report.model_dump(mode="json")


@mcp.tool()
def get_stored_report(period: str, entity_code: str, formatted: bool = False) -> dict:
    """Fetch a stored statement, e.g. period='rep_2024_12', entity_code='12345678'."""
    data = get_report(period, entity_code)
    if not data:
        return {"error": f"No report for {entity_code} in {period}"}
    if formatted:
        return format_report(compute_report(data))
    return data


# ═══════════════════════════════════════════════════════════════════════════
#  ENTRY POINT
# ═══════════════════════════════════════════════════════════════════════════

if __name__ == "__main__":
    import sys

    # python -m fin_recon.server --sse for remote hosting; STDIO otherwise
    if "--sse" in sys.argv:
        mcp.run(transport="sse")
    else:
        mcp.run()
