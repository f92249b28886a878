"""End-to-end runs: resolve the catalog, extract statements, derive metrics.

Data flow:
  1. CatalogResolver.resolve_micro() / resolve_paired() → one target per entity
  2. BatchProcessor.run() → raw statement records (+ success/failure tally)
  3. save_json() → output artifact for bulk upload
  4. compute_reports() / reports_frame() → derived metrics table
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable, Mapping
from datetime import date
from pathlib import Path
from typing import Any

import pandas as pd

from fin_recon.batch import BatchProcessor, ExtractFn
from fin_recon.catalog import CatalogResolver
from fin_recon.config import Settings
from fin_recon.extractor import extract_declaration
from fin_recon.models import BatchResult, CatalogResolution, DerivedMetricsReport
from fin_recon.ratios import compute_reports

log = logging.getLogger(__name__)


def make_resolver(settings: Settings, min_date: date | None = None) -> CatalogResolver:
    return CatalogResolver(
        settings.resolution_options(min_date),
        micro_dir=settings.micro_dir,
        form1_dir=settings.form1_dir,
        form2_dir=settings.form2_dir,
    )


def log_statistics(result: BatchResult):
    log.info("Successfully processed: %d", result.succeeded)
    if result.failed > 0:
        log.warning("Processing errors: %d", result.failed)


async def _extract_resolution(
    resolution: CatalogResolution,
    settings: Settings,
    extract: ExtractFn,
) -> BatchResult:
    if not resolution.targets:
        return BatchResult()
    processor = BatchProcessor(extract, batch_size=settings.batch_size)
    result = await processor.run(list(resolution.targets.values()))
    log_statistics(result)
    return result


async def build_micro_statements(
    settings: Settings,
    extract: ExtractFn = extract_declaration,
    min_date: date | None = None,
) -> BatchResult:
    """Latest self-contained statement per micro entity."""
    resolution = make_resolver(settings, min_date).resolve_micro()
    if not resolution.targets:
        log.info("No micro statements found to process")
    else:
        log.info("Micro statements found: %d", len(resolution.targets))
    return await _extract_resolution(resolution, settings, extract)


async def build_paired_statements(
    settings: Settings,
    extract: ExtractFn = extract_declaration,
    min_date: date | None = None,
) -> BatchResult:
    """Latest complete form pair per entity, merged into one record."""
    resolution = make_resolver(settings, min_date).resolve_paired()
    if not resolution.targets:
        log.info("No paired statements found to process")
    else:
        log.info("Entities with complete form pairs: %d", len(resolution.targets))
    return await _extract_resolution(resolution, settings, extract)


# ═══════════════════════════════════════════════════════════════════════════
#  Output artifacts
# ═══════════════════════════════════════════════════════════════════════════

def save_json(path: str | Path, records: list[dict[str, Any]]):
    path = Path(path)
    path.write_text(json.dumps(records, indent=2, ensure_ascii=False, default=str), encoding="utf-8")
    log.info("Results saved to %s", path)


def load_json(path: str | Path) -> list[dict[str, Any]]:
    data = json.loads(Path(path).read_text(encoding="utf-8"))
    if not isinstance(data, list):
        raise ValueError(f"{path} does not contain a list of statements")
    return data


def reports_frame(reports: Iterable[DerivedMetricsReport]) -> pd.DataFrame:
    """One row per entity, metadata columns first, then every metric."""
    rows = [report.model_dump(mode="json") for report in reports]
    if not rows:
        return pd.DataFrame(columns=list(DerivedMetricsReport.model_fields))
    return pd.DataFrame(rows, columns=list(DerivedMetricsReport.model_fields))


def export_reports(records: Iterable[Mapping[str, Any]], path: str | Path) -> pd.DataFrame:
    """Derive metrics for *records* and write them to CSV."""
    df = reports_frame(compute_reports(records))
    df.to_csv(path, index=False)
    log.info("Wrote %d reports to %s", len(df), path)
    return df
