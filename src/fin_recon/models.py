"""Pydantic models shared by the catalog, batch and ratio layers."""

from __future__ import annotations

from datetime import date
from enum import Enum
from pathlib import Path
from typing import Any, Union

from pydantic import BaseModel, ConfigDict, Field


class ResolutionOptions(BaseModel):
    """Explicit run configuration for the resolver and the batch processor."""
    model_config = ConfigDict(frozen=True)

    allowed_regions: frozenset[str]
    batch_size: int = Field(default=50, ge=1)
    min_date: date | None = None


# ---------------------------------------------------------------------------
# Catalog
# ---------------------------------------------------------------------------

class SourceFile(BaseModel):
    """Metadata parsed from one statement filename."""
    model_config = ConfigDict(frozen=True)

    name: str
    entity_code: str
    form_code: str | None = None     # None for self-contained (micro) statements
    as_of: date
    folder: str | None = None

    @property
    def is_micro(self) -> bool:
        return self.form_code is None

    @property
    def path(self) -> Path:
        return Path(self.folder) / self.name if self.folder else Path(self.name)


class FormSlot(str, Enum):
    FORM1 = "form1"
    FORM2 = "form2"


class PairCandidate(BaseModel):
    """Running state of one entity while both form directories are folded."""
    model_config = ConfigDict(frozen=True)

    as_of: date
    form1: SourceFile | None = None
    form2: SourceFile | None = None

    @property
    def complete(self) -> bool:
        return self.form1 is not None and self.form2 is not None


class MicroTarget(BaseModel):
    model_config = ConfigDict(frozen=True)

    entity_code: str
    file: SourceFile


class PairedTarget(BaseModel):
    model_config = ConfigDict(frozen=True)

    entity_code: str
    form1: SourceFile
    form2: SourceFile


Target = Union[MicroTarget, PairedTarget]


class CatalogStats(BaseModel):
    """Counters collected during one resolution pass."""
    scanned: int = 0
    region_skipped: int = 0
    unparsed: int = 0
    before_min_date: int = 0
    incomplete_pairs: int = 0
    selected: int = 0


class CatalogResolution(BaseModel):
    targets: dict[str, Target] = {}
    stats: CatalogStats = CatalogStats()

    def filenames(self) -> dict[str, Any]:
        """entity code -> chosen filename, or {form1, form2} for pairs."""
        out: dict[str, Any] = {}
        for code, target in self.targets.items():
            if isinstance(target, PairedTarget):
                out[code] = {"form1": target.form1.name, "form2": target.form2.name}
            else:
                out[code] = target.file.name
        return out


# ---------------------------------------------------------------------------
# Batch processing
# ---------------------------------------------------------------------------

class TargetFailure(BaseModel):
    entity_code: str
    error: str


class BatchResult(BaseModel):
    """Outcome of extracting a list of resolved targets."""
    records: list[dict[str, Any]] = []
    succeeded: int = 0
    failed: int = 0
    failures: list[TargetFailure] = []

    @property
    def total(self) -> int:
        return self.succeeded + self.failed


class UploadResult(BaseModel):
    written: int = 0
    skipped: int = 0
    batches: int = 0


# ---------------------------------------------------------------------------
# Derived metrics
# ---------------------------------------------------------------------------

class ReportType(str, Enum):
    FULL = "full"
    SHORT = "short"


class DerivedMetricsReport(BaseModel):
    """Metrics derived from one canonical statement.  None means not computable."""
    model_config = ConfigDict(frozen=True)

    entity_code: str | None = None
    year: int | None = None
    month: int | None = None
    report_type: ReportType = ReportType.SHORT

    # Base figures
    net_revenue: float = 0.0
    equity: float = 0.0
    short_term_loans: float = 0.0
    long_term_loans: float = 0.0
    other_financial_obligations: float = 0.0
    equity_ratio: float = 0.0
    net_profit: float = 0.0
    assets_dynamics: float = 0.0
    ebitda: float = 0.0
    operating_profit: float = 0.0
    depreciation: float = 0.0
    net_debt: float = 0.0
    debt_to_ebitda: float = 0.0
    ebitda_to_financial_expenses: float = 0.0

    # Liquidity
    current_ratio: float | None = None
    cash_ratio: float | None = None
    quick_ratio: float | None = None

    # Profitability
    ebitda_margin: float | None = None
    operating_margin: float | None = None

    # Turnover, days
    inventory_turnover_days: float = 0.0
    receivables_turnover_days: float = 0.0
    payables_turnover_days: float | None = None
    operating_cycle: float = 0.0
    cash_conversion_cycle: float = 0.0

    # Growth, %
    revenue_growth_rate: float | None = None
    receivables_growth_rate: float | None = None
    payables_growth_rate: float | None = None

    # Other
    financial_independence_ratio: float = 0.0
    fixed_assets_ratio: float | None = None
    fixed_assets_wear_rate: float | None = None
    debt_to_revenue_ratio: float = 0.0

    def metrics(self) -> dict[str, float | None]:
        """Metric fields only, in declaration order."""
        return self.model_dump(exclude={"entity_code", "year", "month", "report_type"})
