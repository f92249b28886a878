"""Catalog resolution: pick one canonical statement per entity.

Two modes:
  Single-file (micro entities)
    One folder of self-contained statements; each entity keeps its most
    recent file.
  Paired-form (larger entities)
    Two folders, one per companion form.  Each entity keeps the most recent
    date and whichever forms exist at that date; entities whose latest date
    lacks either form are dropped.

The merge rules are plain functions over immutable values so that the fold
result never depends on directory scan order:
  * a strictly later date always wins
  * on an equal date the lexicographically greater filename wins
"""

from __future__ import annotations

import logging
import os
from collections.abc import Iterable
from datetime import date

from fin_recon.filenames import is_region_allowed, parse_filename
from fin_recon.models import (
    CatalogResolution,
    CatalogStats,
    FormSlot,
    MicroTarget,
    PairCandidate,
    PairedTarget,
    ResolutionOptions,
    SourceFile,
)

log = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════
#  Merge rules
# ═══════════════════════════════════════════════════════════════════════════

def merge_latest(current: SourceFile | None, candidate: SourceFile) -> SourceFile:
    """Return whichever of *current* / *candidate* should represent the entity."""
    if current is None:
        return candidate
    if candidate.as_of != current.as_of:
        return candidate if candidate.as_of > current.as_of else current
    return candidate if candidate.name > current.name else current


def merge_paired(
    current: PairCandidate | None,
    candidate: SourceFile,
    slot: FormSlot,
) -> PairCandidate:
    """Fold one form file into an entity's pair candidate.

    A strictly later date replaces the candidate and clears the other slot;
    an equal date fills (or tie-breaks) *slot*; an earlier date is ignored.
    """
    field = slot.value
    if current is None or candidate.as_of > current.as_of:
        return PairCandidate(as_of=candidate.as_of, **{field: candidate})
    if candidate.as_of < current.as_of:
        return current
    chosen = merge_latest(getattr(current, field), candidate)
    return current.model_copy(update={field: chosen})


# ═══════════════════════════════════════════════════════════════════════════
#  Folds
# ═══════════════════════════════════════════════════════════════════════════

def _after_min_date(source: SourceFile, min_date: date | None) -> bool:
    return min_date is None or source.as_of > min_date


def fold_latest(
    files: Iterable[SourceFile],
    min_date: date | None = None,
) -> dict[str, SourceFile]:
    """entity code -> most recent file, keeping only dates after *min_date*."""
    latest: dict[str, SourceFile] = {}
    for source in files:
        if not _after_min_date(source, min_date):
            continue
        latest[source.entity_code] = merge_latest(latest.get(source.entity_code), source)
    return latest


def fold_paired(
    form1_files: Iterable[SourceFile],
    form2_files: Iterable[SourceFile],
    min_date: date | None = None,
) -> dict[str, PairCandidate]:
    """entity code -> latest-date pair candidate over both form folders."""
    candidates: dict[str, PairCandidate] = {}
    for slot, files in ((FormSlot.FORM1, form1_files), (FormSlot.FORM2, form2_files)):
        for source in files:
            if not _after_min_date(source, min_date):
                continue
            code = source.entity_code
            candidates[code] = merge_paired(candidates.get(code), source, slot)
    return candidates


def complete_pairs(candidates: dict[str, PairCandidate]) -> tuple[dict[str, PairedTarget], int]:
    """Keep entities whose latest date has both forms; also return the drop count."""
    complete: dict[str, PairedTarget] = {}
    dropped = 0
    for code, candidate in candidates.items():
        if not candidate.complete:
            dropped += 1
            continue
        complete[code] = PairedTarget(
            entity_code=code, form1=candidate.form1, form2=candidate.form2,
        )
    return complete, dropped


# ═══════════════════════════════════════════════════════════════════════════
#  Resolver
# ═══════════════════════════════════════════════════════════════════════════

def list_folder(folder: str) -> list[str]:
    """Directory listing, or [] when the folder does not exist."""
    if not os.path.isdir(folder):
        log.warning("Folder not found: %s", folder)
        return []
    return sorted(os.listdir(folder))


class CatalogResolver:
    """Turn directory listings into one resolved target per entity."""

    def __init__(
        self,
        options: ResolutionOptions,
        micro_dir: str | None = None,
        form1_dir: str | None = None,
        form2_dir: str | None = None,
    ):
        self.options = options
        self.micro_dir = micro_dir
        self.form1_dir = form1_dir
        self.form2_dir = form2_dir

    def _scan(
        self,
        names: Iterable[str],
        folder: str | None,
        require_form: bool,
        stats: CatalogStats,
    ) -> list[SourceFile]:
        parsed: list[SourceFile] = []
        for name in names:
            stats.scanned += 1
            if not is_region_allowed(name, self.options.allowed_regions):
                stats.region_skipped += 1
                continue
            source = parse_filename(name, require_form=require_form, folder=folder)
            if source is None:
                stats.unparsed += 1
                continue
            if not _after_min_date(source, self.options.min_date):
                stats.before_min_date += 1
                continue
            parsed.append(source)
        return parsed

    def _names(self, names: Iterable[str] | None, folder: str | None) -> Iterable[str]:
        if names is not None:
            return names
        return list_folder(folder) if folder else []

    def resolve_micro(self, names: Iterable[str] | None = None) -> CatalogResolution:
        """Single-file mode over the micro folder (or the given *names*)."""
        stats = CatalogStats()
        files = self._scan(self._names(names, self.micro_dir), self.micro_dir, False, stats)
        latest = fold_latest(files)

        targets = {
            code: MicroTarget(entity_code=code, file=source)
            for code, source in latest.items()
        }
        stats.selected = len(targets)
        log.info(
            "Micro catalog: %d files scanned, %d entities selected (%d region-skipped, %d unparsed)",
            stats.scanned, stats.selected, stats.region_skipped, stats.unparsed,
        )
        return CatalogResolution(targets=targets, stats=stats)

    def resolve_paired(
        self,
        form1_names: Iterable[str] | None = None,
        form2_names: Iterable[str] | None = None,
    ) -> CatalogResolution:
        """Paired-form mode over the two form folders (or the given name lists)."""
        stats = CatalogStats()
        form1 = self._scan(self._names(form1_names, self.form1_dir), self.form1_dir, True, stats)
        form2 = self._scan(self._names(form2_names, self.form2_dir), self.form2_dir, True, stats)
        log.debug("Paired catalog: %d form-1 and %d form-2 files parsed", len(form1), len(form2))

        targets, dropped = complete_pairs(fold_paired(form1, form2))
        stats.incomplete_pairs = dropped
        stats.selected = len(targets)
        log.info(
            "Paired catalog: %d files scanned, %d entities selected, %d incomplete pairs dropped",
            stats.scanned, stats.selected, dropped,
        )
        return CatalogResolution(targets=targets, stats=stats)
