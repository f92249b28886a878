"""Bounded-concurrency extraction of resolved catalog targets.

Targets are processed in consecutive batches.  Every extraction inside a
batch runs concurrently and the processor waits for the whole batch to
settle before starting the next one, so at most ``batch_size`` files are
open at any time.  A failed target is recorded and never retried; it does
not affect its siblings or later batches.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Awaitable, Callable, Sequence
from pathlib import Path
from typing import Any, Union

from fin_recon.errors import ExtractionError, PairExtractionError
from fin_recon.extractor import Extractor
from fin_recon.models import BatchResult, MicroTarget, PairedTarget, Target, TargetFailure
from fin_recon.ratios import FORM_CODE_KEYS

log = logging.getLogger(__name__)

RawRecord = dict[str, Any]
# Sync extractors run in a worker thread; coroutine functions are awaited directly
ExtractFn = Union[Extractor, Callable[[Path], Awaitable[Union[RawRecord, None]]]]
ProgressFn = Callable[[int, int], None]

DEFAULT_BATCH_SIZE = 50


class BatchProcessor:
    """Run the extraction collaborator over targets, *batch_size* at a time."""

    def __init__(
        self,
        extract: ExtractFn,
        batch_size: int = DEFAULT_BATCH_SIZE,
        on_progress: ProgressFn | None = None,
    ):
        if not isinstance(batch_size, int) or batch_size < 1:
            raise ValueError(f"batch_size must be a positive integer, got {batch_size!r}")
        self.extract = extract
        self.batch_size = batch_size
        self.on_progress = on_progress

    def _is_async(self) -> bool:
        return inspect.iscoroutinefunction(self.extract) or inspect.iscoroutinefunction(
            getattr(self.extract, "__call__", None)
        )

    async def _extract(self, path: Path) -> RawRecord:
        if self._is_async():
            record = await self.extract(path)
        else:
            record = await asyncio.to_thread(self.extract, path)
            if inspect.isawaitable(record):
                record = await record
        if not record:
            raise ExtractionError(f"No statement extracted from {path.name}")
        return record

    async def _process_pair(self, target: PairedTarget) -> RawRecord:
        form1, form2 = await asyncio.gather(
            self._extract(target.form1.path),
            self._extract(target.form2.path),
            return_exceptions=True,
        )
        for arm in (form1, form2):
            if isinstance(arm, BaseException):
                raise PairExtractionError(target.entity_code, str(arm)) from arm
        # Fields present in both forms keep the second form's value, except
        # the form code: form 1 identifies the schema, form 2 carries only
        # its companion code
        merged = {**form1, **form2}
        for key in FORM_CODE_KEYS:
            if form1.get(key):
                merged[key] = form1[key]
        return merged

    async def process_target(self, target: Target) -> RawRecord:
        if isinstance(target, PairedTarget):
            return await self._process_pair(target)
        if isinstance(target, MicroTarget):
            return await self._extract(target.file.path)
        raise TypeError(f"Unsupported target type: {type(target).__name__}")

    async def run(self, targets: Sequence[Target]) -> BatchResult:
        """Extract every target and tally successes and failures."""
        result = BatchResult()
        total = len(targets)

        for start in range(0, total, self.batch_size):
            batch = targets[start:start + self.batch_size]
            outcomes = await asyncio.gather(
                *(self.process_target(target) for target in batch),
                return_exceptions=True,
            )

            for target, outcome in zip(batch, outcomes):
                if isinstance(outcome, BaseException):
                    log.warning("Extraction failed for %s: %s", target.entity_code, outcome)
                    result.failures.append(
                        TargetFailure(entity_code=target.entity_code, error=str(outcome))
                    )
                    result.failed += 1
                else:
                    result.records.append(outcome)
                    result.succeeded += 1

            processed = min(start + self.batch_size, total)
            log.info("Processed: %d/%d", processed, total)
            if self.on_progress is not None:
                self.on_progress(processed, total)

        return result


def run_batches(
    targets: Sequence[Target],
    extract: ExtractFn,
    batch_size: int = DEFAULT_BATCH_SIZE,
    on_progress: ProgressFn | None = None,
) -> BatchResult:
    """Synchronous entry point for callers outside an event loop."""
    processor = BatchProcessor(extract, batch_size=batch_size, on_progress=on_progress)
    return asyncio.run(processor.run(list(targets)))
