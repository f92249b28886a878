"""Tests for the bounded-concurrency batch processor."""

import asyncio
from datetime import date
from pathlib import Path

import pytest

from fin_recon.batch import BatchProcessor, run_batches
from fin_recon.errors import ExtractionError
from fin_recon.models import MicroTarget, PairedTarget, SourceFile


def micro_target(code: str) -> MicroTarget:
    name = f"{code}_26_J0100000_2025-03-01 10_00_00.xml"
    return MicroTarget(
        entity_code=code,
        file=SourceFile(name=name, entity_code=code, as_of=date(2025, 3, 1), folder="micro"),
    )


def paired_target(code: str) -> PairedTarget:
    def source(form_code: str, folder: str) -> SourceFile:
        return SourceFile(
            name=f"{code}_26_{form_code}_2025-03-01 10_00_00.xml",
            entity_code=code,
            form_code=form_code,
            as_of=date(2025, 3, 1),
            folder=folder,
        )
    return PairedTarget(entity_code=code, form1=source("S0100115", "F1"), form2=source("S0100214", "F2"))


def code_of(path: Path) -> str:
    return path.name.split("_", 1)[0]


class ConcurrencyProbe:
    """Async extractor that records how many calls overlap."""

    def __init__(self, failing: set[str] = frozenset()):
        self.failing = failing
        self.active = 0
        self.peak = 0
        self.calls = 0

    async def __call__(self, path: Path) -> dict:
        self.calls += 1
        self.active += 1
        self.peak = max(self.peak, self.active)
        try:
            await asyncio.sleep(0)
            if code_of(path) in self.failing:
                raise ExtractionError(f"corrupt file {path.name}")
            return {"TIN": code_of(path), "source": path.parent.name}
        finally:
            self.active -= 1


@pytest.mark.asyncio
async def test_failures_are_isolated_across_batches():
    targets = [micro_target(f"{10000000 + i}") for i in range(120)]
    failing = {"10000005", "10000060", "10000119"}
    probe = ConcurrencyProbe(failing)
    progress = []

    result = await BatchProcessor(probe, batch_size=50, on_progress=lambda d, t: progress.append((d, t))).run(targets)

    assert result.succeeded == 117
    assert result.failed == 3
    assert len(result.records) == 117
    assert {f.entity_code for f in result.failures} == failing
    assert probe.calls == 120
    assert progress == [(50, 120), (100, 120), (120, 120)]


@pytest.mark.asyncio
async def test_concurrency_never_exceeds_batch_size():
    targets = [micro_target(f"{20000000 + i}") for i in range(23)]
    probe = ConcurrencyProbe()
    await BatchProcessor(probe, batch_size=5).run(targets)
    assert probe.peak <= 5
    assert probe.calls == 23


@pytest.mark.asyncio
async def test_batches_run_one_after_another():
    order = []

    async def extract(path: Path) -> dict:
        code = code_of(path)
        order.append(("start", code))
        # First target of each batch is slow; the next batch must still wait
        await asyncio.sleep(0.01 if code.endswith("0") else 0)
        order.append(("end", code))
        return {"TIN": code}

    targets = [micro_target(f"3000000{i}") for i in range(4)]
    await BatchProcessor(extract, batch_size=2).run(targets)

    last_end_first_batch = max(i for i, (kind, code) in enumerate(order) if kind == "end" and code in ("30000000", "30000001"))
    first_start_second_batch = min(i for i, (kind, code) in enumerate(order) if kind == "start" and code in ("30000002", "30000003"))
    assert last_end_first_batch < first_start_second_batch


@pytest.mark.asyncio
async def test_pair_merges_both_forms_second_wins():
    async def extract(path: Path) -> dict:
        if path.parent.name == "F1":
            return {"TIN": "11111111", "R1300G4": 100.0, "shared": "form1"}
        return {"TIN": "11111111", "R2000G3": 50.0, "shared": "form2"}

    result = await BatchProcessor(extract).run([paired_target("11111111")])

    assert result.succeeded == 1
    assert result.records == [{"TIN": "11111111", "R1300G4": 100.0, "R2000G3": 50.0, "shared": "form2"}]


@pytest.mark.asyncio
async def test_pair_fails_when_either_arm_fails():
    async def extract(path: Path) -> dict:
        if path.parent.name == "F2":
            raise ExtractionError("unreadable")
        return {"TIN": code_of(path)}

    result = await BatchProcessor(extract).run([paired_target("11111111"), micro_target("22222222")])

    assert result.succeeded == 1
    assert result.failed == 1
    failure = result.failures[0]
    assert failure.entity_code == "11111111"
    assert "11111111" in failure.error
    assert "unreadable" in failure.error


@pytest.mark.asyncio
async def test_empty_extraction_counts_as_failure():
    async def extract(path: Path):
        return None

    result = await BatchProcessor(extract).run([micro_target("11111111")])
    assert result.failed == 1
    assert result.records == []


@pytest.mark.asyncio
async def test_unexpected_exceptions_are_recorded():
    def extract(path: Path) -> dict:
        raise OSError("Too many open files")

    result = await BatchProcessor(extract).run([micro_target("11111111")])
    assert result.failed == 1
    assert "Too many open files" in result.failures[0].error


def test_run_batches_with_sync_extractor():
    def extract(path: Path) -> dict:
        return {"TIN": code_of(path), "path": str(path)}

    result = run_batches([micro_target("11111111"), micro_target("22222222")], extract, batch_size=1)
    assert result.succeeded == 2
    assert result.total == 2
    assert {r["TIN"] for r in result.records} == {"11111111", "22222222"}
    assert result.records[0]["path"].replace("\\", "/").startswith("micro/")


def test_empty_target_list():
    result = run_batches([], lambda path: {"TIN": "x"})
    assert result.succeeded == 0
    assert result.failed == 0


@pytest.mark.parametrize("size", [0, -1, 2.5])
def test_batch_size_must_be_positive(size):
    with pytest.raises(ValueError):
        BatchProcessor(lambda path: {}, batch_size=size)


@pytest.mark.asyncio
async def test_pair_keeps_form1_form_code():
    async def extract(path: Path) -> dict:
        if path.parent.name == "F1":
            return {"TIN": "11111111", "FC": "S0100115", "R1510G4": 2000.0}
        return {"TIN": "11111111", "FC": "S0100214", "R2190G3": 1500.0}

    result = await BatchProcessor(extract).run([paired_target("11111111")])

    assert result.records[0]["FC"] == "S0100115"
    assert result.records[0]["R2190G3"] == 1500.0


@pytest.mark.asyncio
async def test_pair_without_form1_code_keeps_form2_code():
    async def extract(path: Path) -> dict:
        if path.parent.name == "F1":
            return {"TIN": "11111111"}
        return {"TIN": "11111111", "FC": "S0100214"}

    result = await BatchProcessor(extract).run([paired_target("11111111")])
    assert result.records[0]["FC"] == "S0100214"
