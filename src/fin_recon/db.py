"""MongoDB report store.

Statements live in one collection per reporting period
(``rep_<year>_<month>``), one document per entity keyed by its TIN, holding
the raw line items next to the derived metrics so the report API can answer
without recomputing.

Without MONGODB_URI, or when the server does not answer the initial ping,
the store is disabled: uploads write nothing and lookups return None.
"""

from __future__ import annotations

import logging
import re
from collections import defaultdict
from collections.abc import Iterable
from datetime import datetime, timezone
from typing import Any

from pymongo import MongoClient, UpdateOne
from pymongo.database import Database
from pymongo.errors import PyMongoError

from fin_recon.config import Settings, get_config
from fin_recon.models import UploadResult
from fin_recon.ratios import compute_report

log = logging.getLogger(__name__)

PERIOD_PATTERN = re.compile(r"^rep_\d{4}_\d{1,2}$")

_client: MongoClient | None = None
_db: Database | None = None
_available: bool | None = None  # None until the first connection attempt


def _connect(settings: Settings) -> Database | None:
    global _client
    if not settings.mongodb_uri:
        log.info("No MONGODB_URI configured, report store disabled")
        return None
    try:
        client = MongoClient(settings.mongodb_uri, serverSelectionTimeoutMS=5000)
        client.admin.command("ping")
    except PyMongoError as exc:
        log.warning("Report store unreachable, running without it: %s", exc)
        return None
    _client = client
    log.info("Report store ready, database %s", settings.mongodb_database)
    return client[settings.mongodb_database]


def _get_db() -> Database | None:
    """Database holding the period collections, connected on first use."""
    global _db, _available
    if _available is None:
        _db = _connect(get_config())
        _available = _db is not None
    return _db


def is_available() -> bool:
    return _get_db() is not None


def reset():
    """Drop the cached connection so the next call reconnects with fresh settings."""
    global _client, _db, _available
    if _client is not None:
        _client.close()
    _client = None
    _db = None
    _available = None


def collection_name(year: Any, month: Any) -> str:
    return f"rep_{year}_{month}"


def build_document(record: dict[str, Any]) -> dict[str, Any]:
    """Raw record plus derived metrics, ready to store."""
    report = compute_report(record)
    return {
        **record,
        "metrics": report.metrics(),
        "report_type": report.report_type.value,
        "updated_at": datetime.now(timezone.utc).isoformat(),
    }


# ── Statements ─────────────────────────────────────────────────────────

def upsert_statements(records: Iterable[dict[str, Any]], batch_size: int = 500) -> UploadResult:
    """Bulk-upsert statements keyed by (period, TIN).

    Records without a string TIN are skipped.  Writes are committed every
    *batch_size* documents.
    """
    result = UploadResult()
    db = _get_db()
    if db is None:
        return result

    pending: dict[str, list] = defaultdict(list)
    pending_count = 0

    def flush():
        nonlocal pending_count
        for name, ops in pending.items():
            db[name].bulk_write(ops, ordered=False)
        result.batches += 1
        log.info("Committed %d documents...", result.written)
        pending.clear()
        pending_count = 0

    for record in records:
        tin = record.get("TIN")
        if not tin or not isinstance(tin, str):
            log.warning("Skipped record with invalid TIN: %r", tin)
            result.skipped += 1
            continue

        name = collection_name(record.get("Y"), record.get("M"))
        pending[name].append(
            UpdateOne({"TIN": tin}, {"$set": build_document(record)}, upsert=True)
        )
        pending_count += 1
        result.written += 1
        if pending_count >= batch_size:
            flush()

    if pending_count:
        flush()

    log.info("Upload complete: %d written, %d skipped", result.written, result.skipped)
    return result


def get_report(period: str, entity_code: str) -> dict | None:
    """Stored document for *entity_code* in *period*, or None.

    Store errors propagate so callers can tell "missing" from "failed".
    """
    if not PERIOD_PATTERN.match(period):
        return None
    db = _get_db()
    if db is None:
        return None
    return db[period].find_one({"TIN": entity_code}, {"_id": 0})
