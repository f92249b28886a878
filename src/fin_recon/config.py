"""Configuration management via environment variables.

Reads from .env file (via pydantic-settings) with sensible defaults.
All values can be overridden via environment variables.

Catalog:
    ALLOWED_REGIONS  — Comma-separated two-character region codes, e.g. 26,46
    BATCH_SIZE       — Concurrent extractions per batch (default 50)
    MIN_DATE         — Only statements dated strictly after this (YYYY-MM-DD)
    MICRO_DIR        — Folder of self-contained (micro) statements
    FORM1_DIR / FORM2_DIR — Folders of the two companion forms

Optional:
    MONGODB_URI      — Report store; without it uploads and lookups are no-ops
    API_KEY          — Value expected in the x-api-key header of /api/report
    PORT             — HTTP port for the report API
"""

from __future__ import annotations

from datetime import date
from typing import Annotated

from pydantic import field_validator
from pydantic_settings import BaseSettings, NoDecode

from fin_recon.models import ResolutionOptions

DEFAULT_REGIONS = frozenset({"26", "46", "61", "21"})


class Settings(BaseSettings):
    # Two-character region codes read from positions 10-11 of a filename
    allowed_regions: Annotated[set[str], NoDecode] = set(DEFAULT_REGIONS)

    # Extraction concurrency bound (open file handles per batch)
    batch_size: int = 50

    # Incremental runs: skip statements dated on or before this day
    min_date: date | None = None

    micro_dir: str = "data"
    form1_dir: str = "data/F1"
    form2_dir: str = "data/F2"

    # Documents per bulk write when uploading to the report store
    upload_batch_size: int = 500

    # MongoDB report store (optional)
    mongodb_uri: str = ""
    mongodb_database: str = "fin_recon"

    # Shared secret for the report API
    api_key: str = ""

    port: int = 3000
    log_level: str = "INFO"

    # .env values often carry trailing spaces or quotes
    @field_validator("mongodb_uri", "api_key", mode="before")
    @classmethod
    def strip_whitespace(cls, v: str) -> str:
        if isinstance(v, str):
            return v.strip().strip('"').strip("'").strip()
        return v

    @field_validator("allowed_regions", mode="before")
    @classmethod
    def split_regions(cls, v):
        if isinstance(v, str):
            return {part.strip() for part in v.split(",") if part.strip()}
        return v

    @field_validator("batch_size", "upload_batch_size")
    @classmethod
    def positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("must be a positive integer")
        return v

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}

    def resolution_options(self, min_date: date | None = None) -> ResolutionOptions:
        """Options handed to the catalog resolver and the batch processor."""
        return ResolutionOptions(
            allowed_regions=frozenset(self.allowed_regions),
            batch_size=self.batch_size,
            min_date=min_date or self.min_date,
        )


_config: Settings | None = None


def get_config() -> Settings:
    """Get or create the shared Settings singleton."""
    global _config
    if _config is None:
        _config = Settings()
    return _config
