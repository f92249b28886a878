"""Custom exceptions for the fin_recon package."""
from __future__ import annotations


class ReconError(RuntimeError):
    """Base error for statement reconciliation."""


class ExtractionError(ReconError):
    """Raised when a statement file cannot be turned into a raw record."""


class PairExtractionError(ExtractionError):
    """Raised when either form of a paired filing fails to extract."""

    def __init__(self, entity_code: str, message: str):
        super().__init__(f"Incomplete data for entity {entity_code}: {message}")
        self.entity_code = entity_code
