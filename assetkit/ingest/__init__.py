"""Asset import reconciliation and database persistence."""

from .asset_ingest import (
    ingest_asset_import,
    reconcile_row,
    parse_mapped_row,
    MappedRow,
    ReconcileResult,
    ImportResult,
    DatabaseClient,
)
from .ledger import BatchLedger, BatchOutcome
from .resolver import EntityResolver
from .postgres_client import PostgresClient

__all__ = [
    "ingest_asset_import",
    "reconcile_row",
    "parse_mapped_row",
    "MappedRow",
    "ReconcileResult",
    "ImportResult",
    "DatabaseClient",
    "BatchLedger",
    "BatchOutcome",
    "EntityResolver",
    "PostgresClient",
]
