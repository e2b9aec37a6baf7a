"""
Asset import reconciliation engine.

This module turns externally-sourced asset records into tenant assets:
- Mapping: project each raw row onto canonical asset fields
- Parsing: convert the projection into a typed, partially-populated MappedRow
- Resolution: turn model/vendor/location names into ids (never creating them)
- Reconciliation: match an existing asset by tag-or-serial, then create or merge

Key principles:
- Soft identity: tag and serial are matched, never overwritten
- Merge, don't clobber: absent values preserve what is stored
- Failure isolation: a bad row is recorded and the batch moves on
- Per-row commits: a later row sees the assets created by earlier rows
"""

import logging
import math
from dataclasses import dataclass, field
from datetime import date
from typing import Optional, Dict, Any, List
from uuid import UUID

from ..errors import RowError, ValidationError
from ..mapper import FieldMapper, is_provided
from ..schema import (
    ASSET_INPUT_FIELDS,
    ASSET_STATUSES,
    DEFAULT_IMPORT_STATUS,
    EVENT_IMPORTED,
    EVENT_STATUS_CHANGED,
    IDENTITY_FIELDS,
    IMPORT_SOURCES,
    REFERENCE_ID_FIELDS,
    REFERENCE_KINDS,
)
from .ledger import BatchLedger
from .resolver import EntityResolver

logger = logging.getLogger(__name__)

# Text fields copied verbatim (stripped) from the mapped row
_TEXT_FIELDS = (
    "tag", "serial", "model", "vendor", "location", "owner",
    "purchase_date", "warranty_end", "po_number", "notes",
)

_ID_FIELDS = tuple(REFERENCE_ID_FIELDS)

# Stored asset columns a reconcile step may write (identity fields excluded)
MERGE_FIELDS = (
    "model_id",
    "vendor_id",
    "location_id",
    "owner_user_id",
    "status",
    "cost",
    "purchase_date",
    "warranty_end",
    "po_number",
    "notes",
)


@dataclass
class MappedRow:
    """
    A mapped import row, parsed into typed fields.

    Every field is optional: None means "not provided", never "clear it".
    Reference names (model, vendor, location) are resolved to ids during
    reconciliation unless the id was supplied directly. An owner name is never
    resolved; without owner_user_id it is reported as unresolved.
    """
    tag: Optional[str] = None
    serial: Optional[str] = None
    model: Optional[str] = None
    model_id: Optional[UUID] = None
    vendor: Optional[str] = None
    vendor_id: Optional[UUID] = None
    location: Optional[str] = None
    location_id: Optional[UUID] = None
    owner: Optional[str] = None
    owner_user_id: Optional[UUID] = None
    status: Optional[str] = None
    cost: Optional[float] = None
    purchase_date: Optional[str] = None
    warranty_end: Optional[str] = None
    po_number: Optional[str] = None
    notes: Optional[str] = None

    def has_identity(self) -> bool:
        """True if the row carries a tag or serial to match on."""
        return self.tag is not None or self.serial is not None


def _parse_cost(value: Any) -> float:
    if isinstance(value, bool):
        raise RowError(f"Invalid cost: {value!r}", field="cost")
    try:
        cost = float(str(value).strip()) if isinstance(value, str) else float(value)
    except (TypeError, ValueError):
        raise RowError(f"Invalid cost: {value!r}", field="cost")
    if not math.isfinite(cost):
        raise RowError(f"Invalid cost: {value!r}", field="cost")
    return cost


def _parse_id(field_name: str, value: Any) -> UUID:
    if isinstance(value, UUID):
        return value
    try:
        return UUID(str(value).strip())
    except (TypeError, ValueError, AttributeError):
        raise RowError(f"Invalid {field_name}: {value!r}", field=field_name)


def parse_mapped_row(data: Dict[str, Any]) -> MappedRow:
    """
    Parse a mapped dictionary into a MappedRow.

    This is the single coercion step of the import path. Unknown keys are
    ignored; missing or empty values become None.

    Args:
        data: Canonical field -> raw value (output of FieldMapper.apply)

    Returns:
        MappedRow instance

    Raises:
        RowError: If cost is not a finite number, status is not a lifecycle
                  state, or a supplied id is not a UUID
    """
    values: Dict[str, Any] = {}

    for name in _TEXT_FIELDS:
        value = data.get(name)
        if is_provided(value):
            values[name] = str(value).strip()

    for name in _ID_FIELDS:
        value = data.get(name)
        if is_provided(value):
            values[name] = _parse_id(name, value)

    if is_provided(data.get("cost")):
        values["cost"] = _parse_cost(data["cost"])

    if is_provided(data.get("status")):
        status = str(data["status"]).strip()
        if status not in ASSET_STATUSES:
            raise RowError(f"Invalid status: {status!r}", field="status")
        values["status"] = status

    return MappedRow(**values)


class DatabaseClient:
    """
    Abstract database client interface.

    Implement this interface with your actual database client (e.g., psycopg2).
    Every query must be scoped by tenant_id. Write methods run inside the
    transaction opened by begin_transaction(); read methods may run outside one.
    """

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    def begin_transaction(self) -> None:
        """Begin a database transaction."""
        raise NotImplementedError

    def commit_transaction(self) -> None:
        """Commit the current transaction."""
        raise NotImplementedError

    def rollback_transaction(self) -> None:
        """Rollback the current transaction."""
        raise NotImplementedError

    def acquire_identity_lock(
        self,
        tenant_id: UUID,
        tag: Optional[str],
        serial: Optional[str]
    ) -> None:
        """
        Serialize reconcile steps that target the same tag or serial.

        Held until the current transaction ends.
        """
        raise NotImplementedError

    # ------------------------------------------------------------------
    # Reference entities
    # ------------------------------------------------------------------

    def find_reference_id(
        self,
        tenant_id: UUID,
        kind: str,
        name: str
    ) -> Optional[UUID]:
        """
        Find a model, vendor or location by case-insensitive name.

        Args:
            tenant_id: Tenant ID
            kind: "model", "vendor" or "location"
            name: Entity name

        Returns:
            Id of the first match, or None
        """
        raise NotImplementedError

    def list_reference_entities(
        self,
        tenant_id: UUID,
        kind: str
    ) -> List[Dict[str, Any]]:
        """
        List the tenant's models, vendors or locations ordered by name.

        Besides id and name, models carry category and manufacturer, vendors
        carry external_id and locations carry code.
        """
        raise NotImplementedError

    # ------------------------------------------------------------------
    # Assets
    # ------------------------------------------------------------------

    def find_asset_by_identity(
        self,
        tenant_id: UUID,
        tag: Optional[str],
        serial: Optional[str]
    ) -> Optional[Dict[str, Any]]:
        """
        Find the first asset whose tag or serial matches.

        Only predicates for non-None arguments are applied.

        Returns:
            Asset dictionary (at least 'id' and 'status'), or None
        """
        raise NotImplementedError

    def create_asset(
        self,
        tenant_id: UUID,
        values: Dict[str, Any]
    ) -> Dict[str, Any]:
        """
        Insert a new asset.

        Args:
            tenant_id: Tenant ID
            values: tag, serial and MERGE_FIELDS values (None for not provided)

        Returns:
            The stored asset dictionary
        """
        raise NotImplementedError

    def update_asset(
        self,
        tenant_id: UUID,
        asset_id: UUID,
        values: Dict[str, Any]
    ) -> Dict[str, Any]:
        """
        Merge values into an existing asset.

        Each column is set to COALESCE(new_value, existing_value); updated_at
        is always refreshed. Identity fields are never written.

        Returns:
            The stored asset dictionary after the update
        """
        raise NotImplementedError

    def get_asset(
        self,
        tenant_id: UUID,
        asset_id: UUID,
        for_update: bool = False
    ) -> Optional[Dict[str, Any]]:
        """
        Get an asset by id within the tenant.

        Args:
            for_update: Lock the row for the rest of the current transaction

        Returns:
            Asset dictionary, or None if it doesn't exist in the tenant
        """
        raise NotImplementedError

    def set_asset_status(
        self,
        tenant_id: UUID,
        asset_id: UUID,
        status: str
    ) -> Dict[str, Any]:
        """Persist a new status and refresh updated_at. Returns the asset."""
        raise NotImplementedError

    def set_asset_owner(
        self,
        tenant_id: UUID,
        asset_id: UUID,
        owner_user_id: Optional[UUID]
    ) -> Dict[str, Any]:
        """Set (or clear) the asset owner and refresh updated_at. Returns the asset."""
        raise NotImplementedError

    def count_assets_by_status(self, tenant_id: UUID) -> Dict[str, int]:
        """Count the tenant's assets grouped by status."""
        raise NotImplementedError

    def total_asset_value(self, tenant_id: UUID) -> float:
        """Sum of asset cost across the tenant (null cost counts as 0)."""
        raise NotImplementedError

    def list_warranty_expiring(
        self,
        tenant_id: UUID,
        start: date,
        end: date
    ) -> List[Dict[str, Any]]:
        """
        Assets whose warranty_end falls within [start, end].

        Returns:
            Asset dictionaries sorted by ascending warranty_end
        """
        raise NotImplementedError

    def list_assets(
        self,
        tenant_id: UUID,
        limit: int,
        owner_user_id: Optional[UUID] = None
    ) -> List[Dict[str, Any]]:
        """
        Assets of the tenant, newest first.

        Each asset also carries model_name, model_category, manufacturer,
        vendor_name, location_name and location_code (None when unset).

        Args:
            owner_user_id: Only return assets owned by this user
        """
        raise NotImplementedError

    def count_assets_by_category(self, tenant_id: UUID) -> Dict[str, int]:
        """Count assets grouped by model category; assets without one are skipped."""
        raise NotImplementedError

    def summarize_assets(
        self,
        tenant_id: UUID,
        kind: str,
        entity_id: UUID
    ) -> Dict[str, Any]:
        """
        Status counts and cost totals of the assets linked to one reference.

        Args:
            kind: "model", "vendor" or "location"
            entity_id: Id of the reference entity

        Returns:
            Dictionary with by_status, total_value and avg_cost (null cost
            counts as 0; avg_cost is 0.0 when no asset matches)
        """
        raise NotImplementedError

    def vendor_purchase_volume(
        self,
        tenant_id: UUID,
        vendor_id: UUID,
        months: int
    ) -> List[Dict[str, Any]]:
        """
        Assets bought from a vendor per purchase month, latest month first.

        Returns:
            Up to `months` dictionaries with month (first day, as a date),
            count and value. Assets without purchase_date are skipped.
        """
        raise NotImplementedError

    # ------------------------------------------------------------------
    # Events and assignments
    # ------------------------------------------------------------------

    def insert_asset_event(
        self,
        tenant_id: UUID,
        asset_id: UUID,
        event_type: str,
        from_status: Optional[str],
        to_status: Optional[str],
        actor_user_id: Optional[UUID],
        payload: Dict[str, Any]
    ) -> UUID:
        """
        Append an immutable asset event.

        Returns:
            New event UUID
        """
        raise NotImplementedError

    def list_asset_events(
        self,
        tenant_id: UUID,
        asset_id: UUID,
        limit: int
    ) -> List[Dict[str, Any]]:
        """Events of an asset, newest first."""
        raise NotImplementedError

    def create_assignment(
        self,
        tenant_id: UUID,
        asset_id: UUID,
        assignee_user_id: UUID,
        start_date: date,
        reason: Optional[str]
    ) -> Dict[str, Any]:
        """Open a new assignment (end_date null). Returns the assignment."""
        raise NotImplementedError

    def close_open_assignments(
        self,
        tenant_id: UUID,
        asset_id: UUID,
        end_date: date
    ) -> int:
        """Set end_date on every open assignment of the asset. Returns how many closed."""
        raise NotImplementedError

    def list_assignments(
        self,
        tenant_id: UUID,
        asset_id: UUID
    ) -> List[Dict[str, Any]]:
        """Assignments of an asset, most recent start_date first."""
        raise NotImplementedError

    def list_tenant_assignments(
        self,
        tenant_id: UUID,
        limit: int,
        assignee_user_id: Optional[UUID] = None
    ) -> List[Dict[str, Any]]:
        """
        Assignments across the tenant, most recently created first.

        Args:
            assignee_user_id: Only return assignments of this user
        """
        raise NotImplementedError

    # ------------------------------------------------------------------
    # Lifecycle policies
    # ------------------------------------------------------------------

    def list_lifecycle_policies(self, tenant_id: UUID) -> List[Dict[str, Any]]:
        """Lifecycle policies of the tenant ordered by name."""
        raise NotImplementedError

    def create_lifecycle_policy(
        self,
        tenant_id: UUID,
        values: Dict[str, Any]
    ) -> Dict[str, Any]:
        """
        Insert a lifecycle policy.

        Args:
            values: name, description, retirement_age_months and
                    warning_threshold_days (None for not provided)

        Returns:
            The stored policy dictionary
        """
        raise NotImplementedError

    # ------------------------------------------------------------------
    # Import jobs
    # ------------------------------------------------------------------

    def create_import_job(
        self,
        tenant_id: UUID,
        source: str,
        created_by: Optional[UUID]
    ) -> UUID:
        """
        Create an import job with status 'processing'.

        Returns:
            New job UUID
        """
        raise NotImplementedError

    def complete_import_job(
        self,
        tenant_id: UUID,
        job_id: UUID,
        status: str,
        stats: Dict[str, Any],
        error_text: Optional[str]
    ) -> None:
        """Write the terminal status, stats and error text; set completed_at."""
        raise NotImplementedError

    def list_import_jobs(
        self,
        tenant_id: UUID,
        limit: int
    ) -> List[Dict[str, Any]]:
        """Import jobs of the tenant, most recent first."""
        raise NotImplementedError


@dataclass
class ReconcileResult:
    """Outcome of reconciling one row."""
    outcome: str  # "created" or "updated"
    asset_id: UUID
    status_changed: bool = False
    unresolved: List[str] = field(default_factory=list)


@dataclass
class ImportResult:
    """What ExecuteImport returns to the caller."""
    job_id: UUID
    source: str
    status: str
    stats: Dict[str, int]
    errors: List[str]
    unresolved: Dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to dictionary for JSON output."""
        return {
            "job_id": str(self.job_id),
            "source": self.source,
            "status": self.status,
            "stats": dict(self.stats),
            "errors": list(self.errors),
            "unresolved": dict(self.unresolved),
        }


def _resolve_references(
    resolver: EntityResolver,
    tenant_id: UUID,
    row: MappedRow
) -> Dict[str, Any]:
    """
    Resolve reference names to ids where the id was not supplied.

    Returns:
        Dictionary with model_id, vendor_id, location_id and the list of
        kinds whose name could not be resolved under "unresolved" (including
        "owner" when an owner name came without owner_user_id)
    """
    resolved: Dict[str, Any] = {"unresolved": []}

    for kind, id_field in REFERENCE_KINDS.items():
        entity_id = getattr(row, id_field)
        name = getattr(row, kind)

        if entity_id is None and name is not None:
            entity_id = resolver.resolve(tenant_id, kind, name)
            if entity_id is None:
                resolved["unresolved"].append(kind)

        resolved[id_field] = entity_id

    # Owner names are kept out of the register; only owner_user_id is stored
    if row.owner is not None and row.owner_user_id is None:
        resolved["unresolved"].append("owner")

    return resolved


def reconcile_row(
    db: DatabaseClient,
    tenant_id: UUID,
    row: MappedRow,
    resolver: Optional[EntityResolver] = None,
    import_job_id: Optional[UUID] = None,
    actor_user_id: Optional[UUID] = None,
    source: Optional[str] = None,
    debug: bool = False
) -> ReconcileResult:
    """
    Create or merge one asset from a parsed import row.

    Must run inside a transaction owned by the caller:
    1. Resolve model/vendor/location names to ids (unresolved -> null);
       an owner name without owner_user_id is reported as unresolved
    2. Lock and match an existing asset by tag OR serial (skipped if neither)
    3. Create path: insert with status defaulting to in_stock, append an
       'imported' event
    4. Update path: COALESCE-merge every non-identity field, append a
       'status_changed' event if the status actually changed

    Args:
        db: Database client
        tenant_id: Tenant ID
        row: Parsed import row
        resolver: Entity resolver (default: EntityResolver(db))
        import_job_id: Import job the row belongs to (recorded on events)
        actor_user_id: Caller identity for audit attribution
        source: Import source (recorded on 'imported' events)
        debug: Enable debug logging of identity resolution decisions

    Returns:
        ReconcileResult
    """
    resolver = resolver or EntityResolver(db)
    references = _resolve_references(resolver, tenant_id, row)

    if debug and references["unresolved"]:
        logger.info(
            f"Unresolved references {references['unresolved']} "
            f"(tag={row.tag!r}, serial={row.serial!r}) -> stored as null"
        )

    existing = None
    if row.has_identity():
        db.acquire_identity_lock(tenant_id=tenant_id, tag=row.tag, serial=row.serial)
        existing = db.find_asset_by_identity(
            tenant_id=tenant_id,
            tag=row.tag,
            serial=row.serial
        )

    values = {
        "model_id": references["model_id"],
        "vendor_id": references["vendor_id"],
        "location_id": references["location_id"],
        "owner_user_id": row.owner_user_id,
        "status": row.status,
        "cost": row.cost,
        "purchase_date": row.purchase_date,
        "warranty_end": row.warranty_end,
        "po_number": row.po_number,
        "notes": row.notes,
    }

    event_payload: Dict[str, Any] = {}
    if import_job_id is not None:
        event_payload["import_job_id"] = str(import_job_id)

    if existing is not None:
        asset_id = existing["id"]
        previous_status = existing.get("status")
        updated = db.update_asset(tenant_id=tenant_id, asset_id=asset_id, values=values)

        status_changed = row.status is not None and row.status != previous_status
        if status_changed:
            db.insert_asset_event(
                tenant_id=tenant_id,
                asset_id=asset_id,
                event_type=EVENT_STATUS_CHANGED,
                from_status=previous_status,
                to_status=updated["status"],
                actor_user_id=actor_user_id,
                payload=dict(event_payload, reason="import")
            )

        if debug:
            logger.info(
                f"Asset match: tag={row.tag!r} serial={row.serial!r} "
                f"-> existing asset {asset_id} (merged)"
            )

        return ReconcileResult(
            outcome="updated",
            asset_id=asset_id,
            status_changed=status_changed,
            unresolved=references["unresolved"]
        )

    values["status"] = row.status or DEFAULT_IMPORT_STATUS
    for name in IDENTITY_FIELDS:
        values[name] = getattr(row, name)
    created = db.create_asset(tenant_id=tenant_id, values=values)
    asset_id = created["id"]

    if source is not None:
        event_payload["source"] = source

    db.insert_asset_event(
        tenant_id=tenant_id,
        asset_id=asset_id,
        event_type=EVENT_IMPORTED,
        from_status=None,
        to_status=created["status"],
        actor_user_id=actor_user_id,
        payload=event_payload
    )

    if debug:
        logger.info(
            f"Asset created: tag={row.tag!r} serial={row.serial!r} -> new asset {asset_id}"
        )

    return ReconcileResult(
        outcome="created",
        asset_id=asset_id,
        unresolved=references["unresolved"]
    )


def _error_message(error: Exception) -> str:
    message = getattr(error, "message", None)
    return message if message else str(error)


def ingest_asset_import(
    tenant_id: UUID,
    source: str,
    rows: List[Dict[str, Any]],
    db: DatabaseClient,
    field_mapping: Optional[Dict[str, str]] = None,
    created_by: Optional[UUID] = None,
    mapper: Optional[FieldMapper] = None,
    resolver: Optional[EntityResolver] = None,
    debug: bool = False
) -> ImportResult:
    """
    Run one asset import batch.

    Flow:
    1. Validate the batch (source and a non-empty rows list)
    2. Create the import job (status 'processing') and commit it
    3. For each row, in input order and in its own transaction:
       map -> parse -> reconcile -> commit; on any failure roll back that row,
       record "Row N: <message>" and continue
    4. Finalize the ledger and write the terminal job status once

    Batch-level atomicity is intentionally not provided: rows that succeeded
    stay committed even when later rows fail. There is no cancellation path.

    Args:
        tenant_id: Tenant ID
        source: Import source (e.g. "csv")
        rows: Raw row dictionaries
        db: Database client instance
        field_mapping: Source column -> canonical field. When omitted, row
                       keys are taken to be canonical field names.
        created_by: Caller identity for audit attribution
        mapper: Field mapper (default: FieldMapper())
        resolver: Entity resolver (default: EntityResolver(db))
        debug: Enable debug logging of identity resolution decisions

    Returns:
        ImportResult with job id, status, stats and at most 10 error lines

    Raises:
        ValidationError: If source is missing/unknown, rows is empty, or
                         field_mapping targets an unknown field
    """
    if not source:
        raise ValidationError("Source and assets array are required")
    if source not in IMPORT_SOURCES:
        raise ValidationError(
            f"Unknown import source '{source}'. Expected one of: {', '.join(IMPORT_SOURCES)}"
        )
    if not rows or not isinstance(rows, list):
        raise ValidationError("Source and assets array are required")
    if field_mapping is not None and not isinstance(field_mapping, dict):
        raise ValidationError("field_mapping must be an object of column -> field")
    if field_mapping:
        unknown = sorted(
            str(target) for target in field_mapping.values()
            if target and target not in ASSET_INPUT_FIELDS
        )
        if unknown:
            raise ValidationError(
                f"Unknown target fields in field_mapping: {', '.join(unknown)}",
                details={"unknown_fields": unknown}
            )

    mapper = mapper or FieldMapper()
    resolver = resolver or EntityResolver(db)
    ledger = BatchLedger(total=len(rows))

    db.begin_transaction()
    try:
        job_id = db.create_import_job(tenant_id=tenant_id, source=source, created_by=created_by)
        db.commit_transaction()
    except Exception:
        db.rollback_transaction()
        raise

    if debug:
        logger.info(f"Import job {job_id} started: {len(rows)} rows from {source}")

    for row_number, raw_row in enumerate(rows, start=1):
        db.begin_transaction()
        try:
            if not isinstance(raw_row, dict):
                raise RowError("Row must be an object of column -> value")

            mapped = mapper.apply(raw_row, field_mapping)
            parsed = parse_mapped_row(mapped)
            result = reconcile_row(
                db=db,
                tenant_id=tenant_id,
                row=parsed,
                resolver=resolver,
                import_job_id=job_id,
                actor_user_id=created_by,
                source=source,
                debug=debug
            )
            db.commit_transaction()
        except Exception as e:
            db.rollback_transaction()
            message = _error_message(e)
            ledger.record_failed(row_number, message)
            logger.warning(f"Import job {job_id}: row {row_number} failed: {message}")
            continue

        if result.outcome == "created":
            ledger.record_created()
        else:
            ledger.record_updated()
        for kind in result.unresolved:
            ledger.record_unresolved(kind)

    outcome = ledger.finalize()

    db.begin_transaction()
    try:
        db.complete_import_job(
            tenant_id=tenant_id,
            job_id=job_id,
            status=outcome.status,
            stats=outcome.stats_payload(),
            error_text=outcome.error_text
        )
        db.commit_transaction()
    except Exception as e:
        db.rollback_transaction()
        logger.error(f"Import job {job_id} could not be finalized: {e}", exc_info=True)
        raise

    if debug:
        logger.info(
            f"Import job {job_id} {outcome.status}: "
            f"created={outcome.stats['created']} updated={outcome.stats['updated']} "
            f"failed={outcome.stats['failed']}"
        )

    return ImportResult(
        job_id=job_id,
        source=source,
        status=outcome.status,
        stats=outcome.stats,
        errors=outcome.errors,
        unresolved=outcome.unresolved
    )
