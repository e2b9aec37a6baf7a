"""
Transport-agnostic asset operations.

AssetService is what an HTTP (or CLI, or queue) adapter calls. It owns no
state beyond its collaborators: every call takes the trusted tenant_id and,
where an action is audited, the caller's user id.
"""

import logging
from datetime import date
from typing import Any, Callable, Dict, List, Optional
from uuid import UUID

from .adapters import CsvAdapter, ExcelAdapter
from .config import Settings
from .errors import NotFoundError, ValidationError
from .ingest.asset_ingest import DatabaseClient, ImportResult, ingest_asset_import
from .ingest.resolver import EntityResolver
from .lifecycle import (
    TransitionPolicy,
    assign_asset,
    change_asset_status,
    create_lifecycle_policy,
    lifecycle_stage,
    unassign_asset,
    utc_today,
    warranty_window,
    with_warranty,
)
from .parser import ImportParser, ImportPreview
from .schema import (
    ASSET_EVENT_LIST_LIMIT,
    ASSET_LIST_LIMIT,
    ASSIGNMENT_LIST_LIMIT,
    DEFAULT_WARRANTY_WINDOW_DAYS,
    IMPORT_JOB_LIST_LIMIT,
    LIFECYCLE_STAGES,
    PRIVILEGED_ROLES,
    PURCHASE_VOLUME_MONTHS,
)

logger = logging.getLogger(__name__)

_STATS_WARRANTY_WINDOWS = (30, 60, 90)


class AssetService:
    """Asset import, lifecycle and reporting operations for one storage backend."""

    def __init__(
        self,
        db: DatabaseClient,
        settings: Optional[Settings] = None,
        parser: Optional[ImportParser] = None,
        clock: Optional[Callable[[], date]] = None,
        policy: Optional[TransitionPolicy] = None,
        debug: bool = False
    ):
        """
        Args:
            db: Storage backend implementing DatabaseClient
            settings: Runtime settings (only strict_transitions is read here)
            parser: Import parser (default: ImportParser with CSV and Excel adapters)
            clock: Callable returning "today" (default: current UTC date)
            policy: Transition policy; overrides settings.strict_transitions
            debug: Log reconciliation decisions at INFO
        """
        self.db = db
        self.settings = settings or Settings()
        self.parser = parser or _default_parser()
        self.clock = clock or utc_today
        if policy is None:
            policy = (
                TransitionPolicy.STRICT if self.settings.strict_transitions
                else TransitionPolicy.PERMISSIVE
            )
        self.policy = policy
        self.debug = debug

    # ------------------------------------------------------------------
    # Import
    # ------------------------------------------------------------------

    def preview_import(self, raw_text: str) -> ImportPreview:
        """
        Parse pasted CSV text and suggest a field mapping.

        Raises:
            MalformedInputError: If fewer than 2 non-blank lines are present
        """
        if not isinstance(raw_text, str):
            raise ValidationError("CSV data is required")
        return self.parser.preview_text(raw_text)

    def preview_file(self, file_path: str) -> ImportPreview:
        """Parse an uploaded CSV or spreadsheet file and suggest a field mapping."""
        return self.parser.preview_file(file_path)

    def execute_import(
        self,
        tenant_id: UUID,
        source: str,
        rows: List[Dict[str, Any]],
        field_mapping: Optional[Dict[str, str]] = None,
        created_by: Optional[UUID] = None
    ) -> ImportResult:
        """
        Reconcile a batch of rows into tenant assets.

        Raises:
            ValidationError: If source is missing/unknown or rows is empty
        """
        return ingest_asset_import(
            tenant_id=tenant_id,
            source=source,
            rows=rows,
            db=self.db,
            field_mapping=field_mapping,
            created_by=created_by,
            mapper=self.parser.mapper,
            resolver=EntityResolver(self.db),
            debug=self.debug
        )

    def list_import_jobs(self, tenant_id: UUID) -> List[Dict[str, Any]]:
        """Most recent import jobs of the tenant."""
        return self.db.list_import_jobs(tenant_id=tenant_id, limit=IMPORT_JOB_LIST_LIMIT)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def change_asset_status(
        self,
        tenant_id: UUID,
        asset_id: UUID,
        new_status: str,
        reason: str,
        audit_note: str,
        actor_user_id: Optional[UUID] = None
    ) -> Dict[str, Any]:
        return change_asset_status(
            self.db,
            tenant_id=tenant_id,
            asset_id=asset_id,
            new_status=new_status,
            reason=reason,
            audit_note=audit_note,
            actor_user_id=actor_user_id,
            policy=self.policy
        )

    def assign_asset(
        self,
        tenant_id: UUID,
        asset_id: UUID,
        assignee_user_id: UUID,
        reason: Optional[str] = None,
        actor_user_id: Optional[UUID] = None
    ) -> Dict[str, Any]:
        return assign_asset(
            self.db,
            tenant_id=tenant_id,
            asset_id=asset_id,
            assignee_user_id=assignee_user_id,
            reason=reason,
            actor_user_id=actor_user_id,
            today=self.clock()
        )

    def unassign_asset(
        self,
        tenant_id: UUID,
        asset_id: UUID,
        reason: Optional[str] = None,
        actor_user_id: Optional[UUID] = None
    ) -> Dict[str, Any]:
        return unassign_asset(
            self.db,
            tenant_id=tenant_id,
            asset_id=asset_id,
            reason=reason,
            actor_user_id=actor_user_id,
            today=self.clock()
        )

    def list_lifecycle_policies(self, tenant_id: UUID) -> List[Dict[str, Any]]:
        return self.db.list_lifecycle_policies(tenant_id=tenant_id)

    def create_lifecycle_policy(
        self,
        tenant_id: UUID,
        name: str,
        description: Optional[str] = None,
        retirement_age_months: Optional[int] = None,
        warning_threshold_days: Optional[int] = None
    ) -> Dict[str, Any]:
        return create_lifecycle_policy(
            self.db,
            tenant_id=tenant_id,
            name=name,
            description=description,
            retirement_age_months=retirement_age_months,
            warning_threshold_days=warning_threshold_days
        )

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def list_assets(
        self,
        tenant_id: UUID,
        caller_role: str,
        caller_user_id: Optional[UUID] = None
    ) -> List[Dict[str, Any]]:
        """
        Newest assets of the tenant with reference names and warranty clock.

        Admins and agents see every asset; other roles only see the assets
        they own.

        Raises:
            ValidationError: If a non-privileged caller has no user id
        """
        owner = _visible_owner(caller_role, caller_user_id)
        assets = self.db.list_assets(tenant_id=tenant_id, limit=ASSET_LIST_LIMIT, owner_user_id=owner)
        today = self.clock()
        return [with_warranty(asset, today) for asset in assets]

    def list_models(self, tenant_id: UUID) -> List[Dict[str, Any]]:
        return self.db.list_reference_entities(tenant_id=tenant_id, kind="model")

    def list_vendors(self, tenant_id: UUID) -> List[Dict[str, Any]]:
        return self.db.list_reference_entities(tenant_id=tenant_id, kind="vendor")

    def list_locations(self, tenant_id: UUID) -> List[Dict[str, Any]]:
        return self.db.list_reference_entities(tenant_id=tenant_id, kind="location")

    def list_assignments(
        self,
        tenant_id: UUID,
        caller_role: str,
        caller_user_id: Optional[UUID] = None
    ) -> List[Dict[str, Any]]:
        """Newest assignments of the tenant; non-privileged callers only see their own."""
        assignee = _visible_owner(caller_role, caller_user_id)
        return self.db.list_tenant_assignments(
            tenant_id=tenant_id, limit=ASSIGNMENT_LIST_LIMIT, assignee_user_id=assignee
        )

    def get_asset(self, tenant_id: UUID, asset_id: UUID) -> Dict[str, Any]:
        """
        Get an asset with its warranty clock, recent events and assignments.

        Raises:
            NotFoundError: If the asset does not exist in the tenant
        """
        asset = self.db.get_asset(tenant_id=tenant_id, asset_id=asset_id)
        if asset is None:
            raise NotFoundError("Asset")

        result = with_warranty(asset, self.clock())
        result["events"] = self.db.list_asset_events(
            tenant_id=tenant_id, asset_id=asset_id, limit=ASSET_EVENT_LIST_LIMIT
        )
        result["assignments"] = self.db.list_assignments(tenant_id=tenant_id, asset_id=asset_id)
        return result

    def list_asset_events(self, tenant_id: UUID, asset_id: UUID) -> List[Dict[str, Any]]:
        """Most recent events of an asset, newest first."""
        if self.db.get_asset(tenant_id=tenant_id, asset_id=asset_id) is None:
            raise NotFoundError("Asset")
        return self.db.list_asset_events(
            tenant_id=tenant_id, asset_id=asset_id, limit=ASSET_EVENT_LIST_LIMIT
        )

    def get_warranty_expiring(
        self,
        tenant_id: UUID,
        within_days: int = DEFAULT_WARRANTY_WINDOW_DAYS
    ) -> List[Dict[str, Any]]:
        """
        Assets whose warranty ends between today and today + within_days.

        Each asset carries warranty_days_remaining. Sorted by ascending
        warranty_end.

        Raises:
            ValidationError: If within_days is not a non-negative integer
        """
        if isinstance(within_days, bool) or not isinstance(within_days, int) or within_days < 0:
            raise ValidationError("within_days must be a non-negative integer")

        today = self.clock()
        start, end = warranty_window(within_days, today)
        assets = self.db.list_warranty_expiring(tenant_id=tenant_id, start=start, end=end)
        logger.debug(f"Warranty window {start}..{end}: {len(assets)} assets for tenant {tenant_id}")
        return [with_warranty(asset, today) for asset in assets]

    def get_asset_stats(self, tenant_id: UUID) -> Dict[str, Any]:
        """Counts by status, stage and category, total value and upcoming warranty expiries."""
        by_status = self.db.count_assets_by_status(tenant_id=tenant_id)
        today = self.clock()

        by_stage = {stage: 0 for stage in LIFECYCLE_STAGES}
        for status, count in by_status.items():
            stage = lifecycle_stage(status)
            if stage is not None:
                by_stage[stage] += count

        stats: Dict[str, Any] = {
            "total": sum(by_status.values()),
            "by_status": by_status,
            "by_stage": by_stage,
            "by_category": self.db.count_assets_by_category(tenant_id=tenant_id),
            "total_value": self.db.total_asset_value(tenant_id=tenant_id),
        }
        for days in _STATS_WARRANTY_WINDOWS:
            start, end = warranty_window(days, today)
            stats[f"warranty_expiring_{days}"] = len(
                self.db.list_warranty_expiring(tenant_id=tenant_id, start=start, end=end)
            )
        return stats

    def get_model_stats(self, tenant_id: UUID, model_id: UUID) -> Dict[str, Any]:
        """Status counts and cost of the assets of one model (zeros when it has none)."""
        summary = self.db.summarize_assets(tenant_id=tenant_id, kind="model", entity_id=model_id)
        by_status = summary["by_status"]

        return {
            "total": sum(by_status.values()),
            "by_status": by_status,
            "in_use": by_status.get("in_use", 0),
            "in_stock": by_status.get("in_stock", 0),
            "in_repair": by_status.get("in_repair", 0),
            "total_value": summary["total_value"],
            "avg_cost": summary["avg_cost"],
        }

    def get_vendor_stats(self, tenant_id: UUID, vendor_id: UUID) -> Dict[str, Any]:
        """Status counts, cost and monthly purchase volume of one vendor's assets."""
        summary = self.db.summarize_assets(tenant_id=tenant_id, kind="vendor", entity_id=vendor_id)
        by_status = summary["by_status"]

        return {
            "total": sum(by_status.values()),
            "by_status": by_status,
            "total_value": summary["total_value"],
            "in_use": by_status.get("in_use", 0),
            "in_stock": by_status.get("in_stock", 0),
            "purchase_volume": self.db.vendor_purchase_volume(
                tenant_id=tenant_id, vendor_id=vendor_id, months=PURCHASE_VOLUME_MONTHS
            ),
        }


def _visible_owner(caller_role: str, caller_user_id: Optional[UUID]) -> Optional[UUID]:
    """User id that scopes a listing, or None when the caller sees the whole tenant."""
    if caller_role in PRIVILEGED_ROLES:
        return None
    if caller_user_id is None:
        raise ValidationError(f"caller_user_id is required for role '{caller_role}'")
    return caller_user_id


def _default_parser() -> ImportParser:
    parser = ImportParser()
    parser.register_adapter(CsvAdapter())
    parser.register_adapter(ExcelAdapter())
    return parser
