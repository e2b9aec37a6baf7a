"""
Asset lifecycle state machine, event trail and warranty clock.

Statuses move through a fixed ten-state set:

    requested -> ordered -> received -> in_stock -> assigned -> in_use
              -> in_repair -> lost -> retired -> disposed

Two transition policies are available:
- PERMISSIVE (default): any status in the set may follow any other, including
  itself. Only set membership is checked.
- STRICT: only the edges listed in ALLOWED_TRANSITIONS are accepted.
  'disposed' is terminal.

Every status change appends exactly one immutable 'status_changed' event with
the previous and new status.

Named lifecycle policies (retirement age, warning threshold) are stored per
tenant for reporting.
"""

import logging
from datetime import date, datetime, timedelta, timezone
from enum import Enum
from typing import Any, Dict, Optional, Union
from uuid import UUID

from .errors import (
    InvalidStatusError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from .schema import (
    ASSET_STATUSES,
    EVENT_ASSIGNED,
    EVENT_STATUS_CHANGED,
    EVENT_UNASSIGNED,
    LIFECYCLE_STAGES,
)

logger = logging.getLogger(__name__)

WARRANTY_EXPIRED = -1


class TransitionPolicy(Enum):
    """How status changes are checked beyond set membership."""
    PERMISSIVE = "permissive"
    STRICT = "strict"


ALLOWED_TRANSITIONS: Dict[str, frozenset] = {
    "requested": frozenset({"ordered", "received", "in_stock"}),
    "ordered": frozenset({"received", "lost"}),
    "received": frozenset({"in_stock", "in_repair"}),
    "in_stock": frozenset({"assigned", "in_use", "in_repair", "lost", "retired"}),
    "assigned": frozenset({"in_use", "in_stock", "in_repair", "lost", "retired"}),
    "in_use": frozenset({"assigned", "in_stock", "in_repair", "lost", "retired"}),
    "in_repair": frozenset({"in_stock", "assigned", "in_use", "retired", "disposed"}),
    "lost": frozenset({"in_stock", "retired", "disposed"}),
    "retired": frozenset({"in_stock", "disposed"}),
    "disposed": frozenset(),
}

def validate_status(status: Any) -> str:
    """
    Check that a status is one of the ten lifecycle states.

    Returns:
        The status string

    Raises:
        InvalidStatusError: If status is not a member of the set
    """
    if not isinstance(status, str) or status not in ASSET_STATUSES:
        raise InvalidStatusError(status)
    return status


def check_transition(
    from_status: Optional[str],
    to_status: str,
    policy: TransitionPolicy = TransitionPolicy.PERMISSIVE
) -> None:
    """
    Validate a status transition under the given policy.

    Raises:
        InvalidStatusError: If to_status is not a lifecycle state
        InvalidTransitionError: Under STRICT, if the edge is not allowed
    """
    validate_status(to_status)

    if policy is TransitionPolicy.PERMISSIVE or from_status is None:
        return

    if to_status not in ALLOWED_TRANSITIONS.get(from_status, frozenset()):
        raise InvalidTransitionError(from_status, to_status)


def lifecycle_stage(status: str) -> Optional[str]:
    """Map a status to its coarse lifecycle stage."""
    for stage, statuses in LIFECYCLE_STAGES.items():
        if status in statuses:
            return stage
    return None


def _coerce_date(value: Union[date, datetime, str]) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        return date.fromisoformat(value.strip()[:10])
    raise ValueError(f"Cannot interpret {value!r} as a date")


def utc_today() -> date:
    return datetime.now(timezone.utc).date()


def warranty_days_remaining(
    warranty_end: Optional[Union[date, datetime, str]],
    today: Optional[date] = None
) -> Optional[int]:
    """
    Days left on a warranty, measured midnight to midnight.

    Returns:
        None when there is no warranty_end, WARRANTY_EXPIRED (-1) when
        warranty_end is before today (a sentinel, not a day count), otherwise
        the whole number of days from today to warranty_end (0 on the last day)
    """
    if warranty_end is None:
        return None

    end = _coerce_date(warranty_end)
    today = today or utc_today()

    if end < today:
        return WARRANTY_EXPIRED

    return (end - today).days


def warranty_window(within_days: int, today: Optional[date] = None):
    """Inclusive (start, end) date window for warranty expiry queries."""
    today = today or utc_today()
    return today, today + timedelta(days=within_days)


def with_warranty(asset: Dict[str, Any], today: Optional[date] = None) -> Dict[str, Any]:
    """Return a copy of an asset dict with warranty_days_remaining filled in."""
    result = dict(asset)
    result["warranty_days_remaining"] = warranty_days_remaining(asset.get("warranty_end"), today)
    return result


def _require_text(value: Any, name: str) -> str:
    if value is None or not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{name} is required")
    return value.strip()


def change_asset_status(
    db,
    tenant_id: UUID,
    asset_id: UUID,
    new_status: str,
    reason: str,
    audit_note: str,
    actor_user_id: Optional[UUID] = None,
    policy: TransitionPolicy = TransitionPolicy.PERMISSIVE
) -> Dict[str, Any]:
    """
    Change an asset's lifecycle status and record the event.

    Runs in one transaction: lock the asset, validate, persist the status,
    append a 'status_changed' event carrying reason and audit_note.

    Returns:
        The updated asset dictionary

    Raises:
        ValidationError: If new_status, reason or audit_note is missing
        NotFoundError: If the asset does not exist in the tenant
        InvalidStatusError: If new_status is not a lifecycle state
        InvalidTransitionError: Under STRICT, if the edge is not allowed
    """
    if not new_status or not reason or not audit_note:
        raise ValidationError("Status, reason, and audit_note are required")
    reason = _require_text(reason, "reason")
    audit_note = _require_text(audit_note, "audit_note")

    db.begin_transaction()
    try:
        current = db.get_asset(tenant_id=tenant_id, asset_id=asset_id, for_update=True)
        if current is None:
            raise NotFoundError("Asset")

        old_status = current.get("status")
        check_transition(old_status, new_status, policy)

        updated = db.set_asset_status(tenant_id=tenant_id, asset_id=asset_id, status=new_status)
        db.insert_asset_event(
            tenant_id=tenant_id,
            asset_id=asset_id,
            event_type=EVENT_STATUS_CHANGED,
            from_status=old_status,
            to_status=new_status,
            actor_user_id=actor_user_id,
            payload={"reason": reason, "audit_note": audit_note}
        )
        db.commit_transaction()
    except Exception:
        db.rollback_transaction()
        raise

    logger.info(f"Asset {asset_id} status {old_status} -> {new_status}")
    return updated


def assign_asset(
    db,
    tenant_id: UUID,
    asset_id: UUID,
    assignee_user_id: UUID,
    reason: Optional[str] = None,
    actor_user_id: Optional[UUID] = None,
    today: Optional[date] = None
) -> Dict[str, Any]:
    """
    Assign an asset to a user.

    Closes any open assignment, opens a new one starting today, sets the asset
    owner and appends an 'assigned' event. The asset status is left unchanged.

    Returns:
        The new assignment dictionary

    Raises:
        ValidationError: If assignee_user_id is missing
        NotFoundError: If the asset does not exist in the tenant
    """
    if not assignee_user_id:
        raise ValidationError("assignee_user_id is required")
    today = today or utc_today()

    db.begin_transaction()
    try:
        current = db.get_asset(tenant_id=tenant_id, asset_id=asset_id, for_update=True)
        if current is None:
            raise NotFoundError("Asset")

        closed = db.close_open_assignments(tenant_id=tenant_id, asset_id=asset_id, end_date=today)
        assignment = db.create_assignment(
            tenant_id=tenant_id,
            asset_id=asset_id,
            assignee_user_id=assignee_user_id,
            start_date=today,
            reason=reason
        )
        db.set_asset_owner(tenant_id=tenant_id, asset_id=asset_id, owner_user_id=assignee_user_id)
        db.insert_asset_event(
            tenant_id=tenant_id,
            asset_id=asset_id,
            event_type=EVENT_ASSIGNED,
            from_status=None,
            to_status=None,
            actor_user_id=actor_user_id,
            payload={
                "assignee_user_id": str(assignee_user_id),
                "assignment_id": str(assignment["id"]),
                "reason": reason,
                "previous_owner_user_id": (
                    str(current["owner_user_id"]) if current.get("owner_user_id") else None
                ),
                "closed_assignments": closed,
            }
        )
        db.commit_transaction()
    except Exception:
        db.rollback_transaction()
        raise

    return assignment


def unassign_asset(
    db,
    tenant_id: UUID,
    asset_id: UUID,
    reason: Optional[str] = None,
    actor_user_id: Optional[UUID] = None,
    today: Optional[date] = None
) -> Dict[str, Any]:
    """
    Close the open assignment of an asset and clear its owner.

    Returns:
        The updated asset dictionary

    Raises:
        NotFoundError: If the asset does not exist in the tenant
        ValidationError: If the asset has no open assignment
    """
    today = today or utc_today()

    db.begin_transaction()
    try:
        current = db.get_asset(tenant_id=tenant_id, asset_id=asset_id, for_update=True)
        if current is None:
            raise NotFoundError("Asset")

        closed = db.close_open_assignments(tenant_id=tenant_id, asset_id=asset_id, end_date=today)
        if closed == 0:
            raise ValidationError("Asset has no open assignment")

        updated = db.set_asset_owner(tenant_id=tenant_id, asset_id=asset_id, owner_user_id=None)
        db.insert_asset_event(
            tenant_id=tenant_id,
            asset_id=asset_id,
            event_type=EVENT_UNASSIGNED,
            from_status=None,
            to_status=None,
            actor_user_id=actor_user_id,
            payload={
                "reason": reason,
                "previous_owner_user_id": (
                    str(current["owner_user_id"]) if current.get("owner_user_id") else None
                ),
            }
        )
        db.commit_transaction()
    except Exception:
        db.rollback_transaction()
        raise

    return updated


def _optional_count(value: Any, name: str) -> Optional[int]:
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ValidationError(f"{name} must be a non-negative integer")
    return value


def create_lifecycle_policy(
    db,
    tenant_id: UUID,
    name: str,
    description: Optional[str] = None,
    retirement_age_months: Optional[int] = None,
    warning_threshold_days: Optional[int] = None
) -> Dict[str, Any]:
    """
    Create a named lifecycle policy for the tenant.

    Returns:
        The stored policy dictionary

    Raises:
        ValidationError: If name is blank or a month/day count is not a
                         non-negative integer
    """
    if name is None or not isinstance(name, str) or not name.strip():
        raise ValidationError("Policy name is required")

    values = {
        "name": name.strip(),
        "description": description.strip() if isinstance(description, str) and description.strip() else None,
        "retirement_age_months": _optional_count(retirement_age_months, "retirement_age_months"),
        "warning_threshold_days": _optional_count(warning_threshold_days, "warning_threshold_days"),
    }

    db.begin_transaction()
    try:
        policy = db.create_lifecycle_policy(tenant_id=tenant_id, values=values)
        db.commit_transaction()
    except Exception:
        db.rollback_transaction()
        raise

    logger.info(f"Lifecycle policy '{values['name']}' created for tenant {tenant_id}")
    return policy
