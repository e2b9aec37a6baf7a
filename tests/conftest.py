"""
Shared fixtures: an in-memory DatabaseClient and a fixed-clock AssetService.

InMemoryClient implements the full storage contract with transaction
snapshot/rollback semantics and tenant scoping, so reconciliation and
lifecycle behaviour can be tested without a PostgreSQL server.
"""

import copy
from datetime import date, datetime, timezone
from uuid import uuid4

import pytest

from assetkit.ingest.asset_ingest import DatabaseClient, MERGE_FIELDS
from assetkit.lifecycle import _coerce_date
from assetkit.schema import REFERENCE_KINDS
from assetkit.service import AssetService

FIXED_TODAY = date(2025, 6, 15)

_REFERENCE_KINDS = tuple(REFERENCE_KINDS)

# Attributes each reference kind exposes when listed
_REFERENCE_ATTRS = {
    "model": ("category", "manufacturer"),
    "vendor": ("external_id",),
    "location": ("code",),
}


class InMemoryClient(DatabaseClient):
    """Dictionary-backed DatabaseClient for tests."""

    def __init__(self):
        self.state = {
            "assets": {},
            "references": [],
            "events": [],
            "assignments": [],
            "jobs": [],
            "policies": [],
        }
        self._snapshot = None
        self.locks = []
        self.reference_lookups = 0
        self.fail_create_for_tags = set()
        self.fail_complete_job = False

    # -- transactions ------------------------------------------------------

    @property
    def in_transaction(self) -> bool:
        return self._snapshot is not None

    def begin_transaction(self):
        if self._snapshot is not None:
            raise RuntimeError("Transaction already in progress")
        self._snapshot = copy.deepcopy(self.state)

    def commit_transaction(self):
        if self._snapshot is None:
            raise RuntimeError("No transaction in progress")
        self._snapshot = None

    def rollback_transaction(self):
        if self._snapshot is None:
            raise RuntimeError("No transaction in progress")
        self.state = self._snapshot
        self._snapshot = None

    def _require_transaction(self):
        if self._snapshot is None:
            raise RuntimeError("No transaction in progress. Call begin_transaction() first.")

    def acquire_identity_lock(self, tenant_id, tag, serial):
        self._require_transaction()
        self.locks.append((tenant_id, tag, serial))

    # -- test helpers ------------------------------------------------------

    def add_reference(self, tenant_id, kind, name, **attrs):
        """Seed a model, vendor or location and return its id.

        Extra attributes (category, manufacturer, external_id, code) are
        stored alongside the name.
        """
        entity_id = uuid4()
        self.state["references"].append(
            dict(attrs, id=entity_id, tenant_id=tenant_id, kind=kind, name=name)
        )
        return entity_id

    def insert_asset(self, tenant_id, **values):
        """Seed an asset outside the import path and return it."""
        values.setdefault("status", "in_stock")
        self.begin_transaction()
        asset = self.create_asset(tenant_id, values)
        self.commit_transaction()
        return asset

    def assets_for(self, tenant_id):
        return [
            copy.deepcopy(a) for a in self.state["assets"].values()
            if a["tenant_id"] == tenant_id
        ]

    def events_for(self, tenant_id, asset_id):
        return [
            copy.deepcopy(e) for e in self.state["events"]
            if e["tenant_id"] == tenant_id and e["asset_id"] == asset_id
        ]

    # -- reference entities ------------------------------------------------

    def find_reference_id(self, tenant_id, kind, name):
        if kind not in _REFERENCE_KINDS:
            raise ValueError(f"Unknown reference kind: {kind}")
        self.reference_lookups += 1
        for ref in self.state["references"]:
            if (
                ref["tenant_id"] == tenant_id
                and ref["kind"] == kind
                and ref["name"].lower() == name.lower()
            ):
                return ref["id"]
        return None

    def list_reference_entities(self, tenant_id, kind):
        if kind not in _REFERENCE_KINDS:
            raise ValueError(f"Unknown reference kind: {kind}")
        entities = [
            dict({attr: ref.get(attr) for attr in _REFERENCE_ATTRS[kind]},
                 id=ref["id"], tenant_id=ref["tenant_id"], name=ref["name"])
            for ref in self.state["references"]
            if ref["tenant_id"] == tenant_id and ref["kind"] == kind
        ]
        return sorted(entities, key=lambda e: e["name"])

    def _reference(self, entity_id):
        for ref in self.state["references"]:
            if ref["id"] == entity_id:
                return ref
        return {}

    # -- assets ------------------------------------------------------------

    def find_asset_by_identity(self, tenant_id, tag, serial):
        if tag is None and serial is None:
            return None
        for asset in self.state["assets"].values():
            if asset["tenant_id"] != tenant_id:
                continue
            if (tag is not None and asset["tag"] == tag) or (
                serial is not None and asset["serial"] == serial
            ):
                return copy.deepcopy(asset)
        return None

    def create_asset(self, tenant_id, values):
        self._require_transaction()
        if values.get("tag") in self.fail_create_for_tags:
            raise RuntimeError("simulated storage failure")

        now = datetime.now(timezone.utc)
        asset = {
            "id": uuid4(),
            "tenant_id": tenant_id,
            "tag": values.get("tag"),
            "serial": values.get("serial"),
            "created_at": now,
            "updated_at": now,
        }
        for name in MERGE_FIELDS:
            asset[name] = values.get(name)
        self.state["assets"][asset["id"]] = asset
        return copy.deepcopy(asset)

    def _stored_asset(self, tenant_id, asset_id):
        asset = self.state["assets"].get(asset_id)
        if asset is None or asset["tenant_id"] != tenant_id:
            return None
        return asset

    def update_asset(self, tenant_id, asset_id, values):
        self._require_transaction()
        asset = self._stored_asset(tenant_id, asset_id)
        if asset is None:
            raise ValueError(f"Asset {asset_id} not found for tenant {tenant_id}")
        for name in MERGE_FIELDS:
            if values.get(name) is not None:
                asset[name] = values[name]
        asset["updated_at"] = datetime.now(timezone.utc)
        return copy.deepcopy(asset)

    def get_asset(self, tenant_id, asset_id, for_update=False):
        asset = self._stored_asset(tenant_id, asset_id)
        return copy.deepcopy(asset) if asset else None

    def set_asset_status(self, tenant_id, asset_id, status):
        self._require_transaction()
        asset = self._stored_asset(tenant_id, asset_id)
        asset["status"] = status
        asset["updated_at"] = datetime.now(timezone.utc)
        return copy.deepcopy(asset)

    def set_asset_owner(self, tenant_id, asset_id, owner_user_id):
        self._require_transaction()
        asset = self._stored_asset(tenant_id, asset_id)
        asset["owner_user_id"] = owner_user_id
        asset["updated_at"] = datetime.now(timezone.utc)
        return copy.deepcopy(asset)

    def count_assets_by_status(self, tenant_id):
        counts = {}
        for asset in self.assets_for(tenant_id):
            counts[asset["status"]] = counts.get(asset["status"], 0) + 1
        return counts

    def total_asset_value(self, tenant_id):
        return float(sum(a["cost"] or 0 for a in self.assets_for(tenant_id)))

    def list_warranty_expiring(self, tenant_id, start, end):
        matches = [
            a for a in self.assets_for(tenant_id)
            if a["warranty_end"] is not None
            and start <= _coerce_date(a["warranty_end"]) <= end
        ]
        return sorted(matches, key=lambda a: _coerce_date(a["warranty_end"]))

    def list_assets(self, tenant_id, limit, owner_user_id=None):
        assets = []
        for asset in reversed(self.assets_for(tenant_id)):
            if owner_user_id is not None and asset["owner_user_id"] != owner_user_id:
                continue
            model = self._reference(asset["model_id"])
            location = self._reference(asset["location_id"])
            asset.update(
                model_name=model.get("name"),
                model_category=model.get("category"),
                manufacturer=model.get("manufacturer"),
                vendor_name=self._reference(asset["vendor_id"]).get("name"),
                location_name=location.get("name"),
                location_code=location.get("code"),
            )
            assets.append(asset)
        return assets[:limit]

    def count_assets_by_category(self, tenant_id):
        counts = {}
        for asset in self.assets_for(tenant_id):
            category = self._reference(asset["model_id"]).get("category")
            if category is not None:
                counts[category] = counts.get(category, 0) + 1
        return counts

    def summarize_assets(self, tenant_id, kind, entity_id):
        id_field = REFERENCE_KINDS[kind]
        assets = [a for a in self.assets_for(tenant_id) if a[id_field] == entity_id]
        by_status = {}
        for asset in assets:
            by_status[asset["status"]] = by_status.get(asset["status"], 0) + 1
        total = float(sum(a["cost"] or 0 for a in assets))
        return {
            "by_status": by_status,
            "total_value": total,
            "avg_cost": total / len(assets) if assets else 0.0,
        }

    def vendor_purchase_volume(self, tenant_id, vendor_id, months):
        volume = {}
        for asset in self.assets_for(tenant_id):
            if asset["vendor_id"] != vendor_id or asset["purchase_date"] is None:
                continue
            month = _coerce_date(asset["purchase_date"]).replace(day=1)
            entry = volume.setdefault(month, {"month": month, "count": 0, "value": 0.0})
            entry["count"] += 1
            entry["value"] += float(asset["cost"] or 0)
        return [volume[m] for m in sorted(volume, reverse=True)][:months]

    # -- events and assignments --------------------------------------------

    def insert_asset_event(
        self, tenant_id, asset_id, event_type, from_status, to_status, actor_user_id, payload
    ):
        self._require_transaction()
        event_id = uuid4()
        self.state["events"].append({
            "id": event_id,
            "asset_id": asset_id,
            "tenant_id": tenant_id,
            "type": event_type,
            "from_status": from_status,
            "to_status": to_status,
            "actor_user_id": actor_user_id,
            "payload": dict(payload or {}),
            "created_at": datetime.now(timezone.utc),
        })
        return event_id

    def list_asset_events(self, tenant_id, asset_id, limit):
        return list(reversed(self.events_for(tenant_id, asset_id)))[:limit]

    def create_assignment(self, tenant_id, asset_id, assignee_user_id, start_date, reason):
        self._require_transaction()
        assignment = {
            "id": uuid4(),
            "asset_id": asset_id,
            "tenant_id": tenant_id,
            "assignee_user_id": assignee_user_id,
            "start_date": start_date,
            "end_date": None,
            "reason": reason,
        }
        self.state["assignments"].append(assignment)
        return copy.deepcopy(assignment)

    def close_open_assignments(self, tenant_id, asset_id, end_date):
        self._require_transaction()
        closed = 0
        for assignment in self.state["assignments"]:
            if (
                assignment["tenant_id"] == tenant_id
                and assignment["asset_id"] == asset_id
                and assignment["end_date"] is None
            ):
                assignment["end_date"] = end_date
                closed += 1
        return closed

    def list_assignments(self, tenant_id, asset_id):
        return [
            copy.deepcopy(a) for a in reversed(self.state["assignments"])
            if a["tenant_id"] == tenant_id and a["asset_id"] == asset_id
        ]

    def list_tenant_assignments(self, tenant_id, limit, assignee_user_id=None):
        assignments = [
            copy.deepcopy(a) for a in reversed(self.state["assignments"])
            if a["tenant_id"] == tenant_id
            and (assignee_user_id is None or a["assignee_user_id"] == assignee_user_id)
        ]
        return assignments[:limit]

    # -- lifecycle policies ------------------------------------------------

    def list_lifecycle_policies(self, tenant_id):
        policies = [copy.deepcopy(p) for p in self.state["policies"] if p["tenant_id"] == tenant_id]
        return sorted(policies, key=lambda p: p["name"])

    def create_lifecycle_policy(self, tenant_id, values):
        self._require_transaction()
        policy = dict(values, id=uuid4(), tenant_id=tenant_id, created_at=datetime.now(timezone.utc))
        self.state["policies"].append(policy)
        return copy.deepcopy(policy)

    # -- import jobs -------------------------------------------------------

    def create_import_job(self, tenant_id, source, created_by):
        self._require_transaction()
        job_id = uuid4()
        self.state["jobs"].append({
            "id": job_id,
            "tenant_id": tenant_id,
            "source": source,
            "status": "processing",
            "stats": {},
            "error_text": None,
            "created_by": created_by,
            "created_at": datetime.now(timezone.utc),
            "completed_at": None,
        })
        return job_id

    def complete_import_job(self, tenant_id, job_id, status, stats, error_text):
        self._require_transaction()
        if self.fail_complete_job:
            raise RuntimeError("simulated storage failure")
        for job in self.state["jobs"]:
            if job["id"] == job_id and job["tenant_id"] == tenant_id:
                if job["status"] != "processing":
                    raise ValueError(f"Import job {job_id} is not processing")
                job.update(
                    status=status,
                    stats=copy.deepcopy(stats),
                    error_text=error_text,
                    completed_at=datetime.now(timezone.utc),
                )
                return
        raise ValueError(f"Import job {job_id} not found")

    def list_import_jobs(self, tenant_id, limit):
        jobs = [
            copy.deepcopy(j) for j in reversed(self.state["jobs"])
            if j["tenant_id"] == tenant_id
        ]
        return jobs[:limit]


# =============================================================================
# FIXTURES
# =============================================================================

@pytest.fixture
def tenant_id():
    return uuid4()


@pytest.fixture
def other_tenant_id():
    return uuid4()


@pytest.fixture
def user_id():
    return uuid4()


@pytest.fixture
def db():
    return InMemoryClient()


@pytest.fixture
def today():
    return FIXED_TODAY


@pytest.fixture
def service(db):
    return AssetService(db, clock=lambda: FIXED_TODAY)
