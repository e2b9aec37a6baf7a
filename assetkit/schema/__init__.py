"""Asset schema definitions: canonical import fields, synonyms, statuses and limits."""

from typing import Dict, List

# Canonical asset fields a source column can be mapped onto, in table order
CANONICAL_FIELDS = [
    "tag",
    "serial",
    "model",
    "status",
    "cost",
    "purchase_date",
    "warranty_end",
    "vendor",
    "location",
    "owner",
    "notes",
    "po_number",
]

# Fields that can be supplied directly as ids instead of resolvable names
REFERENCE_ID_FIELDS = [
    "model_id",
    "vendor_id",
    "location_id",
    "owner_user_id",
]

# Every field the reconciler understands after mapping
ASSET_INPUT_FIELDS = CANONICAL_FIELDS + REFERENCE_ID_FIELDS

# Soft identity: used for matching, never overwritten on update
IDENTITY_FIELDS = ("tag", "serial")

# Name -> id resolution kinds and the id field each one fills
REFERENCE_KINDS = {
    "model": "model_id",
    "vendor": "vendor_id",
    "location": "location_id",
}

# Kinds counted when a supplied name is not turned into an id. Owner names
# are never resolved (users live outside the asset register).
UNRESOLVED_KINDS = tuple(REFERENCE_KINDS) + ("owner",)

# Mapping of canonical fields to the header synonyms that suggest them.
# Declaration order matters: the first field with a matching synonym wins.
FIELD_SUGGESTIONS: Dict[str, List[str]] = {
    "tag": ["tag", "asset tag", "asset_tag", "id", "asset id"],
    "serial": ["serial", "serial number", "serial_number", "sn"],
    "model": ["model", "model name", "model_name", "device model"],
    "status": ["status", "state", "asset status"],
    "cost": ["cost", "price", "purchase price", "purchase_price"],
    "purchase_date": ["purchase date", "purchase_date", "date purchased", "purchased"],
    "warranty_end": ["warranty end", "warranty_end", "warranty expires", "warranty expiration"],
    "vendor": ["vendor", "supplier", "manufacturer"],
    "location": ["location", "site", "office"],
    "owner": ["owner", "user", "assigned to", "assigned_to"],
    "notes": ["notes", "note", "description", "comments"],
    "po_number": ["po number", "po_number", "purchase order"],
}

# Lifecycle states in procurement-to-disposal order
ASSET_STATUSES = [
    "requested",
    "ordered",
    "received",
    "in_stock",
    "assigned",
    "in_use",
    "in_repair",
    "lost",
    "retired",
    "disposed",
]

DEFAULT_IMPORT_STATUS = "in_stock"

IMPORT_SOURCES = [
    "csv",
    "workday",
    "intune",
    "jamf",
    "kandji",
    "sentinelone",
    "manageengine",
]

# Asset event types written to the append-only event trail
EVENT_IMPORTED = "imported"
EVENT_STATUS_CHANGED = "status_changed"
EVENT_ASSIGNED = "assigned"
EVENT_UNASSIGNED = "unassigned"

PREVIEW_ROW_LIMIT = 10
IMPORT_ERROR_LIMIT = 10
IMPORT_JOB_LIST_LIMIT = 50
ASSET_EVENT_LIST_LIMIT = 50
DEFAULT_WARRANTY_WINDOW_DAYS = 30

ASSET_LIST_LIMIT = 100
ASSIGNMENT_LIST_LIMIT = 100
PURCHASE_VOLUME_MONTHS = 12

# Roles that see every asset and assignment of the tenant; other roles only
# see what they own or are assigned
PRIVILEGED_ROLES = ("admin", "agent")

# Coarse stages used for lifecycle ribbons and stats
LIFECYCLE_STAGES = {
    "procured": ("requested", "ordered", "received", "in_stock"),
    "in_service": ("assigned", "in_use"),
    "attention": ("in_repair", "lost"),
    "retired": ("retired", "disposed"),
}
