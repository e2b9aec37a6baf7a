from .parser import ImportParser, ImportPreview
from .mapper import FieldMapper
from .lifecycle import TransitionPolicy, warranty_days_remaining
from .service import AssetService
from .schema import CANONICAL_FIELDS, FIELD_SUGGESTIONS, ASSET_STATUSES

__all__ = [
    "ImportParser",
    "ImportPreview",
    "FieldMapper",
    "TransitionPolicy",
    "warranty_days_remaining",
    "AssetService",
    "CANONICAL_FIELDS",
    "FIELD_SUGGESTIONS",
    "ASSET_STATUSES",
]
