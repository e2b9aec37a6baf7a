from typing import List, Dict, Any, Optional
from .schema import CANONICAL_FIELDS, FIELD_SUGGESTIONS


def is_provided(value: Any) -> bool:
    """Return True if a source value counts as supplied.

    Missing values, None and empty (or whitespace-only) strings are treated as
    "not provided" rather than as explicit nulls.
    """
    if value is None:
        return False
    if isinstance(value, str):
        return value.strip() != ""
    return True


class FieldMapper:
    """Suggests and applies mappings from source columns to canonical asset fields.

    Suggestions are advisory: the caller may override any or all of them
    before committing an import batch.
    """

    def __init__(self):
        """Initialize the mapper with the synonym table."""
        # Ordered (canonical field, synonyms) pairs; first match wins
        self._suggestions = [
            (canonical, [s.lower() for s in synonyms])
            for canonical, synonyms in FIELD_SUGGESTIONS.items()
        ]

    def get_canonical_fields(self) -> List[str]:
        """Get the canonical asset fields a column can be mapped onto.

        Returns:
            List of canonical field names in table order
        """
        return CANONICAL_FIELDS.copy()

    def suggest_field(self, header: str) -> Optional[str]:
        """Suggest the canonical field for a single source header.

        A field matches when one of its synonyms contains the header, or the
        header contains the synonym. The first field in table order wins.

        Args:
            header: Source column header

        Returns:
            Canonical field name, or None if nothing matches
        """
        # An empty header is a substring of every synonym; leave it unmapped
        if not header:
            return None

        normalized = str(header).strip().lower()
        if not normalized:
            return None

        for canonical, synonyms in self._suggestions:
            if any(s in normalized or normalized in s for s in synonyms):
                return canonical

        return None

    def suggest(self, headers: List[str]) -> Dict[str, str]:
        """Propose a mapping from source headers to canonical fields.

        Args:
            headers: Source column headers

        Returns:
            Dictionary of header -> canonical field. Unrecognized headers are
            omitted, never reported as errors.
        """
        mapping = {}
        for header in headers:
            canonical = self.suggest_field(header)
            if canonical:
                mapping[header] = canonical
        return mapping

    def apply(
        self,
        row: Dict[str, Any],
        mapping: Optional[Dict[str, str]] = None
    ) -> Dict[str, Any]:
        """Project a raw row onto canonical fields.

        Args:
            row: Raw source row
            mapping: Source column -> canonical field. When omitted, the row's
                     keys are taken to already be canonical field names.

        Returns:
            Dictionary holding only the provided values, keyed by canonical field
        """
        if mapping is None:
            return {
                key: value for key, value in row.items()
                if key is not None and is_provided(value)
            }

        projected = {}
        for source_field, canonical in mapping.items():
            if not canonical:
                continue
            value = row.get(source_field)
            if is_provided(value):
                projected[canonical] = value
        return projected

    def get_mapping_report(self, headers: List[str]) -> Dict[str, Any]:
        """Generate a report of suggested column mappings.

        Args:
            headers: Source column headers

        Returns:
            Dictionary with mapped fields, unmapped headers and canonical fields
        """
        mapped = {}
        unmapped = []

        for header in headers:
            canonical = self.suggest_field(header)
            if canonical:
                mapped.setdefault(canonical, []).append(header)
            else:
                unmapped.append(header)

        return {
            "mapped": mapped,
            "unmapped": unmapped,
            "canonical_fields": self.get_canonical_fields()
        }
