from dataclasses import dataclass, field
from typing import List, Dict, Any, Optional

from .adapters.csv_adapter import CsvAdapter, TabularData
from .mapper import FieldMapper
from .schema import PREVIEW_ROW_LIMIT


@dataclass
class ImportPreview:
    """What a caller sees before committing an import batch."""
    headers: List[str]
    preview_rows: List[Dict[str, str]]
    total_rows: int
    suggested_mapping: Dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to dictionary for JSON output."""
        return {
            "headers": list(self.headers),
            "preview_rows": [dict(row) for row in self.preview_rows],
            "total_rows": self.total_rows,
            "suggested_mapping": dict(self.suggested_mapping),
        }


class ImportParser:
    """Parser for asset import feeds with mapping suggestions."""

    def __init__(self, mapper: Optional[FieldMapper] = None):
        """Initialize the import parser.

        Args:
            mapper: Field mapper used for suggestions (default: a new FieldMapper)
        """
        self.adapters = []
        self.text_adapter = CsvAdapter()
        self.mapper = mapper or FieldMapper()

    def register_adapter(self, adapter):
        """Register a file adapter for parsing.

        Args:
            adapter: Adapter instance with can_handle() and read() methods
        """
        self.adapters.append(adapter)

    def _find_adapter(self, file_path: str):
        for adapter in self.adapters:
            if adapter.can_handle(file_path):
                return adapter
        raise ValueError(f"No adapter found for {file_path}")

    def parse_text(self, raw: str) -> TabularData:
        """Parse pasted CSV text.

        Raises:
            MalformedInputError: If fewer than 2 non-blank lines are present
        """
        return self.text_adapter.parse_text(raw)

    def parse_file(self, file_path: str) -> TabularData:
        """Parse an import file with the first adapter that handles it.

        Raises:
            ValueError: If no adapter is registered for the file type
        """
        adapter = self._find_adapter(file_path)
        return adapter.read(file_path)

    def build_preview(self, data: TabularData, limit: int = PREVIEW_ROW_LIMIT) -> ImportPreview:
        """Build a preview (first rows plus suggested mapping) from parsed data."""
        return ImportPreview(
            headers=data.headers,
            preview_rows=data.rows[:limit],
            total_rows=data.total_rows,
            suggested_mapping=self.mapper.suggest(data.headers),
        )

    def preview_text(self, raw: str) -> ImportPreview:
        """Parse pasted CSV text and build its preview."""
        return self.build_preview(self.parse_text(raw))

    def preview_file(self, file_path: str) -> ImportPreview:
        """Parse an import file and build its preview."""
        return self.build_preview(self.parse_file(file_path))

    def get_mapping_report(self, file_path: str) -> Dict[str, Any]:
        """Get a report of how columns from a file map to canonical fields.

        Args:
            file_path: Path to the import file

        Returns:
            Dictionary with mapped and unmapped columns
        """
        data = self.parse_file(file_path)
        return self.mapper.get_mapping_report(data.headers)
