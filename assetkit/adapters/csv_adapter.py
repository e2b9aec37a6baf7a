import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Union

import chardet

from ..errors import MalformedInputError

logger = logging.getLogger(__name__)


@dataclass
class TabularData:
    """Headers plus positional row records produced by an adapter.

    Headers are lower-cased and trimmed; every row carries a value (possibly
    the empty string) for every header.
    """
    headers: List[str]
    rows: List[Dict[str, str]] = field(default_factory=list)

    @property
    def total_rows(self) -> int:
        return len(self.rows)


class CsvAdapter:
    """CSV adapter for asset import feeds.

    Handles:
    - Raw pasted text (the preview path) and uploaded files
    - Multiple file encodings (UTF-8, UTF-8-BOM, Windows-1252, ISO-8859-1, etc.)
    - Blank lines anywhere in the input
    - Short rows (missing trailing values become empty strings)

    Values are split on plain commas. Quoting and escaping are not supported,
    so a delimiter inside a value shifts the remaining columns.
    """

    delimiter = ","

    def can_handle(self, file_path: str) -> bool:
        """Check if this adapter can handle the given file."""
        return Path(file_path).suffix.lower() == ".csv"

    def parse_text(self, raw: str) -> TabularData:
        """Parse delimited text into headers and row records.

        Args:
            raw: Full text of the CSV, header line first

        Returns:
            TabularData with lower-cased headers and one dict per data line

        Raises:
            MalformedInputError: If fewer than 2 non-blank lines remain
        """
        if not isinstance(raw, str):
            raise MalformedInputError("CSV data must be text")

        lines = [line for line in raw.split("\n") if line.strip()]
        if len(lines) < 2:
            raise MalformedInputError(
                "CSV must contain headers and at least one data row"
            )

        headers = [h.strip().lower() for h in lines[0].split(self.delimiter)]

        rows = []
        for line in lines[1:]:
            values = [v.strip() for v in line.split(self.delimiter)]
            row = {}
            for index, header in enumerate(headers):
                row[header] = values[index] if index < len(values) else ""
            rows.append(row)

        return TabularData(headers=headers, rows=rows)

    def _detect_encoding(self, raw_data: bytes) -> str:
        """Detect encoding from the first bytes of a file, BOM first then chardet."""
        if raw_data.startswith(b'\xef\xbb\xbf'):
            return 'utf-8-sig'

        result = chardet.detect(raw_data[:10000])
        encoding = result.get('encoding') or 'utf-8'

        encoding_lower = encoding.lower()
        if 'utf-8' in encoding_lower or 'utf8' in encoding_lower or encoding_lower == 'ascii':
            return 'utf-8'

        return encoding

    def decode(self, raw_data: bytes) -> str:
        """Decode uploaded bytes to text using the detected encoding.

        Raises:
            MalformedInputError: If no supported encoding can decode the data
        """
        encoding = self._detect_encoding(raw_data)
        try:
            return raw_data.decode(encoding)
        except (UnicodeDecodeError, LookupError) as e:
            logger.warning(f"Decoding with detected encoding {encoding} failed: {e}")

        for fallback_encoding in ['cp1252', 'latin-1']:
            try:
                return raw_data.decode(fallback_encoding)
            except UnicodeDecodeError:
                continue

        raise MalformedInputError("Could not decode CSV data")

    def read(self, file_path: Union[str, Path]) -> TabularData:
        """Read a CSV file into headers and row records.

        Args:
            file_path: Path to the CSV file

        Returns:
            TabularData

        Raises:
            FileNotFoundError: If file doesn't exist
            MalformedInputError: If the file is empty, undecodable, or has no data rows
        """
        path = Path(file_path)

        if not path.exists():
            raise FileNotFoundError(f"File not found: {file_path}")

        raw_data = path.read_bytes()
        if not raw_data:
            raise MalformedInputError(f"File is empty: {file_path}")

        text = self.decode(raw_data).replace("\r\n", "\n").replace("\r", "\n")
        return self.parse_text(text)
