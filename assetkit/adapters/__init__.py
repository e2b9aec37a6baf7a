"""File and text adapters that turn import feeds into headers and rows."""

from .csv_adapter import CsvAdapter, TabularData
from .excel_adapter import ExcelAdapter

__all__ = ["CsvAdapter", "ExcelAdapter", "TabularData"]
