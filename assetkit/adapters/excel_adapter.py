from datetime import date, datetime
from pathlib import Path

import openpyxl

from ..errors import MalformedInputError
from .csv_adapter import TabularData


def _cell_to_text(value):
    if value is None:
        return ""
    if isinstance(value, datetime):
        if value.time() == datetime.min.time():
            return value.date().isoformat()
        return value.isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value).strip()


class ExcelAdapter:
    """Reads the active sheet of an .xlsx workbook into TabularData."""

    def can_handle(self, file_path):
        return Path(file_path).suffix.lower() in [".xlsx", ".xlsm"]

    def read(self, file_path):
        wb = openpyxl.load_workbook(file_path, read_only=True, data_only=True)
        try:
            ws = wb.active
            sheet_rows = [
                row for row in ws.iter_rows(values_only=True)
                if any(_cell_to_text(cell) for cell in row)
            ]
        finally:
            wb.close()

        if len(sheet_rows) < 2:
            raise MalformedInputError(
                "Spreadsheet must contain headers and at least one data row"
            )

        headers = [_cell_to_text(cell).lower() for cell in sheet_rows[0]]

        rows = []
        for sheet_row in sheet_rows[1:]:
            values = [_cell_to_text(cell) for cell in sheet_row]
            rows.append({
                header: values[index] if index < len(values) else ""
                for index, header in enumerate(headers)
            })

        return TabularData(headers=headers, rows=rows)
