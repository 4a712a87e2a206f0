# core/spreadsheets.py
import logging
from io import BytesIO

import pandas as pd
from openpyxl import Workbook
from openpyxl.styles import Font, Alignment, Border, Side, PatternFill
from openpyxl.utils import get_column_letter
from django.http import HttpResponse

logger = logging.getLogger(__name__)

XLSX_CONTENT_TYPE = 'application/vnd.openxmlformats-officedocument.spreadsheetml.sheet'


class SpreadsheetError(Exception):
    """Raised when an uploaded sheet cannot be read or lacks required columns"""


def normalize_column(name):
    return str(name).strip().lower().replace(' ', '_')


def read_rows(upload, column_mappings, required):
    """
    Read an uploaded .xlsx/.csv file into a list of dicts keyed by the
    standard column names in ``column_mappings``.

    ``column_mappings`` maps a standard name to the header spellings accepted
    for it. Every name in ``required`` must be found.
    """
    filename = getattr(upload, 'name', '') or ''
    try:
        if filename.lower().endswith('.csv'):
            df = pd.read_csv(upload, dtype=str)
        else:
            df = pd.read_excel(upload, dtype=str, engine='openpyxl')
    except Exception as e:
        logger.error("Error reading spreadsheet %s: %s", filename, e)
        raise SpreadsheetError(f"Could not read the uploaded file: {e}") from e

    df.columns = [normalize_column(c) for c in df.columns]

    mapped_columns = {}
    for expected_col, possible_names in column_mappings.items():
        for possible_name in possible_names:
            if possible_name in df.columns:
                mapped_columns[expected_col] = possible_name
                break

    missing_columns = [col for col in required if col not in mapped_columns]
    if missing_columns:
        raise SpreadsheetError(f"Missing columns: {', '.join(missing_columns)}")

    df = df.fillna('')
    rows = []
    for record in df.to_dict('records'):
        row = {standard: str(record[original]).strip() for standard, original in mapped_columns.items()}
        if any(row.values()):
            rows.append(row)
    return rows


def build_workbook(title, headers, rows):
    """Build an .xlsx workbook with a styled header row and return its bytes"""
    wb = Workbook()
    ws = wb.active
    ws.title = title[:31]

    header_font = Font(bold=True, color="FFFFFF")
    header_fill = PatternFill(start_color="1F2937", end_color="1F2937", fill_type="solid")
    border = Border(
        left=Side(style='thin'),
        right=Side(style='thin'),
        top=Side(style='thin'),
        bottom=Side(style='thin'),
    )

    ws.append(list(headers))
    for cell in ws[1]:
        cell.font = header_font
        cell.fill = header_fill
        cell.alignment = Alignment(horizontal='center', vertical='center')
        cell.border = border

    for row in rows:
        ws.append([value if value is not None else '' for value in row])

    for index, header in enumerate(headers, start=1):
        width = max([len(str(header))] + [len(str(r[index - 1])) for r in rows if r[index - 1] is not None])
        ws.column_dimensions[get_column_letter(index)].width = min(width + 2, 50)

    ws.freeze_panes = 'A2'

    buffer = BytesIO()
    wb.save(buffer)
    return buffer.getvalue()


def xlsx_response(filename, title, headers, rows):
    response = HttpResponse(build_workbook(title, headers, rows), content_type=XLSX_CONTENT_TYPE)
    response['Content-Disposition'] = f'attachment; filename="{filename}"'
    return response
