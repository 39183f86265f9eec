"""
Chart-of-accounts spreadsheet template and import parsing.

The sample workbook is generated with openpyxl; uploaded workbooks are read
with pandas and normalised into plain row dicts keyed by import field.
"""

import io
from decimal import Decimal, InvalidOperation
from typing import Dict, List, Optional

import pandas as pd
from openpyxl import Workbook
from openpyxl.styles import Font, PatternFill, Alignment

SAMPLE_FILENAME = "Chart_of_Accounts_Sample_File.xlsx"
XLSX_CONTENT_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
WORKSHEET_NAME = "Chart of Accounts"

HEADERS = ["Account Number", "Account Name", "Type", "Detail Type", "Opening Balance"]
COLUMN_WIDTHS = [15, 40, 20, 25, 18]

INSTRUCTIONS = [
    "DO NOT IMPORT! DATA IS FOR SAMPLE PURPOSES ONLY.",
    "*Import opening balances for Balance Sheet accounts only",
    "*Line 5 is an example of a sub-account",
]

IMPORT_FIELDS = [
    {"key": "account_number", "label": "Account Number", "required": False},
    {"key": "account_name", "label": "Account Name", "required": True},
    {"key": "account_type", "label": "Type", "required": True},
    {"key": "account_detail_type", "label": "Detail Type", "required": False},
    {"key": "opening_balance", "label": "Opening Balance", "required": False},
]

SAMPLE_DATA = [
    ["112720", "TD Canada Trust", "asset", "Chequing", "1000"],
    ["234325", "Cash", "asset", "Cash", "25000"],
    ["3445", "Property Plant & Equipment", "asset", "Other fixed assets", ""],
    ["1123", "Property Plant & Equipment:Computer Equipment", "asset", "Other fixed assets", "15000"],
    ["", "Cost of Materials", "expense", "Materials", "54000"],
    ["1000", "Chequing", "asset", "Chequing", "5400"],
]

# Sub-accounts are written as "Parent:Child" in the name column
SUB_ACCOUNT_SEPARATOR = ":"


def build_sample_workbook() -> io.BytesIO:
    wb = Workbook()
    ws = wb.active
    ws.title = WORKSHEET_NAME

    ws.append(HEADERS)
    header_fill = PatternFill(start_color="DDEBF7", end_color="DDEBF7", fill_type="solid")
    for cell in ws[1]:
        cell.font = Font(bold=True)
        cell.fill = header_fill
        cell.alignment = Alignment(horizontal="center")

    for row in SAMPLE_DATA:
        ws.append(row)

    ws.append([])
    for instruction in INSTRUCTIONS:
        ws.append([instruction])

    for index, width in enumerate(COLUMN_WIDTHS):
        ws.column_dimensions[chr(ord("A") + index)].width = width

    output = io.BytesIO()
    wb.save(output)
    output.seek(0)
    return output


def _cell(value) -> Optional[str]:
    if value is None or (isinstance(value, float) and pd.isna(value)):
        return None
    text = str(value).strip()
    # pandas reads numeric account numbers as floats
    if text.endswith(".0") and text[:-2].isdigit():
        text = text[:-2]
    return text or None


def read_import_rows(content: bytes, mapping: Optional[Dict[str, str]] = None) -> List[Dict]:
    """
    Parse an uploaded workbook into row dicts keyed by import field.

    ``mapping`` maps field key to column header; by default the template's
    labels are used. Raises ValueError for unreadable files or missing
    required columns.
    """
    labels = {field["key"]: field["label"] for field in IMPORT_FIELDS}
    if mapping:
        labels.update(mapping)

    try:
        df = pd.read_excel(io.BytesIO(content), dtype=object)
    except Exception as e:
        raise ValueError(f"Could not read the spreadsheet: {e}")

    df.columns = [str(column).strip() for column in df.columns]
    for field in IMPORT_FIELDS:
        if field["required"] and labels[field["key"]] not in df.columns:
            raise ValueError(f"Missing required column '{labels[field['key']]}'")

    rows = []
    for index, record in df.iterrows():
        row = {key: _cell(record.get(label)) for key, label in labels.items()}
        # Blank lines and the template's instruction lines carry neither name nor type
        if not row.get("account_name") and not row.get("account_type"):
            continue
        balance = row.get("opening_balance")
        try:
            row["opening_balance"] = Decimal(balance.replace(",", "")) if balance else Decimal("0")
        except InvalidOperation:
            raise ValueError(f"Row {index + 2}: opening balance '{balance}' is not a number")
        row["row_number"] = index + 2
        rows.append(row)
    return rows
