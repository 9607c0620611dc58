# Overview: Catalog spreadsheet parsing; turns an uploaded workbook into product records.

"""
Catalog Import

Reads the first worksheet of an .xlsx/.xlsm workbook. The first row is the
header; columns are matched by name (case and surrounding whitespace are
ignored):

    Product Code | Description | Cost Price | Sale Price

Fully blank rows are skipped. A price that cannot be read as a number is
stored as 0; missing text becomes "".
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from zipfile import BadZipFile

from openpyxl import load_workbook
from openpyxl.utils.exceptions import InvalidFileException

from ..validation import ValidationError, MAX_AMOUNT_CENTS

logger = logging.getLogger(__name__)

ALLOWED_EXTENSIONS = {"xlsx", "xlsm"}

COLUMN_MAP = {
    "product code": "product_code",
    "description": "description",
    "cost price": "cost_price",
    "sale price": "sale_price",
}


@dataclass(frozen=True)
class ProductRecord:
    product_code: str
    description: str
    cost_price_cents: int
    sale_price_cents: int


def check_extension(filename: str | None) -> str:
    ext = os.path.splitext(filename or "")[1].lstrip(".").lower()
    if ext not in ALLOWED_EXTENSIONS:
        raise ValidationError("Please upload only .xlsx or .xlsm files.")
    return ext


def _text(value) -> str:
    if value is None:
        return ""
    if isinstance(value, float) and value.is_integer():
        # Numeric codes typed into Excel come back as floats
        value = int(value)
    return str(value).strip()


def _price_cents(value) -> int:
    if value is None or isinstance(value, bool):
        return 0
    try:
        amount = Decimal(str(value).strip().replace(",", ""))
    except InvalidOperation:
        return 0
    if not amount.is_finite() or amount < 0:
        return 0
    cents = int((amount * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
    return min(cents, MAX_AMOUNT_CENTS)


def records_from_rows(rows, *, max_rows: int | None = None) -> list[ProductRecord]:
    """
    Build records from worksheet rows (tuples), header first.

    Raises ValidationError if none of the expected headers is present or the
    sheet has more data rows than max_rows.
    """
    rows = list(rows)
    if not rows:
        return []

    header = rows[0]
    positions = {}
    for index, cell in enumerate(header):
        key = COLUMN_MAP.get(_text(cell).lower())
        if key and key not in positions:
            positions[key] = index
    if not positions:
        raise ValidationError(
            "Expected columns: Product Code, Description, Cost Price, Sale Price"
        )

    records = []
    for row in rows[1:]:
        if row is None or all(cell is None or _text(cell) == "" for cell in row):
            continue

        def cell(key):
            index = positions.get(key)
            if index is None or index >= len(row):
                return None
            return row[index]

        records.append(ProductRecord(
            product_code=_text(cell("product_code")),
            description=_text(cell("description")),
            cost_price_cents=_price_cents(cell("cost_price")),
            sale_price_cents=_price_cents(cell("sale_price")),
        ))
        if max_rows is not None and len(records) > max_rows:
            raise ValidationError(f"Spreadsheet exceeds the limit of {max_rows} products")

    return records


def parse_product_workbook(stream, filename: str | None, *, max_rows: int | None = None) -> list[ProductRecord]:
    """Parse an uploaded workbook. The extension is checked before anything is read."""
    check_extension(filename)
    try:
        wb = load_workbook(stream, read_only=True, data_only=True)
    except (InvalidFileException, BadZipFile, KeyError, OSError) as exc:
        logger.warning("Unreadable workbook %s: %s", filename, exc)
        raise ValidationError("The file could not be read as an Excel workbook") from exc

    try:
        sheet = wb.active
        return records_from_rows(sheet.iter_rows(values_only=True), max_rows=max_rows)
    finally:
        wb.close()
