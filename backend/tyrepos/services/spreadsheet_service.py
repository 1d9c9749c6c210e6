# Overview: Spreadsheet (xlsx / csv) parsing for bulk uploads and the xlsx inventory export.

from __future__ import annotations

import csv
import io
import re

from openpyxl import Workbook, load_workbook

from ..models import Item
from ..validation import ValidationError

XLSX_EXTENSIONS = {"xlsx", "xlsm", "xltx", "xltm"}

# Friendly column headings -> payload keys
HEADER_ALIASES = {
    "item_name": "name",
    "category_name": "category",
    "stock": "quantity_in_stock",
    "qty": "quantity",
    "code": "item_code",
    "reorder_level": "lower_limit",
    "cost": "purchase_price",
    "cost_price": "purchase_price",
    "price": "retail_price",
    "selling_price": "retail_price",
}

EXPORT_COLUMNS = [
    ("Item Code", "item_code"),
    ("Name", "name"),
    ("Barcode", "barcode"),
    ("Category", "category_name"),
    ("Description", "description"),
    ("Quantity In Stock", "quantity_in_stock"),
    ("Location", "location"),
    ("Lower Limit", "lower_limit"),
    ("Purchase Price", "purchase_price"),
    ("Retail Price", "retail_price"),
    ("Discount", "discount"),
]


def normalize_header(header) -> str:
    key = re.sub(r"[^a-z0-9]+", "_", str(header or "").strip().lower()).strip("_")
    return HEADER_ALIASES.get(key, key)


def _clean_row(row: dict) -> dict:
    cleaned = {}
    for k, v in row.items():
        if not k:
            continue
        if isinstance(v, str):
            v = v.strip()
        if v is None or v == "":
            continue
        cleaned[k] = v
    return cleaned


def read_rows(file_storage) -> list[dict]:
    """
    Parse an uploaded csv / xlsx file into row dicts keyed by normalized
    header. Blank rows are dropped; blank cells are omitted from the row.

    Raises:
        ValidationError: missing file or unsupported format
    """
    if file_storage is None:
        raise ValidationError("file is required")

    filename = file_storage.filename or ""
    ext = filename.rsplit(".", 1)[-1].lower() if "." in filename else ""

    if ext == "csv":
        stream = io.StringIO(file_storage.stream.read().decode("utf-8-sig"))
        reader = csv.DictReader(stream)
        rows = [{normalize_header(k): v for k, v in row.items()} for row in reader]
    elif ext in XLSX_EXTENSIONS:
        wb = load_workbook(file_storage.stream, data_only=True)
        sheet = wb.active
        data = list(sheet.iter_rows(values_only=True))
        if not data:
            rows = []
        else:
            headers = [normalize_header(h) for h in data[0]]
            rows = [
                {headers[i]: row[i] for i in range(min(len(headers), len(row)))}
                for row in data[1:]
            ]
    else:
        raise ValidationError("Unsupported file format (use .xlsx or .csv)")

    cleaned = [_clean_row(r) for r in rows]
    return [r for r in cleaned if r]


def export_items(items: list[Item]) -> io.BytesIO:
    """Write items to a single-sheet workbook and return it rewound."""
    wb = Workbook()
    sheet = wb.active
    sheet.title = "Inventory"
    sheet.append([title for title, _ in EXPORT_COLUMNS])
    for item in items:
        data = item.to_dict()
        sheet.append([data.get(key) for _, key in EXPORT_COLUMNS])

    out = io.BytesIO()
    wb.save(out)
    out.seek(0)
    return out
