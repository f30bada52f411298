from __future__ import annotations
import csv
import io
import math
from typing import Any, Dict, List, Optional, Tuple

PRODUCT_COLUMNS = ['sku', 'name', 'description', 'category', 'base_price', 'cost_price',
                   'gst_rate', 'hsn_code', 'barcode', 'variant_name', 'stock']

# Data rows start after the header line.
HEADER_OFFSET = 1


class CsvRow(dict):
    """A parsed data row that remembers the file line it started on."""

    def __init__(self, values: Dict[str, str], line: Optional[int] = None):
        super().__init__(values)
        self.line = line


def parse_csv(text: str) -> List[CsvRow]:
    """Header row plus data rows; quoted fields may contain commas and doubled quotes."""
    if text.startswith('\ufeff'):
        text = text[1:]
    reader = csv.reader(io.StringIO(text))
    try:
        header = next(reader)
    except StopIteration:
        return []
    header = [h.strip().lower() for h in header]
    rows = []
    while True:
        start = reader.line_num + 1
        try:
            raw = next(reader)
        except StopIteration:
            break
        if not raw or all(not cell.strip() for cell in raw):
            continue
        padded = list(raw) + [''] * (len(header) - len(raw))
        rows.append(CsvRow({header[i]: padded[i].strip() for i in range(len(header))}, line=start))
    return rows


def _number(value: str):
    try:
        v = float(value)
    except (TypeError, ValueError):
        return None
    # nan and inf are not prices or quantities
    return v if math.isfinite(v) else None


def validate_product_rows(rows: List[Dict[str, str]]) -> Tuple[List[Dict[str, Any]], List[Dict[str, Any]]]:
    valid: List[Dict[str, Any]] = []
    errors: List[Dict[str, Any]] = []
    for idx, row in enumerate(rows, start=1):
        line = getattr(row, 'line', None) or idx + HEADER_OFFSET
        problems = []
        if not row.get('sku'):
            problems.append('sku is required')
        if not row.get('name'):
            problems.append('name is required')
        price = _number(row.get('base_price', ''))
        if price is None or price <= 0:
            problems.append('base_price must be greater than 0')
        stock_raw = row.get('stock') or '0'
        stock = _number(stock_raw)
        if stock is None or stock < 0 or stock != int(stock):
            problems.append('stock must be a whole number >= 0')
        cost = _number(row.get('cost_price') or '0')
        if cost is None or cost < 0:
            problems.append('cost_price must be >= 0')
        gst = _number(row.get('gst_rate') or '3')
        if gst is None or gst < 0:
            problems.append('gst_rate must be >= 0')
        if problems:
            for message in problems:
                errors.append({'row': line, 'message': message})
            continue
        valid.append({
            'row': line,
            'sku': row['sku'],
            'name': row['name'],
            'description': row.get('description') or None,
            'category': row.get('category') or None,
            'base_price_paise': int(round(price * 100)),
            'cost_price_paise': int(round(cost * 100)),
            'gst_rate_bp': int(round(gst * 100)),
            'hsn_code': row.get('hsn_code') or None,
            'barcode': row.get('barcode') or None,
            'variant_name': row.get('variant_name') or 'Default',
            'stock': int(stock),
        })
    return valid, errors


def write_csv(rows: List[Dict[str, Any]], columns: List[str] = PRODUCT_COLUMNS) -> str:
    buf = io.StringIO()
    writer = csv.DictWriter(buf, fieldnames=columns, extrasaction='ignore')
    writer.writeheader()
    for r in rows:
        writer.writerow(r)
    return buf.getvalue()
