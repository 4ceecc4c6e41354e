"""Turn uploaded tabular data into Pressero address records.

Headers are matched case-insensitively against per-field alias lists that
cover the English, French and Spanish spreadsheets customers send in.
"""
from __future__ import annotations

import csv
import io
import logging
import zipfile
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

import openpyxl
from fastapi import HTTPException

from app.core.settings import DEFAULTS, AddressDefaults

logger = logging.getLogger(__name__)

HEADER_ALIASES: Tuple[Tuple[str, Tuple[str, ...]], ...] = (
    ("AddressId", ("addressid", "id")),
    ("Business", ("business", "société", "societe", "company", "entreprise", "empresa")),
    ("FirstName", ("firstname", "first name", "prénom", "prenom", "nombre")),
    ("LastName", ("lastname", "last name", "nom", "apellido")),
    ("Title", ("title", "titre", "cargo")),
    ("Address1", ("address1", "adresse", "adresse1", "direccion", "dirección", "address")),
    ("Address2", ("address2", "adresse2")),
    ("Address3", ("address3", "adresse3")),
    ("City", ("city", "ville", "ciudad")),
    ("StateProvince", ("stateprovince", "state", "province", "région", "region")),
    ("Postal", ("postal", "cp", "codepostal", "code postal", "codigopostal", "zip")),
    ("Country", ("country", "pays", "país", "pais")),
    ("Phone", ("phone", "téléphone", "telephone", "telefono", "teléfono")),
    ("Email", ("email", "mail", "e-mail")),
)

REQUIRED_FIELDS = ("Address1", "City", "Postal", "Country")

CSV_DELIMITERS = ",;\t|"


def cell_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return str(value).strip()


def _lower_keys(row: Mapping[Any, Any]) -> Dict[str, Any]:
    return {str(k).strip().lower(): v for k, v in row.items() if k is not None}


def _pick(row: Mapping[str, Any], aliases: Iterable[str]) -> str:
    for alias in aliases:
        value = cell_text(row.get(alias))
        if value:
            return value
    return ""


def extract_address(raw_row: Any, defaults: AddressDefaults = DEFAULTS) -> Optional[Dict[str, Any]]:
    """Canonical address record for one row, or None if the row is unusable."""
    if not isinstance(raw_row, Mapping) or not raw_row:
        return None
    row = _lower_keys(raw_row)

    record: Dict[str, Any] = {field: _pick(row, aliases) for field, aliases in HEADER_ALIASES}
    record["StateProvince"] = record["StateProvince"] or defaults.state_province
    record["Country"] = (record["Country"] or defaults.country).upper()

    if any(not record[field] for field in REQUIRED_FIELDS):
        return None

    record["Business"] = record["Business"] or defaults.business
    if not record["AddressId"]:
        record.pop("AddressId")
    return record


def extract_addresses(rows: Iterable[Any], defaults: AddressDefaults = DEFAULTS) -> List[Dict[str, Any]]:
    out = []
    for row in rows:
        record = extract_address(row, defaults)
        if record is not None:
            out.append(record)
    return out


def _sniff_delimiter(header_line: str) -> str:
    try:
        return csv.Sniffer().sniff(header_line, delimiters=CSV_DELIMITERS).delimiter
    except csv.Error:
        return ","


def _decode_csv(data: bytes) -> str:
    # Excel on Windows saves "CSV" in the ANSI code page, not UTF-8.
    try:
        return data.decode("utf-8-sig")
    except UnicodeDecodeError:
        return data.decode("cp1252", errors="replace")


def parse_csv_rows(data: bytes) -> List[Dict[str, Any]]:
    text = _decode_csv(data)
    if not text.strip():
        return []
    first_line = text.splitlines()[0]
    reader = csv.DictReader(io.StringIO(text), delimiter=_sniff_delimiter(first_line))
    rows = []
    for row in reader:
        values = [v for k, v in row.items() if k is not None]
        if all(cell_text(v) == "" for v in values):
            continue
        rows.append(row)
    return rows


def parse_xlsx_rows(data: bytes) -> List[Dict[str, Any]]:
    try:
        wb = openpyxl.load_workbook(io.BytesIO(data), read_only=True, data_only=True)
    except (zipfile.BadZipFile, KeyError, OSError, ValueError) as exc:
        raise HTTPException(400, "Unreadable spreadsheet") from exc

    try:
        if not wb.worksheets:
            return []
        ws = wb.worksheets[0]
        rows_iter = ws.iter_rows(values_only=True)
        header_values = next(rows_iter, None)
        if not header_values:
            return []
        headers = [cell_text(h) for h in header_values]

        rows = []
        for values in rows_iter:
            if not values or all(cell_text(v) == "" for v in values):
                continue
            row = {}
            for idx, header in enumerate(headers):
                if not header:
                    continue
                row[header] = values[idx] if idx < len(values) else None
            rows.append(row)
        return rows
    finally:
        wb.close()


def parse_address_file(
    filename: Optional[str],
    data: bytes,
    defaults: AddressDefaults = DEFAULTS,
) -> List[Dict[str, Any]]:
    name = (filename or "file").lower()
    ext = name.rsplit(".", 1)[-1] if "." in name else ""
    if ext == "csv":
        rows = parse_csv_rows(data)
    elif ext in ("xlsx", "xlsm"):
        rows = parse_xlsx_rows(data)
    else:
        raise HTTPException(400, "Unsupported file format (csv/xlsx)")

    records = extract_addresses(rows, defaults)
    logger.debug("parsed %s: %d rows, %d valid addresses", name, len(rows), len(records))
    return records
