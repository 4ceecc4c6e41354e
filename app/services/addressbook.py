"""Address book reconciliation against the Pressero admin API.

Pressero does not return the identifier of an address it just created, so a
create is two steps: submit the payload, then re-read the book and match the
new entry by identity key. Every create is guarded by the set of identity
keys already known for the user, which is seeded from one snapshot and kept
current as the batch runs.
"""
from __future__ import annotations

import csv
import io
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from openpyxl import Workbook
from openpyxl.styles import Alignment, Font
from openpyxl.utils import get_column_letter

from app.core.errors import AddressResolutionError, UpstreamError
from app.core.normalize import identity_key
from app.core.settings import DEFAULTS, AddressDefaults
from app.metrics import record_address_outcome
from app.services.upstream import PresseroClient, book_addresses

logger = logging.getLogger(__name__)

UNRESOLVED_AFTER_CREATE = "created but identifier unresolvable"
DUPLICATE_IN_BOOK = "duplicate_in_addressbook"

EXPORT_COLUMNS = (
    ("AddressId", 36),
    ("Business", 24),
    ("FirstName", 16),
    ("LastName", 16),
    ("Title", 16),
    ("Address1", 34),
    ("Address2", 22),
    ("Address3", 22),
    ("City", 18),
    ("StateProvince", 18),
    ("Postal", 12),
    ("Country", 10),
    ("Phone", 18),
    ("Email", 26),
    ("IsPreferred", 12),
    ("Qty", 10),
)


def _s(value: Any) -> str:
    return str(value).strip() if value is not None else ""


def address_summary(record: Dict[str, Any]) -> str:
    return f"{_s(record.get('Address1'))} / {_s(record.get('Postal'))} / {_s(record.get('City'))}"


def build_address_payload(
    record: Dict[str, Any],
    template: Optional[Dict[str, Any]] = None,
    defaults: AddressDefaults = DEFAULTS,
) -> Dict[str, Any]:
    """Upstream create/update body for ``record``.

    Optional fields fall back to the template (the preferred address) and
    then to the configured defaults. Anything still empty is left out so an
    update never blanks a value Pressero already holds.
    """
    template = template or {}

    def first(field: str, default: Optional[str] = None) -> Optional[str]:
        return _s(record.get(field)) or _s(template.get(field)) or default

    payload = {
        "Business": first("Business", defaults.business),
        "FirstName": first("FirstName", defaults.first_name),
        "LastName": first("LastName", defaults.last_name),
        "Title": first("Title"),
        "Address1": _s(record.get("Address1")),
        "Address2": _s(record.get("Address2")) or None,
        "Address3": _s(record.get("Address3")) or None,
        "City": _s(record.get("City")),
        "StateProvince": first("StateProvince", defaults.state_province),
        "Postal": _s(record.get("Postal")),
        "Country": first("Country", defaults.country).upper(),
        "Phone": first("Phone"),
        "Email": first("Email"),
    }
    required = ("Address1", "City", "Postal", "Country")
    return {k: v for k, v in payload.items() if v or k in required}


@dataclass
class Outcome:
    index: int
    record: Dict[str, Any]
    mode: str
    address_id: Optional[str] = None
    reason: Optional[str] = None
    message: Optional[str] = None
    status: Optional[int] = None


class AddressReconciler:
    def __init__(
        self,
        client: PresseroClient,
        site_domain: str,
        user_id: str,
        defaults: AddressDefaults = DEFAULTS,
    ) -> None:
        self.client = client
        self.site_domain = site_domain
        self.user_id = user_id
        self.defaults = defaults
        self.book: Dict[str, Any] = {}
        self.known: Dict[str, Optional[str]] = {}

    @property
    def preferred(self) -> Optional[Dict[str, Any]]:
        return self.book.get("PreferredAddress") or None

    def load(self) -> Dict[str, Any]:
        self.book = self.client.get_address_book(self.site_domain, self.user_id)
        self._index(self.book)
        return self.book

    def _index(self, book: Dict[str, Any]) -> None:
        for address in book_addresses(book):
            key = identity_key(address)
            if self.known.get(key) is None:
                self.known[key] = address.get("AddressId") or None

    def create(self, record: Dict[str, Any]) -> Optional[str]:
        """Submit a new address and return the identifier Pressero gave it, if found."""
        payload = build_address_payload(record, self.preferred, self.defaults)
        key = identity_key(payload)
        self.client.create_address(self.site_domain, self.user_id, payload)
        # Registered before the re-read so a failed lookup still blocks a second create.
        self.known.setdefault(key, None)

        refreshed = self.client.get_address_book(self.site_domain, self.user_id)
        found = next((a for a in book_addresses(refreshed) if identity_key(a) == key), None)
        self.book = refreshed
        self._index(refreshed)
        address_id = found.get("AddressId") if found else None
        if address_id:
            self.known[key] = address_id
        return address_id or None

    def update(self, record: Dict[str, Any]) -> str:
        address_id = _s(record.get("AddressId"))
        payload = build_address_payload(record, self.preferred, self.defaults)
        self.client.update_address(self.site_domain, self.user_id, address_id, payload)
        self.known[identity_key(payload)] = address_id
        return address_id

    def reconcile_one(self, index: int, record: Dict[str, Any]) -> Outcome:
        try:
            if _s(record.get("AddressId")):
                return Outcome(index, record, "updated", address_id=self.update(record))

            key = identity_key(build_address_payload(record, self.preferred, self.defaults))
            if key in self.known:
                return Outcome(index, record, "skipped", address_id=self.known[key], reason=DUPLICATE_IN_BOOK)

            address_id = self.create(record)
            if not address_id:
                return Outcome(index, record, "error", message=UNRESOLVED_AFTER_CREATE)
            return Outcome(index, record, "created", address_id=address_id)
        except UpstreamError as exc:
            logger.warning("address %d (%s) failed: %s", index, address_summary(record), exc.message)
            return Outcome(index, record, "error", message=exc.message, status=exc.status)

    def reconcile(self, records: List[Dict[str, Any]]) -> List[Outcome]:
        return [self.reconcile_one(i, record) for i, record in enumerate(records, start=1)]

    def resolve(self, record: Dict[str, Any]) -> str:
        """Identifier for ``record``, creating the address when it is not in the book yet."""
        key = identity_key(build_address_payload(record, self.preferred, self.defaults))
        address_id = self.known.get(key)
        if not address_id:
            address_id = self.create(record)
        if not address_id:
            raise AddressResolutionError(f"Unable to create or find address: {address_summary(record)}")
        return address_id


def dedupe_records(records: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Drop repeated rows inside one batch, keyed by AddressId when present."""
    seen = set()
    unique = []
    for record in records:
        address_id = _s(record.get("AddressId"))
        key = f"id:{address_id}" if address_id else f"k:{identity_key(record)}"
        if key in seen:
            continue
        seen.add(key)
        unique.append(record)
    return unique


def summarize_outcomes(outcomes: List[Outcome], total_parsed: int) -> Dict[str, Any]:
    counts = {"created": 0, "updated": 0, "skipped": 0, "error": 0}
    skipped: List[Dict[str, Any]] = []
    errors: List[Dict[str, Any]] = []
    for outcome in outcomes:
        counts[outcome.mode] += 1
        record_address_outcome(outcome.mode)
        if outcome.mode == "skipped":
            skipped.append({
                "index": outcome.index,
                "address": address_summary(outcome.record),
                "reason": outcome.reason,
                "addressId": outcome.address_id,
            })
        elif outcome.mode == "error":
            errors.append({
                "index": outcome.index,
                "address": address_summary(outcome.record),
                "message": outcome.message or "unknown_error",
                "status": outcome.status,
            })
    return {
        "ok": counts["error"] == 0,
        "totalParsed": total_parsed,
        "totalImported": len(outcomes),
        "createdCount": counts["created"],
        "updatedCount": counts["updated"],
        "skippedCount": counts["skipped"],
        "errorCount": counts["error"],
        "skipped": skipped,
        "errors": errors,
    }


def import_address_records(
    client: PresseroClient,
    site_domain: str,
    user_id: str,
    records: List[Dict[str, Any]],
    defaults: AddressDefaults = DEFAULTS,
    total_parsed: Optional[int] = None,
) -> Dict[str, Any]:
    """Reconcile a batch of extracted records against the user's book.

    ``total_parsed`` overrides the reported ``totalParsed`` count, which is
    otherwise the number of records handed in.
    """
    unique = dedupe_records(records)
    reconciler = AddressReconciler(client, site_domain, user_id, defaults)
    reconciler.load()
    outcomes = reconciler.reconcile(unique)
    summary = summarize_outcomes(outcomes, total_parsed=len(records) if total_parsed is None else total_parsed)
    logger.info(
        "address import for user %s: parsed=%d unique=%d created=%d updated=%d skipped=%d errors=%d",
        user_id,
        summary["totalParsed"],
        summary["totalImported"],
        summary["createdCount"],
        summary["updatedCount"],
        summary["skippedCount"],
        summary["errorCount"],
    )
    return summary


def address_book_entries(book: Optional[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Every address once, preferred first, each tagged with ``IsPreferred``."""
    book = book or {}
    preferred = book.get("PreferredAddress") or None
    seen = set()
    out = []
    for address in book_addresses(book):
        address_id = address.get("AddressId")
        if address_id:
            if address_id in seen:
                continue
            seen.add(address_id)
        out.append({**address, "IsPreferred": address is preferred})
    return out


def list_address_book(client: PresseroClient, site_domain: str, user_id: str) -> Dict[str, Any]:
    book = client.get_address_book(site_domain, user_id)
    preferred = book.get("PreferredAddress") or {}
    addresses = [{k: v for k, v in a.items() if k != "IsPreferred"} for a in address_book_entries(book)]
    return {
        "ok": True,
        "preferredId": preferred.get("AddressId") or None,
        "addresses": addresses,
    }


def export_rows(book: Optional[Dict[str, Any]]) -> List[Dict[str, str]]:
    rows = []
    for entry in address_book_entries(book):
        row = {name: _s(entry.get(name)) for name, _ in EXPORT_COLUMNS}
        row["IsPreferred"] = "true" if entry["IsPreferred"] else "false"
        row["Qty"] = ""
        rows.append(row)
    return rows


def export_csv(book: Optional[Dict[str, Any]]) -> str:
    buf = io.StringIO()
    writer = csv.DictWriter(buf, fieldnames=[name for name, _ in EXPORT_COLUMNS], lineterminator="\n")
    writer.writeheader()
    writer.writerows(export_rows(book))
    return buf.getvalue()


def export_xlsx(book: Optional[Dict[str, Any]]) -> bytes:
    wb = Workbook()
    wb.properties.creator = "cart-orchestrator"
    wb.properties.created = datetime.now(timezone.utc).replace(tzinfo=None)
    ws = wb.active
    ws.title = "Addressbook"

    ws.append([name for name, _ in EXPORT_COLUMNS])
    for idx, (_, width) in enumerate(EXPORT_COLUMNS, start=1):
        ws.column_dimensions[get_column_letter(idx)].width = width
    for cell in ws[1]:
        cell.font = Font(bold=True)
        cell.alignment = Alignment(vertical="center")
    ws.row_dimensions[1].height = 18
    ws.freeze_panes = "A2"

    for row in export_rows(book):
        ws.append([row[name] for name, _ in EXPORT_COLUMNS])

    out = io.BytesIO()
    wb.save(out)
    return out.getvalue()
