from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from app.core.errors import UpstreamError
from app.core.normalize import identity_key
from app.core.settings import DEFAULTS, S, AddressDefaults
from app.metrics import record_cart_line
from app.services.addressbook import AddressReconciler
from app.services.upstream import PresseroClient

logger = logging.getLogger(__name__)


def _first(row: Dict[str, Any], *keys: str) -> str:
    for key in keys:
        value = row.get(key)
        if value is not None and str(value).strip():
            return str(value).strip()
    return ""


def _quantity(value: Any) -> int:
    if value is None or isinstance(value, bool):
        return 0
    try:
        return int(float(str(value).strip()))
    except (ValueError, OverflowError):
        return 0


def merge_distribution_lines(lines: Any, default_country: str = DEFAULTS.country) -> List[Dict[str, Any]]:
    """Collapse lines pointing at the same place, summing their quantities.

    Lines without an address, zip or city, or with a quantity below 1, are
    dropped.
    """
    if not isinstance(lines, list):
        return []
    merged: Dict[str, Dict[str, Any]] = {}
    for row in lines:
        if not isinstance(row, dict):
            continue
        address = _first(row, "address", "Address1")
        zip_code = _first(row, "zip", "Postal")
        city = _first(row, "city", "City")
        country = (_first(row, "country", "Country") or default_country).upper()
        qty = _quantity(row.get("qty") if row.get("qty") is not None else row.get("quantity"))
        if not address or not zip_code or not city or qty <= 0:
            continue

        key = identity_key({"Address1": address, "Postal": zip_code, "City": city, "Country": country})
        line = merged.setdefault(key, {"address": address, "zip": zip_code, "city": city, "country": country, "qty": 0})
        line["qty"] += qty
    return list(merged.values())


def validate_distribution(
    client: PresseroClient,
    site_domain: str,
    user_id: str,
    lines: List[Dict[str, Any]],
    defaults: AddressDefaults = DEFAULTS,
) -> List[Dict[str, Any]]:
    """Attach an address-book identifier to every merged line.

    All or nothing: the first line that cannot be resolved aborts the whole
    validation.
    """
    reconciler = AddressReconciler(client, site_domain, user_id, defaults)
    reconciler.load()
    preferred = reconciler.preferred or {}

    validated = []
    for line in lines:
        record = {
            "Business": defaults.business,
            "Address1": line["address"],
            "City": line["city"],
            "Postal": line["zip"],
            "Country": line.get("country") or preferred.get("Country") or defaults.country,
        }
        validated.append({**line, "addressId": reconciler.resolve(record)})
    return validated


def _cart_error(exc: UpstreamError) -> str:
    upstream = exc.upstream if isinstance(exc.upstream, dict) else {}
    return str(upstream.get("Message") or upstream.get("message") or exc.message)


def add_distribution_to_cart(
    client: PresseroClient,
    site_domain: str,
    user_id: str,
    *,
    url_name: str,
    shipping_method: str,
    pricing_options: List[Any],
    lines: List[Dict[str, Any]],
    other_quantities: Optional[List[Any]] = None,
    item_name: Optional[str] = None,
    price_warning: Optional[str] = None,
) -> Dict[str, Any]:
    """Post one cart item per distribution line (one ship-to address each)."""
    item_name = item_name or S.cart_item_name
    price_warning = price_warning or S.cart_price_warning
    cart_id = client.get_cart_id(site_domain, user_id)
    product_id = client.resolve_product_id(site_domain, url_name)

    results = []
    for line in lines:
        qty = _quantity(line.get("qty"))
        if qty <= 0:
            continue
        address_id = str(line.get("addressId") or "").strip()
        if not address_id:
            results.append({"addressId": None, "qty": qty, "ok": False, "error": "addressId is required"})
            record_cart_line("failed")
            continue
        payload = {
            "ProductId": product_id,
            "ShipTo": address_id,
            "ShippingMethod": shipping_method,
            "PricingParameters": {"Quantities": [qty, *(other_quantities or [])], "Options": pricing_options},
            "ItemName": item_name,
            "Notes": line.get("label") or "",
        }
        try:
            client.add_cart_item(site_domain, cart_id, user_id, payload)
            results.append({"addressId": address_id, "qty": qty, "ok": True})
            record_cart_line("added")
        except UpstreamError as exc:
            msg = _cart_error(exc)
            if exc.status == 400 and msg == price_warning:
                results.append({"addressId": address_id, "qty": qty, "status": exc.status, "ok": True, "warning": msg})
                record_cart_line("warning")
                continue
            logger.warning("cart item for address %s failed: %s %s", address_id, exc.status, msg)
            results.append({"addressId": address_id, "qty": qty, "status": exc.status, "ok": False, "error": msg})
            record_cart_line("failed")

    added = sum(1 for r in results if r["ok"])
    warnings = sum(1 for r in results if r.get("warning"))
    failed = sum(1 for r in results if not r["ok"])
    return {
        "ok": failed == 0,
        "cartId": cart_id,
        "added": added,
        "warnings": warnings,
        "failed": failed,
        "results": results,
    }
