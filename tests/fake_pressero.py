from __future__ import annotations

import copy
from typing import Any, Dict, List, Optional, Set

from app.core.errors import UpstreamError


class FakePressero:
    """In-memory stand-in for PresseroClient.

    Like the real API, create_address returns nothing; the new entry only
    shows up in the next get_address_book call.
    """

    def __init__(self, preferred: Optional[Dict[str, Any]] = None, addresses: Optional[List[Dict[str, Any]]] = None):
        self.preferred = copy.deepcopy(preferred)
        self.addresses: List[Dict[str, Any]] = copy.deepcopy(addresses or [])
        self.calls: List[tuple] = []
        self.created: List[Dict[str, Any]] = []
        self.updated: List[tuple] = []
        self.cart_items: List[Dict[str, Any]] = []
        self.fail_create_for: Set[str] = set()
        self.hide_created = False
        self.cart_failures: Dict[str, tuple] = {}
        self._next_id = 1
        self.closed = False

    def __enter__(self) -> "FakePressero":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def close(self) -> None:
        self.closed = True

    def get_user_id(self, site_domain: str, email: str) -> str:
        self.calls.append(("get_user_id", site_domain, email))
        return "user-1"

    def get_address_book(self, site_domain: str, user_id: str) -> Dict[str, Any]:
        self.calls.append(("get_address_book", site_domain, user_id))
        return {"PreferredAddress": copy.deepcopy(self.preferred), "Addresses": copy.deepcopy(self.addresses)}

    def create_address(self, site_domain: str, user_id: str, payload: Dict[str, Any]) -> None:
        self.calls.append(("create_address", site_domain, user_id))
        if payload.get("Address1") in self.fail_create_for:
            raise UpstreamError("Address rejected", status=422, upstream={"Message": "Address rejected"})
        self.created.append(dict(payload))
        if self.hide_created:
            return
        self.addresses.append({**payload, "AddressId": f"addr-{self._next_id}"})
        self._next_id += 1

    def update_address(self, site_domain: str, user_id: str, address_id: str, payload: Dict[str, Any]) -> None:
        self.calls.append(("update_address", site_domain, user_id))
        self.updated.append((address_id, dict(payload)))

    def get_cart_id(self, site_domain: str, user_id: str) -> str:
        self.calls.append(("get_cart_id", site_domain, user_id))
        return "cart-1"

    def resolve_product_id(self, site_domain: str, url_name: str) -> str:
        self.calls.append(("resolve_product_id", site_domain, url_name))
        return "product-1"

    def add_cart_item(self, site_domain: str, cart_id: str, user_id: str, payload: Dict[str, Any]) -> Any:
        self.calls.append(("add_cart_item", site_domain, cart_id))
        failure = self.cart_failures.get(payload.get("ShipTo"))
        if failure:
            status, message = failure
            raise UpstreamError(message, status=status, upstream={"Message": message})
        self.cart_items.append(payload)
        return {"Id": f"item-{len(self.cart_items)}"}

    def count(self, name: str) -> int:
        return sum(1 for c in self.calls if c[0] == name)
