from __future__ import annotations

import logging
import time
from typing import Any, Dict, List, Optional

import requests

from app.core.errors import ConfigError, UpstreamError
from app.core.settings import S
from app.metrics import record_upstream_call

logger = logging.getLogger(__name__)


def _auth_payload() -> Dict[str, str]:
    payload = {
        "UserName": S.pressero_username,
        "Password": S.pressero_password,
        "SubscriberId": S.pressero_subscriber_id,
        "ConsumerID": S.pressero_consumer_id,
    }
    missing = [k for k, v in payload.items() if not v]
    if missing:
        raise ConfigError(f"Missing Pressero credentials: {', '.join(missing)}")
    return payload


def _response_body(resp: requests.Response) -> Any:
    if not resp.content:
        return None
    try:
        return resp.json()
    except ValueError:
        return resp.text


def _error_message(body: Any, fallback: str) -> str:
    if isinstance(body, dict):
        msg = body.get("Message") or body.get("message")
        if msg:
            return str(msg)
    if isinstance(body, str) and body.strip():
        return body.strip()
    return fallback


def _json_object(data: Any, operation: str) -> Dict[str, Any]:
    if not isinstance(data, dict):
        raise UpstreamError(f"{operation}: unexpected response from Pressero (expected a JSON object)", upstream=data)
    return data


def _first_item(data: Any, operation: str) -> Optional[Dict[str, Any]]:
    """First entry of a paged ``Items`` listing, or None when the page is empty."""
    items = _json_object(data, operation).get("Items") or []
    if not isinstance(items, list):
        raise UpstreamError(f"{operation}: unexpected Items in Pressero response", upstream=data)
    if not items:
        return None
    if not isinstance(items[0], dict):
        raise UpstreamError(f"{operation}: unexpected Items in Pressero response", upstream=data)
    return items[0]


def authenticate(session: Optional[requests.Session] = None) -> str:
    payload = _auth_payload()
    http = session or requests
    start = time.perf_counter()
    try:
        r = http.post(
            f"{S.pressero_admin_url}/api/V2/Authentication",
            json=payload,
            headers={"Content-Type": "application/json"},
            timeout=S.upstream_timeout_seconds,
        )
    except requests.RequestException as exc:
        record_upstream_call("authenticate", "network_error", time.perf_counter() - start)
        raise UpstreamError(f"Pressero authentication failed: {exc}") from exc
    record_upstream_call("authenticate", str(r.status_code), time.perf_counter() - start)
    body = _response_body(r)
    if not 200 <= r.status_code < 300:
        raise UpstreamError(
            f"Pressero authentication failed: {_error_message(body, r.reason or 'error')}",
            status=r.status_code,
            upstream=body,
        )
    token = body.get("Token") if isinstance(body, dict) else None
    if not token:
        raise UpstreamError("Token missing from Pressero authentication response", upstream=body)
    return token


class PresseroClient:
    """Authenticated session against the Pressero admin API.

    One instance per inbound request; tokens are not shared across requests.
    """

    def __init__(
        self,
        token: str,
        *,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        site_scoped: Optional[bool] = None,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.base_url = (base_url or S.pressero_admin_url).rstrip("/")
        self.timeout = timeout if timeout is not None else S.upstream_timeout_seconds
        self.site_scoped = S.site_scoped_paths if site_scoped is None else site_scoped
        self.session = session or requests.Session()
        self.session.headers.update(
            {
                "Accept": "application/json, text/plain, */*",
                "Content-Type": "application/json",
                "Authorization": f"token {token}",
            }
        )

    @classmethod
    def connect(cls) -> "PresseroClient":
        session = requests.Session()
        try:
            token = authenticate(session)
        except Exception:
            session.close()
            raise
        return cls(token, session=session)

    def close(self) -> None:
        self.session.close()

    def __enter__(self) -> "PresseroClient":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def _site_path(self, site_domain: str, tail: str) -> str:
        if self.site_scoped:
            return f"/api/site/{site_domain}/{tail}"
        return f"/api/{tail}"

    def _request(
        self,
        operation: str,
        method: str,
        path: str,
        *,
        params: Optional[Dict[str, Any]] = None,
        json: Any = None,
    ) -> Any:
        url = f"{self.base_url}{path}"
        start = time.perf_counter()
        try:
            r = self.session.request(method, url, params=params, json=json, timeout=self.timeout)
        except requests.Timeout as exc:
            record_upstream_call(operation, "timeout", time.perf_counter() - start)
            raise UpstreamError(f"{operation}: upstream timeout") from exc
        except requests.RequestException as exc:
            record_upstream_call(operation, "network_error", time.perf_counter() - start)
            raise UpstreamError(f"{operation}: {exc}") from exc

        record_upstream_call(operation, str(r.status_code), time.perf_counter() - start)
        body = _response_body(r)
        if not 200 <= r.status_code < 300:
            logger.info("pressero %s %s -> %s", method, path, r.status_code)
            raise UpstreamError(
                _error_message(body, f"{operation} failed with HTTP {r.status_code}"),
                status=r.status_code,
                upstream=body,
            )
        return body

    # Users / products / carts

    def get_user_id(self, site_domain: str, email: str) -> str:
        data = self._request(
            "get_user",
            "GET",
            self._site_path(site_domain, "users/"),
            params={"pageNumber": 0, "pageSize": 1, "email": email, "includeDeleted": False},
        )
        first = _first_item(data, "get_user")
        user_id = first.get("UserId") if first else None
        if not user_id:
            raise UpstreamError(f"No user found for email {email}", upstream=data)
        return user_id

    def resolve_product_id(self, site_domain: str, url_name: str) -> str:
        data = self._request(
            "find_product",
            "POST",
            self._site_path(site_domain, "products"),
            params={"pageNumber": 0, "pageSize": 1, "includeDeleted": False},
            json=[{"Column": "UrlName", "Value": url_name, "Operator": "isequalto"}],
        )
        first = _first_item(data, "find_product")
        product_id = first.get("ProductId") if first else None
        if not product_id:
            raise UpstreamError(f"No product found for UrlName={url_name}", upstream=data)
        return product_id

    def get_cart_id(self, site_domain: str, user_id: str) -> str:
        data = self._request("get_cart", "GET", f"/api/cart/{site_domain}/", params={"userId": user_id})
        cart_id = _json_object(data, "get_cart").get("Id")
        if not cart_id:
            raise UpstreamError("Cart id missing from Pressero response", upstream=data)
        return cart_id

    def add_cart_item(self, site_domain: str, cart_id: str, user_id: str, payload: Dict[str, Any]) -> Any:
        return self._request(
            "add_cart_item",
            "POST",
            f"/api/cart/{site_domain}/{cart_id}/item/",
            params={"userId": user_id},
            json=payload,
        )

    # Address book

    def get_address_book(self, site_domain: str, user_id: str) -> Dict[str, Any]:
        data = self._request("get_address_book", "GET", self._site_path(site_domain, f"Addressbook/{user_id}"))
        # an empty 200 means an empty book
        return _json_object(data, "get_address_book") if data is not None else {}

    def create_address(self, site_domain: str, user_id: str, payload: Dict[str, Any]) -> None:
        # The response carries no AddressId; callers re-read the book to learn it.
        self._request("create_address", "POST", self._site_path(site_domain, f"Addressbook/{user_id}/"), json=payload)

    def update_address(self, site_domain: str, user_id: str, address_id: str, payload: Dict[str, Any]) -> None:
        self._request(
            "update_address",
            "PUT",
            self._site_path(site_domain, f"Addressbook/{user_id}/"),
            params={"addressId": address_id},
            json=payload,
        )


def book_addresses(book: Optional[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Preferred address followed by the rest of the book, as returned upstream."""
    book = book or {}
    out = [book.get("PreferredAddress")] + list(book.get("Addresses") or [])
    return [a for a in out if a]
