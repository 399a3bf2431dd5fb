# Overview: httpx client for the RetailPOS REST API, used by terminals.

"""
ApiClient

Thin wrapper over httpx.Client:
- attaches the bearer token from its TokenStore
- decodes JSON bodies and raises ApiError for every non-2xx answer
- clears the stored token on any 401 so the terminal falls back to login

No retries: a failed request is reported to the caller as-is.
"""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any, Optional

import httpx

logger = logging.getLogger(__name__)


class ApiError(Exception):
    """Non-2xx response (or unusable body) from the API."""

    def __init__(self, status: int, code: str, message: str, details: Optional[dict] = None):
        super().__init__(f"{status} {code}: {message}")
        self.status = status
        self.code = code
        self.message = message
        self.details = details or {}


class TokenStore:
    """Holds the bearer token for the current terminal session."""

    def __init__(self, token: Optional[str] = None):
        self._token = token

    def get(self) -> Optional[str]:
        return self._token

    def set(self, token: Optional[str]) -> None:
        self._token = token

    def clear(self) -> None:
        self._token = None


def _jsonable(value: Any) -> Any:
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, dict):
        return {k: _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    return value


class ApiClient:
    def __init__(
        self,
        base_url: str,
        timeout: float = 10.0,
        token_store: Optional[TokenStore] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.tokens = token_store or TokenStore()
        self.client = httpx.Client(base_url=self.base_url, timeout=timeout, transport=transport)

    def close(self) -> None:
        self.client.close()

    @property
    def is_authenticated(self) -> bool:
        return self.tokens.get() is not None

    def _headers(self) -> dict:
        headers = {"Accept": "application/json"}
        token = self.tokens.get()
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return headers

    def request(self, method: str, path: str, *, json: Any = None, params: Optional[dict] = None) -> Any:
        try:
            response = self.client.request(
                method,
                path,
                headers=self._headers(),
                json=_jsonable(json) if json is not None else None,
                params=params,
            )
        except httpx.HTTPError as e:
            logger.warning("Request %s %s failed: %s", method, path, e)
            raise ApiError(0, "NETWORK_ERROR", str(e)) from e

        try:
            body = response.json() if response.content else None
        except ValueError:
            body = None
            if response.is_success:
                raise ApiError(response.status_code, "INVALID_RESPONSE", "Response is not valid JSON")

        if response.status_code == 401:
            if self.tokens.get() is not None:
                logger.info("Session rejected by server; clearing token")
            self.tokens.clear()

        if not response.is_success:
            if not isinstance(body, dict):
                raise ApiError(response.status_code, "INVALID_RESPONSE", response.text[:200] or response.reason_phrase)
            raise ApiError(
                response.status_code,
                body.get("code") or "HTTP_ERROR",
                body.get("message") or response.reason_phrase,
                body.get("details"),
            )
        return body

    # ------------------------------------------------------------------
    # auth
    # ------------------------------------------------------------------

    def login(self, username: str, password: str) -> dict:
        data = self.request("POST", "/api/login", json={"username": username, "password": password})
        self.tokens.set(data["token"])
        return data["user"]

    def logout(self) -> None:
        self.request("POST", "/api/logout")
        self.tokens.clear()

    def current_user(self) -> dict:
        return self.request("GET", "/api/user")

    # ------------------------------------------------------------------
    # catalog
    # ------------------------------------------------------------------

    def list_pos_products(self, search: Optional[str] = None) -> list[dict]:
        params = {"search": search} if search else None
        return self.request("GET", "/api/pos/products", params=params)["items"]

    def get_product_by_barcode(self, barcode: str) -> dict:
        return self.request("GET", f"/api/products/barcode/{barcode}")

    def list_active_discounts(self) -> list[dict]:
        return self.request("GET", "/api/discounts", params={"active": "true"})["items"]

    def get_customer(self, customer_id: int) -> dict:
        return self.request("GET", f"/api/customers/{customer_id}")

    # ------------------------------------------------------------------
    # sales
    # ------------------------------------------------------------------

    def checkout(self, payload: dict) -> dict:
        return self.request("POST", "/api/sales/checkout", json=payload)

    def suspend_sale(self, payload: dict) -> dict:
        return self.request("POST", "/api/suspended-sales", json=payload)

    def list_suspended_sales(self) -> list[dict]:
        return self.request("GET", "/api/suspended-sales")["items"]

    def recall_suspended_sale(self, suspended_id: int) -> dict:
        return self.request("POST", f"/api/suspended-sales/{suspended_id}/recall")

    # ------------------------------------------------------------------
    # shifts
    # ------------------------------------------------------------------

    def get_active_shift(self) -> Optional[dict]:
        return self.request("GET", "/api/cashier-shifts/active")["shift"]

    def open_shift(self, opening_cash, terminal_name: str, note: Optional[str] = None,
                   client_opened_at: Optional[str] = None) -> dict:
        payload = {"openingCash": opening_cash, "terminalName": terminal_name}
        if note:
            payload["note"] = note
        if client_opened_at:
            payload["clientOpenedAt"] = client_opened_at
        return self.request("POST", "/api/cashier-shifts/open", json=payload)

    def close_shift(self, actual_cash, close_note: Optional[str] = None) -> dict:
        payload = {"actualCash": actual_cash}
        if close_note:
            payload["closeNote"] = close_note
        return self.request("POST", "/api/cashier-shifts/close", json=payload)
