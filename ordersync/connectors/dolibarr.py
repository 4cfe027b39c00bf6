"""Dolibarr REST connector — the external system of record for orders.

Thin async wrapper over the endpoints the importer needs. Every method
performs exactly one request and raises UpstreamFetchFailure on a non-2xx
status, a transport error or an undecodable body. Deciding whether that
failure is fatal is the caller's job.

Called by: services/import_service.py
Depends on: httpx, http_client.py
"""

import logging

import httpx

from ..errors import UpstreamFetchFailure

log = logging.getLogger(__name__)


class DolibarrConnector:
    """Dolibarr API — static DOLAPIKEY header auth."""

    def __init__(self, base_url: str, api_key: str, client: httpx.AsyncClient | None = None, timeout: float = 30.0):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self._client = client

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            from ..http_client import http

            self._client = http
        return self._client

    @property
    def headers(self) -> dict:
        return {"Accept": "application/json", "DOLAPIKEY": self.api_key}

    async def _get(self, path: str, params: dict | None = None):
        url = f"{self.base_url}{path}"
        try:
            r = await self.client.get(
                url, params=params, headers=self.headers, timeout=self.timeout
            )
        except httpx.HTTPError as e:
            raise UpstreamFetchFailure(f"GET {path} failed: {e}") from e
        if not r.is_success:
            raise UpstreamFetchFailure(
                f"Dolibarr API {path}: HTTP {r.status_code}", status=r.status_code
            )
        try:
            return r.json()
        except ValueError as e:
            raise UpstreamFetchFailure(f"Dolibarr API {path}: invalid JSON") from e

    # ── Orders ────────────────────────────────────────────────────────

    async def list_order_refs(self, page: int, limit: int) -> list[dict]:
        """One page of draft orders, oldest first, reduced to reference tuples."""
        rows = await self._get(
            "/orders",
            {
                "sortfield": "t.rowid",
                "sortorder": "ASC",
                "limit": limit,
                "page": page,
                "sqlfilters": "(t.fk_statut:=:0)",
            },
        )
        if not isinstance(rows, list):
            raise UpstreamFetchFailure("Dolibarr API /orders: expected a list")
        return [self._parse_ref(o) for o in rows]

    @staticmethod
    def _parse_ref(order: dict) -> dict:
        extra = order.get("array_options") or {}
        return {
            "ref": order.get("ref") or "",
            "contract_ref": extra.get("options_val_cont") or order.get("ref") or "",
            "id": order.get("id") or order.get("rowid"),
        }

    async def get_order(self, order_id) -> dict:
        return await self._get(f"/orders/{order_id}")

    # ── Users ─────────────────────────────────────────────────────────

    async def list_users(self) -> list[dict]:
        return await self._get(
            "/users", {"sortfield": "t.rowid", "sortorder": "ASC", "limit": 1000}
        )

    async def get_user(self, user_id) -> dict:
        return await self._get(f"/users/{user_id}")

    # ── Third parties ─────────────────────────────────────────────────

    async def get_thirdparty(self, socid) -> dict:
        return await self._get(f"/thirdparties/{socid}")

    async def get_representatives(self, socid) -> list[dict]:
        reps = await self._get(f"/thirdparties/{socid}/representatives")
        return reps if isinstance(reps, list) else []

    # ── Products ──────────────────────────────────────────────────────

    async def list_products(self) -> list[dict]:
        return await self._get(
            "/products", {"sortfield": "t.ref", "sortorder": "ASC", "limit": 1000}
        )
