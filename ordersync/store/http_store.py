"""
store/http_store.py — Document store over a JSON REST endpoint

Speaks the realtime-database style REST dialect: one JSON document per
path, GET to read it, PUT to overwrite it.

    GET  {base}/{collection}.json   → [ {...}, {...} ] | null
    PUT  {base}/{collection}.json   ← [ {...}, {...} ]

Business Rules:
- `null` body means the document does not exist yet (→ None)
- Sparse arrays come back as objects keyed by index; they are flattened
  in key order
- Non-2xx or transport errors on read raise StoreReadFailure
- Non-2xx or transport errors on write return False (the caller raises)

Called by: main.py (store factory)
Depends on: http_client.py, httpx
"""

import logging

import httpx

from ..errors import StoreReadFailure
from .base import RecordStore

log = logging.getLogger(__name__)


class HttpDocumentStore(RecordStore):
    def __init__(self, base_url: str, auth_token: str = "", client: httpx.AsyncClient | None = None, timeout: float = 30.0):
        self.base_url = base_url.rstrip("/")
        self.auth_token = auth_token
        self.timeout = timeout
        self._client = client

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            from ..http_client import http

            self._client = http
        return self._client

    def _url(self, collection: str) -> str:
        return f"{self.base_url}/{collection}.json"

    def _params(self) -> dict:
        return {"auth": self.auth_token} if self.auth_token else {}

    async def fetch(self, collection: str) -> list[dict] | None:
        try:
            r = await self.client.get(
                self._url(collection), params=self._params(), timeout=self.timeout
            )
            r.raise_for_status()
            data = r.json()
        except (httpx.HTTPError, ValueError) as e:
            log.error("Store read failed for %s: %s", collection, e)
            raise StoreReadFailure(f"Could not read {collection}") from e

        if data is None:
            return None
        if isinstance(data, dict):
            data = [data[k] for k in sorted(data, key=_index_key)]
        return [item for item in data if item is not None]

    async def replace(self, collection: str, records: list[dict]) -> bool:
        try:
            r = await self.client.put(
                self._url(collection),
                params=self._params(),
                json=records,
                timeout=self.timeout,
            )
            r.raise_for_status()
        except httpx.HTTPError as e:
            log.error("Store write failed for %s: %s", collection, e)
            return False
        return True


def _index_key(key: str):
    return (0, int(key)) if str(key).isdigit() else (1, str(key))
