"""Record store backends.

    from ordersync.store import build_store
    store = build_store(settings)
"""

from .base import RecordStore, Snapshot, read_orders, write_orders  # noqa: F401
from .http_store import HttpDocumentStore  # noqa: F401
from .memory import MemoryStore  # noqa: F401
from .sql_store import SqlDocumentStore  # noqa: F401


def build_store(settings) -> RecordStore:
    """Pick the backend named by settings.store_backend."""
    backend = (settings.store_backend or "sql").lower()
    if backend == "http":
        if not settings.store_url:
            raise ValueError("STORE_URL must be set when STORE_BACKEND=http")
        return HttpDocumentStore(settings.store_url, settings.store_auth_token)
    if backend == "memory":
        return MemoryStore()
    return SqlDocumentStore()
