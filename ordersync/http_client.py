"""Shared HTTP client — connection pooling for all outbound requests.

One module-level httpx.AsyncClient, used by the Dolibarr connector and the
HTTP document store unless a client is injected (tests pass one built on
httpx.MockTransport).

Per-request timeout overrides via http.get(url, timeout=15).

Usage:
    from ordersync.http_client import http
    resp = await http.get(url, headers=headers, timeout=15)
"""

import httpx

from . import __version__

_LIMITS = httpx.Limits(
    max_connections=20,
    max_keepalive_connections=10,
    keepalive_expiry=30,
)

http = httpx.AsyncClient(
    timeout=30,
    limits=_LIMITS,
    follow_redirects=False,
    headers={"User-Agent": f"ordersync/{__version__}"},
)


async def close_clients():
    """Shut down the shared client. Call from app lifespan shutdown."""
    try:
        await http.aclose()
    except RuntimeError:
        pass
