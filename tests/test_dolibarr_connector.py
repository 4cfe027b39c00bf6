"""Tests for connectors/dolibarr.py — request shape and failure mapping."""

import httpx
import pytest

from conftest import DOLIBARR_URL
from ordersync.connectors.dolibarr import DolibarrConnector
from ordersync.errors import UpstreamFetchFailure


def _connector(handler) -> DolibarrConnector:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return DolibarrConnector(DOLIBARR_URL + "/", "k-123", client=client)


@pytest.mark.asyncio
async def test_listing_sends_key_and_draft_filter():
    seen = {}

    def handler(request):
        seen["path"] = request.url.path
        seen["params"] = dict(request.url.params)
        seen["key"] = request.headers["DOLAPIKEY"]
        return httpx.Response(
            200,
            json=[
                {"id": "7", "ref": "CO-7", "array_options": {"options_val_cont": "CT-7"}},
                {"rowid": "8", "ref": "CO-8", "array_options": None},
            ],
        )

    refs = await _connector(handler).list_order_refs(page=2, limit=50)

    assert seen["path"] == "/api/index.php/orders"
    assert seen["key"] == "k-123"
    assert seen["params"]["page"] == "2"
    assert seen["params"]["limit"] == "50"
    assert seen["params"]["sqlfilters"] == "(t.fk_statut:=:0)"
    assert refs == [
        {"ref": "CO-7", "contract_ref": "CT-7", "id": "7"},
        {"ref": "CO-8", "contract_ref": "CO-8", "id": "8"},
    ]


@pytest.mark.asyncio
async def test_non_2xx_raises_with_status():
    connector = _connector(lambda r: httpx.Response(404, json={"error": "nope"}))
    with pytest.raises(UpstreamFetchFailure) as exc:
        await connector.get_order(12)
    assert exc.value.status == 404


@pytest.mark.asyncio
async def test_transport_error_raises():
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    with pytest.raises(UpstreamFetchFailure):
        await _connector(handler).list_users()


@pytest.mark.asyncio
async def test_invalid_json_raises():
    connector = _connector(lambda r: httpx.Response(200, content=b"<html>"))
    with pytest.raises(UpstreamFetchFailure):
        await connector.get_thirdparty(3)


@pytest.mark.asyncio
async def test_listing_must_be_a_list():
    connector = _connector(lambda r: httpx.Response(200, json={"error": "x"}))
    with pytest.raises(UpstreamFetchFailure):
        await connector.list_order_refs(0, 100)


@pytest.mark.asyncio
async def test_representatives_non_list_is_empty():
    connector = _connector(lambda r: httpx.Response(200, json={"unexpected": True}))
    assert await connector.get_representatives(3) == []
