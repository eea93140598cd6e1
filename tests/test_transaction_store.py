import httpx
import pytest

from checkout_bff.transaction_store import SupabaseTableClient, TransactionStoreError

BASE_URL = "https://project.supabase.test/rest/v1"


def make_client(handler):
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return SupabaseTableClient(http_client, base_url=BASE_URL, api_key="key")


@pytest.mark.asyncio
async def test_select_builds_postgrest_query():
    captured = {}

    def handler(request):
        captured["path"] = request.url.path
        captured["params"] = dict(request.url.params)
        captured["auth"] = request.headers["authorization"]
        return httpx.Response(200, json=[{"id": "tx-1"}])

    client = make_client(handler)
    row = await client.maybe_single(
        "transactions",
        columns="id,status",
        filters={"paypal_order_id": "O-1", "status": "completed"},
        order_by="completed_at",
    )

    assert row == {"id": "tx-1"}
    assert captured["path"] == "/rest/v1/transactions"
    assert captured["params"] == {
        "select": "id,status",
        "paypal_order_id": "eq.O-1",
        "status": "eq.completed",
        "order": "completed_at.desc",
        "limit": "1",
    }
    assert captured["auth"] == "Bearer key"


@pytest.mark.asyncio
async def test_maybe_single_returns_none_for_no_rows():
    client = make_client(lambda request: httpx.Response(200, json=[]))
    assert await client.maybe_single("transactions") is None


@pytest.mark.asyncio
@pytest.mark.parametrize("response", [
    httpx.Response(500, text="boom"),
    httpx.Response(200, json={"message": "not a list"}),
    httpx.Response(200, text="<html>"),
])
async def test_bad_responses_raise_store_error(response):
    client = make_client(lambda request: response)
    with pytest.raises(TransactionStoreError):
        await client.select("transactions")
