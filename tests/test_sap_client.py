import json
import httpx
import pytest
from unittest.mock import AsyncMock, patch
from sapsync.schemas.sap import SapContext
from sapsync.services.sap_client import (
    SapClient,
    SapAuthError,
    SapConnectionError,
    SapResponseError,
    CUSTOMER_ENDPOINT,
    MATERIALS_ENDPOINT,
    PRICE_ENDPOINT,
)

CONTEXT = SapContext(
    tvko={"VKORG": "100"},
    tvak={"AUART": "ZQT"},
    sold_to={"KUNNR": "CUST1"},
)

def make_client(handler, max_retries=3):
    client = SapClient(base_url="http://sap.test/api/", username="user", password="secret", max_retries=max_retries)
    client._client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return client

@pytest.mark.asyncio
async def test_fetch_customer_posts_sales_org_and_customer():
    requests = []

    def handler(request):
        requests.append(request)
        return httpx.Response(200, json={"NAME1": "Hospital Clinic"})

    client = make_client(handler)
    result = await client.fetch_customer("100", "CUST1")
    await client.disconnect()

    assert result == {"NAME1": "Hospital Clinic"}
    assert str(requests[0].url) == f"http://sap.test/api{CUSTOMER_ENDPOINT}"
    assert json.loads(requests[0].content) == {"I_VKORG": "100", "I_FORCE_KUNNR": "CUST1"}

@pytest.mark.asyncio
async def test_fetch_material_list_sends_context_structures():
    bodies = []

    def handler(request):
        bodies.append((request.url.path, json.loads(request.content)))
        return httpx.Response(200, json={"X_MAT_FOUND": []})

    client = make_client(handler)
    await client.fetch_material_list(CONTEXT)

    path, body = bodies[0]
    assert path.endswith(MATERIALS_ENDPOINT)
    assert body == {
        "I_WA_TVKO": {"VKORG": "100"},
        "I_WA_TVAK": {"AUART": "ZQT"},
        "I_WA_AG": {"KUNNR": "CUST1"},
        "I_WA_WE": {},
        "I_WA_RG": {},
    }

@pytest.mark.asyncio
async def test_fetch_material_price_includes_posnr_only_when_given():
    bodies = []

    def handler(request):
        bodies.append((request.url.path, json.loads(request.content)))
        return httpx.Response(200, json={"OUT_WA_MATNR": {"NETPR": "1.00"}})

    client = make_client(handler)
    await client.fetch_material_price("CUST1", "MAT-1", CONTEXT, "000010")
    await client.fetch_material_price("CUST1", "MAT-1", CONTEXT)

    assert bodies[0][0].endswith(PRICE_ENDPOINT)
    assert bodies[0][1]["IN_WA_MATNR"] == {"MATNR": "MAT-1", "POSNR": "000010"}
    assert bodies[1][1]["IN_WA_MATNR"] == {"MATNR": "MAT-1"}
    assert bodies[1][1]["I_WA_TVKO"] == {"VKORG": "100"}

@pytest.mark.asyncio
async def test_empty_body_returns_empty_dict():
    client = make_client(lambda request: httpx.Response(200))
    assert await client.fetch_customer("100", "CUST1") == {}

@pytest.mark.asyncio
@pytest.mark.parametrize("status, error", [
    (401, SapAuthError),
    (503, SapConnectionError),
    (500, SapResponseError),
    (404, SapResponseError),
])
async def test_error_status_mapping(status, error):
    client = make_client(lambda request: httpx.Response(status, json={"message": "boom"}))

    with pytest.raises(error):
        await client.fetch_customer("100", "CUST1")

@pytest.mark.asyncio
async def test_response_error_keeps_status_and_body():
    client = make_client(lambda request: httpx.Response(500, json={"message": "dump"}))

    with pytest.raises(SapResponseError) as exc_info:
        await client.fetch_customer("100", "CUST1")

    assert exc_info.value.status_code == 500
    assert exc_info.value.response == {"message": "dump"}

@pytest.mark.asyncio
async def test_non_object_payload_is_rejected():
    client = make_client(lambda request: httpx.Response(200, json=["unexpected"]))

    with pytest.raises(SapResponseError):
        await client.fetch_customer("100", "CUST1")

@pytest.mark.asyncio
async def test_network_errors_are_retried_then_succeed():
    attempts = []

    def handler(request):
        attempts.append(request)
        if len(attempts) < 3:
            raise httpx.ConnectError("connection refused", request=request)
        return httpx.Response(200, json={"NAME1": "Hospital Clinic"})

    client = make_client(handler)
    with patch("sapsync.services.sap_client.asyncio.sleep", new=AsyncMock()) as sleep:
        result = await client.fetch_customer("100", "CUST1")

    assert result == {"NAME1": "Hospital Clinic"}
    assert len(attempts) == 3
    assert [call.args[0] for call in sleep.await_args_list] == [1, 2]

@pytest.mark.asyncio
async def test_network_errors_exhaust_retries():
    def handler(request):
        raise httpx.ReadTimeout("timed out", request=request)

    client = make_client(handler, max_retries=2)
    with patch("sapsync.services.sap_client.asyncio.sleep", new=AsyncMock()):
        with pytest.raises(SapConnectionError):
            await client.fetch_customer("100", "CUST1")

@pytest.mark.asyncio
async def test_context_manager_opens_and_closes_session():
    client = SapClient(base_url="http://sap.test", username="user", password="secret")

    async with client as connected:
        assert connected is client
        assert client._client is not None

    assert client._client is None
