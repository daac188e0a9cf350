import json
import pytest
import httpx
from anajak_erp.crud.setting import set_setting
from anajak_erp.schemas.stock import CreateMovementInput, MovementType, StockMovementLine
from anajak_erp.services.stock_client import (
    StockApiClient, RemoteError, STOCK_API_KEY_KEY, STOCK_API_URL_KEY,
    get_stock_client, get_stock_client_from_settings, is_configured
)

def _page_payload(items=None, page=1, total_pages=1):
    items = items or []
    return {
        "success": True,
        "data": {
            "items": items,
            "pagination": {"page": page, "limit": 20, "total": len(items), "totalPages": total_pages},
        },
    }

def _client_with(handler):
    return StockApiClient(
        "http://stock.local/api", "secret-key",
        transport=httpx.MockTransport(handler)
    )

@pytest.mark.asyncio
async def test_get_products_sends_params_and_api_key():
    """Параметры страницы и курсора уходят в query, ключ в X-API-Key"""
    seen = {}

    def handler(request: httpx.Request):
        seen["url"] = request.url
        seen["api_key"] = request.headers.get("X-API-Key")
        return httpx.Response(200, json=_page_payload([
            {"id": "P1", "sku": "SKU-1", "name": "เสื้อยืด", "hasVariants": True,
             "variants": [{"id": "V1", "sku": "SKU-1-M", "name": "M / ขาว", "totalStock": 3.7}]}
        ], page=2, total_pages=5))

    async with _client_with(handler) as client:
        page = await client.get_products(page=2, limit=20, updated_after="2024-01-01T00:00:00+00:00")

    assert seen["url"].path == "/api/erp/products"
    assert seen["url"].params["page"] == "2"
    assert seen["url"].params["limit"] == "20"
    assert seen["url"].params["updated_after"] == "2024-01-01T00:00:00+00:00"
    assert seen["api_key"] == "secret-key"

    assert page.pagination.page == 2
    assert page.pagination.total_pages == 5
    assert page.items[0].has_variants is True
    assert page.items[0].variants[0].total_stock == 3.7

@pytest.mark.asyncio
async def test_full_mode_sends_no_cursor():
    seen = {}

    def handler(request: httpx.Request):
        seen["params"] = dict(request.url.params)
        return httpx.Response(200, json=_page_payload())

    async with _client_with(handler) as client:
        await client.get_products(page=1)

    assert "updated_after" not in seen["params"]

@pytest.mark.asyncio
async def test_non_success_status_raises_remote_error_without_retry():
    """Ошибка сервера не повторяется клиентом"""
    calls = []

    def handler(request: httpx.Request):
        calls.append(request)
        return httpx.Response(503, text="maintenance")

    async with _client_with(handler) as client:
        with pytest.raises(RemoteError) as exc_info:
            await client.get_products(page=1)

    assert len(calls) == 1
    assert exc_info.value.status_code == 503
    assert exc_info.value.body == "maintenance"
    assert "503" in str(exc_info.value)

@pytest.mark.asyncio
async def test_transport_error_raises_remote_error():
    def handler(request: httpx.Request):
        raise httpx.ConnectError("Connection refused", request=request)

    async with _client_with(handler) as client:
        with pytest.raises(RemoteError) as exc_info:
            await client.get_stock()

    assert exc_info.value.status_code is None

@pytest.mark.asyncio
async def test_invalid_json_raises_remote_error():
    def handler(request: httpx.Request):
        return httpx.Response(200, text="<html>not json</html>")

    async with _client_with(handler) as client:
        with pytest.raises(RemoteError):
            await client.get_products()

@pytest.mark.asyncio
async def test_create_movement_posts_camel_case_body():
    seen = {}

    def handler(request: httpx.Request):
        seen["method"] = request.method
        seen["body"] = json.loads(request.content)
        return httpx.Response(201, json={"success": True, "data": {
            "id": "m1", "docNumber": "ISS-000001", "type": "ISSUE",
            "status": "POSTED", "linesCount": 1
        }})

    movement = CreateMovementInput(
        type=MovementType.ISSUE,
        ref_no="ORD-1",
        lines=[StockMovementLine(sku="FAB-1", from_location="WH-MAIN", qty=2.5, unit_cost=40)],
    )
    async with _client_with(handler) as client:
        confirmation = await client.create_movement(movement)

    assert seen["method"] == "POST"
    assert seen["body"]["refNo"] == "ORD-1"
    assert seen["body"]["lines"][0] == {"sku": "FAB-1", "fromLocation": "WH-MAIN", "qty": 2.5, "unitCost": 40.0}
    assert confirmation.doc_number == "ISS-000001"
    assert confirmation.lines_count == 1

@pytest.mark.asyncio
async def test_test_connection_reports_failure_instead_of_raising():
    def handler(request: httpx.Request):
        return httpx.Response(401, json={"detail": "Invalid API Key"})

    async with _client_with(handler) as client:
        result = await client.test_connection()

    assert result.connected is False
    assert "401" in result.error

@pytest.mark.asyncio
async def test_mock_server_pagination(stock_client):
    """Мок-сервер Stock: 45 товаров по 20 на страницу"""
    first = await stock_client.get_products(page=1, limit=20)
    last = await stock_client.get_products(page=3, limit=20)

    assert first.pagination.total == 45
    assert first.pagination.total_pages == 3
    assert len(first.items) == 20
    assert len(last.items) == 5

@pytest.mark.asyncio
async def test_mock_server_rejects_wrong_key(mock_stock_data):
    transport = httpx.ASGITransport(app=mock_stock_data.app)
    async with StockApiClient("http://mock-stock/api", "wrong-key", transport=transport) as client:
        with pytest.raises(RemoteError) as exc_info:
            await client.get_products()

    assert exc_info.value.status_code == 401

@pytest.mark.asyncio
async def test_get_product_by_sku(stock_client):
    product = await stock_client.get_product_by_sku("SKU-0005")
    missing = await stock_client.get_product_by_sku("SKU-9999")

    assert product is not None
    assert product.id == "PROD-0005"
    assert product.category == "เสื้อ"
    assert missing is None

@pytest.mark.asyncio
async def test_mock_server_connection(stock_client):
    result = await stock_client.test_connection()
    assert result.connected is True
    assert result.name == "Mock Stock"

def test_placeholder_key_means_not_configured():
    assert is_configured("http://stock.local/api", "real-key") is True
    assert is_configured("http://stock.local/api", "your-api-key") is False
    assert is_configured("", "real-key") is False
    assert get_stock_client("http://stock.local/api", "your-api-key") is None

@pytest.mark.asyncio
async def test_client_resolved_from_stored_settings(session_factory):
    """Настройки из таблицы settings важнее переменных окружения"""
    async with session_factory() as db:
        await set_setting(db, STOCK_API_URL_KEY, "http://stock.internal/api/")
        await set_setting(db, STOCK_API_KEY_KEY, "stored-key")
        client = await get_stock_client_from_settings(db)

        await set_setting(db, STOCK_API_KEY_KEY, "your-api-key")
        placeholder = await get_stock_client_from_settings(db)

    assert client.base_url == "http://stock.internal/api"
    assert client.api_key == "stored-key"
    assert placeholder is None
