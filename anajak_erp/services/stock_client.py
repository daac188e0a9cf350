import httpx
from typing import Optional, Dict, Any
import logging
from anajak_erp.core.config import settings
from anajak_erp.schemas.stock import (
    StockProduct, StockProductPage, StockBalancePage,
    CreateMovementInput, MovementConfirmation, ConnectionTestResult
)

logger = logging.getLogger(__name__)

PLACEHOLDER_API_KEY = "your-api-key"

class StockApiError(Exception):
    """Базовое исключение для ошибок Stock API"""
    pass

class RemoteError(StockApiError):
    """Stock API вернул неуспешный статус или запрос не удалось выполнить"""
    def __init__(self, message: str, status_code: Optional[int] = None, body: Optional[str] = None):
        self.status_code = status_code
        self.body = body
        super().__init__(message)

class StockNotConfiguredError(StockApiError):
    """Не заданы URL или API-ключ Stock API"""
    pass

class StockApiClient:
    """Клиент для ERP-эндпоинтов Stock API (/api/erp/*).

    Повторных попыток клиент не делает: решение о повторе страницы
    принимает вызывающий код (см. services/sync_runner.py).
    """

    def __init__(
        self,
        base_url: str,
        api_key: str,
        timeout: int = 30,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.base_url = base_url.rstrip('/')
        self.api_key = api_key
        self.timeout = timeout
        self._transport = transport

        # Сессия HTTP
        self._client: Optional[httpx.AsyncClient] = None

    async def __aenter__(self):
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.disconnect()

    async def connect(self):
        """Создание HTTP сессии"""
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self.timeout,
                limits=httpx.Limits(max_keepalive_connections=5, max_connections=10),
                headers=self._get_headers(),
                transport=self._transport
            )
            logger.info(f"Connected to Stock API at {self.base_url}")

    async def disconnect(self):
        """Закрытие HTTP сессии"""
        if self._client:
            await self._client.aclose()
            self._client = None
            logger.info("Disconnected from Stock API")

    def _get_headers(self) -> Dict[str, str]:
        return {
            "User-Agent": "AnajakERP-StockSync/1.0",
            "Accept": "application/json",
            "Content-Type": "application/json",
            "X-API-Key": self.api_key,
        }

    async def _request(
        self,
        method: str,
        endpoint: str,
        **kwargs
    ) -> Dict[str, Any]:
        """Выполнение HTTP запроса (без повторов)"""

        if self._client is None:
            await self.connect()

        url = f"{self.base_url}/{endpoint.lstrip('/')}"
        logger.debug(f"Request to Stock API: {method} {url}")

        try:
            response = await self._client.request(method=method, url=url, **kwargs)
        except httpx.HTTPError as e:
            logger.error(f"Stock API request failed: {method} {url}: {e}")
            raise RemoteError(f"Stock API request failed: {e}") from e

        if not response.is_success:
            body = response.text
            raise RemoteError(
                f"Stock API error {response.status_code}: {response.reason_phrase}. {body[:500]}",
                status_code=response.status_code,
                body=body
            )

        try:
            return response.json() if response.content else {}
        except ValueError as e:
            raise RemoteError(
                f"Stock API returned invalid JSON: {e}",
                status_code=response.status_code,
                body=response.text
            ) from e

    async def get_products(
        self,
        page: int = 1,
        limit: int = 20,
        updated_after: Optional[str] = None,
        search: Optional[str] = None,
        category: Optional[str] = None
    ) -> StockProductPage:
        """Одна страница каталога с вложенными вариантами"""
        params: Dict[str, Any] = {"page": page, "limit": limit}

        if updated_after:
            params["updated_after"] = updated_after
        if search:
            params["search"] = search
        if category:
            params["category"] = category

        response = await self._request("GET", "/erp/products", params=params)
        result = StockProductPage.model_validate(response.get("data", {}))

        logger.info(
            f"Retrieved {len(result.items)} products from Stock "
            f"(page {result.pagination.page}/{result.pagination.total_pages})"
        )
        return result

    async def get_product_by_sku(self, sku: str) -> Optional[StockProduct]:
        """Поиск товара по точному SKU"""
        result = await self.get_products(search=sku, limit=1)
        return next((p for p in result.items if p.sku == sku), None)

    async def get_stock(
        self,
        page: int = 1,
        limit: int = 100,
        location: Optional[str] = None,
        warehouse: Optional[str] = None,
        low_stock: bool = False
    ) -> StockBalancePage:
        """Одна страница остатков по складам"""
        params: Dict[str, Any] = {"page": page, "limit": limit}

        if location:
            params["location"] = location
        if warehouse:
            params["warehouse"] = warehouse
        if low_stock:
            params["low_stock"] = "true"

        response = await self._request("GET", "/erp/stock", params=params)
        return StockBalancePage.model_validate(response.get("data", {}))

    async def create_movement(self, movement: CreateMovementInput) -> MovementConfirmation:
        """Создание документа движения (RECEIVE / ISSUE / TRANSFER / ADJUST)"""
        response = await self._request(
            "POST",
            "/erp/movements",
            json=movement.model_dump(mode="json", by_alias=True, exclude_none=True)
        )
        confirmation = MovementConfirmation.model_validate(response.get("data", {}))

        logger.info(
            f"Stock movement {confirmation.doc_number} created "
            f"({movement.type.value}, {confirmation.lines_count} lines)"
        )
        return confirmation

    async def test_connection(self) -> ConnectionTestResult:
        """Проверка соединения; ошибки возвращаются в результате, а не бросаются"""
        try:
            response = await self._request("GET", "/erp")
            data = response.get("data") or {}
            return ConnectionTestResult(connected=True, name=data.get("name"))
        except Exception as e:
            logger.warning(f"Stock API connection test failed: {e}")
            return ConnectionTestResult(connected=False, error=str(e) or type(e).__name__)

def is_configured(base_url: Optional[str], api_key: Optional[str]) -> bool:
    return bool(base_url) and bool(api_key) and api_key != PLACEHOLDER_API_KEY

def get_stock_client(
    base_url: Optional[str] = None,
    api_key: Optional[str] = None
) -> Optional[StockApiClient]:
    """Клиент из явных параметров или переменных окружения; None, если не настроен"""
    base_url = base_url or settings.STOCK_API_URL
    api_key = api_key or settings.STOCK_API_KEY

    if not is_configured(base_url, api_key):
        return None

    return StockApiClient(base_url, api_key, timeout=settings.STOCK_API_TIMEOUT)

STOCK_API_URL_KEY = "stock_api_url"
STOCK_API_KEY_KEY = "stock_api_key"

async def get_stock_client_from_settings(db) -> Optional[StockApiClient]:
    """Клиент из настроек ERP (таблица settings), с откатом на переменные окружения"""
    from anajak_erp.crud.setting import get_settings

    stored = await get_settings(db, [STOCK_API_URL_KEY, STOCK_API_KEY_KEY])
    return get_stock_client(stored.get(STOCK_API_URL_KEY), stored.get(STOCK_API_KEY_KEY))
