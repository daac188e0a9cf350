# anajak_erp/api/v1/endpoints/stock_sync.py
from typing import Optional
from fastapi import APIRouter, Depends
from anajak_erp.api.deps import get_configured_stock_client, get_session_factory
from anajak_erp.schemas.stock import ConnectionTestResult
from anajak_erp.schemas.sync import (
    SyncMode, SyncPageRequest, SyncPageResult, SyncStatus, StockLevelSyncResult,
    IssueMaterialsRequest, IssueMaterialsResult,
    ReceiveFinishedRequest, ReceiveFinishedResult, ConnectionTestRequest
)
from anajak_erp.services.stock_client import (
    StockApiClient, RemoteError, get_stock_client, get_stock_client_from_settings
)
from anajak_erp.services.stock_movements import issue_materials, receive_finished_goods
from anajak_erp.services.stock_sync import StockSyncEngine, get_sync_status
from anajak_erp.services.sync_runner import incremental_cursor
from anajak_erp.services.websocket_manager import publish_sync_page, publish_sync_error
import logging

router = APIRouter()
logger = logging.getLogger(__name__)

@router.post("/test-connection", response_model=ConnectionTestResult)
async def test_connection(
    request: Optional[ConnectionTestRequest] = None,
    session_factory = Depends(get_session_factory)
):
    """
    Проверка соединения со Stock API.

    Если в теле переданы apiUrl/apiKey, проверяются они (до сохранения настроек),
    иначе используются сохранённые настройки.
    """
    if request and request.api_url and request.api_key:
        client = get_stock_client(request.api_url, request.api_key)
    else:
        async with session_factory() as db:
            client = await get_stock_client_from_settings(db)

    if client is None:
        return ConnectionTestResult(connected=False, error="Stock API not configured")

    async with client:
        return await client.test_connection()

@router.post("/sync-page", response_model=SyncPageResult)
async def sync_page(
    request: SyncPageRequest,
    client: StockApiClient = Depends(get_configured_stock_client),
    session_factory = Depends(get_session_factory)
):
    """Синхронизация одной страницы каталога Stock"""
    mode = request.mode
    updated_after = request.updated_after

    if mode == SyncMode.INCREMENTAL and updated_after is None:
        updated_after = await incremental_cursor(session_factory)
        if updated_after is None:
            logger.info("No previous sync found, falling back to full sync")
            mode = SyncMode.FULL

    engine = StockSyncEngine(client, session_factory=session_factory)
    try:
        result = await engine.sync_page(request.page, mode, updated_after)
    except RemoteError as e:
        if request.run_id:
            await publish_sync_error(request.run_id, request.page, str(e))
        raise

    if request.run_id:
        await publish_sync_page(request.run_id, result)

    return result

@router.post("/sync-stock", response_model=StockLevelSyncResult)
async def sync_stock(
    client: StockApiClient = Depends(get_configured_stock_client),
    session_factory = Depends(get_session_factory)
):
    """Обновление остатков по всем страницам /erp/stock"""
    engine = StockSyncEngine(client, session_factory=session_factory)
    return await engine.sync_stock_levels()

@router.get("/status", response_model=SyncStatus)
async def sync_status(session_factory = Depends(get_session_factory)):
    """Сводка синхронизации"""
    return await get_sync_status(session_factory)

@router.post("/issue-materials", response_model=IssueMaterialsResult)
async def issue_production_materials(
    request: IssueMaterialsRequest,
    client: StockApiClient = Depends(get_configured_stock_client),
    session_factory = Depends(get_session_factory)
):
    """Списание сырья на производство"""
    return await issue_materials(client, request, session_factory=session_factory)

@router.post("/receive-finished", response_model=ReceiveFinishedResult)
async def receive_finished(
    request: ReceiveFinishedRequest,
    client: StockApiClient = Depends(get_configured_stock_client)
):
    """Приёмка готовой продукции на склад"""
    return await receive_finished_goods(client, request)
