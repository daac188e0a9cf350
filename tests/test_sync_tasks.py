import asyncio
from datetime import timedelta
import pytest
import httpx
from unittest.mock import AsyncMock, patch
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool
from anajak_erp.core.config import settings
from anajak_erp.database import create_tables
from anajak_erp.models.product import Product
from anajak_erp.services.stock_client import StockApiClient, RemoteError
from anajak_erp.services.sync_runner import SyncRunState
from anajak_erp.tasks import sync_tasks
from anajak_erp.tasks.celery_app import celery_app

MOCK_BASE_URL = "http://mock-stock/api"

def _mock_client(app):
    return StockApiClient(MOCK_BASE_URL, "test-api-key-123", transport=httpx.ASGITransport(app=app))

@pytest.fixture
def task_database(tmp_path):
    """SQLite файл и фабрика (движок, сессии) в стиле _task_session_factory"""
    url = f"sqlite+aiosqlite:///{tmp_path / 'tasks.db'}"

    async def _init():
        engine = create_async_engine(url)
        await create_tables(engine)
        await engine.dispose()

    asyncio.run(_init())

    def make():
        engine = create_async_engine(url, poolclass=NullPool)
        return engine, async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)

    return make

def _count_products(make):
    async def _count():
        engine, factory = make()
        try:
            async with factory() as db:
                return (await db.execute(select(func.count(Product.id)))).scalar()
        finally:
            await engine.dispose()

    return asyncio.run(_count())

@pytest.mark.asyncio
async def test_run_catalog_sync_drives_all_pages(session_factory, mock_stock_data):
    with patch.object(sync_tasks, "get_stock_client_from_settings",
                      AsyncMock(return_value=_mock_client(mock_stock_data.app))):
        run = await sync_tasks.run_catalog_sync(session_factory, mode="full")

    assert run.state == SyncRunState.DONE
    assert run.totals.products_created == 45
    assert run.total_pages == 3

@pytest.mark.asyncio
async def test_incremental_run_uses_last_sync_time(session_factory, mock_stock_data):
    with patch.object(sync_tasks, "get_stock_client_from_settings",
                      AsyncMock(side_effect=lambda db: _mock_client(mock_stock_data.app))):
        await sync_tasks.run_catalog_sync(session_factory, mode="full")
        second = await sync_tasks.run_catalog_sync(session_factory, mode="incremental")

    # Все товары мок-сервера обновлены раньше первой синхронизации
    assert second.mode.value == "incremental"
    assert second.updated_after is not None
    assert second.totals.processed_count == 0
    assert second.state == SyncRunState.DONE

@pytest.mark.asyncio
async def test_run_catalog_sync_requires_configuration(session_factory):
    with patch.object(sync_tasks, "get_stock_client_from_settings", AsyncMock(return_value=None)):
        with pytest.raises(sync_tasks.StockNotConfiguredError):
            await sync_tasks.run_catalog_sync(session_factory)

def test_sync_catalog_task(task_database, mock_stock_data):
    """Задача Celery проходит весь каталог"""
    with patch.object(sync_tasks, "_task_session_factory", task_database), \
         patch.object(sync_tasks, "get_stock_client_from_settings",
                      AsyncMock(side_effect=lambda db: _mock_client(mock_stock_data.app))):
        result = sync_tasks.sync_catalog("full")

    assert result["state"] == "done"
    assert result["products_created"] == 45
    assert _count_products(task_database) == 45

def test_sync_catalog_task_retries_from_failed_page(task_database, mock_stock_data):
    client = _mock_client(mock_stock_data.app)
    original = client.get_products

    async def fail_on_second_page(page=1, **kwargs):
        if page == 2:
            raise RemoteError("Stock API error 504: Gateway Timeout", status_code=504)
        return await original(page=page, **kwargs)

    client.get_products = fail_on_second_page

    with patch.object(sync_tasks, "_task_session_factory", task_database), \
         patch.object(sync_tasks, "get_stock_client_from_settings", AsyncMock(return_value=client)), \
         patch.object(sync_tasks.sync_catalog, "retry", side_effect=RuntimeError("retry scheduled")) as retry:
        with pytest.raises(RuntimeError, match="retry scheduled"):
            sync_tasks.sync_catalog("full")

    kwargs = retry.call_args.kwargs["kwargs"]
    assert kwargs["start_page"] == 2
    assert kwargs["mode"] == "full"
    assert retry.call_args.kwargs["countdown"] == sync_tasks.RETRY_COUNTDOWN
    assert _count_products(task_database) == 20

def test_sync_catalog_task_retries_after_reconcile_error(task_database, mock_stock_data):
    with patch.object(sync_tasks, "_task_session_factory", task_database), \
         patch.object(sync_tasks, "get_stock_client_from_settings",
                      AsyncMock(side_effect=lambda db: _mock_client(mock_stock_data.app))), \
         patch.object(sync_tasks.StockSyncEngine, "reconcile_page",
                      AsyncMock(side_effect=RuntimeError("db lookup failed"))), \
         patch.object(sync_tasks.sync_catalog, "retry", side_effect=RuntimeError("retry scheduled")) as retry:
        with pytest.raises(RuntimeError, match="retry scheduled"):
            sync_tasks.sync_catalog("full")

    assert retry.call_args.kwargs["kwargs"]["start_page"] == 1
    assert str(retry.call_args.kwargs["exc"]) == "db lookup failed"

def test_sync_catalog_task_skips_when_not_configured(task_database):
    with patch.object(sync_tasks, "_task_session_factory", task_database), \
         patch.object(sync_tasks, "get_stock_client_from_settings", AsyncMock(return_value=None)):
        result = sync_tasks.sync_catalog("full")

    assert result["status"] == "skipped"

def test_beat_schedule():
    schedule = celery_app.conf.beat_schedule

    assert schedule["sync-catalog-incremental"]["task"] == "anajak_erp.tasks.sync_tasks.sync_catalog"
    assert schedule["sync-catalog-incremental"]["args"] == ("incremental",)
    assert schedule["sync-stock-levels"]["task"] == "anajak_erp.tasks.sync_tasks.sync_stock_levels"
    assert schedule["sync-catalog-incremental"]["schedule"] == timedelta(seconds=settings.SYNC_CATALOG_INTERVAL)
    assert schedule["sync-stock-levels"]["schedule"] == timedelta(seconds=settings.SYNC_STOCK_INTERVAL)
