import asyncio
import logging
from typing import Optional, Dict, Any
from datetime import datetime
from celery import current_task
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool
from anajak_erp.core.config import settings
from anajak_erp.schemas.sync import SyncMode, SyncPageResult
from anajak_erp.services.stock_client import (
    StockNotConfiguredError, get_stock_client_from_settings
)
from anajak_erp.services.stock_sync import StockSyncEngine
from anajak_erp.services.sync_runner import SyncRun, SyncRunState, incremental_cursor
from anajak_erp.tasks.celery_app import celery_app

logger = logging.getLogger(__name__)

RETRY_COUNTDOWN = 60

def _task_session_factory():
    """
    Отдельный движок на каждый запуск задачи: asyncio.run() создаёт новый
    event loop, а соединения пула привязаны к loop, в котором были открыты.
    """
    engine = create_async_engine(settings.DATABASE_URL, poolclass=NullPool)
    factory = async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)
    return engine, factory

async def _log_page(run: SyncRun, result: SyncPageResult):
    logger.info(
        f"Sync run {run.run_id}: page {result.page}/{result.total_pages}, "
        f"processed {run.totals.processed_count}/{result.total_products}"
    )

async def run_catalog_sync(
    session_factory,
    mode: str = SyncMode.INCREMENTAL.value,
    start_page: int = 1,
    updated_after: Optional[datetime] = None,
    run_id: Optional[str] = None
) -> SyncRun:
    """
    Прогнать синхронизацию каталога до конца (или до первой страницы с ошибкой).

    Для инкрементального режима без курсора курсором становится время последней
    синхронизации; если синхронизаций ещё не было, выполняется полная.
    """
    mode = SyncMode(mode)
    if mode == SyncMode.INCREMENTAL and updated_after is None:
        updated_after = await incremental_cursor(session_factory)
        if updated_after is None:
            logger.info("No previous sync found, running full sync")
            mode = SyncMode.FULL

    async with session_factory() as db:
        client = await get_stock_client_from_settings(db)
    if client is None:
        raise StockNotConfiguredError("Stock API not configured")

    run = SyncRun(mode=mode, updated_after=updated_after, run_id=run_id, on_page=_log_page)
    run.current_page = start_page

    async with client:
        await run.run(StockSyncEngine(client, session_factory=session_factory))
    return run

async def run_stock_level_sync(session_factory) -> Dict[str, Any]:
    """Лёгкая синхронизация остатков"""
    async with session_factory() as db:
        client = await get_stock_client_from_settings(db)
    if client is None:
        raise StockNotConfiguredError("Stock API not configured")

    async with client:
        result = await StockSyncEngine(client, session_factory=session_factory).sync_stock_levels()
    return result.model_dump()

@celery_app.task(bind=True, max_retries=3)
def sync_catalog(
    self,
    mode: str = SyncMode.INCREMENTAL.value,
    start_page: int = 1,
    updated_after: Optional[str] = None,
    run_id: Optional[str] = None
):
    """
    Задача синхронизации каталога Stock постранично.

    Если страница не загрузилась, задача повторяется с этой же страницы
    и с тем же курсором.
    """
    task_id = current_task.request.id if current_task else None
    logger.info(f"Starting catalog sync task {task_id} (mode={mode}, page={start_page})")

    async def _run():
        engine, factory = _task_session_factory()
        try:
            return await run_catalog_sync(
                factory,
                mode=mode,
                start_page=start_page,
                updated_after=datetime.fromisoformat(updated_after) if updated_after else None,
                run_id=run_id or task_id
            )
        finally:
            await engine.dispose()

    try:
        run = asyncio.run(_run())
    except StockNotConfiguredError as e:
        logger.warning(f"Catalog sync task {task_id} skipped: {e}")
        return {"status": "skipped", "reason": str(e)}

    if run.state == SyncRunState.FAILED:
        logger.error(f"Catalog sync task {task_id} failed at page {run.failed_page}: {run.last_error}")
        raise self.retry(
            kwargs={
                "mode": run.mode.value,
                "start_page": run.failed_page,
                "updated_after": run.updated_after.isoformat() if run.updated_after else None,
                "run_id": run.run_id,
            },
            exc=RuntimeError(run.last_error),
            countdown=RETRY_COUNTDOWN
        )

    return run.to_dict()

@celery_app.task
def sync_stock_levels():
    """Задача синхронизации остатков из Stock"""

    async def _run():
        engine, factory = _task_session_factory()
        try:
            return await run_stock_level_sync(factory)
        finally:
            await engine.dispose()

    try:
        return asyncio.run(_run())
    except StockNotConfiguredError as e:
        logger.warning(f"Stock level sync skipped: {e}")
        return {"status": "skipped", "reason": str(e)}
