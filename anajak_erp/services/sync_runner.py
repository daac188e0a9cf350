"""
Прогон синхронизации каталога как явная машина состояний:

    idle -> fetching(page) -> reconciling(page) -> advancing | failed(page) | done
                                                 -> cancelled (между страницами)

Страницы запрашиваются строго последовательно. Прогон можно продолжить
со страницы, на которой произошла ошибка (resume), или начать заново (restart).
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional, List, Awaitable, Callable, Union
from uuid import uuid4

from anajak_erp.database import SessionLocal
from anajak_erp.schemas.sync import SyncMode, SyncPageResult
from anajak_erp.services.stock_client import RemoteError
from anajak_erp.services.stock_sync import StockSyncEngine, get_sync_status

logger = logging.getLogger(__name__)

RECENT_PRODUCTS_LIMIT = 20

class SyncRunState(str, Enum):
    IDLE = "idle"
    FETCHING = "fetching"
    RECONCILING = "reconciling"
    ADVANCING = "advancing"
    FAILED = "failed"
    DONE = "done"
    CANCELLED = "cancelled"

ACTIVE_STATES = {SyncRunState.FETCHING, SyncRunState.RECONCILING}

@dataclass
class SyncTotals:
    products_created: int = 0
    products_updated: int = 0
    variants_created: int = 0
    variants_updated: int = 0
    processed_count: int = 0
    errors: List[str] = field(default_factory=list)
    recent_products: List[str] = field(default_factory=list)

    def add(self, result: SyncPageResult) -> None:
        self.products_created += result.products_created
        self.products_updated += result.products_updated
        self.variants_created += result.variants_created
        self.variants_updated += result.variants_updated
        self.processed_count += len(result.synced_products)
        self.errors.extend(result.errors)

        names = [f"{p.sku} - {p.name}" for p in result.synced_products]
        self.recent_products = (self.recent_products + names)[-RECENT_PRODUCTS_LIMIT:]

PageCallback = Callable[["SyncRun", SyncPageResult], Awaitable[None]]

class SyncRun:
    """Состояние одного прогона синхронизации каталога"""

    def __init__(
        self,
        mode: Union[SyncMode, str] = SyncMode.FULL,
        updated_after: Optional[datetime] = None,
        run_id: Optional[str] = None,
        on_page: Optional[PageCallback] = None
    ):
        self.run_id = run_id or str(uuid4())
        self.mode = SyncMode(mode)
        self.updated_after = updated_after
        self.on_page = on_page

        self.state = SyncRunState.IDLE
        self.current_page = 1
        self.failed_page: Optional[int] = None
        self.last_error: Optional[str] = None
        self.total_pages = 0
        self.total_products = 0
        self.totals = SyncTotals()
        self._cancel_requested = False

    def _fail(self, page: int, error: Exception) -> None:
        self.state = SyncRunState.FAILED
        self.failed_page = page
        self.last_error = str(error) or type(error).__name__

    def cancel(self) -> None:
        """Остановить прогон после текущей страницы"""
        self._cancel_requested = True

    async def run(self, engine: StockSyncEngine) -> "SyncRun":
        """Обрабатывать страницы, пока они есть, до ошибки или отмены"""
        if self.state in ACTIVE_STATES:
            raise RuntimeError(f"Sync run {self.run_id} is already in progress")
        if self.state == SyncRunState.DONE:
            return self

        logger.info(f"Sync run {self.run_id} starting at page {self.current_page} (mode={self.mode.value})")

        while True:
            if self._cancel_requested:
                self.state = SyncRunState.CANCELLED
                logger.info(f"Sync run {self.run_id} cancelled before page {self.current_page}")
                break

            page = self.current_page
            self.state = SyncRunState.FETCHING
            try:
                fetched = await engine.fetch_page(page, self.mode, self.updated_after)
                self.state = SyncRunState.RECONCILING
                result = await engine.reconcile_page(fetched)
            except RemoteError as e:
                self._fail(page, e)
                logger.error(f"Sync run {self.run_id} failed at page {page}: {e}")
                break
            except Exception as e:
                logger.exception(f"Sync run {self.run_id} failed at page {page} ({self.state.value})")
                self._fail(page, e)
                break

            self.failed_page = None
            self.last_error = None
            self.total_pages = result.total_pages
            self.total_products = result.total_products
            self.totals.add(result)

            if self.on_page:
                await self.on_page(self, result)

            if not result.has_more:
                self.state = SyncRunState.DONE
                break

            self.state = SyncRunState.ADVANCING
            self.current_page = page + 1

        logger.info(
            f"Sync run {self.run_id} {self.state.value}: "
            f"products created={self.totals.products_created} updated={self.totals.products_updated}, "
            f"variants created={self.totals.variants_created} updated={self.totals.variants_updated}, "
            f"errors={len(self.totals.errors)}"
        )
        return self

    async def resume(self, engine: StockSyncEngine) -> "SyncRun":
        """Повторить страницу, на которой прогон упал, и продолжить"""
        if self.state != SyncRunState.FAILED:
            raise RuntimeError(f"Sync run {self.run_id} is not failed (state={self.state.value})")
        return await self.run(engine)

    def restart(self) -> None:
        """Сбросить прогон к первой странице"""
        if self.state in ACTIVE_STATES:
            raise RuntimeError(f"Sync run {self.run_id} is already in progress")
        self.state = SyncRunState.IDLE
        self.current_page = 1
        self.failed_page = None
        self.last_error = None
        self.total_pages = 0
        self.total_products = 0
        self.totals = SyncTotals()
        self._cancel_requested = False

    def to_dict(self) -> dict:
        return {
            "run_id": self.run_id,
            "mode": self.mode.value,
            "state": self.state.value,
            "current_page": self.current_page,
            "failed_page": self.failed_page,
            "last_error": self.last_error,
            "total_pages": self.total_pages,
            "total_products": self.total_products,
            "products_created": self.totals.products_created,
            "products_updated": self.totals.products_updated,
            "variants_created": self.totals.variants_created,
            "variants_updated": self.totals.variants_updated,
            "processed_count": self.totals.processed_count,
            "errors": list(self.totals.errors),
            "recent_products": list(self.totals.recent_products),
        }

async def incremental_cursor(session_factory=SessionLocal) -> Optional[datetime]:
    """Курсор для инкрементального режима: время последней успешной синхронизации"""
    status = await get_sync_status(session_factory)
    return status.last_sync_at
