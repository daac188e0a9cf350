"""
Синхронизация каталога Stock API в локальные таблицы products / product_variants.

Один вызов sync_page() обрабатывает ровно одну страницу каталога и укладывается
в бюджет времени serverless-функции; пагинацией управляет вызывающий код
(см. services/sync_runner.py). Страницы нельзя обрабатывать параллельно:
каждая страница заново определяет "новые / существующие" по снимку БД.
"""
import asyncio
import logging
import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional, Dict, Any, List, Tuple, Union, Iterable

from anajak_erp.core.config import settings
from anajak_erp.crud import catalog as catalog_crud
from anajak_erp.database import SessionLocal
from anajak_erp.models.product import ItemType, ProductSource, ProductType
from anajak_erp.schemas.stock import StockProduct, StockProductPage, StockVariant
from anajak_erp.schemas.sync import (
    SyncMode, SyncOutcome, SyncPageResult, SyncProductEntry,
    SyncStatus, StockLevelSyncResult
)
from anajak_erp.services.stock_client import StockApiClient, RemoteError
from anajak_erp.services.variant_attributes import resolve_variant_attributes

logger = logging.getLogger(__name__)

class EntityReconciliationError(Exception):
    """Ошибка записи одного товара или варианта; не прерывает страницу"""
    def __init__(self, entity: str, sku: str, cause: BaseException):
        self.entity = entity
        self.sku = sku
        self.cause = cause
        super().__init__(f"{entity.capitalize()} {sku}: {cause}")

class BatchCreateError(Exception):
    """Пакетная вставка вариантов не удалась целиком"""
    def __init__(self, product_sku: str, cause: BaseException):
        self.product_sku = product_sku
        self.cause = cause
        super().__init__(f"Batch variant create for {product_sku} failed: {cause}")

# Запасной вариант, если Stock не передаёт itemType
CATEGORY_TO_ITEM_TYPE = {
    "วัตถุดิบ": ItemType.RAW_MATERIAL.value,
    "อุปกรณ์": ItemType.CONSUMABLE.value,
}

CATEGORY_TO_PRODUCT_TYPE = {
    "เสื้อ": ProductType.T_SHIRT.value,
    "กางเกง": ProductType.PANTS.value,
    "เสื้อแจ็คเก็ต": ProductType.JACKET.value,
}

def resolve_item_type(sp: StockProduct) -> str:
    if sp.item_type:
        return sp.item_type
    if sp.category and sp.category in CATEGORY_TO_ITEM_TYPE:
        return CATEGORY_TO_ITEM_TYPE[sp.category]
    return ItemType.FINISHED_GOOD.value

def map_product_type(category: Optional[str]) -> str:
    return CATEGORY_TO_PRODUCT_TYPE.get(category or "", ProductType.OTHER.value)

def resolve_cost(sp: StockProduct) -> float:
    return sp.last_cost or sp.standard_cost or 0.0

def floor_quantity(value: Optional[float]) -> int:
    return math.floor(value or 0)

def project_product(sp: StockProduct, synced_at: datetime) -> Dict[str, Any]:
    """Полная локальная запись товара; при каждой синхронизации перезаписывается целиком"""
    cost = resolve_cost(sp)
    return {
        "sku": sp.sku,
        "name": sp.name,
        "description": sp.description,
        "product_type": map_product_type(sp.category),
        "category": sp.category,
        "base_price": cost,
        "cost_price": cost,
        "stock_product_id": sp.id,
        "source": ProductSource.STOCK,
        "item_type": resolve_item_type(sp),
        "barcode": sp.barcode,
        "unit": sp.unit,
        "unit_name": sp.unit_name,
        "reorder_point": floor_quantity(sp.reorder_point),
        "total_stock": floor_quantity(sp.total_stock),
        "last_sync_at": synced_at,
        "is_active": True,
    }

def project_variant(sv: StockVariant) -> Dict[str, Any]:
    size, color = resolve_variant_attributes(sv)
    quantity = floor_quantity(sv.total_stock)
    return {
        "size": size,
        "color": color,
        "sku": sv.sku,
        "stock_variant_id": sv.id,
        "barcode": sv.barcode,
        "cost_price": sv.cost_price or 0.0,
        "selling_price": sv.selling_price or 0.0,
        "stock": quantity,
        "total_stock": quantity,
        "is_active": True,
    }

@dataclass
class IdentityIndex:
    """Поиск локальной записи по ID из Stock или по SKU за O(1)"""
    by_stock_id: Dict[str, int] = field(default_factory=dict)
    by_sku: Dict[str, int] = field(default_factory=dict)

    @classmethod
    def from_rows(cls, rows: Iterable[Any], stock_id_attr: str) -> "IdentityIndex":
        index = cls()
        for row in rows:
            index.remember(getattr(row, stock_id_attr), row.sku, row.id)
        return index

    def remember(self, stock_id: Optional[str], sku: str, local_id: int) -> None:
        if stock_id:
            self.by_stock_id[stock_id] = local_id
        self.by_sku[sku] = local_id

    def resolve(self, stock_id: str, sku: str) -> Optional[int]:
        # Совпадение по ID из Stock приоритетнее: SKU мог измениться в Stock
        local_id = self.by_stock_id.get(stock_id)
        if local_id is None:
            local_id = self.by_sku.get(sku)
        return local_id

def _format_cursor(updated_after: Union[datetime, str, None]) -> Optional[str]:
    if isinstance(updated_after, datetime):
        return updated_after.isoformat()
    return updated_after

class StockSyncEngine:
    """Сверка каталога Stock с локальными товарами, по одной странице за вызов"""

    def __init__(
        self,
        client: StockApiClient,
        session_factory=SessionLocal,
        page_size: int = settings.SYNC_PAGE_SIZE,
        stock_page_size: int = settings.STOCK_LEVEL_PAGE_SIZE
    ):
        self.client = client
        self.session_factory = session_factory
        self.page_size = page_size
        self.stock_page_size = stock_page_size

    async def _call(self, operation, *args):
        """Одна операция хранилища в собственной короткой сессии"""
        async with self.session_factory() as db:
            return await operation(db, *args)

    async def sync_page(
        self,
        page: int,
        mode: Union[SyncMode, str] = SyncMode.FULL,
        updated_after: Union[datetime, str, None] = None
    ) -> SyncPageResult:
        """
        Синхронизировать одну страницу каталога.

        Ошибка загрузки страницы (RemoteError) прерывает вызов целиком.
        Ошибки отдельных товаров и вариантов попадают в result.errors.
        """
        fetched = await self.fetch_page(page, mode, updated_after)
        return await self.reconcile_page(fetched)

    async def fetch_page(
        self,
        page: int,
        mode: Union[SyncMode, str] = SyncMode.FULL,
        updated_after: Union[datetime, str, None] = None
    ) -> StockProductPage:
        """Загрузить одну страницу из Stock API (RemoteError не перехватывается)"""
        mode = SyncMode(mode)
        cursor = None
        if mode == SyncMode.INCREMENTAL:
            if updated_after is None:
                raise ValueError("updated_after is required for incremental sync")
            cursor = _format_cursor(updated_after)

        logger.info(f"Fetching Stock page {page} (mode={mode.value}, updated_after={cursor})")
        return await self.client.get_products(page=page, limit=self.page_size, updated_after=cursor)

    async def reconcile_page(self, fetched: StockProductPage) -> SyncPageResult:
        """Сверить загруженную страницу с БД и собрать результат"""
        started = datetime.now(timezone.utc)
        products = fetched.items
        pagination = fetched.pagination

        result = SyncPageResult(
            page=pagination.page,
            total_pages=pagination.total_pages,
            total_products=pagination.total,
            has_more=pagination.page < pagination.total_pages,
        )

        if products:
            product_index, variant_index = await asyncio.gather(
                self._load_product_index(products),
                self._load_variant_index(products),
            )

            synced_at = datetime.now(timezone.utc)
            for sp in products:
                entry = await self._sync_product(sp, product_index, variant_index, result, synced_at)
                result.synced_products.append(entry)

        duration = (datetime.now(timezone.utc) - started).total_seconds()
        logger.info(
            f"Stock page {result.page}/{result.total_pages} done in {duration:.2f}s: "
            f"products created={result.products_created} updated={result.products_updated}, "
            f"variants created={result.variants_created} updated={result.variants_updated}, "
            f"errors={len(result.errors)}"
        )
        return result

    async def _load_product_index(self, products: List[StockProduct]) -> IdentityIndex:
        rows = await self._call(
            catalog_crud.find_products_by_identity,
            {p.sku for p in products},
            {p.id for p in products},
        )
        return IdentityIndex.from_rows(rows, "stock_product_id")

    async def _load_variant_index(self, products: List[StockProduct]) -> IdentityIndex:
        variants = [v for p in products for v in p.variants]
        if not variants:
            return IdentityIndex()

        rows = await self._call(
            catalog_crud.find_variants_by_identity,
            {v.sku for v in variants},
            {v.id for v in variants},
        )
        return IdentityIndex.from_rows(rows, "stock_variant_id")

    async def _sync_product(
        self,
        sp: StockProduct,
        product_index: IdentityIndex,
        variant_index: IdentityIndex,
        result: SyncPageResult,
        synced_at: datetime
    ) -> SyncProductEntry:
        try:
            existing_id = product_index.resolve(sp.id, sp.sku)
            data = project_product(sp, synced_at)

            if existing_id is not None:
                await self._call(catalog_crud.update_product, existing_id, data)
                product_id = existing_id
                outcome = SyncOutcome.UPDATED
                result.products_updated += 1
            else:
                product_id = await self._call(catalog_crud.create_product, data)
                outcome = SyncOutcome.CREATED
                result.products_created += 1

            product_index.remember(sp.id, sp.sku, product_id)

            if sp.has_variants and sp.variants:
                await self._sync_variants(sp, product_id, variant_index, result)

            return SyncProductEntry(
                sku=sp.sku,
                name=sp.name,
                status=outcome,
                variant_count=len(sp.variants),
            )

        except Exception as e:
            error = EntityReconciliationError("product", sp.sku, e)
            logger.error(f"Error syncing product: {error}")
            result.errors.append(str(error))
            return SyncProductEntry(
                sku=sp.sku,
                name=sp.name,
                status=SyncOutcome.ERROR,
                variant_count=len(sp.variants),
                error=str(e),
            )

    async def _sync_variants(
        self,
        sp: StockProduct,
        product_id: int,
        variant_index: IdentityIndex,
        result: SyncPageResult
    ) -> None:
        new_rows: List[Dict[str, Any]] = []
        updates: List[Tuple[str, int, Dict[str, Any]]] = []

        for sv in sp.variants:
            try:
                data = project_variant(sv)
            except Exception as e:
                result.errors.append(str(EntityReconciliationError("variant", sv.sku, e)))
                continue

            existing_id = variant_index.resolve(sv.id, sv.sku)
            if existing_id is None:
                new_rows.append({**data, "product_id": product_id})
            else:
                updates.append((sv.sku, existing_id, data))

        if new_rows:
            try:
                result.variants_created += await self._create_variants_batch(sp.sku, new_rows)
            except BatchCreateError as e:
                logger.warning(f"{e}; falling back to per-row create")
                await self._create_variants_individually(new_rows, result)

        if updates:
            outcomes = await asyncio.gather(
                *(self._call(catalog_crud.update_variant, variant_id, data) for _, variant_id, data in updates),
                return_exceptions=True,
            )
            for (sku, _, _), outcome in zip(updates, outcomes):
                if isinstance(outcome, Exception):
                    error = EntityReconciliationError("variant", sku, outcome)
                    logger.error(f"Error updating variant: {error}")
                    result.errors.append(str(error))
                else:
                    result.variants_updated += 1

    async def _create_variants_batch(self, product_sku: str, rows: List[Dict[str, Any]]) -> int:
        try:
            return await self._call(catalog_crud.create_variants_bulk, rows)
        except Exception as e:
            raise BatchCreateError(product_sku, e) from e

    async def _create_variants_individually(
        self,
        rows: List[Dict[str, Any]],
        result: SyncPageResult
    ) -> None:
        for row in rows:
            try:
                await self._call(catalog_crud.create_variant, row)
                result.variants_created += 1
            except Exception as e:
                error = EntityReconciliationError("variant", row["sku"], e)
                logger.error(f"Error creating variant: {error}")
                result.errors.append(str(error))

    async def sync_stock_levels(self) -> StockLevelSyncResult:
        """
        Лёгкая синхронизация: только остатки по SKU, по всем страницам /erp/stock.
        Товары и варианты не создаются.
        """
        result = StockLevelSyncResult()
        page = 1
        total_pages = 1

        while page <= total_pages:
            try:
                response = await self.client.get_stock(page=page, limit=self.stock_page_size)
            except RemoteError as e:
                logger.error(f"Error fetching stock page {page}: {e}")
                result.errors.append(f"Page {page}: {e}")
                break

            total_pages = response.pagination.total_pages
            synced_at = datetime.now(timezone.utc)

            for item in response.items:
                try:
                    quantity = floor_quantity(item.qty)
                    if item.variant_sku:
                        updated = await self._call(catalog_crud.set_variant_stock_by_sku, item.variant_sku, quantity)
                    elif item.product_sku:
                        updated = await self._call(
                            catalog_crud.set_product_stock_by_sku, item.product_sku, quantity, synced_at
                        )
                    else:
                        continue

                    if updated > 0:
                        result.updated += 1

                except Exception as e:
                    logger.error(f"Error updating stock for {item.product_sku}: {e}")
                    result.errors.append(f"Stock {item.product_sku}: {e}")

            page += 1

        logger.info(f"Stock levels synced: updated={result.updated}, errors={len(result.errors)}")
        return result

async def get_sync_status(session_factory=SessionLocal) -> SyncStatus:
    """Сводка по локальным товарам и время последней синхронизации"""

    async def _run(operation, *args):
        async with session_factory() as db:
            return await operation(db, *args)

    stock_count, local_count, total_count, last_sync_at = await asyncio.gather(
        _run(catalog_crud.count_products, ProductSource.STOCK),
        _run(catalog_crud.count_products, ProductSource.LOCAL),
        _run(catalog_crud.count_products),
        _run(catalog_crud.get_last_sync_at),
    )

    return SyncStatus(
        last_sync_at=last_sync_at,
        total_stock_products=stock_count,
        total_local_products=local_count,
        total_products=total_count,
    )
