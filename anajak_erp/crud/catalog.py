# anajak_erp/crud/catalog.py
from datetime import datetime
from typing import Optional, List, Dict, Any, Iterable
from sqlalchemy import select, update, or_, func
from sqlalchemy.engine import Row
from sqlalchemy.ext.asyncio import AsyncSession
from anajak_erp.models.product import Product, ProductVariant, ProductSource

async def find_products_by_identity(
    db: AsyncSession,
    skus: Iterable[str],
    stock_ids: Iterable[str]
) -> List[Row]:
    """Товары, совпадающие по SKU или по ID из Stock (id, sku, stock_product_id)"""
    result = await db.execute(
        select(Product.id, Product.sku, Product.stock_product_id).where(
            or_(Product.sku.in_(list(skus)), Product.stock_product_id.in_(list(stock_ids)))
        )
    )
    return list(result.all())

async def find_variants_by_identity(
    db: AsyncSession,
    skus: Iterable[str],
    stock_ids: Iterable[str]
) -> List[Row]:
    """Варианты, совпадающие по SKU или по ID из Stock (id, sku, stock_variant_id)"""
    result = await db.execute(
        select(ProductVariant.id, ProductVariant.sku, ProductVariant.stock_variant_id).where(
            or_(
                ProductVariant.sku.in_(list(skus)),
                ProductVariant.stock_variant_id.in_(list(stock_ids))
            )
        )
    )
    return list(result.all())

async def create_product(db: AsyncSession, data: Dict[str, Any]) -> int:
    """Создать товар, вернуть его id"""
    db_product = Product(**data)
    db.add(db_product)
    await db.commit()
    return db_product.id

async def update_product(db: AsyncSession, product_id: int, data: Dict[str, Any]) -> None:
    """Полная перезапись полей товара"""
    await db.execute(update(Product).where(Product.id == product_id).values(**data))
    await db.commit()

async def create_variant(db: AsyncSession, data: Dict[str, Any]) -> int:
    db_variant = ProductVariant(**data)
    db.add(db_variant)
    await db.commit()
    return db_variant.id

async def create_variants_bulk(db: AsyncSession, rows: List[Dict[str, Any]]) -> int:
    """Пакетная вставка вариантов; дубликаты по уникальным ключам пропускаются.

    Возвращает число реально вставленных строк.
    """
    if not rows:
        return 0

    stmt = _insert_ignoring_duplicates(db, ProductVariant).values(rows)
    result = await db.execute(stmt)
    await db.commit()

    return result.rowcount if result.rowcount is not None and result.rowcount >= 0 else len(rows)

async def update_variant(db: AsyncSession, variant_id: int, data: Dict[str, Any]) -> None:
    await db.execute(update(ProductVariant).where(ProductVariant.id == variant_id).values(**data))
    await db.commit()

def _insert_ignoring_duplicates(db: AsyncSession, model):
    dialect = db.get_bind().dialect.name

    if dialect == "postgresql":
        from sqlalchemy.dialects.postgresql import insert
    elif dialect == "sqlite":
        from sqlalchemy.dialects.sqlite import insert
    else:
        raise NotImplementedError(f"Duplicate-skipping insert is not supported for {dialect}")

    return insert(model).on_conflict_do_nothing()

async def count_products(db: AsyncSession, source: Optional[ProductSource] = None) -> int:
    query = select(func.count(Product.id))
    if source is not None:
        query = query.where(Product.source == source)
    return (await db.execute(query)).scalar() or 0

async def get_last_sync_at(db: AsyncSession) -> Optional[datetime]:
    """Время последней синхронизации среди товаров из Stock"""
    result = await db.execute(
        select(func.max(Product.last_sync_at)).where(
            Product.source == ProductSource.STOCK,
            Product.last_sync_at.is_not(None)
        )
    )
    return result.scalar()

async def set_variant_stock_by_sku(db: AsyncSession, sku: str, quantity: int) -> int:
    result = await db.execute(
        update(ProductVariant)
        .where(ProductVariant.sku == sku)
        .values(stock=quantity, total_stock=quantity)
    )
    await db.commit()
    return result.rowcount

async def set_product_stock_by_sku(
    db: AsyncSession,
    sku: str,
    quantity: int,
    synced_at: datetime
) -> int:
    result = await db.execute(
        update(Product)
        .where(Product.sku == sku)
        .values(total_stock=quantity, last_sync_at=synced_at)
    )
    await db.commit()
    return result.rowcount

async def decrement_stock(
    db: AsyncSession,
    product_id: int,
    variant_id: Optional[int],
    amount: int
) -> None:
    """Уменьшить локальные остатки после списания в Stock (без commit)"""
    if variant_id is not None:
        await db.execute(
            update(ProductVariant)
            .where(ProductVariant.id == variant_id)
            .values(
                stock=ProductVariant.stock - amount,
                total_stock=ProductVariant.total_stock - amount
            )
        )
    await db.execute(
        update(Product)
        .where(Product.id == product_id)
        .values(total_stock=Product.total_stock - amount)
    )
