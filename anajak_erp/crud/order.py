# anajak_erp/crud/order.py
from typing import Optional
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload
from anajak_erp.models.order import Order, OrderItem, CostEntry
from anajak_erp.schemas.pricing import (
    PricingItem, PricingPrint, PricingAddon, PricingFee, PricingOrder
)
from anajak_erp.services.pricing import (
    calculate_item_subtotal, calculate_order_total,
    calculate_profit_margin, calculate_total_quantity
)

async def get_order_with_lines(db: AsyncSession, order_id: int) -> Optional[Order]:
    """Заказ вместе с позициями, печатью, допами и сборами"""
    result = await db.execute(
        select(Order)
        .where(Order.id == order_id)
        .options(
            selectinload(Order.items).selectinload(OrderItem.variants),
            selectinload(Order.items).selectinload(OrderItem.prints),
            selectinload(Order.items).selectinload(OrderItem.addons),
            selectinload(Order.fees),
        )
    )
    return result.scalar_one_or_none()

def to_pricing_item(item: OrderItem) -> PricingItem:
    return PricingItem(
        base_unit_price=item.base_unit_price or 0.0,
        total_quantity=item.total_quantity or 0,
        prints=[PricingPrint(unit_price=p.unit_price or 0.0) for p in item.prints],
        addons=[
            PricingAddon(pricing_type=a.pricing_type, unit_price=a.unit_price or 0.0, quantity=a.quantity)
            for a in item.addons
        ],
    )

async def recalculate_order_totals(db: AsyncSession, order_id: int) -> Optional[Order]:
    """Пересчитать денормализованные итоги заказа после изменения позиций/сборов/скидки"""
    order = await get_order_with_lines(db, order_id)
    if not order:
        return None

    pricing_items = []
    for item in order.items:
        item.total_quantity = calculate_total_quantity(v.quantity or 0 for v in item.variants)
        pricing_item = to_pricing_item(item)
        item.subtotal = calculate_item_subtotal(pricing_item)
        pricing_items.append(pricing_item)

    totals = calculate_order_total(PricingOrder(
        items=pricing_items,
        fees=[PricingFee(amount=f.amount or 0.0) for f in order.fees],
        discount=order.discount or 0.0,
        platform_fee=order.platform_fee,
    ))

    order.subtotal_items = totals.subtotal_items
    order.subtotal_fees = totals.subtotal_fees
    order.discount = totals.discount
    order.total_amount = totals.total_amount
    order.profit_margin = calculate_profit_margin(order.total_amount, order.total_cost or 0.0)

    await db.commit()
    return order

async def recalculate_order_cost(db: AsyncSession, order_id: int) -> Optional[Order]:
    """Пересчитать себестоимость и маржу заказа по записям затрат"""
    order = await db.get(Order, order_id)
    if not order:
        return None

    total_cost = (await db.execute(
        select(func.coalesce(func.sum(CostEntry.amount), 0.0)).where(CostEntry.order_id == order_id)
    )).scalar()

    order.total_cost = float(total_cost or 0.0)
    order.profit_margin = calculate_profit_margin(order.total_amount or 0.0, order.total_cost)

    await db.commit()
    return order
