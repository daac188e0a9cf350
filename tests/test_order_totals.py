import pytest
from anajak_erp.crud.order import recalculate_order_totals, recalculate_order_cost
from anajak_erp.models.order import (
    Order, OrderItem, OrderItemVariant, OrderItemPrint, OrderItemAddon, OrderFee, CostEntry
)

async def _seed_order(session_factory, discount=0.0):
    async with session_factory() as db:
        order = Order(order_number="ORD-0001", title="เสื้อทีมงาน", discount=discount)
        item = OrderItem(
            sort_order=0,
            product_type="T_SHIRT",
            base_unit_price=80,
            variants=[
                OrderItemVariant(size="M", color="ขาว", quantity=30),
                OrderItemVariant(size="L", color="ขาว", quantity=40),
            ],
            prints=[OrderItemPrint(position="FRONT", unit_price=45), OrderItemPrint(position="BACK", unit_price=30)],
            addons=[
                OrderItemAddon(name="ป้ายคอ", pricing_type="PER_PIECE", unit_price=5),
                OrderItemAddon(name="ถุงแพ็ค", pricing_type="PER_PIECE", unit_price=8),
                OrderItemAddon(name="สติ๊กเกอร์", pricing_type="PER_PIECE", unit_price=3),
            ],
        )
        order.items.append(item)
        order.fees.append(OrderFee(fee_type="DELIVERY", name="ค่าส่ง", amount=150))
        db.add(order)
        await db.commit()
        return order.id

@pytest.mark.asyncio
async def test_recalculate_order_totals(session_factory):
    order_id = await _seed_order(session_factory, discount=120)

    async with session_factory() as db:
        order = await recalculate_order_totals(db, order_id)

    assert order.items[0].total_quantity == 70
    assert order.items[0].subtotal == 11970
    assert order.subtotal_items == 11970
    assert order.subtotal_fees == 150
    assert order.total_amount == 11970 + 150 - 120
    assert order.profit_margin == 100.0

    async with session_factory() as db:
        stored = await db.get(Order, order_id)
        assert stored.total_amount == 12000

@pytest.mark.asyncio
async def test_discount_larger_than_subtotal_floors_total(session_factory):
    order_id = await _seed_order(session_factory, discount=50000)

    async with session_factory() as db:
        order = await recalculate_order_totals(db, order_id)

    assert order.total_amount == 0
    assert order.profit_margin is None

@pytest.mark.asyncio
async def test_recalculate_order_cost(session_factory):
    order_id = await _seed_order(session_factory)
    async with session_factory() as db:
        await recalculate_order_totals(db, order_id)
        db.add_all([
            CostEntry(order_id=order_id, category="MATERIAL", name="ผ้า", amount=4000),
            CostEntry(order_id=order_id, category="PRINT", name="สกรีน", amount=2120),
        ])
        await db.commit()

    async with session_factory() as db:
        order = await recalculate_order_cost(db, order_id)

    assert order.total_cost == 6120
    assert order.profit_margin == pytest.approx((12120 - 6120) / 12120 * 100)

@pytest.mark.asyncio
async def test_unknown_order_returns_none(session_factory):
    async with session_factory() as db:
        assert await recalculate_order_totals(db, 999) is None
        assert await recalculate_order_cost(db, 999) is None
