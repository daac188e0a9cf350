# anajak_erp/api/v1/endpoints/orders.py
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession
from anajak_erp.database import get_db
from anajak_erp.crud.order import recalculate_order_totals, recalculate_order_cost
from anajak_erp.schemas.pricing import OrderTotalsResponse

router = APIRouter()

@router.post("/{order_id}/recalculate", response_model=OrderTotalsResponse)
async def recalculate_totals(order_id: int, db: AsyncSession = Depends(get_db)):
    """Пересчёт итогов заказа по позициям, сборам и скидке"""
    order = await recalculate_order_totals(db, order_id)
    if not order:
        raise HTTPException(status_code=404, detail="Order not found")
    return order

@router.post("/{order_id}/recalculate-cost", response_model=OrderTotalsResponse)
async def recalculate_cost(order_id: int, db: AsyncSession = Depends(get_db)):
    """Пересчёт себестоимости и маржи заказа"""
    order = await recalculate_order_cost(db, order_id)
    if not order:
        raise HTTPException(status_code=404, detail="Order not found")
    return order
