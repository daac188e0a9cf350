"""Расчёт стоимости позиций и итогов заказа.

Функции чистые: работают одинаково для моделей БД и данных формы,
ввода-вывода нет.
"""
from typing import Iterable, Optional

from anajak_erp.schemas.pricing import (
    AddonPricingType, PricingItem, PricingOrder, OrderTotals
)

def calculate_item_subtotal(item: PricingItem) -> float:
    """
    Сумма по позиции:
        base  = qty * base_unit_price
        print = qty * SUM(prints.unit_price)
        addon = SUM(PER_PIECE: (addon.quantity or qty) * unit_price,
                    PER_ORDER: unit_price)
    """
    qty = item.total_quantity

    base_cost = qty * item.base_unit_price
    print_cost = qty * sum(p.unit_price for p in item.prints)

    addon_cost = 0.0
    for addon in item.addons:
        if addon.pricing_type == AddonPricingType.PER_PIECE:
            addon_qty = addon.quantity if addon.quantity is not None else qty
            addon_cost += addon_qty * addon.unit_price
        else:
            addon_cost += addon.unit_price

    return base_cost + print_cost + addon_cost

def calculate_item_unit_price(item: PricingItem) -> float:
    """Цена за штуку: база + печать + поштучные допы (PER_ORDER не входят)"""
    print_per_piece = sum(p.unit_price for p in item.prints)
    addon_per_piece = sum(
        a.unit_price for a in item.addons
        if a.pricing_type == AddonPricingType.PER_PIECE
    )
    return item.base_unit_price + print_per_piece + addon_per_piece

def calculate_order_total(order: PricingOrder) -> OrderTotals:
    subtotal_items = sum(calculate_item_subtotal(item) for item in order.items)
    subtotal_fees = sum(fee.amount for fee in order.fees)
    discount = order.discount or 0.0

    # Итог заказа не бывает отрицательным
    total_amount = max(0.0, subtotal_items + subtotal_fees - discount)

    return OrderTotals(
        subtotal_items=subtotal_items,
        subtotal_fees=subtotal_fees,
        discount=discount,
        total_amount=total_amount
    )

def calculate_profit_margin(total_amount: float, total_cost: float) -> Optional[float]:
    """(выручка - затраты) / выручка * 100; None при нулевой выручке"""
    if total_amount <= 0:
        return None
    return (total_amount - total_cost) / total_amount * 100

def calculate_total_quantity(quantities: Iterable[int]) -> int:
    return sum(quantities)
