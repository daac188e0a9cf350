# anajak_erp/schemas/pricing.py
from typing import Optional, List
from enum import Enum
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class AddonPricingType(str, Enum):
    PER_PIECE = "PER_PIECE"   # за каждую штуку
    PER_ORDER = "PER_ORDER"   # один раз на заказ


class PricingModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class PricingPrint(PricingModel):
    unit_price: float = 0.0


class PricingAddon(PricingModel):
    pricing_type: AddonPricingType
    unit_price: float = 0.0
    quantity: Optional[int] = None


class PricingItem(PricingModel):
    base_unit_price: float = 0.0
    total_quantity: int = Field(0, ge=0)
    prints: List[PricingPrint] = []
    addons: List[PricingAddon] = []


class PricingFee(PricingModel):
    amount: float = 0.0


class PricingOrder(PricingModel):
    items: List[PricingItem] = []
    fees: List[PricingFee] = []
    discount: float = 0.0
    platform_fee: Optional[float] = None


class OrderTotals(PricingModel):
    subtotal_items: float
    subtotal_fees: float
    discount: float
    total_amount: float


class OrderTotalsResponse(PricingModel):
    """Сохранённые итоги заказа после пересчёта"""
    model_config = ConfigDict(from_attributes=True)

    id: int
    order_number: str
    subtotal_items: float
    subtotal_fees: float
    discount: float
    total_amount: float
    total_cost: float
    profit_margin: Optional[float] = None
