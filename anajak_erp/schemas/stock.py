# anajak_erp/schemas/stock.py
"""Схемы ответов и запросов Stock API (/api/erp/*).

Stock API отдаёт camelCase; внутри используются snake_case поля с алиасами.
"""
from typing import Optional, List, Any
from enum import Enum
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class StockModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class StockLocation(StockModel):
    location_code: str
    location_name: Optional[str] = None
    qty: float = 0.0


class VariantOption(StockModel):
    type: str
    value: Optional[str] = None


class StockVariant(StockModel):
    id: str
    sku: str
    barcode: Optional[str] = None
    name: Optional[str] = None
    options: Optional[List[VariantOption]] = None
    cost_price: Optional[float] = None
    selling_price: Optional[float] = None
    total_stock: Optional[float] = None
    stock_by_location: List[StockLocation] = []

    @field_validator("options", mode="before")
    @classmethod
    def options_from_mapping(cls, v: Any) -> Any:
        # Некоторые инстансы Stock отдают опции словарём {"ไซส์": "M", "สี": "แดง"}
        if isinstance(v, dict):
            return [{"type": key, "value": value} for key, value in v.items()]
        return v


class StockProduct(StockModel):
    id: str
    sku: str
    name: str
    description: Optional[str] = None
    barcode: Optional[str] = None
    category: Optional[str] = None
    unit: Optional[str] = None
    unit_name: Optional[str] = None
    item_type: Optional[str] = None
    standard_cost: Optional[float] = None
    last_cost: Optional[float] = None
    reorder_point: Optional[float] = None
    has_variants: bool = False
    total_stock: Optional[float] = None
    stock_by_location: List[StockLocation] = []
    variants: List[StockVariant] = []
    updated_at: Optional[str] = None


class Pagination(StockModel):
    page: int
    limit: int
    total: int
    total_pages: int


class StockProductPage(StockModel):
    items: List[StockProduct]
    pagination: Pagination


class StockBalanceItem(StockModel):
    product_id: str
    product_sku: Optional[str] = None
    product_name: Optional[str] = None
    product_barcode: Optional[str] = None
    variant_id: Optional[str] = None
    variant_sku: Optional[str] = None
    variant_name: Optional[str] = None
    location_code: Optional[str] = None
    location_name: Optional[str] = None
    warehouse_code: Optional[str] = None
    warehouse_name: Optional[str] = None
    qty: float = 0.0
    reorder_point: float = 0.0
    min_qty: float = 0.0
    max_qty: float = 0.0
    is_low_stock: bool = False


class StockSummary(StockModel):
    total_items: int = 0
    low_stock_count: int = 0
    total_qty: float = 0.0


class StockBalancePage(StockModel):
    items: List[StockBalanceItem]
    summary: StockSummary = Field(default_factory=StockSummary)
    pagination: Pagination


class MovementType(str, Enum):
    RECEIVE = "RECEIVE"
    ISSUE = "ISSUE"
    TRANSFER = "TRANSFER"
    ADJUST = "ADJUST"


class StockMovementLine(StockModel):
    sku: str
    from_location: Optional[str] = None
    to_location: Optional[str] = None
    qty: float = Field(..., gt=0)
    unit_cost: Optional[float] = None
    note: Optional[str] = None


class CreateMovementInput(StockModel):
    type: MovementType
    ref_no: Optional[str] = None
    note: Optional[str] = None
    reason: Optional[str] = None
    lines: List[StockMovementLine] = Field(..., min_length=1)


class MovementConfirmation(StockModel):
    id: Optional[str] = None
    doc_number: str
    type: Optional[str] = None
    status: str
    lines_count: int
    created_at: Optional[str] = None


class ConnectionTestResult(StockModel):
    connected: bool
    name: Optional[str] = None
    error: Optional[str] = None
