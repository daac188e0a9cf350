# anajak_erp/schemas/sync.py
from typing import Optional, List
from datetime import datetime
from enum import Enum
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class SyncMode(str, Enum):
    FULL = "full"
    INCREMENTAL = "incremental"


class SyncOutcome(str, Enum):
    CREATED = "created"
    UPDATED = "updated"
    ERROR = "error"


class SyncModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class SyncProductEntry(SyncModel):
    """Результат синхронизации одного товара страницы"""
    sku: str
    name: str
    status: SyncOutcome
    variant_count: int = 0
    error: Optional[str] = None


class SyncPageResult(SyncModel):
    """Итог обработки одной страницы каталога Stock (не сохраняется в БД)"""
    products_created: int = 0
    products_updated: int = 0
    variants_created: int = 0
    variants_updated: int = 0
    errors: List[str] = []
    page: int
    total_pages: int
    total_products: int
    has_more: bool
    synced_products: List[SyncProductEntry] = []


class SyncPageRequest(SyncModel):
    page: int = Field(1, ge=1)
    mode: SyncMode = SyncMode.FULL
    updated_after: Optional[datetime] = None
    # Если задан, итог страницы публикуется в WebSocket-канал sync:<run_id>
    run_id: Optional[str] = None


class SyncStatus(SyncModel):
    last_sync_at: Optional[datetime] = None
    total_stock_products: int = 0
    total_local_products: int = 0
    total_products: int = 0


class StockLevelSyncResult(SyncModel):
    updated: int = 0
    errors: List[str] = []


# Движения склада для производства

class MaterialLine(SyncModel):
    product_id: int
    product_variant_id: Optional[int] = None
    sku: str
    quantity: float = Field(..., ge=0.01)
    unit: str
    unit_cost: float = 0.0


class IssueMaterialsRequest(SyncModel):
    production_id: str
    order_number: str
    materials: List[MaterialLine] = Field(..., min_length=1)
    from_location: str = "WH-MAIN"


class IssueMaterialsResult(SyncModel):
    movement_doc_number: str
    materials_issued: int


class FinishedItem(SyncModel):
    sku: str
    quantity: float = Field(..., ge=1)
    unit_cost: float = 0.0


class ReceiveFinishedRequest(SyncModel):
    order_number: str
    items: List[FinishedItem] = Field(..., min_length=1)
    to_location: str = "WH-SHIP"
    note: Optional[str] = None


class ReceiveFinishedResult(SyncModel):
    movement_doc_number: str
    items_received: int


class ConnectionTestRequest(SyncModel):
    api_url: Optional[str] = None
    api_key: Optional[str] = None
