# mock_stock/mock_server.py
from fastapi import FastAPI, HTTPException, Header, Depends, Query
from datetime import datetime, timedelta, timezone
from typing import List, Optional, Dict, Any
import math
import uvicorn
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

app = FastAPI(title="Mock Stock API", version="1.0")

# Хранилище данных в памяти
products_db: List[Dict[str, Any]] = []
stock_db: List[Dict[str, Any]] = []
movements_db: List[Dict[str, Any]] = []
api_keys = ["test-api-key-123", "demo-stock-key-456"]

SIZES = ["S", "M", "L", "XL"]
COLORS = ["ขาว", "ดำ"]
CATEGORIES = ["เสื้อ", "กางเกง", "เสื้อแจ็คเก็ต", "วัตถุดิบ", "อุปกรณ์"]
BASE_TIME = datetime(2024, 1, 1, tzinfo=timezone.utc)

class MovementLineIn(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    sku: str
    from_location: Optional[str] = None
    to_location: Optional[str] = None
    qty: float = Field(..., gt=0)
    unit_cost: Optional[float] = None
    note: Optional[str] = None

class MovementIn(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    type: str
    ref_no: Optional[str] = None
    note: Optional[str] = None
    reason: Optional[str] = None
    lines: List[MovementLineIn] = Field(..., min_length=1)

# Инициализация тестовых данных (детерминированная, без random)
def init_test_data(product_count: int = 45):
    products_db.clear()
    stock_db.clear()
    movements_db.clear()

    for i in range(1, product_count + 1):
        category = CATEGORIES[i % len(CATEGORIES)]
        has_variants = category in ("เสื้อ", "กางเกง", "เสื้อแจ็คเก็ต")
        sku = f"SKU-{i:04d}"

        variants = []
        if has_variants:
            for size in SIZES[:2]:
                for color in COLORS:
                    variants.append({
                        "id": f"VAR-{i:04d}-{size}-{len(variants)}",
                        "sku": f"{sku}-{size}-{len(variants)}",
                        "barcode": None,
                        "name": f"{size} / {color}",
                        "options": [
                            {"type": "ไซส์", "value": size},
                            {"type": "สี", "value": color},
                        ],
                        "costPrice": 80.0 + i,
                        "sellingPrice": 150.0 + i,
                        "totalStock": 10 + i,
                        "stockByLocation": [
                            {"locationCode": "WH-MAIN", "locationName": "คลังหลัก", "qty": 10 + i}
                        ],
                    })

        product = {
            "id": f"PROD-{i:04d}",
            "sku": sku,
            "name": f"สินค้า {i}",
            "description": None,
            "barcode": f"885{i:010d}",
            "category": category,
            "unit": "PCS",
            "unitName": "ชิ้น",
            "itemType": None,
            "standardCost": 100.0 + i,
            "lastCost": None if i % 2 else 95.0 + i,
            "reorderPoint": 5,
            "hasVariants": has_variants,
            "totalStock": 40 + i,
            "stockByLocation": [],
            "variants": variants,
            "updatedAt": (BASE_TIME + timedelta(days=i)).isoformat(),
        }
        products_db.append(product)

        # Остатки: по строке на вариант, либо одна строка на товар
        for variant in variants or [None]:
            stock_db.append({
                "productId": product["id"],
                "productSku": sku,
                "productName": product["name"],
                "variantId": variant["id"] if variant else None,
                "variantSku": variant["sku"] if variant else None,
                "variantName": variant["name"] if variant else None,
                "locationCode": "WH-MAIN",
                "locationName": "คลังหลัก",
                "warehouseCode": "MAIN",
                "warehouseName": "คลังสินค้าหลัก",
                "qty": float(10 + i) + 0.5,
                "reorderPoint": 5,
                "minQty": 0,
                "maxQty": 1000,
                "isLowStock": False,
            })

# Dependency для проверки API ключа
def verify_api_key(x_api_key: Optional[str] = Header(None)):
    if not x_api_key or x_api_key not in api_keys:
        raise HTTPException(status_code=401, detail="Invalid API Key")
    return x_api_key

def _paginate(items: List[Dict[str, Any]], page: int, limit: int) -> Dict[str, Any]:
    total = len(items)
    start = (page - 1) * limit
    return {
        "items": items[start:start + limit],
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "totalPages": math.ceil(total / limit) if total else 0,
        },
    }

def _parse_time(value: str) -> datetime:
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)

@app.get("/api/erp")
async def erp_info(api_key: str = Depends(verify_api_key)):
    return {"success": True, "data": {"name": "Mock Stock", "version": "1.0"}}

@app.get("/api/erp/products")
async def get_products(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    updated_after: Optional[str] = Query(None),
    search: Optional[str] = Query(None),
    category: Optional[str] = Query(None),
    api_key: str = Depends(verify_api_key)
):
    """Каталог товаров с вариантами (мок)"""
    filtered = products_db

    if updated_after:
        try:
            cursor = _parse_time(updated_after)
        except ValueError:
            raise HTTPException(status_code=400, detail="Invalid updated_after")
        filtered = [p for p in filtered if _parse_time(p["updatedAt"]) > cursor]

    if search:
        needle = search.lower()
        filtered = [p for p in filtered if needle in p["sku"].lower() or needle in p["name"].lower()]

    if category:
        filtered = [p for p in filtered if p["category"] == category]

    return {"success": True, "data": _paginate(filtered, page, limit)}

@app.get("/api/erp/stock")
async def get_stock(
    page: int = Query(1, ge=1),
    limit: int = Query(100, ge=1, le=500),
    location: Optional[str] = Query(None),
    api_key: str = Depends(verify_api_key)
):
    """Остатки по складам (мок)"""
    filtered = stock_db
    if location:
        filtered = [s for s in filtered if s["locationCode"] == location]

    data = _paginate(filtered, page, limit)
    data["summary"] = {
        "totalItems": len(filtered),
        "lowStockCount": sum(1 for s in filtered if s["isLowStock"]),
        "totalQty": sum(s["qty"] for s in filtered),
    }
    return {"success": True, "data": data}

@app.post("/api/erp/movements", status_code=201)
async def create_movement(
    movement: MovementIn,
    api_key: str = Depends(verify_api_key)
):
    """Создание документа движения (мок)"""
    if movement.type not in ("RECEIVE", "ISSUE", "TRANSFER", "ADJUST"):
        raise HTTPException(status_code=400, detail=f"Unknown movement type: {movement.type}")

    number = len(movements_db) + 1
    record = {
        "id": f"MOV-{number:06d}",
        "docNumber": f"{movement.type[:3]}-{number:06d}",
        "type": movement.type,
        "status": "POSTED",
        "linesCount": len(movement.lines),
        "createdAt": datetime.now(timezone.utc).isoformat(),
    }
    movements_db.append({**record, "payload": movement.model_dump(by_alias=True)})
    return {"success": True, "data": record}

init_test_data()

if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=8001)
