# anajak_erp/api/v1/api.py
from fastapi import APIRouter
from anajak_erp.api.v1.endpoints import orders, stock_sync, websocket

api_router = APIRouter()
api_router.include_router(stock_sync.router, prefix="/stock-sync", tags=["stock-sync"])
api_router.include_router(orders.router, prefix="/orders", tags=["orders"])
api_router.include_router(websocket.router, tags=["websocket"])
