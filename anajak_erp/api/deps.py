# anajak_erp/api/deps.py
from typing import AsyncGenerator
from fastapi import Depends
from anajak_erp.database import SessionLocal
from anajak_erp.services.stock_client import (
    StockApiClient, StockNotConfiguredError, get_stock_client_from_settings
)

def get_session_factory():
    """Фабрика сессий для сервисов, открывающих собственные короткие сессии"""
    return SessionLocal

async def get_configured_stock_client(
    session_factory = Depends(get_session_factory)
) -> AsyncGenerator[StockApiClient, None]:
    """Клиент Stock API из настроек ERP; соединение закрывается после запроса"""
    async with session_factory() as db:
        client = await get_stock_client_from_settings(db)

    if client is None:
        raise StockNotConfiguredError("Stock API not configured")

    async with client:
        yield client
