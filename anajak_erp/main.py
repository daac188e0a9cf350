# anajak_erp/main.py
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from anajak_erp.core.config import settings
from anajak_erp.core.logging_config import configure_logging
from anajak_erp.database import create_tables
from anajak_erp.api.v1.api import api_router
from anajak_erp.services.stock_client import RemoteError, StockNotConfiguredError
from anajak_erp.services.websocket_manager import manager
import logging

configure_logging()
logger = logging.getLogger(__name__)

@asynccontextmanager
async def lifespan(app: FastAPI):
    # Инициализация БД (dev) и очереди WebSocket сообщений
    await create_tables()
    await manager.start()
    logger.info(f"{settings.PROJECT_NAME} started")
    yield
    await manager.stop()

# Создаем app
app = FastAPI(
    title=f"{settings.PROJECT_NAME} API",
    description="Anajak ERP - Stock synchronization and order pricing",
    version=settings.VERSION,
    lifespan=lifespan
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.BACKEND_CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

@app.exception_handler(RemoteError)
async def remote_error_handler(request: Request, exc: RemoteError):
    logger.error(f"Stock API request failed: {exc}")
    return JSONResponse(
        status_code=502,
        content={
            "detail": str(exc),
            "remote_status": exc.status_code,
            "remote_body": exc.body,
        }
    )

@app.exception_handler(StockNotConfiguredError)
async def not_configured_handler(request: Request, exc: StockNotConfiguredError):
    return JSONResponse(status_code=400, content={"detail": str(exc)})

# Подключаем роутеры
app.include_router(api_router, prefix=settings.API_V1_STR)

@app.get("/")
async def root():
    return {"message": f"{settings.PROJECT_NAME} API v{settings.VERSION}", "status": "ok"}

@app.get("/health")
async def health():
    return {"status": "ok", "service": "anajak-erp"}
