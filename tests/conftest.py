import pytest
import pytest_asyncio
import httpx
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from anajak_erp.database import create_tables
from anajak_erp.services.stock_client import StockApiClient
from mock_stock import mock_server

MOCK_BASE_URL = "http://mock-stock/api"
MOCK_API_KEY = "test-api-key-123"

@pytest_asyncio.fixture
async def db_engine(tmp_path):
    """Временная SQLite база (файл, чтобы параллельные сессии видели одни данные)"""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    await create_tables(engine)
    yield engine
    await engine.dispose()

@pytest.fixture
def session_factory(db_engine):
    return async_sessionmaker(bind=db_engine, class_=AsyncSession, expire_on_commit=False)

@pytest.fixture
def mock_stock_data():
    """Свежие данные мок-сервера Stock для каждого теста"""
    mock_server.init_test_data()
    return mock_server

@pytest_asyncio.fixture
async def stock_client(mock_stock_data):
    """Клиент Stock API, работающий с мок-сервером in-process"""
    transport = httpx.ASGITransport(app=mock_stock_data.app)
    async with StockApiClient(MOCK_BASE_URL, MOCK_API_KEY, transport=transport) as client:
        yield client
