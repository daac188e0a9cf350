# anajak_erp/database.py
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base

from anajak_erp.core.config import settings

# Создание async движка SQLAlchemy
engine = create_async_engine(
    settings.DATABASE_URL,
    pool_pre_ping=True,      # Проверка соединения
    pool_recycle=300,        # Пересоздание каждые 5 мин
    echo=settings.DATABASE_ECHO
)

# Фабрика сессий
SessionLocal = async_sessionmaker(
    bind=engine,
    class_=AsyncSession,
    autoflush=False,
    expire_on_commit=False
)

# Базовый класс для моделей
Base = declarative_base()

async def get_db():
    """FastAPI dependency для получения сессии БД"""
    async with SessionLocal() as db:
        yield db

# Создание таблиц при старте (dev)
async def create_tables(bind=None):
    # Импорт моделей регистрирует таблицы в metadata
    from anajak_erp.models import order, product, production, setting  # noqa: F401

    async with (bind or engine).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
