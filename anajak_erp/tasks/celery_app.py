from datetime import timedelta
from celery import Celery
from anajak_erp.core.config import settings

def make_celery():
    """Создание и настройка Celery приложения"""

    celery_app = Celery(
        "anajak_erp",
        broker=settings.CELERY_BROKER_URL,
        backend=settings.CELERY_RESULT_BACKEND,
        include=["anajak_erp.tasks.sync_tasks"]
    )

    # Конфигурация
    celery_app.conf.update(
        timezone=settings.CELERY_TIMEZONE,
        enable_utc=settings.CELERY_ENABLE_UTC,

        # Настройки задач
        task_track_started=True,
        task_time_limit=30 * 60,  # 30 минут
        task_soft_time_limit=25 * 60,  # 25 минут

        # Настройки брокера
        broker_connection_retry_on_startup=True,
        broker_connection_max_retries=10,

        # Результаты
        result_expires=3600,  # 1 час

        # Сериализация
        task_serializer='json',
        result_serializer='json',
        accept_content=['json'],

        # Расписание задач
        beat_schedule={
            # Инкрементальная синхронизация каталога (по умолчанию каждый час)
            'sync-catalog-incremental': {
                'task': 'anajak_erp.tasks.sync_tasks.sync_catalog',
                'schedule': timedelta(seconds=settings.SYNC_CATALOG_INTERVAL),
                'args': ('incremental',),
                'options': {'queue': 'sync'}
            },

            # Синхронизация остатков (по умолчанию каждые 15 минут)
            'sync-stock-levels': {
                'task': 'anajak_erp.tasks.sync_tasks.sync_stock_levels',
                'schedule': timedelta(seconds=settings.SYNC_STOCK_INTERVAL),
                'args': (),
                'options': {'queue': 'sync'}
            },
        },

        # Очереди
        task_routes={
            'anajak_erp.tasks.sync_tasks.*': {'queue': 'sync'},
        },

        # Работники: страницы каталога обрабатываются строго последовательно
        worker_prefetch_multiplier=1,
        worker_max_tasks_per_child=1000,
    )

    return celery_app

# Создаем экземпляр Celery
celery_app = make_celery()
