import logging
import os
from typing import Optional

from anajak_erp.core.config import settings

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"

def configure_logging(level: Optional[str] = None, log_file: Optional[str] = None) -> None:
    """Настройка корневого логгера (вызывается один раз при старте процесса)"""
    level = (level or settings.LOG_LEVEL).upper()
    log_file = log_file if log_file is not None else settings.LOG_FILE

    handlers = [logging.StreamHandler()]

    if log_file:
        log_dir = os.path.dirname(log_file)
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)
        handlers.append(logging.FileHandler(log_file, encoding="utf-8"))

    logging.basicConfig(level=level, format=LOG_FORMAT, handlers=handlers, force=True)

    # httpx пишет каждый запрос на INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)
