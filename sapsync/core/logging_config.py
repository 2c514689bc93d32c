import logging
import os
from typing import Optional
from sapsync.core.config import settings

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

def setup_logging(level: Optional[str] = None, log_file: Optional[str] = None) -> None:
    """Настройка логирования для API и воркеров Celery"""
    level = (level or settings.LOG_LEVEL).upper()
    log_file = log_file or settings.LOG_FILE

    handlers = [logging.StreamHandler()]

    if log_file:
        log_dir = os.path.dirname(log_file)
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)
        handlers.append(logging.FileHandler(log_file))

    logging.basicConfig(level=level, format=LOG_FORMAT, handlers=handlers, force=True)

    # httpx слишком разговорчив на INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)
