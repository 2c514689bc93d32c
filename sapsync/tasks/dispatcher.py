import logging
from typing import Any
from celery import Celery
from sapsync.services.interfaces import Dispatcher

logger = logging.getLogger(__name__)

class CeleryDispatcher(Dispatcher):
    """Отправка задач синхронизации через брокер Celery"""

    def __init__(self, app: Celery):
        self.app = app

    def submit(self, task_name: str, **kwargs: Any) -> None:
        result = self.app.send_task(task_name, kwargs=kwargs)
        logger.debug(f"Task {task_name} submitted as {result.id}")
