from celery import Celery
from celery.schedules import crontab
from celery.signals import setup_logging as celery_setup_logging
from sapsync.core.config import settings
from sapsync.core.logging_config import setup_logging

def make_celery():
    """Создание и настройка Celery приложения"""

    celery_app = Celery(
        "sapsync",
        broker=settings.CELERY_BROKER_URL,
        backend=settings.CELERY_RESULT_BACKEND,
        include=[
            "sapsync.tasks.sync_tasks",
        ]
    )

    # Конфигурация
    celery_app.conf.update(
        task_serializer=settings.CELERY_TASK_SERIALIZER,
        result_serializer=settings.CELERY_RESULT_SERIALIZER,
        accept_content=settings.CELERY_ACCEPT_CONTENT,
        timezone=settings.CELERY_TIMEZONE,
        enable_utc=settings.CELERY_ENABLE_UTC,

        # Настройки задач
        task_track_started=True,
        task_time_limit=30 * 60,  # 30 минут
        task_soft_time_limit=25 * 60,  # 25 минут

        # Подтверждение после выполнения: доставка не реже одного раза
        task_acks_late=True,
        task_reject_on_worker_lost=True,

        # Настройки брокера
        broker_connection_retry_on_startup=True,
        broker_connection_max_retries=10,

        # Результаты
        result_expires=3600,  # 1 час

        # Расписание задач
        beat_schedule={
            # Зависшие запуски синхронизации каждые 10 минут
            'reap-stale-sync-progress': {
                'task': 'sapsync.tasks.sync_tasks.reap_stale_sync_progress',
                'schedule': crontab(minute='*/10'),
                'args': (),
                'options': {'queue': 'maintenance'}
            },
        },

        # Очереди
        task_routes={
            'sapsync.tasks.sync_tasks.sync_customer_from_sap': {'queue': 'sync'},
            'sapsync.tasks.sync_tasks.sync_materials_from_sap': {'queue': 'sync'},
            'sapsync.tasks.sync_tasks.sync_material_price': {'queue': 'prices'},
            'sapsync.tasks.sync_tasks.reap_stale_sync_progress': {'queue': 'maintenance'},
        },

        # Работники
        worker_prefetch_multiplier=1,
        worker_max_tasks_per_child=1000,
        worker_concurrency=4
    )

    return celery_app

@celery_setup_logging.connect
def configure_worker_logging(**kwargs):
    setup_logging()

# Создаем экземпляр Celery
celery_app = make_celery()
