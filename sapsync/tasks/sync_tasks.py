import asyncio
import logging
from typing import Optional, Dict, Any
from sqlalchemy.orm import Session
from sapsync.core.config import settings
from sapsync.database import SessionLocal
from sapsync.crud.sync_progress import fail_stale_sync_progress
from sapsync.services.sap_client import SapClient
from sapsync.services.sync_lock import SyncLock, SyncLockId, hold_sync_lock
from sapsync.services.sync_orchestrator import (
    CUSTOMER_SYNC_TASK,
    MATERIALS_SYNC_TASK,
    PRICE_SYNC_TASK,
    CustomerSyncOrchestrator,
    MaterialsSyncOrchestrator,
    MaterialPriceSyncOrchestrator,
)
from sapsync.tasks.celery_app import celery_app
from sapsync.tasks.dispatcher import CeleryDispatcher

logger = logging.getLogger(__name__)

dispatcher = CeleryDispatcher(celery_app)

@celery_app.task(bind=True, max_retries=3, name=CUSTOMER_SYNC_TASK)
def sync_customer_from_sap(self, sales_org: str, customer_id: str):
    """
    Точка входа синхронизации клиента.

    Захватывает блокировку (организация сбыта, клиент) на входе. Если
    запуск пошел дальше, блокировка передается шагам материалов и цен и
    снимается в конце запуска; иначе снимается здесь при любом исходе.
    Если блокировка занята, задача молча пропускается: ту же работу уже
    делает другой воркер. Подзадачи блокировку не берут.
    """
    lock_id = SyncLockId(sales_org=sales_org, customer_id=customer_id)

    db: Session = SessionLocal()
    try:
        with hold_sync_lock(SyncLock(), lock_id) as hold:
            if not hold.acquired:
                logger.warning(f"Cannot sync customer {customer_id}/{sales_org} - lock already held")
                return {"status": "skipped", "reason": "Sync already in progress"}

            context = asyncio.run(_run_customer_sync(db, sales_org, customer_id))
            if context is not None:
                hold.hand_off()

        return {
            "status": "completed",
            "customer_id": customer_id,
            "sales_org": sales_org,
            "materials_sync_started": context is not None,
        }

    except Exception as e:
        logger.error(f"Error in customer sync task for {customer_id}/{sales_org}: {e}")
        # Повторная попытка
        raise self.retry(exc=e, countdown=60)

    finally:
        db.close()

@celery_app.task(bind=True, max_retries=3, name=MATERIALS_SYNC_TASK)
def sync_materials_from_sap(self, customer_id: str, sales_org: str, context: Dict[str, Any]):
    """Загрузка материалов клиента и рассылка задач цен"""
    db: Session = SessionLocal()
    try:
        progress = asyncio.run(_run_materials_sync(db, customer_id, sales_org, context))

        if progress is None:
            return {"status": "skipped", "reason": "No materials returned"}

        return {
            "status": "dispatched",
            "sync_id": progress.id,
            "total_materials": progress.total_materials,
        }

    except Exception as e:
        logger.error(f"Error in materials sync task for {customer_id}/{sales_org}: {e}")
        raise self.retry(exc=e, countdown=60)

    finally:
        db.close()

@celery_app.task(name=PRICE_SYNC_TASK)
def sync_material_price(
    customer_id: str,
    material_number: str,
    context: Optional[Dict[str, Any]] = None,
    sales_org: Optional[str] = None,
    position_number: Optional[str] = None,
    sync_id: Optional[str] = None,
    item_key: Optional[str] = None
):
    """Цена одного материала. Ошибки гасятся внутри оркестратора"""
    db: Session = SessionLocal()
    try:
        updated = asyncio.run(_run_price_sync(
            db, customer_id, material_number, context, sales_org, position_number, sync_id, item_key
        ))
        return {"status": "updated" if updated else "not_updated", "material_number": material_number}

    except Exception as e:
        # Сюда попадают только сбои вокруг оркестратора (например, HTTP сессия)
        logger.error(f"Error in price sync task for {customer_id}/{material_number}: {e}", exc_info=True)
        return {"status": "failed", "material_number": material_number, "error": str(e)}

    finally:
        db.close()

@celery_app.task(name="sapsync.tasks.sync_tasks.reap_stale_sync_progress")
def reap_stale_sync_progress(older_than_seconds: Optional[int] = None):
    """Задача закрытия зависших запусков синхронизации"""
    older_than_seconds = older_than_seconds or settings.SYNC_STALE_AFTER

    db: Session = SessionLocal()
    try:
        count = fail_stale_sync_progress(db, older_than_seconds)
        if count:
            logger.warning(f"Marked {count} stale sync runs as failed")
        return {"failed": count}

    finally:
        db.close()

async def _run_customer_sync(db: Session, sales_org: str, customer_id: str):
    async with SapClient() as client:
        orchestrator = CustomerSyncOrchestrator(db, client, dispatcher)
        return await orchestrator.run(sales_org, customer_id)

async def _run_materials_sync(db: Session, customer_id: str, sales_org: str, context: Dict[str, Any]):
    async with SapClient() as client:
        orchestrator = MaterialsSyncOrchestrator(db, client, dispatcher, SyncLock())
        return await orchestrator.run(customer_id, sales_org, context)

async def _run_price_sync(
    db: Session,
    customer_id: str,
    material_number: str,
    context: Optional[Dict[str, Any]],
    sales_org: Optional[str],
    position_number: Optional[str],
    sync_id: Optional[str],
    item_key: Optional[str] = None
) -> bool:
    async with SapClient() as client:
        orchestrator = MaterialPriceSyncOrchestrator(db, client, SyncLock())
        return await orchestrator.run(
            customer_id,
            material_number,
            context=context,
            sales_org=sales_org,
            position_number=position_number,
            sync_id=sync_id,
            item_key=item_key,
        )
