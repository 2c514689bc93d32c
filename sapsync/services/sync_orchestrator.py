"""
Оркестрация синхронизации клиента из SAP.

Клиент -> материалы -> цена по каждому материалу. Каждый шаг запускает
следующий через диспетчер и не ждет его завершения.

Ошибки на шагах клиента и материалов фатальны и пробрасываются (повтор
делает очередь). Шаг цены ошибок наружу не отдает: падение одного
материала не должно ломать остальные.
"""
import logging
from typing import Any, Dict, Optional, Union
from sqlalchemy.orm import Session
from sapsync.core.config import settings
from sapsync.crud.customer import get_customer_by_sap_id, save_customer
from sapsync.crud.customer_material import get_customer_material, save_customer_material
from sapsync.crud.material import get_material_by_number, save_material
from sapsync.crud.sync_progress import create_sync_progress, increment_processed, save_sync_progress
from sapsync.models.customer import Customer
from sapsync.models.customer_material import CustomerMaterial
from sapsync.models.material import Material
from sapsync.models.sync_progress import SyncProgress
from sapsync.schemas.sap import SapContext, SapCustomerData, SapMaterialRecord, SapPriceData
from sapsync.services.interfaces import CustomerDataSource, Dispatcher
from sapsync.services.sync_lock import SyncLock, SyncLockId

logger = logging.getLogger(__name__)

# Имена задач Celery, см. sapsync/tasks/sync_tasks.py
CUSTOMER_SYNC_TASK = "sapsync.tasks.sync_tasks.sync_customer_from_sap"
MATERIALS_SYNC_TASK = "sapsync.tasks.sync_tasks.sync_materials_from_sap"
PRICE_SYNC_TASK = "sapsync.tasks.sync_tasks.sync_material_price"

DEFAULT_CUSTOMER_NAME = "Unknown"
DEFAULT_CUSTOMER_COUNTRY = "ES"
DEFAULT_MATERIAL_DESCRIPTION = "Unknown Material"

def _as_context(context: Union[SapContext, Dict[str, Any], None]) -> SapContext:
    # Из очереди контекст приходит словарем
    if isinstance(context, SapContext):
        return context
    return SapContext.model_validate(context or {})

def _release_run_lock(lock: Optional[SyncLock], sales_org: str, customer_id: str) -> None:
    # Запуск закончен; при сбое Redis блокировку снимет TTL
    if lock is None:
        return
    try:
        lock.release(SyncLockId(sales_org=sales_org, customer_id=customer_id))
    except Exception as e:
        logger.error(f"Failed to release sync lock for {customer_id}/{sales_org}: {e}", exc_info=True)

class CustomerSyncOrchestrator:
    """Шаг 1: клиент"""

    def __init__(self, db: Session, source: CustomerDataSource, dispatcher: Dispatcher):
        self.db = db
        self.source = source
        self.dispatcher = dispatcher

    async def run(self, sales_org: str, customer_id: str) -> Optional[SapContext]:
        """
        Загружает клиента, сохраняет его и запускает синхронизацию материалов.

        Возвращает контекст, с которым запущены материалы, или None,
        если в ответе SAP нет нужных структур.
        """
        logger.info(f"Starting SAP customer sync: sales_org={sales_org}, customer_id={customer_id}")

        try:
            sap_data = await self.source.fetch_customer(sales_org, customer_id)
            decoded = SapCustomerData.model_validate(sap_data)

            customer = get_customer_by_sap_id(self.db, customer_id, sales_org)

            if customer is None:
                customer = Customer(
                    sap_customer_id=customer_id,
                    sales_org=sales_org,
                    name1=decoded.name1 or DEFAULT_CUSTOMER_NAME,
                    country=decoded.country or DEFAULT_CUSTOMER_COUNTRY,
                )
                logger.info(f"Creating new customer {customer_id}")
            else:
                logger.info(f"Updating existing customer {customer_id}")

            # Создание и обновление идут одним путем
            customer.update_from_source(sap_data)
            save_customer(self.db, customer)

            logger.info(f"Customer sync completed: customer_id={customer_id}, name={customer.name}")

        except Exception as e:
            self.db.rollback()
            logger.error(f"Customer sync failed: customer_id={customer_id}, error={e}", exc_info=True)
            raise

        context = decoded.materials_context()
        if context is None:
            logger.warning(f"Materials sync not started for customer {customer_id}: "
                           f"SAP response is missing {', '.join(decoded.missing_context())}")
            return None

        logger.info(f"Dispatching materials sync for customer {customer_id}")
        self.dispatcher.submit(
            MATERIALS_SYNC_TASK,
            customer_id=customer_id,
            sales_org=sales_org,
            context=context.model_dump(),
        )
        return context

class MaterialsSyncOrchestrator:
    """
    Шаг 2: список материалов клиента и рассылка задач цен.

    Снимает блокировку запуска, если запуск заканчивается здесь: нет списка,
    ошибка или ни одной задачи цены не осталось.
    """

    def __init__(
        self,
        db: Session,
        source: CustomerDataSource,
        dispatcher: Dispatcher,
        lock: Optional[SyncLock] = None
    ):
        self.db = db
        self.source = source
        self.dispatcher = dispatcher
        self.lock = lock

    async def run(
        self,
        customer_id: str,
        sales_org: str,
        context: Union[SapContext, Dict[str, Any]]
    ) -> Optional[SyncProgress]:
        context = _as_context(context)
        progress: Optional[SyncProgress] = None

        logger.info(f"Starting SAP materials sync for customer {customer_id}")

        try:
            sap_data = await self.source.fetch_material_list(context)
            records = sap_data.get("X_MAT_FOUND")

            if not isinstance(records, list):
                logger.warning(f"No materials returned from SAP for customer {customer_id}")
                _release_run_lock(self.lock, sales_org, customer_id)
                return None

            logger.info(f"Processing {len(records)} materials from SAP for customer {customer_id}")

            # Прогресс виден сразу, до первой задачи цены
            progress = create_sync_progress(self.db, customer_id, sales_org, len(records))
            logger.info(f"Sync progress tracker created: sync_id={progress.id}, "
                        f"total_materials={progress.total_materials}")

            price_sales_org = context.sales_org or sales_org
            dispatched = 0
            skipped = 0

            for index, raw in enumerate(records):
                record = SapMaterialRecord.model_validate(raw if isinstance(raw, dict) else {})

                if not record.material_number:
                    logger.warning(f"Material without MATNR, skipping: {raw}")
                    skipped += 1
                    continue

                self._upsert_material(record.material_number, raw)

                self.dispatcher.submit(
                    PRICE_SYNC_TASK,
                    customer_id=customer_id,
                    material_number=record.material_number,
                    sales_org=price_sales_org,
                    context=context.model_dump(),
                    position_number=record.position_number,
                    sync_id=progress.id,
                    item_key=f"{index}:{record.material_number}",
                )
                dispatched += 1

            # Пропущенные записи считаются обработанными, иначе запуск не завершится
            if skipped or not records:
                result = increment_processed(self.db, progress.id, skipped)
                progress = result.progress or progress
                if result.completed:
                    _release_run_lock(self.lock, sales_org, customer_id)

            logger.info(f"Materials sync completed: customer_id={customer_id}, "
                        f"dispatched={dispatched}, skipped={skipped}")
            return progress

        except Exception as e:
            self.db.rollback()
            logger.error(f"Materials sync failed: customer_id={customer_id}, error={e}", exc_info=True)

            if progress is not None:
                progress.fail(str(e))
                save_sync_progress(self.db, progress)

            _release_run_lock(self.lock, sales_org, customer_id)
            raise

    def _upsert_material(self, material_number: str, raw: Dict[str, Any]) -> Material:
        material = get_material_by_number(self.db, material_number)

        if material is None:
            material = Material(
                sap_material_number=material_number,
                description=DEFAULT_MATERIAL_DESCRIPTION,
            )
            logger.debug(f"Creating new material {material_number}")
        else:
            logger.debug(f"Updating existing material {material_number}")

        material.update_from_source(raw)
        return save_material(self.db, material)

class MaterialPriceSyncOrchestrator:
    """
    Шаг 3: цена одного материала для клиента.

    Граница изоляции сбоев. Любая ошибка логируется и гасится, а прогресс
    запуска увеличивается ровно один раз на элемент при любом исходе, даже
    если задача доставлена повторно. Последний элемент снимает блокировку.
    """

    def __init__(self, db: Session, source: CustomerDataSource, lock: Optional[SyncLock] = None):
        self.db = db
        self.source = source
        self.lock = lock

    async def run(
        self,
        customer_id: str,
        material_number: str,
        context: Union[SapContext, Dict[str, Any], None] = None,
        sales_org: Optional[str] = None,
        position_number: Optional[str] = None,
        sync_id: Optional[str] = None,
        item_key: Optional[str] = None
    ) -> bool:
        """Возвращает True, если цена обновлена"""
        logger.debug(f"Starting SAP material price sync: customer_id={customer_id}, "
                     f"material_number={material_number}, posnr={position_number or 'none'}")

        updated = False
        try:
            updated = await self._sync_price(
                customer_id, material_number, _as_context(context), sales_org, position_number
            )
        except Exception as e:
            self.db.rollback()
            logger.error(
                f"Material price sync failed: {type(e).__name__} - {e} "
                f"(customer_id={customer_id}, material_number={material_number})",
                exc_info=True
            )
        finally:
            if sync_id:
                self._record_progress(sync_id, item_key or f"{material_number}:{position_number or ''}")

        return updated

    async def _sync_price(
        self,
        customer_id: str,
        material_number: str,
        context: SapContext,
        sales_org: Optional[str],
        position_number: Optional[str]
    ) -> bool:
        sap_data = await self.source.fetch_material_price(
            customer_id, material_number, context, position_number
        )

        sales_org = sales_org or context.sales_org
        if not sales_org:
            logger.error(f"Cannot resolve sales org for customer {customer_id}, "
                         f"material {material_number}")
            return False

        customer = get_customer_by_sap_id(self.db, customer_id, sales_org)
        if customer is None:
            logger.error(f"Customer not found: customer_id={customer_id}, sales_org={sales_org}")
            return False

        material = get_material_by_number(self.db, material_number)
        if material is None:
            logger.error(f"Material not found: material_number={material_number}")
            return False

        customer_material = get_customer_material(self.db, customer, material, sales_org)
        if customer_material is None:
            # Только id: объект не попадет в сессию, пока цены нет
            customer_material = CustomerMaterial(
                customer_id=customer.id,
                material_id=material.id,
                sales_org=sales_org,
            )
            logger.debug(f"Creating new customer-material relationship: customer_id={customer_id}, "
                         f"material_number={material_number}, sales_org={sales_org}")

        price_data = sap_data.get("OUT_WA_MATNR")
        if not price_data:
            logger.warning(f"No material price data in SAP response: customer_id={customer_id}, "
                           f"material_number={material_number}, posnr={position_number}")
            return False

        decoded = SapPriceData.model_validate(price_data)
        currency = decoded.currency or settings.DEFAULT_PRICE_CURRENCY

        if position_number is not None:
            customer_material.set_position_number(position_number)

        customer_material.update_price(decoded.price, currency, price_data)
        save_customer_material(self.db, customer_material)

        logger.debug(f"Material price sync completed: customer_id={customer_id}, "
                     f"material_number={material_number}, price={customer_material.price} "
                     f"{customer_material.currency}")
        return True

    def _record_progress(self, sync_id: str, item_key: str) -> None:
        try:
            result = increment_processed(self.db, sync_id, item_key=item_key)
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to update sync progress {sync_id}: {e}", exc_info=True)
            return

        progress = result.progress
        if progress is None:
            logger.warning(f"Sync progress {sync_id} not found")
            return

        if not result.counted:
            logger.info(f"Duplicate price task delivery ignored: sync_id={sync_id}, item={item_key}")
            return

        logger.debug(f"Sync progress updated: sync_id={sync_id}, "
                     f"processed={progress.processed_materials}/{progress.total_materials}, "
                     f"percentage={progress.percentage_complete}")

        if result.completed:
            logger.info(f"Sync run completed: sync_id={sync_id}, customer_id={progress.customer_id}")
            _release_run_lock(self.lock, progress.sales_org, progress.customer_id)
