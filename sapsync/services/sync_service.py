import logging
from typing import Any, Dict, Optional
from sqlalchemy.orm import Session
from sapsync.crud.sync_progress import get_latest_sync_progress
from sapsync.services.interfaces import Dispatcher
from sapsync.services.sync_orchestrator import CUSTOMER_SYNC_TASK

logger = logging.getLogger(__name__)

def start_customer_sync(dispatcher: Dispatcher, sales_org: str, customer_id: str) -> None:
    """Ставит синхронизацию клиента в очередь. Результат не ждем"""
    logger.info(f"Triggering SAP sync: sales_org={sales_org}, customer_id={customer_id}")
    dispatcher.submit(CUSTOMER_SYNC_TASK, sales_org=sales_org, customer_id=customer_id)

def get_progress(db: Session, customer_id: str, sales_org: str) -> Optional[Dict[str, Any]]:
    """Прогресс последнего запуска синхронизации клиента"""
    progress = get_latest_sync_progress(db, customer_id, sales_org)
    if progress is None:
        return None
    return progress.to_dict()
