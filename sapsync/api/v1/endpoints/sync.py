# sapsync/api/v1/endpoints/sync.py
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session
from sapsync.database import get_db
from sapsync.schemas.sync import SyncRequest, SyncStartedResponse, SyncProgressResponse
from sapsync.services.interfaces import Dispatcher
from sapsync.services.sync_service import start_customer_sync, get_progress
import logging

router = APIRouter()
logger = logging.getLogger(__name__)

def get_dispatcher() -> Dispatcher:
    """Dependency: диспетчер задач Celery"""
    from sapsync.tasks.sync_tasks import dispatcher
    return dispatcher

@router.post("/sync", response_model=SyncStartedResponse, status_code=202)
async def trigger_sync(
    sync_request: SyncRequest,
    dispatcher: Dispatcher = Depends(get_dispatcher)
):
    """Запуск синхронизации клиента из SAP"""
    try:
        start_customer_sync(dispatcher, sync_request.sales_org, sync_request.customer_id)
    except Exception as e:
        logger.error(f"Failed to dispatch sync for {sync_request.customer_id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to trigger synchronization")

    return SyncStartedResponse(
        message="SAP synchronization has been queued and will be processed asynchronously",
        sales_org=sync_request.sales_org,
        customer_id=sync_request.customer_id,
    )

@router.get("/sync/progress/{customer_id}", response_model=SyncProgressResponse)
async def read_sync_progress(
    customer_id: str,
    sales_org: str = Query(..., min_length=1, description="Организация сбыта"),
    db: Session = Depends(get_db)
):
    """Прогресс последней синхронизации клиента"""
    progress = get_progress(db, customer_id, sales_org)
    if progress is None:
        raise HTTPException(status_code=404, detail="No sync found for customer")
    return progress
