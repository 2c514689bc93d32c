# sapsync/crud/sync_progress.py
import logging
from dataclasses import dataclass
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from typing import Optional
from datetime import datetime, timedelta
from sapsync.models.sync_progress import SyncProgress, SyncProgressItem, SyncStatus

logger = logging.getLogger(__name__)

@dataclass
class ProgressIncrement:
    """Результат инкремента: строка прогресса и что именно произошло"""
    progress: Optional[SyncProgress]
    counted: bool = False
    completed: bool = False

def create_sync_progress(db: Session, customer_id: str, sales_org: str, total_materials: int) -> SyncProgress:
    """Создать трекер прогресса и сразу сохранить его"""
    progress = SyncProgress.start(customer_id, sales_org, total_materials)
    db.add(progress)
    db.commit()
    db.refresh(progress)
    return progress

def get_sync_progress(db: Session, sync_id: str) -> Optional[SyncProgress]:
    return db.query(SyncProgress).filter(SyncProgress.id == sync_id).first()

def get_latest_sync_progress(db: Session, customer_id: str, sales_org: str) -> Optional[SyncProgress]:
    """Последний запуск синхронизации клиента"""
    return (
        db.query(SyncProgress)
        .filter(
            SyncProgress.customer_id == customer_id,
            SyncProgress.sales_org == sales_org,
        )
        .order_by(SyncProgress.started_at.desc())
        .first()
    )

def _reload(db: Session, sync_id: str) -> Optional[SyncProgress]:
    progress = get_sync_progress(db, sync_id)
    if progress is not None:
        db.refresh(progress)
    return progress

def increment_processed(
    db: Session,
    sync_id: str,
    amount: int = 1,
    item_key: Optional[str] = None
) -> ProgressIncrement:
    """
    Атомарно увеличивает счетчик обработанных материалов.

    Инкремент выполняется одним UPDATE на стороне БД, так что параллельные
    задачи цен не теряют значения. Когда счетчик доходит до total,
    запуск переводится в completed тем же способом; completed=True
    только у того вызова, который сделал этот переход.

    С item_key элемент сначала записывается в sync_progress_items в той же
    транзакции. Если он уже учтен (повторная доставка задачи), счетчик
    не меняется.
    """
    if item_key is not None:
        db.add(SyncProgressItem(sync_id=sync_id, item_key=item_key))
        try:
            db.flush()
        except IntegrityError:
            db.rollback()
            logger.info(f"Sync item already counted: sync_id={sync_id}, item={item_key}")
            return ProgressIncrement(progress=_reload(db, sync_id))

    updated = (
        db.query(SyncProgress)
        .filter(SyncProgress.id == sync_id)
        .update(
            {SyncProgress.processed_materials: SyncProgress.processed_materials + amount},
            synchronize_session=False,
        )
    )

    if not updated:
        db.rollback()
        return ProgressIncrement(progress=None)

    completed = (
        db.query(SyncProgress)
        .filter(
            SyncProgress.id == sync_id,
            SyncProgress.status == SyncStatus.IN_PROGRESS,
            SyncProgress.processed_materials >= SyncProgress.total_materials,
        )
        .update(
            {
                SyncProgress.status: SyncStatus.COMPLETED,
                SyncProgress.completed_at: datetime.now(),
            },
            synchronize_session=False,
        )
    )

    db.commit()

    return ProgressIncrement(progress=_reload(db, sync_id), counted=True, completed=bool(completed))

def save_sync_progress(db: Session, progress: SyncProgress) -> SyncProgress:
    db.add(progress)
    db.commit()
    db.refresh(progress)
    return progress

def fail_stale_sync_progress(db: Session, older_than_seconds: int) -> int:
    """
    Помечает зависшие in_progress запуски как failed.

    Блокировку здесь не трогаем: SYNC_LOCK_TTL не больше SYNC_STALE_AFTER,
    так что блокировка зависшего запуска к этому моменту уже истекла, а ключ
    может принадлежать новому запуску.
    """
    now = datetime.now()
    cutoff = now - timedelta(seconds=older_than_seconds)

    count = (
        db.query(SyncProgress)
        .filter(
            SyncProgress.status == SyncStatus.IN_PROGRESS,
            SyncProgress.started_at < cutoff,
        )
        .update(
            {
                SyncProgress.status: SyncStatus.FAILED,
                SyncProgress.completed_at: now,
                SyncProgress.error_message: f"Sync stalled: no completion after {older_than_seconds}s",
            },
            synchronize_session=False,
        )
    )
    db.commit()
    return count
