from datetime import datetime
from typing import Optional
import enum
import uuid
from sqlalchemy import Column, Integer, String, DateTime, Enum, Text, Index, ForeignKey, UniqueConstraint
from sapsync.database import Base

class SyncStatus(str, enum.Enum):
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (SyncStatus.COMPLETED, SyncStatus.FAILED)

def generate_sync_id() -> str:
    return f"sync_{uuid.uuid4().hex}"

class SyncProgress(Base):
    """Прогресс синхронизации материалов одного клиента"""
    __tablename__ = "sync_progress"
    __table_args__ = (
        Index("idx_sync_customer_sales_org", "customer_id", "sales_org"),
    )

    id = Column(String(100), primary_key=True, default=generate_sync_id)
    customer_id = Column(String(50), nullable=False)
    sales_org = Column(String(50), nullable=False)

    # Счетчики
    total_materials = Column(Integer, nullable=False)
    processed_materials = Column(Integer, nullable=False, default=0)

    status = Column(
        Enum(SyncStatus, values_callable=lambda e: [s.value for s in e], native_enum=False, length=20),
        nullable=False,
        default=SyncStatus.IN_PROGRESS,
        index=True,
    )
    started_at = Column(DateTime, nullable=False, default=datetime.now, index=True)
    completed_at = Column(DateTime, nullable=True)
    error_message = Column(Text, nullable=True)

    @classmethod
    def start(cls, customer_id: str, sales_org: str, total_materials: int) -> "SyncProgress":
        return cls(
            id=generate_sync_id(),
            customer_id=customer_id,
            sales_org=sales_org,
            total_materials=total_materials,
            processed_materials=0,
            status=SyncStatus.IN_PROGRESS,
            started_at=datetime.now(),
        )

    def complete(self) -> None:
        self.status = SyncStatus.COMPLETED
        self.completed_at = datetime.now()
        self.processed_materials = self.total_materials

    def fail(self, error_message: str) -> None:
        self.status = SyncStatus.FAILED
        self.error_message = error_message
        self.completed_at = datetime.now()

    @property
    def percentage_complete(self) -> float:
        if not self.total_materials:
            return 100.0
        return round(self.processed_materials / self.total_materials * 100, 2)

    @property
    def elapsed_seconds(self) -> int:
        end_time = self.completed_at or datetime.now()
        return int((end_time - self.started_at).total_seconds())

    @property
    def estimated_time_remaining(self) -> Optional[int]:
        """Оценка оставшегося времени по средней скорости"""
        if not self.processed_materials or self.status != SyncStatus.IN_PROGRESS:
            return None

        remaining = max(self.total_materials - self.processed_materials, 0)
        seconds_per_material = self.elapsed_seconds / self.processed_materials
        return int(round(remaining * seconds_per_material))

    def to_dict(self) -> dict:
        return {
            "sync_id": self.id,
            "customer_id": self.customer_id,
            "sales_org": self.sales_org,
            "status": SyncStatus(self.status).value,
            "total": self.total_materials,
            "processed": self.processed_materials,
            "percent": self.percentage_complete,
            "elapsed_seconds": self.elapsed_seconds,
            "estimated_remaining_seconds": self.estimated_time_remaining,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "error_message": self.error_message,
        }

    def __repr__(self):
        return f"<SyncProgress {self.id} {self.processed_materials}/{self.total_materials} ({self.status})>"

class SyncProgressItem(Base):
    """Учтенный элемент запуска. Повторная доставка задачи цены не считается дважды"""
    __tablename__ = "sync_progress_items"
    __table_args__ = (
        UniqueConstraint("sync_id", "item_key", name="uq_sync_progress_item"),
    )

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    sync_id = Column(String(100), ForeignKey("sync_progress.id", ondelete="CASCADE"), nullable=False, index=True)
    item_key = Column(String(120), nullable=False)
    created_at = Column(DateTime, default=datetime.now)

    def __repr__(self):
        return f"<SyncProgressItem {self.sync_id}:{self.item_key}>"
