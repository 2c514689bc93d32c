# sapsync/schemas/sync.py
from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import Optional
from sapsync.models.sync_progress import SyncStatus

# Запуск синхронизации
class SyncRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    sales_org: str = Field(..., alias="salesOrg", min_length=1, max_length=50)
    customer_id: str = Field(..., alias="customerId", min_length=1, max_length=50)

    @field_validator("sales_org", "customer_id", mode="before")
    @classmethod
    def as_string(cls, v):
        # SAP-номера часто приходят числом
        if isinstance(v, int):
            return str(v)
        return v

    @field_validator("sales_org", "customer_id")
    @classmethod
    def not_blank(cls, v):
        if not v.strip():
            raise ValueError("Must not be blank")
        return v.strip()

class SyncStartedResponse(BaseModel):
    status: str = "sync_started"
    message: str
    sales_org: str
    customer_id: str

# Ответ API
class SyncProgressResponse(BaseModel):
    sync_id: str
    customer_id: str
    sales_org: str
    status: SyncStatus
    total: int
    processed: int
    percent: float
    elapsed_seconds: int
    estimated_remaining_seconds: Optional[int]
    started_at: Optional[str]
    completed_at: Optional[str]
    error_message: Optional[str]
