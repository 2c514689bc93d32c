from sapsync.models.customer import Customer
from sapsync.models.material import Material
from sapsync.models.customer_material import CustomerMaterial, PositionNumber, InvalidPositionNumber
from sapsync.models.sync_progress import SyncProgress, SyncProgressItem, SyncStatus

__all__ = [
    "Customer",
    "Material",
    "CustomerMaterial",
    "PositionNumber",
    "InvalidPositionNumber",
    "SyncProgress",
    "SyncProgressItem",
    "SyncStatus",
]
