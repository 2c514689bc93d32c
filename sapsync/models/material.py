from datetime import datetime
from typing import Any, Dict
import uuid
from sqlalchemy import Column, String, JSON, Boolean, DateTime, Numeric
from sqlalchemy.orm import relationship
from sapsync.database import Base
from sapsync.schemas.sap import SapMaterialRecord

class Material(Base):
    """Материал SAP. Общие мастер-данные, не привязаны к клиенту"""
    __tablename__ = "materials"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    sap_material_number = Column(String(40), unique=True, index=True, nullable=False)  # MATNR

    description = Column(String(255), nullable=False)
    description_short = Column(String(255), nullable=True)
    material_type = Column(String(10), nullable=True)
    material_group = Column(String(20), nullable=True)
    base_unit = Column(String(3), nullable=True)

    # Вес и объем
    weight = Column(Numeric(13, 3), nullable=True)
    weight_unit = Column(String(3), nullable=True)
    volume = Column(Numeric(13, 3), nullable=True)
    volume_unit = Column(String(3), nullable=True)

    is_active = Column(Boolean, default=True)

    sap_data = Column(JSON, default=dict)

    last_sync_at = Column(DateTime, default=datetime.now)
    created_at = Column(DateTime, default=datetime.now)
    updated_at = Column(DateTime, default=datetime.now, onupdate=datetime.now)

    customer_materials = relationship("CustomerMaterial", back_populates="material", cascade="all, delete-orphan")

    def update_from_source(self, data: Dict[str, Any]) -> None:
        decoded = SapMaterialRecord.model_validate(data)

        # Описание меняем только если SAP его прислал
        if decoded.description is not None:
            self.description = decoded.description

        self.description_short = decoded.description_short
        self.material_type = decoded.material_type
        self.material_group = decoded.material_group
        self.base_unit = decoded.base_unit
        self.weight = decoded.weight
        self.weight_unit = decoded.weight_unit
        self.volume = decoded.volume
        self.volume_unit = decoded.volume_unit
        self.sap_data = data

        now = datetime.now()
        self.last_sync_at = now
        self.updated_at = now

    def deactivate(self) -> None:
        self.is_active = False
        self.updated_at = datetime.now()

    def __repr__(self):
        return f"<Material {self.sap_material_number} ({self.description})>"
