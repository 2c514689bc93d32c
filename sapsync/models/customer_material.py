from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Optional
import uuid
from sqlalchemy import Column, String, JSON, Boolean, DateTime, Integer, Numeric, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
from sapsync.database import Base
from sapsync.schemas.sap import SapPriceData

class InvalidPositionNumber(ValueError):
    """Некорректный номер позиции SAP (POSNR)"""
    pass

class PositionNumber:
    """
    Номер позиции SAP (POSNR).

    Ровно 6 цифр, обычно с ведущими нулями ("000010"). Нужен SAP,
    чтобы правильно посчитать цену материала, который встречается
    в нескольких позициях.
    """

    LENGTH = 6

    def __init__(self, value: str):
        trimmed = (value or "").strip()

        if not trimmed:
            raise InvalidPositionNumber("POSNR cannot be empty")

        if len(trimmed) != self.LENGTH:
            raise InvalidPositionNumber(
                f'POSNR must be exactly {self.LENGTH} characters, got {len(trimmed)} characters: "{trimmed}"'
            )

        # isdigit() пропускает не-ASCII цифры
        if not (trimmed.isascii() and trimmed.isdigit()):
            raise InvalidPositionNumber(f'POSNR must contain only digits, got: "{trimmed}"')

        self.value = trimmed

    @classmethod
    def from_int(cls, value: int) -> "PositionNumber":
        if value < 0 or value > 999999:
            raise InvalidPositionNumber("POSNR integer value must be between 0 and 999999")
        return cls(str(value).zfill(cls.LENGTH))

    def to_int(self) -> int:
        return int(self.value)

    def __eq__(self, other):
        return isinstance(other, PositionNumber) and self.value == other.value

    def __hash__(self):
        return hash(self.value)

    def __str__(self):
        return self.value

    def __repr__(self):
        return f"<PositionNumber {self.value}>"

class CustomerMaterial(Base):
    """Связь клиент-материал с индивидуальной ценой"""
    __tablename__ = "customer_materials"
    __table_args__ = (
        UniqueConstraint("customer_id", "material_id", "sales_org", name="uq_customer_material_salesorg"),
    )

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    customer_id = Column(String(36), ForeignKey("customers.id", ondelete="CASCADE"), nullable=False, index=True)
    material_id = Column(String(36), ForeignKey("materials.id", ondelete="CASCADE"), nullable=False, index=True)
    sales_org = Column(String(50), nullable=True)
    posnr = Column(String(6), nullable=True, index=True)

    # Цена
    price = Column(Numeric(13, 2), nullable=True)
    currency = Column(String(3), nullable=True)
    price_unit = Column(String(3), nullable=True)

    # Вес и объем
    weight = Column(Numeric(13, 3), nullable=True)
    weight_unit = Column(String(3), nullable=True)
    volume = Column(Numeric(13, 3), nullable=True)
    volume_unit = Column(String(3), nullable=True)

    # Доступность
    is_available = Column(Boolean, default=True)
    minimum_order_quantity = Column(Integer, nullable=True)
    availability_days = Column(Integer, nullable=True)  # срок поставки в днях

    sap_price_data = Column(JSON, default=dict)
    price_updated_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=datetime.now)
    updated_at = Column(DateTime, default=datetime.now, onupdate=datetime.now)

    customer = relationship("Customer", back_populates="materials")
    material = relationship("Material", back_populates="customer_materials")

    def update_price(self, price: str, currency: str, price_data: Dict[str, Any]) -> None:
        """Обновляет только ценовые поля"""
        decoded = SapPriceData.model_validate(price_data)

        self.price = Decimal(str(price).strip())
        self.currency = currency
        self.price_unit = decoded.price_unit
        self.weight = decoded.weight
        self.weight_unit = decoded.weight_unit
        self.volume = decoded.volume
        self.volume_unit = decoded.volume_unit
        self.minimum_order_quantity = (
            int(decoded.minimum_order_quantity) if decoded.minimum_order_quantity is not None else None
        )
        self.availability_days = (
            int(decoded.availability_days) if decoded.availability_days is not None else None
        )
        self.sap_price_data = price_data

        now = datetime.now()
        self.price_updated_at = now
        self.updated_at = now

    @property
    def position_number(self) -> Optional[PositionNumber]:
        return PositionNumber(self.posnr) if self.posnr is not None else None

    def set_position_number(self, value: str) -> None:
        self.posnr = PositionNumber(value).value
        self.updated_at = datetime.now()

    def mark_unavailable(self) -> None:
        self.is_available = False
        self.updated_at = datetime.now()

    def __repr__(self):
        return f"<CustomerMaterial {self.customer_id}:{self.material_id} ({self.price} {self.currency})>"
