from datetime import datetime
from typing import Any, Dict
import uuid
from sqlalchemy import Column, String, JSON, DateTime, UniqueConstraint
from sqlalchemy.orm import relationship
from sapsync.database import Base
from sapsync.schemas.sap import SapCustomerData

class Customer(Base):
    """Клиент SAP (AG, заказчик) в разрезе организации сбыта"""
    __tablename__ = "customers"
    __table_args__ = (
        UniqueConstraint("sap_customer_id", "sales_org", name="uq_customer_sap"),
    )

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    sap_customer_id = Column(String(50), nullable=False, index=True)  # KUNNR
    sales_org = Column(String(50), nullable=False)                     # VKORG

    # Основные данные
    name1 = Column(String(255), nullable=False)
    name2 = Column(String(255), nullable=True)
    street = Column(String(255), nullable=True)
    city = Column(String(100), nullable=True)
    postal_code = Column(String(10), nullable=True)
    region = Column(String(3), nullable=True)
    country = Column(String(2), nullable=False)

    # Коммерческие условия
    currency = Column(String(3), nullable=True)
    incoterms = Column(String(20), nullable=True)
    shipping_condition = Column(String(20), nullable=True)
    payment_terms = Column(String(10), nullable=True)
    tax_class = Column(String(20), nullable=True)
    vat_number = Column(String(20), nullable=True)

    # Полный ответ SAP
    sap_data = Column(JSON, default=dict)

    # Даты
    last_sync_at = Column(DateTime, default=datetime.now)
    created_at = Column(DateTime, default=datetime.now)
    updated_at = Column(DateTime, default=datetime.now, onupdate=datetime.now)

    materials = relationship("CustomerMaterial", back_populates="customer", cascade="all, delete-orphan")

    @property
    def name(self) -> str:
        return f"{self.name1} {self.name2}" if self.name2 else self.name1

    def update_from_source(self, data: Dict[str, Any]) -> None:
        """
        Полностью перезаписывает производные поля из ответа SAP.
        Повторный вызов с теми же данными дает то же состояние.
        """
        decoded = SapCustomerData.model_validate(data)

        if decoded.name1 is not None:
            self.name1 = decoded.name1
        if decoded.country is not None:
            self.country = decoded.country
        self.name2 = decoded.name2
        self.street = decoded.street
        self.city = decoded.city
        self.postal_code = decoded.postal_code
        self.region = decoded.region
        self.currency = decoded.currency
        self.incoterms = decoded.incoterms
        self.shipping_condition = decoded.shipping_condition
        self.payment_terms = decoded.payment_terms
        self.tax_class = decoded.tax_class
        self.vat_number = decoded.vat_number
        self.sap_data = data

        now = datetime.now()
        self.last_sync_at = now
        self.updated_at = now

    def __repr__(self):
        return f"<Customer {self.sap_customer_id}/{self.sales_org} ({self.name1})>"
