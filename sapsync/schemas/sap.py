# sapsync/schemas/sap.py
"""
Типизированное декодирование ответов SAP.

SAP отвечает плоскими словарями с ключами вида NAME1, MATNR, NETPR.
Здесь они превращаются в модели с явными опциональными полями, чтобы
остальной пайплайн не зависел от формы ответа.
"""
from decimal import Decimal
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, ConfigDict, Field, model_validator

# Структуры, без которых загрузка материалов невозможна
REQUIRED_CONTEXT_KEYS = ("WA_TVKO", "WA_TVAK", "WA_AG")

class SapPayload(BaseModel):
    """Базовая модель для ответов SAP"""
    model_config = ConfigDict(
        populate_by_name=True,
        coerce_numbers_to_str=True,
        str_strip_whitespace=True,
        extra="ignore",
    )

    @model_validator(mode="before")
    @classmethod
    def blank_to_none(cls, data: Any) -> Any:
        # SAP отдает "" вместо отсутствующего значения
        if isinstance(data, dict):
            return {
                k: (None if isinstance(v, str) and not v.strip() else v)
                for k, v in data.items()
            }
        return data

class SapContext(BaseModel):
    """Контекст запроса к SAP: орг. сбыта, вид документа и партнеры"""
    tvko: Dict[str, Any] = Field(default_factory=dict)
    tvak: Dict[str, Any] = Field(default_factory=dict)
    sold_to: Dict[str, Any] = Field(default_factory=dict)
    ship_to: Dict[str, Any] = Field(default_factory=dict)
    bill_to: Dict[str, Any] = Field(default_factory=dict)

    @property
    def sales_org(self) -> Optional[str]:
        value = self.tvko.get("VKORG")
        return str(value) if value not in (None, "") else None

    def to_request(self) -> Dict[str, Any]:
        """Тело запроса в формате SAP"""
        return {
            "I_WA_TVKO": self.tvko,
            "I_WA_TVAK": self.tvak,
            "I_WA_AG": self.sold_to,
            "I_WA_WE": self.ship_to,
            "I_WA_RG": self.bill_to,
        }

class SapCustomerData(SapPayload):
    name1: Optional[str] = Field(None, alias="NAME1")
    name2: Optional[str] = Field(None, alias="NAME2")
    street: Optional[str] = Field(None, alias="STRAS")
    city: Optional[str] = Field(None, alias="ORT01")
    postal_code: Optional[str] = Field(None, alias="PSTLZ")
    region: Optional[str] = Field(None, alias="REGIO")
    country: Optional[str] = Field(None, alias="LAND1")
    currency: Optional[str] = Field(None, alias="WAERK")
    incoterms: Optional[str] = Field(None, alias="INCO1")
    shipping_condition: Optional[str] = Field(None, alias="VSBED")
    payment_terms: Optional[str] = Field(None, alias="ZTERM")
    tax_class: Optional[str] = Field(None, alias="TAXK1")
    vat_number: Optional[str] = Field(None, alias="STCEG")

    # Вложенные структуры для дальнейшей загрузки материалов
    tvko: Optional[Dict[str, Any]] = Field(None, alias="WA_TVKO")
    tvak: Optional[Dict[str, Any]] = Field(None, alias="WA_TVAK")
    sold_to: Optional[Dict[str, Any]] = Field(None, alias="WA_AG")
    ship_to: Optional[Dict[str, Any]] = Field(None, alias="WA_WE")
    bill_to: Optional[Dict[str, Any]] = Field(None, alias="WA_RG")

    def missing_context(self) -> List[str]:
        """Какие из обязательных структур отсутствуют в ответе"""
        present = {
            "WA_TVKO": self.tvko,
            "WA_TVAK": self.tvak,
            "WA_AG": self.sold_to,
        }
        return [key for key in REQUIRED_CONTEXT_KEYS if present[key] is None]

    def materials_context(self) -> Optional[SapContext]:
        if self.missing_context():
            return None
        return SapContext(
            tvko=self.tvko,
            tvak=self.tvak,
            sold_to=self.sold_to,
            ship_to=self.ship_to or {},
            bill_to=self.bill_to or {},
        )

class SapMaterialRecord(SapPayload):
    material_number: Optional[str] = Field(None, alias="MATNR")
    position_number: Optional[str] = Field(None, alias="POSNR")
    description: Optional[str] = Field(None, alias="MAKTG")
    description_short: Optional[str] = Field(None, alias="MAKTX")
    material_type: Optional[str] = Field(None, alias="MTART")
    material_group: Optional[str] = Field(None, alias="MATKL")
    base_unit: Optional[str] = Field(None, alias="MEINS")
    weight: Optional[Decimal] = Field(None, alias="BRGEW")
    weight_unit: Optional[str] = Field(None, alias="GEWEI")
    volume: Optional[Decimal] = Field(None, alias="VOLUM")
    volume_unit: Optional[str] = Field(None, alias="VOLEH")

class SapPriceData(SapPayload):
    price: Optional[str] = Field(None, alias="NETPR")
    currency: Optional[str] = Field(None, alias="WAERK")
    price_unit: Optional[str] = Field(None, alias="VRKME")
    weight: Optional[Decimal] = Field(None, alias="BRGEW")
    weight_unit: Optional[str] = Field(None, alias="GEWEI")
    volume: Optional[Decimal] = Field(None, alias="VOLUM")
    volume_unit: Optional[str] = Field(None, alias="VOLEH")
    minimum_order_quantity: Optional[Decimal] = Field(None, alias="MINMENGE")
    availability_days: Optional[Decimal] = Field(None, alias="LPRIO")

    @model_validator(mode="after")
    def default_price(self) -> "SapPriceData":
        if self.price is None:
            self.price = "0.00"
        return self
