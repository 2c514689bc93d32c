"""
Внешние зависимости оркестраторов синхронизации.

Оркестраторы знают только эти интерфейсы: источник данных SAP
и диспетчер асинхронных задач.
"""
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional
from sapsync.schemas.sap import SapContext

class CustomerDataSource(ABC):
    """Источник данных о клиентах, материалах и ценах"""

    @abstractmethod
    async def fetch_customer(self, sales_org: str, customer_id: str) -> Dict[str, Any]:
        ...

    @abstractmethod
    async def fetch_material_list(self, context: SapContext) -> Dict[str, Any]:
        ...

    @abstractmethod
    async def fetch_material_price(
        self,
        customer_id: str,
        material_number: str,
        context: SapContext,
        position_number: Optional[str] = None
    ) -> Dict[str, Any]:
        ...

class Dispatcher(ABC):
    """
    Отправка задач в фоновую очередь.

    Fire-and-forget: результат не возвращается, доставка не реже
    одного раза, порядок не гарантирован.
    """

    @abstractmethod
    def submit(self, task_name: str, **kwargs: Any) -> None:
        ...
