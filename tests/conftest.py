import os

# До импорта sapsync: движок и настройки читаются при импорте
os.environ["DATABASE_URL"] = "sqlite://"

import asyncio
from typing import Any, Dict, List, Optional
import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from sapsync.database import Base
import sapsync.models  # noqa: F401
from sapsync.schemas.sap import SapContext
from sapsync.services.interfaces import CustomerDataSource, Dispatcher

CUSTOMER_PAYLOAD = {
    "NAME1": "Hospital Clinic",
    "NAME2": "Laboratorio",
    "STRAS": "Calle Villarroel 170",
    "ORT01": "Barcelona",
    "PSTLZ": "08036",
    "REGIO": "08",
    "LAND1": "ES",
    "WAERK": "EUR",
    "INCO1": "DAP",
    "ZTERM": "Z030",
    "STCEG": "ESQ0802070C",
    "WA_TVKO": {"VKORG": "100", "WAERS": "EUR"},
    "WA_TVAK": {"AUART": "ZQT"},
    "WA_AG": {"KUNNR": "CUST1"},
    "WA_WE": {"KUNNR": "CUST1-WE"},
}

@pytest.fixture
def db():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    TestingSession = sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False)
    session = TestingSession()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)
        engine.dispose()

class FakeSource(CustomerDataSource):
    """Источник данных SAP для тестов: ответы или исключения по ключу"""

    def __init__(
        self,
        customer: Any = None,
        materials: Any = None,
        prices: Optional[Dict[str, Any]] = None
    ):
        self.customer = customer if customer is not None else dict(CUSTOMER_PAYLOAD)
        self.materials = materials if materials is not None else {"X_MAT_FOUND": []}
        self.prices = prices or {}
        self.price_calls: List[Dict[str, Any]] = []
        self.customer_calls: List[tuple] = []

    @staticmethod
    def _answer(value):
        if isinstance(value, Exception):
            raise value
        return value

    async def fetch_customer(self, sales_org, customer_id):
        self.customer_calls.append((sales_org, customer_id))
        await asyncio.sleep(0)
        return self._answer(self.customer)

    async def fetch_material_list(self, context: SapContext):
        await asyncio.sleep(0)
        return self._answer(self.materials)

    async def fetch_material_price(self, customer_id, material_number, context, position_number=None):
        self.price_calls.append({
            "customer_id": customer_id,
            "material_number": material_number,
            "position_number": position_number,
        })
        await asyncio.sleep(0)
        return self._answer(self.prices.get(material_number, {}))

class RecordingDispatcher(Dispatcher):
    def __init__(self):
        self.submitted: List[tuple] = []

    def submit(self, task_name, **kwargs):
        self.submitted.append((task_name, kwargs))

class FakeRedis:
    """Минимальный Redis для SET NX EX / DELETE / EXISTS"""

    def __init__(self):
        self.store: Dict[str, Any] = {}
        self.ttls: Dict[str, int] = {}

    def set(self, key, value, nx=False, ex=None):
        if nx and key in self.store:
            return None
        self.store[key] = value
        self.ttls[key] = ex
        return True

    def delete(self, key):
        existed = key in self.store
        self.store.pop(key, None)
        self.ttls.pop(key, None)
        return 1 if existed else 0

    def exists(self, key):
        return 1 if key in self.store else 0

    def expire_now(self, key):
        self.delete(key)

@pytest.fixture
def source():
    return FakeSource()

@pytest.fixture
def dispatcher():
    return RecordingDispatcher()

@pytest.fixture
def fake_redis():
    return FakeRedis()

@pytest.fixture
def make_source():
    return FakeSource

@pytest.fixture
def customer_payload():
    return dict(CUSTOMER_PAYLOAD)
