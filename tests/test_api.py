import pytest
from fastapi.testclient import TestClient
from sapsync.api.v1.endpoints.sync import get_dispatcher
from sapsync.crud.sync_progress import create_sync_progress, increment_processed
from sapsync.database import get_db
from sapsync.main import app
from sapsync.services.sync_orchestrator import CUSTOMER_SYNC_TASK

@pytest.fixture
def client(db, dispatcher):
    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_dispatcher] = lambda: dispatcher
    yield TestClient(app)
    app.dependency_overrides.clear()

def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"

def test_trigger_sync_queues_customer_task(client, dispatcher):
    response = client.post("/api/v1/sap/sync", json={"salesOrg": "100", "customerId": "CUST1"})

    assert response.status_code == 202
    data = response.json()
    assert data["status"] == "sync_started"
    assert data["customer_id"] == "CUST1"
    assert data["sales_org"] == "100"
    assert dispatcher.submitted == [(CUSTOMER_SYNC_TASK, {"sales_org": "100", "customer_id": "CUST1"})]

def test_trigger_sync_accepts_numeric_ids(client, dispatcher):
    response = client.post("/api/v1/sap/sync", json={"salesOrg": 100, "customerId": 210839})

    assert response.status_code == 202
    assert dispatcher.submitted[0][1] == {"sales_org": "100", "customer_id": "210839"}

@pytest.mark.parametrize("payload", [
    {"salesOrg": "100"},
    {"customerId": "CUST1"},
    {"salesOrg": "  ", "customerId": "CUST1"},
])
def test_trigger_sync_rejects_invalid_request(client, dispatcher, payload):
    response = client.post("/api/v1/sap/sync", json=payload)

    assert response.status_code == 422
    assert dispatcher.submitted == []

def test_trigger_sync_dispatch_failure(client, dispatcher):
    class BrokenDispatcher:
        def submit(self, task_name, **kwargs):
            raise ConnectionError("broker down")

    app.dependency_overrides[get_dispatcher] = lambda: BrokenDispatcher()

    response = client.post("/api/v1/sap/sync", json={"salesOrg": "100", "customerId": "CUST1"})

    assert response.status_code == 500

def test_read_progress(client, db):
    progress = create_sync_progress(db, "CUST1", "100", 4)
    increment_processed(db, progress.id, 2)

    response = client.get("/api/v1/sap/sync/progress/CUST1", params={"sales_org": "100"})

    assert response.status_code == 200
    data = response.json()
    assert data["sync_id"] == progress.id
    assert data["status"] == "in_progress"
    assert data["total"] == 4
    assert data["processed"] == 2
    assert data["percent"] == 50.0

def test_read_progress_not_found(client):
    response = client.get("/api/v1/sap/sync/progress/CUST1", params={"sales_org": "100"})
    assert response.status_code == 404

def test_read_progress_requires_sales_org(client):
    response = client.get("/api/v1/sap/sync/progress/CUST1")
    assert response.status_code == 422

def test_trigger_sync_id_length_limit(client, dispatcher):
    accepted = client.post("/api/v1/sap/sync", json={"salesOrg": "100", "customerId": "C" * 50})
    rejected = client.post("/api/v1/sap/sync", json={"salesOrg": "100", "customerId": "C" * 51})

    assert accepted.status_code == 202
    assert rejected.status_code == 422
    assert len(dispatcher.submitted) == 1
