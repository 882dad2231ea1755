import pytest
from fastapi.testclient import TestClient

from inventory_service.main import app
from inventory_service.reservation import ReservationEngine
from inventory_service.routes import get_engine
from tests.mocks.fake_redis import FakeRedis, UnavailableRedis


@pytest.fixture
def engine():
    return ReservationEngine(FakeRedis(), backoff_base=0)


@pytest.fixture
def client(engine):
    app.dependency_overrides[get_engine] = lambda: engine
    yield TestClient(app)
    app.dependency_overrides.clear()


def test_put_then_get_stock(client):
    put = client.put("/stock/SKU", json={"stock": 12})
    get = client.get("/stock/SKU")

    assert put.status_code == 200
    assert get.json() == {"itemId": "SKU", "availableStock": 12}


def test_get_unknown_item_is_404(client):
    assert client.get("/stock/NOPE").status_code == 404


@pytest.mark.parametrize("body", [{"stock": -1}, {"stock": "7"}, {"stock": 1.5}, {}])
def test_put_rejects_bad_values(client, body):
    assert client.put("/stock/SKU", json=body).status_code == 422


def test_counter_store_outage_is_503():
    app.dependency_overrides[get_engine] = lambda: ReservationEngine(UnavailableRedis())
    try:
        assert TestClient(app).get("/stock/SKU").status_code == 503
    finally:
        app.dependency_overrides.clear()
