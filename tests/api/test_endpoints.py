import pytest
import pytest_asyncio
from datetime import date
from httpx import ASGITransport, AsyncClient
from api.dependencies import get_db, get_health_monitor, get_scheduler, get_sync_engine
from api.main import app
from core.timeutils import get_timezone, local_day_bounds
from ingestion.health import HealthMonitor
from ingestion.scheduler import SyncScheduler
from models.base import SyncType
from tests.conftest import COUNTRIES, FIXED_NOW, seed_prices

VILNIUS = get_timezone("Europe/Vilnius")


def day_start(day: date) -> int:
    return local_day_bounds(day, VILNIUS)[0]


@pytest_asyncio.fixture
async def client(session_factory, sync_engine, test_settings):
    """HTTP client against the app with services bound to the test database"""
    monitor = HealthMonitor(session_factory, sync_engine, config=test_settings, clock=lambda: FIXED_NOW)
    scheduler = SyncScheduler(sync_engine, monitor, config=test_settings)

    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_sync_engine] = lambda: sync_engine
    app.dependency_overrides[get_health_monitor] = lambda: monitor
    app.dependency_overrides[get_scheduler] = lambda: scheduler

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


class TestPriceQueries:

    @pytest.mark.asyncio
    async def test_spring_forward_day_has_23_hours(self, client, session_factory):
        await seed_prices(session_factory, "lt", day_start(date(2024, 3, 30)), 72)

        response = await client.get("/api/v1/nps/prices", params={"date": "2024-03-31", "country": "lt"})

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert len(body["data"]) == 23
        assert body["meta"]["count"] == 23
        assert body["meta"]["timezone"] == "Europe/Vilnius"

    @pytest.mark.asyncio
    async def test_points_stay_inside_local_day(self, client, session_factory):
        await seed_prices(session_factory, "lt", day_start(date(2024, 3, 9)), 72)
        start_ts, end_ts = local_day_bounds(date(2024, 3, 10), VILNIUS)

        response = await client.get("/api/v1/nps/prices", params={"date": "2024-03-10"})

        assert response.status_code == 200
        body = response.json()
        assert (body["meta"]["start"], body["meta"]["end"]) == (start_ts, end_ts)
        assert len(body["data"]) == 24
        assert all(start_ts <= item["timestamp"] <= end_ts for item in body["data"])

    @pytest.mark.asyncio
    async def test_range_for_all_countries(self, client, session_factory):
        for country in COUNTRIES:
            await seed_prices(session_factory, country, day_start(date(2024, 1, 1)), 48)

        response = await client.get(
            "/api/v1/nps/prices",
            params={"start": "2024-01-01", "end": "2024-01-02", "country": "all"}
        )

        assert response.status_code == 200
        data = response.json()["data"]
        assert len(data) == 48 * len(COUNTRIES)
        assert data == sorted(data, key=lambda item: (item["timestamp"], item["country"]))

    @pytest.mark.asyncio
    @pytest.mark.parametrize("params", [
        {"date": "2024/03/10"},
        {"date": "2024-02-30"},
        {"start": "2024-01-01"},
        {},
        {"start": "2024-01-05", "end": "2024-01-01"},
        {"date": "2024-01-01", "country": "se"},
    ])
    async def test_invalid_parameters(self, client, params):
        response = await client.get("/api/v1/nps/prices", params=params)

        assert response.status_code == 400
        body = response.json()
        assert body["success"] is False
        assert body["code"] == "INVALID_PARAMETERS"

    @pytest.mark.asyncio
    async def test_latest_without_data(self, client):
        response = await client.get("/api/v1/nps/price/lt/latest")

        assert response.status_code == 404
        assert response.json()["code"] == "NO_DATA_FOUND"

    @pytest.mark.asyncio
    async def test_latest_price(self, client, session_factory):
        await seed_prices(session_factory, "ee", day_start(date(2024, 1, 14)), 24, price=73.5)

        response = await client.get("/api/v1/nps/price/EE/latest")

        assert response.status_code == 200
        body = response.json()
        assert body["data"] == [{"timestamp": day_start(date(2024, 1, 14)) + 23 * 3600, "price": 73.5, "country": "ee"}]
        assert body["price_unit"] == "EUR/MWh"

    @pytest.mark.asyncio
    async def test_countries(self, client, session_factory):
        await seed_prices(session_factory, "lt", day_start(date(2024, 1, 14)), 1)

        response = await client.get("/api/v1/countries")

        assert response.status_code == 200
        by_code = {item["code"]: item for item in response.json()["data"]}
        assert set(by_code) == set(COUNTRIES)
        assert by_code["lt"]["has_data"] is True
        assert by_code["fi"]["has_data"] is False
        assert by_code["lt"]["name"] == "Lithuania"


class TestSyncEndpoints:

    @pytest.mark.asyncio
    async def test_date_complete(self, client, session_factory):
        for country in COUNTRIES:
            await seed_prices(session_factory, country, day_start(date(2024, 1, 14)), 24)

        response = await client.get("/api/v1/sync/date-complete/2024-01-14")

        assert response.status_code == 200
        body = response.json()
        assert body["isComplete"] is True
        assert body["countryCounts"] == {c: 24 for c in COUNTRIES}

    @pytest.mark.asyncio
    async def test_date_complete_bad_date(self, client):
        response = await client.get("/api/v1/sync/date-complete/yesterday")

        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_historical_trigger(self, client, fake_client):
        response = await client.post(
            "/api/v1/sync/historical",
            json={"startDate": "2024-01-01", "endDate": "2024-01-02", "country": "lt"}
        )

        assert response.status_code == 200
        body = response.json()
        assert body["syncType"] == SyncType.HISTORICAL.value
        assert body["status"] == "success"
        assert body["recordsCreated"] == 48
        assert fake_client.calls == [("lt", date(2024, 1, 1), date(2024, 1, 2))]

    @pytest.mark.asyncio
    async def test_historical_inverted_range(self, client, fake_client):
        response = await client.post(
            "/api/v1/sync/historical",
            json={"startDate": "2024-01-05", "endDate": "2024-01-01"}
        )

        assert response.status_code == 400
        assert fake_client.calls == []

    @pytest.mark.asyncio
    async def test_trigger_while_busy_returns_409(self, client, sync_engine, fake_client):
        sync_engine._running = True
        sync_engine._current_sync = SyncType.WEEKLY
        try:
            response = await client.post("/api/v1/sync/efficient")
        finally:
            sync_engine._running = False
            sync_engine._current_sync = None

        assert response.status_code == 409
        assert response.json()["code"] == "SYNC_IN_PROGRESS"
        assert fake_client.calls == []

    @pytest.mark.asyncio
    async def test_logs_after_sync(self, client, fake_client):
        fake_client.available_from = date(2024, 1, 15)
        await client.post("/api/v1/sync/efficient")

        response = await client.get("/api/v1/sync/logs", params={"limit": 5})

        assert response.status_code == 200
        logs = response.json()
        assert logs[0]["sync_type"] == SyncType.EFFICIENT.value
        assert logs[0]["status"] == "success"

    @pytest.mark.asyncio
    async def test_initial_status(self, client):
        response = await client.get("/api/v1/sync/initial-status")

        assert response.status_code == 200
        assert response.json()["isComplete"] is False

    @pytest.mark.asyncio
    async def test_schedule_before_start(self, client):
        response = await client.get("/api/v1/sync/schedule")

        assert response.status_code == 200
        body = response.json()
        assert body["schedulerRunning"] is False
        assert len(body["jobs"]) == 4


class TestHealthEndpoints:

    @pytest.mark.asyncio
    async def test_liveness(self, client):
        response = await client.get("/health")

        assert response.status_code == 200
        assert response.json()["database_connected"] is True
        assert "X-Request-ID" in response.headers

    @pytest.mark.asyncio
    async def test_request_id_propagated(self, client):
        response = await client.get("/health", headers={"X-Request-ID": "abc123"})

        assert response.headers["X-Request-ID"] == "abc123"

    @pytest.mark.asyncio
    async def test_report_healthy(self, client, session_factory):
        for country in COUNTRIES:
            await seed_prices(session_factory, country, int(FIXED_NOW.timestamp()) - 3600, 1)

        response = await client.get("/api/v1/health")

        assert response.status_code == 200
        body = response.json()
        assert body["overallStatus"] == "healthy"
        assert body["database"]["connected"] is True
        assert {item["country"] for item in body["dataFreshness"]} == set(COUNTRIES)

    @pytest.mark.asyncio
    async def test_report_degraded_without_data(self, client):
        response = await client.get("/api/v1/health")

        body = response.json()
        assert body["overallStatus"] == "degraded"
        assert "LT has no data" in body["issues"]
