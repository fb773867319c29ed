import pytest
import httpx
from datetime import date
from unittest.mock import AsyncMock, MagicMock, patch
from ingestion.extractors.elering_client import EleringClient
from core.exceptions import (
    AuthenticationError,
    DataFormatError,
    MarketAPIError,
    NetworkError,
    RateLimitError,
    ResourceNotFoundError,
    ValidationError,
)


def _mock_response(status_code=200, payload=None, text="", headers=None):
    response = MagicMock()
    response.status_code = status_code
    response.json.return_value = payload
    response.text = text
    response.headers = headers or {}
    return response


def _patch_client(mock_client_cls, response=None, side_effect=None):
    mock_client = MagicMock()
    mock_client.get = AsyncMock(return_value=response, side_effect=side_effect)
    mock_client_cls.return_value.__aenter__.return_value = mock_client
    return mock_client


@pytest.fixture
def client():
    return EleringClient(
        base_url="https://dashboard.elering.ee/api/nps/price",
        countries=["lt", "ee", "lv", "fi"]
    )


class TestFetchAllCountries:

    @pytest.mark.asyncio
    async def test_payload_with_three_of_four_countries(self, client):
        payload = {
            "success": True,
            "data": {
                "lt": [{"timestamp": 1704060000, "price": 85.32}, {"timestamp": 1704063600, "price": 80.1}],
                "ee": [{"timestamp": 1704060000, "price": 85.32}],
                "lv": [{"timestamp": 1704060000, "price": 85.32}],
            }
        }

        with patch("httpx.AsyncClient") as mock_client_cls:
            _patch_client(mock_client_cls, _mock_response(payload=payload))

            result = await client.fetch_all_countries(date(2024, 1, 1), date(2024, 1, 2))

        assert set(result) == {"lt", "ee", "lv", "fi"}
        assert len(result["lt"]) == 2
        assert len(result["ee"]) == 1
        assert len(result["lv"]) == 1
        assert result["fi"] == []

    @pytest.mark.asyncio
    async def test_request_uses_provider_window(self, client):
        with patch("httpx.AsyncClient") as mock_client_cls:
            mock_client = _patch_client(mock_client_cls, _mock_response(payload={"success": True, "data": {}}))

            await client.fetch_all_countries(date(2024, 1, 1), date(2024, 1, 2))

        _, kwargs = mock_client.get.call_args
        assert kwargs["params"] == {
            "start": "2023-12-31T22:00:00.000Z",
            "end": "2024-01-02T21:59:59.999Z",
        }

    @pytest.mark.asyncio
    async def test_malformed_country_entry_means_no_data(self, client):
        payload = {
            "data": {
                "lt": "unavailable",
                "ee": [{"timestamp": 1704060000, "price": 85.32}, {"timestamp": "x", "price": None}],
            }
        }

        with patch("httpx.AsyncClient") as mock_client_cls:
            _patch_client(mock_client_cls, _mock_response(payload=payload))

            result = await client.fetch_all_countries(date(2024, 1, 1), date(2024, 1, 1))

        assert result["lt"] == []
        assert result["ee"] == [{"timestamp": 1704060000, "price": 85.32}]

    @pytest.mark.asyncio
    async def test_span_over_one_year_rejected_before_request(self, client):
        with patch("httpx.AsyncClient") as mock_client_cls:
            with pytest.raises(ValidationError):
                await client.fetch_all_countries(date(2022, 1, 1), date(2023, 6, 1))

            mock_client_cls.assert_not_called()

    @pytest.mark.asyncio
    async def test_missing_data_object(self, client):
        with patch("httpx.AsyncClient") as mock_client_cls:
            _patch_client(mock_client_cls, _mock_response(payload={"success": True}))

            with pytest.raises(DataFormatError):
                await client.fetch_all_countries(date(2024, 1, 1), date(2024, 1, 1))

    @pytest.mark.asyncio
    async def test_non_json_body(self, client):
        response = _mock_response()
        response.json.side_effect = ValueError("not json")

        with patch("httpx.AsyncClient") as mock_client_cls:
            _patch_client(mock_client_cls, response)

            with pytest.raises(DataFormatError):
                await client.fetch_all_countries(date(2024, 1, 1), date(2024, 1, 1))


class TestErrorMapping:

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status_code,expected", [
        (401, AuthenticationError),
        (403, AuthenticationError),
        (404, ResourceNotFoundError),
        (429, RateLimitError),
        (500, NetworkError),
        (503, NetworkError),
        (400, MarketAPIError),
    ])
    async def test_status_codes(self, client, status_code, expected):
        with patch("httpx.AsyncClient") as mock_client_cls:
            _patch_client(mock_client_cls, _mock_response(status_code=status_code, text="error"))

            with pytest.raises(expected):
                await client.fetch_all_countries(date(2024, 1, 1), date(2024, 1, 1))

    @pytest.mark.asyncio
    async def test_rate_limit_retry_after(self, client):
        response = _mock_response(status_code=429, headers={"Retry-After": "30"})

        with patch("httpx.AsyncClient") as mock_client_cls:
            _patch_client(mock_client_cls, response)

            with pytest.raises(RateLimitError) as exc_info:
                await client.fetch_all_countries(date(2024, 1, 1), date(2024, 1, 1))

        assert exc_info.value.retry_after == 30

    @pytest.mark.asyncio
    async def test_timeout_is_network_error(self, client):
        with patch("httpx.AsyncClient") as mock_client_cls:
            _patch_client(mock_client_cls, side_effect=httpx.TimeoutException("timed out"))

            with pytest.raises(NetworkError):
                await client.fetch_all_countries(date(2024, 1, 1), date(2024, 1, 1))

    @pytest.mark.asyncio
    async def test_connection_error_is_network_error(self, client):
        with patch("httpx.AsyncClient") as mock_client_cls:
            _patch_client(mock_client_cls, side_effect=httpx.ConnectError("refused"))

            with pytest.raises(NetworkError):
                await client.fetch_all_countries(date(2024, 1, 1), date(2024, 1, 1))

    @pytest.mark.asyncio
    async def test_no_retry_inside_client(self, client):
        with patch("httpx.AsyncClient") as mock_client_cls:
            mock_client = _patch_client(mock_client_cls, _mock_response(status_code=503))

            with pytest.raises(NetworkError):
                await client.fetch_all_countries(date(2024, 1, 1), date(2024, 1, 1))

        assert mock_client.get.await_count == 1


class TestFetchRange:

    @pytest.mark.asyncio
    async def test_long_span_split_into_yearly_calls(self, client):
        payload = {"data": {"lt": [{"timestamp": 1704060000, "price": 1.5}]}}

        with patch("httpx.AsyncClient") as mock_client_cls:
            mock_client = _patch_client(mock_client_cls, _mock_response(payload=payload))

            items = await client.fetch_range(date(2022, 1, 1), date(2023, 12, 31), "LT")

        assert mock_client.get.await_count == 2
        assert len(items) == 2

    @pytest.mark.asyncio
    async def test_fail_fast_on_window_error(self, client):
        ok = _mock_response(payload={"data": {"lt": []}})
        failing = _mock_response(status_code=502)

        with patch("httpx.AsyncClient") as mock_client_cls:
            mock_client = _patch_client(mock_client_cls, side_effect=[failing, ok, ok])

            with pytest.raises(NetworkError):
                await client.fetch_range(date(2021, 1, 1), date(2023, 12, 31), "lt")

        assert mock_client.get.await_count == 1


class TestLatestAndConnection:

    @pytest.mark.asyncio
    async def test_fetch_latest_uses_country_path(self, client):
        payload = {"success": True, "data": [{"timestamp": 1704060000, "price": 12.0}]}

        with patch("httpx.AsyncClient") as mock_client_cls:
            mock_client = _patch_client(mock_client_cls, _mock_response(payload=payload))

            items = await client.fetch_latest("lt")

        args, _ = mock_client.get.call_args
        assert args[0].endswith("/LT/latest")
        assert items == [{"timestamp": 1704060000, "price": 12.0}]

    @pytest.mark.asyncio
    async def test_connection_failure_returns_false(self, client):
        with patch("httpx.AsyncClient") as mock_client_cls:
            _patch_client(mock_client_cls, _mock_response(status_code=503))

            assert await client.test_connection() is False
