"""
Elering NPS day-ahead price API client.

The provider returns, per request, a map from country code to an ordered list
of ``{"timestamp", "price"}`` items for a UTC window. A delivery day D is
requested as 22:00 UTC on D-1 through 21:59:59 UTC on D, and a single call
must not span more than 365 days.

Failures are raised as exceptions from ``core.exceptions``; this client does
not retry. Callers decide whether to re-invoke.
"""

import httpx
from datetime import date
from typing import List, Dict, Any, Optional
from core.config import settings
from core.timeutils import provider_window, to_iso_z, today_local, get_timezone
from ingestion.chunker import split_span, span_days
from core.exceptions import (
    MarketAPIError,
    NetworkError,
    RateLimitError,
    AuthenticationError,
    ResourceNotFoundError,
    DataFormatError,
    ValidationError
)
import logging

logger = logging.getLogger(__name__)

DEFAULT_HEADERS = {
    "User-Agent": (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
    ),
    "Accept": "application/json, text/plain, */*",
    "Accept-Language": "en-US,en;q=0.9",
    "Cache-Control": "no-cache",
}


class EleringClient:
    """
    Fetch published day-ahead prices for the tracked countries.

    Attributes:
        base_url: Price endpoint (default: settings.ELERING_API_URL)
        timeout: Request timeout in seconds (default: 30.0)
        countries: Country codes included in combined fetches
        max_span_days: Longest span a single call may cover
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        countries: Optional[List[str]] = None,
        max_span_days: Optional[int] = None
    ):
        self.base_url = (base_url or settings.ELERING_API_URL).rstrip("/")
        self.timeout = timeout if timeout is not None else settings.ELERING_TIMEOUT
        self.countries = [c.lower() for c in (countries or settings.COUNTRIES)]
        self.max_span_days = max_span_days or settings.MAX_API_SPAN_DAYS

    async def _get(self, url: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """
        Perform one GET and decode the JSON body.

        Raises:
            NetworkError: Timeouts, transport failures and 5xx responses
            RateLimitError: HTTP 429
            AuthenticationError: HTTP 401/403
            ResourceNotFoundError: HTTP 404
            MarketAPIError: Any other non-2xx response
            DataFormatError: Body is not a JSON object
        """
        context = {"api_url": url, **(params or {})}

        try:
            async with httpx.AsyncClient(timeout=self.timeout, headers=DEFAULT_HEADERS) as client:
                response = await client.get(url, params=params)
        except httpx.TimeoutException as e:
            raise NetworkError(
                f"Request timeout after {self.timeout}s",
                context=context,
                original_exception=e
            )
        except httpx.HTTPError as e:
            raise NetworkError(
                f"Request to market API failed: {type(e).__name__}",
                context=context,
                original_exception=e
            )

        status = response.status_code
        context["status_code"] = status

        if status in (401, 403):
            raise AuthenticationError(f"Authentication failed for {url}", context=context)

        if status == 404:
            raise ResourceNotFoundError(f"Resource not found: {url}", context=context)

        if status == 429:
            retry_after = response.headers.get("Retry-After")
            raise RateLimitError(
                f"Rate limit exceeded for {url}",
                context=context,
                retry_after=int(retry_after) if retry_after and retry_after.isdigit() else None
            )

        if status >= 500:
            context["response_body"] = response.text[:500]
            raise NetworkError(f"Server error {status} from market API", context=context)

        if not 200 <= status < 300:
            context["response_body"] = response.text[:500]
            raise MarketAPIError(f"Unexpected status {status} from market API", context=context)

        try:
            payload = response.json()
        except ValueError as e:
            raise DataFormatError(
                "Market API returned a non-JSON body",
                context=context,
                original_exception=e
            )

        if not isinstance(payload, dict):
            raise DataFormatError("Market API returned an unexpected payload", context=context)

        if payload.get("success") is False:
            raise MarketAPIError("Market API reported failure", context=context)

        return payload

    def _window_params(self, start_date: date, end_date: date) -> Dict[str, str]:
        window_start, window_end = provider_window(start_date, end_date)
        return {"start": to_iso_z(window_start), "end": to_iso_z(window_end)}

    @staticmethod
    def _country_items(data: Dict[str, Any], country: str) -> List[Dict[str, Any]]:
        """
        Pull one country's items out of the ``data`` map.

        A missing or malformed country entry means "no data" for that country.
        Items without numeric timestamp and price are dropped.
        """
        items = data.get(country)
        if items is None:
            return []
        if not isinstance(items, list):
            logger.warning(f"Ignoring malformed data for {country}: expected list, got {type(items).__name__}")
            return []

        valid = []
        dropped = 0
        for item in items:
            if (
                isinstance(item, dict)
                and isinstance(item.get("timestamp"), (int, float))
                and not isinstance(item.get("timestamp"), bool)
                and isinstance(item.get("price"), (int, float))
                and not isinstance(item.get("price"), bool)
            ):
                valid.append({"timestamp": int(item["timestamp"]), "price": item["price"]})
            else:
                dropped += 1

        if dropped:
            logger.warning(f"Dropped {dropped} malformed price items for {country}")
        return valid

    @staticmethod
    def _data_map(payload: Dict[str, Any], context: Dict[str, Any]) -> Dict[str, Any]:
        data = payload.get("data")
        if not isinstance(data, dict):
            raise DataFormatError("Market API payload has no data object", context=context)
        return data

    async def fetch_all_countries(self, start_date: date, end_date: date) -> Dict[str, List[Dict[str, Any]]]:
        """
        Fetch every tracked country in a single call.

        Returns:
            Map of every tracked country to its (possibly empty) list of
            ``{"timestamp", "price"}`` items.

        Raises:
            ValidationError: If the span exceeds the one-year limit or is inverted
        """
        if start_date > end_date:
            raise ValidationError(
                "start_date must not be after end_date",
                context={"start_date": start_date.isoformat(), "end_date": end_date.isoformat()}
            )
        if span_days(start_date, end_date) > self.max_span_days:
            raise ValidationError(
                f"Date range exceeds {self.max_span_days} days, split it before fetching",
                context={"start_date": start_date.isoformat(), "end_date": end_date.isoformat()}
            )

        params = self._window_params(start_date, end_date)
        logger.info(f"Fetching all countries {start_date} to {end_date} ({params['start']} - {params['end']})")

        payload = await self._get(self.base_url, params)
        data = self._data_map(payload, {"api_url": self.base_url, **params})

        result = {country: self._country_items(data, country) for country in self.countries}

        counts = ", ".join(f"{c.upper()}={len(items)}" for c, items in result.items())
        logger.info(f"Fetched prices {start_date} to {end_date}: {counts}")
        return result

    async def fetch_range(self, start_date: date, end_date: date, country: str) -> List[Dict[str, Any]]:
        """
        Fetch one country's prices for ``start_date``..``end_date``.

        Spans longer than the one-year limit are fetched window by window;
        the first failing window aborts the whole fetch.
        """
        country = country.lower()
        items: List[Dict[str, Any]] = []

        for window in split_span(start_date, end_date, self.max_span_days):
            params = self._window_params(window.start, window.end)
            logger.info(f"Fetching {country.upper()} {window} ({params['start']} - {params['end']})")

            payload = await self._get(self.base_url, params)
            data = self._data_map(payload, {"api_url": self.base_url, **params})
            items.extend(self._country_items(data, country))

        logger.info(f"Fetched {len(items)} prices for {country.upper()} {start_date} to {end_date}")
        return items

    async def fetch_latest(self, country: str) -> List[Dict[str, Any]]:
        """Fetch the provider's latest published price for one country."""
        url = f"{self.base_url}/{country.upper()}/latest"
        payload = await self._get(url)

        data = payload.get("data")
        if isinstance(data, dict):
            data = [data]
        if not isinstance(data, list):
            raise DataFormatError("Latest price payload has no data list", context={"api_url": url})
        return self._country_items({country: data}, country)

    async def test_connection(self) -> bool:
        """Return True if today's prices can be fetched."""
        today = today_local(get_timezone())
        try:
            data = await self.fetch_all_countries(today, today)
        except MarketAPIError as e:
            logger.error(f"Market API connection test failed: {e}")
            return False
        except DataFormatError as e:
            logger.error(f"Market API connection test returned bad data: {e}")
            return False

        logger.info(f"Market API connection OK ({sum(len(v) for v in data.values())} prices for today)")
        return True
