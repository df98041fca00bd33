"""
Geocoder - OpenStreetMap Nominatim Integration

Translates postal addresses to coordinates (and back) for customer and
retailer profiles:
- TTL cache in front of the provider (Redis or in-memory)
- fixed-window rate limiter object owned by the service instance
- bounded retries with linear backoff on transport errors, timeouts, 429 and 5xx
"""

import asyncio
import logging
import re
import time
from typing import Any, Awaitable, Callable, Dict, Optional

import httpx
from pydantic import BaseModel

from nearmart.config import settings
from nearmart.core.address import format_address
from nearmart.core.errors import GeocodingError, InvalidArgumentError
from nearmart.services.cache_service import CacheBackend, get_cache

logger = logging.getLogger(__name__)

RETRYABLE_STATUS_CODES = {429, 500, 502, 503, 504}


# Response Models
class GeoPoint(BaseModel):
    """Coordinates for an address."""
    longitude: float
    latitude: float
    formatted_address: Optional[str] = None


class ReverseGeocodeResult(BaseModel):
    """Address found at a coordinate pair."""
    street: str = ""
    city: str = ""
    state: str = ""
    zip_code: str = ""
    country: str = ""
    formatted_address: str = ""


class FixedWindowRateLimiter:
    """
    Allows `limit` calls per `window_seconds`.

    The counter lives on the instance, so each geocoder (and each test)
    gets its own budget.
    """

    def __init__(
        self,
        limit: int,
        window_seconds: float,
        clock: Callable[[], float] = time.monotonic
    ):
        self.limit = limit
        self.window_seconds = window_seconds
        self._clock = clock
        self._count = 0
        self._window_start = clock()

    def _roll_window(self) -> None:
        now = self._clock()
        if now - self._window_start >= self.window_seconds:
            self._window_start = now
            self._count = 0

    def acquire(self) -> bool:
        """Consume one call from the current window. False when the budget is spent."""
        self._roll_window()
        if self._count >= self.limit:
            return False
        self._count += 1
        return True

    def retry_after(self) -> int:
        """Seconds until the current window resets."""
        self._roll_window()
        remaining = self.window_seconds - (self._clock() - self._window_start)
        return max(0, int(remaining + 0.999))

    @property
    def calls_in_window(self) -> int:
        self._roll_window()
        return self._count


def validate_coordinates(longitude: float, latitude: float) -> None:
    try:
        longitude = float(longitude)
        latitude = float(latitude)
    except (TypeError, ValueError):
        raise InvalidArgumentError("Coordinates must be numbers")
    if not (-180 <= longitude <= 180) or not (-90 <= latitude <= 90):
        raise InvalidArgumentError(
            "Invalid coordinates provided. Longitude must be between -180 and 180, "
            "and latitude between -90 and 90.",
            {"longitude": longitude, "latitude": latitude},
        )


class GeocoderService:
    """
    Address geocoding against a Nominatim-compatible API.
    """

    def __init__(
        self,
        cache: CacheBackend,
        rate_limiter: FixedWindowRateLimiter,
        client: Optional[httpx.AsyncClient] = None,
        base_url: str = "https://nominatim.openstreetmap.org",
        user_agent: str = "nearmart-backend/1.0",
        timeout: float = 10.0,
        max_retries: int = 2,
        retry_delay: float = 1.0,
        cache_ttl: int = 60 * 60 * 24 * 30,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.cache = cache
        self.rate_limiter = rate_limiter
        self.client = client
        self.base_url = base_url.rstrip("/")
        self.user_agent = user_agent
        self.timeout = timeout
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.cache_ttl = cache_ttl
        self._sleep = sleep
        self.api_calls = 0

    # ==================== PUBLIC API ====================

    async def geocode(self, address: Dict[str, Any]) -> GeoPoint:
        """Coordinates for a {street, city, state, zip_code} address."""
        formatted = format_address(address)
        cache_key = "geocode:" + re.sub(r"\s+", " ", formatted.lower())

        cached = await self.cache.get(cache_key)
        if cached is not None:
            logger.debug(f"Using cached geocode for address: {formatted}")
            return GeoPoint(**cached)

        logger.info(f"Geocoding address: {formatted}")
        data = await self._request(
            "/search",
            {"q": formatted, "format": "jsonv2", "limit": 1, "addressdetails": 1},
            description=formatted,
        )
        if not isinstance(data, list) or not data:
            raise GeocodingError(
                f"No geocoding results found for address: {formatted}",
                {"address": formatted},
            )

        first = data[0]
        try:
            point = GeoPoint(
                longitude=float(first["lon"]),
                latitude=float(first["lat"]),
                formatted_address=first.get("display_name"),
            )
        except (KeyError, TypeError, ValueError):
            raise GeocodingError(f"Malformed geocoding response for address: {formatted}")

        await self.cache.set(cache_key, point.model_dump(), ttl=self.cache_ttl)
        return point

    async def reverse_geocode(self, longitude: float, latitude: float) -> ReverseGeocodeResult:
        """Address at a coordinate pair."""
        validate_coordinates(longitude, latitude)
        cache_key = f"reverse:{float(longitude):.6f}_{float(latitude):.6f}"

        cached = await self.cache.get(cache_key)
        if cached is not None:
            return ReverseGeocodeResult(**cached)

        description = f"[{longitude}, {latitude}]"
        logger.info(f"Reverse geocoding coordinates: {description}")
        data = await self._request(
            "/reverse",
            {"lat": latitude, "lon": longitude, "format": "jsonv2", "addressdetails": 1},
            description=description,
        )
        if not isinstance(data, dict) or "error" in data or not data.get("address"):
            raise GeocodingError(
                f"No reverse geocoding results found for coordinates: {description}",
                {"longitude": longitude, "latitude": latitude},
            )

        parts = data["address"]
        street = " ".join(p for p in (parts.get("house_number"), parts.get("road")) if p)
        result = ReverseGeocodeResult(
            street=street,
            city=parts.get("city") or parts.get("town") or parts.get("village") or "",
            state=parts.get("state", ""),
            zip_code=parts.get("postcode", ""),
            country=parts.get("country", ""),
            formatted_address=data.get("display_name", ""),
        )

        await self.cache.set(cache_key, result.model_dump(), ttl=self.cache_ttl)
        return result

    async def get_stats(self) -> Dict[str, Any]:
        return {
            "apiCalls": self.api_calls,
            "callsInWindow": self.rate_limiter.calls_in_window,
            "rateLimit": self.rate_limiter.limit,
            "windowResetsIn": self.rate_limiter.retry_after(),
            "cacheSize": await self.cache.size(),
        }

    # ==================== TRANSPORT ====================

    async def _request(self, path: str, params: Dict[str, Any], description: str) -> Any:
        """GET with rate limiting and bounded retries. Returns decoded JSON."""
        last_error: Optional[Exception] = None

        for attempt in range(self.max_retries + 1):
            if not self.rate_limiter.acquire():
                wait = self.rate_limiter.retry_after()
                logger.warning(f"Geocoding rate limit reached. Try again in {wait} seconds.")
                raise GeocodingError(
                    f"Geocoding rate limit reached. Try again in {wait} seconds.",
                    {"retryAfter": wait},
                )

            if attempt > 0:
                logger.info(f"Retry attempt {attempt}/{self.max_retries} for {description}")

            self.api_calls += 1
            try:
                response = await self._get(path, params)
                if response.status_code in RETRYABLE_STATUS_CODES:
                    raise httpx.HTTPStatusError(
                        f"Provider returned {response.status_code}",
                        request=response.request,
                        response=response,
                    )
                response.raise_for_status()
                return response.json()
            except httpx.HTTPStatusError as e:
                if e.response.status_code not in RETRYABLE_STATUS_CODES:
                    logger.error(f"Geocoding request rejected for {description}: {e}")
                    raise GeocodingError(f"Geocoding request rejected: {e.response.status_code}") from e
                last_error = e
            except (httpx.TimeoutException, httpx.TransportError) as e:
                last_error = e
            except ValueError as e:
                raise GeocodingError(f"Geocoding provider returned invalid JSON for {description}") from e

            logger.warning(
                f"Geocoding error (attempt {attempt + 1}/{self.max_retries + 1}) "
                f"for {description}: {last_error}"
            )
            if attempt < self.max_retries:
                await self._sleep(self.retry_delay * (attempt + 1))

        logger.error(f"Geocoding failed after {self.max_retries + 1} attempts for {description}")
        raise GeocodingError(
            f"Geocoding failed after {self.max_retries + 1} attempts: {last_error}"
        ) from last_error

    async def _get(self, path: str, params: Dict[str, Any]) -> httpx.Response:
        headers = {"User-Agent": self.user_agent, "Accept": "application/json"}
        url = f"{self.base_url}{path}"
        if self.client is not None:
            return await self.client.get(url, params=params, headers=headers, timeout=self.timeout)
        async with httpx.AsyncClient() as client:
            return await client.get(url, params=params, headers=headers, timeout=self.timeout)


def build_geocoder(cache: Optional[CacheBackend] = None) -> GeocoderService:
    """Geocoder configured from settings, with its own rate limiter."""
    return GeocoderService(
        cache=cache or get_cache(),
        rate_limiter=FixedWindowRateLimiter(
            settings.GEOCODER_RATE_LIMIT,
            settings.GEOCODER_RATE_WINDOW_SECONDS,
        ),
        base_url=settings.GEOCODER_BASE_URL,
        user_agent=settings.GEOCODER_USER_AGENT,
        timeout=settings.GEOCODER_TIMEOUT_SECONDS,
        max_retries=settings.GEOCODER_MAX_RETRIES,
        retry_delay=settings.GEOCODER_RETRY_DELAY_SECONDS,
        cache_ttl=settings.GEOCODER_CACHE_TTL,
    )
