import httpx
import pytest

from nearmart.core.errors import GeocodingError, InvalidArgumentError
from nearmart.services.cache_service import InMemoryCache
from nearmart.services.geocoder_service import FixedWindowRateLimiter, GeocoderService

from tests.conftest import FakeProvider

ADDRESS = {"street": "1 Main St", "city": "Springfield", "state": "IL", "zip_code": "62701"}

SEARCH_HIT = [{"lon": "-89.6501", "lat": "39.7817", "display_name": "1 Main St, Springfield, IL"}]


class FakeClock:
    def __init__(self, now=0.0):
        self.now = now

    def __call__(self):
        return self.now


@pytest.fixture
async def build_geocoder():
    """Factory returning (geocoder, recorded backoff delays) for a scripted provider."""
    clients = []

    def build(provider, limit=100, clock=None, max_retries=2):
        delays = []

        async def record_sleep(seconds):
            delays.append(seconds)

        http_client = httpx.AsyncClient(transport=httpx.MockTransport(provider))
        clients.append(http_client)
        geocoder = GeocoderService(
            cache=InMemoryCache(max_entries=10),
            rate_limiter=FixedWindowRateLimiter(limit=limit, window_seconds=60, clock=clock or FakeClock()),
            client=http_client,
            base_url="https://geo.test",
            max_retries=max_retries,
            retry_delay=1.0,
            sleep=record_sleep,
        )
        return geocoder, delays

    yield build
    for http_client in clients:
        await http_client.aclose()


class TestGeocode:

    async def test_resolves_and_caches(self, build_geocoder):
        provider = FakeProvider(httpx.Response(200, json=SEARCH_HIT))
        geocoder, _ = build_geocoder(provider)

        point = await geocoder.geocode(ADDRESS)
        again = await geocoder.geocode({**ADDRESS, "street": "  1 MAIN St "})

        assert (point.longitude, point.latitude) == (-89.6501, 39.7817)
        assert again == point
        assert provider.call_count == 1
        request = provider.requests[-1]
        assert request.url.path == "/search"
        assert request.url.params["q"] == "1 Main St, Springfield, IL 62701"
        assert request.headers["User-Agent"] == "nearmart-backend/1.0"

    async def test_empty_result_is_not_retried(self, build_geocoder):
        provider = FakeProvider(httpx.Response(200, json=[]))
        geocoder, delays = build_geocoder(provider)

        with pytest.raises(GeocodingError) as exc:
            await geocoder.geocode(ADDRESS)

        assert "No geocoding results" in exc.value.message
        assert provider.call_count == 1
        assert delays == []

    async def test_transient_failures_are_retried_with_backoff(self, build_geocoder):
        provider = FakeProvider(
            httpx.Response(503),
            httpx.ConnectError("connection refused"),
            httpx.Response(200, json=SEARCH_HIT),
        )
        geocoder, delays = build_geocoder(provider, max_retries=2)

        point = await geocoder.geocode(ADDRESS)

        assert point.latitude == 39.7817
        assert provider.call_count == 3
        assert delays == [1.0, 2.0]

    async def test_gives_up_after_max_retries(self, build_geocoder):
        provider = FakeProvider(httpx.Response(500))
        geocoder, delays = build_geocoder(provider, max_retries=2)

        with pytest.raises(GeocodingError) as exc:
            await geocoder.geocode(ADDRESS)

        assert "after 3 attempts" in exc.value.message
        assert provider.call_count == 3
        assert delays == [1.0, 2.0]

    async def test_client_errors_fail_fast(self, build_geocoder):
        provider = FakeProvider(httpx.Response(403))
        geocoder, _ = build_geocoder(provider)

        with pytest.raises(GeocodingError):
            await geocoder.geocode(ADDRESS)
        assert provider.call_count == 1

    async def test_incomplete_address_rejected_before_lookup(self, build_geocoder):
        provider = FakeProvider()
        geocoder, _ = build_geocoder(provider)
        with pytest.raises(InvalidArgumentError):
            await geocoder.geocode({"street": "1 Main St"})
        assert provider.call_count == 0


class TestRateLimiting:

    async def test_budget_exhaustion_raises(self, build_geocoder):
        provider = FakeProvider(httpx.Response(200, json=SEARCH_HIT))
        clock = FakeClock()
        geocoder, _ = build_geocoder(provider, limit=1, clock=clock)

        await geocoder.geocode(ADDRESS)
        clock.now = 15

        with pytest.raises(GeocodingError) as exc:
            await geocoder.geocode({**ADDRESS, "street": "2 Main St"})
        assert exc.value.details == {"retryAfter": 45}
        assert provider.call_count == 1

    async def test_cache_hits_do_not_consume_budget(self, build_geocoder):
        provider = FakeProvider(httpx.Response(200, json=SEARCH_HIT))
        geocoder, _ = build_geocoder(provider, limit=1)

        await geocoder.geocode(ADDRESS)
        await geocoder.geocode(ADDRESS)
        assert geocoder.rate_limiter.calls_in_window == 1

    def test_window_rolls_over(self):
        clock = FakeClock()
        limiter = FixedWindowRateLimiter(limit=2, window_seconds=60, clock=clock)

        assert limiter.acquire()
        assert limiter.acquire()
        assert not limiter.acquire()

        clock.now = 60
        assert limiter.acquire()
        assert limiter.calls_in_window == 1

    def test_limiters_do_not_share_budget(self):
        first = FixedWindowRateLimiter(limit=1, window_seconds=60, clock=FakeClock())
        second = FixedWindowRateLimiter(limit=1, window_seconds=60, clock=FakeClock())
        assert first.acquire()
        assert second.acquire()


class TestReverseGeocode:

    async def test_parses_address_parts(self, build_geocoder):
        provider = FakeProvider(httpx.Response(200, json={
            "display_name": "12 Elm St, Shelbyville, IL 62565, USA",
            "address": {
                "house_number": "12",
                "road": "Elm St",
                "town": "Shelbyville",
                "state": "IL",
                "postcode": "62565",
                "country": "United States",
            },
        }))
        geocoder, _ = build_geocoder(provider)

        result = await geocoder.reverse_geocode(-88.79, 39.41)

        assert provider.requests[-1].url.path == "/reverse"
        assert result.street == "12 Elm St"
        assert result.city == "Shelbyville"
        assert result.zip_code == "62565"
        assert result.country == "United States"

    async def test_provider_error_payload(self, build_geocoder):
        provider = FakeProvider(httpx.Response(200, json={"error": "Unable to geocode"}))
        geocoder, _ = build_geocoder(provider)

        with pytest.raises(GeocodingError):
            await geocoder.reverse_geocode(0.0, 0.0)

    @pytest.mark.parametrize("longitude, latitude", [(181, 0), (0, -91), ("east", 0)])
    async def test_invalid_coordinates(self, build_geocoder, longitude, latitude):
        provider = FakeProvider()
        geocoder, _ = build_geocoder(provider)
        with pytest.raises(InvalidArgumentError):
            await geocoder.reverse_geocode(longitude, latitude)
        assert provider.call_count == 0
