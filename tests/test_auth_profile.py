import httpx
import pytest

from nearmart.core.errors import ConflictError, GeocodingError, InvalidArgumentError
from nearmart.core.security import ROLE_CUSTOMER, verify_access_token
from nearmart.services.auth_service import AuthService, parse_location
from nearmart.services.profile_service import ProfileService, haversine_km

from tests.conftest import make_retailer

ADDRESS = {"street": "10 Oak Ave", "city": "Springfield", "state": "IL", "zip_code": "62702"}


def customer_signup(**overrides):
    data = {
        "name": "Bob",
        "email": "Bob@Example.com",
        "password": "hunter22",
        "phone": "+15550111",
        "address": dict(ADDRESS),
        "location": {"type": "Point", "coordinates": [-73.99, 40.75]},
    }
    data.update(overrides)
    return data


class TestParseLocation:

    def test_point(self):
        assert parse_location({"type": "Point", "coordinates": [-73.99, 40.75]}) == (-73.99, 40.75)

    def test_absent(self):
        assert parse_location(None) == (None, None)

    @pytest.mark.parametrize("location", [
        {"type": "Polygon", "coordinates": [1, 2]},
        {"type": "Point", "coordinates": [1]},
        {"type": "Point", "coordinates": [200, 0]},
        "40.75,-73.99",
    ])
    def test_rejects_malformed(self, location):
        with pytest.raises(InvalidArgumentError):
            parse_location(location)


class TestCustomerAuth:

    async def test_signup_returns_token(self, db):
        customer, token = await AuthService(db).signup_customer(customer_signup())

        assert customer.email == "bob@example.com"
        assert customer.city == "Springfield"
        assert (customer.longitude, customer.latitude) == (-73.99, 40.75)
        assert customer.password_hash != "hunter22"

        assert verify_access_token(token) == (str(customer.id), ROLE_CUSTOMER)

    async def test_duplicate_email(self, db, customer):
        with pytest.raises(ConflictError):
            await AuthService(db).signup_customer(customer_signup(email="ALICE@example.com"))

    async def test_incomplete_address(self, db):
        with pytest.raises(InvalidArgumentError):
            await AuthService(db).signup_customer(customer_signup(address={"street": "10 Oak Ave"}))

    async def test_login(self, db, customer):
        logged_in, token = await AuthService(db).login_customer("Alice@Example.com", "secret123")
        assert logged_in.id == customer.id
        assert token

    @pytest.mark.parametrize("email, password", [
        ("alice@example.com", "wrong-password"),
        ("nobody@example.com", "secret123"),
    ])
    async def test_login_failures_look_the_same(self, db, customer, email, password):
        with pytest.raises(InvalidArgumentError) as exc:
            await AuthService(db).login_customer(email, password)
        assert exc.value.message == "Invalid credentials"

    async def test_signup_geocodes_when_location_missing(self, db, geocoder, geo_provider):
        geo_provider.responses = [httpx.Response(
            200, json=[{"lon": "-89.65", "lat": "39.78", "display_name": "10 Oak Ave"}]
        )]

        customer, _ = await AuthService(db, geocoder).signup_customer(customer_signup(location=None))

        assert (customer.longitude, customer.latitude) == (-89.65, 39.78)
        assert geo_provider.call_count == 1

    async def test_signup_geocoding_failure_propagates(self, db, geocoder, geo_provider):
        with pytest.raises(GeocodingError):
            await AuthService(db, geocoder).signup_customer(customer_signup(location=None))
        assert geo_provider.call_count == 1


class TestRetailerAuth:

    async def test_signup_with_location_only(self, db):
        retailer, _ = await AuthService(db).signup_retailer({
            "name": "Carol",
            "email": "carol@example.com",
            "password": "hunter22",
            "store_name": "Carol's Deli",
            "location": {"type": "Point", "coordinates": [-73.98, 40.74]},
        })
        assert retailer.store_name == "Carol's Deli"
        assert retailer.street is None
        assert retailer.has_location

    async def test_signup_requires_address_or_location(self, db):
        with pytest.raises(InvalidArgumentError):
            await AuthService(db).signup_retailer({
                "name": "Carol",
                "email": "carol@example.com",
                "password": "hunter22",
                "store_name": "Carol's Deli",
            })

    async def test_duplicate_email(self, db, retailer):
        with pytest.raises(ConflictError):
            await AuthService(db).signup_retailer({
                "name": "Dup",
                "email": "store@example.com",
                "password": "hunter22",
                "store_name": "Dup Store",
                "address": dict(ADDRESS),
            })

    async def test_login(self, db, retailer):
        logged_in, _ = await AuthService(db).login_retailer("store@example.com", "secret123")
        assert logged_in.id == retailer.id


class TestProfiles:

    async def test_update_customer(self, db, customer):
        updated = await ProfileService(db).update_customer(customer.id, {
            "phone": "+15550222",
            "preferred_time": "evening",
            "contactless_delivery": True,
            "address": {**ADDRESS, "zipCode": "62799", "zip_code": None},
        })
        assert updated.phone == "+15550222"
        assert updated.preferred_time == "evening"
        assert updated.contactless_delivery is True
        assert updated.zip_code == "62799"

    async def test_invalid_preferred_time(self, db, customer):
        with pytest.raises(InvalidArgumentError):
            await ProfileService(db).update_customer(customer.id, {"preferred_time": "midnight"})

    async def test_update_retailer_location(self, db, retailer):
        updated = await ProfileService(db).update_retailer(retailer.id, {
            "store_description": "Fresh produce daily",
            "location": {"type": "Point", "coordinates": [-74.0, 40.7]},
        })
        assert updated.store_description == "Fresh produce daily"
        assert (updated.longitude, updated.latitude) == (-74.0, 40.7)


class TestNearbyStores:

    def test_haversine(self):
        assert haversine_km(40.7484, -73.9857, 40.7484, -73.9857) == 0
        # Empire State Building to Statue of Liberty, roughly 8.3 km
        assert 8.0 < haversine_km(40.7484, -73.9857, 40.6892, -74.0445) < 8.6

    async def test_uses_customer_location_and_default_radius(self, db, customer, retailer, other_retailer):
        stores = await ProfileService(db).find_nearby_stores(customer.id)
        assert [r.id for r, _ in stores] == [retailer.id]
        assert stores[0][1] < 0.1

    async def test_sorted_by_distance(self, db, customer, retailer, other_retailer):
        stores = await ProfileService(db).find_nearby_stores(customer.id, radius_km=20)
        assert [r.id for r, _ in stores] == [retailer.id, other_retailer.id]
        assert stores[0][1] < stores[1][1]

    async def test_explicit_coordinates(self, db, customer, retailer, other_retailer):
        stores = await ProfileService(db).find_nearby_stores(
            customer.id, latitude=40.8000, longitude=-73.9000, radius_km=1
        )
        assert [r.id for r, _ in stores] == [other_retailer.id]

    async def test_retailers_without_location_are_skipped(self, db, customer, retailer):
        await make_retailer(db, email="nowhere@example.com", longitude=None, latitude=None)
        stores = await ProfileService(db).find_nearby_stores(customer.id)
        assert [r.id for r, _ in stores] == [retailer.id]

    async def test_customer_without_location(self, db, customer):
        customer.longitude = None
        customer.latitude = None
        await db.commit()

        with pytest.raises(InvalidArgumentError) as exc:
            await ProfileService(db).find_nearby_stores(customer.id)
        assert exc.value.message.startswith("Location not found")

    async def test_rejects_non_positive_radius(self, db, customer):
        with pytest.raises(InvalidArgumentError):
            await ProfileService(db).find_nearby_stores(customer.id, radius_km=0)
