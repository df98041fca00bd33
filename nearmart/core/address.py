"""Postal address helpers shared by checkout, profiles and the geocoder."""

from typing import Any, Dict

from nearmart.core.errors import InvalidArgumentError

ADDRESS_FIELDS = ("street", "city", "state", "zip_code")


def normalize_address(address: Any) -> Dict[str, str]:
    """Validate a {street, city, state, zip_code} mapping and strip its values.

    `zipCode` is accepted as an alias for `zip_code`.
    """
    if not isinstance(address, dict):
        raise InvalidArgumentError("Address must be an object with street, city, state and zip_code")

    normalized = {}
    for field in ADDRESS_FIELDS:
        value = address.get(field)
        if value is None and field == "zip_code":
            value = address.get("zipCode")
        if not isinstance(value, str) or not value.strip():
            raise InvalidArgumentError(
                "Please provide complete address information",
                {"missingField": field},
            )
        normalized[field] = value.strip()
    return normalized


def format_address(address: Any) -> str:
    parts = normalize_address(address)
    return f"{parts['street']}, {parts['city']}, {parts['state']} {parts['zip_code']}"
