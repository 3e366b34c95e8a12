from datetime import datetime, timezone

import pytest

import utils


def test_to_base36():
    assert utils.to_base36(0) == "0"
    assert utils.to_base36(35) == "z"
    assert utils.to_base36(36) == "10"
    with pytest.raises(ValueError):
        utils.to_base36(-1)


def test_format_address():
    address = {"firstName": "Ada", "lastName": "Baker", "address": "1 Flour Lane", "city": "Sweet City", "state": "SC", "zipCode": "12345"}
    assert utils.format_address(address) == "Ada Baker, 1 Flour Lane, Sweet City, SC, 12345"
    assert utils.format_address("5 Main St") == "5 Main St"
    assert utils.format_address(None) == "Address not available"
    assert utils.format_address({}) == "Address not available"


def test_is_valid_address():
    assert utils.is_valid_address({"city": "Sweet City"}) is True
    assert utils.is_valid_address({"country": "US"}) is False
    assert utils.is_valid_address("   ") is False


def test_format_price():
    assert utils.format_price(1234.5) == "$1,234.50"
    assert utils.format_price(-2) == "-$2.00"


def test_timestamp_of_treats_naive_values_as_utc():
    aware = datetime(2024, 1, 1, tzinfo=timezone.utc)
    assert utils.timestamp_of(aware) == utils.timestamp_of(datetime(2024, 1, 1))
    assert utils.timestamp_of("2024-01-01T00:00:00Z") == aware.timestamp()
    assert utils.timestamp_of("yesterday") == 0.0
    assert utils.timestamp_of(None) == 0.0


def test_validators():
    assert utils.validate_phone("+1 555 123 4567") is True
    assert utils.validate_phone("0123") is False
    assert utils.validate_image_url("") is True
    assert utils.validate_image_url("https://example.com/cake.jpg") is True
    assert utils.validate_image_url("cake.jpg") is False
