import re
from datetime import datetime, timezone
from typing import Any, Optional
from urllib.parse import urlparse

BASE36_DIGITS = "0123456789abcdefghijklmnopqrstuvwxyz"

PHONE_RE = re.compile(r"^\+?[1-9]\d{0,15}$")


def to_base36(number: int) -> str:
    if number < 0:
        raise ValueError("base36 encoding needs a non-negative integer")
    if number == 0:
        return "0"
    digits = []
    while number:
        number, rem = divmod(number, 36)
        digits.append(BASE36_DIGITS[rem])
    return "".join(reversed(digits))


# -----------------------
# Display formatting
# -----------------------

def format_address(address: Any) -> str:
    """Render a stored address (dict or plain string) as one line."""
    if not address:
        return "Address not available"
    if isinstance(address, str):
        return address
    if isinstance(address, dict):
        first = address.get("firstName", "")
        last = address.get("lastName", "")
        city = address.get("city", "")
        state = address.get("state", "")
        parts = [
            f"{first} {last}" if first and last else "",
            address.get("address", ""),
            f"{city}, {state}" if city and state else city or state,
            address.get("zipCode", ""),
            address.get("country", ""),
        ]
        parts = [p for p in parts if p]
        return ", ".join(parts) if parts else "Address not available"
    return "Address not available"


def is_valid_address(address: Any) -> bool:
    if not address:
        return False
    if isinstance(address, str):
        return bool(address.strip())
    if isinstance(address, dict):
        return any(address.get(k) for k in ("address", "streetAddress", "city", "state"))
    return False


def format_price(price: float) -> str:
    sign = "-" if price < 0 else ""
    return f"{sign}${abs(price):,.2f}"


def timestamp_of(value: Any) -> float:
    """Sortable POSIX timestamp for stored datetimes and ISO strings; 0 when unknown."""
    if isinstance(value, str):
        try:
            value = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return 0.0
    if not isinstance(value, datetime):
        return 0.0
    # pymongo hands back naive UTC datetimes
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.timestamp()


# -----------------------
# Validation
# -----------------------

def validate_phone(phone: Optional[str]) -> bool:
    if not phone:
        return False
    return bool(PHONE_RE.match(re.sub(r"\s", "", phone)))


def validate_image_url(url: Optional[str]) -> bool:
    if not url:
        return True  # empty image is allowed
    parsed = urlparse(url)
    return bool(parsed.scheme) and bool(parsed.netloc or parsed.path)
