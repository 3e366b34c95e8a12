import logging
from typing import Iterable, Optional

from pymongo.errors import PyMongoError

import database

logger = logging.getLogger("bakery.pricing")

TAX_RATE = 0.08
DELIVERY_FEE = 5.99
FREE_DELIVERY_THRESHOLD = 50.0

COUPONS = {
    "WELCOME10": {"code": "WELCOME10", "discount": 10, "type": "percentage", "minAmount": 0, "description": "10% off your first order"},
    "SAVE20": {"code": "SAVE20", "discount": 20, "type": "percentage", "minAmount": 50, "description": "20% off orders above $50"},
    "FLAT50": {"code": "FLAT50", "discount": 50, "type": "fixed", "minAmount": 100, "description": "$50 off orders above $100"},
    "FREESHIP": {"code": "FREESHIP", "discount": DELIVERY_FEE, "type": "shipping", "minAmount": 30, "description": "Free shipping on orders above $30"},
    "HOLIDAY15": {"code": "HOLIDAY15", "discount": 15, "type": "percentage", "minAmount": 25, "description": "15% off holiday special"},
}


def _field(item, name, default=0):
    if isinstance(item, dict):
        return item.get(name, default)
    return getattr(item, name, default)


def calc_subtotal(items: Iterable) -> float:
    return round(sum(max(0.0, float(_field(i, "price"))) * max(1, int(_field(i, "quantity", 1))) for i in items), 2)


def calc_shipping(subtotal: float, delivery_fee: float = DELIVERY_FEE, free_delivery_threshold: float = FREE_DELIVERY_THRESHOLD) -> float:
    # Free delivery only once the subtotal is strictly above the threshold
    if subtotal <= 0 or subtotal > free_delivery_threshold:
        return 0.0
    return delivery_fee


def calc_tax(subtotal: float, tax_rate: float = TAX_RATE) -> float:
    return round(subtotal * tax_rate, 2)


# -----------------------
# Coupons
# -----------------------

def apply_coupon(code: Optional[str], subtotal: float) -> dict:
    coupon = COUPONS.get((code or "").strip().upper())
    if coupon is None:
        return {"success": False, "message": "Invalid coupon code"}
    if subtotal < coupon["minAmount"]:
        return {
            "success": False,
            "message": f"Minimum order amount of ${coupon['minAmount']} required for this coupon",
        }
    return {"success": True, "coupon": coupon, "message": f"Coupon applied! {coupon['description']}"}


def coupon_discount(coupon: Optional[dict], subtotal: float, shipping: float) -> float:
    if not coupon or subtotal < coupon["minAmount"]:
        return 0.0
    if coupon["type"] == "percentage":
        return round(subtotal * coupon["discount"] / 100, 2)
    if coupon["type"] == "fixed":
        return round(min(coupon["discount"], subtotal), 2)
    if coupon["type"] == "shipping":
        return round(min(coupon["discount"], shipping), 2)
    return 0.0


def calculate_order_total(
    items: Iterable,
    tax_rate: float = TAX_RATE,
    delivery_fee: float = DELIVERY_FEE,
    free_delivery_threshold: float = FREE_DELIVERY_THRESHOLD,
    coupon: Optional[dict] = None,
) -> dict:
    subtotal = calc_subtotal(items)
    shipping = calc_shipping(subtotal, delivery_fee, free_delivery_threshold)
    tax = calc_tax(subtotal, tax_rate)
    discount = coupon_discount(coupon, subtotal, shipping)
    total = max(0.0, subtotal + shipping + tax - discount)
    return {
        "subtotal": round(subtotal, 2),
        "shipping": round(shipping, 2),
        "tax": round(tax, 2),
        "discount": round(discount, 2),
        "total": round(total, 2),
    }


def pricing_rates(db) -> dict:
    """Rates from the shop settings document, falling back to the defaults."""
    rates = {"tax_rate": TAX_RATE, "delivery_fee": DELIVERY_FEE, "free_delivery_threshold": FREE_DELIVERY_THRESHOLD}
    if db is None:
        return rates
    try:
        settings = db[database.SETTINGS].find_one({}) or {}
    except PyMongoError:
        logger.warning("Could not read shop settings; using default rates", exc_info=True)
        return rates
    for key, field in (("tax_rate", "taxRate"), ("delivery_fee", "deliveryFee"), ("free_delivery_threshold", "freeDeliveryThreshold")):
        if settings.get(field) is not None:
            rates[key] = float(settings[field])
    return rates


def quote(db, items: Iterable, coupon_code: Optional[str] = None) -> dict:
    items = list(items)
    coupon = None
    coupon_message = None
    if coupon_code:
        applied = apply_coupon(coupon_code, calc_subtotal(items))
        coupon = applied.get("coupon")
        coupon_message = applied["message"]
    summary = calculate_order_total(items, coupon=coupon, **pricing_rates(db))
    if coupon_code:
        summary["couponCode"] = coupon["code"] if coupon else None
        summary["couponMessage"] = coupon_message
    return summary
