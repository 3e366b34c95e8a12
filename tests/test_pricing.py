import pytest

import database
import pricing


def test_totals_below_free_delivery_threshold():
    summary = pricing.calculate_order_total([{"price": 10, "quantity": 2}])
    assert summary == {"subtotal": 20.0, "shipping": 5.99, "tax": 1.6, "discount": 0.0, "total": 27.59}


def test_free_delivery_only_above_threshold():
    assert pricing.calc_shipping(50) == 5.99
    assert pricing.calc_shipping(50.01) == 0.0
    assert pricing.calc_shipping(0) == 0.0


def test_quantities_below_one_count_as_one():
    assert pricing.calc_subtotal([{"price": 3.5, "quantity": 0}]) == 3.5


@pytest.mark.parametrize(
    "code, subtotal, shipping, expected",
    [
        ("WELCOME10", 40, 5.99, 4.0),
        ("SAVE20", 60, 0, 12.0),
        ("FLAT50", 120, 0, 50.0),
        ("FREESHIP", 35, 5.99, 5.99),
        ("FREESHIP", 60, 0, 0.0),
        ("HOLIDAY15", 30, 5.99, 4.5),
    ],
)
def test_coupon_discounts(code, subtotal, shipping, expected):
    coupon = pricing.COUPONS[code]
    assert pricing.coupon_discount(coupon, subtotal, shipping) == expected


def test_apply_coupon_checks_minimum_and_code():
    assert pricing.apply_coupon("save20", 60)["success"] is True
    assert pricing.apply_coupon("SAVE20", 10)["message"] == "Minimum order amount of $50 required for this coupon"
    assert pricing.apply_coupon("BOGUS", 100) == {"success": False, "message": "Invalid coupon code"}


def test_quote_uses_shop_settings(db):
    database.create_document(db, database.SETTINGS, {"taxRate": 0.1, "deliveryFee": 3, "freeDeliveryThreshold": 100})
    summary = pricing.quote(db, [{"price": 30, "quantity": 2}])
    assert summary["tax"] == 6.0
    assert summary["shipping"] == 3
    assert summary["total"] == 69.0


def test_quote_without_database_uses_defaults():
    summary = pricing.quote(None, [{"price": 60, "quantity": 1}], "FREESHIP")
    assert summary["shipping"] == 0.0
    assert summary["discount"] == 0.0
    assert summary["couponCode"] == "FREESHIP"
