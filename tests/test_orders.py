import re
from datetime import datetime, timedelta, timezone

from bson.errors import InvalidDocument

import database
import orders
from tests.factories import make_order

TRACKING_RE = re.compile(r"^TRK-[0-9A-Z]+-[0-9A-Z]{5,6}$")


def test_create_order_end_to_end(db):
    result = orders.create_order(db, make_order())

    assert result["success"] is True
    assert TRACKING_RE.match(result["trackingId"])
    assert result["orderSummary"]["subtotal"] == 20
    assert result["warnings"] == []

    listed = orders.get_user_orders(db, "u1")
    assert listed["success"] is True
    assert len(listed["orders"]) == 1
    order = listed["orders"][0]
    assert order["trackingId"] == result["trackingId"]
    assert order["id"] == result["orderId"]
    assert order["status"] == order["orderStatus"] == "pending"
    assert order["itemsCount"] == 1
    assert order["shippingAddressData"]["city"] == "Sweet City"
    assert order["shippingAddressText"] == "Ada Baker, 1 Flour Lane, Sweet City, SC, 12345, US"
    assert order["orderNumber"].startswith("ORD-")
    assert order["paymentData"]["cardLastFour"] == "4242"


def test_create_order_splits_records_across_collections(db):
    result = orders.create_order(db, make_order())
    order_id = result["orderId"]
    header = database.find_by_id(db, database.ORDERS, order_id)

    address = database.find_by_id(db, database.ADDRESSES, header["addressId"])
    payment = database.find_by_id(db, database.PAYMENTS, header["paymentId"])
    assert address["orderId"] == order_id
    assert payment["orderId"] == order_id
    assert "4242 4242" not in str(payment)

    items = list(db[database.ORDER_ITEMS].find({"orderId": order_id}))
    assert [(i["productId"], i["quantity"], i["lineTotal"]) for i in items] == [("p1", 2, 20)]

    mirror = db[database.SHOP_ORDERS].find_one({"orderId": order_id})
    assert mirror["trackingId"] == result["trackingId"]
    record = db[database.DELIVERY_TRACKING].find_one({"orderId": order_id})
    assert record["currentLocation"] == "Order Processing Center"
    assert len(record["deliveryUpdates"]) == 1
    assert header["timeline"][0]["step"] == "Order Placed"


def test_create_order_rejects_empty_items(db):
    order = make_order()
    order.items = []
    result = orders.create_order(db, order)
    assert result == {"success": False, "error": "Order must contain at least one item"}
    assert db[database.ADDRESSES].count_documents({}) == 0


def test_create_order_requires_address_and_valid_phone(db):
    result = orders.create_order(db, make_order(shippingAddress={"country": "US"}))
    assert result == {"success": False, "error": "A shipping address is required"}

    result = orders.create_order(db, make_order(contactInfo={"email": "u1@example.com", "phone": "call me"}))
    assert result == {"success": False, "error": "Invalid phone number"}
    assert db[database.ORDERS].count_documents({}) == 0


def test_create_order_rejects_unusable_coupon(db):
    result = orders.create_order(db, make_order(couponCode="SAVE20"))
    assert result["success"] is False
    assert "Minimum order amount" in result["error"]


def test_create_order_applies_coupon(db):
    result = orders.create_order(db, make_order(couponCode="welcome10"))
    assert result["orderSummary"]["discount"] == 2.0
    header = database.find_by_id(db, database.ORDERS, result["orderId"])
    assert header["couponCode"] == "WELCOME10"


def test_tracking_ids_are_unique(db):
    ids = {orders.create_order(db, make_order())["trackingId"] for _ in range(25)}
    assert len(ids) == 25


def test_mirror_write_failure_still_places_order(db, flaky_db):
    result = orders.create_order(flaky_db(database.SHOP_ORDERS), make_order())

    assert result["success"] is True
    assert result["warnings"] == ["shopOrders"]
    assert db[database.SHOP_ORDERS].count_documents({}) == 0

    fetched = orders.get_order(db, result["orderId"])
    assert fetched["success"] is True
    assert fetched["order"]["trackingId"] == result["trackingId"]


def test_every_side_write_failure_is_swallowed(db, flaky_db):
    broken = flaky_db(database.ORDER_ITEMS, database.SHOP_ORDERS, database.DELIVERY_TRACKING)
    result = orders.create_order(broken, make_order())
    assert result["success"] is True
    assert result["warnings"] == ["orderItems", "shopOrders", "deliveryTracking"]


def test_side_write_failure_outside_the_driver_is_swallowed(db, flaky_db):
    result = orders.create_order(flaky_db(database.SHOP_ORDERS, error=InvalidDocument), make_order())
    assert result["success"] is True
    assert result["warnings"] == ["shopOrders"]
    assert orders.get_order(db, result["orderId"])["success"] is True


def test_header_failure_removes_address_and_payment(db, flaky_db):
    result = orders.create_order(flaky_db(database.ORDERS), make_order())

    assert result["success"] is False
    assert db[database.ADDRESSES].count_documents({}) == 0
    assert db[database.PAYMENTS].count_documents({}) == 0


# -----------------------
# Reconciliation
# -----------------------

def _order(id_, tracking_id, user_id="u1", minutes_ago=0, **extra):
    created = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc) - timedelta(minutes=minutes_ago)
    return {"id": id_, "trackingId": tracking_id, "userId": user_id, "createdAt": created, **extra}


def test_reconcile_prefers_primary_entry_for_duplicate_tracking_ids():
    primary = [_order("o1", "TRK-A", source="orders"), _order("o2", "TRK-B", minutes_ago=5, source="orders")]
    mirror = [_order("m1", "TRK-A", source="shopOrders"), _order("m3", "TRK-C", minutes_ago=10, source="shopOrders")]

    merged = orders.reconcile_orders(primary, mirror, "u1")

    assert [o["trackingId"] for o in merged] == ["TRK-A", "TRK-B", "TRK-C"]
    assert merged[0]["source"] == "orders"


def test_reconcile_falls_back_to_document_id():
    primary = [_order("o1", None), _order("o1", None)]
    merged = orders.reconcile_orders(primary, [], "u1")
    assert len(merged) == 1


def test_reconcile_drops_other_tenants():
    primary = [_order("o1", "TRK-A")]
    mirror = [_order("m2", "TRK-B", user_id="intruder")]
    merged = orders.reconcile_orders(primary, mirror, "u1")
    assert [o["id"] for o in merged] == ["o1"]


def test_reconcile_drops_mirror_copy_of_reassigned_primary():
    primary = [_order("o1", "TRK-A", user_id="u2", source="orders")]
    mirror = [_order("o1", "TRK-A", source="shopOrders")]
    assert orders.reconcile_orders(primary, mirror, "u1") == []


def test_reconcile_sorts_newest_first():
    primary = [_order("old", "TRK-OLD", minutes_ago=60), _order("new", "TRK-NEW")]
    merged = orders.reconcile_orders(primary, [], "u1")
    assert [o["id"] for o in merged] == ["new", "old"]


def test_user_orders_include_mirror_only_orders(db):
    placed = orders.create_order(db, make_order())
    db[database.ORDERS].delete_one({"_id": database.object_id(placed["orderId"])})

    listed = orders.get_user_orders(db, "u1")["orders"]
    assert len(listed) == 1
    assert listed[0]["id"] == placed["orderId"]
    assert listed[0]["source"] == "shopOrders"


def test_user_orders_ignore_tampered_user_id(db):
    orders.create_order(db, make_order())
    other = orders.create_order(db, make_order(user_id="u2"))
    db[database.SHOP_ORDERS].update_one({"orderId": other["orderId"]}, {"$set": {"userId": "u1-tampered"}})

    listed = orders.get_user_orders(db, "u1")["orders"]
    assert len(listed) == 1
    assert all(o["userId"] == "u1" for o in listed)


def test_user_orders_skip_order_whose_header_moved_to_another_user(db):
    kept = orders.create_order(db, make_order())
    moved = orders.create_order(db, make_order())
    db[database.ORDERS].update_one({"_id": database.object_id(moved["orderId"])}, {"$set": {"userId": "u2"}})

    listed = orders.get_user_orders(db, "u1")["orders"]

    assert [o["id"] for o in listed] == [kept["orderId"]]
    assert db[database.SHOP_ORDERS].find_one({"orderId": moved["orderId"]})["userId"] == "u1"


def test_order_feed_emits_only_on_change(db):
    orders.create_order(db, make_order())
    naps = []

    snapshots = list(orders.order_feed(db, "u1", interval=0.5, max_polls=3, sleep=naps.append))

    assert len(snapshots) == 1
    assert naps == [0.5, 0.5]


def test_order_feed_picks_up_new_orders(db):
    feed = orders.order_feed(db, "u1", max_polls=2, sleep=lambda _: orders.create_order(db, make_order()))
    first = next(feed)
    second = next(feed)
    assert len(first) == 0
    assert len(second) == 1


# -----------------------
# Status transitions
# -----------------------

def test_status_update_appends_timeline_and_mirrors_fields(db):
    order_id = orders.create_order(db, make_order())["orderId"]

    assert orders.update_order_status(db, order_id, "preparing", "Into the oven") == {"success": True}

    header = database.find_by_id(db, database.ORDERS, order_id)
    assert header["status"] == header["orderStatus"] == "preparing"
    assert header["shopNotes"] == "Into the oven"
    assert header["timeline"][-1]["step"] == "preparing"
    assert header["timeline"][-1]["updatedBy"] == "shop"
    assert db[database.SHOP_ORDERS].find_one({"orderId": order_id})["orderStatus"] == "preparing"


def test_confirming_twice_appends_two_entries(db):
    order_id = orders.create_order(db, make_order())["orderId"]

    orders.update_order_status(db, order_id, "confirmed")
    orders.update_order_status(db, order_id, "confirmed")

    header = database.find_by_id(db, database.ORDERS, order_id)
    assert [e["step"] for e in header["timeline"]] == ["Order Placed", "confirmed", "confirmed"]
    record = db[database.DELIVERY_TRACKING].find_one({"orderId": order_id})
    assert record["status"] == "confirmed"
    assert len(record["deliveryUpdates"]) == 3


def test_status_update_accepts_any_string(db):
    order_id = orders.create_order(db, make_order())["orderId"]
    assert orders.update_order_status(db, order_id, "glazing")["success"] is True


def test_status_update_unknown_order(db):
    assert orders.update_order_status(db, "5f0000000000000000000000", "confirmed") == {
        "success": False,
        "error": "Order not found",
    }
    assert orders.update_order_status(db, "not-an-id", "confirmed")["error"] == "Order not found"


def test_confirm_order_sets_confirmation_fields(db):
    order_id = orders.create_order(db, make_order())["orderId"]

    assert orders.confirm_order(db, order_id, "Ready by noon", "2024-02-01")["success"] is True

    header = database.find_by_id(db, database.ORDERS, order_id)
    assert header["orderStatus"] == "confirmed"
    assert header["confirmationNotes"] == "Ready by noon"
    assert header["estimatedDelivery"] == "2024-02-01"
    record = db[database.DELIVERY_TRACKING].find_one({"orderId": order_id})
    assert record["currentLocation"] == "Shop"


def test_shop_orders_listing(db):
    orders.create_order(db, make_order(shop_id="s1"))
    orders.create_order(db, make_order(shop_id="s2"))
    listed = orders.get_shop_orders(db, "s1")
    assert [o["shopId"] for o in listed["orders"]] == ["s1"]
