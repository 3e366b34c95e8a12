"""
Order persistence for the storefront.

An order is spread over several collections:

- ``orders``: the header, referencing ``addressId`` and ``paymentId``
- ``addresses`` / ``payments``: written before the header, back-patched with ``orderId``
- ``orderItems``: one document per line, written with a single ``insert_many``
- ``shopOrders``: a denormalized copy of the header for shop-side queries
- ``deliveryTracking``: one record per order

Only the header write is critical. Every write after it is attempted on its own;
a failure is logged and reported in ``warnings`` but the order still counts as
placed. Readers reconcile ``orders`` with ``shopOrders`` (see ``reconcile_orders``).
"""

import json
import logging
import time
from typing import Callable, Iterable, Iterator, List, Optional

from pymongo.errors import PyMongoError

import database
import pricing
import tracking
from schemas import OrderCreate
from utils import format_address, format_price, is_valid_address, timestamp_of, validate_phone

logger = logging.getLogger("bakery.orders")


def status_fields(status: str) -> dict:
    """``status`` and ``orderStatus`` are mirrored; always write them through here."""
    return {"status": status, "orderStatus": status}


def timeline_entry(step: str, description: str, updated_by: Optional[str] = None) -> dict:
    entry = {
        "step": step,
        "status": "completed",
        "timestamp": database.now(),
        "description": description,
    }
    if updated_by:
        entry["updatedBy"] = updated_by
    return entry


# -----------------------
# Write path
# -----------------------

def _address_doc(order: OrderCreate) -> dict:
    doc = order.shipping_address.model_dump(by_alias=True)
    doc.update(
        {
            "userId": order.user_id,
            "email": order.contact_info.email,
            "phone": order.contact_info.phone,
            "orderId": None,
        }
    )
    return doc


def _payment_doc(order: OrderCreate, amount: float) -> dict:
    card_number = "".join(ch for ch in order.payment_info.card_number if ch.isdigit())
    return {
        "userId": order.user_id,
        "cardLastFour": card_number[-4:],
        "cardholderName": order.payment_info.cardholder_name,
        "method": order.payment_info.method,
        "amount": amount,
        "status": "pending",
        "orderId": None,
    }


def _item_docs(order_id: str, items) -> List[dict]:
    stamp = database.now()
    return [
        {
            "orderId": order_id,
            "productId": item.id,
            "name": item.name,
            "price": item.price,
            "quantity": item.quantity,
            "lineTotal": round(item.price * item.quantity, 2),
            "image": item.image,
            "createdAt": stamp,
        }
        for item in items
    ]


def _side_write(warnings: List[str], name: str, order_id: str, write: Callable[[], object]) -> None:
    try:
        write()
    except Exception:
        logger.exception("Non-critical write '%s' failed for order %s", name, order_id)
        warnings.append(name)


def create_order(db, order: OrderCreate) -> dict:
    if not order.user_id:
        return {"success": False, "error": "A user id is required to place an order"}
    if not order.items:
        return {"success": False, "error": "Order must contain at least one item"}
    if not is_valid_address(order.shipping_address.model_dump(by_alias=True)):
        return {"success": False, "error": "A shipping address is required"}
    if order.contact_info.phone and not validate_phone(order.contact_info.phone):
        return {"success": False, "error": "Invalid phone number"}

    coupon = None
    if order.coupon_code:
        applied = pricing.apply_coupon(order.coupon_code, pricing.calc_subtotal(order.items))
        if not applied["success"]:
            return {"success": False, "error": applied["message"]}
        coupon = applied["coupon"]
    summary = pricing.calculate_order_total(order.items, coupon=coupon, **pricing.pricing_rates(db))

    tracking_id = tracking.generate_tracking_id()
    logger.info(
        "Placing order %s for user %s at shop %s (%s)",
        tracking_id, order.user_id, order.shop_id, format_price(summary["total"]),
    )

    address_id = payment_id = None
    try:
        address_id = database.create_document(db, database.ADDRESSES, _address_doc(order))
        payment_id = database.create_document(db, database.PAYMENTS, _payment_doc(order, summary["total"]))
        header = {
            "userId": order.user_id,
            "userEmail": order.user_email or order.contact_info.email,
            "shopId": order.shop_id,
            "trackingId": tracking_id,
            "orderNumber": tracking.generate_order_id(),
            **status_fields("pending"),
            "deliveryStatus": "pending",
            "orderSummary": summary,
            "couponCode": coupon["code"] if coupon else None,
            "addressId": address_id,
            "paymentId": payment_id,
            "itemsCount": len(order.items),
            "items": [item.model_dump(by_alias=True, exclude_none=True) for item in order.items],
            "contactInfo": order.contact_info.model_dump(by_alias=True),
            "estimatedDelivery": order.estimated_delivery,
            "timeline": [timeline_entry("Order Placed", "Your order has been successfully placed")],
            "createdAt": database.now(),
        }
        order_id = database.create_document(db, database.ORDERS, header)
    except PyMongoError as e:
        logger.exception("Error saving order %s", tracking_id)
        _discard_unlinked(db, address_id, payment_id)
        return {"success": False, "error": str(e) or "Failed to save order"}

    warnings: List[str] = []
    _side_write(
        warnings, "orderItems", order_id,
        lambda: db[database.ORDER_ITEMS].insert_many(_item_docs(order_id, order.items)),
    )
    _side_write(
        warnings, "addressLink", order_id,
        lambda: db[database.ADDRESSES].update_one(
            {"_id": database.object_id(address_id)}, {"$set": {"orderId": order_id, "updatedAt": database.now()}}
        ),
    )
    _side_write(
        warnings, "paymentLink", order_id,
        lambda: db[database.PAYMENTS].update_one(
            {"_id": database.object_id(payment_id)}, {"$set": {"orderId": order_id, "updatedAt": database.now()}}
        ),
    )
    mirror = {**header, "orderId": order_id}
    _side_write(warnings, "shopOrders", order_id, lambda: db[database.SHOP_ORDERS].insert_one(mirror))
    _side_write(
        warnings, "deliveryTracking", order_id,
        lambda: db[database.DELIVERY_TRACKING].insert_one(
            tracking.new_tracking_record(order_id, tracking_id, order.estimated_delivery)
        ),
    )

    if warnings:
        logger.warning("Order %s placed with incomplete side records: %s", order_id, ", ".join(warnings))
    return {
        "success": True,
        "orderId": order_id,
        "trackingId": tracking_id,
        "orderSummary": summary,
        "warnings": warnings,
        "message": "Order saved successfully",
    }


def _discard_unlinked(db, address_id: Optional[str], payment_id: Optional[str]) -> None:
    """Compensate a failed header write by removing the records written ahead of it."""
    for collection, doc_id in ((database.ADDRESSES, address_id), (database.PAYMENTS, payment_id)):
        if doc_id is None:
            continue
        try:
            db[collection].delete_one({"_id": database.object_id(doc_id)})
        except PyMongoError:
            logger.exception("Could not remove orphaned %s document %s", collection, doc_id)


# -----------------------
# Read path
# -----------------------

def _order_key(order: dict) -> str:
    return order.get("trackingId") or order.get("id")


def reconcile_orders(primary: Iterable[dict], mirror: Iterable[dict], user_id: str) -> List[dict]:
    """
    Merge orders from the primary collection with their mirror copies.

    One entry per tracking id (document id when there is none); primary entries
    are seen first and win. Winning entries that belong to another user are
    then dropped, along with every copy sharing their key. Newest first by
    ``createdAt``.
    """
    seen = set()
    unique = []
    for order in list(primary) + list(mirror):
        key = _order_key(order)
        if key in seen:
            continue
        seen.add(key)
        unique.append(order)
    merged = [o for o in unique if o.get("userId") == user_id]
    merged.sort(key=lambda o: timestamp_of(o.get("createdAt")), reverse=True)
    return merged


def _mirror_as_order(doc: dict) -> dict:
    order = database.to_str_id(doc)
    order["mirrorId"] = order["id"]
    if order.get("orderId"):
        order["id"] = order["orderId"]
    order["source"] = database.SHOP_ORDERS
    return order


def enrich_order(db, order: dict) -> dict:
    """Attach the address and payment documents an order references."""
    try:
        if order.get("addressId"):
            address = database.find_by_id(db, database.ADDRESSES, order["addressId"])
            if address:
                order["shippingAddressData"] = database.to_str_id(address)
                order["shippingAddressText"] = format_address(address)
        if order.get("paymentId"):
            payment = database.find_by_id(db, database.PAYMENTS, order["paymentId"])
            if payment:
                order["paymentData"] = database.to_str_id(payment)
    except PyMongoError:
        logger.warning("Failed to load additional data for order %s", order.get("id"), exc_info=True)
    return order


def get_user_orders(db, user_id: str) -> dict:
    try:
        mirror = [_mirror_as_order(d) for d in db[database.SHOP_ORDERS].find({"userId": user_id})]
        # primary copies of mirrored orders are loaded whatever their userId, so they win the dedup
        mirrored = [m["trackingId"] for m in mirror if m.get("trackingId")]
        query = {"$or": [{"userId": user_id}, {"trackingId": {"$in": mirrored}}]} if mirrored else {"userId": user_id}
        primary = [database.to_str_id(d) for d in db[database.ORDERS].find(query)]
    except PyMongoError as e:
        logger.exception("Error getting orders for user %s", user_id)
        return {"success": False, "error": str(e)}
    orders = [enrich_order(db, o) for o in reconcile_orders(primary, mirror, user_id)]
    logger.debug("Fetched %d unique orders for user %s", len(orders), user_id)
    return {"success": True, "orders": orders}


def get_shop_orders(db, shop_id: str) -> dict:
    try:
        docs = list(db[database.ORDERS].find({"shopId": shop_id}))
    except PyMongoError as e:
        logger.exception("Error getting orders for shop %s", shop_id)
        return {"success": False, "error": str(e)}
    docs.sort(key=lambda d: timestamp_of(d.get("createdAt")), reverse=True)
    logger.debug("Found %d orders for shop %s", len(docs), shop_id)
    return {"success": True, "orders": [database.to_str_id(d) for d in docs]}


def get_order_items(db, order_id: str) -> dict:
    try:
        docs = list(db[database.ORDER_ITEMS].find({"orderId": order_id}))
    except PyMongoError as e:
        logger.exception("Error getting items for order %s", order_id)
        return {"success": False, "error": str(e)}
    return {"success": True, "items": [database.to_str_id(d) for d in docs]}


def get_order(db, order_id: str) -> dict:
    result = tracking.get_order_by_id(db, order_id)
    if result["success"]:
        enrich_order(db, result["order"])
    return result


def order_feed(
    db,
    user_id: str,
    interval: float = 5.0,
    max_polls: Optional[int] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> Iterator[List[dict]]:
    """
    Yield the reconciled order list for a user each time it changes.

    Every poll re-runs ``get_user_orders`` in full. Stops after ``max_polls``
    polls when given; otherwise runs until the consumer stops iterating.
    """
    last = None
    polls = 0
    while max_polls is None or polls < max_polls:
        if polls:
            sleep(interval)
        polls += 1
        result = get_user_orders(db, user_id)
        if not result["success"]:
            continue
        snapshot = json.dumps(result["orders"], default=str, sort_keys=True)
        if snapshot != last:
            last = snapshot
            yield result["orders"]


# -----------------------
# Status transitions
# -----------------------

def _mirror_status(db, order_id: str, fields: dict) -> None:
    try:
        db[database.SHOP_ORDERS].update_one({"orderId": order_id}, {"$set": fields})
    except PyMongoError:
        logger.warning("Could not update shop order mirror for order %s", order_id, exc_info=True)


def update_order_status(db, order_id: str, status: str, shop_notes: str = "") -> dict:
    """
    Append a timeline entry and set the order status.

    Any status string is accepted and entries are never de-duplicated. When the
    new status is ``confirmed`` the delivery tracking record is updated as a
    separate write.
    """
    if status not in tracking.ORDER_STATUSES:
        logger.warning("Order %s set to unrecognized status %r", order_id, status)
    try:
        doc = database.find_by_id(db, database.ORDERS, order_id)
        if doc is None:
            return {"success": False, "error": "Order not found"}
        fields = {**status_fields(status), "updatedAt": database.now()}
        if shop_notes:
            fields["shopNotes"] = shop_notes
        db[database.ORDERS].update_one(
            {"_id": doc["_id"]},
            {
                "$set": fields,
                "$push": {
                    "timeline": timeline_entry(status, shop_notes or f"Order status updated to {status}", "shop")
                },
            },
        )
    except PyMongoError as e:
        logger.exception("Error updating status of order %s", order_id)
        return {"success": False, "error": str(e)}

    _mirror_status(db, order_id, fields)
    if status == "confirmed":
        tracking.update_delivery_tracking(db, order_id, "confirmed")
    logger.info("Order %s moved to %s", order_id, status)
    return {"success": True}


def confirm_order(db, order_id: str, notes: str = "", estimated_delivery: Optional[str] = None) -> dict:
    try:
        doc = database.find_by_id(db, database.ORDERS, order_id)
        if doc is None:
            return {"success": False, "error": "Order not found"}
        stamp = database.now()
        fields = {
            **status_fields("confirmed"),
            "confirmedAt": stamp,
            "updatedAt": stamp,
            "confirmationNotes": notes,
            "estimatedDelivery": estimated_delivery or doc.get("estimatedDelivery"),
        }
        db[database.ORDERS].update_one(
            {"_id": doc["_id"]},
            {"$set": fields, "$push": {"timeline": timeline_entry("confirmed", notes or "Order confirmed by the shop", "shop")}},
        )
    except PyMongoError as e:
        logger.exception("Error confirming order %s", order_id)
        return {"success": False, "error": str(e)}

    _mirror_status(db, order_id, fields)
    tracking.update_delivery_tracking(db, order_id, "confirmed", "Shop", "Order confirmed and being prepared")
    return {"success": True}
