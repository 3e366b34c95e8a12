"""
Tracking ids, delivery tracking records and order lookup for the tracking page.

A delivery tracking record is a side table keyed by ``orderId``. It is written
best-effort alongside an order and may be missing; lookups report that as
``tracking: None`` rather than as a failure.
"""

import logging
import secrets
import time
from typing import Optional

from email_validator import EmailNotValidError, validate_email
from pymongo.errors import PyMongoError

import database
from utils import BASE36_DIGITS, timestamp_of, to_base36

logger = logging.getLogger("bakery.tracking")

ORDER_STATUSES = [
    "pending",
    "confirmed",
    "preparing",
    "ready",
    "out_for_delivery",
    "delivered",
    "cancelled",
]

TRACKING_STEPS = [
    (1, "Order Placed", "Your order has been received"),
    (2, "Preparing", "Your order is being prepared"),
    (3, "Baking", "Your items are being baked"),
    (4, "Quality Check", "Quality control and packaging"),
    (5, "Out for Delivery", "Your order is on the way"),
    (6, "Delivered", "Order delivered successfully"),
]

STEP_FOR_STATUS = {
    "pending": 1,
    "confirmed": 2,
    "preparing": 2,
    "baking": 3,
    "ready": 4,
    "out_for_delivery": 5,
    "delivered": 6,
    "cancelled": 0,
}


def _random_base36(length: int) -> str:
    return "".join(secrets.choice(BASE36_DIGITS) for _ in range(length))


def generate_tracking_id() -> str:
    """TRK-<base36 millisecond timestamp>-<6 random base36 chars>, upper-cased."""
    return f"TRK-{to_base36(int(time.time() * 1000))}-{_random_base36(6)}".upper()


def generate_order_id() -> str:
    return f"ORD-{to_base36(int(time.time() * 1000))}-{_random_base36(5)}".upper()


def order_status(order: dict) -> str:
    return order.get("orderStatus") or order.get("status") or "pending"


def generate_tracking_steps(status: str) -> list:
    # cancelled maps to step 0 and falls back to the first step, like unknown statuses
    current = STEP_FOR_STATUS.get(status) or 1
    return [
        {
            "id": step_id,
            "name": name,
            "description": description,
            "completed": step_id <= current,
            "current": step_id == current,
        }
        for step_id, name, description in TRACKING_STEPS
    ]


# -----------------------
# Delivery tracking records
# -----------------------

def new_tracking_record(order_id: str, tracking_id: str, estimated_delivery: Optional[str] = None) -> dict:
    stamp = database.now()
    return {
        "orderId": order_id,
        "trackingId": tracking_id,
        "status": "pending",
        "currentLocation": "Order Processing Center",
        "estimatedDelivery": estimated_delivery,
        "deliveryUpdates": [
            {
                "status": "Order Received",
                "location": "Order Processing Center",
                "timestamp": stamp,
                "description": "Order has been received and is being processed",
            }
        ],
        "createdAt": stamp,
        "updatedAt": stamp,
    }


def update_delivery_tracking(db, order_id: str, status: str, location: str = "", notes: str = "") -> dict:
    try:
        record = db[database.DELIVERY_TRACKING].find_one({"orderId": order_id})
        if record is None:
            logger.info("No delivery tracking record for order %s; nothing to update", order_id)
            return {"success": True}
        current_location = location or record.get("currentLocation", "")
        db[database.DELIVERY_TRACKING].update_one(
            {"_id": record["_id"]},
            {
                "$set": {"status": status, "currentLocation": current_location, "updatedAt": database.now()},
                "$push": {
                    "deliveryUpdates": {
                        "status": status,
                        "location": current_location,
                        "timestamp": database.now(),
                        "description": notes or f"Delivery status updated to {status}",
                    }
                },
            },
        )
        return {"success": True}
    except PyMongoError as e:
        logger.exception("Error updating delivery tracking for order %s", order_id)
        return {"success": False, "error": str(e)}


def get_delivery_tracking(db, order_id: str) -> dict:
    try:
        record = db[database.DELIVERY_TRACKING].find_one({"orderId": order_id})
    except PyMongoError as e:
        logger.exception("Error getting delivery tracking for order %s", order_id)
        return {"success": False, "error": str(e)}
    if record is None:
        return {"success": False, "error": "Tracking information not found"}
    return {"success": True, "tracking": database.to_str_id(record)}


# -----------------------
# Order lookup
# -----------------------

def get_order_by_id(db, order_id: str) -> dict:
    try:
        doc = database.find_by_id(db, database.ORDERS, order_id)
    except PyMongoError as e:
        logger.exception("Error getting order %s", order_id)
        return {"success": False, "error": str(e)}
    if doc is None:
        return {"success": False, "error": "Order not found"}
    return {"success": True, "order": database.to_str_id(doc)}


def get_order_by_tracking_id(db, tracking_id: str) -> dict:
    try:
        doc = db[database.ORDERS].find_one({"trackingId": tracking_id})
    except PyMongoError as e:
        logger.exception("Error getting order by tracking id %s", tracking_id)
        return {"success": False, "error": str(e)}
    if doc is None:
        return {"success": False, "error": "Order not found"}
    return {"success": True, "order": database.to_str_id(doc)}


def _with_tracking(db, order: dict) -> dict:
    delivery = get_delivery_tracking(db, order["id"])
    return {
        "success": True,
        "order": order,
        "tracking": delivery.get("tracking"),
        "steps": generate_tracking_steps(order_status(order)),
    }


def track_order(db, query: str) -> dict:
    """Resolve a tracking id, falling back to a raw order id."""
    query = (query or "").strip()
    if not query:
        return {"success": False, "error": "Please enter an order ID or tracking ID"}
    result = get_order_by_tracking_id(db, query.upper())
    if not result["success"]:
        logger.debug("Order not found by tracking id %s, trying order id", query)
        result = get_order_by_id(db, query)
    if not result["success"]:
        return {"success": False, "error": "Order not found. Please check your tracking ID or order ID."}
    return _with_tracking(db, result["order"])


def track_order_by_email(db, email: str) -> dict:
    """Most recent order placed with this email, plus how many were found."""
    email = (email or "").strip()
    if not email:
        return {"success": False, "error": "Please enter your email address"}
    try:
        normalized = validate_email(email, check_deliverability=False).normalized
    except EmailNotValidError:
        return {"success": False, "error": "Please enter a valid email address"}
    candidates = list(dict.fromkeys([normalized, email]))
    try:
        docs = list(
            db[database.ORDERS].find(
                {"$or": [{"userEmail": {"$in": candidates}}, {"contactInfo.email": {"$in": candidates}}]}
            )
        )
    except PyMongoError as e:
        logger.exception("Error searching orders by email")
        return {"success": False, "error": str(e)}
    if not docs:
        return {"success": False, "error": "No orders found for this email address."}
    docs.sort(key=lambda d: timestamp_of(d.get("createdAt")), reverse=True)
    result = _with_tracking(db, database.to_str_id(docs[0]))
    result["count"] = len(docs)
    return result
