import logging
from datetime import timedelta

from pymongo.errors import PyMongoError

import database
from tracking import order_status
from utils import timestamp_of

logger = logging.getLogger("bakery.analytics")

LOW_STOCK_LEVEL = 5
COMPLETED_STATUSES = ("delivered", "completed")


def _order_total(order: dict) -> float:
    return float((order.get("orderSummary") or {}).get("total") or 0)


def get_shop_analytics(db, shop_id: str) -> dict:
    try:
        orders = list(db[database.ORDERS].find({"shopId": shop_id}))
        products = list(db[database.PRODUCTS].find({"shopId": shop_id, "isActive": True}))
    except PyMongoError as e:
        logger.exception("Error loading analytics for shop %s", shop_id)
        return {"success": False, "error": str(e)}

    current = database.now()
    day_start = current.replace(hour=0, minute=0, second=0, microsecond=0).timestamp()
    week_start = (current - timedelta(days=7)).timestamp()

    counted = [o for o in orders if order_status(o) != "cancelled"]
    created = [(o, timestamp_of(o.get("createdAt"))) for o in orders]
    analytics = {
        "orders": {
            "total": len(orders),
            "pending": sum(1 for o in orders if order_status(o) == "pending"),
            "completed": sum(1 for o in orders if order_status(o) in COMPLETED_STATUSES),
            "today": sum(1 for _, ts in created if ts >= day_start),
            "weekly": sum(1 for _, ts in created if ts >= week_start),
        },
        "revenue": {
            "total": round(sum(_order_total(o) for o in counted), 2),
            "weekly": round(sum(_order_total(o) for o in counted if timestamp_of(o.get("createdAt")) >= week_start), 2),
        },
        "inventory": {
            "total": len(products),
            "lowStock": sum(1 for p in products if 0 < (p.get("inventory") or 0) <= LOW_STOCK_LEVEL),
            "outOfStock": sum(1 for p in products if (p.get("inventory") or 0) <= 0),
        },
    }
    return {"success": True, "analytics": analytics}


def get_shop_customers(db, shop_id: str) -> dict:
    try:
        orders = list(db[database.ORDERS].find({"shopId": shop_id}))
    except PyMongoError as e:
        logger.exception("Error loading customers for shop %s", shop_id)
        return {"success": False, "error": str(e)}

    customers = {}
    for order in orders:
        user_id = order.get("userId")
        if not user_id:
            continue
        row = customers.setdefault(
            user_id,
            {"userId": user_id, "email": order.get("userEmail"), "orderCount": 0, "totalSpent": 0.0, "lastOrderAt": None},
        )
        row["orderCount"] += 1
        if order_status(order) != "cancelled":
            row["totalSpent"] = round(row["totalSpent"] + _order_total(order), 2)
        if timestamp_of(order.get("createdAt")) > timestamp_of(row["lastOrderAt"]):
            row["lastOrderAt"] = order.get("createdAt")
    rows = sorted(customers.values(), key=lambda r: r["totalSpent"], reverse=True)
    return {"success": True, "customers": rows}
