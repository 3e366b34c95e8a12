"""
Consistency tooling for the split order records.

Orders are written best-effort across several collections, so records drift:
addresses and payments without an order, orders without a mirror or tracking
record, duplicated tracking ids. These helpers report that drift and migrate
legacy orders that still embed their address and payment. They never delete.
"""

import logging
from collections import Counter

from pymongo.errors import PyMongoError

import database

logger = logging.getLogger("bakery.maintenance")


# -----------------------
# Addresses / payments
# -----------------------

def _get_one(db, collection: str, doc_id: str, key: str, label: str) -> dict:
    try:
        doc = database.find_by_id(db, collection, doc_id)
    except PyMongoError as e:
        logger.exception("Error getting %s %s", label, doc_id)
        return {"success": False, "error": str(e)}
    if doc is None:
        return {"success": False, "error": f"{label.capitalize()} not found"}
    return {"success": True, key: database.to_str_id(doc)}


def _by_user(db, collection: str, user_id: str, key: str) -> dict:
    try:
        docs = database.get_documents(db, collection, {"userId": user_id})
    except PyMongoError as e:
        logger.exception("Error getting %s for user %s", key, user_id)
        return {"success": False, "error": str(e)}
    return {"success": True, key: [database.to_str_id(d) for d in docs]}


def get_address_by_id(db, address_id: str) -> dict:
    return _get_one(db, database.ADDRESSES, address_id, "address", "address")


def get_payment_by_id(db, payment_id: str) -> dict:
    return _get_one(db, database.PAYMENTS, payment_id, "payment", "payment")


def get_addresses_by_user(db, user_id: str) -> dict:
    return _by_user(db, database.ADDRESSES, user_id, "addresses")


def get_payments_by_user(db, user_id: str) -> dict:
    return _by_user(db, database.PAYMENTS, user_id, "payments")


# -----------------------
# Audit
# -----------------------

def _issue(collection: str, doc: dict, issue: str) -> dict:
    return {"collection": collection, "documentId": str(doc["_id"]), "issue": issue}


def audit_orders(db) -> dict:
    try:
        orders = list(db[database.ORDERS].find({}))
        mirrors = list(db[database.SHOP_ORDERS].find({}))
        mirrored = {m.get("orderId") for m in mirrors}
        tracked = {t.get("orderId") for t in db[database.DELIVERY_TRACKING].find({}, {"orderId": 1})}
        issues = []
        for order in orders:
            order_id = str(order["_id"])
            if not order.get("userId"):
                issues.append(_issue(database.ORDERS, order, "Missing userId"))
            for field, collection in (("addressId", database.ADDRESSES), ("paymentId", database.PAYMENTS)):
                ref = order.get(field)
                if ref and database.find_by_id(db, collection, ref) is None:
                    issues.append(_issue(database.ORDERS, order, f"{field} {ref} does not resolve"))
            if order_id not in mirrored:
                issues.append(_issue(database.ORDERS, order, "No shop order mirror"))
            if order_id not in tracked:
                issues.append(_issue(database.ORDERS, order, "No delivery tracking record"))
        for mirror in mirrors:
            if not mirror.get("userId"):
                issues.append(_issue(database.SHOP_ORDERS, mirror, "Missing userId"))
        counts = Counter(o.get("trackingId") for o in orders if o.get("trackingId"))
        for order in orders:
            if counts.get(order.get("trackingId"), 0) > 1:
                issues.append(_issue(database.ORDERS, order, f"Duplicate trackingId {order['trackingId']}"))
    except PyMongoError as e:
        logger.exception("Order audit failed")
        return {"success": False, "error": str(e)}

    if issues:
        logger.warning("Order audit found %d issue(s) across %d orders", len(issues), len(orders))
    return {
        "success": True,
        "totalOrdersAudited": len(orders) + len(mirrors),
        "issuesFound": len(issues),
        "issues": issues,
    }


def debug_user_orders(db, user_id: str) -> dict:
    """Raw per-collection view of everything stored for a user."""
    try:
        found = {
            name: [database.to_str_id(d) for d in db[name].find({"userId": user_id})]
            for name in (database.ORDERS, database.SHOP_ORDERS, database.ADDRESSES, database.PAYMENTS)
        }
        order_ids = [o["id"] for o in found[database.ORDERS]]
        found[database.ORDER_ITEMS] = [
            database.to_str_id(d) for d in db[database.ORDER_ITEMS].find({"orderId": {"$in": order_ids}})
        ]
        found[database.DELIVERY_TRACKING] = [
            database.to_str_id(d) for d in db[database.DELIVERY_TRACKING].find({"orderId": {"$in": order_ids}})
        ]
    except PyMongoError as e:
        logger.exception("Debug fetch failed for user %s", user_id)
        return {"success": False, "error": str(e)}
    return {"success": True, "counts": {k: len(v) for k, v in found.items()}, "collections": found}


# -----------------------
# Migration of embedded orders
# -----------------------

def migrate_order_to_separate_collections(db, order_id: str) -> dict:
    try:
        order = database.find_by_id(db, database.ORDERS, order_id)
        if order is None:
            return {"success": False, "error": "Order not found"}
        fields = {}
        if not order.get("addressId") and order.get("shippingAddress"):
            address = dict(order["shippingAddress"])
            address.update({"userId": order.get("userId"), "orderId": order_id})
            address.update(order.get("contactInfo") or {})
            fields["addressId"] = database.create_document(db, database.ADDRESSES, address)
        if not order.get("paymentId") and order.get("paymentInfo"):
            info = order["paymentInfo"]
            payment = {
                "userId": order.get("userId"),
                "orderId": order_id,
                "cardLastFour": str(info.get("cardNumber", ""))[-4:],
                "cardholderName": info.get("cardholderName", ""),
                "amount": (order.get("orderSummary") or {}).get("total"),
                "status": "pending",
            }
            fields["paymentId"] = database.create_document(db, database.PAYMENTS, payment)
        if not fields:
            return {"success": True, "migrated": False}
        fields["updatedAt"] = database.now()
        db[database.ORDERS].update_one({"_id": order["_id"]}, {"$set": fields})
    except PyMongoError as e:
        logger.exception("Error migrating order %s", order_id)
        return {"success": False, "error": str(e)}
    logger.info("Migrated order %s to separate address/payment records", order_id)
    return {"success": True, "migrated": True, "addressId": fields.get("addressId"), "paymentId": fields.get("paymentId")}


def migrate_all_orders(db) -> dict:
    try:
        candidates = [
            str(d["_id"])
            for d in db[database.ORDERS].find(
                {"$or": [{"shippingAddress": {"$exists": True}}, {"paymentInfo": {"$exists": True}}]}, {"_id": 1}
            )
        ]
    except PyMongoError as e:
        logger.exception("Could not list orders to migrate")
        return {"success": False, "error": str(e)}
    success_count = error_count = 0
    for order_id in candidates:
        result = migrate_order_to_separate_collections(db, order_id)
        if not result["success"]:
            error_count += 1
        elif result["migrated"]:
            success_count += 1
    return {"success": True, "successCount": success_count, "errorCount": error_count}


# -----------------------
# Data separation check
# -----------------------

def check_data_separation(db, user_id: str) -> dict:
    results = {"success": True, "tests": [], "errors": []}

    def record(name, ok, details, error=None):
        results["tests"].append({"name": name, "status": "PASSED" if ok else "FAILED", "details": details})
        if error:
            results["errors"].append(error)

    addresses = get_addresses_by_user(db, user_id)
    if addresses["success"]:
        record("Address Collection Fetch", True, f"Found {len(addresses['addresses'])} addresses in separate collection")
    else:
        record("Address Collection Fetch", False, addresses["error"], f"Address fetch failed: {addresses['error']}")

    payments = get_payments_by_user(db, user_id)
    if payments["success"]:
        record("Payment Collection Fetch", True, f"Found {len(payments['payments'])} payments in separate collection")
    else:
        record("Payment Collection Fetch", False, payments["error"], f"Payment fetch failed: {payments['error']}")

    try:
        orders = list(db[database.ORDERS].find({"userId": user_id}))
        with_refs = sum(1 for o in orders if o.get("addressId") and o.get("paymentId"))
        embedded = sum(1 for o in orders if o.get("shippingAddress") and o.get("paymentInfo"))
        record("Order References", True, f"{with_refs} orders have proper references, {embedded} have embedded data")
    except PyMongoError as e:
        logger.exception("Order reference check failed for user %s", user_id)
        record("Order References", False, str(e), f"Order fetch failed: {e}")

    audit = audit_orders(db)
    if not audit["success"]:
        record("Data Consistency Audit", False, audit["error"], f"Audit failed: {audit['error']}")
    elif audit["issuesFound"]:
        results["tests"].append(
            {"name": "Data Consistency Audit", "status": "WARNING", "details": f"Found {audit['issuesFound']} consistency issues"}
        )
    else:
        record("Data Consistency Audit", True, "No consistency issues found")

    results["success"] = not results["errors"]
    return results
