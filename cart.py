import logging
from typing import Iterable, List

from pymongo.errors import PyMongoError

import database
from schemas import CartItem

logger = logging.getLogger("bakery.cart")


def merge_carts(stored: Iterable[dict], local: Iterable[dict]) -> List[dict]:
    """Stored lines first; lines in both keep the larger quantity, local-only lines are appended."""
    merged = [dict(item) for item in stored]
    by_id = {item["id"]: item for item in merged}
    for item in local:
        existing = by_id.get(item["id"])
        if existing is not None:
            existing["quantity"] = max(existing.get("quantity", 1), item.get("quantity", 1))
        else:
            line = dict(item)
            merged.append(line)
            by_id[line["id"]] = line
    return merged


def cart_total(items: Iterable[dict]) -> float:
    return round(sum(i.get("price", 0) * i.get("quantity", 1) for i in items), 2)


def cart_count(items: Iterable[dict]) -> int:
    return sum(i.get("quantity", 1) for i in items)


def get_cart(db, user_id: str) -> dict:
    try:
        user = db[database.USERS].find_one({"_id": user_id})
    except PyMongoError as e:
        logger.exception("Error getting cart for user %s", user_id)
        return {"success": False, "error": str(e)}
    return {"success": True, "cart": (user or {}).get("cart") or []}


def save_cart(db, user_id: str, items: Iterable) -> dict:
    cart = [i.model_dump(by_alias=True, exclude_none=True) if isinstance(i, CartItem) else dict(i) for i in items]
    try:
        # users are keyed by the auth provider's uid; merge into whatever else is stored there
        db[database.USERS].update_one(
            {"_id": user_id},
            {"$set": {"cart": cart, "cartUpdatedAt": database.now()}},
            upsert=True,
        )
    except PyMongoError as e:
        logger.exception("Error saving cart for user %s", user_id)
        return {"success": False, "error": str(e)}
    return {"success": True, "cart": cart}


def _edit(db, user_id: str, edit) -> dict:
    current = get_cart(db, user_id)
    if not current["success"]:
        return current
    return save_cart(db, user_id, edit(current["cart"]))


def add_to_cart(db, user_id: str, item: CartItem) -> dict:
    def edit(cart):
        for line in cart:
            if line["id"] == item.id:
                line["quantity"] = line.get("quantity", 1) + item.quantity
                return cart
        return cart + [item.model_dump(by_alias=True, exclude_none=True)]

    return _edit(db, user_id, edit)


def update_quantity(db, user_id: str, product_id: str, quantity: int) -> dict:
    if quantity <= 0:
        return remove_from_cart(db, user_id, product_id)

    def edit(cart):
        for line in cart:
            if line["id"] == product_id:
                line["quantity"] = quantity
        return cart

    return _edit(db, user_id, edit)


def remove_from_cart(db, user_id: str, product_id: str) -> dict:
    return _edit(db, user_id, lambda cart: [line for line in cart if line["id"] != product_id])


def clear_cart(db, user_id: str) -> dict:
    return save_cart(db, user_id, [])


def merge_local_cart(db, user_id: str, local_items: Iterable[CartItem]) -> dict:
    local = [i.model_dump(by_alias=True, exclude_none=True) for i in local_items]
    return _edit(db, user_id, lambda cart: merge_carts(cart, local))
