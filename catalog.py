import logging
from typing import Iterable, List, Optional, Tuple

from pymongo.errors import PyMongoError

import database
from schemas import Category, Product, ProductUpdate
from utils import timestamp_of, validate_image_url

logger = logging.getLogger("bakery.catalog")

SORT_OPTIONS = ("name", "price_low", "price_high", "rating", "newest")


# -----------------------
# Products
# -----------------------

def add_product(db, product: Product) -> dict:
    if not validate_image_url(product.image):
        return {"success": False, "error": "Invalid image URL"}
    data = product.model_dump(by_alias=True)
    data.update(
        {
            "isActive": True,
            "rating": 0,
            "reviews": 0,
            "totalSold": 0,
            "averageRating": 0,
            "reviewCount": 0,
        }
    )
    try:
        product_id = database.create_document(db, database.PRODUCTS, data)
    except PyMongoError as e:
        logger.exception("Error adding product %s", product.name)
        return {"success": False, "error": str(e) or "Failed to add product"}
    return {"success": True, "id": product_id, "message": "Product added successfully"}


def _list(db, filter_dict: dict, what: str) -> dict:
    try:
        docs = database.get_documents(db, database.PRODUCTS, filter_dict)
    except PyMongoError as e:
        logger.exception("Error getting %s", what)
        return {"success": False, "error": str(e)}
    return {"success": True, "products": [database.to_str_id(d) for d in docs]}


def get_products(db) -> dict:
    return _list(db, {"isActive": True}, "products")


def get_products_by_category(db, category: str) -> dict:
    return _list(db, {"category": category, "isActive": True}, f"products in {category}")


def get_shop_products(db, shop_id: str) -> dict:
    # Shop owners also see soft-deleted products
    return _list(db, {"shopId": shop_id}, f"products of shop {shop_id}")


def get_product(db, product_id: str) -> dict:
    try:
        doc = database.find_by_id(db, database.PRODUCTS, product_id)
    except PyMongoError as e:
        logger.exception("Error getting product %s", product_id)
        return {"success": False, "error": str(e)}
    if doc is None:
        return {"success": False, "error": "Product not found"}
    return {"success": True, "product": database.to_str_id(doc)}


def _update(db, product_id: str, fields: dict, what: str) -> dict:
    oid = database.object_id(product_id)
    if oid is None:
        return {"success": False, "error": "Product not found"}
    fields["updatedAt"] = database.now()
    try:
        result = db[database.PRODUCTS].update_one({"_id": oid}, {"$set": fields})
    except PyMongoError as e:
        logger.exception("Error %s product %s", what, product_id)
        return {"success": False, "error": str(e)}
    if result.matched_count == 0:
        return {"success": False, "error": "Product not found"}
    return {"success": True}


def update_product(db, product_id: str, update: ProductUpdate) -> dict:
    if not validate_image_url(update.image):
        return {"success": False, "error": "Invalid image URL"}
    return _update(db, product_id, update.model_dump(by_alias=True, exclude_none=True), "updating")


def delete_product(db, product_id: str) -> dict:
    """Soft delete: the document stays, hidden from the storefront."""
    return _update(db, product_id, {"isActive": False}, "deleting")


def update_product_inventory(db, product_id: str, quantity: int, operation: str = "decrease") -> dict:
    try:
        doc = database.find_by_id(db, database.PRODUCTS, product_id)
        if doc is None:
            return {"success": False, "error": "Product not found"}
        current = doc.get("inventory") or 0
        if operation == "decrease":
            new_inventory = max(0, current - quantity)
        else:
            new_inventory = current + quantity
        db[database.PRODUCTS].update_one(
            {"_id": doc["_id"]},
            {"$set": {"inventory": new_inventory, "inStock": new_inventory > 0, "updatedAt": database.now()}},
        )
    except PyMongoError as e:
        logger.exception("Error updating inventory of product %s", product_id)
        return {"success": False, "error": str(e)}
    return {"success": True, "newInventory": new_inventory}


# -----------------------
# Categories
# -----------------------

def get_categories(db) -> dict:
    try:
        docs = database.get_documents(db, database.CATEGORIES, {"active": True})
    except PyMongoError as e:
        logger.exception("Error getting categories")
        return {"success": False, "error": str(e)}
    return {"success": True, "categories": [database.to_str_id(d) for d in docs]}


def add_category(db, category: Category) -> dict:
    try:
        category_id = database.create_document(db, database.CATEGORIES, category)
    except PyMongoError as e:
        logger.exception("Error adding category %s", category.name)
        return {"success": False, "error": str(e)}
    return {"success": True, "id": category_id}


# -----------------------
# In-memory search / filter / sort
# -----------------------

def search_products(products: Iterable[dict], term: Optional[str]) -> List[dict]:
    products = list(products)
    if not term:
        return products
    term = term.lower()
    return [
        p
        for p in products
        if term in (p.get("name") or "").lower()
        or term in (p.get("description") or "").lower()
        or term in (p.get("category") or "").lower()
    ]


def filter_products(
    products: Iterable[dict],
    category: Optional[str] = None,
    price_range: Optional[Tuple[float, float]] = None,
    min_rating: Optional[float] = None,
    in_stock: bool = False,
) -> List[dict]:
    filtered = list(products)
    if category and category.lower() != "all":
        filtered = [p for p in filtered if (p.get("category") or "").lower() == category.lower()]
    if price_range:
        low, high = price_range
        filtered = [p for p in filtered if low <= p.get("price", 0) <= high]
    if min_rating:
        filtered = [p for p in filtered if _rating(p) >= min_rating]
    if in_stock:
        filtered = [p for p in filtered if p.get("inStock")]
    return filtered


def _rating(product: dict) -> float:
    return product.get("averageRating") or product.get("rating") or 0


def sort_products(products: Iterable[dict], sort_by: Optional[str]) -> List[dict]:
    products = list(products)
    if sort_by == "name":
        return sorted(products, key=lambda p: (p.get("name") or "").lower())
    if sort_by == "price_low":
        return sorted(products, key=lambda p: p.get("price", 0))
    if sort_by == "price_high":
        return sorted(products, key=lambda p: p.get("price", 0), reverse=True)
    if sort_by == "rating":
        return sorted(products, key=_rating, reverse=True)
    if sort_by == "newest":
        return sorted(products, key=lambda p: timestamp_of(p.get("createdAt")), reverse=True)
    return products
