"""
Product reviews and the running average rating kept on each product.

The average is updated with a conditional write that only matches while the
product still carries the values it was computed from; on a mismatch the
product is re-read and the update retried.
"""

import logging

from pymongo.errors import PyMongoError

import database
from schemas import Review
from utils import timestamp_of

logger = logging.getLogger("bakery.reviews")

MAX_RATING_ATTEMPTS = 5


def running_average(current_avg: float, current_count: int, new_rating: float) -> float:
    return (current_avg * current_count + new_rating) / (current_count + 1)


def update_product_rating(db, product_id: str, new_rating: float) -> dict:
    oid = database.object_id(product_id)
    if oid is None:
        return {"success": False, "error": "Product not found"}
    try:
        for attempt in range(1, MAX_RATING_ATTEMPTS + 1):
            doc = db[database.PRODUCTS].find_one({"_id": oid})
            if doc is None:
                return {"success": False, "error": "Product not found"}
            current_avg = doc.get("averageRating") or 0
            current_count = doc.get("reviewCount") or 0
            new_avg = running_average(current_avg, current_count, new_rating)
            result = db[database.PRODUCTS].update_one(
                {"_id": oid, "averageRating": doc.get("averageRating"), "reviewCount": doc.get("reviewCount")},
                {
                    "$set": {
                        "averageRating": new_avg,
                        "reviewCount": current_count + 1,
                        "updatedAt": database.now(),
                    }
                },
            )
            if result.modified_count:
                return {"success": True, "averageRating": new_avg, "reviewCount": current_count + 1}
            logger.info("Rating of product %s changed concurrently, retrying (%d)", product_id, attempt)
    except PyMongoError as e:
        logger.exception("Error updating rating of product %s", product_id)
        return {"success": False, "error": str(e)}
    return {"success": False, "error": "Rating update conflicted too many times"}


def add_review(db, review: Review) -> dict:
    try:
        review_id = database.create_document(db, database.REVIEWS, review)
    except PyMongoError as e:
        logger.exception("Error adding review for product %s", review.product_id)
        return {"success": False, "error": str(e)}
    rating = update_product_rating(db, review.product_id, review.rating)
    if not rating["success"]:
        logger.warning("Review %s stored but product rating not updated: %s", review_id, rating["error"])
    return {"success": True, "id": review_id, "rating": rating}


def _reviews(db, filter_dict: dict) -> dict:
    try:
        docs = database.get_documents(db, database.REVIEWS, filter_dict)
    except PyMongoError as e:
        logger.exception("Error getting reviews")
        return {"success": False, "error": str(e)}
    docs.sort(key=lambda d: timestamp_of(d.get("createdAt")), reverse=True)
    return {"success": True, "reviews": [database.to_str_id(d) for d in docs]}


def get_reviews_by_product(db, product_id: str) -> dict:
    return _reviews(db, {"productId": product_id})


def get_all_reviews(db) -> dict:
    return _reviews(db, {})
