import pytest

import database
import reviews
from schemas import Review


@pytest.fixture
def product_id(db):
    return database.create_document(db, database.PRODUCTS, {"name": "Macarons", "averageRating": 4.0, "reviewCount": 2})


class _RacingProducts:
    """Lets another review land between our read and our conditional write, once."""

    def __init__(self, collection):
        self._collection = collection
        self.raced = False

    def update_one(self, filter, update, *args, **kwargs):
        if not self.raced:
            self.raced = True
            self._collection.update_one({"_id": filter["_id"]}, {"$set": {"averageRating": 4.0, "reviewCount": 3}})
        return self._collection.update_one(filter, update, *args, **kwargs)

    def __getattr__(self, name):
        return getattr(self._collection, name)


class _RacingDatabase:
    def __init__(self, db):
        self._db = db
        self.products = _RacingProducts(db[database.PRODUCTS])

    def __getitem__(self, name):
        if name == database.PRODUCTS:
            return self.products
        return self._db[name]


def test_running_average():
    assert reviews.running_average(4.0, 2, 5) == pytest.approx(13 / 3)
    assert reviews.running_average(0, 0, 3) == 3


def test_rating_aggregation(db, product_id):
    result = reviews.update_product_rating(db, product_id, 5)

    assert result["success"] is True
    product = database.find_by_id(db, database.PRODUCTS, product_id)
    assert product["averageRating"] == pytest.approx(4.333333, rel=1e-5)
    assert product["reviewCount"] == 3


def test_rating_aggregation_retries_after_concurrent_review(db, product_id):
    racing = _RacingDatabase(db)

    result = reviews.update_product_rating(racing, product_id, 5)

    assert result["success"] is True
    assert racing.products.raced is True
    product = database.find_by_id(db, database.PRODUCTS, product_id)
    assert product["reviewCount"] == 4
    assert product["averageRating"] == pytest.approx(4.25)


def test_rating_for_missing_product(db):
    assert reviews.update_product_rating(db, "5f0000000000000000000000", 4)["error"] == "Product not found"
    assert reviews.update_product_rating(db, "nope", 4)["success"] is False


def test_product_without_rating_fields(db):
    product_id = database.create_document(db, database.PRODUCTS, {"name": "Brownies"})
    reviews.update_product_rating(db, product_id, 4)
    product = database.find_by_id(db, database.PRODUCTS, product_id)
    assert product["averageRating"] == 4
    assert product["reviewCount"] == 1


def test_add_review_stores_and_aggregates(db, product_id):
    result = reviews.add_review(db, Review(productId=product_id, customerName="Sam", rating=5, comment="Lovely"))

    assert result["success"] is True
    assert result["rating"]["reviewCount"] == 3
    listed = reviews.get_reviews_by_product(db, product_id)["reviews"]
    assert [r["customerName"] for r in listed] == ["Sam"]
    assert len(reviews.get_all_reviews(db)["reviews"]) == 1
