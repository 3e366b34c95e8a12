import logging

from pymongo.errors import PyMongoError

import database

logger = logging.getLogger("bakery.seed")

DEFAULT_SHOP_ID = "shop-1"


def _seed_payload():
    categories = [
        {"name": "Cakes", "description": "Delicious handcrafted cakes for all occasions", "image": "/images/categories/cakes.jpg", "active": True},
        {"name": "Pastries", "description": "Fresh pastries and baked goods", "image": "/images/categories/pastries.jpg", "active": True},
        {"name": "Sweets", "description": "Sweet treats and confections", "image": "/images/categories/sweets.jpg", "active": True},
        {"name": "Breads", "description": "Freshly baked breads and rolls", "image": "/images/categories/breads.jpg", "active": True},
    ]

    products = [
        {
            "name": "Chocolate Fudge Cake",
            "category": "Cakes",
            "price": 25.99,
            "image": "https://images.unsplash.com/photo-1578985545062-69928b1d9587?w=400&h=300&fit=crop",
            "description": "Rich chocolate cake with fudge frosting and chocolate shavings",
            "rating": 4.8,
            "reviews": 124,
        },
        {
            "name": "Vanilla Cream Cake",
            "category": "Cakes",
            "price": 22.99,
            "image": "https://images.unsplash.com/photo-1565958011703-44f9829ba187?w=400&h=300&fit=crop",
            "description": "Light vanilla sponge with fresh cream and berries",
            "rating": 4.6,
            "reviews": 89,
        },
        {
            "name": "Red Velvet Cake",
            "category": "Cakes",
            "price": 28.99,
            "image": "https://images.unsplash.com/photo-1551504734-5ee1c4a1479b?w=400&h=300&fit=crop",
            "description": "Classic red velvet with cream cheese frosting",
            "rating": 4.9,
            "reviews": 156,
        },
        {
            "name": "Carrot Cake",
            "category": "Cakes",
            "price": 24.99,
            "description": "Spiced carrot cake with walnuts and cream cheese icing",
            "rating": 4.5,
            "reviews": 73,
        },
        {
            "name": "Éclair",
            "category": "Pastries",
            "price": 5.99,
            "description": "Choux pastry filled with vanilla custard and glazed with chocolate",
            "rating": 4.7,
            "reviews": 98,
        },
        {
            "name": "Pain au Chocolat",
            "category": "Pastries",
            "price": 4.49,
            "description": "Buttery laminated dough wrapped around dark chocolate",
            "rating": 4.6,
            "reviews": 87,
        },
        {
            "name": "Macarons",
            "category": "Sweets",
            "price": 15.99,
            "description": "Box of assorted French macarons",
            "rating": 4.8,
            "reviews": 142,
        },
        {
            "name": "Brownies",
            "category": "Sweets",
            "price": 6.99,
            "description": "Fudgy chocolate brownies",
            "rating": 4.4,
            "reviews": 110,
        },
    ]

    reviews = [
        {"customerName": "Sarah Johnson", "rating": 5, "comment": "Amazing chocolate fudge cake! The frosting is perfect and the cake is so moist."},
        {"customerName": "Mike Chen", "rating": 4, "comment": "Great taste and texture. Rich but not too sweet."},
        {"customerName": "Emily Davis", "rating": 5, "comment": "Exceeded my expectations! The cream cheese frosting is divine."},
        {"customerName": "David Wilson", "rating": 4, "comment": "Flaky, buttery and fresh. Will order again."},
    ]

    settings = {
        "shopName": "The Noisy Cake Shop",
        "shopDescription": "Premium handcrafted cakes and pastries for all your special occasions",
        "shopAddress": "123 Baker Street, Sweet City, SC 12345",
        "shopPhone": "+1 (555) 123-4567",
        "shopEmail": "info@noisycakeshop.com",
        "businessHours": {
            "monday": "9:00 AM - 8:00 PM",
            "tuesday": "9:00 AM - 8:00 PM",
            "wednesday": "9:00 AM - 8:00 PM",
            "thursday": "9:00 AM - 8:00 PM",
            "friday": "9:00 AM - 9:00 PM",
            "saturday": "8:00 AM - 9:00 PM",
            "sunday": "10:00 AM - 6:00 PM",
        },
        "deliveryRadius": 25,
        "minimumOrderAmount": 20,
        "deliveryFee": 5.99,
        "freeDeliveryThreshold": 50,
        "taxRate": 0.08,
        "currency": "USD",
        "isOpen": True,
        "featuredProducts": [],
    }
    return categories, products, reviews, settings


def _product_doc(product: dict) -> dict:
    return {
        "subcategory": "",
        "image": "",
        "tags": [],
        "isFeatured": False,
        "isSeasonal": False,
        **product,
        "isActive": True,
        "inStock": True,
        "inventory": 50,
        "averageRating": product.get("rating", 0),
        "reviewCount": product.get("reviews", 0),
        "totalSold": 0,
        "shopId": DEFAULT_SHOP_ID,
    }


def ensure_seeded(db) -> dict:
    """Insert demo data into whichever of the seeded collections are empty."""
    created = {"categories": 0, "products": 0, "reviews": 0, "settings": 0}
    if db is None:
        return created
    categories, products, reviews, settings = _seed_payload()
    try:
        if db[database.CATEGORIES].count_documents({}) == 0:
            for category in categories:
                database.create_document(db, database.CATEGORIES, category)
            created["categories"] = len(categories)
        if db[database.PRODUCTS].count_documents({}) == 0:
            for product in products:
                database.create_document(db, database.PRODUCTS, _product_doc(product))
            created["products"] = len(products)
        if db[database.REVIEWS].count_documents({}) == 0:
            product_ids = [str(d["_id"]) for d in db[database.PRODUCTS].find({}, {"_id": 1})]
            if product_ids:
                for i, review in enumerate(reviews):
                    database.create_document(db, database.REVIEWS, {**review, "productId": product_ids[i % len(product_ids)]})
                created["reviews"] = len(reviews)
        if db[database.SETTINGS].count_documents({}) == 0:
            database.create_document(db, database.SETTINGS, settings)
            created["settings"] = 1
    except PyMongoError:
        # Best-effort; don't crash on seed failure
        logger.exception("Seeding demo data failed")
    if any(created.values()):
        logger.info("Seeded demo data: %s", created)
    return created


def get_settings(db) -> dict:
    try:
        doc = db[database.SETTINGS].find_one({})
    except PyMongoError as e:
        logger.exception("Error getting shop settings")
        return {"success": False, "error": str(e)}
    if doc is None:
        return {"success": False, "error": "Settings not found"}
    return {"success": True, "settings": database.to_str_id(doc)}


def update_settings(db, fields: dict) -> dict:
    fields = dict(fields)
    fields["updatedAt"] = database.now()
    try:
        db[database.SETTINGS].update_one({}, {"$set": fields, "$setOnInsert": {"createdAt": fields["updatedAt"]}}, upsert=True)
    except PyMongoError as e:
        logger.exception("Error updating shop settings")
        return {"success": False, "error": str(e)}
    return get_settings(db)
