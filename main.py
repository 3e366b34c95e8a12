import json
import logging
import os
from typing import Optional

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import StreamingResponse

import analytics
import cart
import catalog
import database
import maintenance
import orders
import pricing
import reviews
import seed
import tracking
from database import get_db
from schemas import (
    Cart,
    CartItem,
    Category,
    Confirmation,
    DeliveryUpdate,
    InventoryUpdate,
    OrderCreate,
    Product,
    ProductUpdate,
    QuantityUpdate,
    QuoteRequest,
    Review,
    ShopSettings,
    StatusUpdate,
)

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger("bakery.api")

ORDER_FEED_INTERVAL = float(os.getenv("ORDER_FEED_INTERVAL", "5"))

app = FastAPI(title="Bakery Storefront API", version="1.0.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Helpers

def unwrap(result: dict, failure_status: int = 500) -> dict:
    """Turn a ``{success, error}`` result into a response or an HTTPException."""
    if result.get("success"):
        return result
    error = result.get("error") or "Request failed"
    status_code = 404 if "not found" in error.lower() else failure_status
    raise HTTPException(status_code=status_code, detail=error)


# ---------
# Lifecycle
# ---------

@app.on_event("startup")
def startup_event():
    # A handle installed beforehand (tests) is kept
    if getattr(app.state, "db", None) is None:
        app.state.mongo_client, app.state.db = database.connect()
    if os.getenv("SEED_ON_STARTUP", "1") != "0":
        seed.ensure_seeded(app.state.db)


@app.on_event("shutdown")
def shutdown_event():
    client = getattr(app.state, "mongo_client", None)
    if client is not None:
        client.close()
        logger.info("MongoDB client closed")
    app.state.mongo_client = None
    app.state.db = None


# ---------
# Root/Test
# ---------

@app.get("/")
def read_root():
    return {"message": "Bakery Storefront API is running"}


@app.get("/test")
def test_database(request: Request):
    response = {
        "backend": "✅ Running",
        "database": "❌ Not Available",
        "database_url": "✅ Set" if os.getenv("DATABASE_URL") else "❌ Not Set",
        "database_name": "✅ Set" if os.getenv("DATABASE_NAME") else "❌ Not Set",
        "connection_status": "Not Connected",
        "collections": [],
    }
    db = getattr(request.app.state, "db", None)
    if db is None:
        response["database"] = "⚠️  Available but not initialized"
        return response
    try:
        response["collections"] = db.list_collection_names()[:12]
        check_id = database.create_document(db, database.TEST, {"check": True})
        db[database.TEST].delete_one({"_id": database.object_id(check_id)})
        response["database"] = "✅ Connected & Working"
        response["connection_status"] = "Connected"
    except Exception as e:
        response["database"] = f"⚠️  Connected but Error: {str(e)[:50]}"
    return response


# ---------------
# Catalog Endpoints
# ---------------

@app.get("/api/products")
def list_products(
    category: Optional[str] = None,
    q: Optional[str] = None,
    sort: Optional[str] = None,
    min_price: Optional[float] = None,
    max_price: Optional[float] = None,
    min_rating: Optional[float] = None,
    in_stock: bool = False,
    db=Depends(get_db),
):
    result = unwrap(catalog.get_products(db))
    products = catalog.search_products(result["products"], q)
    price_range = None
    if min_price is not None or max_price is not None:
        price_range = (min_price or 0, max_price if max_price is not None else float("inf"))
    products = catalog.filter_products(products, category, price_range, min_rating, in_stock)
    return catalog.sort_products(products, sort)


@app.get("/api/products/{product_id}")
def get_product(product_id: str, db=Depends(get_db)):
    return unwrap(catalog.get_product(db, product_id))["product"]


@app.post("/api/products", status_code=201)
def create_product(payload: Product, db=Depends(get_db)):
    result = unwrap(catalog.add_product(db, payload), failure_status=400)
    return {"id": result["id"], "message": result["message"]}


@app.patch("/api/products/{product_id}")
def update_product(product_id: str, payload: ProductUpdate, db=Depends(get_db)):
    unwrap(catalog.update_product(db, product_id, payload), failure_status=400)
    return unwrap(catalog.get_product(db, product_id))["product"]


@app.delete("/api/products/{product_id}")
def delete_product(product_id: str, db=Depends(get_db)):
    return unwrap(catalog.delete_product(db, product_id))


@app.post("/api/products/{product_id}/inventory")
def update_inventory(product_id: str, payload: InventoryUpdate, db=Depends(get_db)):
    if payload.operation not in ("decrease", "increase"):
        raise HTTPException(status_code=400, detail="operation must be 'decrease' or 'increase'")
    return unwrap(catalog.update_product_inventory(db, product_id, payload.quantity, payload.operation))


@app.get("/api/categories")
def list_categories(db=Depends(get_db)):
    return unwrap(catalog.get_categories(db))["categories"]


@app.post("/api/categories", status_code=201)
def create_category(payload: Category, db=Depends(get_db)):
    return {"id": unwrap(catalog.add_category(db, payload))["id"]}


# ---------------
# Reviews
# ---------------

@app.get("/api/reviews")
def list_reviews(db=Depends(get_db)):
    return unwrap(reviews.get_all_reviews(db))["reviews"]


@app.get("/api/products/{product_id}/reviews")
def list_product_reviews(product_id: str, db=Depends(get_db)):
    return unwrap(reviews.get_reviews_by_product(db, product_id))["reviews"]


@app.post("/api/reviews", status_code=201)
def create_review(payload: Review, db=Depends(get_db)):
    if not catalog.get_product(db, payload.product_id)["success"]:
        raise HTTPException(status_code=404, detail="Product not found")
    return unwrap(reviews.add_review(db, payload))


# ---------------
# Cart
# ---------------

@app.get("/api/cart/{user_id}")
def get_cart(user_id: str, db=Depends(get_db)):
    items = unwrap(cart.get_cart(db, user_id))["cart"]
    return {"items": items, "count": cart.cart_count(items), "total": cart.cart_total(items)}


@app.put("/api/cart/{user_id}")
def replace_cart(user_id: str, payload: Cart, db=Depends(get_db)):
    return unwrap(cart.save_cart(db, user_id, payload.items))


@app.post("/api/cart/{user_id}/items")
def add_cart_item(user_id: str, payload: CartItem, db=Depends(get_db)):
    return unwrap(cart.add_to_cart(db, user_id, payload))


@app.patch("/api/cart/{user_id}/items/{product_id}")
def update_cart_item(user_id: str, product_id: str, payload: QuantityUpdate, db=Depends(get_db)):
    return unwrap(cart.update_quantity(db, user_id, product_id, payload.quantity))


@app.delete("/api/cart/{user_id}/items/{product_id}")
def remove_cart_item(user_id: str, product_id: str, db=Depends(get_db)):
    return unwrap(cart.remove_from_cart(db, user_id, product_id))


@app.delete("/api/cart/{user_id}")
def clear_cart(user_id: str, db=Depends(get_db)):
    return unwrap(cart.clear_cart(db, user_id))


@app.post("/api/cart/{user_id}/merge")
def merge_cart(user_id: str, payload: Cart, db=Depends(get_db)):
    return unwrap(cart.merge_local_cart(db, user_id, payload.items))


# -------------------------
# Pricing endpoints (quote)
# -------------------------

@app.post("/api/pricing/quote")
def pricing_quote(payload: QuoteRequest, request: Request):
    return pricing.quote(getattr(request.app.state, "db", None), payload.items, payload.coupon_code)


@app.get("/api/coupons/{code}")
def check_coupon(code: str, subtotal: float = 0):
    result = pricing.apply_coupon(code, subtotal)
    if not result["success"]:
        raise HTTPException(status_code=400, detail=result["message"])
    return result


# ---------------
# Orders Endpoints
# ---------------

@app.post("/api/orders", status_code=201)
def create_order(payload: OrderCreate, db=Depends(get_db)):
    result = orders.create_order(db, payload)
    if not result["success"]:
        raise HTTPException(status_code=400, detail=result["error"])
    return result


@app.get("/api/orders/user/{user_id}")
def list_user_orders(user_id: str, db=Depends(get_db)):
    return unwrap(orders.get_user_orders(db, user_id))["orders"]


@app.get("/api/orders/user/{user_id}/stream")
def stream_user_orders(user_id: str, db=Depends(get_db)):
    def events():
        for snapshot in orders.order_feed(db, user_id, interval=ORDER_FEED_INTERVAL):
            yield f"data: {json.dumps(snapshot, default=str)}\n\n"

    return StreamingResponse(events(), media_type="text/event-stream")


@app.get("/api/orders/{order_id}")
def get_order(order_id: str, db=Depends(get_db)):
    return unwrap(orders.get_order(db, order_id))["order"]


@app.get("/api/orders/{order_id}/items")
def get_order_items(order_id: str, db=Depends(get_db)):
    return unwrap(orders.get_order_items(db, order_id))["items"]


@app.patch("/api/orders/{order_id}/status")
def update_order_status(order_id: str, payload: StatusUpdate, db=Depends(get_db)):
    return unwrap(orders.update_order_status(db, order_id, payload.status, payload.shop_notes))


@app.post("/api/orders/{order_id}/confirm")
def confirm_order(order_id: str, payload: Confirmation, db=Depends(get_db)):
    return unwrap(orders.confirm_order(db, order_id, payload.notes, payload.estimated_delivery))


@app.patch("/api/orders/{order_id}/delivery")
def update_delivery(order_id: str, payload: DeliveryUpdate, db=Depends(get_db)):
    unwrap(tracking.get_order_by_id(db, order_id))
    return unwrap(tracking.update_delivery_tracking(db, order_id, payload.status, payload.location, payload.notes))


@app.get("/api/orders/{order_id}/delivery")
def get_delivery(order_id: str, db=Depends(get_db)):
    return unwrap(tracking.get_delivery_tracking(db, order_id))["tracking"]


# ---------------
# Tracking
# ---------------

@app.get("/api/track")
def track(q: str, db=Depends(get_db)):
    return unwrap(tracking.track_order(db, q), failure_status=400)


@app.get("/api/track/email")
def track_by_email(email: str, db=Depends(get_db)):
    return unwrap(tracking.track_order_by_email(db, email), failure_status=400)


@app.get("/api/tracking-steps/{status}")
def tracking_steps(status: str):
    return tracking.generate_tracking_steps(status)


# ---------------
# Shop dashboard
# ---------------

@app.get("/api/shops/{shop_id}/orders")
def list_shop_orders(shop_id: str, db=Depends(get_db)):
    return unwrap(orders.get_shop_orders(db, shop_id))["orders"]


@app.get("/api/shops/{shop_id}/products")
def list_shop_products(shop_id: str, db=Depends(get_db)):
    return unwrap(catalog.get_shop_products(db, shop_id))["products"]


@app.get("/api/shops/{shop_id}/analytics")
def shop_analytics(shop_id: str, db=Depends(get_db)):
    return unwrap(analytics.get_shop_analytics(db, shop_id))["analytics"]


@app.get("/api/shops/{shop_id}/customers")
def shop_customers(shop_id: str, db=Depends(get_db)):
    return unwrap(analytics.get_shop_customers(db, shop_id))["customers"]


@app.get("/api/settings")
def get_settings(db=Depends(get_db)):
    return unwrap(seed.get_settings(db))["settings"]


@app.put("/api/settings")
def update_settings(payload: ShopSettings, db=Depends(get_db)):
    return unwrap(seed.update_settings(db, payload.model_dump(by_alias=True, exclude_none=True)))["settings"]


# ---------------
# Addresses / payments
# ---------------

@app.get("/api/users/{user_id}/addresses")
def list_addresses(user_id: str, db=Depends(get_db)):
    return unwrap(maintenance.get_addresses_by_user(db, user_id))["addresses"]


@app.get("/api/users/{user_id}/payments")
def list_payments(user_id: str, db=Depends(get_db)):
    return unwrap(maintenance.get_payments_by_user(db, user_id))["payments"]


# ---------------
# Maintenance
# ---------------

@app.get("/api/maintenance/audit")
def audit_orders(db=Depends(get_db)):
    return unwrap(maintenance.audit_orders(db))


@app.get("/api/maintenance/debug/{user_id}")
def debug_user_orders(user_id: str, db=Depends(get_db)):
    return unwrap(maintenance.debug_user_orders(db, user_id))


@app.get("/api/maintenance/data-separation/{user_id}")
def data_separation(user_id: str, db=Depends(get_db)):
    return maintenance.check_data_separation(db, user_id)


@app.post("/api/maintenance/migrate")
def migrate_orders(db=Depends(get_db)):
    return unwrap(maintenance.migrate_all_orders(db))


@app.post("/api/maintenance/migrate/{order_id}")
def migrate_order(order_id: str, db=Depends(get_db)):
    return unwrap(maintenance.migrate_order_to_separate_collections(db, order_id))


# ---------------
# Seed demo data
# ---------------

@app.post("/api/seed")
def seed_demo(db=Depends(get_db)):
    """Seed categories, products, reviews and settings if collections are empty."""
    return {"seeded": seed.ensure_seeded(db)}


if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
