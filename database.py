"""
Database access for the bakery storefront.

The MongoDB handle is created once at application startup and passed to every
data-access function. Nothing in this module holds a global client.

Environment:
- DATABASE_URL: MongoDB connection string
- DATABASE_NAME: database to use
"""

import logging
import os
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

from bson import ObjectId
from dotenv import load_dotenv
from fastapi import HTTPException, Request
from pydantic import BaseModel
from pymongo import MongoClient
from pymongo.database import Database

load_dotenv()

logger = logging.getLogger("bakery.database")

# Collection names
PRODUCTS = "products"
REVIEWS = "reviews"
ORDERS = "orders"
ORDER_ITEMS = "orderItems"
SHOP_ORDERS = "shopOrders"
ADDRESSES = "addresses"
PAYMENTS = "payments"
DELIVERY_TRACKING = "deliveryTracking"
USERS = "users"
CATEGORIES = "categories"
SETTINGS = "settings"
TEST = "test"


def connect(database_url: Optional[str] = None, database_name: Optional[str] = None):
    """Open a client and return ``(client, db)``, or ``(None, None)`` when unconfigured."""
    database_url = database_url or os.getenv("DATABASE_URL")
    database_name = database_name or os.getenv("DATABASE_NAME")
    if not database_url or not database_name:
        logger.warning("DATABASE_URL/DATABASE_NAME not set; running without a database")
        return None, None
    client = MongoClient(database_url)
    logger.info("Connected to MongoDB database %s", database_name)
    return client, client[database_name]


def get_db(request: Request) -> Database:
    """FastAPI dependency returning the handle opened at startup."""
    db = getattr(request.app.state, "db", None)
    if db is None:
        raise HTTPException(status_code=503, detail="Database not available")
    return db


def now() -> datetime:
    return datetime.now(timezone.utc)


def create_document(db: Database, collection_name: str, data: Union[BaseModel, dict]) -> str:
    """Insert a document stamped with createdAt/updatedAt and return its id."""
    if isinstance(data, BaseModel):
        data_dict = data.model_dump(by_alias=True, exclude_none=True)
    else:
        data_dict = dict(data)
    stamp = now()
    data_dict.setdefault("createdAt", stamp)
    data_dict["updatedAt"] = stamp
    result = db[collection_name].insert_one(data_dict)
    return str(result.inserted_id)


def get_documents(
    db: Database,
    collection_name: str,
    filter_dict: Optional[Dict[str, Any]] = None,
    limit: Optional[int] = None,
) -> List[dict]:
    cursor = db[collection_name].find(filter_dict or {})
    if limit:
        cursor = cursor.limit(limit)
    return list(cursor)


def object_id(value: Any) -> Optional[ObjectId]:
    """Parse a document id, returning None for anything that is not an ObjectId."""
    if isinstance(value, ObjectId):
        return value
    if isinstance(value, str) and ObjectId.is_valid(value):
        return ObjectId(value)
    return None


def find_by_id(db: Database, collection_name: str, doc_id: Any) -> Optional[dict]:
    oid = object_id(doc_id)
    if oid is None:
        return None
    return db[collection_name].find_one({"_id": oid})


def to_str_id(doc: Optional[dict]) -> Optional[dict]:
    if not doc:
        return doc
    d = doc.copy()
    if "_id" in d:
        d["id"] = str(d.pop("_id"))
    return d
