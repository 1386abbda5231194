import math
import os
import re
import time
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import requests
from bson import ObjectId
from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from pymongo.errors import DuplicateKeyError, PyMongoError
from starlette.exceptions import HTTPException as StarletteHTTPException

from database import db, create_document, ensure_indexes, get_documents
from logging_config import add_context, clear_context, configure_logging, get_logger
from schemas import (
    CartItem as CartItemSchema,
    CartItemInput,
    Order as OrderSchema,
    OrderItem as OrderItemSchema,
    Product as ProductSchema,
    RegisterInput,
    User as UserSchema,
)

# Shop config
MAIN_SERVER_URL = os.getenv("MAIN_SERVER_URL", "http://localhost:3001")
SHOP_ADMIN_ID = os.getenv("SHOP_ADMIN_ID", "6902176a312bc81a247cf58e")
SHOP_NAME = os.getenv("SHOP_NAME", "FunFood")
_timeout = os.getenv("SHOP_DATA_TIMEOUT", "10")
SHOP_DATA_TIMEOUT = float(_timeout) if _timeout else None

configure_logging()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    try:
        ensure_indexes()
    except PyMongoError as e:
        logger.warning("index_setup_failed", error=str(e))
    yield


app = FastAPI(title="FunFood Shop API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def bind_request_context(request: Request, call_next):
    clear_context()
    add_context(method=request.method, path=request.url.path)
    return await call_next(request)


# Envelope and error handlers

def envelope(data: Any) -> Dict[str, Any]:
    return {"success": True, "data": data}


def failure(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "error": message})


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return failure(exc.status_code, str(exc.detail))


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    parts = []
    for err in exc.errors():
        field = ".".join(str(p) for p in err.get("loc", ()) if p != "body")
        parts.append(f"{field}: {err.get('msg')}" if field else str(err.get("msg")))
    return failure(400, "; ".join(parts) or "Invalid request")


@app.exception_handler(PyMongoError)
async def store_error_handler(request: Request, exc: PyMongoError):
    logger.error("store_error", error=str(exc))
    return failure(500, str(exc))


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("unhandled_error")
    return failure(500, str(exc))


# Utilities

def serialize_doc(doc: Dict[str, Any]) -> Dict[str, Any]:
    if not doc:
        return doc
    doc = dict(doc)
    _id = doc.get("_id")
    if isinstance(_id, ObjectId):
        doc["id"] = str(_id)
        del doc["_id"]
    for k, v in list(doc.items()):
        if isinstance(v, ObjectId):
            doc[k] = str(v)
    return doc


def to_object_id(value: str) -> Optional[ObjectId]:
    return ObjectId(value) if ObjectId.is_valid(value) else None


def load_user(user_id: str) -> Dict[str, Any]:
    obj_id = to_object_id(user_id)
    user = db["user"].find_one({"_id": obj_id}) if obj_id else None
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return user


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


# Routes
@app.get("/")
def read_root():
    return {"message": "FunFood Shop API"}


@app.get("/health")
def health():
    return {"success": True, "status": "OK", "timestamp": now_iso()}


@app.get("/api/app-config")
def app_config():
    config = {
        "adminId": SHOP_ADMIN_ID,
        "shopName": SHOP_NAME,
        "lastUpdated": now_iso(),
        "features": {
            "searchEnabled": True,
            "cartEnabled": True,
            "userRegistrationEnabled": True,
            "orderTrackingEnabled": True,
        },
    }
    return envelope(config)


# Products
@app.get("/api/products")
def list_products():
    docs = get_documents("product", {"inStock": True})
    return envelope([serialize_doc(d) for d in docs])


@app.get("/api/products/search/{query}")
def search_products(query: str):
    # Plain substring match; user input is never treated as a regex.
    pattern = {"$regex": re.escape(query), "$options": "i"}
    docs = db["product"].find({
        "$or": [
            {"name": pattern},
            {"description": pattern},
            {"category": pattern},
        ],
        "inStock": True,
    })
    return envelope([serialize_doc(d) for d in docs])


@app.get("/api/products/{product_id}")
def get_product(product_id: str):
    obj_id = to_object_id(product_id)
    product = db["product"].find_one({"_id": obj_id}) if obj_id else None
    if not product:
        raise HTTPException(status_code=404, detail="Product not found")
    return envelope(serialize_doc(product))


# Catalog refresh from the main server

def coerce_price(value: Any) -> float:
    try:
        price = float(value)
    except (TypeError, ValueError):
        return 0.0
    # parseFloat semantics, but nan and inf are not valid JSON numbers
    return price if math.isfinite(price) else 0.0


def map_remote_product(item: Dict[str, Any]) -> ProductSchema:
    return ProductSchema(
        name=item.get("name") or item.get("productName"),
        price=coerce_price(item.get("price")),
        description=item.get("description") or "",
        image=item.get("image"),
        category=item.get("category") or "General",
        in_stock=True,
    )


def fetch_shop_data(base_url: str, admin_id: str) -> Dict[str, Any]:
    url = f"{base_url.rstrip('/')}/shop-data/{admin_id}"
    try:
        response = requests.get(url, headers={"Content-Type": "application/json"}, timeout=SHOP_DATA_TIMEOUT)
    except requests.RequestException as e:
        logger.error("shop_data_fetch_failed", url=url, error=str(e))
        raise HTTPException(status_code=500, detail="Failed to fetch shop data from main server")
    try:
        payload = response.json()
    except ValueError as e:
        logger.error("shop_data_parse_failed", url=url, error=str(e))
        raise HTTPException(status_code=500, detail="Failed to parse shop data")
    if not isinstance(payload, dict):
        logger.error("shop_data_parse_failed", url=url, error="payload is not an object")
        raise HTTPException(status_code=500, detail="Failed to parse shop data")
    if not payload.get("success"):
        logger.warning("shop_data_not_found", url=url)
        raise HTTPException(status_code=500, detail="Shop data not found")
    return payload.get("data") or {}


def refresh_from_remote(base_url: str, admin_id: str) -> Dict[str, Any]:
    """Replace the local catalog with the main server's product list.

    Existing products are deleted before the new ones are written. If the
    write fails half way the catalog stays empty (or partial) and the raw
    remote data is returned instead of the merged view.
    """
    shop_data = fetch_shop_data(base_url, admin_id)
    products = shop_data.get("products") or []

    db["product"].delete_many({})
    try:
        docs = [map_remote_product(p).model_dump(by_alias=True) for p in products]
        if docs:
            db["product"].insert_many(docs)
    except (ValidationError, PyMongoError) as e:
        logger.error("catalog_refresh_insert_failed", error=str(e), product_count=len(products))
        return shop_data

    logger.info("catalog_refreshed", product_count=len(products))
    return {
        "shopName": shop_data.get("shopName"),
        "appName": shop_data.get("appName"),
        "gstNumber": shop_data.get("gstNumber"),
        "products": products,
        "lastUpdated": shop_data.get("lastUpdated"),
    }


@app.get("/api/shop-data")
def shop_data():
    return envelope(refresh_from_remote(MAIN_SERVER_URL, SHOP_ADMIN_ID))


# Users
@app.post("/api/users/register")
def register(payload: RegisterInput):
    email = payload.email.lower()
    if db["user"].find_one({"email": email}):
        logger.warning("registration_conflict", email=email)
        raise HTTPException(status_code=400, detail="User already exists")
    user_model = UserSchema(
        name=payload.name,
        email=email,
        phone=payload.phone,
        address=payload.address,
    )
    try:
        user_id = create_document("user", user_model)
    except DuplicateKeyError:
        # Lost the check-then-insert race to a concurrent registration
        logger.warning("registration_conflict", email=email)
        raise HTTPException(status_code=400, detail="User already exists")
    logger.info("user_registered", user_id=user_id)
    user = db["user"].find_one({"_id": ObjectId(user_id)})
    return envelope(serialize_doc(user))


@app.get("/api/users/{user_id}")
def get_user(user_id: str):
    return envelope(serialize_doc(load_user(user_id)))


# Cart
# Cart and order writes are read-modify-write without a version check, so
# concurrent requests for one user can overwrite each other's cart changes.

@app.post("/api/users/{user_id}/cart")
def add_to_cart(user_id: str, item: CartItemInput):
    user = load_user(user_id)
    items = user.get("cart", [])
    merged = False
    for it in items:
        if it.get("productId") == item.product_id:
            it["quantity"] = int(it.get("quantity", 0)) + int(item.quantity)
            merged = True
            break
    if not merged:
        items.append(CartItemSchema(**item.model_dump()).model_dump(by_alias=True))
    db["user"].update_one({"_id": user["_id"]}, {"$set": {"cart": items}})
    logger.info("cart_updated", user_id=user_id, product_id=item.product_id, merged=merged)
    return envelope(items)


@app.get("/api/users/{user_id}/cart")
def get_cart(user_id: str):
    return envelope(load_user(user_id).get("cart", []))


# Orders
@app.post("/api/users/{user_id}/orders")
def place_order(user_id: str):
    user = load_user(user_id)
    lines = [OrderItemSchema.model_validate(it) for it in user.get("cart", [])]
    order = OrderSchema(
        order_id=f"ORDER_{int(time.time() * 1000)}",
        products=lines,
        total=sum(line.price * line.quantity for line in lines),
    )
    order_doc = order.model_dump(by_alias=True)
    db["user"].update_one(
        {"_id": user["_id"]},
        {"$push": {"orders": order_doc}, "$set": {"cart": []}},
    )
    logger.info("order_placed", user_id=user_id, order_id=order.order_id, total=order.total)
    return envelope(order_doc)


@app.get("/api/users/{user_id}/orders")
def list_orders(user_id: str):
    return envelope(load_user(user_id).get("orders", []))


if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
