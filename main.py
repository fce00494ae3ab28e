import os

import structlog
from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pymongo.errors import PyMongoError

from database import db
from errors import InvalidQuantity, InvalidRequest, NotFoundError, NotificationFailed
from logging_config import add_context, clear_context, configure_logging
from notifications import EmailSettings, SmtpNotifier
from orders import OrderService
from schemas import OrderCreate, OrderFlagsUpdate, ProgressNotification, RemoveLineRequest
from stats import sales_summary
from stores import MongoCatalogStore, MongoOrderStore

configure_logging()
logger = structlog.get_logger(__name__)

app = FastAPI(title="Order Fulfillment API", version="1.0.0")

allowed_origins = [o.strip() for o in os.getenv("ALLOWED_ORIGINS", "*").split(",") if o.strip()]

app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def bind_request_context(request: Request, call_next):
    clear_context()
    add_context(method=request.method, path=request.url.path)
    return await call_next(request)


# --------- Errors ---------

def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"message": message})


@app.exception_handler(NotFoundError)
def not_found_handler(request: Request, exc: NotFoundError):
    return _error(404, str(exc))


@app.exception_handler(InvalidQuantity)
def invalid_quantity_handler(request: Request, exc: InvalidQuantity):
    return _error(400, str(exc))


@app.exception_handler(InvalidRequest)
def invalid_request_handler(request: Request, exc: InvalidRequest):
    return _error(400, str(exc))


@app.exception_handler(NotificationFailed)
def notification_failed_handler(request: Request, exc: NotificationFailed):
    return _error(502, str(exc))


@app.exception_handler(PyMongoError)
def storage_error_handler(request: Request, exc: PyMongoError):
    logger.error("Storage operation failed", exc_info=exc)
    return _error(500, "Operation failed")


# --------- Dependencies ---------

def get_database():
    if db is None:
        raise HTTPException(status_code=503, detail="Database not configured")
    return db


def get_catalog_store(database=Depends(get_database)):
    return MongoCatalogStore(database)


def get_order_store(database=Depends(get_database)):
    return MongoOrderStore(database)


def get_notifier():
    return SmtpNotifier(EmailSettings.from_env())


def get_order_service(
    catalog=Depends(get_catalog_store),
    orders=Depends(get_order_store),
    notifier=Depends(get_notifier),
) -> OrderService:
    return OrderService(catalog, orders, notifier, shop_name=os.getenv("SHOP_NAME", "Boutique"))


def serialize(model) -> dict:
    return model.model_dump(by_alias=True, mode="json")


# --------- Basic Routes ---------

@app.get("/")
def root():
    return {"message": "Order fulfillment API running"}


@app.get("/test")
def test_database():
    response = {
        "backend": "Running",
        "database": "Not Available",
        "database_name": None,
        "collections": [],
    }
    try:
        if db is not None:
            response["database_name"] = db.name
            response["collections"] = db.list_collection_names()
            response["database"] = "Connected"
    except PyMongoError as e:
        response["database"] = f"Error: {str(e)[:80]}"
    return response


@app.get("/health")
def health():
    return {"ok": True}


# --------- Products (read only) ---------

@app.get("/api/products")
def list_products(catalog=Depends(get_catalog_store)):
    return [serialize(p) for p in catalog.list_products()]


@app.get("/api/products/{product_id}")
def get_product(product_id: str, catalog=Depends(get_catalog_store)):
    product = catalog.find_product_by_id(product_id)
    if product is None:
        raise HTTPException(status_code=404, detail="Product not found")
    return serialize(product)


# --------- Orders ---------

@app.post("/api/orders")
def create_order(payload: OrderCreate, service: OrderService = Depends(get_order_service)):
    return serialize(service.create_order(payload))


@app.get("/api/orders")
def list_orders(service: OrderService = Depends(get_order_service)):
    return service.get_all_orders()


@app.get("/api/orders/email/{email}")
def get_orders_by_email(email: str, service: OrderService = Depends(get_order_service)):
    return [serialize(o) for o in service.get_orders_by_email(email)]


@app.post("/api/orders/remove-line")
def remove_line(payload: RemoveLineRequest, service: OrderService = Depends(get_order_service)):
    order = service.remove_line(payload.order_id, payload.product_key, payload.quantity_to_remove)
    return {"message": "Product updated successfully", "order": serialize(order)}


@app.post("/api/orders/notify")
def notify_progress(payload: ProgressNotification, service: OrderService = Depends(get_order_service)):
    service.notify_progress(payload.order_id, payload.product_key, payload.progress, payload.article_index)
    return {"message": "Notification sent"}


@app.get("/api/orders/{order_id}")
def get_order(order_id: str, service: OrderService = Depends(get_order_service)):
    return serialize(service.get_order_by_id(order_id))


@app.patch("/api/orders/{order_id}")
def update_order(order_id: str, payload: OrderFlagsUpdate, service: OrderService = Depends(get_order_service)):
    return serialize(service.update_order_flags(order_id, payload))


@app.delete("/api/orders/{order_id}")
def delete_order(order_id: str, service: OrderService = Depends(get_order_service)):
    service.delete_order(order_id)
    return {"message": "Order deleted successfully"}


# --------- Admin ---------

@app.get("/api/admin/stats")
def admin_stats(catalog=Depends(get_catalog_store), orders=Depends(get_order_store)):
    return sales_summary(orders, catalog)


if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
