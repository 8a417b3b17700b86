import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from pymongo.database import Database

import database
from accounts import AccountService
from catalog import CatalogService
from config import Settings, get_settings
from dashboard import get_dashboard_stats
from database import get_db, serialize
from errors import (
    Conflict,
    ConfigurationError,
    Forbidden,
    InternalError,
    NotFound,
    ShopError,
    Unauthorized,
    ValidationFailed,
)
from invoices import build_order_invoice, build_print_invoice, product_lookup, render_invoice_pdf
from orders import OrderService
from pricing import ColorMode, DeliveryLocation, Sides, estimate_print_cost, print_rate
from print_orders import PrintOrderService
from schemas import (
    BillingPatch,
    CancelRequestIn,
    CancelReviewIn,
    CategoryIn,
    CategoryUpdate,
    CheckoutRequest,
    LoginRequest,
    OrderCreate,
    PrintOrderCreate,
    ProductIn,
    ProductUpdate,
    ProfileUpdate,
    RegisterRequest,
    StatusUpdate,
)
from security import CurrentUser, get_current_user, get_optional_user, require_admin

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    logging.basicConfig(level=settings.log_level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    db = database.connect(settings)
    if db is not None:
        database.ensure_indexes(db)
        AccountService(db, settings).ensure_admin_user()
    logger.info("API ready (%s)", settings.app_env)
    yield


app = FastAPI(title="Rong Chapa API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=list(get_settings().client_origins),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Errors

ERROR_STATUS_CODES: dict = {
    ValidationFailed: 422,
    NotFound: 404,
    Conflict: 409,
    Unauthorized: 401,
    Forbidden: 403,
    ConfigurationError: 500,
}


@app.exception_handler(ShopError)
async def shop_error_handler(request: Request, exc: ShopError) -> JSONResponse:
    status_code = ERROR_STATUS_CODES.get(type(exc), 500)
    if status_code >= 500 or isinstance(exc, InternalError):
        logger.error("%s %s failed: %s", request.method, request.url.path, exc)
        return JSONResponse(status_code=500, content={"detail": "Something went wrong", "error_type": "InternalError"})
    content = {"detail": str(exc), "error_type": type(exc).__name__}
    if isinstance(exc, ValidationFailed):
        content["errors"] = exc.errors
    return JSONResponse(status_code=status_code, content=content)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = [{"loc": list(e["loc"]), "msg": e["msg"], "type": e["type"]} for e in exc.errors()]
    return JSONResponse(
        status_code=422,
        content={"detail": "Validation failed", "error_type": "ValidationFailed", "errors": errors},
    )


@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"detail": "Something went wrong", "error_type": "InternalError"})


# Services

def account_service(db: Database = Depends(get_db), settings: Settings = Depends(get_settings)) -> AccountService:
    return AccountService(db, settings)


def catalog_service(db: Database = Depends(get_db)) -> CatalogService:
    return CatalogService(db)


def order_service(db: Database = Depends(get_db), settings: Settings = Depends(get_settings)) -> OrderService:
    return OrderService(db, settings)


def print_order_service(db: Database = Depends(get_db)) -> PrintOrderService:
    return PrintOrderService(db)


def pdf_response(content: bytes, filename: str) -> Response:
    return Response(
        content=content,
        media_type="application/pdf",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@app.get("/")
def read_root():
    return {"message": "Rong Chapa backend is running"}


@app.get("/health")
def health():
    response = {"status": "ok", "database": "not configured"}
    try:
        db = get_db()
        db.command("ping")
        response["database"] = "connected"
    except InternalError:
        response["database"] = "not configured"
    except Exception as e:
        logger.warning("Health check could not reach MongoDB: %s", e)
        response["database"] = "unavailable"
    return response


# Auth
@app.post("/api/auth/register", status_code=201)
def register(payload: RegisterRequest, accounts: AccountService = Depends(account_service)):
    return accounts.register(payload)


@app.post("/api/auth/login")
def login(payload: LoginRequest, accounts: AccountService = Depends(account_service)):
    return accounts.login(payload.email, payload.password)


@app.get("/api/auth/me")
def me(current: CurrentUser = Depends(get_current_user), accounts: AccountService = Depends(account_service)):
    return {"user": accounts.get_profile(current.id)}


@app.put("/api/auth/me")
def update_me(payload: ProfileUpdate, current: CurrentUser = Depends(get_current_user),
              accounts: AccountService = Depends(account_service)):
    return {"message": "Profile updated", **accounts.update_profile(current.id, payload)}


# Catalog
@app.get("/api/products")
def list_products(catalog: CatalogService = Depends(catalog_service)):
    return {"products": catalog.list_products()}


@app.get("/api/products/categories")
def list_categories(catalog: CatalogService = Depends(catalog_service)):
    return {"categories": catalog.list_categories()}


@app.get("/api/products/admin/all")
def list_all_products(admin: CurrentUser = Depends(require_admin), catalog: CatalogService = Depends(catalog_service)):
    return {"products": catalog.list_products(include_inactive=True)}


@app.post("/api/products", status_code=201)
def create_product(payload: ProductIn, admin: CurrentUser = Depends(require_admin),
                   catalog: CatalogService = Depends(catalog_service)):
    return {"message": "Product created", "product": catalog.create_product(payload)}


@app.put("/api/products/{product_id}")
def update_product(product_id: str, payload: ProductUpdate, admin: CurrentUser = Depends(require_admin),
                   catalog: CatalogService = Depends(catalog_service)):
    return {"message": "Product updated", "product": catalog.update_product(product_id, payload)}


@app.delete("/api/products/{product_id}")
def delete_product(product_id: str, admin: CurrentUser = Depends(require_admin),
                   catalog: CatalogService = Depends(catalog_service)):
    catalog.delete_product(product_id)
    return {"message": "Product deleted"}


@app.post("/api/products/categories", status_code=201)
def create_category(payload: CategoryIn, admin: CurrentUser = Depends(require_admin),
                    catalog: CatalogService = Depends(catalog_service)):
    return {"message": "Category created", "category": catalog.create_category(payload)}


@app.put("/api/products/categories/{category_id}")
def update_category(category_id: str, payload: CategoryUpdate, admin: CurrentUser = Depends(require_admin),
                    catalog: CatalogService = Depends(catalog_service)):
    return {"message": "Category updated", "category": catalog.update_category(category_id, payload)}


@app.delete("/api/products/categories/{category_id}")
def delete_category(category_id: str, admin: CurrentUser = Depends(require_admin),
                    catalog: CatalogService = Depends(catalog_service)):
    catalog.delete_category(category_id)
    return {"message": "Category deleted"}


# Orders
@app.post("/api/orders", status_code=201)
def create_order(payload: OrderCreate, current: Optional[CurrentUser] = Depends(get_optional_user),
                 orders: OrderService = Depends(order_service)):
    return {"message": "Order created", **orders.place_order(payload, current)}


@app.post("/api/orders/checkout", status_code=201)
def checkout(payload: CheckoutRequest, current: Optional[CurrentUser] = Depends(get_optional_user),
             orders: OrderService = Depends(order_service)):
    return {"message": "Checkout complete", **orders.checkout(payload, current)}


@app.get("/api/orders/mine")
def my_orders(current: CurrentUser = Depends(get_current_user), orders: OrderService = Depends(order_service)):
    return {"orders": orders.list_my_orders(current.id)}


@app.post("/api/orders/{order_id}/cancel-request")
def request_cancellation(order_id: str, payload: CancelRequestIn, current: CurrentUser = Depends(get_current_user),
                         orders: OrderService = Depends(order_service)):
    order = orders.request_cancellation(order_id, current.id, payload.reason)
    return {"message": "Cancellation request submitted.", "order": order}


@app.get("/api/orders")
def all_orders(admin: CurrentUser = Depends(require_admin), orders: OrderService = Depends(order_service)):
    return {"orders": orders.list_orders()}


@app.patch("/api/orders/{order_id}/cancel-request")
def review_cancellation(order_id: str, payload: CancelReviewIn, admin: CurrentUser = Depends(require_admin),
                        orders: OrderService = Depends(order_service)):
    order = orders.review_cancellation(order_id, admin.id, payload.action, payload.admin_note)
    message = "Order cancelled successfully." if payload.action == "approve" else "Cancellation request declined."
    return {"message": message, "order": order}


@app.patch("/api/orders/{order_id}/status")
def update_order_status(order_id: str, payload: StatusUpdate, admin: CurrentUser = Depends(require_admin),
                        orders: OrderService = Depends(order_service)):
    return {"message": "Order status updated", "order": orders.update_status(order_id, payload.status)}


@app.patch("/api/orders/{order_id}/billing")
def update_order_billing(order_id: str, payload: BillingPatch, admin: CurrentUser = Depends(require_admin),
                         orders: OrderService = Depends(order_service)):
    return {"message": "Billing details saved", "order": orders.update_billing(order_id, payload)}


@app.get("/api/orders/{order_id}/invoice")
def order_invoice(order_id: str, admin: CurrentUser = Depends(require_admin),
                  orders: OrderService = Depends(order_service), db: Database = Depends(get_db),
                  settings: Settings = Depends(get_settings)):
    primary, batch = orders.resolve_batch(order_id)
    invoice = build_order_invoice(primary, batch, product_lookup(db, batch), settings.business_name)
    return pdf_response(render_invoice_pdf(invoice), invoice.filename)


# Print orders
@app.post("/api/print-orders", status_code=201)
def create_print_order(payload: PrintOrderCreate, current: CurrentUser = Depends(get_current_user),
                       print_orders: PrintOrderService = Depends(print_order_service)):
    return {"message": "Print order received", "print_order": print_orders.create(payload, current)}


@app.get("/api/print-orders/estimate")
def estimate_print_order(color_mode: ColorMode, sides: Sides, quantity: int = 1,
                         delivery_location: DeliveryLocation = DeliveryLocation.SEU):
    if quantity < 1:
        raise ValidationFailed("Quantity must be at least 1")
    return {
        "rate": print_rate(color_mode, sides),
        "quantity": quantity,
        "estimate": estimate_print_cost(color_mode, sides, quantity, delivery_location),
    }


@app.get("/api/print-orders/mine")
def my_print_orders(current: CurrentUser = Depends(get_current_user),
                    print_orders: PrintOrderService = Depends(print_order_service)):
    return {"print_orders": print_orders.list_my_print_orders(current.id)}


@app.get("/api/print-orders")
def all_print_orders(admin: CurrentUser = Depends(require_admin),
                     print_orders: PrintOrderService = Depends(print_order_service)):
    return {"print_orders": print_orders.list_print_orders()}


@app.patch("/api/print-orders/{print_order_id}/status")
def update_print_order_status(print_order_id: str, payload: StatusUpdate, admin: CurrentUser = Depends(require_admin),
                              print_orders: PrintOrderService = Depends(print_order_service)):
    print_order = print_orders.update_status(print_order_id, payload.status)
    return {"message": "Print order status updated", "print_order": print_order}


@app.patch("/api/print-orders/{print_order_id}/billing")
def update_print_order_billing(print_order_id: str, payload: BillingPatch, admin: CurrentUser = Depends(require_admin),
                               print_orders: PrintOrderService = Depends(print_order_service)):
    print_order = print_orders.update_billing(print_order_id, payload)
    return {"message": "Print order billing updated", "print_order": print_order}


@app.get("/api/print-orders/{print_order_id}/invoice")
def print_order_invoice(print_order_id: str, admin: CurrentUser = Depends(require_admin),
                        print_orders: PrintOrderService = Depends(print_order_service),
                        db: Database = Depends(get_db), settings: Settings = Depends(get_settings)):
    print_order = print_orders.get(print_order_id)
    customer = db["user"].find_one({"_id": print_order.get("user")}, {"name": 1, "phone": 1})
    invoice = build_print_invoice(print_order, customer, settings.business_name)
    return pdf_response(render_invoice_pdf(invoice), invoice.filename)


# Admin
@app.get("/api/admin/dashboard")
def dashboard(admin: CurrentUser = Depends(require_admin), db: Database = Depends(get_db)):
    return {"stats": serialize(get_dashboard_stats(db))}


@app.get("/api/admin/orders")
def admin_orders(admin: CurrentUser = Depends(require_admin), orders: OrderService = Depends(order_service)):
    return {"orders": orders.list_orders()}


@app.get("/api/admin/customers")
def customers(limit: int = 12, admin: CurrentUser = Depends(require_admin),
              accounts: AccountService = Depends(account_service)):
    return accounts.customer_directory(limit)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=get_settings().port)
