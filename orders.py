"""
Shop orders.

An order is one line item: a quantity of one product delivered to one
address. A checkout with several products writes several orders that share a
batch id and an invoice number; only the first of them carries the delivery
charge. Each order embeds its billing sub-record and the customer's
cancellation request, which moves none -> pending -> approved | declined.
"""
import logging
from typing import Any, Dict, List, Optional, Tuple

from bson import ObjectId
from pymongo.database import Database

from accounts import AccountService, auth_response
from billing import build_billing_update, mint_invoice_number
from catalog import CatalogService
from config import Settings
from database import create_document, get_documents, now, parse_object_id, serialize
from errors import Conflict, NotFound, ValidationFailed
from pricing import DeliveryQuote, resolve_delivery_charge, round_money
from schemas import (
    BillingPatch,
    CancelStatus,
    CheckoutRequest,
    Order,
    OrderCreate,
    OrderStatus,
)
from security import CurrentUser

logger = logging.getLogger(__name__)

CLOSED_STATUSES = (OrderStatus.COMPLETED.value, OrderStatus.CANCELLED.value)

STAFF_PRODUCT_FIELDS = {"name": 1, "image_url": 1, "base_price": 1}
CUSTOMER_PRODUCT_FIELDS = {"name": 1, "slug": 1, "image_url": 1, "base_price": 1}
CUSTOMER_FIELDS = {"name": 1, "email": 1, "phone": 1}
RESOLVER_FIELDS = {"name": 1, "email": 1}


def batch_key(order: Dict[str, Any]) -> Dict[str, Any]:
    """Filter selecting every order checked out together with this one."""
    if order.get("batch_id"):
        return {"batch_id": order["batch_id"]}
    billing_number = (order.get("billing") or {}).get("number")
    if billing_number:
        return {"billing.number": billing_number}
    return {"_id": order["_id"]}


class OrderService:
    def __init__(self, db: Database, settings: Settings):
        self.db = db
        self.settings = settings
        self.catalog = CatalogService(db)
        self.accounts = AccountService(db, settings)

    # Creation

    def _delivery_charge(self, quote: DeliveryQuote, override: Optional[float]) -> float:
        if override is None:
            return quote.charge
        if override < 0 or override > quote.charge:
            raise ValidationFailed(
                f"Delivery charge must be between 0 and {quote.charge:.2f} for zone {quote.zone.value}",
                errors=[{"loc": ["body", "delivery_charge"], "msg": "Out of range", "type": "value_error"}],
            )
        if override != quote.charge:
            logger.warning("Delivery charge override %.2f accepted for zone %s", override, quote.zone.value)
        return float(override)

    def _draft(self, *, customer_name: str, customer_email: Optional[str], customer_phone: Optional[str],
               product_id: Any, quantity: int, shipping_address: Optional[str], delivery_zone: Any,
               size: Optional[str] = None, paper_type: Optional[str] = None, notes: Optional[str] = None,
               delivery_charge: Optional[float] = None) -> Tuple[Dict[str, Any], float]:
        """Validate one line item and price it; returns the document and its product total."""
        if not shipping_address or not shipping_address.strip():
            raise ValidationFailed(
                "Delivery address is required.",
                errors=[{"loc": ["body", "shipping_address"], "msg": "Field required", "type": "missing"}],
            )
        quote = resolve_delivery_charge(delivery_zone)
        charge = self._delivery_charge(quote, delivery_charge)
        product = self.catalog.get_product(product_id)
        product_total = float(product.get("base_price") or 0) * int(quantity or 1)

        draft = {
            "customer_name": customer_name,
            "customer_email": customer_email.lower() if customer_email else None,
            "customer_phone": customer_phone,
            "product": product["_id"],
            "quantity": quantity,
            "size": size,
            "paper_type": paper_type,
            "notes": notes,
            "shipping_address": shipping_address.strip(),
            "delivery_zone": quote.zone.value,
            "delivery_charge": charge,
        }
        return draft, product_total

    def _guest_account(self, current_user: Optional[CurrentUser], *, name, email, password, phone, address):
        if current_user is not None:
            return parse_object_id(current_user.id, "user id"), None
        user = self.accounts.ensure_account(name=name, email=email, password=password, phone=phone, address=address)
        return user["_id"], auth_response(user, self.settings)

    def _insert(self, draft: Dict[str, Any], user_id: Optional[ObjectId], invoice_number: str,
                batch_id: str, amount: float) -> Dict[str, Any]:
        data = Order(
            **draft,
            user=user_id,
            billing={"number": invoice_number, "amount": amount, "generated_at": now()},
            batch_id=batch_id,
        ).model_dump()
        order_id = create_document(self.db, "order", data)
        return self.db["order"].find_one({"_id": order_id})

    def place_order(self, payload: OrderCreate, current_user: Optional[CurrentUser]) -> Dict[str, Any]:
        """Create one order; for a guest, create their account first."""
        draft, product_total = self._draft(
            customer_name=payload.customer_name,
            customer_email=payload.customer_email,
            customer_phone=payload.customer_phone,
            product_id=payload.product,
            quantity=payload.quantity,
            shipping_address=payload.shipping_address,
            delivery_zone=payload.delivery_zone,
            size=payload.size,
            paper_type=payload.paper_type,
            notes=payload.notes,
            delivery_charge=payload.delivery_charge,
        )
        order_total = round_money(product_total + draft["delivery_charge"])
        invoice_number = payload.invoice_number or mint_invoice_number()
        batch_id = payload.batch_id or invoice_number
        amount = payload.billing_amount if payload.billing_amount is not None else order_total

        user_id, account = self._guest_account(
            current_user,
            name=payload.customer_name,
            email=payload.customer_email,
            password=payload.account_password,
            phone=payload.customer_phone,
            address=draft["shipping_address"],
        )
        order = self._insert(draft, user_id, invoice_number, batch_id, amount)
        logger.info("Order %s created in batch %s (total %.2f)", order["_id"], batch_id, amount)
        return {"order": serialize(order), "account": account}

    def checkout(self, payload: CheckoutRequest, current_user: Optional[CurrentUser]) -> Dict[str, Any]:
        """Create one order per cart item under a single invoice number."""
        drafts = []
        items_total = 0.0
        for index, item in enumerate(payload.items):
            draft, product_total = self._draft(
                customer_name=payload.customer_name,
                customer_email=payload.customer_email,
                customer_phone=payload.customer_phone,
                product_id=item.product,
                quantity=item.quantity,
                shipping_address=payload.shipping_address,
                delivery_zone=payload.delivery_zone,
                size=item.size,
                paper_type=item.paper_type,
                notes=payload.notes,
                delivery_charge=None if index == 0 else 0.0,
            )
            drafts.append(draft)
            items_total += product_total

        batch_total = round_money(items_total + drafts[0]["delivery_charge"])
        invoice_number = mint_invoice_number()

        user_id, account = self._guest_account(
            current_user,
            name=payload.customer_name,
            email=payload.customer_email,
            password=payload.account_password,
            phone=payload.customer_phone,
            address=drafts[0]["shipping_address"],
        )

        created: List[Dict[str, Any]] = []
        for draft in drafts:
            try:
                created.append(self._insert(draft, user_id, invoice_number, invoice_number, batch_total))
            except Exception:
                logger.error("Checkout %s stopped after %d of %d items", invoice_number, len(created), len(drafts))
                raise
        logger.info("Checkout %s created %d orders (total %.2f)", invoice_number, len(created), batch_total)
        return {
            "batch_id": invoice_number,
            "invoice_number": invoice_number,
            "total": batch_total,
            "orders": [serialize(o) for o in created],
            "account": account,
        }

    # Reads

    def _lookup(self, collection: str, ids, fields: Dict[str, int]) -> Dict[ObjectId, Dict[str, Any]]:
        ids = [i for i in ids if i is not None]
        if not ids:
            return {}
        return {doc["_id"]: serialize(doc) for doc in self.db[collection].find({"_id": {"$in": ids}}, fields)}

    def _populate(self, orders: List[Dict[str, Any]], product_fields: Dict[str, int],
                  with_customer: bool = True) -> List[Dict[str, Any]]:
        products = self._lookup("product", {o.get("product") for o in orders}, product_fields)
        users = self._lookup("user", {o.get("user") for o in orders}, CUSTOMER_FIELDS) if with_customer else {}
        resolvers = self._lookup(
            "user", {(o.get("cancel_request") or {}).get("resolved_by") for o in orders}, RESOLVER_FIELDS
        )
        out = []
        for order in orders:
            doc = serialize(order)
            doc["product"] = products.get(order.get("product"))
            if with_customer:
                doc["user"] = users.get(order.get("user"))
            cancel = doc.get("cancel_request") or {}
            resolver = (order.get("cancel_request") or {}).get("resolved_by")
            if resolver is not None:
                cancel["resolved_by"] = resolvers.get(resolver)
            doc["cancel_request"] = cancel
            out.append(doc)
        return out

    def _get(self, order_id: Any) -> Dict[str, Any]:
        oid = parse_object_id(order_id, "order id")
        order = self.db["order"].find_one({"_id": oid})
        if not order:
            raise NotFound("Order", order_id)
        return order

    def list_orders(self) -> List[Dict[str, Any]]:
        return self._populate(get_documents(self.db, "order"), STAFF_PRODUCT_FIELDS)

    def list_my_orders(self, user_id: str) -> List[Dict[str, Any]]:
        uid = parse_object_id(user_id, "user id")
        return self._populate(get_documents(self.db, "order", {"user": uid}), CUSTOMER_PRODUCT_FIELDS,
                              with_customer=False)

    def resolve_batch(self, order_id: Any) -> Tuple[Dict[str, Any], List[Dict[str, Any]]]:
        """Return the order and every order of its batch, oldest first."""
        primary = self._get(order_id)
        orders = get_documents(self.db, "order", batch_key(primary), newest_first=False)
        return primary, orders or [primary]

    # Cancellation

    def request_cancellation(self, order_id: Any, user_id: str, reason: str) -> Dict[str, Any]:
        oid = parse_object_id(order_id, "order id")
        uid = parse_object_id(user_id, "user id")
        stamp = now()
        result = self.db["order"].update_one(
            {
                "_id": oid,
                "user": uid,
                "status": {"$nin": list(CLOSED_STATUSES)},
                "cancel_request.status": {"$ne": CancelStatus.PENDING.value},
            },
            {"$set": {
                "cancel_request": {
                    "status": CancelStatus.PENDING.value,
                    "reason": reason.strip(),
                    "requested_at": stamp,
                },
                "updated_at": stamp,
            }},
        )
        if result.matched_count == 0:
            order = self.db["order"].find_one({"_id": oid, "user": uid})
            if not order:
                raise NotFound("Order", order_id)
            if (order.get("cancel_request") or {}).get("status") == CancelStatus.PENDING.value:
                raise Conflict("A cancellation request is already pending review.")
            raise Conflict("This order can no longer be cancelled.")

        logger.info("Cancellation requested for order %s", oid)
        order = self.db["order"].find_one({"_id": oid})
        return self._populate([order], CUSTOMER_PRODUCT_FIELDS, with_customer=False)[0]

    def review_cancellation(self, order_id: Any, reviewer_id: str, action: str,
                            admin_note: Optional[str] = None) -> Dict[str, Any]:
        if action not in ("approve", "decline"):
            raise ValidationFailed("Action must be approve or decline")
        oid = parse_object_id(order_id, "order id")
        approve = action == "approve"
        stamp = now()
        updates = {
            "cancel_request.status": (CancelStatus.APPROVED if approve else CancelStatus.DECLINED).value,
            "cancel_request.resolved_at": stamp,
            "cancel_request.resolved_by": parse_object_id(reviewer_id, "user id"),
            "cancel_request.admin_note": (admin_note or "").strip(),
            "updated_at": stamp,
        }
        if approve:
            updates["status"] = OrderStatus.CANCELLED.value

        result = self.db["order"].update_one(
            {"_id": oid, "cancel_request.status": CancelStatus.PENDING.value},
            {"$set": updates},
        )
        if result.matched_count == 0:
            self._get(order_id)
            raise Conflict("This order does not have a pending cancellation request.")

        logger.info("Cancellation for order %s %s", oid, "approved" if approve else "declined")
        return self._populate([self._get(oid)], STAFF_PRODUCT_FIELDS)[0]

    # Staff updates

    def update_status(self, order_id: Any, status: OrderStatus) -> Dict[str, Any]:
        oid = parse_object_id(order_id, "order id")
        value = OrderStatus(status).value
        result = self.db["order"].update_one({"_id": oid}, {"$set": {"status": value, "updated_at": now()}})
        if result.matched_count == 0:
            raise NotFound("Order", order_id)
        logger.info("Order %s status set to %s", oid, value)
        return self._populate([self._get(oid)], STAFF_PRODUCT_FIELDS)[0]

    def update_billing(self, order_id: Any, patch: BillingPatch) -> Dict[str, Any]:
        oid = parse_object_id(order_id, "order id")
        update = build_billing_update(patch, now())
        result = self.db["order"].update_one({"_id": oid}, update)
        if result.matched_count == 0:
            raise NotFound("Order", order_id)
        logger.info("Billing saved for order %s", oid)
        return self._populate([self._get(oid)], STAFF_PRODUCT_FIELDS)[0]
