"""Custom print jobs submitted by signed-in customers."""
import logging
from datetime import timezone
from typing import Any, Dict, List

from pymongo.database import Database

from billing import build_billing_update
from database import create_document, get_documents, now, parse_object_id, serialize
from errors import NotFound
from pricing import security_amount_for
from schemas import BillingPatch, OrderStatus, PrintOrder, PrintOrderCreate
from security import CurrentUser

logger = logging.getLogger(__name__)

CUSTOMER_FIELDS = {"name": 1, "email": 1, "phone": 1}


class PrintOrderService:
    def __init__(self, db: Database):
        self.db = db

    def create(self, payload: PrintOrderCreate, current_user: CurrentUser) -> Dict[str, Any]:
        collection_time = payload.collection_time
        if collection_time.tzinfo is None:
            collection_time = collection_time.replace(tzinfo=timezone.utc)
        data = PrintOrder(
            **payload.model_dump(exclude={"collection_time"}),
            collection_time=collection_time.astimezone(timezone.utc),
            user=parse_object_id(current_user.id, "user id"),
            security_amount=security_amount_for(payload.delivery_location),
        ).model_dump()
        print_order_id = create_document(self.db, "print_order", data)
        logger.info("Print order %s received (deposit %.2f)", print_order_id, data["security_amount"])
        return serialize(self.db["print_order"].find_one({"_id": print_order_id}))

    def _with_customers(self, print_orders: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        ids = list({p.get("user") for p in print_orders if p.get("user") is not None})
        users = {}
        if ids:
            users = {u["_id"]: serialize(u) for u in self.db["user"].find({"_id": {"$in": ids}}, CUSTOMER_FIELDS)}
        out = []
        for print_order in print_orders:
            doc = serialize(print_order)
            doc["user"] = users.get(print_order.get("user"))
            out.append(doc)
        return out

    def get(self, print_order_id: Any) -> Dict[str, Any]:
        oid = parse_object_id(print_order_id, "print order id")
        print_order = self.db["print_order"].find_one({"_id": oid})
        if not print_order:
            raise NotFound("Print order", print_order_id)
        return print_order

    def list_print_orders(self) -> List[Dict[str, Any]]:
        return self._with_customers(get_documents(self.db, "print_order"))

    def list_my_print_orders(self, user_id: str) -> List[Dict[str, Any]]:
        uid = parse_object_id(user_id, "user id")
        return [serialize(p) for p in get_documents(self.db, "print_order", {"user": uid})]

    def update_status(self, print_order_id: Any, status: OrderStatus) -> Dict[str, Any]:
        oid = parse_object_id(print_order_id, "print order id")
        value = OrderStatus(status).value
        result = self.db["print_order"].update_one({"_id": oid}, {"$set": {"status": value, "updated_at": now()}})
        if result.matched_count == 0:
            raise NotFound("Print order", print_order_id)
        logger.info("Print order %s status set to %s", oid, value)
        return self._with_customers([self.get(oid)])[0]

    def update_billing(self, print_order_id: Any, patch: BillingPatch) -> Dict[str, Any]:
        oid = parse_object_id(print_order_id, "print order id")
        update = build_billing_update(patch, now())
        result = self.db["print_order"].update_one({"_id": oid}, update)
        if result.matched_count == 0:
            raise NotFound("Print order", print_order_id)
        logger.info("Billing saved for print order %s", oid)
        return self._with_customers([self.get(oid)])[0]
