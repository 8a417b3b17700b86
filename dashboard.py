"""Read-only statistics for the admin dashboard."""
from typing import Any, Dict, Iterable, List, Mapping

from pymongo.database import Database

from database import get_documents, serialize
from pricing import coerce_amount, round_money
from schemas import CancelStatus, OrderStatus

RECENT_ORDERS_LIMIT = 5

SUM_BILLING_AMOUNT = {"$sum": {"$ifNull": ["$billing.amount", 0]}}


def _bucket(row: Mapping[str, Any]) -> Dict[str, Any]:
    # junk sums count as zero
    return {
        "count": row.get("count", 0),
        "amount": coerce_amount(row.get("amount")) or 0.0,
        "deposit": coerce_amount(row.get("deposit")) or 0.0,
    }


def _first_bucket(rows: Iterable[Mapping[str, Any]]) -> Dict[str, Any]:
    for row in rows:
        return _bucket(row)
    return _bucket({})


def build_metric(count: int, amount: float, total_orders: int) -> Dict[str, Any]:
    return {
        "count": count,
        "amount": round_money(amount),
        "percentage": round(count / total_orders * 100, 2) if total_orders > 0 else 0,
    }


def summarize(orders_count: int, print_orders_count: int, by_status: Mapping[Any, Mapping[str, Any]],
              paid_return: Mapping[str, Any], printed: Mapping[str, Any]) -> Dict[str, Any]:
    """Turn the grouped totals into dashboard figures."""
    empty = _bucket({})
    delivered = by_status.get(OrderStatus.COMPLETED.value, empty)
    returned = by_status.get(OrderStatus.CANCELLED.value, empty)
    processing = by_status.get(OrderStatus.PROCESSING.value, empty)

    return {
        "orders_count": orders_count,
        "print_orders_count": print_orders_count,
        "cancelled_orders_count": returned["count"],
        "overview": {
            "total_completed_orders": delivered["count"] + printed["count"],
            "total_revenue": round_money(delivered["amount"] + printed["amount"]),
            "print_orders": {
                "completed": printed["count"],
                "revenue": round_money(printed["amount"]),
                "deposit": round_money(printed["deposit"]),
            },
        },
        "breakdown": {
            "delivered": build_metric(delivered["count"], delivered["amount"], orders_count),
            "paid_return": build_metric(paid_return["count"], paid_return["amount"], orders_count),
            "returned": build_metric(returned["count"], returned["amount"], orders_count),
            "delivery_processing": build_metric(processing["count"], processing["amount"], orders_count),
        },
    }


def recent_orders(db: Database, limit: int = RECENT_ORDERS_LIMIT) -> List[Dict[str, Any]]:
    orders = get_documents(db, "order", limit=limit)
    ids = list({o.get("product") for o in orders if o.get("product") is not None})
    names = {p["_id"]: serialize(p) for p in db["product"].find({"_id": {"$in": ids}}, {"name": 1})} if ids else {}
    out = []
    for order in orders:
        doc = serialize(order)
        doc["product"] = names.get(order.get("product"))
        out.append(doc)
    return out


def get_dashboard_stats(db: Database) -> Dict[str, Any]:
    by_status = {
        row["_id"]: _bucket(row)
        for row in db["order"].aggregate([
            {"$group": {"_id": "$status", "count": {"$sum": 1}, "amount": SUM_BILLING_AMOUNT}},
        ])
    }
    paid_return = _first_bucket(db["order"].aggregate([
        {"$match": {"cancel_request.status": CancelStatus.APPROVED.value}},
        {"$group": {"_id": None, "count": {"$sum": 1}, "amount": SUM_BILLING_AMOUNT}},
    ]))
    printed = _first_bucket(db["print_order"].aggregate([
        {"$match": {"status": OrderStatus.COMPLETED.value}},
        {"$group": {
            "_id": None,
            "count": {"$sum": 1},
            "amount": SUM_BILLING_AMOUNT,
            "deposit": {"$sum": {"$ifNull": ["$security_amount", 0]}},
        }},
    ]))

    stats = summarize(
        db["order"].count_documents({}),
        db["print_order"].count_documents({}),
        by_status,
        paid_return,
        printed,
    )
    stats["recent_orders"] = recent_orders(db)
    return stats
