from dashboard import build_metric, get_dashboard_stats, summarize
from database import create_document


def add_order(db, product, status, amount=None, cancel="none"):
    create_document(db, "order", {
        "product": product["_id"],
        "status": status,
        "billing": {"amount": amount},
        "cancel_request": {"status": cancel},
    })


def add_print_order(db, status, amount, deposit):
    create_document(db, "print_order", {
        "status": status,
        "billing": {"amount": amount},
        "security_amount": deposit,
    })


def test_build_metric_handles_empty_totals():
    assert build_metric(0, 0, 0) == {"count": 0, "amount": 0.0, "percentage": 0}
    assert build_metric(1, 10.005, 3)["percentage"] == 33.33


def test_summarize_without_totals():
    empty = {"count": 0, "amount": 0.0, "deposit": 0.0}
    stats = summarize(0, 0, {}, empty, empty)
    assert stats["orders_count"] == 0
    assert stats["overview"]["total_revenue"] == 0.0
    assert stats["breakdown"]["delivered"]["percentage"] == 0


def test_empty_database(db):
    stats = get_dashboard_stats(db)
    assert stats["orders_count"] == 0
    assert stats["overview"]["print_orders"] == {"completed": 0, "revenue": 0.0, "deposit": 0.0}
    assert stats["recent_orders"] == []


def test_grouped_totals(db, product):
    add_order(db, product, "completed", 300)
    add_order(db, product, "completed", 150.5)
    add_order(db, product, "cancelled", 80, cancel="approved")
    add_order(db, product, "processing", None)
    add_order(db, product, "pending")
    add_print_order(db, "completed", 45, 20)
    add_print_order(db, "pending", 99, 60)

    stats = get_dashboard_stats(db)

    assert stats["orders_count"] == 5
    assert stats["print_orders_count"] == 2
    assert stats["cancelled_orders_count"] == 1
    assert stats["overview"] == {
        "total_completed_orders": 3,
        "total_revenue": 495.5,
        "print_orders": {"completed": 1, "revenue": 45.0, "deposit": 20.0},
    }
    breakdown = stats["breakdown"]
    assert breakdown["delivered"] == {"count": 2, "amount": 450.5, "percentage": 40.0}
    assert breakdown["paid_return"] == {"count": 1, "amount": 80.0, "percentage": 20.0}
    assert breakdown["returned"]["count"] == 1
    assert breakdown["delivery_processing"] == {"count": 1, "amount": 0.0, "percentage": 20.0}


def test_recent_orders_are_capped(db, product):
    for _ in range(7):
        add_order(db, product, "completed", 10)
    stats = get_dashboard_stats(db)

    assert stats["orders_count"] == 7
    assert stats["overview"]["total_revenue"] == 70.0
    assert len(stats["recent_orders"]) == 5
    assert stats["recent_orders"][0]["product"]["name"] == "Business Cards"
