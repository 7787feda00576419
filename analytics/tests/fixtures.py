from datetime import datetime, timezone

from analytics.date_ranges import DateRange
from analytics.statuses import PENDING_REVIEW

_counter = {"n": 0}


def order_row(**overrides):
    """One order in the store's column projection; unset fields keep simple defaults."""
    _counter["n"] += 1
    row = {
        "order_id": f"ORD{_counter['n']:05d}",
        "customer_name": "Nguyen Van A",
        "phone": "0900000001",
        "address": "",
        "amount": 100_000,
        "payment_method": "COD",
        "status": PENDING_REVIEW,
        "risk_score": None,
        "risk_level": "",
        "order_date": "2024-01-10T08:00:00Z",
        "created_at": "2024-01-10T08:00:00Z",
    }
    row.update(overrides)
    return row


def utc(*args):
    return datetime(*args, tzinfo=timezone.utc)


JANUARY = DateRange(utc(2024, 1, 1), utc(2024, 1, 31, 23, 59, 59, 999000))
