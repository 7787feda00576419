from __future__ import annotations

from enum import Enum
from typing import Optional

PENDING_REVIEW = "Pending Review"
VERIFICATION_REQUIRED = "Verification Required"
ORDER_CONFIRMATION_SENT = "Order Confirmation Sent"
ORDER_APPROVED = "Order Approved"
CUSTOMER_CONFIRMED = "Customer Confirmed"
CUSTOMER_CANCELLED = "Customer Cancelled"
CUSTOMER_UNREACHABLE = "Customer Unreachable"
ORDER_REJECTED = "Order Rejected"
ORDER_PAID = "Order Paid"
DELIVERING = "Delivering"
COMPLETED = "Completed"
RETURNED = "Returned"
EXCHANGED = "Exchanged"

STATUS_CHOICES = (
    (PENDING_REVIEW, "Pending Review"),
    (VERIFICATION_REQUIRED, "Verification Required"),
    (ORDER_CONFIRMATION_SENT, "Order Confirmation Sent"),
    (ORDER_APPROVED, "Order Approved"),
    (CUSTOMER_CONFIRMED, "Customer Confirmed"),
    (CUSTOMER_CANCELLED, "Customer Cancelled"),
    (CUSTOMER_UNREACHABLE, "Customer Unreachable"),
    (ORDER_REJECTED, "Order Rejected"),
    (ORDER_PAID, "Order Paid"),
    (DELIVERING, "Delivering"),
    (COMPLETED, "Completed"),
    (RETURNED, "Returned"),
    (EXCHANGED, "Exchanged"),
)

SUCCESS_STATUSES = frozenset({ORDER_PAID, COMPLETED})
CUSTOMER_FAIL_STATUSES = frozenset({CUSTOMER_CANCELLED, CUSTOMER_UNREACHABLE, ORDER_REJECTED})
PENDING_STATUSES = frozenset({PENDING_REVIEW, VERIFICATION_REQUIRED, ORDER_CONFIRMATION_SENT})

# computeStats 的 "verified positive" 桶，比 SUCCESS 多一个 Customer Confirmed
CONFIRMED_STATUSES = frozenset({CUSTOMER_CONFIRMED, ORDER_PAID, COMPLETED})

# Statuses that count as "the customer confirmed" for medium/high risk COD orders
CONFIRMED_PROGRESS_STATUSES = frozenset({CUSTOMER_CONFIRMED, DELIVERING, COMPLETED})

# Medium/high risk COD orders the shop let through verification
APPROVED_OUTCOME_STATUSES = frozenset(
    {ORDER_CONFIRMATION_SENT, CUSTOMER_CONFIRMED, DELIVERING, ORDER_PAID, COMPLETED}
)


class StatusClass(str, Enum):
    SUCCESS = "success"
    CUSTOMER_FAIL = "customer_fail"
    PENDING = "pending"
    OTHER = "other"


def classify_status(status: Optional[str]) -> StatusClass:
    """Map a raw status value onto the one classification every reducer shares."""
    if status in SUCCESS_STATUSES:
        return StatusClass.SUCCESS
    if status in CUSTOMER_FAIL_STATUSES:
        return StatusClass.CUSTOMER_FAIL
    if status in PENDING_STATUSES:
        return StatusClass.PENDING
    return StatusClass.OTHER


def is_cod(payment_method: Optional[str]) -> bool:
    method = str(payment_method or "").strip().upper()
    return method in ("", "COD")


def payment_label(payment_method: Optional[str]) -> str:
    """Coarse payment bucket used by the customer breakdowns."""
    raw = str(payment_method or "").strip().upper()
    if not raw or raw == "COD":
        return "COD"
    if raw in ("PREPAID", "PAID", "ONLINE") or "WALLET" in raw:
        return "Prepaid"
    if "BANK" in raw or "TRANSFER" in raw:
        return "BANK"
    return raw
