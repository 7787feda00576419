from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Iterable, List, Mapping, Optional

import pandas as pd

from .frames import OrdersInput, orders_frame
from .statuses import (
    CUSTOMER_CANCELLED,
    CUSTOMER_FAIL_STATUSES,
    ORDER_REJECTED,
    SUCCESS_STATUSES,
    is_cod,
)
from .utils import coerce_timestamp

RISK_VERSION = "v1"
HIGH_AMOUNT = 1_000_000
DEFAULT_BASE_SCORE = 50.0
BLACKLIST_FLOOR = 80

SUCCESS_DELTA = -5
HIGH_AMOUNT_SUCCESS_DELTA = -10
FAIL_DELTA = 20

RISKY_PRODUCT_KEYWORDS = (
    "giảm cân",
    "trà giảm cân",
    "weight loss",
    "detox",
    "trắng da",
    "serum b",
    "kem trộn",
    "kích trắng",
)

# 创建时统计的历史失败状态
PAST_FAILED_STATUSES = frozenset({CUSTOMER_CANCELLED, ORDER_REJECTED})


def risk_level_for(score: Optional[float]) -> str:
    """Tier of a score: ``none`` without one, then low <= 30 < medium <= 70 < high."""
    if score is None or pd.isna(score):
        return "none"
    if score <= 30:
        return "low"
    if score <= 70:
        return "medium"
    return "high"


def clamp_score(score: float) -> float:
    return max(0.0, min(100.0, score))


def normalize_vn_phone(raw: Optional[str]) -> str:
    text = re.sub(r"[\s.\-()]", "", str(raw or "").strip())
    if text.startswith("+84") and re.fullmatch(r"\d{9}", text[3:]):
        return "0" + text[3:]
    return text


def is_valid_vn_phone(raw: Optional[str]) -> bool:
    return re.fullmatch(r"0\d{9}", normalize_vn_phone(raw)) is not None


def has_repeated_digits(raw: Optional[str], run: int = 6) -> bool:
    digits = re.sub(r"\D", "", str(raw or ""))
    return re.search(r"(\d)\1{%d,}" % (run - 1), digits) is not None


def _as_amount(amount) -> float:
    try:
        return float(amount or 0)
    except (TypeError, ValueError):
        return 0.0


def has_risky_product(product: Optional[str]) -> bool:
    name = str(product or "").strip().lower()
    return bool(name) and any(keyword in name for keyword in RISKY_PRODUCT_KEYWORDS)


@dataclass
class RiskAssessment:
    score: Optional[int]
    level: str
    reasons: List[str] = field(default_factory=list)
    version: str = RISK_VERSION

    def as_dict(self) -> Dict:
        return {"score": self.score, "level": self.level, "reasons": list(self.reasons), "version": self.version}


def evaluate_risk(
    payment_method: Optional[str],
    amount,
    phone: Optional[str],
    address: Optional[str] = None,
    product: Optional[str] = None,
    past_orders: Iterable[Mapping] = (),
    blacklisted_phones: Iterable[str] = (),
) -> RiskAssessment:
    """Score a new order once, at creation time.

    Only COD orders are scored; anything else gets ``score=None`` and level
    ``none``. Missing optional inputs simply do not trigger their rule.
    """
    if not is_cod(payment_method):
        return RiskAssessment(score=None, level="none")

    score = 30
    reasons = ["COD order"]

    if _as_amount(amount) >= HIGH_AMOUNT:
        score += 20
        reasons.append("High order value (>= 1M VND)")

    failed = sum(1 for order in past_orders if order.get("status") in PAST_FAILED_STATUSES)
    if failed >= 3:
        score += 30
        reasons.append("Customer has 3+ failed COD orders")
    elif failed >= 1:
        score += 10
        reasons.append("Customer previously failed COD")

    if address and "khu công nghiệp" in address.lower():
        score += 10
        reasons.append("Address in industrial area")

    if phone and not is_valid_vn_phone(phone):
        score += 20
        reasons.append("Invalid phone number format")
    elif has_repeated_digits(phone):
        score += 10
        reasons.append("Phone number has many repeated digits")

    if has_risky_product(product):
        score += 5
        reasons.append("Product category with high return rate")

    phone_key = str(phone or "").strip()
    if phone_key and phone_key in {str(p).strip() for p in blacklisted_phones}:
        score = max(score, BLACKLIST_FLOOR)
        reasons.append("Customer is in blacklist (forced high risk)")

    score = int(clamp_score(score))
    return RiskAssessment(score=score, level=risk_level_for(score), reasons=reasons)


def risk_breakdown(
    payment_method: Optional[str],
    amount,
    phone: Optional[str],
    product: Optional[str] = None,
    bad_orders: int = 0,
    good_orders: int = 0,
) -> Dict:
    """Per-factor breakdown shown next to an order.

    Factor scores add up to the total before clamping; a good history
    contributes a negative factor.
    """
    if not is_cod(payment_method):
        return {"score": None, "level": "none", "factors": []}

    factors = []
    value = _as_amount(amount)
    if value <= 300_000:
        amount_score = 5
    elif value <= 700_000:
        amount_score = 10
    elif value <= 1_500_000:
        amount_score = 15
    else:
        amount_score = 25
    factors.append({"key": "amount", "label": "Order value", "score": amount_score})

    if not is_valid_vn_phone(phone):
        factors.append({"key": "phone", "label": "Phone quality", "score": 40})
    elif has_repeated_digits(normalize_vn_phone(phone)):
        factors.append({"key": "phone", "label": "Phone quality", "score": 10})

    if has_risky_product(product):
        factors.append({"key": "product", "label": "Product type", "score": 5})

    if bad_orders >= 3:
        factors.append({"key": "history_bad", "label": "Past failed orders", "score": 25})
    elif bad_orders >= 1:
        factors.append({"key": "history_bad", "label": "Past failed orders", "score": 10})
    if good_orders >= 3 and bad_orders == 0:
        factors.append({"key": "history_good", "label": "Good customer history", "score": -10})

    total = int(clamp_score(sum(f["score"] for f in factors)))
    return {"score": total, "level": risk_level_for(total), "factors": factors}


def earliest_blacklist_times(entries: Iterable[Mapping]) -> Dict[str, datetime]:
    """phone -> earliest blacklist ``created_at``; entries without a usable time are ignored."""
    earliest: Dict[str, datetime] = {}
    for entry in entries:
        phone = str(entry.get("phone") or "").strip()
        created = coerce_timestamp(entry.get("created_at"))
        if not phone or created is None:
            continue
        if phone not in earliest or created < earliest[phone]:
            earliest[phone] = created
    return earliest


def replay_delta(status: str, amount: float, at, blacklisted_at) -> float:
    """Score change contributed by one historical order."""
    if status in SUCCESS_STATUSES:
        delta = HIGH_AMOUNT_SUCCESS_DELTA if amount >= HIGH_AMOUNT else SUCCESS_DELTA
    elif status in CUSTOMER_FAIL_STATUSES:
        delta = FAIL_DELTA
    else:
        return 0
    # 已拉黑后仍接单：变化量翻倍（包括负向变化）
    if blacklisted_at is not None and not pd.isna(at) and blacklisted_at < at and status != ORDER_REJECTED:
        delta *= 2
    return delta


@dataclass
class CustomerRiskRecord:
    phone: str
    full_name: Optional[str]
    total_orders: int
    success_count: int
    failed_count: int
    base_risk_score: float
    has_scored_orders: bool
    customer_risk_score: float
    customer_risk_level: str
    last_order_at: Optional[datetime]

    def as_dict(self) -> Dict:
        return {
            "phone": self.phone,
            "full_name": self.full_name,
            "total_orders": self.total_orders,
            "success_count": self.success_count,
            "failed_count": self.failed_count,
            "base_risk_score": self.base_risk_score,
            "has_scored_orders": self.has_scored_orders,
            "customer_risk_score": self.customer_risk_score,
            "customer_risk_level": self.customer_risk_level,
            "last_order_at": self.last_order_at.isoformat() if self.last_order_at else None,
        }


def _replay_group(phone: str, group: pd.DataFrame, blacklisted_at) -> CustomerRiskRecord:
    scores = group.loc[group["is_cod"], "risk_score"].dropna()
    base = float(scores.mean()) if len(scores) else DEFAULT_BASE_SCORE

    ordered = group.assign(replay_at=group["created_at"].fillna(group["order_date"]))
    ordered = ordered.sort_values("replay_at", kind="stable", na_position="first")

    current = base
    for row in ordered.itertuples(index=False):
        current += replay_delta(row.status, float(row.amount), row.replay_at, blacklisted_at)
    final = clamp_score(current)

    last_order_at = None
    full_name = None
    for row in group.itertuples(index=False):
        moment = row.base_date
        if pd.isna(moment):
            continue
        if last_order_at is None or moment > last_order_at:
            last_order_at = moment
            full_name = row.customer_name or None

    return CustomerRiskRecord(
        phone=phone,
        full_name=full_name,
        total_orders=len(group),
        success_count=int(group["is_success"].sum()),
        failed_count=int(group["is_fail"].sum()),
        base_risk_score=base,
        has_scored_orders=bool(len(scores)),
        customer_risk_score=final,
        customer_risk_level=risk_level_for(final),
        last_order_at=last_order_at.to_pydatetime() if last_order_at is not None else None,
    )


def replay_customer_risk(orders: OrdersInput, blacklist: Iterable[Mapping] = ()) -> Optional[CustomerRiskRecord]:
    """Replay one phone's full order history; ``None`` for an empty history."""
    records = build_customer_risk_records(orders, blacklist)
    return records[0] if records else None


def build_customer_risk_records(orders: OrdersInput, blacklist: Iterable[Mapping] = ()) -> List[CustomerRiskRecord]:
    """Customer risk records for every phone in the full order history.

    Input order does not matter; each phone's orders are re-sorted by
    ``created_at`` before the replay. Sorted by last order, newest first.
    """
    df = orders_frame(orders)
    df = df[df["phone"] != ""]
    if df.empty:
        return []
    blacklist_map = earliest_blacklist_times(blacklist)

    records = [
        _replay_group(phone, group, blacklist_map.get(phone))
        for phone, group in df.groupby("phone", sort=False)
    ]
    dated = [r for r in records if r.last_order_at is not None]
    undated = [r for r in records if r.last_order_at is None]
    dated.sort(key=lambda r: r.last_order_at, reverse=True)
    return dated + undated
