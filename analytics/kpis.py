from __future__ import annotations

from datetime import datetime, timedelta
from typing import Dict, List, Optional

import numpy as np
import pandas as pd

from .frames import (
    OrdersInput,
    approved_cod_mask,
    cod_failed_mask,
    cod_payment_pending_mask,
    customer_confirmed_mask,
    orders_frame,
)
from .statuses import (
    COMPLETED,
    CONFIRMED_STATUSES,
    CUSTOMER_CANCELLED,
    CUSTOMER_FAIL_STATUSES,
    DELIVERING,
    ORDER_REJECTED,
)
from .utils import as_money, pct, round1, round_half_up

RISK_TIERS = ("low", "medium", "high")


def compute_stats(orders: OrdersInput) -> Dict:
    """Headline KPIs for the selected range.

    Revenue counts orders that were ever paid (``paid_at`` set), regardless of
    where their status moved afterwards.
    """
    df = orders_frame(orders)
    cod = df["is_cod"]
    total_orders = len(df)
    cod_orders = int(cod.sum())

    paid = df[df["has_been_paid"]]
    gross_revenue = as_money(paid["amount"].sum())
    refund_amount = as_money(df["refunded_amount"].sum())
    logistics_cost = as_money(df["seller_shipping_paid"].sum())
    customer_shipping = as_money(df["customer_shipping_paid"].sum())

    verified = cod & (df["status"].isin(CONFIRMED_STATUSES) | df["status"].isin([CUSTOMER_CANCELLED, ORDER_REJECTED]))
    converted = cod & df["has_been_paid"]
    confirmed = customer_confirmed_mask(df)
    cancelled = cod & df["status"].isin(CUSTOMER_FAIL_STATUSES)
    delivered_not_paid = cod & (df["status"] == COMPLETED) & ~df["has_been_paid"]

    cod_cancelled = int(cancelled.sum())
    cod_confirmed = int(confirmed.sum())
    customer_responses = cod_cancelled + cod_confirmed
    verified_count = int(verified.sum())
    converted_count = int(converted.sum())
    tiers = df["risk_tier"].value_counts()

    return {
        "total_orders": total_orders,
        "cod_orders": cod_orders,
        "prepaid_orders": total_orders - cod_orders,
        "gross_revenue": gross_revenue,
        "refund_amount": refund_amount,
        "logistics_cost": logistics_cost,
        "net_revenue": gross_revenue - refund_amount - logistics_cost,
        "shipping_profit": customer_shipping - logistics_cost,
        "total_revenue": gross_revenue,
        "avg_order_value": round_half_up(gross_revenue / len(paid)) if len(paid) else 0,
        "pending_verification": int(df["is_pending"].sum()),
        "verified_outcome_count": verified_count,
        "verified_outcome_rate": pct(verified_count, cod_orders),
        "converted_orders": converted_count,
        "converted_revenue": as_money(df.loc[converted, "amount"].sum()),
        "converted_rate": pct(converted_count, cod_orders),
        "cancel_rate": pct(cod_cancelled, customer_responses),
        "cod_cancelled": cod_cancelled,
        "cod_confirmed": cod_confirmed,
        "customer_responses": customer_responses,
        "pending_revenue": as_money(df.loc[cod_payment_pending_mask(df), "amount"].sum()),
        "confirmed_cod_revenue": as_money(df.loc[confirmed, "amount"].sum()),
        "delivered_not_paid_revenue": as_money(df.loc[delivered_not_paid, "amount"].sum()),
        "risk_low": int(tiers.get("low", 0)),
        "risk_medium": int(tiers.get("medium", 0)),
        "risk_high": int(tiers.get("high", 0)),
    }


def _avg_score_table(df: pd.DataFrame, key: str, label: str, limit: int) -> List[Dict]:
    if df.empty:
        return []
    grouped = df.groupby(key, sort=False)["risk_score"].agg(["sum", "count"])
    rows = [
        {label: name, "avg_score": round1(float(total) / int(count))}
        for name, total, count in grouped.itertuples()
    ]
    rows.sort(key=lambda row: row["avg_score"], reverse=True)
    return rows[:limit]


def compute_risk_stats(orders: OrdersInput, top_n: int = 5) -> Dict:
    """Risk score picture of the COD orders in range.

    ``avg_risk_score`` is ``None`` when no COD order carries a score, so the
    caller can show N/A instead of a misleading 0.
    """
    df = orders_frame(orders)
    cod = df[df["is_cod"]]
    scored = cod[cod["risk_score"].notna()]

    avg_risk_score: Optional[float] = None
    if not scored.empty:
        avg_risk_score = round1(float(scored["risk_score"].sum()) / len(scored))
    tiers = cod["risk_tier"].value_counts()

    score_over_time: List[Dict] = []
    dated = scored[scored["base_date"].notna()]
    if not dated.empty:
        days = dated.assign(day=dated["base_date"].dt.strftime("%Y-%m-%d"))
        daily = days.groupby("day")["risk_score"].agg(["sum", "count"])
        score_over_time = [
            {"date": day, "avg_score": round1(float(total) / int(count))}
            for day, total, count in daily.itertuples()
        ]

    by_province = _avg_score_table(scored[scored["province"] != ""], "province", "province", top_n)
    by_product = _avg_score_table(
        scored.assign(product_name=scored["product"].replace("", "Unknown Product")),
        "product_name",
        "product_name",
        top_n,
    )

    high = cod[cod["risk_tier"] == "high"]
    repeat_offenders: List[Dict] = []
    if not high.empty:
        who = high["phone"].where(high["phone"] != "", high["customer_name"])
        who = who.replace("", "Unknown Customer")
        counts = who.value_counts(sort=False)
        repeat_offenders = [
            {"customer": customer, "orders": int(n)} for customer, n in counts.items() if n >= 2
        ]
        repeat_offenders.sort(key=lambda row: row["orders"], reverse=True)
        repeat_offenders = repeat_offenders[:top_n]

    return {
        "avg_risk_score": avg_risk_score,
        "high_risk_orders": int(tiers.get("high", 0)),
        "medium_risk_orders": int(tiers.get("medium", 0)),
        "low_risk_orders": int(tiers.get("low", 0)),
        "score_over_time": score_over_time,
        "by_province": by_province,
        "by_product": by_product,
        "repeat_offenders": repeat_offenders,
    }


def risk_score_buckets(orders: OrdersInput) -> List[Dict]:
    """COD outcome per risk score band, including orders that were never scored."""
    df = orders_frame(orders)
    cod = df[df["is_cod"]]
    score = cod["risk_score"]
    band = np.select(
        [score.isna(), score <= 30, score <= 70],
        ["no_score", "0-30", "31-70"],
        default="71-100",
    )
    labels = {"0-30": "0-30", "31-70": "31-70", "71-100": "71-100", "no_score": "No Score"}
    buckets = []
    for key, label in labels.items():
        in_band = cod[band == key] if len(cod) else cod
        total = len(in_band)
        failed = int(in_band["is_fail"].sum())
        buckets.append(
            {
                "key": key,
                "label": label,
                "total": total,
                "success": int(in_band["is_success"].sum()),
                "failed": failed,
                "boom_rate": pct(failed, total),
            }
        )
    return buckets


def compute_funnel_summary(orders: OrdersInput) -> Dict:
    df = orders_frame(orders)
    cod = df["is_cod"]
    total = int(cod.sum())
    approved_mask = approved_cod_mask(df)
    approved = int(approved_mask.sum())
    # 付款与完成只在已通过的订单里计数，转化率不超过 100
    paid = int((approved_mask & df["has_been_paid"]).sum())
    completed = int((approved_mask & (df["status"] == COMPLETED)).sum())
    cancelled = int((cod & (df["status"] == CUSTOMER_CANCELLED)).sum())
    rejected = int((cod & (df["status"] == ORDER_REJECTED)).sum())
    failed = cancelled + rejected
    return {
        "total_cod_orders": total,
        "approved_cod_orders": approved,
        "paid_cod_orders": paid,
        "completed_cod_orders": completed,
        "customer_cancelled_cod_orders": cancelled,
        "rejected_cod_orders": rejected,
        "failed_cod_orders": int(cod_failed_mask(df).sum()),
        "approval_rate": pct(approved, total),
        "payment_conversion_rate": pct(paid, approved),
        "delivery_success_rate": pct(completed, approved),
        "failed_rate": pct(failed, total),
    }


def verification_funnel(orders: OrdersInput) -> List[Dict]:
    """Step counts of the customer verification flow for COD orders."""
    df = orders_frame(orders)
    cod = df[df["is_cod"]]
    sent = int(cod["confirmation_sent_at"].notna().sum())
    confirmed = int(cod["customer_confirmed_at"].notna().sum())
    cancelled = int((cod["status"] == CUSTOMER_CANCELLED).sum())
    paid = int((cod["has_been_paid"] | cod["is_success"]).sum())
    # 近似值：已发送确认但既未确认也未取消
    no_response = max(0, sent - (confirmed + cancelled))
    return [
        {"key": "created", "label": "Created", "count": len(cod)},
        {"key": "confirmation_sent", "label": "Confirmation Sent", "count": sent},
        {"key": "customer_confirmed", "label": "Confirmed", "count": confirmed},
        {"key": "customer_cancelled", "label": "Cancelled", "count": cancelled},
        {"key": "no_response", "label": "No Response", "count": no_response},
        {"key": "paid", "label": "Paid", "count": paid},
    ]


def compute_operational_stats(
    orders: OrdersInput,
    now: Optional[datetime] = None,
    pending_after: timedelta = timedelta(hours=24),
    delivering_after: timedelta = timedelta(days=3),
) -> Dict:
    """Latency averages and stuck-order counts; averages are ``None`` without data."""
    df = orders_frame(orders)
    now_ts = pd.Timestamp(now) if now is not None else pd.Timestamp.now(tz="UTC")
    if now_ts.tzinfo is None:
        now_ts = now_ts.tz_localize("UTC")
    cod = df[df["is_cod"]]

    to_confirm = (cod["customer_confirmed_at"] - cod["created_at"]).dt.total_seconds() / 60
    to_confirm = to_confirm[to_confirm > 0]
    to_paid = (df["paid_at"] - df["created_at"]).dt.total_seconds() / 3600
    to_paid = to_paid[to_paid > 0]

    pending_age = now_ts - cod["created_at"]
    stuck_pending = cod["is_pending"] & cod["created_at"].notna() & (pending_age > pending_after)
    shipped_age = now_ts - df["shipped_at"]
    stuck_delivering = (df["status"] == DELIVERING) & df["shipped_at"].notna() & (shipped_age > delivering_after)

    return {
        "avg_minutes_to_confirmation": round_half_up(float(to_confirm.mean())) if len(to_confirm) else None,
        "avg_hours_to_paid": round_half_up(float(to_paid.mean())) if len(to_paid) else None,
        "pending_confirmation_over_24h": int(stuck_pending.sum()),
        "delivering_over_3_days": int(stuck_delivering.sum()),
    }
