from __future__ import annotations

from typing import Iterable, Mapping, Union

import pandas as pd

from .statuses import (
    CONFIRMED_PROGRESS_STATUSES,
    CUSTOMER_CANCELLED,
    ORDER_REJECTED,
    PENDING_STATUSES,
    StatusClass,
    classify_status,
    is_cod,
)
from .utils import coerce_timestamp

# Column projection the order store hands back
ORDER_FIELDS = [
    "id",
    "user_id",
    "order_id",
    "customer_name",
    "phone",
    "address",
    "amount",
    "payment_method",
    "status",
    "risk_score",
    "risk_level",
    "discount_amount",
    "shipping_fee",
    "channel",
    "source",
    "order_date",
    "created_at",
    "refunded_amount",
    "customer_shipping_paid",
    "seller_shipping_paid",
    "paid_at",
    "customer_confirmed_at",
    "confirmation_sent_at",
    "shipped_at",
    "province",
    "district",
    "ward",
    "product",
    "product_id",
    "cancel_reason",
    "reject_reason",
]

MONEY_FIELDS = [
    "amount",
    "discount_amount",
    "shipping_fee",
    "refunded_amount",
    "customer_shipping_paid",
    "seller_shipping_paid",
]

TIMESTAMP_FIELDS = [
    "order_date",
    "created_at",
    "paid_at",
    "customer_confirmed_at",
    "confirmation_sent_at",
    "shipped_at",
]

TEXT_FIELDS = [
    "order_id",
    "customer_name",
    "phone",
    "address",
    "payment_method",
    "status",
    "risk_level",
    "channel",
    "source",
    "province",
    "district",
    "ward",
    "product",
    "product_id",
    "cancel_reason",
    "reject_reason",
]

DAY = "day"
MONTH = "month"

OrdersInput = Union[pd.DataFrame, Iterable[Mapping]]


def orders_frame(orders: OrdersInput) -> pd.DataFrame:
    """Load order rows into a DataFrame with basic type coercion and derived flags.

    The input is never modified. Missing columns are added, money defaults to 0,
    ``risk_score`` keeps NaN for "no score" and unparseable timestamps become NaT.
    """
    if isinstance(orders, pd.DataFrame):
        df = orders.copy()
    else:
        df = pd.DataFrame([dict(row) for row in orders])

    for col in ORDER_FIELDS:
        if col not in df.columns:
            df[col] = None

    # 类型与清洗
    for col in MONEY_FIELDS:
        df[col] = pd.to_numeric(df[col], errors="coerce").fillna(0)
    df["risk_score"] = pd.to_numeric(df["risk_score"], errors="coerce")
    for col in TIMESTAMP_FIELDS:
        df[col] = pd.to_datetime(df[col].map(coerce_timestamp), utc=True)
    for col in TEXT_FIELDS:
        df[col] = df[col].fillna("").astype(str).str.strip()

    df["is_cod"] = df["payment_method"].map(is_cod).astype(bool)
    df["status_class"] = df["status"].map(classify_status)
    df["is_success"] = df["status_class"] == StatusClass.SUCCESS
    df["is_fail"] = df["status_class"] == StatusClass.CUSTOMER_FAIL
    df["is_pending"] = df["status_class"] == StatusClass.PENDING
    df["has_been_paid"] = df["paid_at"].notna()
    df["risk_tier"] = df["risk_level"].str.lower()
    df["base_date"] = df["order_date"].fillna(df["created_at"])
    return df


def customer_confirmed_mask(df: pd.DataFrame) -> pd.Series:
    """COD medium/high risk orders whose customer actually confirmed."""
    progressed = df["customer_confirmed_at"].notna() | df["status"].isin(CONFIRMED_PROGRESS_STATUSES)
    return df["is_cod"] & df["risk_tier"].isin(["medium", "high"]) & progressed


def cod_payment_pending_mask(df: pd.DataFrame) -> pd.Series:
    """COD orders still waiting for money: low risk by default, medium/high once confirmed."""
    alive = df["is_cod"] & ~df["has_been_paid"] & ~df["is_fail"]
    low_or_unrated = df["risk_tier"].isin(["low", ""])
    return alive & (low_or_unrated | customer_confirmed_mask(df))


def approved_cod_mask(df: pd.DataFrame) -> pd.Series:
    """COD orders past approval: low risk unless rejected, medium/high once out of review."""
    not_rejected = df["is_cod"] & (df["status"] != ORDER_REJECTED)
    low_or_unrated = df["risk_tier"].isin(["low", ""])
    return not_rejected & (low_or_unrated | ~df["status"].isin(PENDING_STATUSES))


def cod_failed_mask(df: pd.DataFrame) -> pd.Series:
    """Funnel failures: customer cancelled or rejected by the shop."""
    return df["is_cod"] & df["status"].isin([CUSTOMER_CANCELLED, ORDER_REJECTED])


def aggregation_mode(df: pd.DataFrame, month_after_days: int = 60) -> str:
    """Month buckets once the observed business-date span exceeds ``month_after_days``.

    The span counts calendar days inclusively, so the first and last day both
    count: 2024-01-01 to 2024-02-29 is 60 days and stays daily, while dates
    exactly 60 days apart already span 61 days and switch to months.
    """
    dates = df["base_date"].dropna()
    if dates.empty:
        return DAY
    first = dates.min().normalize()
    last = dates.max().normalize()
    span_days = (last - first).days + 1
    return MONTH if span_days > month_after_days else DAY


def bucket_keys(timestamps: pd.Series, aggregation: str) -> pd.Series:
    """YYYY-MM-DD or YYYY-MM labels; NaT stays missing so groupby skips it."""
    fmt = "%Y-%m" if aggregation == MONTH else "%Y-%m-%d"
    return timestamps.dt.strftime(fmt)
