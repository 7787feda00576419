from __future__ import annotations

from typing import Dict, List

import numpy as np
import pandas as pd

from .frames import (
    DAY,
    OrdersInput,
    approved_cod_mask,
    bucket_keys,
    cod_failed_mask,
    customer_confirmed_mask,
    orders_frame,
)
from .statuses import (
    APPROVED_OUTCOME_STATUSES,
    COMPLETED,
    CUSTOMER_CANCELLED,
    ORDER_REJECTED,
)
from .utils import as_money, round1


def _counts_by_bucket(df: pd.DataFrame, keys: pd.Series, columns: Dict[str, pd.Series]) -> List[Dict]:
    """Sum boolean flag columns per bucket; rows without a bucket key are skipped."""
    work = pd.DataFrame({name: flag.astype(int) for name, flag in columns.items()}, index=df.index)
    work["date"] = keys
    work = work.dropna(subset=["date"])
    if work.empty:
        return []
    totals = work.groupby("date").sum()
    return [
        {"date": date, **{name: int(row[name]) for name in columns}}
        for date, row in totals.iterrows()
    ]


def build_orders_dashboard(orders: OrdersInput, aggregation: str = DAY) -> List[Dict]:
    """Order volume per bucket with the COD verification state of each order.

    A COD order lands in exactly one of pending, confirmed or cancelled (checked
    in that order) or in none of them.
    """
    df = orders_frame(orders)
    pending = df["is_cod"] & df["is_pending"]
    confirmed = ~pending & customer_confirmed_mask(df)
    cancelled = ~pending & ~confirmed & df["is_cod"] & df["is_fail"]
    return _counts_by_bucket(
        df,
        bucket_keys(df["base_date"], aggregation),
        {
            "total_orders": pd.Series(True, index=df.index),
            "cod_pending": pending,
            "cod_confirmed": confirmed,
            "cod_cancelled": cancelled,
        },
    )


def build_revenue_dashboard(orders: OrdersInput, aggregation: str = DAY) -> List[Dict]:
    """Paid revenue per bucket of the payment date, split into COD and other."""
    df = orders_frame(orders)
    paid = df[df["has_been_paid"]]
    if paid.empty:
        return []
    when = paid["paid_at"].fillna(paid["order_date"]).fillna(paid["created_at"])
    work = pd.DataFrame(
        {
            "date": bucket_keys(when, aggregation),
            "total_revenue": paid["amount"],
            "converted_revenue": paid["amount"].where(paid["is_cod"], 0),
        }
    ).dropna(subset=["date"])
    totals = work.groupby("date").sum()
    rows = []
    for date, row in totals.iterrows():
        total = as_money(row["total_revenue"])
        converted = as_money(row["converted_revenue"])
        rows.append(
            {
                "date": date,
                "total_revenue": total,
                "converted_revenue": converted,
                "other_revenue": max(0, total - converted),
            }
        )
    return rows


def build_verification_outcome_series(orders: OrdersInput, aggregation: str = DAY) -> List[Dict]:
    """Outcome of medium/high risk COD orders per bucket."""
    df = orders_frame(orders)
    df = df[df["is_cod"] & df["risk_tier"].isin(["medium", "high"])]
    approved = df["status"].isin(APPROVED_OUTCOME_STATUSES)
    return _counts_by_bucket(
        df,
        bucket_keys(df["base_date"], aggregation),
        {
            "approved": approved,
            "customer_cancelled": df["status"] == CUSTOMER_CANCELLED,
            "rejected": df["status"] == ORDER_REJECTED,
        },
    )


def build_funnel_stage_series(orders: OrdersInput, aggregation: str = DAY) -> List[Dict]:
    df = orders_frame(orders)
    df = df[df["is_cod"]]
    approved = approved_cod_mask(df)
    return _counts_by_bucket(
        df,
        bucket_keys(df["base_date"], aggregation),
        {
            "cod_orders": pd.Series(True, index=df.index),
            "approved": approved,
            "paid": approved & df["has_been_paid"],
            "completed": approved & (df["status"] == COMPLETED),
            "failed": cod_failed_mask(df),
        },
    )


def build_time_to_confirm_series(orders: OrdersInput, aggregation: str = DAY) -> List[Dict]:
    """Average hours from order to customer confirmation, bucketed by confirmation date.

    Orders confirmed before their own order date are ignored.
    """
    df = orders_frame(orders)
    df = df[df["is_cod"] & df["customer_confirmed_at"].notna() & df["base_date"].notna()]
    hours = (df["customer_confirmed_at"] - df["base_date"]).dt.total_seconds() / 3600
    work = pd.DataFrame({"date": bucket_keys(df["customer_confirmed_at"], aggregation), "hours": hours})
    work = work[np.isfinite(work["hours"]) & (work["hours"] >= 0)]
    if work.empty:
        return []
    grouped = work.groupby("date")["hours"].agg(["sum", "count"])
    return [
        {"date": date, "avg_hours": round1(float(total) / int(count)), "confirmations": int(count)}
        for date, total, count in grouped.itertuples()
    ]
