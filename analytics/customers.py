from __future__ import annotations

from typing import Dict, List

import pandas as pd

from .date_ranges import DateRange
from .frames import OrdersInput, orders_frame
from .statuses import payment_label
from .utils import pct

FREQUENCY_BUCKETS = (
    ("1 order", 1, 1),
    ("2–3 orders", 2, 3),
    ("4–5 orders", 4, 5),
    ("6+ orders", 6, None),
)


def first_order_dates(all_orders: OrdersInput) -> pd.Series:
    """phone -> earliest business date over the full history."""
    df = orders_frame(all_orders)
    df = df[(df["phone"] != "") & df["base_date"].notna()]
    if df.empty:
        return pd.Series(dtype="datetime64[ns, UTC]")
    return df.groupby("phone")["base_date"].min()


def _as_utc(moment) -> pd.Timestamp:
    stamp = pd.Timestamp(moment)
    return stamp.tz_localize("UTC") if stamp.tzinfo is None else stamp.tz_convert("UTC")


def _classify(first_dates: pd.Series, phones: pd.Series, date_range: DateRange) -> pd.Series:
    """'new', 'returning' or '' per phone, from its first order date."""
    first = pd.to_datetime(phones.map(first_dates), utc=True)
    start = _as_utc(date_range.start)
    end = _as_utc(date_range.end)
    kind = pd.Series("", index=phones.index, dtype=object)
    kind[(first >= start) & (first <= end)] = "new"
    kind[first < start] = "returning"
    return kind


def compute_customer_stats(orders: OrdersInput, all_orders: OrdersInput, date_range: DateRange) -> Dict:
    """New vs returning customers among phones active in the range.

    A phone is new when its first order over the full history falls inside the
    range and returning when it predates the range start.
    """
    df = orders_frame(orders)
    phones = pd.Series(df.loc[df["phone"] != "", "phone"].unique(), dtype=object)
    kinds = _classify(first_order_dates(all_orders), phones, date_range)
    new = int((kinds == "new").sum())
    returning = int((kinds == "returning").sum())
    return {
        "new_customers": new,
        "returning_customers": returning,
        "repeat_purchase_rate": pct(returning, new + returning),
    }


def customer_activity_series(orders: OrdersInput, all_orders: OrdersInput, date_range: DateRange) -> List[Dict]:
    """Distinct new and returning customers per business day."""
    df = orders_frame(orders)
    df = df[(df["phone"] != "") & df["base_date"].notna()]
    if df.empty:
        return []
    df = df.assign(
        day=df["base_date"].dt.strftime("%Y-%m-%d"),
        kind=_classify(first_order_dates(all_orders), df["phone"], date_range),
    )
    df = df[df["kind"] != ""]
    series = []
    for day, group in df.groupby("day"):
        series.append(
            {
                "date": day,
                "new_customers": group.loc[group["kind"] == "new", "phone"].nunique(),
                "returning_customers": group.loc[group["kind"] == "returning", "phone"].nunique(),
            }
        )
    return series


def _distinct_customers(df: pd.DataFrame, labels: pd.Series, label: str) -> List[Dict]:
    known = df["phone"] != ""
    counts = df.loc[known, "phone"].groupby(labels[known], sort=False).nunique()
    rows = [{label: name, "customer_count": int(n)} for name, n in counts.items()]
    rows.sort(key=lambda row: row["customer_count"], reverse=True)
    return rows


def customers_by_province(orders: OrdersInput, top_n: int = 5) -> List[Dict]:
    df = orders_frame(orders)
    return _distinct_customers(df, df["province"].replace("", "Unknown"), "province")[:top_n]


def customers_by_product(orders: OrdersInput, top_n: int = 5) -> List[Dict]:
    df = orders_frame(orders)
    return _distinct_customers(df, df["product"].replace("", "Unknown Product"), "product_name")[:top_n]


def customers_by_payment_method(orders: OrdersInput) -> List[Dict]:
    df = orders_frame(orders)
    return _distinct_customers(df, df["payment_method"].map(payment_label), "payment_method")


def customer_frequency_buckets(all_orders: OrdersInput) -> List[Dict]:
    """How many customers placed 1, 2–3, 4–5 or 6+ orders over the full history."""
    df = orders_frame(all_orders)
    counts = df.loc[df["phone"] != "", "phone"].value_counts()
    buckets = []
    for label, low, high in FREQUENCY_BUCKETS:
        in_bucket = counts >= low
        if high is not None:
            in_bucket &= counts <= high
        buckets.append({"label": label, "customers": int(in_bucket.sum())})
    return buckets
