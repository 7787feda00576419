from __future__ import annotations

import re
from typing import Dict, List, Optional

import pandas as pd

from .frames import OrdersInput, orders_frame
from .statuses import CUSTOMER_CANCELLED, ORDER_REJECTED, PENDING_STATUSES
from .utils import as_money, pct, round1, round_half_up

UNKNOWN = "Unknown"
UNKNOWN_PRODUCT = "Unknown Product"
UNSPECIFIED_REASON = "Other / Unspecified"


def _group_metrics(df: pd.DataFrame, keys) -> pd.DataFrame:
    """Per-group volume, paid revenue and COD outcome counts, in first-seen order."""
    work = df.assign(
        paid_amount=df["amount"].where(df["has_been_paid"], 0),
        cod_fail=df["is_cod"] & df["is_fail"],
        cod_paid=df["is_cod"] & df["has_been_paid"],
        cod_score=df["risk_score"].where(df["is_cod"]),
    )
    return work.groupby(keys, sort=False).agg(
        order_count=("status", "size"),
        total_revenue=("paid_amount", "sum"),
        cod_orders=("is_cod", "sum"),
        cod_failed=("cod_fail", "sum"),
        cod_converted=("cod_paid", "sum"),
        score_sum=("cod_score", "sum"),
        score_count=("cod_score", "count"),
    )


def _first_max(rows: List[Dict], field: str) -> Optional[Dict]:
    """Largest ``field``; ties keep the first row seen."""
    best = None
    for row in rows:
        if best is None or row[field] > best[field]:
            best = row
    return best


def _first_min(rows: List[Dict], field: str) -> Optional[Dict]:
    best = None
    for row in rows:
        if best is None or row[field] < best[field]:
            best = row
    return best


def _top_counts(labels: pd.Series, label: str, limit: int) -> List[Dict]:
    counts = labels.value_counts(sort=False)
    rows = [{label: name, "order_count": int(n)} for name, n in counts.items()]
    rows.sort(key=lambda row: row["order_count"], reverse=True)
    return rows[:limit]


def build_districts_by_province(orders: OrdersInput) -> Dict[str, List[str]]:
    df = orders_frame(orders)
    df = df[(df["province"] != "") & (df["district"] != "")]
    return {
        province: sorted(set(group["district"]))
        for province, group in df.groupby("province", sort=False)
    }


def compute_geo_risk_stats(orders: OrdersInput, min_boom_cod_orders: int = 50, top_n: int = 5) -> Dict:
    """Per-province volume, risk and boom picture.

    A province needs at least ``min_boom_cod_orders`` COD orders before it can
    be reported as the worst boom province.
    """
    df = orders_frame(orders)
    located = df[df["province"] != ""]
    provinces: List[Dict] = []
    if not located.empty:
        for province, m in _group_metrics(located, "province").iterrows():
            cod_orders = int(m["cod_orders"])
            provinces.append(
                {
                    "province": province,
                    "order_count": int(m["order_count"]),
                    "avg_risk_score": round1(m["score_sum"] / m["score_count"]) if m["score_count"] else None,
                    "total_revenue": as_money(m["total_revenue"]),
                    "cod_orders_count": cod_orders,
                    "prepaid_orders_count": int(m["order_count"]) - cod_orders,
                    "boom_rate": pct(int(m["cod_failed"]), cod_orders),
                }
            )

    with_risk = [p for p in provinces if p["avg_risk_score"] is not None]
    eligible = [p for p in provinces if p["cod_orders_count"] >= min_boom_cod_orders]
    top_boom = sorted(eligible, key=lambda p: p["boom_rate"], reverse=True)[:top_n]

    return {
        "highest_risk_province": _first_max(with_risk, "avg_risk_score"),
        "safest_province": _first_min(with_risk, "avg_risk_score"),
        "top_revenue_province": _first_max(provinces, "total_revenue"),
        "worst_boom_province": _first_max(eligible, "boom_rate"),
        "top_boom_provinces": top_boom,
        "provinces": provinces,
        "districts_by_province": build_districts_by_province(df),
    }


def compute_product_stats(orders: OrdersInput, min_cod_orders: int = 10) -> Dict:
    df = orders_frame(orders)
    products: List[Dict] = []
    if not df.empty:
        keyed = df.assign(
            product_key=df["product_id"].where(df["product_id"] != "", df["product"]).replace("", UNKNOWN),
            product_name=df["product"].replace("", UNKNOWN_PRODUCT),
        )
        metrics = _group_metrics(keyed, "product_key")
        first = keyed.drop_duplicates("product_key").set_index("product_key")
        for key, m in metrics.iterrows():
            cod_orders = int(m["cod_orders"])
            products.append(
                {
                    "product_id": first.at[key, "product_id"] or None,
                    "product_name": first.at[key, "product_name"],
                    "order_count": int(m["order_count"]),
                    "total_revenue": as_money(m["total_revenue"]),
                    "cod_orders_count": cod_orders,
                    "boom_rate": pct(int(m["cod_failed"]), cod_orders),
                }
            )

    paid = df[df["has_been_paid"]]
    eligible = [p for p in products if p["cod_orders_count"] >= min_cod_orders]
    return {
        "top_product_by_revenue": _first_max(products, "total_revenue"),
        "top_product_by_orders": _first_max(products, "order_count"),
        "top_boom_rate_product": _first_max(eligible, "boom_rate"),
        "avg_revenue_per_unit": round_half_up(float(paid["amount"].sum()) / len(paid)) if len(paid) else 0,
        "products": products,
    }


def _dimension_stats(orders: OrdersInput, column: str, min_cod_orders: int) -> Dict:
    df = orders_frame(orders)
    rows: List[Dict] = []
    if not df.empty:
        keyed = df.assign(dimension=df[column].replace("", UNKNOWN))
        for name, m in _group_metrics(keyed, "dimension").iterrows():
            cod_orders = int(m["cod_orders"])
            rows.append(
                {
                    column: name,
                    "order_count": int(m["order_count"]),
                    "total_revenue": as_money(m["total_revenue"]),
                    "cod_orders_count": cod_orders,
                    "cancel_rate": pct(int(m["cod_failed"]), cod_orders),
                    "conversion_rate": pct(int(m["cod_converted"]), cod_orders),
                }
            )
    eligible = [r for r in rows if r["cod_orders_count"] >= min_cod_orders]
    cod = df["is_cod"]
    return {
        "total": len(rows),
        "top_by_revenue": _first_max(rows, "total_revenue"),
        "highest_boom": _first_max(eligible, "cancel_rate"),
        "overall_conversion_rate": pct(int((cod & df["has_been_paid"]).sum()), int(cod.sum())),
        "rows": rows,
    }


def compute_channel_stats(orders: OrdersInput, min_cod_orders: int = 10) -> Dict:
    stats = _dimension_stats(orders, "channel", min_cod_orders)
    return {
        "total_channels": stats["total"],
        "top_channel_by_revenue": stats["top_by_revenue"],
        "highest_boom_channel": stats["highest_boom"],
        "overall_conversion_rate": stats["overall_conversion_rate"],
        "channels": stats["rows"],
    }


def compute_source_stats(orders: OrdersInput, min_cod_orders: int = 10) -> Dict:
    stats = _dimension_stats(orders, "source", min_cod_orders)
    return {
        "total_sources": stats["total"],
        "top_source_by_revenue": stats["top_by_revenue"],
        "highest_boom_source": stats["highest_boom"],
        "overall_conversion_rate": stats["overall_conversion_rate"],
        "sources": stats["rows"],
    }


def build_top_products_chart(orders: OrdersInput, top_n: int = 5) -> List[Dict]:
    """Paid revenue per named product; unnamed products are left out."""
    df = orders_frame(orders)
    paid = df[df["has_been_paid"] & (df["product"] != "")]
    if paid.empty:
        return []
    revenue = paid.groupby("product", sort=False)["amount"].sum()
    rows = [{"product_name": name, "total_revenue": as_money(total)} for name, total in revenue.items()]
    rows.sort(key=lambda row: row["total_revenue"], reverse=True)
    return rows[:top_n]


def build_orders_by_province_chart(orders: OrdersInput, top_n: int = 5) -> List[Dict]:
    df = orders_frame(orders)
    return _top_counts(df["province"].replace("", UNKNOWN), "province", top_n)


def build_orders_by_product_chart(orders: OrdersInput, top_n: int = 5) -> List[Dict]:
    df = orders_frame(orders)
    return _top_counts(df["product"].replace("", UNKNOWN_PRODUCT), "product_name", top_n)


def _reason_breakdown(reasons: pd.Series) -> List[Dict]:
    counts = reasons.replace("", UNSPECIFIED_REASON).value_counts(sort=False)
    rows = [{"reason": reason, "count": int(n)} for reason, n in counts.items()]
    rows.sort(key=lambda row: row["count"], reverse=True)
    return rows


def build_cancel_reason_breakdown(orders: OrdersInput) -> List[Dict]:
    df = orders_frame(orders)
    cancelled = df[df["is_cod"] & (df["status"] == CUSTOMER_CANCELLED)]
    return _reason_breakdown(cancelled["cancel_reason"])


def build_reject_reason_breakdown(orders: OrdersInput) -> List[Dict]:
    df = orders_frame(orders)
    rejected = df[df["is_cod"] & (df["status"] == ORDER_REJECTED)]
    return _reason_breakdown(rejected["reject_reason"])


def cod_status_breakdown(orders: OrdersInput) -> List[Dict]:
    df = orders_frame(orders)
    counts = df.loc[df["is_cod"], "status"].value_counts(sort=False)
    return [{"status": status, "count": int(n)} for status, n in counts.items()]


def cod_by_region(orders: OrdersInput) -> List[Dict]:
    """COD boom rate per province/district pair, worst first."""
    df = orders_frame(orders)
    cod = df[df["is_cod"]]
    if cod.empty:
        return []
    keyed = cod.assign(
        province_key=cod["province"].replace("", UNKNOWN),
        district_key=cod["district"].replace("", UNKNOWN),
    )
    grouped = keyed.groupby(["province_key", "district_key"], sort=False).agg(
        total=("status", "size"),
        failed=("is_fail", "sum"),
    )
    rows = [
        {
            "province": province,
            "district": district,
            "total_cod_orders": int(total),
            "failed_cod_orders": int(failed),
            "boom_rate": pct(int(failed), int(total)),
        }
        for (province, district), total, failed in grouped.itertuples()
    ]
    rows.sort(key=lambda row: row["boom_rate"], reverse=True)
    return rows


def address_key(address: str) -> str:
    key = re.sub(r"\s+", " ", address.lower().strip())
    return re.sub(r"[.,;:]+", "", key)


def _latest(series: pd.Series):
    moment = series.max()
    return None if pd.isna(moment) else moment.to_pydatetime()


def address_outcomes(orders: OrdersInput) -> List[Dict]:
    """Outcome counts per normalized address, most booms first."""
    df = orders_frame(orders)
    keyed = df.assign(address_key=df["address"].map(address_key))
    keyed = keyed[keyed["address_key"] != ""]
    rows = []
    for key, group in keyed.groupby("address_key", sort=False):
        failed = int(group["is_fail"].sum())
        rows.append(
            {
                "address_key": key,
                "full_address": group["address"].iat[0],
                "total_orders": len(group),
                "success_orders": int(group["is_success"].sum()),
                "failed_orders": failed,
                "boom_orders": failed,
                "last_order_at": _latest(group["created_at"]),
            }
        )
    rows.sort(key=lambda row: row["boom_orders"], reverse=True)
    return rows


def customer_outcomes(orders: OrdersInput, limit: int = 20) -> Dict[str, List[Dict]]:
    """Best and worst customers of the range by phone."""
    df = orders_frame(orders)
    df = df[df["phone"] != ""]
    customers = []
    for phone, group in df.groupby("phone", sort=False):
        total = len(group)
        failed = int(group["is_fail"].sum())
        customers.append(
            {
                "phone": phone,
                "total_orders": total,
                "success_orders": int(group["is_success"].sum()),
                "failed_orders": failed,
                "boom_rate": pct(failed, total),
                "last_order_at": _latest(group["created_at"]),
            }
        )
    boom = [c for c in customers if c["failed_orders"] > 0]
    boom.sort(key=lambda c: (c["boom_rate"], c["total_orders"]), reverse=True)
    good = [c for c in customers if c["failed_orders"] == 0 and c["total_orders"] >= 2]
    good.sort(key=lambda c: c["total_orders"], reverse=True)
    return {"top_boom_customers": boom[:limit], "top_good_customers": good[:limit]}


def high_risk_pending_orders(orders: OrdersInput) -> List[Dict]:
    """High risk orders still waiting in review, newest first."""
    df = orders_frame(orders)
    waiting = df[(df["risk_tier"] == "high") & df["status"].isin(PENDING_STATUSES)]
    waiting = waiting.sort_values("created_at", ascending=False, kind="stable", na_position="last")
    return [
        {
            "order_id": row.order_id,
            "customer_name": row.customer_name,
            "phone": row.phone,
            "amount": as_money(row.amount),
            "status": row.status,
            "risk_score": None if pd.isna(row.risk_score) else float(row.risk_score),
            "created_at": None if pd.isna(row.created_at) else row.created_at.to_pydatetime(),
        }
        for row in waiting.itertuples(index=False)
    ]
