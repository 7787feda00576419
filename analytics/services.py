from __future__ import annotations

import logging
from datetime import datetime
from typing import Dict, List, Optional

from django.conf import settings
from django.db import DatabaseError, transaction
from django.db.models import Sum
from django.utils import timezone

from . import breakdowns, customers, kpis, series
from .date_ranges import DateRange, resolve_date_range
from .frames import ORDER_FIELDS, aggregation_mode, orders_frame
from .models import BlacklistEntry, Order
from .risk import RiskAssessment, build_customer_risk_records, evaluate_risk, risk_breakdown
from .statuses import CUSTOMER_FAIL_STATUSES, ORDER_PAID, PENDING_REVIEW, SUCCESS_STATUSES, is_cod

logger = logging.getLogger(__name__)

DEFAULT_ANALYTICS = {
    "DEFAULT_RANGE": "last_month",
    "MIN_GROUP_COD_ORDERS": 10,
    "MIN_BOOM_PROVINCE_COD_ORDERS": 50,
    "MONTH_BUCKET_AFTER_DAYS": 60,
    "TOP_N": 5,
    "TOP_CUSTOMERS": 20,
}


def analytics_config() -> Dict:
    config = dict(DEFAULT_ANALYTICS)
    config.update(getattr(settings, "COD_ANALYTICS", {}))
    return config


def fetch_orders(user, date_range: DateRange) -> List[Dict]:
    """Orders of ``user`` whose business date falls inside the range, as plain rows."""
    rows = list(
        Order.objects.filter(
            user=user,
            order_date__gte=date_range.start,
            order_date__lte=date_range.end,
        ).values(*ORDER_FIELDS)
    )
    logger.info("Loaded %d orders for user %s between %s and %s", len(rows), user.pk, date_range.start, date_range.end)
    return rows


def fetch_customer_history(user) -> List[Dict]:
    """Every order of ``user``, regardless of date; needed by the customer replay."""
    return list(Order.objects.filter(user=user).order_by("-created_at").values(*ORDER_FIELDS))


def fetch_blacklist(user) -> List[Dict]:
    return list(BlacklistEntry.objects.filter(user=user).values("phone", "reason", "created_at"))


def fetch_province_revenue(user, date_range: DateRange) -> List[Dict]:
    """Paid revenue per province, biggest first. Failures degrade to an empty ranking."""
    try:
        rows = (
            Order.objects.filter(
                user=user,
                order_date__gte=date_range.start,
                order_date__lte=date_range.end,
                paid_at__isnull=False,
            )
            .exclude(province="")
            .values("province")
            .annotate(total_revenue=Sum("amount"))
            .order_by("-total_revenue", "province")
        )
        return [{"province": row["province"], "total_revenue": int(row["total_revenue"] or 0)} for row in rows]
    except DatabaseError:
        logger.exception("Failed to load province revenue for user %s", user.pk)
        return []


def build_dashboard(
    user,
    range_key: Optional[str] = None,
    custom_from=None,
    custom_to=None,
    now: Optional[datetime] = None,
) -> Dict:
    """Fetch the range and every derived metric of the analytics dashboard."""
    config = analytics_config()
    date_range = resolve_date_range(range_key or config["DEFAULT_RANGE"], custom_from, custom_to, now=now)
    orders = orders_frame(fetch_orders(user, date_range))
    history = orders_frame(fetch_customer_history(user))
    top_n = config["TOP_N"]
    min_group = config["MIN_GROUP_COD_ORDERS"]
    aggregation = aggregation_mode(orders, config["MONTH_BUCKET_AFTER_DAYS"])

    stats = kpis.compute_stats(orders)
    dashboard = {
        "range": {"start": date_range.start, "end": date_range.end},
        "aggregation": aggregation,
        "stats": stats,
        "risk_distribution": {
            "low": stats["risk_low"],
            "medium": stats["risk_medium"],
            "high": stats["risk_high"],
        },
        "risk_stats": kpis.compute_risk_stats(orders, top_n=top_n),
        "risk_buckets": kpis.risk_score_buckets(orders),
        "funnel_summary": kpis.compute_funnel_summary(orders),
        "verification_funnel": kpis.verification_funnel(orders),
        "operational": kpis.compute_operational_stats(orders, now=now),
        "geo_risk_stats": breakdowns.compute_geo_risk_stats(
            orders,
            min_boom_cod_orders=config["MIN_BOOM_PROVINCE_COD_ORDERS"],
            top_n=top_n,
        ),
        "product_stats": breakdowns.compute_product_stats(orders, min_cod_orders=min_group),
        "channel_stats": breakdowns.compute_channel_stats(orders, min_cod_orders=min_group),
        "source_stats": breakdowns.compute_source_stats(orders, min_cod_orders=min_group),
        "province_revenue": fetch_province_revenue(user, date_range),
        "top_products_chart": breakdowns.build_top_products_chart(orders, top_n=top_n),
        "orders_by_province_chart": breakdowns.build_orders_by_province_chart(orders, top_n=top_n),
        "orders_by_product_chart": breakdowns.build_orders_by_product_chart(orders, top_n=top_n),
        "cancel_reasons": breakdowns.build_cancel_reason_breakdown(orders),
        "reject_reasons": breakdowns.build_reject_reason_breakdown(orders),
        "cod_status": breakdowns.cod_status_breakdown(orders),
        "cod_by_region": breakdowns.cod_by_region(orders),
        "addresses": breakdowns.address_outcomes(orders),
        "customer_outcomes": breakdowns.customer_outcomes(orders, limit=config["TOP_CUSTOMERS"]),
        "high_risk_orders": breakdowns.high_risk_pending_orders(orders),
        "customer_stats": customers.compute_customer_stats(orders, history, date_range),
        "customer_activity": customers.customer_activity_series(orders, history, date_range),
        "customers_by_province": customers.customers_by_province(orders, top_n=top_n),
        "customers_by_product": customers.customers_by_product(orders, top_n=top_n),
        "customers_by_payment_method": customers.customers_by_payment_method(orders),
        "customer_frequency": customers.customer_frequency_buckets(history),
        "orders_chart": series.build_orders_dashboard(orders, aggregation),
        "revenue_chart": series.build_revenue_dashboard(orders, aggregation),
        "verification_outcomes": series.build_verification_outcome_series(orders, aggregation),
        "funnel_stages": series.build_funnel_stage_series(orders, aggregation),
        "time_to_confirm": series.build_time_to_confirm_series(orders, aggregation),
    }
    logger.info("Built dashboard for user %s: %d orders, %s buckets", user.pk, stats["total_orders"], aggregation)
    return dashboard


def customer_risk_overview(user) -> List[Dict]:
    """Risk record of every customer of ``user``, latest activity first."""
    records = build_customer_risk_records(fetch_customer_history(user), fetch_blacklist(user))
    return [record.as_dict() for record in records]


def customer_orders(user, phone: str) -> Dict:
    phone = phone.strip()
    rows = list(Order.objects.filter(user=user, phone=phone).order_by("-created_at").values(*ORDER_FIELDS))
    records = build_customer_risk_records(rows, fetch_blacklist(user))
    return {
        "customer": records[0].as_dict() if records else None,
        "orders": rows,
    }


def assess_order_risk(
    user,
    payment_method: Optional[str],
    amount,
    phone: Optional[str],
    address: Optional[str] = None,
    product: Optional[str] = None,
) -> RiskAssessment:
    phone = (phone or "").strip()
    past_orders = Order.objects.filter(user=user, phone=phone).values("status") if phone else []
    blacklisted = BlacklistEntry.objects.filter(user=user).values_list("phone", flat=True)
    return evaluate_risk(
        payment_method,
        amount,
        phone,
        address=address,
        product=product,
        past_orders=list(past_orders),
        blacklisted_phones=list(blacklisted),
    )


def order_risk_breakdown(
    user,
    payment_method: Optional[str],
    amount,
    phone: Optional[str],
    product: Optional[str] = None,
) -> Dict:
    """Per-factor risk view of a candidate order, using this phone's past outcomes."""
    phone = (phone or "").strip()
    statuses = list(Order.objects.filter(user=user, phone=phone).values_list("status", flat=True)) if phone else []
    return risk_breakdown(
        payment_method,
        amount,
        phone,
        product=product,
        bad_orders=sum(1 for status in statuses if status in CUSTOMER_FAIL_STATUSES),
        good_orders=sum(1 for status in statuses if status in SUCCESS_STATUSES),
    )


@transaction.atomic
def create_order(user, order_id: str, **fields) -> Order:
    """Create an order; COD orders are scored once here and never re-scored.

    Non-COD orders are paid upfront, so they start as Order Paid with
    ``paid_at`` set.
    """
    now = timezone.now()
    fields.setdefault("order_date", now)
    fields.setdefault("created_at", now)
    payment_method = fields.get("payment_method", "COD")
    assessment = assess_order_risk(
        user,
        payment_method,
        fields.get("amount", 0),
        fields.get("phone"),
        address=fields.get("address"),
        product=fields.get("product"),
    )
    if is_cod(payment_method):
        fields.setdefault("status", PENDING_REVIEW)
    else:
        fields.setdefault("status", ORDER_PAID)
        fields.setdefault("paid_at", now)
    order = Order.objects.create(
        user=user,
        order_id=order_id,
        risk_score=assessment.score,
        risk_level=assessment.level,
        **fields,
    )
    logger.info("Created order %s for user %s with risk %s", order_id, user.pk, assessment.level)
    return order


def add_to_blacklist(user, phone: str, reason: str = "") -> BlacklistEntry:
    """Blacklist a phone; re-adding only updates the reason and keeps the original listing time."""
    entry, created = BlacklistEntry.objects.get_or_create(
        user=user,
        phone=phone.strip(),
        defaults={"reason": reason or "", "created_at": timezone.now()},
    )
    # 重复拉黑只更新原因，保留最早的拉黑时间
    if not created and entry.reason != (reason or ""):
        entry.reason = reason or ""
        entry.save(update_fields=["reason"])
    logger.info("%s blacklist entry %s for user %s", "Added" if created else "Updated", entry.phone, user.pk)
    return entry


def remove_from_blacklist(user, phone: str) -> bool:
    deleted, _ = BlacklistEntry.objects.filter(user=user, phone=phone.strip()).delete()
    if deleted:
        logger.info("Removed blacklist entry %s for user %s", phone, user.pk)
    return bool(deleted)
