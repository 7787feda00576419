from django.test import SimpleTestCase

from analytics.kpis import (
    compute_funnel_summary,
    compute_operational_stats,
    compute_risk_stats,
    compute_stats,
    risk_score_buckets,
    verification_funnel,
)
from analytics.statuses import (
    COMPLETED,
    CUSTOMER_CANCELLED,
    CUSTOMER_CONFIRMED,
    DELIVERING,
    ORDER_PAID,
    ORDER_REJECTED,
    PENDING_REVIEW,
)

from .fixtures import order_row, utc


def mixed_orders():
    return [
        order_row(
            status=COMPLETED,
            amount=200_000,
            paid_at="2024-01-12T08:00:00Z",
            risk_level="low",
            customer_shipping_paid=30_000,
            seller_shipping_paid=20_000,
        ),
        order_row(status=CUSTOMER_CANCELLED, amount=100_000, risk_level="medium"),
        order_row(
            status=ORDER_PAID,
            amount=300_000,
            payment_method="PREPAID",
            paid_at="2024-01-10T08:00:00Z",
            seller_shipping_paid=10_000,
        ),
        order_row(
            status=CUSTOMER_CONFIRMED,
            amount=500_000,
            risk_level="High",
            customer_confirmed_at="2024-01-10T09:00:00Z",
        ),
    ]


class ComputeStatsTests(SimpleTestCase):
    def test_totals_and_revenue(self):
        stats = compute_stats(mixed_orders())
        self.assertEqual(stats["total_orders"], 4)
        self.assertEqual(stats["cod_orders"], 3)
        self.assertEqual(stats["prepaid_orders"], 1)
        self.assertEqual(stats["gross_revenue"], 500_000)
        self.assertEqual(stats["logistics_cost"], 30_000)
        self.assertEqual(stats["net_revenue"], 470_000)
        self.assertEqual(stats["shipping_profit"], 0)
        self.assertEqual(stats["avg_order_value"], 250_000)

    def test_cod_verification_metrics(self):
        stats = compute_stats(mixed_orders())
        self.assertEqual(stats["verified_outcome_count"], 3)
        self.assertEqual(stats["verified_outcome_rate"], 100.0)
        self.assertEqual(stats["converted_orders"], 1)
        self.assertEqual(stats["converted_revenue"], 200_000)
        self.assertEqual(stats["converted_rate"], 33.3)
        self.assertEqual(stats["cod_cancelled"], 1)
        self.assertEqual(stats["cod_confirmed"], 1)
        self.assertEqual(stats["cancel_rate"], 50.0)
        self.assertEqual(stats["pending_revenue"], 500_000)
        self.assertEqual(stats["confirmed_cod_revenue"], 500_000)
        self.assertEqual(stats["delivered_not_paid_revenue"], 0)
        self.assertEqual((stats["risk_low"], stats["risk_medium"], stats["risk_high"]), (1, 1, 1))

    def test_paid_timestamp_wins_over_status(self):
        # status moved on to Completed without losing the payment
        orders = [order_row(status=COMPLETED, amount=400_000, paid_at="2024-01-11T00:00:00Z")]
        orders.append(order_row(status=ORDER_PAID, amount=999_000))
        stats = compute_stats(orders)
        self.assertEqual(stats["gross_revenue"], 400_000)
        self.assertEqual(stats["delivered_not_paid_revenue"], 0)

    def test_empty_input_is_zero_state(self):
        stats = compute_stats([])
        self.assertEqual(stats["total_orders"], 0)
        self.assertEqual(stats["avg_order_value"], 0)
        self.assertEqual(stats["cancel_rate"], 0)
        self.assertEqual(stats["converted_rate"], 0)

    def test_conservation_and_rates(self):
        for orders in ([], mixed_orders(), mixed_orders()[2:]):
            stats = compute_stats(orders)
            self.assertEqual(stats["cod_orders"] + stats["prepaid_orders"], stats["total_orders"])
            for key in ("verified_outcome_rate", "converted_rate", "cancel_rate"):
                self.assertGreaterEqual(stats[key], 0)
                self.assertLessEqual(stats[key], 100)

    def test_idempotent(self):
        orders = mixed_orders()
        self.assertEqual(compute_stats(orders), compute_stats(orders))
        self.assertEqual(compute_risk_stats(orders), compute_risk_stats(orders))


class RiskStatsTests(SimpleTestCase):
    def orders(self):
        return [
            order_row(risk_score=20, risk_level="low", province="Hà Nội", product="Áo"),
            order_row(risk_score=80, risk_level="high", province="Hồ Chí Minh", product="Áo", phone="0911111111"),
            order_row(risk_score=90, risk_level="high", province="Hồ Chí Minh", product="", phone="0911111111"),
            order_row(risk_score=None, risk_level=""),
            order_row(risk_score=10, risk_level="low", payment_method="PREPAID"),
        ]

    def test_average_and_tiers(self):
        stats = compute_risk_stats(self.orders())
        self.assertEqual(stats["avg_risk_score"], 63.3)
        self.assertEqual(stats["high_risk_orders"], 2)
        self.assertEqual(stats["medium_risk_orders"], 0)
        self.assertEqual(stats["low_risk_orders"], 1)
        self.assertEqual(stats["score_over_time"], [{"date": "2024-01-10", "avg_score": 63.3}])

    def test_groupings(self):
        stats = compute_risk_stats(self.orders())
        self.assertEqual(
            stats["by_province"],
            [{"province": "Hồ Chí Minh", "avg_score": 85.0}, {"province": "Hà Nội", "avg_score": 20.0}],
        )
        self.assertEqual(stats["by_product"][0], {"product_name": "Unknown Product", "avg_score": 90.0})
        self.assertEqual(stats["repeat_offenders"], [{"customer": "0911111111", "orders": 2}])

    def test_no_scores_is_none_not_zero(self):
        stats = compute_risk_stats([order_row(risk_score=None)])
        self.assertIsNone(stats["avg_risk_score"])
        self.assertIsNone(compute_risk_stats([])["avg_risk_score"])
        self.assertEqual(compute_risk_stats([])["repeat_offenders"], [])

    def test_buckets(self):
        buckets = risk_score_buckets(
            [
                order_row(risk_score=20, status=COMPLETED),
                order_row(risk_score=50, status=CUSTOMER_CANCELLED),
                order_row(risk_score=75),
                order_row(risk_score=None, status=ORDER_REJECTED),
                order_row(risk_score=90, payment_method="PREPAID"),
            ]
        )
        by_key = {b["key"]: b for b in buckets}
        self.assertEqual([b["label"] for b in buckets], ["0-30", "31-70", "71-100", "No Score"])
        self.assertEqual(by_key["0-30"]["success"], 1)
        self.assertEqual(by_key["31-70"]["boom_rate"], 100.0)
        self.assertEqual(by_key["71-100"]["total"], 1)
        self.assertEqual(by_key["no_score"]["failed"], 1)
        self.assertEqual(sum(b["total"] for b in risk_score_buckets([])), 0)


class FunnelTests(SimpleTestCase):
    def test_summary(self):
        orders = [
            order_row(status=PENDING_REVIEW, risk_level="low"),
            order_row(status=PENDING_REVIEW, risk_level="high"),
            order_row(status=CUSTOMER_CONFIRMED, risk_level="medium"),
            order_row(status=ORDER_REJECTED, risk_level="low"),
            order_row(status=COMPLETED, risk_level="low", paid_at="2024-01-12T00:00:00Z"),
            order_row(status=CUSTOMER_CANCELLED, risk_level="medium"),
            order_row(status=ORDER_PAID, payment_method="PREPAID", paid_at="2024-01-10T00:00:00Z"),
        ]
        summary = compute_funnel_summary(orders)
        self.assertEqual(summary["total_cod_orders"], 6)
        self.assertEqual(summary["approved_cod_orders"], 4)
        self.assertEqual(summary["paid_cod_orders"], 1)
        self.assertEqual(summary["completed_cod_orders"], 1)
        self.assertEqual(summary["failed_cod_orders"], 2)
        self.assertEqual(summary["approval_rate"], 66.7)
        self.assertEqual(summary["payment_conversion_rate"], 25.0)
        self.assertEqual(summary["delivery_success_rate"], 25.0)
        self.assertEqual(summary["failed_rate"], 33.3)

    def test_paid_outside_approved_orders_keeps_rates_bounded(self):
        orders = [
            order_row(status=PENDING_REVIEW, risk_level="low"),
            order_row(status=ORDER_REJECTED, risk_level="medium", paid_at="2024-01-11T00:00:00Z"),
            order_row(status=ORDER_REJECTED, risk_level="medium", paid_at="2024-01-11T00:00:00Z"),
            order_row(status=COMPLETED, risk_level="high", paid_at="2024-01-12T00:00:00Z"),
        ]
        summary = compute_funnel_summary(orders)
        self.assertEqual(summary["approved_cod_orders"], 2)
        self.assertEqual(summary["paid_cod_orders"], 1)
        self.assertEqual(summary["payment_conversion_rate"], 50.0)
        for key in ("approval_rate", "payment_conversion_rate", "delivery_success_rate", "failed_rate"):
            self.assertGreaterEqual(summary[key], 0)
            self.assertLessEqual(summary[key], 100)

    def test_empty_summary(self):
        summary = compute_funnel_summary([])
        self.assertEqual(summary["approval_rate"], 0)
        self.assertEqual(summary["payment_conversion_rate"], 0)

    def test_verification_steps(self):
        sent = "2024-01-10T09:00:00Z"
        steps = verification_funnel(
            [
                order_row(confirmation_sent_at=sent, customer_confirmed_at="2024-01-10T10:00:00Z"),
                order_row(confirmation_sent_at=sent),
                order_row(confirmation_sent_at=sent),
                order_row(status=COMPLETED),
            ]
        )
        counts = {step["key"]: step["count"] for step in steps}
        self.assertEqual(counts["created"], 4)
        self.assertEqual(counts["confirmation_sent"], 3)
        self.assertEqual(counts["no_response"], 2)
        self.assertEqual(counts["paid"], 1)


class OperationalStatsTests(SimpleTestCase):
    def test_latencies_and_stuck_orders(self):
        orders = [
            order_row(status=PENDING_REVIEW, created_at="2024-01-10T08:00:00Z"),
            order_row(
                status=CUSTOMER_CONFIRMED,
                created_at="2024-01-10T08:00:00Z",
                customer_confirmed_at="2024-01-10T09:30:00Z",
            ),
            order_row(
                status=DELIVERING,
                payment_method="PREPAID",
                created_at="2024-01-04T08:00:00Z",
                paid_at="2024-01-05T08:00:00Z",
                shipped_at="2024-01-05T00:00:00Z",
            ),
        ]
        stats = compute_operational_stats(orders, now=utc(2024, 1, 12))
        self.assertEqual(stats["avg_minutes_to_confirmation"], 90)
        self.assertEqual(stats["avg_hours_to_paid"], 24)
        self.assertEqual(stats["pending_confirmation_over_24h"], 1)
        self.assertEqual(stats["delivering_over_3_days"], 1)

    def test_no_data_is_none(self):
        stats = compute_operational_stats([], now=utc(2024, 1, 12))
        self.assertIsNone(stats["avg_minutes_to_confirmation"])
        self.assertIsNone(stats["avg_hours_to_paid"])
        self.assertEqual(stats["pending_confirmation_over_24h"], 0)
