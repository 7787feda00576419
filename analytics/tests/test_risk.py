from django.test import SimpleTestCase

from analytics.risk import (
    build_customer_risk_records,
    earliest_blacklist_times,
    evaluate_risk,
    replay_customer_risk,
    risk_breakdown,
    risk_level_for,
)
from analytics.statuses import (
    COMPLETED,
    CUSTOMER_CANCELLED,
    CUSTOMER_CONFIRMED,
    ORDER_PAID,
    ORDER_REJECTED,
)

from .fixtures import order_row, utc

BLACKLIST = [{"phone": "0900000001", "created_at": "2024-01-01T00:00:00Z"}]


class EvaluateRiskTests(SimpleTestCase):
    def test_non_cod_is_not_scored(self):
        result = evaluate_risk("PREPAID", 5_000_000, "0912345678")
        self.assertIsNone(result.score)
        self.assertEqual(result.level, "none")
        self.assertEqual(result.reasons, [])
        self.assertEqual(result.version, "v1")

    def test_plain_cod_order(self):
        result = evaluate_risk("COD", 200_000, "0912345678")
        self.assertEqual(result.score, 30)
        self.assertEqual(result.level, "low")
        self.assertEqual(result.reasons, ["COD order"])

    def test_amount_and_failure_history(self):
        past = [{"status": CUSTOMER_CANCELLED}, {"status": ORDER_REJECTED}, {"status": CUSTOMER_CANCELLED}]
        result = evaluate_risk("cod", 1_000_000, "0912345678", past_orders=past)
        self.assertEqual(result.score, 80)
        self.assertEqual(result.level, "high")

    def test_single_past_failure_and_industrial_address(self):
        result = evaluate_risk(
            "COD",
            100_000,
            "0912345678",
            address="Lô 5, Khu Công Nghiệp VSIP, Bình Dương",
            past_orders=[{"status": ORDER_REJECTED}, {"status": COMPLETED}],
        )
        self.assertEqual(result.score, 50)
        self.assertEqual(result.level, "medium")
        self.assertIn("Address in industrial area", result.reasons)

    def test_phone_quality(self):
        self.assertEqual(evaluate_risk("COD", 0, "12345").score, 50)
        self.assertEqual(evaluate_risk("COD", 0, "0999999999").score, 40)
        self.assertEqual(evaluate_risk("COD", 0, "+84 912 345 678").score, 30)

    def test_blacklist_forces_high(self):
        result = evaluate_risk("COD", 100_000, "0912345678", blacklisted_phones={"0912345678"})
        self.assertEqual(result.score, 80)
        self.assertEqual(result.level, "high")
        self.assertTrue(result.reasons)

    def test_score_is_clamped(self):
        result = evaluate_risk(
            "COD",
            2_000_000,
            "abc",
            address="khu công nghiệp Tân Bình",
            product="Trà giảm cân thảo mộc",
            past_orders=[{"status": CUSTOMER_CANCELLED}] * 5,
        )
        self.assertEqual(result.score, 100)

    def test_missing_optional_fields_do_not_raise(self):
        result = evaluate_risk(None, None, None)
        self.assertEqual(result.score, 30)
        self.assertTrue(result.reasons)

    def test_deterministic(self):
        args = ("COD", 1_200_000, "0912345678")
        self.assertEqual(evaluate_risk(*args).as_dict(), evaluate_risk(*args).as_dict())

    def test_level_thresholds(self):
        self.assertEqual(risk_level_for(None), "none")
        self.assertEqual(risk_level_for(0), "low")
        self.assertEqual(risk_level_for(30), "low")
        self.assertEqual(risk_level_for(30.5), "medium")
        self.assertEqual(risk_level_for(70), "medium")
        self.assertEqual(risk_level_for(71), "high")


class RiskBreakdownTests(SimpleTestCase):
    def test_factors_add_up(self):
        result = risk_breakdown("COD", 800_000, "0912345678", product="Serum B5", bad_orders=1)
        self.assertEqual([f["key"] for f in result["factors"]], ["amount", "product", "history_bad"])
        self.assertEqual(result["score"], 15 + 5 + 10)
        self.assertEqual(result["level"], "low")

    def test_good_history_discount(self):
        result = risk_breakdown("COD", 100_000, "0912345678", good_orders=3)
        self.assertEqual(result["score"], 0)
        self.assertEqual(result["factors"][-1]["score"], -10)

    def test_non_cod(self):
        self.assertEqual(risk_breakdown("BANK", 100_000, "0912345678")["factors"], [])


class CustomerReplayTests(SimpleTestCase):
    def test_base_defaults_to_fifty(self):
        record = replay_customer_risk([order_row(status=CUSTOMER_CANCELLED)])
        self.assertEqual(record.base_risk_score, 50.0)
        self.assertFalse(record.has_scored_orders)
        self.assertEqual(record.customer_risk_score, 70.0)
        self.assertEqual(record.customer_risk_level, "medium")

    def test_base_is_mean_of_cod_scores_only(self):
        orders = [
            order_row(risk_score=40, status=CUSTOMER_CONFIRMED),
            order_row(risk_score=60, status=CUSTOMER_CONFIRMED),
            order_row(risk_score=5, payment_method="PREPAID", status=CUSTOMER_CONFIRMED),
        ]
        record = replay_customer_risk(orders)
        self.assertEqual(record.base_risk_score, 50.0)
        # Customer Confirmed carries no delta
        self.assertEqual(record.customer_risk_score, 50.0)

    def test_success_deltas(self):
        orders = [
            order_row(status=ORDER_PAID, amount=500_000),
            order_row(status=COMPLETED, amount=1_000_000, payment_method="PREPAID"),
        ]
        self.assertEqual(replay_customer_risk(orders).customer_risk_score, 35.0)

    def test_blacklist_doubles_failure_after_listing(self):
        after = order_row(status=CUSTOMER_CANCELLED, risk_score=30, created_at="2024-01-02T00:00:00Z")
        before = order_row(status=CUSTOMER_CANCELLED, risk_score=30, created_at="2023-12-31T00:00:00Z")
        self.assertEqual(replay_customer_risk([after], BLACKLIST).customer_risk_score, 70.0)
        self.assertEqual(replay_customer_risk([before], BLACKLIST).customer_risk_score, 50.0)

    def test_blacklist_comparison_is_strict(self):
        same_time = order_row(status=CUSTOMER_CANCELLED, risk_score=30, created_at="2024-01-01T00:00:00Z")
        self.assertEqual(replay_customer_risk([same_time], BLACKLIST).customer_risk_score, 50.0)

    def test_blacklist_uses_earliest_entry(self):
        entries = BLACKLIST + [{"phone": "0900000001", "created_at": "2024-03-01T00:00:00Z"}]
        self.assertEqual(earliest_blacklist_times(entries)["0900000001"], utc(2024, 1, 1))
        order = order_row(status=CUSTOMER_CANCELLED, risk_score=30, created_at="2024-02-01T00:00:00Z")
        self.assertEqual(replay_customer_risk([order], entries).customer_risk_score, 70.0)

    def test_rejected_orders_are_not_doubled(self):
        order = order_row(status=ORDER_REJECTED, risk_score=30, created_at="2024-01-02T00:00:00Z")
        self.assertEqual(replay_customer_risk([order], BLACKLIST).customer_risk_score, 50.0)

    def test_successful_order_after_blacklist_is_doubled_too(self):
        order = order_row(status=ORDER_PAID, risk_score=30, created_at="2024-01-02T00:00:00Z")
        self.assertEqual(replay_customer_risk([order], BLACKLIST).customer_risk_score, 20.0)

    def test_final_score_is_clamped(self):
        failures = [
            order_row(status=CUSTOMER_CANCELLED, created_at=f"2024-01-{day:02d}T00:00:00Z")
            for day in range(2, 29)
        ] * 2
        record = replay_customer_risk(failures, BLACKLIST)
        self.assertEqual(record.customer_risk_score, 100.0)
        self.assertEqual(record.customer_risk_level, "high")

        successes = [order_row(status=COMPLETED, amount=2_000_000) for _ in range(30)]
        self.assertEqual(replay_customer_risk(successes).customer_risk_score, 0.0)

    def test_no_clamping_mid_replay(self):
        # 50 -> 130 -> 50; clamping on the way would end at 20
        orders = [order_row(status=CUSTOMER_CANCELLED, created_at="2024-01-01T00:00:00Z") for _ in range(4)]
        orders += [order_row(status=COMPLETED, amount=2_000_000, created_at="2024-02-01T00:00:00Z") for _ in range(8)]
        self.assertEqual(replay_customer_risk(orders).customer_risk_score, 50.0)

    def test_input_order_does_not_matter(self):
        first = order_row(status=ORDER_PAID, created_at="2024-01-05T00:00:00Z")
        second = order_row(status=CUSTOMER_CANCELLED, created_at="2023-12-20T00:00:00Z")
        forward = replay_customer_risk([first, second], BLACKLIST)
        backward = replay_customer_risk([second, first], BLACKLIST)
        self.assertEqual(forward.customer_risk_score, backward.customer_risk_score)
        self.assertEqual(forward.customer_risk_score, 60.0)

    def test_records_per_phone_sorted_by_last_order(self):
        orders = [
            order_row(phone="0900000001", customer_name="Old Name", order_date="2024-01-01T00:00:00Z"),
            order_row(phone="0900000001", customer_name="New Name", order_date="2024-01-20T00:00:00Z"),
            order_row(phone="0900000002", order_date="2024-01-25T00:00:00Z", status=CUSTOMER_CANCELLED),
            order_row(phone="", order_date="2024-01-26T00:00:00Z"),
        ]
        records = build_customer_risk_records(orders)
        self.assertEqual([r.phone for r in records], ["0900000002", "0900000001"])
        self.assertEqual(records[1].full_name, "New Name")
        self.assertEqual(records[1].total_orders, 2)
        self.assertEqual(records[1].last_order_at, utc(2024, 1, 20))
        self.assertEqual(records[0].failed_count, 1)

    def test_empty_history(self):
        self.assertEqual(build_customer_risk_records([]), [])
        self.assertIsNone(replay_customer_risk([]))
