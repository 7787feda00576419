import random
from datetime import timedelta

from django.contrib.auth import get_user_model
from django.core.management.base import BaseCommand, CommandError
from django.utils import timezone

from analytics.services import create_order
from analytics.statuses import (
    COMPLETED,
    CUSTOMER_CANCELLED,
    CUSTOMER_CONFIRMED,
    CUSTOMER_UNREACHABLE,
    DELIVERING,
    ORDER_CONFIRMATION_SENT,
    ORDER_PAID,
    ORDER_REJECTED,
    PENDING_REVIEW,
)

PROVINCES = {
    "Hà Nội": ["Ba Đình", "Cầu Giấy", "Đống Đa"],
    "Hồ Chí Minh": ["Quận 1", "Quận 3", "Bình Thạnh"],
    "Đà Nẵng": ["Hải Châu", "Sơn Trà"],
    "Bình Dương": ["Thủ Dầu Một", "Dĩ An"],
}
PRODUCTS = [
    ("P001", "Áo thun basic", 199_000),
    ("P002", "Trà giảm cân", 450_000),
    ("P003", "Tai nghe bluetooth", 1_290_000),
    ("P004", "Serum B5", 320_000),
]
CHANNELS = ["Facebook", "TikTok", "Shopee", "Website"]
SOURCES = ["ads", "organic", "livestream"]
COD_OUTCOMES = [
    PENDING_REVIEW,
    ORDER_CONFIRMATION_SENT,
    CUSTOMER_CONFIRMED,
    DELIVERING,
    COMPLETED,
    ORDER_PAID,
    CUSTOMER_CANCELLED,
    CUSTOMER_UNREACHABLE,
    ORDER_REJECTED,
]


class Command(BaseCommand):
    help = "Generate random demo orders for a user"

    def add_arguments(self, parser):
        parser.add_argument("username")
        parser.add_argument("--orders", type=int, default=200)
        parser.add_argument("--customers", type=int, default=60)
        parser.add_argument("--days", type=int, default=90)
        parser.add_argument("--seed", type=int, default=None)

    def handle(self, *args, **options):
        user = get_user_model().objects.filter(username=options["username"]).first()
        if user is None:
            raise CommandError(f"用户不存在: {options['username']}")
        rng = random.Random(options["seed"])
        now = timezone.now()
        phones = [f"09{rng.randint(0, 99_999_999):08d}" for _ in range(options["customers"])]

        for i in range(options["orders"]):
            province = rng.choice(list(PROVINCES))
            product_id, product, price = rng.choice(PRODUCTS)
            ordered_at = now - timedelta(days=rng.randint(0, options["days"]), minutes=rng.randint(0, 1440))
            quantity = rng.randint(1, 3)
            cod = rng.random() < 0.7
            fields = {
                "customer_name": f"Khách {i + 1}",
                "phone": rng.choice(phones),
                "address": f"{rng.randint(1, 300)} đường số {rng.randint(1, 30)}, {province}",
                "amount": price * quantity,
                "payment_method": "COD" if cod else "PREPAID",
                "province": province,
                "district": rng.choice(PROVINCES[province]),
                "product": product,
                "product_id": product_id,
                "channel": rng.choice(CHANNELS),
                "source": rng.choice(SOURCES),
                "order_date": ordered_at,
                "created_at": ordered_at,
                "customer_shipping_paid": 30_000,
                "seller_shipping_paid": rng.choice([20_000, 25_000, 30_000]),
            }
            if cod:
                self._apply_cod_outcome(rng, fields, ordered_at)
            create_order(user, f"DEMO-{i + 1:05d}", **fields)

        self.stdout.write(self.style.SUCCESS(f"Created {options['orders']} demo orders for {user.username}"))

    def _apply_cod_outcome(self, rng, fields, ordered_at):
        status = rng.choice(COD_OUTCOMES)
        fields["status"] = status
        if status != PENDING_REVIEW:
            fields["confirmation_sent_at"] = ordered_at + timedelta(minutes=rng.randint(5, 120))
        if status in (CUSTOMER_CONFIRMED, DELIVERING, COMPLETED, ORDER_PAID):
            fields["customer_confirmed_at"] = ordered_at + timedelta(hours=rng.randint(1, 48))
        if status in (DELIVERING, COMPLETED, ORDER_PAID):
            fields["shipped_at"] = ordered_at + timedelta(days=rng.randint(1, 3))
        if status in (COMPLETED, ORDER_PAID):
            fields["paid_at"] = ordered_at + timedelta(days=rng.randint(3, 6))
        if status == COMPLETED:
            fields["completed_at"] = fields["paid_at"]
        if status == CUSTOMER_CANCELLED:
            fields["cancel_reason"] = rng.choice(["Đổi ý", "Giá cao", ""])
            fields["cancelled_at"] = ordered_at + timedelta(hours=rng.randint(1, 24))
        if status == ORDER_REJECTED:
            fields["reject_reason"] = rng.choice(["Nghi ngờ gian lận", "Hết hàng", ""])
