from django.conf import settings
from django.db import models
from django.utils import timezone

from .statuses import PENDING_REVIEW, STATUS_CHOICES


class Order(models.Model):
    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name="orders")
    order_id = models.CharField(max_length=128)
    customer_name = models.CharField(max_length=255, blank=True, default="")
    phone = models.CharField(max_length=32, blank=True, default="", db_index=True)
    address = models.CharField(max_length=512, blank=True, default="")
    amount = models.BigIntegerField(default=0)
    payment_method = models.CharField(max_length=32, blank=True, default="COD")
    status = models.CharField(max_length=32, choices=STATUS_CHOICES, default=PENDING_REVIEW)
    risk_score = models.FloatField(null=True, blank=True)
    risk_level = models.CharField(max_length=16, blank=True, default="")
    discount_amount = models.BigIntegerField(default=0)
    shipping_fee = models.BigIntegerField(default=0)
    refunded_amount = models.BigIntegerField(default=0)
    customer_shipping_paid = models.BigIntegerField(default=0)
    seller_shipping_paid = models.BigIntegerField(default=0)
    channel = models.CharField(max_length=64, blank=True, default="")
    source = models.CharField(max_length=64, blank=True, default="")
    province = models.CharField(max_length=128, blank=True, default="")
    district = models.CharField(max_length=128, blank=True, default="")
    ward = models.CharField(max_length=128, blank=True, default="")
    product = models.CharField(max_length=255, blank=True, default="")
    product_id = models.CharField(max_length=64, blank=True, default="")
    cancel_reason = models.CharField(max_length=255, blank=True, default="")
    reject_reason = models.CharField(max_length=255, blank=True, default="")
    order_date = models.DateTimeField(null=True, blank=True, db_index=True)
    created_at = models.DateTimeField(default=timezone.now)
    paid_at = models.DateTimeField(null=True, blank=True)
    customer_confirmed_at = models.DateTimeField(null=True, blank=True)
    confirmation_sent_at = models.DateTimeField(null=True, blank=True)
    cancelled_at = models.DateTimeField(null=True, blank=True)
    shipped_at = models.DateTimeField(null=True, blank=True)
    completed_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["-created_at"]
        constraints = [models.UniqueConstraint(fields=["user", "order_id"], name="unique_order_id_per_user")]

    def __str__(self) -> str:
        return f"{self.order_id} ({self.status})"


class BlacklistEntry(models.Model):
    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name="blacklist")
    phone = models.CharField(max_length=32)
    reason = models.CharField(max_length=255, blank=True, default="")
    created_at = models.DateTimeField(default=timezone.now)

    class Meta:
        ordering = ["-created_at"]
        constraints = [models.UniqueConstraint(fields=["user", "phone"], name="unique_blacklist_phone_per_user")]

    def __str__(self) -> str:
        return self.phone
