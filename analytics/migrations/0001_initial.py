import django.db.models.deletion
import django.utils.timezone
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):
    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="Order",
            fields=[
                (
                    "id",
                    models.BigAutoField(
                        auto_created=True,
                        primary_key=True,
                        serialize=False,
                        verbose_name="ID",
                    ),
                ),
                ("order_id", models.CharField(max_length=128)),
                ("customer_name", models.CharField(blank=True, default="", max_length=255)),
                ("phone", models.CharField(blank=True, db_index=True, default="", max_length=32)),
                ("address", models.CharField(blank=True, default="", max_length=512)),
                ("amount", models.BigIntegerField(default=0)),
                ("payment_method", models.CharField(blank=True, default="COD", max_length=32)),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("Pending Review", "Pending Review"),
                            ("Verification Required", "Verification Required"),
                            ("Order Confirmation Sent", "Order Confirmation Sent"),
                            ("Order Approved", "Order Approved"),
                            ("Customer Confirmed", "Customer Confirmed"),
                            ("Customer Cancelled", "Customer Cancelled"),
                            ("Customer Unreachable", "Customer Unreachable"),
                            ("Order Rejected", "Order Rejected"),
                            ("Order Paid", "Order Paid"),
                            ("Delivering", "Delivering"),
                            ("Completed", "Completed"),
                            ("Returned", "Returned"),
                            ("Exchanged", "Exchanged"),
                        ],
                        default="Pending Review",
                        max_length=32,
                    ),
                ),
                ("risk_score", models.FloatField(blank=True, null=True)),
                ("risk_level", models.CharField(blank=True, default="", max_length=16)),
                ("discount_amount", models.BigIntegerField(default=0)),
                ("shipping_fee", models.BigIntegerField(default=0)),
                ("refunded_amount", models.BigIntegerField(default=0)),
                ("customer_shipping_paid", models.BigIntegerField(default=0)),
                ("seller_shipping_paid", models.BigIntegerField(default=0)),
                ("channel", models.CharField(blank=True, default="", max_length=64)),
                ("source", models.CharField(blank=True, default="", max_length=64)),
                ("province", models.CharField(blank=True, default="", max_length=128)),
                ("district", models.CharField(blank=True, default="", max_length=128)),
                ("ward", models.CharField(blank=True, default="", max_length=128)),
                ("product", models.CharField(blank=True, default="", max_length=255)),
                ("product_id", models.CharField(blank=True, default="", max_length=64)),
                ("cancel_reason", models.CharField(blank=True, default="", max_length=255)),
                ("reject_reason", models.CharField(blank=True, default="", max_length=255)),
                ("order_date", models.DateTimeField(blank=True, db_index=True, null=True)),
                ("created_at", models.DateTimeField(default=django.utils.timezone.now)),
                ("paid_at", models.DateTimeField(blank=True, null=True)),
                ("customer_confirmed_at", models.DateTimeField(blank=True, null=True)),
                ("confirmation_sent_at", models.DateTimeField(blank=True, null=True)),
                ("cancelled_at", models.DateTimeField(blank=True, null=True)),
                ("shipped_at", models.DateTimeField(blank=True, null=True)),
                ("completed_at", models.DateTimeField(blank=True, null=True)),
                (
                    "user",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="orders",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "ordering": ["-created_at"],
                "constraints": [
                    models.UniqueConstraint(fields=("user", "order_id"), name="unique_order_id_per_user")
                ],
            },
        ),
        migrations.CreateModel(
            name="BlacklistEntry",
            fields=[
                (
                    "id",
                    models.BigAutoField(
                        auto_created=True,
                        primary_key=True,
                        serialize=False,
                        verbose_name="ID",
                    ),
                ),
                ("phone", models.CharField(max_length=32)),
                ("reason", models.CharField(blank=True, default="", max_length=255)),
                ("created_at", models.DateTimeField(default=django.utils.timezone.now)),
                (
                    "user",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="blacklist",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "ordering": ["-created_at"],
                "constraints": [
                    models.UniqueConstraint(fields=("user", "phone"), name="unique_blacklist_phone_per_user")
                ],
            },
        ),
    ]
