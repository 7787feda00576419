from django.contrib import admin

from .models import BlacklistEntry, Order


@admin.register(Order)
class OrderAdmin(admin.ModelAdmin):
    list_display = ("order_id", "customer_name", "phone", "amount", "payment_method", "status", "risk_level", "order_date")
    search_fields = ("order_id", "customer_name", "phone", "product")
    list_filter = ("status", "payment_method", "risk_level", "channel", "province")


@admin.register(BlacklistEntry)
class BlacklistEntryAdmin(admin.ModelAdmin):
    list_display = ("phone", "user", "reason", "created_at")
    search_fields = ("phone", "reason")
