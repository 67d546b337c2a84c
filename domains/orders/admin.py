# domains/orders/admin.py
from django.contrib import admin

from .models import Order


@admin.register(Order)
class OrderAdmin(admin.ModelAdmin):
    list_display = (
        "id",
        "customer_name",
        "customer_email",
        "tracking_number",
        "status",
        "current_location",
        "updated_at",
    )
    list_filter = ("status", "updated_at")
    search_fields = ("id", "customer_email", "customer_name", "tracking_number")
    ordering = ("-created_at",)
    # 추적 서비스가 갱신하는 필드
    readonly_fields = ("current_location", "created_at", "updated_at")
