from __future__ import annotations

from django.contrib import admin

from . import models


# ---------- ShipmentEvent Admin ----------
@admin.register(models.ShipmentEvent)
class ShipmentEventAdmin(admin.ModelAdmin):
    list_display = ("id", "order", "occurred_at", "status", "location", "description", "created_at")
    list_filter = ("status",)
    list_select_related = ("order",)
    search_fields = ("description", "status", "order__tracking_number")
    ordering = ("-occurred_at",)

    # append-only: 관리자 화면에서도 수정/삭제 막음
    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


# ---------- TrackingJob Admin ----------
@admin.register(models.TrackingJob)
class TrackingJobAdmin(admin.ModelAdmin):
    list_display = (
        "name",
        "status",
        "interval_minutes",
        "last_run",
        "next_run",
        "orders_processed",
        "error_count",
        "cycle_in_progress",
    )
    readonly_fields = (
        "run_id",
        "last_run",
        "next_run",
        "orders_processed",
        "errors",
        "cycle_in_progress",
        "cycle_started_at",
        "created_at",
        "updated_at",
    )

    def error_count(self, obj):
        return len(obj.errors or [])
    error_count.short_description = "Errors"
