from __future__ import annotations

from django.conf import settings
from rest_framework import serializers

from .models import TrackingJob


def _default_interval() -> int:
    return int((getattr(settings, "TRACKING", None) or {}).get("interval_minutes", 60))


# ---------------------------
# 출력용: 스케줄러 상태
# 대시보드 계약에 맞춰 camelCase 로 내보낸다
# ---------------------------
class TrackingJobSerializer(serializers.ModelSerializer):
    id = serializers.CharField(source="run_id")
    intervalMinutes = serializers.IntegerField(source="interval_minutes")
    lastRun = serializers.DateTimeField(source="last_run", allow_null=True)
    nextRun = serializers.DateTimeField(source="next_run", allow_null=True)
    ordersProcessed = serializers.IntegerField(source="orders_processed")
    errors = serializers.ListField(child=serializers.CharField())
    cycleInProgress = serializers.BooleanField(source="cycle_in_progress")

    class Meta:
        model = TrackingJob
        fields = (
            "id",
            "name",
            "status",
            "intervalMinutes",
            "lastRun",
            "nextRun",
            "ordersProcessed",
            "errors",
            "cycleInProgress",
        )


# ---------------------------
# 입력용: 자동 추적 시작
# ---------------------------
class StartTrackingSerializer(serializers.Serializer):
    intervalMinutes = serializers.IntegerField(
        required=False, min_value=1, max_value=24 * 60
    )

    def validate(self, attrs):
        attrs.setdefault("intervalMinutes", _default_interval())
        return attrs


# ---------------------------
# 문서화용 응답 스키마
# ---------------------------
class TrackingUpdateSerializer(serializers.Serializer):
    orderId = serializers.IntegerField()
    trackingNumber = serializers.CharField()
    status = serializers.CharField()
    location = serializers.CharField(allow_null=True)
    description = serializers.CharField()
    timestamp = serializers.DateTimeField()
    isDelivered = serializers.BooleanField()
    hasNewEvents = serializers.BooleanField()
    createdEvents = serializers.IntegerField()


class TrackingHistoryItemSerializer(serializers.Serializer):
    id = serializers.IntegerField()
    status = serializers.CharField()
    location = serializers.CharField()
    description = serializers.CharField()
    timestamp = serializers.DateTimeField()
    formattedDate = serializers.CharField()
    formattedTime = serializers.CharField()
