from django.urls import path

from .views import (
    OrderTrackingHistoryAPI,
    OrderTrackingUpdateAPI,
    TrackingCodeAPI,
    TrackingJobProcessAPI,
    TrackingJobStartAPI,
    TrackingJobStatusAPI,
    TrackingJobStopAPI,
    TrackingStatsAPI,
)

app_name = "tracking"

urlpatterns = [
    # 스케줄러 제어 (트레일링 슬래시 필수!)
    path("job/start/", TrackingJobStartAPI.as_view(), name="job-start"),
    path("job/stop/", TrackingJobStopAPI.as_view(), name="job-stop"),
    path("job/status/", TrackingJobStatusAPI.as_view(), name="job-status"),
    path("job/process/", TrackingJobProcessAPI.as_view(), name="job-process"),
    # 주문 단위
    path("orders/<int:order_id>/update/", OrderTrackingUpdateAPI.as_view(), name="order-update"),
    path("orders/<int:order_id>/history/", OrderTrackingHistoryAPI.as_view(), name="order-history"),
    # 운송장 직접 조회
    path("code/<str:tracking_code>/", TrackingCodeAPI.as_view(), name="code"),
    path("stats/", TrackingStatsAPI.as_view(), name="stats"),
]
