from __future__ import annotations

from django.db import models


class ShipmentEvent(models.Model):
    """
    운송사에서 받은 추적 이벤트 (append-only).
    (order, occurred_at, description) 조합은 한 번만 저장된다.
    """

    order = models.ForeignKey(
        "orders.Order", on_delete=models.CASCADE, related_name="shipment_events"
    )
    # 운송사 원본 이벤트 코드 (예: BDE, PO, RO)
    status = models.CharField(max_length=24, blank=True, default="")
    location = models.CharField(max_length=200, blank=True, default="")
    description = models.CharField(max_length=255, blank=True, default="")
    occurred_at = models.DateTimeField()

    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        indexes = [
            models.Index(fields=["order", "occurred_at"], name="shipments_ev_order_occ_idx"),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=("order", "occurred_at", "description"),
                name="uq_shipment_event_order_time_desc",
            )
        ]

    def __str__(self) -> str:
        return f"{self.order_id}@{self.occurred_at} {self.status}"


class TrackingJobStatus(models.TextChoices):
    RUNNING = "running", "Running"
    STOPPED = "stopped", "Stopped"
    ERROR = "error", "Error"


class TrackingJob(models.Model):
    """
    자동 추적 스케줄러 상태. 스케줄러 이름당 한 행.
    beat/worker/API 프로세스가 같은 상태를 보도록 DB에 둔다.
    """

    name = models.CharField(max_length=40, unique=True)
    run_id = models.CharField(max_length=64, blank=True, default="")
    status = models.CharField(
        max_length=16,
        choices=TrackingJobStatus.choices,
        default=TrackingJobStatus.STOPPED,
    )
    interval_minutes = models.PositiveIntegerField(default=60)

    last_run = models.DateTimeField(null=True, blank=True)
    next_run = models.DateTimeField(null=True, blank=True)
    orders_processed = models.PositiveIntegerField(default=0)
    errors = models.JSONField(default=list, blank=True)

    # 사이클 재진입 방지 플래그 (조건부 UPDATE 로만 변경)
    cycle_in_progress = models.BooleanField(default=False)
    cycle_started_at = models.DateTimeField(null=True, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    @property
    def is_running(self) -> bool:
        # error 는 표시용 상태일 뿐, 타이머는 계속 돈다
        return self.status != TrackingJobStatus.STOPPED

    def __str__(self) -> str:
        return f"{self.name}:{self.status}"
