from __future__ import annotations

from django.db import models


class OrderStatus(models.TextChoices):
    PENDING = "PENDING", "Pending"
    PAID = "PAID", "Paid"
    PROCESSING = "PROCESSING", "Processing"
    SHIPPED = "SHIPPED", "Shipped"
    IN_TRANSIT = "IN_TRANSIT", "In Transit"
    OUT_FOR_DELIVERY = "OUT_FOR_DELIVERY", "Out For Delivery"
    DELIVERED = "DELIVERED", "Delivered"
    CANCELED = "CANCELED", "Canceled"


# 이 상태에 도달하면 운송장 추적 대상에서 빠진다
TERMINAL_STATUSES = (OrderStatus.DELIVERED, OrderStatus.CANCELED)

# 정상 진행 순서. 추적은 이 순서에서 뒤로 가지 않는다 (CANCELED 는 순서 밖)
STATUS_PROGRESSION = (
    OrderStatus.PENDING,
    OrderStatus.PAID,
    OrderStatus.PROCESSING,
    OrderStatus.SHIPPED,
    OrderStatus.IN_TRANSIT,
    OrderStatus.OUT_FOR_DELIVERY,
    OrderStatus.DELIVERED,
)


def statuses_not_after(status) -> list:
    """status 로 옮겨가도 후퇴가 아닌 (종료되지 않은) 현재 상태들"""
    if status not in STATUS_PROGRESSION:
        return []
    upto = STATUS_PROGRESSION[: STATUS_PROGRESSION.index(status) + 1]
    return [s for s in upto if s not in TERMINAL_STATUSES]


class OrderQuerySet(models.QuerySet):
    def trackable(self):
        """운송장이 있고 아직 종료되지 않은 주문"""
        return (
            self.exclude(tracking_number__isnull=True)
            .exclude(tracking_number="")
            .exclude(status__in=TERMINAL_STATUSES)
        )


class Order(models.Model):
    # 주문 생성/결제/출고는 다른 도메인 책임. 추적 쪽은 status/current_location 만 갱신한다.
    customer_name = models.CharField(max_length=120, blank=True, default="")
    customer_email = models.EmailField(blank=True, default="")

    tracking_number = models.CharField(max_length=64, null=True, blank=True)
    status = models.CharField(
        max_length=24,
        choices=OrderStatus.choices,
        default=OrderStatus.PENDING,
    )
    current_location = models.CharField(max_length=200, null=True, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = OrderQuerySet.as_manager()

    class Meta:
        indexes = [
            models.Index(fields=["tracking_number"], name="orders_trackno_idx"),
            models.Index(fields=["status", "updated_at"], name="orders_status_upd_idx"),
        ]

    @property
    def is_trackable(self) -> bool:
        return bool(self.tracking_number) and self.status not in TERMINAL_STATUSES

    def __str__(self) -> str:
        return f"Order#{self.pk} ({self.status})"
