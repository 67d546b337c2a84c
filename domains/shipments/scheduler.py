# domains/shipments/scheduler.py
from __future__ import annotations

import json
import logging
from datetime import timedelta
from typing import Any, Callable, Dict, List, Optional

from django.conf import settings
from django.db.models import Q
from django.utils import timezone
from django_celery_beat.models import IntervalSchedule, PeriodicTask, PeriodicTasks

from domains.orders.models import Order

from .exceptions import OrderNotTrackableError
from .models import TrackingJob, TrackingJobStatus
from .services import TrackingUpdate, reconcile

logger = logging.getLogger(__name__)

CYCLE_TASK = "domains.shipments.tasks.process_tracking_updates"
DEFAULT_SCHEDULER_NAME = "correios"


def _tracking_setting(key: str, default):
    return (getattr(settings, "TRACKING", None) or {}).get(key, default)


class TrackingScheduler:
    """
    운송장 자동 추적 스케줄러.

    - 상태는 TrackingJob 행(name 단위)에 있고, 반복 타이머는 django-celery-beat PeriodicTask.
    - 한 사이클: 추적 대상 주문 조회 → 운송장 일괄 조회 → 주문별 reconcile → 새 이벤트면 알림.
    - 사이클 재진입은 TrackingJob.cycle_in_progress 조건부 UPDATE 로 막는다.

    carrier / notifier 는 주입받는다 (build_tracking_scheduler 참고).
    """

    def __init__(
        self,
        *,
        carrier,
        notifier,
        name: str = DEFAULT_SCHEDULER_NAME,
        default_interval: Optional[int] = None,
        batch_size: Optional[int] = None,
        cycle_timeout: Optional[int] = None,
        clock: Callable = timezone.now,
    ):
        self.carrier = carrier
        self.notifier = notifier
        self.name = name
        self.default_interval = int(default_interval or _tracking_setting("interval_minutes", 60))
        self.batch_size = max(int(batch_size or _tracking_setting("batch_size", 50)), 1)
        self.cycle_timeout = timedelta(
            seconds=int(cycle_timeout or _tracking_setting("cycle_timeout_seconds", 600))
        )
        self.clock = clock

    @property
    def periodic_task_name(self) -> str:
        return f"tracking:{self.name}"

    # ------------------------------------------------------------------
    # 상태
    # ------------------------------------------------------------------
    def _job(self) -> TrackingJob:
        job, _ = TrackingJob.objects.get_or_create(
            name=self.name, defaults={"interval_minutes": self.default_interval}
        )
        return job

    def status(self) -> Optional[TrackingJob]:
        return TrackingJob.objects.filter(name=self.name).first()

    # ------------------------------------------------------------------
    # start / stop
    # ------------------------------------------------------------------
    def start(self, interval_minutes: Optional[int] = None) -> TrackingJob:
        interval = int(interval_minutes if interval_minutes is not None else self.default_interval)
        if interval < 1:
            raise ValueError("intervalMinutes deve ser >= 1")

        job = self._job()
        now = self.clock()
        # stopped → running 전환은 한 호출만 성공한다
        switched = TrackingJob.objects.filter(
            pk=job.pk, status=TrackingJobStatus.STOPPED
        ).update(
            run_id=f"tracking-job-{int(now.timestamp() * 1000)}",
            status=TrackingJobStatus.RUNNING,
            interval_minutes=interval,
            last_run=None,
            next_run=now + timedelta(minutes=interval),
            orders_processed=0,
            errors=[],
            updated_at=now,
        )
        if not switched:
            logger.warning("Tracking service already running (%s)", self.name)
            return self.status()

        logger.info("Starting automatic tracking '%s' (interval: %s min)", self.name, interval)

        # 첫 사이클은 바로 실행하고 나서 타이머를 건다
        job = self.process_tracking_updates()
        if job is None or not job.is_running:
            # 첫 사이클 도중 stop 됨
            logger.info("Tracking '%s' stopped during first cycle, timer not armed", self.name)
            return job
        self._arm_timer(interval)

        logger.info("Automatic tracking '%s' started", self.name)
        return self.status()

    def stop(self) -> Optional[TrackingJob]:
        """
        타이머만 끈다. 진행 중인 사이클은 끝까지 돈다. job 행은 남겨둔다.
        """
        job = self.status()
        if job is None or not job.is_running:
            logger.warning("Tracking service is not running (%s)", self.name)
            return job

        logger.info("Stopping automatic tracking '%s'", self.name)
        self._disarm_timer()
        TrackingJob.objects.filter(pk=job.pk).update(
            status=TrackingJobStatus.STOPPED, updated_at=self.clock()
        )
        return self.status()

    def _arm_timer(self, interval: int) -> None:
        schedule = IntervalSchedule.objects.filter(
            every=interval, period=IntervalSchedule.MINUTES
        ).first() or IntervalSchedule.objects.create(
            every=interval, period=IntervalSchedule.MINUTES
        )
        PeriodicTask.objects.update_or_create(
            name=self.periodic_task_name,
            defaults={
                "task": CYCLE_TASK,
                "interval": schedule,
                "kwargs": json.dumps({"name": self.name}),
                "enabled": True,
                # 첫 발화는 지금부터 interval 뒤 (첫 사이클은 start 에서 이미 돌았음)
                "last_run_at": self.clock(),
            },
        )

    def _disarm_timer(self) -> None:
        PeriodicTask.objects.filter(name=self.periodic_task_name).update(enabled=False)
        # bulk update 는 signal 을 안 타므로 beat 에 직접 변경 알림
        PeriodicTasks.update_changed()

    # ------------------------------------------------------------------
    # 사이클
    # ------------------------------------------------------------------
    def run_scheduled_cycle(self) -> Optional[TrackingJob]:
        """beat 발화용. stop 이후 늦게 도착한 발화는 무시한다."""
        job = self.status()
        if job is None or not job.is_running:
            logger.info("Tracking '%s' is stopped, skipping scheduled cycle", self.name)
            return job
        return self.process_tracking_updates()

    def _acquire_cycle(self, job: TrackingJob) -> bool:
        now = self.clock()
        stale = now - self.cycle_timeout
        return bool(
            TrackingJob.objects.filter(pk=job.pk)
            .filter(
                Q(cycle_in_progress=False)
                | Q(cycle_started_at__isnull=True)
                | Q(cycle_started_at__lt=stale)
            )
            .update(cycle_in_progress=True, cycle_started_at=now)
        )

    def _release_cycle(self, job: TrackingJob) -> None:
        TrackingJob.objects.filter(pk=job.pk).update(cycle_in_progress=False)

    def process_tracking_updates(self) -> TrackingJob:
        job = self._job()
        if not self._acquire_cycle(job):
            logger.warning("Tracking cycle already in progress (%s), skipping", self.name)
            return self.status()

        processed = 0
        errors: List[str] = []
        try:
            started = self.clock()
            TrackingJob.objects.filter(pk=job.pk).update(
                orders_processed=0, errors=[], last_run=started, updated_at=started
            )
            logger.info("Processing tracking updates (%s)", self.name)

            try:
                processed = self._run_cycle(errors)
                TrackingJob.objects.filter(pk=job.pk).update(
                    orders_processed=processed,
                    errors=errors,
                    next_run=self.clock() + timedelta(minutes=job.interval_minutes),
                    updated_at=self.clock(),
                )
                logger.info(
                    "Tracking cycle finished: %d orders processed, %d errors",
                    processed, len(errors),
                )
            except Exception as e:
                logger.exception("Tracking cycle failed (%s)", self.name)
                errors.append(f"Erro geral: {e}")
                TrackingJob.objects.filter(pk=job.pk).update(
                    orders_processed=processed, errors=errors, updated_at=self.clock()
                )
                # 멈춘 job 에 error 를 찍으면 다시 start 할 수 없게 되므로 제외
                TrackingJob.objects.filter(pk=job.pk).exclude(
                    status=TrackingJobStatus.STOPPED
                ).update(status=TrackingJobStatus.ERROR)
        finally:
            self._release_cycle(job)

        return self.status()

    def _run_cycle(self, errors: List[str]) -> int:
        orders = list(
            Order.objects.trackable().only("id", "tracking_number", "status").order_by("id")
        )
        logger.info("Found %d orders to check", len(orders))
        if not orders:
            logger.info("No pending orders to track")
            return 0

        codes = list(dict.fromkeys(o.tracking_number for o in orders))
        results = self._fetch_all(codes, errors)

        processed = 0
        for order in orders:
            try:
                result = results.get(order.tracking_number) or {}
                events = result.get("eventos") or []
                if events:
                    update = reconcile(order.id, order.tracking_number, events)
                    if update.has_new_events:
                        self._notify(update)
                processed += 1
            except Exception as e:
                msg = f"Erro ao processar pedido {order.id}: {e}"
                logger.error(msg)
                errors.append(msg)
        return processed

    def _fetch_all(self, codes: List[str], errors: List[str]) -> Dict[str, Any]:
        results: Dict[str, Any] = {}
        for i in range(0, len(codes), self.batch_size):
            chunk = codes[i:i + self.batch_size]
            try:
                results.update(self.carrier.track_many(chunk) or {})
            except Exception as e:
                msg = f"Erro ao rastrear lote: {e}"
                logger.error(msg)
                errors.append(msg)
        return results

    def _notify(self, update: TrackingUpdate) -> None:
        try:
            self.notifier.notify(update.order_id, update.status, update)
        except Exception:
            logger.exception("Notification failed for order %s", update.order_id)

    # ------------------------------------------------------------------
    # 단건 강제 갱신
    # ------------------------------------------------------------------
    def force_update(self, order_id: int) -> Optional[TrackingUpdate]:
        """
        관리자 수동 갱신. 배치와 무관하게 주문 1건만 조회/반영/알림.
        오류는 호출자에게 그대로 올린다.
        """
        order = Order.objects.filter(pk=order_id).only("id", "tracking_number").first()
        if order is None or not order.tracking_number:
            raise OrderNotTrackableError(order_id)

        logger.info("Forcing tracking update for order %s", order_id)
        result = self.carrier.track_one(order.tracking_number) or {}
        events = result.get("eventos") or []
        if not events:
            return None

        update = reconcile(order.id, order.tracking_number, events)
        self._notify(update)
        return update


def build_tracking_scheduler(name: str = DEFAULT_SCHEDULER_NAME, **kwargs) -> TrackingScheduler:
    """기본 협력자(Correios 어댑터, Celery 알림)로 스케줄러 구성"""
    from .adapters import get_adapter
    from .notifications import OrderUpdateNotifier

    kwargs.setdefault("carrier", get_adapter("br.correios"))
    kwargs.setdefault("notifier", OrderUpdateNotifier())
    return TrackingScheduler(name=name, **kwargs)
