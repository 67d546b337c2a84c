# domains/shipments/tasks.py
from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from celery import shared_task
from celery.signals import worker_ready
from django.conf import settings

logger = logging.getLogger(__name__)

# 워커가 사이클 도중 죽으면 cycle_in_progress 가 남는다. 그 플래그가 stale 로 풀리는 시간과 맞춘다
_CYCLE_TIME_LIMIT = int((getattr(settings, "TRACKING", None) or {}).get("cycle_timeout_seconds", 600))


@shared_task(name="domains.shipments.tasks.process_tracking_updates", time_limit=_CYCLE_TIME_LIMIT)
def process_tracking_updates(name: Optional[str] = None) -> Optional[int]:
    """
    beat 가 interval 마다 호출하는 추적 사이클
    반환: 처리한 주문 수 (멈춘 상태면 None)
    """
    from .scheduler import DEFAULT_SCHEDULER_NAME, build_tracking_scheduler

    job = build_tracking_scheduler(name or DEFAULT_SCHEDULER_NAME).run_scheduled_cycle()
    if job is None or not job.is_running:
        return None
    return job.orders_processed


@shared_task(bind=True, max_retries=3, retry_backoff=True, retry_jitter=True, acks_late=True,
            name="domains.shipments.tasks.force_tracking_update")
def force_tracking_update(self, order_id: int) -> Optional[Dict[str, Any]]:
    """
    주문 1건 강제 갱신 (비동기 버전). 운송사 오류만 재시도.
    """
    from .exceptions import CarrierError
    from .scheduler import build_tracking_scheduler

    try:
        update = build_tracking_scheduler().force_update(order_id)
    except CarrierError as e:
        raise self.retry(exc=e)
    return update.as_payload() if update else None


@shared_task(name="domains.shipments.tasks.notify_order_updated", ignore_result=True)
def notify_order_updated(message: Dict[str, Any]) -> None:
    from .notifications import deliver_message

    deliver_message(message)


@worker_ready.connect
def _autostart_tracking(sender=None, **kwargs):
    if not (getattr(settings, "TRACKING", None) or {}).get("autostart"):
        return
    from .scheduler import build_tracking_scheduler

    try:
        build_tracking_scheduler().start()
    except Exception:
        logger.exception("Tracking autostart failed")
