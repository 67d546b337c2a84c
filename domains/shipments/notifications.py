# domains/shipments/notifications.py
from __future__ import annotations

import json
import logging
from typing import Any, Dict, Optional

import requests
from django.conf import settings
from django.utils import timezone

logger = logging.getLogger(__name__)


def build_order_updated_message(order_id, status: str, tracking_update=None) -> Dict[str, Any]:
    """대시보드(웹소켓 게이트웨이)로 보낼 메시지. 전부 JSON-safe."""
    if tracking_update is not None and hasattr(tracking_update, "as_payload"):
        tracking_update = tracking_update.as_payload()
    return {
        "type": "order_updated",
        "data": {
            "orderId": order_id,
            "status": status,
            "trackingUpdate": tracking_update,
        },
        "timestamp": timezone.now().isoformat(),
    }


class OrderUpdateNotifier:
    """
    reconcile 결과를 Celery 큐에 넣기만 한다 (fire-and-forget).
    실제 전달(fan-out)은 notify_order_updated 태스크가 한다.
    """

    def notify(self, order_id, status: str, tracking_update=None) -> None:
        message = build_order_updated_message(order_id, status, tracking_update)
        try:
            from .tasks import notify_order_updated

            notify_order_updated.delay(message)
        except Exception as e:
            # 큐 장애가 이미 저장된 추적 결과를 되돌리면 안 된다
            logger.error("[NOTIFY][ERROR] enqueue failed for order %s: %s", order_id, e)


def _post_json(url: str, payload: Dict[str, Any]) -> None:
    res = requests.post(url, json=payload, timeout=5)
    res.raise_for_status()


def deliver_message(message: Dict[str, Any], url: Optional[str] = None) -> bool:
    """
    관리자 대시보드 게이트웨이로 전달. 게이트웨이가 인증된 admin 연결에만 broadcast 한다.
    재시도/큐잉 없음. 반환: 전달 성공 여부
    """
    url = url or getattr(settings, "ORDERS_NOTIFY_WEBHOOK", None)
    if not url:
        # 웹훅 미설정 시 로그로 남김 (워커 로그에서 grep 가능)
        logger.info("[NOTIFY] %s", json.dumps(message, ensure_ascii=False))
        return False
    try:
        _post_json(url, message)
    except requests.RequestException as e:
        logger.error("[NOTIFY][ERROR] delivery failed: %s", e)
        return False
    data = message.get("data") or {}
    logger.info("Notification sent: order #%s updated", data.get("orderId"))
    return True
