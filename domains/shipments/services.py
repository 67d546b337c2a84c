# domains/shipments/services.py
from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from datetime import date, datetime, time
from typing import Any, Dict, Iterable, List, Optional, Tuple

from django.db import transaction
from django.db.models import Count
from django.utils import timezone
from django.utils.dateparse import parse_datetime, parse_time

from domains.orders.models import TERMINAL_STATUSES, Order, OrderStatus, statuses_not_after

from .exceptions import TrackingDataError
from .models import ShipmentEvent
from .status_map import is_delivered, map_event

logger = logging.getLogger(__name__)

_DATE_FORMATS = ("%Y-%m-%d", "%d/%m/%Y", "%d-%m-%Y")

# 모델 필드 길이
_DESC_MAX = ShipmentEvent._meta.get_field("description").max_length
_LOC_MAX = ShipmentEvent._meta.get_field("location").max_length


@dataclass
class TrackingUpdate:
    order_id: int
    tracking_number: str
    # 운송사 원문 설명. 주문 행에는 정규화된 OrderStatus 가 들어간다.
    status: str
    location: Optional[str]
    description: str
    timestamp: datetime
    is_delivered: bool
    has_new_events: bool
    created_events: int = 0

    def as_payload(self) -> Dict[str, Any]:
        """알림/API 응답용 JSON-safe dict"""
        d = asdict(self)
        return {
            "orderId": d["order_id"],
            "trackingNumber": d["tracking_number"],
            "status": d["status"],
            "location": d["location"],
            "description": d["description"],
            "timestamp": d["timestamp"].isoformat() if d["timestamp"] else None,
            "isDelivered": d["is_delivered"],
            "hasNewEvents": d["has_new_events"],
            "createdEvents": d["created_events"],
        }


# === 날짜 파싱 ================================================================
def _parse_date(value: str) -> Optional[date]:
    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(value, fmt).date()
        except ValueError:
            continue
    return None


def parse_event_datetime(data: Any, hora: Any) -> datetime:
    """
    운송사의 data/hora 문자열을 정렬 가능한 aware datetime 으로 합친다.
    naive 값은 settings.TIME_ZONE 기준으로 본다.
    """
    d_raw = str(data or "").strip()
    h_raw = str(hora or "").strip()
    if not d_raw:
        raise TrackingDataError(f"Data do evento ausente (hora={h_raw!r})")

    # parse_datetime 은 날짜만 있는 문자열도 자정으로 받아버리므로 날짜 형식부터 본다
    d = _parse_date(d_raw)
    if d is None:
        try:
            dt = parse_datetime(d_raw)
        except ValueError:
            dt = None
        if dt is None:
            raise TrackingDataError(f"Data do evento inválida: {d_raw!r}")
    else:
        t = time(0, 0)
        if h_raw:
            try:
                parsed = parse_time(h_raw)
            except ValueError:
                parsed = None
            if parsed is None:
                raise TrackingDataError(f"Hora do evento inválida: {h_raw!r}")
            t = parsed
        dt = datetime.combine(d, t)

    if timezone.is_naive(dt):
        dt = timezone.make_aware(dt)
    return dt


def _sorted_events(raw_events: Iterable[Dict[str, Any]]) -> List[Tuple[datetime, Dict[str, Any]]]:
    parsed = [(parse_event_datetime(e.get("data"), e.get("hora")), e) for e in raw_events]
    # 최신 이벤트가 맨 앞
    parsed.sort(key=lambda p: p[0], reverse=True)
    return parsed


# === Reconciler ==============================================================
def reconcile(order_id: int, tracking_number: str, raw_events: List[Dict[str, Any]]) -> TrackingUpdate:
    """
    주문 1건의 운송사 이벤트를 저장된 이벤트와 맞춰본다.

    1) 들어온 이벤트 중 최신 것의 시각이 저장된 최신 이벤트보다 엄격히 늦을 때만 "새 이벤트"로 본다.
    2) 새 이벤트면 들어온 이벤트 전부를 (order, 시각, 설명) 키로 get_or_create → 밀린 이벤트도 한 번에 채워짐.
    3) 주문 상태/위치는 최신 이벤트 하나로만 결정한다. 단 상태는 앞으로만 가고, 종료된 주문은 건드리지 않는다.
    """
    parsed = _sorted_events(raw_events)
    if not parsed:
        raise TrackingDataError(f"Nenhum evento para o pedido {order_id}")

    latest_dt, latest = parsed[0]
    code = latest.get("codigo") or ""
    description = (latest.get("descricao") or "")[:_DESC_MAX]
    location = (latest.get("local") or "")[:_LOC_MAX]

    previous = (
        ShipmentEvent.objects.filter(order_id=order_id).order_by("-occurred_at").first()
    )

    if previous is not None and not (latest_dt > previous.occurred_at):
        return TrackingUpdate(
            order_id=order_id,
            tracking_number=tracking_number,
            status=description,
            location=location,
            description=description,
            timestamp=latest_dt,
            is_delivered=False,
            has_new_events=False,
        )

    created_count = 0
    new_status = map_event(code, description)
    delivered = is_delivered(code, description)

    with transaction.atomic():
        for dt, e in parsed:
            _, created = ShipmentEvent.objects.get_or_create(
                order_id=order_id,
                occurred_at=dt,
                description=(e.get("descricao") or "")[:_DESC_MAX],
                defaults={
                    "status": (e.get("codigo") or "")[:24],
                    "location": (e.get("local") or "")[:_LOC_MAX],
                },
            )
            if created:
                created_count += 1

        now = timezone.now()
        Order.objects.filter(pk=order_id).update(current_location=location, updated_at=now)
        # 종료된 주문은 그대로 두고, 진행 순서상 뒤로 가는 변경도 하지 않는다
        status_applied = bool(
            Order.objects.filter(pk=order_id, status__in=statuses_not_after(new_status))
            .exclude(status__in=TERMINAL_STATUSES)
            .update(status=new_status, updated_at=now)
        )

    logger.info(
        "Order %s updated: %s - %s (%d new events%s)",
        order_id, new_status, description, created_count,
        "" if status_applied else ", status kept",
    )

    return TrackingUpdate(
        order_id=order_id,
        tracking_number=tracking_number,
        status=description,
        location=location,
        description=description,
        timestamp=latest_dt,
        is_delivered=delivered,
        has_new_events=True,
        created_events=created_count,
    )


# === 조회 ====================================================================
def get_tracking_history(order_id: int) -> List[Dict[str, Any]]:
    rows = ShipmentEvent.objects.filter(order_id=order_id).order_by("-occurred_at")
    out = []
    for ev in rows:
        local = timezone.localtime(ev.occurred_at)
        out.append(
            {
                "id": ev.id,
                "status": ev.status,
                "location": ev.location,
                "description": ev.description,
                "timestamp": ev.occurred_at,
                "formattedDate": local.strftime("%d/%m/%Y"),
                "formattedTime": local.strftime("%H:%M"),
            }
        )
    return out


def get_tracking_stats() -> Dict[str, Any]:
    """운송장이 붙은 주문의 상태별 건수 + 이벤트 합계"""
    tracked = Order.objects.exclude(tracking_number__isnull=True).exclude(tracking_number="")
    by_status = {s.value: 0 for s in OrderStatus}
    for row in tracked.values("status").annotate(n=Count("id")):
        by_status[row["status"]] = row["n"]

    return {
        "trackedOrders": tracked.count(),
        "activeOrders": Order.objects.trackable().count(),
        "byStatus": by_status,
        "totalEvents": ShipmentEvent.objects.count(),
    }
