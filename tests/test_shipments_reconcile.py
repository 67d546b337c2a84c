# tests/test_shipments_reconcile.py
from datetime import datetime

import pytest
from django.utils import timezone

from domains.orders.models import Order, OrderStatus
from domains.shipments.exceptions import TrackingDataError
from domains.shipments.models import ShipmentEvent
from domains.shipments.services import (
    get_tracking_history,
    get_tracking_stats,
    parse_event_datetime,
    reconcile,
)
from factories import make_event

POSTED = make_event("PO", "Objeto postado", "2024-01-08", "09:00", "SAO PAULO - SP")
TRANSIT = make_event("RO", "Objeto em trânsito", "2024-01-09", "10:15", "CAJAMAR - SP")
DELIVERED = make_event("BDE", "Objeto entregue ao destinatário", "2024-01-10", "14:30")


# ─────────────────────────────────────────────────────────────
# 날짜 파싱
# ─────────────────────────────────────────────────────────────
@pytest.mark.parametrize(
    "data, hora, expected",
    [
        ("2024-01-10", "14:30", datetime(2024, 1, 10, 14, 30)),
        ("10/01/2024", "14:30:15", datetime(2024, 1, 10, 14, 30, 15)),
        ("10-01-2024", "", datetime(2024, 1, 10, 0, 0)),
        ("2024-01-10T14:30:00", None, datetime(2024, 1, 10, 14, 30)),
    ],
)
def test_parse_event_datetime_formats(data, hora, expected):
    dt = parse_event_datetime(data, hora)
    assert timezone.is_aware(dt)
    assert timezone.make_naive(dt) == expected


@pytest.mark.parametrize("data, hora", [("", "10:00"), ("ontem", "10:00"), ("2024-01-10", "25:99")])
def test_parse_event_datetime_rejects_garbage(data, hora):
    with pytest.raises(TrackingDataError):
        parse_event_datetime(data, hora)


# ─────────────────────────────────────────────────────────────
# reconcile
# ─────────────────────────────────────────────────────────────
@pytest.mark.django_db
def test_first_reconcile_inserts_all_and_collapses_duplicates(order_factory):
    order = order_factory(tracking_number="OT123456789BR")

    update = reconcile(order.id, order.tracking_number, [TRANSIT, POSTED, dict(TRANSIT)])

    assert update.has_new_events is True
    assert update.created_events == 2
    assert ShipmentEvent.objects.filter(order=order).count() == 2

    order.refresh_from_db()
    assert order.status == OrderStatus.IN_TRANSIT
    assert order.current_location == "CAJAMAR - SP"


@pytest.mark.django_db
def test_reconcile_is_idempotent(order_factory):
    order = order_factory(tracking_number="OT123456789BR")
    reconcile(order.id, order.tracking_number, [POSTED, TRANSIT])
    before = Order.objects.get(pk=order.pk).updated_at

    again = reconcile(order.id, order.tracking_number, [POSTED, TRANSIT])

    assert again.has_new_events is False
    assert again.is_delivered is False
    assert again.created_events == 0
    assert ShipmentEvent.objects.filter(order=order).count() == 2
    assert Order.objects.get(pk=order.pk).updated_at == before


@pytest.mark.django_db
def test_monotonic_progression_ends_delivered(order_factory):
    order = order_factory(tracking_number="OT123456789BR")

    reconcile(order.id, order.tracking_number, [POSTED])
    assert Order.objects.get(pk=order.pk).status == OrderStatus.SHIPPED

    reconcile(order.id, order.tracking_number, [POSTED, TRANSIT])
    assert Order.objects.get(pk=order.pk).status == OrderStatus.IN_TRANSIT

    update = reconcile(order.id, order.tracking_number, [POSTED, TRANSIT, DELIVERED])
    assert update.is_delivered is True
    assert update.created_events == 1
    assert Order.objects.get(pk=order.pk).status == OrderStatus.DELIVERED
    assert ShipmentEvent.objects.filter(order=order).count() == 3


@pytest.mark.django_db
def test_older_latest_event_is_ignored(order_factory):
    order = order_factory(tracking_number="OT123456789BR")
    reconcile(order.id, order.tracking_number, [TRANSIT])

    # 운송사가 과거 이벤트만 돌려줌 → 아무것도 안 바뀜
    update = reconcile(order.id, order.tracking_number, [POSTED])

    assert update.has_new_events is False
    assert ShipmentEvent.objects.filter(order=order).count() == 1
    assert Order.objects.get(pk=order.pk).status == OrderStatus.IN_TRANSIT


@pytest.mark.django_db
def test_update_status_is_description_while_order_gets_enum(order_factory):
    order = order_factory(tracking_number="OT123456789BR")

    update = reconcile(order.id, order.tracking_number, [DELIVERED])

    assert update.status == "Objeto entregue ao destinatário"
    assert update.description == update.status
    assert Order.objects.get(pk=order.pk).status == OrderStatus.DELIVERED
    payload = update.as_payload()
    assert payload["orderId"] == order.id
    assert payload["isDelivered"] is True
    assert payload["timestamp"].startswith("2024-01-10T14:30")


@pytest.mark.django_db
def test_bad_timestamp_raises_without_writing(order_factory):
    order = order_factory(tracking_number="OT123456789BR")

    with pytest.raises(TrackingDataError):
        reconcile(order.id, order.tracking_number, [POSTED, make_event("RO", "x", "??", "10:00")])

    assert ShipmentEvent.objects.filter(order=order).count() == 0
    assert Order.objects.get(pk=order.pk).status == OrderStatus.SHIPPED


@pytest.mark.django_db
def test_reconcile_requires_events(order_factory):
    order = order_factory(tracking_number="OT123456789BR")
    with pytest.raises(TrackingDataError):
        reconcile(order.id, order.tracking_number, [])


# ─────────────────────────────────────────────────────────────
# 조회
# ─────────────────────────────────────────────────────────────
@pytest.mark.django_db
def test_history_is_newest_first_and_formatted(order_factory):
    order = order_factory(tracking_number="OT123456789BR")
    reconcile(order.id, order.tracking_number, [POSTED, TRANSIT])

    history = get_tracking_history(order.id)

    assert [h["status"] for h in history] == ["RO", "PO"]
    assert history[0]["formattedDate"] == "09/01/2024"
    assert history[0]["formattedTime"] == "10:15"
    assert history[1]["location"] == "SAO PAULO - SP"


@pytest.mark.django_db
def test_history_of_unknown_order_is_empty():
    assert get_tracking_history(999999) == []


@pytest.mark.django_db
def test_stats_counts_tracked_orders(order_factory):
    a = order_factory(tracking_number="OT000000001BR")
    order_factory(tracking_number="OT000000002BR", status=OrderStatus.DELIVERED)
    order_factory(tracking_number=None)
    reconcile(a.id, a.tracking_number, [POSTED, TRANSIT])

    stats = get_tracking_stats()

    assert stats["trackedOrders"] == 2
    assert stats["activeOrders"] == 1
    assert stats["byStatus"][OrderStatus.IN_TRANSIT] == 1
    assert stats["byStatus"][OrderStatus.DELIVERED] == 1
    assert stats["totalEvents"] == 2


# ─────────────────────────────────────────────────────────────
# 상태는 앞으로만
# ─────────────────────────────────────────────────────────────
@pytest.mark.django_db
def test_canceled_order_keeps_status_but_stores_events(order_factory):
    order = order_factory(tracking_number="OT123456789BR", status=OrderStatus.CANCELED)

    update = reconcile(order.id, order.tracking_number, [TRANSIT])

    assert update.has_new_events is True
    assert ShipmentEvent.objects.filter(order=order).count() == 1
    order.refresh_from_db()
    assert order.status == OrderStatus.CANCELED
    assert order.current_location == "CAJAMAR - SP"


@pytest.mark.django_db
def test_unclassified_event_does_not_move_order_backwards(order_factory):
    order = order_factory(tracking_number="OT123456789BR", status=OrderStatus.SHIPPED)

    reconcile(order.id, order.tracking_number, [make_event("XX", "objeto em triagem", "2024-01-08", "08:00")])

    assert Order.objects.get(pk=order.pk).status == OrderStatus.SHIPPED


@pytest.mark.django_db
def test_unclassified_event_advances_paid_order(order_factory):
    order = order_factory(tracking_number="OT123456789BR", status=OrderStatus.PAID)

    reconcile(order.id, order.tracking_number, [make_event("XX", "objeto em triagem", "2024-01-08", "08:00")])

    assert Order.objects.get(pk=order.pk).status == OrderStatus.PROCESSING
