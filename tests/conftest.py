# tests/conftest.py
from uuid import uuid4

from django.conf import settings
from django.contrib.auth import get_user_model

import pytest
from rest_framework.test import APIClient

from domains.orders.models import Order, OrderStatus
from domains.shipments.adapters import reset_adapters
from domains.shipments.scheduler import TrackingScheduler
from factories import FakeCarrier, FakeNotifier

User = get_user_model()


# ─────────────────────────────────────────────────────────────
# 전역 테스트 환경 최적화(해싱)
# ─────────────────────────────────────────────────────────────
@pytest.fixture(autouse=True, scope="session")
def _fast_password_hasher(django_db_setup, django_db_blocker):
    """
    해시 느린 기본 해셔 대신 MD5 해셔 사용
    """
    with django_db_blocker.unblock():
        settings.PASSWORD_HASHERS = ["django.contrib.auth.hashers.MD5PasswordHasher"]


@pytest.fixture(autouse=True)
def _isolated_tracking(settings):
    """웹훅/즉시실행 끄고, 어댑터 공유 인스턴스는 테스트마다 새로"""
    settings.ORDERS_NOTIFY_WEBHOOK = None
    settings.CELERY_TASK_ALWAYS_EAGER = False
    reset_adapters()
    yield
    reset_adapters()


# ─────────────────────────────────────────────────────────────
# 클라이언트 & 인증
# ─────────────────────────────────────────────────────────────
@pytest.fixture
def api_client():
    return APIClient()


@pytest.fixture
def user_factory(db):
    def _make(**kw):
        password = kw.pop("password", "Test1234!A")
        kw.setdefault("username", f"user_{uuid4().hex[:6]}")
        kw.setdefault("email", f"{kw['username']}@example.com")
        u = User.objects.create_user(password=password, **kw)
        # ✅ 로그인 테스트용 원문 비밀번호 보관
        u.raw_password = password
        return u

    return _make


@pytest.fixture
def user(user_factory):
    return user_factory()


@pytest.fixture
def admin(user_factory):
    """
    관리자 사용자 (staff 플래그 세팅)
    """
    return user_factory(username=f"admin_{uuid4().hex[:6]}", is_staff=True)


def _jwt_client(u) -> APIClient:
    c = APIClient()
    resp = c.post(
        "/api/v1/auth/token/",
        {"username": u.username, "password": u.raw_password},
        format="json",
    )
    assert resp.status_code == 200, getattr(resp, "data", resp.content)
    c.credentials(HTTP_AUTHORIZATION=f"Bearer {resp.data['access']}")
    return c


@pytest.fixture
def auth_client(user):
    """
    SimpleJWT 토큰을 받아 Authorization 헤더 세팅된 APIClient 반환
    """
    return _jwt_client(user)


@pytest.fixture
def admin_client(admin):
    return _jwt_client(admin)


# ─────────────────────────────────────────────────────────────
# 주문
# ─────────────────────────────────────────────────────────────
@pytest.fixture
def order_factory(db):
    """
    사용법: order_factory(tracking_number="OT123456789BR", status=OrderStatus.SHIPPED)
    """

    def _make(**kw):
        kw.setdefault("customer_name", "Cliente Teste")
        kw.setdefault("customer_email", f"cliente{uuid4().hex[:6]}@example.com")
        kw.setdefault("status", OrderStatus.SHIPPED)
        return Order.objects.create(**kw)

    return _make


# ─────────────────────────────────────────────────────────────
# 운송사 / 알림 가짜
# ─────────────────────────────────────────────────────────────
@pytest.fixture
def fake_carrier():
    return FakeCarrier()


@pytest.fixture
def fake_notifier():
    return FakeNotifier()


@pytest.fixture
def scheduler_factory(db, fake_carrier, fake_notifier):
    def _make(**kw):
        kw.setdefault("carrier", fake_carrier)
        kw.setdefault("notifier", fake_notifier)
        kw.setdefault("name", "test")
        return TrackingScheduler(**kw)

    return _make


@pytest.fixture
def scheduler(scheduler_factory):
    return scheduler_factory()
