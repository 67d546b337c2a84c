import os

from celery import Celery

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")
app = Celery("config")
app.config_from_object("django.conf:settings", namespace="CELERY")
app.autodiscover_tasks()  # domains.shipments.tasks 자동 발견
# 추적 주기는 CELERY_BEAT_SCHEDULE 가 아니라 DB(PeriodicTask)에서 관리한다
