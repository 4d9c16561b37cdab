from celery import Celery

from asset_importer.config import settings


celery_app = Celery(
    "asset_importer",
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=["asset_importer.tasks"],
)

celery_app.conf.update(task_track_started=True, result_expires=3600)
