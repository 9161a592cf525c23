from celery import Celery

from app.core.config import get_settings

settings = get_settings()

celery_app = Celery(
    "gift_cards",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
    include=[
        "app.workers.tasks.commission_charges",
        "app.workers.tasks.payment_webhooks",
        "app.workers.tasks.gift_card_maintenance",
        "app.workers.tasks.retention_cleanup",
    ],
)

celery_app.conf.update(
    task_default_queue="q_normal",
    task_acks_late=True,
    worker_prefetch_multiplier=1,
    worker_concurrency=5,
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],
    timezone="UTC",
    enable_utc=True,
)


@celery_app.task(name="app.workers.celery_app.ping")
def ping() -> str:
    return "pong"
