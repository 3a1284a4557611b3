from celery import Celery
from capital_ledger.core.config import settings
# Set up Celery
celery_app = Celery('capital_ledger', broker=settings.REDIS_URL)

celery_app.conf.update(
    result_backend=settings.REDIS_URL,
    task_serializer='json',
    accept_content=['json'],
    timezone='UTC',
    enable_utc=True,
    task_always_eager=settings.CELERY_TASK_ALWAYS_EAGER,
)

celery_app.conf.update(
    imports=["capital_ledger.tasks.audit"]
)
