from celery import Celery
from datetime import timedelta
from src.core.config import settings

celery_app = Celery(
    "worker",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND,
)

celery_app.conf.timezone = "UTC"

# Autodiscover task modules
celery_app.autodiscover_tasks(["src.tasks"])

# Force import so Celery registers tasks
import src.tasks.scheduled_topups


celery_app.conf.beat_schedule = {

    # --------------------------------------------------------
    # 1. Execute due scheduled top-ups
    # --------------------------------------------------------
    "execute-scheduled-topups": {
        "task": "src.tasks.scheduled_topups.execute_scheduled_topups",
        "schedule": timedelta(seconds=int(settings.SCHEDULE_RUNNER_INTERVAL_SECONDS)),
    },

    # --------------------------------------------------------
    # 2. Fail stuck pending purchases, release stale claims
    # --------------------------------------------------------
    "reconcile-stale-work": {
        "task": "src.tasks.scheduled_topups.reconcile_stale_work",
        "schedule": timedelta(seconds=int(settings.RECONCILIATION_INTERVAL_SECONDS)),
    },

}
