"""
Celery Worker Configuration
Sets up Celery with Redis as message broker and result backend, and the
beat schedule for automatic backups.
"""

from celery import Celery
from celery.schedules import crontab

from pastificio.core.config import get_settings

settings = get_settings()

# Create Celery app
celery_app = Celery(
    'pastificio_worker',
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=['pastificio.tasks']  # Module containing our tasks
)

# Celery configuration
celery_app.conf.update(
    # Task settings
    task_serializer='json',
    accept_content=['json'],
    result_serializer='json',
    timezone='UTC',
    enable_utc=True,

    # Worker settings
    worker_prefetch_multiplier=1,  # Process one task at a time
    worker_concurrency=2,

    # Result settings
    result_expires=3600,  # Results expire after 1 hour

    # Task execution settings
    task_acks_late=True,  # Acknowledge task after completion
    task_reject_on_worker_lost=True,  # Requeue task if worker dies

    broker_connection_retry_on_startup=True,
)

# Backup schedule
celery_app.conf.beat_schedule = {
    'weekly-full-backup': {
        'task': 'pastificio.tasks.full_backup',
        'schedule': crontab(minute=0, hour=0, day_of_week='sun'),
    },
    'daily-incremental-backup': {
        'task': 'pastificio.tasks.incremental_backup',
        'schedule': crontab(minute=0, hour=0, day_of_week='1-6'),
    },
    'daily-cleanup': {
        'task': 'pastificio.tasks.cleanup_backups',
        'schedule': crontab(minute=0, hour=1),
    },
    'backup-size-monitor': {
        'task': 'pastificio.tasks.check_backup_size',
        'schedule': crontab(minute=0, hour='*/6'),
    },
}


if __name__ == '__main__':
    celery_app.start()
