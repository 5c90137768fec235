### signaturepro/worker/config.py

"""
Celery configuration settings

This file contains all the Celery configurations including:
- Broker and result backend settings
- Task serialization settings
- Beat schedule for periodic tasks
"""

# Standard library imports
from datetime import timedelta

# Local imports
from signaturepro.core.config import settings

# Broker and result backend configurations
broker_url = settings.celery_broker
result_backend = settings.celery_backend

# Task serialization
task_serializer = "json"
accept_content = ["json"]
result_serializer = "json"
timezone = "UTC"
enable_utc = True

# Task settings
task_track_started = True
task_time_limit = 10 * 60 # 10 minutes
task_soft_time_limit = 8 * 60 # 8 minutes
worker_prefetch_multiplier = 1
task_acks_late = True


# Beat schedule configuration
beat_schedule = {
    # Move contracts past their expiry to EXPIRED
    "contracts-expire-due": {
        "task": "signaturepro.contracts.tasks.expire_due_contracts",
        "schedule": timedelta(minutes=settings.expiry_sweep_minutes),
    },
}

# Worker configuration
worker_hijack_root_logger = False
worker_log_color = False
