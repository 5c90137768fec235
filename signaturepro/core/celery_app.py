## signaturepro/core/celery_app.py

"""
Main Celery Application Configuration

This file sets up the Celery application instance with Redis as broker and result backend.
Configuration lives in signaturepro.worker.config.
"""

# Third party imports
from celery import Celery

# Create Celery Instance
app = Celery("signaturepro_scheduler")

# Configure celery from separate config file
app.config_from_object("signaturepro.worker.config")

# Auto discover tasks from different modules
# This will look for tasks.py files in specified modules/packages
app.autodiscover_tasks([
    "signaturepro.contracts",
])

if __name__ == "__main__":
    app.start()
