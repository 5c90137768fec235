# signaturepro/contracts/tasks.py

"""
Celery tasks for contracts

expire_due_contracts runs on the beat schedule; contracts are also expired
lazily whenever the API touches them, so a late sweep only delays the
CONTRACT_EXPIRED event of contracts nobody is looking at.
"""

from celery import shared_task

from signaturepro.pipeline import SigningPipeline, build_pipeline
from signaturepro.utils.logger import get_logger

logger = get_logger(__name__)

_pipeline = None


def get_worker_pipeline() -> SigningPipeline:
    """Pipeline of the worker process, built on first use"""
    global _pipeline
    if _pipeline is None:
        _pipeline = build_pipeline()
    return _pipeline


@shared_task(bind=True, name="signaturepro.contracts.tasks.expire_due_contracts")
def expire_due_contracts(self):
    """
    Expire every non-terminal contract whose expiry has passed.
    Returns the IDs expired by this run.
    """
    task_id = self.request.id
    logger.info("Starting contract expiry sweep", task_id=task_id)
    try:
        expired = get_worker_pipeline().coordinator.expire_due_contracts()
        logger.info("Contract expiry sweep completed", task_id=task_id, expired=len(expired))
        return expired
    except Exception as e:
        logger.error("Contract expiry sweep failed", task_id=task_id, error_message=str(e), exc_info=True)
        raise
