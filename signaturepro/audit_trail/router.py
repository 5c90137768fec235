## signaturepro/audit_trail/router.py

# Standard library imports
from typing import List, Optional

# Third party imports
from fastapi import APIRouter, Depends, Query, status

# Local application imports
from signaturepro.audit_trail.schemas import EventListResponse, EventType
from signaturepro.contracts.router import ensure_owner
from signaturepro.core.exceptions import SigningBaseException, convert_to_http_exception
from signaturepro.pipeline import SigningPipeline, get_pipeline
from signaturepro.users.models import User
from signaturepro.users.utils import get_current_user
from signaturepro.utils.logger import get_logger

router = APIRouter(tags=["Audit Trail"])
logger = get_logger(__name__)


@router.get("/contracts/{contract_id}/events", response_model=EventListResponse, status_code=status.HTTP_200_OK)
def get_contract_events(
    contract_id: str,
    types: Optional[List[EventType]] = Query(None),
    pipeline: SigningPipeline = Depends(get_pipeline),
    current_user: User = Depends(get_current_user),
):
    """
    Get the audit trail of a contract, oldest first, optionally filtered
    by event type.
    """
    try:
        ensure_owner(pipeline, contract_id, current_user)
        events = pipeline.coordinator.history(contract_id, types=types)
        logger.info("Audit trail fetched", contract_id=contract_id, count=len(events))
        return EventListResponse(contract_id=contract_id, events=events)
    except SigningBaseException as e:
        raise convert_to_http_exception(e) from e
