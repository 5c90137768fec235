## signaturepro/audit_trail/schemas.py

from datetime import datetime
from enum import Enum as PyEnum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict


class EventType(str, PyEnum):
    """Contract lifecycle event types"""
    CONTRACT_CREATED = "CONTRACT_CREATED"
    CONTRACT_SENT = "CONTRACT_SENT"
    CONTRACT_SIGNED = "CONTRACT_SIGNED"
    CONTRACT_DECLINED = "CONTRACT_DECLINED"
    CONTRACT_COMPLETED = "CONTRACT_COMPLETED"
    CONTRACT_EXPIRED = "CONTRACT_EXPIRED"
    CONTRACT_CANCELLED = "CONTRACT_CANCELLED"
    SIGNER_VIEWED = "SIGNER_VIEWED"
    SIGNER_SIGNED = "SIGNER_SIGNED"
    SIGNER_DECLINED = "SIGNER_DECLINED"
    REMINDER_SENT = "REMINDER_SENT"
    EMAIL_SENT = "EMAIL_SENT"


class OriginMetadata(BaseModel):
    """Where a request came from"""
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None


class EventResponse(BaseModel):
    """Audit trail entry"""
    id: str
    sequence: int
    type: EventType
    contract_id: str
    signer_id: Optional[str] = None
    data: Dict[str, Any] = {}
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class EventListResponse(BaseModel):
    """Audit trail of one contract"""
    contract_id: str
    events: List[EventResponse]
