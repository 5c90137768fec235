# signaturepro/contracts/events.py

from enum import Enum as PyEnum
from typing import List, Optional

from pydantic import BaseModel

from signaturepro.audit_trail.schemas import EventResponse
from signaturepro.contracts.schemas import ContractResponse, OwnerSummary, SignerResponse


class SigningTopic(str, PyEnum):
    """What happened, as published by the signing coordinator"""
    CONTRACT_CREATED = "contract.created"
    CONTRACT_SENT = "contract.sent"
    SIGNATURE_REQUESTED = "signature.requested"
    REMINDER_REQUESTED = "signature.reminder"
    SIGNER_VIEWED = "signer.viewed"
    SIGNATURE_COMPLETED = "signature.completed"
    SIGNATURE_DECLINED = "signature.declined"
    CONTRACT_COMPLETED = "contract.completed"
    CONTRACT_EXPIRED = "contract.expired"
    CONTRACT_CANCELLED = "contract.cancelled"


class SigningEvent(BaseModel):
    """
    Snapshot published after a committed transition. Carries everything
    subscribers need so they never read the database themselves.

    audit_events holds the Event Log rows written for this occurrence;
    each row is attached to exactly one published event.
    """
    topic: SigningTopic
    contract: ContractResponse
    owner: OwnerSummary
    signer: Optional[SignerResponse] = None
    token: Optional[str] = None
    audit_events: List[EventResponse] = []
