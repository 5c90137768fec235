# signaturepro/contracts/schemas.py

from datetime import datetime
from enum import Enum as PyEnum
from typing import Dict, FrozenSet, List, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from signaturepro.utils.general import display_name_for


class ContractStatus(str, PyEnum):
    """Contract lifecycle status"""
    DRAFT = "DRAFT"
    SENT = "SENT"
    IN_PROGRESS = "IN_PROGRESS"
    SIGNED = "SIGNED"
    DECLINED = "DECLINED"
    EXPIRED = "EXPIRED"
    CANCELLED = "CANCELLED"


TERMINAL_STATUSES: FrozenSet[ContractStatus] = frozenset({
    ContractStatus.SIGNED,
    ContractStatus.DECLINED,
    ContractStatus.EXPIRED,
    ContractStatus.CANCELLED,
})

# Statuses in which signers may still sign or decline
SIGNABLE_STATUSES: FrozenSet[ContractStatus] = frozenset({
    ContractStatus.SENT,
    ContractStatus.IN_PROGRESS,
})

ALLOWED_TRANSITIONS: Dict[ContractStatus, FrozenSet[ContractStatus]] = {
    ContractStatus.DRAFT: frozenset({
        ContractStatus.SENT, ContractStatus.EXPIRED, ContractStatus.CANCELLED,
    }),
    ContractStatus.SENT: frozenset({
        ContractStatus.IN_PROGRESS, ContractStatus.DECLINED,
        ContractStatus.EXPIRED, ContractStatus.CANCELLED,
    }),
    ContractStatus.IN_PROGRESS: frozenset({
        ContractStatus.SIGNED, ContractStatus.DECLINED,
        ContractStatus.EXPIRED, ContractStatus.CANCELLED,
    }),
    ContractStatus.SIGNED: frozenset(),
    ContractStatus.DECLINED: frozenset(),
    ContractStatus.EXPIRED: frozenset(),
    ContractStatus.CANCELLED: frozenset(),
}


def can_transition(current: ContractStatus, target: ContractStatus) -> bool:
    """True when the state machine has an edge from current to target"""
    return target in ALLOWED_TRANSITIONS[current]


def sources_for(target: ContractStatus) -> FrozenSet[ContractStatus]:
    """Every status with an edge into target"""
    return frozenset(
        status for status, targets in ALLOWED_TRANSITIONS.items() if target in targets
    )


# --- Requests ---

class SignerCreate(BaseModel):
    """Signer designated at contract creation"""
    email: EmailStr
    name: Optional[str] = None


class ContractCreate(BaseModel):
    """Request to register a contract and its signers"""
    title: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    document_key: Optional[str] = None
    signers: List[SignerCreate] = Field(..., min_length=1)
    expires_in_days: Optional[int] = Field(default=None, ge=1)


class SignatureSubmitRequest(BaseModel):
    """Signature captured on the signing page"""
    token: str
    signer_name: str = Field(..., min_length=1)
    signer_email: EmailStr
    signature_image: str = Field(..., min_length=1)


class DeclineRequest(BaseModel):
    """Signer refusing to sign"""
    token: str
    reason: Optional[str] = None


class CancelRequest(BaseModel):
    """Owner withdrawing a contract"""
    reason: Optional[str] = None


# --- Responses ---

class SignerResponse(BaseModel):
    """Schema for signer response."""
    id: str
    contract_id: str
    email: str
    name: Optional[str] = None
    position: int
    signed: bool
    signed_at: Optional[datetime] = None
    declined: bool
    declined_at: Optional[datetime] = None
    decline_reason: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)

    @property
    def display_name(self) -> str:
        """Name shown in emails"""
        return display_name_for(self.name, self.email)


class OwnerSummary(BaseModel):
    """Owner fields needed by notifications"""
    id: str
    email_address: str
    name: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)

    @property
    def display_name(self) -> str:
        """Name shown in emails"""
        return display_name_for(self.name, self.email_address)


class ContractResponse(BaseModel):
    """Schema for contract response."""
    id: str
    title: str
    description: Optional[str] = None
    owner_id: str
    document_key: Optional[str] = None
    status: ContractStatus
    expires_at: Optional[datetime] = None
    sent_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    signers: List[SignerResponse] = []

    model_config = ConfigDict(from_attributes=True)


class SigningPageResponse(BaseModel):
    """What a signer sees when opening a signature link"""
    contract: ContractResponse
    signer: SignerResponse
    owner: OwnerSummary
