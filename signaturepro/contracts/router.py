# signaturepro/contracts/router.py

"""
FastAPI router for contract owners and signers.
"""

from fastapi import APIRouter, Depends, Query, Request, status

from signaturepro.contracts.schemas import (
    CancelRequest, ContractCreate, ContractResponse, DeclineRequest,
    SignatureSubmitRequest, SigningPageResponse,
)
from signaturepro.core.exceptions import (
    ContractAccessDeniedError, SigningBaseException, convert_to_http_exception,
)
from signaturepro.pipeline import SigningPipeline, get_pipeline
from signaturepro.users.models import User
from signaturepro.users.utils import get_current_user
from signaturepro.utils.logger import get_logger
from signaturepro.utils.request import get_origin_metadata

logger = get_logger(__name__)

router = APIRouter(tags=["Contracts"])


def ensure_owner(pipeline: SigningPipeline, contract_id: str, user: User) -> ContractResponse:
    """Current contract state, provided the caller owns it"""
    contract = pipeline.coordinator.get_contract(contract_id)
    if contract.owner_id != user.id:
        logger.warning("Contract access denied", contract_id=contract_id, user_id=user.id)
        raise ContractAccessDeniedError(contract_id)
    return contract


# === Owner Endpoints ===

@router.post("/contracts", response_model=ContractResponse, status_code=status.HTTP_201_CREATED)
def create_contract(
    payload: ContractCreate,
    request: Request,
    pipeline: SigningPipeline = Depends(get_pipeline),
    current_user: User = Depends(get_current_user),
):
    """Register a draft contract and its signers."""
    try:
        return pipeline.coordinator.create_contract(
            current_user.id, payload, origin=get_origin_metadata(request),
        )
    except SigningBaseException as e:
        raise convert_to_http_exception(e) from e


@router.get("/contracts/{contract_id}", response_model=ContractResponse)
def get_contract(
    contract_id: str,
    pipeline: SigningPipeline = Depends(get_pipeline),
    current_user: User = Depends(get_current_user),
):
    """Get a contract with its signers."""
    try:
        return ensure_owner(pipeline, contract_id, current_user)
    except SigningBaseException as e:
        raise convert_to_http_exception(e) from e


@router.post("/contracts/{contract_id}/send", response_model=ContractResponse)
def send_contract(
    contract_id: str,
    request: Request,
    pipeline: SigningPipeline = Depends(get_pipeline),
    current_user: User = Depends(get_current_user),
):
    """
    Send a draft contract for signature. Every signer receives an email
    with a personal signature link.
    """
    try:
        ensure_owner(pipeline, contract_id, current_user)
        return pipeline.coordinator.send_for_signature(contract_id, origin=get_origin_metadata(request))
    except SigningBaseException as e:
        raise convert_to_http_exception(e) from e


@router.post("/contracts/{contract_id}/cancel", response_model=ContractResponse)
def cancel_contract(
    contract_id: str,
    request: Request,
    payload: CancelRequest = CancelRequest(),
    pipeline: SigningPipeline = Depends(get_pipeline),
    current_user: User = Depends(get_current_user),
):
    """Withdraw a contract that is not finalized yet."""
    try:
        ensure_owner(pipeline, contract_id, current_user)
        return pipeline.coordinator.cancel_contract(
            contract_id, reason=payload.reason, origin=get_origin_metadata(request),
        )
    except SigningBaseException as e:
        raise convert_to_http_exception(e) from e


@router.post("/contracts/{contract_id}/signers/{signer_id}/remind", status_code=status.HTTP_202_ACCEPTED)
def remind_signer(
    contract_id: str,
    signer_id: str,
    request: Request,
    pipeline: SigningPipeline = Depends(get_pipeline),
    current_user: User = Depends(get_current_user),
):
    """Email a fresh signature link to a signer who has not responded."""
    try:
        ensure_owner(pipeline, contract_id, current_user)
        pipeline.coordinator.send_reminder(contract_id, signer_id, origin=get_origin_metadata(request))
        return {"message": "Reminder sent", "contract_id": contract_id, "signer_id": signer_id}
    except SigningBaseException as e:
        raise convert_to_http_exception(e) from e


# === Signer Endpoints ===

@router.get("/sign/{contract_id}", response_model=SigningPageResponse)
def open_signing_page(
    contract_id: str,
    request: Request,
    token: str = Query(...),
    pipeline: SigningPipeline = Depends(get_pipeline),
):
    """Signer opens their signature link. Each call is recorded as a view."""
    try:
        claims = pipeline.tokens.verify_signature_token(token)
        return pipeline.coordinator.record_view(
            contract_id, claims.signer_id, token, origin=get_origin_metadata(request),
        )
    except SigningBaseException as e:
        raise convert_to_http_exception(e) from e


@router.post("/sign/{contract_id}", response_model=ContractResponse)
def submit_signature(
    contract_id: str,
    payload: SignatureSubmitRequest,
    request: Request,
    pipeline: SigningPipeline = Depends(get_pipeline),
):
    """Submit the signer's signature."""
    try:
        claims = pipeline.tokens.verify_signature_token(payload.token)
        return pipeline.coordinator.submit_signature(
            contract_id,
            claims.signer_id,
            payload.token,
            signature_image=payload.signature_image,
            signer_name=payload.signer_name,
            signer_email=payload.signer_email,
            origin=get_origin_metadata(request),
        )
    except SigningBaseException as e:
        logger.warning("Signature rejected", contract_id=contract_id, error_message=e.message)
        raise convert_to_http_exception(e) from e


@router.post("/sign/{contract_id}/decline", response_model=ContractResponse)
def decline_signature(
    contract_id: str,
    payload: DeclineRequest,
    request: Request,
    pipeline: SigningPipeline = Depends(get_pipeline),
):
    """Signer refuses to sign; the contract is finalized as declined."""
    try:
        claims = pipeline.tokens.verify_signature_token(payload.token)
        return pipeline.coordinator.decline_signature(
            contract_id,
            claims.signer_id,
            payload.token,
            reason=payload.reason,
            origin=get_origin_metadata(request),
        )
    except SigningBaseException as e:
        raise convert_to_http_exception(e) from e
