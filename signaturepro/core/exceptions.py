# signaturepro/core/exceptions.py

"""
Custom exceptions for the signing pipeline.
"""

from fastapi import HTTPException, status


class SigningBaseException(Exception):
    """Base exception for the signing pipeline"""
    def __init__(self, message: str, status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR):
        self.message = message
        self.status_code = status_code
        super().__init__(self.message)


class InvalidStateError(SigningBaseException):
    """Raised when a transition is not allowed from the contract's current status"""
    def __init__(self, message: str):
        super().__init__(
            message=message,
            status_code=status.HTTP_409_CONFLICT
        )


class ContractFinalizedError(InvalidStateError):
    """Raised when acting on a contract that already reached a terminal status"""
    def __init__(self, contract_id: str, contract_status: str):
        self.contract_id = contract_id
        self.contract_status = contract_status
        super().__init__(
            message=f"This contract is already finalized ({contract_status})"
        )


class InvalidTokenError(SigningBaseException):
    """Raised when a token has a bad signature, format or does not match the request"""
    def __init__(self, message: str = "Invalid signature link"):
        super().__init__(
            message=message,
            status_code=status.HTTP_401_UNAUTHORIZED
        )


class ExpiredTokenError(InvalidTokenError):
    """Raised when a token is past its expiry"""
    def __init__(self, message: str = "This signature link has expired, please request a new link"):
        super().__init__(message=message)


class NotFoundError(SigningBaseException):
    """Raised when a contract, signer or user does not exist"""
    def __init__(self, entity: str, entity_id: str):
        super().__init__(
            message=f"{entity} with ID {entity_id} not found",
            status_code=status.HTTP_404_NOT_FOUND
        )


class ContractAccessDeniedError(SigningBaseException):
    """Raised when the caller does not own the contract"""
    def __init__(self, contract_id: str):
        super().__init__(
            message=f"You do not have access to contract {contract_id}",
            status_code=status.HTTP_403_FORBIDDEN
        )


class SigningValidationError(SigningBaseException):
    """Raised when contract or signer input is invalid"""
    def __init__(self, message: str):
        super().__init__(
            message=f"Validation failed: {message}",
            status_code=status.HTTP_400_BAD_REQUEST
        )


class NotificationDeliveryError(SigningBaseException):
    """Raised by the dispatcher when a mail transport fails; never surfaced to callers"""
    def __init__(self, recipient: str, message: str):
        self.recipient = recipient
        super().__init__(
            message=f"Failed to deliver notification to {recipient}: {message}",
            status_code=status.HTTP_502_BAD_GATEWAY
        )


class ConflictError(SigningBaseException):
    """Raised when a compare-and-swap status update loses a concurrent race"""
    def __init__(self, contract_id: str, expected: str):
        super().__init__(
            message=f"Contract {contract_id} is no longer in {expected}",
            status_code=status.HTTP_409_CONFLICT
        )


class ImmutableEventError(SigningBaseException):
    """Raised on any attempt to change or remove a written audit event"""
    def __init__(self):
        super().__init__(message="Audit events are append-only")


def convert_to_http_exception(exc: SigningBaseException) -> HTTPException:
    """Convert custom exception to HTTPException"""
    return HTTPException(
        status_code=exc.status_code,
        detail=exc.message
    )
