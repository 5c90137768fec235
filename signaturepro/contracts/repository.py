# signaturepro/contracts/repository.py

"""
Data Access Layer for contracts and signers.
"""

from datetime import datetime
from typing import Any, Iterable, List, Optional

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session, selectinload

from signaturepro.contracts.models import Contract, Signer
from signaturepro.contracts.schemas import ContractStatus, TERMINAL_STATUSES
from signaturepro.core.exceptions import ConflictError
from signaturepro.users.models import User
from signaturepro.utils.logger import get_logger

logger = get_logger(__name__)


class ContractRepository:
    """
    Data Access Layer for Contract and Signer models.
    Status and signer flag changes are conditional UPDATEs so a concurrent
    writer can never be silently overwritten.
    """

    def __init__(self, db: Session):
        self.db = db

    def get_user(self, user_id: str) -> Optional[User]:
        """Fetch an owner by ID."""
        return self.db.get(User, user_id)

    def get_contract(self, contract_id: str, lock: bool = False, refresh: bool = False) -> Optional[Contract]:
        """
        Fetch a contract with its owner and signers.

        lock takes a row lock on the contract for the rest of the
        transaction (ignored by SQLite). refresh overwrites any state
        already loaded in the session.
        """
        stmt = (
            select(Contract)
            .options(selectinload(Contract.signers), selectinload(Contract.owner))
            .where(Contract.id == contract_id)
        )
        if lock:
            stmt = stmt.with_for_update(of=Contract)
        if refresh:
            stmt = stmt.execution_options(populate_existing=True)
        return self.db.execute(stmt).scalar_one_or_none()

    def current_status(self, contract_id: str) -> Optional[ContractStatus]:
        """Status as stored right now, bypassing the identity map"""
        stmt = select(Contract.status).where(Contract.id == contract_id)
        return self.db.execute(stmt).scalar_one_or_none()

    def add_contract(self, contract: Contract) -> Contract:
        """Stage a new contract and its signers."""
        self.db.add(contract)
        self.db.flush()
        return contract

    def compare_and_set_status(
        self,
        contract_id: str,
        expected: Iterable[ContractStatus],
        new_status: ContractStatus,
        **values: Any,
    ) -> None:
        """
        Move a contract to new_status only if it is still in one of the
        expected statuses.

        Raises:
            ConflictError: the contract left the expected statuses first
        """
        expected = list(expected)
        stmt = (
            update(Contract)
            .where(Contract.id == contract_id, Contract.status.in_(expected))
            .values(status=new_status, **values)
            .execution_options(synchronize_session=False)
        )
        result = self.db.execute(stmt)
        if result.rowcount != 1:
            logger.warning(
                "Status compare-and-set lost",
                contract_id=contract_id,
                expected=[status.value for status in expected],
                new_status=new_status.value,
            )
            raise ConflictError(contract_id, "/".join(status.value for status in expected))
        logger.info("Contract status changed", contract_id=contract_id, new_status=new_status.value)

    def mark_signed(
        self,
        signer_id: str,
        signed_at: datetime,
        signature_image: str,
        name: Optional[str] = None,
    ) -> bool:
        """Flag a signer as signed unless they already signed or declined."""
        values = {"signed": True, "signed_at": signed_at, "signature_image": signature_image}
        if name:
            values["name"] = name
        stmt = (
            update(Signer)
            .where(Signer.id == signer_id, Signer.signed.is_(False), Signer.declined.is_(False))
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        return self.db.execute(stmt).rowcount == 1

    def mark_declined(self, signer_id: str, declined_at: datetime, reason: Optional[str]) -> bool:
        """Flag a signer as declined unless they already signed or declined."""
        stmt = (
            update(Signer)
            .where(Signer.id == signer_id, Signer.signed.is_(False), Signer.declined.is_(False))
            .values(declined=True, declined_at=declined_at, decline_reason=reason)
            .execution_options(synchronize_session=False)
        )
        return self.db.execute(stmt).rowcount == 1

    def count_pending_signers(self, contract_id: str) -> int:
        """Signers of the contract who have not signed yet"""
        stmt = (
            select(func.count())
            .select_from(Signer)
            .where(Signer.contract_id == contract_id, Signer.signed.is_(False))
        )
        return self.db.execute(stmt).scalar_one()

    def list_due_for_expiry(self, now: datetime) -> List[str]:
        """IDs of non-terminal contracts whose expiry has passed"""
        stmt = (
            select(Contract.id)
            .where(
                Contract.status.notin_(list(TERMINAL_STATUSES)),
                Contract.expires_at.is_not(None),
                Contract.expires_at < now,
            )
            .order_by(Contract.expires_at)
        )
        return list(self.db.execute(stmt).scalars().all())
