# signaturepro/contracts/services.py

"""
Signing coordinator: the only place where contract and signer state changes.

Each operation runs as one database transaction covering the state change
and its Event Log rows. Domain events are collected while the transaction
runs and published on the event bus only after it commits, so realtime
broadcast and email can fail without touching recorded state.
"""

from contextlib import contextmanager
from datetime import timedelta
from typing import Iterable, Iterator, List, Optional, Tuple

from sqlalchemy.orm import Session, sessionmaker

from signaturepro.audit_trail.models import Event
from signaturepro.audit_trail.schemas import EventResponse, EventType, OriginMetadata
from signaturepro.audit_trail.services import EventLog
from signaturepro.contracts.events import SigningEvent, SigningTopic
from signaturepro.contracts.models import Contract, Signer
from signaturepro.contracts.repository import ContractRepository
from signaturepro.contracts.schemas import (
    ContractCreate, ContractResponse, ContractStatus, OwnerSummary,
    SignerResponse, SigningPageResponse, SIGNABLE_STATUSES, TERMINAL_STATUSES,
    sources_for,
)
from signaturepro.core.events import EventBus
from signaturepro.core.exceptions import (
    ConflictError, ContractFinalizedError, InvalidStateError, InvalidTokenError,
    NotFoundError, SigningBaseException, SigningValidationError,
)
from signaturepro.core.jwt import Clock, SignatureTokenClaims, TokenService, utc_now
from signaturepro.utils.general import as_utc, normalize_email
from signaturepro.utils.logger import get_logger

logger = get_logger(__name__)


class SigningCoordinator:
    """
    Owns the contract state machine:

        DRAFT -> SENT -> IN_PROGRESS -> SIGNED | DECLINED | EXPIRED | CANCELLED

    EXPIRED and CANCELLED are reachable from any non-terminal status and
    DECLINED from SENT or IN_PROGRESS.
    """

    def __init__(
        self,
        session_factory: sessionmaker,
        tokens: TokenService,
        event_log: EventLog,
        bus: EventBus,
        clock: Clock = utc_now,
        default_expiry: timedelta = timedelta(days=30),
    ):
        self._session_factory = session_factory
        self.tokens = tokens
        self.event_log = event_log
        self.bus = bus
        self._clock = clock
        self.default_expiry = default_expiry

    # === Plumbing ===

    @contextmanager
    def _transaction(self) -> Iterator[Tuple[Session, List[SigningEvent]]]:
        pending: List[SigningEvent] = []
        with self._session_factory() as db:
            with db.begin():
                yield db, pending
        for signing_event in pending:
            self.bus.publish(signing_event)

    def _load_contract(self, repo: ContractRepository, contract_id: str, lock: bool = False) -> Contract:
        contract = repo.get_contract(contract_id, lock=lock)
        if contract is None:
            raise NotFoundError("Contract", contract_id)
        return contract

    @staticmethod
    def _find_signer(contract: Contract, signer_id: str) -> Signer:
        for signer in contract.signers:
            if signer.id == signer_id:
                return signer
        raise NotFoundError("Signer", signer_id)

    @staticmethod
    def _state_error(contract: Contract, action: str) -> InvalidStateError:
        if contract.status in TERMINAL_STATUSES:
            return ContractFinalizedError(contract.id, contract.status.value)
        return InvalidStateError(f"Cannot {action} a contract in status {contract.status.value}")

    def _past_expiry(self, contract: Contract) -> bool:
        return contract.expires_at is not None and self._clock() > as_utc(contract.expires_at)

    def _check_not_expired(self, contract: Contract) -> None:
        """Refuse a contract whose expiry passed after the last expiry check"""
        if contract.status not in TERMINAL_STATUSES and self._past_expiry(contract):
            raise ContractFinalizedError(contract.id, ContractStatus.EXPIRED.value)

    def _snapshot(self, repo: ContractRepository, contract_id: str) -> Tuple[ContractResponse, OwnerSummary]:
        contract = repo.get_contract(contract_id, refresh=True)
        return ContractResponse.model_validate(contract), OwnerSummary.model_validate(contract.owner)

    def _log(
        self,
        db: Session,
        event_type: EventType,
        contract_id: str,
        signer_id: Optional[str] = None,
        data: Optional[dict] = None,
        origin: Optional[OriginMetadata] = None,
    ) -> EventResponse:
        row: Event = self.event_log.append(db, event_type, contract_id, signer_id, data, origin)
        return EventResponse.model_validate(row)

    def _verify_for(
        self,
        token: str,
        contract_id: str,
        signer_id: str,
        email: Optional[str] = None,
    ) -> SignatureTokenClaims:
        """Verify a signature token and check it was issued for this contract and signer"""
        claims = self.tokens.verify_signature_token(token)
        if claims.contract_id != contract_id or claims.signer_id != signer_id:
            logger.warning(
                "Signature token presented for another contract or signer",
                contract_id=contract_id,
                signer_id=signer_id,
            )
            raise InvalidTokenError("This signature link was not issued for this contract or signer")
        if email is not None and normalize_email(email) != normalize_email(claims.email):
            raise InvalidTokenError("This signature link was issued for another email address")
        return claims

    @staticmethod
    def _check_signer_email(signer: Signer, claims: SignatureTokenClaims) -> None:
        if normalize_email(signer.email) != normalize_email(claims.email):
            raise InvalidTokenError("This signature link was issued for another email address")

    # === Operations ===

    def create_contract(
        self,
        owner_id: str,
        data: ContractCreate,
        origin: Optional[OriginMetadata] = None,
    ) -> ContractResponse:
        """Register a DRAFT contract with its signers."""
        emails = [normalize_email(signer.email) for signer in data.signers]
        if len(set(emails)) != len(emails):
            raise SigningValidationError("each signer email must be unique within a contract")

        with self._transaction() as (db, pending):
            repo = ContractRepository(db)
            if repo.get_user(owner_id) is None:
                raise NotFoundError("User", owner_id)

            expiry = timedelta(days=data.expires_in_days) if data.expires_in_days else self.default_expiry
            contract = Contract(
                title=data.title,
                description=data.description,
                owner_id=owner_id,
                document_key=data.document_key,
                status=ContractStatus.DRAFT,
                expires_at=self._clock() + expiry,
            )
            contract.signers = [
                Signer(email=email, name=signer.name, position=position)
                for position, (email, signer) in enumerate(zip(emails, data.signers))
            ]
            repo.add_contract(contract)

            created = self._log(
                db, EventType.CONTRACT_CREATED, contract.id,
                data={"title": contract.title, "signerCount": len(emails)},
                origin=origin,
            )
            snapshot, owner = self._snapshot(repo, contract.id)
            pending.append(SigningEvent(
                topic=SigningTopic.CONTRACT_CREATED,
                contract=snapshot,
                owner=owner,
                audit_events=[created],
            ))

        logger.info("Contract created", contract_id=snapshot.id, signer_count=len(emails))
        return snapshot

    def send_for_signature(
        self,
        contract_id: str,
        origin: Optional[OriginMetadata] = None,
    ) -> ContractResponse:
        """
        Dispatch a DRAFT contract to every signer: one signature token and
        one request email each.

        Raises:
            InvalidStateError: the contract is not DRAFT
        """
        self.expire_if_due(contract_id, origin)

        with self._transaction() as (db, pending):
            repo = ContractRepository(db)
            contract = self._load_contract(repo, contract_id, lock=True)
            if contract.status != ContractStatus.DRAFT:
                raise self._state_error(contract, "send")
            if not contract.signers:
                raise SigningValidationError("a contract needs at least one signer")

            try:
                repo.compare_and_set_status(
                    contract_id, [ContractStatus.DRAFT], ContractStatus.SENT, sent_at=self._clock(),
                )
            except ConflictError as e:
                raise InvalidStateError("This contract has already been sent") from e

            sent = self._log(
                db, EventType.CONTRACT_SENT, contract_id,
                data={"signerCount": len(contract.signers)},
                origin=origin,
            )
            requests = []
            for signer in contract.signers:
                token = self.tokens.issue_signature_token(signer.id, contract_id, signer.email)
                email_sent = self._log(
                    db, EventType.EMAIL_SENT, contract_id, signer.id,
                    data={"kind": "signature_request", "email": signer.email},
                    origin=origin,
                )
                requests.append((signer, token, email_sent))

            snapshot, owner = self._snapshot(repo, contract_id)
            pending.append(SigningEvent(
                topic=SigningTopic.CONTRACT_SENT,
                contract=snapshot,
                owner=owner,
                audit_events=[sent],
            ))
            for signer, token, email_sent in requests:
                pending.append(SigningEvent(
                    topic=SigningTopic.SIGNATURE_REQUESTED,
                    contract=snapshot,
                    owner=owner,
                    signer=SignerResponse.model_validate(signer),
                    token=token,
                    audit_events=[email_sent],
                ))

        logger.info("Contract sent for signature", contract_id=contract_id, signer_count=len(requests))
        return snapshot

    def record_view(
        self,
        contract_id: str,
        signer_id: str,
        token: str,
        origin: Optional[OriginMetadata] = None,
    ) -> SigningPageResponse:
        """
        Log that a signer opened their signature link. Every call is a
        distinct view and is logged; status is left unchanged.
        """
        claims = self._verify_for(token, contract_id, signer_id)
        self.expire_if_due(contract_id, origin)

        with self._transaction() as (db, pending):
            repo = ContractRepository(db)
            contract = self._load_contract(repo, contract_id)
            signer = self._find_signer(contract, signer_id)
            self._check_signer_email(signer, claims)

            viewed = self._log(
                db, EventType.SIGNER_VIEWED, contract_id, signer_id,
                data={"status": contract.status.value},
                origin=origin,
            )
            snapshot, owner = self._snapshot(repo, contract_id)
            signer_snapshot = SignerResponse.model_validate(signer)
            pending.append(SigningEvent(
                topic=SigningTopic.SIGNER_VIEWED,
                contract=snapshot,
                owner=owner,
                signer=signer_snapshot,
                audit_events=[viewed],
            ))

        return SigningPageResponse(contract=snapshot, signer=signer_snapshot, owner=owner)

    def submit_signature(
        self,
        contract_id: str,
        signer_id: str,
        token: str,
        signature_image: str,
        signer_name: str,
        signer_email: str,
        origin: Optional[OriginMetadata] = None,
    ) -> ContractResponse:
        """
        Record one signer's signature. The last pending signer completes the
        contract.

        Raises:
            ExpiredTokenError: the signature link expired
            InvalidTokenError: the token does not match contract, signer or email
            InvalidStateError: contract not SENT/IN_PROGRESS, or signer already responded
        """
        claims = self._verify_for(token, contract_id, signer_id, email=signer_email)
        self.expire_if_due(contract_id, origin)

        with self._transaction() as (db, pending):
            repo = ContractRepository(db)
            contract = self._load_contract(repo, contract_id, lock=True)
            signer = self._find_signer(contract, signer_id)
            self._check_signer_email(signer, claims)

            self._check_not_expired(contract)
            if contract.status not in SIGNABLE_STATUSES:
                raise self._state_error(contract, "sign")
            if signer.signed:
                raise InvalidStateError("You have already signed this contract")
            if signer.declined:
                raise InvalidStateError("You have declined this contract")

            now = self._clock()
            if not repo.mark_signed(signer_id, now, signature_image, signer_name):
                raise InvalidStateError("You have already responded to this contract")

            signed = self._log(
                db, EventType.SIGNER_SIGNED, contract_id, signer_id,
                data={"signerName": signer_name, "email": signer.email},
                origin=origin,
            )

            if contract.status == ContractStatus.SENT:
                try:
                    repo.compare_and_set_status(contract_id, [ContractStatus.SENT], ContractStatus.IN_PROGRESS)
                except ConflictError:
                    # Another signer got there first; only IN_PROGRESS is acceptable
                    current = repo.current_status(contract_id)
                    if current != ContractStatus.IN_PROGRESS:
                        raise ContractFinalizedError(contract_id, current.value if current else "UNKNOWN")

            completed = self._complete_if_last(db, repo, contract_id, origin)

            snapshot, owner = self._snapshot(repo, contract_id)
            pending.append(SigningEvent(
                topic=SigningTopic.SIGNATURE_COMPLETED,
                contract=snapshot,
                owner=owner,
                signer=SignerResponse.model_validate(self._find_signer(repo.get_contract(contract_id), signer_id)),
                audit_events=[signed],
            ))
            if completed is not None:
                pending.append(SigningEvent(
                    topic=SigningTopic.CONTRACT_COMPLETED,
                    contract=snapshot,
                    owner=owner,
                    audit_events=[completed],
                ))

        logger.info(
            "Signature recorded",
            contract_id=contract_id,
            signer_id=signer_id,
            contract_completed=completed is not None,
        )
        return snapshot

    def _complete_if_last(
        self,
        db: Session,
        repo: ContractRepository,
        contract_id: str,
        origin: Optional[OriginMetadata] = None,
    ) -> Optional[EventResponse]:
        """
        Complete the contract when no signer is pending. Evaluated inside
        the transaction that recorded the signature; the status CAS lets at
        most one caller write CONTRACT_COMPLETED.
        """
        if repo.count_pending_signers(contract_id) > 0:
            return None
        try:
            repo.compare_and_set_status(
                contract_id, [ContractStatus.IN_PROGRESS], ContractStatus.SIGNED, completed_at=self._clock(),
            )
        except ConflictError:
            logger.info("Contract completion already recorded", contract_id=contract_id)
            return None

        contract = repo.get_contract(contract_id, refresh=True)
        return self._log(
            db, EventType.CONTRACT_COMPLETED, contract_id,
            data={"signerCount": len(contract.signers)},
            origin=origin,
        )

    def decline_signature(
        self,
        contract_id: str,
        signer_id: str,
        token: str,
        reason: Optional[str] = None,
        origin: Optional[OriginMetadata] = None,
    ) -> ContractResponse:
        """
        A signer refuses to sign. The first decline finalizes the contract
        as DECLINED and blocks every later signature.
        """
        claims = self._verify_for(token, contract_id, signer_id)
        self.expire_if_due(contract_id, origin)

        with self._transaction() as (db, pending):
            repo = ContractRepository(db)
            contract = self._load_contract(repo, contract_id, lock=True)
            signer = self._find_signer(contract, signer_id)
            self._check_signer_email(signer, claims)

            self._check_not_expired(contract)
            if contract.status not in SIGNABLE_STATUSES:
                raise self._state_error(contract, "decline")
            if signer.signed:
                raise InvalidStateError("You have already signed this contract")

            now = self._clock()
            if not repo.mark_declined(signer_id, now, reason):
                raise InvalidStateError("You have already responded to this contract")

            signer_declined = self._log(
                db, EventType.SIGNER_DECLINED, contract_id, signer_id,
                data={"reason": reason, "email": signer.email},
                origin=origin,
            )
            try:
                repo.compare_and_set_status(
                    contract_id, SIGNABLE_STATUSES, ContractStatus.DECLINED, completed_at=now,
                )
            except ConflictError:
                current = repo.current_status(contract_id)
                raise ContractFinalizedError(contract_id, current.value if current else "UNKNOWN")

            contract_declined = self._log(
                db, EventType.CONTRACT_DECLINED, contract_id, signer_id,
                data={"reason": reason},
                origin=origin,
            )
            snapshot, owner = self._snapshot(repo, contract_id)
            pending.append(SigningEvent(
                topic=SigningTopic.SIGNATURE_DECLINED,
                contract=snapshot,
                owner=owner,
                signer=SignerResponse.model_validate(self._find_signer(repo.get_contract(contract_id), signer_id)),
                audit_events=[signer_declined, contract_declined],
            ))

        logger.info("Contract declined", contract_id=contract_id, signer_id=signer_id)
        return snapshot

    def expire_if_due(self, contract_id: str, origin: Optional[OriginMetadata] = None) -> bool:
        """
        Move a non-terminal contract past its expiry to EXPIRED.
        Returns True when this call expired it; safe to call repeatedly.
        """
        with self._transaction() as (db, pending):
            repo = ContractRepository(db)
            contract = self._load_contract(repo, contract_id, lock=True)
            if contract.status in TERMINAL_STATUSES or not self._past_expiry(contract):
                return False
            expires_at = as_utc(contract.expires_at)

            try:
                repo.compare_and_set_status(
                    contract_id, sources_for(ContractStatus.EXPIRED), ContractStatus.EXPIRED,
                    completed_at=self._clock(),
                )
            except ConflictError:
                return False

            expired = self._log(
                db, EventType.CONTRACT_EXPIRED, contract_id,
                data={"expiresAt": expires_at.isoformat(), "previousStatus": contract.status.value},
                origin=origin,
            )
            snapshot, owner = self._snapshot(repo, contract_id)
            pending.append(SigningEvent(
                topic=SigningTopic.CONTRACT_EXPIRED,
                contract=snapshot,
                owner=owner,
                audit_events=[expired],
            ))

        logger.info("Contract expired", contract_id=contract_id)
        return True

    def expire_due_contracts(self) -> List[str]:
        """Sweep: expire every non-terminal contract past its expiry."""
        with self._session_factory() as db:
            due = ContractRepository(db).list_due_for_expiry(self._clock())

        expired = []
        for contract_id in due:
            try:
                if self.expire_if_due(contract_id):
                    expired.append(contract_id)
            except SigningBaseException as e:
                logger.warning("Could not expire contract", contract_id=contract_id, error_message=e.message)
        logger.info("Expiry sweep finished", due=len(due), expired=len(expired))
        return expired

    def send_reminder(
        self,
        contract_id: str,
        signer_id: str,
        origin: Optional[OriginMetadata] = None,
    ) -> str:
        """
        Re-send the signature request to a signer who has not responded.
        Issues a fresh token; earlier tokens stay valid until they expire.
        Returns the new token.
        """
        self.expire_if_due(contract_id, origin)

        with self._transaction() as (db, pending):
            repo = ContractRepository(db)
            contract = self._load_contract(repo, contract_id, lock=True)
            signer = self._find_signer(contract, signer_id)

            if contract.status not in SIGNABLE_STATUSES:
                raise self._state_error(contract, "remind signers of")
            if signer.signed or signer.declined:
                raise InvalidStateError("This signer has already responded")

            token = self.tokens.issue_signature_token(signer.id, contract_id, signer.email)
            reminded = self._log(
                db, EventType.REMINDER_SENT, contract_id, signer_id,
                data={"email": signer.email},
                origin=origin,
            )
            snapshot, owner = self._snapshot(repo, contract_id)
            pending.append(SigningEvent(
                topic=SigningTopic.REMINDER_REQUESTED,
                contract=snapshot,
                owner=owner,
                signer=SignerResponse.model_validate(signer),
                token=token,
                audit_events=[reminded],
            ))

        logger.info("Reminder sent", contract_id=contract_id, signer_id=signer_id)
        return token

    def cancel_contract(
        self,
        contract_id: str,
        reason: Optional[str] = None,
        origin: Optional[OriginMetadata] = None,
    ) -> ContractResponse:
        """Owner withdraws a contract that has not reached a terminal status."""
        self.expire_if_due(contract_id, origin)

        with self._transaction() as (db, pending):
            repo = ContractRepository(db)
            contract = self._load_contract(repo, contract_id, lock=True)
            if contract.status in TERMINAL_STATUSES:
                raise self._state_error(contract, "cancel")

            try:
                repo.compare_and_set_status(
                    contract_id, sources_for(ContractStatus.CANCELLED), ContractStatus.CANCELLED,
                    completed_at=self._clock(),
                )
            except ConflictError:
                current = repo.current_status(contract_id)
                raise ContractFinalizedError(contract_id, current.value if current else "UNKNOWN")

            cancelled = self._log(
                db, EventType.CONTRACT_CANCELLED, contract_id,
                data={"reason": reason, "previousStatus": contract.status.value},
                origin=origin,
            )
            snapshot, owner = self._snapshot(repo, contract_id)
            pending.append(SigningEvent(
                topic=SigningTopic.CONTRACT_CANCELLED,
                contract=snapshot,
                owner=owner,
                audit_events=[cancelled],
            ))

        logger.info("Contract cancelled", contract_id=contract_id)
        return snapshot

    # === Reads ===

    def get_contract(self, contract_id: str) -> ContractResponse:
        """Current contract state, expiring it first if it is overdue."""
        self.expire_if_due(contract_id)
        with self._session_factory() as db:
            contract = self._load_contract(ContractRepository(db), contract_id)
            return ContractResponse.model_validate(contract)

    def history(
        self,
        contract_id: str,
        types: Optional[Iterable[EventType]] = None,
    ) -> List[EventResponse]:
        """Audit trail of a contract in chronological order."""
        with self._session_factory() as db:
            self._load_contract(ContractRepository(db), contract_id)
            rows = self.event_log.query(db, contract_id=contract_id, types=types)
            return [EventResponse.model_validate(row) for row in rows]
