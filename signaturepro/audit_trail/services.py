## signaturepro/audit_trail/services.py

# Standard library imports
from typing import Any, Dict, Iterable, List, Optional

# Third party imports
from sqlalchemy import asc, select
from sqlalchemy.orm import Session

# Local imports
from signaturepro.core.jwt import Clock, utc_now
from signaturepro.utils.logger import get_logger
from signaturepro.audit_trail.models import Event
from signaturepro.audit_trail.schemas import EventType, OriginMetadata

logger = get_logger(__name__)


class EventLog:
    """
    Append-only audit trail of contract lifecycle events.

    Writes go through the caller's session so an event commits or rolls
    back together with the state change it records.
    """

    def __init__(self, clock: Clock = utc_now):
        self._clock = clock

    def append(
        self,
        db: Session,
        event_type: EventType,
        contract_id: str,
        signer_id: Optional[str] = None,
        data: Optional[Dict[str, Any]] = None,
        origin: Optional[OriginMetadata] = None,
    ) -> Event:
        """Write one immutable event row"""
        try:
            new_event = Event(
                type=event_type,
                contract_id=contract_id,
                signer_id=signer_id,
                data=dict(data or {}),
                ip_address=origin.ip_address if origin else None,
                user_agent=origin.user_agent if origin else None,
                created_at=self._clock(),
            )
            db.add(new_event)
            db.flush()
            logger.info(
                "Audit event appended",
                event_type=event_type.value,
                contract_id=contract_id,
                signer_id=signer_id,
            )
            return new_event
        except Exception as e:
            logger.error(
                "Error appending audit event",
                event_type=event_type.value,
                contract_id=contract_id,
                error_message=str(e),
            )
            raise

    def query(
        self,
        db: Session,
        contract_id: Optional[str] = None,
        types: Optional[Iterable[EventType]] = None,
    ) -> List[Event]:
        """Events in chronological order, optionally filtered by contract and type"""
        stmt = select(Event)
        if contract_id is not None:
            stmt = stmt.where(Event.contract_id == contract_id)
        if types:
            stmt = stmt.where(Event.type.in_(list(types)))
        stmt = stmt.order_by(asc(Event.created_at), asc(Event.sequence))
        return list(db.execute(stmt).scalars().all())
