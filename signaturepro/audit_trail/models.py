## signaturepro/audit_trail/models.py

# Standard library imports
from datetime import datetime
from typing import Any, Dict, Optional

# Third party imports
from sqlalchemy import JSON, DateTime, Enum, ForeignKey, Integer, String, event as sa_event
from sqlalchemy.orm import Mapped, Session, mapped_column

# Local imports
from signaturepro.core.db import Base
from signaturepro.core.exceptions import ImmutableEventError
from signaturepro.audit_trail.schemas import EventType
from signaturepro.users.models import new_uuid


class Event(Base):
    """Audit event. Written once per state transition, never changed."""
    __tablename__ = "events"

    # Insertion order; breaks ties between events sharing a timestamp
    sequence: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    id: Mapped[str] = mapped_column(String(36), unique=True, index=True, default=new_uuid)
    type: Mapped[EventType] = mapped_column(Enum(EventType, native_enum=False, length=32), index=True)
    contract_id: Mapped[str] = mapped_column(ForeignKey("contracts.id"), index=True)
    signer_id: Mapped[Optional[str]] = mapped_column(ForeignKey("signers.id"), nullable=True)
    data: Mapped[Dict[str, Any]] = mapped_column(JSON, default=dict)
    ip_address: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    user_agent: Mapped[Optional[str]] = mapped_column(String(512), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), index=True)


@sa_event.listens_for(Event, "before_update")
def _refuse_event_update(mapper, connection, target):
    raise ImmutableEventError()


@sa_event.listens_for(Event, "before_delete")
def _refuse_event_delete(mapper, connection, target):
    raise ImmutableEventError()


@sa_event.listens_for(Session, "do_orm_execute")
def _refuse_bulk_event_changes(orm_execute_state):
    # Bulk UPDATE/DELETE statements skip the mapper hooks above
    if not (orm_execute_state.is_update or orm_execute_state.is_delete):
        return
    if any(mapper.class_ is Event for mapper in orm_execute_state.all_mappers):
        raise ImmutableEventError()
