# signaturepro/realtime/broadcaster.py

from typing import Any, Dict

from signaturepro.audit_trail.schemas import EventResponse
from signaturepro.contracts.events import SigningEvent, SigningTopic
from signaturepro.realtime.registry import ConnectionRegistry, channel_name
from signaturepro.utils.logger import get_logger

logger = get_logger(__name__)

CONTRACT_UPDATED = "contract:updated"
SIGNATURE_REQUESTED = "signature:requested"
SIGNATURE_COMPLETED = "signature:completed"
CONTRACT_COMPLETED = "contract:completed"


class Broadcaster:
    """
    Pushes contract events to the sockets joined to the contract's channel.
    Delivery is at most once: a connection that cannot take a message is
    skipped, and nothing is replayed on reconnect.
    """

    def __init__(self, registry: ConnectionRegistry):
        self.registry = registry

    def emit(self, contract_id: str, event_name: str, data: Any) -> int:
        """Send one event to a contract channel; returns the number of sockets reached"""
        message = {"event": event_name, "channel": channel_name(contract_id), "data": data}
        delivered = 0
        for connection in self.registry.members(contract_id):
            if connection.deliver(message):
                delivered += 1
            else:
                logger.warning(
                    "Socket message dropped",
                    connection_id=connection.id,
                    event_name=event_name,
                    contract_id=contract_id,
                )
        logger.debug("Socket event emitted", event_name=event_name, contract_id=contract_id, delivered=delivered)
        return delivered

    def notify_contract_update(self, event: EventResponse) -> int:
        """Mirror an Event Log row to the contract channel"""
        payload: Dict[str, Any] = {
            "type": event.type.value,
            "contractId": event.contract_id,
            "signerId": event.signer_id,
            "data": event.data,
            "eventId": event.id,
            "createdAt": event.created_at.isoformat(),
        }
        return self.emit(event.contract_id, CONTRACT_UPDATED, payload)

    def notify_signature_requested(self, contract_id: str, signer_id: str) -> int:
        return self.emit(contract_id, SIGNATURE_REQUESTED, {"signerId": signer_id, "contractId": contract_id})

    def notify_signature_completed(self, contract_id: str, signer_id: str) -> int:
        return self.emit(contract_id, SIGNATURE_COMPLETED, {"signerId": signer_id, "contractId": contract_id})

    def notify_contract_completed(self, contract_id: str) -> int:
        return self.emit(contract_id, CONTRACT_COMPLETED, contract_id)

    def handle(self, event: SigningEvent) -> None:
        """Event bus subscriber: log mirror first, then the topic's own event"""
        for audit_event in event.audit_events:
            self.notify_contract_update(audit_event)

        contract_id = event.contract.id
        requested = (SigningTopic.SIGNATURE_REQUESTED, SigningTopic.REMINDER_REQUESTED, SigningTopic.SIGNER_VIEWED)
        if event.topic in requested and event.signer:
            self.notify_signature_requested(contract_id, event.signer.id)
        elif event.topic == SigningTopic.SIGNATURE_COMPLETED and event.signer:
            self.notify_signature_completed(contract_id, event.signer.id)
        elif event.topic == SigningTopic.CONTRACT_COMPLETED:
            self.notify_contract_completed(contract_id)
