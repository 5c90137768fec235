# signaturepro/notifications/dispatcher.py

import threading
from collections import deque
from datetime import datetime
from pathlib import Path
from typing import Any, Deque, Dict, Iterable, List

from jinja2 import Environment, FileSystemLoader, select_autoescape
from pydantic import BaseModel

from signaturepro.contracts.events import SigningEvent, SigningTopic
from signaturepro.contracts.schemas import ContractResponse, OwnerSummary, SignerResponse
from signaturepro.core.exceptions import NotificationDeliveryError
from signaturepro.core.jwt import Clock, utc_now
from signaturepro.utils.email_service import MailTransport
from signaturepro.utils.logger import get_logger

logger = get_logger(__name__)

TEMPLATE_DIR = Path(__file__).resolve().parent.parent / "templates" / "emails"


class MissedNotification(BaseModel):
    """An email that could not be handed to the transport"""
    kind: str
    recipient: str
    subject: str
    contract_id: str
    error: str
    occurred_at: datetime


class NotificationDispatcher:
    """
    Renders and sends the transactional emails of the signing flow:
    signature request, reminder, and completion (owner and signer variants).

    Every send is isolated. A failing recipient is logged, kept in the
    missed-notification list and never raised to the caller.
    """

    def __init__(
        self,
        transport: MailTransport,
        base_url: str,
        app_name: str = "SignaturePro",
        clock: Clock = utc_now,
        max_missed: int = 500,
    ):
        self.transport = transport
        self.base_url = base_url.rstrip("/")
        self.app_name = app_name
        self._clock = clock
        self._missed: Deque[MissedNotification] = deque(maxlen=max_missed)
        self._missed_lock = threading.Lock()
        self.jinja_env = Environment(
            loader=FileSystemLoader(str(TEMPLATE_DIR)),
            autoescape=select_autoescape(enabled_extensions=("html",), default_for_string=False),
        )

    # --- URLs ---

    def signature_url(self, contract_id: str, token: str) -> str:
        """Signature link handed to a signer"""
        return f"{self.base_url}/sign/{contract_id}?token={token}"

    def document_url(self, contract_id: str) -> str:
        """Link to the finished document"""
        return f"{self.base_url}/contracts/{contract_id}"

    # --- Missed notifications ---

    @property
    def missed(self) -> List[MissedNotification]:
        with self._missed_lock:
            return list(self._missed)

    def _record_miss(self, kind: str, recipient: str, subject: str, contract_id: str, error: Exception) -> None:
        with self._missed_lock:
            self._missed.append(MissedNotification(
                kind=kind,
                recipient=recipient,
                subject=subject,
                contract_id=contract_id,
                error=str(error),
                occurred_at=self._clock(),
            ))

    # --- Rendering and delivery ---

    def _render(self, template_name: str, context: Dict[str, Any]) -> str:
        template = self.jinja_env.get_template(template_name)
        return template.render(app_name=self.app_name, **context)

    def _deliver(
        self,
        kind: str,
        recipient: str,
        subject: str,
        template: str,
        context: Dict[str, Any],
        contract_id: str,
    ) -> bool:
        try:
            html = self._render(f"{template}.html", context)
            text = self._render(f"{template}.txt", context)
            if not self.transport.send(recipient, subject, html, text):
                raise NotificationDeliveryError(recipient, "transport refused the message")
            logger.info("Notification sent", kind=kind, to=recipient, contract_id=contract_id)
            return True
        except NotificationDeliveryError as e:
            logger.error("Notification missed", kind=kind, contract_id=contract_id, error_message=e.message)
            self._record_miss(kind, recipient, subject, contract_id, e)
            return False
        except Exception as e:
            error = NotificationDeliveryError(recipient, str(e))
            logger.error(
                "Notification missed",
                kind=kind,
                contract_id=contract_id,
                error_message=error.message,
                exc_info=True,
            )
            self._record_miss(kind, recipient, subject, contract_id, error)
            return False

    def _request(
        self,
        kind: str,
        signer: SignerResponse,
        contract: ContractResponse,
        owner: OwnerSummary,
        token: str,
        is_reminder: bool,
    ) -> bool:
        prefix = "Reminder: " if is_reminder else ""
        subject = f"{prefix}Signature requested: {contract.title}"
        context = {
            "signer_name": signer.display_name,
            "owner_name": owner.display_name,
            "contract_name": contract.title,
            "signature_url": self.signature_url(contract.id, token),
            "is_reminder": is_reminder,
        }
        return self._deliver(kind, signer.email, subject, "signature_request", context, contract.id)

    def notify_for_signature(
        self,
        signer: SignerResponse,
        contract: ContractResponse,
        owner: OwnerSummary,
        token: str,
    ) -> bool:
        """Ask a signer to sign"""
        return self._request("signature_request", signer, contract, owner, token, is_reminder=False)

    def notify_reminder(
        self,
        signer: SignerResponse,
        contract: ContractResponse,
        owner: OwnerSummary,
        token: str,
    ) -> bool:
        """Remind a signer, same template flagged as a reminder"""
        return self._request("signature_reminder", signer, contract, owner, token, is_reminder=True)

    def notify_completion(
        self,
        contract: ContractResponse,
        owner: OwnerSummary,
        signers: Iterable[SignerResponse],
    ) -> Dict[str, bool]:
        """
        Tell the owner and every signer that the contract is fully signed.
        A signer sharing the owner's email gets only the owner variant.
        Returns delivery status per recipient.
        """
        signers = list(signers)
        subject = f"Contract signed: {contract.title}"
        contract_url = self.document_url(contract.id)
        results: Dict[str, bool] = {}

        results[owner.email_address] = self._deliver(
            "completion_owner",
            owner.email_address,
            subject,
            "signature_completed",
            {
                "recipient_name": owner.display_name,
                "contract_name": contract.title,
                "contract_url": contract_url,
                "is_owner": True,
                "signer_count": len(signers),
            },
            contract.id,
        )

        owner_email = owner.email_address.lower()
        for signer in signers:
            if signer.email.lower() == owner_email:
                continue
            results[signer.email] = self._deliver(
                "completion_signer",
                signer.email,
                subject,
                "signature_completed",
                {
                    "recipient_name": signer.display_name,
                    "contract_name": contract.title,
                    "contract_url": contract_url,
                    "is_owner": False,
                    "signer_count": len(signers),
                },
                contract.id,
            )
        return results

    # --- Event bus subscriber ---

    def handle(self, event: SigningEvent) -> None:
        """Send the emails a published signing event calls for"""
        if event.topic == SigningTopic.SIGNATURE_REQUESTED and event.signer and event.token:
            self.notify_for_signature(event.signer, event.contract, event.owner, event.token)
        elif event.topic == SigningTopic.REMINDER_REQUESTED and event.signer and event.token:
            self.notify_reminder(event.signer, event.contract, event.owner, event.token)
        elif event.topic == SigningTopic.CONTRACT_COMPLETED:
            self.notify_completion(event.contract, event.owner, event.contract.signers)
