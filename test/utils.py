# test/utils.py

from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Set

from signaturepro.contracts.events import SigningEvent, SigningTopic
from signaturepro.realtime.registry import Connection
from signaturepro.users.models import User
from signaturepro.utils.email_service import MailTransport


class FakeClock:
    """Clock the tests move by hand"""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


class RecordingTransport(MailTransport):
    """Keeps every message instead of sending it"""

    def __init__(self):
        self.sent: List[Dict[str, Any]] = []
        self.refuse: Set[str] = set()
        self.explode: Set[str] = set()

    def send(self, to: str, subject: str, html: str, text: Optional[str] = None) -> bool:
        if to in self.explode:
            raise RuntimeError("connection reset by mail relay")
        if to in self.refuse:
            return False
        self.sent.append({"to": to, "subject": subject, "html": html, "text": text})
        return True

    def to(self, recipient: str) -> List[Dict[str, Any]]:
        return [message for message in self.sent if message["to"] == recipient]


class RecordingConnection(Connection):
    """Socket stand-in collecting delivered messages"""

    def __init__(self, user_id: str, allowed_contract_id: Optional[str] = None, accepting: bool = True):
        super().__init__(user_id, allowed_contract_id)
        self.messages: List[Dict[str, Any]] = []
        self.accepting = accepting

    def deliver(self, message: Dict[str, Any]) -> bool:
        if not self.accepting:
            return False
        self.messages.append(message)
        return True

    def events(self) -> List[str]:
        return [message["event"] for message in self.messages]


def tokens_by_email(events: List[SigningEvent]) -> Dict[str, str]:
    """Latest signature token published for each signer email"""
    tokens = {}
    for event in events:
        if event.topic in (SigningTopic.SIGNATURE_REQUESTED, SigningTopic.REMINDER_REQUESTED):
            tokens[event.signer.email] = event.token
    return tokens


def token_from_link(body: str) -> str:
    """Token carried by the signature link in an email body"""
    marker = "?token="
    start = body.index(marker) + len(marker)
    end = start
    while end < len(body) and body[end] not in " \n\"'<&":
        end += 1
    return body[start:end]


def add_user(session_factory, email: str, name: Optional[str] = None) -> User:
    """Insert an owner the way the registration flow would"""
    with session_factory() as db, db.begin():
        user = User(email_address=email, name=name)
        db.add(user)
    return user
