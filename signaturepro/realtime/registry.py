# signaturepro/realtime/registry.py

"""
Live socket connections and the contract channels they joined.
"""

import asyncio
import threading
import uuid
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Set

from signaturepro.utils.logger import get_logger

logger = get_logger(__name__)


def channel_name(contract_id: str) -> str:
    """Channel a contract's events are emitted on"""
    return f"contract:{contract_id}"


class Connection(ABC):
    """
    One authenticated client. allowed_contract_id restricts a connection
    opened with a signature token to the contract that token was issued for.
    """

    def __init__(
        self,
        user_id: str,
        allowed_contract_id: Optional[str] = None,
        connection_id: Optional[str] = None,
    ):
        self.id = connection_id or uuid.uuid4().hex
        self.user_id = user_id
        self.allowed_contract_id = allowed_contract_id
        self.contract_ids: Set[str] = set()

    def can_join(self, contract_id: str) -> bool:
        return self.allowed_contract_id is None or self.allowed_contract_id == contract_id

    @abstractmethod
    def deliver(self, message: Dict[str, Any]) -> bool:
        """Hand a message to the client without blocking. False when dropped."""


class QueuedConnection(Connection):
    """
    Connection backed by a bounded asyncio queue that the socket task
    drains. deliver() may be called from any thread.

    Connections opened with a signature token keep the signer id and the
    token so the signer can report opening the document over the socket.
    """

    def __init__(
        self,
        user_id: str,
        loop: asyncio.AbstractEventLoop,
        allowed_contract_id: Optional[str] = None,
        max_queue: int = 100,
        signer_id: Optional[str] = None,
        signature_token: Optional[str] = None,
    ):
        super().__init__(user_id, allowed_contract_id)
        self.signer_id = signer_id
        self.signature_token = signature_token
        self.loop = loop
        self.queue: "asyncio.Queue[Optional[Dict[str, Any]]]" = asyncio.Queue(maxsize=max_queue)
        self.closed = False

    def _put(self, message: Optional[Dict[str, Any]]) -> None:
        try:
            self.queue.put_nowait(message)
        except asyncio.QueueFull:
            logger.warning("Socket queue full, message dropped", connection_id=self.id, user_id=self.user_id)

    def deliver(self, message: Dict[str, Any]) -> bool:
        if self.closed or self.loop.is_closed():
            return False
        try:
            self.loop.call_soon_threadsafe(self._put, message)
        except RuntimeError:
            # loop shut down between the check and the call
            return False
        return True

    def close(self) -> None:
        """Stop accepting messages and wake the drain task"""
        if self.closed:
            return
        self.closed = True
        if not self.loop.is_closed():
            try:
                self.loop.call_soon_threadsafe(self._put, None)
            except RuntimeError:
                pass


class ConnectionRegistry:
    """
    Connections of this process and their channel membership. Constructed
    once by the pipeline and shared by the socket endpoint and broadcaster.
    """

    def __init__(self):
        self._connections: Dict[str, Connection] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._connections)

    def register(self, connection: Connection) -> Connection:
        with self._lock:
            self._connections[connection.id] = connection
        logger.info("Socket connected", connection_id=connection.id, user_id=connection.user_id)
        return connection

    def unregister(self, connection_id: str) -> Optional[Connection]:
        with self._lock:
            connection = self._connections.pop(connection_id, None)
        if connection is not None:
            logger.info("Socket disconnected", connection_id=connection_id, user_id=connection.user_id)
        return connection

    def get(self, connection_id: str) -> Optional[Connection]:
        with self._lock:
            return self._connections.get(connection_id)

    def join(self, connection_id: str, contract_id: str) -> bool:
        """Add a connection to a contract channel. False when not allowed."""
        with self._lock:
            connection = self._connections.get(connection_id)
            if connection is None or not connection.can_join(contract_id):
                return False
            connection.contract_ids.add(contract_id)
        logger.debug("Joined channel", connection_id=connection_id, channel=channel_name(contract_id))
        return True

    def leave(self, connection_id: str, contract_id: str) -> None:
        with self._lock:
            connection = self._connections.get(connection_id)
            if connection is not None:
                connection.contract_ids.discard(contract_id)

    def members(self, contract_id: str) -> List[Connection]:
        """Connections currently joined to a contract's channel"""
        with self._lock:
            return [c for c in self._connections.values() if contract_id in c.contract_ids]
