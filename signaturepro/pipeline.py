# signaturepro/pipeline.py

"""
Wiring of the signing pipeline: one event bus, one connection registry,
and the coordinator publishing to the broadcaster and the notification
dispatcher.
"""

from datetime import timedelta
from typing import Optional

from fastapi import Request
from sqlalchemy.orm import sessionmaker

from signaturepro.audit_trail.services import EventLog
from signaturepro.contracts.services import SigningCoordinator
from signaturepro.core.config import Settings, settings
from signaturepro.core.db import SessionLocal
from signaturepro.core.events import EventBus
from signaturepro.core.jwt import Clock, TokenService, build_token_service, utc_now
from signaturepro.notifications.dispatcher import NotificationDispatcher
from signaturepro.realtime.broadcaster import Broadcaster
from signaturepro.realtime.registry import ConnectionRegistry
from signaturepro.utils.email_service import MailTransport, build_mail_transport
from signaturepro.utils.logger import get_logger

logger = get_logger(__name__)


class SigningPipeline:
    """Holds the long-lived collaborators of one process"""

    def __init__(
        self,
        session_factory: sessionmaker,
        tokens: TokenService,
        transport: MailTransport,
        base_url: str,
        registry: Optional[ConnectionRegistry] = None,
        clock: Clock = utc_now,
        app_name: str = "SignaturePro",
        default_expiry_days: int = 30,
    ):
        self.session_factory = session_factory
        self.tokens = tokens
        self.clock = clock
        self.bus = EventBus()
        self.registry = registry or ConnectionRegistry()
        self.broadcaster = Broadcaster(self.registry)
        self.dispatcher = NotificationDispatcher(transport, base_url, app_name=app_name, clock=clock)
        self.event_log = EventLog(clock=clock)
        self.coordinator = SigningCoordinator(
            session_factory=session_factory,
            tokens=tokens,
            event_log=self.event_log,
            bus=self.bus,
            clock=clock,
            default_expiry=timedelta(days=default_expiry_days),
        )

        self.bus.subscribe("broadcaster", self.broadcaster.handle)
        self.bus.subscribe("notifications", self.dispatcher.handle)


def build_pipeline(
    config: Settings = settings,
    session_factory: Optional[sessionmaker] = None,
    transport: Optional[MailTransport] = None,
    clock: Clock = utc_now,
) -> SigningPipeline:
    """Pipeline configured from settings"""
    pipeline = SigningPipeline(
        session_factory=session_factory or SessionLocal,
        tokens=build_token_service(clock),
        transport=transport or build_mail_transport(config),
        base_url=config.app_base_url,
        clock=clock,
        app_name=config.app_name,
        default_expiry_days=config.contract_expire_days,
    )
    logger.info("Signing pipeline ready", subscribers=pipeline.bus.subscribers)
    return pipeline


def get_pipeline(request: Request) -> SigningPipeline:
    """FastAPI dependency returning the pipeline built at startup"""
    return request.app.state.pipeline
