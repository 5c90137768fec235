import os

# Settings are read at import time; point them at test values first
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("LOG_LEVEL", "WARNING")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

from signaturepro.contracts.schemas import ContractCreate, SignerCreate
from signaturepro.core.db import Base, build_session_factory, get_db
from signaturepro.core.jwt import TokenService
from signaturepro.main import create_app
from signaturepro.pipeline import SigningPipeline
from test.config import (
    OWNER_EMAIL, OWNER_NAME, SIGNER_A, SIGNER_B, START_TIME, TEST_BASE_URL,
    TEST_DATABASE_URL, TEST_SECRET_KEY,
)
from test.utils import FakeClock, RecordingTransport, add_user


# Database engine and session setup
@pytest.fixture
def engine():
    """Fresh in-memory database per test"""
    engine = create_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest.fixture
def clock():
    return FakeClock(START_TIME)


@pytest.fixture
def transport():
    return RecordingTransport()


@pytest.fixture
def tokens(clock):
    return TokenService(TEST_SECRET_KEY, clock=clock)


@pytest.fixture
def pipeline(session_factory, tokens, transport, clock):
    return SigningPipeline(
        session_factory=session_factory,
        tokens=tokens,
        transport=transport,
        base_url=TEST_BASE_URL,
        clock=clock,
    )


@pytest.fixture
def coordinator(pipeline):
    return pipeline.coordinator


@pytest.fixture
def published(pipeline):
    """Every signing event published on the bus, in order"""
    events = []
    pipeline.bus.subscribe("recorder", events.append)
    return events


@pytest.fixture
def owner(session_factory):
    return add_user(session_factory, OWNER_EMAIL, OWNER_NAME)


@pytest.fixture
def make_contract(coordinator, owner):
    """Create a draft contract owned by the owner fixture"""
    def _make(*emails, title="Office lease", expires_in_days=None, owner_id=None):
        emails = emails or (SIGNER_A, SIGNER_B)
        payload = ContractCreate(
            title=title,
            description="Lease of the third floor",
            document_key="contracts/office-lease.pdf",
            signers=[SignerCreate(email=email) for email in emails],
            expires_in_days=expires_in_days,
        )
        return coordinator.create_contract(owner_id or owner.id, payload)
    return _make


@pytest.fixture
def sent_contract(make_contract, coordinator, published):
    """Two-signer contract already sent for signature"""
    contract = make_contract()
    return coordinator.send_for_signature(contract.id)


@pytest.fixture
def app(pipeline, session_factory):
    app = create_app(pipeline)

    # Override FastAPI's dependency to use the test database session
    def override_get_db():
        db = session_factory()
        try:
            yield db
            db.commit()
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    return app


@pytest.fixture
def client(app):
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def owner_headers(tokens, owner):
    token = tokens.issue_access_token(owner.id, owner.email_address)
    return {"Authorization": f"Bearer {token}"}
