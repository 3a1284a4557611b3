import pytest
from datetime import date
from decimal import Decimal
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from capital_ledger.db.session import get_db
from capital_ledger.core.config import Settings
from capital_ledger.db.base import Base
from capital_ledger.models import Fund, Deal, ClosingScheduleEvent
from capital_ledger.schemas.capital_call import CapitalCallRequest
from capital_ledger.services.amounts import AmountType
from capital_ledger.services.audit import AuditSink
from capital_ledger.services.ledger import CapitalLedger

TODAY = date(2025, 1, 15)


class RecordingAuditSink(AuditSink):
    """Keeps published events in memory"""

    def __init__(self):
        self.events = []

    def deliver(self, event):
        self.events.append(event)


@pytest.fixture
def engine():
    """In-memory SQLite shared by every session of one test"""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def test_db_session(engine):
    """Fixture to create and close a test database session"""
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
        db.rollback()
    finally:
        db.close()


@pytest.fixture
def test_settings():
    return Settings(
        _env_file=None,
        MIN_COMMITMENT=1_000,
        MAX_COMMITMENT=10_000_000_000,
        PAYMENT_GRACE_DAYS=7,
        ALLOW_OVERPAYMENTS=False,
        MAX_BATCH_SIZE=50,
    )


@pytest.fixture
def audit_sink():
    return RecordingAuditSink()


@pytest.fixture
def ledger(test_db_session, audit_sink, test_settings):
    return CapitalLedger(
        test_db_session,
        audit_sink=audit_sink,
        config=test_settings,
        clock=lambda: TODAY,
    )


@pytest.fixture
def fund(test_db_session):
    fund = Fund(name="Growth Fund I", gp_name="Acme GP", vintage_year=2024, fund_size=50_000_000)
    test_db_session.add(fund)
    test_db_session.commit()
    return fund


@pytest.fixture
def deal(test_db_session):
    deal = Deal(name="Project Atlas", stage="closing")
    test_db_session.add(deal)
    test_db_session.commit()
    return deal


@pytest.fixture
def make_deal(test_db_session):
    def _make(name, stage="closing"):
        deal = Deal(name=name, stage=stage)
        test_db_session.add(deal)
        test_db_session.commit()
        return deal
    return _make


@pytest.fixture
def commitment(ledger, fund, deal):
    """$1,000,000 dollar commitment"""
    return ledger.create_commitment(fund.id, deal.id, Decimal("1000000"))


@pytest.fixture
def closing_event(test_db_session, deal):
    event = ClosingScheduleEvent(
        deal_id=deal.id,
        event_type="first_close",
        event_name="First Close",
        scheduled_date=date(2025, 3, 1),
        amount_type="dollar",
        target_amount=Decimal("500000"),
    )
    test_db_session.add(event)
    test_db_session.commit()
    return event


def dollar_call(amount, call_date=date(2025, 2, 1), due_date=date(2025, 3, 1)):
    return CapitalCallRequest(
        amount_type=AmountType.DOLLAR,
        amount=Decimal(str(amount)),
        call_date=call_date,
        due_date=due_date,
    )


def pct_call(pct, call_date=date(2025, 2, 1), due_date=date(2025, 3, 1)):
    return CapitalCallRequest(
        amount_type=AmountType.PERCENTAGE,
        amount=Decimal(str(pct)),
        call_date=call_date,
        due_date=due_date,
    )


@pytest.fixture
def test_client(test_db_session, audit_sink):
    """Fixture to create FastAPI TestClient with a test database session"""
    from fastapi.testclient import TestClient
    from capital_ledger.main import app
    from capital_ledger.api.deps import get_audit_sink

    # Override the database session and audit sink for testing
    app.dependency_overrides[get_db] = lambda: test_db_session
    app.dependency_overrides[get_audit_sink] = lambda: audit_sink

    client = TestClient(app)
    yield client
    app.dependency_overrides.clear()
