"""Pytest fixtures for testing"""

import os

os.environ.setdefault("DATABASE_URL", "sqlite:///./test.db")

import pytest
from datetime import date, datetime, timezone
from typing import Callable, Generator
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from remittance_engine.api.dependencies import get_clock, get_session_factory
from remittance_engine.api.main import create_app
from remittance_engine.domain.models import ContractSpec, RemittanceMethod, WaterfallBucket, WaterfallRuleSpec
from remittance_engine.infrastructure.database.models import Base, InvestorContract
from remittance_engine.infrastructure.database.repositories import CollectionRepository
from remittance_engine.infrastructure.database.session import get_db
from remittance_engine.services.contracts import ContractRegistry
from remittance_engine.utils.clock import FixedClock


# Test database
TEST_DATABASE_URL = "sqlite:///./test.db"
engine = create_engine(TEST_DATABASE_URL, connect_args={"check_same_thread": False})
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Period for cutoff_day=10 on this date: 2024-03-10 .. 2024-03-31, settling 2024-04-05
TEST_NOW = datetime(2024, 3, 15, 12, 0, 0, tzinfo=timezone.utc)
IN_PERIOD = date(2024, 3, 20)


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock(TEST_NOW)


@pytest.fixture
def db() -> Generator[Session, None, None]:
    """Create test database and session"""
    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def session_factory(db: Session) -> Callable[[], Session]:
    """Fresh sessions on the test database (for the scheduler)"""
    return TestingSessionLocal


@pytest.fixture
def client(db: Session, clock: FixedClock, session_factory) -> TestClient:
    """Create FastAPI test client with test database and pinned clock"""
    app = create_app()

    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_clock] = lambda: clock
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    return TestClient(app)


def build_contract_spec(**overrides) -> ContractSpec:
    """Contract used across tests: 50 bps servicing fee, half of late fees to the servicer"""
    values = dict(
        investor_id="INV-001",
        product_code="FIXED30",
        method=RemittanceMethod.SCHEDULED_P_I,
        remittance_day=5,
        cutoff_day=10,
        custodial_account_id="CUST-001",
        servicer_fee_bps=50,
        late_fee_split_bps=5000,
        waterfall_rules=[
            WaterfallRuleSpec(rank=1, bucket=WaterfallBucket.INTEREST),
            WaterfallRuleSpec(rank=2, bucket=WaterfallBucket.PRINCIPAL),
            WaterfallRuleSpec(rank=3, bucket=WaterfallBucket.LATE_FEES),
        ],
    )
    values.update(overrides)
    return ContractSpec(**values)


@pytest.fixture
def contract_spec() -> Callable[..., ContractSpec]:
    return build_contract_spec


@pytest.fixture
def make_contract(db: Session, clock: FixedClock) -> Callable[..., InvestorContract]:
    def _make(**overrides) -> InvestorContract:
        return ContractRegistry(db, clock=clock).create_contract(build_contract_spec(**overrides))

    return _make


@pytest.fixture
def record_payment(db: Session) -> Callable[..., None]:
    """Post a scheduled installment and the matching collection for one loan"""

    def _record(
        loan_id: str,
        principal_minor: int,
        interest_minor: int,
        late_fees_minor: int = 0,
        collected_principal_minor: int | None = None,
        collected_interest_minor: int | None = None,
        effective_date: date = IN_PERIOD,
        investor_id: str = "INV-001",
        product_code: str = "FIXED30",
    ) -> None:
        collections = CollectionRepository(db)
        collections.record_schedule(
            investor_id, product_code, loan_id, effective_date, principal_minor, interest_minor
        )
        collections.record_collection(
            investor_id,
            product_code,
            loan_id,
            effective_date,
            principal_minor=principal_minor if collected_principal_minor is None else collected_principal_minor,
            interest_minor=interest_minor if collected_interest_minor is None else collected_interest_minor,
            late_fees_minor=late_fees_minor,
        )
        db.commit()

    return _record


@pytest.fixture
def two_loan_scenario(record_payment) -> None:
    """Loan A: $500.00 / $100.00 / $25.00 fees; Loan B: $750.00 / $150.00 / $50.00 fees"""
    record_payment("LOAN-A", 50000, 10000, late_fees_minor=2500)
    record_payment("LOAN-B", 75000, 15000, late_fees_minor=5000)
