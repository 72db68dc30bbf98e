"""
Pytest fixtures for the procurement workflow test suite.

Provides:
- A fresh database per test (SQLite in memory unless DATABASE_URL is set)
- Deterministic clock, default workflow config and one actor per role
- Vendor directory, notification sink and the five workflow services
- Builders that drive an MRF or RFQ to a given point in the lifecycle

Environment Variables:
- DATABASE_URL: connection URL for the test database.  PostgreSQL runs
  the same suite, including the row-locking paths that SQLite ignores.
"""

import json
import logging
import os
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from io import StringIO
from uuid import uuid4

import pytest

from procurement_config import WorkflowConfig
from procurement_kernel.db.engine import (
    create_tables,
    drop_tables,
    get_session,
    get_session_factory,
    init_engine_from_url,
    reset_engine,
)
from procurement_kernel.domain.actor import Actor, Role
from procurement_kernel.domain.clock import DeterministicClock
from procurement_kernel.domain.mrf import MRFDraft, MRFStage, Urgency
from procurement_kernel.domain.rfq import QuotationDraft, Vendor, VendorSelectionMethod
from procurement_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from procurement_kernel.selectors import MRFSelector
from procurement_kernel.services import (
    ApprovalGate,
    AwardService,
    InMemoryNotificationSink,
    InMemoryVendorDirectory,
    NotificationDispatcher,
    QuotationService,
    RFQDispatchService,
    SettlementService,
)

DEFAULT_DATABASE_URL = "sqlite:///:memory:"

START_TIME = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


def get_database_url() -> str:
    """Get database URL from environment, or use in-memory SQLite."""
    return os.environ.get("DATABASE_URL", DEFAULT_DATABASE_URL)


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture procurement_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, gate):
            gate.submit_mrf(...)
            logs = captured_logs()
            assert any(r["message"] == "procurement_mrf_submit_committed" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("procurement_kernel")
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)


# =============================================================================
# Database fixtures
# =============================================================================


@pytest.fixture
def engine():
    """Engine with freshly created tables, dropped after the test."""
    eng = init_engine_from_url(get_database_url())
    create_tables()
    yield eng
    drop_tables()
    reset_engine()


@pytest.fixture
def session(engine):
    """
    Session for one test.

    Services commit through it, so each test gets its own schema instead
    of a rolled-back outer transaction.
    """
    sess = get_session()
    yield sess
    sess.rollback()
    sess.close()


@pytest.fixture
def session_factory(engine):
    """Factory for tests that need more than one session."""
    return get_session_factory()


# =============================================================================
# Time, config, actors
# =============================================================================


@pytest.fixture
def deterministic_clock():
    return DeterministicClock(START_TIME)


@pytest.fixture
def config():
    return WorkflowConfig()


def make_actor(role: Role, name: str | None = None, vendor_id: str | None = None) -> Actor:
    return Actor(
        actor_id=uuid4(),
        name=name or role.value.replace("_", " ").title(),
        role=role,
        vendor_id=vendor_id,
    )


@pytest.fixture
def requester():
    return make_actor(Role.EMPLOYEE, "Ada Requester")


@pytest.fixture
def procurement_manager():
    return make_actor(Role.PROCUREMENT_MANAGER)


@pytest.fixture
def executive():
    return make_actor(Role.EXECUTIVE)


@pytest.fixture
def chairman():
    return make_actor(Role.CHAIRMAN)


@pytest.fixture
def supply_chain():
    return make_actor(Role.SUPPLY_CHAIN_DIRECTOR)


@pytest.fixture
def finance():
    return make_actor(Role.FINANCE)


@pytest.fixture
def vendor_login():
    """Portal user bound to one vendor: ``vendor_login("V-ACME")``."""
    def login(vendor_id: str) -> Actor:
        return make_actor(Role.VENDOR, f"{vendor_id} Portal User", vendor_id=vendor_id)
    return login


# =============================================================================
# Collaborators
# =============================================================================


SAMPLE_VENDORS = (
    Vendor(id="V-ACME", name="Acme Supplies", category="Office Equipment",
           rating=Decimal("4.8"), completed_orders=120, email="bids@acme.test"),
    Vendor(id="V-BOLT", name="Bolt Traders", category="office equipment",
           rating=Decimal("4.2"), completed_orders=45),
    Vendor(id="V-CRUX", name="Crux Industrial", category="Industrial",
           rating=Decimal("3.5"), completed_orders=200),
    Vendor(id="V-DORM", name="Dormant Ltd", category="Office Equipment",
           rating=Decimal("5.0"), completed_orders=80, active=False),
    Vendor(id="V-NEWB", name="Newbie Co", category="Office Equipment",
           rating=Decimal("4.9"), completed_orders=3),
)


@pytest.fixture
def vendor_directory():
    return InMemoryVendorDirectory(SAMPLE_VENDORS)


@pytest.fixture
def sink():
    return InMemoryNotificationSink()


@pytest.fixture
def dispatcher(sink):
    return NotificationDispatcher(sink)


@pytest.fixture
def gate(session, config, deterministic_clock, dispatcher):
    return ApprovalGate(session, config=config, clock=deterministic_clock, dispatcher=dispatcher)


@pytest.fixture
def rfq_service(session, vendor_directory, config, deterministic_clock, dispatcher):
    return RFQDispatchService(
        session, vendor_directory, config=config, clock=deterministic_clock, dispatcher=dispatcher,
    )


@pytest.fixture
def quotation_service(session, vendor_directory, config, deterministic_clock, dispatcher):
    return QuotationService(
        session, vendor_directory, config=config, clock=deterministic_clock, dispatcher=dispatcher,
    )


@pytest.fixture
def award_service(session, config, deterministic_clock, dispatcher):
    return AwardService(session, config=config, clock=deterministic_clock, dispatcher=dispatcher)


@pytest.fixture
def settlement_service(session, config, deterministic_clock, dispatcher):
    return SettlementService(session, config=config, clock=deterministic_clock, dispatcher=dispatcher)


# =============================================================================
# Lifecycle builders
# =============================================================================


def make_draft(estimated_cost="250000", **overrides) -> MRFDraft:
    values = dict(
        title="Office chairs",
        category="Office Equipment",
        description="Ergonomic chairs for the new floor",
        quantity=Decimal("40"),
        estimated_cost=Decimal(estimated_cost),
        urgency=Urgency.MEDIUM,
        justification="Headcount growth",
        department="Operations",
    )
    values.update(overrides)
    return MRFDraft(**values)


def make_bid(vendor_id: str, price_text: str, /, days: int = 10, **overrides) -> QuotationDraft:
    values = dict(
        vendor_id=vendor_id,
        price=Decimal(price_text),
        delivery_date=START_TIME.date() + timedelta(days=days),
        payment_terms="30 days",
        validity_days=30,
    )
    values.update(overrides)
    return QuotationDraft(**values)


@pytest.fixture
def submitted_mrf(gate, requester):
    """An MRF at stage ``submitted``."""
    return gate.submit_mrf(requester, make_draft())


@pytest.fixture
def advance_mrf(gate, session, deterministic_clock, procurement_manager, executive, chairman):
    """
    Approve an MRF until it reaches ``target``.

    Usage::

        mrf = advance_mrf(mrf.id, MRFStage.SUPPLY_CHAIN)
    """
    approvers = {
        MRFStage.SUBMITTED: procurement_manager,
        MRFStage.PROCUREMENT: procurement_manager,
        MRFStage.EXECUTIVE: executive,
        MRFStage.CHAIRMAN: chairman,
    }

    def _advance(mrf_id, target: MRFStage):
        mrf = MRFSelector(session).get(mrf_id)
        while mrf.current_stage != target:
            deterministic_clock.tick()
            mrf = gate.approve(mrf_id, approvers[mrf.current_stage], remarks="ok")
        return mrf

    return _advance


@pytest.fixture
def open_rfq(rfq_service, advance_mrf, submitted_mrf, procurement_manager):
    """An Open manual RFQ for an MRF at supply_chain, inviting Acme, Bolt and Crux."""
    advance_mrf(submitted_mrf.id, MRFStage.SUPPLY_CHAIN)
    return rfq_service.create_rfq(
        submitted_mrf.id,
        procurement_manager,
        method=VendorSelectionMethod.MANUAL,
        deadline=date(2024, 1, 15),
        vendor_ids=["V-ACME", "V-BOLT", "V-CRUX"],
    )
