"""
Pytest fixtures for the rental ledger test suite.

Provides:
- Structured logging configured once per run, plus ``captured_logs``
- An in-memory SQLite database per test, with immutability listeners on
- Service fixtures wired to one DeterministicClock and one RecordingNotifier
- Factories for properties, units, leases, listings and the organization ledger

DESIGN RULE: parent entities are opt-in.  A test that needs a property or a
ledger asks for the factory or fixture in its signature.
"""

import json
import logging
from datetime import UTC, date, datetime, timedelta
from decimal import Decimal
from io import StringIO
from typing import Generator
from uuid import UUID

import pytest
from sqlalchemy.orm import Session

from rental_config.schema import RentalSettings
from rental_kernel.db.engine import (
    create_tables,
    drop_tables,
    get_session,
    init_engine_from_url,
    reset_engine,
)
from rental_kernel.db.immutability import (
    register_immutability_listeners,
    unregister_immutability_listeners,
)
from rental_kernel.domain.clock import DeterministicClock
from rental_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from rental_kernel.models.listing import Listing, ListingStatus
from rental_kernel.models.property import Lease, LeaseStatus, Property, Unit
from rental_kernel.services.audit_service import AuditService
from rental_kernel.services.journal_service import JournalService
from rental_modules.bulk.coordinator import BulkOperationCoordinator
from rental_modules.leasing.reconciler import LeaseListingReconciler
from rental_modules.leasing.service import LeaseService
from rental_modules.listings.service import ListingService
from rental_modules.payments.intake import PaymentIntakeService
from rental_modules.payments.invoices import InvoiceService
from rental_modules.utilities.meters import MeterReadingService
from rental_modules.utilities.service import UtilityBillService
from rental_services.notifications import RecordingNotifier
from rental_services.rate_limiter import SlidingWindowRateLimiter
from rental_services.workflow_executor import WorkflowExecutor

# Well-known ids so assertions can name them directly
TEST_ORG_ID = UUID("00000000-0000-4000-a000-000000000001")
TEST_MANAGER_ID = UUID("00000000-0000-4000-a000-000000000002")
TEST_ACTOR_ID = UUID("00000000-0000-4000-a000-000000000003")

# Monday, inside business hours
TEST_NOW = datetime(2024, 1, 1, 12, 0, 0, tzinfo=UTC)


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG, stream=StringIO())
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture rental_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, bill_service):
            bill_service.post_utility_bill(bill_id)
            logs = captured_logs()
            assert any(r["message"] == "utility_bill_posted" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("rental_kernel")
    previous_level = root.level
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)
    root.setLevel(previous_level)


# =============================================================================
# Database
# =============================================================================


@pytest.fixture
def db_engine():
    """Fresh in-memory database with every table and the immutability listeners."""
    engine = init_engine_from_url("sqlite://")
    create_tables()
    register_immutability_listeners()
    yield engine
    unregister_immutability_listeners()
    drop_tables()
    reset_engine()


@pytest.fixture
def session(db_engine) -> Generator[Session, None, None]:
    sess = get_session()
    yield sess
    sess.rollback()
    sess.close()


@pytest.fixture
def deterministic_clock():
    return DeterministicClock(TEST_NOW)


@pytest.fixture
def settings():
    return RentalSettings()


@pytest.fixture
def notifier():
    return RecordingNotifier()


# =============================================================================
# Services
# =============================================================================


@pytest.fixture
def journal_service(session, deterministic_clock):
    return JournalService(session, clock=deterministic_clock)


@pytest.fixture
def audit_service(session, deterministic_clock):
    return AuditService(session, clock=deterministic_clock)


@pytest.fixture
def workflow_executor():
    return WorkflowExecutor()


@pytest.fixture
def rate_limiter(settings, deterministic_clock):
    return SlidingWindowRateLimiter(settings.rate_limits, clock=deterministic_clock)


@pytest.fixture
def bill_service(session, journal_service, settings, deterministic_clock, workflow_executor):
    return UtilityBillService(
        session,
        journal_service=journal_service,
        settings=settings,
        clock=deterministic_clock,
        workflow_executor=workflow_executor,
    )


@pytest.fixture
def meter_service(session):
    return MeterReadingService(session)


@pytest.fixture
def listing_service(session, settings, deterministic_clock, workflow_executor, audit_service, notifier):
    return ListingService(
        session,
        settings=settings,
        clock=deterministic_clock,
        workflow_executor=workflow_executor,
        audit_service=audit_service,
        notifier=notifier,
    )


@pytest.fixture
def reconciler(session, listing_service, audit_service, deterministic_clock):
    return LeaseListingReconciler(
        session,
        listing_service=listing_service,
        audit_service=audit_service,
        clock=deterministic_clock,
    )


@pytest.fixture
def lease_service(session, settings, deterministic_clock, listing_service, reconciler, notifier):
    return LeaseService(
        session,
        settings=settings,
        clock=deterministic_clock,
        listing_service=listing_service,
        reconciler=reconciler,
        notifier=notifier,
    )


@pytest.fixture
def bulk_coordinator(session, listing_service, bill_service, settings, deterministic_clock):
    return BulkOperationCoordinator(
        session,
        listing_service=listing_service,
        bill_service=bill_service,
        settings=settings,
        clock=deterministic_clock,
    )


@pytest.fixture
def invoice_service(session, journal_service, settings, deterministic_clock):
    return InvoiceService(
        session, journal_service=journal_service, settings=settings, clock=deterministic_clock
    )


@pytest.fixture
def payment_intake(session, invoice_service, settings, deterministic_clock, rate_limiter):
    return PaymentIntakeService(
        session,
        invoice_service=invoice_service,
        rate_limiter=rate_limiter,
        settings=settings,
        clock=deterministic_clock,
    )


# =============================================================================
# Entity factories
# =============================================================================


@pytest.fixture
def financials(session, journal_service):
    """The test organization's ledger with the default chart of accounts."""
    entity = journal_service.setup_financials(TEST_ORG_ID, "Test Org")
    session.commit()
    return entity


@pytest.fixture
def make_property(session):
    """Create a property with ``unit_count`` two-bedroom units numbered A1, A2, ..."""

    def _make(
        unit_count: int = 3,
        name: str = "Riverside Apartments",
        organization_id: UUID = TEST_ORG_ID,
        **unit_fields,
    ) -> Property:
        prop = Property(organization_id=organization_id, name=name, manager_id=TEST_MANAGER_ID)
        session.add(prop)
        session.flush()
        for i in range(unit_count):
            fields = {
                "bedrooms": 2,
                "bathrooms": 1,
                "square_footage": Decimal("750"),
                "rent_amount": Decimal("1200.00"),
            }
            fields.update(unit_fields)
            session.add(Unit(property_id=prop.id, unit_number=f"A{i + 1}", **fields))
        session.commit()
        session.refresh(prop, attribute_names=["units"])
        return prop

    return _make


@pytest.fixture
def make_lease(session, deterministic_clock):
    """Attach a lease to ``unit``.  An ACTIVE lease marks the unit occupied."""

    def _make(
        unit: Unit,
        status: LeaseStatus = LeaseStatus.ACTIVE,
        occupants: int = 1,
        rent_amount: Decimal = Decimal("1200.00"),
        start_date: date | None = None,
    ) -> Lease:
        lease = Lease(
            unit=unit,
            status=status,
            occupants=occupants,
            rent_amount=rent_amount,
            start_date=start_date or deterministic_clock.now().date(),
            status_changed_at=deterministic_clock.now(),
        )
        session.add(lease)
        if status == LeaseStatus.ACTIVE:
            unit.is_occupied = True
        session.commit()
        return lease

    return _make


@pytest.fixture
def make_listing(session, deterministic_clock):
    """Insert a listing for ``unit`` in ``status`` without going through the service."""

    def _make(
        unit: Unit,
        status: ListingStatus = ListingStatus.ACTIVE,
        availability_offset: timedelta = timedelta(days=-1),
        expiration_offset: timedelta | None = timedelta(days=30),
        title: str = "Sunny two bedroom",
        price: Decimal = Decimal("1200.00"),
    ) -> Listing:
        now = deterministic_clock.now()
        listing = Listing(
            unit_id=unit.id,
            title=title,
            description="Bright corner unit close to transport.",
            price=price,
            availability_date=now + availability_offset,
            expiration_date=now + expiration_offset if expiration_offset is not None else None,
            status=status,
        )
        session.add(listing)
        session.commit()
        return listing

    return _make
