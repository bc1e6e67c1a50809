"""
Shared fixtures: an in-memory SQLite database seeded with a small lease
hierarchy, plus in-memory fakes for the resolver unit tests.
"""

import sys
from datetime import date, timedelta
from pathlib import Path
from types import SimpleNamespace

import pytest
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

sys.path.insert(0, str(Path(__file__).parent.parent))

from ccm.connection import create_test_provider
from ccm.hierarchy import SqlHierarchyDirectory
from ccm.models import (
    Base, Customer, MasterLease, LeaseRider, LeaseAmendment, RiderCar, ScopeLevel
)
from ccm.repositories import CCMInstructionRepository
from fakes import FakeDirectory, FakeStore

TODAY = date(2024, 6, 15)


@pytest.fixture
def engine():
    """In-memory SQLite engine shared across connections."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def provider(engine):
    """Session provider bound to the SQLite engine."""
    provider = create_test_provider(engine)
    provider.init()
    yield provider
    provider.close()


def seed_hierarchy(session):
    """
    Two customers. Acme has an active lease with two riders, rider and lease
    level amendments, and an expired lease. Beta has one lease.
    """
    c1 = Customer(customer_code="ACME", customer_name="Acme Chemical Co", is_active=True)
    c2 = Customer(customer_code="BETA", customer_name="Beta Grain", is_active=True)
    session.add_all([c1, c2])
    session.flush()

    ml1 = MasterLease(customer_id=c1.id, lease_id="ML-001", lease_name="Acme Master", status="Active")
    ml2 = MasterLease(customer_id=c1.id, lease_id="ML-002", lease_name=None, status="Expired")
    ml3 = MasterLease(customer_id=c2.id, lease_id="ML-100", lease_name="Beta Master", status="Active")
    session.add_all([ml1, ml2, ml3])
    session.flush()

    r1 = LeaseRider(master_lease_id=ml1.id, rider_id="R-001", rider_name="Food Grade Fleet", status="Active")
    r2 = LeaseRider(master_lease_id=ml1.id, rider_id="R-002", rider_name=None, status="Pending")
    r3 = LeaseRider(master_lease_id=ml3.id, rider_id="R-100", rider_name="Beta Hoppers", status="Active")
    session.add_all([r1, r2, r3])
    session.flush()

    a1 = LeaseAmendment(rider_id=r1.id, master_lease_id=ml1.id, amendment_id="AMD-001",
                        change_summary="Kosher wash added", effective_date=TODAY - timedelta(days=30))
    a2 = LeaseAmendment(rider_id=r1.id, master_lease_id=ml1.id, amendment_id="AMD-002",
                        change_summary=None, effective_date=TODAY - timedelta(days=5))
    a_future = LeaseAmendment(rider_id=r1.id, master_lease_id=ml1.id, amendment_id="AMD-003",
                              change_summary="Future change", effective_date=TODAY + timedelta(days=10))
    a_lease = LeaseAmendment(rider_id=None, master_lease_id=ml1.id, amendment_id="AMD-L01",
                             change_summary="Lease-wide decal change", effective_date=TODAY - timedelta(days=60))
    session.add_all([a1, a2, a_future, a_lease])

    session.add_all([
        RiderCar(rider_id=r1.id, car_number="ACMX0001", is_active=True),
        RiderCar(rider_id=r2.id, car_number="ACMX0002", is_active=True),
        RiderCar(rider_id=r1.id, car_number="ACMX0003", is_active=False),
    ])
    session.flush()

    return SimpleNamespace(
        c1=c1.id, c2=c2.id,
        ml1=ml1.id, ml2=ml2.id, ml3=ml3.id,
        r1=r1.id, r2=r2.id, r3=r3.id,
        a1=a1.id, a2=a2.id, a_future=a_future.id, a_lease=a_lease.id,
    )


@pytest.fixture
def hierarchy(provider):
    """Ids of the seeded hierarchy rows."""
    with provider.session_scope() as session:
        return seed_hierarchy(session)


@pytest.fixture
def session(provider, hierarchy):
    """Open session on the seeded database."""
    session = provider.session_factory()
    yield session
    session.rollback()
    session.close()


@pytest.fixture
def directory(session):
    return SqlHierarchyDirectory(session, today=lambda: TODAY)


@pytest.fixture
def repo(session, directory):
    return CCMInstructionRepository(session, directory)


@pytest.fixture
def fake_directory():
    return FakeDirectory()


@pytest.fixture
def fake_store():
    return FakeStore()


@pytest.fixture
def fake_tree(fake_directory):
    """C1 > ML1 > R1 > A1 built in the fake directory."""
    c1 = fake_directory.add(ScopeLevel.CUSTOMER, "C1")
    ml1 = fake_directory.add(ScopeLevel.MASTER_LEASE, "ML1", parent=c1)
    r1 = fake_directory.add(ScopeLevel.RIDER, "R1", parent=ml1)
    a1 = fake_directory.add(ScopeLevel.AMENDMENT, "A1", parent=r1)
    return SimpleNamespace(c1=c1, ml1=ml1, r1=r1, a1=a1)
