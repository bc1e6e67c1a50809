"""
Read-only access to the lease hierarchy.

The CCM store never writes customers, leases, riders, amendments or car
placements. Everything it needs from them goes through HierarchyDirectory:
display names, active flags, parent links, and the path a car sits on.
SqlHierarchyDirectory is the production implementation; tests substitute an
in-memory one.
"""

import logging
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, asdict
from datetime import date
from typing import Any, Callable, Dict, Iterator, List, NamedTuple, Optional, Tuple

from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session, aliased

from ccm.errors import ScopeNotFoundError
from ccm.models import (
    Customer, LeaseAmendment, LeaseRider, MasterLease, RiderCar, ScopeLevel
)

logger = logging.getLogger(__name__)


# ============================================
# DATA TRANSFER OBJECTS
# ============================================

class ScopeRef(NamedTuple):
    """Reference to one scope: its level and the id of the hierarchy row."""
    level: ScopeLevel
    id: uuid.UUID


@dataclass(frozen=True)
class ScopeInfo:
    """One node of the lease hierarchy as seen by the CCM store."""
    level: ScopeLevel
    id: uuid.UUID
    name: str
    code: Optional[str] = None
    is_active: bool = True
    parent_level: Optional[ScopeLevel] = None
    parent_id: Optional[uuid.UUID] = None
    customer_id: Optional[uuid.UUID] = None


@dataclass
class HierarchyPath:
    """
    Ids and display names of the scopes a car (or an edited scope) sits on.

    Levels below the deepest known one are None. A path without a customer
    is not resolvable.
    """
    customer_id: Optional[uuid.UUID] = None
    customer_name: Optional[str] = None
    master_lease_id: Optional[uuid.UUID] = None
    lease_name: Optional[str] = None
    rider_id: Optional[uuid.UUID] = None
    rider_name: Optional[str] = None
    amendment_id: Optional[uuid.UUID] = None
    amendment_name: Optional[str] = None

    def id_for(self, level: ScopeLevel) -> Optional[uuid.UUID]:
        return {
            ScopeLevel.CUSTOMER: self.customer_id,
            ScopeLevel.MASTER_LEASE: self.master_lease_id,
            ScopeLevel.RIDER: self.rider_id,
            ScopeLevel.AMENDMENT: self.amendment_id,
        }[level]

    def name_for(self, level: ScopeLevel) -> Optional[str]:
        return {
            ScopeLevel.CUSTOMER: self.customer_name,
            ScopeLevel.MASTER_LEASE: self.lease_name,
            ScopeLevel.RIDER: self.rider_name,
            ScopeLevel.AMENDMENT: self.amendment_name,
        }[level]

    def levels(self) -> Iterator[Tuple[ScopeLevel, Optional[uuid.UUID], Optional[str]]]:
        """Yield (level, id, name) from customer down to amendment."""
        for level in ScopeLevel:
            yield level, self.id_for(level), self.name_for(level)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        for key, value in data.items():
            if isinstance(value, uuid.UUID):
                data[key] = str(value)
        return data


# ============================================
# DIRECTORY INTERFACE
# ============================================

class HierarchyDirectory(ABC):
    """Lookup interface over the externally owned lease hierarchy."""

    @abstractmethod
    def get_scope(self, level: ScopeLevel, scope_id: uuid.UUID) -> Optional[ScopeInfo]:
        """Return the scope, or None if it does not exist."""

    @abstractmethod
    def list_scopes(self, customer_id: Optional[uuid.UUID] = None) -> List[ScopeInfo]:
        """Return every scope, optionally restricted to one customer's subtree."""

    @abstractmethod
    def get_car_path(self, car_number: str, as_of: Optional[date] = None) -> Optional[HierarchyPath]:
        """Return the path of a car's active placement, or None if unplaced."""

    def path_for_scope(self, level: ScopeLevel, scope_id: uuid.UUID) -> HierarchyPath:
        """
        Build the path from a scope up to its customer by following parent links.

        Raises:
            ScopeNotFoundError: If the scope itself is unknown
        """
        level = ScopeLevel.parse(level)
        info = self.get_scope(level, scope_id)
        if info is None:
            raise ScopeNotFoundError(level, scope_id)

        path = HierarchyPath()
        while info is not None:
            _assign(path, info)
            if info.parent_level is None or info.parent_id is None:
                break
            info = self.get_scope(info.parent_level, info.parent_id)
        return path


def _assign(path: HierarchyPath, info: ScopeInfo) -> None:
    if info.level is ScopeLevel.CUSTOMER:
        path.customer_id, path.customer_name = info.id, info.name
    elif info.level is ScopeLevel.MASTER_LEASE:
        path.master_lease_id, path.lease_name = info.id, info.name
    elif info.level is ScopeLevel.RIDER:
        path.rider_id, path.rider_name = info.id, info.name
    else:
        path.amendment_id, path.amendment_name = info.id, info.name


# ============================================
# SQL IMPLEMENTATION
# ============================================

ACTIVE_STATUS = "Active"


class SqlHierarchyDirectory(HierarchyDirectory):
    """
    HierarchyDirectory backed by the leasing tables.

    Naming follows the leasing screens: a lease without a name shows its
    lease code, a rider its rider code, an amendment its amendment code when
    it has no change summary. Leases and riders are active when their status
    is 'Active'; amendments once their effective date has been reached.
    """

    def __init__(self, session: Session, today: Optional[Callable[[], date]] = None):
        self.session = session
        self._today = today or date.today

    # ---------- scope lookups ----------

    def get_scope(self, level: ScopeLevel, scope_id: uuid.UUID) -> Optional[ScopeInfo]:
        level = ScopeLevel.parse(level)
        if level is ScopeLevel.CUSTOMER:
            customer = self.session.get(Customer, scope_id)
            return self._customer_info(customer) if customer else None

        if level is ScopeLevel.MASTER_LEASE:
            lease = self.session.get(MasterLease, scope_id)
            return self._lease_info(lease) if lease else None

        if level is ScopeLevel.RIDER:
            row = self.session.execute(
                select(LeaseRider, MasterLease.customer_id)
                .join(MasterLease, LeaseRider.master_lease_id == MasterLease.id)
                .where(LeaseRider.id == scope_id)
            ).first()
            return self._rider_info(row[0], row[1]) if row else None

        rider_lease = aliased(MasterLease)
        row = self.session.execute(
            self._amendment_select(rider_lease).where(LeaseAmendment.id == scope_id)
        ).first()
        return self._amendment_info(*row) if row else None

    def list_scopes(self, customer_id: Optional[uuid.UUID] = None) -> List[ScopeInfo]:
        scopes: List[ScopeInfo] = []

        customer_stmt = select(Customer)
        if customer_id is not None:
            customer_stmt = customer_stmt.where(Customer.id == customer_id)
        scopes.extend(self._customer_info(c) for c in self.session.scalars(customer_stmt))

        lease_stmt = select(MasterLease)
        if customer_id is not None:
            lease_stmt = lease_stmt.where(MasterLease.customer_id == customer_id)
        scopes.extend(self._lease_info(l) for l in self.session.scalars(lease_stmt))

        rider_stmt = (
            select(LeaseRider, MasterLease.customer_id)
            .join(MasterLease, LeaseRider.master_lease_id == MasterLease.id)
        )
        if customer_id is not None:
            rider_stmt = rider_stmt.where(MasterLease.customer_id == customer_id)
        scopes.extend(self._rider_info(r, c) for r, c in self.session.execute(rider_stmt))

        rider_lease = aliased(MasterLease)
        amendment_stmt = self._amendment_select(rider_lease)
        if customer_id is not None:
            amendment_stmt = amendment_stmt.where(
                or_(rider_lease.customer_id == customer_id, MasterLease.customer_id == customer_id)
            )
        scopes.extend(self._amendment_info(*row) for row in self.session.execute(amendment_stmt))

        logger.debug(f"Listed {len(scopes)} hierarchy scopes (customer={customer_id})")
        return scopes

    def get_car_path(self, car_number: str, as_of: Optional[date] = None) -> Optional[HierarchyPath]:
        as_of = as_of or self._today()

        row = self.session.execute(
            select(Customer, MasterLease, LeaseRider)
            .select_from(RiderCar)
            .join(LeaseRider, RiderCar.rider_id == LeaseRider.id)
            .join(MasterLease, LeaseRider.master_lease_id == MasterLease.id)
            .join(Customer, MasterLease.customer_id == Customer.id)
            .where(RiderCar.car_number == car_number, RiderCar.is_active.is_(True))
            .order_by(RiderCar.id)
            .limit(1)
        ).first()
        if row is None:
            logger.debug(f"No active placement for car {car_number}")
            return None

        customer, lease, rider = row
        amendment = self.session.scalars(
            select(LeaseAmendment)
            .where(LeaseAmendment.rider_id == rider.id, LeaseAmendment.effective_date <= as_of)
            .order_by(LeaseAmendment.effective_date.desc(), LeaseAmendment.id)
            .limit(1)
        ).first()

        return HierarchyPath(
            customer_id=customer.id,
            customer_name=customer.customer_name,
            master_lease_id=lease.id,
            lease_name=lease.lease_name or lease.lease_id,
            rider_id=rider.id,
            rider_name=rider.rider_name or rider.rider_id,
            amendment_id=amendment.id if amendment else None,
            amendment_name=(amendment.change_summary or amendment.amendment_id) if amendment else None,
        )

    # ---------- row mapping ----------

    def _amendment_select(self, rider_lease):
        """Amendments joined up to their customer through either parent link."""
        return (
            select(
                LeaseAmendment,
                func.coalesce(rider_lease.customer_id, MasterLease.customer_id)
            )
            .outerjoin(LeaseRider, LeaseAmendment.rider_id == LeaseRider.id)
            .outerjoin(rider_lease, LeaseRider.master_lease_id == rider_lease.id)
            .outerjoin(MasterLease, LeaseAmendment.master_lease_id == MasterLease.id)
        )

    @staticmethod
    def _customer_info(customer: Customer) -> ScopeInfo:
        return ScopeInfo(
            level=ScopeLevel.CUSTOMER,
            id=customer.id,
            name=customer.customer_name,
            code=customer.customer_code,
            is_active=bool(customer.is_active),
            customer_id=customer.id,
        )

    @staticmethod
    def _lease_info(lease: MasterLease) -> ScopeInfo:
        return ScopeInfo(
            level=ScopeLevel.MASTER_LEASE,
            id=lease.id,
            name=lease.lease_name or lease.lease_id,
            code=lease.lease_id,
            is_active=lease.status == ACTIVE_STATUS,
            parent_level=ScopeLevel.CUSTOMER,
            parent_id=lease.customer_id,
            customer_id=lease.customer_id,
        )

    @staticmethod
    def _rider_info(rider: LeaseRider, customer_id: Optional[uuid.UUID]) -> ScopeInfo:
        return ScopeInfo(
            level=ScopeLevel.RIDER,
            id=rider.id,
            name=rider.rider_name or rider.rider_id,
            code=rider.rider_id,
            is_active=rider.status == ACTIVE_STATUS,
            parent_level=ScopeLevel.MASTER_LEASE,
            parent_id=rider.master_lease_id,
            customer_id=customer_id,
        )

    def _amendment_info(self, amendment: LeaseAmendment, customer_id: Optional[uuid.UUID]) -> ScopeInfo:
        if amendment.rider_id is not None:
            parent_level, parent_id = ScopeLevel.RIDER, amendment.rider_id
        elif amendment.master_lease_id is not None:
            parent_level, parent_id = ScopeLevel.MASTER_LEASE, amendment.master_lease_id
        else:
            parent_level, parent_id = None, None

        return ScopeInfo(
            level=ScopeLevel.AMENDMENT,
            id=amendment.id,
            name=amendment.change_summary or amendment.amendment_id,
            code=amendment.amendment_id,
            is_active=amendment.effective_date <= self._today(),
            parent_level=parent_level,
            parent_id=parent_id,
            customer_id=customer_id,
        )
