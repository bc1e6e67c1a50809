"""
SQLAlchemy ORM Models for the CCM Instruction Hierarchy

This module defines two groups of tables:

Lease hierarchy (owned by the surrounding leasing system, mapped read-only):
1. customers - Lessee customers
2. master_leases - Master lease agreements (child of customer)
3. lease_riders - Riders attached to a master lease
4. lease_amendments - Amendments attached to a rider or directly to a lease
5. rider_cars - Placement of cars on riders

CCM instructions (owned by this package):
6. ccm_instructions - Scoped override record, one current row per scope
7. ccm_instruction_sealing - Per-commodity sealing overrides
8. ccm_instruction_lining - Per-commodity lining overrides

Every overridable column on ccm_instructions is nullable: NULL means the
scope does not declare the field and inherits it from its ancestor.
"""

import uuid
from datetime import date, datetime, timezone
from enum import Enum as PyEnum
from typing import Any, Dict, List, Optional

from sqlalchemy import (
    Boolean, CheckConstraint, Date, DateTime, Enum, ForeignKey, Index,
    Integer, String, Text, UniqueConstraint, Uuid, and_
)
from sqlalchemy.orm import Mapped, declarative_base, mapped_column, relationship
from sqlalchemy.sql import func

from ccm.errors import InvalidScopeTypeError

# Base class for all models
Base = declarative_base()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ============================================
# ENUMS
# ============================================

class ScopeLevel(str, PyEnum):
    """Hierarchy level a CCM instruction is attached to.

    Members are declared from most general to most specific; ``rank``
    exposes that order.
    """
    CUSTOMER = "customer"
    MASTER_LEASE = "master_lease"
    RIDER = "rider"
    AMENDMENT = "amendment"

    @property
    def rank(self) -> int:
        return LEVEL_ORDER.index(self)

    @property
    def scope_column(self) -> str:
        """Name of the ccm_instructions column referencing this level."""
        return SCOPE_COLUMNS[self]

    @classmethod
    def parse(cls, value: Any) -> "ScopeLevel":
        """Convert a string (or ScopeLevel) to a ScopeLevel.

        Raises:
            InvalidScopeTypeError: If value is not one of the four levels
        """
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            raise InvalidScopeTypeError(value) from None


LEVEL_ORDER = (
    ScopeLevel.CUSTOMER,
    ScopeLevel.MASTER_LEASE,
    ScopeLevel.RIDER,
    ScopeLevel.AMENDMENT,
)

SCOPE_COLUMNS = {
    ScopeLevel.CUSTOMER: "customer_id",
    ScopeLevel.MASTER_LEASE: "master_lease_id",
    ScopeLevel.RIDER: "rider_id",
    ScopeLevel.AMENDMENT: "amendment_id",
}


# Overridable scalar fields, in form order
CCM_FIELDS = (
    # Cleaning requirements
    'food_grade', 'mineral_wipe', 'kosher_wash', 'kosher_wipe', 'shop_oil_material',
    'oil_provider_contact', 'rinse_water_test_procedure',
    # Primary contact
    'primary_contact_name', 'primary_contact_email', 'primary_contact_phone',
    # Estimate approval contact
    'estimate_approval_contact_name', 'estimate_approval_contact_email',
    'estimate_approval_contact_phone',
    # Dispo contact
    'dispo_contact_name', 'dispo_contact_email', 'dispo_contact_phone',
    # Outbound dispo
    'decal_requirements', 'nitrogen_applied', 'nitrogen_psi',
    'outbound_dispo_contact_email', 'outbound_dispo_contact_phone',
    'documentation_required_prior_to_release',
    # Special fittings and notes
    'special_fittings_vendor_requirements', 'additional_notes',
)

SEALING_FIELDS = (
    'commodity', 'gasket_sealing_material', 'alternate_material',
    'preferred_gasket_vendor', 'alternate_vendor', 'vsp_ride_tight',
    'sealing_requirements', 'inherit_from_parent', 'sort_order',
)

LINING_FIELDS = (
    'commodity', 'lining_required', 'lining_inspection_interval',
    'lining_type', 'lining_plan_on_file', 'lining_requirements',
    'inherit_from_parent', 'sort_order',
)


def _serialize(value: Any) -> Any:
    if isinstance(value, uuid.UUID):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, PyEnum):
        return value.value
    return value


# ============================================
# MIXIN CLASSES
# ============================================

class TimestampMixin:
    """Mixin for created_at and updated_at timestamps"""
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=_utcnow,
        server_default=func.now(),
        nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=_utcnow,
        server_default=func.now(),
        onupdate=_utcnow,
        nullable=False
    )


# ============================================
# LEASE HIERARCHY (read-only)
# ============================================

class Customer(Base):
    """Lessee customer, root of the lease hierarchy."""
    __tablename__ = "customers"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    customer_code: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    customer_name: Mapped[str] = mapped_column(String(200), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    leases: Mapped[List["MasterLease"]] = relationship(
        "MasterLease",
        back_populates="customer"
    )

    def __repr__(self) -> str:
        return f"<Customer(id={self.id}, code='{self.customer_code}')>"


class MasterLease(Base):
    """Master lease agreement between the lessor and a customer."""
    __tablename__ = "master_leases"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    customer_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("customers.id"),
        nullable=False,
        index=True
    )
    # Business identifier, e.g. "ML-2024-001"
    lease_id: Mapped[str] = mapped_column(String(50), nullable=False)
    lease_name: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    status: Mapped[str] = mapped_column(String(30), default="Active", nullable=False)

    customer: Mapped["Customer"] = relationship("Customer", back_populates="leases")

    def __repr__(self) -> str:
        return f"<MasterLease(id={self.id}, lease_id='{self.lease_id}')>"


class LeaseRider(Base):
    """Rider (schedule) attached to a master lease."""
    __tablename__ = "lease_riders"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    master_lease_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("master_leases.id"),
        nullable=False,
        index=True
    )
    rider_id: Mapped[str] = mapped_column(String(50), nullable=False)
    rider_name: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    status: Mapped[str] = mapped_column(String(30), default="Active", nullable=False)

    def __repr__(self) -> str:
        return f"<LeaseRider(id={self.id}, rider_id='{self.rider_id}')>"


class LeaseAmendment(Base):
    """Amendment to a rider, or to a master lease when rider_id is NULL."""
    __tablename__ = "lease_amendments"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    amendment_id: Mapped[str] = mapped_column(String(50), nullable=False)
    rider_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid,
        ForeignKey("lease_riders.id"),
        nullable=True,
        index=True
    )
    master_lease_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid,
        ForeignKey("master_leases.id"),
        nullable=True,
        index=True
    )
    change_summary: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    effective_date: Mapped[date] = mapped_column(Date, nullable=False)

    def __repr__(self) -> str:
        return f"<LeaseAmendment(id={self.id}, amendment_id='{self.amendment_id}')>"


class RiderCar(Base):
    """Assignment of a car to a rider."""
    __tablename__ = "rider_cars"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    rider_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("lease_riders.id"),
        nullable=False,
        index=True
    )
    car_number: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    def __repr__(self) -> str:
        return f"<RiderCar(car_number='{self.car_number}', rider_id={self.rider_id})>"


# ============================================
# CCM INSTRUCTIONS
# ============================================

class CCMInstruction(Base, TimestampMixin):
    """
    CCM instruction declared at one hierarchy scope.

    Exactly one of customer_id / master_lease_id / rider_id / amendment_id
    is set, matching scope_level. Soft-deleted rows keep is_current = False
    and never take part in resolution again.
    """
    __tablename__ = "ccm_instructions"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    # Hierarchy scope
    customer_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("customers.id", ondelete="CASCADE"), nullable=True
    )
    master_lease_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("master_leases.id", ondelete="CASCADE"), nullable=True
    )
    rider_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("lease_riders.id", ondelete="CASCADE"), nullable=True
    )
    amendment_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("lease_amendments.id", ondelete="CASCADE"), nullable=True
    )
    scope_level: Mapped[ScopeLevel] = mapped_column(
        Enum(
            ScopeLevel,
            name="ccm_scope_level",
            native_enum=False,
            length=20,
            values_callable=lambda levels: [level.value for level in levels]
        ),
        nullable=False,
        index=True
    )

    # Display name cached from the hierarchy at creation time
    scope_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    # Cleaning requirements
    food_grade: Mapped[Optional[bool]] = mapped_column(Boolean, nullable=True)
    mineral_wipe: Mapped[Optional[bool]] = mapped_column(Boolean, nullable=True)
    kosher_wash: Mapped[Optional[bool]] = mapped_column(Boolean, nullable=True)
    kosher_wipe: Mapped[Optional[bool]] = mapped_column(Boolean, nullable=True)
    shop_oil_material: Mapped[Optional[bool]] = mapped_column(Boolean, nullable=True)
    oil_provider_contact: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    rinse_water_test_procedure: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Primary contact
    primary_contact_name: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    primary_contact_email: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    primary_contact_phone: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)

    # Estimate approval contact
    estimate_approval_contact_name: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    estimate_approval_contact_email: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    estimate_approval_contact_phone: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)

    # Dispo contact
    dispo_contact_name: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    dispo_contact_email: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    dispo_contact_phone: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)

    # Outbound dispo
    decal_requirements: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    nitrogen_applied: Mapped[Optional[bool]] = mapped_column(Boolean, nullable=True)
    nitrogen_psi: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    outbound_dispo_contact_email: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    outbound_dispo_contact_phone: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    documentation_required_prior_to_release: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Special fittings and notes
    special_fittings_vendor_requirements: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    additional_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Versioning: version is the creation generation, edits leave it alone
    version: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    is_current: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False, index=True)
    supersedes_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("ccm_instructions.id"), nullable=True
    )

    # Actor id supplied by the identity collaborator, not validated here
    created_by_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, nullable=True)

    # Relationships
    sealing_sections: Mapped[List["CCMInstructionSealing"]] = relationship(
        "CCMInstructionSealing",
        back_populates="instruction",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by=lambda: (
            CCMInstructionSealing.sort_order,
            CCMInstructionSealing.created_at,
            CCMInstructionSealing.id,
        )
    )
    lining_sections: Mapped[List["CCMInstructionLining"]] = relationship(
        "CCMInstructionLining",
        back_populates="instruction",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by=lambda: (
            CCMInstructionLining.sort_order,
            CCMInstructionLining.created_at,
            CCMInstructionLining.id,
        )
    )

    __table_args__ = (
        CheckConstraint(
            "(CASE WHEN customer_id IS NOT NULL THEN 1 ELSE 0 END"
            " + CASE WHEN master_lease_id IS NOT NULL THEN 1 ELSE 0 END"
            " + CASE WHEN rider_id IS NOT NULL THEN 1 ELSE 0 END"
            " + CASE WHEN amendment_id IS NOT NULL THEN 1 ELSE 0 END) = 1",
            name="ccm_instructions_scope_check"
        ),
        Index('ix_ccm_instructions_customer', 'customer_id'),
        Index('ix_ccm_instructions_lease', 'master_lease_id'),
        Index('ix_ccm_instructions_rider', 'rider_id'),
        Index('ix_ccm_instructions_amendment', 'amendment_id'),
    )

    @property
    def scope_id(self) -> Optional[uuid.UUID]:
        """Id of the hierarchy node this instruction is attached to."""
        if self.scope_level is None:
            return None
        return getattr(self, ScopeLevel.parse(self.scope_level).scope_column)

    def declared_fields(self) -> Dict[str, Any]:
        """Overridable fields this instruction sets (non-null), in form order."""
        values = {}
        for field in CCM_FIELDS:
            value = getattr(self, field)
            if value is not None:
                values[field] = value
        return values

    def to_dict(self, include_sections: bool = True) -> Dict[str, Any]:
        data = {
            'id': _serialize(self.id),
            'scope_level': _serialize(self.scope_level),
            'scope_id': _serialize(self.scope_id),
            'scope_name': self.scope_name,
            'customer_id': _serialize(self.customer_id),
            'master_lease_id': _serialize(self.master_lease_id),
            'rider_id': _serialize(self.rider_id),
            'amendment_id': _serialize(self.amendment_id),
        }
        for field in CCM_FIELDS:
            data[field] = getattr(self, field)
        data.update({
            'version': self.version,
            'is_current': self.is_current,
            'supersedes_id': _serialize(self.supersedes_id),
            'created_by_id': _serialize(self.created_by_id),
            'created_at': _serialize(self.created_at),
            'updated_at': _serialize(self.updated_at),
        })
        if include_sections:
            data['sealing_sections'] = [s.to_dict() for s in self.sealing_sections]
            data['lining_sections'] = [l.to_dict() for l in self.lining_sections]
        return data

    def __repr__(self) -> str:
        return (
            f"<CCMInstruction(id={self.id}, scope_level={self.scope_level}, "
            f"scope_name='{self.scope_name}', is_current={self.is_current})>"
        )


# One current instruction per scope entity
for _level, _column in SCOPE_COLUMNS.items():
    _scope_col = CCMInstruction.__table__.c[_column]
    _where = and_(_scope_col.isnot(None), CCMInstruction.__table__.c.is_current.is_(True))
    Index(
        f"uq_ccm_instructions_current_{_level.value}",
        _scope_col,
        unique=True,
        postgresql_where=_where,
        sqlite_where=_where,
    )


class CCMInstructionSealing(Base, TimestampMixin):
    """
    Per-commodity sealing override owned by one CCM instruction.

    When inherit_from_parent is True the row is a placeholder: it contributes
    nothing for its commodity and resolution keeps the ancestor's entry.
    """
    __tablename__ = "ccm_instruction_sealing"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    ccm_instruction_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("ccm_instructions.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    commodity: Mapped[str] = mapped_column(String(200), nullable=False, index=True)

    gasket_sealing_material: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    alternate_material: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    preferred_gasket_vendor: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    alternate_vendor: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    vsp_ride_tight: Mapped[Optional[bool]] = mapped_column(Boolean, nullable=True)
    sealing_requirements: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    inherit_from_parent: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    sort_order: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    instruction: Mapped["CCMInstruction"] = relationship(
        "CCMInstruction",
        back_populates="sealing_sections"
    )

    __table_args__ = (
        UniqueConstraint('ccm_instruction_id', 'commodity', name='uq_ccm_sealing_commodity'),
    )

    def to_dict(self) -> Dict[str, Any]:
        data = {
            'id': _serialize(self.id),
            'ccm_instruction_id': _serialize(self.ccm_instruction_id),
        }
        for field in SEALING_FIELDS:
            data[field] = getattr(self, field)
        return data

    def __repr__(self) -> str:
        return f"<CCMInstructionSealing(commodity='{self.commodity}', inherit={self.inherit_from_parent})>"


class CCMInstructionLining(Base, TimestampMixin):
    """Per-commodity lining override owned by one CCM instruction."""
    __tablename__ = "ccm_instruction_lining"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    ccm_instruction_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("ccm_instructions.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    commodity: Mapped[str] = mapped_column(String(200), nullable=False, index=True)

    lining_required: Mapped[Optional[bool]] = mapped_column(Boolean, nullable=True)
    lining_inspection_interval: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    lining_type: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    lining_plan_on_file: Mapped[Optional[bool]] = mapped_column(Boolean, nullable=True)
    lining_requirements: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    inherit_from_parent: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    sort_order: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    instruction: Mapped["CCMInstruction"] = relationship(
        "CCMInstruction",
        back_populates="lining_sections"
    )

    __table_args__ = (
        UniqueConstraint('ccm_instruction_id', 'commodity', name='uq_ccm_lining_commodity'),
    )

    def to_dict(self) -> Dict[str, Any]:
        data = {
            'id': _serialize(self.id),
            'ccm_instruction_id': _serialize(self.ccm_instruction_id),
        }
        for field in LINING_FIELDS:
            data[field] = getattr(self, field)
        return data

    def __repr__(self) -> str:
        return f"<CCMInstructionLining(commodity='{self.commodity}', inherit={self.inherit_from_parent})>"
