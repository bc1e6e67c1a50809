"""
Repository Pattern for CCM Instruction Storage

Provides the data access layer for scoped CCM instructions and their
commodity sections. The repository never commits: callers own the
transaction (see connection.UnitOfWork).
"""

import logging
from typing import Any, Dict, List, Optional, Set, Tuple, Type, Union
from uuid import UUID

from sqlalchemy import and_, or_, select
from sqlalchemy.orm import Session, selectinload
from sqlalchemy.exc import IntegrityError

from ccm.errors import (
    DuplicateInstructionError,
    DuplicateSectionError,
    InstructionNotFoundError,
    ScopeNotFoundError,
)
from ccm.hierarchy import HierarchyDirectory, ScopeRef
from ccm.models import (
    CCM_FIELDS,
    LINING_FIELDS,
    SEALING_FIELDS,
    CCMInstruction,
    CCMInstructionLining,
    CCMInstructionSealing,
    LeaseAmendment,
    LeaseRider,
    MasterLease,
    ScopeLevel,
)

logger = logging.getLogger(__name__)

SectionModel = Union[CCMInstructionSealing, CCMInstructionLining]

# Section columns that may not be stored as NULL
_NON_NULL_SECTION_FIELDS = ('inherit_from_parent', 'sort_order')


class CCMInstructionRepository:
    """Repository for CCM instructions and their sealing/lining sections."""

    def __init__(self, session: Session, directory: HierarchyDirectory):
        self.session = session
        self.directory = directory

    # ============================================
    # INSTRUCTIONS
    # ============================================

    def get_by_scope(self, level: Union[ScopeLevel, str], scope_id: UUID) -> Optional[CCMInstruction]:
        """
        Get the current instruction declared at a scope.

        Args:
            level: Scope level
            scope_id: Id of the customer/lease/rider/amendment row

        Returns:
            CCMInstruction with sections loaded, or None
        """
        level = ScopeLevel.parse(level)
        column = getattr(CCMInstruction, level.scope_column)
        query = select(CCMInstruction).where(
            and_(
                column == scope_id,
                CCMInstruction.is_current.is_(True)
            )
        ).options(
            selectinload(CCMInstruction.sealing_sections),
            selectinload(CCMInstruction.lining_sections)
        )
        return self.session.execute(query).scalars().first()

    def get_by_id(self, instruction_id: UUID, include_superseded: bool = False) -> Optional[CCMInstruction]:
        """
        Get instruction by ID.

        Args:
            instruction_id: UUID of the instruction
            include_superseded: If True, also return soft-deleted records

        Returns:
            CCMInstruction or None
        """
        query = select(CCMInstruction).where(CCMInstruction.id == instruction_id)

        if not include_superseded:
            query = query.where(CCMInstruction.is_current.is_(True))

        query = query.options(
            selectinload(CCMInstruction.sealing_sections),
            selectinload(CCMInstruction.lining_sections)
        )

        result = self.session.execute(query)
        return result.scalar_one_or_none()

    def list(
        self,
        scope_type: Optional[Union[ScopeLevel, str]] = None,
        scope_id: Optional[UUID] = None,
        customer_id: Optional[UUID] = None
    ) -> List[CCMInstruction]:
        """
        List current instructions.

        Args:
            scope_type: Only instructions declared at this level
            scope_id: Only instructions attached to this scope row
            customer_id: Only instructions inside this customer's subtree
                (the customer itself, its leases, riders and amendments)

        Returns:
            Instructions ordered by level (customer first) then scope name
        """
        conditions = [CCMInstruction.is_current.is_(True)]
        level = ScopeLevel.parse(scope_type) if scope_type is not None else None

        if level is not None:
            conditions.append(CCMInstruction.scope_level == level)

        if scope_id is not None:
            if level is not None:
                conditions.append(getattr(CCMInstruction, level.scope_column) == scope_id)
            else:
                conditions.append(or_(*[
                    getattr(CCMInstruction, lvl.scope_column) == scope_id for lvl in ScopeLevel
                ]))

        if customer_id is not None:
            conditions.append(self._customer_subtree_condition(customer_id))

        query = select(CCMInstruction).where(and_(*conditions))
        instructions = list(self.session.execute(query).scalars().all())

        instructions.sort(key=lambda i: (
            ScopeLevel.parse(i.scope_level).rank,
            i.scope_name or "",
            str(i.id)
        ))
        return instructions

    def _customer_subtree_condition(self, customer_id: UUID):
        lease_ids = select(MasterLease.id).where(MasterLease.customer_id == customer_id)
        rider_ids = select(LeaseRider.id).where(LeaseRider.master_lease_id.in_(lease_ids))
        amendment_ids = select(LeaseAmendment.id).where(
            or_(
                LeaseAmendment.rider_id.in_(rider_ids),
                LeaseAmendment.master_lease_id.in_(lease_ids)
            )
        )
        return or_(
            CCMInstruction.customer_id == customer_id,
            CCMInstruction.master_lease_id.in_(lease_ids),
            CCMInstruction.rider_id.in_(rider_ids),
            CCMInstruction.amendment_id.in_(amendment_ids)
        )

    def create(
        self,
        scope: ScopeRef,
        fields: Dict[str, Any],
        actor_id: Optional[UUID] = None
    ) -> CCMInstruction:
        """
        Create the current instruction for a scope.

        Args:
            scope: Level and id of the scope
            fields: Overridable fields; unknown keys are ignored
            actor_id: Id of the creating user, stored as created_by_id

        Returns:
            Created CCMInstruction (version 1, current)

        Raises:
            ScopeNotFoundError: If the hierarchy does not know the scope
            DuplicateInstructionError: If the scope already has a current instruction
        """
        level = ScopeLevel.parse(scope.level)

        info = self.directory.get_scope(level, scope.id)
        if info is None:
            logger.warning(f"Rejected CCM instruction for unknown scope {level.value} {scope.id}")
            raise ScopeNotFoundError(level, scope.id)

        if self.get_by_scope(level, scope.id) is not None:
            logger.warning(f"Rejected duplicate CCM instruction for {level.value} {scope.id}")
            raise DuplicateInstructionError(
                f"Scope already has a current CCM instruction: {level.value} {scope.id}"
            )

        values = {key: value for key, value in fields.items() if key in CCM_FIELDS}
        values[level.scope_column] = scope.id

        instruction = CCMInstruction(
            scope_level=level,
            scope_name=info.name,
            version=1,
            is_current=True,
            created_by_id=actor_id,
            sealing_sections=[],
            lining_sections=[],
            **values
        )

        try:
            self.session.add(instruction)
            self.session.flush()
        except IntegrityError as e:
            self.session.rollback()
            raise DuplicateInstructionError(f"CCM instruction already exists: {e}")

        logger.info(f"Created CCM instruction {instruction.id} for {level.value} '{info.name}'")
        return instruction

    def update(self, instruction_id: UUID, fields: Dict[str, Any]) -> Optional[CCMInstruction]:
        """
        Update the supplied fields of a current instruction.

        Keys absent from fields are left untouched, and so are keys whose
        value is None: an update sets or changes a field but never returns
        it to inherit. Keys that are not overridable fields are ignored. The
        version is not incremented.

        Returns:
            Updated instruction, or None if missing or no longer current
        """
        instruction = self.get_by_id(instruction_id)
        if not instruction:
            return None

        for key, value in fields.items():
            if key in CCM_FIELDS and value is not None:
                setattr(instruction, key, value)

        self.session.flush()
        logger.info(f"Updated CCM instruction {instruction_id}")
        return instruction

    def soft_delete(self, instruction_id: UUID) -> bool:
        """
        Retire an instruction from resolution.

        Returns:
            True if the instruction was current, False if missing or already inactive
        """
        instruction = self.session.get(CCMInstruction, instruction_id)
        if not instruction or not instruction.is_current:
            return False

        instruction.is_current = False
        self.session.flush()
        logger.info(f"Soft-deleted CCM instruction {instruction_id}")
        return True

    def scopes_with_current_instruction(self) -> Set[Tuple[ScopeLevel, UUID]]:
        """Return (level, scope id) for every scope holding a current instruction."""
        query = select(
            CCMInstruction.scope_level,
            CCMInstruction.customer_id,
            CCMInstruction.master_lease_id,
            CCMInstruction.rider_id,
            CCMInstruction.amendment_id
        ).where(CCMInstruction.is_current.is_(True))

        scopes = set()
        for row in self.session.execute(query):
            level = ScopeLevel.parse(row.scope_level)
            scopes.add((level, getattr(row, level.scope_column)))
        return scopes

    # ============================================
    # SECTIONS
    # ============================================

    def add_sealing_section(self, instruction_id: UUID, data: Dict[str, Any]) -> CCMInstructionSealing:
        """
        Add a sealing section to a current instruction.

        Raises:
            InstructionNotFoundError: If the instruction is missing or not current
            DuplicateSectionError: If the commodity already has a sealing section
        """
        return self._add_section(instruction_id, data, CCMInstructionSealing, SEALING_FIELDS, 'sealing_sections')

    def update_sealing_section(self, section_id: UUID, data: Dict[str, Any]) -> Optional[CCMInstructionSealing]:
        """
        Update a sealing section; returns None if the section is unknown.

        Raises:
            InstructionNotFoundError: If the owning instruction is no longer current
            DuplicateSectionError: If renamed onto a commodity already present
        """
        return self._update_section(section_id, data, CCMInstructionSealing, SEALING_FIELDS, 'sealing_sections')

    def remove_sealing_section(self, section_id: UUID) -> bool:
        return self._remove_section(section_id, CCMInstructionSealing, 'sealing_sections')

    def add_lining_section(self, instruction_id: UUID, data: Dict[str, Any]) -> CCMInstructionLining:
        """
        Add a lining section to a current instruction.

        Raises:
            InstructionNotFoundError: If the instruction is missing or not current
            DuplicateSectionError: If the commodity already has a lining section
        """
        return self._add_section(instruction_id, data, CCMInstructionLining, LINING_FIELDS, 'lining_sections')

    def update_lining_section(self, section_id: UUID, data: Dict[str, Any]) -> Optional[CCMInstructionLining]:
        return self._update_section(section_id, data, CCMInstructionLining, LINING_FIELDS, 'lining_sections')

    def remove_lining_section(self, section_id: UUID) -> bool:
        return self._remove_section(section_id, CCMInstructionLining, 'lining_sections')

    def _add_section(
        self,
        instruction_id: UUID,
        data: Dict[str, Any],
        model: Type[SectionModel],
        allowed: Tuple[str, ...],
        collection: str
    ) -> SectionModel:
        instruction = self.get_by_id(instruction_id)
        if not instruction:
            raise InstructionNotFoundError(instruction_id)

        commodity = data.get('commodity')
        sections = getattr(instruction, collection)
        if any(s.commodity == commodity for s in sections):
            logger.warning(f"Rejected duplicate {model.__tablename__} commodity '{commodity}' on {instruction_id}")
            raise DuplicateSectionError(
                f"Commodity '{commodity}' already has a section on instruction {instruction_id}"
            )

        section = model(**_section_values(data, allowed))
        try:
            sections.append(section)
            self.session.flush()
        except IntegrityError as e:
            self.session.rollback()
            raise DuplicateSectionError(f"Section already exists: {e}")

        logger.info(f"Added {model.__tablename__} section {section.id} ('{commodity}') to {instruction_id}")
        return section

    def _update_section(
        self,
        section_id: UUID,
        data: Dict[str, Any],
        model: Type[SectionModel],
        allowed: Tuple[str, ...],
        collection: str
    ) -> Optional[SectionModel]:
        section = self.session.get(model, section_id)
        if not section:
            return None
        if not section.instruction.is_current:
            raise InstructionNotFoundError(section.ccm_instruction_id)

        commodity = data.get('commodity')
        if commodity is not None and commodity != section.commodity:
            siblings = getattr(section.instruction, collection)
            if any(s.commodity == commodity for s in siblings if s is not section):
                raise DuplicateSectionError(
                    f"Commodity '{commodity}' already has a section on instruction {section.ccm_instruction_id}"
                )

        for key, value in _section_values(data, allowed).items():
            setattr(section, key, value)

        self.session.flush()
        logger.info(f"Updated {model.__tablename__} section {section_id}")
        return section

    def _remove_section(self, section_id: UUID, model: Type[SectionModel], collection: str) -> bool:
        section = self.session.get(model, section_id)
        if not section:
            return False
        if not section.instruction.is_current:
            raise InstructionNotFoundError(section.ccm_instruction_id)

        getattr(section.instruction, collection).remove(section)
        self.session.flush()
        logger.info(f"Removed {model.__tablename__} section {section_id}")
        return True


def _section_values(data: Dict[str, Any], allowed: Tuple[str, ...]) -> Dict[str, Any]:
    values = {}
    for key, value in data.items():
        if key not in allowed:
            continue
        if value is None and key in _NON_NULL_SECTION_FIELDS:
            continue
        values[key] = value
    return values
