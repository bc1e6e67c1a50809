"""
CCM Instruction Service

Entry point used by the transport layer and the scripts. Each call opens its
own session: reads use session_scope(), writes a UnitOfWork so the hierarchy
lookup and the write commit or roll back together.

Returned ORM objects are detached but fully loaded (sections included), since
the session factory does not expire on commit.
"""

import logging
from datetime import date
from typing import Any, Callable, Dict, List, Optional, Union
from uuid import UUID

from sqlalchemy.orm import Session

from ccm.connection import DatabaseSessionProvider
from ccm.errors import InstructionNotFoundError
from ccm.hierarchy import HierarchyDirectory, ScopeRef, SqlHierarchyDirectory
from ccm.models import CCMInstruction, CCMInstructionLining, CCMInstructionSealing, ScopeLevel
from ccm.repositories import CCMInstructionRepository
from ccm.resolution import EffectiveCCM, InheritanceResolver, ParentPreviewResolver
from ccm.schemas import (
    CCMInstructionFieldsInput,
    LiningSectionInput,
    LiningSectionUpdate,
    ScopeInput,
    SealingSectionInput,
    SealingSectionUpdate,
)
from ccm.tree import HierarchyNode, HierarchyTreeBuilder

logger = logging.getLogger(__name__)


class CCMInstructionService:
    """Stateless facade over the CCM store, tree builder and resolvers."""

    def __init__(
        self,
        provider: DatabaseSessionProvider,
        hide_inactive: bool = False,
        today: Optional[Callable[[], date]] = None
    ):
        """
        Args:
            provider: Initialized (or lazily initializing) session provider
            hide_inactive: Leave inactive scopes out of the hierarchy tree
            today: Clock used for amendment activity and car placement
        """
        self.provider = provider
        self.hide_inactive = hide_inactive
        self._today = today or date.today

    def _directory(self, session: Session) -> HierarchyDirectory:
        return SqlHierarchyDirectory(session, today=self._today)

    def _repository(self, session: Session) -> CCMInstructionRepository:
        return CCMInstructionRepository(session, self._directory(session))

    # ============================================
    # READS
    # ============================================

    def get_instruction(self, instruction_id: UUID) -> CCMInstruction:
        """
        Current instruction by id.

        Raises:
            InstructionNotFoundError: If the id is unknown or no longer current
        """
        with self.provider.session_scope() as session:
            instruction = self._repository(session).get_by_id(instruction_id)
        if instruction is None:
            raise InstructionNotFoundError(instruction_id)
        return instruction

    def get_instruction_by_scope(self, level: Union[ScopeLevel, str], scope_id: UUID) -> Optional[CCMInstruction]:
        level = ScopeLevel.parse(level)
        with self.provider.session_scope() as session:
            return self._repository(session).get_by_scope(level, scope_id)

    def list_instructions(
        self,
        scope_type: Optional[Union[ScopeLevel, str]] = None,
        scope_id: Optional[UUID] = None,
        customer_id: Optional[UUID] = None
    ) -> List[CCMInstruction]:
        if scope_type is not None:
            scope_type = ScopeLevel.parse(scope_type)
        with self.provider.session_scope() as session:
            return self._repository(session).list(scope_type, scope_id, customer_id)

    def get_hierarchy_tree(self, customer_id: Optional[UUID] = None) -> List[HierarchyNode]:
        with self.provider.session_scope() as session:
            builder = HierarchyTreeBuilder(
                self._directory(session),
                self._repository(session),
                hide_inactive=self.hide_inactive
            )
            return builder.build_tree(customer_id)

    def get_parent_preview(self, level: Union[ScopeLevel, str], scope_id: UUID) -> Optional[CCMInstruction]:
        scope = ScopeRef(ScopeLevel.parse(level), scope_id)
        with self.provider.session_scope() as session:
            resolver = ParentPreviewResolver(self._directory(session), self._repository(session))
            return resolver.get_parent_preview(scope)

    def resolve_for_car(self, car_number: str, as_of: Optional[date] = None) -> EffectiveCCM:
        """
        Effective CCM for a car.

        Raises:
            CarNotPlacedError: If the car has no active rider placement
        """
        with self.provider.session_scope() as session:
            resolver = InheritanceResolver(self._directory(session), self._repository(session))
            return resolver.resolve_for_car(car_number, as_of or self._today())

    def resolve_for_scope(self, level: Union[ScopeLevel, str], scope_id: UUID) -> EffectiveCCM:
        """
        Effective CCM as seen from a scope.

        Raises:
            ScopeNotFoundError: If the scope is unknown
        """
        scope = ScopeRef(ScopeLevel.parse(level), scope_id)
        with self.provider.session_scope() as session:
            resolver = InheritanceResolver(self._directory(session), self._repository(session))
            return resolver.resolve_for_scope(scope)

    # ============================================
    # INSTRUCTION WRITES
    # ============================================

    def create_instruction(
        self,
        level: Union[ScopeLevel, str],
        scope_id: UUID,
        fields: Dict[str, Any],
        actor_id: Optional[UUID] = None
    ) -> CCMInstruction:
        """
        Declare the CCM instruction for a scope.

        Raises:
            InvalidScopeTypeError: If level is not a hierarchy level
            pydantic.ValidationError: If scope_id is not a UUID, or fields holds
                unknown keys or bad types
            ScopeNotFoundError: If the scope does not exist
            DuplicateInstructionError: If the scope already has one
        """
        scope = ScopeInput(type=ScopeLevel.parse(level), id=scope_id).to_ref()
        values = CCMInstructionFieldsInput(**fields).model_dump(exclude_unset=True)

        with self.provider.get_unit_of_work() as uow:
            instruction = self._repository(uow.session).create(scope, values, actor_id)
            uow.commit()
            return instruction

    def update_instruction(self, instruction_id: UUID, fields: Dict[str, Any]) -> CCMInstruction:
        """
        Apply a partial update. Null values leave the stored field as it is.

        Raises:
            pydantic.ValidationError: If fields holds unknown keys or bad types
            InstructionNotFoundError: If the id is unknown or no longer current
        """
        values = CCMInstructionFieldsInput(**fields).model_dump(exclude_unset=True)

        with self.provider.get_unit_of_work() as uow:
            instruction = self._repository(uow.session).update(instruction_id, values)
            if instruction is None:
                raise InstructionNotFoundError(instruction_id)
            uow.commit()
            return instruction

    def delete_instruction(self, instruction_id: UUID) -> bool:
        """
        Soft-delete an instruction.

        Returns:
            True if deleted, False if it was already inactive

        Raises:
            InstructionNotFoundError: If no instruction has this id
        """
        with self.provider.get_unit_of_work() as uow:
            repo = self._repository(uow.session)
            if repo.get_by_id(instruction_id, include_superseded=True) is None:
                raise InstructionNotFoundError(instruction_id)
            deleted = repo.soft_delete(instruction_id)
            uow.commit()
            return deleted

    # ============================================
    # SECTION WRITES
    # ============================================

    def add_sealing_section(self, instruction_id: UUID, data: Dict[str, Any]) -> CCMInstructionSealing:
        values = SealingSectionInput(**data).model_dump(exclude_unset=True)
        with self.provider.get_unit_of_work() as uow:
            section = self._repository(uow.session).add_sealing_section(instruction_id, values)
            uow.commit()
            return section

    def update_sealing_section(self, section_id: UUID, data: Dict[str, Any]) -> Optional[CCMInstructionSealing]:
        values = SealingSectionUpdate(**data).model_dump(exclude_unset=True)
        with self.provider.get_unit_of_work() as uow:
            section = self._repository(uow.session).update_sealing_section(section_id, values)
            uow.commit()
            return section

    def remove_sealing_section(self, section_id: UUID) -> bool:
        with self.provider.get_unit_of_work() as uow:
            removed = self._repository(uow.session).remove_sealing_section(section_id)
            uow.commit()
            return removed

    def add_lining_section(self, instruction_id: UUID, data: Dict[str, Any]) -> CCMInstructionLining:
        values = LiningSectionInput(**data).model_dump(exclude_unset=True)
        with self.provider.get_unit_of_work() as uow:
            section = self._repository(uow.session).add_lining_section(instruction_id, values)
            uow.commit()
            return section

    def update_lining_section(self, section_id: UUID, data: Dict[str, Any]) -> Optional[CCMInstructionLining]:
        values = LiningSectionUpdate(**data).model_dump(exclude_unset=True)
        with self.provider.get_unit_of_work() as uow:
            section = self._repository(uow.session).update_lining_section(section_id, values)
            uow.commit()
            return section

    def remove_lining_section(self, section_id: UUID) -> bool:
        with self.provider.get_unit_of_work() as uow:
            removed = self._repository(uow.session).remove_lining_section(section_id)
            uow.commit()
            return removed
