"""
CCM resolution: parent preview and effective-instruction merge.

Two separate read paths over the same stored instructions:

ParentPreviewResolver
    Answers "what would this scope inherit if it declared nothing?" for the
    editing screen. It returns the nearest ancestor record as a whole and
    looks at most one or two levels up (see get_parent_preview).

InheritanceResolver
    Computes the effective instruction for a hierarchy path. Levels are
    walked customer -> master_lease -> rider -> amendment; every non-null
    field overwrites what came before and records its source level.
    Commodity sections merge the same way, except that a section marked
    inherit_from_parent contributes nothing and leaves the ancestor's entry
    in place.
"""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict, List, Optional, Protocol, Union

from ccm.errors import CarNotPlacedError
from ccm.hierarchy import HierarchyDirectory, HierarchyPath, ScopeRef
from ccm.models import (
    CCM_FIELDS, CCMInstruction, CCMInstructionLining, CCMInstructionSealing, ScopeLevel
)

logger = logging.getLogger(__name__)


class InstructionReader(Protocol):
    def get_by_scope(self, level: ScopeLevel, scope_id: uuid.UUID) -> Optional[CCMInstruction]:
        ...


# ============================================
# RESULT TYPES
# ============================================

@dataclass
class InheritanceChainItem:
    level: ScopeLevel
    id: Optional[uuid.UUID]
    name: Optional[str]
    fields_defined: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'level': self.level.value,
            'id': str(self.id) if self.id else None,
            'name': self.name,
            'fields_defined': list(self.fields_defined),
        }


@dataclass
class SectionSource:
    """Winning section for one commodity and the level it came from."""
    data: Union[CCMInstructionSealing, CCMInstructionLining]
    source: ScopeLevel

    def to_dict(self) -> Dict[str, Any]:
        return {'data': self.data.to_dict(), 'source': self.source.value}


@dataclass
class EffectiveCCM:
    effective: Dict[str, Any] = field(default_factory=dict)
    field_sources: Dict[str, ScopeLevel] = field(default_factory=dict)
    inheritance_chain: List[InheritanceChainItem] = field(default_factory=list)
    sealing_by_commodity: Dict[str, SectionSource] = field(default_factory=dict)
    lining_by_commodity: Dict[str, SectionSource] = field(default_factory=dict)
    hierarchy: Optional[HierarchyPath] = None

    def source_of(self, field_name: str) -> Optional[ScopeLevel]:
        """Level that supplied a field, or None when no level declares it."""
        return self.field_sources.get(field_name)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'effective': {f: self.effective[f] for f in CCM_FIELDS if f in self.effective},
            'field_sources': {
                f: self.field_sources[f].value for f in CCM_FIELDS if f in self.field_sources
            },
            'inheritance_chain': [item.to_dict() for item in self.inheritance_chain],
            'sealing_by_commodity': {
                commodity: self.sealing_by_commodity[commodity].to_dict()
                for commodity in sorted(self.sealing_by_commodity)
            },
            'lining_by_commodity': {
                commodity: self.lining_by_commodity[commodity].to_dict()
                for commodity in sorted(self.lining_by_commodity)
            },
            'hierarchy': self.hierarchy.to_dict() if self.hierarchy else None,
        }


def _ordered(sections) -> list:
    return sorted(sections or [], key=lambda s: (s.sort_order or 0, s.commodity))


# ============================================
# PARENT PREVIEW
# ============================================

class ParentPreviewResolver:
    """Finds the record a scope would inherit from on the editing screen."""

    def __init__(self, directory: HierarchyDirectory, reader: InstructionReader):
        self.directory = directory
        self.reader = reader

    def get_parent_preview(self, scope: ScopeRef) -> Optional[CCMInstruction]:
        """
        Return the nearest ancestor's own instruction for a scope.

        - customer: None
        - master_lease: the customer's record
        - rider: the lease's record, else the customer's record
        - amendment: the record of its direct parent (rider, or lease when
          the amendment hangs off the lease); no further climbing

        Unknown scope ids yield None.
        """
        level = ScopeLevel.parse(scope.level)
        if level is ScopeLevel.CUSTOMER:
            return None

        info = self.directory.get_scope(level, scope.id)
        if info is None or info.parent_id is None:
            logger.debug(f"No parent for preview of {level.value} {scope.id}")
            return None

        if level is ScopeLevel.RIDER:
            lease_record = self.reader.get_by_scope(ScopeLevel.MASTER_LEASE, info.parent_id)
            if lease_record is not None:
                return lease_record
            lease = self.directory.get_scope(ScopeLevel.MASTER_LEASE, info.parent_id)
            if lease is None or lease.parent_id is None:
                return None
            return self.reader.get_by_scope(ScopeLevel.CUSTOMER, lease.parent_id)

        return self.reader.get_by_scope(info.parent_level, info.parent_id)


# ============================================
# MERGE ENGINE
# ============================================

class InheritanceResolver:
    """Computes effective CCM instructions with per-field provenance."""

    def __init__(self, directory: HierarchyDirectory, reader: InstructionReader):
        self.directory = directory
        self.reader = reader

    def resolve_for_car(self, car_number: str, as_of: Optional[date] = None) -> EffectiveCCM:
        """
        Resolve the effective instruction for a car's current placement.

        Raises:
            CarNotPlacedError: If the car has no active placement
        """
        path = self.directory.get_car_path(car_number, as_of)
        if path is None:
            raise CarNotPlacedError(car_number)
        return self.resolve(path)

    def resolve_for_scope(self, scope: ScopeRef) -> EffectiveCCM:
        """Resolve the effective instruction as seen from a scope."""
        return self.resolve(self.directory.path_for_scope(scope.level, scope.id))

    def resolve(self, path: HierarchyPath) -> EffectiveCCM:
        """
        Merge the instructions declared along a hierarchy path.

        Raises:
            CarNotPlacedError: If the path has no customer
        """
        if not path.customer_id:
            raise CarNotPlacedError()

        records: Dict[ScopeLevel, Optional[CCMInstruction]] = {}
        for level, scope_id, _ in path.levels():
            records[level] = self.reader.get_by_scope(level, scope_id) if scope_id else None

        result = EffectiveCCM(hierarchy=path)

        for level, scope_id, name in path.levels():
            record = records[level]
            defined: List[str] = []
            if record is not None:
                for field_name, value in record.declared_fields().items():
                    result.effective[field_name] = value
                    result.field_sources[field_name] = level
                    defined.append(field_name)
                if name is None:
                    name = record.scope_name

            result.inheritance_chain.append(InheritanceChainItem(
                level=level,
                id=scope_id,
                name=name,
                fields_defined=defined,
            ))

        for level in ScopeLevel:
            record = records[level]
            if record is None:
                continue
            for sealing in _ordered(record.sealing_sections):
                if not sealing.inherit_from_parent:
                    result.sealing_by_commodity[sealing.commodity] = SectionSource(sealing, level)
            for lining in _ordered(record.lining_sections):
                if not lining.inherit_from_parent:
                    result.lining_by_commodity[lining.commodity] = SectionSource(lining, level)

        logger.debug(
            f"Resolved CCM for customer {path.customer_id}: "
            f"{len(result.effective)} fields, {len(result.sealing_by_commodity)} sealing, "
            f"{len(result.lining_by_commodity)} lining"
        )
        return result
