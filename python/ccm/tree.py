"""
Scope tree for the CCM editing screen.

Mirrors the lease hierarchy (customer > master lease > rider > amendment)
and flags the nodes that hold a current CCM instruction.
"""

import logging
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol, Set, Tuple

from ccm.hierarchy import HierarchyDirectory
from ccm.models import ScopeLevel

logger = logging.getLogger(__name__)


class OverrideIndex(Protocol):
    def scopes_with_current_instruction(self) -> Set[Tuple[ScopeLevel, uuid.UUID]]:
        ...


@dataclass
class HierarchyNode:
    id: uuid.UUID
    level: ScopeLevel
    name: str
    code: Optional[str] = None
    has_override: bool = False
    is_active: bool = True
    children: List["HierarchyNode"] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': str(self.id),
            'level': self.level.value,
            'name': self.name,
            'code': self.code,
            'hasOverride': self.has_override,
            'isActive': self.is_active,
            'children': [child.to_dict() for child in self.children],
        }


def _sort_key(node: HierarchyNode):
    return (node.name or "", str(node.id))


class HierarchyTreeBuilder:
    """
    Assembles the scope tree from one hierarchy fetch and one override fetch.

    Amendments attached directly to a master lease are listed under that
    lease. Nodes whose parent is not in the fetched data are left out.
    """

    def __init__(self, directory: HierarchyDirectory, overrides: OverrideIndex, hide_inactive: bool = False):
        self.directory = directory
        self.overrides = overrides
        self.hide_inactive = hide_inactive

    def build_tree(self, customer_id: Optional[uuid.UUID] = None) -> List[HierarchyNode]:
        scopes = self.directory.list_scopes(customer_id)
        with_override = self.overrides.scopes_with_current_instruction()

        nodes: Dict[Tuple[ScopeLevel, uuid.UUID], HierarchyNode] = {}
        for info in scopes:
            if self.hide_inactive and not info.is_active:
                continue
            nodes[(info.level, info.id)] = HierarchyNode(
                id=info.id,
                level=info.level,
                name=info.name,
                code=info.code,
                has_override=(info.level, info.id) in with_override,
                is_active=info.is_active,
            )

        roots: List[HierarchyNode] = []
        dropped = 0
        for info in scopes:
            node = nodes.get((info.level, info.id))
            if node is None:
                continue
            if info.level is ScopeLevel.CUSTOMER:
                if customer_id is None or info.id == customer_id:
                    roots.append(node)
                continue
            parent = nodes.get((info.parent_level, info.parent_id))
            if parent is None:
                dropped += 1
                continue
            parent.children.append(node)

        if dropped:
            logger.debug(f"Dropped {dropped} hierarchy nodes without a parent in the fetched data")

        roots.sort(key=_sort_key)
        stack = list(roots)
        while stack:
            node = stack.pop()
            node.children.sort(key=_sort_key)
            stack.extend(node.children)
        return roots
