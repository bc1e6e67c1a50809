"""
CCM Instruction Hierarchy Package

Stores customer care manual (CCM) instructions declared at customer, master
lease, rider and amendment scope, and resolves the effective instruction for
any point of the lease hierarchy or any placed car.

Provides:
- SQLAlchemy ORM models
- Session provider with Unit of Work pattern
- Repository for instructions and commodity sections
- Hierarchy tree, parent preview and inheritance merge
"""

from ccm.models import (
    Base,
    ScopeLevel,
    CCM_FIELDS,
    SEALING_FIELDS,
    LINING_FIELDS,
    Customer,
    MasterLease,
    LeaseRider,
    LeaseAmendment,
    RiderCar,
    CCMInstruction,
    CCMInstructionSealing,
    CCMInstructionLining,
)

from ccm.errors import (
    RepositoryError,
    NotFoundError,
    ScopeNotFoundError,
    InstructionNotFoundError,
    CarNotPlacedError,
    InvalidScopeTypeError,
    DuplicateInstructionError,
    DuplicateSectionError,
)

from ccm.connection import (
    DatabaseSettings,
    DatabaseSessionProvider,
    UnitOfWork,
    get_db_provider,
    init_db,
    close_db,
    create_test_provider,
)

from ccm.hierarchy import (
    HierarchyDirectory,
    SqlHierarchyDirectory,
    HierarchyPath,
    ScopeInfo,
    ScopeRef,
)

from ccm.repositories import CCMInstructionRepository

from ccm.tree import HierarchyNode, HierarchyTreeBuilder

from ccm.resolution import (
    EffectiveCCM,
    InheritanceChainItem,
    SectionSource,
    ParentPreviewResolver,
    InheritanceResolver,
)

from ccm.service import CCMInstructionService

__all__ = [
    # Models
    'Base',
    'ScopeLevel',
    'CCM_FIELDS',
    'SEALING_FIELDS',
    'LINING_FIELDS',
    'Customer',
    'MasterLease',
    'LeaseRider',
    'LeaseAmendment',
    'RiderCar',
    'CCMInstruction',
    'CCMInstructionSealing',
    'CCMInstructionLining',
    # Errors
    'RepositoryError',
    'NotFoundError',
    'ScopeNotFoundError',
    'InstructionNotFoundError',
    'CarNotPlacedError',
    'InvalidScopeTypeError',
    'DuplicateInstructionError',
    'DuplicateSectionError',
    # Connection
    'DatabaseSettings',
    'DatabaseSessionProvider',
    'UnitOfWork',
    'get_db_provider',
    'init_db',
    'close_db',
    'create_test_provider',
    # Hierarchy
    'HierarchyDirectory',
    'SqlHierarchyDirectory',
    'HierarchyPath',
    'ScopeInfo',
    'ScopeRef',
    # Store, tree and resolution
    'CCMInstructionRepository',
    'HierarchyNode',
    'HierarchyTreeBuilder',
    'EffectiveCCM',
    'InheritanceChainItem',
    'SectionSource',
    'ParentPreviewResolver',
    'InheritanceResolver',
    'CCMInstructionService',
]

__version__ = '1.0.0'
