"""Services package for the org chart core."""

from .access import AccessPolicy, ActionKind, ResourceKind
from .bulk_executor import BatchResult, BulkBatchExecutor, RecordFailure
from .cache_backend import (
    CacheBackend,
    InMemoryCacheBackend,
    NullCacheBackend,
    RedisCacheBackend,
    create_cache_backend,
)
from .cache_coordinator import CacheCoordinator, cache_key, view_prefix
from .cache_invalidation import CacheInvalidationSubscriber, InvalidationPlan
from .change_events import ChangeEvent, ChangeEventBus, Operation
from .cycle_guard import CycleGuard, validate_parent
from .entity_service import HierarchyService, StagedChange
from .entity_validation import EntityValidator, normalize_params
from .hierarchy_store import EntityKind, HierarchyStore, get_kind_spec
from .hierarchy_views import HierarchyViews
from .level_invariant import validate_manager_level, validate_position_level
from .tree_index import TreeIndex

__all__ = [
    "AccessPolicy",
    "ActionKind",
    "ResourceKind",
    "BatchResult",
    "BulkBatchExecutor",
    "RecordFailure",
    "CacheBackend",
    "InMemoryCacheBackend",
    "NullCacheBackend",
    "RedisCacheBackend",
    "create_cache_backend",
    "CacheCoordinator",
    "cache_key",
    "view_prefix",
    "CacheInvalidationSubscriber",
    "InvalidationPlan",
    "ChangeEvent",
    "ChangeEventBus",
    "Operation",
    "CycleGuard",
    "validate_parent",
    "HierarchyService",
    "StagedChange",
    "EntityValidator",
    "normalize_params",
    "EntityKind",
    "HierarchyStore",
    "get_kind_spec",
    "HierarchyViews",
    "validate_manager_level",
    "validate_position_level",
    "TreeIndex",
]
