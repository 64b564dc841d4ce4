"""
Progress Engine Service Module

This module tracks learner progress through the level/hack curriculum.

Services:
    - graph_model: Curriculum graph loading and validation
    - records: Progress records shared by every store
    - unlock_calculator: Lock/completion evaluation of levels and hacks
    - progress_computer: Progression view and next hack suggestion
    - local_store: Redis-backed progress for anonymous visitors
    - bounded_store: Capped Redis record store with LRU-by-play eviction
    - routine_progress: Anonymous routine player progress
    - server_store: Authoritative per-account progress in the database
    - migration: Local-to-server merge on sign-in
"""

from hackpath.services.progress_engine.graph_model import (
    GraphModel,
    Hack,
    HackCheck,
    Level,
    build_graph,
    graph_from_dict,
    load_curriculum_file,
    load_graph,
)
from hackpath.services.progress_engine.records import (
    HackCheckProgress,
    HackProgress,
    HackProgressPatch,
    LevelProgress,
    ProgressSnapshot,
)
from hackpath.services.progress_engine.unlock_calculator import (
    HackNode,
    LevelNode,
    evaluate,
    flatten_hack_nodes,
    find_hack_node,
    find_level_node,
    tree_to_dict,
)
from hackpath.services.progress_engine.progress_computer import (
    compute_progress,
    find_next_hack,
)
from hackpath.services.progress_engine.local_store import (
    LocalProgressStore,
    VersionedContainer,
)
from hackpath.services.progress_engine.bounded_store import (
    BoundedRecordStore,
)
from hackpath.services.progress_engine.routine_progress import (
    LocalRoutineProgressStore,
    RoutineProgress,
)
from hackpath.services.progress_engine.server_store import (
    ServerProgressStore,
)
from hackpath.services.progress_engine.migration import (
    MigrationEngine,
    MigrationResult,
    MigrationState,
    merge_hack_progress,
)

__all__ = [
    "GraphModel",
    "Hack",
    "HackCheck",
    "Level",
    "build_graph",
    "graph_from_dict",
    "load_curriculum_file",
    "load_graph",
    "HackCheckProgress",
    "HackProgress",
    "HackProgressPatch",
    "LevelProgress",
    "ProgressSnapshot",
    "HackNode",
    "LevelNode",
    "evaluate",
    "flatten_hack_nodes",
    "find_hack_node",
    "find_level_node",
    "tree_to_dict",
    "compute_progress",
    "find_next_hack",
    "LocalProgressStore",
    "VersionedContainer",
    "BoundedRecordStore",
    "LocalRoutineProgressStore",
    "RoutineProgress",
    "ServerProgressStore",
    "MigrationEngine",
    "MigrationResult",
    "MigrationState",
    "merge_hack_progress",
]
