"""Optimistic sync package."""

from lifesync.sync.engine import (
    ChangeSet,
    LocalState,
    OptimisticSyncEngine,
    Reducer,
)

__all__ = ["ChangeSet", "LocalState", "OptimisticSyncEngine", "Reducer"]
