"""Scene records, their store, lifecycle and reconciliation."""

from scene_fold.scenes.exceptions import (
    InvalidRangeError,
    SceneError,
    SceneNotFoundError,
    SceneOverlapError,
    SceneValidationError,
)
from scene_fold.scenes.lifecycle import (
    INTERRUPTED_CAUSE,
    TRANSITIONS,
    SceneLifecycle,
    can_transition,
)
from scene_fold.scenes.models import SCENE_STATUSES, Scene, SceneStatus
from scene_fold.scenes.reconcile import (
    DeletionResult,
    check_consistency,
    reconcile_deletions,
    reconcile_duplicates,
)
from scene_fold.scenes.store import SceneStore

__all__ = [
    # Models
    "SCENE_STATUSES",
    "Scene",
    "SceneStatus",
    # Store
    "SceneStore",
    # Lifecycle
    "INTERRUPTED_CAUSE",
    "TRANSITIONS",
    "SceneLifecycle",
    "can_transition",
    # Reconciliation
    "DeletionResult",
    "check_consistency",
    "reconcile_deletions",
    "reconcile_duplicates",
    # Exceptions
    "InvalidRangeError",
    "SceneError",
    "SceneNotFoundError",
    "SceneOverlapError",
    "SceneValidationError",
]
