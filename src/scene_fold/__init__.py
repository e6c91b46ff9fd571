"""Fold contiguous chat messages into summarized scenes."""

from scene_fold.chat import ChatMessage, NOT_FOUND, build_index, resolve
from scene_fold.config import SceneFoldConfig
from scene_fold.persistence import CallbackPersistence, NullPersistence, Persistence
from scene_fold.render import SceneFoldView, render
from scene_fold.scenes import Scene, SceneLifecycle, SceneStore
from scene_fold.session import SceneFoldSession, SelectionState

__version__ = "0.1.0"

__all__ = [
    "CallbackPersistence",
    "ChatMessage",
    "NOT_FOUND",
    "NullPersistence",
    "Persistence",
    "Scene",
    "SceneFoldConfig",
    "SceneFoldSession",
    "SceneFoldView",
    "SceneLifecycle",
    "SceneStore",
    "SelectionState",
    "build_index",
    "render",
    "resolve",
]
