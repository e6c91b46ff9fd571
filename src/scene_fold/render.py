"""Derive display state from the scene store.

Nothing here mutates the chat or the store; the view can be rebuilt at any
time and is never a second source of truth.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Sequence

from scene_fold.chat.identity import NOT_FOUND, build_index, resolve

if TYPE_CHECKING:
    from scene_fold.chat.models import ChatMessage
    from scene_fold.scenes.models import Scene
    from scene_fold.scenes.store import SceneStore
    from scene_fold.session import SelectionState
    from scene_fold.summarization.queue import SummarizationQueue

# Actions offered per status, in display order
STATUS_ACTIONS: dict[str, tuple[str, ...]] = {
    "defined": ("edit_guidance", "summarize", "delete"),
    "queued": ("edit_guidance", "cancel", "delete"),
    "summarizing": ("edit_guidance", "cancel", "delete"),
    "completed": ("toggle_fold", "edit_guidance", "undo", "retry", "delete"),
    "error": ("edit_guidance", "summarize", "retry", "delete"),
}


@dataclass
class SceneView:
    scene_id: str
    status: str
    status_text: str
    first_position: int
    last_position: int
    source_count: int
    summary_position: int
    visible_count: int  # Sources still included in prompts
    folded: bool
    stale: bool
    custom_guidance: str | None
    actions: tuple[str, ...]

    @property
    def range_text(self) -> str:
        if self.first_position >= 0 and self.last_position >= 0:
            return f"Messages {self.first_position}-{self.last_position} ({self.source_count})"
        return f"{self.source_count} messages"


@dataclass
class ToolbarView:
    visible: bool
    processing: bool
    counts: dict[str, int]
    info_text: str
    progress_text: str = ""
    percent: int = 0


@dataclass
class SceneFoldView:
    scenes: list[SceneView] = field(default_factory=list)
    toolbar: ToolbarView | None = None
    selection: tuple[int, int] | None = None
    message_badges: dict[int, str] = field(default_factory=dict)


def _plural(count: int, word: str) -> str:
    return f"{count} {word}{'' if count == 1 else 's'}"


def _status_text(scene: Scene) -> str:
    count = scene.source_count
    if scene.status == "defined":
        return f"Scene: {_plural(count, 'message')}"
    if scene.status == "queued":
        return "Queued..."
    if scene.status == "summarizing":
        return "Summarizing..."
    if scene.status == "completed":
        text = f"{_plural(count, 'message')} {'folded' if scene.folded else 'expanded'}"
        return text + " (stale)" if scene.stale else text
    return f"Error: {scene.last_error or 'unknown'}"


def render_scene(
    scene: Scene,
    sequence: Sequence[ChatMessage],
    index: dict[str, int] | None = None,
) -> SceneView:
    if index is None:
        index = build_index(sequence)
    positions = [resolve(sequence, message_id, index) for message_id in scene.source_ids]
    live = [position for position in positions if position != NOT_FOUND]
    summary_position = NOT_FOUND
    if scene.summary_id and scene.status == "completed":
        summary_position = resolve(sequence, scene.summary_id, index)

    return SceneView(
        scene_id=scene.id,
        status=scene.status,
        status_text=_status_text(scene),
        first_position=positions[0] if positions else NOT_FOUND,
        last_position=positions[-1] if positions else NOT_FOUND,
        source_count=scene.source_count,
        summary_position=summary_position,
        visible_count=sum(1 for position in live if not sequence[position].hidden),
        folded=scene.folded and scene.status == "completed",
        stale=scene.stale,
        custom_guidance=scene.custom_guidance,
        actions=STATUS_ACTIONS.get(scene.status, ("delete",)),
    )


def render_toolbar(
    scenes: Sequence[Scene],
    sequence: Sequence[ChatMessage],
    queue: SummarizationQueue | None = None,
) -> ToolbarView:
    counts = {"defined": 0, "queued": 0, "summarizing": 0, "completed": 0, "error": 0}
    for scene in scenes:
        counts[scene.status] = counts.get(scene.status, 0) + 1

    processing = bool(queue and queue.is_processing)
    pending_total = counts["defined"] + counts["error"] + counts["queued"]
    visible = bool(sequence) and (pending_total > 0 or processing)
    info_text = f"{_plural(pending_total, 'scene')} awaiting summary"

    if not processing:
        return ToolbarView(visible=visible, processing=False, counts=counts, info_text=info_text)

    progress = queue.progress
    return ToolbarView(
        visible=visible,
        processing=True,
        counts=counts,
        info_text=info_text,
        progress_text=(
            f"Summarizing {progress.current} of {progress.total} "
            f"({progress.remaining} remaining)"
        ),
        percent=progress.percent,
    )


def render(
    store: SceneStore,
    sequence: Sequence[ChatMessage],
    queue: SummarizationQueue | None = None,
    selection: SelectionState | None = None,
) -> SceneFoldView:
    """Build the full view-model for the current chat."""
    index = build_index(sequence)
    scenes = store.list_ordered(sequence)
    views = [render_scene(scene, sequence, index) for scene in scenes]

    badges: dict[int, str] = {}
    for view in views:
        if view.first_position >= 0 and view.status != "completed":
            badges[view.first_position] = view.status_text
        if view.summary_position >= 0:
            badges[view.summary_position] = view.status_text

    selected = None
    if selection is not None and selection.active and selection.range is not None:
        selected = selection.range

    return SceneFoldView(
        scenes=views,
        toolbar=render_toolbar(scenes, sequence, queue),
        selection=selected,
        message_badges=badges,
    )
