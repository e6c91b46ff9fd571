"""Shared pytest fixtures for scene-fold tests."""

from __future__ import annotations

import asyncio
import itertools
import tempfile
from pathlib import Path

import pytest

from scene_fold.chat.models import ChatMessage
from scene_fold.persistence import CallbackPersistence
from scene_fold.scenes.lifecycle import SceneLifecycle
from scene_fold.scenes.store import SceneStore
from scene_fold.summarization.exceptions import SummarizationCancelled


class CountingIds:
    """Deterministic id factory: id-1, id-2, ..."""

    def __init__(self, prefix: str = "id") -> None:
        self.prefix = prefix
        self._counter = itertools.count(1)

    def __call__(self) -> str:
        return f"{self.prefix}-{next(self._counter)}"


class FakeSummarizer:
    """Async summarizer returning scripted results.

    Each item in ``results`` is either a string to return or an exception
    to raise. When exhausted, ``default`` is returned. If ``gate`` is set
    the call waits on it (or on the cancel token) before answering.
    """

    def __init__(self, results=None, default: str = "A summary.", gate: asyncio.Event | None = None):
        self.results = list(results or [])
        self.default = default
        self.gate = gate
        self.prompts = []
        self.started = asyncio.Event()

    async def summarize(self, prompt, token):
        self.prompts.append(prompt)
        self.started.set()
        if self.gate is not None:
            gate_wait = asyncio.ensure_future(self.gate.wait())
            token_wait = asyncio.ensure_future(token.wait())
            done, pending = await asyncio.wait(
                {gate_wait, token_wait}, return_when=asyncio.FIRST_COMPLETED
            )
            for task in pending:
                task.cancel()
            if token.cancelled:
                raise SummarizationCancelled(token.scene_id)
        token.raise_if_cancelled()
        result = self.results.pop(0) if self.results else self.default
        if isinstance(result, BaseException):
            raise result
        return result

    @property
    def calls(self) -> int:
        return len(self.prompts)


class RecordingPersistence(CallbackPersistence):
    """Counts persistence calls."""

    def __init__(self) -> None:
        self.sequence_saves = 0
        self.scene_saves = 0
        super().__init__(self._count_sequence, self._count_scenes)

    def _count_sequence(self) -> None:
        self.sequence_saves += 1

    def _count_scenes(self) -> None:
        self.scene_saves += 1


def make_chat(count: int) -> list[ChatMessage]:
    """Chat of ``count`` alternating user/character messages without ids."""
    return [
        ChatMessage(
            text=f"message {i}",
            name="Alice" if i % 2 == 0 else "Bob",
            is_user=i % 2 == 0,
        )
        for i in range(count)
    ]


@pytest.fixture
def ids() -> CountingIds:
    return CountingIds()


@pytest.fixture
def chat() -> list[ChatMessage]:
    """Ten messages, positions 0-9."""
    return make_chat(10)


@pytest.fixture
def store(ids: CountingIds) -> SceneStore:
    return SceneStore(id_factory=ids)


@pytest.fixture
def lifecycle(store: SceneStore) -> SceneLifecycle:
    return SceneLifecycle(store)


@pytest.fixture
def persistence() -> RecordingPersistence:
    return RecordingPersistence()


@pytest.fixture
def temp_db_path() -> Path:
    """Create a temporary database file path.

    Returns:
        Path to a temporary .db file (file created but empty).
    """
    with tempfile.NamedTemporaryFile(suffix=".db", delete=False) as f:
        return Path(f.name)
