"""Runtime configuration for scene folding."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from scene_fold.summarization.prompts import DEFAULT_SUMMARY_PROMPT


@dataclass
class SceneFoldConfig:
    enabled: bool = True
    smart_auto_start: bool = True
    default_prompt: str = DEFAULT_SUMMARY_PROMPT
    max_retries: int = 2
    user_name: str = "User"
    character_name: str = "Character"
    agent_url: str = "http://localhost:8080"
    api_key: Optional[str] = None
    model: Optional[str] = None
    temperature: float = 0.3
    max_tokens: int = 512
    timeout: int = 120
    settle_delay: float = 0.1
    db_path: Path = Path("data/scene_fold.db")
