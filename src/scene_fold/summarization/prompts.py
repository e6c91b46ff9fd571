"""Prompts for scene summarization."""

from __future__ import annotations

from dataclasses import dataclass

DEFAULT_SUMMARY_PROMPT = " ".join(
    [
        "Summarize the following scene from a roleplay conversation.",
        "Preserve key plot points, character actions, emotional beats, and any important details.",
        "Write the summary in present tense, third person, as a concise narrative paragraph.",
        "Do not add commentary or analysis - only summarize what happened.",
    ]
)

GUIDANCE_HEADER = "\n\nAdditional guidance for this scene:\n"


@dataclass
class SummaryPrompt:
    """Instructions plus the transcript of one scene."""

    system: str
    text: str

    def to_messages(self) -> list[dict]:
        """Chat-completions message list for this prompt."""
        return [
            {"role": "system", "content": self.system},
            {"role": "user", "content": self.text},
        ]


def build_system_prompt(default_prompt: str, custom_guidance: str | None = None) -> str:
    """Default instructions, with per-scene guidance appended when present."""
    prompt = default_prompt or DEFAULT_SUMMARY_PROMPT
    if custom_guidance and custom_guidance.strip():
        prompt += GUIDANCE_HEADER + custom_guidance.strip()
    return prompt
