"""Scene summarization: queue, worker, prompts and failure handling."""

from scene_fold.summarization.classify import classify_failure, looks_like_refusal
from scene_fold.summarization.exceptions import (
    NonRetryableGenerationError,
    SummarizationCancelled,
    SummarizationError,
    TransientGenerationError,
)
from scene_fold.summarization.prompts import (
    DEFAULT_SUMMARY_PROMPT,
    SummaryPrompt,
    build_system_prompt,
)
from scene_fold.summarization.queue import QueueProgress, SummarizationQueue
from scene_fold.summarization.signals import CancelToken
from scene_fold.summarization.worker import (
    SUMMARY_MESSAGE_NAME,
    SceneSummarizer,
    Summarizer,
    SummaryResult,
)

__all__ = [
    # Queue
    "CancelToken",
    "QueueProgress",
    "SummarizationQueue",
    # Worker
    "SUMMARY_MESSAGE_NAME",
    "SceneSummarizer",
    "Summarizer",
    "SummaryResult",
    # Prompts
    "DEFAULT_SUMMARY_PROMPT",
    "SummaryPrompt",
    "build_system_prompt",
    # Failures
    "NonRetryableGenerationError",
    "SummarizationCancelled",
    "SummarizationError",
    "TransientGenerationError",
    "classify_failure",
    "looks_like_refusal",
]
