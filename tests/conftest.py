"""Shared test fixtures for model-salvage tests."""

import asyncio
import json

import pytest


# ─────────────────────────────────────────────────────────────────────
# MOCK DATA
# ─────────────────────────────────────────────────────────────────────

MOCK_QWEN_MODEL = "qwen2.5-coder-7b-instruct"
MOCK_HERMES_MODEL = "nous-hermes-2-pro"
MOCK_LFM_MODEL = "lfm2-1.2b-tool"
MOCK_OTHER_MODEL = "gpt-4o"

CANONICAL_RESPONSE = {
    "deliverables": {
        "analysis": "The auth module validates tokens twice.",
        "recommendations": ["Cache the decoded token", "Drop the second check"],
        "documents": ["auth.py"],
    },
    "memory_operations": [
        {"operation": "create_entities", "data": {"entities": [{"name": "AuthModule"}]}},
    ],
    "metadata": {
        "subagent": "security_engineer",
        "task_completion_status": "complete",
        "confidence_level": "high",
    },
}

PROSE_RESPONSE = (
    "I looked at the code and found a few problems.\n"
    "- fix the race in the watcher\n"
    "* add a regression test\n"
    "1. document the config flag\n"
    "That's all for now."
)


# ─────────────────────────────────────────────────────────────────────
# FIXTURES - Data
# ─────────────────────────────────────────────────────────────────────

@pytest.fixture
def canonical_text():
    """Canonical response serialized as a JSON string."""
    return json.dumps(CANONICAL_RESPONSE)


@pytest.fixture
def canonical_dict():
    """Fresh copy of the canonical response dict."""
    return json.loads(json.dumps(CANONICAL_RESPONSE))


# ─────────────────────────────────────────────────────────────────────
# FIXTURES - Correction callbacks
# ─────────────────────────────────────────────────────────────────────

class RecordingCorrection:
    """Deterministic correction callback that records its calls."""

    def __init__(self, outputs=None, delay: float = 0.0, error: Exception = None):
        self.outputs = list(outputs or [])
        self.delay = delay
        self.error = error
        self.calls: list[tuple[str, int]] = []

    async def __call__(self, content: str, attempt: int) -> str:
        self.calls.append((content, attempt))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        if self.outputs:
            return self.outputs.pop(0)
        return "still not json"


@pytest.fixture
def make_correction():
    """Factory for RecordingCorrection stubs."""
    return RecordingCorrection
