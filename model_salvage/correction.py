"""
Assisted correction - asks a model to re-emit malformed output as JSON.

The recovery engine never talks to a model directly. Callers inject a
CorrectionCallback; correction_from_adapter() builds one on top of any
host adapter that can stream completions.

Usage:
    callback = correction_from_adapter(adapter, model_id="qwen2.5-7b")
    response = await engine.recover(raw_text, correction=callback)
"""

import re
from typing import AsyncGenerator, Awaitable, Callable, Optional, Protocol

# (content, attempt_number) -> corrected content
CorrectionCallback = Callable[[str, int], Awaitable[str]]

CANONICAL_SCHEMA = """{
  "deliverables": {
    "analysis": "Primary analysis result",
    "recommendations": ["Actionable recommendation"],
    "documents": ["Documents created or referenced"]
  },
  "memory_operations": [
    {"operation": "create_entities", "data": {}}
  ],
  "metadata": {
    "task_completion_status": "complete | partial | failed",
    "confidence_level": "high | medium | low"
  }
}"""

CORRECTION_PROMPT_TEMPLATE = """Your previous response could not be parsed as JSON. Rewrite it so that it matches this exact schema:

{schema}

HARD CONSTRAINTS:
- Start your response with {{ and end it with }}
- No text, explanation or markdown code fences before or after the JSON
- No trailing commas
- Keep the content of your previous response; only fix the format

PREVIOUS RESPONSE:
{content}
"""

CORRECTION_SYSTEM_PROMPT = "You are a JSON formatter. Respond only with a single valid JSON object."


def build_correction_prompt(content: str) -> str:
    """Correction instruction embedding the schema and the failed content."""
    return CORRECTION_PROMPT_TEMPLATE.format(schema=CANONICAL_SCHEMA, content=content)


class CompletionAdapter(Protocol):
    """The slice of a host adapter that assisted correction needs."""

    def stream_completion(
        self,
        model_id: str,
        messages: list[dict],
        temperature: float,
        max_tokens: int,
        timeout_seconds: int,
        tools: Optional[list[dict]] = None
    ) -> AsyncGenerator[str, None]:
        ...


def correction_from_adapter(
    adapter: CompletionAdapter,
    model_id: str,
    temperature: float = 0.0,
    max_tokens: int = 2048,
    timeout_seconds: int = 15,
) -> CorrectionCallback:
    """
    Build a correction callback that asks model_id to reformat its output.

    Args:
        adapter: Anything exposing stream_completion()
        model_id: Model that should perform the correction
        temperature: 0.0 for deterministic reformatting
        max_tokens: Max tokens for the corrected response
        timeout_seconds: Transport timeout passed to the adapter

    Returns:
        async (content, attempt_number) -> corrected text
    """

    async def correct(content: str, attempt: int) -> str:
        messages = [
            {"role": "system", "content": CORRECTION_SYSTEM_PROMPT},
            {"role": "user", "content": content},
        ]
        result = ""
        async for chunk in adapter.stream_completion(
            model_id=model_id,
            messages=messages,
            temperature=temperature,
            max_tokens=max_tokens,
            timeout_seconds=timeout_seconds,
        ):
            result += chunk

        # Thinking models wrap their answer in <think>...</think>
        return re.sub(r"<think>.*?</think>\s*", "", result, flags=re.DOTALL).strip()

    return correct
