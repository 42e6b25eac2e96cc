"""
Tool call extractors for different model families.

Different model families emit tool calls in different formats:
- OpenAI-style text: `**Tool Call:** \`name\`` followed by a json block
- Qwen: `<tool_call>{"name": ..., "arguments": ...}</tool_call>`
- Llama/Hermes: `<tool_call>...</tool_call>` or `<function_call>...</function_call>`
- LiquidAI/LFM: `<|tool_call_start|>[function(args)]<|tool_call_end|>`

Each extractor is a strategy with the same contract:
- can_handle(model_id): pure substring check over the family markers
- extract_tool_calls(text): (invocations, block errors), never raises
- should_fallback_to_standard(): whether the caller should also consult
  the platform's native tool_calls channel when nothing was found

A malformed block fails on its own; the other blocks in the same
response are still returned.
"""

import ast
import json
import logging
import re
from typing import Any, Iterator, Optional

from model_salvage.arguments import ArgumentPayload, canonical_json
from model_salvage.config import EMPTY_ARGUMENTS
from model_salvage.schemas import ExtractionError, ToolInvocation

logger = logging.getLogger(__name__)

ExtractionResult = tuple[list[ToolInvocation], list[ExtractionError]]

NAME_PATTERN = re.compile(r'"name"\s*:\s*"([^"]+)"')
ARGUMENTS_PATTERN = re.compile(r'"arguments"\s*:\s*', re.DOTALL)

_decoder = json.JSONDecoder()


def synthetic_call_id(position: int) -> str:
    """Positional id, unique within one response."""
    return f"call_{position}"


class ToolCallExtractor:
    """
    Default extractor for OpenAI-style tool calls rendered as text.

    Detects tool calls formatted as:
    **Tool Call:** `function_name`
    ```json
    {args}
    ```

    Not tied to any model family: the registry hands it out when no
    family extractor claims the model.
    """

    name: str = "default"
    MODEL_PATTERNS: tuple[str, ...] = ()

    TEXT_PATTERN = re.compile(r"\*\*Tool Call:\*\*\s*`(\w+)`\s*```(?:json)?\s*(.*?)```", re.DOTALL)

    def can_handle(self, model_id: Optional[str]) -> bool:
        if not model_id:
            return False
        model_lower = model_id.lower()
        return any(pattern in model_lower for pattern in self.MODEL_PATTERNS)

    def should_fallback_to_standard(self) -> bool:
        return False

    def extract_tool_calls(self, text: str) -> ExtractionResult:
        if not text or "**Tool Call:**" not in text:
            return [], []

        calls = []
        for position, match in enumerate(self.TEXT_PATTERN.finditer(text), start=1):
            raw_args = match.group(2).strip()
            try:
                arguments = ArgumentPayload.from_value(json.loads(raw_args)).encode() if raw_args else EMPTY_ARGUMENTS
            except (ValueError, RecursionError):
                arguments = raw_args
            calls.append(ToolInvocation(
                id=synthetic_call_id(position),
                name=match.group(1),
                arguments=arguments,
            ))
        return calls, []

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r})"


class JsonBlockExtractor(ToolCallExtractor):
    """
    Shared core for families that wrap a JSON object in delimiter tags.

    Subclasses set BLOCK_PATTERNS (first group = block body) and may widen
    NAME_KEYS / ARGUMENT_KEYS for families that use aliases.
    """

    BLOCK_PATTERNS: tuple[re.Pattern, ...] = ()
    NAME_KEYS: tuple[str, ...] = ("name",)
    ARGUMENT_KEYS: tuple[str, ...] = ("arguments",)

    def should_fallback_to_standard(self) -> bool:
        return True

    def iter_blocks(self, text: str) -> Iterator[str]:
        """Yield block bodies in the order they appear in the text."""
        matches = []
        for pattern in self.BLOCK_PATTERNS:
            matches.extend(pattern.finditer(text))
        for match in sorted(matches, key=lambda m: m.start()):
            yield match.group(1).strip()

    def extract_tool_calls(self, text: str) -> ExtractionResult:
        if not text:
            return [], []

        calls: list[ToolInvocation] = []
        errors: list[ExtractionError] = []
        for position, block in enumerate(self.iter_blocks(text), start=1):
            try:
                calls.append(self.parse_block(position, block))
            except ExtractionError as e:
                logger.warning(f"[{self.name}] {e}")
                errors.append(e)

        if calls:
            logger.debug(f"[{self.name}] Parsed {len(calls)} tool call(s)")
        return calls, errors

    def parse_block(self, position: int, block: str) -> ToolInvocation:
        try:
            data = json.loads(block)
        except (ValueError, RecursionError) as e:
            logger.debug(f"[{self.name}] block {position} is not valid JSON ({type(e).__name__}), extracting manually")
            data = None
        if not isinstance(data, dict):
            data = self.extract_fields_manually(position, block)

        name = self._first_present(data, self.NAME_KEYS)
        if not isinstance(name, str) or not name:
            raise ExtractionError(position, "missing or invalid 'name' field")

        payload = ArgumentPayload.from_value(self._first_present(data, self.ARGUMENT_KEYS))
        return ToolInvocation(id=synthetic_call_id(position), name=name, arguments=payload.encode())

    @staticmethod
    def _first_present(data: dict, keys: tuple[str, ...]) -> Any:
        for key in keys:
            if data.get(key) is not None:
                return data[key]
        return None

    def extract_fields_manually(self, position: int, block: str) -> dict:
        """
        Pull name/arguments out of a block that is not valid JSON.

        Raises ExtractionError when no "name": "<value>" pair is present.
        """
        name_match = NAME_PATTERN.search(block)
        if not name_match:
            raise ExtractionError(position, f"could not extract function name from: {block[:100]}")

        data: dict[str, Any] = {"name": name_match.group(1)}
        args_match = ARGUMENTS_PATTERN.search(block)
        if args_match:
            data["arguments"] = self._recover_arguments(block[args_match.end():])
        return data

    @staticmethod
    def _recover_arguments(tail: str) -> Any:
        try:
            value, _ = _decoder.raw_decode(tail)
            return value
        except (ValueError, RecursionError):
            pass

        tail = tail.strip()
        # Drop the closing brace of the enclosing object
        if tail.endswith("}"):
            tail = tail[:-1].rstrip()
        tail = tail.rstrip(",").strip()
        try:
            return json.loads(tail)
        except (ValueError, RecursionError):
            return tail


class QwenExtractor(JsonBlockExtractor):
    """
    Extractor for Qwen models (Qwen2, Qwen2.5, Qwen3, QwQ).

    Detects tool calls formatted as:
    <tool_call>{"name": "function", "arguments": {...}}</tool_call>
    """

    name = "qwen"
    MODEL_PATTERNS = ("qwen", "qwen2", "qwen3", "qwen-", "qwq")
    BLOCK_PATTERNS = (re.compile(r"<tool_call>\s*(.*?)\s*</tool_call>", re.DOTALL),)


class HermesExtractor(JsonBlockExtractor):
    """
    Extractor for Llama/Hermes models.

    Detects tool calls formatted as:
    <tool_call>{"name": "function", "arguments": {...}}</tool_call>
    or
    <function_call>{"function": "name", "parameters": {...}}</function_call>
    """

    name = "hermes"
    MODEL_PATTERNS = ("hermes",)
    BLOCK_PATTERNS = (
        re.compile(r"<tool_call>\s*(.*?)\s*</tool_call>", re.DOTALL),
        re.compile(r"<function_call>\s*(.*?)\s*</function_call>", re.DOTALL),
    )
    NAME_KEYS = ("name", "function")
    ARGUMENT_KEYS = ("arguments", "parameters")


class LiquidAIExtractor(ToolCallExtractor):
    """
    Extractor for LiquidAI/LFM models.

    Detects tool calls formatted as:
    <|tool_call_start|>[function_name(arg1="value", arg2=123)]<|tool_call_end|>

    One block may hold several calls: [a(x=1), b(y=2)].
    """

    name = "liquid"
    MODEL_PATTERNS = ("lfm", "liquid")
    BLOCK_PATTERN = re.compile(r"<\|tool_call_start\|>\s*\[(.*?)\]\s*<\|tool_call_end\|>", re.DOTALL)
    CALL_PATTERN = re.compile(r"\b(\w+)\((.*?)\)", re.DOTALL)

    def should_fallback_to_standard(self) -> bool:
        return True

    def extract_tool_calls(self, text: str) -> ExtractionResult:
        if not text:
            return [], []

        calls: list[ToolInvocation] = []
        errors: list[ExtractionError] = []
        position = 0
        for block_index, match in enumerate(self.BLOCK_PATTERN.finditer(text), start=1):
            parsed = self._parse_pythonic(match.group(1))
            if not parsed:
                error = ExtractionError(block_index, "no function call found in block")
                logger.warning(f"[{self.name}] {error}")
                errors.append(error)
                continue
            for name, arguments in parsed:
                position += 1
                calls.append(ToolInvocation(id=synthetic_call_id(position), name=name, arguments=arguments))
        return calls, errors

    def _parse_pythonic(self, body: str) -> list[tuple[str, str]]:
        """
        Parse `fn(a="x"), other(b=2)` into (name, canonical arguments) pairs.

        Arguments become a JSON object when every value is a literal;
        otherwise the raw argument text is kept as an opaque string.
        """
        try:
            tree = ast.parse(f"[{body}]", mode="eval")
        except (SyntaxError, ValueError, RecursionError, MemoryError):
            # Nothing after the last ")" can close a call
            body = body[:body.rfind(")") + 1]
            return [(m.group(1), m.group(2).strip()) for m in self.CALL_PATTERN.finditer(body)]

        results = []
        for node in getattr(tree.body, "elts", []):
            if not isinstance(node, ast.Call):
                continue
            func = node.func
            name = func.id if isinstance(func, ast.Name) else getattr(func, "attr", None)
            if not name:
                continue
            try:
                if node.args:
                    raise ValueError("positional arguments")
                arguments = {kw.arg: ast.literal_eval(kw.value) for kw in node.keywords if kw.arg}
                encoded = canonical_json(arguments)
            except (ValueError, TypeError, SyntaxError, RecursionError):
                segment = ast.get_source_segment(f"[{body}]", node) or ""
                encoded = segment[segment.find("(") + 1:-1].strip()
            results.append((name, encoded))
        return results
