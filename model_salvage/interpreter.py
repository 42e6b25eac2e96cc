"""
Interpreter - single entry point from raw completion to a usable result.

Flow for one completion:
1. Registry picks the extractor for model_id
2. Extractor scans the text for that family's tool-call syntax
3. Nothing found and the extractor allows it → try the native tool_calls
   the platform already returned
4. Still nothing (or a deliverable was expected) → RecoveryEngine

The result carries exactly one of tool_calls / response.
"""

import asyncio
import json
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

from model_salvage.arguments import ArgumentPayload
from model_salvage.correction import CorrectionCallback
from model_salvage.recovery import RecoveryEngine
from model_salvage.registry import DEFAULT_REGISTRY, ExtractorRegistry
from model_salvage.schemas import ExtractionError, StructuredResponse, ToolInvocation
from model_salvage.tool_parsers import ToolCallExtractor, synthetic_call_id

logger = logging.getLogger(__name__)


class ResultSource(str, Enum):
    EXTRACTED = "extracted"    # family syntax found in the text
    NATIVE = "native"          # platform tool_calls channel
    RECOVERED = "recovered"    # recovery engine deliverable


@dataclass
class Interpretation:
    """Outcome of interpreting one completion."""
    source: ResultSource
    extractor: str
    tool_calls: Optional[list[ToolInvocation]] = None
    response: Optional[StructuredResponse] = None
    extraction_errors: list[ExtractionError] = field(default_factory=list)

    @property
    def is_tool_call(self) -> bool:
        return self.tool_calls is not None

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"source": self.source.value, "extractor": self.extractor}
        if self.tool_calls is not None:
            result["tool_calls"] = [call.to_openai_format() for call in self.tool_calls]
        else:
            result["response"] = self.response.to_dict()
        if self.extraction_errors:
            result["extraction_errors"] = [str(e) for e in self.extraction_errors]
        return result


def parse_native_tool_calls(tool_calls_data: Optional[list[dict]]) -> list[ToolInvocation]:
    """
    Normalize tool calls the API returned in its own tool_calls field.

    Accepts OpenAI shape: [{"id": "...", "function": {"name": "...", "arguments": ...}}].
    Entries without a function name are skipped; missing ids get positional ones.
    """
    results = []
    for position, tc in enumerate(tool_calls_data or [], start=1):
        if not isinstance(tc, dict):
            continue
        func = tc.get("function")
        if not isinstance(func, dict) or not func.get("name"):
            continue

        raw_args = func.get("arguments")
        if isinstance(raw_args, str):
            if not raw_args.strip():
                raw_args = None
            else:
                try:
                    raw_args = json.loads(raw_args)
                except (ValueError, RecursionError):
                    pass

        results.append(ToolInvocation(
            id=tc.get("id") or synthetic_call_id(position),
            name=func["name"],
            arguments=ArgumentPayload.from_value(raw_args).encode(),
        ))
    return results


class Interpreter:
    """
    Wires the extractor registry and the recovery engine together.

    Construction-time dependencies only; safe to share across requests.

    Args:
        registry: Extractor registry (defaults to the built-in families)
        engine: Recovery engine for deliverable responses
        default_model: Model label used when a call passes no model_id
    """

    def __init__(
        self,
        registry: Optional[ExtractorRegistry] = None,
        engine: Optional[RecoveryEngine] = None,
        default_model: Optional[str] = None,
    ):
        self.registry = registry or DEFAULT_REGISTRY
        self.engine = engine or RecoveryEngine()
        self.default_model = default_model

    def extract_tool_calls(
        self,
        text: str,
        model_id: Optional[str] = None,
        native_tool_calls: Optional[list[dict]] = None,
    ) -> Optional[Interpretation]:
        """Tool-call path only. Returns None when no tool call was found."""
        found, _, _ = self._extract(text, model_id or self.default_model, native_tool_calls)
        return found

    def _extract(
        self,
        text: str,
        model_id: Optional[str],
        native_tool_calls: Optional[list[dict]],
    ) -> tuple[Optional[Interpretation], list[ExtractionError], ToolCallExtractor]:
        extractor = self.registry.select(model_id)
        calls, errors = extractor.extract_tool_calls(text or "")
        if calls:
            found = Interpretation(
                ResultSource.EXTRACTED, extractor.name, tool_calls=calls, extraction_errors=errors
            )
            return found, errors, extractor

        use_native = extractor.should_fallback_to_standard() or extractor is self.registry.default
        if native_tool_calls and use_native:
            native = parse_native_tool_calls(native_tool_calls)
            if native:
                logger.debug(f"[{extractor.name}] no tool calls in text, using {len(native)} native call(s)")
                found = Interpretation(
                    ResultSource.NATIVE, extractor.name, tool_calls=native, extraction_errors=errors
                )
                return found, errors, extractor

        if errors:
            logger.warning(f"[{extractor.name}] {len(errors)} tool call block(s) failed to parse")
        return None, errors, extractor

    async def interpret(
        self,
        text: str,
        model_id: Optional[str] = None,
        *,
        expect_deliverable: bool = False,
        native_tool_calls: Optional[list[dict]] = None,
        correction: Optional[CorrectionCallback] = None,
        cancel_event: Optional[asyncio.Event] = None,
        deadline: Optional[float] = None,
    ) -> Interpretation:
        """
        Interpret one completion.

        Args:
            text: Raw completion text
            model_id: Model that produced it (falls back to default_model)
            expect_deliverable: Skip tool-call extraction entirely
            native_tool_calls: tool_calls field from the API response, if any
            correction: Assisted-correction callback for the recovery engine
            cancel_event: Abandon assisted correction when set
            deadline: Loop-time deadline for assisted correction

        Returns:
            Interpretation with either tool_calls or response set
        """
        model_id = model_id or self.default_model
        errors: list[ExtractionError] = []
        if not expect_deliverable:
            found, errors, _ = self._extract(text, model_id, native_tool_calls)
            if found is not None:
                return found

        response = await self.engine.recover(
            text or "", correction, cancel_event=cancel_event, deadline=deadline
        )
        return Interpretation(
            ResultSource.RECOVERED,
            self.registry.select(model_id).name,
            response=response,
            extraction_errors=errors,
        )

    def interpret_sync(
        self,
        text: str,
        model_id: Optional[str] = None,
        *,
        expect_deliverable: bool = False,
        native_tool_calls: Optional[list[dict]] = None,
    ) -> Interpretation:
        """interpret() without assisted correction, for synchronous callers."""
        model_id = model_id or self.default_model
        errors: list[ExtractionError] = []
        if not expect_deliverable:
            found, errors, _ = self._extract(text, model_id, native_tool_calls)
            if found is not None:
                return found

        return Interpretation(
            ResultSource.RECOVERED,
            self.registry.select(model_id).name,
            response=self.engine.recover_sync(text or ""),
            extraction_errors=errors,
        )
