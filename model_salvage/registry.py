"""
Extractor Registry - selects the tool-call extractor for a model identifier.

Extractors are registered in priority order; the first one whose
can_handle() claims the model wins. Unknown models get the default
OpenAI-style extractor.

Usage:
    # At startup
    registry = ExtractorRegistry()
    registry.register(QwenExtractor())

    # Per response
    extractor = registry.select("qwen2.5-coder-32b")
    calls, errors = extractor.extract_tool_calls(text)

The module-level default registry is built once at import and is only
read afterwards, so selection is safe to call from any number of
concurrent requests.
"""

import logging
from typing import Iterable, Optional

from model_salvage.schemas import RegistryConfigurationError, ToolInvocation
from model_salvage.tool_parsers import (
    HermesExtractor,
    LiquidAIExtractor,
    QwenExtractor,
    ToolCallExtractor,
)

logger = logging.getLogger(__name__)


class ExtractorRegistry:
    """Ordered list of family extractors with a default fallback."""

    def __init__(
        self,
        extractors: Iterable[ToolCallExtractor] = (),
        default: Optional[ToolCallExtractor] = None,
    ):
        self._extractors: list[ToolCallExtractor] = []
        self.default = default or ToolCallExtractor()
        for extractor in extractors:
            self.register(extractor)

    def register(self, extractor: ToolCallExtractor) -> None:
        """
        Add an extractor at the lowest priority.

        Duplicates are not detected. The capability predicate is checked
        here so a broken extractor fails at startup, not per request.

        Raises:
            RegistryConfigurationError: If can_handle is missing or the
                family patterns are not a non-empty collection of strings
        """
        _validate_extractor(extractor)
        self._extractors.append(extractor)
        logger.debug(f"Registered extractor {extractor!r}")

    def select(self, model_id: Optional[str]) -> ToolCallExtractor:
        """Return the first extractor that handles model_id, else the default."""
        for extractor in self._extractors:
            if extractor.can_handle(model_id):
                return extractor
        return self.default

    @property
    def extractors(self) -> list[ToolCallExtractor]:
        return list(self._extractors)


def _validate_extractor(extractor: ToolCallExtractor) -> None:
    if not callable(getattr(extractor, "can_handle", None)):
        raise RegistryConfigurationError(f"{extractor!r} has no callable can_handle()")
    if not callable(getattr(extractor, "extract_tool_calls", None)):
        raise RegistryConfigurationError(f"{extractor!r} has no callable extract_tool_calls()")

    patterns = getattr(extractor, "MODEL_PATTERNS", None)
    if isinstance(patterns, str) or not patterns:
        raise RegistryConfigurationError(
            f"{extractor!r} must declare MODEL_PATTERNS as a non-empty tuple of strings"
        )
    for pattern in patterns:
        if not isinstance(pattern, str) or not pattern.strip():
            raise RegistryConfigurationError(f"{extractor!r} has invalid model pattern {pattern!r}")
        if pattern != pattern.lower():
            raise RegistryConfigurationError(
                f"{extractor!r} pattern {pattern!r} must be lowercase (matching is case-insensitive)"
            )


def build_default_registry() -> ExtractorRegistry:
    """Registry with the built-in families. Order matters - first match wins."""
    return ExtractorRegistry([
        QwenExtractor(),
        HermesExtractor(),
        LiquidAIExtractor(),
    ])


DEFAULT_REGISTRY = build_default_registry()


def get_extractor_for_model(model_id: Optional[str]) -> ToolCallExtractor:
    """
    Get the appropriate extractor for a model ID.

    Args:
        model_id: The model identifier (e.g., "qwen2.5-coder-7b")

    Returns:
        Extractor instance appropriate for the model family
    """
    return DEFAULT_REGISTRY.select(model_id)


def parse_tool_calls(response: str, model_id: Optional[str] = None) -> list[ToolInvocation]:
    """
    Parse tool calls from response.

    Blocks that fail to parse are logged and skipped.

    Args:
        response: The model's response text
        model_id: Optional model identifier for format-specific parsing

    Returns:
        List of ToolInvocation in the order they appear (possibly empty)
    """
    calls, _ = get_extractor_for_model(model_id).extract_tool_calls(response)
    return calls


def has_tool_calls(response: str, model_id: Optional[str] = None) -> bool:
    """Check if response contains at least one parseable tool call."""
    return len(parse_tool_calls(response, model_id)) > 0
