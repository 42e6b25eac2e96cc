"""Tests for extractor registry selection and registration checks."""

import pytest
from model_salvage.registry import (
    DEFAULT_REGISTRY,
    ExtractorRegistry,
    build_default_registry,
    get_extractor_for_model,
    has_tool_calls,
    parse_tool_calls,
)
from model_salvage.schemas import RegistryConfigurationError
from model_salvage.tool_parsers import (
    HermesExtractor,
    LiquidAIExtractor,
    QwenExtractor,
    ToolCallExtractor,
)

from tests.conftest import MOCK_HERMES_MODEL, MOCK_LFM_MODEL, MOCK_OTHER_MODEL, MOCK_QWEN_MODEL


class FakeExtractor(ToolCallExtractor):
    name = "fake"
    MODEL_PATTERNS = ("fake",)


class TestSelect:
    """Tests for ExtractorRegistry.select()."""

    def test_qwen_coder_selects_qwen(self):
        assert isinstance(get_extractor_for_model("qwen2.5-coder"), QwenExtractor)

    def test_unknown_model_selects_default(self):
        extractor = get_extractor_for_model(MOCK_OTHER_MODEL)
        assert extractor is DEFAULT_REGISTRY.default
        assert extractor.name == "default"

    @pytest.mark.parametrize("model_id,expected", [
        (MOCK_QWEN_MODEL, QwenExtractor),
        (MOCK_HERMES_MODEL, HermesExtractor),
        (MOCK_LFM_MODEL, LiquidAIExtractor),
        ("QWEN3-235B-A22B", QwenExtractor),
    ])
    def test_family_selection(self, model_id, expected):
        assert isinstance(DEFAULT_REGISTRY.select(model_id), expected)

    @pytest.mark.parametrize("model_id", [None, ""])
    def test_missing_model_selects_default(self, model_id):
        assert DEFAULT_REGISTRY.select(model_id) is DEFAULT_REGISTRY.default

    def test_first_registered_match_wins(self):
        first = FakeExtractor()
        second = FakeExtractor()
        registry = ExtractorRegistry([first, second])
        assert registry.select("my-fake-model") is first

    def test_registration_order_decides_overlap(self):
        # "qwen-hermes" matches both families
        assert isinstance(DEFAULT_REGISTRY.select("qwen-hermes-merge"), QwenExtractor)
        registry = ExtractorRegistry([HermesExtractor(), QwenExtractor()])
        assert isinstance(registry.select("qwen-hermes-merge"), HermesExtractor)

    def test_custom_default(self):
        fallback = FakeExtractor()
        registry = ExtractorRegistry(default=fallback)
        assert registry.select("anything") is fallback


class TestRegister:
    """Tests for registration-time validation."""

    def test_register_appends_at_lowest_priority(self):
        registry = build_default_registry()
        extra = FakeExtractor()
        registry.register(extra)
        assert registry.extractors[-1] is extra
        assert len(registry.extractors) == 4

    def test_extractors_property_is_a_copy(self):
        registry = build_default_registry()
        registry.extractors.clear()
        assert len(registry.extractors) == 3

    def test_rejects_missing_patterns(self):
        with pytest.raises(RegistryConfigurationError):
            ExtractorRegistry().register(ToolCallExtractor())

    def test_rejects_bare_string_patterns(self):
        class BadExtractor(ToolCallExtractor):
            MODEL_PATTERNS = "qwen"

        with pytest.raises(RegistryConfigurationError):
            ExtractorRegistry().register(BadExtractor())

    def test_rejects_blank_pattern(self):
        class BadExtractor(ToolCallExtractor):
            MODEL_PATTERNS = ("qwen", "  ")

        with pytest.raises(RegistryConfigurationError):
            ExtractorRegistry().register(BadExtractor())

    def test_rejects_uppercase_pattern(self):
        class BadExtractor(ToolCallExtractor):
            MODEL_PATTERNS = ("Qwen",)

        with pytest.raises(RegistryConfigurationError, match="lowercase"):
            ExtractorRegistry().register(BadExtractor())

    def test_rejects_non_callable_predicate(self):
        class BadExtractor(ToolCallExtractor):
            MODEL_PATTERNS = ("bad",)
            can_handle = True

        with pytest.raises(RegistryConfigurationError, match="can_handle"):
            ExtractorRegistry().register(BadExtractor())

    def test_failed_registration_leaves_registry_unchanged(self):
        registry = build_default_registry()
        with pytest.raises(RegistryConfigurationError):
            registry.register(ToolCallExtractor())
        assert len(registry.extractors) == 3


class TestModuleHelpers:
    """Tests for parse_tool_calls() / has_tool_calls()."""

    def test_parse_tool_calls_for_qwen(self):
        text = '<tool_call>{"name": "search", "arguments": {"q": "x"}}</tool_call>'
        calls = parse_tool_calls(text, "qwen2.5-coder")
        assert [c.name for c in calls] == ["search"]

    def test_qwen_syntax_ignored_for_unknown_model(self):
        text = '<tool_call>{"name": "search", "arguments": {}}</tool_call>'
        assert parse_tool_calls(text, MOCK_OTHER_MODEL) == []

    def test_has_tool_calls(self):
        text = '<tool_call>{"name": "search"}</tool_call>'
        assert has_tool_calls(text, MOCK_QWEN_MODEL) is True
        assert has_tool_calls("plain answer", MOCK_QWEN_MODEL) is False
