"""Tests for deterministic JSON repairs."""

import json

import pytest
from pydantic import ValidationError
from model_salvage.repair import (
    DEFAULT_REPAIRS,
    RepairPolicy,
    normalize_python_literals,
    strip_code_fences,
    strip_leading_prose,
    strip_trailing_commas,
    strip_trailing_prose,
)


class TestRepairs:

    def test_strip_code_fences(self):
        assert strip_code_fences('```json\n{"a": 1}\n```') == '{"a": 1}'

    def test_strip_code_fences_without_tag(self):
        assert strip_code_fences('```\n{"a": 1}\n```\n') == '{"a": 1}'

    def test_strip_code_fences_no_fence(self):
        assert strip_code_fences('{"a": 1}') == '{"a": 1}'

    def test_strip_leading_prose(self):
        assert strip_leading_prose('Sure! Here it is: {"a": 1}') == '{"a": 1}'

    def test_strip_leading_prose_without_brace(self):
        assert strip_leading_prose("no json here") == "no json here"

    def test_strip_trailing_commas(self):
        text = '{"a": [1, 2,], "b": {"c": 3,},}'
        assert json.loads(strip_trailing_commas(text)) == {"a": [1, 2], "b": {"c": 3}}

    def test_strip_trailing_commas_across_whitespace(self):
        assert strip_trailing_commas('{"a": 1,\n  }') == '{"a": 1\n  }'

    def test_strip_trailing_prose(self):
        assert strip_trailing_prose('{"a": 1} hope that helps') == '{"a": 1}'

    def test_normalize_python_literals(self):
        assert normalize_python_literals('{"a": True, "b": None}') == '{"a": true, "b": null}'


class TestRepairPolicy:

    def test_default_policy(self):
        assert RepairPolicy().repairs == DEFAULT_REPAIRS

    def test_reports_only_effective_repairs(self):
        text, applied = RepairPolicy().apply('{"deliverables": {"a": "b"},}')
        assert text == '{"deliverables": {"a": "b"}}'
        assert applied == ["strip_trailing_commas"]

    def test_combined_repairs(self):
        raw = 'Here you go:\n```json\n{"deliverables": {"x": 1,},}\n```'
        text, applied = RepairPolicy().apply(raw)
        assert json.loads(text) == {"deliverables": {"x": 1}}
        assert applied == ["strip_code_fences", "strip_leading_prose", "strip_trailing_commas"]

    def test_nothing_to_repair(self):
        text, applied = RepairPolicy().apply("plain prose")
        assert text == "plain prose"
        assert applied == []

    def test_custom_order(self):
        policy = RepairPolicy(repairs=("strip_trailing_prose", "normalize_python_literals"))
        text, applied = policy.apply('{"ok": True} done')
        assert text == '{"ok": true}'
        assert applied == ["strip_trailing_prose", "normalize_python_literals"]

    def test_unknown_repair_rejected(self):
        with pytest.raises(ValidationError):
            RepairPolicy(repairs=("strip_code_fences", "fix_everything"))
