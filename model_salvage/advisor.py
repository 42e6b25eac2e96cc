"""
Config Recommendation Advisor - sampling/template hints per model family.

Pure lookup, independent of extraction and recovery. Rules are checked in
order and the first match wins, so sub-family rules (e.g. Qwen coder) sit
before the general family rule.
"""

import copy
from dataclasses import dataclass
from typing import Any, Callable, Optional

from pydantic import BaseModel, Field


class ConfigRecommendation(BaseModel):
    """Advisory request overrides for one model."""
    chat_template_kwargs: dict[str, Any] = Field(default_factory=dict)
    parallel_tool_calls: Optional[bool] = None
    top_p: Optional[float] = None
    debug_message: str = ""


@dataclass(frozen=True)
class RecommendationRule:
    """A family (or sub-family) match and the hints it produces."""
    name: str
    matches: Callable[[str], bool]
    chat_template_kwargs: dict
    parallel_tool_calls: Optional[bool]
    top_p: Optional[float]
    description: str

    def build(self, model_id: str) -> ConfigRecommendation:
        details = self.description
        if self.top_p is not None:
            details = f"{details}, top_p={self.top_p:.1f}"
        return ConfigRecommendation(
            chat_template_kwargs=copy.deepcopy(self.chat_template_kwargs),
            parallel_tool_calls=self.parallel_tool_calls,
            top_p=self.top_p,
            debug_message=f"Applied {self.name} optimizations ({details}) for model: {model_id}",
        )


RECOMMENDATION_RULES: list[RecommendationRule] = [
    RecommendationRule(
        name="Qwen3-Coder",
        matches=lambda m: ("qwen" in m or "qwq" in m) and "coder" in m,
        chat_template_kwargs={
            "enable_thinking": False,
            # vLLM: --enable-auto-tool-choice --tool-call-parser hermes
            "tool_call_parser": "hermes",
            "enable_auto_tool_choice": True,
        },
        parallel_tool_calls=True,
        top_p=0.8,
        description="parallel tools, hermes parser",
    ),
    RecommendationRule(
        name="general Qwen",
        matches=lambda m: "qwen" in m,
        chat_template_kwargs={
            "enable_thinking": False,
            # "nous" template is preferred over "qwen" for newer models
            "fncall_prompt_type": "nous",
        },
        parallel_tool_calls=True,
        top_p=0.7,
        description="nous template, parallel tools",
    ),
]


def recommend(model_id: Optional[str]) -> Optional[ConfigRecommendation]:
    """
    Get advisory config overrides for a model.

    Args:
        model_id: Model identifier, matched case-insensitively

    Returns:
        ConfigRecommendation, or None when no rule matches
    """
    if not model_id:
        return None
    model_lower = model_id.lower()
    for rule in RECOMMENDATION_RULES:
        if rule.matches(model_lower):
            return rule.build(model_id)
    return None


def apply_recommendation(
    params: dict[str, Any],
    recommendation: Optional[ConfigRecommendation],
    allow_parallel_tool_calls: bool = False,
) -> dict[str, Any]:
    """
    Merge a recommendation into an OpenAI-style request payload.

    Returns a new dict; params is not modified. chat_template_kwargs go
    under extra_body (vLLM convention). parallel_tool_calls is only
    enabled when the caller opts in, otherwise it is forced off.

    Args:
        params: Request keyword arguments (model, messages, temperature, ...)
        recommendation: Result of recommend(), or None
        allow_parallel_tool_calls: Honour the recommendation's parallel flag
    """
    merged = copy.deepcopy(params)
    merged["parallel_tool_calls"] = False
    if recommendation is None:
        return merged

    if recommendation.top_p is not None:
        merged["top_p"] = recommendation.top_p
    if recommendation.chat_template_kwargs:
        extra_body = merged.setdefault("extra_body", {})
        kwargs = extra_body.setdefault("chat_template_kwargs", {})
        kwargs.update(recommendation.chat_template_kwargs)
    if allow_parallel_tool_calls and recommendation.parallel_tool_calls is not None:
        merged["parallel_tool_calls"] = recommendation.parallel_tool_calls
    return merged
