"""
Deterministic textual repairs for almost-JSON model output.

Each repair is a plain str -> str function. RepairPolicy names which ones
run and in what order; the default policy is the conservative set:

1. strip_code_fences      ```json ... ``` wrappers
2. strip_leading_prose    anything before the first `{`
3. strip_trailing_commas  `,` directly before `}` or `]`

The extra repairs (strip_trailing_prose, normalize_python_literals) are
available for callers that want a more aggressive pass.
"""

import re
from typing import Callable

from pydantic import BaseModel, field_validator

Repair = Callable[[str], str]

FENCE_OPEN_PATTERN = re.compile(r"^\s*```[\w-]*[ \t]*\n?")
TRAILING_COMMA_PATTERN = re.compile(r",(\s*[}\]])")


def strip_code_fences(text: str) -> str:
    """Remove a surrounding markdown code fence."""
    text = FENCE_OPEN_PATTERN.sub("", text, count=1)
    stripped = text.rstrip()
    if not stripped.endswith("```"):
        return text
    text = stripped[:-3].rstrip(" \t")
    return text[:-1] if text.endswith("\n") else text


def strip_leading_prose(text: str) -> str:
    """Discard everything before the first `{`."""
    start = text.find("{")
    return text[start:] if start > 0 else text


def strip_trailing_commas(text: str) -> str:
    """Remove commas that directly precede a closing `}` or `]`."""
    return TRAILING_COMMA_PATTERN.sub(r"\1", text)


def strip_trailing_prose(text: str) -> str:
    """Discard everything after the last `}`."""
    end = text.rfind("}")
    return text[:end + 1] if end != -1 else text


def normalize_python_literals(text: str) -> str:
    """Python True/False/None -> JSON true/false/null."""
    text = re.sub(r"\bTrue\b", "true", text)
    text = re.sub(r"\bFalse\b", "false", text)
    return re.sub(r"\bNone\b", "null", text)


REPAIRS: dict[str, Repair] = {
    "strip_code_fences": strip_code_fences,
    "strip_leading_prose": strip_leading_prose,
    "strip_trailing_commas": strip_trailing_commas,
    "strip_trailing_prose": strip_trailing_prose,
    "normalize_python_literals": normalize_python_literals,
}

DEFAULT_REPAIRS: tuple[str, ...] = (
    "strip_code_fences",
    "strip_leading_prose",
    "strip_trailing_commas",
)


class RepairPolicy(BaseModel):
    """Ordered list of repair names to apply in a single pass."""
    repairs: tuple[str, ...] = DEFAULT_REPAIRS

    @field_validator("repairs")
    @classmethod
    def _known_repairs(cls, repairs: tuple[str, ...]) -> tuple[str, ...]:
        unknown = [name for name in repairs if name not in REPAIRS]
        if unknown:
            raise ValueError(f"Unknown repairs: {', '.join(unknown)}")
        return repairs

    def apply(self, text: str) -> tuple[str, list[str]]:
        """
        Run every repair once, in order.

        Returns:
            (repaired_text, names of repairs that changed the text)
        """
        applied = []
        for name in self.repairs:
            repaired = REPAIRS[name](text)
            if repaired != text:
                applied.append(name)
                text = repaired
        return text, applied
