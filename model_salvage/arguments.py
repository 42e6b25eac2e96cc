"""
Tool-call argument payloads.

Models hand back arguments as a JSON object, a pre-encoded string, a list,
or occasionally a bare scalar. ArgumentPayload tags which one it got so the
canonical string encoding is well-defined:

- STRING:   passed through untouched
- MAPPING:  compact JSON, key order preserved
- SEQUENCE: compact JSON, element order preserved
- OPAQUE:   any other JSON-encodable value (numbers, booleans)
- ABSENT:   missing or null, encodes as "{}"
"""

import json
import math
from dataclasses import dataclass
from enum import Enum
from typing import Any

from model_salvage.config import EMPTY_ARGUMENTS


class PayloadKind(str, Enum):
    STRING = "string"
    MAPPING = "mapping"
    SEQUENCE = "sequence"
    OPAQUE = "opaque"
    ABSENT = "absent"


def canonical_json(value: Any) -> str:
    """
    Compact JSON encoding used for all re-encoded arguments.

    Raises ValueError for values strict JSON cannot carry (NaN, Infinity,
    integers past the interpreter's digit limit).
    """
    return json.dumps(value, separators=(",", ":"), ensure_ascii=False, allow_nan=False, default=str)


def _json_safe(value: Any) -> Any:
    """Replace non-finite floats and oversized ints with string stand-ins."""
    if isinstance(value, float) and not math.isfinite(value):
        return "NaN" if math.isnan(value) else ("Infinity" if value > 0 else "-Infinity")
    if isinstance(value, int) and not isinstance(value, bool):
        try:
            str(value)
        except ValueError:
            return hex(value)
        return value
    if isinstance(value, dict):
        return {key: _json_safe(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_json_safe(item) for item in value]
    return value


@dataclass(frozen=True)
class ArgumentPayload:
    kind: PayloadKind
    value: Any = None

    @classmethod
    def from_value(cls, value: Any) -> "ArgumentPayload":
        """Tag a decoded `arguments` value."""
        if value is None:
            return cls(PayloadKind.ABSENT)
        if isinstance(value, str):
            return cls(PayloadKind.STRING, value)
        if isinstance(value, dict):
            return cls(PayloadKind.MAPPING, value)
        if isinstance(value, (list, tuple)):
            return cls(PayloadKind.SEQUENCE, list(value))
        return cls(PayloadKind.OPAQUE, value)

    @classmethod
    def from_block(cls, data: dict) -> "ArgumentPayload":
        """Tag the `arguments` entry of a decoded tool-call object."""
        if "arguments" not in data:
            return cls(PayloadKind.ABSENT)
        return cls.from_value(data["arguments"])

    def encode(self) -> str:
        if self.kind is PayloadKind.ABSENT:
            return EMPTY_ARGUMENTS
        if self.kind is PayloadKind.STRING:
            return self.value
        try:
            return canonical_json(self.value)
        except ValueError:
            return canonical_json(_json_safe(self.value))
