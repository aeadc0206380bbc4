"""Answer payloads as a tagged union.

Raw answers are never compared through a generic string form. Each variant
knows how to compare itself, so ``["a", "b"]`` vs ``["b", "a"]`` and
``"1"`` vs ``1`` can't produce false matches or misses.

Wire/storage form is a small JSON object keyed by ``kind``:

  {"kind": "scalar", "value": "B"}
  {"kind": "multi_select", "values": ["A", "C"]}
  {"kind": "free_text", "text": "..."}
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Union


@dataclass(frozen=True, slots=True)
class ScalarAnswer:
    value: str

    kind = "scalar"

    def to_dict(self) -> dict[str, Any]:
        return {"kind": self.kind, "value": self.value}


@dataclass(frozen=True, slots=True)
class MultiSelectAnswer:
    values: frozenset[str]

    kind = "multi_select"

    def to_dict(self) -> dict[str, Any]:
        # Sorted so the stored JSON is stable across saves
        return {"kind": self.kind, "values": sorted(self.values)}


@dataclass(frozen=True, slots=True)
class FreeTextAnswer:
    text: str

    kind = "free_text"

    def to_dict(self) -> dict[str, Any]:
        return {"kind": self.kind, "text": self.text}


AnswerValue = Union[ScalarAnswer, MultiSelectAnswer, FreeTextAnswer]


def answer_from_dict(data: dict[str, Any]) -> AnswerValue:
    kind = data.get("kind")
    if kind == ScalarAnswer.kind:
        return ScalarAnswer(value=str(data["value"]))
    if kind == MultiSelectAnswer.kind:
        return MultiSelectAnswer(values=frozenset(str(v) for v in data["values"]))
    if kind == FreeTextAnswer.kind:
        return FreeTextAnswer(text=str(data["text"]))
    raise ValueError(f"unknown answer kind {kind!r}")


def answer_to_json(value: AnswerValue | None) -> str | None:
    if value is None:
        return None
    return json.dumps(value.to_dict(), sort_keys=True)


def answer_from_json(raw: str | None) -> AnswerValue | None:
    if raw is None:
        return None
    return answer_from_dict(json.loads(raw))
