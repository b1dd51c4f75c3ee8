"""
Fact shapes: the caller-declared structure an oracle answer must conform to.

A shape is a flat list of named fields of kind boolean, string, number or
string list. The oracle is asked to answer with a JSON object carrying exactly
these keys; conform() turns that answer into a plain dict or raises
ExtractionError so callers can treat the facts as unknown.
"""
from dataclasses import dataclass
from typing import Any, Dict, List, Tuple

from ..exceptions import ExtractionError

BOOLEAN = "boolean"
STRING = "string"
NUMBER = "number"
STRING_LIST = "string_list"

KINDS = (BOOLEAN, STRING, NUMBER, STRING_LIST)

_TRUE = {"true", "yes", "1"}
_FALSE = {"false", "no", "0"}


@dataclass(frozen=True)
class FactField:
    name: str
    kind: str
    description: str = ""

    def __post_init__(self):
        if self.kind not in KINDS:
            raise ValueError(f"Unknown fact kind: {self.kind}")

    def coerce(self, value: Any) -> Any:
        if self.kind == BOOLEAN:
            if isinstance(value, bool):
                return value
            if isinstance(value, str) and value.strip().lower() in _TRUE | _FALSE:
                return value.strip().lower() in _TRUE
        elif self.kind == STRING:
            if isinstance(value, str):
                return value
            if isinstance(value, (int, float)) and not isinstance(value, bool):
                return str(value)
        elif self.kind == NUMBER:
            if isinstance(value, (int, float)) and not isinstance(value, bool):
                return value
            if isinstance(value, str):
                try:
                    number = float(value.strip())
                except ValueError:
                    pass
                else:
                    return int(number) if number.is_integer() else number
        elif self.kind == STRING_LIST:
            if isinstance(value, list) and all(isinstance(v, (str, int, float)) for v in value):
                return [str(v) for v in value]
            if isinstance(value, str):
                return [value] if value.strip() else []
        raise ExtractionError(f"Field '{self.name}' expected {self.kind}, got {value!r}")


@dataclass(frozen=True)
class FactShape:
    """Named set of fields an extraction must return."""

    name: str
    fields: Tuple[FactField, ...]

    @property
    def field_names(self) -> List[str]:
        return [f.name for f in self.fields]

    def to_schema(self) -> Dict[str, str]:
        """Field name -> type description, embedded verbatim in oracle prompts."""
        schema = {}
        for f in self.fields:
            kind = "array of strings" if f.kind == STRING_LIST else f.kind
            schema[f.name] = f"{kind} - {f.description}" if f.description else kind
        return schema

    def conform(self, data: Any) -> Dict[str, Any]:
        if not isinstance(data, dict):
            raise ExtractionError(f"{self.name}: expected a JSON object, got {type(data).__name__}")
        out: Dict[str, Any] = {}
        for f in self.fields:
            if f.name not in data or data[f.name] is None:
                raise ExtractionError(f"{self.name}: missing field '{f.name}'")
            out[f.name] = f.coerce(data[f.name])
        return out


def shape(name: str, **fields: Tuple[str, str]) -> FactShape:
    """shape("listing", found=(BOOLEAN, "whether ...")) keeps declarations short."""
    return FactShape(name, tuple(FactField(k, kind, desc) for k, (kind, desc) in fields.items()))
