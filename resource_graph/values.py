"""Value model shared by both evaluators.

Values are plain Python data: ``None``, ``bool``, ``int``/``float``, ``str``,
``list`` and ``dict``. Two extra types carry information that is only known
once infrastructure exists: ``ResourceRef`` points at a resource (or one of
its attributes) and ``RefTemplate`` is a string with references spliced in.
"""

import json
import math
import re
from dataclasses import dataclass
from typing import Any, Dict, Iterator, Optional, Tuple, Union

from .errors import SourceLocation, TypeMismatchError

ResourceKey = Tuple[str, str]


@dataclass(frozen=True)
class ResourceRef:
    type: str
    name: str
    path: Tuple[Union[str, int], ...] = ()

    @property
    def key(self) -> ResourceKey:
        return (self.type, self.name)

    @property
    def resource_id(self) -> str:
        return f"{self.type}.{self.name}"

    def child(self, step: Union[str, int]) -> 'ResourceRef':
        return ResourceRef(self.type, self.name, self.path + (step,))

    def __str__(self) -> str:
        text = self.resource_id
        for step in self.path:
            text += f"[{step}]" if isinstance(step, int) else f".{step}"
        return text


@dataclass(frozen=True)
class RefTemplate:
    parts: Tuple[Union[str, ResourceRef], ...]

    @staticmethod
    def build(parts) -> Union[str, 'RefTemplate']:
        """Merge adjacent literals; collapse to ``str`` when no reference remains"""
        merged = []
        for part in parts:
            if isinstance(part, RefTemplate):
                candidates = part.parts
            else:
                candidates = (part,)
            for item in candidates:
                if isinstance(item, str):
                    if not item:
                        continue
                    if merged and isinstance(merged[-1], str):
                        merged[-1] += item
                        continue
                merged.append(item)
        if all(isinstance(item, str) for item in merged):
            return ''.join(merged)
        return RefTemplate(tuple(merged))

    def __str__(self) -> str:
        return ''.join(part if isinstance(part, str) else f"${{{part}}}" for part in self.parts)


def type_name(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "bool"
    if isinstance(value, (int, float)):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, list):
        return "list"
    if isinstance(value, dict):
        return "map"
    if isinstance(value, ResourceRef):
        return "reference"
    if isinstance(value, RefTemplate):
        return "string"
    return type(value).__name__


def is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def is_unknown(value: Any) -> bool:
    return isinstance(value, (ResourceRef, RefTemplate))


def normalize_number(value: Union[int, float]) -> Union[int, float]:
    if isinstance(value, float) and value.is_integer() and math.isfinite(value):
        return int(value)
    return value


def format_number(value: Union[int, float]) -> str:
    value = normalize_number(value)
    if isinstance(value, float):
        return repr(value)
    return str(value)


def to_template_part(value: Any, location: Optional[SourceLocation] = None) -> Union[str, ResourceRef, RefTemplate]:
    """Convert a value for splicing into a string template"""
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if is_number(value):
        return format_number(value)
    if isinstance(value, (ResourceRef, RefTemplate)):
        return value
    if value is None:
        raise TypeMismatchError("Cannot interpolate a null value into a string", location)
    raise TypeMismatchError(f"Cannot interpolate a {type_name(value)} value into a string", location)


def iter_refs(value: Any) -> Iterator[ResourceRef]:
    if isinstance(value, ResourceRef):
        yield value
    elif isinstance(value, RefTemplate):
        for part in value.parts:
            if isinstance(part, ResourceRef):
                yield part
    elif isinstance(value, list):
        for item in value:
            yield from iter_refs(item)
    elif isinstance(value, dict):
        for item in value.values():
            yield from iter_refs(item)


def values_equal(left: Any, right: Any, ref_map: Optional[Dict[ResourceKey, ResourceKey]] = None) -> bool:
    """Deep equality: list order matters, map key order does not.

    ``ref_map`` translates resource keys of ``left`` into keys of ``right``;
    references whose resource is not in the map only match the same key.
    """
    if left is None or right is None:
        return left is None and right is None
    if isinstance(left, bool) or isinstance(right, bool):
        return isinstance(left, bool) and isinstance(right, bool) and left == right
    if is_number(left) or is_number(right):
        return is_number(left) and is_number(right) and left == right
    if isinstance(left, str) or isinstance(right, str):
        return isinstance(left, str) and isinstance(right, str) and left == right
    if isinstance(left, list):
        if not isinstance(right, list) or len(left) != len(right):
            return False
        return all(values_equal(a, b, ref_map) for a, b in zip(left, right))
    if isinstance(left, dict):
        if not isinstance(right, dict) or set(left) != set(right):
            return False
        return all(values_equal(left[key], right[key], ref_map) for key in left)
    if isinstance(left, ResourceRef):
        if not isinstance(right, ResourceRef) or left.path != right.path:
            return False
        mapped = ref_map.get(left.key, left.key) if ref_map else left.key
        return mapped == right.key
    if isinstance(left, RefTemplate):
        if not isinstance(right, RefTemplate) or len(left.parts) != len(right.parts):
            return False
        return all(values_equal(a, b, ref_map) for a, b in zip(left.parts, right.parts))
    return False


def to_plain(value: Any) -> Any:
    """JSON-compatible rendering; references become ``${...}`` strings"""
    if isinstance(value, (ResourceRef, RefTemplate)):
        return f"${{{value}}}" if isinstance(value, ResourceRef) else str(value)
    if isinstance(value, list):
        return [to_plain(item) for item in value]
    if isinstance(value, dict):
        return {key: to_plain(item) for key, item in value.items()}
    if is_number(value):
        return normalize_number(value)
    return value


def canonical_json(value: Any, location: Optional[SourceLocation] = None) -> str:
    """Compact JSON with sorted keys, shared by ``jsonencode`` and ``JSON.stringify``"""
    if any(True for _ in iter_refs(value)):
        raise TypeMismatchError("Cannot JSON-encode a value that depends on a resource attribute", location)
    return json.dumps(to_plain(value), sort_keys=True, separators=(',', ':'))


def from_json(text: Any, location: Optional[SourceLocation] = None) -> Any:
    if not isinstance(text, str):
        raise TypeMismatchError(f"Cannot JSON-decode a {type_name(text)} value", location)
    try:
        return json.loads(text)
    except json.JSONDecodeError as e:
        raise TypeMismatchError(f"Invalid JSON: {e.msg}", location) from e


_CAMEL_BOUNDARY = re.compile(r'(?<=[a-z0-9])(?=[A-Z])|(?<=[A-Z])(?=[A-Z][a-z])')


def snake_case(name: str) -> str:
    """``privateIp`` -> ``private_ip``; names without capitals are returned as-is"""
    if not any(ch.isupper() for ch in name):
        return name
    return _CAMEL_BOUNDARY.sub('_', name).lower()


def camel_case(name: str) -> str:
    head, *rest = name.split('_')
    return head + ''.join(part[:1].upper() + part[1:] for part in rest)


# ------------------------------
# Operators shared by both evaluators
# ------------------------------

def _require_known(value: Any, op: str, location: Optional[SourceLocation]):
    if is_unknown(value):
        raise TypeMismatchError(f"Operator '{op}' cannot be applied to {value}, which is only known after apply", location)


def require_number(value: Any, op: str, location: Optional[SourceLocation] = None) -> Union[int, float]:
    _require_known(value, op, location)
    if not is_number(value):
        raise TypeMismatchError(f"Operator '{op}' expects a number, got {type_name(value)}", location)
    return value


def require_bool(value: Any, op: str, location: Optional[SourceLocation] = None) -> bool:
    _require_known(value, op, location)
    if not isinstance(value, bool):
        raise TypeMismatchError(f"Operator '{op}' expects a bool, got {type_name(value)}", location)
    return value


def arithmetic(op: str, left: Any, right: Any, location: Optional[SourceLocation] = None) -> Union[int, float]:
    a = require_number(left, op, location)
    b = require_number(right, op, location)
    if op == '+':
        result = a + b
    elif op == '-':
        result = a - b
    elif op == '*':
        result = a * b
    elif op == '/':
        if b == 0:
            raise TypeMismatchError("Division by zero", location)
        result = a / b
    elif op == '%':
        if b == 0:
            raise TypeMismatchError("Modulo by zero", location)
        result = math.fmod(a, b)
    else:
        raise TypeMismatchError(f"Unknown arithmetic operator '{op}'", location)
    return normalize_number(result)


def ordering(op: str, left: Any, right: Any, location: Optional[SourceLocation] = None) -> bool:
    _require_known(left, op, location)
    _require_known(right, op, location)
    both_numbers = is_number(left) and is_number(right)
    both_strings = isinstance(left, str) and isinstance(right, str)
    if not (both_numbers or both_strings):
        raise TypeMismatchError(
            f"Operator '{op}' cannot compare {type_name(left)} with {type_name(right)}", location
        )
    if op == '<':
        return left < right
    if op == '<=':
        return left <= right
    if op == '>':
        return left > right
    return left >= right


def equality(left: Any, right: Any) -> bool:
    return values_equal(left, right)
