"""Built-in HCL functions available to the evaluator.

Each function receives already-evaluated arguments and the call location and
returns a Value. Argument errors are reported as ``TypeMismatchError``.
"""

import re
from typing import Any, Callable, Dict, List, Optional

from resource_graph.errors import SourceLocation, TypeMismatchError
from resource_graph.values import (
    RefTemplate,
    canonical_json,
    format_number,
    from_json,
    is_number,
    is_unknown,
    normalize_number,
    to_template_part,
    type_name,
    values_equal,
)


def _expect(value: Any, kinds: str, name: str, location: Optional[SourceLocation]):
    actual = type_name(value)
    if is_unknown(value) or actual not in kinds.split('|'):
        raise TypeMismatchError(f"{name}() expects {kinds.replace('|', ' or ')}, got {actual}", location)
    return value


def _arity(args: List[Any], count: int, name: str, location: Optional[SourceLocation]):
    if len(args) != count:
        raise TypeMismatchError(f"{name}() takes {count} argument(s), got {len(args)}", location)


def fn_length(args, location):
    _arity(args, 1, 'length', location)
    value = _expect(args[0], 'list|map|string', 'length', location)
    return len(value)


def fn_upper(args, location):
    _arity(args, 1, 'upper', location)
    return _expect(args[0], 'string', 'upper', location).upper()


def fn_lower(args, location):
    _arity(args, 1, 'lower', location)
    return _expect(args[0], 'string', 'lower', location).lower()


def fn_trimspace(args, location):
    _arity(args, 1, 'trimspace', location)
    return _expect(args[0], 'string', 'trimspace', location).strip()


def fn_join(args, location):
    _arity(args, 2, 'join', location)
    separator = _expect(args[0], 'string', 'join', location)
    items = _expect(args[1], 'list', 'join', location)
    parts = []
    for index, item in enumerate(items):
        if index:
            parts.append(separator)
        parts.append(to_template_part(item, location))
    return RefTemplate.build(parts)


def fn_split(args, location):
    _arity(args, 2, 'split', location)
    separator = _expect(args[0], 'string', 'split', location)
    text = _expect(args[1], 'string', 'split', location)
    return text.split(separator)


def fn_replace(args, location):
    _arity(args, 3, 'replace', location)
    text = _expect(args[0], 'string', 'replace', location)
    search = _expect(args[1], 'string', 'replace', location)
    replacement = _expect(args[2], 'string', 'replace', location)
    if len(search) > 1 and search.startswith('/') and search.endswith('/'):
        return re.sub(search[1:-1], re.sub(r'\$\{?(\d+)\}?', r'\\\1', replacement), text)
    return text.replace(search, replacement)


def fn_concat(args, location):
    result = []
    for arg in args:
        result.extend(_expect(arg, 'list', 'concat', location))
    return result


def fn_flatten(args, location):
    _arity(args, 1, 'flatten', location)

    def walk(items):
        for item in items:
            if isinstance(item, list):
                yield from walk(item)
            else:
                yield item
    return list(walk(_expect(args[0], 'list', 'flatten', location)))


def fn_distinct(args, location):
    _arity(args, 1, 'distinct', location)
    result = []
    for item in _expect(args[0], 'list', 'distinct', location):
        if not any(values_equal(item, seen) for seen in result):
            result.append(item)
    return result


def fn_toset(args, location):
    return fn_distinct(args, location)


def fn_tolist(args, location):
    _arity(args, 1, 'tolist', location)
    return list(_expect(args[0], 'list', 'tolist', location))


def fn_tomap(args, location):
    _arity(args, 1, 'tomap', location)
    return dict(_expect(args[0], 'map', 'tomap', location))


def fn_keys(args, location):
    _arity(args, 1, 'keys', location)
    return list(_expect(args[0], 'map', 'keys', location).keys())


def fn_values(args, location):
    _arity(args, 1, 'values', location)
    return list(_expect(args[0], 'map', 'values', location).values())


def fn_lookup(args, location):
    if len(args) not in (2, 3):
        raise TypeMismatchError(f"lookup() takes 2 or 3 arguments, got {len(args)}", location)
    mapping = _expect(args[0], 'map', 'lookup', location)
    key = _expect(args[1], 'string', 'lookup', location)
    if key in mapping:
        return mapping[key]
    if len(args) == 3:
        return args[2]
    raise TypeMismatchError(f"lookup() found no key '{key}' and no default was given", location)


def fn_merge(args, location):
    result = {}
    for arg in args:
        if arg is None:
            continue
        result.update(_expect(arg, 'map', 'merge', location))
    return result


def fn_zipmap(args, location):
    _arity(args, 2, 'zipmap', location)
    keys = _expect(args[0], 'list', 'zipmap', location)
    values = _expect(args[1], 'list', 'zipmap', location)
    if len(keys) != len(values):
        raise TypeMismatchError("zipmap() needs key and value lists of equal length", location)
    return {_expect(k, 'string', 'zipmap', location): v for k, v in zip(keys, values)}


def fn_contains(args, location):
    _arity(args, 2, 'contains', location)
    items = _expect(args[0], 'list', 'contains', location)
    return any(values_equal(item, args[1]) for item in items)


def fn_element(args, location):
    _arity(args, 2, 'element', location)
    items = _expect(args[0], 'list', 'element', location)
    index = int(_expect(args[1], 'number', 'element', location))
    if not items:
        raise TypeMismatchError("element() cannot index an empty list", location)
    return items[index % len(items)]


def fn_range(args, location):
    if not 1 <= len(args) <= 3:
        raise TypeMismatchError(f"range() takes 1 to 3 arguments, got {len(args)}", location)
    numbers = [_expect(arg, 'number', 'range', location) for arg in args]
    if len(numbers) == 1:
        start, stop, step = 0, numbers[0], 1
    elif len(numbers) == 2:
        start, stop, step = numbers[0], numbers[1], 1 if numbers[1] >= numbers[0] else -1
    else:
        start, stop, step = numbers
    if step == 0:
        raise TypeMismatchError("range() step cannot be zero", location)
    result = []
    current = start
    while (step > 0 and current < stop) or (step < 0 and current > stop):
        result.append(normalize_number(current))
        current += step
    return result


def fn_min(args, location):
    if not args:
        raise TypeMismatchError("min() needs at least one argument", location)
    return min(_expect(arg, 'number', 'min', location) for arg in args)


def fn_max(args, location):
    if not args:
        raise TypeMismatchError("max() needs at least one argument", location)
    return max(_expect(arg, 'number', 'max', location) for arg in args)


def fn_coalesce(args, location):
    for arg in args:
        if arg is not None and arg != '':
            return arg
    raise TypeMismatchError("coalesce() found no non-null, non-empty argument", location)


def fn_tostring(args, location):
    _arity(args, 1, 'tostring', location)
    if args[0] is None:
        return None
    return to_template_part(args[0], location)


def fn_tonumber(args, location):
    _arity(args, 1, 'tonumber', location)
    value = args[0]
    if value is None or is_number(value):
        return value
    if isinstance(value, str):
        try:
            return normalize_number(float(value))
        except ValueError:
            pass
    raise TypeMismatchError(f"tonumber() cannot convert {value!r} to a number", location)


def fn_format(args, location):
    if not args:
        raise TypeMismatchError("format() needs a format string", location)
    spec = _expect(args[0], 'string', 'format', location)
    values = list(args[1:])

    def substitute(match):
        verb = match.group(1)
        if verb == '%':
            return '%'
        if not values:
            raise TypeMismatchError("format() has more verbs than arguments", location)
        value = values.pop(0)
        if verb == 'd':
            return format_number(int(_expect(value, 'number', 'format', location)))
        if verb == 'v' and not isinstance(value, str):
            return canonical_json(value, location)
        return str(to_template_part(value, location))

    return re.sub(r'%([sdv%])', substitute, spec)


def fn_jsonencode(args, location):
    _arity(args, 1, 'jsonencode', location)
    return canonical_json(args[0], location)


def fn_jsondecode(args, location):
    _arity(args, 1, 'jsondecode', location)
    return from_json(args[0], location)


FUNCTIONS: Dict[str, Callable[[List[Any], Optional[SourceLocation]], Any]] = {
    'length': fn_length,
    'upper': fn_upper,
    'lower': fn_lower,
    'trimspace': fn_trimspace,
    'join': fn_join,
    'split': fn_split,
    'replace': fn_replace,
    'concat': fn_concat,
    'flatten': fn_flatten,
    'distinct': fn_distinct,
    'toset': fn_toset,
    'tolist': fn_tolist,
    'tomap': fn_tomap,
    'keys': fn_keys,
    'values': fn_values,
    'lookup': fn_lookup,
    'merge': fn_merge,
    'zipmap': fn_zipmap,
    'contains': fn_contains,
    'element': fn_element,
    'range': fn_range,
    'min': fn_min,
    'max': fn_max,
    'coalesce': fn_coalesce,
    'tostring': fn_tostring,
    'tonumber': fn_tonumber,
    'format': fn_format,
    'jsonencode': fn_jsonencode,
    'jsondecode': fn_jsondecode,
}
