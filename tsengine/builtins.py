"""Runtime library of the target-language evaluator: global objects and the
methods available on arrays, strings, numbers and config objects.

Callables take ``(evaluator, args, location)`` so that methods such as
``map`` or ``reduce`` can call back into user-defined arrow functions.
"""

import copy
import logging
import math
from typing import Any, Callable, Dict, List, Optional

from resource_graph.errors import SourceLocation, TypeMismatchError, UnboundVariableError
from resource_graph.values import (
    RefTemplate,
    ResourceRef,
    canonical_json,
    format_number,
    from_json,
    is_number,
    is_unknown,
    normalize_number,
    require_number,
    to_template_part,
    type_name,
    values_equal,
)

logger = logging.getLogger(__name__)


class BuiltinFunction:
    def __init__(self, name: str, fn: Callable):
        self.name = name
        self.fn = fn

    def __repr__(self) -> str:
        return f"<builtin {self.name}>"


class BuiltinNamespace:
    def __init__(self, name: str, members: Dict[str, Any]):
        self.name = name
        self.members = members

    def get(self, name: str, location: Optional[SourceLocation]) -> Any:
        if name not in self.members:
            raise UnboundVariableError(f"{self.name}.{name}", location)
        return self.members[name]


class ConfigObject:
    """Result of ``new pulumi.Config()``; reads the binding context"""

    def __init__(self, bindings: Dict[str, Any], namespace: Optional[str] = None):
        self.bindings = bindings
        self.namespace = namespace

    def _candidates(self, key: str) -> List[str]:
        names = [key]
        if self.namespace:
            names.append(f"{self.namespace}:{key}")
        names.append(key.split(':')[-1])
        return names

    def lookup(self, key: str) -> Any:
        for candidate in self._candidates(key):
            if candidate in self.bindings:
                return copy.deepcopy(self.bindings[candidate])
        return None

    def has(self, key: str) -> bool:
        return any(candidate in self.bindings for candidate in self._candidates(key))


def truthy(value: Any) -> bool:
    if value is None or value is False:
        return False
    if is_number(value):
        return value != 0 and not math.isnan(value)
    if isinstance(value, str):
        return value != ''
    return True


def _arg(args: List[Any], index: int, default: Any = None) -> Any:
    return args[index] if index < len(args) else default


def _callable(value: Any, method: str, location: Optional[SourceLocation]) -> Any:
    from .evaluator import Closure

    if not isinstance(value, (Closure, BuiltinFunction)):
        raise TypeMismatchError(f"{method}() expects a function, got {type_name(value)}", location)
    return value


def _integer(value: Any, method: str, location: Optional[SourceLocation]) -> int:
    return int(require_number(value, method, location))


def _entries_to_map(items: Any, method: str, location: Optional[SourceLocation]) -> Dict[str, Any]:
    """Later entries overwrite earlier ones with the same key"""
    if not isinstance(items, list):
        raise TypeMismatchError(f"{method}() expects an array of [key, value] pairs, got {type_name(items)}", location)
    result = {}
    for entry in items:
        if not isinstance(entry, list) or len(entry) != 2:
            raise TypeMismatchError(f"{method}() entries must be [key, value] pairs", location)
        key = entry[0]
        if is_number(key):
            key = format_number(key)
        if not isinstance(key, str):
            raise TypeMismatchError(f"{method}() keys must be strings, got {type_name(key)}", location)
        result[key] = entry[1]
    return result


def _slice_bounds(length: int, args: List[Any], method: str, location) -> slice:
    start = _integer(_arg(args, 0, 0), method, location)
    end = _arg(args, 1)
    end = length if end is None else _integer(end, method, location)
    return slice(start, end)


# ------------------------------
# Array methods
# ------------------------------

def array_map(ev, items, args, location):
    fn = _callable(_arg(args, 0), 'map', location)
    return [ev.call(fn, [item, index, items], location) for index, item in enumerate(items)]


def array_filter(ev, items, args, location):
    fn = _callable(_arg(args, 0), 'filter', location)
    return [item for index, item in enumerate(items) if truthy(ev.call(fn, [item, index, items], location))]


def array_flat_map(ev, items, args, location):
    fn = _callable(_arg(args, 0), 'flatMap', location)
    result = []
    for index, item in enumerate(items):
        mapped = ev.call(fn, [item, index, items], location)
        if isinstance(mapped, list):
            result.extend(mapped)
        else:
            result.append(mapped)
    return result


def array_for_each(ev, items, args, location):
    fn = _callable(_arg(args, 0), 'forEach', location)
    for index, item in enumerate(list(items)):
        ev.call(fn, [item, index, items], location)
    return None


def array_find(ev, items, args, location):
    fn = _callable(_arg(args, 0), 'find', location)
    for index, item in enumerate(items):
        if truthy(ev.call(fn, [item, index, items], location)):
            return item
    return None


def array_find_index(ev, items, args, location):
    fn = _callable(_arg(args, 0), 'findIndex', location)
    for index, item in enumerate(items):
        if truthy(ev.call(fn, [item, index, items], location)):
            return index
    return -1


def array_some(ev, items, args, location):
    fn = _callable(_arg(args, 0), 'some', location)
    return any(truthy(ev.call(fn, [item, index, items], location)) for index, item in enumerate(items))


def array_every(ev, items, args, location):
    fn = _callable(_arg(args, 0), 'every', location)
    return all(truthy(ev.call(fn, [item, index, items], location)) for index, item in enumerate(items))


def array_reduce(ev, items, args, location):
    fn = _callable(_arg(args, 0), 'reduce', location)
    remaining = list(enumerate(items))
    if len(args) > 1:
        accumulator = args[1]
    elif remaining:
        accumulator = remaining.pop(0)[1]
    else:
        raise TypeMismatchError("reduce() of empty array with no initial value", location)
    for index, item in remaining:
        accumulator = ev.call(fn, [accumulator, item, index, items], location)
    return accumulator


def array_join(ev, items, args, location):
    separator = _arg(args, 0, ',')
    if not isinstance(separator, str):
        raise TypeMismatchError(f"join() separator must be a string, got {type_name(separator)}", location)
    parts = []
    for index, item in enumerate(items):
        if index:
            parts.append(separator)
        parts.append('' if item is None else to_template_part(item, location))
    return RefTemplate.build(parts)


def array_includes(ev, items, args, location):
    return any(values_equal(item, _arg(args, 0)) for item in items)


def array_index_of(ev, items, args, location):
    for index, item in enumerate(items):
        if values_equal(item, _arg(args, 0)):
            return index
    return -1


def array_concat(ev, items, args, location):
    result = list(items)
    for arg in args:
        if isinstance(arg, list):
            result.extend(arg)
        else:
            result.append(arg)
    return result


def array_slice(ev, items, args, location):
    return items[_slice_bounds(len(items), args, 'slice', location)]


def array_push(ev, items, args, location):
    items.extend(args)
    return len(items)


def array_to_map(ev, items, args, location):
    return _entries_to_map(items, 'toMap', location)


ARRAY_METHODS = {
    'map': array_map,
    'filter': array_filter,
    'flatMap': array_flat_map,
    'forEach': array_for_each,
    'find': array_find,
    'findIndex': array_find_index,
    'some': array_some,
    'every': array_every,
    'reduce': array_reduce,
    'join': array_join,
    'includes': array_includes,
    'indexOf': array_index_of,
    'concat': array_concat,
    'slice': array_slice,
    'push': array_push,
    'toMap': array_to_map,
}


# ------------------------------
# String and number methods
# ------------------------------

def _string_arg(args, index, method, location) -> str:
    value = _arg(args, index)
    if not isinstance(value, str):
        raise TypeMismatchError(f"{method}() expects a string argument, got {type_name(value)}", location)
    return value


STRING_METHODS = {
    'toUpperCase': lambda ev, s, args, loc: s.upper(),
    'toLowerCase': lambda ev, s, args, loc: s.lower(),
    'trim': lambda ev, s, args, loc: s.strip(),
    'startsWith': lambda ev, s, args, loc: s.startswith(_string_arg(args, 0, 'startsWith', loc)),
    'endsWith': lambda ev, s, args, loc: s.endswith(_string_arg(args, 0, 'endsWith', loc)),
    'includes': lambda ev, s, args, loc: _string_arg(args, 0, 'includes', loc) in s,
    'indexOf': lambda ev, s, args, loc: s.find(_string_arg(args, 0, 'indexOf', loc)),
    'replace': lambda ev, s, args, loc: s.replace(_string_arg(args, 0, 'replace', loc),
                                                  _string_arg(args, 1, 'replace', loc), 1),
    'replaceAll': lambda ev, s, args, loc: s.replace(_string_arg(args, 0, 'replaceAll', loc),
                                                     _string_arg(args, 1, 'replaceAll', loc)),
    'slice': lambda ev, s, args, loc: s[_slice_bounds(len(s), args, 'slice', loc)],
    'toString': lambda ev, s, args, loc: s,
}


def string_split(ev, text, args, location):
    separator = _string_arg(args, 0, 'split', location)
    parts = list(text) if separator == '' else text.split(separator)
    limit = _arg(args, 1)
    if limit is not None:
        parts = parts[:_integer(limit, 'split', location)]
    return parts


STRING_METHODS['split'] = string_split


NUMBER_METHODS = {
    'toString': lambda ev, n, args, loc: format_number(n),
    'toFixed': lambda ev, n, args, loc: f"{n:.{_integer(_arg(args, 0, 0), 'toFixed', loc)}f}",
}


# ------------------------------
# Config methods
# ------------------------------

def _config_getter(kind: Optional[str], required: bool):
    def getter(ev, config: ConfigObject, args, location):
        key = _string_arg(args, 0, 'config', location)
        if not config.has(key):
            if required:
                raise UnboundVariableError(key, location)
            return None
        value = config.lookup(key)
        if kind == 'number' and not is_number(value):
            raise TypeMismatchError(f"Config value '{key}' must be a number, got {type_name(value)}", location)
        if kind == 'bool' and not isinstance(value, bool):
            raise TypeMismatchError(f"Config value '{key}' must be a bool, got {type_name(value)}", location)
        return value
    return getter


CONFIG_METHODS = {
    'require': _config_getter(None, True),
    'get': _config_getter(None, False),
    'requireSecret': _config_getter(None, True),
    'getSecret': _config_getter(None, False),
    'requireNumber': _config_getter('number', True),
    'getNumber': _config_getter('number', False),
    'requireBoolean': _config_getter('bool', True),
    'getBoolean': _config_getter('bool', False),
    'requireObject': _config_getter(None, True),
    'getObject': _config_getter(None, False),
}


def call_method(ev, target: Any, name: str, args: List[Any], location: Optional[SourceLocation]) -> Any:
    if isinstance(target, ConfigObject):
        table = CONFIG_METHODS
    elif isinstance(target, list):
        table = ARRAY_METHODS
    elif isinstance(target, str):
        table = STRING_METHODS
    elif is_number(target):
        table = NUMBER_METHODS
    elif is_unknown(target):
        raise TypeMismatchError(
            f"Cannot call '{name}' on {target}, which is only known after deployment", location)
    elif target is None:
        raise TypeMismatchError(f"Cannot call '{name}' on undefined", location)
    else:
        table = {}
    method = table.get(name)
    if method is None:
        raise TypeMismatchError(f"{type_name(target)} has no method '{name}'", location)
    return method(ev, target, args, location)


# ------------------------------
# Global objects
# ------------------------------

def _plain_map(value, method, location) -> Dict[str, Any]:
    if not isinstance(value, dict):
        raise TypeMismatchError(f"{method}() expects an object, got {type_name(value)}", location)
    return value


def object_assign(ev, args, location):
    target = _plain_map(_arg(args, 0), 'Object.assign', location)
    for source in args[1:]:
        if source is not None:
            target.update(_plain_map(source, 'Object.assign', location))
    return target


def _math(fn: Callable, name: str):
    def call(ev, args, location):
        numbers = [require_number(arg, f"Math.{name}", location) for arg in args]
        if not numbers:
            raise TypeMismatchError(f"Math.{name}() needs at least one argument", location)
        return normalize_number(fn(*numbers))
    return call


def _js_round(value):
    return math.floor(value + 0.5)


def to_string(ev, args, location):
    value = _arg(args, 0)
    if value is None:
        return 'null'
    return to_template_part(value, location)


def to_number(ev, args, location):
    value = _arg(args, 0)
    if isinstance(value, bool):
        return int(value)
    if is_number(value):
        return value
    if isinstance(value, str):
        try:
            return normalize_number(float(value.strip() or 0))
        except ValueError:
            pass
    raise TypeMismatchError(f"Number() cannot convert {value!r}", location)


def interpolate(ev, args, location):
    """``pulumi.interpolate`` receives the already-rendered template"""
    return _arg(args, 0)


def pulumi_concat(ev, args, location):
    return RefTemplate.build([to_template_part(arg, location) for arg in args])


def console_log(ev, args, location):
    logger.debug("console.log at %s: %s", location, ' '.join(str(arg) for arg in args))
    return None


def _namespace(name: str, functions: Dict[str, Callable]) -> BuiltinNamespace:
    return BuiltinNamespace(name, {key: BuiltinFunction(f"{name}.{key}", fn) for key, fn in functions.items()})


GLOBALS: Dict[str, Any] = {
    'Object': _namespace('Object', {
        'entries': lambda ev, args, loc: [[k, v] for k, v in _plain_map(_arg(args, 0), 'Object.entries', loc).items()],
        'keys': lambda ev, args, loc: list(_plain_map(_arg(args, 0), 'Object.keys', loc).keys()),
        'values': lambda ev, args, loc: list(_plain_map(_arg(args, 0), 'Object.values', loc).values()),
        'fromEntries': lambda ev, args, loc: _entries_to_map(_arg(args, 0), 'Object.fromEntries', loc),
        'assign': object_assign,
    }),
    'JSON': _namespace('JSON', {
        'stringify': lambda ev, args, loc: canonical_json(_arg(args, 0), loc),
        'parse': lambda ev, args, loc: from_json(_arg(args, 0), loc),
    }),
    'Math': _namespace('Math', {
        'max': _math(max, 'max'),
        'min': _math(min, 'min'),
        'floor': _math(math.floor, 'floor'),
        'ceil': _math(math.ceil, 'ceil'),
        'abs': _math(abs, 'abs'),
        'round': _math(_js_round, 'round'),
    }),
    'pulumi': _namespace('pulumi', {
        'interpolate': interpolate,
        'output': lambda ev, args, loc: _arg(args, 0),
        'concat': pulumi_concat,
    }),
    'console': _namespace('console', {'log': console_log}),
    'String': BuiltinFunction('String', to_string),
    'Number': BuiltinFunction('Number', to_number),
}
