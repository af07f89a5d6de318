"""Structural comparison of two resource graphs.

Two graphs are equivalent when a bijection between their resources pairs
equal types with deep-equal attributes and preserves the dependency relation.
Logical names are usually shared between the two programs, so the checker
tries the same-name pairing first and only searches for a renaming when that
fails.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Set, Tuple

from .errors import DeadlineExceededError, TooManyResourcesError
from .model import Resource, ResourceGraph
from .values import ResourceKey, ResourceRef, RefTemplate, to_plain, values_equal

logger = logging.getLogger(__name__)

DEFAULT_MAX_RESOURCES = 8
DEFAULT_STEP_BUDGET = 100_000


def _key_str(key: ResourceKey) -> str:
    return f"{key[0]}.{key[1]}"


@dataclass
class AttributeDiff:
    path: str
    kind: str  # 'added', 'removed' or 'changed'
    left: Any = None
    right: Any = None

    def swapped(self) -> 'AttributeDiff':
        kind = {'added': 'removed', 'removed': 'added'}.get(self.kind, self.kind)
        return AttributeDiff(self.path, kind, self.right, self.left)

    def to_dict(self) -> Dict[str, Any]:
        return {'path': self.path, 'kind': self.kind, 'left': to_plain(self.left), 'right': to_plain(self.right)}


@dataclass
class ResourceDiff:
    left: ResourceKey
    right: ResourceKey
    attributes: List[AttributeDiff] = field(default_factory=list)
    dependencies_only_left: List[ResourceKey] = field(default_factory=list)
    dependencies_only_right: List[ResourceKey] = field(default_factory=list)

    def swapped(self) -> 'ResourceDiff':
        return ResourceDiff(
            self.right, self.left,
            [diff.swapped() for diff in self.attributes],
            list(self.dependencies_only_right),
            list(self.dependencies_only_left),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'left': _key_str(self.left),
            'right': _key_str(self.right),
            'attributes': [diff.to_dict() for diff in self.attributes],
            'dependencies_only_left': [_key_str(k) for k in self.dependencies_only_left],
            'dependencies_only_right': [_key_str(k) for k in self.dependencies_only_right],
        }


@dataclass
class EquivalenceResult:
    equivalent: bool
    strategy: str  # 'same-name', 'search' or 'none'
    pairing: Dict[ResourceKey, ResourceKey] = field(default_factory=dict)
    removed: List[ResourceKey] = field(default_factory=list)  # only in the left graph
    added: List[ResourceKey] = field(default_factory=list)  # only in the right graph
    changed: List[ResourceDiff] = field(default_factory=list)
    outputs: List[AttributeDiff] = field(default_factory=list)

    def swapped(self) -> 'EquivalenceResult':
        return EquivalenceResult(
            self.equivalent,
            self.strategy,
            {right: left for left, right in self.pairing.items()},
            list(self.added),
            list(self.removed),
            [diff.swapped() for diff in self.changed],
            [diff.swapped() for diff in self.outputs],
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'equivalent': self.equivalent,
            'strategy': self.strategy,
            'pairing': {_key_str(k): _key_str(v) for k, v in self.pairing.items()},
            'removed': [_key_str(k) for k in self.removed],
            'added': [_key_str(k) for k in self.added],
            'changed': [diff.to_dict() for diff in self.changed],
            'outputs': [diff.to_dict() for diff in self.outputs],
        }


def compare(graph_a: ResourceGraph, graph_b: ResourceGraph,
            max_resources: int = DEFAULT_MAX_RESOURCES,
            step_budget: int = DEFAULT_STEP_BUDGET,
            deadline: Optional[float] = None,
            compare_outputs: bool = False) -> EquivalenceResult:
    """Compare two graphs; a mismatch is reported in the result, never raised.

    ``deadline`` is a wall-clock budget in seconds for the renaming search.
    """
    pairing = _same_name_pairing(graph_a, graph_b)
    if pairing is not None and _pairing_holds(graph_a, graph_b, pairing):
        output_diffs = _output_diffs(graph_a, graph_b, pairing) if compare_outputs else []
        logger.debug("Same-name pairing holds for %d resources", len(pairing))
        return EquivalenceResult(not output_diffs, 'same-name', pairing, outputs=output_diffs)

    if _same_type_census(graph_a, graph_b):
        search = _PairingSearch(graph_a, graph_b, step_budget, deadline)
        # Only resources with several candidates make the search combinatorial
        if not search.impossible and search.ambiguous > max_resources:
            raise TooManyResourcesError(search.ambiguous, max_resources)
        searched = search.run()
        if searched is not None:
            output_diffs = _output_diffs(graph_a, graph_b, searched) if compare_outputs else []
            logger.debug("Renaming search found a pairing for %d resources", len(searched))
            return EquivalenceResult(not output_diffs, 'search', searched, outputs=output_diffs)

    return _mismatch(graph_a, graph_b, compare_outputs)


def _same_name_pairing(graph_a: ResourceGraph, graph_b: ResourceGraph) -> Optional[Dict[ResourceKey, ResourceKey]]:
    if set(graph_a.keys()) != set(graph_b.keys()):
        return None
    return {key: key for key in graph_a.keys()}


def _same_type_census(graph_a: ResourceGraph, graph_b: ResourceGraph) -> bool:
    def census(graph):
        counts: Dict[str, int] = {}
        for resource in graph:
            counts[resource.type] = counts.get(resource.type, 0) + 1
        return counts
    return len(graph_a) == len(graph_b) and census(graph_a) == census(graph_b)


def _mapped_dependencies(graph: ResourceGraph, resource: Resource, pairing: Dict[ResourceKey, ResourceKey]) -> Set[ResourceKey]:
    return {pairing.get(dep.key, dep.key) for dep in graph.dependencies_of(resource)}


def _dependency_keys(graph: ResourceGraph, resource: Resource) -> Set[ResourceKey]:
    return {dep.key for dep in graph.dependencies_of(resource)}


def _pairing_holds(graph_a: ResourceGraph, graph_b: ResourceGraph, pairing: Dict[ResourceKey, ResourceKey]) -> bool:
    for key_a, key_b in pairing.items():
        left = graph_a.get(*key_a)
        right = graph_b.get(*key_b)
        if left is None or right is None or left.type != right.type:
            return False
        if not values_equal(left.attributes, right.attributes, pairing):
            return False
        if _mapped_dependencies(graph_a, left, pairing) != _dependency_keys(graph_b, right):
            return False
    return True


def _output_diffs(graph_a: ResourceGraph, graph_b: ResourceGraph, pairing) -> List[AttributeDiff]:
    return diff_values(graph_a.outputs, graph_b.outputs, pairing)


def _mismatch(graph_a: ResourceGraph, graph_b: ResourceGraph, compare_outputs: bool) -> EquivalenceResult:
    keys_a = graph_a.keys()
    keys_b = set(graph_b.keys())
    shared = [key for key in keys_a if key in keys_b]
    identity = {key: key for key in shared}

    changed = []
    for key in shared:
        left = graph_a.get(*key)
        right = graph_b.get(*key)
        deps_left = _dependency_keys(graph_a, left)
        deps_right = _dependency_keys(graph_b, right)
        diff = ResourceDiff(
            key, key,
            diff_values(left.attributes, right.attributes, identity),
            sorted(deps_left - deps_right),
            sorted(deps_right - deps_left),
        )
        if diff.attributes or diff.dependencies_only_left or diff.dependencies_only_right:
            changed.append(diff)

    result = EquivalenceResult(
        equivalent=False,
        strategy='none',
        pairing=identity,
        removed=[key for key in keys_a if key not in keys_b],
        added=[key for key in graph_b.keys() if key not in set(keys_a)],
        changed=changed,
        outputs=_output_diffs(graph_a, graph_b, identity) if compare_outputs else [],
    )
    logger.info("Graphs differ: %d removed, %d added, %d changed",
                len(result.removed), len(result.added), len(result.changed))
    return result


def diff_values(left: Any, right: Any, ref_map=None, path: str = '') -> List[AttributeDiff]:
    """Attribute-level differences between two values, recursing into maps and equal-length lists"""
    if isinstance(left, dict) and isinstance(right, dict):
        diffs = []
        for key in list(left) + [k for k in right if k not in left]:
            child = f"{path}.{key}" if path else str(key)
            if key not in right:
                diffs.append(AttributeDiff(child, 'removed', left=left[key]))
            elif key not in left:
                diffs.append(AttributeDiff(child, 'added', right=right[key]))
            else:
                diffs.extend(diff_values(left[key], right[key], ref_map, child))
        return diffs
    if isinstance(left, list) and isinstance(right, list) and len(left) == len(right):
        diffs = []
        for index, (a, b) in enumerate(zip(left, right)):
            diffs.extend(diff_values(a, b, ref_map, f"{path}[{index}]"))
        return diffs
    if values_equal(left, right, ref_map):
        return []
    return [AttributeDiff(path, 'changed', left, right)]


def _shape(value: Any) -> Any:
    """Value with every reference stripped of its resource name"""
    if isinstance(value, ResourceRef):
        return ResourceRef(value.type, '*', value.path)
    if isinstance(value, RefTemplate):
        return RefTemplate(tuple(_shape(part) for part in value.parts))
    if isinstance(value, list):
        return [_shape(item) for item in value]
    if isinstance(value, dict):
        return {key: _shape(item) for key, item in value.items()}
    return value


class _PairingSearch:
    """Backtracking search for a type-, attribute- and edge-preserving bijection"""

    def __init__(self, graph_a: ResourceGraph, graph_b: ResourceGraph,
                 step_budget: int, deadline: Optional[float]):
        self.graph_a = graph_a
        self.graph_b = graph_b
        self.step_budget = step_budget
        self.expires_at = time.monotonic() + deadline if deadline is not None else None
        self.steps = 0

        self.deps_a = {r.key: _dependency_keys(graph_a, r) for r in graph_a}
        self.deps_b = {r.key: _dependency_keys(graph_b, r) for r in graph_b}
        self.candidates: Dict[ResourceKey, List[ResourceKey]] = {}
        for left in graph_a:
            shape = _shape(left.attributes)
            self.candidates[left.key] = [
                right.key for right in graph_b
                if right.type == left.type
                and len(self.deps_b[right.key]) == len(self.deps_a[left.key])
                and values_equal(shape, _shape(right.attributes))
            ]

    @property
    def impossible(self) -> bool:
        return any(not options for options in self.candidates.values())

    @property
    def ambiguous(self) -> int:
        return sum(1 for options in self.candidates.values() if len(options) > 1)

    def run(self) -> Optional[Dict[ResourceKey, ResourceKey]]:
        if self.impossible:
            return None
        order = sorted(self.candidates, key=lambda key: len(self.candidates[key]))
        return self._extend(order, 0, {}, set())

    def _tick(self):
        self.steps += 1
        if self.steps > self.step_budget:
            raise DeadlineExceededError(f"Renaming search exhausted its budget of {self.step_budget} steps")
        if self.expires_at is not None and time.monotonic() > self.expires_at:
            raise DeadlineExceededError("Renaming search exceeded its deadline")

    def _consistent(self, key_a: ResourceKey, key_b: ResourceKey, pairing: Dict[ResourceKey, ResourceKey]) -> bool:
        for other_a, other_b in pairing.items():
            if (other_a in self.deps_a[key_a]) != (other_b in self.deps_b[key_b]):
                return False
            if (key_a in self.deps_a[other_a]) != (key_b in self.deps_b[other_b]):
                return False
        return True

    def _extend(self, order, index, pairing, used) -> Optional[Dict[ResourceKey, ResourceKey]]:
        if index == len(order):
            if _pairing_holds(self.graph_a, self.graph_b, pairing):
                return dict(pairing)
            return None
        key_a = order[index]
        for key_b in self.candidates[key_a]:
            if key_b in used:
                continue
            self._tick()
            if not self._consistent(key_a, key_b, pairing):
                continue
            pairing[key_a] = key_b
            used.add(key_b)
            found = self._extend(order, index + 1, pairing, used)
            if found is not None:
                return found
            del pairing[key_a]
            used.discard(key_b)
        return None
