import copy
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional, Set, Tuple

from .errors import (
    DanglingReferenceError,
    DuplicateResourceError,
    GraphFinalizedError,
    SourceLocation,
)
from .values import ResourceKey, iter_refs, to_plain

logger = logging.getLogger(__name__)


def _read_only(self, *args, **kwargs):
    raise TypeError("Resource attributes are read-only once added to a graph")


class FrozenDict(dict):
    """A dict that refuses mutation; copies come back as plain dicts"""

    __setitem__ = __delitem__ = __ior__ = _read_only
    clear = pop = popitem = setdefault = update = _read_only

    def __copy__(self):
        return dict(self)

    def __deepcopy__(self, memo):
        return {key: copy.deepcopy(value, memo) for key, value in self.items()}


class FrozenList(list):
    """A list that refuses mutation; copies come back as plain lists"""

    __setitem__ = __delitem__ = __iadd__ = __imul__ = _read_only
    append = extend = insert = pop = remove = clear = sort = reverse = _read_only

    def __copy__(self):
        return list(self)

    def __deepcopy__(self, memo):
        return [copy.deepcopy(item, memo) for item in self]


def freeze(value: Any) -> Any:
    if isinstance(value, dict):
        return FrozenDict((key, freeze(item)) for key, item in value.items())
    if isinstance(value, list):
        return FrozenList(freeze(item) for item in value)
    return value


@dataclass(eq=False)
class Resource:
    type: str
    name: str
    attributes: Dict[str, Any] = field(default_factory=dict)
    depends_on: Tuple[ResourceKey, ...] = ()
    location: Optional[SourceLocation] = None

    @property
    def key(self) -> ResourceKey:
        return (self.type, self.name)

    @property
    def resource_id(self) -> str:
        return f"{self.type}.{self.name}"

    def referenced_keys(self) -> Set[ResourceKey]:
        """Keys of every resource this one depends on, explicit or inferred"""
        keys = {ref.key for ref in iter_refs(self.attributes)}
        keys.update(self.depends_on)
        keys.discard(self.key)
        return keys

    def __repr__(self) -> str:
        return f"Resource({self.resource_id})"


class ResourceGraph:
    """Ordered resources plus the dependency relation derived from their references"""

    def __init__(self):
        self._resources: Dict[ResourceKey, Resource] = {}
        self._finalized = False
        self.outputs: Dict[str, Any] = {}

    @property
    def finalized(self) -> bool:
        return self._finalized

    def add_resource(self, type: str, name: str, attributes: Dict[str, Any],
                     depends_on=(), location: Optional[SourceLocation] = None) -> Resource:
        if self._finalized:
            raise GraphFinalizedError(f"Cannot add {type}.{name}: graph is finalized", location)
        key = (type, name)
        if key in self._resources:
            raise DuplicateResourceError(f"{type}.{name}", location)

        resource = Resource(type, name, freeze(attributes), tuple(depends_on), location)
        for target in resource.referenced_keys():
            if target not in self._resources:
                raise DanglingReferenceError(resource.resource_id, f"{target[0]}.{target[1]}", location)

        self._resources[key] = resource
        logger.debug("Added resource %s with %d attributes", resource.resource_id, len(resource.attributes))
        return resource

    def set_output(self, name: str, value: Any):
        if self._finalized:
            raise GraphFinalizedError(f"Cannot set output {name}: graph is finalized")
        self.outputs[name] = value

    def finalize(self) -> 'ResourceGraph':
        self._finalized = True
        return self

    def get(self, type: str, name: str) -> Optional[Resource]:
        return self._resources.get((type, name))

    def dependencies_of(self, resource: Resource) -> Set[Resource]:
        return {self._resources[key] for key in resource.referenced_keys() if key in self._resources}

    def edges(self) -> Set[Tuple[ResourceKey, ResourceKey]]:
        return {(resource.key, dep.key) for resource in self for dep in self.dependencies_of(resource)}

    def keys(self) -> List[ResourceKey]:
        return list(self._resources)

    def __iter__(self) -> Iterator[Resource]:
        return iter(list(self._resources.values()))

    def __len__(self) -> int:
        return len(self._resources)

    def __contains__(self, key) -> bool:
        return key in self._resources

    def to_dict(self) -> Dict[str, Any]:
        resources = []
        for resource in self:
            resources.append({
                'type': resource.type,
                'name': resource.name,
                'attributes': to_plain(resource.attributes),
                'depends_on': sorted(f"{t}.{n}" for t, n in resource.referenced_keys()),
            })
        return {'resources': resources, 'outputs': to_plain(self.outputs)}
