"""Mock provider model: schemas for the resource types both evaluators may create."""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml

from .errors import BindingsError
from .values import ResourceRef, RefTemplate, is_number, snake_case, type_name

logger = logging.getLogger(__name__)

BUILTIN_TYPES = ('string', 'number', 'bool', 'list', 'map', 'any')

# Pulumi puts most EC2 classes at the top of the provider namespace
UNPREFIXED_MODULES = {'ec2'}


@dataclass
class AttributeDefinition:
    name: str
    type: str = 'any'
    required: bool = False

    def validate(self, value: Any) -> Optional[str]:
        if isinstance(value, ResourceRef) or self.type == 'any':
            return None
        if self.type == 'string' and isinstance(value, (str, RefTemplate)):
            return None
        if self.type == 'number' and is_number(value):
            return None
        if self.type == 'bool' and isinstance(value, bool):
            return None
        if self.type == 'list' and isinstance(value, list):
            return None
        if self.type == 'map' and isinstance(value, dict):
            return None
        return f"attribute '{self.name}' must be {self.type}, got {type_name(value)}"


@dataclass
class BlockDefinition:
    name: str
    attributes: Dict[str, AttributeDefinition] = field(default_factory=dict)
    blocks: Dict[str, 'BlockDefinition'] = field(default_factory=dict)
    max_items: Optional[int] = None

    @property
    def single(self) -> bool:
        return self.max_items == 1

    def validate_body(self, values: Dict[str, Any], prefix: str = '') -> List[str]:
        problems = []
        for name, definition in self.attributes.items():
            if name not in values:
                if definition.required:
                    problems.append(f"missing required attribute '{prefix}{name}'")
                continue
            if error := definition.validate(values[name]):
                problems.append(prefix + error)

        for name, block in self.blocks.items():
            if name not in values:
                continue
            value = values[name]
            items = [value] if block.single and isinstance(value, dict) else value
            if not isinstance(items, list) or not all(isinstance(item, dict) for item in items):
                problems.append(f"block '{prefix}{name}' must be a list of objects, got {type_name(value)}")
                continue
            if block.max_items is not None and len(items) > block.max_items:
                problems.append(f"block '{prefix}{name}' allows at most {block.max_items} item(s), got {len(items)}")
            for index, item in enumerate(items):
                problems.extend(block.validate_body(item, f"{prefix}{name}[{index}]."))

        for name in values:
            if name not in self.attributes and name not in self.blocks:
                problems.append(f"unsupported attribute '{prefix}{name}'")
        return problems


@dataclass
class ResourceSchema(BlockDefinition):
    target_types: List[str] = field(default_factory=list)


class ProviderSchema:
    """Registry of resource schemas, keyed by Terraform type name"""

    def __init__(self, resources: Optional[Dict[str, ResourceSchema]] = None):
        self.resources: Dict[str, ResourceSchema] = resources or {}

    def get(self, resource_type: str) -> Optional[ResourceSchema]:
        return self.resources.get(resource_type)

    def block_of(self, resource_type: str, path: List[str]) -> Optional[BlockDefinition]:
        """Nested block definition reached by following ``path`` from a resource"""
        current: Optional[BlockDefinition] = self.get(resource_type)
        for name in path:
            if current is None:
                return None
            current = current.blocks.get(name)
        return current

    def resolve_target_type(self, class_path: str) -> str:
        """Map a target-language class such as ``aws.s3.Bucket`` to ``aws_s3_bucket``"""
        for tf_type, schema in self.resources.items():
            if class_path in schema.target_types:
                return tf_type
        return conventional_type_name(class_path)

    def validate(self, resource_type: str, attributes: Dict[str, Any]) -> List[str]:
        schema = self.get(resource_type)
        if schema is None:
            logger.debug("No schema for %s; skipping validation", resource_type)
            return []
        return schema.validate_body(attributes)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ProviderSchema':
        resources = {}
        for tf_type, body in (data.get('resources') or {}).items():
            body = body or {}
            target = body.get('target_type') or []
            if isinstance(target, str):
                target = [target]
            resources[tf_type] = ResourceSchema(
                name=tf_type,
                attributes=_parse_attributes(body.get('attributes')),
                blocks=_parse_blocks(body.get('blocks')),
                target_types=list(target),
            )
        return cls(resources)


def _parse_attributes(data: Optional[Dict[str, Any]]) -> Dict[str, AttributeDefinition]:
    attributes = {}
    for name, spec in (data or {}).items():
        if isinstance(spec, str):
            spec = {'type': spec}
        spec = spec or {}
        attr_type = spec.get('type', 'any')
        if attr_type not in BUILTIN_TYPES:
            raise BindingsError(f"Attribute '{name}' has unknown type '{attr_type}' in provider schema")
        attributes[name] = AttributeDefinition(name, attr_type, bool(spec.get('required', False)))
    return attributes


def _parse_blocks(data: Optional[Dict[str, Any]]) -> Dict[str, BlockDefinition]:
    blocks = {}
    for name, spec in (data or {}).items():
        spec = spec or {}
        blocks[name] = BlockDefinition(
            name=name,
            attributes=_parse_attributes(spec.get('attributes')),
            blocks=_parse_blocks(spec.get('blocks')),
            max_items=spec.get('max_items'),
        )
    return blocks


def conventional_type_name(class_path: str) -> str:
    parts = class_path.split('.')
    if len(parts) < 2:
        return snake_case(class_path)
    provider, *modules, cls_name = parts
    modules = [m for m in modules if m not in UNPREFIXED_MODULES]
    return '_'.join([provider] + [snake_case(m) for m in modules] + [snake_case(cls_name)])


def load_provider_schema(path: Union[str, Path]) -> ProviderSchema:
    with open(path, 'r') as f:
        try:
            data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise BindingsError(f"Provider schema {path} is not valid YAML: {e}") from e
    if not isinstance(data, dict):
        raise BindingsError(f"Provider schema {path} must be a mapping")
    schema = ProviderSchema.from_dict(data)
    logger.info("Loaded provider schema with %d resource types from %s", len(schema.resources), path)
    return schema
