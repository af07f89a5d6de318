import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional, Set, Tuple

from resource_graph.errors import (
    DependencyCycleError,
    DuplicateKeyError,
    EvaluationError,
    ParseError,
    SchemaValidationError,
    SourceLocation,
    TypeMismatchError,
    UnboundVariableError,
)
from resource_graph.model import ResourceGraph
from resource_graph.provider import ProviderSchema
from resource_graph.values import (
    RefTemplate,
    ResourceKey,
    ResourceRef,
    arithmetic,
    format_number,
    is_number,
    is_unknown,
    iter_refs,
    ordering,
    require_bool,
    require_number,
    to_template_part,
    type_name,
    values_equal,
)
from .ast_nodes import *
from .functions import FUNCTIONS
from .parser import parse_hcl
from .tokentypes import TokenType

logger = logging.getLogger(__name__)

IGNORED_BLOCKS = ('terraform', 'provider', 'data', 'module')
RESOURCE_META_ATTRIBUTES = ('count', 'for_each', 'depends_on', 'provider')
RESOURCE_META_BLOCKS = ('lifecycle', 'provisioner', 'connection')

_MISSING = object()


@dataclass
class Scope:
    variables: Dict[str, Any] = field(default_factory=dict)
    parent: Optional['Scope'] = None

    def get(self, name: str) -> Any:
        if name in self.variables:
            return self.variables[name]
        if self.parent:
            return self.parent.get(name)
        return _MISSING

    def child(self, variables: Dict[str, Any]) -> 'Scope':
        return Scope(dict(variables), self)


@dataclass
class _ResourceDecl:
    type: str
    name: str
    node: NamedBlockNode
    instances: Optional[List[Tuple[str, Dict[str, Any]]]] = None
    mode: str = 'single'

    @property
    def address(self) -> str:
        return f"{self.type}.{self.name}"


class _Namespace:
    """Root traversal such as ``var``, ``local`` or a resource type; never a value itself"""

    def __init__(self, label: str, resolver):
        self.label = label
        self.resolver = resolver

    def get(self, name: str, location: Optional[SourceLocation]) -> Any:
        return self.resolver(name, location)


class HCLEvaluator(ASTVisitor):
    """Evaluates a parsed HCL document into a ResourceGraph under a binding context"""

    def __init__(self, document: BlockNode, bindings: Optional[Dict[str, Any]] = None,
                 provider_schema: Optional[ProviderSchema] = None, file: Optional[str] = None):
        self.document = document
        self.bindings = dict(bindings or {})
        self.schema = provider_schema
        self.file = file
        self.root = Scope()
        self.scope = self.root
        self._context: Tuple[str, List[str], bool] = ('', [], False)
        self._in_progress: List[str] = []

        self.variables: Dict[str, NamedBlockNode] = {}
        self.local_nodes: Dict[str, KeyValueNode] = {}
        self.local_values: Dict[str, Any] = {}
        self.resources: Dict[ResourceKey, _ResourceDecl] = {}
        self.resource_types: Set[str] = set()
        self.outputs: List[NamedBlockNode] = []
        self._collect()

    # ------------------------------
    # Declarations
    # ------------------------------

    def _collect(self):
        for stmt in self.document.statements:
            if isinstance(stmt, KeyValueNode):
                raise ParseError(f"Unexpected attribute '{stmt.key}' at top level", stmt.location)
            if stmt.name == 'variable':
                name = self._labels(stmt, 1)[0]
                if name in self.variables:
                    raise ParseError(f"Duplicate variable '{name}'", stmt.location)
                self.variables[name] = stmt
            elif stmt.name == 'locals':
                self._labels(stmt, 0)
                for attr in stmt.block.statements:
                    if not isinstance(attr, KeyValueNode):
                        raise ParseError("Blocks are not allowed inside locals", attr.location)
                    if attr.key in self.local_nodes:
                        raise ParseError(f"Duplicate local value '{attr.key}'", attr.location)
                    self.local_nodes[attr.key] = attr
            elif stmt.name == 'resource':
                resource_type, name = self._labels(stmt, 2)
                key = (resource_type, name)
                if key in self.resources:
                    raise ParseError(f"Duplicate resource {resource_type}.{name}", stmt.location)
                self.resources[key] = _ResourceDecl(resource_type, name, stmt)
                self.resource_types.add(resource_type)
            elif stmt.name == 'output':
                self._labels(stmt, 1)
                self.outputs.append(stmt)
            elif stmt.name in IGNORED_BLOCKS:
                logger.warning("Skipping unsupported '%s' block at %s", stmt.name, stmt.location)
            else:
                raise ParseError(f"Unsupported block type '{stmt.name}'", stmt.location)

    def _labels(self, node: NamedBlockNode, count: int) -> List[str]:
        if len(node.labels) != count:
            raise ParseError(f"Block '{node.name}' needs {count} label(s), got {len(node.labels)}", node.location)
        return node.labels

    # ------------------------------
    # Evaluation entry point
    # ------------------------------

    def evaluate(self) -> ResourceGraph:
        pending = []
        for decl in self.resources.values():
            for instance_name, iteration in self._instances(decl):
                attributes, depends_on = self._evaluate_instance(decl, instance_name, iteration)
                pending.append(((decl.type, instance_name), attributes, depends_on, decl.node.location))

        graph = ResourceGraph()
        for (resource_type, name), attributes, depends_on, location in self._dependency_order(pending):
            if self.schema is not None:
                problems = self.schema.validate(resource_type, attributes)
                if problems:
                    raise SchemaValidationError(f"{resource_type}.{name}", problems, location)
            graph.add_resource(resource_type, name, attributes, depends_on, location)

        for output in self.outputs:
            value_attr = output.block.attribute('value')
            if value_attr is None:
                raise ParseError(f"Output '{output.labels[0]}' has no value", output.location)
            with self._with_scope(self.root):
                graph.set_output(output.labels[0], self._value(value_attr.value))

        logger.info("Evaluated HCL into %d resources and %d outputs", len(graph), len(graph.outputs))
        return graph.finalize()

    def _evaluate_instance(self, decl: _ResourceDecl, instance_name: str, iteration: Dict[str, Any]):
        logger.debug("Evaluating %s.%s", decl.type, instance_name)
        with self._with_scope(self.root.child(iteration)), self._block_context(decl.type, [], True):
            attributes = decl.node.block.accept(self)
            depends_on = []
            attr = decl.node.block.attribute('depends_on')
            if attr is not None:
                value = self._value(attr.value)
                if not isinstance(value, list) or not all(isinstance(item, (ResourceRef, list, dict)) for item in value):
                    raise TypeMismatchError("depends_on must be a list of resource references", attr.location)
                for ref in iter_refs(value):
                    if ref.key not in depends_on:
                        depends_on.append(ref.key)
        return attributes, depends_on

    def _dependency_order(self, pending: list) -> list:
        known = {item[0] for item in pending}
        deps = {}
        for key, attributes, depends_on, _ in pending:
            refs = {ref.key for ref in iter_refs(attributes)} | set(depends_on)
            refs.discard(key)
            deps[key] = {ref for ref in refs if ref in known}

        ordered, placed = [], set()
        remaining = list(pending)
        while remaining:
            for item in remaining:
                if deps[item[0]] <= placed:
                    ordered.append(item)
                    placed.add(item[0])
                    remaining.remove(item)
                    break
            else:
                cycle = self._find_cycle([item[0] for item in remaining], deps)
                raise DependencyCycleError([f"{t}.{n}" for t, n in cycle], remaining[0][3])
        return ordered

    @staticmethod
    def _find_cycle(keys: List[ResourceKey], deps: Dict[ResourceKey, Set[ResourceKey]]) -> List[ResourceKey]:
        path: List[ResourceKey] = []
        current = keys[0]
        while current not in path:
            path.append(current)
            current = next(dep for dep in deps[current] if dep in keys)
        return path[path.index(current):] + [current]

    # ------------------------------
    # Resolution of variables, locals and resources
    # ------------------------------

    @contextmanager
    def _with_scope(self, scope: Scope) -> Iterator[None]:
        previous = self.scope
        self.scope = scope
        try:
            yield
        finally:
            self.scope = previous

    @contextmanager
    def _block_context(self, resource_type: str, path: List[str], skip_meta: bool) -> Iterator[None]:
        previous = self._context
        self._context = (resource_type, path, skip_meta)
        try:
            yield
        finally:
            self._context = previous

    @contextmanager
    def _guard(self, label: str, location: Optional[SourceLocation]) -> Iterator[None]:
        if label in self._in_progress:
            raise DependencyCycleError(self._in_progress[self._in_progress.index(label):] + [label], location)
        self._in_progress.append(label)
        try:
            yield
        finally:
            self._in_progress.pop()

    def _variable(self, name: str, location: Optional[SourceLocation]) -> Any:
        if name in self.bindings:
            return self.bindings[name]
        declaration = self.variables.get(name)
        if declaration is not None:
            default = declaration.block.attribute('default')
            if default is not None:
                with self._with_scope(self.root):
                    return self._value(default.value)
        raise UnboundVariableError(f"var.{name}", location)

    def _local(self, name: str, location: Optional[SourceLocation]) -> Any:
        if name in self.local_values:
            return self.local_values[name]
        node = self.local_nodes.get(name)
        if node is None:
            raise UnboundVariableError(f"local.{name}", location)
        with self._guard(f"local.{name}", location), self._with_scope(self.root):
            value = self._value(node.value)
        self.local_values[name] = value
        return value

    def _resource_namespace(self, resource_type: str) -> _Namespace:
        def resolve(name: str, location: Optional[SourceLocation]) -> Any:
            decl = self.resources.get((resource_type, name))
            if decl is None:
                raise UnboundVariableError(f"{resource_type}.{name}", location)
            instances = self._instances(decl)
            if decl.mode == 'count':
                return [ResourceRef(resource_type, instance) for instance, _ in instances]
            if decl.mode == 'for_each':
                return {iteration['each']['key']: ResourceRef(resource_type, instance)
                        for instance, iteration in instances}
            return ResourceRef(resource_type, name)
        return _Namespace(resource_type, resolve)

    def _instances(self, decl: _ResourceDecl) -> List[Tuple[str, Dict[str, Any]]]:
        if decl.instances is not None:
            return decl.instances
        body = decl.node.block
        count_attr = body.attribute('count')
        for_each_attr = body.attribute('for_each')
        if count_attr is not None and for_each_attr is not None:
            raise ParseError(f"{decl.address} cannot use both count and for_each", decl.node.location)

        with self._guard(f"{decl.address} (instances)", decl.node.location), self._with_scope(self.root):
            if count_attr is not None:
                count = self._value(count_attr.value)
                if not is_number(count) or count < 0 or int(count) != count:
                    raise TypeMismatchError(f"count must be a non-negative whole number, got {count!r}", count_attr.location)
                decl.mode = 'count'
                instances = [(f"{decl.name}[{i}]", {'count': {'index': i}}) for i in range(int(count))]
            elif for_each_attr is not None:
                collection = self._value(for_each_attr.value)
                decl.mode = 'for_each'
                instances = [(f'{decl.name}["{key}"]', {'each': {'key': key, 'value': value}})
                             for key, value in self._for_each_items(collection, for_each_attr.location)]
            else:
                instances = [(decl.name, {})]
        decl.instances = instances
        return instances

    def _for_each_items(self, collection: Any, location: Optional[SourceLocation]) -> List[Tuple[str, Any]]:
        if isinstance(collection, dict):
            return list(collection.items())
        if isinstance(collection, list):
            items = []
            for item in collection:
                if not isinstance(item, str):
                    raise TypeMismatchError(f"for_each over a list needs strings, got {type_name(item)}", location)
                if item not in [key for key, _ in items]:
                    items.append((item, item))
            return items
        raise TypeMismatchError(f"for_each needs a map or a set of strings, got {type_name(collection)}", location)

    # ------------------------------
    # Bodies and blocks
    # ------------------------------

    def visit_block(self, node: BlockNode) -> Dict[str, Any]:
        resource_type, path, skip_meta = self._context
        attributes: Dict[str, Any] = {}
        assigned: Set[str] = set()
        block_names: Set[str] = set()

        for stmt in node.statements:
            if isinstance(stmt, KeyValueNode):
                if skip_meta and stmt.key in RESOURCE_META_ATTRIBUTES:
                    continue
                if stmt.key in assigned or stmt.key in block_names:
                    raise ParseError(f"Attribute '{stmt.key}' is defined more than once", stmt.location)
                assigned.add(stmt.key)
                value = stmt.accept(self)
                if value is not None:
                    attributes[stmt.key] = value
                continue

            if skip_meta and stmt.name in RESOURCE_META_BLOCKS:
                continue
            if stmt.name == 'dynamic':
                name = self._labels(stmt, 1)[0]
                items = self._expand_dynamic(stmt, name)
            else:
                name = stmt.name
                items = [stmt.accept(self)]
            if name in assigned:
                raise ParseError(f"Block '{name}' conflicts with an attribute of the same name", stmt.location)
            block_names.add(name)
            attributes.setdefault(name, []).extend(items)

        if self.schema is not None:
            for name in block_names:
                definition = self.schema.block_of(resource_type, path + [name])
                if definition is not None and definition.single and name in attributes:
                    items = attributes[name]
                    if len(items) == 1:
                        attributes[name] = items[0]
                    elif not items:
                        del attributes[name]
        for name in block_names:
            if attributes.get(name) == []:
                del attributes[name]
        return attributes

    def visit_key_value(self, node: KeyValueNode) -> Any:
        return self._value(node.value)

    def visit_named_block(self, node: NamedBlockNode) -> Dict[str, Any]:
        resource_type, path, _ = self._context
        with self._block_context(resource_type, path + [node.name], False):
            return node.block.accept(self)

    def _expand_dynamic(self, node: NamedBlockNode, name: str) -> List[Dict[str, Any]]:
        body = node.block
        for_each = body.attribute('for_each')
        if for_each is None:
            raise ParseError(f"Dynamic block '{name}' needs a for_each argument", node.location)
        iterator = name
        iterator_attr = body.attribute('iterator')
        if iterator_attr is not None:
            if not isinstance(iterator_attr.value, IdentifierNode):
                raise ParseError("Dynamic block iterator must be a bare name", iterator_attr.location)
            iterator = iterator_attr.value.name
        contents = [block for block in body.blocks() if block.name == 'content']
        if len(contents) != 1:
            raise ParseError(f"Dynamic block '{name}' needs exactly one content block", node.location)

        collection = self._value(for_each.value)
        if collection is None:
            raise TypeMismatchError(f"Dynamic block '{name}' for_each is null", for_each.location)

        items = []
        resource_type, path, _ = self._context
        for key, value in self._iterate(collection, for_each.location):
            scope = self.scope.child({iterator: {'key': key, 'value': value}})
            with self._with_scope(scope), self._block_context(resource_type, path + [name], False):
                items.append(contents[0].block.accept(self))
        logger.debug("Expanded dynamic block '%s' into %d blocks", name, len(items))
        return items

    # ------------------------------
    # Expressions
    # ------------------------------

    def _value(self, node: ASTNode) -> Any:
        value = node.accept(self)
        if isinstance(value, _Namespace):
            raise TypeMismatchError(f"'{value.label}' cannot be used as a value on its own", getattr(node, 'location', None))
        return value

    def _iterate(self, collection: Any, location: Optional[SourceLocation]) -> List[Tuple[Any, Any]]:
        if isinstance(collection, list):
            return list(enumerate(collection))
        if isinstance(collection, dict):
            return list(collection.items())
        if is_unknown(collection):
            raise TypeMismatchError(f"Cannot iterate over {collection}, which is only known after apply", location)
        raise TypeMismatchError(f"Cannot iterate over a {type_name(collection)} value", location)

    def visit_literal(self, node: LiteralNode) -> Any:
        return node.value

    def visit_identifier(self, node: IdentifierNode) -> Any:
        value = self.scope.get(node.name)
        if value is not _MISSING:
            return value
        if node.name == 'var':
            return _Namespace('var', self._variable)
        if node.name == 'local':
            return _Namespace('local', self._local)
        if node.name in self.resource_types:
            return self._resource_namespace(node.name)
        raise UnboundVariableError(node.name, node.location)

    def visit_attribute_access(self, node: AttributeAccessNode) -> Any:
        target = node.object.accept(self)
        if isinstance(target, _Namespace):
            return target.get(node.attribute, node.location)
        return self._get_attribute(target, node.attribute, node.location, lenient=False)

    def _get_attribute(self, target: Any, attribute: str, location: Optional[SourceLocation], lenient: bool) -> Any:
        if isinstance(target, dict):
            if attribute in target:
                return target[attribute]
            if lenient:
                return None
            raise TypeMismatchError(f"Object has no attribute '{attribute}'", location)
        if isinstance(target, ResourceRef):
            return target.child(attribute)
        if target is None:
            if lenient:
                return None
            raise TypeMismatchError(f"Cannot read attribute '{attribute}' of a null value", location)
        raise TypeMismatchError(f"Cannot read attribute '{attribute}' of a {type_name(target)} value", location)

    def visit_index(self, node: IndexNode) -> Any:
        target = node.object.accept(self)
        index = self._value(node.index)
        if isinstance(target, _Namespace):
            if not isinstance(index, str):
                raise TypeMismatchError(f"'{target.label}' can only be indexed by name", node.location)
            return target.get(index, node.location)
        return self._get_index(target, index, node.location, lenient=False)

    def _get_index(self, target: Any, index: Any, location: Optional[SourceLocation], lenient: bool) -> Any:
        if is_unknown(index):
            raise TypeMismatchError(f"Cannot index with {index}, which is only known after apply", location)
        if isinstance(target, list):
            if not is_number(index) or int(index) != index:
                raise TypeMismatchError(f"List index must be a whole number, got {type_name(index)}", location)
            if not 0 <= index < len(target):
                raise TypeMismatchError(f"Index {format_number(index)} out of range for list of {len(target)}", location)
            return target[int(index)]
        if isinstance(target, dict):
            key = format_number(index) if is_number(index) else index
            if not isinstance(key, str):
                raise TypeMismatchError(f"Map key must be a string, got {type_name(index)}", location)
            if key not in target:
                if lenient:
                    return None
                raise TypeMismatchError(f"Map has no key '{key}'", location)
            return target[key]
        if isinstance(target, ResourceRef):
            return target.child(int(index) if is_number(index) else index)
        if target is None and lenient:
            return None
        raise TypeMismatchError(f"Cannot index a {type_name(target)} value", location)

    def visit_splat(self, node: SplatNode) -> List[Any]:
        source = self._value(node.source)
        if source is None:
            return []
        elements = source if isinstance(source, list) else [source]
        steps = [step if isinstance(step, str) else self._value(step) for step in node.traversal]
        kinds = [isinstance(step, str) for step in node.traversal]

        result = []
        for element in elements:
            current = element
            for step, is_attribute in zip(steps, kinds):
                if is_attribute:
                    current = self._get_attribute(current, step, node.location, lenient=True)
                else:
                    current = self._get_index(current, step, node.location, lenient=True)
            result.append(current)
        return result

    def visit_function_call(self, node: FunctionCallNode) -> Any:
        function = FUNCTIONS.get(node.name)
        if function is None:
            raise EvaluationError(f"Call to unknown function '{node.name}'", node.location)
        args = [self._value(arg) for arg in node.arguments]
        if node.expand_final:
            last = args.pop() if args else None
            if not isinstance(last, list):
                raise TypeMismatchError(f"Expanding '...' needs a list, got {type_name(last)}", node.location)
            args.extend(last)
        return function(args, node.location)

    def visit_expression(self, node: ExpressionNode) -> Any:
        left = self._value(node.left)
        right = self._value(node.right)
        op = node.operator.value
        kind = node.operator.type
        if kind in (TokenType.AND, TokenType.OR):
            a = require_bool(left, op, node.location)
            b = require_bool(right, op, node.location)
            return (a and b) if kind == TokenType.AND else (a or b)
        if kind in (TokenType.EQUAL_EQUAL, TokenType.NOT_EQUAL):
            if any(True for _ in iter_refs([left, right])):
                raise TypeMismatchError(f"Operator '{op}' cannot compare values only known after apply", node.location)
            equal = values_equal(left, right)
            return equal if kind == TokenType.EQUAL_EQUAL else not equal
        if kind in (TokenType.LESS_THAN, TokenType.LESS_EQUAL, TokenType.GREATER_THAN, TokenType.GREATER_EQUAL):
            return ordering(op, left, right, node.location)
        return arithmetic(op, left, right, node.location)

    def visit_unary(self, node: UnaryNode) -> Any:
        operand = self._value(node.operand)
        if node.operator.type == TokenType.NOT:
            return not require_bool(operand, '!', node.location)
        return arithmetic('-', 0, require_number(operand, '-', node.location), node.location)

    def visit_ternary_expression(self, node: TernaryExpressionNode) -> Any:
        condition = require_bool(self._value(node.condition), '?:', node.location)
        # Only the selected branch is evaluated
        if condition:
            return self._value(node.true_expr)
        return self._value(node.false_expr)

    def visit_list(self, node: ListNode) -> List[Any]:
        return [self._value(element) for element in node.elements]

    def visit_object(self, node: ObjectNode) -> Dict[str, Any]:
        result = {}
        for key_node, value_node in node.items:
            key = self._object_key(self._value(key_node), getattr(key_node, 'location', None))
            result[key] = self._value(value_node)
        return result

    def _object_key(self, key: Any, location: Optional[SourceLocation]) -> str:
        if isinstance(key, str):
            return key
        if isinstance(key, bool) or is_number(key):
            return to_template_part(key, location)
        raise TypeMismatchError(f"Object key must be a string, got {type_name(key)}", location)

    def visit_for_expression(self, node: ForExpressionNode) -> Any:
        collection = self._value(node.collection)
        items = self._iterate(collection, node.location)
        result: Any = {} if node.is_map else []

        for key, value in items:
            bound = {node.value_var: value}
            if node.key_var:
                bound[node.key_var] = key
            with self._with_scope(self.scope.child(bound)):
                if node.condition is not None:
                    keep = require_bool(self._value(node.condition), 'if', node.condition.location)
                    if not keep:
                        continue
                if not node.is_map:
                    result.append(self._value(node.value_expr))
                    continue
                map_key = self._object_key(self._value(node.key_expr), node.key_expr.location)
                map_value = self._value(node.value_expr)
            if node.grouping:
                result.setdefault(map_key, []).append(map_value)
            elif map_key in result:
                raise DuplicateKeyError(map_key, node.location)
            else:
                result[map_key] = map_value
        return result

    # ------------------------------
    # Templates
    # ------------------------------

    def visit_template(self, node: TemplateNode) -> Any:
        single = node.single_interpolation
        if single is not None:
            return self._value(single)
        return RefTemplate.build(self._render(node.parts))

    def _render(self, parts: List[ASTNode]) -> List[Any]:
        pieces = []
        for part in parts:
            if isinstance(part, LiteralNode):
                pieces.append(part.value)
            else:
                pieces.extend(part.accept(self))
        return pieces

    def visit_interpolation(self, node: InterpolationNode) -> List[Any]:
        return [to_template_part(self._value(node.expression), node.location)]

    def visit_template_if(self, node: TemplateIfNode) -> List[Any]:
        if require_bool(self._value(node.condition), '%{if}', node.location):
            return self._render(node.then_parts)
        return self._render(node.else_parts)

    def visit_template_for(self, node: TemplateForNode) -> List[Any]:
        pieces = []
        for key, value in self._iterate(self._value(node.collection), node.location):
            bound = {node.value_var: value}
            if node.key_var:
                bound[node.key_var] = key
            with self._with_scope(self.scope.child(bound)):
                pieces.extend(self._render(node.body))
        return pieces


def evaluate_hcl(source: str, bindings: Optional[Dict[str, Any]] = None,
                 provider_schema: Optional[ProviderSchema] = None,
                 file: Optional[str] = None) -> ResourceGraph:
    """Parse and evaluate an HCL document; raises on the first error, never returns a partial graph"""
    document = parse_hcl(source, file)
    return HCLEvaluator(document, bindings, provider_schema, file).evaluate()
