import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Set

from resource_graph.errors import (
    EvaluationError,
    ParseError,
    SchemaValidationError,
    SourceLocation,
    TypeMismatchError,
    UnboundVariableError,
)
from resource_graph.model import ResourceGraph
from resource_graph.provider import ProviderSchema, conventional_type_name
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
    require_number,
    snake_case,
    to_template_part,
    type_name,
    values_equal,
)
from .ast_nodes import *
from .builtins import GLOBALS, BuiltinFunction, BuiltinNamespace, ConfigObject, call_method, truthy
from .parser import parse_ts
from .tokentypes import TokenType

logger = logging.getLogger(__name__)

CONFIG_CLASSES = ('pulumi.Config', 'Config')

_MISSING = object()


@dataclass
class Scope:
    variables: Dict[str, Any] = field(default_factory=dict)
    constants: Set[str] = field(default_factory=set)
    parent: Optional['Scope'] = None

    def declare(self, name: str, value: Any, constant: bool, location: Optional[SourceLocation]):
        if name in self.variables:
            raise ParseError(f"Cannot redeclare block-scoped variable '{name}'", location)
        self.variables[name] = value
        if constant:
            self.constants.add(name)

    def get(self, name: str) -> Any:
        if name in self.variables:
            return self.variables[name]
        if self.parent:
            return self.parent.get(name)
        return _MISSING

    def assign(self, name: str, value: Any, location: Optional[SourceLocation]):
        if name in self.variables:
            if name in self.constants:
                raise TypeMismatchError(f"Assignment to constant variable '{name}'", location)
            self.variables[name] = value
        elif self.parent:
            self.parent.assign(name, value, location)
        else:
            raise UnboundVariableError(name, location)


@dataclass
class Closure:
    params: List[Pattern]
    body: ASTNode
    scope: Scope

    def __repr__(self) -> str:
        return f"<function ({len(self.params)} params)>"


class _Return(Exception):
    def __init__(self, value: Any):
        super().__init__()
        self.value = value


class TSEvaluator(ASTVisitor):
    """Runs a Pulumi-style program and records the resources it creates"""

    def __init__(self, program: ProgramNode, bindings: Optional[Dict[str, Any]] = None,
                 provider_schema: Optional[ProviderSchema] = None, file: Optional[str] = None):
        self.program = program
        self.bindings = dict(bindings or {})
        self.schema = provider_schema
        self.file = file
        self.graph = ResourceGraph()
        self.scope = Scope(dict(GLOBALS), set(GLOBALS))

    def evaluate(self) -> ResourceGraph:
        self.program.accept(self)
        logger.info("Evaluated program into %d resources and %d outputs", len(self.graph), len(self.graph.outputs))
        return self.graph.finalize()

    # ------------------------------
    # Statements
    # ------------------------------

    def _execute(self, statements: List[ASTNode], scope: Scope):
        previous = self.scope
        self.scope = scope
        try:
            for statement in statements:
                statement.accept(self)
        finally:
            self.scope = previous

    def visit_program(self, node: ProgramNode):
        try:
            self._execute(node.statements, Scope(parent=self.scope))
        except _Return:
            raise ParseError("'return' outside of a function", node.location) from None

    def visit_block_statement(self, node: BlockStatementNode):
        self._execute(node.statements, Scope(parent=self.scope))

    def visit_variable_declaration(self, node: VariableDeclarationNode):
        value = node.value.accept(self) if node.value is not None else None
        self._bind(node.target, value, self.scope, node.kind == 'const', node.location)
        if node.exported:
            if not isinstance(node.target, str):
                raise ParseError("Exported declarations must bind a single name", node.location)
            self.graph.set_output(node.target, self._plain_value(value, node.location))

    def visit_assignment(self, node: AssignmentNode):
        value = node.value.accept(self)
        if node.operator == '+=':
            current = self.scope.get(node.name)
            if current is _MISSING:
                raise UnboundVariableError(node.name, node.location)
            value = self._add(current, value, node.location)
        self.scope.assign(node.name, value, node.location)

    def visit_expression_statement(self, node: ExpressionStatementNode):
        node.expression.accept(self)

    def visit_if(self, node: IfNode):
        if truthy(node.condition.accept(self)):
            node.then_branch.accept(self)
        elif node.else_branch is not None:
            node.else_branch.accept(self)

    def visit_for_of(self, node: ForOfNode):
        iterable = node.iterable.accept(self)
        if isinstance(iterable, str):
            items = list(iterable)
        elif isinstance(iterable, list):
            items = list(iterable)
        else:
            raise TypeMismatchError(f"{type_name(iterable)} is not iterable", node.location)
        for item in items:
            scope = Scope(parent=self.scope)
            self._bind(node.target, item, scope, node.kind == 'const', node.location)
            self._execute([node.body], scope)

    def visit_return(self, node: ReturnNode):
        raise _Return(node.value.accept(self) if node.value is not None else None)

    def _bind(self, pattern: Pattern, value: Any, scope: Scope, constant: bool, location: Optional[SourceLocation]):
        if isinstance(pattern, str):
            scope.declare(pattern, value, constant, location)
        elif isinstance(pattern, ArrayPattern):
            if not isinstance(value, list):
                raise TypeMismatchError(f"Cannot destructure {type_name(value)} as an array", location)
            for index, element in enumerate(pattern.elements):
                self._bind(element, value[index] if index < len(value) else None, scope, constant, location)
        else:
            if value is None:
                raise TypeMismatchError("Cannot destructure undefined", location)
            for key, target in pattern.properties:
                self._bind(target, self._get_property(value, key, location, optional=False), scope, constant, location)

    # ------------------------------
    # Resources
    # ------------------------------

    def visit_new(self, node: NewNode) -> Any:
        class_path = self._dotted_name(node.callee)
        args = self._evaluate_elements(node.arguments)
        if class_path in CONFIG_CLASSES:
            namespace = args[0] if args else None
            return ConfigObject(self.bindings, namespace)
        if class_path.startswith('pulumi.'):
            raise EvaluationError(f"Unsupported class '{class_path}'", node.location)
        return self._create_resource(class_path, args, node.location)

    def _dotted_name(self, node: ASTNode) -> str:
        if isinstance(node, IdentifierNode):
            return node.name
        if isinstance(node, MemberNode):
            return f"{self._dotted_name(node.object)}.{node.property}"
        raise ParseError("Expected a class name after 'new'", getattr(node, 'location', None))

    def _create_resource(self, class_path: str, args: List[Any], location: Optional[SourceLocation]) -> ResourceRef:
        name = args[0] if args else None
        props = args[1] if len(args) > 1 else None
        opts = args[2] if len(args) > 2 else None
        if not isinstance(name, str):
            raise TypeMismatchError(f"Resource name must be a plain string, got {type_name(name)}", location)
        if props is None:
            props = {}
        if not isinstance(props, dict):
            raise TypeMismatchError(f"Resource arguments must be an object, got {type_name(props)}", location)

        if self.schema is not None:
            resource_type = self.schema.resolve_target_type(class_path)
        else:
            resource_type = conventional_type_name(class_path)
        attributes = self._plain_value(self._resource_arguments(resource_type, props, []), location)
        depends_on = self._depends_on(opts, location)

        if self.schema is not None:
            problems = self.schema.validate(resource_type, attributes)
            if problems:
                raise SchemaValidationError(f"{resource_type}.{name}", problems, location)
        self.graph.add_resource(resource_type, name, attributes, depends_on, location)
        logger.debug("Created %s.%s from %s", resource_type, name, class_path)
        return ResourceRef(resource_type, name)

    def _resource_arguments(self, resource_type: str, values: Dict[str, Any], path: List[str]) -> Dict[str, Any]:
        """camelCase keys become snake_case; ``null``/``undefined`` arguments are dropped"""
        result = {}
        for key, value in values.items():
            if value is None:
                continue
            name = snake_case(key)
            result[name] = self._argument_value(resource_type, path + [name], value)
        return result

    def _argument_value(self, resource_type: str, path: List[str], value: Any) -> Any:
        known_type = self.schema is not None and self.schema.get(resource_type) is not None
        if not known_type:
            if isinstance(value, list):
                return [self._resource_arguments(resource_type, item, path) if isinstance(item, dict) else item
                        for item in value]
            return value

        block = self.schema.block_of(resource_type, path)
        if block is None:
            return value
        items = value if isinstance(value, list) else [value]
        converted = [self._resource_arguments(resource_type, item, path) if isinstance(item, dict) else item
                     for item in items]
        if block.single and len(converted) == 1:
            return converted[0]
        return converted

    def _depends_on(self, opts: Any, location: Optional[SourceLocation]) -> List[ResourceKey]:
        if opts is None:
            return []
        if not isinstance(opts, dict):
            raise TypeMismatchError(f"Resource options must be an object, got {type_name(opts)}", location)
        value = opts.get('dependsOn')
        if value is None:
            return []
        items = value if isinstance(value, list) else [value]
        keys = []
        for item in items:
            if not isinstance(item, ResourceRef):
                raise TypeMismatchError(f"dependsOn entries must be resources, got {type_name(item)}", location)
            if item.key not in keys:
                keys.append(item.key)
        return keys

    def _plain_value(self, value: Any, location: Optional[SourceLocation]) -> Any:
        """Detached copy of a value; later mutation of the source must not leak into the graph"""
        if isinstance(value, list):
            return [self._plain_value(item, location) for item in value]
        if isinstance(value, dict):
            return {key: self._plain_value(item, location) for key, item in value.items()}
        if isinstance(value, (Closure, BuiltinFunction, BuiltinNamespace, ConfigObject)):
            raise TypeMismatchError(f"A {type_name(value)} cannot be stored as a value", location)
        return value

    # ------------------------------
    # Expressions
    # ------------------------------

    def _evaluate_elements(self, nodes: List[ASTNode]) -> List[Any]:
        values = []
        for node in nodes:
            if isinstance(node, SpreadNode):
                spread = node.argument.accept(self)
                if not isinstance(spread, list):
                    raise TypeMismatchError(f"Cannot spread {type_name(spread)} into an array", node.location)
                values.extend(spread)
            else:
                values.append(node.accept(self))
        return values

    def visit_literal(self, node: LiteralNode) -> Any:
        return node.value

    def visit_identifier(self, node: IdentifierNode) -> Any:
        value = self.scope.get(node.name)
        if value is _MISSING:
            raise UnboundVariableError(node.name, node.location)
        return value

    def visit_template_literal(self, node: TemplateLiteralNode) -> Any:
        pieces = []
        for part in node.parts:
            if isinstance(part, str):
                pieces.append(part)
            else:
                pieces.append(to_template_part(part.accept(self), part.location))
        rendered = RefTemplate.build(pieces)
        if node.tag is None:
            return rendered
        tag = node.tag.accept(self)
        if not isinstance(tag, BuiltinFunction):
            raise TypeMismatchError(f"{type_name(tag)} cannot be used as a template tag", node.location)
        return tag.fn(self, [rendered], node.location)

    def visit_spread(self, node: SpreadNode) -> Any:
        raise ParseError("Spread syntax is only valid in arrays, objects and calls", node.location)

    def visit_array(self, node: ArrayNode) -> List[Any]:
        return self._evaluate_elements(node.elements)

    def visit_object(self, node: ObjectNode) -> Dict[str, Any]:
        # Later keys overwrite earlier ones
        result = {}
        for prop in node.properties:
            if isinstance(prop, SpreadNode):
                spread = prop.argument.accept(self)
                if spread is None:
                    continue
                if not isinstance(spread, dict):
                    raise TypeMismatchError(f"Cannot spread {type_name(spread)} into an object", prop.location)
                result.update(spread)
                continue
            key_node, value_node = prop
            if isinstance(key_node, str):
                key = key_node
            else:
                key = key_node.accept(self)
                if is_number(key):
                    key = format_number(key)
                if not isinstance(key, str):
                    raise TypeMismatchError(f"Computed key must be a string, got {type_name(key)}",
                                            key_node.location)
            result[key] = value_node.accept(self)
        return result

    def visit_member(self, node: MemberNode) -> Any:
        target = node.object.accept(self)
        if target is None and node.optional:
            return None
        return self._get_property(target, node.property, node.location, node.optional)

    def _get_property(self, target: Any, name: str, location: Optional[SourceLocation], optional: bool) -> Any:
        if isinstance(target, dict):
            if name in target:
                return target[name]
            return target.get(snake_case(name))
        if isinstance(target, ResourceRef):
            return target.child(snake_case(name))
        if isinstance(target, BuiltinNamespace):
            return target.get(name, location)
        if isinstance(target, (list, str)) and name == 'length':
            return len(target)
        if target is None:
            if optional:
                return None
            raise TypeMismatchError(f"Cannot read properties of undefined (reading '{name}')", location)
        raise TypeMismatchError(f"Cannot read property '{name}' of a {type_name(target)} value", location)

    def visit_index(self, node: IndexNode) -> Any:
        target = node.object.accept(self)
        if target is None and node.optional:
            return None
        index = node.index.accept(self)
        if is_unknown(index):
            raise TypeMismatchError(f"Cannot index with {index}, which is only known after deployment", node.location)
        if isinstance(target, (list, str)):
            if not is_number(index) or int(index) != index:
                raise TypeMismatchError(f"Array index must be a whole number, got {type_name(index)}", node.location)
            position = int(index)
            return target[position] if 0 <= position < len(target) else None
        if isinstance(target, dict):
            key = format_number(index) if is_number(index) else index
            if not isinstance(key, str):
                raise TypeMismatchError(f"Object key must be a string, got {type_name(index)}", node.location)
            return target.get(key)
        if isinstance(target, ResourceRef):
            return target.child(int(index) if is_number(index) else index)
        raise TypeMismatchError(f"Cannot index a {type_name(target)} value", node.location)

    def visit_call(self, node: CallNode) -> Any:
        callee = node.callee
        if isinstance(callee, MemberNode):
            target = callee.object.accept(self)
            if target is None and callee.optional:
                return None
            args = self._evaluate_elements(node.arguments)
            if isinstance(target, BuiltinNamespace):
                return self.call(target.get(callee.property, callee.location), args, node.location)
            if isinstance(target, dict) and isinstance(target.get(callee.property), (Closure, BuiltinFunction)):
                return self.call(target[callee.property], args, node.location)
            return call_method(self, target, callee.property, args, node.location)
        function = callee.accept(self)
        args = self._evaluate_elements(node.arguments)
        return self.call(function, args, node.location)

    def call(self, function: Any, args: List[Any], location: Optional[SourceLocation]) -> Any:
        if isinstance(function, BuiltinFunction):
            return function.fn(self, args, location)
        if not isinstance(function, Closure):
            raise TypeMismatchError(f"{type_name(function)} is not a function", location)

        scope = Scope(parent=function.scope)
        for index, param in enumerate(function.params):
            self._bind(param, args[index] if index < len(args) else None, scope, False, location)
        if not isinstance(function.body, BlockStatementNode):
            previous = self.scope
            self.scope = scope
            try:
                return function.body.accept(self)
            finally:
                self.scope = previous
        try:
            self._execute(function.body.statements, scope)
        except _Return as result:
            return result.value
        return None

    def visit_arrow_function(self, node: ArrowFunctionNode) -> Closure:
        return Closure(node.params, node.body, self.scope)

    def visit_binary(self, node: BinaryNode) -> Any:
        kind = node.operator.type
        left = node.left.accept(self)
        # Logical operators short-circuit and yield an operand
        if kind == TokenType.AND:
            return node.right.accept(self) if truthy(left) else left
        if kind == TokenType.OR:
            return left if truthy(left) else node.right.accept(self)
        if kind == TokenType.NULLISH:
            return left if left is not None else node.right.accept(self)

        right = node.right.accept(self)
        op = node.operator.value
        if kind in (TokenType.STRICT_EQUAL, TokenType.EQUAL_EQUAL, TokenType.STRICT_NOT_EQUAL, TokenType.NOT_EQUAL):
            if any(True for _ in iter_refs([left, right])):
                raise TypeMismatchError(f"Operator '{op}' cannot compare values only known after deployment",
                                        node.location)
            if isinstance(left, (list, dict)) or isinstance(right, (list, dict)):
                equal = left is right
            else:
                equal = values_equal(left, right)
            return equal if kind in (TokenType.STRICT_EQUAL, TokenType.EQUAL_EQUAL) else not equal
        if kind in (TokenType.LESS_THAN, TokenType.LESS_EQUAL, TokenType.GREATER_THAN, TokenType.GREATER_EQUAL):
            return ordering(op, left, right, node.location)
        if kind == TokenType.PLUS:
            return self._add(left, right, node.location)
        return arithmetic(op, left, right, node.location)

    def _add(self, left: Any, right: Any, location: Optional[SourceLocation]) -> Any:
        if isinstance(left, (str, RefTemplate, ResourceRef)) or isinstance(right, (str, RefTemplate, ResourceRef)):
            return RefTemplate.build([to_template_part(left, location), to_template_part(right, location)])
        return arithmetic('+', left, right, location)

    def visit_unary(self, node: UnaryNode) -> Any:
        operand = node.operand.accept(self)
        if node.operator.type == TokenType.NOT:
            return not truthy(operand)
        number = require_number(operand, node.operator.value, node.location)
        if node.operator.type == TokenType.MINUS:
            return arithmetic('-', 0, number, node.location)
        return number

    def visit_conditional(self, node: ConditionalNode) -> Any:
        # Only the selected branch is evaluated
        if truthy(node.condition.accept(self)):
            return node.true_expr.accept(self)
        return node.false_expr.accept(self)


def evaluate_ts(source: str, bindings: Optional[Dict[str, Any]] = None,
                provider_schema: Optional[ProviderSchema] = None,
                file: Optional[str] = None) -> ResourceGraph:
    """Parse and run a target-language program; raises on the first error, never returns a partial graph"""
    program = parse_ts(source, file)
    return TSEvaluator(program, bindings, provider_schema, file).evaluate()
