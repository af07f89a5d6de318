from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, List, Optional, Tuple, Union

from resource_graph.errors import SourceLocation
from .tokentypes import Token


class ASTNode(ABC):
    @abstractmethod
    def accept(self, visitor: 'ASTVisitor') -> Any:
        pass


# ------------------------------
# Binding patterns
# ------------------------------

@dataclass
class ArrayPattern:
    elements: List['Pattern']


@dataclass
class ObjectPattern:
    properties: List[Tuple[str, 'Pattern']]


Pattern = Union[str, ArrayPattern, ObjectPattern]


# ------------------------------
# Statements
# ------------------------------

@dataclass
class ProgramNode(ASTNode):
    statements: List[ASTNode]
    location: Optional[SourceLocation] = field(default=None, compare=False)

    def accept(self, visitor: 'ASTVisitor') -> Any:
        return visitor.visit_program(self)


@dataclass
class VariableDeclarationNode(ASTNode):
    kind: str  # const | let | var
    target: Pattern
    value: Optional[ASTNode]
    exported: bool = False
    location: Optional[SourceLocation] = field(default=None, compare=False)

    def accept(self, visitor: 'ASTVisitor') -> Any:
        return visitor.visit_variable_declaration(self)


@dataclass
class AssignmentNode(ASTNode):
    name: str
    operator: str  # = | +=
    value: ASTNode
    location: Optional[SourceLocation] = field(default=None, compare=False)

    def accept(self, visitor: 'ASTVisitor') -> Any:
        return visitor.visit_assignment(self)


@dataclass
class ExpressionStatementNode(ASTNode):
    expression: ASTNode
    location: Optional[SourceLocation] = field(default=None, compare=False)

    def accept(self, visitor: 'ASTVisitor') -> Any:
        return visitor.visit_expression_statement(self)


@dataclass
class BlockStatementNode(ASTNode):
    statements: List[ASTNode]
    location: Optional[SourceLocation] = field(default=None, compare=False)

    def accept(self, visitor: 'ASTVisitor') -> Any:
        return visitor.visit_block_statement(self)


@dataclass
class IfNode(ASTNode):
    condition: ASTNode
    then_branch: ASTNode
    else_branch: Optional[ASTNode] = None
    location: Optional[SourceLocation] = field(default=None, compare=False)

    def accept(self, visitor: 'ASTVisitor') -> Any:
        return visitor.visit_if(self)


@dataclass
class ForOfNode(ASTNode):
    kind: str
    target: Pattern
    iterable: ASTNode
    body: ASTNode
    location: Optional[SourceLocation] = field(default=None, compare=False)

    def accept(self, visitor: 'ASTVisitor') -> Any:
        return visitor.visit_for_of(self)


@dataclass
class ReturnNode(ASTNode):
    value: Optional[ASTNode]
    location: Optional[SourceLocation] = field(default=None, compare=False)

    def accept(self, visitor: 'ASTVisitor') -> Any:
        return visitor.visit_return(self)


# ------------------------------
# Expressions
# ------------------------------

@dataclass
class LiteralNode(ASTNode):
    value: Any
    location: Optional[SourceLocation] = field(default=None, compare=False)

    def accept(self, visitor: 'ASTVisitor') -> Any:
        return visitor.visit_literal(self)


@dataclass
class IdentifierNode(ASTNode):
    name: str
    location: Optional[SourceLocation] = field(default=None, compare=False)

    def accept(self, visitor: 'ASTVisitor') -> Any:
        return visitor.visit_identifier(self)


@dataclass
class TemplateLiteralNode(ASTNode):
    parts: List[Union[str, ASTNode]]
    tag: Optional[ASTNode] = None
    location: Optional[SourceLocation] = field(default=None, compare=False)

    def accept(self, visitor: 'ASTVisitor') -> Any:
        return visitor.visit_template_literal(self)


@dataclass
class SpreadNode(ASTNode):
    argument: ASTNode
    location: Optional[SourceLocation] = field(default=None, compare=False)

    def accept(self, visitor: 'ASTVisitor') -> Any:
        return visitor.visit_spread(self)


@dataclass
class ArrayNode(ASTNode):
    elements: List[ASTNode]
    location: Optional[SourceLocation] = field(default=None, compare=False)

    def accept(self, visitor: 'ASTVisitor') -> Any:
        return visitor.visit_array(self)


@dataclass
class ObjectNode(ASTNode):
    """Properties are ``(key, value)`` pairs or ``SpreadNode`` entries; keys are
    plain strings or, for computed keys, expression nodes"""
    properties: List[Union[Tuple[Union[str, ASTNode], ASTNode], SpreadNode]]
    location: Optional[SourceLocation] = field(default=None, compare=False)

    def accept(self, visitor: 'ASTVisitor') -> Any:
        return visitor.visit_object(self)


@dataclass
class MemberNode(ASTNode):
    object: ASTNode
    property: str
    optional: bool = False
    location: Optional[SourceLocation] = field(default=None, compare=False)

    def accept(self, visitor: 'ASTVisitor') -> Any:
        return visitor.visit_member(self)


@dataclass
class IndexNode(ASTNode):
    object: ASTNode
    index: ASTNode
    optional: bool = False
    location: Optional[SourceLocation] = field(default=None, compare=False)

    def accept(self, visitor: 'ASTVisitor') -> Any:
        return visitor.visit_index(self)


@dataclass
class CallNode(ASTNode):
    callee: ASTNode
    arguments: List[ASTNode]
    location: Optional[SourceLocation] = field(default=None, compare=False)

    def accept(self, visitor: 'ASTVisitor') -> Any:
        return visitor.visit_call(self)


@dataclass
class NewNode(ASTNode):
    callee: ASTNode
    arguments: List[ASTNode]
    location: Optional[SourceLocation] = field(default=None, compare=False)

    def accept(self, visitor: 'ASTVisitor') -> Any:
        return visitor.visit_new(self)


@dataclass
class ArrowFunctionNode(ASTNode):
    params: List[Pattern]
    body: ASTNode  # expression, or BlockStatementNode
    location: Optional[SourceLocation] = field(default=None, compare=False)

    def accept(self, visitor: 'ASTVisitor') -> Any:
        return visitor.visit_arrow_function(self)


@dataclass
class BinaryNode(ASTNode):
    left: ASTNode
    operator: Token
    right: ASTNode
    location: Optional[SourceLocation] = field(default=None, compare=False)

    def accept(self, visitor: 'ASTVisitor') -> Any:
        return visitor.visit_binary(self)


@dataclass
class UnaryNode(ASTNode):
    operator: Token
    operand: ASTNode
    location: Optional[SourceLocation] = field(default=None, compare=False)

    def accept(self, visitor: 'ASTVisitor') -> Any:
        return visitor.visit_unary(self)


@dataclass
class ConditionalNode(ASTNode):
    condition: ASTNode
    true_expr: ASTNode
    false_expr: ASTNode
    location: Optional[SourceLocation] = field(default=None, compare=False)

    def accept(self, visitor: 'ASTVisitor') -> Any:
        return visitor.visit_conditional(self)


# ------------------------------
# AST Visitor Interface
# ------------------------------

class ASTVisitor(ABC):
    @abstractmethod
    def visit_program(self, node: ProgramNode) -> Any:
        pass

    @abstractmethod
    def visit_variable_declaration(self, node: VariableDeclarationNode) -> Any:
        pass

    @abstractmethod
    def visit_assignment(self, node: AssignmentNode) -> Any:
        pass

    @abstractmethod
    def visit_expression_statement(self, node: ExpressionStatementNode) -> Any:
        pass

    @abstractmethod
    def visit_block_statement(self, node: BlockStatementNode) -> Any:
        pass

    @abstractmethod
    def visit_if(self, node: IfNode) -> Any:
        pass

    @abstractmethod
    def visit_for_of(self, node: ForOfNode) -> Any:
        pass

    @abstractmethod
    def visit_return(self, node: ReturnNode) -> Any:
        pass

    @abstractmethod
    def visit_literal(self, node: LiteralNode) -> Any:
        pass

    @abstractmethod
    def visit_identifier(self, node: IdentifierNode) -> Any:
        pass

    @abstractmethod
    def visit_template_literal(self, node: TemplateLiteralNode) -> Any:
        pass

    @abstractmethod
    def visit_spread(self, node: SpreadNode) -> Any:
        pass

    @abstractmethod
    def visit_array(self, node: ArrayNode) -> Any:
        pass

    @abstractmethod
    def visit_object(self, node: ObjectNode) -> Any:
        pass

    @abstractmethod
    def visit_member(self, node: MemberNode) -> Any:
        pass

    @abstractmethod
    def visit_index(self, node: IndexNode) -> Any:
        pass

    @abstractmethod
    def visit_call(self, node: CallNode) -> Any:
        pass

    @abstractmethod
    def visit_new(self, node: NewNode) -> Any:
        pass

    @abstractmethod
    def visit_arrow_function(self, node: ArrowFunctionNode) -> Any:
        pass

    @abstractmethod
    def visit_binary(self, node: BinaryNode) -> Any:
        pass

    @abstractmethod
    def visit_unary(self, node: UnaryNode) -> Any:
        pass

    @abstractmethod
    def visit_conditional(self, node: ConditionalNode) -> Any:
        pass
