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
# Document structure
# ------------------------------

@dataclass
class KeyValueNode(ASTNode):
    key: str
    value: ASTNode
    location: Optional[SourceLocation] = field(default=None, compare=False)

    def accept(self, visitor: 'ASTVisitor') -> Any:
        return visitor.visit_key_value(self)


@dataclass
class BlockNode(ASTNode):
    statements: List[ASTNode]
    location: Optional[SourceLocation] = field(default=None, compare=False)

    def accept(self, visitor: 'ASTVisitor') -> Any:
        return visitor.visit_block(self)

    def attributes(self) -> List[KeyValueNode]:
        return [stmt for stmt in self.statements if isinstance(stmt, KeyValueNode)]

    def blocks(self) -> List['NamedBlockNode']:
        return [stmt for stmt in self.statements if isinstance(stmt, NamedBlockNode)]

    def attribute(self, key: str) -> Optional[KeyValueNode]:
        for stmt in self.attributes():
            if stmt.key == key:
                return stmt
        return None


@dataclass
class NamedBlockNode(ASTNode):
    name: str
    labels: List[str]
    block: BlockNode
    location: Optional[SourceLocation] = field(default=None, compare=False)

    def accept(self, visitor: 'ASTVisitor') -> Any:
        return visitor.visit_named_block(self)


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
class AttributeAccessNode(ASTNode):
    object: ASTNode
    attribute: str
    location: Optional[SourceLocation] = field(default=None, compare=False)

    def accept(self, visitor: 'ASTVisitor') -> Any:
        return visitor.visit_attribute_access(self)


@dataclass
class IndexNode(ASTNode):
    object: ASTNode
    index: ASTNode
    location: Optional[SourceLocation] = field(default=None, compare=False)

    def accept(self, visitor: 'ASTVisitor') -> Any:
        return visitor.visit_index(self)


@dataclass
class SplatNode(ASTNode):
    """``source.*.a.b`` (legacy, attributes only) or ``source[*].a[0]`` (full)"""
    source: ASTNode
    traversal: List[Union[str, ASTNode]]
    legacy: bool = False
    location: Optional[SourceLocation] = field(default=None, compare=False)

    def accept(self, visitor: 'ASTVisitor') -> Any:
        return visitor.visit_splat(self)


@dataclass
class FunctionCallNode(ASTNode):
    name: str
    arguments: List[ASTNode]
    expand_final: bool = False
    location: Optional[SourceLocation] = field(default=None, compare=False)

    def accept(self, visitor: 'ASTVisitor') -> Any:
        return visitor.visit_function_call(self)


@dataclass
class ExpressionNode(ASTNode):
    left: ASTNode
    operator: Token
    right: ASTNode
    location: Optional[SourceLocation] = field(default=None, compare=False)

    def accept(self, visitor: 'ASTVisitor') -> Any:
        return visitor.visit_expression(self)


@dataclass
class UnaryNode(ASTNode):
    operator: Token
    operand: ASTNode
    location: Optional[SourceLocation] = field(default=None, compare=False)

    def accept(self, visitor: 'ASTVisitor') -> Any:
        return visitor.visit_unary(self)


@dataclass
class TernaryExpressionNode(ASTNode):
    condition: ASTNode
    true_expr: ASTNode
    false_expr: ASTNode
    location: Optional[SourceLocation] = field(default=None, compare=False)

    def accept(self, visitor: 'ASTVisitor') -> Any:
        return visitor.visit_ternary_expression(self)


@dataclass
class ListNode(ASTNode):
    elements: List[ASTNode]
    location: Optional[SourceLocation] = field(default=None, compare=False)

    def accept(self, visitor: 'ASTVisitor') -> Any:
        return visitor.visit_list(self)


@dataclass
class ObjectNode(ASTNode):
    items: List[Tuple[ASTNode, ASTNode]]
    location: Optional[SourceLocation] = field(default=None, compare=False)

    def accept(self, visitor: 'ASTVisitor') -> Any:
        return visitor.visit_object(self)


@dataclass
class ForExpressionNode(ASTNode):
    key_var: Optional[str]
    value_var: str
    collection: ASTNode
    value_expr: ASTNode
    key_expr: Optional[ASTNode] = None  # set for the map form
    condition: Optional[ASTNode] = None
    grouping: bool = False
    location: Optional[SourceLocation] = field(default=None, compare=False)

    @property
    def is_map(self) -> bool:
        return self.key_expr is not None

    def accept(self, visitor: 'ASTVisitor') -> Any:
        return visitor.visit_for_expression(self)


# ------------------------------
# Templates
# ------------------------------

@dataclass
class TemplateNode(ASTNode):
    parts: List[ASTNode]
    location: Optional[SourceLocation] = field(default=None, compare=False)

    @property
    def single_interpolation(self) -> Optional[ASTNode]:
        """The wrapped expression when the template is exactly ``"${expr}"``"""
        if len(self.parts) == 1 and isinstance(self.parts[0], InterpolationNode):
            return self.parts[0].expression
        return None

    def accept(self, visitor: 'ASTVisitor') -> Any:
        return visitor.visit_template(self)


@dataclass
class InterpolationNode(ASTNode):
    expression: ASTNode
    location: Optional[SourceLocation] = field(default=None, compare=False)

    def accept(self, visitor: 'ASTVisitor') -> Any:
        return visitor.visit_interpolation(self)


@dataclass
class TemplateIfNode(ASTNode):
    condition: ASTNode
    then_parts: List[ASTNode]
    else_parts: List[ASTNode]
    location: Optional[SourceLocation] = field(default=None, compare=False)

    def accept(self, visitor: 'ASTVisitor') -> Any:
        return visitor.visit_template_if(self)


@dataclass
class TemplateForNode(ASTNode):
    key_var: Optional[str]
    value_var: str
    collection: ASTNode
    body: List[ASTNode]
    location: Optional[SourceLocation] = field(default=None, compare=False)

    def accept(self, visitor: 'ASTVisitor') -> Any:
        return visitor.visit_template_for(self)


# ------------------------------
# AST Visitor Interface
# ------------------------------

class ASTVisitor(ABC):
    @abstractmethod
    def visit_key_value(self, node: KeyValueNode) -> Any:
        pass

    @abstractmethod
    def visit_block(self, node: BlockNode) -> Any:
        pass

    @abstractmethod
    def visit_named_block(self, node: NamedBlockNode) -> Any:
        pass

    @abstractmethod
    def visit_literal(self, node: LiteralNode) -> Any:
        pass

    @abstractmethod
    def visit_identifier(self, node: IdentifierNode) -> Any:
        pass

    @abstractmethod
    def visit_attribute_access(self, node: AttributeAccessNode) -> Any:
        pass

    @abstractmethod
    def visit_index(self, node: IndexNode) -> Any:
        pass

    @abstractmethod
    def visit_splat(self, node: SplatNode) -> Any:
        pass

    @abstractmethod
    def visit_function_call(self, node: FunctionCallNode) -> Any:
        pass

    @abstractmethod
    def visit_expression(self, node: ExpressionNode) -> Any:
        pass

    @abstractmethod
    def visit_unary(self, node: UnaryNode) -> Any:
        pass

    @abstractmethod
    def visit_ternary_expression(self, node: TernaryExpressionNode) -> Any:
        pass

    @abstractmethod
    def visit_list(self, node: ListNode) -> Any:
        pass

    @abstractmethod
    def visit_object(self, node: ObjectNode) -> Any:
        pass

    @abstractmethod
    def visit_for_expression(self, node: ForExpressionNode) -> Any:
        pass

    @abstractmethod
    def visit_template(self, node: TemplateNode) -> Any:
        pass

    @abstractmethod
    def visit_interpolation(self, node: InterpolationNode) -> Any:
        pass

    @abstractmethod
    def visit_template_if(self, node: TemplateIfNode) -> Any:
        pass

    @abstractmethod
    def visit_template_for(self, node: TemplateForNode) -> Any:
        pass
