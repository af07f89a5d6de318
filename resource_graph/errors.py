from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class SourceLocation:
    line: int
    column: int
    file: Optional[str] = None

    def __str__(self) -> str:
        if self.file:
            return f"{self.file}:{self.line}:{self.column}"
        return f"line {self.line} column {self.column}"


class ParityError(Exception):
    """Base class for every error raised while parsing, evaluating or comparing"""

    def __init__(self, message: str, location: Optional[SourceLocation] = None):
        self.message = message
        self.location = location
        super().__init__(self._render())

    def _render(self) -> str:
        if self.location:
            return f"{self.message} (at {self.location})"
        return self.message

    def with_file(self, file: str) -> 'ParityError':
        """Attach a file name to the location once the caller knows it"""
        if self.location and not self.location.file:
            self.location = SourceLocation(self.location.line, self.location.column, file)
            self.args = (self._render(),)
        return self


class ParseError(ParityError):
    """Malformed source text"""


class EvaluationError(ParityError):
    pass


class UnboundVariableError(EvaluationError):
    def __init__(self, name: str, location: Optional[SourceLocation] = None):
        self.name = name
        super().__init__(f"Reference to undeclared or unset value '{name}'", location)


class TypeMismatchError(EvaluationError, TypeError):
    """Operator applied to an operand of the wrong kind"""


class DuplicateKeyError(EvaluationError):
    def __init__(self, key: str, location: Optional[SourceLocation] = None):
        self.key = key
        super().__init__(
            f"Duplicate object key '{key}' in for expression; add '...' after the value to group results",
            location,
        )


class DependencyCycleError(EvaluationError):
    def __init__(self, cycle, location: Optional[SourceLocation] = None):
        self.cycle = list(cycle)
        super().__init__(f"Dependency cycle: {' -> '.join(self.cycle)}", location)


class SchemaValidationError(EvaluationError):
    def __init__(self, resource_id: str, problems, location: Optional[SourceLocation] = None):
        self.resource_id = resource_id
        self.problems = list(problems)
        super().__init__(f"Resource {resource_id} does not match provider schema: " + "; ".join(self.problems), location)


class GraphError(ParityError):
    pass


class DuplicateResourceError(GraphError):
    def __init__(self, resource_id: str, location: Optional[SourceLocation] = None):
        self.resource_id = resource_id
        super().__init__(f"Resource {resource_id} is declared more than once", location)


class GraphFinalizedError(GraphError):
    pass


class DanglingReferenceError(GraphError):
    def __init__(self, source_id: str, target_id: str, location: Optional[SourceLocation] = None):
        self.source_id = source_id
        self.target_id = target_id
        super().__init__(f"Resource {source_id} refers to {target_id}, which is not in the graph", location)


class CheckerError(ParityError):
    pass


class TooManyResourcesError(CheckerError):
    def __init__(self, count: int, limit: int):
        self.count = count
        self.limit = limit
        super().__init__(
            f"Renamed-resource search over {count} interchangeable resources exceeds the limit of {limit}; "
            f"raise --max-resources or keep logical names aligned"
        )


class DeadlineExceededError(CheckerError):
    pass


class BindingsError(ParityError):
    pass
