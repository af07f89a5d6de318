from dataclasses import dataclass
from enum import Enum
from typing import Optional

import click

from resource_graph.errors import *


class DiagnosticSeverity(Enum):
    ERROR = "error"
    WARNING = "warning"
    INFO = "info"


@dataclass
class Diagnostic:
    severity: DiagnosticSeverity
    kind: str
    message: str
    location: Optional[SourceLocation] = None
    suggestion: Optional[str] = None


class DiagnosticMapper:
    """Maps library errors to user-facing diagnostics with a suggestion"""

    suggestions = {
        ParseError: "Check the syntax near the reported position",
        UnboundVariableError: "Declare the variable or pass a value with --bindings",
        DuplicateKeyError: "Append '...' after the value expression to group values by key",
        DependencyCycleError: "Break the cycle by removing one of the references or depends_on entries",
        SchemaValidationError: "Compare the resource arguments with the provider schema file",
        DanglingReferenceError: "Create the referenced resource before using it",
        DuplicateResourceError: "Give each resource a unique logical name",
        TooManyResourcesError: "Keep logical names aligned between both programs or raise --max-resources",
        DeadlineExceededError: "Keep logical names aligned between both programs or raise --deadline / --step-budget",
        BindingsError: "Bindings files must hold a mapping of variable names to values",
    }

    def _suggestion(self, error: Exception) -> Optional[str]:
        for error_type in type(error).__mro__:
            if error_type in self.suggestions:
                return self.suggestions[error_type]
        return None

    def map_error(self, error: Exception) -> Diagnostic:
        if isinstance(error, ParityError):
            return Diagnostic(
                severity=DiagnosticSeverity.ERROR,
                kind=type(error).__name__,
                message=error.message,
                location=error.location,
                suggestion=self._suggestion(error),
            )
        return Diagnostic(DiagnosticSeverity.ERROR, type(error).__name__, str(error))


def format_diagnostic(diagnostic: Diagnostic) -> str:
    """Render a diagnostic for the terminal"""
    color = {
        DiagnosticSeverity.ERROR: "red",
        DiagnosticSeverity.WARNING: "yellow",
        DiagnosticSeverity.INFO: "blue",
    }[diagnostic.severity]

    base = click.style(f"{diagnostic.severity.value.upper()}: ", fg=color, bold=True)
    base += click.style(f"[{diagnostic.kind}] ", fg=color) + diagnostic.message
    if diagnostic.location:
        base += click.style(f" ({diagnostic.location})", fg="bright_black")
    if diagnostic.suggestion:
        base += f"\n  {click.style('└─', fg='cyan')} Suggestion: {diagnostic.suggestion}"
    return base
