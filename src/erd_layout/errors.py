"""Exception hierarchy for erd_layout."""

from __future__ import annotations

from erd_layout.schema import ParseDiagnostic


class ErdLayoutError(Exception):
    """Base class for all errors raised by erd_layout."""


class LayoutError(ErdLayoutError, RuntimeError):
    """Raised when the layout solver fails or breaks its result contract.

    A caller receiving this error keeps whatever layout it had before the
    failed call; nothing partial is ever produced.
    """


class SchemaParseError(ErdLayoutError, ValueError):
    """Raised by a schema parser with the diagnostics that caused the failure."""

    def __init__(self, diagnostics: list[ParseDiagnostic]) -> None:
        self.diagnostics = list(diagnostics)
        if self.diagnostics:
            first = self.diagnostics[0]
            message = f"{first.line}:{first.column}: {first.message}"
        else:
            message = "schema could not be parsed"
        super().__init__(message)
