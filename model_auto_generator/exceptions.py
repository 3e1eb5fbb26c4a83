"""
Custom exception hierarchy for Model Auto Generator.

Every error carries a context dictionary and recovery suggestions so that the
CLI can print something actionable. Mapping ambiguities (unknown column types,
unparsable enum literals, name collisions) are never raised; they are recorded
as diagnostics on the generated definitions instead.
"""

from typing import Dict, Any, Optional, List


class GeneratorError(Exception):
    """
    Base exception for all Model Auto Generator errors.

    Provides rich context and error recovery guidance.
    """

    def __init__(
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        suggestions: Optional[List[str]] = None,
        error_code: Optional[str] = None
    ):
        """
        Initialize the exception with context and recovery suggestions.

        Args:
            message: Human-readable error message
            context: Additional context about where/why the error occurred
            suggestions: List of potential solutions or next steps
            error_code: Unique error code for programmatic handling
        """
        super().__init__(message)
        self.message = message
        self.context = context or {}
        self.suggestions = suggestions or []
        self.error_code = error_code

    def __str__(self) -> str:
        """Return formatted error message with context."""
        lines = [self.message]

        if self.error_code:
            lines.append(f"Error Code: {self.error_code}")

        if self.context:
            lines.append("Context:")
            for key, value in self.context.items():
                lines.append(f"  {key}: {value}")

        if self.suggestions:
            lines.append("Suggestions:")
            for suggestion in self.suggestions:
                lines.append(f"  • {suggestion}")

        return "\n".join(lines)


class ConfigurationError(GeneratorError):
    """Raised when configuration is invalid or missing."""

    def __init__(self, message: str, config_file: str = None, **kwargs):
        context = kwargs.get('context', {})
        if config_file:
            context['config_file'] = config_file

        suggestions = kwargs.get('suggestions', [])
        if not suggestions:
            suggestions = [
                "Check the configuration file syntax",
                "Verify option names and value types",
                "Use either 'tables' or 'skip_tables', not both",
            ]

        super().__init__(
            message,
            context=context,
            suggestions=suggestions,
            error_code=kwargs.get('error_code', "CONFIG_ERROR")
        )


class TableNotFoundError(ConfigurationError):
    """Raised when a table named in a selection list does not exist."""

    def __init__(self, table: str, available: Optional[List[str]] = None, **kwargs):
        context = kwargs.get('context', {})
        context['table'] = table
        if available is not None:
            context['available_tables'] = ", ".join(available) if available else "(none)"

        super().__init__(
            f"Table: {table} not exist.",
            context=context,
            suggestions=[
                "Check the spelling and letter case of the table name",
                "Verify the database user can see the table",
            ],
            error_code="TABLE_NOT_FOUND"
        )
        self.table = table


class SchemaIntrospectionError(GeneratorError):
    """Raised when database schema introspection fails."""

    def __init__(self, message: str, table: str = None, column: str = None, **kwargs):
        context = kwargs.get('context', {})
        if table:
            context['table'] = table
        if column:
            context['column'] = column

        suggestions = kwargs.get('suggestions', [])
        if not suggestions:
            suggestions = [
                "Check database connection settings",
                "Verify the table/column exists in the database",
                "Check database user permissions",
            ]

        super().__init__(
            message,
            context=context,
            suggestions=suggestions,
            error_code="INTROSPECTION_ERROR"
        )


class StructuralError(GeneratorError):
    """
    Raised when the raw schema is internally inconsistent.

    Examples are a table supplied twice, two columns with the same name, or a
    primary-key index that references a column the table does not have. No
    partial result is produced because association resolution needs a
    globally consistent view of the schema.
    """

    def __init__(self, message: str, table: str = None, **kwargs):
        context = kwargs.get('context', {})
        if table:
            context['table'] = table

        suggestions = kwargs.get('suggestions', [])
        if not suggestions:
            suggestions = [
                "Re-run the introspection; the snapshot may be stale or truncated",
                "Check the snapshot file for duplicated entries",
            ]

        super().__init__(
            message,
            context=context,
            suggestions=suggestions,
            error_code="STRUCTURAL_ERROR"
        )


class CodeGenerationError(GeneratorError):
    """Raised when template rendering fails."""

    def __init__(self, message: str, style: str = None, table: str = None, **kwargs):
        context = kwargs.get('context', {})
        if style:
            context['style'] = style
        if table:
            context['table'] = table

        suggestions = kwargs.get('suggestions', [])
        if not suggestions:
            suggestions = [
                "Check the custom template path and syntax",
                "Try one of the built-in code styles",
            ]

        super().__init__(
            message,
            context=context,
            suggestions=suggestions,
            error_code="CODE_GENERATION_ERROR"
        )


class WriterError(GeneratorError):
    """Raised when generated files cannot be written."""

    def __init__(self, message: str, path: str = None, **kwargs):
        context = kwargs.get('context', {})
        if path:
            context['path'] = path

        super().__init__(
            message,
            context=context,
            suggestions=kwargs.get('suggestions') or [
                "Check the output directory permissions",
                "Check there is enough free disk space",
            ],
            error_code="WRITER_ERROR"
        )
