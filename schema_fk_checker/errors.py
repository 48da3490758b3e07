# schema_fk_checker/errors.py
"""
Error types for the schema-fk-checker host layer.

Error Hierarchy:
────────────────
┌──────────────────────────────────────────────────────────────┐
│  SchemaFkError (base)                                        │
│  ├── SchemaParseError  - the script could not be structured  │
│  └── ConfigError       - bad configuration file or value     │
└──────────────────────────────────────────────────────────────┘

Error Codes:
────────────
Each error has a code following the pattern SFK-NNNN:
  - 1000-1999: Parse errors
  - 2000-2999: Configuration errors
  - 9000-9999: Internal errors

The inference core (``model``, ``naming``, ``foreign_keys``) never raises
these: atypical statements are skipped, not reported.  They belong to the
collaborators that read scripts and configuration.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

from schema_fk_checker.model import SourceSpan


class ErrorCode:
    """
    Structured error code, rendered as ``SFK-NNNN``.
    """

    __slots__ = ("prefix", "number", "title")

    def __init__(self, number: int, title: str, prefix: str = "SFK") -> None:
        self.prefix = prefix
        self.number = number
        self.title = title

    @property
    def code(self) -> str:
        return f"{self.prefix}-{self.number:04d}"

    def __str__(self) -> str:
        return self.code

    def __repr__(self) -> str:
        return f"ErrorCode({self.code!r}, {self.title!r})"

    def __hash__(self) -> int:
        return hash((self.prefix, self.number))

    def __eq__(self, other: object) -> bool:
        if isinstance(other, ErrorCode):
            return self.prefix == other.prefix and self.number == other.number
        if isinstance(other, str):
            return self.code == other
        return False


class ErrorCodes:
    """Predefined error codes."""

    PARSE_FAILED = ErrorCode(1001, "schema script could not be parsed")
    UNREADABLE_SOURCE = ErrorCode(1002, "schema script could not be read")

    CONFIG_INVALID_JSON = ErrorCode(2001, "configuration is not valid JSON")
    CONFIG_INVALID_VALUE = ErrorCode(2002, "configuration value has the wrong type")
    CONFIG_UNKNOWN_CHECKER = ErrorCode(2003, "configuration names an unknown checker")

    INTERNAL_ERROR = ErrorCode(9001, "internal error")


class SchemaFkError(Exception):
    """
    Base exception for all schema-fk-checker errors.

    Carries an :class:`ErrorCode` and, where one is known, the
    :class:`SourceSpan` the error refers to.
    """

    def __init__(
        self,
        message: str,
        code: Optional[ErrorCode] = None,
        span: Optional[SourceSpan] = None,
        cause: Optional[BaseException] = None,
        hint: str = "",
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or ErrorCodes.INTERNAL_ERROR
        self.span = span
        self.cause = cause
        self.hint = hint

    def to_gcc_format(self) -> str:
        """Format as ``file:line:col: error: message [SFK-NNNN]``."""
        where = f"{self.span}: " if self.span is not None else ""
        text = f"{where}error: {self.message} [{self.code}]"
        if self.hint:
            text += f"\n  hint: {self.hint}"
        return text

    def to_json(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {
            "code": self.code.code,
            "message": self.message,
        }
        if self.span is not None:
            result["file"] = self.span.file
            result["linenr"] = self.span.line
            result["column"] = self.span.column
        if self.hint:
            result["hint"] = self.hint
        return result

    def __str__(self) -> str:
        return self.to_gcc_format()


class SchemaParseError(SchemaFkError):
    """The schema script could not be turned into table definitions."""

    def __init__(
        self,
        message: str,
        code: Optional[ErrorCode] = None,
        span: Optional[SourceSpan] = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(
            message=message,
            code=code or ErrorCodes.PARSE_FAILED,
            span=span,
            **kwargs,
        )


class ConfigError(SchemaFkError):
    """The configuration file or one of its values is unusable."""

    def __init__(
        self,
        message: str,
        code: Optional[ErrorCode] = None,
        path: str = "",
        **kwargs: Any,
    ) -> None:
        super().__init__(
            message=message,
            code=code or ErrorCodes.CONFIG_INVALID_VALUE,
            **kwargs,
        )
        self.path = path

    def to_gcc_format(self) -> str:
        where = f"{self.path}: " if self.path else ""
        return f"{where}error: {self.message} [{self.code}]"


__all__ = [
    "ErrorCode",
    "ErrorCodes",
    "SchemaFkError",
    "SchemaParseError",
    "ConfigError",
]
