"""
Custom exceptions for Bandwriter
Provides structured error handling for report definitions and runs
"""
from typing import Any, Dict, Optional


class BandwriterError(Exception):
    """Base exception for all Bandwriter errors"""

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code or self.__class__.__name__
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for host responses"""
        return {
            "error": self.error_code,
            "message": self.message,
            "details": self.details,
        }


class ConfigurationError(BandwriterError):
    """Raised when configuration is invalid or missing"""

    def __init__(self, message: str, setting: Optional[str] = None):
        super().__init__(
            message=message,
            error_code="CONFIGURATION_ERROR",
            details={"setting": setting} if setting else {},
        )


class DefinitionError(BandwriterError):
    """Raised when a report definition violates a band-tree invariant"""

    def __init__(self, message: str, rule: Optional[str] = None, error_code: str = "DEFINITION_ERROR", **details):
        super().__init__(
            message=message,
            error_code=error_code,
            details={"rule": rule, **details} if rule else details,
        )
        self.rule = rule


class TargetAliasCycleError(DefinitionError):
    """Raised when a detail band alias refers back to itself through relation metadata"""

    def __init__(self, alias: str, path: Optional[list] = None):
        path = path or [alias]
        super().__init__(
            message=f"Target alias '{alias}' refers back to itself: {' -> '.join(path)}",
            rule="alias_cycle",
            error_code="TARGET_ALIAS_CYCLE",
            alias=alias,
            path=path,
        )
        self.alias = alias
        self.path = path


class GroupKeyError(BandwriterError):
    """Raised when a group key cannot be derived or compared"""

    def __init__(self, message: str, level: Optional[int] = None, record_index: Optional[int] = None, **details):
        super().__init__(
            message=message,
            error_code="GROUP_KEY_ERROR",
            details={"level": level, "record_index": record_index, **details},
        )
        self.level = level
        self.record_index = record_index


class ExpressionError(BandwriterError):
    """Raised when an expression hook or value expression fails to evaluate"""

    def __init__(self, message: str, expression: Any = None, band: Optional[str] = None, **details):
        super().__init__(
            message=message,
            error_code="EXPRESSION_ERROR",
            details={"expression": repr(expression), "band": band, **details},
        )
        self.expression = expression
        self.band = band


class ChildSourceError(BandwriterError):
    """Raised when the child row source fails to produce rows"""

    def __init__(self, alias: str, message: str, band: Optional[str] = None, **details):
        super().__init__(
            message=f"Child rows for '{alias}' unavailable: {message}",
            error_code="CHILD_SOURCE_ERROR",
            details={"alias": alias, "band": band, **details},
        )
        self.alias = alias
        self.band = band


class VariableError(BandwriterError):
    """Raised when an undeclared variable is used or a declaration is invalid"""

    def __init__(self, message: str, variable: Optional[str] = None):
        super().__init__(
            message=message,
            error_code="VARIABLE_ERROR",
            details={"variable": variable} if variable else {},
        )
        self.variable = variable
