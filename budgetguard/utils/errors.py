"""
Custom exception classes for budgetguard error handling.
"""

from typing import Any, Dict, Optional


class BudgetGuardError(Exception):
    """Base exception class for all budgetguard errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        """Initialize budgetguard error.

        Args:
            message: Error message
            details: Optional dictionary with additional error details
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        """Return string representation of the error."""
        if self.details:
            return f"{self.message} (Details: {self.details})"
        return self.message


class ConfigurationError(BudgetGuardError):
    """Raised when there are configuration-related errors."""

    pass


class PolicyLookupError(BudgetGuardError):
    """Raised when the budget listing cannot be retrieved."""

    def __init__(
        self,
        message: str,
        scope: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        """Initialize policy lookup error.

        Args:
            message: Error message
            scope: Tenant scope being resolved when the lookup failed
            details: Additional error details
        """
        error_details = details or {}
        if scope:
            error_details["scope"] = scope

        super().__init__(message, error_details)
        self.scope = scope


class UsageEnumerationError(BudgetGuardError):
    """Raised when the workloads of a scope cannot be enumerated."""

    def __init__(
        self,
        message: str,
        scope: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        """Initialize usage enumeration error.

        Args:
            message: Error message
            scope: Tenant scope whose workloads could not be listed
            details: Additional error details
        """
        error_details = details or {}
        if scope:
            error_details["scope"] = scope

        super().__init__(message, error_details)
        self.scope = scope


class MalformedBudgetLimitError(BudgetGuardError):
    """Raised when a budget limit string cannot be parsed as a quantity."""

    def __init__(
        self,
        message: str,
        field_name: Optional[str] = None,
        field_value: Optional[Any] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        """Initialize malformed limit error.

        Args:
            message: Error message
            field_name: Name of the budget field that failed to parse
            field_value: Raw value that failed to parse
            details: Additional error details
        """
        error_details = details or {}
        if field_name:
            error_details["field_name"] = field_name
        if field_value is not None:
            error_details["field_value"] = field_value

        super().__init__(message, error_details)
        self.field_name = field_name
        self.field_value = field_value


class ContractViolationError(BudgetGuardError):
    """Raised when a caller hands the decision entry points the wrong kind of object."""

    def __init__(
        self,
        message: str,
        expected: Optional[str] = None,
        received: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        error_details = details or {}
        if expected:
            error_details["expected"] = expected
        if received:
            error_details["received"] = received

        super().__init__(message, error_details)
        self.expected = expected
        self.received = received


def expect_kind(obj: Any, expected_type: type, kind: str) -> None:
    """Raise ContractViolationError unless obj is an instance of expected_type.

    Args:
        obj: Object handed to an entry point
        expected_type: Type the entry point accepts
        kind: Human-readable kind name used in the message
    """
    if not isinstance(obj, expected_type):
        received = type(obj).__name__
        raise ContractViolationError(
            f"expected a {kind} but got a {received}", expected=kind, received=received
        )
