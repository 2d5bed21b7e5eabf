"""
Error Taxonomy for the analytics engine.

Provides systematic classification of failure modes with:
- Error categories aligned to the computation stages
- Recoverability indicators
- Suggested recovery actions
- Structured error context for debugging

"No evidence" (e.g. a category without enough history) is not an error and
yields an empty result. "Not enough data to run at all" (e.g. forecasting
from two points) is raised as InsufficientDataError.
"""

from enum import Enum, auto
from dataclasses import dataclass, field
from typing import Optional, Dict, Any, List
import logging
import traceback

logger = logging.getLogger(__name__)


class ErrorCategory(Enum):
    """Systematic classification of failure modes."""
    # Input validation
    INVALID_QUERY = auto()
    UNKNOWN_FIELD = auto()
    INVALID_DATA_TYPE = auto()

    # Calculation
    INSUFFICIENT_DATA_POINTS = auto()
    MODEL_FIT_FAILED = auto()
    CALCULATION_ERROR = auto()
    DIVISION_BY_ZERO = auto()

    # System Errors
    CONFIGURATION_ERROR = auto()
    INTERNAL_ERROR = auto()
    UNKNOWN_ERROR = auto()


class ErrorSeverity(Enum):
    """Severity levels for errors."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


@dataclass
class RecoveryAction:
    """Suggested action to recover from an error."""
    action_type: str
    description: str
    parameters: Dict[str, Any] = field(default_factory=dict)

    @staticmethod
    def fallback(fallback_method: str) -> "RecoveryAction":
        return RecoveryAction(
            action_type="fallback",
            description=f"Use fallback: {fallback_method}",
            parameters={"method": fallback_method}
        )

    @staticmethod
    def clarify(message: str) -> "RecoveryAction":
        return RecoveryAction(
            action_type="clarify",
            description="Correct the request and try again",
            parameters={"message": message}
        )

    @staticmethod
    def collect_more_data(required: int, actual: int) -> "RecoveryAction":
        return RecoveryAction(
            action_type="collect_more_data",
            description=f"Need at least {required} data points, have {actual}",
            parameters={"required": required, "actual": actual}
        )

    @staticmethod
    def abort(reason: str) -> "RecoveryAction":
        return RecoveryAction(
            action_type="abort",
            description=f"Abort operation: {reason}",
            parameters={"reason": reason}
        )


@dataclass
class ClassifiedError:
    """A classified error with full context."""
    category: ErrorCategory
    severity: ErrorSeverity
    message: str
    recoverable: bool
    recovery_actions: List[RecoveryAction]

    original_exception: Optional[Exception] = None
    operation: Optional[str] = None
    context: Dict[str, Any] = field(default_factory=dict)
    stack_trace: Optional[str] = None
    user_message: Optional[str] = None

    def __post_init__(self):
        if self.original_exception and not self.stack_trace:
            self.stack_trace = ''.join(traceback.format_exception(
                type(self.original_exception),
                self.original_exception,
                self.original_exception.__traceback__
            ))

        if not self.user_message:
            self.user_message = self._generate_user_message()

    def _generate_user_message(self) -> str:
        """Generate a user-friendly error message."""
        messages = {
            ErrorCategory.INSUFFICIENT_DATA_POINTS: "Not enough history yet to run this analysis.",
            ErrorCategory.INVALID_QUERY: "The analytics request is not valid.",
            ErrorCategory.UNKNOWN_FIELD: "The request refers to a field that does not exist.",
            ErrorCategory.MODEL_FIT_FAILED: "The forecasting model could not be fitted to this data.",
            ErrorCategory.CONFIGURATION_ERROR: "The analytics configuration is invalid.",
        }
        return messages.get(self.category, f"An error occurred: {self.message}")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "category": self.category.name,
            "severity": self.severity.value,
            "message": self.message,
            "user_message": self.user_message,
            "recoverable": self.recoverable,
            "recovery_actions": [
                {"type": a.action_type, "description": a.description}
                for a in self.recovery_actions
            ],
            "operation": self.operation,
            "context": self.context,
        }


class AnalyticsError(Exception):
    """Base exception for engine errors with classification."""

    def __init__(
        self,
        message: str,
        category: ErrorCategory = ErrorCategory.UNKNOWN_ERROR,
        severity: ErrorSeverity = ErrorSeverity.MEDIUM,
        recoverable: bool = False,
        recovery_actions: List[RecoveryAction] = None,
        context: Dict[str, Any] = None,
    ):
        super().__init__(message)
        self.category = category
        self.severity = severity
        self.recoverable = recoverable
        self.recovery_actions = recovery_actions or []
        self.context = context or {}

    def classify(self) -> ClassifiedError:
        return ClassifiedError(
            category=self.category,
            severity=self.severity,
            message=str(self),
            recoverable=self.recoverable,
            recovery_actions=self.recovery_actions,
            original_exception=self,
            context=dict(self.context),
        )


class InsufficientDataError(AnalyticsError):
    """Raised when an operation cannot run on the amount of data given."""

    def __init__(self, message: str, required: int, actual: int, context: Dict[str, Any] = None):
        ctx = {"required": required, "actual": actual}
        ctx.update(context or {})
        super().__init__(
            message,
            category=ErrorCategory.INSUFFICIENT_DATA_POINTS,
            severity=ErrorSeverity.LOW,
            recoverable=True,
            recovery_actions=[RecoveryAction.collect_more_data(required, actual)],
            context=ctx,
        )
        self.required = required
        self.actual = actual


class InvalidQueryError(AnalyticsError, ValueError):
    """Raised when a request is malformed (unknown field, bad operator arguments)."""

    def __init__(self, message: str, category: ErrorCategory = ErrorCategory.INVALID_QUERY,
                 context: Dict[str, Any] = None):
        super().__init__(
            message,
            category=category,
            severity=ErrorSeverity.MEDIUM,
            recoverable=True,
            recovery_actions=[RecoveryAction.clarify(message)],
            context=context,
        )


class InvalidDataError(AnalyticsError, ValueError):
    """Raised when an input record violates a basic data invariant."""

    def __init__(self, message: str, context: Dict[str, Any] = None):
        super().__init__(
            message,
            category=ErrorCategory.INVALID_DATA_TYPE,
            severity=ErrorSeverity.HIGH,
            recoverable=False,
            recovery_actions=[RecoveryAction.abort("invalid input record")],
            context=context,
        )


class ModelFitError(AnalyticsError):
    """Raised when a regression model cannot be fitted to a series."""

    def __init__(self, message: str, model: str, context: Dict[str, Any] = None):
        ctx = {"model": model}
        ctx.update(context or {})
        super().__init__(
            message,
            category=ErrorCategory.MODEL_FIT_FAILED,
            severity=ErrorSeverity.LOW,
            recoverable=True,
            recovery_actions=[RecoveryAction.fallback("another regression model")],
            context=ctx,
        )
        self.model = model


class ConfigurationError(AnalyticsError):
    """Raised when configuration cannot be loaded."""

    def __init__(self, message: str, context: Dict[str, Any] = None):
        super().__init__(
            message,
            category=ErrorCategory.CONFIGURATION_ERROR,
            severity=ErrorSeverity.CRITICAL,
            recoverable=False,
            context=context,
        )


def classify_error(
    exception: Exception,
    operation: str = None,
    context: Dict[str, Any] = None,
) -> ClassifiedError:
    """Classify an exception into a structured error."""
    context = context or {}

    if isinstance(exception, AnalyticsError):
        classified = exception.classify()
        classified.operation = operation
        classified.context.update(context)
        return classified

    if isinstance(exception, ZeroDivisionError):
        return ClassifiedError(
            category=ErrorCategory.DIVISION_BY_ZERO,
            severity=ErrorSeverity.HIGH,
            message=str(exception),
            recoverable=False,
            recovery_actions=[],
            original_exception=exception,
            operation=operation,
            context=context,
        )

    if isinstance(exception, (ArithmeticError, OverflowError)):
        return ClassifiedError(
            category=ErrorCategory.CALCULATION_ERROR,
            severity=ErrorSeverity.HIGH,
            message=str(exception),
            recoverable=False,
            recovery_actions=[],
            original_exception=exception,
            operation=operation,
            context=context,
        )

    if isinstance(exception, (TypeError, ValueError)):
        return ClassifiedError(
            category=ErrorCategory.INVALID_DATA_TYPE,
            severity=ErrorSeverity.MEDIUM,
            message=str(exception),
            recoverable=False,
            recovery_actions=[RecoveryAction.clarify(str(exception))],
            original_exception=exception,
            operation=operation,
            context=context,
        )

    # Default
    return ClassifiedError(
        category=ErrorCategory.UNKNOWN_ERROR,
        severity=ErrorSeverity.HIGH,
        message=str(exception),
        recoverable=False,
        recovery_actions=[],
        original_exception=exception,
        operation=operation,
        context=context,
    )
