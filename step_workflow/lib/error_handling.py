"""
Error handling for step execution.
Categorizes provider and runtime exceptions, decides whether a failed
step attempt may be retried, and records the failure in the logs and
the step audit trail.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Optional, TYPE_CHECKING
import asyncio
import logging
import traceback
from claude_agent_sdk import CLIJSONDecodeError, CLINotFoundError, ProcessError
from ..managers.retry_tracker import is_transient_error
if TYPE_CHECKING:
    from .audit import StepAuditLogger
logger = logging.getLogger(__name__)
class StepWorkflowError(Exception):
    """Base exception for step workflow errors."""
    pass
class AgentConfigError(StepWorkflowError):
    """Raised when an agent configuration cannot be loaded."""
    pass
class ErrorSeverity(Enum):
    """Classification of error severity levels."""
    LOW = "low" # Transient, likely recoverable
    MEDIUM = "medium" # May need intervention
    HIGH = "high" # Critical, needs escalation
class ErrorCategory(Enum):
    """Classification of error types."""
    NETWORK = "network"
    RATE_LIMIT = "rate_limit"
    AUTH = "auth"
    CONFIGURATION = "configuration"
    VALIDATION = "validation"
    API = "api"
    TIMEOUT = "timeout"
    UNKNOWN = "unknown"
@dataclass
class ErrorInfo:
    """Categorized error information."""
    category: ErrorCategory
    severity: ErrorSeverity
    message: str
    is_transient: bool = False
def categorize_error(error: BaseException) -> ErrorInfo:
    """Categorize an error for handling.
    Args:
        error: The exception to categorize
    Returns:
        ErrorInfo with category, severity and transient flag
    """
    message = str(error) or type(error).__name__
    transient = is_transient_error(message)
    if isinstance(error, AgentConfigError):
        return ErrorInfo(ErrorCategory.CONFIGURATION, ErrorSeverity.HIGH, message)
    if isinstance(error, CLINotFoundError):
        return ErrorInfo(
            ErrorCategory.CONFIGURATION,
            ErrorSeverity.HIGH,
            "Claude CLI not found. Please install Claude Code.",
        )
    if isinstance(error, CLIJSONDecodeError):
        return ErrorInfo(ErrorCategory.VALIDATION, ErrorSeverity.MEDIUM, message)
    if isinstance(error, asyncio.TimeoutError):
        return ErrorInfo(ErrorCategory.TIMEOUT, ErrorSeverity.LOW, message, is_transient=True)
    error_str = message.lower()
    if any(term in error_str for term in ["rate limit", "too many requests", "429"]):
        return ErrorInfo(ErrorCategory.RATE_LIMIT, ErrorSeverity.LOW, message, is_transient=True)
    if any(term in error_str for term in ["timeout", "etimedout"]):
        return ErrorInfo(ErrorCategory.TIMEOUT, ErrorSeverity.LOW, message, is_transient=True)
    if transient:
        return ErrorInfo(ErrorCategory.NETWORK, ErrorSeverity.LOW, message, is_transient=True)
    if any(term in error_str for term in ["authentication", "unauthorized", "api key", "401", "403"]):
        return ErrorInfo(ErrorCategory.AUTH, ErrorSeverity.HIGH, message)
    if isinstance(error, ProcessError):
        return ErrorInfo(ErrorCategory.API, ErrorSeverity.MEDIUM, message)
    if any(term in error_str for term in ["validation", "invalid", "malformed"]):
        return ErrorInfo(ErrorCategory.VALIDATION, ErrorSeverity.MEDIUM, message)
    return ErrorInfo(ErrorCategory.UNKNOWN, ErrorSeverity.MEDIUM, message)
@dataclass
class StepErrorResult:
    """Result of handling a failed step attempt."""
    can_retry: bool
    error_message: str
    error_stack: Optional[str]
    is_transient: bool
    retry_count: int
    retry_limit_reached: bool
    category: ErrorCategory = ErrorCategory.UNKNOWN
def handle_step_error(
    error: BaseException,
    workflow_id: str,
    session_id: str,
    retry_count: int,
    max_retries: int,
    audit: Optional["StepAuditLogger"] = None,
) -> StepErrorResult:
    """
    Classify a step failure and record it.
    Args:
        error: The exception raised while executing the step
        workflow_id: Owning workflow
        session_id: Failed session
        retry_count: Retries already consumed for the workflow
        max_retries: Retry ceiling
        audit: Audit logger for the step, if any
    Returns:
        StepErrorResult describing whether a retry is worthwhile
    """
    info = categorize_error(error)
    stack = "".join(traceback.format_exception(type(error), error, error.__traceback__))
    retry_limit_reached = retry_count >= max_retries
    can_retry = info.is_transient and not retry_limit_reached
    logger.error(
        f"Step failed for workflow {workflow_id} (session {session_id}): {info.message} "
        f"[category={info.category.value}, transient={info.is_transient}, "
        f"retries={retry_count}/{max_retries}]",
        exc_info=error,
    )
    if audit is not None:
        audit.error(
            session_id,
            workflow_id,
            f"Step failed: {info.message}",
            {
                "category": info.category.value,
                "severity": info.severity.value,
                "is_transient": info.is_transient,
                "can_retry": can_retry,
                "retry_count": retry_count,
            },
        )
        if retry_limit_reached:
            audit.retry_limit_reached(session_id, workflow_id, retry_count, max_retries)
    return StepErrorResult(
        can_retry=can_retry,
        error_message=info.message,
        error_stack=stack,
        is_transient=info.is_transient,
        retry_count=retry_count,
        retry_limit_reached=retry_limit_reached,
        category=info.category,
    )
