"""
Railway-Oriented Programming (ROP) support for cert-tracker.

Explicit, composable error handling — adapters return Result, never raise:

    from railway import Result, ErrorCode

    def require_name(name: str) -> Result[str]:
        if not name:
            return Result.failure(ErrorCode.VALIDATION_ERROR, "Certificate name is required")
        return Result.success(name)
"""

from railway.assertions import ResultAssertions
from railway.execution import ExecutionContext, LoggingExecutionContext, NoOpExecutionContext
from railway.failure import ErrorCode, FailureDescription
from railway.result import Failure, Result, Success

__all__ = [
    "Result",
    "Success",
    "Failure",
    "ErrorCode",
    "FailureDescription",
    "ExecutionContext",
    "NoOpExecutionContext",
    "LoggingExecutionContext",
    "ResultAssertions",
]
