from typing import Any, Dict, List, Optional

class AppException(Exception):
    def __init__(
        self,
        message: str,
        status_code: int = 400,
        error_code: str = "BUSINESS_ERROR",
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.status_code = status_code
        self.error_code = error_code
        self.details = details
        super().__init__(self.message)

class ValidationError(AppException):
    """Field-level or business-rule failure raised before any mutation."""
    def __init__(self, errors: List[str], warnings: Optional[List[str]] = None):
        self.errors = list(errors)
        self.warnings = list(warnings or [])
        super().__init__(
            message="; ".join(self.errors) or "Validation failed",
            status_code=422,
            error_code="VALIDATION_FAILED",
            details={"errors": self.errors, "warnings": self.warnings}
        )

class StateConflictError(AppException):
    def __init__(self, message: str):
        super().__init__(
            message=message,
            status_code=409,
            error_code="STATE_CONFLICT"
        )

class InsufficientBalanceError(AppException):
    def __init__(self, available: float, requested: float, message: Optional[str] = None):
        self.available = available
        self.requested = requested
        self.errors = [message or (
            f"Insufficient leave balance. Available: {available:.2f} days, "
            f"Requested: {requested:.2f} days"
        )]
        super().__init__(
            message=self.errors[0],
            status_code=400,
            error_code="INSUFFICIENT_BALANCE",
            details={"available": available, "requested": requested}
        )

class NotFoundError(AppException):
    def __init__(self, message: str = "Resource not found"):
        super().__init__(
            message=message,
            status_code=404,
            error_code="NOT_FOUND"
        )

class LedgerInvariantError(AppException):
    """A balance mutation would leave a row in an impossible state."""
    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            message=message,
            status_code=500,
            error_code="LEDGER_INVARIANT_VIOLATION",
            details=details
        )
