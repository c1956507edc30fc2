"""
Error codes for the recovery risk engine.
Gives auditable error codes for debugging and for API responses.
"""

from enum import Enum
from typing import Dict, Any, Optional
import logging
import uuid
from datetime import datetime, timezone
import json

class ErrorCode(Enum):
    """Error codes for recovery risk components"""

    # Risk Engine Errors (RISK_xxx)
    RISK_INVALID_INPUT = "RISK_001"
    RISK_UNKNOWN_CATEGORY = "RISK_002"
    RISK_THRESHOLD_NOT_FOUND = "RISK_003"
    RISK_INVALID_THRESHOLD = "RISK_004"
    RISK_PATIENT_NOT_FOUND = "RISK_005"

    # Configuration Errors (CFG_xxx)
    CFG_INVALID_CONFIG = "CFG_001"
    CFG_FILE_NOT_FOUND = "CFG_002"

    # API/Application Errors (APP_xxx)
    APP_INVALID_REQUEST = "APP_001"
    APP_INTERNAL_ERROR = "APP_002"

class RiskEngineError(Exception):
    """Base exception with a specific error code"""

    kind = "error"

    def __init__(
        self,
        error_code: ErrorCode,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        original_exception: Optional[Exception] = None
    ):
        self.error_code = error_code
        self.message = message
        self.details = details or {}
        self.original_exception = original_exception
        self.timestamp = datetime.now(timezone.utc).isoformat()
        self.trace_id = str(uuid.uuid4())[:8]

        super().__init__(f"[{error_code.value}] {message}")

    def to_dict(self) -> Dict[str, Any]:
        """Convert error to dictionary for logging/API responses"""
        return {
            "error_code": self.error_code.value,
            "kind": self.kind,
            "message": self.message,
            "details": self.details,
            "timestamp": self.timestamp,
            "trace_id": self.trace_id,
            "original_error": str(self.original_exception) if self.original_exception else None
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), indent=2, default=str)

class ValidationError(RiskEngineError):
    """Input outside its physiological or logical range"""

    kind = "invalid_input"

    def __init__(self, field: str, value: Any, reason: str,
                 error_code: ErrorCode = ErrorCode.RISK_INVALID_INPUT,
                 original_exception: Optional[Exception] = None):
        self.field = field
        self.value = value
        super().__init__(
            error_code=error_code,
            message=f"Invalid value for {field}: {reason}",
            details={"field": field, "value": value, "reason": reason},
            original_exception=original_exception
        )

class NotFoundError(RiskEngineError):
    kind = "not_found"

class ConfigError(RiskEngineError):
    kind = "invalid_config"

class ErrorLogger:
    """Centralized error logging with structured output"""

    def __init__(self, logger_name: str = "recovery_risk"):
        self.logger = logging.getLogger(logger_name)

    def log_error(self, error: RiskEngineError, level: int = logging.ERROR):
        self.logger.log(
            level,
            f"RISK_ENGINE_ERROR: {error.error_code.value} - {error.message}",
            extra={
                "error_code": error.error_code.value,
                "trace_id": error.trace_id,
                "details": error.details,
                "timestamp": error.timestamp
            }
        )

        if error.original_exception:
            self.logger.debug(
                f"Original exception for {error.trace_id}:",
                exc_info=error.original_exception
            )

def invalid_field_error(field: str, value: Any, reason: str) -> ValidationError:
    return ValidationError(field=field, value=value, reason=reason)

def from_pydantic_error(exc: Exception) -> ValidationError:
    """Turn the first pydantic validation failure into a ValidationError"""
    errors = exc.errors() if hasattr(exc, "errors") else []
    if not errors:
        return ValidationError(field="input", value=None, reason=str(exc), original_exception=exc)

    first = errors[0]
    field = ".".join(str(part) for part in first.get("loc", ())) or "input"
    value = first.get("input")
    if isinstance(value, dict):
        value = None
    return ValidationError(field=field, value=value, reason=first.get("msg", "invalid"),
                           original_exception=exc)

def handle_threshold_not_found(category: str, metric: str) -> NotFoundError:
    return NotFoundError(
        error_code=ErrorCode.RISK_THRESHOLD_NOT_FOUND,
        message=f"No alert threshold for {category}/{metric}",
        details={"category": category, "metric": metric}
    )

def handle_unknown_category(category: str) -> NotFoundError:
    return NotFoundError(
        error_code=ErrorCode.RISK_UNKNOWN_CATEGORY,
        message=f"Unknown risk category '{category}'",
        details={"category": category}
    )

def handle_patient_not_found(patient_id: str) -> NotFoundError:
    return NotFoundError(
        error_code=ErrorCode.RISK_PATIENT_NOT_FOUND,
        message=f"No trend history for patient {patient_id}",
        details={"patient_id": patient_id}
    )

ERROR_CODE_DESCRIPTIONS = {
    ErrorCode.RISK_INVALID_INPUT: "Patient input failed range validation",
    ErrorCode.RISK_UNKNOWN_CATEGORY: "Risk category name not recognised",
    ErrorCode.RISK_THRESHOLD_NOT_FOUND: "Alert threshold key not configured",
    ErrorCode.RISK_INVALID_THRESHOLD: "Alert threshold levels out of order",
    ErrorCode.RISK_PATIENT_NOT_FOUND: "No state recorded for patient",
    ErrorCode.CFG_INVALID_CONFIG: "Configuration file could not be parsed",
    ErrorCode.CFG_FILE_NOT_FOUND: "Configuration file missing, defaults in use",
    ErrorCode.APP_INVALID_REQUEST: "Request body or query parameters malformed",
    ErrorCode.APP_INTERNAL_ERROR: "Unexpected server error",
}

def get_error_description(error_code: ErrorCode) -> str:
    return ERROR_CODE_DESCRIPTIONS.get(error_code, "Unknown error")
