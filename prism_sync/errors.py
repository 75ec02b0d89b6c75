"""
Prism Element Error Mapping

Exception types raised by the sync engine and a mapping from Prism error
responses to error info with retry guidance.
"""

from typing import Any, Optional


class PrismSyncError(Exception):
    """Base exception for the sync engine"""


class PrismApiError(PrismSyncError):
    """Raised for Prism REST failures"""

    def __init__(self, message: str, error_code: Optional[str] = None, status_code: Optional[int] = None):
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        super().__init__(self.message)


class PrismConfigError(PrismSyncError):
    """Raised when a cloud is missing its API URL or credentials"""


class TaskTimeoutError(PrismApiError):
    """Raised when a Prism task is still pending after every polling attempt"""

    def __init__(self, task_id: str, attempts: int):
        message = f"Task {task_id} still pending after {attempts} attempts"
        super().__init__(message, error_code="TIMEOUT")
        self.task_id = task_id


class PrismErrorCodes:
    """
    Error classes surfaced by Prism Element and their handling.
    """

    AUTH = {
        "code": "AUTH",
        "message": "Authentication failed. Check the cloud username and password.",
        "retry": False,
    }

    FORBIDDEN = {
        "code": "FORBIDDEN",
        "message": "User lacks the Prism role required for this call.",
        "retry": False,
    }

    NOT_FOUND = {
        "code": "NOT_FOUND",
        "message": "Requested entity no longer exists on the cluster.",
        "retry": False,
    }

    INVALID_STATE = {
        "code": "INVALID_STATE",
        "message": "Entity is already in the requested state.",
        "retry": False,
    }

    SERVER_ERROR = {
        "code": "SERVER_ERROR",
        "message": "Prism returned an internal error. Retry on the next cycle.",
        "retry": True,
        "wait_seconds": 30,
    }

    TIMEOUT = {
        "code": "TIMEOUT",
        "message": "Operation timed out. Prism may be busy or unreachable.",
        "retry": True,
        "wait_seconds": 30,
    }


def map_prism_error(status_code: Optional[int], error_response: Any = None) -> dict:
    """
    Map a Prism error response to error info with retry guidance.

    Args:
        status_code: HTTP status of the failed call (None when no response)
        error_response: Decoded body, either a v2 or v1 error payload

    Returns:
        dict with keys: code, message, retry
    """
    error_message = ""
    if isinstance(error_response, dict):
        # v2: {"message": ..., "error_code": {"code": ...}}; v1: {"message": ..., "errorCode": ...}
        error_message = str(error_response.get("message") or error_response.get("detailed_message") or "")
    elif isinstance(error_response, str):
        error_message = error_response

    if status_code == 401:
        return PrismErrorCodes.AUTH
    if status_code == 403:
        return PrismErrorCodes.FORBIDDEN
    if status_code == 404:
        return PrismErrorCodes.NOT_FOUND
    if status_code is not None and status_code >= 500:
        return PrismErrorCodes.SERVER_ERROR

    error_message_lower = error_message.lower()

    if "kinvalidstate" in error_message_lower or "invalid state" in error_message_lower:
        return PrismErrorCodes.INVALID_STATE

    if "unauthorized" in error_message_lower or "authentication" in error_message_lower:
        return PrismErrorCodes.AUTH

    if "timeout" in error_message_lower or "timed out" in error_message_lower:
        return PrismErrorCodes.TIMEOUT

    return {
        "code": "UNKNOWN",
        "message": error_message or "Unknown error occurred",
        "retry": False,
    }
