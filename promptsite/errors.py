from __future__ import annotations

from typing import Any, Dict, Optional


class GenerationError(Exception):
    """Base class for failures of a single generation request.

    Each subclass carries the HTTP status and the stable ``code`` the API
    reports.
    """

    code = "GENERATION_FAILED"
    status_code = 500
    default_message = "Failed to generate website. Please try again."

    def __init__(self, message: Optional[str] = None) -> None:
        super().__init__(message or self.default_message)
        self.message = message or self.default_message

    @property
    def wait_seconds(self) -> Optional[int]:
        return None

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"error": self.message, "code": self.code}
        if self.wait_seconds is not None:
            payload["waitTime"] = self.wait_seconds
        return payload


class AdmissionDenied(GenerationError):
    code = "RATE_LIMIT"
    status_code = 429
    default_message = "Rate limit exceeded. Please wait a moment and try again."

    def __init__(self, message: Optional[str] = None, wait_seconds: Optional[int] = None, reason: Optional[str] = None) -> None:
        super().__init__(message)
        self._wait_seconds = wait_seconds
        self.reason = reason

    @property
    def wait_seconds(self) -> Optional[int]:
        return self._wait_seconds


class UpstreamError(GenerationError):
    """The model call failed for a reason that retrying will not fix."""

    def __init__(self, message: Optional[str] = None, status: Optional[int] = None) -> None:
        super().__init__(message)
        self.status = status


class UpstreamRateLimited(UpstreamError):
    code = "RATE_LIMIT"
    status_code = 429
    default_message = "Rate limit exceeded. Please wait a moment and try again."

    def __init__(self, message: Optional[str] = None, status: Optional[int] = 429, retry_after: Optional[float] = None) -> None:
        super().__init__(message, status=status)
        self.retry_after = retry_after

    @property
    def wait_seconds(self) -> Optional[int]:
        if self.retry_after is None:
            return None
        return max(1, int(round(self.retry_after)))


class UpstreamAuthError(UpstreamError):
    code = "INVALID_API_KEY"
    status_code = 401
    default_message = "Invalid API key. Please check your Gemini API key configuration."


class EmptyResponse(GenerationError):
    code = "EMPTY_RESPONSE"
    default_message = "Failed to generate website content"


class InvalidFormat(GenerationError):
    code = "INVALID_FORMAT"
    default_message = "AI returned invalid format. Please try again."


class ProjectError(Exception):
    status_code = 400

    def __init__(self, name: str, message: str) -> None:
        super().__init__(message)
        self.name = name
        self.message = message


class DuplicateFile(ProjectError):
    status_code = 409

    def __init__(self, name: str) -> None:
        super().__init__(name, f"File already exists: {name}")


class ProtectedFile(ProjectError):
    status_code = 400

    def __init__(self, name: str) -> None:
        super().__init__(name, f"Cannot delete protected file: {name}")


class FileNotFound(ProjectError):
    status_code = 404

    def __init__(self, name: str) -> None:
        super().__init__(name, f"File not found: {name}")
