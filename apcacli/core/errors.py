from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Sequence


class InvalidNumber(ValueError):
    """Raised when text is not a plain base-10 numeral."""

    def __init__(self, text: str, *, field: Optional[str] = None) -> None:
        self.text = text
        self.field = field
        super().__init__(f"not a valid decimal number: {text!r}")


@dataclass(frozen=True)
class FieldViolation:
    field: str
    reason: str

    def __str__(self) -> str:
        return f"{self.field}: {self.reason}"


class ValidationError(ValueError):
    """Raised when command arguments violate one or more constraints.

    Carries every violation found, not just the first one.
    """

    def __init__(self, violations: Sequence[FieldViolation]) -> None:
        self.violations = list(violations)
        super().__init__("; ".join(str(item) for item in self.violations))

    @property
    def fields(self) -> list[str]:
        return [item.field for item in self.violations]


class ConfigError(RuntimeError):
    """Raised when the API credentials or endpoints are not configured."""


class ApiError(Exception):
    category = "unknown"

    def __init__(self, message: str = "") -> None:
        self.message = message
        super().__init__(message or self.category)

    def describe(self) -> str:
        if self.message:
            return f"{self.category}: {self.message}"
        return self.category


class Unauthorized(ApiError):
    category = "unauthorized"


class NotFound(ApiError):
    category = "not found"


class RateLimited(ApiError):
    category = "rate limited"

    def __init__(self, message: str = "", *, retry_after: float = 1.0) -> None:
        self.retry_after = max(float(retry_after), 0.0)
        super().__init__(message)


class ApiValidation(ApiError):
    category = "rejected"

    @property
    def server_message(self) -> str:
        return self.message


class Transport(ApiError):
    category = "transport"

    def __init__(self, message: str = "", *, cause: Optional[BaseException] = None) -> None:
        self.cause = cause
        if not message and cause is not None:
            message = f"{type(cause).__name__}: {cause}"
        super().__init__(message)


class UnknownApiError(ApiError):
    category = "unexpected response"

    def __init__(self, message: str = "", *, status_code: Optional[int] = None) -> None:
        self.status_code = status_code
        super().__init__(message)

    def describe(self) -> str:
        status = f" (HTTP {self.status_code})" if self.status_code is not None else ""
        return f"{super().describe()}{status}"


class StreamConnectionError(ConnectionError):
    """The update stream broke while it was being consumed."""


class DisplayError(Exception):
    """Rendering a result or event failed."""


class CommandFailed(Exception):
    def __init__(self, operation: str, error: ApiError) -> None:
        self.operation = operation
        self.error = error
        super().__init__(f"{operation} failed: {error.describe()}")
