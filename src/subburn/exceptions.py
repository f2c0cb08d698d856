from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class ErrorCategory(str, Enum):
    CONFIG = "config"
    DEPENDENCY = "dependency"
    RUNTIME = "runtime"
    INPUT = "input"
    ENCODE = "encode"
    DELIVERY = "delivery"
    STORE = "store"


DEFAULT_EXIT_CODES: dict[ErrorCategory, int] = {
    ErrorCategory.RUNTIME: 1,
    ErrorCategory.CONFIG: 2,
    ErrorCategory.DEPENDENCY: 3,
    ErrorCategory.INPUT: 4,
    ErrorCategory.ENCODE: 5,
    ErrorCategory.DELIVERY: 6,
    ErrorCategory.STORE: 7,
}


@dataclass
class SubburnError(Exception):
    """Base exception for subburn with standardized categories."""

    message: str
    category: ErrorCategory = ErrorCategory.RUNTIME
    exit_code: int | None = None

    def __post_init__(self) -> None:
        super().__init__(self.message)
        if self.exit_code is None:
            self.exit_code = DEFAULT_EXIT_CODES.get(self.category, 1)

    def label(self) -> str:
        return {
            ErrorCategory.CONFIG: "Configuration error",
            ErrorCategory.DEPENDENCY: "Dependency error",
            ErrorCategory.RUNTIME: "Runtime error",
            ErrorCategory.INPUT: "Input error",
            ErrorCategory.ENCODE: "Encode error",
            ErrorCategory.DELIVERY: "Delivery error",
            ErrorCategory.STORE: "Store error",
        }.get(self.category, "Error")


class DependencyMissingError(SubburnError):
    """Raised when a required external dependency is missing."""

    def __init__(self, message: str, *, exit_code: int | None = None) -> None:
        super().__init__(
            message,
            category=ErrorCategory.DEPENDENCY,
            exit_code=exit_code,
        )


class ConfigurationError(SubburnError):
    """Raised when configuration is invalid."""

    def __init__(self, message: str, *, exit_code: int | None = None) -> None:
        super().__init__(
            message,
            category=ErrorCategory.CONFIG,
            exit_code=exit_code,
        )


class InputError(SubburnError):
    """Invalid caller input. Surfaced immediately; no job is created."""

    def __init__(self, message: str, *, exit_code: int | None = None) -> None:
        super().__init__(
            message,
            category=ErrorCategory.INPUT,
            exit_code=exit_code,
        )


class NoValidSegmentsError(InputError):
    def __init__(self, message: str = "No valid subtitle segments found") -> None:
        super().__init__(message)


class SourceNotFoundError(InputError):
    def __init__(self, upload_id: str) -> None:
        super().__init__(f"Source video for upload '{upload_id}' not found")
        self.upload_id = upload_id


class HardwareProbeError(SubburnError):
    """Raised inside the hardware probe; callers only ever see 'unavailable'."""

    def __init__(self, message: str) -> None:
        super().__init__(message, category=ErrorCategory.DEPENDENCY)


class EncodeEngineError(SubburnError):
    """The transcode engine failed. Terminal for the job, never retried here."""

    def __init__(self, message: str, *, stderr_tail: str = "") -> None:
        super().__init__(message, category=ErrorCategory.ENCODE)
        self.stderr_tail = stderr_tail


class DeliveryError(SubburnError):
    def __init__(self, message: str) -> None:
        super().__init__(message, category=ErrorCategory.DELIVERY)


class RangeNotSatisfiableError(DeliveryError):
    def __init__(self, start: int, size: int) -> None:
        super().__init__(f"Range start {start} is beyond artifact size {size}")
        self.start = start
        self.size = size


class InvalidTokenError(DeliveryError):
    def __init__(self, message: str = "Download token invalid or expired") -> None:
        super().__init__(message)


class StoreError(SubburnError):
    def __init__(self, message: str) -> None:
        super().__init__(message, category=ErrorCategory.STORE)


class StoreWriteError(StoreError):
    pass


class InvalidTransitionError(SubburnError):
    def __init__(self, current: str, target: str) -> None:
        super().__init__(f"Illegal export job transition {current} -> {target}")
        self.current = current
        self.target = target
