"""Exception hierarchy shared across gui_operate components."""

from __future__ import annotations


class GuiOperateError(RuntimeError):
    """Base class for all gui_operate failures."""


class ConfigurationError(GuiOperateError):
    """Fatal misconfiguration (missing API key, unknown wire format)."""


class VisionProviderError(GuiOperateError):
    """A vision provider call failed."""


class VisionRequestError(VisionProviderError):
    """The provider rejected the request shape; retrying cannot help."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class VisionTransientError(VisionProviderError):
    """A retryable provider failure (stream error event, empty reconstruction)."""


class VisionProviderExhaustedError(VisionProviderError):
    """All attempts failed; ``last_error`` holds the final underlying cause."""

    def __init__(self, attempts: int, last_error: BaseException) -> None:
        super().__init__(
            f"Vision provider failed after {attempts} attempts: "
            f"{str(last_error) or type(last_error).__name__}"
        )
        self.attempts = attempts
        self.last_error = last_error


class VisionParseError(GuiOperateError):
    """The model answered but the payload was not the expected JSON contract."""
