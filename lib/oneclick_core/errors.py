from __future__ import annotations


class OneclickError(Exception):
    """Base provisioning error."""

    def __init__(self, message: str, *, hint: str | None = None):
        super().__init__(message)
        self.message = message
        self.hint = hint


class PreconditionError(OneclickError):
    """Wrong privilege level or unsupported OS."""


class DependencyInstallError(OneclickError):
    """Package install failed or the command is still missing afterwards."""


class ConfigValidationError(OneclickError):
    """Operator-supplied value failed a format check."""


class OrchestratorError(OneclickError):
    """Stack failed validation, failed to start or failed health verification."""


class ProvisioningInterrupted(OneclickError):
    """Interrupt signal received while a step was running."""

    def __init__(self, signum: int | None = None):
        super().__init__("Interrupted by operator." if signum is None else f"Interrupted by signal {signum}.")
        self.signum = signum


class ProvisioningError(OneclickError):
    def __init__(self, step: str, cause: BaseException):
        message = str(cause) or cause.__class__.__name__
        super().__init__(f"Step '{step}' failed: {message}", hint=getattr(cause, "hint", None))
        self.step = step
        self.cause = cause

    @property
    def interrupted(self) -> bool:
        return isinstance(self.cause, (ProvisioningInterrupted, KeyboardInterrupt))
