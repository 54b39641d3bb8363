from .engine import EXIT_FAILED, EXIT_INTERRUPTED, EXIT_OK, RunOutcome, Workflow
from .errors import (
    ConfigValidationError,
    DependencyInstallError,
    OneclickError,
    OrchestratorError,
    PreconditionError,
    ProvisioningError,
    ProvisioningInterrupted,
)
from .resources import ContainerStackHandle, DirectoryHandle, ResourceKind, ServiceUnitHandle
from .rollback import RollbackHandler, RollbackReport
from .runner import LocalRunner
from .session import ProvisioningSession, RunState, Step, StepStatus

__all__ = [
    "EXIT_FAILED",
    "EXIT_INTERRUPTED",
    "EXIT_OK",
    "ConfigValidationError",
    "ContainerStackHandle",
    "DependencyInstallError",
    "DirectoryHandle",
    "LocalRunner",
    "OneclickError",
    "OrchestratorError",
    "PreconditionError",
    "ProvisioningError",
    "ProvisioningInterrupted",
    "ProvisioningSession",
    "ResourceKind",
    "RollbackHandler",
    "RollbackReport",
    "RunOutcome",
    "RunState",
    "ServiceUnitHandle",
    "Step",
    "StepStatus",
    "Workflow",
]
