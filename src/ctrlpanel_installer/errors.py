"""Error taxonomy shared by the installer components."""

from __future__ import annotations

from typing import Optional


class InstallerError(RuntimeError):
    """Base class for every error raised by the installer."""


class ValidationError(InstallerError):
    """Bad or missing required input; raised before any side effect."""

    def __init__(self, field: str, message: str) -> None:
        self.field = field
        super().__init__(f"{field}: {message}")


class StepFailure(InstallerError):
    """An external collaborator reported failure while applying a step."""

    def __init__(self, step_id: str, detail: str, fatal: bool = True) -> None:
        self.step_id = step_id
        self.detail = detail
        self.fatal = fatal
        super().__init__(f"Step '{step_id}' failed: {detail}")


class RollbackFailure(InstallerError):
    """Undoing a single step failed. Logged and reported, never escalated."""

    def __init__(self, step_id: str, detail: str) -> None:
        self.step_id = step_id
        self.detail = detail
        super().__init__(f"Undo of '{step_id}' failed: {detail}")


class ConfirmationDeclined(InstallerError):
    """The operator declined to proceed. Not an error: clean exit."""


class FootprintViolation(InstallerError):
    """A removal targeted a resource outside the managed footprint."""

    def __init__(self, resource: str, kind: Optional[str] = None) -> None:
        self.resource = resource
        self.kind = kind
        label = f"{kind} '{resource}'" if kind else f"'{resource}'"
        super().__init__(f"Refusing to remove {label}: not part of the managed footprint")
