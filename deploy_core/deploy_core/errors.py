"""Exception hierarchy shared by every deploy_core component.

Callers catch the narrowest type they can act on.  ``TimedOut`` and
``RemoteQueryError`` are siblings so that a waiter can
tell "the remote never answered in time" apart from "the remote said no".
"""

from __future__ import annotations


class DeployError(Exception):
    """Base class for all content-deploy errors."""


class RepositoryError(DeployError):
    """A git operation (clone, fetch, checkout, reset, push) could not complete."""


class BranchNotFound(RepositoryError):
    """The requested branch exists neither locally nor on the remote."""

    def __init__(self, branch: str) -> None:
        super().__init__(f"Branch not found locally or on remote: {branch}")
        self.branch = branch


class PipelineStageFailure(DeployError):
    """A pipeline stage could not produce its artifact."""

    def __init__(self, stage: str, message: str, cause: BaseException | None = None) -> None:
        super().__init__(f"[{stage}] {message}")
        self.stage = stage
        self.cause = cause


class PreviousStageFailed(PipelineStageFailure):
    """Raised for a stage that was skipped because its predecessor failed."""

    def __init__(self, stage: str, previous: str) -> None:
        super().__init__(stage, f"Previous task failed ({previous})")
        self.previous = previous


class ConfigPersistError(DeployError):
    """The persisted deployment state could not be written."""


class RemoteQueryError(DeployError):
    """A remote history endpoint answered with an error status or content type."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class TimedOut(DeployError):
    """Waiting for a history token exceeded its deadline."""


class UnknownCommandError(DeployError):
    """A channel payload named a command kind this node does not know."""
