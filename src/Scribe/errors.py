"""Importer error taxonomy.

Terminal errors (fetch, validation, root creation, cancellation) end the
session and are reported through ``ImportResult``. ``PhaseWriteError`` is
recovered inside the loader and only surfaces as an aggregated failure list.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Literal

if TYPE_CHECKING:
    from Scribe.importer_context import ValidationIssue


class ImporterError(Exception):
    """Base exception for importer errors."""

    pass


class BranchFetchError(ImporterError):
    """The external branch snapshot could not be retrieved."""

    def __init__(self, branch_id: str | None, message: str):
        self.branch_id = branch_id
        self.message = message
        prefix = f"Branch {branch_id}: " if branch_id else ""
        super().__init__(f"{prefix}{message}")


class BatchValidationError(ImporterError):
    def __init__(self, issues: list[ValidationIssue]):
        self.issues = list(issues)
        super().__init__(f"Validation failed with {len(self.issues)} issue(s)")


CreationFailureKind = Literal["name_exists", "store_failure"]


class FatalCreationError(ImporterError):
    """Root entity could not be created; nothing was written."""

    def __init__(self, message: str, *, kind: CreationFailureKind):
        self.kind = kind
        super().__init__(message)


class PhaseWriteError(ImporterError):
    def __init__(self, phase: str, entity_type: str, cause: BaseException):
        self.phase = phase
        self.entity_type = entity_type
        self.cause = cause
        detail = str(cause) or type(cause).__name__
        super().__init__(f"{phase} failed: {detail}")


class BindingNotFoundError(ImporterError):
    def __init__(self, platform_branch_id: str):
        self.platform_branch_id = platform_branch_id
        super().__init__(
            f"No platform found with platformBranchId: {platform_branch_id}. "
            "The required platform must be imported first."
        )


class ImportCancelled(ImporterError):
    def __init__(self, step: str):
        self.step = step
        super().__init__(f"Import cancelled before step: {step}")
