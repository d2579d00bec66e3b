"""Per-import session state and the externally visible ``ImportResult``.

An ``ImportSession`` lives for exactly one pipeline run. It tracks the step
plan used for progress reporting, the root id once created, per-type tallies
(created / dropped), skipped phases, and the accumulated runtime failures.
Sessions never share state; concurrent imports each build their own.

Mutating methods are synchronous and contain no awaits, so phases running
concurrently on one event loop can append to the same session safely.
"""

from __future__ import annotations

import asyncio
import enum
from collections.abc import Callable
from dataclasses import dataclass, field

import structlog
from pydantic import BaseModel, Field

from Scribe.drafts import EntityType
from Scribe.errors import ImportCancelled

log = structlog.get_logger()

ProgressCallback = Callable[[str, int, int], None]


class ImportOutcome(str, enum.Enum):
    COMPLETED = "completed"
    # Root exists but at least one section is incomplete (failed/skipped/dropped)
    PARTIAL = "partial"
    FETCH_FAILED = "fetch_failed"
    VALIDATION_FAILED = "validation_failed"
    CREATION_FAILED = "creation_failed"
    CANCELLED = "cancelled"

    @property
    def succeeded(self) -> bool:
        return self in (ImportOutcome.COMPLETED, ImportOutcome.PARTIAL)


class ValidationIssue(BaseModel):
    entity_type: str
    index: int | None = None
    field: str | None = None
    message: str

    def __str__(self) -> str:
        return self.message


class PhaseFailure(BaseModel):
    phase: str
    entity_type: str
    message: str

    def __str__(self) -> str:
        return f"{self.phase}: {self.message}"


class ImportResult(BaseModel):
    success: bool
    outcome: ImportOutcome
    root_id: str | None = None
    root_name: str | None = None
    created: dict[str, int] = Field(default_factory=dict)
    dropped: dict[str, int] = Field(default_factory=dict)
    skipped_phases: list[str] = Field(default_factory=list)
    skipped_records: int = 0
    validation_errors: list[ValidationIssue] = Field(default_factory=list)
    errors: list[PhaseFailure] = Field(default_factory=list)
    error: str | None = None

    @property
    def is_partial(self) -> bool:
        return self.outcome is ImportOutcome.PARTIAL

    def created_count(self, entity_type: EntityType | str) -> int:
        key = entity_type.value if isinstance(entity_type, EntityType) else entity_type
        return self.created.get(key, 0)


@dataclass
class ImportSession:
    root_type: EntityType
    user_id: str
    steps: list[str]
    on_progress: ProgressCallback | None = None
    cancel_event: asyncio.Event | None = None
    root_id: str | None = None
    root_name: str | None = None
    created: dict[str, int] = field(default_factory=dict)
    dropped: dict[str, int] = field(default_factory=dict)
    skipped_phases: list[str] = field(default_factory=list)
    skipped_records: int = 0
    errors: list[PhaseFailure] = field(default_factory=list)
    validation_errors: list[ValidationIssue] = field(default_factory=list)
    current_step: int = 0

    @property
    def total_steps(self) -> int:
        return len(self.steps)

    def check_cancelled(self, step: str) -> None:
        if self.cancel_event is not None and self.cancel_event.is_set():
            raise ImportCancelled(step)

    def begin_step(self, label: str) -> None:
        """Advance the step counter and notify the progress callback.

        Raises ImportCancelled if cancellation was requested before this step.
        """
        self.check_cancelled(label)
        self.current_step += 1
        log.info(
            "importer.step",
            step=label,
            current=self.current_step,
            total=self.total_steps,
        )
        if self.on_progress is None:
            return
        try:
            self.on_progress(label, self.current_step, self.total_steps)
        except Exception:
            # A broken progress consumer must not abort the import
            log.warning("importer.progress_callback.error", step=label, exc_info=True)

    def record_created(self, entity_type: EntityType, count: int) -> None:
        self.created[entity_type.value] = self.created.get(entity_type.value, 0) + count

    def record_dropped(self, entity_type: EntityType, count: int) -> None:
        if count:
            self.dropped[entity_type.value] = self.dropped.get(entity_type.value, 0) + count

    def record_skipped_phase(self, label: str) -> None:
        self.skipped_phases.append(label)

    def record_failure(self, failure: PhaseFailure) -> None:
        self.errors.append(failure)

    def has_incomplete_sections(self) -> bool:
        return bool(self.errors or self.dropped or self.skipped_phases)

    def to_result(self, outcome: ImportOutcome, error: str | None = None) -> ImportResult:
        return ImportResult(
            success=outcome.succeeded,
            outcome=outcome,
            root_id=self.root_id,
            root_name=self.root_name,
            created=dict(self.created),
            dropped=dict(self.dropped),
            skipped_phases=list(self.skipped_phases),
            skipped_records=self.skipped_records,
            validation_errors=list(self.validation_errors),
            errors=list(self.errors),
            error=error,
        )
