"""Branch importer: root creation, dependency-ordered loading, orchestration.

Pipeline per import:

    fetch -> transform -> validate -> (name check) -> create root -> phases

Everything before the root insert is side-effect free, so fetch, validation
and root-creation failures leave the store untouched. After the root exists
each phase is best effort: a failed insert is recorded on the session and the
loader moves on. No earlier phase is rolled back; the result reports the
import as ``partial`` instead.

Phases run in stages. Stage 1 types depend only on the root; stage 2 types
are parents referenced by stage 3 children. Natural-key -> id maps are
recorded only for rows the store confirms, so children of a failed parent
phase are dropped rather than linked to the wrong row.
"""

from __future__ import annotations

import asyncio
import enum
import time
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass
from datetime import datetime
from typing import Any, TypeVar

import structlog
from structlog.contextvars import bound_contextvars

from Scribe.batch_validation import validate_batch
from Scribe.branch_client import SnapshotFetcher
from Scribe.branch_schemas import GameRomBranchSnapshot, PlatformBranchSnapshot
from Scribe.config import Settings, load_settings
from Scribe.drafts import EntityDraft, EntityType, NormalizedBatch, RootDraft
from Scribe.errors import (
    BatchValidationError,
    BranchFetchError,
    FatalCreationError,
    ImportCancelled,
    PhaseWriteError,
)
from Scribe.importer_context import (
    ImportOutcome,
    ImportResult,
    ImportSession,
    PhaseFailure,
    ProgressCallback,
)
from Scribe.metrics import inc_counter, observe_histogram
from Scribe.store import EntityStore
from Scribe.transformer import transform_game_rom_branch, transform_platform_branch

log = structlog.get_logger()

S = TypeVar("S")


class DependentPhasePolicy(str, enum.Enum):
    ATTEMPT = "attempt"
    SKIP = "skip"


@dataclass(frozen=True)
class Phase:
    entity_type: EntityType
    label: str
    stage: int
    parents: tuple[EntityType, ...] = ()
    # Column that receives the root id; None for children linked via a parent
    root_field: str | None = None


PLATFORM_PHASES: tuple[Phase, ...] = (
    Phase(EntityType.ADDRESSING_MODES, "Importing addressing modes", 1, root_field="platform_id"),
    Phase(EntityType.VECTORS, "Importing vectors", 1, root_field="platform_id"),
    Phase(EntityType.PLATFORM_TYPES, "Importing platform types", 1, root_field="platform_id"),
    Phase(EntityType.INSTRUCTION_GROUPS, "Importing instruction groups", 2, root_field="platform_id"),
    Phase(
        EntityType.INSTRUCTION_CODES,
        "Importing instruction codes",
        3,
        parents=(EntityType.INSTRUCTION_GROUPS, EntityType.ADDRESSING_MODES),
    ),
)

PROJECT_PHASES: tuple[Phase, ...] = (
    Phase(EntityType.FILES, "Importing files", 1, root_field="project_id"),
    Phase(EntityType.COPS, "Importing COPs", 1, root_field="project_id"),
    Phase(EntityType.LABELS, "Importing labels", 1, root_field="project_id"),
    Phase(EntityType.GAME_MNEMONICS, "Importing mnemonics", 1, root_field="project_id"),
    Phase(EntityType.OVERRIDES, "Importing overrides", 1, root_field="project_id"),
    Phase(EntityType.REWRITES, "Importing rewrites", 1, root_field="project_id"),
    Phase(EntityType.STRUCTS, "Importing structs", 1, root_field="project_id"),
    Phase(EntityType.BLOCKS, "Importing blocks", 2, root_field="project_id"),
    Phase(EntityType.STRING_TYPES, "Importing string types", 2, root_field="project_id"),
    Phase(EntityType.BLOCK_TRANSFORMS, "Importing block transforms", 3, parents=(EntityType.BLOCKS,)),
    Phase(EntityType.BLOCK_PARTS, "Importing block parts", 3, parents=(EntityType.BLOCKS,)),
    Phase(
        EntityType.STRING_COMMANDS,
        "Importing string commands",
        3,
        parents=(EntityType.STRING_TYPES,),
    ),
)


class KeyMap:
    """entity type -> natural key -> surrogate id, filled as phases complete."""

    def __init__(self) -> None:
        self._maps: dict[EntityType, dict[str, str]] = {}

    def record(self, entity_type: EntityType, natural_key: str, entity_id: str) -> None:
        self._maps.setdefault(entity_type, {})[natural_key] = entity_id

    def resolve(self, entity_type: EntityType, natural_key: str) -> str | None:
        return self._maps.get(entity_type, {}).get(natural_key)

    def ids_for(self, entity_type: EntityType) -> dict[str, str]:
        return dict(self._maps.get(entity_type, {}))


def record_phase_failure(session: ImportSession, phase: Phase, exc: PhaseWriteError) -> None:
    failure = PhaseFailure(phase=phase.label, entity_type=phase.entity_type.value, message=str(exc))
    session.record_failure(failure)
    inc_counter("importer.phase.failed")
    inc_counter(f"importer.phase.failed.{phase.entity_type.value}")
    log.error(
        "importer.phase.failed",
        phase=phase.label,
        entity_type=phase.entity_type.value,
        error=str(exc.cause),
        error_type=type(exc.cause).__name__,
    )


class RootEntityCreator:
    """Creates the platform/project that every dependent row references."""

    def __init__(self, store: EntityStore, *, reject_duplicate_names: bool = True):
        self.store = store
        self.reject_duplicate_names = reject_duplicate_names

    async def ensure_name_available(self, root: RootDraft) -> None:
        noun = root.entity_type.display_name
        try:
            existing = await self.store.query_by_filter(
                root.entity_type, {"name": root.name, "created_by": root.created_by}
            )
        except Exception as exc:
            raise FatalCreationError(
                f"Could not check for an existing {noun}: {exc}", kind="store_failure"
            ) from exc
        if existing:
            raise FatalCreationError(
                f'A {noun} named "{root.name}" already exists', kind="name_exists"
            )

    async def create(self, root: RootDraft) -> str:
        noun = root.entity_type.display_name
        root_id = self.store.generate_id()
        row = {"id": root_id, **root.to_row()}
        try:
            inserted = await self.store.insert_entities(root.entity_type, [row])
        except Exception as exc:
            raise FatalCreationError(f"Failed to create {noun}: {exc}", kind="store_failure") from exc
        if not inserted:
            raise FatalCreationError(f"Failed to create {noun}: no row returned", kind="store_failure")
        created_id = inserted[0].get("id", root_id)
        log.info("importer.root.created", entity_type=root.entity_type.value, root_id=created_id)
        return created_id


class DependencyOrderedLoader:
    def __init__(
        self,
        store: EntityStore,
        *,
        policy: DependentPhasePolicy = DependentPhasePolicy.ATTEMPT,
        concurrent_independent: bool = False,
        write_timeout: float | None = None,
    ):
        self.store = store
        self.policy = policy
        self.concurrent_independent = concurrent_independent
        self.write_timeout = write_timeout
        self.key_map = KeyMap()

    async def load(
        self, batch: NormalizedBatch, session: ImportSession, phases: Iterable[Phase]
    ) -> KeyMap:
        if session.root_id is None:
            raise ValueError("Loader requires a created root entity")
        self.key_map = KeyMap()
        unavailable: set[EntityType] = set()
        ordered = sorted(phases, key=lambda p: p.stage)
        for stage in sorted({p.stage for p in ordered}):
            stage_phases = [p for p in ordered if p.stage == stage]
            if stage == 1 and self.concurrent_independent and len(stage_phases) > 1:
                for phase in stage_phases:
                    session.begin_step(phase.label)
                results = await asyncio.gather(
                    *(self._run_phase(phase, batch, session, unavailable) for phase in stage_phases)
                )
            else:
                results = []
                for phase in stage_phases:
                    session.begin_step(phase.label)
                    results.append(await self._run_phase(phase, batch, session, unavailable))
            for phase, ok in zip(stage_phases, results):
                if not ok:
                    unavailable.add(phase.entity_type)
        return self.key_map

    async def _run_phase(
        self,
        phase: Phase,
        batch: NormalizedBatch,
        session: ImportSession,
        unavailable: set[EntityType],
    ) -> bool:
        """Insert one entity type. Returns False when the phase failed or was skipped."""
        drafts = batch.drafts_for(phase.entity_type)
        blocked_by = [p for p in phase.parents if p in unavailable]
        if blocked_by and self.policy is DependentPhasePolicy.SKIP:
            session.record_skipped_phase(phase.label)
            session.record_dropped(phase.entity_type, len(drafts))
            session.record_created(phase.entity_type, 0)
            log.warning(
                "importer.phase.skipped",
                phase=phase.label,
                blocked_by=[p.value for p in blocked_by],
                drafts=len(drafts),
            )
            return False

        log.info("importer.phase.start", phase=phase.label, drafts=len(drafts))
        rows, keys, dropped = self._resolve(phase, drafts, session)
        if dropped:
            session.record_dropped(phase.entity_type, dropped)
            inc_counter("importer.rows.dropped", dropped)
            log.warning(
                "importer.phase.unresolved_references",
                phase=phase.label,
                dropped=dropped,
            )
        if not rows:
            session.record_created(phase.entity_type, 0)
            return True

        try:
            inserted = await self._insert(phase.entity_type, rows)
        except Exception as exc:
            record_phase_failure(session, phase, PhaseWriteError(phase.label, phase.entity_type.value, exc))
            session.record_created(phase.entity_type, 0)
            return False

        inserted_ids = {row.get("id") for row in inserted}
        for row, key in zip(rows, keys):
            if key is not None and row["id"] in inserted_ids:
                self.key_map.record(phase.entity_type, key, row["id"])
        session.record_created(phase.entity_type, len(inserted))
        inc_counter("importer.rows.created", len(inserted))
        log.info("importer.phase.complete", phase=phase.label, created=len(inserted))

        if len(inserted) < len(rows):
            # Partial batch semantics belong to the store; report the shortfall
            record_phase_failure(
                session,
                phase,
                PhaseWriteError(
                    phase.label,
                    phase.entity_type.value,
                    RuntimeError(f"store inserted {len(inserted)} of {len(rows)} rows"),
                ),
            )
            return False
        return True

    def _resolve(
        self, phase: Phase, drafts: list[EntityDraft], session: ImportSession
    ) -> tuple[list[dict[str, Any]], list[str | None], int]:
        rows: list[dict[str, Any]] = []
        keys: list[str | None] = []
        dropped = 0
        for draft in drafts:
            row = dict(draft.fields)
            resolved = True
            for ref in draft.refs:
                parent_id = self.key_map.resolve(ref.parent_type, ref.parent_key)
                if parent_id is None:
                    log.debug(
                        "importer.reference.unresolved",
                        entity_type=phase.entity_type.value,
                        parent_type=ref.parent_type.value,
                        parent_key=ref.parent_key,
                    )
                    resolved = False
                    break
                row[ref.field] = parent_id
            if not resolved:
                dropped += 1
                continue
            row["id"] = self.store.generate_id()
            if phase.root_field is not None:
                row[phase.root_field] = session.root_id
            row["created_by"] = session.user_id
            rows.append(row)
            keys.append(draft.natural_key)
        return rows, keys, dropped

    async def _insert(self, entity_type: EntityType, rows: list[dict[str, Any]]) -> list[dict[str, Any]]:
        call = self.store.insert_entities(entity_type, rows)
        if self.write_timeout is None:
            return await call
        return await asyncio.wait_for(call, timeout=self.write_timeout)


class BranchImportOrchestrator:
    """Shared pipeline driver; subclasses pick the root type and phase plan."""

    root_type: EntityType
    phases: tuple[Phase, ...]

    def __init__(
        self,
        fetcher: SnapshotFetcher,
        store: EntityStore,
        settings: Settings | None = None,
    ):
        self.fetcher = fetcher
        self.store = store
        self.settings = settings or load_settings()

    def _new_session(
        self,
        user_id: str,
        on_progress: ProgressCallback | None,
        cancel_event: asyncio.Event | None,
    ) -> ImportSession:
        noun = self.root_type.display_name
        steps = [
            "Fetching external branch",
            "Transforming branch data",
            "Validating transformed data",
        ]
        if self.settings.importer_reject_duplicate_names:
            steps.append(f"Checking for existing {noun}")
        steps.append(f"Creating {noun}")
        steps.extend(p.label for p in self.phases)
        return ImportSession(
            root_type=self.root_type,
            user_id=user_id,
            steps=steps,
            on_progress=on_progress,
            cancel_event=cancel_event,
        )

    def _new_loader(self) -> DependencyOrderedLoader:
        return DependencyOrderedLoader(
            self.store,
            policy=DependentPhasePolicy(self.settings.importer_dependent_phase_policy),
            concurrent_independent=self.settings.importer_concurrent_independent_phases,
            write_timeout=self.settings.store_write_timeout_seconds,
        )

    async def _fetch(self, fetch: Callable[[str], Awaitable[S]], branch_id: str) -> S:
        timeout = self.settings.branch_fetch_timeout_seconds
        try:
            return await asyncio.wait_for(fetch(branch_id), timeout=timeout)
        except TimeoutError as exc:
            raise BranchFetchError(branch_id, f"fetch timed out after {timeout}s") from exc

    async def _run(
        self,
        branch_id: str,
        session: ImportSession,
        fetch: Callable[[str], Awaitable[S]],
        transform: Callable[[S], NormalizedBatch],
    ) -> ImportResult:
        started = time.monotonic()
        inc_counter("importer.started")
        with bound_contextvars(branch_id=branch_id, import_kind=self.root_type.value, user_id=session.user_id):
            log.info("importer.started")
            try:
                await self._pipeline(branch_id, session, fetch, transform)
            except BranchFetchError as exc:
                return self._finish(session, ImportOutcome.FETCH_FAILED, started, str(exc))
            except BatchValidationError as exc:
                session.validation_errors = exc.issues
                for issue in exc.issues:
                    log.warning("importer.validation.issue", entity_type=issue.entity_type, message=issue.message)
                return self._finish(session, ImportOutcome.VALIDATION_FAILED, started, str(exc))
            except FatalCreationError as exc:
                log.error("importer.root.failed", kind=exc.kind, error=str(exc))
                return self._finish(session, ImportOutcome.CREATION_FAILED, started, str(exc))
            except ImportCancelled as exc:
                return self._finish(session, ImportOutcome.CANCELLED, started, str(exc))
            outcome = ImportOutcome.PARTIAL if session.has_incomplete_sections() else ImportOutcome.COMPLETED
            return self._finish(session, outcome, started)

    async def _pipeline(
        self,
        branch_id: str,
        session: ImportSession,
        fetch: Callable[[str], Awaitable[S]],
        transform: Callable[[S], NormalizedBatch],
    ) -> None:
        session.begin_step("Fetching external branch")
        snapshot = await self._fetch(fetch, branch_id)

        session.begin_step("Transforming branch data")
        batch = transform(snapshot)
        session.skipped_records = len(batch.skipped)
        for skipped in batch.skipped:
            inc_counter("transformer.record.skipped")
            log.warning(
                "transformer.record.skipped",
                section=skipped.section,
                key=skipped.key,
                reason=skipped.reason,
            )

        session.begin_step("Validating transformed data")
        issues = validate_batch(
            batch, root_name_max_length=self.settings.importer_root_name_max_length
        )
        if issues:
            raise BatchValidationError(issues)

        noun = self.root_type.display_name
        creator = RootEntityCreator(
            self.store, reject_duplicate_names=self.settings.importer_reject_duplicate_names
        )
        if creator.reject_duplicate_names:
            session.begin_step(f"Checking for existing {noun}")
            await creator.ensure_name_available(batch.root)
        session.begin_step(f"Creating {noun}")
        session.root_id = await creator.create(batch.root)
        session.root_name = batch.root.name

        await self._new_loader().load(batch, session, self.phases)

    def _finish(
        self,
        session: ImportSession,
        outcome: ImportOutcome,
        started: float,
        error: str | None = None,
    ) -> ImportResult:
        elapsed_ms = int((time.monotonic() - started) * 1000)
        observe_histogram("importer.duration_ms", elapsed_ms)
        if outcome is ImportOutcome.COMPLETED:
            inc_counter("importer.completed")
        else:
            inc_counter(f"importer.{outcome.value}")
        result = session.to_result(outcome, error)
        log.info(
            "importer.finished",
            outcome=outcome.value,
            root_id=result.root_id,
            created=result.created,
            dropped=result.dropped,
            failures=len(result.errors),
            duration_ms=elapsed_ms,
        )
        return result


class PlatformImportOrchestrator(BranchImportOrchestrator):
    root_type = EntityType.PLATFORMS
    phases = PLATFORM_PHASES

    async def import_platform_branch(
        self,
        platform_branch_id: str,
        *,
        user_id: str,
        platform_name: str | None = None,
        on_progress: ProgressCallback | None = None,
        cancel_event: asyncio.Event | None = None,
        imported_at: datetime | None = None,
    ) -> ImportResult:
        """Import a platform branch as a new internal platform.

        ``platform_name`` defaults to the external platform's name, then the
        branch name.
        """
        session = self._new_session(user_id, on_progress, cancel_event)

        def transform(snapshot: PlatformBranchSnapshot) -> NormalizedBatch:
            name = platform_name
            if name is None:
                name = (snapshot.platform.name if snapshot.platform else None) or snapshot.name or ""
            return transform_platform_branch(
                snapshot, platform_name=name, user_id=user_id, imported_at=imported_at
            )

        return await self._run(
            platform_branch_id, session, self.fetcher.fetch_platform_branch, transform
        )


class ProjectImportOrchestrator(BranchImportOrchestrator):
    root_type = EntityType.PROJECTS
    phases = PROJECT_PHASES

    async def import_game_rom_branch(
        self,
        game_rom_branch_id: str,
        *,
        user_id: str,
        project_name: str,
        platform_id: str,
        on_progress: ProgressCallback | None = None,
        cancel_event: asyncio.Event | None = None,
        imported_at: datetime | None = None,
        snapshot: GameRomBranchSnapshot | None = None,
    ) -> ImportResult:
        """Import a game ROM branch as a new project bound to ``platform_id``.

        Callers resolve ``platform_id`` with ``PlatformMatcher`` first. A caller
        that already fetched the branch for matching passes it as ``snapshot``
        and the fetch step reuses it.
        """
        session = self._new_session(user_id, on_progress, cancel_event)

        def transform(fetched: GameRomBranchSnapshot) -> NormalizedBatch:
            return transform_game_rom_branch(
                fetched,
                project_name=project_name,
                user_id=user_id,
                platform_id=platform_id,
                imported_at=imported_at,
            )

        async def prefetched(_branch_id: str) -> GameRomBranchSnapshot:
            return snapshot

        fetch = prefetched if snapshot is not None else self.fetcher.fetch_game_rom_branch
        return await self._run(game_rom_branch_id, session, fetch, transform)
