import asyncio

import pytest

from Scribe.drafts import EntityType
from Scribe.errors import ImportCancelled
from Scribe.importer_context import ImportOutcome, ImportSession, PhaseFailure


def _session(**kwargs):
    return ImportSession(
        root_type=EntityType.PLATFORMS, user_id="u1", steps=["a", "b", "c"], **kwargs
    )


def test_begin_step_counts_against_total():
    calls = []
    session = _session(on_progress=lambda *args: calls.append(args))
    session.begin_step("a")
    session.begin_step("b")
    assert calls == [("a", 1, 3), ("b", 2, 3)]


def test_cancel_event_is_checked_before_advancing():
    cancel = asyncio.Event()
    session = _session(cancel_event=cancel)
    session.begin_step("a")
    cancel.set()
    with pytest.raises(ImportCancelled) as exc_info:
        session.begin_step("b")
    assert exc_info.value.step == "b"
    assert session.current_step == 1


def test_result_reflects_tallies():
    session = _session()
    session.root_id = "r1"
    session.record_created(EntityType.VECTORS, 2)
    session.record_created(EntityType.VECTORS, 1)
    session.record_dropped(EntityType.INSTRUCTION_CODES, 0)
    assert session.has_incomplete_sections() is False

    session.record_failure(PhaseFailure(phase="Importing vectors", entity_type="vectors", message="boom"))
    result = session.to_result(ImportOutcome.PARTIAL)

    assert result.success is True
    assert result.is_partial
    assert result.created == {"vectors": 3}
    assert result.dropped == {}
    assert result.created_count(EntityType.VECTORS) == 3
    assert result.created_count("platform_types") == 0
    assert str(result.errors[0]) == "Importing vectors: boom"


@pytest.mark.parametrize(
    "outcome, succeeded",
    [
        (ImportOutcome.COMPLETED, True),
        (ImportOutcome.PARTIAL, True),
        (ImportOutcome.FETCH_FAILED, False),
        (ImportOutcome.VALIDATION_FAILED, False),
        (ImportOutcome.CREATION_FAILED, False),
        (ImportOutcome.CANCELLED, False),
    ],
)
def test_outcome_success_flag(outcome, succeeded):
    assert outcome.succeeded is succeeded


def test_result_serializes_to_json():
    session = _session()
    result = session.to_result(ImportOutcome.FETCH_FAILED, "Branch x: not found")
    dumped = result.model_dump(mode="json")
    assert dumped["outcome"] == "fetch_failed"
    assert dumped["success"] is False
    assert dumped["error"] == "Branch x: not found"
