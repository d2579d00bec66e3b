import pytest
from sqlalchemy.exc import IntegrityError

from Scribe import repos
from Scribe.db import session_scope
from Scribe.drafts import EntityType
from Scribe.store import SqlEntityStore
from Scribe.tools.ulid import is_ulid


def _platform(pid="p1", name="SNES", owner="u1"):
    return {"id": pid, "name": name, "is_public": False, "created_by": owner, "meta": {"a": 1}}


@pytest.mark.asyncio
async def test_insert_returns_rows_with_defaults(sql_store):
    (row,) = await sql_store.insert_entities(EntityType.PLATFORMS, [_platform()])
    assert row["id"] == "p1"
    assert row["created_at"] is not None
    assert row["deleted_at"] is None
    assert row["meta"] == {"a": 1}


@pytest.mark.asyncio
async def test_query_by_filter_matches_equality(sql_store):
    await sql_store.insert_entities(
        EntityType.PLATFORMS, [_platform("p1"), _platform("p2", name="NES"), _platform("p3", owner="u2")]
    )
    rows = await sql_store.query_by_filter(EntityType.PLATFORMS, {"name": "SNES", "created_by": "u1"})
    assert [r["id"] for r in rows] == ["p1"]


@pytest.mark.asyncio
async def test_unknown_filter_field_is_rejected(sql_store):
    with pytest.raises(ValueError):
        await sql_store.query_by_filter(EntityType.PLATFORMS, {"colour": "red"})


@pytest.mark.asyncio
async def test_batch_insert_is_atomic(sql_store):
    await sql_store.insert_entities(EntityType.PLATFORMS, [_platform()])
    modes = [
        {"id": "m1", "platform_id": "p1", "name": "imm", "size": 2, "created_by": "u1"},
        {"id": "m2", "platform_id": "p1", "name": "imm", "size": 3, "created_by": "u1"},
    ]
    with pytest.raises(IntegrityError):
        await sql_store.insert_entities(EntityType.ADDRESSING_MODES, modes)
    assert await sql_store.query_by_filter(EntityType.ADDRESSING_MODES, {"platform_id": "p1"}) == []


@pytest.mark.asyncio
async def test_soft_delete_hides_rows(sql_store):
    await sql_store.insert_entities(EntityType.PLATFORMS, [_platform()])
    async with session_scope() as s:
        assert await repos.soft_delete(s, EntityType.PLATFORMS, "p1") is True
        assert await repos.soft_delete(s, EntityType.PLATFORMS, "missing") is False
    assert await sql_store.query_by_filter(EntityType.PLATFORMS, {"id": "p1"}) == []
    async with session_scope() as s:
        rows = await repos.query_rows(s, EntityType.PLATFORMS, {"id": "p1"}, include_deleted=True)
    assert len(rows) == 1


def test_generated_ids_are_ulids():
    store = SqlEntityStore()
    ids = {store.generate_id() for _ in range(50)}
    assert len(ids) == 50
    assert all(is_ulid(i) for i in ids)


def test_every_entity_type_has_a_table():
    for entity_type in EntityType:
        assert repos.model_for(entity_type).__tablename__ == entity_type.value
