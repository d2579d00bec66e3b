from datetime import datetime, timedelta, timezone

import pytest

from Scribe.drafts import EntityType
from Scribe.errors import BindingNotFoundError
from Scribe.platform_matcher import PlatformMatcher

T0 = datetime(2024, 1, 1, tzinfo=timezone.utc)


def _platform(pid, *, owner="u1", branch="B1", public=False, created=T0, updated=None):
    return {
        "id": pid,
        "name": f"Platform {pid}",
        "is_public": public,
        "platform_branch_id": branch,
        "created_by": owner,
        "created_at": created,
        "updated_at": updated,
    }


@pytest.fixture
async def seeded(sql_store):
    await sql_store.insert_entities(
        EntityType.PLATFORMS,
        [
            _platform("old", created=T0),
            _platform("newest", created=T0, updated=T0 + timedelta(days=10)),
            _platform("mid", owner="u2", public=True, created=T0 + timedelta(days=5)),
            _platform("hidden", owner="u2", created=T0 + timedelta(days=30)),
            _platform("other-branch", branch="B2", created=T0 + timedelta(days=40)),
        ],
    )
    return sql_store


@pytest.mark.asyncio
async def test_newest_visible_platform_wins(seeded):
    matcher = PlatformMatcher(seeded)
    chosen = await matcher.find_platform_by_branch_id("B1", "u1")
    assert chosen["id"] == "newest"

    ordered = await matcher.find_all_platforms_by_branch_id("B1", "u1")
    assert [p["id"] for p in ordered] == ["newest", "mid", "old"]


@pytest.mark.asyncio
async def test_available_platforms_are_owned_plus_public(seeded):
    matcher = PlatformMatcher(seeded)
    ids = {p["id"] for p in await matcher.get_available_platforms("u1")}
    assert ids == {"old", "newest", "mid", "other-branch"}

    # Public rows owned by the caller are not duplicated
    ids_u2 = [p["id"] for p in await matcher.get_available_platforms("u2")]
    assert sorted(ids_u2) == ["hidden", "mid"]


@pytest.mark.asyncio
async def test_missing_binding_raises(seeded):
    with pytest.raises(BindingNotFoundError) as exc_info:
        await PlatformMatcher(seeded).find_platform_by_branch_id("B9", "u1")
    assert str(exc_info.value) == (
        "No platform found with platformBranchId: B9. The required platform must be imported first."
    )


@pytest.mark.asyncio
async def test_soft_deleted_platforms_are_ignored(sql_store):
    await sql_store.insert_entities(
        EntityType.PLATFORMS,
        [{**_platform("gone", updated=T0 + timedelta(days=99)), "deleted_at": T0 + timedelta(days=100)}],
    )
    with pytest.raises(BindingNotFoundError):
        await PlatformMatcher(sql_store).find_platform_by_branch_id("B1", "u1")


@pytest.mark.asyncio
async def test_matcher_with_memory_store_handles_naive_timestamps(make_store):
    store = make_store()
    store.tables[EntityType.PLATFORMS].extend(
        [
            _platform("aware", created=T0 + timedelta(days=1)),
            _platform("naive", created=datetime(2024, 1, 3)),
        ]
    )
    chosen = await PlatformMatcher(store).find_platform_by_branch_id("B1", "u1")
    assert chosen["id"] == "naive"
