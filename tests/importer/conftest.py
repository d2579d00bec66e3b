# tests/importer/conftest.py

import asyncio
from collections import defaultdict
from collections.abc import Iterable, Mapping
from typing import Any

import pytest

from Scribe.branch_schemas import GameRomBranchSnapshot, PlatformBranchSnapshot
from Scribe.drafts import EntityType


class MemoryStore:
    """In-process EntityStore with failure injection.

    ``fail_on`` types raise on insert; ``short_on`` types return one row fewer
    than requested. ``max_in_flight`` records how many inserts overlapped.
    """

    def __init__(
        self,
        *,
        fail_on: Iterable[EntityType] = (),
        short_on: Iterable[EntityType] = (),
        insert_delay: float = 0.0,
    ):
        self.tables: dict[EntityType, list[dict[str, Any]]] = defaultdict(list)
        self.fail_on = set(fail_on)
        self.short_on = set(short_on)
        self.insert_delay = insert_delay
        self.insert_calls: list[EntityType] = []
        self.in_flight = 0
        self.max_in_flight = 0
        self._next_id = 0

    async def insert_entities(
        self, entity_type: EntityType, rows: list[dict[str, Any]]
    ) -> list[dict[str, Any]]:
        self.insert_calls.append(entity_type)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(self.insert_delay)
            if entity_type in self.fail_on:
                raise RuntimeError(f"{entity_type.value} insert rejected")
            stored = [dict(r) for r in rows]
            if entity_type in self.short_on:
                stored = stored[:-1]
            self.tables[entity_type].extend(stored)
            return stored
        finally:
            self.in_flight -= 1

    async def query_by_filter(
        self, entity_type: EntityType, filters: Mapping[str, Any]
    ) -> list[dict[str, Any]]:
        return [
            dict(r)
            for r in self.tables[entity_type]
            if all(r.get(k) == v for k, v in filters.items())
        ]

    def generate_id(self) -> str:
        self._next_id += 1
        return f"id-{self._next_id:04d}"

    def count(self, entity_type: EntityType) -> int:
        return len(self.tables[entity_type])


class StaticFetcher:
    """SnapshotFetcher returning fixed snapshots, optionally slow or failing."""

    def __init__(
        self,
        *,
        platform: dict[str, Any] | None = None,
        game_rom: dict[str, Any] | None = None,
        delay: float = 0.0,
        error: Exception | None = None,
    ):
        self.platform = platform
        self.game_rom = game_rom
        self.delay = delay
        self.error = error
        self.calls: list[str] = []

    async def _wait(self, branch_id: str) -> None:
        self.calls.append(branch_id)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error

    async def fetch_platform_branch(self, branch_id: str) -> PlatformBranchSnapshot:
        await self._wait(branch_id)
        return PlatformBranchSnapshot.model_validate(self.platform)

    async def fetch_game_rom_branch(self, branch_id: str) -> GameRomBranchSnapshot:
        await self._wait(branch_id)
        return GameRomBranchSnapshot.model_validate(self.game_rom)


@pytest.fixture
def memory_store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture
def platform_snapshot(platform_branch_payload) -> PlatformBranchSnapshot:
    return PlatformBranchSnapshot.model_validate(platform_branch_payload)


@pytest.fixture
def game_rom_snapshot(game_rom_branch_payload) -> GameRomBranchSnapshot:
    return GameRomBranchSnapshot.model_validate(game_rom_branch_payload)


@pytest.fixture
def make_store():
    return MemoryStore


@pytest.fixture
def make_fetcher():
    return StaticFetcher
