"""Target store contract used by the importer.

``EntityStore`` is the seam between the pipeline and persistence: batched
inserts (atomic per call, never across calls), equality queries, and id
generation ahead of persistence. ``SqlEntityStore`` implements it on the
SQLAlchemy models, opening one ``session_scope()`` transaction per call.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any, Protocol

import structlog

from Scribe import repos
from Scribe.db import session_scope
from Scribe.drafts import EntityType
from Scribe.tools.ulid import generate_ulid

log = structlog.get_logger()


class EntityStore(Protocol):
    async def insert_entities(
        self, entity_type: EntityType, rows: list[dict[str, Any]]
    ) -> list[dict[str, Any]]: ...

    async def query_by_filter(
        self, entity_type: EntityType, filters: Mapping[str, Any]
    ) -> list[dict[str, Any]]: ...

    def generate_id(self) -> str: ...


class SqlEntityStore:
    async def insert_entities(
        self, entity_type: EntityType, rows: list[dict[str, Any]]
    ) -> list[dict[str, Any]]:
        if not rows:
            return []
        async with session_scope() as s:
            objs = await repos.insert_rows(s, entity_type, rows)
            inserted = [repos.row_to_dict(o) for o in objs]
        log.debug("store.insert", entity_type=entity_type.value, rows=len(inserted))
        return inserted

    async def query_by_filter(
        self, entity_type: EntityType, filters: Mapping[str, Any]
    ) -> list[dict[str, Any]]:
        async with session_scope() as s:
            objs = await repos.query_rows(s, entity_type, filters)
            return [repos.row_to_dict(o) for o in objs]

    def generate_id(self) -> str:
        return generate_ulid()
