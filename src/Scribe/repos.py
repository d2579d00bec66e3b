# repos.py

from __future__ import annotations

import asyncio
from collections.abc import Mapping
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import inspect as sa_inspect
from sqlalchemy import select
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from Scribe import models
from Scribe.db import Base
from Scribe.drafts import EntityType

MODEL_BY_TYPE: dict[EntityType, type[Base]] = {
    EntityType.PLATFORMS: models.Platform,
    EntityType.PROJECTS: models.Project,
    EntityType.ADDRESSING_MODES: models.AddressingMode,
    EntityType.INSTRUCTION_GROUPS: models.InstructionGroup,
    EntityType.INSTRUCTION_CODES: models.InstructionCode,
    EntityType.VECTORS: models.Vector,
    EntityType.PLATFORM_TYPES: models.PlatformType,
    EntityType.COPS: models.Cop,
    EntityType.FILES: models.File,
    EntityType.BLOCKS: models.Block,
    EntityType.BLOCK_TRANSFORMS: models.BlockTransform,
    EntityType.BLOCK_PARTS: models.BlockPart,
    EntityType.LABELS: models.Label,
    EntityType.GAME_MNEMONICS: models.GameMnemonic,
    EntityType.OVERRIDES: models.Override,
    EntityType.REWRITES: models.Rewrite,
    EntityType.STRING_TYPES: models.StringType,
    EntityType.STRING_COMMANDS: models.StringCommand,
    EntityType.STRUCTS: models.Struct,
}


def model_for(entity_type: EntityType) -> type[Base]:
    try:
        return MODEL_BY_TYPE[entity_type]
    except KeyError:
        raise ValueError(f"No table mapped for entity type {entity_type!r}") from None


def row_to_dict(obj: Base) -> dict[str, Any]:
    mapper = sa_inspect(type(obj))
    return {attr.key: getattr(obj, attr.key) for attr in mapper.column_attrs}


async def insert_rows(
    s: AsyncSession, entity_type: EntityType, rows: list[Mapping[str, Any]]
) -> list[Base]:
    model = model_for(entity_type)
    objs = [model(**dict(row)) for row in rows]
    s.add_all(objs)
    await _flush_retry(s)
    return objs


async def query_rows(
    s: AsyncSession,
    entity_type: EntityType,
    filters: Mapping[str, Any],
    *,
    include_deleted: bool = False,
) -> list[Base]:
    model = model_for(entity_type)
    stmt = select(model)
    columns = sa_inspect(model).columns
    for key, value in filters.items():
        if key not in columns:
            raise ValueError(f"Unknown filter field {key!r} for {entity_type.value}")
        stmt = stmt.where(columns[key] == value)
    if not include_deleted:
        stmt = stmt.where(columns["deleted_at"].is_(None))
    q = await s.execute(stmt)
    return list(q.scalars().all())


async def soft_delete(s: AsyncSession, entity_type: EntityType, entity_id: str) -> bool:
    model = model_for(entity_type)
    obj = await s.get(model, entity_id)
    if obj is None:
        return False
    obj.deleted_at = datetime.now(timezone.utc)  # type: ignore[attr-defined]
    await _flush_retry(s)
    return True


async def _flush_retry(s: AsyncSession, attempts: int = 5, delay: float = 0.2) -> None:
    """Retry session.flush() on transient SQLite 'database is locked' errors.

    Exponential backoff: delay * 2^i between attempts.
    """
    for i in range(attempts):
        try:
            await s.flush()
            return
        except OperationalError as e:  # pragma: no cover - timing dependent
            msg = str(e).lower()
            if "database is locked" in msg or "database is busy" in msg:
                if i == attempts - 1:
                    raise
                await asyncio.sleep(delay * (2**i))
                continue
            raise
