"""Binds ROM-branch imports to an already-imported platform.

A game ROM branch declares the platform branch it was built against. Before a
ROM import starts, the caller asks the matcher for the internal platform that
was imported from that branch; if none exists the import must not proceed.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

import structlog

from Scribe.drafts import EntityType
from Scribe.errors import BindingNotFoundError
from Scribe.store import EntityStore

log = structlog.get_logger()

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


def _as_utc(value: Any) -> datetime:
    if not isinstance(value, datetime):
        return _EPOCH
    # SQLite hands back naive datetimes for timezone-aware columns
    return value if value.tzinfo is not None else value.replace(tzinfo=timezone.utc)


def _recency_key(row: dict[str, Any]) -> tuple[datetime, datetime]:
    created = _as_utc(row.get("created_at"))
    updated = row.get("updated_at")
    return (_as_utc(updated) if updated is not None else created, created)


class PlatformMatcher:
    def __init__(self, store: EntityStore):
        self.store = store

    async def get_available_platforms(
        self, user_id: str, required_branch_id: str | None = None
    ) -> list[dict[str, Any]]:
        """Platforms the user owns plus public ones, de-duplicated by id.

        When ``required_branch_id`` is given only platforms imported from that
        branch are returned.
        """
        owned = await self.store.query_by_filter(EntityType.PLATFORMS, {"created_by": user_id})
        public = await self.store.query_by_filter(EntityType.PLATFORMS, {"is_public": True})
        seen: set[str] = set()
        platforms: list[dict[str, Any]] = []
        for row in [*owned, *public]:
            if row["id"] in seen:
                continue
            seen.add(row["id"])
            platforms.append(row)
        if required_branch_id is not None:
            platforms = [p for p in platforms if p.get("platform_branch_id") == required_branch_id]
        return platforms

    async def find_all_platforms_by_branch_id(
        self, platform_branch_id: str, user_id: str
    ) -> list[dict[str, Any]]:
        """All matching platforms, most recently updated first."""
        matches = await self.get_available_platforms(user_id, platform_branch_id)
        return sorted(matches, key=_recency_key, reverse=True)

    async def find_platform_by_branch_id(
        self, platform_branch_id: str, user_id: str
    ) -> dict[str, Any]:
        matches = await self.find_all_platforms_by_branch_id(platform_branch_id, user_id)
        if not matches:
            log.warning(
                "platform_matcher.not_found",
                platform_branch_id=platform_branch_id,
                user_id=user_id,
            )
            raise BindingNotFoundError(platform_branch_id)
        chosen = matches[0]
        log.info(
            "platform_matcher.matched",
            platform_branch_id=platform_branch_id,
            platform_id=chosen["id"],
            candidates=len(matches),
        )
        return chosen
