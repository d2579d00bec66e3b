# src/Scribe/branch_client.py

from __future__ import annotations

from typing import Any, Protocol, TypeVar

import httpx
import orjson
import structlog
from pydantic import BaseModel, ValidationError

from Scribe.branch_schemas import GameRomBranchSnapshot, PlatformBranchSnapshot
from Scribe.config import Settings
from Scribe.errors import BranchFetchError

log = structlog.get_logger()

M = TypeVar("M", bound=BaseModel)

PLATFORM_BRANCH_SELECT = "*,platform:Platform!inner(id,name,meta)"
GAME_ROM_BRANCH_SELECT = (
    "*,"
    "gameRom:GameRom!inner(id,crc,meta,gameId,regionId,"
    "game:Game!inner(id,name),region:Region!inner(id,name,meta,platformId)),"
    "platformBranch:PlatformBranch!inner(id,name,version,platformId,"
    "platform:Platform!inner(id,name,meta))"
)
SEARCH_LIMIT = 20


class SnapshotFetcher(Protocol):
    """Read-only source of branch snapshots; one instance is injected per orchestrator."""

    async def fetch_platform_branch(self, branch_id: str) -> PlatformBranchSnapshot: ...

    async def fetch_game_rom_branch(self, branch_id: str) -> GameRomBranchSnapshot: ...


class BranchClient:
    """
    Async client for the external branch service (a PostgREST-style REST API).

    Every request is bounded by ``branch_fetch_timeout_seconds``. Transport
    errors, non-2xx responses, undecodable bodies and missing rows are all
    raised as ``BranchFetchError``.
    """

    def __init__(self, settings: Settings, *, transport: httpx.AsyncBaseTransport | None = None):
        if not settings.external_api_url:
            raise ValueError("BranchClient requires external_api_url to be set in configuration.")
        self.base_url = settings.external_api_url.rstrip("/")
        self.timeout = settings.branch_fetch_timeout_seconds
        headers = {"Accept": "application/json"}
        if settings.external_api_key is not None:
            key = settings.external_api_key.get_secret_value()
            headers.update({"apikey": key, "Authorization": f"Bearer {key}"})
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.timeout,
            headers=headers,
            transport=transport,
        )
        log.info("branch_client.initialized", url=self.base_url, timeout=self.timeout)

    async def __aenter__(self) -> BranchClient:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    async def close(self) -> None:
        await self._client.aclose()

    async def _get_rows(
        self, table: str, params: dict[str, str], *, branch_id: str | None = None
    ) -> list[Any]:
        path = f"/rest/v1/{table}"
        try:
            response = await self._client.get(path, params=params)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            log.error(
                "branch_client.fetch.status",
                table=table,
                branch_id=branch_id,
                status_code=e.response.status_code,
            )
            raise BranchFetchError(
                branch_id, f"{table} request failed with HTTP {e.response.status_code}"
            ) from e
        except httpx.TimeoutException as e:
            log.error("branch_client.fetch.timeout", table=table, branch_id=branch_id)
            raise BranchFetchError(branch_id, f"{table} request timed out after {self.timeout}s") from e
        except httpx.HTTPError as e:
            log.error("branch_client.fetch.error", table=table, branch_id=branch_id, error=str(e))
            raise BranchFetchError(branch_id, f"{table} request failed: {e}") from e

        try:
            data = orjson.loads(response.content)
        except orjson.JSONDecodeError as e:
            raise BranchFetchError(branch_id, f"{table} response is not valid JSON") from e
        if not isinstance(data, list):
            raise BranchFetchError(branch_id, f"{table} response is not a list of rows")
        return data

    async def _fetch_one(self, table: str, select: str, model: type[M], branch_id: str) -> M:
        rows = await self._get_rows(
            table,
            {"select": select, "id": f"eq.{branch_id}", "limit": "1"},
            branch_id=branch_id,
        )
        if not rows:
            raise BranchFetchError(branch_id, f"{table} not found")
        try:
            snapshot = model.model_validate(rows[0])
        except ValidationError as e:
            raise BranchFetchError(branch_id, f"{table} payload is malformed: {e.error_count()} error(s)") from e
        log.info("branch_client.fetch.ok", table=table, branch_id=branch_id)
        return snapshot

    async def _search(self, table: str, select: str, model: type[M], query: str, limit: int) -> list[M]:
        params = {"select": select, "order": "updatedAt.desc", "limit": str(limit)}
        if query.strip():
            params["name"] = f"ilike.*{query.strip()}*"
        rows = await self._get_rows(table, params)
        results: list[M] = []
        for row in rows:
            try:
                results.append(model.model_validate(row))
            except ValidationError:
                log.warning("branch_client.search.row_skipped", table=table, row_id=row.get("id") if isinstance(row, dict) else None)
        return results

    async def fetch_platform_branch(self, branch_id: str) -> PlatformBranchSnapshot:
        return await self._fetch_one(
            "PlatformBranch", PLATFORM_BRANCH_SELECT, PlatformBranchSnapshot, branch_id
        )

    async def fetch_game_rom_branch(self, branch_id: str) -> GameRomBranchSnapshot:
        return await self._fetch_one(
            "GameRomBranch", GAME_ROM_BRANCH_SELECT, GameRomBranchSnapshot, branch_id
        )

    async def search_platform_branches(
        self, query: str = "", *, limit: int = SEARCH_LIMIT
    ) -> list[PlatformBranchSnapshot]:
        return await self._search(
            "PlatformBranch", PLATFORM_BRANCH_SELECT, PlatformBranchSnapshot, query, limit
        )

    async def search_game_rom_branches(
        self, query: str = "", *, limit: int = SEARCH_LIMIT
    ) -> list[GameRomBranchSnapshot]:
        return await self._search(
            "GameRomBranch", GAME_ROM_BRANCH_SELECT, GameRomBranchSnapshot, query, limit
        )
