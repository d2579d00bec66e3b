#!/usr/bin/env python3
"""
Command-line driver for the branch importer.

Examples:
  PYTHONPATH=./src python scripts/cli.py init-db
  PYTHONPATH=./src python scripts/cli.py search-platforms snes
  PYTHONPATH=./src python scripts/cli.py import-platform <branch-id> --user u1 --name "SNES 65816"
  PYTHONPATH=./src python scripts/cli.py import-rom <branch-id> --user u1 --name "My Project"

``import-rom`` resolves the internal platform through the binding matcher
first and refuses to import when the ROM's platform branch was never imported.
"""
from __future__ import annotations

import asyncio
import sys
from typing import Any

import click
import orjson

from Scribe.branch_client import BranchClient
from Scribe.config import Settings, load_settings
from Scribe.db import create_schema, dispose_engine
from Scribe.errors import BindingNotFoundError, BranchFetchError
from Scribe.importer import PlatformImportOrchestrator, ProjectImportOrchestrator
from Scribe.importer_context import ImportResult
from Scribe.logging import redact_settings, setup_logging
from Scribe.platform_matcher import PlatformMatcher
from Scribe.store import SqlEntityStore
from Scribe.transformer import summarize_game_rom_branch, summarize_platform_branch


def _echo_json(payload: Any) -> None:
    click.echo(orjson.dumps(payload, option=orjson.OPT_INDENT_2, default=str).decode())


def _print_progress(label: str, current: int, total: int) -> None:
    click.echo(f"[{current}/{total}] {label}", err=True)


def _report(result: ImportResult) -> None:
    _echo_json(result.model_dump(mode="json"))
    if not result.success:
        sys.exit(1)
    if result.is_partial:
        click.echo("Import finished, but some sections are incomplete.", err=True)


@click.group()
@click.pass_context
def cli(ctx: click.Context) -> None:
    settings = load_settings()
    setup_logging(settings)
    ctx.obj = settings


@cli.command("show-config")
@click.pass_obj
def show_config(settings: Settings) -> None:
    _echo_json(redact_settings(settings))


@cli.command("init-db")
def init_db() -> None:
    """Create all tables on DATABASE_URL (development convenience; use alembic otherwise)."""

    async def _run() -> None:
        await create_schema()
        await dispose_engine()

    asyncio.run(_run())
    click.echo("schema created")


@cli.command("search-platforms")
@click.argument("query", default="")
@click.pass_obj
def search_platforms(settings: Settings, query: str) -> None:
    async def _run() -> None:
        async with BranchClient(settings) as client:
            branches = await client.search_platform_branches(query)
        _echo_json([summarize_platform_branch(b).model_dump(mode="json") for b in branches])

    asyncio.run(_run())


@cli.command("search-roms")
@click.argument("query", default="")
@click.pass_obj
def search_roms(settings: Settings, query: str) -> None:
    async def _run() -> None:
        async with BranchClient(settings) as client:
            branches = await client.search_game_rom_branches(query)
        _echo_json([summarize_game_rom_branch(b).model_dump(mode="json") for b in branches])

    asyncio.run(_run())


@cli.command("preview-platform")
@click.argument("branch_id")
@click.pass_obj
def preview_platform(settings: Settings, branch_id: str) -> None:
    async def _run() -> None:
        async with BranchClient(settings) as client:
            snapshot = await client.fetch_platform_branch(branch_id)
        _echo_json(summarize_platform_branch(snapshot).model_dump(mode="json"))

    try:
        asyncio.run(_run())
    except BranchFetchError as exc:
        raise click.ClickException(str(exc)) from exc


@cli.command("preview-rom")
@click.argument("branch_id")
@click.pass_obj
def preview_rom(settings: Settings, branch_id: str) -> None:
    async def _run() -> None:
        async with BranchClient(settings) as client:
            snapshot = await client.fetch_game_rom_branch(branch_id)
        _echo_json(summarize_game_rom_branch(snapshot).model_dump(mode="json"))

    try:
        asyncio.run(_run())
    except BranchFetchError as exc:
        raise click.ClickException(str(exc)) from exc


@cli.command("match-platform")
@click.argument("platform_branch_id")
@click.option("--user", "user_id", required=True, help="Owner id used for visibility.")
def match_platform(platform_branch_id: str, user_id: str) -> None:
    async def _run() -> dict[str, Any]:
        try:
            return await PlatformMatcher(SqlEntityStore()).find_platform_by_branch_id(
                platform_branch_id, user_id
            )
        finally:
            await dispose_engine()

    try:
        _echo_json(asyncio.run(_run()))
    except BindingNotFoundError as exc:
        raise click.ClickException(str(exc)) from exc


@cli.command("import-platform")
@click.argument("branch_id")
@click.option("--user", "user_id", required=True)
@click.option("--name", "platform_name", default=None, help="Defaults to the external platform name.")
@click.pass_obj
def import_platform(settings: Settings, branch_id: str, user_id: str, platform_name: str | None) -> None:
    async def _run() -> ImportResult:
        try:
            async with BranchClient(settings) as client:
                orchestrator = PlatformImportOrchestrator(client, SqlEntityStore(), settings)
                return await orchestrator.import_platform_branch(
                    branch_id,
                    user_id=user_id,
                    platform_name=platform_name,
                    on_progress=_print_progress,
                )
        finally:
            await dispose_engine()

    _report(asyncio.run(_run()))


@cli.command("import-rom")
@click.argument("branch_id")
@click.option("--user", "user_id", required=True)
@click.option("--name", "project_name", required=True)
@click.option("--platform-id", default=None, help="Skip matching and bind to this platform.")
@click.pass_obj
def import_rom(
    settings: Settings,
    branch_id: str,
    user_id: str,
    project_name: str,
    platform_id: str | None,
) -> None:
    async def _run() -> ImportResult:
        store = SqlEntityStore()
        try:
            async with BranchClient(settings) as client:
                target_platform = platform_id
                snapshot = None
                if target_platform is None:
                    snapshot = await client.fetch_game_rom_branch(branch_id)
                    platform_branch_id = snapshot.resolved_platform_branch_id
                    if not platform_branch_id:
                        raise click.ClickException("ROM branch does not declare a platform branch")
                    platform = await PlatformMatcher(store).find_platform_by_branch_id(
                        platform_branch_id, user_id
                    )
                    target_platform = platform["id"]
                orchestrator = ProjectImportOrchestrator(client, store, settings)
                return await orchestrator.import_game_rom_branch(
                    branch_id,
                    user_id=user_id,
                    project_name=project_name,
                    platform_id=target_platform,
                    on_progress=_print_progress,
                    snapshot=snapshot,
                )
        finally:
            await dispose_engine()

    try:
        result = asyncio.run(_run())
    except (BindingNotFoundError, BranchFetchError) as exc:
        raise click.ClickException(str(exc)) from exc
    _report(result)


if __name__ == "__main__":
    cli()
