# tests/conftest.py

import copy
import os
from collections.abc import AsyncIterator
from typing import Any

import pytest

# Point the app engine at a process-local in-memory DB before any Scribe
# module is imported. StaticPool keeps the single connection alive so the
# schema created on first use survives across sessions.
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ.setdefault("SCRIBE_SQLITE_STATIC_POOL", "1")

# TOML has lower precedence than env, but a checked-in .env could still win;
# override the module-level constant before any engine is created.
import Scribe.db as _db  # noqa: E402

_db.DATABASE_URL = os.environ["DATABASE_URL"]
_db._engine = None
_db._sessionmaker = None
_db._schema_initialized = False

from Scribe import models as _models  # noqa: F401,E402
from Scribe.config import Settings  # noqa: E402
from Scribe.metrics import reset_counters  # noqa: E402
from Scribe.store import SqlEntityStore  # noqa: E402


PLATFORM_BRANCH: dict[str, Any] = {
    "id": "pb-1",
    "name": "main",
    "version": 3,
    "platformId": "ext-plat-1",
    "platform": {"id": "ext-plat-1", "name": "SNES", "meta": {"cpu": "65816"}},
    "addressingModes": {
        "Immediate": {
            "shorthand": "#",
            "size": 2,
            "formatString": "#${0:X2}",
            "parseRegex": "^#\\$([0-9A-F]{2})$",
        },
        "Absolute": {"shorthand": "a", "size": 3},
    },
    "instructionSet": {"LDA": {"Immediate": 169, "Absolute": 173}},
    "vectors": {"RESET": {"address": "0xFFFC", "entry": True}},
    "types": {},
    "createdAt": "2024-04-01T00:00:00Z",
    "updatedAt": "2024-05-01T00:00:00Z",
}

GAME_ROM_BRANCH: dict[str, Any] = {
    "id": "grb-1",
    "name": "main",
    "version": 1,
    "gameRomId": "rom-1",
    "platformBranchId": "pb-1",
    "coplib": {
        "COP_00": {"code": 0, "parts": ["byte"], "halt": False},
        "COP_01": {"code": 1},
    },
    "files": {"intro.bin": {"location": "0x8000", "size": 512, "type": "Binary"}},
    "blocks": {
        "Main": {
            "movable": True,
            "transforms": [{"regex": "foo", "replacement": "bar"}],
            "parts": {"Header": {"location": 32768, "size": 16, "type": "Code", "order": 0}},
        }
    },
    "fixups": {
        "labels": [{"location": 32768, "label": "start"}],
        "mnemonics": {"RESET": "0x8000"},
        "overrides": [{"location": 32770, "register": "X", "value": 1}],
        "rewrites": [{"location": 32772, "value": 234}],
    },
    "strings": {
        "strings": {
            "Dialog": {
                "delimiter": "^",
                "terminator": 0,
                "commands": {"END": {"code": 0, "halt": True}, "WAIT": {"code": 1}},
            }
        }
    },
    "structs": {"Actor": {"types": ["byte"], "parts": []}},
    "gameRom": {
        "id": "rom-1",
        "crc": 1234,
        "game": {"id": "g1", "name": "Soul Blazer"},
        "region": {"id": "r1", "name": "USA"},
    },
    "platformBranch": {
        "id": "pb-1",
        "name": "main",
        "version": 3,
        "platformId": "ext-plat-1",
        "platform": {"id": "ext-plat-1", "name": "SNES"},
    },
}


@pytest.fixture
def platform_branch_payload() -> dict[str, Any]:
    return copy.deepcopy(PLATFORM_BRANCH)


@pytest.fixture
def game_rom_branch_payload() -> dict[str, Any]:
    return copy.deepcopy(GAME_ROM_BRANCH)


@pytest.fixture
def settings() -> Settings:
    # Explicit init values beat .env/env/TOML
    return Settings(
        external_api_url="https://branches.test",
        branch_fetch_timeout_seconds=5.0,
        importer_dependent_phase_policy="attempt",
        importer_concurrent_independent_phases=False,
        importer_reject_duplicate_names=True,
    )


@pytest.fixture(autouse=True)
def _reset_metrics() -> None:
    reset_counters()


@pytest.fixture
async def sql_store() -> AsyncIterator[SqlEntityStore]:
    """SqlEntityStore on a fresh in-memory database.

    Disposing the StaticPool engine drops the in-memory DB, so every test
    starts from an empty schema that ``session_scope`` recreates on first use.
    """
    await _db.dispose_engine()
    try:
        yield SqlEntityStore()
    finally:
        await _db.dispose_engine()
