import orjson
import pytest
from click.testing import CliRunner

import scripts.cli as cli_mod
from Scribe.branch_schemas import GameRomBranchSnapshot, PlatformBranchSnapshot


@pytest.fixture
def fake_client(monkeypatch, platform_branch_payload, game_rom_branch_payload):
    class _FakeClient:
        def __init__(self, settings, **kwargs):
            pass

        async def __aenter__(self):
            return self

        async def __aexit__(self, *exc_info):
            return None

        async def fetch_platform_branch(self, branch_id):
            return PlatformBranchSnapshot.model_validate(platform_branch_payload)

        async def fetch_game_rom_branch(self, branch_id):
            return GameRomBranchSnapshot.model_validate(game_rom_branch_payload)

    monkeypatch.setenv("LOGGING_ENABLED", "false")
    monkeypatch.setattr(cli_mod, "BranchClient", _FakeClient)
    return _FakeClient


def test_preview_platform_prints_counts(fake_client):
    result = CliRunner().invoke(cli_mod.cli, ["preview-platform", "pb-1"])
    assert result.exit_code == 0, result.output
    summary = orjson.loads(result.stdout)
    assert summary["branch_id"] == "pb-1"
    assert summary["counts"]["instruction_codes"] == 2


def test_import_rom_requires_imported_platform(fake_client):
    result = CliRunner().invoke(
        cli_mod.cli, ["import-rom", "grb-1", "--user", "u1", "--name", "Blazer"]
    )
    assert result.exit_code == 1
    assert "The required platform must be imported first." in result.output
