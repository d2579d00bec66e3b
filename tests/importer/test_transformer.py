"""Snapshot flattening into entity drafts."""

from datetime import datetime, timezone

from hypothesis import HealthCheck, given, settings
from hypothesis import strategies as st
from pydantic import BaseModel

from Scribe.branch_schemas import GameRomBranchSnapshot, OverrideRecord, PlatformBranchSnapshot
from Scribe.drafts import CrossReference, EntityType
from Scribe.transformer import (
    GAME_ROM_IMPORT_SOURCE,
    PLATFORM_IMPORT_SOURCE,
    summarize_game_rom_branch,
    summarize_platform_branch,
    transform_game_rom_branch,
    transform_platform_branch,
)

PINNED = datetime(2024, 6, 1, tzinfo=timezone.utc)


def _platform(**overrides):
    payload = {"id": "pb-x", "name": "main", "platform": {"id": "p", "name": "SNES"}}
    payload.update(overrides)
    return PlatformBranchSnapshot.model_validate(payload)


def test_instruction_set_flattens_to_groups_and_codes():
    snap = _platform(
        addressingModes={"imm": {"size": 2}, "abs": {"size": 3}},
        instructionSet={"LDA": {"imm": 0xA9, "abs": 0xAD}, "STA": {"abs": 0x8D}},
    )
    batch = transform_platform_branch(snap, platform_name="SNES", user_id="u1")

    groups = batch.drafts_for(EntityType.INSTRUCTION_GROUPS)
    codes = batch.drafts_for(EntityType.INSTRUCTION_CODES)
    assert [g.natural_key for g in groups] == ["LDA", "STA"]
    assert len(codes) == 3
    pairs = {(c.ref_key(EntityType.INSTRUCTION_GROUPS), c.ref_key(EntityType.ADDRESSING_MODES), c.fields["code"]) for c in codes}
    assert pairs == {("LDA", "imm", 0xA9), ("LDA", "abs", 0xAD), ("STA", "abs", 0x8D)}


def test_instruction_codes_reference_group_and_mode_fields():
    snap = _platform(instructionSet={"LDA": {"imm": 169}})
    batch = transform_platform_branch(snap, platform_name="SNES", user_id="u1")
    (code,) = batch.drafts_for(EntityType.INSTRUCTION_CODES)
    assert code.refs == (
        CrossReference("group_id", EntityType.INSTRUCTION_GROUPS, "LDA"),
        CrossReference("mode_id", EntityType.ADDRESSING_MODES, "imm"),
    )
    assert code.fields == {"code": 169, "cycles": None, "meta": None}


def test_non_integer_opcodes_are_skipped_not_fatal():
    snap = _platform(
        instructionSet={"LDA": {"imm": 169, "abs": "oops", "meta": {"flags": "NZ"}}},
    )
    batch = transform_platform_branch(snap, platform_name="SNES", user_id="u1")

    assert len(batch.drafts_for(EntityType.INSTRUCTION_CODES)) == 1
    (group,) = batch.drafts_for(EntityType.INSTRUCTION_GROUPS)
    assert group.fields["meta"] == {"flags": "NZ"}
    assert [(s.section, s.key) for s in batch.skipped] == [("instructionSet", "LDA.abs")]


def test_platform_root_carries_provenance(platform_snapshot):
    batch = transform_platform_branch(
        platform_snapshot, platform_name="My SNES", user_id="u1", imported_at=PINNED
    )
    root = batch.root
    assert root.entity_type is EntityType.PLATFORMS
    assert root.name == "My SNES"
    assert root.created_by == "u1"
    assert root.is_public is False
    assert root.fields == {"platform_branch_id": "pb-1"}
    assert root.meta["importedFrom"] == PLATFORM_IMPORT_SOURCE
    assert root.meta["originalPlatformBranchId"] == "pb-1"
    assert root.meta["originalPlatformId"] == "ext-plat-1"
    assert root.meta["originalPlatformName"] == "SNES"
    assert root.meta["branchVersion"] == 3
    assert root.meta["importedAt"] == PINNED.isoformat()


def test_vectors_accept_hex_and_legacy_id_addresses():
    snap = _platform(
        vectors={
            "RESET": {"address": "0xFFFC", "entry": True},
            "NMI": {"id": 65530, "header": True},
        }
    )
    batch = transform_platform_branch(snap, platform_name="SNES", user_id="u1")
    by_name = {d.fields["name"]: d.fields for d in batch.drafts_for(EntityType.VECTORS)}
    assert by_name["RESET"]["address"] == 0xFFFC
    assert by_name["RESET"]["is_entry_point"] is True
    assert by_name["NMI"]["address"] == 65530
    assert by_name["NMI"]["is_rom_header"] is True


def test_platform_types_keep_unknown_keys_in_meta():
    snap = _platform(types={"Word": {"size": 2, "isPrimitive": True, "endian": "little"}})
    batch = transform_platform_branch(snap, platform_name="SNES", user_id="u1")
    (t,) = batch.drafts_for(EntityType.PLATFORM_TYPES)
    assert t.fields["size"] == 2
    assert t.fields["is_primitive"] is True
    assert t.fields["meta"] == {"endian": "little"}


def test_malformed_records_are_skipped_individually():
    snap = _platform(
        addressingModes={"imm": {"size": 2}, "bad": "not-an-object"},
        types={"Byte": {"size": 1}, "Broken": {"description": "no size"}},
    )
    batch = transform_platform_branch(snap, platform_name="SNES", user_id="u1")
    assert [d.natural_key for d in batch.drafts_for(EntityType.ADDRESSING_MODES)] == ["imm"]
    assert [d.natural_key for d in batch.drafts_for(EntityType.PLATFORM_TYPES)] == ["Byte"]
    assert {(s.section, s.key) for s in batch.skipped} == {("addressingModes", "bad"), ("types", "Broken")}


def test_empty_platform_snapshot_has_every_phase_list():
    batch = transform_platform_branch(_platform(), platform_name="SNES", user_id="u1")
    assert batch.counts() == {
        "addressing_modes": 0,
        "instruction_groups": 0,
        "instruction_codes": 0,
        "vectors": 0,
        "platform_types": 0,
    }
    assert batch.skipped == []


def test_game_rom_branch_flattens_every_section(game_rom_snapshot):
    batch = transform_game_rom_branch(
        game_rom_snapshot, project_name="Blazer", user_id="u1", platform_id="plat-1"
    )
    assert batch.counts() == {
        "files": 1,
        "cops": 2,
        "labels": 1,
        "game_mnemonics": 1,
        "overrides": 1,
        "rewrites": 1,
        "structs": 1,
        "blocks": 1,
        "string_types": 1,
        "block_transforms": 1,
        "block_parts": 1,
        "string_commands": 2,
    }
    assert batch.skipped == []

    (file_draft,) = batch.drafts_for(EntityType.FILES)
    assert file_draft.fields["location"] == 0x8000
    (mnemonic,) = batch.drafts_for(EntityType.GAME_MNEMONICS)
    assert mnemonic.fields == {"address": 0x8000, "mnemonic": "RESET"}
    (override,) = batch.drafts_for(EntityType.OVERRIDES)
    assert override.fields == {"location": 32770, "register": "X", "value": 1}


def test_children_reference_parent_natural_keys(game_rom_snapshot):
    batch = transform_game_rom_branch(
        game_rom_snapshot, project_name="Blazer", user_id="u1", platform_id="plat-1"
    )
    refs = batch.cross_references()
    assert (EntityType.BLOCK_TRANSFORMS, CrossReference("block_id", EntityType.BLOCKS, "Main")) in refs
    assert (EntityType.BLOCK_PARTS, CrossReference("block_id", EntityType.BLOCKS, "Main")) in refs
    assert (
        EntityType.STRING_COMMANDS,
        CrossReference("string_type_id", EntityType.STRING_TYPES, "Dialog"),
    ) in refs


def test_project_root_binds_platform_and_provenance(game_rom_snapshot):
    batch = transform_game_rom_branch(
        game_rom_snapshot,
        project_name="Blazer",
        user_id="u1",
        platform_id="plat-1",
        imported_at=PINNED,
    )
    root = batch.root
    assert root.entity_type is EntityType.PROJECTS
    assert root.fields == {"platform_id": "plat-1", "game_rom_branch_id": "grb-1"}
    assert root.meta["importSource"] == GAME_ROM_IMPORT_SOURCE
    assert root.meta["originalGameName"] == "Soul Blazer"
    assert root.meta["originalRegionName"] == "USA"
    assert root.meta["originalPlatformBranchId"] == "pb-1"
    assert root.to_row()["platform_id"] == "plat-1"


def test_unwrapped_strings_and_list_block_parts():
    snap = GameRomBranchSnapshot.model_validate(
        {
            "id": "grb-2",
            "strings": {"Menu": {"delimiter": "~", "commands": {"NL": {"code": 1}}}},
            "blocks": {"B": {"parts": [{"name": "P1", "size": 4}, {"size": 2}]}},
        }
    )
    batch = transform_game_rom_branch(snap, project_name="x", user_id="u1", platform_id="p")
    assert [d.natural_key for d in batch.drafts_for(EntityType.STRING_TYPES)] == ["Menu"]
    assert [d.natural_key for d in batch.drafts_for(EntityType.BLOCK_PARTS)] == ["P1"]
    assert [(s.section, s.key) for s in batch.skipped] == [("blocks.B.parts", "[1]")]


def test_wrapped_sections_with_sibling_keys_are_unwrapped():
    snap = GameRomBranchSnapshot.model_validate(
        {
            "id": "grb-4",
            "strings": {
                "strings": {"Main": {"delimiter": "~", "commands": {"NL": {"code": 1}, "END": {"code": 0}}}},
                "version": 2,
            },
            "structs": {"structs": {"Actor": {"types": ["byte"]}}, "version": 2},
        }
    )
    batch = transform_game_rom_branch(snap, project_name="x", user_id="u1", platform_id="p")

    assert [d.natural_key for d in batch.drafts_for(EntityType.STRING_TYPES)] == ["Main"]
    assert len(batch.drafts_for(EntityType.STRING_COMMANDS)) == 2
    assert [d.natural_key for d in batch.drafts_for(EntityType.STRUCTS)] == ["Actor"]
    assert batch.skipped == []
    assert summarize_game_rom_branch(snap).counts["string_types"] == 1


def test_cop_without_code_is_kept_for_validation():
    snap = GameRomBranchSnapshot.model_validate(
        {"id": "grb-3", "coplib": {"COP_X": {"parts": []}, "COP_Y": {"code": "7"}}}
    )
    batch = transform_game_rom_branch(snap, project_name="x", user_id="u1", platform_id="p")
    cops = {d.natural_key: d.fields["code"] for d in batch.drafts_for(EntityType.COPS)}
    # A missing code survives to validation; a non-integer code fails decode
    assert cops == {"COP_X": None}
    assert [(s.section, s.key) for s in batch.skipped] == [("coplib", "COP_Y")]


def test_summaries_count_sections(platform_snapshot, game_rom_snapshot):
    p = summarize_platform_branch(platform_snapshot)
    assert p.platform_name == "SNES"
    assert p.counts["instruction_codes"] == 2
    assert p.counts["addressing_modes"] == 2

    g = summarize_game_rom_branch(game_rom_snapshot)
    assert g.platform_branch_id == "pb-1"
    assert g.counts["string_types"] == 1
    assert g.counts["labels"] == 1


_names = st.text(alphabet="ABCDEFGHIJKLMNOPQRSTUVWXYZ", min_size=1, max_size=6)


@settings(
    max_examples=50,
    deadline=None,
    # the autouse metrics reset does not need to run per example
    suppress_health_check=[HealthCheck.function_scoped_fixture],
)
@given(
    modes=st.lists(_names, min_size=1, max_size=5, unique=True),
    groups=st.dictionaries(_names, st.integers(min_value=0, max_value=255), max_size=8),
)
def test_platform_transform_is_deterministic(modes, groups):
    instruction_set = {g: {m: code for m in modes} for g, code in groups.items()}
    snap = _platform(
        addressingModes={m: {"size": 1} for m in modes},
        instructionSet=instruction_set,
    )
    first = transform_platform_branch(snap, platform_name="P", user_id="u", imported_at=PINNED)
    second = transform_platform_branch(snap, platform_name="P", user_id="u", imported_at=PINNED)

    assert first == second
    assert len(first.drafts_for(EntityType.INSTRUCTION_CODES)) == len(groups) * len(modes)


def test_override_register_does_not_shadow_model_attributes():
    assert not any(hasattr(BaseModel, name) for name in OverrideRecord.model_fields)
    rec = OverrideRecord.model_validate({"location": "0x10", "register": "Y"})
    assert rec.register_name == "Y"
    assert OverrideRecord.model_validate({"location": 1}).register_name == "A"
