"""Flattens branch snapshots into a ``NormalizedBatch`` of entity drafts.

Each name-keyed sub-tree yields one draft per key, with the key as the
draft's natural key. Compound structures (blocks with transforms and parts,
string types with commands, instruction groups with per-mode opcodes) yield
the parent draft plus child drafts that carry ``CrossReference``s back to the
parent's natural key.

Records are decoded one at a time through the models in ``branch_schemas``.
A record that is not an object or fails its model is appended to
``batch.skipped`` and the transform carries on. The functions here do not
touch the store, the network or the logger; ``imported_at`` is the only
non-deterministic input and callers may pin it.
"""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from datetime import datetime, timezone
from typing import Any, TypeVar

from pydantic import BaseModel, ValidationError

from Scribe.branch_schemas import (
    AddressingModeRecord,
    BlockPartRecord,
    BlockRecord,
    BlockTransformRecord,
    BranchSummary,
    CopRecord,
    FileRecord,
    GameRomBranchSnapshot,
    LabelRecord,
    OverrideRecord,
    PlatformBranchSnapshot,
    PlatformTypeRecord,
    RewriteRecord,
    StringCommandRecord,
    StringTypeRecord,
    StructRecord,
    VectorRecord,
    coerce_int,
)
from Scribe.drafts import (
    CrossReference,
    EntityDraft,
    EntityType,
    NormalizedBatch,
    RootDraft,
    SkippedRecord,
)

PLATFORM_IMPORT_SOURCE = "external-platform-branch"
GAME_ROM_IMPORT_SOURCE = "external-gamerom-branch"

R = TypeVar("R", bound=BaseModel)


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _unwrap(tree: Any, name: str) -> Any:
    """Read through a same-named wrapper object, e.g. ``{"strings": {...}, "version": 2}``.

    Sibling keys next to the wrapper are ignored.
    """
    if isinstance(tree, Mapping) and isinstance(tree.get(name), Mapping):
        return tree[name]
    return tree


def _first_error(exc: ValidationError) -> str:
    err = exc.errors()[0]
    loc = ".".join(str(p) for p in err.get("loc", ()))
    return f"{loc}: {err['msg']}" if loc else err["msg"]


class _BatchBuilder:
    def __init__(self, root: RootDraft):
        self.batch = NormalizedBatch(root=root)

    def add(self, draft: EntityDraft) -> None:
        self.batch.drafts.setdefault(draft.entity_type, []).append(draft)

    def ensure(self, *entity_types: EntityType) -> None:
        # Every phase type gets a list, even when the snapshot has no entries
        for t in entity_types:
            self.batch.drafts.setdefault(t, [])

    def skip(self, section: str, key: str | None, reason: str) -> None:
        self.batch.skipped.append(SkippedRecord(section=section, key=key, reason=reason))

    def entries(self, tree: Any, section: str) -> Iterator[tuple[str, Mapping[str, Any]]]:
        if tree is None:
            return
        if not isinstance(tree, Mapping):
            self.skip(section, None, "section is not an object")
            return
        for key, value in tree.items():
            if not isinstance(value, Mapping):
                self.skip(section, str(key), "record is not an object")
                continue
            yield str(key), value

    def items(self, seq: Any, section: str) -> Iterator[tuple[int, Mapping[str, Any]]]:
        if seq is None:
            return
        if not isinstance(seq, list):
            self.skip(section, None, "section is not a list")
            return
        for i, value in enumerate(seq):
            if not isinstance(value, Mapping):
                self.skip(section, f"[{i}]", "record is not an object")
                continue
            yield i, value

    def decode(self, model: type[R], raw: Mapping[str, Any], section: str, key: str) -> R | None:
        try:
            return model.model_validate(raw)
        except ValidationError as exc:
            self.skip(section, key, _first_error(exc))
            return None


def _imported_at(value: datetime | None) -> str:
    return (value or datetime.now(timezone.utc)).isoformat()


# --- Platform branches ---


def transform_platform_branch(
    snapshot: PlatformBranchSnapshot,
    *,
    platform_name: str,
    user_id: str,
    imported_at: datetime | None = None,
) -> NormalizedBatch:
    platform = snapshot.platform
    root = RootDraft(
        entity_type=EntityType.PLATFORMS,
        name=platform_name,
        created_by=user_id,
        is_public=False,
        fields={"platform_branch_id": snapshot.id},
        meta={
            "importedFrom": PLATFORM_IMPORT_SOURCE,
            "originalPlatformBranchId": snapshot.id,
            "originalPlatformId": snapshot.platform_id or (platform.id if platform else None),
            "originalPlatformName": platform.name if platform else None,
            "branchName": snapshot.name,
            "branchVersion": snapshot.version,
            "originalPlatformMeta": platform.meta if platform else None,
            "importedAt": _imported_at(imported_at),
            "importSource": PLATFORM_IMPORT_SOURCE,
        },
    )
    b = _BatchBuilder(root)
    b.ensure(
        EntityType.ADDRESSING_MODES,
        EntityType.INSTRUCTION_GROUPS,
        EntityType.INSTRUCTION_CODES,
        EntityType.VECTORS,
        EntityType.PLATFORM_TYPES,
    )
    _addressing_modes(b, snapshot.addressing_modes)
    _instruction_set(b, snapshot.instruction_set)
    _vectors(b, snapshot.vectors)
    _platform_types(b, snapshot.types)
    return b.batch


def _addressing_modes(b: _BatchBuilder, tree: Any) -> None:
    for name, raw in b.entries(tree, "addressingModes"):
        rec = b.decode(AddressingModeRecord, raw, "addressingModes", name)
        if rec is None:
            continue
        b.add(
            EntityDraft(
                EntityType.ADDRESSING_MODES,
                natural_key=name,
                fields={
                    "name": name,
                    "code": rec.shorthand,
                    "size": rec.size if rec.size is not None else 1,
                    "format": rec.format_string,
                    "pattern": rec.parse_regex,
                    "meta": rec.meta,
                },
            )
        )


def _instruction_set(b: _BatchBuilder, tree: Any) -> None:
    """Emit one group draft per mnemonic and one code draft per (group, mode)."""
    for group_name, raw in b.entries(tree, "instructionSet"):
        meta = raw.get("meta")
        b.add(
            EntityDraft(
                EntityType.INSTRUCTION_GROUPS,
                natural_key=group_name,
                fields={"name": group_name, "meta": meta if isinstance(meta, Mapping) else None},
            )
        )
        for mode_name, code in raw.items():
            if mode_name == "meta":
                continue
            if not _is_int(code):
                b.skip("instructionSet", f"{group_name}.{mode_name}", "opcode is not an integer")
                continue
            b.add(
                EntityDraft(
                    EntityType.INSTRUCTION_CODES,
                    fields={"code": code, "cycles": None, "meta": None},
                    refs=(
                        CrossReference("group_id", EntityType.INSTRUCTION_GROUPS, group_name),
                        CrossReference("mode_id", EntityType.ADDRESSING_MODES, str(mode_name)),
                    ),
                )
            )


def _vectors(b: _BatchBuilder, tree: Any) -> None:
    for name, raw in b.entries(tree, "vectors"):
        rec = b.decode(VectorRecord, raw, "vectors", name)
        if rec is None:
            continue
        address = rec.address if rec.address is not None else rec.id
        b.add(
            EntityDraft(
                EntityType.VECTORS,
                natural_key=name,
                fields={
                    "name": name,
                    "address": address if address is not None else 0,
                    "is_entry_point": bool(rec.entry),
                    "is_rom_header": bool(rec.header),
                    "description": rec.description,
                    "meta": {"source": rec.meta} if rec.meta is not None else None,
                },
            )
        )


def _platform_types(b: _BatchBuilder, tree: Any) -> None:
    for name, raw in b.entries(tree, "types"):
        rec = b.decode(PlatformTypeRecord, raw, "types", name)
        if rec is None:
            continue
        # Unknown keys are preserved in meta rather than dropped
        meta = {**(rec.meta or {}), **(rec.model_extra or {})}
        b.add(
            EntityDraft(
                EntityType.PLATFORM_TYPES,
                natural_key=name,
                fields={
                    "name": name,
                    "description": rec.description,
                    "size": rec.size,
                    "is_primitive": rec.is_primitive,
                    "is_pointer": rec.is_pointer,
                    "is_signed": rec.is_signed,
                    "is_relative": rec.is_relative,
                    "is_bank": rec.is_bank,
                    "is_data": rec.is_data,
                    "is_code": rec.is_code,
                    "pointer_char": rec.pointer_char,
                    "meta": meta or None,
                },
            )
        )


# --- Game ROM branches ---


def transform_game_rom_branch(
    snapshot: GameRomBranchSnapshot,
    *,
    project_name: str,
    user_id: str,
    platform_id: str,
    imported_at: datetime | None = None,
) -> NormalizedBatch:
    rom = snapshot.game_rom
    game = rom.game if rom else None
    region = rom.region if rom else None
    pb = snapshot.platform_branch
    root = RootDraft(
        entity_type=EntityType.PROJECTS,
        name=project_name,
        created_by=user_id,
        is_public=False,
        fields={"platform_id": platform_id, "game_rom_branch_id": snapshot.id},
        meta={
            "importedFrom": GAME_ROM_IMPORT_SOURCE,
            "originalGameRomBranchId": snapshot.id,
            "originalGameRomId": snapshot.game_rom_id or (rom.id if rom else None),
            "originalGameId": game.id if game else None,
            "originalGameName": game.name if game else None,
            "originalRegionId": region.id if region else None,
            "originalRegionName": region.name if region else None,
            "originalPlatformBranchId": snapshot.resolved_platform_branch_id,
            "originalPlatformId": pb.platform_id if pb else None,
            "originalPlatformName": pb.platform.name if pb and pb.platform else None,
            "branchName": snapshot.name,
            "branchVersion": snapshot.version,
            "platformBranchName": pb.name if pb else None,
            "platformBranchVersion": pb.version if pb else None,
            "importedAt": _imported_at(imported_at),
            "importSource": GAME_ROM_IMPORT_SOURCE,
        },
    )
    b = _BatchBuilder(root)
    b.ensure(
        EntityType.FILES,
        EntityType.COPS,
        EntityType.LABELS,
        EntityType.GAME_MNEMONICS,
        EntityType.OVERRIDES,
        EntityType.REWRITES,
        EntityType.STRUCTS,
        EntityType.BLOCKS,
        EntityType.STRING_TYPES,
        EntityType.BLOCK_TRANSFORMS,
        EntityType.BLOCK_PARTS,
        EntityType.STRING_COMMANDS,
    )
    _cops(b, snapshot.coplib)
    _files(b, snapshot.files)
    _blocks(b, snapshot.blocks)
    _fixups(b, snapshot.fixups)
    _string_types(b, _unwrap(snapshot.strings, "strings"))
    _structs(b, _unwrap(snapshot.structs, "structs"))
    return b.batch


def _cops(b: _BatchBuilder, tree: Any) -> None:
    for mnemonic, raw in b.entries(tree, "coplib"):
        rec = b.decode(CopRecord, raw, "coplib", mnemonic)
        if rec is None:
            continue
        b.add(
            EntityDraft(
                EntityType.COPS,
                natural_key=mnemonic,
                fields={"mnemonic": mnemonic, "code": rec.code, "parts": rec.parts, "halt": rec.halt},
            )
        )


def _files(b: _BatchBuilder, tree: Any) -> None:
    for name, raw in b.entries(tree, "files"):
        rec = b.decode(FileRecord, raw, "files", name)
        if rec is None:
            continue
        b.add(
            EntityDraft(
                EntityType.FILES,
                natural_key=name,
                fields={
                    "name": name,
                    "location": rec.location,
                    "size": rec.size,
                    "type": rec.type or "Unknown",
                    "group": rec.group,
                    "scene": rec.scene,
                    "compressed": rec.compressed,
                    "upper": rec.upper,
                    "meta": rec.meta,
                },
            )
        )


def _blocks(b: _BatchBuilder, tree: Any) -> None:
    for block_name, raw in b.entries(tree, "blocks"):
        rec = b.decode(BlockRecord, raw, "blocks", block_name)
        if rec is None:
            continue
        b.add(
            EntityDraft(
                EntityType.BLOCKS,
                natural_key=block_name,
                fields={
                    "name": block_name,
                    "movable": rec.movable,
                    "group": rec.group,
                    "scene": rec.scene,
                    "post_process": rec.post_process,
                    "meta": rec.meta,
                },
            )
        )
        parent = CrossReference("block_id", EntityType.BLOCKS, block_name)

        section = f"blocks.{block_name}.transforms"
        for i, t_raw in b.items(rec.transforms, section):
            t = b.decode(BlockTransformRecord, t_raw, section, f"[{i}]")
            if t is None:
                continue
            b.add(
                EntityDraft(
                    EntityType.BLOCK_TRANSFORMS,
                    fields={"regex": t.regex, "replacement": t.replacement},
                    refs=(parent,),
                )
            )

        section = f"blocks.{block_name}.parts"
        for part_name, p_raw in _block_parts(b, rec.parts, section):
            p = b.decode(BlockPartRecord, p_raw, section, part_name)
            if p is None:
                continue
            b.add(
                EntityDraft(
                    EntityType.BLOCK_PARTS,
                    natural_key=part_name,
                    fields={
                        "name": part_name,
                        "location": p.location,
                        "size": p.size,
                        "type": p.type or "Unknown",
                        "index": p.order,
                    },
                    refs=(parent,),
                )
            )


def _block_parts(
    b: _BatchBuilder, parts: Any, section: str
) -> Iterator[tuple[str, Mapping[str, Any]]]:
    # Parts are usually keyed by name; a list form needs an explicit "name"
    if isinstance(parts, list):
        for i, raw in b.items(parts, section):
            name = raw.get("name")
            if not isinstance(name, str):
                b.skip(section, f"[{i}]", "part has no name")
                continue
            yield name, raw
        return
    yield from b.entries(parts, section)


def _fixups(b: _BatchBuilder, fixups: Any) -> None:
    if fixups is None:
        return
    if not isinstance(fixups, Mapping):
        b.skip("fixups", None, "section is not an object")
        return

    for i, raw in b.items(fixups.get("labels"), "fixups.labels"):
        rec = b.decode(LabelRecord, raw, "fixups.labels", f"[{i}]")
        if rec is not None:
            b.add(
                EntityDraft(
                    EntityType.LABELS, fields={"location": rec.location, "label": rec.label}
                )
            )

    mnemonics = fixups.get("mnemonics")
    if isinstance(mnemonics, Mapping):
        for mnemonic, address in mnemonics.items():
            try:
                value = coerce_int(address)
            except ValueError as exc:
                b.skip("fixups.mnemonics", str(mnemonic), str(exc))
                continue
            if not _is_int(value):
                b.skip("fixups.mnemonics", str(mnemonic), "address is not an integer")
                continue
            b.add(
                EntityDraft(
                    EntityType.GAME_MNEMONICS,
                    natural_key=str(mnemonic),
                    fields={"address": value, "mnemonic": str(mnemonic)},
                )
            )
    elif mnemonics is not None:
        b.skip("fixups.mnemonics", None, "section is not an object")

    for i, raw in b.items(fixups.get("overrides"), "fixups.overrides"):
        rec = b.decode(OverrideRecord, raw, "fixups.overrides", f"[{i}]")
        if rec is not None:
            b.add(
                EntityDraft(
                    EntityType.OVERRIDES,
                    fields={"location": rec.location, "register": rec.register_name, "value": rec.value},
                )
            )

    for i, raw in b.items(fixups.get("rewrites"), "fixups.rewrites"):
        rec = b.decode(RewriteRecord, raw, "fixups.rewrites", f"[{i}]")
        if rec is not None:
            b.add(
                EntityDraft(
                    EntityType.REWRITES, fields={"location": rec.location, "value": rec.value}
                )
            )


def _string_types(b: _BatchBuilder, tree: Any) -> None:
    for type_name, raw in b.entries(tree, "strings"):
        rec = b.decode(StringTypeRecord, raw, "strings", type_name)
        if rec is None:
            continue
        b.add(
            EntityDraft(
                EntityType.STRING_TYPES,
                natural_key=type_name,
                fields={
                    "name": type_name,
                    "delimiter": rec.delimiter,
                    "shift_type": rec.shift_type,
                    "terminator": rec.terminator,
                    "greedy": rec.greedy_terminator,
                    "character_map": rec.character_map,
                    "meta": {"layers": rec.layers} if rec.layers is not None else None,
                },
            )
        )
        parent = CrossReference("string_type_id", EntityType.STRING_TYPES, type_name)
        section = f"strings.{type_name}.commands"
        for mnemonic, c_raw in b.entries(rec.commands, section):
            cmd = b.decode(StringCommandRecord, c_raw, section, mnemonic)
            if cmd is None:
                continue
            b.add(
                EntityDraft(
                    EntityType.STRING_COMMANDS,
                    natural_key=mnemonic,
                    fields={
                        "mnemonic": mnemonic,
                        "code": cmd.code,
                        "halt": cmd.halt,
                        "types": cmd.types,
                        "parts": cmd.parts,
                        "delimiter": cmd.delimiter,
                        "meta": cmd.meta,
                    },
                    refs=(parent,),
                )
            )


def _structs(b: _BatchBuilder, tree: Any) -> None:
    for name, raw in b.entries(tree, "structs"):
        rec = b.decode(StructRecord, raw, "structs", name)
        if rec is None:
            continue
        b.add(
            EntityDraft(
                EntityType.STRUCTS,
                natural_key=name,
                fields={
                    "name": name,
                    "types": rec.types,
                    "delimiter": rec.delimiter,
                    "discriminator": rec.discriminator,
                    "parent": rec.parent,
                    "parts": rec.parts,
                    "meta": rec.meta,
                },
            )
        )


# --- Previews ---


def _size(tree: Any) -> int:
    if isinstance(tree, (Mapping, list)):
        return len(tree)
    return 0


def summarize_platform_branch(snapshot: PlatformBranchSnapshot) -> BranchSummary:
    instruction_set = snapshot.instruction_set if isinstance(snapshot.instruction_set, Mapping) else {}
    opcodes = sum(
        1
        for group in instruction_set.values()
        if isinstance(group, Mapping)
        for mode, code in group.items()
        if mode != "meta" and _is_int(code)
    )
    return BranchSummary(
        branch_id=snapshot.id,
        name=snapshot.name,
        version=snapshot.version,
        platform_name=snapshot.platform.name if snapshot.platform else None,
        platform_branch_id=snapshot.id,
        updated_at=snapshot.updated_at or snapshot.created_at,
        counts={
            "addressing_modes": _size(snapshot.addressing_modes),
            "instruction_groups": _size(instruction_set),
            "instruction_codes": opcodes,
            "vectors": _size(snapshot.vectors),
            "platform_types": _size(snapshot.types),
        },
    )


def summarize_game_rom_branch(snapshot: GameRomBranchSnapshot) -> BranchSummary:
    fixups = snapshot.fixups if isinstance(snapshot.fixups, Mapping) else {}
    pb = snapshot.platform_branch
    return BranchSummary(
        branch_id=snapshot.id,
        name=snapshot.name,
        version=snapshot.version,
        platform_name=pb.platform.name if pb and pb.platform else None,
        platform_branch_id=snapshot.resolved_platform_branch_id,
        updated_at=snapshot.updated_at or snapshot.created_at,
        counts={
            "cops": _size(snapshot.coplib),
            "files": _size(snapshot.files),
            "blocks": _size(snapshot.blocks),
            "labels": _size(fixups.get("labels")),
            "game_mnemonics": _size(fixups.get("mnemonics")),
            "overrides": _size(fixups.get("overrides")),
            "rewrites": _size(fixups.get("rewrites")),
            "string_types": _size(_unwrap(snapshot.strings, "strings")),
            "structs": _size(_unwrap(snapshot.structs, "structs")),
        },
    )
