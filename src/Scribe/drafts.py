"""In-memory entity drafts produced by the transformer.

Drafts are flat rows that have not been persisted yet. Instead of surrogate
ids they carry natural keys (a block's name, a string type's name, an
instruction group's mnemonic) and ``CrossReference`` entries pointing at
their parent's natural key. The loader rewrites those references into real
foreign keys once the parent phase has been inserted.
"""

from __future__ import annotations

import enum
from collections.abc import Iterator
from dataclasses import dataclass, field
from typing import Any


class EntityType(str, enum.Enum):
    # Roots
    PLATFORMS = "platforms"
    PROJECTS = "projects"
    # Platform dependents
    ADDRESSING_MODES = "addressing_modes"
    INSTRUCTION_GROUPS = "instruction_groups"
    INSTRUCTION_CODES = "instruction_codes"
    VECTORS = "vectors"
    PLATFORM_TYPES = "platform_types"
    # Project dependents
    COPS = "cops"
    FILES = "files"
    BLOCKS = "blocks"
    BLOCK_TRANSFORMS = "block_transforms"
    BLOCK_PARTS = "block_parts"
    LABELS = "labels"
    GAME_MNEMONICS = "game_mnemonics"
    OVERRIDES = "overrides"
    REWRITES = "rewrites"
    STRING_TYPES = "string_types"
    STRING_COMMANDS = "string_commands"
    STRUCTS = "structs"

    @property
    def display_name(self) -> str:
        return _DISPLAY_NAMES.get(self, self.value.replace("_", " "))


_DISPLAY_NAMES: dict[EntityType, str] = {
    EntityType.PLATFORMS: "platform",
    EntityType.PROJECTS: "project",
    EntityType.ADDRESSING_MODES: "addressing mode",
    EntityType.INSTRUCTION_GROUPS: "instruction group",
    EntityType.INSTRUCTION_CODES: "instruction code",
    EntityType.VECTORS: "vector",
    EntityType.PLATFORM_TYPES: "platform type",
    EntityType.COPS: "COP",
    EntityType.FILES: "file",
    EntityType.BLOCKS: "block",
    EntityType.BLOCK_TRANSFORMS: "block transform",
    EntityType.BLOCK_PARTS: "block part",
    EntityType.LABELS: "label",
    EntityType.GAME_MNEMONICS: "mnemonic",
    EntityType.OVERRIDES: "override",
    EntityType.REWRITES: "rewrite",
    EntityType.STRING_TYPES: "string type",
    EntityType.STRING_COMMANDS: "string command",
    EntityType.STRUCTS: "struct",
}


@dataclass(frozen=True)
class CrossReference:
    """Pending link from a child draft to its parent's natural key.

    ``field`` is the foreign-key column on the child row that receives the
    parent's surrogate id once it is known.
    """

    field: str
    parent_type: EntityType
    parent_key: str


@dataclass(frozen=True)
class EntityDraft:
    entity_type: EntityType
    fields: dict[str, Any]
    natural_key: str | None = None
    refs: tuple[CrossReference, ...] = ()

    def ref_key(self, parent_type: EntityType) -> str | None:
        for ref in self.refs:
            if ref.parent_type is parent_type:
                return ref.parent_key
        return None

    def value(self, name: str) -> Any:
        """Return a row field, or the parent natural key for a reference field."""
        if name in self.fields:
            return self.fields[name]
        for ref in self.refs:
            if ref.field == name:
                return ref.parent_key
        return None


@dataclass(frozen=True)
class RootDraft:
    entity_type: EntityType
    name: str
    created_by: str
    is_public: bool = False
    # Extra root columns, e.g. platform_branch_id or (platform_id, game_rom_branch_id)
    fields: dict[str, Any] = field(default_factory=dict)
    meta: dict[str, Any] = field(default_factory=dict)

    def to_row(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "is_public": self.is_public,
            "meta": self.meta,
            "created_by": self.created_by,
            **self.fields,
        }


@dataclass(frozen=True)
class SkippedRecord:
    section: str
    key: str | None
    reason: str


@dataclass
class NormalizedBatch:
    root: RootDraft
    drafts: dict[EntityType, list[EntityDraft]] = field(default_factory=dict)
    skipped: list[SkippedRecord] = field(default_factory=list)

    def drafts_for(self, entity_type: EntityType) -> list[EntityDraft]:
        return self.drafts.get(entity_type, [])

    def counts(self) -> dict[str, int]:
        return {t.value: len(items) for t, items in self.drafts.items()}

    def iter_drafts(self) -> Iterator[EntityDraft]:
        for items in self.drafts.values():
            yield from items

    def cross_references(self) -> set[tuple[EntityType, CrossReference]]:
        """Every (child type, reference) pair that the loader must resolve."""
        return {(d.entity_type, ref) for d in self.iter_drafts() for ref in d.refs}
