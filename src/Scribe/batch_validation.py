"""Structural and uniqueness checks over a ``NormalizedBatch``.

Runs before any write. Uniqueness is checked within the batch only, mirroring
the unique constraints declared in ``models.py``; the store is never queried
here. A non-empty result halts the pipeline before the root entity exists.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from Scribe.drafts import EntityDraft, EntityType, NormalizedBatch, RootDraft
from Scribe.importer_context import ValidationIssue

DEFAULT_ROOT_NAME_MAX_LENGTH = 100

CODE_BEARING_TYPES = frozenset(
    {EntityType.COPS, EntityType.STRING_COMMANDS, EntityType.INSTRUCTION_CODES}
)


@dataclass(frozen=True)
class UniqueRule:
    fields: tuple[str, ...]
    label: str

    def key_for(self, draft: EntityDraft) -> tuple[Any, ...] | None:
        values = tuple(draft.value(f) for f in self.fields)
        # NULLs never collide, same as SQL unique constraints
        if any(v is None for v in values):
            return None
        return values


# Scoped rules include the parent reference field; it resolves to the parent's
# natural key, so "block_id" scopes by block name.
UNIQUE_RULES: dict[EntityType, tuple[UniqueRule, ...]] = {
    EntityType.ADDRESSING_MODES: (UniqueRule(("name",), "name"),),
    EntityType.INSTRUCTION_GROUPS: (UniqueRule(("name",), "name"),),
    EntityType.INSTRUCTION_CODES: (
        UniqueRule(("group_id", "mode_id"), "group/mode"),
        UniqueRule(("code", "group_id"), "code+mnemonic"),
    ),
    EntityType.COPS: (
        UniqueRule(("code",), "code"),
        UniqueRule(("mnemonic",), "mnemonic"),
    ),
    EntityType.FILES: (UniqueRule(("name",), "name"),),
    EntityType.BLOCKS: (UniqueRule(("name",), "name"),),
    EntityType.BLOCK_TRANSFORMS: (UniqueRule(("block_id", "regex"), "regex"),),
    EntityType.BLOCK_PARTS: (UniqueRule(("block_id", "name"), "name"),),
    EntityType.LABELS: (UniqueRule(("location",), "location"),),
    EntityType.GAME_MNEMONICS: (
        UniqueRule(("address",), "address"),
        UniqueRule(("mnemonic",), "mnemonic"),
    ),
    EntityType.OVERRIDES: (UniqueRule(("location",), "location"),),
    EntityType.REWRITES: (UniqueRule(("location",), "location"),),
    EntityType.STRING_TYPES: (
        UniqueRule(("name",), "name"),
        UniqueRule(("delimiter",), "delimiter"),
    ),
    EntityType.STRING_COMMANDS: (
        UniqueRule(("string_type_id", "code"), "code"),
        UniqueRule(("string_type_id", "mnemonic"), "mnemonic"),
        UniqueRule(("string_type_id", "code", "mnemonic"), "code+mnemonic"),
    ),
    EntityType.STRUCTS: (UniqueRule(("name",), "name"),),
}

REQUIRED_TEXT: dict[EntityType, tuple[str, ...]] = {
    EntityType.ADDRESSING_MODES: ("name",),
    EntityType.INSTRUCTION_GROUPS: ("name",),
    EntityType.VECTORS: ("name",),
    EntityType.PLATFORM_TYPES: ("name",),
    EntityType.COPS: ("mnemonic",),
    EntityType.FILES: ("name",),
    EntityType.BLOCKS: ("name",),
    EntityType.BLOCK_TRANSFORMS: ("regex",),
    EntityType.BLOCK_PARTS: ("name",),
    EntityType.LABELS: ("label",),
    EntityType.GAME_MNEMONICS: ("mnemonic",),
    EntityType.STRING_TYPES: ("name",),
    EntityType.STRING_COMMANDS: ("mnemonic",),
    EntityType.STRUCTS: ("name",),
}

# Column widths from models.py
MAX_LENGTH: dict[tuple[EntityType, str], int] = {
    (EntityType.ADDRESSING_MODES, "name"): 100,
    (EntityType.INSTRUCTION_GROUPS, "name"): 100,
    (EntityType.VECTORS, "name"): 100,
    (EntityType.PLATFORM_TYPES, "name"): 100,
    (EntityType.COPS, "mnemonic"): 64,
    (EntityType.FILES, "name"): 255,
    (EntityType.BLOCKS, "name"): 255,
    (EntityType.BLOCK_PARTS, "name"): 255,
    (EntityType.LABELS, "label"): 255,
    (EntityType.GAME_MNEMONICS, "mnemonic"): 64,
    (EntityType.STRING_TYPES, "name"): 100,
    (EntityType.STRING_COMMANDS, "mnemonic"): 64,
    (EntityType.STRUCTS, "name"): 100,
}


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _upper_first(text: str) -> str:
    return text[:1].upper() + text[1:]


def _fmt(values: tuple[Any, ...]) -> str:
    return values[0] if len(values) == 1 else "(" + ", ".join(str(v) for v in values) + ")"


def validate_root(
    root: RootDraft, *, max_name_length: int = DEFAULT_ROOT_NAME_MAX_LENGTH
) -> list[ValidationIssue]:
    issues: list[ValidationIssue] = []
    kind = root.entity_type.value
    noun = _upper_first(root.entity_type.display_name)

    name = root.name.strip() if isinstance(root.name, str) else ""
    if not name:
        issues.append(
            ValidationIssue(entity_type=kind, field="name", message=f"{noun} name is required")
        )
    elif len(name) > max_name_length:
        issues.append(
            ValidationIssue(
                entity_type=kind,
                field="name",
                message=f"{noun} name must be {max_name_length} characters or less",
            )
        )
    if not isinstance(root.is_public, bool):
        issues.append(
            ValidationIssue(
                entity_type=kind, field="is_public", message="isPublic must be a boolean"
            )
        )
    if not root.created_by:
        issues.append(
            ValidationIssue(entity_type=kind, field="created_by", message="createdBy is required")
        )
    if root.entity_type is EntityType.PROJECTS and not root.fields.get("platform_id"):
        issues.append(
            ValidationIssue(
                entity_type=kind, field="platform_id", message="Project requires a platform id"
            )
        )
    return issues


def _validate_required(entity_type: EntityType, drafts: list[EntityDraft]) -> list[ValidationIssue]:
    issues: list[ValidationIssue] = []
    noun = entity_type.display_name
    for i, draft in enumerate(drafts):
        for name in REQUIRED_TEXT.get(entity_type, ()):
            value = draft.fields.get(name)
            if not isinstance(value, str) or not value.strip():
                issues.append(
                    ValidationIssue(
                        entity_type=entity_type.value,
                        index=i,
                        field=name,
                        message=f"{_upper_first(noun)} {name} is required at index {i}",
                    )
                )
                continue
            limit = MAX_LENGTH.get((entity_type, name))
            if limit is not None and len(value) > limit:
                issues.append(
                    ValidationIssue(
                        entity_type=entity_type.value,
                        index=i,
                        field=name,
                        message=f"{_upper_first(noun)} {name} must be {limit} characters or less at index {i}",
                    )
                )
        if entity_type in CODE_BEARING_TYPES and not _is_int(draft.fields.get("code")):
            issues.append(
                ValidationIssue(
                    entity_type=entity_type.value,
                    index=i,
                    field="code",
                    message=f"{_upper_first(noun)} code must be a number at index {i}",
                )
            )
        for ref in draft.refs:
            if not ref.parent_key:
                issues.append(
                    ValidationIssue(
                        entity_type=entity_type.value,
                        index=i,
                        field=ref.field,
                        message=f"{_upper_first(noun)} has an empty {ref.parent_type.display_name} reference at index {i}",
                    )
                )
    return issues


def _validate_unique(entity_type: EntityType, drafts: list[EntityDraft]) -> list[ValidationIssue]:
    issues: list[ValidationIssue] = []
    noun = entity_type.display_name
    for rule in UNIQUE_RULES.get(entity_type, ()):
        seen: set[tuple[Any, ...]] = set()
        for i, draft in enumerate(drafts):
            key = rule.key_for(draft)
            if key is None:
                continue
            if key in seen:
                issues.append(
                    ValidationIssue(
                        entity_type=entity_type.value,
                        index=i,
                        field=",".join(rule.fields),
                        message=f"Duplicate {noun} {rule.label} {_fmt(key)} at index {i}",
                    )
                )
            else:
                seen.add(key)
    return issues


Check = Callable[[EntityType, list[EntityDraft]], list[ValidationIssue]]
_DRAFT_CHECKS: tuple[Check, ...] = (_validate_required, _validate_unique)


def validate_batch(
    batch: NormalizedBatch, *, root_name_max_length: int = DEFAULT_ROOT_NAME_MAX_LENGTH
) -> list[ValidationIssue]:
    """Return every issue found in ``batch``; an empty list means it may be written."""
    issues = validate_root(batch.root, max_name_length=root_name_max_length)
    for entity_type, drafts in batch.drafts.items():
        for check in _DRAFT_CHECKS:
            issues.extend(check(entity_type, drafts))
    return issues
