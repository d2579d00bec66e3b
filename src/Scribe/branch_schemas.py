"""Pydantic models for external branch snapshots.

Two layers:

* Snapshot models (``PlatformBranchSnapshot``, ``GameRomBranchSnapshot``)
  type the top-level metadata returned by the branch service. The nested
  sub-trees stay loosely typed (``Any``) so one malformed section never
  rejects the whole snapshot.
* Record models decode one entry of a sub-tree at a time. The transformer
  skips any entry that fails its record model.

Field names are snake_case; the wire format is camelCase (``to_camel``).
"""

from __future__ import annotations

from datetime import datetime
from typing import Annotated, Any

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, StrictInt
from pydantic.alias_generators import to_camel


def coerce_int(value: Any) -> Any:
    """Accept ints and numeric strings ("0x8000", "1024"); reject bools."""
    if isinstance(value, bool):
        raise ValueError("boolean is not a numeric value")
    if isinstance(value, str):
        try:
            return int(value.strip(), 0)
        except ValueError as exc:
            raise ValueError(f"not a numeric value: {value!r}") from exc
    return value


def _stringify(value: Any) -> Any:
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    return value


Address = Annotated[int, BeforeValidator(coerce_int)]
Text = Annotated[str, BeforeValidator(_stringify)]


class _WireModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
        frozen=True,
    )


# --- Snapshots ---


class PlatformRef(_WireModel):
    id: str
    name: str | None = None
    meta: Any = None


class PlatformBranchSnapshot(_WireModel):
    id: str
    name: str | None = None
    version: int | str | None = None
    platform_id: str | None = None
    is_active: bool | None = None
    addressing_modes: Any = None
    instruction_set: Any = None
    vectors: Any = None
    types: Any = None
    platform: PlatformRef | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


class GameRef(_WireModel):
    id: str | None = None
    name: str | None = None


class RegionRef(_WireModel):
    id: str | None = None
    name: str | None = None
    meta: Any = None
    platform_id: str | None = None


class GameRomRef(_WireModel):
    id: str | None = None
    crc: int | str | None = None
    meta: Any = None
    game_id: str | None = None
    region_id: str | None = None
    game: GameRef | None = None
    region: RegionRef | None = None


class PlatformBranchRef(_WireModel):
    id: str | None = None
    name: str | None = None
    version: int | str | None = None
    platform_id: str | None = None
    platform: PlatformRef | None = None


class GameRomBranchSnapshot(_WireModel):
    id: str
    name: str | None = None
    version: int | str | None = None
    game_rom_id: str | None = None
    platform_branch_id: str | None = None
    is_active: bool | None = None
    coplib: Any = None
    files: Any = None
    blocks: Any = None
    fixups: Any = None
    strings: Any = None
    structs: Any = None
    config: Any = None
    game_rom: GameRomRef | None = None
    platform_branch: PlatformBranchRef | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def resolved_platform_branch_id(self) -> str | None:
        if self.platform_branch_id:
            return self.platform_branch_id
        return self.platform_branch.id if self.platform_branch else None


class BranchSummary(BaseModel):
    """Read-only preview of a branch before importing it."""

    branch_id: str
    name: str | None = None
    version: int | str | None = None
    platform_name: str | None = None
    platform_branch_id: str | None = None
    updated_at: datetime | None = None
    counts: dict[str, int] = {}


# --- Records (one entry of a sub-tree) ---


class _Record(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class AddressingModeRecord(_Record):
    shorthand: Text | None = None
    size: int | None = None
    format_string: str | None = None
    parse_regex: str | None = None
    meta: dict[str, Any] | None = None


class VectorRecord(_Record):
    address: Address | None = None
    # Older snapshots store the vector address under "id"
    id: Address | None = None
    entry: bool | None = None
    header: bool | None = None
    description: str | None = None
    meta: Any = None


class PlatformTypeRecord(_Record):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    size: int
    description: str | None = None
    is_primitive: bool = False
    is_pointer: bool = False
    is_signed: bool = False
    is_relative: bool = False
    is_bank: bool = False
    is_data: bool = False
    is_code: bool = False
    pointer_char: str | None = None
    meta: dict[str, Any] | None = None


class CopRecord(_Record):
    code: StrictInt | None = None
    parts: list[Any] | None = None
    halt: bool | None = None


class FileRecord(_Record):
    location: Address = 0
    size: int = 0
    type: Text | None = None
    group: Text | None = None
    scene: Text | None = None
    compressed: bool | None = None
    upper: bool | None = None
    meta: dict[str, Any] | None = None


class BlockRecord(_Record):
    movable: bool = False
    group: Text | None = None
    scene: Text | None = None
    post_process: str | None = None
    meta: dict[str, Any] | None = None
    transforms: Any = None
    parts: Any = None


class BlockTransformRecord(_Record):
    regex: str
    replacement: str = ""


class BlockPartRecord(_Record):
    location: Address = 0
    size: int = 0
    type: Text | None = None
    order: int = 0


class LabelRecord(_Record):
    label: str
    location: Address


class OverrideRecord(_Record):
    location: Address
    register_name: str = Field("A", alias="register")
    value: Address = 0


class RewriteRecord(_Record):
    location: Address
    value: Address = 0


class StringTypeRecord(_Record):
    delimiter: str | None = None
    shift_type: str | None = None
    terminator: Address | None = None
    greedy_terminator: bool | None = None
    character_map: list[Any] | None = None
    layers: Any = None
    commands: Any = None


class StringCommandRecord(_Record):
    code: StrictInt | None = None
    halt: bool | None = None
    types: list[Any] | None = None
    parts: list[Any] | None = None
    delimiter: int | None = None
    meta: dict[str, Any] | None = None


class StructRecord(_Record):
    types: list[Any] | None = None
    delimiter: Address | None = None
    discriminator: Address | None = None
    parent: str | None = None
    parts: list[Any] | None = None
    meta: dict[str, Any] | None = None
