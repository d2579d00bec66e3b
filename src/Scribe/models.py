# models.py

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from Scribe.db import Base

ID_LENGTH = 32


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AuditMixin:
    """Ownership + timestamp columns shared by every imported table."""

    created_by: Mapped[str] = mapped_column(String(64), index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


# --- Platform side ---


class Platform(AuditMixin, Base):
    __tablename__ = "platforms"
    id: Mapped[str] = mapped_column(String(ID_LENGTH), primary_key=True)
    name: Mapped[str] = mapped_column(String(100), index=True)
    is_public: Mapped[bool] = mapped_column(Boolean, default=False)
    # External branch this platform was imported from; matched by the binding matcher
    platform_branch_id: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    meta: Mapped[dict | None] = mapped_column(JSON, nullable=True)


class AddressingMode(AuditMixin, Base):
    __tablename__ = "addressing_modes"
    __table_args__ = (UniqueConstraint("platform_id", "name", name="uq_addressing_mode_name"),)
    id: Mapped[str] = mapped_column(String(ID_LENGTH), primary_key=True)
    platform_id: Mapped[str] = mapped_column(
        ForeignKey("platforms.id", ondelete="CASCADE"), index=True
    )
    name: Mapped[str] = mapped_column(String(100))
    code: Mapped[str | None] = mapped_column(Text, nullable=True)
    size: Mapped[int] = mapped_column(Integer, default=1)
    format: Mapped[str | None] = mapped_column(Text, nullable=True)
    pattern: Mapped[str | None] = mapped_column(Text, nullable=True)
    meta: Mapped[dict | None] = mapped_column(JSON, nullable=True)


class InstructionGroup(AuditMixin, Base):
    __tablename__ = "instruction_groups"
    __table_args__ = (UniqueConstraint("platform_id", "name", name="uq_instruction_group_name"),)
    id: Mapped[str] = mapped_column(String(ID_LENGTH), primary_key=True)
    platform_id: Mapped[str] = mapped_column(
        ForeignKey("platforms.id", ondelete="CASCADE"), index=True
    )
    name: Mapped[str] = mapped_column(String(100))
    meta: Mapped[dict | None] = mapped_column(JSON, nullable=True)


class InstructionCode(AuditMixin, Base):
    __tablename__ = "instruction_codes"
    __table_args__ = (UniqueConstraint("group_id", "mode_id", name="uq_instruction_code_group_mode"),)
    id: Mapped[str] = mapped_column(String(ID_LENGTH), primary_key=True)
    group_id: Mapped[str] = mapped_column(
        ForeignKey("instruction_groups.id", ondelete="CASCADE"), index=True
    )
    mode_id: Mapped[str] = mapped_column(
        ForeignKey("addressing_modes.id", ondelete="CASCADE"), index=True
    )
    code: Mapped[int] = mapped_column(Integer)
    cycles: Mapped[int | None] = mapped_column(Integer, nullable=True)
    meta: Mapped[dict | None] = mapped_column(JSON, nullable=True)


class Vector(AuditMixin, Base):
    __tablename__ = "vectors"
    id: Mapped[str] = mapped_column(String(ID_LENGTH), primary_key=True)
    platform_id: Mapped[str] = mapped_column(
        ForeignKey("platforms.id", ondelete="CASCADE"), index=True
    )
    name: Mapped[str] = mapped_column(String(100))
    address: Mapped[int] = mapped_column(Integer, default=0)
    is_entry_point: Mapped[bool] = mapped_column(Boolean, default=False)
    is_rom_header: Mapped[bool] = mapped_column(Boolean, default=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    meta: Mapped[dict | None] = mapped_column(JSON, nullable=True)


class PlatformType(AuditMixin, Base):
    __tablename__ = "platform_types"
    id: Mapped[str] = mapped_column(String(ID_LENGTH), primary_key=True)
    platform_id: Mapped[str] = mapped_column(
        ForeignKey("platforms.id", ondelete="CASCADE"), index=True
    )
    name: Mapped[str] = mapped_column(String(100))
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    size: Mapped[int] = mapped_column(Integer)
    is_primitive: Mapped[bool] = mapped_column(Boolean, default=False)
    is_pointer: Mapped[bool] = mapped_column(Boolean, default=False)
    is_signed: Mapped[bool] = mapped_column(Boolean, default=False)
    is_relative: Mapped[bool] = mapped_column(Boolean, default=False)
    is_bank: Mapped[bool] = mapped_column(Boolean, default=False)
    is_data: Mapped[bool] = mapped_column(Boolean, default=False)
    is_code: Mapped[bool] = mapped_column(Boolean, default=False)
    pointer_char: Mapped[str | None] = mapped_column(Text, nullable=True)
    meta: Mapped[dict | None] = mapped_column(JSON, nullable=True)


# --- Project (game ROM) side ---


class Project(AuditMixin, Base):
    __tablename__ = "projects"
    id: Mapped[str] = mapped_column(String(ID_LENGTH), primary_key=True)
    name: Mapped[str] = mapped_column(String(100), index=True)
    is_public: Mapped[bool] = mapped_column(Boolean, default=False)
    platform_id: Mapped[str] = mapped_column(ForeignKey("platforms.id"), index=True)
    game_rom_branch_id: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    meta: Mapped[dict | None] = mapped_column(JSON, nullable=True)


class Cop(AuditMixin, Base):
    __tablename__ = "cops"
    __table_args__ = (
        UniqueConstraint("project_id", "code", name="uq_cop_code"),
        UniqueConstraint("project_id", "mnemonic", name="uq_cop_mnemonic"),
    )
    id: Mapped[str] = mapped_column(String(ID_LENGTH), primary_key=True)
    project_id: Mapped[str] = mapped_column(
        ForeignKey("projects.id", ondelete="CASCADE"), index=True
    )
    code: Mapped[int] = mapped_column(Integer)
    mnemonic: Mapped[str] = mapped_column(String(64))
    parts: Mapped[list | None] = mapped_column(JSON, nullable=True)
    halt: Mapped[bool | None] = mapped_column(Boolean, nullable=True)


class File(AuditMixin, Base):
    __tablename__ = "files"
    __table_args__ = (UniqueConstraint("project_id", "name", name="uq_file_name"),)
    id: Mapped[str] = mapped_column(String(ID_LENGTH), primary_key=True)
    project_id: Mapped[str] = mapped_column(
        ForeignKey("projects.id", ondelete="CASCADE"), index=True
    )
    name: Mapped[str] = mapped_column(String(255))
    location: Mapped[int] = mapped_column(Integer, default=0)
    size: Mapped[int] = mapped_column(Integer, default=0)
    type: Mapped[str] = mapped_column(Text, default="Unknown")
    group: Mapped[str | None] = mapped_column(Text, nullable=True)
    scene: Mapped[str | None] = mapped_column(Text, nullable=True)
    compressed: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    upper: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    meta: Mapped[dict | None] = mapped_column(JSON, nullable=True)


class Block(AuditMixin, Base):
    __tablename__ = "blocks"
    __table_args__ = (UniqueConstraint("project_id", "name", name="uq_block_name"),)
    id: Mapped[str] = mapped_column(String(ID_LENGTH), primary_key=True)
    project_id: Mapped[str] = mapped_column(
        ForeignKey("projects.id", ondelete="CASCADE"), index=True
    )
    name: Mapped[str] = mapped_column(String(255))
    movable: Mapped[bool] = mapped_column(Boolean, default=False)
    group: Mapped[str | None] = mapped_column(Text, nullable=True)
    scene: Mapped[str | None] = mapped_column(Text, nullable=True)
    post_process: Mapped[str | None] = mapped_column(Text, nullable=True)
    meta: Mapped[dict | None] = mapped_column(JSON, nullable=True)


class BlockTransform(AuditMixin, Base):
    __tablename__ = "block_transforms"
    __table_args__ = (UniqueConstraint("block_id", "regex", name="uq_block_transform_regex"),)
    id: Mapped[str] = mapped_column(String(ID_LENGTH), primary_key=True)
    block_id: Mapped[str] = mapped_column(
        ForeignKey("blocks.id", ondelete="CASCADE"), index=True
    )
    regex: Mapped[str] = mapped_column(Text)
    replacement: Mapped[str] = mapped_column(Text, default="")


class BlockPart(AuditMixin, Base):
    __tablename__ = "block_parts"
    __table_args__ = (UniqueConstraint("block_id", "name", name="uq_block_part_name"),)
    id: Mapped[str] = mapped_column(String(ID_LENGTH), primary_key=True)
    block_id: Mapped[str] = mapped_column(
        ForeignKey("blocks.id", ondelete="CASCADE"), index=True
    )
    name: Mapped[str] = mapped_column(String(255))
    location: Mapped[int] = mapped_column(Integer, default=0)
    size: Mapped[int] = mapped_column(Integer, default=0)
    type: Mapped[str] = mapped_column(Text, default="Unknown")
    index: Mapped[int] = mapped_column(Integer, default=0)


class Label(AuditMixin, Base):
    __tablename__ = "labels"
    __table_args__ = (UniqueConstraint("project_id", "location", name="uq_label_location"),)
    id: Mapped[str] = mapped_column(String(ID_LENGTH), primary_key=True)
    project_id: Mapped[str] = mapped_column(
        ForeignKey("projects.id", ondelete="CASCADE"), index=True
    )
    location: Mapped[int] = mapped_column(Integer)
    label: Mapped[str] = mapped_column(String(255))


class GameMnemonic(AuditMixin, Base):
    __tablename__ = "game_mnemonics"
    __table_args__ = (
        UniqueConstraint("project_id", "address", name="uq_game_mnemonic_address"),
        UniqueConstraint("project_id", "mnemonic", name="uq_game_mnemonic_mnemonic"),
    )
    id: Mapped[str] = mapped_column(String(ID_LENGTH), primary_key=True)
    project_id: Mapped[str] = mapped_column(
        ForeignKey("projects.id", ondelete="CASCADE"), index=True
    )
    address: Mapped[int] = mapped_column(Integer)
    mnemonic: Mapped[str] = mapped_column(String(64))


class Override(AuditMixin, Base):
    __tablename__ = "overrides"
    __table_args__ = (UniqueConstraint("project_id", "location", name="uq_override_location"),)
    id: Mapped[str] = mapped_column(String(ID_LENGTH), primary_key=True)
    project_id: Mapped[str] = mapped_column(
        ForeignKey("projects.id", ondelete="CASCADE"), index=True
    )
    location: Mapped[int] = mapped_column(Integer)
    register: Mapped[str] = mapped_column(Text, default="A")
    value: Mapped[int] = mapped_column(Integer, default=0)


class Rewrite(AuditMixin, Base):
    __tablename__ = "rewrites"
    __table_args__ = (UniqueConstraint("project_id", "location", name="uq_rewrite_location"),)
    id: Mapped[str] = mapped_column(String(ID_LENGTH), primary_key=True)
    project_id: Mapped[str] = mapped_column(
        ForeignKey("projects.id", ondelete="CASCADE"), index=True
    )
    location: Mapped[int] = mapped_column(Integer)
    value: Mapped[int] = mapped_column(Integer, default=0)


class StringType(AuditMixin, Base):
    __tablename__ = "string_types"
    __table_args__ = (
        UniqueConstraint("project_id", "name", name="uq_string_type_name"),
        UniqueConstraint("project_id", "delimiter", name="uq_string_type_delimiter"),
    )
    id: Mapped[str] = mapped_column(String(ID_LENGTH), primary_key=True)
    project_id: Mapped[str] = mapped_column(
        ForeignKey("projects.id", ondelete="CASCADE"), index=True
    )
    name: Mapped[str] = mapped_column(String(100))
    delimiter: Mapped[str | None] = mapped_column(Text, nullable=True)
    shift_type: Mapped[str | None] = mapped_column(Text, nullable=True)
    terminator: Mapped[int | None] = mapped_column(Integer, nullable=True)
    greedy: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    character_map: Mapped[list | None] = mapped_column(JSON, nullable=True)
    meta: Mapped[dict | None] = mapped_column(JSON, nullable=True)


class StringCommand(AuditMixin, Base):
    __tablename__ = "string_commands"
    __table_args__ = (
        UniqueConstraint("string_type_id", "code", name="uq_string_command_code"),
        UniqueConstraint("string_type_id", "mnemonic", name="uq_string_command_mnemonic"),
    )
    id: Mapped[str] = mapped_column(String(ID_LENGTH), primary_key=True)
    string_type_id: Mapped[str] = mapped_column(
        ForeignKey("string_types.id", ondelete="CASCADE"), index=True
    )
    code: Mapped[int] = mapped_column(Integer)
    mnemonic: Mapped[str] = mapped_column(String(64))
    types: Mapped[list | None] = mapped_column(JSON, nullable=True)
    delimiter: Mapped[int | None] = mapped_column(Integer, nullable=True)
    halt: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    parts: Mapped[list | None] = mapped_column(JSON, nullable=True)
    meta: Mapped[dict | None] = mapped_column(JSON, nullable=True)


class Struct(AuditMixin, Base):
    __tablename__ = "structs"
    __table_args__ = (UniqueConstraint("project_id", "name", name="uq_struct_name"),)
    id: Mapped[str] = mapped_column(String(ID_LENGTH), primary_key=True)
    project_id: Mapped[str] = mapped_column(
        ForeignKey("projects.id", ondelete="CASCADE"), index=True
    )
    name: Mapped[str] = mapped_column(String(100))
    types: Mapped[list | None] = mapped_column(JSON, nullable=True)
    delimiter: Mapped[int | None] = mapped_column(Integer, nullable=True)
    discriminator: Mapped[int | None] = mapped_column(Integer, nullable=True)
    parent: Mapped[str | None] = mapped_column(Text, nullable=True)
    parts: Mapped[list | None] = mapped_column(JSON, nullable=True)
    meta: Mapped[dict | None] = mapped_column(JSON, nullable=True)
