"""branch import schema: platforms, projects and their dependents

Revision ID: 4c1d9e2f7a3b
Revises:
Create Date: 2026-10-16 00:00:00.000000
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = "4c1d9e2f7a3b"
down_revision = None
branch_labels = None
depends_on = None

ID = sa.String(length=32)


def _id() -> sa.Column:
    return sa.Column("id", ID, primary_key=True)


def _fk(name: str, target: str, *, nullable: bool = False, cascade: bool = True) -> sa.Column:
    return sa.Column(
        name,
        ID,
        sa.ForeignKey(target, ondelete="CASCADE" if cascade else None),
        nullable=nullable,
        index=True,
    )


def _audit() -> list[sa.Column]:
    return [
        sa.Column("created_by", sa.String(length=64), nullable=False, index=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
    ]


def upgrade() -> None:
    op.create_table(
        "platforms",
        _id(),
        sa.Column("name", sa.String(length=100), nullable=False, index=True),
        sa.Column("is_public", sa.Boolean(), nullable=False),
        sa.Column("platform_branch_id", sa.String(length=64), nullable=True, index=True),
        sa.Column("meta", sa.JSON(), nullable=True),
        *_audit(),
    )
    op.create_table(
        "addressing_modes",
        _id(),
        _fk("platform_id", "platforms.id"),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("code", sa.Text(), nullable=True),
        sa.Column("size", sa.Integer(), nullable=False),
        sa.Column("format", sa.Text(), nullable=True),
        sa.Column("pattern", sa.Text(), nullable=True),
        sa.Column("meta", sa.JSON(), nullable=True),
        *_audit(),
        sa.UniqueConstraint("platform_id", "name", name="uq_addressing_mode_name"),
    )
    op.create_table(
        "instruction_groups",
        _id(),
        _fk("platform_id", "platforms.id"),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("meta", sa.JSON(), nullable=True),
        *_audit(),
        sa.UniqueConstraint("platform_id", "name", name="uq_instruction_group_name"),
    )
    op.create_table(
        "instruction_codes",
        _id(),
        _fk("group_id", "instruction_groups.id"),
        _fk("mode_id", "addressing_modes.id"),
        sa.Column("code", sa.Integer(), nullable=False),
        sa.Column("cycles", sa.Integer(), nullable=True),
        sa.Column("meta", sa.JSON(), nullable=True),
        *_audit(),
        sa.UniqueConstraint("group_id", "mode_id", name="uq_instruction_code_group_mode"),
    )
    op.create_table(
        "vectors",
        _id(),
        _fk("platform_id", "platforms.id"),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("address", sa.Integer(), nullable=False),
        sa.Column("is_entry_point", sa.Boolean(), nullable=False),
        sa.Column("is_rom_header", sa.Boolean(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("meta", sa.JSON(), nullable=True),
        *_audit(),
    )
    op.create_table(
        "platform_types",
        _id(),
        _fk("platform_id", "platforms.id"),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("size", sa.Integer(), nullable=False),
        *[
            sa.Column(flag, sa.Boolean(), nullable=False)
            for flag in (
                "is_primitive",
                "is_pointer",
                "is_signed",
                "is_relative",
                "is_bank",
                "is_data",
                "is_code",
            )
        ],
        sa.Column("pointer_char", sa.Text(), nullable=True),
        sa.Column("meta", sa.JSON(), nullable=True),
        *_audit(),
    )

    op.create_table(
        "projects",
        _id(),
        sa.Column("name", sa.String(length=100), nullable=False, index=True),
        sa.Column("is_public", sa.Boolean(), nullable=False),
        _fk("platform_id", "platforms.id", cascade=False),
        sa.Column("game_rom_branch_id", sa.String(length=64), nullable=True, index=True),
        sa.Column("meta", sa.JSON(), nullable=True),
        *_audit(),
    )
    op.create_table(
        "cops",
        _id(),
        _fk("project_id", "projects.id"),
        sa.Column("code", sa.Integer(), nullable=False),
        sa.Column("mnemonic", sa.String(length=64), nullable=False),
        sa.Column("parts", sa.JSON(), nullable=True),
        sa.Column("halt", sa.Boolean(), nullable=True),
        *_audit(),
        sa.UniqueConstraint("project_id", "code", name="uq_cop_code"),
        sa.UniqueConstraint("project_id", "mnemonic", name="uq_cop_mnemonic"),
    )
    op.create_table(
        "files",
        _id(),
        _fk("project_id", "projects.id"),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("location", sa.Integer(), nullable=False),
        sa.Column("size", sa.Integer(), nullable=False),
        sa.Column("type", sa.Text(), nullable=False),
        sa.Column("group", sa.Text(), nullable=True),
        sa.Column("scene", sa.Text(), nullable=True),
        sa.Column("compressed", sa.Boolean(), nullable=True),
        sa.Column("upper", sa.Boolean(), nullable=True),
        sa.Column("meta", sa.JSON(), nullable=True),
        *_audit(),
        sa.UniqueConstraint("project_id", "name", name="uq_file_name"),
    )
    op.create_table(
        "blocks",
        _id(),
        _fk("project_id", "projects.id"),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("movable", sa.Boolean(), nullable=False),
        sa.Column("group", sa.Text(), nullable=True),
        sa.Column("scene", sa.Text(), nullable=True),
        sa.Column("post_process", sa.Text(), nullable=True),
        sa.Column("meta", sa.JSON(), nullable=True),
        *_audit(),
        sa.UniqueConstraint("project_id", "name", name="uq_block_name"),
    )
    op.create_table(
        "block_transforms",
        _id(),
        _fk("block_id", "blocks.id"),
        sa.Column("regex", sa.Text(), nullable=False),
        sa.Column("replacement", sa.Text(), nullable=False),
        *_audit(),
        sa.UniqueConstraint("block_id", "regex", name="uq_block_transform_regex"),
    )
    op.create_table(
        "block_parts",
        _id(),
        _fk("block_id", "blocks.id"),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("location", sa.Integer(), nullable=False),
        sa.Column("size", sa.Integer(), nullable=False),
        sa.Column("type", sa.Text(), nullable=False),
        sa.Column("index", sa.Integer(), nullable=False),
        *_audit(),
        sa.UniqueConstraint("block_id", "name", name="uq_block_part_name"),
    )
    op.create_table(
        "labels",
        _id(),
        _fk("project_id", "projects.id"),
        sa.Column("location", sa.Integer(), nullable=False),
        sa.Column("label", sa.String(length=255), nullable=False),
        *_audit(),
        sa.UniqueConstraint("project_id", "location", name="uq_label_location"),
    )
    op.create_table(
        "game_mnemonics",
        _id(),
        _fk("project_id", "projects.id"),
        sa.Column("address", sa.Integer(), nullable=False),
        sa.Column("mnemonic", sa.String(length=64), nullable=False),
        *_audit(),
        sa.UniqueConstraint("project_id", "address", name="uq_game_mnemonic_address"),
        sa.UniqueConstraint("project_id", "mnemonic", name="uq_game_mnemonic_mnemonic"),
    )
    op.create_table(
        "overrides",
        _id(),
        _fk("project_id", "projects.id"),
        sa.Column("location", sa.Integer(), nullable=False),
        sa.Column("register", sa.Text(), nullable=False),
        sa.Column("value", sa.Integer(), nullable=False),
        *_audit(),
        sa.UniqueConstraint("project_id", "location", name="uq_override_location"),
    )
    op.create_table(
        "rewrites",
        _id(),
        _fk("project_id", "projects.id"),
        sa.Column("location", sa.Integer(), nullable=False),
        sa.Column("value", sa.Integer(), nullable=False),
        *_audit(),
        sa.UniqueConstraint("project_id", "location", name="uq_rewrite_location"),
    )
    op.create_table(
        "string_types",
        _id(),
        _fk("project_id", "projects.id"),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("delimiter", sa.Text(), nullable=True),
        sa.Column("shift_type", sa.Text(), nullable=True),
        sa.Column("terminator", sa.Integer(), nullable=True),
        sa.Column("greedy", sa.Boolean(), nullable=True),
        sa.Column("character_map", sa.JSON(), nullable=True),
        sa.Column("meta", sa.JSON(), nullable=True),
        *_audit(),
        sa.UniqueConstraint("project_id", "name", name="uq_string_type_name"),
        sa.UniqueConstraint("project_id", "delimiter", name="uq_string_type_delimiter"),
    )
    op.create_table(
        "string_commands",
        _id(),
        _fk("string_type_id", "string_types.id"),
        sa.Column("code", sa.Integer(), nullable=False),
        sa.Column("mnemonic", sa.String(length=64), nullable=False),
        sa.Column("types", sa.JSON(), nullable=True),
        sa.Column("delimiter", sa.Integer(), nullable=True),
        sa.Column("halt", sa.Boolean(), nullable=True),
        sa.Column("parts", sa.JSON(), nullable=True),
        sa.Column("meta", sa.JSON(), nullable=True),
        *_audit(),
        sa.UniqueConstraint("string_type_id", "code", name="uq_string_command_code"),
        sa.UniqueConstraint("string_type_id", "mnemonic", name="uq_string_command_mnemonic"),
    )
    op.create_table(
        "structs",
        _id(),
        _fk("project_id", "projects.id"),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("types", sa.JSON(), nullable=True),
        sa.Column("delimiter", sa.Integer(), nullable=True),
        sa.Column("discriminator", sa.Integer(), nullable=True),
        sa.Column("parent", sa.Text(), nullable=True),
        sa.Column("parts", sa.JSON(), nullable=True),
        sa.Column("meta", sa.JSON(), nullable=True),
        *_audit(),
        sa.UniqueConstraint("project_id", "name", name="uq_struct_name"),
    )


def downgrade() -> None:
    for table in (
        "structs",
        "string_commands",
        "string_types",
        "rewrites",
        "overrides",
        "game_mnemonics",
        "labels",
        "block_parts",
        "block_transforms",
        "blocks",
        "files",
        "cops",
        "projects",
        "platform_types",
        "vectors",
        "instruction_codes",
        "instruction_groups",
        "addressing_modes",
        "platforms",
    ):
        op.drop_table(table)
