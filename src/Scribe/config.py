"""Settings loader for Scribe."""

from pathlib import Path
from typing import Any, Literal

import tomllib
from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


def _toml_settings_source() -> dict[str, Any]:
    """Load settings from config.toml with keys mapped to Settings fields.

    This source has LOWER priority than env/.env so those can override TOML.
    """
    cfg_path = Path("config.toml")
    if not cfg_path.exists():
        return {}
    with cfg_path.open("rb") as f:
        t = tomllib.load(f)

    external_cfg = t.get("external", {}) or {}
    importer_cfg = t.get("importer", {}) or {}
    log_cfg = t.get("logging", {}) or {}

    out: dict[str, Any] = {
        "env": t.get("app", {}).get("env", "dev"),
        "external_api_url": external_cfg.get("api_url"),
        "branch_fetch_timeout_seconds": float(external_cfg.get("fetch_timeout_seconds", 30.0)),
        "importer_root_name_max_length": int(importer_cfg.get("root_name_max_length", 100)),
        "importer_reject_duplicate_names": bool(
            importer_cfg.get("reject_duplicate_names", True)
        ),
        "importer_dependent_phase_policy": importer_cfg.get("dependent_phase_policy", "attempt"),
        "importer_concurrent_independent_phases": bool(
            importer_cfg.get("concurrent_independent_phases", False)
        ),
        # Logging config
        "logging_enabled": log_cfg.get("enabled", True),
        "logging_level": log_cfg.get("level", "INFO"),
        "logging_file_path": log_cfg.get("file_path", "logs/scribe.jsonl"),
        "logging_max_bytes": log_cfg.get("max_bytes", 5_000_000),
        "logging_backup_count": log_cfg.get("backup_count", 5),
    }
    # Omitted rather than None so the field default (no timeout) applies
    if importer_cfg.get("write_timeout_seconds") is not None:
        out["store_write_timeout_seconds"] = float(importer_cfg["write_timeout_seconds"])

    # Per-handler levels: strings INFO|DEBUG|WARNING|ERROR|CRITICAL|NONE
    # Backward-compatible: if console/to_file are bools, map True->level, False->NONE
    console_val = log_cfg.get("console", None)
    file_val = log_cfg.get("to_file", None)
    overall = out["logging_level"]

    def _norm_level(v, default):
        if isinstance(v, str):
            return v.upper()
        if isinstance(v, bool):
            return default if v else "NONE"
        return default

    out["logging_console"] = _norm_level(console_val, overall)
    out["logging_file"] = _norm_level(file_val, overall)
    return out


class Settings(BaseSettings):
    env: str = Field(default="dev")
    database_url: str = Field(default="sqlite+aiosqlite:///./scribe.sqlite3")

    # --- External branch service ---
    external_api_url: str | None = None
    external_api_key: SecretStr | None = Field(
        default=None, description="Anon/service key sent as apikey + bearer token."
    )
    branch_fetch_timeout_seconds: float = 30.0

    # --- Importer behavior ---
    store_write_timeout_seconds: float | None = Field(
        default=None, description="Per-phase insert timeout; None defers to the store client."
    )
    importer_root_name_max_length: int = 100
    importer_reject_duplicate_names: bool = True
    importer_dependent_phase_policy: Literal["attempt", "skip"] = Field(
        default="attempt",
        description="'attempt' runs dependent phases after a parent failure; 'skip' does not.",
    )
    importer_concurrent_independent_phases: bool = False

    # --- Logging ---
    logging_enabled: bool = True
    logging_level: str = "INFO"
    logging_console: str = "INFO"
    logging_file: str = "NONE"
    logging_file_path: str = "logs/scribe.jsonl"
    logging_max_bytes: int = 5_000_000
    logging_backup_count: int = 5

    model_config = SettingsConfigDict(
        env_prefix="",
        case_sensitive=False,
        env_file=".env",
        extra="ignore",
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls,
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        # Precedence (highest to lowest):
        # 1) init_settings (explicit overrides in code/tests)
        # 2) dotenv (.env in cwd)
        # 3) env_settings (OS env)
        # 4) TOML (repo config.toml)
        # 5) file_secret_settings
        return (
            init_settings,
            dotenv_settings,
            env_settings,
            _toml_settings_source,
            file_secret_settings,
        )


def load_settings() -> Settings:
    return Settings()
