from pydantic import SecretStr

from Scribe.config import load_settings
from Scribe.logging import redact_settings


def test_defaults_without_config_file(tmp_path, monkeypatch):
    # Ensure no config.toml in temp dir so defaults apply
    monkeypatch.chdir(tmp_path)
    s = load_settings()
    assert s.branch_fetch_timeout_seconds == 30.0
    assert s.store_write_timeout_seconds is None
    assert s.importer_dependent_phase_policy == "attempt"
    assert s.importer_concurrent_independent_phases is False
    assert s.importer_reject_duplicate_names is True
    assert s.importer_root_name_max_length == 100


def test_toml_tables_map_to_fields(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    (tmp_path / "config.toml").write_text(
        """
[app]
env = "test"

[external]
api_url = "https://branches.example"
fetch_timeout_seconds = 12

[importer]
dependent_phase_policy = "skip"
concurrent_independent_phases = true
write_timeout_seconds = 4
root_name_max_length = 40

[logging]
level = "DEBUG"
console = false
to_file = true
""".lstrip()
    )
    s = load_settings()
    assert s.env == "test"
    assert s.external_api_url == "https://branches.example"
    assert s.branch_fetch_timeout_seconds == 12.0
    assert s.importer_dependent_phase_policy == "skip"
    assert s.importer_concurrent_independent_phases is True
    assert s.store_write_timeout_seconds == 4.0
    assert s.importer_root_name_max_length == 40
    # Boolean handler switches map onto the overall level
    assert s.logging_console == "NONE"
    assert s.logging_file == "DEBUG"


def test_env_overrides_toml(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    (tmp_path / "config.toml").write_text('[importer]\ndependent_phase_policy = "skip"\n')
    monkeypatch.setenv("IMPORTER_DEPENDENT_PHASE_POLICY", "attempt")
    assert load_settings().importer_dependent_phase_policy == "attempt"


def test_redaction_hides_api_key(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("EXTERNAL_API_KEY", "secret-value")
    s = load_settings()
    assert isinstance(s.external_api_key, SecretStr)
    assert redact_settings(s)["external_api_key"] == "[REDACTED]"
