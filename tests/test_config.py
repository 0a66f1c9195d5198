"""Tests for YAML config loading, secrets merging and validation."""

from __future__ import annotations

import pytest

from config import CONFIG_ENV_VAR, ConfigError, WrapperConfig, resolve_config_path
from models.settings import NotifyPolicy


def test_missing_config_file(tmp_path):
    with pytest.raises(ConfigError, match="not found"):
        WrapperConfig(str(tmp_path / "absent.yaml"))


def test_empty_config_uses_defaults(tmp_path):
    path = tmp_path / "kopia-wrapper.yaml"
    path.write_text("")
    settings = WrapperConfig(str(path)).settings

    assert settings.kopia.executable == "kopia"
    assert settings.kopia.snapshot_args == ["--force-enable-actions", "--no-progress"]
    assert settings.notify.policy is NotifyPolicy.ALWAYS
    assert settings.propagate_command_failures is False


@pytest.mark.parametrize("content", ["kopia: [unclosed", "- just\n- a list\n"])
def test_malformed_yaml_is_a_config_error(tmp_path, content):
    path = tmp_path / "kopia-wrapper.yaml"
    path.write_text(content)
    with pytest.raises(ConfigError):
        WrapperConfig(str(path))


def test_invalid_values_are_a_config_error(tmp_path):
    path = tmp_path / "kopia-wrapper.yaml"
    path.write_text("notify:\n  policy: sometimes\n")
    with pytest.raises(ConfigError, match="Invalid configuration"):
        WrapperConfig(str(path))


def test_unterminated_quote_in_notify_command(tmp_path):
    path = tmp_path / "kopia-wrapper.yaml"
    path.write_text("notify:\n  command: \"mail -s '%SUBJECT% root\"\n")
    with pytest.raises(ConfigError, match="notify command"):
        WrapperConfig(str(path))


@pytest.mark.parametrize("spelling", ["errors", "errors-only", "ERRORS_ONLY", "on-error"])
def test_errors_only_policy_spellings(tmp_path, spelling):
    path = tmp_path / "kopia-wrapper.yaml"
    path.write_text(f"notify:\n  policy: {spelling}\n")
    assert WrapperConfig(str(path)).settings.notify.policy is NotifyPolicy.ERRORS


def test_secrets_replace_placeholders(tmp_path):
    (tmp_path / "secrets.env").write_text('PUSH_TOKEN="s3cret"\n')
    path = tmp_path / "kopia-wrapper.yaml"
    path.write_text(
        "secrets_file: secrets.env\n"
        "notify:\n"
        "  provider:\n"
        "    name: pushover\n"
        "    config:\n"
        "      token: ${PUSH_TOKEN}\n"
    )
    provider = WrapperConfig(str(path)).settings.notify.provider
    assert provider.name == "pushover"
    assert provider.config == {"token": "s3cret"}


def test_missing_secrets_file(tmp_path):
    path = tmp_path / "kopia-wrapper.yaml"
    path.write_text("secrets_file: nowhere.env\n")
    with pytest.raises(ConfigError, match="secrets file"):
        WrapperConfig(str(path))


def test_kopia_environment_relative_to_config(tmp_path):
    (tmp_path / "kopia.env").write_text('KOPIA_PASSWORD="pw"\nKOPIA_CONFIG_PATH=/etc/kopia.config\n')
    path = tmp_path / "kopia-wrapper.yaml"
    path.write_text("kopia:\n  environment_file: kopia.env\n")
    config = WrapperConfig(str(path))

    assert config.settings.kopia.environment_file == str(tmp_path / "kopia.env")
    assert config.kopia_environment() == {
        "KOPIA_PASSWORD": "pw",
        "KOPIA_CONFIG_PATH": "/etc/kopia.config",
    }


def test_missing_kopia_environment_file(tmp_path):
    path = tmp_path / "kopia-wrapper.yaml"
    path.write_text("kopia:\n  environment_file: gone.env\n")
    config = WrapperConfig(str(path))
    with pytest.raises(ConfigError, match="kopia environment file"):
        config.kopia_environment()


def test_no_environment_file_means_no_extra_env(tmp_path):
    path = tmp_path / "kopia-wrapper.yaml"
    path.write_text("{}\n")
    assert WrapperConfig(str(path)).kopia_environment() == {}


def test_lock_path_defaults_to_config_file(tmp_path):
    path = tmp_path / "kopia-wrapper.yaml"
    path.write_text("{}\n")
    assert WrapperConfig(str(path)).lock_path == path


def test_lock_path_override(tmp_path):
    path = tmp_path / "kopia-wrapper.yaml"
    path.write_text("lock_file: run/wrapper.lock\n")
    assert WrapperConfig(str(path)).lock_path == tmp_path / "run" / "wrapper.lock"


def test_config_path_resolution(monkeypatch, tmp_path):
    assert str(resolve_config_path()) == "/etc/kopia-wrapper/kopia-wrapper.yaml"
    monkeypatch.setenv(CONFIG_ENV_VAR, str(tmp_path / "env.yaml"))
    assert resolve_config_path() == tmp_path / "env.yaml"
    assert resolve_config_path(str(tmp_path / "cli.yaml")) == tmp_path / "cli.yaml"


def test_mysqldump_mode_accepts_octal_string(tmp_path):
    path = tmp_path / "kopia-wrapper.yaml"
    path.write_text('mysqldump:\n  dump_dir_mode: "0750"\n  rotations: 2\n')
    settings = WrapperConfig(str(path)).settings.mysqldump
    assert settings.dump_dir_mode == 0o750
    assert settings.rotations == 2
