"""Tests for settings loading (config.py)."""

import pytest

from esxmon.config import Settings, load_settings
from esxmon.errors import ConfigurationError


def test_defaults_match_deployed_configuration():
    """Test the default subscription settings."""
    settings = Settings()

    assert settings.vsphere_url == ""
    assert settings.insecure is True
    assert settings.page_size == 10
    assert settings.tail_only is True
    assert settings.include_full_detail is True
    assert settings.reconnect is False


def test_environment_variables_use_prefix(monkeypatch):
    """Test that ESXMON_* variables populate settings."""
    monkeypatch.setenv("ESXMON_VSPHERE_URL", "https://root:pw@esxi-01/sdk")
    monkeypatch.setenv("ESXMON_PAGE_SIZE", "50")

    settings = load_settings()

    assert settings.vsphere_url == "https://root:pw@esxi-01/sdk"
    assert settings.page_size == 50


def test_config_file_values_are_loaded(tmp_path):
    """Test that a YAML config file provides values, dashed keys included."""
    config_file = tmp_path / "esxmon.yml"
    config_file.write_text(
        "vsphere-url: https://root:pw@esxi-01/sdk\n"
        "tail_only: false\n"
        "event_types:\n"
        "  - VmPoweredOnEvent\n"
        "unknown_key: ignored\n"
    )

    settings = load_settings(config_file)

    assert settings.vsphere_url == "https://root:pw@esxi-01/sdk"
    assert settings.tail_only is False
    assert settings.event_types == ["VmPoweredOnEvent"]


def test_precedence_overrides_env_file(tmp_path, monkeypatch):
    """Test that CLI overrides beat env, and env beats the config file."""
    config_file = tmp_path / "esxmon.yml"
    config_file.write_text("vsphere_url: https://file@esxi-01/sdk\npage_size: 20\nverbose: true\n")
    monkeypatch.setenv("ESXMON_PAGE_SIZE", "30")
    monkeypatch.setenv("ESXMON_VSPHERE_URL", "https://env@esxi-01/sdk")

    settings = load_settings(config_file, vsphere_url="https://cli@esxi-01/sdk", debug=None)

    assert settings.vsphere_url == "https://cli@esxi-01/sdk"
    assert settings.page_size == 30
    assert settings.verbose is True
    assert settings.debug is False


def test_missing_explicit_config_file_fails(tmp_path):
    """Test that a config path that does not exist is an error."""
    with pytest.raises(ConfigurationError) as exc_info:
        load_settings(tmp_path / "missing.yml")

    assert exc_info.value.exit_code == 1


def test_config_file_must_be_mapping(tmp_path):
    """Test that a YAML list is rejected."""
    config_file = tmp_path / "esxmon.yml"
    config_file.write_text("- a\n- b\n")

    with pytest.raises(ConfigurationError):
        load_settings(config_file)


def test_invalid_yaml_fails(tmp_path):
    """Test that unparsable YAML is reported as ConfigurationError."""
    config_file = tmp_path / "esxmon.yml"
    config_file.write_text("vsphere_url: [unclosed\n")

    with pytest.raises(ConfigurationError):
        load_settings(config_file)


def test_empty_config_file_is_allowed(tmp_path):
    """Test that an empty config file just yields defaults."""
    config_file = tmp_path / "esxmon.yml"
    config_file.write_text("")

    settings = load_settings(config_file)

    assert settings.page_size == 10


def test_unparsable_environment_value_fails(monkeypatch):
    """Test that a non-numeric ESXMON_PAGE_SIZE is reported as ConfigurationError."""
    monkeypatch.setenv("ESXMON_PAGE_SIZE", "abc")

    with pytest.raises(ConfigurationError) as exc_info:
        load_settings()

    assert exc_info.value.exit_code == 1
    assert "page_size" in exc_info.value.message


@pytest.mark.parametrize("page_size", [0, -5])
def test_config_file_page_size_must_be_positive(tmp_path, page_size):
    """Test that a page size below 1 in the config file is rejected."""
    config_file = tmp_path / "esxmon.yml"
    config_file.write_text(f"page_size: {page_size}\n")

    with pytest.raises(ConfigurationError) as exc_info:
        load_settings(config_file)

    assert "page_size" in exc_info.value.message


def test_non_positive_delays_are_rejected(monkeypatch):
    """Test that poll and reconnect delays must be greater than zero."""
    monkeypatch.setenv("ESXMON_POLL_INTERVAL", "0")

    with pytest.raises(ConfigurationError):
        load_settings()

    monkeypatch.delenv("ESXMON_POLL_INTERVAL")
    monkeypatch.setenv("ESXMON_RECONNECT_DELAY", "-1")

    with pytest.raises(ConfigurationError):
        load_settings()
