"""Tests for configuration loading."""

import logging

import yaml

from core.config import Config, create_sample_config, find_config_file, load_config


def test_defaults_without_file_or_env(tmp_path) -> None:
    config = load_config(tmp_path / "missing.yaml", environ={})
    assert config == Config()
    assert config.imap.verify_tls is True
    assert config.imap.timeout == 10.0
    assert config.imap.connection_test_timeout == 15.0


def test_yaml_values_are_applied(tmp_path) -> None:
    path = tmp_path / "config.yaml"
    path.write_text(
        "default_provider: imap\n"
        "max_results: 35\n"
        "imap:\n"
        "  host: mail.example.org\n"
        "  port: 143\n"
        "  use_tls: false\n"
        "outlook:\n"
        "  client_id: from-yaml\n"
    )
    config = load_config(path, environ={})
    assert config.default_provider == "imap"
    assert config.max_results == 35
    assert config.imap.host == "mail.example.org"
    assert config.imap.port == 143
    assert config.imap.use_tls is False
    assert config.outlook.client_id == "from-yaml"


def test_environment_overrides_yaml(tmp_path) -> None:
    path = tmp_path / "config.yaml"
    path.write_text("imap:\n  host: from-yaml\n  user: yaml-user\ngmail:\n  refresh_token: yaml-token\n")
    environ = {
        "IMAP_HOST": "from-env",
        "IMAP_PORT": "1993",
        "IMAP_USE_TLS": "no",
        "GOOGLE_REFRESH_TOKEN": "env-token",
        "MAIL_CORE_REQUEST_TIMEOUT": "5",
        "MAIL_CORE_IMAP_INSECURE_TLS": "true",
    }
    config = load_config(path, environ=environ)
    assert config.imap.host == "from-env"
    assert config.imap.user == "yaml-user"
    assert config.imap.port == 1993
    assert config.imap.use_tls is False
    assert config.imap.verify_tls is False
    assert config.gmail.refresh_token == "env-token"
    assert config.gmail.request_timeout == 5.0
    assert config.outlook.request_timeout == 5.0


def test_custom_env_prefix(tmp_path) -> None:
    config = load_config(tmp_path / "none.yaml", environ={"INBOX_LOG_LEVEL": "DEBUG"}, env_prefix="INBOX_")
    assert config.log_level == "DEBUG"


def test_unknown_keys_and_bad_files_are_tolerated(tmp_path, caplog) -> None:
    path = tmp_path / "config.yaml"
    path.write_text("imap:\n  hots: typo\n")
    with caplog.at_level(logging.WARNING):
        config = load_config(path, environ={})
    assert config.imap.host is None
    assert "hots" in caplog.text

    path.write_text("- just\n- a list\n")
    assert load_config(path, environ={}) == Config()

    path.write_text("imap: [unclosed\n")
    assert load_config(path, environ={}) == Config()


def test_config_path_from_environment(tmp_path) -> None:
    path = tmp_path / "custom.yaml"
    path.write_text("log_level: WARNING\n")
    assert find_config_file({"MAIL_CORE_CONFIG": str(path)}) == path
    assert load_config(environ={"MAIL_CORE_CONFIG": str(path)}).log_level == "WARNING"


def test_sample_config_round_trips(tmp_path) -> None:
    path = tmp_path / "nested" / "config.yaml"
    text = create_sample_config(path)
    assert path.read_text() == text
    assert yaml.safe_load(text)["imap"]["verify_tls"] is True
    config = load_config(path, environ={})
    assert config.default_provider == "gmail"
    assert config.outlook.authority == "https://login.microsoftonline.com/common"
