"""Tests for chrome_cli.config module."""

from __future__ import annotations

import json
from pathlib import Path

import pytest
from pydantic import ValidationError

from chrome_cli.config import (
    BrowserConfig,
    CaptureConfig,
    DaemonConfig,
    TimeoutsConfig,
    apply_env_overrides,
    load_config,
)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for name in (
        "CHROME_CLI_PORT",
        "CHROME_CLI_HOST",
        "CHROME_CLI_CHROME_PATH",
        "CHROME_CLI_DEBUG_PORT",
        "CHROME_CLI_HEADLESS",
        "CHROME_CLI_LOG_LEVEL",
        "CHROME_CLI_TIMEOUTS__ACTION",
    ):
        monkeypatch.delenv(name, raising=False)


class TestDefaults:
    def test_daemon_defaults(self, home_dir):
        config = DaemonConfig()
        assert config.host == "127.0.0.1"
        assert config.port == 9234
        assert config.config_dir == str(home_dir / ".chrome-cli")
        assert config.log_level == "INFO"

    def test_browser_defaults(self):
        browser = BrowserConfig(chrome_path="/opt/chrome")
        assert browser.debug_port == 9222
        assert browser.debug_url == "http://127.0.0.1:9222"
        assert browser.reuse_user_profile is True
        assert browser.headless is False

    def test_timeouts(self):
        timeouts = TimeoutsConfig()
        assert (timeouts.action, timeouts.wait, timeouts.navigation) == (5000, 5000, 30000)

    def test_capture_capacity(self):
        assert CaptureConfig().console_capacity == 1000
        with pytest.raises(ValidationError):
            CaptureConfig(network_capacity=0)

    def test_log_level_normalized(self):
        assert DaemonConfig(log_level="debug").log_level == "DEBUG"

    def test_profile_dir(self, tmp_path):
        config = DaemonConfig(config_dir=str(tmp_path))
        assert config.profile_dir == tmp_path / "chrome-profile"
        config.browser.isolated_profile_dir = str(tmp_path / "iso")
        assert config.profile_dir == tmp_path / "iso"


class TestEnvironment:
    def test_nested_env_vars(self, monkeypatch):
        monkeypatch.setenv("CHROME_CLI_PORT", "9999")
        monkeypatch.setenv("CHROME_CLI_TIMEOUTS__ACTION", "1234")
        config = DaemonConfig()
        assert config.port == 9999
        assert config.timeouts.action == 1234

    def test_short_form_overrides(self, monkeypatch):
        monkeypatch.setenv("CHROME_CLI_CHROME_PATH", "/opt/chromium")
        monkeypatch.setenv("CHROME_CLI_DEBUG_PORT", "9333")
        monkeypatch.setenv("CHROME_CLI_HEADLESS", "true")
        config = apply_env_overrides(DaemonConfig())
        assert config.browser.chrome_path == "/opt/chromium"
        assert config.browser.debug_port == 9333
        assert config.browser.debug_url == "http://127.0.0.1:9333"
        assert config.browser.headless is True


class TestLoadConfig:
    def test_explicit_file(self, tmp_path):
        path = tmp_path / "cfg.json"
        path.write_text(json.dumps({"port": 9400, "browser": {"debug_port": 9300}}))
        config = load_config(str(path))
        assert config.port == 9400
        assert config.browser.debug_port == 9300

    def test_missing_explicit_file_uses_defaults(self, tmp_path):
        config = load_config(str(tmp_path / "nope.json"))
        assert config.port == 9234

    def test_cwd_file(self, tmp_path, monkeypatch):
        (tmp_path / ".chrome-cli.json").write_text(json.dumps({"startup_delay": 5}))
        monkeypatch.chdir(tmp_path)
        assert load_config().startup_delay == 5

    def test_short_form_beats_file(self, tmp_path, monkeypatch):
        path = tmp_path / "cfg.json"
        path.write_text(json.dumps({"browser": {"debug_port": 9300}}))
        monkeypatch.setenv("CHROME_CLI_DEBUG_PORT", "9444")
        assert load_config(str(path)).browser.debug_port == 9444

    def test_round_trips_through_json(self, tmp_path):
        config = DaemonConfig(config_dir=str(tmp_path), port=9500)
        restored = DaemonConfig(**json.loads(config.model_dump_json()))
        assert restored.port == 9500
        assert Path(restored.config_dir) == tmp_path
