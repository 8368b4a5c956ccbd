from __future__ import annotations

import json
import os
import shutil
import sys
from pathlib import Path

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _default_chrome_path() -> str:
    if sys.platform == "darwin":
        return "/Applications/Google Chrome.app/Contents/MacOS/Google Chrome"
    if sys.platform == "win32":
        return "C:\\Program Files\\Google\\Chrome\\Application\\chrome.exe"
    # Prefer whatever Chrome/Chromium is on PATH, fall back to the usual location.
    for name in ("google-chrome", "google-chrome-stable", "chromium", "chromium-browser"):
        found = shutil.which(name)
        if found:
            return found
    return "/usr/bin/google-chrome"


def _default_user_data_dir() -> str:
    home = Path.home()
    if sys.platform == "darwin":
        return str(home / "Library" / "Application Support" / "Google" / "Chrome")
    if sys.platform == "win32":
        return str(home / "AppData" / "Local" / "Google" / "Chrome" / "User Data")
    return str(home / ".config" / "google-chrome")


def _default_config_dir() -> str:
    return str(Path.home() / ".chrome-cli")


class BrowserConfig(BaseModel):
    chrome_path: str = Field(default_factory=_default_chrome_path)
    user_data_dir: str = Field(default_factory=_default_user_data_dir)
    isolated_profile_dir: str | None = None
    reuse_user_profile: bool = True
    debug_host: str = "127.0.0.1"
    debug_port: int = 9222
    launch_settle_delay: float = 2.0
    headless: bool = False
    extra_args: list[str] = Field(default_factory=list)

    @property
    def debug_url(self) -> str:
        return f"http://{self.debug_host}:{self.debug_port}"


class TimeoutsConfig(BaseModel):
    action: int = 5000
    wait: int = 5000
    navigation: int = 30000
    probe: int = 2000


class CaptureConfig(BaseModel):
    console_capacity: int = 1000
    network_capacity: int = 1000

    @field_validator("console_capacity", "network_capacity")
    @classmethod
    def positive_capacity(cls, v: int) -> int:
        if v < 1:
            raise ValueError("capture capacity must be at least 1")
        return v


class DaemonConfig(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="CHROME_CLI_",
        env_nested_delimiter="__",
    )

    host: str = "127.0.0.1"
    port: int = 9234
    config_dir: str = Field(default_factory=_default_config_dir)
    log_level: str = "INFO"
    startup_delay: float = 2.0
    browser: BrowserConfig = Field(default_factory=BrowserConfig)
    timeouts: TimeoutsConfig = Field(default_factory=TimeoutsConfig)
    capture: CaptureConfig = Field(default_factory=CaptureConfig)

    @field_validator("log_level")
    @classmethod
    def normalize_log_level(cls, v: str) -> str:
        return v.upper()

    @property
    def profile_dir(self) -> Path:
        """Dedicated profile used when the user's own Chrome is already running."""
        if self.browser.isolated_profile_dir:
            return Path(self.browser.isolated_profile_dir)
        return Path(self.config_dir) / "chrome-profile"


def apply_env_overrides(config: DaemonConfig) -> DaemonConfig:
    """Apply the short-form CHROME_CLI_* variables.

    These don't follow the nested delimiter convention, so they are
    handled manually here.
    """

    # CHROME_CLI_CHROME_PATH -> browser.chrome_path
    chrome_path = os.environ.get("CHROME_CLI_CHROME_PATH")
    if chrome_path is not None:
        config.browser.chrome_path = chrome_path

    # CHROME_CLI_DEBUG_PORT -> browser.debug_port
    debug_port = os.environ.get("CHROME_CLI_DEBUG_PORT")
    if debug_port is not None:
        config.browser.debug_port = int(debug_port)

    # CHROME_CLI_HEADLESS -> browser.headless
    headless = os.environ.get("CHROME_CLI_HEADLESS")
    if headless is not None:
        config.browser.headless = headless.lower() in ("1", "true", "yes")

    return config


def get_version() -> str:
    """Return the package version string."""
    try:
        from importlib.metadata import version

        return version("chrome-cli")
    except Exception:
        return "0.1.0"


def load_config(config_path: str | None = None) -> DaemonConfig:
    """Load daemon configuration from a JSON file and/or environment variables.

    Priority (highest to lowest):
        1. Short-form overrides (CHROME_CLI_CHROME_PATH, CHROME_CLI_DEBUG_PORT,
           CHROME_CLI_HEADLESS)
        2. Explicitly provided config_path JSON file, or ``.chrome-cli.json``
           in the current working directory
        3. CHROME_CLI_* environment variables (nested via ``__``)
        4. Built-in defaults
    """
    file_values: dict = {}

    if config_path is not None:
        config_file = Path(config_path)
        if config_file.is_file():
            file_values = json.loads(config_file.read_text(encoding="utf-8"))
    else:
        default_config = Path.cwd() / ".chrome-cli.json"
        if default_config.is_file():
            file_values = json.loads(default_config.read_text(encoding="utf-8"))

    config = DaemonConfig(**file_values)
    return apply_env_overrides(config)
