"""Immutable runtime configuration for the updater components."""

from __future__ import annotations

import dataclasses
import json
import os
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping, Optional

from .logger import get_logger
from .utils import app_base_dir

LOGGER = get_logger("Config")

DEFAULT_REPOSITORY = "gloriouslegacy/ytDownloader"
RELEASES_URL_TEMPLATE = "https://api.github.com/repos/{repo}/releases"
USER_AGENT = "ytDownloader/1.0"


def _appdata_dir() -> Path:
    value = os.environ.get("APPDATA")
    if value:
        return Path(value)
    return Path.home() / ".config"


def default_settings_dir() -> Path:
    return _appdata_dir() / "ytDownloader"


def default_installed_marker() -> Path:
    return _appdata_dir() / "ytDownloader" / "app"


@dataclass(frozen=True)
class UpdaterConfig:
    """Settings shared by the coordinator, installer, supervisor and relauncher."""

    repository: str = DEFAULT_REPOSITORY
    releases_url_template: str = RELEASES_URL_TEMPLATE
    user_agent: str = USER_AGENT
    installed_asset_name: str = "ytDownloader-setup.exe"
    portable_asset_name: str = "ytdownloader.zip"
    installed_download_name: str = "ytDownloader-setup.exe"
    portable_download_name: str = "ytDownloader_update.zip"
    installed_marker: Path = field(default_factory=default_installed_marker)
    temp_dir: Path = field(default_factory=lambda: Path(tempfile.gettempdir()))
    settings_dir: Path = field(default_factory=default_settings_dir)
    tools_dir: Path = field(default_factory=lambda: app_base_dir() / "tools")
    exclude_prefixes: tuple[str, ...] = ("tools/",)
    delete_attempts: int = 5
    backoff_step: float = 1.0
    process_wait_timeout: float = 2.0
    relaunch_grace: float = 2.0
    exit_delay: float = 1.0
    missing_args_exit_delay: float = 3.0
    failure_exit_delay: float = 5.0
    network_timeout: float = 10.0
    download_timeout: float = 30.0
    chunk_size: int = 131072
    fallback_codepage: str = "cp949"
    child_env: Mapping[str, str] = field(
        default_factory=lambda: {"PYTHONIOENCODING": "utf-8", "PYTHONUTF8": "1"}
    )
    language: str = "ko"

    @property
    def releases_url(self) -> str:
        return self.releases_url_template.format(repo=self.repository)

    @property
    def settings_file(self) -> Path:
        return self.settings_dir / "settings.json"

    @property
    def app_log_file(self) -> Path:
        return self.settings_dir / "debug.log"


_PATH_FIELDS = {"installed_marker", "temp_dir", "settings_dir", "tools_dir"}


def _coerce(name: str, value: Any) -> Any:
    if name in _PATH_FIELDS:
        return Path(str(value)).expanduser()
    if name == "exclude_prefixes":
        return tuple(str(item) for item in value)
    if name == "child_env":
        return {str(key): str(item) for key, item in dict(value).items()}
    return value


def load_config(settings_path: Optional[Path] = None, **overrides: Any) -> UpdaterConfig:
    """Build an :class:`UpdaterConfig` from defaults, the settings file and ``overrides``.

    Only the ``"updater"`` object of the JSON settings file is read. Unknown
    keys are logged and ignored so an old settings file never blocks startup.
    """

    known = {item.name for item in dataclasses.fields(UpdaterConfig)}
    values: dict[str, Any] = {}

    path = settings_path if settings_path is not None else default_settings_dir() / "settings.json"
    if path.exists():
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            LOGGER.warning("Ignoring unreadable settings file %s: %s", path, exc)
            data = {}
        section = data.get("updater") if isinstance(data, dict) else None
        if isinstance(section, dict):
            for key, value in section.items():
                if key not in known:
                    LOGGER.warning("Ignoring unknown updater setting %r", key)
                    continue
                try:
                    values[key] = _coerce(key, value)
                except (TypeError, ValueError) as exc:
                    LOGGER.warning("Ignoring invalid updater setting %r: %s", key, exc)

    for key, value in overrides.items():
        if key not in known:
            raise TypeError(f"Unknown configuration option: {key}")
        values[key] = value

    return UpdaterConfig(**values)


__all__ = [
    "DEFAULT_REPOSITORY",
    "UpdaterConfig",
    "default_installed_marker",
    "default_settings_dir",
    "load_config",
]
