"""Hand a downloaded payload over to the process that installs it."""

from __future__ import annotations

import os
import subprocess
import sys
from pathlib import Path
from typing import Optional

from .config import UpdaterConfig
from .errors import MissingDependencyError, ProcessLaunchError
from .logger import get_logger
from .utils import app_base_dir, is_frozen

LOGGER = get_logger("Updater")

INSTALLER_EXECUTABLE = "Updater.exe"
INSTALLER_MODULE = "yt_updater.installer_app"
SETUP_ARGUMENTS = ("/VERYSILENT", "/CLOSEAPPLICATIONS")


def _detached_kwargs(cwd: Path) -> dict[str, object]:
    popen_kwargs: dict[str, object] = {
        "stdin": subprocess.DEVNULL,
        "stdout": subprocess.DEVNULL,
        "stderr": subprocess.DEVNULL,
        "close_fds": True,
        "cwd": str(cwd),
    }
    if os.name == "nt":  # pragma: no cover - platform specific
        popen_kwargs["creationflags"] = getattr(subprocess, "DETACHED_PROCESS", 0) | getattr(
            subprocess, "CREATE_NEW_PROCESS_GROUP", 0
        )
    else:
        popen_kwargs["start_new_session"] = True
    return popen_kwargs


def installer_candidates(base_dir: Optional[Path] = None) -> list[Path]:
    base = base_dir or app_base_dir()
    return [base / "updater" / INSTALLER_EXECUTABLE, base / INSTALLER_EXECUTABLE]


def build_installer_command(
    archive: Path,
    install_dir: Path,
    target: Path,
    base_dir: Optional[Path] = None,
) -> list[str]:
    """Return the command line that installs ``archive`` and relaunches ``target``.

    Frozen builds ship a separate installer executable; source checkouts run
    the installer module with the current interpreter.
    """

    arguments = [str(archive), str(install_dir), str(target)]
    if not is_frozen():
        return [sys.executable, "-m", INSTALLER_MODULE, *arguments]

    candidates = installer_candidates(base_dir)
    for candidate in candidates:
        if candidate.is_file():
            return [str(candidate), *arguments]
    LOGGER.error("%s not found", INSTALLER_EXECUTABLE)
    for index, candidate in enumerate(candidates, start=1):
        LOGGER.error("Tried path %d: %s", index, candidate)
    raise MissingDependencyError(f"{INSTALLER_EXECUTABLE} not found")


def launch_installer(command: list[str]) -> subprocess.Popen:
    """Start the installer helper detached from this process."""

    cwd = Path(command[0]).parent if is_frozen() else app_base_dir()
    LOGGER.info("Starting installer: %s", subprocess.list2cmdline(command))
    try:
        return subprocess.Popen(command, **_detached_kwargs(cwd))  # noqa: S603
    except OSError as exc:
        raise ProcessLaunchError(f"{command[0]}: {exc}") from exc


def launch_setup_installer(setup_path: Path) -> subprocess.Popen:
    """Run the installed-variant setup payload silently."""

    if not setup_path.is_file():
        raise MissingDependencyError(f"setup payload not found: {setup_path}")
    command = [str(setup_path), *SETUP_ARGUMENTS]
    LOGGER.info("Starting setup: %s", subprocess.list2cmdline(command))
    try:
        return subprocess.Popen(command, **_detached_kwargs(setup_path.parent))  # noqa: S603
    except OSError as exc:
        raise ProcessLaunchError(f"{setup_path}: {exc}") from exc


def cleanup_stale_downloads(config: UpdaterConfig) -> list[Path]:
    """Remove payloads a previous update run left in the temp folder."""

    removed: list[Path] = []
    for name in (config.installed_download_name, config.portable_download_name):
        for candidate in (config.temp_dir / name, config.temp_dir / f"{name}.download"):
            if not candidate.exists():
                continue
            try:
                candidate.unlink()
            except OSError as exc:
                LOGGER.debug("Could not remove stale download %s: %s", candidate, exc)
                continue
            removed.append(candidate)
    return removed


__all__ = [
    "INSTALLER_EXECUTABLE",
    "build_installer_command",
    "cleanup_stale_downloads",
    "installer_candidates",
    "launch_installer",
    "launch_setup_installer",
]
