"""Start the freshly installed executable and end the current process."""

from __future__ import annotations

import logging
import os
import subprocess
import time
from pathlib import Path
from typing import Callable, Sequence

from .errors import MissingDependencyError, ProcessLaunchError
from .events import EventSink, LogEvent, null_sink
from .logger import get_logger

LOGGER = get_logger("Relauncher")


def _detached_popen_kwargs(target: Path) -> dict[str, object]:
    popen_kwargs: dict[str, object] = {
        "close_fds": True,
        "cwd": str(target.parent),
    }
    if os.name == "nt":  # pragma: no cover - platform dependent
        creation_flags = 0
        creation_flags |= getattr(subprocess, "DETACHED_PROCESS", 0)
        creation_flags |= getattr(subprocess, "CREATE_NEW_PROCESS_GROUP", 0)
        if creation_flags:
            popen_kwargs["creationflags"] = creation_flags
    else:
        popen_kwargs["start_new_session"] = True
    return popen_kwargs


def launch_detached(target: Path, launch_args: Sequence[str] | None = None) -> subprocess.Popen:
    """Start ``target`` in its own folder without redirecting its streams."""

    args = [str(target)]
    if launch_args:
        args.extend(list(launch_args))
    try:
        return subprocess.Popen(args, **_detached_popen_kwargs(target))  # noqa: S603
    except OSError as exc:
        raise ProcessLaunchError(f"{target}: {exc}") from exc


def terminate_current_process(code: int = 0) -> None:
    """Flush the logs and end this process immediately."""

    logging.shutdown()
    os._exit(code)  # noqa: SLF001 - worker threads must not keep us alive


def finish_and_relaunch(
    target: Path,
    *,
    grace_seconds: float = 2.0,
    exit_delay: float = 1.0,
    sink: EventSink = null_sink,
    sleep: Callable[[float], None] = time.sleep,
    exit_process: Callable[[int], None] = terminate_current_process,
) -> int:
    """Relaunch ``target`` after a grace period, then end this process.

    A missing target is fatal for this step: nothing is started and the
    process still terminates. The return value is the exit code handed to
    ``exit_process``.
    """

    sleep(max(0.0, grace_seconds))
    code = 0
    try:
        if not target.is_file():
            raise MissingDependencyError(f"target executable not found: {target}")
        launch_detached(target)
        LOGGER.info("Started %s", target)
        sink(LogEvent(f"Started {target.name}"))
        sleep(max(0.0, exit_delay))
    except MissingDependencyError as exc:
        LOGGER.critical("Cannot relaunch: %s", exc)
        sink(LogEvent(str(exc), level=logging.CRITICAL))
        code = 1
    except ProcessLaunchError as exc:
        LOGGER.error("Relaunch failed: %s", exc)
        sink(LogEvent(str(exc), level=logging.ERROR))
        code = 1
    exit_process(code)
    return code


__all__ = [
    "finish_and_relaunch",
    "launch_detached",
    "terminate_current_process",
]
