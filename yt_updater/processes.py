"""Best-effort lookup of processes that might hold a file open.

Matching is by executable base name only. An unrelated process with the same
name is waited on for nothing, and a process holding the file under a
different name is never found. Callers treat the result as a hint.
"""

from __future__ import annotations

import os
from pathlib import Path

import psutil

from .logger import get_logger

LOGGER = get_logger("Processes")


def find_processes_by_stem(stem: str) -> list[psutil.Process]:
    """Return running processes whose name without extension equals ``stem``."""

    wanted = stem.casefold()
    own_pid = os.getpid()
    matches: list[psutil.Process] = []
    for proc in psutil.process_iter(["pid", "name"]):
        name = proc.info.get("name") or ""
        if proc.pid == own_pid:
            continue
        if Path(name).stem.casefold() == wanted:
            matches.append(proc)
    return matches


def wait_for_file_holders(path: Path, timeout: float) -> int:
    """Wait up to ``timeout`` seconds per process named after ``path``.

    Returns the number of matching processes still running afterwards. A
    process that does not exit in time is logged, never killed.
    """

    still_running = 0
    for proc in find_processes_by_stem(path.stem):
        try:
            LOGGER.info("Waiting for %s (pid %s) to exit", proc.name(), proc.pid)
            proc.wait(timeout=timeout)
        except psutil.TimeoutExpired:
            still_running += 1
            LOGGER.warning(
                "Process %s (pid %s) still running after %.1fs", path.stem, proc.pid, timeout
            )
        except (psutil.NoSuchProcess, psutil.AccessDenied):
            continue
    return still_running


__all__ = ["find_processes_by_stem", "wait_for_file_holders"]
