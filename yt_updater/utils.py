"""Assorted helper utilities used across the application."""

from __future__ import annotations

import os
import shutil
import sys
from pathlib import Path
from typing import Iterable, Optional


def is_frozen() -> bool:
    return bool(getattr(sys, "frozen", False))


def current_executable() -> Path:
    """Return the executable that started this process."""

    return Path(sys.executable).resolve()


def app_base_dir() -> Path:
    """Return the folder holding the application files.

    Frozen builds live next to their executable; source checkouts use the
    repository root (the parent of this package).
    """

    if is_frozen():
        return current_executable().parent
    return Path(__file__).resolve().parent.parent


def format_eta(seconds: float) -> str:
    """Format ``seconds`` as ``hh:mm:ss`` or ``mm:ss``."""

    if seconds < 0:
        return "--:--"
    total = int(seconds)
    minutes, secs = divmod(total, 60)
    hours, minutes = divmod(minutes, 60)
    if hours:
        return f"{hours:02d}:{minutes:02d}:{secs:02d}"
    return f"{minutes:02d}:{secs:02d}"


def format_size(size: float) -> str:
    """Return a human readable byte count (B, KB, MB, GB)."""

    if size < 1024:
        return f"{size:.0f} B"
    kb = size / 1024
    if kb < 1024:
        return f"{kb:.1f} KB"
    mb = kb / 1024
    if mb < 1024:
        return f"{mb:.1f} MB"
    return f"{mb / 1024:.2f} GB"


def format_speed(bytes_per_second: float) -> str:
    return f"{format_size(bytes_per_second)}/s"


def resolve_executable(*names: str, extra_roots: Iterable[Path] = ()) -> Optional[Path]:
    """Return the first accessible executable matching ``names``.

    ``extra_roots`` are searched first (the bundled ``tools`` folder), then
    ``PATH`` through ``shutil.which``, then the folders a frozen build or a
    source checkout ships binaries in.
    """

    search_roots: list[Path] = list(extra_roots)
    for root in search_roots:
        for name in names:
            candidate = root / name
            if _is_executable_file(candidate):
                return candidate

    for name in names:
        located = shutil.which(name)
        if located:
            return Path(located)

    fallback_roots: list[Path] = []
    if is_frozen():
        executable_dir = current_executable().parent
        fallback_roots.append(executable_dir)
        fallback_roots.append(Path(getattr(sys, "_MEIPASS", executable_dir)))
    else:
        fallback_roots.append(Path(__file__).resolve().parent)
    fallback_roots.append(Path(sys.executable).resolve().parent)
    fallback_roots.append(Path.cwd())

    seen: set[Path] = set()
    for root in fallback_roots:
        try:
            resolved_root = root.resolve()
        except FileNotFoundError:
            continue
        if resolved_root in seen:
            continue
        seen.add(resolved_root)
        for name in names:
            candidate = resolved_root / name
            if _is_executable_file(candidate):
                return candidate
    return None


def _is_executable_file(candidate: Path) -> bool:
    if not candidate.is_file():
        return False
    if os.name == "nt":
        return True
    try:
        mode = candidate.stat().st_mode
    except OSError:
        return False
    return bool(mode & 0o111)


__all__ = [
    "app_base_dir",
    "current_executable",
    "format_eta",
    "format_size",
    "format_speed",
    "is_frozen",
    "resolve_executable",
]
