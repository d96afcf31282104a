"""Extract download progress from yt-dlp console lines."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Optional

# The downloader's console format is not a stable contract; keep this to the
# one progress line shape and let everything else pass through untouched.
_PROGRESS_RE = re.compile(
    r"(?P<percent>\d+(?:\.\d+)?)%"
    r".*?(?P<speed>\d+(?:\.\d+)?[A-Za-z]+/s)"
    r".*?ETA\s+(?P<eta>(?:\d+:)?\d{1,2}:\d{2})"
)


@dataclass(frozen=True)
class ProgressSample:
    """One parsed progress reading of a child process."""

    percent: float
    speed: str
    eta: str


def parse_progress_line(line: str) -> Optional[ProgressSample]:
    """Return the progress encoded in ``line`` or ``None`` when it has none."""

    if not line or "%" not in line:
        return None
    match = _PROGRESS_RE.search(line)
    if match is None:
        return None
    try:
        percent = float(match.group("percent"))
    except ValueError:
        return None
    return ProgressSample(
        percent=min(percent, 100.0),
        speed=match.group("speed"),
        eta=match.group("eta"),
    )


__all__ = ["ProgressSample", "parse_progress_line"]
