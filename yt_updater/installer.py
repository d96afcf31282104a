"""Extract an update archive over an existing, possibly running, installation."""

from __future__ import annotations

import enum
import os
import shutil
import time
import zipfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Iterable, Optional

from .config import UpdaterConfig
from .errors import ArchiveCorruptError
from .events import EventSink, LogEvent, ProgressEvent, null_sink
from .logger import get_logger
from .processes import wait_for_file_holders

LOGGER = get_logger("Installer")


class EntryStatus(str, enum.Enum):
    INSTALLED = "installed"
    DIRECTORY = "directory"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass(frozen=True)
class ArchiveEntry:
    path: str
    is_dir: bool
    size: int

    @classmethod
    def from_zipinfo(cls, info: zipfile.ZipInfo) -> "ArchiveEntry":
        name = info.filename.replace("\\", "/")
        return cls(path=name, is_dir=name.endswith("/"), size=info.file_size)


@dataclass(frozen=True)
class EntryOutcome:
    path: str
    status: EntryStatus
    reason: Optional[str] = None


@dataclass
class RetryState:
    """Attempt bookkeeping for replacing one destination file."""

    path: Path
    backoff_step: float
    attempt: int = 0
    next_delay: float = 0.0
    last_error: Optional[OSError] = field(default=None, repr=False)

    def record_failure(self, error: OSError) -> None:
        self.attempt += 1
        self.next_delay = self.backoff_step * self.attempt
        self.last_error = error


def normalize_entry_path(path: str) -> str:
    return path.replace("\\", "/").lstrip("/")


def is_excluded(path: str, prefixes: Iterable[str]) -> bool:
    """Return ``True`` when ``path`` lies under one of ``prefixes``.

    Comparison ignores case and accepts either path separator on both sides.
    """

    candidate = normalize_entry_path(path).casefold()
    for prefix in prefixes:
        normalized = normalize_entry_path(prefix).casefold()
        if normalized and candidate.startswith(normalized):
            return True
    return False


def _delete_file(path: Path) -> None:
    path.unlink()


class ArchiveInstaller:
    """Install archive entries one at a time into ``install_dir``.

    Entries are never extracted in parallel so that retry state and the
    holder-process check always refer to exactly one destination path.
    """

    def __init__(
        self,
        config: UpdaterConfig,
        sink: EventSink = null_sink,
        *,
        sleep: Callable[[float], None] = time.sleep,
        wait_for_holders: Callable[[Path, float], int] = wait_for_file_holders,
    ) -> None:
        self.config = config
        self._sink = sink
        self._sleep = sleep
        self._wait_for_holders = wait_for_holders

    def install(
        self,
        archive_path: Path,
        install_dir: Path,
        exclude_prefixes: Optional[Iterable[str]] = None,
    ) -> list[EntryOutcome]:
        """Extract ``archive_path`` and return one outcome per entry.

        Raises :class:`ArchiveCorruptError` when the archive cannot be read or
        is empty. A failure to replace an individual file is recorded in the
        outcome list and the run continues with the next entry.
        """

        prefixes = tuple(exclude_prefixes if exclude_prefixes is not None else self.config.exclude_prefixes)
        if not archive_path.is_file():
            raise ArchiveCorruptError(f"missing archive: {archive_path}")
        try:
            archive = zipfile.ZipFile(archive_path)
        except (zipfile.BadZipFile, OSError) as exc:
            raise ArchiveCorruptError(str(exc)) from exc

        with archive:
            infos = archive.infolist()
            if not infos:
                raise ArchiveCorruptError("archive has no entries")

            install_dir.mkdir(parents=True, exist_ok=True)
            root = install_dir.resolve()
            total = len(infos)
            outcomes: list[EntryOutcome] = []
            LOGGER.info("Installing %d entries from %s into %s", total, archive_path, root)

            for index, info in enumerate(infos, start=1):
                entry = ArchiveEntry.from_zipinfo(info)
                outcome = self._install_entry(archive, info, entry, root, prefixes)
                outcomes.append(outcome)
                if outcome.status in (EntryStatus.INSTALLED, EntryStatus.DIRECTORY):
                    self._sink(
                        ProgressEvent(
                            percent=index * 100.0 / total,
                            current=index,
                            total=total,
                        )
                    )

        summary = {status: 0 for status in EntryStatus}
        for outcome in outcomes:
            summary[outcome.status] += 1
        message = (
            f"Installed {summary[EntryStatus.INSTALLED]} files, "
            f"{summary[EntryStatus.DIRECTORY]} folders, "
            f"skipped {summary[EntryStatus.SKIPPED]}, failed {summary[EntryStatus.FAILED]}"
        )
        LOGGER.info(message)
        self._sink(LogEvent(message))
        return outcomes

    def _install_entry(
        self,
        archive: zipfile.ZipFile,
        info: zipfile.ZipInfo,
        entry: ArchiveEntry,
        root: Path,
        prefixes: tuple[str, ...],
    ) -> EntryOutcome:
        if is_excluded(entry.path, prefixes):
            LOGGER.debug("Skipping excluded entry %s", entry.path)
            return EntryOutcome(entry.path, EntryStatus.SKIPPED, "excluded")

        relative = normalize_entry_path(entry.path)
        destination = (root / relative).resolve()
        if destination != root and root not in destination.parents:
            LOGGER.warning("Skipping entry outside the install folder: %s", entry.path)
            return EntryOutcome(entry.path, EntryStatus.SKIPPED, "unsafe_path")

        try:
            if entry.is_dir:
                destination.mkdir(parents=True, exist_ok=True)
                return EntryOutcome(entry.path, EntryStatus.DIRECTORY)
            destination.parent.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            LOGGER.warning("Cannot create folder for %s: %s", entry.path, exc)
            return EntryOutcome(entry.path, EntryStatus.FAILED, "write_failed")

        if destination.is_dir():
            LOGGER.warning("A folder already exists where %s should go", entry.path)
            return EntryOutcome(entry.path, EntryStatus.FAILED, "path_conflict")

        if destination.exists() and not self.remove_with_retry(destination):
            return EntryOutcome(entry.path, EntryStatus.FAILED, "locked_file")

        try:
            self.write_entry(archive, info, destination)
        except (OSError, zipfile.BadZipFile) as exc:
            LOGGER.warning("Failed to write %s: %s", destination, exc)
            return EntryOutcome(entry.path, EntryStatus.FAILED, "write_failed")
        LOGGER.debug("Installed %s", destination)
        return EntryOutcome(entry.path, EntryStatus.INSTALLED)

    def remove_with_retry(self, destination: Path) -> bool:
        """Delete ``destination``, retrying with an increasing backoff.

        Between attempts processes named after the file are given a short
        chance to exit. Returns ``False`` once every attempt failed.
        """

        state = RetryState(destination, backoff_step=self.config.backoff_step)
        while state.attempt < self.config.delete_attempts:
            if state.attempt:
                self._wait_for_lock_holders(destination)
                LOGGER.info(
                    "Retrying delete of %s in %.1fs (attempt %d/%d)",
                    destination,
                    state.next_delay,
                    state.attempt + 1,
                    self.config.delete_attempts,
                )
                self._sleep(state.next_delay)
            try:
                _delete_file(destination)
                return True
            except FileNotFoundError:
                return True
            except OSError as exc:
                state.record_failure(exc)
                LOGGER.warning("Cannot delete %s: %s", destination, exc)
        LOGGER.error(
            "Giving up on %s after %d attempts: %s",
            destination,
            state.attempt,
            state.last_error,
        )
        return False

    def _wait_for_lock_holders(self, destination: Path) -> None:
        try:
            self._wait_for_holders(destination, self.config.process_wait_timeout)
        except Exception as exc:  # pylint: disable=broad-except
            LOGGER.debug("Process lookup for %s failed: %s", destination.name, exc)

    @staticmethod
    def write_entry(archive: zipfile.ZipFile, info: zipfile.ZipInfo, destination: Path) -> None:
        staging = destination.with_name(destination.name + ".partial")
        try:
            with archive.open(info) as source, staging.open("wb") as target:
                shutil.copyfileobj(source, target)
            mode = (info.external_attr >> 16) & 0o777
            if mode and os.name != "nt":
                staging.chmod(mode)
            os.replace(staging, destination)
        except BaseException:
            staging.unlink(missing_ok=True)
            raise


__all__ = [
    "ArchiveEntry",
    "ArchiveInstaller",
    "EntryOutcome",
    "EntryStatus",
    "RetryState",
    "is_excluded",
]
