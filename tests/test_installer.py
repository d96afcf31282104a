"""Tests for extracting update archives over an installation."""

from __future__ import annotations

import zipfile
from pathlib import Path

import pytest

from yt_updater import installer
from yt_updater.config import UpdaterConfig
from yt_updater.errors import ArchiveCorruptError
from yt_updater.events import ProgressEvent, QueueSink
from yt_updater.installer import ArchiveInstaller, EntryStatus, is_excluded


def _make_archive(path: Path, entries: dict[str, bytes]) -> Path:
    with zipfile.ZipFile(path, "w") as archive:
        for name, data in entries.items():
            if name.endswith("/"):
                archive.writestr(zipfile.ZipInfo(name), b"")
            else:
                archive.writestr(name, data)
    return path


def _installer(sink=None, sleeps=None) -> ArchiveInstaller:  # type: ignore[no-untyped-def]
    recorded = sleeps if sleeps is not None else []
    return ArchiveInstaller(
        UpdaterConfig(delete_attempts=5, backoff_step=1.0),
        sink or QueueSink(),
        sleep=recorded.append,
        wait_for_holders=lambda path, timeout: 0,
    )


@pytest.mark.parametrize(
    ("path", "expected"),
    [
        ("tools/yt-dlp.exe", True),
        ("TOOLS\\ffmpeg.exe", True),
        ("/tools/x", True),
        ("toolsx/file", False),
        ("app.exe", False),
    ],
)
def test_is_excluded(path: str, expected: bool) -> None:
    assert is_excluded(path, ("tools/",)) is expected


def test_install_extracts_files_and_skips_tools(tmp_path) -> None:
    install_dir = tmp_path / "app"
    (install_dir / "tools").mkdir(parents=True)
    (install_dir / "tools" / "yt-dlp.exe").write_bytes(b"keep me")
    (install_dir / "app.exe").write_bytes(b"old")
    archive = _make_archive(
        tmp_path / "update.zip",
        {
            "lib/": b"",
            "lib/core.dll": b"core",
            "app.exe": b"new",
            "tools/yt-dlp.exe": b"bundled",
        },
    )
    sink = QueueSink()

    outcomes = _installer(sink).install(archive, install_dir)

    statuses = {outcome.path: outcome.status for outcome in outcomes}
    assert statuses == {
        "lib/": EntryStatus.DIRECTORY,
        "lib/core.dll": EntryStatus.INSTALLED,
        "app.exe": EntryStatus.INSTALLED,
        "tools/yt-dlp.exe": EntryStatus.SKIPPED,
    }
    assert (install_dir / "app.exe").read_bytes() == b"new"
    assert (install_dir / "lib" / "core.dll").read_bytes() == b"core"
    assert (install_dir / "tools" / "yt-dlp.exe").read_bytes() == b"keep me"
    assert not list(install_dir.rglob("*.partial"))

    progress = [event for event in sink.drain() if isinstance(event, ProgressEvent)]
    assert [(event.current, event.total) for event in progress] == [(1, 4), (2, 4), (3, 4)]


def test_install_skips_entries_outside_install_dir(tmp_path) -> None:
    install_dir = tmp_path / "app"
    archive = _make_archive(tmp_path / "update.zip", {"../evil.txt": b"x", "ok.txt": b"ok"})

    outcomes = _installer().install(archive, install_dir)

    assert outcomes[0].status is EntryStatus.SKIPPED
    assert outcomes[0].reason == "unsafe_path"
    assert not (tmp_path / "evil.txt").exists()
    assert (install_dir / "ok.txt").read_bytes() == b"ok"


def test_transient_lock_is_retried_with_growing_backoff(monkeypatch, tmp_path) -> None:
    install_dir = tmp_path / "app"
    install_dir.mkdir()
    (install_dir / "app.exe").write_bytes(b"old")
    archive = _make_archive(tmp_path / "update.zip", {"app.exe": b"new"})

    real_delete = installer._delete_file
    attempts = []

    def flaky_delete(path: Path) -> None:
        attempts.append(path)
        if len(attempts) < 3:
            raise PermissionError("in use")
        real_delete(path)

    monkeypatch.setattr(installer, "_delete_file", flaky_delete)
    sleeps: list[float] = []

    outcomes = _installer(sleeps=sleeps).install(archive, install_dir)

    assert outcomes[0].status is EntryStatus.INSTALLED
    assert len(attempts) == 3
    assert sleeps == [1.0, 2.0]
    assert (install_dir / "app.exe").read_bytes() == b"new"


def test_permanent_lock_fails_only_that_entry(monkeypatch, tmp_path) -> None:
    install_dir = tmp_path / "app"
    install_dir.mkdir()
    (install_dir / "locked.dll").write_bytes(b"old")
    archive = _make_archive(tmp_path / "update.zip", {"locked.dll": b"new", "other.dll": b"other"})

    real_delete = installer._delete_file

    def stubborn_delete(path: Path) -> None:
        if path.name == "locked.dll":
            raise PermissionError("in use")
        real_delete(path)

    monkeypatch.setattr(installer, "_delete_file", stubborn_delete)
    sleeps: list[float] = []

    outcomes = _installer(sleeps=sleeps).install(archive, install_dir)

    assert [(o.path, o.status, o.reason) for o in outcomes] == [
        ("locked.dll", EntryStatus.FAILED, "locked_file"),
        ("other.dll", EntryStatus.INSTALLED, None),
    ]
    assert sleeps == [1.0, 2.0, 3.0, 4.0]
    assert (install_dir / "locked.dll").read_bytes() == b"old"
    assert (install_dir / "other.dll").read_bytes() == b"other"


def test_holder_processes_are_waited_on_between_attempts(monkeypatch, tmp_path) -> None:
    target = tmp_path / "app.exe"
    target.write_bytes(b"old")
    calls = []

    def flaky_delete(path: Path) -> None:
        if not calls:
            raise PermissionError("in use")
        path.unlink()

    monkeypatch.setattr(installer, "_delete_file", flaky_delete)
    worker = ArchiveInstaller(
        UpdaterConfig(process_wait_timeout=0.5),
        sleep=lambda seconds: None,
        wait_for_holders=lambda path, timeout: calls.append((path.name, timeout)) or 0,
    )

    assert worker.remove_with_retry(target) is True
    assert calls == [("app.exe", 0.5)]
    assert not target.exists()


def test_empty_archive_is_rejected(tmp_path) -> None:
    archive = _make_archive(tmp_path / "empty.zip", {})

    with pytest.raises(ArchiveCorruptError):
        _installer().install(archive, tmp_path / "app")


@pytest.mark.parametrize("content", [None, b"this is not a zip"])
def test_unreadable_archive_is_rejected(tmp_path, content) -> None:
    archive = tmp_path / "update.zip"
    if content is not None:
        archive.write_bytes(content)

    with pytest.raises(ArchiveCorruptError):
        _installer().install(archive, tmp_path / "app")


def test_install_into_empty_folder_adds_one_folder_and_one_file(tmp_path) -> None:
    install_dir = tmp_path / "app"
    install_dir.mkdir()
    archive = _make_archive(
        tmp_path / "update.zip",
        {"docs/": b"", "app.exe": b"binary", "tools/ffmpeg.exe": b"bundled"},
    )

    _installer().install(archive, install_dir)

    created = sorted(path.relative_to(install_dir).as_posix() for path in install_dir.rglob("*"))
    assert created == ["app.exe", "docs"]
    assert (install_dir / "docs").is_dir()
    assert (install_dir / "app.exe").is_file()
