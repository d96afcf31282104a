import sys

import pytest

from yt_updater import updater
from yt_updater.config import UpdaterConfig
from yt_updater.errors import MissingDependencyError
from yt_updater.updater import (
    build_installer_command,
    cleanup_stale_downloads,
    launch_setup_installer,
)


def test_build_installer_command_from_source(monkeypatch, tmp_path) -> None:
    monkeypatch.setattr(sys, "frozen", False, raising=False)

    command = build_installer_command(tmp_path / "u.zip", tmp_path / "app", tmp_path / "app" / "a.exe")

    assert command == [
        sys.executable,
        "-m",
        "yt_updater.installer_app",
        str(tmp_path / "u.zip"),
        str(tmp_path / "app"),
        str(tmp_path / "app" / "a.exe"),
    ]


def test_build_installer_command_prefers_updater_subfolder(monkeypatch, tmp_path) -> None:
    monkeypatch.setattr(sys, "frozen", True, raising=False)
    (tmp_path / "updater").mkdir()
    nested = tmp_path / "updater" / "Updater.exe"
    nested.write_text("")
    (tmp_path / "Updater.exe").write_text("")

    command = build_installer_command(tmp_path / "u.zip", tmp_path, tmp_path / "a.exe", base_dir=tmp_path)

    assert command[0] == str(nested)
    assert command[1:] == [str(tmp_path / "u.zip"), str(tmp_path), str(tmp_path / "a.exe")]


def test_build_installer_command_requires_helper_when_frozen(monkeypatch, tmp_path) -> None:
    monkeypatch.setattr(sys, "frozen", True, raising=False)

    with pytest.raises(MissingDependencyError):
        build_installer_command(tmp_path / "u.zip", tmp_path, tmp_path / "a.exe", base_dir=tmp_path)


def test_launch_setup_installer_runs_silently(monkeypatch, tmp_path) -> None:
    setup = tmp_path / "ytDownloader-setup.exe"
    setup.write_text("")
    captured = {}

    def fake_popen(cmd, **kwargs):  # type: ignore[no-untyped-def]
        captured["cmd"] = cmd
        captured["cwd"] = kwargs["cwd"]
        return object()

    monkeypatch.setattr(updater.subprocess, "Popen", fake_popen)

    launch_setup_installer(setup)

    assert captured == {"cmd": [str(setup), "/VERYSILENT", "/CLOSEAPPLICATIONS"], "cwd": str(tmp_path)}


def test_launch_setup_installer_requires_payload(tmp_path) -> None:
    with pytest.raises(MissingDependencyError):
        launch_setup_installer(tmp_path / "missing.exe")


def test_cleanup_stale_downloads_removes_payloads(tmp_path) -> None:
    config = UpdaterConfig(temp_dir=tmp_path)
    stale = [
        tmp_path / "ytDownloader-setup.exe",
        tmp_path / "ytDownloader_update.zip",
        tmp_path / "ytDownloader_update.zip.download",
    ]
    for path in stale:
        path.write_text("x")
    unrelated = tmp_path / "other.zip"
    unrelated.write_text("keep")

    removed = cleanup_stale_downloads(config)

    assert sorted(removed) == sorted(stale)
    assert not any(path.exists() for path in stale)
    assert unrelated.exists()
