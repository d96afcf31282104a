import os
import sys
from pathlib import Path

import pytest

from yt_updater import utils


def test_format_eta_uses_minutes_and_hours():
    assert utils.format_eta(75) == "01:15"
    assert utils.format_eta(3725) == "01:02:05"


def test_format_eta_for_unknown_time():
    assert utils.format_eta(-1) == "--:--"


@pytest.mark.parametrize(
    ("size", "expected"),
    [
        (512, "512 B"),
        (2048, "2.0 KB"),
        (5 * 1024 * 1024, "5.0 MB"),
        (3 * 1024 ** 3, "3.00 GB"),
    ],
)
def test_format_size(size, expected):
    assert utils.format_size(size) == expected


def test_format_speed_appends_per_second():
    assert utils.format_speed(2048) == "2.0 KB/s"


def test_app_base_dir_for_frozen_build(monkeypatch, tmp_path):
    executable = tmp_path / "ytDownloader.exe"
    executable.write_text("")
    monkeypatch.setattr(sys, "frozen", True, raising=False)
    monkeypatch.setattr(sys, "executable", str(executable))

    assert utils.app_base_dir() == tmp_path.resolve()


def test_app_base_dir_for_source_checkout(monkeypatch):
    monkeypatch.setattr(sys, "frozen", False, raising=False)

    assert utils.app_base_dir() == Path(utils.__file__).resolve().parent.parent


def test_resolve_executable_prefers_extra_roots(monkeypatch, tmp_path):
    tools = tmp_path / "tools"
    tools.mkdir()
    binary = tools / "yt-dlp.exe"
    binary.write_text("")
    if os.name != "nt":
        binary.chmod(0o755)
    monkeypatch.setattr(utils.shutil, "which", lambda name: None)

    assert utils.resolve_executable("yt-dlp.exe", extra_roots=[tools]) == binary


def test_resolve_executable_falls_back_to_path(monkeypatch, tmp_path):
    located = tmp_path / "ffmpeg"
    monkeypatch.setattr(utils.shutil, "which", lambda name: str(located) if name == "ffmpeg" else None)

    assert utils.resolve_executable("ffmpeg.exe", "ffmpeg", extra_roots=[tmp_path / "missing"]) == located


def test_resolve_executable_returns_none_when_missing(monkeypatch, tmp_path):
    monkeypatch.setattr(utils.shutil, "which", lambda name: None)
    monkeypatch.chdir(tmp_path)

    assert utils.resolve_executable("definitely-not-installed-tool.exe") is None
