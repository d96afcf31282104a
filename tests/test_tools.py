"""Tests for the yt-dlp and ffmpeg tool updates."""

from __future__ import annotations

import zipfile
from pathlib import Path

import pytest

from yt_updater import tools
from yt_updater.config import UpdaterConfig
from yt_updater.errors import NetworkError
from yt_updater.installer import ArchiveInstaller
from yt_updater.updates import ReleaseAsset, ReleaseInfo

FFMPEG_ASSET = "ffmpeg-master-latest-win64-gpl-shared.zip"


def _config(tmp_path: Path) -> UpdaterConfig:
    return UpdaterConfig(temp_dir=tmp_path / "tmp", tools_dir=tmp_path / "tools", language="en")


def _release_payload(tag: str = "latest-2024-06-01") -> dict[str, object]:
    return {
        "tag_name": tag,
        "assets": [
            {"name": "ffmpeg-master-latest-linux64-gpl.tar.xz", "browser_download_url": "https://x/linux"},
            {"name": FFMPEG_ASSET, "browser_download_url": "https://x/win"},
        ],
    }


def _write_ffmpeg_zip(destination: Path) -> None:
    destination.parent.mkdir(parents=True, exist_ok=True)
    with zipfile.ZipFile(destination, "w") as archive:
        archive.writestr("ffmpeg-master/bin/ffmpeg.exe", b"ffmpeg")
        archive.writestr("ffmpeg-master/bin/ffprobe.exe", b"ffprobe")
        archive.writestr("ffmpeg-master/doc/readme.txt", b"docs")


class _FakeSupervisor:
    def __init__(self) -> None:
        self.calls = []

    def run(self, executable, args=(), env_overrides=None, *, cwd=None):  # type: ignore[no-untyped-def]
        self.calls.append((Path(executable).name, list(args)))
        return 0


def test_update_yt_dlp_downloads_when_missing(monkeypatch, tmp_path) -> None:
    config = _config(tmp_path)
    downloads = []

    def fake_download(url, destination, cfg, progress_callback=None):  # type: ignore[no-untyped-def]
        downloads.append(url)
        destination.write_bytes(b"exe")
        return destination

    monkeypatch.setattr(tools, "download_file", fake_download)
    supervisor = _FakeSupervisor()

    assert tools.update_yt_dlp(config, supervisor=supervisor) is True

    assert downloads == [tools.YT_DLP_DOWNLOAD_URL]
    assert supervisor.calls == [("yt-dlp.exe", ["-U"])]


def test_update_yt_dlp_skips_download_when_present(monkeypatch, tmp_path) -> None:
    config = _config(tmp_path)
    config.tools_dir.mkdir()
    (config.tools_dir / "yt-dlp.exe").write_bytes(b"exe")
    monkeypatch.setattr(tools, "download_file", lambda *args, **kwargs: pytest.fail("must not download"))
    supervisor = _FakeSupervisor()

    assert tools.update_yt_dlp(config, supervisor=supervisor) is True
    assert supervisor.calls == [("yt-dlp.exe", ["-U"])]


def test_update_yt_dlp_reports_network_failure(monkeypatch, tmp_path) -> None:
    def failing_download(*args, **kwargs):  # type: ignore[no-untyped-def]
        raise NetworkError("offline")

    monkeypatch.setattr(tools, "download_file", failing_download)

    assert tools.update_yt_dlp(_config(tmp_path), supervisor=_FakeSupervisor()) is False


def test_select_ffmpeg_asset_picks_windows_shared_zip() -> None:
    release = ReleaseInfo.from_payload(_release_payload())

    assert tools.select_ffmpeg_asset(release) == ReleaseAsset(FFMPEG_ASSET, "https://x/win")


def test_update_ffmpeg_installs_bin_folder(monkeypatch, tmp_path) -> None:
    config = _config(tmp_path)
    config.tools_dir.mkdir()
    (config.tools_dir / "ffmpeg.exe").write_bytes(b"old")
    monkeypatch.setattr(tools, "fetch_json", lambda url, cfg: _release_payload())

    def fake_download(url, destination, cfg, progress_callback=None):  # type: ignore[no-untyped-def]
        assert url == "https://x/win"
        _write_ffmpeg_zip(destination)
        return destination

    monkeypatch.setattr(tools, "download_file", fake_download)
    installer = ArchiveInstaller(config, sleep=lambda s: None, wait_for_holders=lambda p, t: 0)

    assert tools.update_ffmpeg(config, installer=installer) is True

    assert (config.tools_dir / "ffmpeg.exe").read_bytes() == b"ffmpeg"
    assert (config.tools_dir / "ffprobe.exe").read_bytes() == b"ffprobe"
    assert not (config.tools_dir / "readme.txt").exists()
    assert tools.read_installed_ffmpeg_tag(config.tools_dir) == "latest-2024-06-01"
    assert not (config.temp_dir / tools.FFMPEG_DOWNLOAD_NAME).exists()


def test_update_ffmpeg_skips_current_build(monkeypatch, tmp_path) -> None:
    config = _config(tmp_path)
    config.tools_dir.mkdir()
    (config.tools_dir / "ffmpeg.exe").write_bytes(b"current")
    (config.tools_dir / tools.FFMPEG_STAMP_FILE).write_text("latest-2024-06-01", encoding="utf-8")
    monkeypatch.setattr(tools, "fetch_json", lambda url, cfg: _release_payload())
    monkeypatch.setattr(tools, "download_file", lambda *args, **kwargs: pytest.fail("must not download"))

    assert tools.update_ffmpeg(config) is True
    assert (config.tools_dir / "ffmpeg.exe").read_bytes() == b"current"


def test_update_ffmpeg_without_bin_folder_fails(monkeypatch, tmp_path) -> None:
    config = _config(tmp_path)
    monkeypatch.setattr(tools, "fetch_json", lambda url, cfg: _release_payload())

    def fake_download(url, destination, cfg, progress_callback=None):  # type: ignore[no-untyped-def]
        destination.parent.mkdir(parents=True, exist_ok=True)
        with zipfile.ZipFile(destination, "w") as archive:
            archive.writestr("readme.txt", b"nothing here")
        return destination

    monkeypatch.setattr(tools, "download_file", fake_download)

    assert tools.update_ffmpeg(config) is False
    assert not (config.temp_dir / tools.FFMPEG_DOWNLOAD_NAME).exists()
    assert tools.read_installed_ffmpeg_tag(config.tools_dir) is None
