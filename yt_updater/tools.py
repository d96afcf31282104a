"""Keep the bundled yt-dlp and ffmpeg binaries in the tools folder current."""

from __future__ import annotations

import logging
import zipfile
from pathlib import Path, PurePosixPath
from typing import Optional

from .config import UpdaterConfig
from .errors import ArchiveCorruptError, AssetNotFoundError, UpdateError
from .events import EventSink, LogEvent, null_sink
from .installer import ArchiveInstaller, normalize_entry_path
from .localization import translate
from .logger import get_logger
from .supervisor import ProcessSupervisor
from .updates import ReleaseAsset, ReleaseInfo, download_file, fetch_json

LOGGER = get_logger("Tools")

YT_DLP_DOWNLOAD_URL = "https://github.com/yt-dlp/yt-dlp/releases/latest/download/yt-dlp.exe"
YT_DLP_EXECUTABLE = "yt-dlp.exe"
FFMPEG_RELEASE_URL = "https://api.github.com/repos/BtbN/FFmpeg-Builds/releases/latest"
FFMPEG_ASSET_MARKER = "master-latest-win64-gpl-shared"
FFMPEG_EXECUTABLE = "ffmpeg.exe"
FFMPEG_STAMP_FILE = "ffmpeg.version"
FFMPEG_DOWNLOAD_NAME = "ffmpeg_update.zip"


def update_yt_dlp(
    config: UpdaterConfig,
    sink: EventSink = null_sink,
    supervisor: Optional[ProcessSupervisor] = None,
) -> bool:
    """Fetch yt-dlp when it is missing, then let it update itself with ``-U``."""

    def _t(key: str, **kwargs: object) -> str:
        return translate(config.language, key, **kwargs)

    target = config.tools_dir / YT_DLP_EXECUTABLE
    try:
        config.tools_dir.mkdir(parents=True, exist_ok=True)
        if not target.exists():
            sink(LogEvent(_t("tool_ytdlp_missing")))
            download_file(YT_DLP_DOWNLOAD_URL, target, config)
            sink(LogEvent(_t("tool_ytdlp_downloaded")))

        sink(LogEvent(_t("tool_ytdlp_checking")))
        runner = supervisor or ProcessSupervisor.from_config(config, sink)
        returncode = runner.run(target, ["-U"], config.child_env)
        if returncode != 0:
            LOGGER.warning("yt-dlp -U exited with code %s", returncode)
        sink(LogEvent(_t("tool_ytdlp_checked")))
        return returncode == 0
    except (UpdateError, OSError) as exc:
        LOGGER.error("yt-dlp update failed: %s", exc)
        sink(LogEvent(_t("tool_failed", tool="yt-dlp", error=exc), logging.ERROR))
        return False


def select_ffmpeg_asset(release: ReleaseInfo) -> ReleaseAsset:
    for asset in release.assets:
        name = asset.name.casefold()
        if FFMPEG_ASSET_MARKER in name and name.endswith(".zip"):
            return asset
    raise AssetNotFoundError(f"no {FFMPEG_ASSET_MARKER} build in release {release.tag}")


def read_installed_ffmpeg_tag(tools_dir: Path) -> Optional[str]:
    stamp = tools_dir / FFMPEG_STAMP_FILE
    try:
        return stamp.read_text(encoding="utf-8").strip() or None
    except OSError:
        return None


def install_ffmpeg_binaries(
    archive_path: Path,
    tools_dir: Path,
    installer: ArchiveInstaller,
) -> int:
    """Copy the files of the archive's ``bin`` folder flat into ``tools_dir``.

    Returns the number of files written. Files that stay locked after every
    retry are left as they were.
    """

    try:
        archive = zipfile.ZipFile(archive_path)
    except (zipfile.BadZipFile, OSError) as exc:
        raise ArchiveCorruptError(str(exc)) from exc

    written = 0
    with archive:
        binaries = []
        for info in archive.infolist():
            path = PurePosixPath(normalize_entry_path(info.filename))
            if not info.is_dir() and len(path.parts) >= 2 and path.parts[-2].casefold() == "bin":
                binaries.append((info, path.name))
        if not binaries:
            raise ArchiveCorruptError("archive has no bin folder")

        tools_dir.mkdir(parents=True, exist_ok=True)
        for info, name in binaries:
            destination = tools_dir / name
            if destination.exists() and not installer.remove_with_retry(destination):
                continue
            try:
                installer.write_entry(archive, info, destination)
            except (OSError, zipfile.BadZipFile) as exc:
                LOGGER.warning("Failed to write %s: %s", destination, exc)
                continue
            written += 1
    return written


def update_ffmpeg(
    config: UpdaterConfig,
    sink: EventSink = null_sink,
    installer: Optional[ArchiveInstaller] = None,
) -> bool:
    """Install the newest ffmpeg build unless the installed one has the same tag."""

    def _t(key: str, **kwargs: object) -> str:
        return translate(config.language, key, **kwargs)

    archive_path = config.temp_dir / FFMPEG_DOWNLOAD_NAME
    try:
        sink(LogEvent(_t("tool_ffmpeg_checking")))
        payload = fetch_json(FFMPEG_RELEASE_URL, config)
        if not isinstance(payload, dict):
            raise AssetNotFoundError("unexpected ffmpeg release payload")
        release = ReleaseInfo.from_payload(payload)

        installed_tag = read_installed_ffmpeg_tag(config.tools_dir)
        if installed_tag == release.tag and (config.tools_dir / FFMPEG_EXECUTABLE).exists():
            sink(LogEvent(_t("tool_ffmpeg_current")))
            return True

        asset = select_ffmpeg_asset(release)
        sink(LogEvent(_t("tool_ffmpeg_downloading")))
        try:
            download_file(asset.download_url, archive_path, config)
            count = install_ffmpeg_binaries(
                archive_path,
                config.tools_dir,
                installer or ArchiveInstaller(config, sink),
            )
        finally:
            archive_path.unlink(missing_ok=True)

        (config.tools_dir / FFMPEG_STAMP_FILE).write_text(release.tag, encoding="utf-8")
        LOGGER.info("ffmpeg %s installed (%d files)", release.tag, count)
        sink(LogEvent(_t("tool_ffmpeg_installed", count=count)))
        return True
    except ArchiveCorruptError as exc:
        LOGGER.error("ffmpeg archive unusable: %s", exc)
        sink(LogEvent(_t("tool_ffmpeg_no_bin"), logging.ERROR))
        return False
    except (UpdateError, OSError) as exc:
        LOGGER.error("ffmpeg update failed: %s", exc)
        sink(LogEvent(_t("tool_failed", tool="ffmpeg", error=exc), logging.ERROR))
        return False


def update_all_tools(config: UpdaterConfig, sink: EventSink = null_sink) -> dict[str, bool]:
    return {
        "yt-dlp": update_yt_dlp(config, sink),
        "ffmpeg": update_ffmpeg(config, sink),
    }


__all__ = [
    "install_ffmpeg_binaries",
    "read_installed_ffmpeg_tag",
    "select_ffmpeg_asset",
    "update_all_tools",
    "update_ffmpeg",
    "update_yt_dlp",
]
