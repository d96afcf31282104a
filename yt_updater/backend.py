"""Build yt-dlp command lines and run downloads through the process supervisor."""

from __future__ import annotations

import datetime as _dt
import enum
import importlib.util
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from .config import UpdaterConfig
from .errors import MissingDependencyError, UpdateError
from .events import CompletedEvent, EventSink, FailedEvent, LogEvent, ProgressEvent
from .localization import translate
from .logger import get_logger
from .supervisor import ProcessSupervisor
from .utils import resolve_executable

LOGGER = get_logger("yt_dlp")

__all__ = [
    "BackendError",
    "DownloadOptions",
    "VideoFormat",
    "build_download_args",
    "download_media",
    "locate_ffmpeg",
    "locate_yt_dlp",
]


class BackendError(RuntimeError):
    """Raised when the downloader tool reports a failure."""

    reason = "download_failed"


class VideoFormat(enum.Enum):
    BEST_VIDEO = 0
    VIDEO_1080P = 1
    VIDEO_720P = 2
    VIDEO_480P = 3
    AUDIO_MP3 = 4
    AUDIO_BEST = 5
    AUDIO_FLAC = 6


_AUDIO_TAGS = ["--embed-thumbnail", "--add-metadata"]

_FORMAT_ARGS: dict[VideoFormat, tuple[str, list[str]]] = {
    VideoFormat.BEST_VIDEO: ("best", ["-f", "bestvideo+bestaudio"]),
    VideoFormat.VIDEO_1080P: ("1080p", ["-f", "bestvideo[height=1080]+bestaudio/best[height=1080]"]),
    VideoFormat.VIDEO_720P: ("720p", ["-f", "bestvideo[height=720]+bestaudio/best[height=720]"]),
    VideoFormat.VIDEO_480P: ("480p", ["-f", "bestvideo[height=480]+bestaudio/best[height=480]"]),
    VideoFormat.AUDIO_MP3: (
        "audio_mp3",
        ["--extract-audio", "--audio-format", "mp3", "--audio-quality", "0", *_AUDIO_TAGS],
    ),
    VideoFormat.AUDIO_BEST: ("audio_best", ["--extract-audio", "--audio-format", "best", *_AUDIO_TAGS]),
    VideoFormat.AUDIO_FLAC: ("audio_flac", ["--extract-audio", "--audio-format", "flac", *_AUDIO_TAGS]),
}


@dataclass(frozen=True)
class DownloadOptions:
    """What to download and how to name it."""

    url: str
    save_path: str
    format: VideoFormat = VideoFormat.BEST_VIDEO
    single_video_only: bool = False
    download_subtitle: bool = False
    subtitle_lang: str = "ko"
    subtitle_format: str = "srt"
    save_thumbnail: bool = False
    use_structured_folder: bool = False
    channel_mode: bool = False
    max_downloads: int = 5


def build_download_args(
    options: DownloadOptions,
    timestamp: str,
    ffmpeg_location: Optional[Path] = None,
) -> list[str]:
    """Return the yt-dlp arguments for ``options`` (URL last)."""

    suffix, format_args = _FORMAT_ARGS[options.format]
    template = f"%(title)s_{timestamp}_{suffix}.%(ext)s"
    if options.use_structured_folder:
        template = f"%(uploader)s/%(playlist)s/{template}"

    args = ["--encoding", "utf-8", "--newline"]
    args += ["-o", str(Path(options.save_path) / template)]
    args += format_args
    if ffmpeg_location is not None:
        args += ["--ffmpeg-location", str(ffmpeg_location)]
    if options.single_video_only:
        args.append("--no-playlist")
    if options.download_subtitle:
        args += ["--write-sub", "--sub-lang", options.subtitle_lang, "--sub-format", options.subtitle_format]
    if options.save_thumbnail:
        args.append("--write-thumbnail")
    if options.channel_mode:
        args += ["--max-downloads", str(options.max_downloads)]
    args.append("--windows-filenames")
    args.append(options.url)
    return args


def locate_yt_dlp(config: UpdaterConfig) -> Optional[list[str]]:
    """Return the command prefix that starts yt-dlp, if any is available."""

    executable = resolve_executable("yt-dlp.exe", "yt-dlp", extra_roots=[config.tools_dir])
    if executable is not None:
        return [str(executable)]
    if importlib.util.find_spec("yt_dlp") is not None:
        return [sys.executable, "-m", "yt_dlp"]
    return None


def locate_ffmpeg(config: UpdaterConfig) -> Optional[Path]:
    return resolve_executable("ffmpeg.exe", "ffmpeg", extra_roots=[config.tools_dir])


def download_media(
    options: DownloadOptions,
    config: UpdaterConfig,
    sink: EventSink,
    supervisor: Optional[ProcessSupervisor] = None,
    timestamp: Optional[str] = None,
) -> bool:
    """Download ``options.url`` with yt-dlp, streaming its output to ``sink``.

    Failures are reported as a :class:`FailedEvent`; nothing is raised.
    """

    def _t(key: str, **kwargs: object) -> str:
        return translate(config.language, key, **kwargs)

    try:
        command = locate_yt_dlp(config)
        ffmpeg = locate_ffmpeg(config)
        if command is None or ffmpeg is None:
            raise MissingDependencyError(_t("download_missing_tools"))
        if not options.save_path.strip():
            raise BackendError(_t("download_empty_path"))

        Path(options.save_path).mkdir(parents=True, exist_ok=True)
        stamp = timestamp or _dt.datetime.now().strftime("%Y%m%d_%H%M%S")
        args = build_download_args(options, stamp, ffmpeg_location=ffmpeg.parent)
        sink(ProgressEvent(percent=0.0))

        runner = supervisor or ProcessSupervisor.from_config(config, sink)
        returncode = runner.run(command[0], [*command[1:], *args], config.child_env)
        if returncode != 0:
            raise BackendError(f"yt-dlp exited with code {returncode}")
    except (BackendError, UpdateError, OSError) as exc:
        reason = getattr(exc, "reason", "download_failed")
        LOGGER.error("Download of %s failed: %s", options.url, exc)
        sink(LogEvent(_t("download_error", error=exc)))
        sink(FailedEvent(reason, str(exc)))
        return False

    sink(LogEvent(_t("download_done")))
    sink(ProgressEvent(percent=100.0, eta=_t("download_eta_done")))
    sink(CompletedEvent(options.url))
    return True
