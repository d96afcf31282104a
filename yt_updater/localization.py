"""Localization utilities and translation catalog."""

from __future__ import annotations

from typing import Dict

SUPPORTED_LANGUAGES = ("ko", "en")
DEFAULT_LANGUAGE = "ko"

TRANSLATIONS: Dict[str, Dict[str, str]] = {
    "installer_title": {"ko": "업데이트 중", "en": "Updating"},
    "status_preparing": {"ko": "업데이트 준비 중...", "en": "Preparing update..."},
    "status_extracting": {"ko": "압축 해제 중...", "en": "Extracting files..."},
    "status_extract_progress": {
        "ko": "압축 해제 중... ({current}/{total})",
        "en": "Extracting files... ({current}/{total})",
    },
    "status_complete": {"ko": "업데이트 완료!", "en": "Update complete!"},
    "status_relaunching": {
        "ko": "프로그램을 다시 실행합니다...",
        "en": "Restarting the application...",
    },
    "status_failed": {"ko": "업데이트 실패: {error}", "en": "Update failed: {error}"},
    "status_missing_args": {
        "ko": "인자가 부족합니다. 사용법: <ZIP 경로> <설치 폴더> <실행 파일>",
        "en": "Missing arguments. Usage: <archive> <install folder> <executable>",
    },
    "state_checking": {"ko": "⏳ 업데이트 확인 중...", "en": "⏳ Checking for updates..."},
    "state_no_update": {
        "ko": "✅ 최신 버전을 사용 중입니다.",
        "en": "✅ You are running the latest version.",
    },
    "state_update_found": {
        "ko": "새 {kind} {version} 버전이 있습니다.",
        "en": "A new {kind} {version} is available.",
    },
    "release_kind_pre": {"ko": "Pre-release", "en": "pre-release"},
    "release_kind_stable": {"ko": "정식 릴리스", "en": "release"},
    "state_downloading": {
        "ko": "[INFO] 업데이트 파일 다운로드 시작",
        "en": "[INFO] Downloading update payload",
    },
    "state_downloaded": {
        "ko": "[INFO] 다운로드 완료: {path}",
        "en": "[INFO] Download finished: {path}",
    },
    "state_installing": {"ko": "[INFO] 업데이트 설치 중", "en": "[INFO] Installing update"},
    "state_handoff_setup": {
        "ko": "[INFO] 설치 프로그램이 실행되었습니다. 현재 앱을 종료합니다.",
        "en": "[INFO] Setup started. Closing the application.",
    },
    "state_handoff_installer": {
        "ko": "[INFO] Updater가 실행되었습니다. 현재 앱을 종료합니다.",
        "en": "[INFO] Updater started. Closing the application.",
    },
    "state_failed": {"ko": "❌ 업데이트 실패: {error}", "en": "❌ Update failed: {error}"},
    "download_missing_tools": {
        "ko": "❌ tools 폴더에 yt-dlp.exe 또는 ffmpeg.exe가 없습니다.",
        "en": "❌ yt-dlp or ffmpeg is missing from the tools folder.",
    },
    "download_empty_path": {
        "ko": "❌ 저장 경로가 비어 있습니다.",
        "en": "❌ The save folder is empty.",
    },
    "download_done": {"ko": "✅ 다운로드 완료", "en": "✅ Download complete"},
    "download_eta_done": {"ko": "완료 ✅", "en": "Done ✅"},
    "download_error": {"ko": "❌ 오류: {error}", "en": "❌ Error: {error}"},
    "tool_ytdlp_missing": {
        "ko": "⏳ yt-dlp.exe가 tools 폴더에 없습니다. 다운로드 중...",
        "en": "⏳ yt-dlp is not in the tools folder. Downloading...",
    },
    "tool_ytdlp_downloaded": {
        "ko": "✅ yt-dlp.exe 다운로드 완료",
        "en": "✅ yt-dlp downloaded",
    },
    "tool_ytdlp_checking": {
        "ko": "⏳ yt-dlp 업데이트 확인 중...",
        "en": "⏳ Checking yt-dlp for updates...",
    },
    "tool_ytdlp_checked": {
        "ko": "✅ yt-dlp 업데이트 확인 완료",
        "en": "✅ yt-dlp update check finished",
    },
    "tool_ffmpeg_checking": {
        "ko": "⏳ ffmpeg 업데이트 확인 중...",
        "en": "⏳ Checking ffmpeg for updates...",
    },
    "tool_ffmpeg_current": {
        "ko": "✅ ffmpeg는 최신 버전입니다.",
        "en": "✅ ffmpeg is up to date.",
    },
    "tool_ffmpeg_downloading": {
        "ko": "⏳ ffmpeg 다운로드 중... (파일이 크므로 시간이 걸릴 수 있습니다)",
        "en": "⏳ Downloading ffmpeg... (large file, this can take a while)",
    },
    "tool_ffmpeg_installed": {
        "ko": "✅ ffmpeg 업데이트 완료 ({count}개 파일)",
        "en": "✅ ffmpeg updated ({count} files)",
    },
    "tool_ffmpeg_no_bin": {
        "ko": "❌ 압축 파일에서 bin 폴더를 찾을 수 없습니다.",
        "en": "❌ The archive has no bin folder.",
    },
    "tool_failed": {
        "ko": "❌ {tool} 업데이트 오류: {error}",
        "en": "❌ {tool} update failed: {error}",
    },
}


def translate(language: str, key: str, **kwargs: object) -> str:
    """Return a translated string for the provided key."""

    mapping = TRANSLATIONS.get(key, {})
    fallback = mapping.get(DEFAULT_LANGUAGE, key)
    text = mapping.get(language, fallback)
    try:
        return text.format(**kwargs)
    except (KeyError, IndexError, ValueError):
        # Wrong placeholders must not break the status display.
        return text


__all__ = ["DEFAULT_LANGUAGE", "SUPPORTED_LANGUAGES", "TRANSLATIONS", "translate"]
