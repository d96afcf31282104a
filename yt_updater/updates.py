"""Check the release feed and download the payload for this deployment."""

from __future__ import annotations

import enum
import http.client
import json
import re
import urllib.error
import urllib.request
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Iterable, Optional

from .config import UpdaterConfig
from .errors import (
    AssetNotFoundError,
    MissingDependencyError,
    NetworkError,
    TransientIOError,
    UpdateError,
)
from .logger import get_logger
from .utils import current_executable, is_frozen

LOGGER = get_logger("Updates")

ProgressCallback = Callable[[int, Optional[int]], None]


class DeploymentVariant(str, enum.Enum):
    INSTALLED = "installed"
    PORTABLE = "portable"


@dataclass(frozen=True)
class ReleaseAsset:
    name: str
    download_url: str
    size: Optional[int] = None


@dataclass(frozen=True)
class ReleaseInfo:
    """One entry of the release feed."""

    tag: str
    prerelease: bool
    assets: tuple[ReleaseAsset, ...]
    html_url: str = ""

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "ReleaseInfo":
        assets: list[ReleaseAsset] = []
        for raw in payload.get("assets") or []:
            if not isinstance(raw, dict):
                continue
            size = raw.get("size")
            assets.append(
                ReleaseAsset(
                    name=str(raw.get("name") or ""),
                    download_url=str(raw.get("browser_download_url") or ""),
                    size=int(size) if isinstance(size, int) else None,
                )
            )
        return cls(
            tag=str(payload.get("tag_name") or "").strip(),
            prerelease=bool(payload.get("prerelease", False)),
            assets=tuple(assets),
            html_url=str(payload.get("html_url") or ""),
        )


@dataclass(frozen=True)
class UpdatePlan:
    """Everything needed to act on one available update."""

    latest_version: str
    prerelease: bool
    asset_name: str
    payload_url: str
    variant: DeploymentVariant
    target_executable: Path
    install_dir: Path
    download_path: Path


class CheckStatus(enum.Enum):
    NO_UPDATE = "no_update"
    UPDATE_AVAILABLE = "update_available"
    FAILED = "failed"


@dataclass(frozen=True)
class UpdateCheck:
    """Outcome of :func:`check_for_update`."""

    status: CheckStatus
    plan: Optional[UpdatePlan] = None
    reason: Optional[str] = None
    message: str = ""

    @classmethod
    def no_update(cls) -> "UpdateCheck":
        return cls(CheckStatus.NO_UPDATE)

    @classmethod
    def failed(cls, error: UpdateError) -> "UpdateCheck":
        return cls(CheckStatus.FAILED, reason=error.reason, message=str(error))


_LEADING_DIGITS_RE = re.compile(r"(\d+)")


def parse_version(value: str) -> tuple[int, ...]:
    """Return a comparable tuple for ``value``.

    Build metadata after ``+`` and a single leading tag marker such as ``v``
    are ignored. Missing minor/patch parts count as zero; a value that does
    not start with digits parses as ``(0, 0, 0)``.
    """

    cleaned = value.strip().split("+", 1)[0]
    if cleaned and not cleaned[0].isdigit():
        cleaned = cleaned[1:]
    if not cleaned:
        return (0, 0, 0)
    numbers: list[int] = []
    for component in cleaned.split("."):
        match = _LEADING_DIGITS_RE.match(component)
        if match is None:
            return (0, 0, 0)
        numbers.append(int(match.group(1)))
    while len(numbers) < 3:
        numbers.append(0)
    return tuple(numbers)


def compare_versions(left: str, right: str) -> int:
    """Return -1, 0 or 1 as ``left`` sorts before, equal to or after ``right``."""

    left_tuple = parse_version(left)
    right_tuple = parse_version(right)
    length = max(len(left_tuple), len(right_tuple))
    left_tuple = left_tuple + (0,) * (length - len(left_tuple))
    right_tuple = right_tuple + (0,) * (length - len(right_tuple))
    return (left_tuple > right_tuple) - (left_tuple < right_tuple)


def is_version_newer(latest: str, current: str) -> bool:
    return compare_versions(latest, current) > 0


def _normalized(path: Path | str) -> str:
    return str(path).replace("\\", "/").rstrip("/").casefold()


def detect_variant(executable: Path, config: UpdaterConfig) -> DeploymentVariant:
    """Installed copies live under the per-user application marker folder."""

    if _normalized(config.installed_marker) in _normalized(executable.parent):
        return DeploymentVariant.INSTALLED
    return DeploymentVariant.PORTABLE


def asset_name_for(variant: DeploymentVariant, config: UpdaterConfig) -> str:
    if variant is DeploymentVariant.INSTALLED:
        return config.installed_asset_name
    return config.portable_asset_name


def download_path_for(variant: DeploymentVariant, config: UpdaterConfig) -> Path:
    if variant is DeploymentVariant.INSTALLED:
        return config.temp_dir / config.installed_download_name
    return config.temp_dir / config.portable_download_name


def select_asset(assets: Iterable[ReleaseAsset], target_name: str) -> ReleaseAsset:
    """Return the asset called ``target_name`` (case-insensitive)."""

    available = list(assets)
    wanted = target_name.casefold()
    for asset in available:
        if asset.name.casefold() == wanted:
            return asset
    LOGGER.error("Update asset %s not found in release", target_name)
    LOGGER.info("Available assets:")
    for asset in available:
        LOGGER.info("  - %s", asset.name)
    raise AssetNotFoundError(target_name)


def _build_request(url: str, config: UpdaterConfig, accept: Optional[str] = None) -> urllib.request.Request:
    headers = {"User-Agent": config.user_agent}
    if accept:
        headers["Accept"] = accept
    return urllib.request.Request(url, headers=headers)


def _open(request: urllib.request.Request, timeout: float) -> Any:
    try:
        response = urllib.request.urlopen(request, timeout=timeout)
    except urllib.error.HTTPError as exc:
        raise NetworkError(f"HTTP {exc.code} for {request.full_url}") from exc
    except (urllib.error.URLError, OSError) as exc:
        raise NetworkError(str(getattr(exc, "reason", exc))) from exc
    status = getattr(response, "status", 200)
    if status is not None and not 200 <= int(status) < 300:
        response.close()
        raise NetworkError(f"HTTP {status} for {request.full_url}")
    return response


def fetch_json(url: str, config: UpdaterConfig) -> Any:
    request = _build_request(url, config, accept="application/vnd.github+json")
    with _open(request, config.network_timeout) as response:
        try:
            body = response.read()
        except (OSError, http.client.HTTPException) as exc:
            raise NetworkError(str(exc)) from exc
    try:
        return json.loads(body.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise NetworkError("invalid_response") from exc


def fetch_releases(config: UpdaterConfig) -> list[ReleaseInfo]:
    """Return the release feed, newest first."""

    payload = fetch_json(config.releases_url, config)
    if not isinstance(payload, list):
        raise NetworkError("invalid_response")
    return [ReleaseInfo.from_payload(item) for item in payload if isinstance(item, dict)]


def check_for_update(
    config: UpdaterConfig,
    current_version: str,
    executable: Optional[Path] = None,
) -> UpdateCheck:
    """Decide whether the newest release should replace ``current_version``."""

    try:
        releases = fetch_releases(config)
        if not releases:
            LOGGER.info("No releases published yet")
            return UpdateCheck.no_update()

        latest = releases[0]
        LOGGER.info("Current version: %s", ".".join(map(str, parse_version(current_version))))
        LOGGER.info("Latest version: %s", ".".join(map(str, parse_version(latest.tag))))
        if not is_version_newer(latest.tag, current_version):
            LOGGER.info("Already running the latest version")
            return UpdateCheck.no_update()

        if executable is None:
            if not is_frozen():
                # A source checkout would otherwise target the interpreter folder.
                raise MissingDependencyError("self-update needs a frozen build")
            executable = current_executable()
        executable = executable.resolve()
        variant = detect_variant(executable, config)
        asset = select_asset(latest.assets, asset_name_for(variant, config))
        plan = UpdatePlan(
            latest_version=latest.tag,
            prerelease=latest.prerelease,
            asset_name=asset.name,
            payload_url=asset.download_url,
            variant=variant,
            target_executable=executable,
            install_dir=executable.parent,
            download_path=download_path_for(variant, config),
        )
        LOGGER.info("Deployment variant: %s", variant.value)
        LOGGER.info("Selected asset: %s", asset.name)
        LOGGER.info("Download URL: %s", asset.download_url)
        return UpdateCheck(CheckStatus.UPDATE_AVAILABLE, plan=plan)
    except UpdateError as exc:
        LOGGER.error("Update check failed: %s", exc)
        return UpdateCheck.failed(exc)


def download_file(
    url: str,
    destination: Path,
    config: UpdaterConfig,
    progress_callback: Optional[ProgressCallback] = None,
) -> Path:
    """Stream ``url`` into ``destination`` chunk by chunk."""

    destination.parent.mkdir(parents=True, exist_ok=True)
    partial = destination.with_name(destination.name + ".download")
    request = _build_request(url, config)
    try:
        with _open(request, config.download_timeout) as response:
            header = response.getheader("Content-Length")
            total = int(header) if header and header.isdigit() else None
            try:
                handle = partial.open("wb")
            except OSError as exc:
                raise TransientIOError(str(exc)) from exc
            downloaded = 0
            with handle:
                while True:
                    try:
                        chunk = response.read(config.chunk_size)
                    except (OSError, http.client.HTTPException) as exc:
                        raise NetworkError(str(exc)) from exc
                    if not chunk:
                        break
                    try:
                        handle.write(chunk)
                    except OSError as exc:
                        raise TransientIOError(str(exc)) from exc
                    downloaded += len(chunk)
                    if progress_callback:
                        progress_callback(downloaded, total)
        try:
            partial.replace(destination)
        except OSError as exc:
            raise TransientIOError(str(exc)) from exc
    except UpdateError:
        partial.unlink(missing_ok=True)
        raise

    LOGGER.info("Downloaded %s (%s bytes)", destination, destination.stat().st_size)
    return destination


def download_update(
    plan: UpdatePlan,
    config: UpdaterConfig,
    progress_callback: Optional[ProgressCallback] = None,
) -> Path:
    return download_file(plan.payload_url, plan.download_path, config, progress_callback)


__all__ = [
    "CheckStatus",
    "DeploymentVariant",
    "ReleaseAsset",
    "ReleaseInfo",
    "UpdateCheck",
    "UpdatePlan",
    "asset_name_for",
    "check_for_update",
    "compare_versions",
    "detect_variant",
    "download_file",
    "download_path_for",
    "download_update",
    "fetch_json",
    "fetch_releases",
    "is_version_newer",
    "parse_version",
    "select_asset",
]
