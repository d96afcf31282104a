"""State machine tying the update check, download, install and relaunch together."""

from __future__ import annotations

import enum
import logging
import threading
import time
from pathlib import Path
from typing import Callable, Optional

from .config import UpdaterConfig
from .errors import UpdateError, UpdateInProgressError
from .events import CompletedEvent, EventSink, FailedEvent, LogEvent, ProgressEvent, null_sink
from .installer import ArchiveInstaller, EntryOutcome
from .localization import translate
from .logger import get_logger
from .relauncher import finish_and_relaunch, terminate_current_process
from .updater import (
    build_installer_command,
    cleanup_stale_downloads,
    launch_installer,
    launch_setup_installer,
)
from .updates import (
    CheckStatus,
    DeploymentVariant,
    UpdateCheck,
    UpdatePlan,
    check_for_update,
    download_update,
)
from .utils import format_eta, format_speed
from .version import __version__

LOGGER = get_logger("Pipeline")


class PipelineState(str, enum.Enum):
    IDLE = "idle"
    CHECKING = "checking"
    NO_UPDATE_FOUND = "no_update_found"
    UPDATE_FOUND = "update_found"
    DOWNLOADING = "downloading"
    INSTALLING = "installing"
    RELAUNCHING = "relaunching"
    FAILED = "failed"
    TERMINATED = "terminated"


class PlanGuard:
    """Allow a single update plan to be acted upon per process."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._claimed = False

    @property
    def claimed(self) -> bool:
        return self._claimed

    def claim(self) -> None:
        with self._lock:
            if self._claimed:
                raise UpdateInProgressError("an update is already being applied")
            self._claimed = True


PROCESS_PLAN_GUARD = PlanGuard()


class DownloadReporter:
    """Turn byte counts into progress events with speed and remaining time."""

    def __init__(self, sink: EventSink, clock: Callable[[], float] = time.monotonic) -> None:
        self._sink = sink
        self._clock = clock
        self._started = clock()

    def __call__(self, downloaded: int, total: Optional[int]) -> None:
        elapsed = max(self._clock() - self._started, 1e-6)
        speed = downloaded / elapsed
        if total:
            percent = min(downloaded * 100.0 / total, 100.0)
            eta = format_eta((total - downloaded) / speed) if speed > 0 else format_eta(-1)
        else:
            percent = 0.0
            eta = "-"
        self._sink(
            ProgressEvent(
                percent=percent,
                speed=format_speed(speed),
                eta=eta,
                current=downloaded,
                total=total,
            )
        )


class UpdatePipeline:
    """Drive one self-update from the release check to the relaunch.

    Every failure ends in ``FAILED``, then the temporary payload is removed,
    then the pipeline is ``TERMINATED``. Nothing raised by a stage escapes to
    the caller.
    """

    def __init__(
        self,
        config: UpdaterConfig,
        sink: EventSink = null_sink,
        *,
        current_version: str = __version__,
        executable: Optional[Path] = None,
        in_process: bool = False,
        guard: PlanGuard = PROCESS_PLAN_GUARD,
        installer: Optional[ArchiveInstaller] = None,
        sleep: Callable[[float], None] = time.sleep,
        exit_process: Callable[[int], None] = terminate_current_process,
    ) -> None:
        self.config = config
        self.current_version = current_version
        self.executable = executable
        self.in_process = in_process
        self.state = PipelineState.IDLE
        self.history: list[PipelineState] = [PipelineState.IDLE]
        self.outcomes: list[EntryOutcome] = []
        self._sink = sink
        self._guard = guard
        self._installer = installer or ArchiveInstaller(config, sink, sleep=sleep)
        self._sleep = sleep
        self._exit_process = exit_process

    def _t(self, key: str, **kwargs: object) -> str:
        return translate(self.config.language, key, **kwargs)

    def _log(self, text: str, level: int = logging.INFO) -> None:
        self._sink(LogEvent(text, level))

    def _transition(self, state: PipelineState) -> None:
        LOGGER.info("Update state: %s -> %s", self.state.value, state.value)
        self.state = state
        self.history.append(state)

    def _fail(self, reason: str, message: str) -> None:
        self._transition(PipelineState.FAILED)
        LOGGER.error("Update failed (%s): %s", reason, message)
        self._log(self._t("state_failed", error=message), logging.ERROR)
        self._sink(FailedEvent(reason, message))

    def _cleanup(self, payload: Optional[Path]) -> None:
        if payload is None or not payload.exists():
            return
        try:
            payload.unlink()
            LOGGER.info("Removed temporary payload %s", payload)
        except OSError as exc:
            LOGGER.warning("Could not remove temporary payload %s: %s", payload, exc)

    def _terminate(self, code: int) -> None:
        self._transition(PipelineState.TERMINATED)
        self._exit_process(code)

    def check(self) -> UpdateCheck:
        self._transition(PipelineState.CHECKING)
        for stale in cleanup_stale_downloads(self.config):
            LOGGER.info("Removed payload left by an earlier update: %s", stale)
        self._log(self._t("state_checking"))
        result = check_for_update(self.config, self.current_version, self.executable)
        if result.status is CheckStatus.NO_UPDATE:
            self._transition(PipelineState.NO_UPDATE_FOUND)
            self._log(self._t("state_no_update"))
        elif result.status is CheckStatus.UPDATE_AVAILABLE and result.plan is not None:
            self._transition(PipelineState.UPDATE_FOUND)
            kind = self._t("release_kind_pre" if result.plan.prerelease else "release_kind_stable")
            self._log(self._t("state_update_found", kind=kind, version=result.plan.latest_version))
        else:
            self._fail(result.reason or "update_failed", result.message)
            self._transition(PipelineState.TERMINATED)
        return result

    def apply(self, plan: UpdatePlan) -> bool:
        """Download ``plan`` and install it or hand it to the installer process.

        Returns ``True`` when the payload was installed or handed over.
        """

        if not self._claim_plan():
            return False

        handed_off = False
        failed = False
        try:
            self._transition(PipelineState.DOWNLOADING)
            self._log(self._t("state_downloading"))
            download_update(plan, self.config, DownloadReporter(self._sink))
            self._log(self._t("state_downloaded", path=plan.download_path))

            self._transition(PipelineState.INSTALLING)
            if plan.variant is DeploymentVariant.INSTALLED:
                launch_setup_installer(plan.download_path)
                handed_off = True
                self._log(self._t("state_handoff_setup"))
            elif not self.in_process:
                command = build_installer_command(
                    plan.download_path, plan.install_dir, plan.target_executable
                )
                launch_installer(command)
                handed_off = True
                self._log(self._t("state_handoff_installer"))
            else:
                self._install(plan.download_path, plan.install_dir)
        except UpdateError as exc:
            failed = True
            self._fail(exc.reason, str(exc))
        except Exception as exc:  # pylint: disable=broad-except
            failed = True
            LOGGER.error("Unexpected update error", exc_info=True)
            self._fail("unexpected", str(exc))
        finally:
            # A launched setup or installer process owns the payload from here on.
            if not handed_off:
                self._cleanup(plan.download_path)

        if failed:
            self._transition(PipelineState.TERMINATED)
            return False
        if handed_off:
            self._sink(CompletedEvent(str(plan.download_path)))
            self._sleep(self.config.exit_delay)
            self._terminate(0)
            return True
        self._relaunch(plan.target_executable)
        return True

    def run(self) -> UpdateCheck:
        """Check for an update and apply it when one is available."""

        result = self.check()
        if result.status is CheckStatus.UPDATE_AVAILABLE and result.plan is not None:
            self.apply(result.plan)
        return result

    def install_and_relaunch(self, archive: Path, install_dir: Path, target: Path) -> int:
        """Install an already downloaded ``archive`` and start ``target``.

        This is the installer-process side of the handoff. Returns the exit
        code that was handed to the process terminator.
        """

        if not self._claim_plan():
            return 1

        installed = False
        try:
            self._transition(PipelineState.INSTALLING)
            self._install(archive, install_dir)
            installed = True
        except UpdateError as exc:
            self._fail(exc.reason, str(exc))
        except Exception as exc:  # pylint: disable=broad-except
            LOGGER.error("Unexpected install error", exc_info=True)
            self._fail("unexpected", str(exc))
        finally:
            self._cleanup(archive)

        if not installed:
            self._transition(PipelineState.TERMINATED)
            return 1
        return self._relaunch(target)

    def _claim_plan(self) -> bool:
        # A rejected plan must leave the running plan's payload alone.
        try:
            self._guard.claim()
        except UpdateInProgressError as exc:
            self._fail(exc.reason, str(exc))
            self._transition(PipelineState.TERMINATED)
            return False
        return True

    def _install(self, archive: Path, install_dir: Path) -> list[EntryOutcome]:
        self._log(self._t("state_installing"))
        self.outcomes = self._installer.install(archive, install_dir, self.config.exclude_prefixes)
        return self.outcomes

    def _relaunch(self, target: Path) -> int:
        self._sink(CompletedEvent(str(target)))
        self._transition(PipelineState.RELAUNCHING)
        return finish_and_relaunch(
            target,
            grace_seconds=self.config.relaunch_grace,
            exit_delay=self.config.exit_delay,
            sink=self._sink,
            sleep=self._sleep,
            exit_process=self._terminate,
        )


__all__ = [
    "DownloadReporter",
    "PROCESS_PLAN_GUARD",
    "PipelineState",
    "PlanGuard",
    "UpdatePipeline",
]
