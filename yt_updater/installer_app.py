"""Installer helper process: extract the update, then restart the application.

Usage: ``python -m yt_updater.installer_app <archive> <install_dir> <target_exe>``
"""

from __future__ import annotations

import argparse
import sys
import threading
import time
from pathlib import Path
from typing import Optional, Sequence

import customtkinter as ctk

from .config import UpdaterConfig, load_config
from .events import CompletedEvent, Event, FailedEvent, LoggingSink, ProgressEvent, QueueSink, fan_out
from .localization import translate
from .logger import UPDATER_LOG_FILE, get_logger, setup_logging
from .pipeline import UpdatePipeline
from .relauncher import terminate_current_process

LOGGER = get_logger("InstallerApp")

POLL_INTERVAL_MS = 100


class InstallerWindow(ctk.CTk):
    """Small always-on-top status window shown while files are replaced."""

    def __init__(self, updater_config: UpdaterConfig) -> None:
        super().__init__()
        self.updater_config = updater_config
        self.events = QueueSink()
        self.exit_code: Optional[int] = None
        self._exit_requested = threading.Event()

        self.title(self._("installer_title"))
        self.resizable(False, False)
        self.attributes("-topmost", True)

        container = ctk.CTkFrame(self, corner_radius=12, fg_color="transparent")
        container.pack(fill="both", expand=True, padx=24, pady=24)
        self.status_var = ctk.StringVar(value=self._("status_preparing"))
        ctk.CTkLabel(
            container,
            textvariable=self.status_var,
            justify="center",
            wraplength=360,
            anchor="center",
        ).pack(fill="x", pady=(0, 16))
        self.progress = ctk.CTkProgressBar(container, mode="determinate")
        self.progress.set(0.0)
        self.progress.pack(fill="x", padx=12)
        self._center(420, 140)

    def _(self, key: str, **kwargs: object) -> str:
        return translate(self.updater_config.language, key, **kwargs)

    def _center(self, width: int, height: int) -> None:
        x = max((self.winfo_screenwidth() - width) // 2, 0)
        y = max((self.winfo_screenheight() - height) // 2, 0)
        self.geometry(f"{width}x{height}+{x}+{y}")

    def show_error_and_close(self, message: str, delay: float) -> None:
        self.status_var.set(message)
        self.after(int(delay * 1000), self.destroy)

    def start(self, archive: Path, install_dir: Path, target: Path) -> None:
        pipeline = UpdatePipeline(
            self.updater_config,
            fan_out(self.events, LoggingSink(LOGGER)),
            exit_process=self._request_exit,
        )
        self.status_var.set(self._("status_extracting"))
        threading.Thread(
            target=pipeline.install_and_relaunch,
            args=(archive, install_dir, target),
            name="installer-worker",
            daemon=True,
        ).start()
        self.after(POLL_INTERVAL_MS, self._poll_events)

    def _request_exit(self, code: int) -> None:
        # Called on the worker thread; the UI thread closes the window.
        self.exit_code = code
        self._exit_requested.set()

    def _poll_events(self) -> None:
        for event in self.events.drain():
            self._handle_event(event)
        if self._exit_requested.is_set():
            self.destroy()
            return
        self.after(POLL_INTERVAL_MS, self._poll_events)

    def _handle_event(self, event: Event) -> None:
        if isinstance(event, ProgressEvent):
            self.progress.set(max(0.0, min(event.percent / 100.0, 1.0)))
            if event.total:
                self.status_var.set(
                    self._("status_extract_progress", current=event.current, total=event.total)
                )
        elif isinstance(event, CompletedEvent):
            self.progress.set(1.0)
            self.status_var.set(
                f"{self._('status_complete')}\n{self._('status_relaunching')}"
            )
        elif isinstance(event, FailedEvent):
            self.status_var.set(self._("status_failed", error=event.message or event.reason))
            # Nothing is relaunched after a failed install; close once the message was shown.
            self.after(int(self.updater_config.failure_exit_delay * 1000), self._exit_requested.set)


def _parse_arguments(argv: Sequence[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="yt-updater-install")
    parser.add_argument("paths", nargs="*")
    parser.add_argument("--headless", action="store_true")
    return parser.parse_args(list(argv))


def main(argv: Optional[Sequence[str]] = None, config: Optional[UpdaterConfig] = None) -> int:
    setup_logging(UPDATER_LOG_FILE)
    args = _parse_arguments(sys.argv[1:] if argv is None else argv)
    config = config or load_config()
    LOGGER.info("Installer started with %s", args.paths)

    if len(args.paths) < 3:
        LOGGER.error("Missing arguments: %s", args.paths)
        message = translate(config.language, "status_missing_args")
        if args.headless:
            print(message, file=sys.stderr)
            time.sleep(config.missing_args_exit_delay)
            return 0
        window = InstallerWindow(config)
        window.show_error_and_close(message, config.missing_args_exit_delay)
        window.mainloop()
        return 0

    archive, install_dir, target = (Path(value) for value in args.paths[:3])
    if args.headless:
        pipeline = UpdatePipeline(config, LoggingSink(LOGGER))
        pipeline.install_and_relaunch(archive, install_dir, target)
        return 0

    window = InstallerWindow(config)
    window.start(archive, install_dir, target)
    window.mainloop()
    if window.exit_code is not None:
        terminate_current_process(window.exit_code)
    return 0


__all__ = ["InstallerWindow", "main"]


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    sys.exit(main())
