"""Spawn a child process and stream both of its output channels to a sink."""

from __future__ import annotations

import os
import subprocess
import sys
import threading
from concurrent.futures import Future
from pathlib import Path
from typing import IO, Callable, Mapping, Optional, Sequence

from .config import UpdaterConfig
from .errors import ProcessLaunchError
from .events import EventSink, LogEvent, ProgressEvent, null_sink
from .logger import get_logger
from .progress import ProgressSample, parse_progress_line

LOGGER = get_logger("Supervisor")


def repair_mojibake(text: str, codepage: str) -> str:
    """Undo a decode that used ``codepage`` where UTF-8 was meant.

    The string is re-encoded with ``codepage`` and decoded again as UTF-8;
    the original text is kept when either step fails.
    """

    if not text or text.isascii():
        return text
    try:
        return text.encode(codepage).decode("utf-8")
    except (UnicodeEncodeError, UnicodeDecodeError, LookupError):
        return text


class ProcessSupervisor:
    """Run one child at a time per call and forward its output.

    Each call owns its child until it exits. Supervising several children at
    once means calling :meth:`run` (or :meth:`start`) from several workers.
    """

    def __init__(
        self,
        sink: EventSink = null_sink,
        *,
        encoding: str = "utf-8",
        fallback_codepage: Optional[str] = "cp949",
        parser: Callable[[str], Optional[ProgressSample]] = parse_progress_line,
    ) -> None:
        self._sink = sink
        self._encoding = encoding
        self._fallback_codepage = fallback_codepage
        self._parser = parser

    @classmethod
    def from_config(cls, config: UpdaterConfig, sink: EventSink = null_sink) -> "ProcessSupervisor":
        return cls(sink, fallback_codepage=config.fallback_codepage)

    def run(
        self,
        executable: "str | Path",
        args: Sequence[str] = (),
        env_overrides: Optional[Mapping[str, str]] = None,
        *,
        cwd: Optional[Path] = None,
    ) -> int:
        """Block until the child exits and return its exit code."""

        command = [str(executable), *(str(arg) for arg in args)]
        env = os.environ.copy()
        if env_overrides:
            env.update(env_overrides)

        creationflags = 0
        startupinfo = None
        if sys.platform.startswith("win"):  # pragma: no cover - platform specific
            startupinfo = subprocess.STARTUPINFO()
            startupinfo.dwFlags |= subprocess.STARTF_USESHOWWINDOW  # type: ignore[attr-defined]
            creationflags = getattr(subprocess, "CREATE_NO_WINDOW", 0)

        LOGGER.info("Starting %s", subprocess.list2cmdline(command))
        try:
            process = subprocess.Popen(  # noqa: S603 - executable chosen by the caller
                command,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                cwd=str(cwd) if cwd is not None else None,
                env=env,
                startupinfo=startupinfo,
                creationflags=creationflags,
            )
        except OSError as exc:
            LOGGER.error("Failed to start %s: %s", command[0], exc)
            raise ProcessLaunchError(f"{command[0]}: {exc}") from exc

        readers = [
            threading.Thread(
                target=self._pump,
                args=(process.stdout, "stdout"),
                name=f"supervisor-stdout-{process.pid}",
                daemon=True,
            ),
            threading.Thread(
                target=self._pump,
                args=(process.stderr, "stderr"),
                name=f"supervisor-stderr-{process.pid}",
                daemon=True,
            ),
        ]
        for reader in readers:
            reader.start()

        returncode = process.wait()
        for reader in readers:
            reader.join()
        LOGGER.info("%s exited with code %s", command[0], returncode)
        return returncode

    def start(
        self,
        executable: "str | Path",
        args: Sequence[str] = (),
        env_overrides: Optional[Mapping[str, str]] = None,
        *,
        cwd: Optional[Path] = None,
    ) -> "Future[int]":
        """Run the child on a dedicated thread and return a future for its exit code."""

        future: "Future[int]" = Future()

        def _own_child() -> None:
            if not future.set_running_or_notify_cancel():
                return
            try:
                future.set_result(self.run(executable, args, env_overrides, cwd=cwd))
            except Exception as exc:  # pylint: disable=broad-except
                future.set_exception(exc)

        threading.Thread(target=_own_child, name="supervisor-owner", daemon=True).start()
        return future

    def decode_line(self, raw: bytes) -> str:
        text = raw.decode(self._encoding, errors="replace").rstrip("\r\n")
        if self._fallback_codepage:
            text = repair_mojibake(text, self._fallback_codepage)
        return text

    def _pump(self, stream: Optional[IO[bytes]], stream_name: str) -> None:
        if stream is None:
            return
        with stream:
            for raw in iter(stream.readline, b""):
                # Progress redraws arrive as carriage-return separated chunks.
                for segment in raw.split(b"\r"):
                    text = self.decode_line(segment)
                    if not text.strip():
                        continue
                    try:
                        self._handle_line(text, stream_name)
                    except Exception:  # pylint: disable=broad-except
                        LOGGER.exception("Output sink failed for %s line", stream_name)

    def _handle_line(self, text: str, stream_name: str) -> None:
        LOGGER.debug("[%s] %s", stream_name, text)
        self._sink(LogEvent(text))
        sample = self._parser(text)
        if sample is not None:
            self._sink(ProgressEvent(percent=sample.percent, speed=sample.speed, eta=sample.eta))


__all__ = ["ProcessSupervisor", "repair_mojibake"]
