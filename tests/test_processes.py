from __future__ import annotations

import os
from pathlib import Path

import psutil

from yt_updater import processes


class _FakeProcess:
    def __init__(self, pid: int, name: str, exits: bool = True) -> None:
        self.pid = pid
        self.info = {"pid": pid, "name": name}
        self._exits = exits
        self.waited = None

    def name(self) -> str:
        return self.info["name"]

    def wait(self, timeout=None):  # type: ignore[no-untyped-def]
        self.waited = timeout
        if not self._exits:
            raise psutil.TimeoutExpired(timeout, self.pid)
        return 0


def test_find_processes_by_stem_ignores_own_process(monkeypatch) -> None:
    own = _FakeProcess(os.getpid(), "ytDownloader.exe")
    other = _FakeProcess(os.getpid() + 1, "YTDOWNLOADER.EXE")
    unrelated = _FakeProcess(os.getpid() + 2, "explorer.exe")
    monkeypatch.setattr(processes.psutil, "process_iter", lambda attrs: iter([own, other, unrelated]))

    assert processes.find_processes_by_stem("ytdownloader") == [other]


def test_wait_for_file_holders_counts_survivors(monkeypatch) -> None:
    quick = _FakeProcess(101, "app.exe")
    stuck = _FakeProcess(102, "app.exe", exits=False)
    monkeypatch.setattr(processes, "find_processes_by_stem", lambda stem: [quick, stuck])

    assert processes.wait_for_file_holders(Path("C:/app/app.exe"), 0.5) == 1
    assert quick.waited == 0.5
    assert stuck.waited == 0.5
