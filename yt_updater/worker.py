"""Background threads that run downloads and self-updates off the UI thread."""

from __future__ import annotations

import queue
import threading
from typing import Optional

from .backend import DownloadOptions, download_media
from .config import UpdaterConfig
from .events import Event, FailedEvent
from .logger import get_logger
from .pipeline import UpdatePipeline
from .updates import UpdateCheck


LOGGER = get_logger("Worker")


class DownloadWorker(threading.Thread):
    """Run one yt-dlp download and post its events to ``event_queue``.

    Every message is a dict with ``task_id`` and ``type``. ``event`` messages
    carry one pipeline event; a single ``finished`` message closes the task.
    """

    def __init__(
        self,
        *,
        task_id: str,
        options: DownloadOptions,
        config: UpdaterConfig,
        event_queue: "queue.Queue[dict[str, object]]",
    ) -> None:
        super().__init__(daemon=True, name=f"download-{task_id}")
        self.task_id = task_id
        self.options = options
        self.config = config
        self.event_queue = event_queue
        self.succeeded = False
        self.error: Optional[str] = None

    def run(self) -> None:
        LOGGER.info("Starting task %s for URL %s", self.task_id, self.options.url)
        try:
            self.succeeded = download_media(self.options, self.config, self._on_event)
        except Exception as exc:  # pylint: disable=broad-except
            self.error = str(exc)
            LOGGER.error("Task %s failed with an unexpected error", self.task_id, exc_info=True)
            self._on_event(FailedEvent("unexpected", self.error))
        finally:
            self._emit("finished", succeeded=self.succeeded, error=self.error)

    def _on_event(self, event: Event) -> None:
        if isinstance(event, FailedEvent):
            self.error = event.message or event.reason
        self._emit("event", event=event)

    def _emit(self, event_type: str, **payload: object) -> None:
        data: dict[str, object] = {"task_id": self.task_id, "type": event_type}
        data.update(payload)
        self.event_queue.put(data)


class UpdateWorker(threading.Thread):
    """Run :meth:`UpdatePipeline.run` on a daemon thread."""

    def __init__(self, pipeline: UpdatePipeline) -> None:
        super().__init__(daemon=True, name="update-check")
        self.pipeline = pipeline
        self.result: Optional[UpdateCheck] = None

    def run(self) -> None:
        self.result = self.pipeline.run()


__all__ = ["DownloadWorker", "UpdateWorker"]
