"""Exception hierarchy shared by the update and supervision pipeline."""

from __future__ import annotations


class UpdateError(RuntimeError):
    """Raised when an update operation fails."""

    reason = "update_failed"


class TransientIOError(UpdateError):
    """A destination file is locked or a local write failed."""

    reason = "transient_io"


class NetworkError(UpdateError):
    """Non-success HTTP status or a connectivity error."""

    reason = "network"


class ArchiveCorruptError(UpdateError):
    """The payload cannot be opened or has no entries."""

    reason = "archive_corrupt"


class MissingDependencyError(UpdateError):
    """A helper or target executable is missing from its expected path."""

    reason = "missing_dependency"


class ProcessLaunchError(UpdateError):
    """Spawning a child process failed."""

    reason = "process_launch"


class AssetNotFoundError(UpdateError):
    """The release does not carry the asset for this deployment variant."""

    reason = "asset_not_found"


class UpdateInProgressError(UpdateError):
    """Another update plan has already been acted upon in this run."""

    reason = "update_in_progress"


__all__ = [
    "ArchiveCorruptError",
    "AssetNotFoundError",
    "MissingDependencyError",
    "NetworkError",
    "ProcessLaunchError",
    "TransientIOError",
    "UpdateError",
    "UpdateInProgressError",
]
