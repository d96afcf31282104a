"""Self-update and process supervision for the ytDownloader desktop application."""

from .version import __version__

from .config import UpdaterConfig, load_config
from .localization import DEFAULT_LANGUAGE, SUPPORTED_LANGUAGES, translate
from .pipeline import PipelineState, UpdatePipeline
from .supervisor import ProcessSupervisor

__all__ = [
    "DEFAULT_LANGUAGE",
    "PipelineState",
    "ProcessSupervisor",
    "SUPPORTED_LANGUAGES",
    "UpdatePipeline",
    "UpdaterConfig",
    "load_config",
    "translate",
    "__version__",
]
