"""Configuration package exports."""

from .loader import CheckpointStore, ConfigLocator, ConfigRepository
from .models import Checkpoint, HarvestConfig, Stage

__all__ = [
    "Checkpoint",
    "CheckpointStore",
    "ConfigLocator",
    "ConfigRepository",
    "HarvestConfig",
    "Stage",
]
