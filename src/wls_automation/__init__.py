"""WebLogic host provisioning toolkit."""

from .inventory import InventoryLoader
from .pipeline import PipelineRunner
from .runner import TaskRunner

__all__ = ["TaskRunner", "InventoryLoader", "PipelineRunner"]
