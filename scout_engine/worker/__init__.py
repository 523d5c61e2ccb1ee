"""Worker side of the execution hand-off."""

from scout_engine.worker.trigger import ExecutionTrigger, build_trigger

__all__ = ["ExecutionTrigger", "build_trigger"]
