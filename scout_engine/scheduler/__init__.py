"""Due-scout dispatch, stuck-execution recovery and the periodic jobs that drive them."""

from scout_engine.scheduler.dispatcher import (
    DispatchError,
    HttpTriggerLauncher,
    InProcessLauncher,
    ScoutDispatcher,
)
from scout_engine.scheduler.due import is_scout_eligible, select_due_scouts, should_run_scout
from scout_engine.scheduler.periodic import JobRegistry
from scout_engine.scheduler.reaper import ExecutionReaper

__all__ = [
    "DispatchError",
    "ExecutionReaper",
    "HttpTriggerLauncher",
    "InProcessLauncher",
    "JobRegistry",
    "ScoutDispatcher",
    "is_scout_eligible",
    "select_due_scouts",
    "should_run_scout",
]
