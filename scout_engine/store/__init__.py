"""Execution Store: persistence boundary for scouts, executions and steps."""

from scout_engine.store.base import (
    ExecutionNotFoundError,
    ExecutionNotRunningError,
    ExecutionStore,
    StoreError,
)
from scout_engine.store.memory import InMemoryExecutionStore
from scout_engine.store.sqlite import SQLiteExecutionStore

__all__ = [
    "ExecutionNotFoundError",
    "ExecutionNotRunningError",
    "ExecutionStore",
    "InMemoryExecutionStore",
    "SQLiteExecutionStore",
    "StoreError",
]
