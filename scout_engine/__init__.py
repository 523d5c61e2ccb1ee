"""
Scout Engine - scheduled web research agents.

A scout is a standing instruction to periodically search the web for
information matching a goal, read the most relevant pages and summarize
what was found. This package holds the execution engine: due-scout
dispatch, the agent loop, stuck-run recovery and similarity recall.
"""

__version__ = "0.1.0"
