"""Worker HTTP service for the scout engine."""
