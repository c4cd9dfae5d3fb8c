"""HTTP layer for the task API."""
