"""HTTP API for TaskRelay."""
