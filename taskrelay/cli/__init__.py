"""Command-line interface for TaskRelay."""
