"""TaskRelay: natural-language request routing and resilient execution."""

__version__ = "0.1.0"
