"""API route modules."""

from taskrelay.api.routes import requests, route_preview, sessions

__all__ = ["requests", "route_preview", "sessions"]
