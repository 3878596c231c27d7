"""Test doubles shared across the suite."""

from tests.helpers.fakes import FakeClock, ScriptedBackend, make_response

__all__ = [
    "FakeClock",
    "ScriptedBackend",
    "make_response",
]
