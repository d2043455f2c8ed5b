"""Test helper utilities for notification engine tests."""

from .fakes import NOW, FakeQueueClient, FrozenClock, make_event

__all__ = ["NOW", "FrozenClock", "FakeQueueClient", "make_event"]
