"""
Shared fixtures: hermetic data directories and a controllable clock.
"""

import pytest

from context_keeper.core.store import ContextStore


class FakeClock:
    """Epoch-millisecond clock advanced by hand."""

    def __init__(self, start: int = 1_700_000_000_000):
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(tmp_path):
    """Empty context store (no example records)."""
    store = ContextStore(tmp_path / "contexts", seed_examples=False)
    store.initialize()
    return store
