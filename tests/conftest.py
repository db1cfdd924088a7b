"""Shared fixtures for the leader lock tests."""

from __future__ import annotations

import pytest

from leaderlock.store import InMemoryResourceStore


@pytest.fixture
def store() -> InMemoryResourceStore:
    return InMemoryResourceStore()
