"""Shared fixtures: checkpoint stores and fake frame scheduling."""

import pytest

from drawcast.storage.checkpoint_store import MemoryCheckpointStore
from drawcast.storage.file_store import FileCheckpointStore
from tests.helpers import FakeScheduler


@pytest.fixture
def memory_store():
    """Fresh in-process store with the default retention ceiling."""
    return MemoryCheckpointStore()


@pytest.fixture
def file_store(tmp_path):
    """Filesystem store rooted in a per-test directory."""
    return FileCheckpointStore(tmp_path / "checkpoints")


@pytest.fixture
def scheduler():
    return FakeScheduler()
