import pytest

from mafianight.store.memory_store import MemoryStore
from mafianight.store.repo import SessionRepo


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def repo(store):
    return SessionRepo(store)
