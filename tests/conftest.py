from __future__ import annotations

import pytest

from puckpool.persistence import PoolStore

from .sample_pool import seed_pool


@pytest.fixture
def store(tmp_path) -> PoolStore:
    return PoolStore(tmp_path / "pool.sqlite")


@pytest.fixture
def pool(store: PoolStore) -> PoolStore:
    return seed_pool(store)
