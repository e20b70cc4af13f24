import gc
import json

import numpy as np
import pytest

from vsag_index import use_library

from _native_double import FakeVsagLibrary

HNSW_PARAMS = json.dumps({
    "dtype": "float32",
    "metric_type": "l2",
    "dim": 128,
    "hnsw": {
        "max_degree": 16,
        "ef_construction": 100,
    },
})

HNSW_SEARCH_PARAMS = json.dumps({
    "hnsw": {
        "ef_search": 100,
    },
})


# ---------------------------------------------------------------------------
# Pytest fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def native():
    """Install the native double and check it for leaks after the test."""
    lib = FakeVsagLibrary()
    use_library(lib)
    try:
        yield lib
        gc.collect()
        assert lib.tracker.violations == []
        assert lib.tracker.outstanding() == {}, "native allocations leaked"
    finally:
        use_library(None)


@pytest.fixture
def rng():
    return np.random.default_rng(20231019)


@pytest.fixture
def dataset(rng):
    """1000 random 128-d vectors with ids 0..999."""
    ids = np.arange(1000, dtype=np.int64)
    vectors = rng.random((1000, 128), dtype=np.float32)
    return ids, vectors


@pytest.fixture
def hnsw_params():
    return HNSW_PARAMS


@pytest.fixture
def search_params():
    return HNSW_SEARCH_PARAMS
