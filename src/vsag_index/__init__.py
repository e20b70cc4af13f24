# Copyright 2025 Sushanth (https://github.com/sushanthpy)
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""
vsag_index - Python bindings for the VSAG vector index library.

Create, build, search, dump and reload approximate nearest neighbor indexes
without handling native pointers:

    >>> import numpy as np
    >>> from vsag_index import VsagIndex, HnswParams
    >>>
    >>> index = VsagIndex(HnswParams(dim=128, metric_type="l2"))
    >>> ids = np.arange(1000, dtype=np.int64)
    >>> vectors = np.random.rand(1000, 128).astype(np.float32)
    >>> failed = index.build(ids, vectors)
    >>> output = index.knn_search(vectors[0], k=10)
    >>> for id, distance in output:
    ...     print(id, distance)

The shared library is located through ``VSAG_LIB_PATH`` or the usual
system paths; see ``vsag_index._ffi.find_library``.
"""

from ._ffi import LibraryNotFoundError, find_library, get_lib, use_library
from ._logging import setup_logging
from .errors import (
    BuildTwiceError,
    DimensionMismatchError,
    ErrorKind,
    IndexEmptyError,
    IndexNotEmptyError,
    IndexReleasedError,
    InternalError,
    InvalidArgumentError,
    InvalidBinaryError,
    MissingFileError,
    OutOfMemoryError,
    PersistenceError,
    ReadError,
    UnknownError,
    UnsupportedIndexError,
    UnsupportedIndexOperationError,
    VsagError,
)
from .index import KnnSearchOutput, VsagIndex
from .params import (
    DataType,
    DiskAnnParams,
    DiskAnnSearchParams,
    HnswParams,
    HnswSearchParams,
    MetricType,
)

__version__ = "0.1.0"

__all__ = [
    # Index
    "VsagIndex",
    "KnnSearchOutput",
    # Parameters
    "HnswParams",
    "HnswSearchParams",
    "DiskAnnParams",
    "DiskAnnSearchParams",
    "MetricType",
    "DataType",
    # Library
    "find_library",
    "get_lib",
    "use_library",
    "LibraryNotFoundError",
    "setup_logging",
    # Errors
    "ErrorKind",
    "VsagError",
    "UnknownError",
    "InternalError",
    "InvalidArgumentError",
    "BuildTwiceError",
    "IndexNotEmptyError",
    "UnsupportedIndexError",
    "UnsupportedIndexOperationError",
    "DimensionMismatchError",
    "IndexEmptyError",
    "OutOfMemoryError",
    "PersistenceError",
    "ReadError",
    "MissingFileError",
    "InvalidBinaryError",
    "IndexReleasedError",
]
