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
VSAG Index Handle

``VsagIndex`` owns exactly one native index object and frees it exactly once,
on ``close()``, on leaving a ``with`` block, after ``dump()``, or when the
handle is garbage collected.

Example:
    >>> params = HnswParams(dim=128, metric_type="l2")
    >>> with VsagIndex(params) as index:
    ...     failed = index.build(ids, vectors)
    ...     output = index.knn_search(query, k=10)
    ...     for id, distance in output:
    ...         print(f"ID: {id}, Distance: {distance}")

Threading:
    A handle can be passed between threads. Searches on the same handle may
    run concurrently; ``build``, ``dump`` and ``close`` wait for in-flight
    searches and run alone. The GIL is released during every native call.
"""

import ctypes
import json
import operator
import os
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Iterator, List, Optional, Tuple, Union

import numpy as np

from ._ffi import get_lib
from ._logging import get_logger
from ._marshal import (
    F32_P,
    I64_P,
    as_f32_array,
    as_i64_array,
    f32_pointer,
    i64_pointer,
    parameters_to_text,
    raise_for_error,
    take_i64_buffer,
    take_search_buffers,
    to_c_string,
)
from .errors import IndexReleasedError, InternalError, InvalidArgumentError
from .params import DiskAnnSearchParams, HnswSearchParams

logger = get_logger(__name__)

PathLike = Union[str, "os.PathLike[str]"]

_SIZE_MAX = ctypes.c_size_t(-1).value


@dataclass(frozen=True, eq=False)
class KnnSearchOutput:
    """
    Output of a k-NN search.

    Attributes:
        ids: IDs of the neighbors (int64), nearest first.
        distances: Distances of the neighbors (float32), aligned with ``ids``.
    """
    ids: np.ndarray
    distances: np.ndarray

    def __len__(self) -> int:
        return len(self.ids)

    def __iter__(self) -> Iterator[Tuple[int, float]]:
        for id, distance in zip(self.ids.tolist(), self.distances.tolist()):
            yield id, distance

    def to_list(self) -> List[Tuple[int, float]]:
        """Return results as a list of (id, distance) tuples."""
        return list(self)


class _HandleGuard:
    """Shared/exclusive access to one native handle.

    A queued exclusive holder blocks new shared entries, so a steady stream
    of searches cannot hold off ``close``, ``build`` or ``dump``.
    """

    __slots__ = ("_cond", "_readers", "_writer", "_writers_waiting")

    def __init__(self):
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer = False
        self._writers_waiting = 0

    @contextmanager
    def shared(self):
        with self._cond:
            while self._writer or self._writers_waiting:
                self._cond.wait()
            self._readers += 1
        try:
            yield
        finally:
            with self._cond:
                self._readers -= 1
                if self._readers == 0:
                    self._cond.notify_all()

    @contextmanager
    def exclusive(self):
        with self._cond:
            self._writers_waiting += 1
            try:
                while self._writer or self._readers:
                    self._cond.wait()
            except BaseException:
                self._writers_waiting -= 1
                self._cond.notify_all()
                raise
            self._writers_waiting -= 1
            self._writer = True
        try:
            yield
        finally:
            with self._cond:
                self._writer = False
                self._cond.notify_all()


def _resolve_construction(index_type: Any, parameters: Any) -> Tuple[str, str]:
    # VsagIndex(HnswParams(...)) carries its own index type
    if parameters is None and hasattr(index_type, "index_type"):
        return index_type.index_type, parameters_to_text(index_type)
    if parameters is None:
        raise TypeError("parameters are required when index_type is a string")
    return index_type, parameters_to_text(parameters)


def _declared_dim(parameters: str) -> Optional[int]:
    try:
        doc = json.loads(parameters)
    except ValueError:
        return None
    dim = doc.get("dim") if isinstance(doc, dict) else None
    return dim if isinstance(dim, int) and not isinstance(dim, bool) else None


class VsagIndex:
    """
    Owning wrapper around one native VSAG index.

    ``index_type`` selects the index variant. The library ships:
    - ``hnsw``
    - ``diskann``

    ``parameters`` is the construction document, as JSON text, a mapping, or
    a builder from ``vsag_index.params``. It is passed to the library
    unmodified. When a builder is passed as the only argument, its index type
    is used.

    Handles cannot be copied or pickled.
    """

    def __init__(self, index_type: Any, parameters: Any = None):
        """
        Create a new, empty index.

        Args:
            index_type: Index variant (e.g. ``"hnsw"``) or a construction
                parameter builder.
            parameters: Construction parameters.

        Raises:
            InvalidArgumentError: Embedded NUL in a string, or the library
                rejected the parameters.
            UnsupportedIndexError: Unknown index type.
        """
        self._init_state()

        index_type, parameters = _resolve_construction(index_type, parameters)
        type_c = to_c_string(index_type, "index_type")
        params_c = to_c_string(parameters, "parameters")

        lib = get_lib()
        out_index = ctypes.c_void_p()
        err = lib.create_index(type_c, params_c, ctypes.byref(out_index))
        raise_for_error(lib, err)
        self._adopt(lib, out_index.value, index_type, parameters)

    @classmethod
    def create(cls, index_type: Any, parameters: Any = None) -> "VsagIndex":
        """Same as ``VsagIndex(index_type, parameters)``."""
        return cls(index_type, parameters)

    @classmethod
    def load(cls, path: PathLike, index_type: Any, parameters: Any = None) -> "VsagIndex":
        """
        Load an index from the file at ``path``.

        ``index_type`` and ``parameters`` should be the same as the ones used
        to create the index.

        Raises:
            MissingFileError, ReadError, InvalidBinaryError: The dump could
                not be restored with these settings.
        """
        index_type, parameters = _resolve_construction(index_type, parameters)
        path_c = to_c_string(os.fspath(path), "path")
        type_c = to_c_string(index_type, "index_type")
        params_c = to_c_string(parameters, "parameters")

        lib = get_lib()
        out_index = ctypes.c_void_p()
        err = lib.load_index(path_c, type_c, params_c, ctypes.byref(out_index))
        raise_for_error(lib, err)

        self = cls.__new__(cls)
        self._init_state()
        self._adopt(lib, out_index.value, index_type, parameters)
        logger.debug("loaded %s index from %s", index_type, path)
        return self

    def _init_state(self) -> None:
        self._lib = None
        self._ptr = None
        self._guard = _HandleGuard()
        self._index_type = None
        self._parameters = None
        self._dimension = None

    def _adopt(self, lib, ptr: Optional[int], index_type: str, parameters: str) -> None:
        if not ptr:
            raise InternalError("native library returned no index and no error")
        self._lib = lib
        self._ptr = ptr
        self._index_type = index_type
        self._parameters = parameters
        self._dimension = _declared_dim(parameters)
        logger.debug("acquired %s index handle 0x%x", index_type, ptr)

    # -- properties ------------------------------------------------------- #

    @property
    def index_type(self) -> str:
        return self._index_type

    @property
    def parameters(self) -> str:
        """Construction parameters as passed to the library."""
        return self._parameters

    @property
    def dimension(self) -> Optional[int]:
        """Dimension declared in the construction parameters, if readable."""
        return self._dimension

    @property
    def closed(self) -> bool:
        return self._ptr is None

    def _live(self):
        if self._ptr is None:
            raise IndexReleasedError()
        return self._lib, self._ptr

    # -- operations ------------------------------------------------------- #

    def build(
        self,
        ids: Any,
        vectors: Any,
        *,
        num_vectors: Optional[int] = None,
        dim: Optional[int] = None,
    ) -> np.ndarray:
        """
        Builds the index with all vectors.

        ``vectors`` is either a 2-D array of shape ``(num_vectors, dim)`` or
        a flat row-major sequence of ``num_vectors * dim`` floats. For a flat
        sequence, ``dim`` defaults to the dimension declared in the
        construction parameters; an empty flat sequence with no known
        dimension is passed on with ``dim=0``.

        Returns:
            IDs of vectors that failed to be added (int64 array, usually
            empty). Partial failure is not an exception.

        Raises:
            BuildTwiceError: The index was already built.
            DimensionMismatchError: ``dim`` differs from the index dimension.
            InvalidArgumentError: ``ids`` and ``vectors`` do not line up.
        """
        ids_arr = as_i64_array(ids)
        vec_arr = as_f32_array(vectors)
        n = len(ids_arr) if num_vectors is None else operator.index(num_vectors)
        if dim is not None:
            dim = operator.index(dim)

        if vec_arr.ndim == 2:
            rows, cols = vec_arr.shape
            if dim is not None and dim != cols:
                raise InvalidArgumentError(f"dim={dim} but vectors have {cols} columns")
            if rows != n:
                raise InvalidArgumentError(f"Number of vectors ({rows}) must match num_vectors ({n})")
            dim = cols
        elif vec_arr.ndim == 1:
            if dim is None:
                dim = self._dimension
            if dim is None:
                # empty input is forwarded as 0 x 0; the library judges it
                if n == 0:
                    dim = 0
                elif vec_arr.size % n:
                    raise InvalidArgumentError("dim is required for flat vectors")
                else:
                    dim = vec_arr.size // n
        else:
            raise InvalidArgumentError(f"vectors must be 1-D or 2-D, got {vec_arr.ndim}D")

        if n < 0 or dim < 0:
            raise InvalidArgumentError("num_vectors and dim must not be negative")
        if n > _SIZE_MAX or dim > _SIZE_MAX:
            raise InvalidArgumentError(f"num_vectors and dim must not exceed {_SIZE_MAX}")
        if len(ids_arr) != n:
            raise InvalidArgumentError(f"Number of IDs ({len(ids_arr)}) must match number of vectors ({n})")
        if vec_arr.size != n * dim:
            raise InvalidArgumentError(
                f"vectors hold {vec_arr.size} floats, expected {n} * {dim} = {n * dim}"
            )

        out_failed_ids = I64_P()
        out_num_failed = ctypes.c_size_t()
        with self._guard.exclusive():
            lib, ptr = self._live()
            err = lib.build_index(
                ptr,
                n,
                dim,
                i64_pointer(ids_arr),
                f32_pointer(vec_arr),
                ctypes.byref(out_failed_ids),
                ctypes.byref(out_num_failed),
            )
            raise_for_error(lib, err)
            failed = take_i64_buffer(lib, out_failed_ids, out_num_failed.value)

        if len(failed):
            logger.info("build rejected %d of %d vectors", len(failed), n)
        return failed

    def knn_search(
        self,
        query_vector: Any,
        k: int,
        search_parameters: Any = None,
    ) -> KnnSearchOutput:
        """
        Searches for the ``k`` nearest neighbors of ``query_vector``.

        ``search_parameters`` is JSON text, a mapping, or a search builder.
        When omitted, ``HnswSearchParams()`` / ``DiskAnnSearchParams()``
        defaults are used for the matching index type.

        HNSW search parameters:
          - hnsw.ef_search: integer, required
          - hnsw.use_conjugate_graph_search: boolean, optional

        DiskANN search parameters:
          - diskann.ef_search, diskann.beam_search, diskann.io_limit: integers
          - diskann.use_reorder: boolean, optional

        Returns:
            At most ``k`` results, nearest first; fewer when the index holds
            fewer vectors.

        Raises:
            IndexEmptyError: The index was never built.
            DimensionMismatchError: Query length differs from the index
                dimension.
        """
        if search_parameters is None:
            search_parameters = self._default_search_parameters()
        params_c = to_c_string(
            parameters_to_text(search_parameters, "search_parameters"),
            "search_parameters",
        )
        query = as_f32_array(query_vector)
        if query.ndim != 1:
            raise InvalidArgumentError(f"query_vector must be 1-D, got shape {query.shape}")
        k = operator.index(k)
        if k < 0:
            raise InvalidArgumentError(f"k must not be negative, got {k}")
        # size_t would wrap larger values; no index holds more than this
        k = min(k, _SIZE_MAX)

        out_ids = I64_P()
        out_distances = F32_P()
        out_num_results = ctypes.c_size_t()
        with self._guard.shared():
            lib, ptr = self._live()
            err = lib.knn_search_index(
                ptr,
                query.size,
                f32_pointer(query),
                k,
                params_c,
                ctypes.byref(out_ids),
                ctypes.byref(out_distances),
                ctypes.byref(out_num_results),
            )
            raise_for_error(lib, err)
            ids, distances = take_search_buffers(
                lib, out_ids, out_distances, out_num_results.value
            )

        return KnnSearchOutput(ids=ids, distances=distances)

    def search(self, query: Any, k: int = 10, search_parameters: Any = None) -> KnnSearchOutput:
        """Shorthand for ``knn_search`` with ``k=10`` by default."""
        return self.knn_search(query, k, search_parameters)

    def _default_search_parameters(self):
        if self._index_type == "diskann":
            return DiskAnnSearchParams()
        return HnswSearchParams()

    def dump(self, path: PathLike) -> None:
        """
        Dumps the index to the file at ``path`` and releases the handle.

        The handle is released whether or not the dump succeeds; reload it
        with ``VsagIndex.load``. A path that cannot be encoded is rejected
        before anything is released.
        """
        path_c = to_c_string(os.fspath(path), "path")
        with self._guard.exclusive():
            lib, ptr = self._live()
            try:
                err = lib.dump_index(ptr, path_c)
                raise_for_error(lib, err)
            finally:
                self._release_locked()
        logger.debug("dumped %s index to %s", self._index_type, path)

    # -- lifecycle -------------------------------------------------------- #

    def close(self) -> None:
        """Free the native index. Idempotent."""
        with self._guard.exclusive():
            self._release_locked()

    def _release_locked(self) -> None:
        ptr = self._ptr
        if ptr is None:
            return
        self._ptr = None
        self._lib.free_index(ptr)
        logger.debug("released index handle 0x%x", ptr)

    def __del__(self):
        if getattr(self, "_ptr", None) is None:
            return
        try:
            self.close()
        except Exception:
            logger.warning("failed to release index handle during finalization", exc_info=True)

    def __enter__(self) -> "VsagIndex":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def __copy__(self):
        raise TypeError("VsagIndex owns a native handle and cannot be copied")

    def __deepcopy__(self, memo):
        raise TypeError("VsagIndex owns a native handle and cannot be copied")

    def __reduce_ex__(self, protocol):
        raise TypeError("VsagIndex owns a native handle and cannot be pickled")

    def __repr__(self) -> str:
        state = "closed" if self._ptr is None else "open"
        return f"VsagIndex(type={self._index_type!r}, dim={self._dimension}, {state})"
