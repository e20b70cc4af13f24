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
Typed builders for VSAG parameter documents.

The native library takes its configuration as JSON text. These dataclasses
produce that text for the two index types the library ships; anything they
do not cover can still be passed as a raw string or a plain dict.

Example:
    params = HnswParams(dim=128, metric_type=MetricType.L2)
    index = VsagIndex(params)
    index.build(ids, vectors)
    output = index.knn_search(query, 10, HnswSearchParams(ef_search=100))
"""

import json
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

from .errors import InvalidArgumentError


class MetricType(str, Enum):
    """Distance metric for vector similarity."""
    L2 = "l2"
    IP = "ip"
    COSINE = "cosine"


class DataType(str, Enum):
    """Element type of indexed vectors."""
    FLOAT32 = "float32"


def _positive(name: str, value: int) -> None:
    if value <= 0:
        raise InvalidArgumentError(f"{name} must be positive, got {value}")


class _Document:
    """JSON serialization shared by all builders."""

    def to_dict(self) -> Dict[str, Any]:
        raise NotImplementedError

    def to_json(self) -> str:
        return json.dumps(self.to_dict())


# ============================================================================
# Construction parameters
# ============================================================================

@dataclass
class _IndexParams(_Document):
    dim: int
    metric_type: MetricType = MetricType.L2
    dtype: DataType = DataType.FLOAT32

    index_type = ""

    def __post_init__(self):
        # Coerce plain strings to enums
        try:
            if isinstance(self.metric_type, str):
                object.__setattr__(self, "metric_type", MetricType(self.metric_type))
            if isinstance(self.dtype, str):
                object.__setattr__(self, "dtype", DataType(self.dtype))
        except ValueError as e:
            raise InvalidArgumentError(str(e)) from e
        _positive("dim", self.dim)

    def _common(self) -> Dict[str, Any]:
        return {
            "dtype": self.dtype.value,
            "metric_type": self.metric_type.value,
            "dim": self.dim,
        }


@dataclass
class HnswParams(_IndexParams):
    """
    HNSW construction parameters.

    Serializes to::

        {
            "dtype": "float32",
            "metric_type": "l2",
            "dim": 128,
            "hnsw": {"max_degree": 16, "ef_construction": 100}
        }
    """
    max_degree: int = 16
    ef_construction: int = 100

    index_type = "hnsw"

    def __post_init__(self):
        super().__post_init__()
        _positive("max_degree", self.max_degree)
        _positive("ef_construction", self.ef_construction)

    def to_dict(self) -> Dict[str, Any]:
        doc = self._common()
        doc["hnsw"] = {
            "max_degree": self.max_degree,
            "ef_construction": self.ef_construction,
        }
        return doc


@dataclass
class DiskAnnParams(_IndexParams):
    """
    DiskANN construction parameters.

    ``pq_sample_rate`` must be in ``(0.0, 1.0]``.
    """
    max_degree: int = 16
    ef_construction: int = 200
    pq_dims: int = 32
    pq_sample_rate: float = 0.5

    index_type = "diskann"

    def __post_init__(self):
        super().__post_init__()
        _positive("max_degree", self.max_degree)
        _positive("ef_construction", self.ef_construction)
        _positive("pq_dims", self.pq_dims)
        if not 0.0 < self.pq_sample_rate <= 1.0:
            raise InvalidArgumentError(
                f"pq_sample_rate must be in (0.0, 1.0], got {self.pq_sample_rate}"
            )

    def to_dict(self) -> Dict[str, Any]:
        doc = self._common()
        doc["diskann"] = {
            "max_degree": self.max_degree,
            "ef_construction": self.ef_construction,
            "pq_dims": self.pq_dims,
            "pq_sample_rate": self.pq_sample_rate,
        }
        return doc


# ============================================================================
# Search parameters
# ============================================================================

@dataclass
class HnswSearchParams(_Document):
    """
    HNSW search parameters.

    Attributes:
        ef_search: Candidate list size; higher = better recall, slower search.
        use_conjugate_graph_search: Omitted from the document when None so
            the library default applies.
    """
    ef_search: int = 100
    use_conjugate_graph_search: Optional[bool] = None

    def __post_init__(self):
        _positive("ef_search", self.ef_search)

    def to_dict(self) -> Dict[str, Any]:
        hnsw: Dict[str, Any] = {"ef_search": self.ef_search}
        if self.use_conjugate_graph_search is not None:
            hnsw["use_conjugate_graph_search"] = self.use_conjugate_graph_search
        return {"hnsw": hnsw}


@dataclass
class DiskAnnSearchParams(_Document):
    """DiskANN search parameters."""
    ef_search: int = 100
    beam_search: int = 4
    io_limit: int = 200
    use_reorder: bool = False

    def __post_init__(self):
        _positive("ef_search", self.ef_search)
        _positive("beam_search", self.beam_search)
        _positive("io_limit", self.io_limit)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "diskann": {
                "ef_search": self.ef_search,
                "beam_search": self.beam_search,
                "io_limit": self.io_limit,
                "use_reorder": self.use_reorder,
            }
        }
