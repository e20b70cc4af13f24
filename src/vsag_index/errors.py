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
VSAG error model.

Every failure reported by the native library carries a numeric kind and a
short diagnostic message. The kind is mapped onto ``ErrorKind`` and raised as
the matching exception class:

    VsagError (base)
    ├── UnknownError
    ├── InternalError
    ├── InvalidArgumentError (also ValueError)
    │   ├── DimensionMismatchError
    │   └── IndexReleasedError - local, handle already released
    ├── BuildTwiceError
    ├── IndexNotEmptyError
    ├── UnsupportedIndexError
    ├── UnsupportedIndexOperationError
    ├── IndexEmptyError
    ├── OutOfMemoryError (also MemoryError)
    └── PersistenceError
        ├── ReadError
        ├── MissingFileError
        └── InvalidBinaryError

Usage:
    try:
        index.knn_search(query, k=10, search_parameters=params)
    except IndexEmptyError:
        print("build the index first")
    except VsagError as e:
        print(f"{e.kind.name}: {e.message}")
"""

from enum import IntEnum
from typing import Dict, Optional, Type


class ErrorKind(IntEnum):
    """Error kinds reported by the native library.

    Values mirror the C wrapper's error-type enumeration and must not be
    renumbered.
    """

    # common errors
    UNKNOWN_ERROR = 1
    INTERNAL_ERROR = 2
    INVALID_ARGUMENT = 3

    # behavior errors
    BUILD_TWICE = 4
    INDEX_NOT_EMPTY = 5
    UNSUPPORTED_INDEX = 6
    UNSUPPORTED_INDEX_OPERATION = 7
    DIMENSION_MISMATCH = 8
    INDEX_EMPTY = 9

    # runtime errors
    OUT_OF_MEMORY = 10
    READ_ERROR = 11
    MISSING_FILE = 12
    INVALID_BINARY = 13

    @classmethod
    def from_native(cls, value: int) -> "ErrorKind":
        """Map a raw native code, falling back to UNKNOWN_ERROR."""
        try:
            return cls(value)
        except ValueError:
            return cls.UNKNOWN_ERROR


class VsagError(Exception):
    """
    Base exception for all VSAG errors.

    Attributes:
        kind: The ``ErrorKind`` of the failure.
        message: Diagnostic text from the native library (or from the local
            check that rejected the call).
        raw_kind: The numeric kind exactly as received from the native side.
            Differs from ``int(kind)`` only when the native library reported
            a code this package does not know.
    """

    kind: ErrorKind = ErrorKind.UNKNOWN_ERROR

    def __init__(self, message: str = "", *, raw_kind: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.raw_kind = int(self.kind) if raw_kind is None else raw_kind

    def __str__(self) -> str:
        if self.message:
            return f"[{self.kind.name}] {self.message}"
        return f"[{self.kind.name}]"

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, kind={self.kind.name})"


class UnknownError(VsagError):
    """Unclassified native failure."""

    kind = ErrorKind.UNKNOWN_ERROR


class InternalError(VsagError):
    """Internal fault inside the index algorithm."""

    kind = ErrorKind.INTERNAL_ERROR


class InvalidArgumentError(VsagError, ValueError):
    """A caller-supplied parameter is invalid.

    Raised both for native rejections and for local checks done before the
    native library is called (embedded NUL bytes, shape mismatches, ...).
    """

    kind = ErrorKind.INVALID_ARGUMENT


class BuildTwiceError(VsagError):
    """The index was already built."""

    kind = ErrorKind.BUILD_TWICE


class IndexNotEmptyError(VsagError):
    """Deserialization attempted into a non-empty index."""

    kind = ErrorKind.INDEX_NOT_EMPTY


class UnsupportedIndexError(VsagError):
    """The requested index type is not recognized."""

    kind = ErrorKind.UNSUPPORTED_INDEX


class UnsupportedIndexOperationError(VsagError):
    """The operation is not valid for this index type."""

    kind = ErrorKind.UNSUPPORTED_INDEX_OPERATION


class DimensionMismatchError(InvalidArgumentError):
    """Vector dimension differs from the index dimension."""

    kind = ErrorKind.DIMENSION_MISMATCH


class IndexEmptyError(VsagError):
    """Search or serialize attempted on an empty index."""

    kind = ErrorKind.INDEX_EMPTY


class OutOfMemoryError(VsagError, MemoryError):
    """The native library failed to allocate memory."""

    kind = ErrorKind.OUT_OF_MEMORY


class PersistenceError(VsagError):
    """Base class for failures restoring a dumped index."""


class ReadError(PersistenceError):
    """The persisted index could not be read."""

    kind = ErrorKind.READ_ERROR


class MissingFileError(PersistenceError):
    """An expected persisted file is absent."""

    kind = ErrorKind.MISSING_FILE


class InvalidBinaryError(PersistenceError):
    """The persisted binary content is malformed."""

    kind = ErrorKind.INVALID_BINARY


class IndexReleasedError(InvalidArgumentError):
    """The index handle was already released (closed or dumped)."""

    def __init__(self, message: str = "index handle has been released"):
        super().__init__(message)


_KIND_TO_ERROR: Dict[ErrorKind, Type[VsagError]] = {
    cls.kind: cls
    for cls in (
        UnknownError,
        InternalError,
        InvalidArgumentError,
        BuildTwiceError,
        IndexNotEmptyError,
        UnsupportedIndexError,
        UnsupportedIndexOperationError,
        DimensionMismatchError,
        IndexEmptyError,
        OutOfMemoryError,
        ReadError,
        MissingFileError,
        InvalidBinaryError,
    )
}


def error_for_kind(raw_kind: int, message: str) -> VsagError:
    """Build the exception matching a native error code.

    Unknown codes produce an ``UnknownError`` that still remembers the raw
    value in ``raw_kind``.
    """
    kind = ErrorKind.from_native(raw_kind)
    return _KIND_TO_ERROR[kind](message, raw_kind=raw_kind)
