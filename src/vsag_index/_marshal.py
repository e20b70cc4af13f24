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
Conversions across the native boundary.

Ownership rules:
- A non-NULL ``CError*`` returned by a call is consumed by
  ``error_from_native``, which frees it exactly once.
- A buffer handed back through an out-parameter is consumed by
  ``take_i64_buffer`` / ``take_f32_buffer``: the elements are copied into a
  fresh numpy array and the native buffer is freed, also when it is NULL or
  empty and also when the copy fails.
- Inbound arrays are only borrowed by the native side for the duration of
  the call.
"""

import ctypes
import json
from collections.abc import Mapping
from typing import Any, Tuple

import numpy as np

from ._ffi import CErrorPtr
from ._logging import get_logger
from .errors import (
    ErrorKind,
    InternalError,
    InvalidArgumentError,
    VsagError,
    error_for_kind,
)

logger = get_logger(__name__)

I64_P = ctypes.POINTER(ctypes.c_int64)
F32_P = ctypes.POINTER(ctypes.c_float)


# =============================================================================
# Errors
# =============================================================================

def error_from_native(lib, err) -> VsagError:
    """Convert a native ``CError*`` into an exception and free it.

    Args:
        lib: Library that produced the error.
        err: Non-NULL error address returned by a native call.

    Returns:
        The matching ``VsagError`` subclass instance (not raised).
    """
    try:
        c_err = ctypes.cast(err, CErrorPtr).contents
        raw_kind = int(c_err.type_)
        raw = bytes(c_err.message)
    finally:
        lib.free_error(err)

    end = raw.find(b"\x00")
    if end >= 0:
        raw = raw[:end]
    message = raw.decode("utf-8", errors="replace")

    error = error_for_kind(raw_kind, message)
    if error.kind == ErrorKind.UNKNOWN_ERROR and raw_kind != ErrorKind.UNKNOWN_ERROR:
        logger.warning(
            "native library reported unrecognized error kind %d: %s",
            raw_kind,
            message,
        )
    return error


def raise_for_error(lib, err) -> None:
    """Raise the converted native error if ``err`` is not NULL."""
    if err:
        raise error_from_native(lib, err)


# =============================================================================
# Outbound buffers (native -> Python)
# =============================================================================

def _take_buffer(ptr, count: int, dtype, free) -> np.ndarray:
    try:
        if count == 0:
            return np.empty(0, dtype=dtype)
        if not ptr:
            raise InternalError(
                f"native call returned NULL buffer for {count} elements"
            )
        view = np.ctypeslib.as_array(ptr, shape=(count,))
        return np.array(view, dtype=dtype, copy=True)
    finally:
        free(ptr)


def take_i64_buffer(lib, ptr, count: int) -> np.ndarray:
    """Copy ``count`` int64 values out of a native buffer, then free it."""
    return _take_buffer(ptr, count, np.int64, lib.free_i64_vector)


def take_f32_buffer(lib, ptr, count: int) -> np.ndarray:
    """Copy ``count`` float32 values out of a native buffer, then free it."""
    return _take_buffer(ptr, count, np.float32, lib.free_f32_vector)


def take_search_buffers(lib, ids_ptr, distances_ptr, count: int) -> Tuple[np.ndarray, np.ndarray]:
    """Take ownership of the id and distance buffers of one search call.

    Both buffers are freed even when copying the first one fails.
    """
    try:
        ids = take_i64_buffer(lib, ids_ptr, count)
    except BaseException:
        lib.free_f32_vector(distances_ptr)
        raise
    distances = take_f32_buffer(lib, distances_ptr, count)
    logger.debug("took ownership of %d search results", count)
    return ids, distances


# =============================================================================
# Inbound values (Python -> native)
# =============================================================================

def to_c_string(value: str, name: str = "value") -> bytes:
    """Encode text for a ``const char*`` argument.

    Raises:
        InvalidArgumentError: If the text contains an embedded NUL byte,
            which the native side would silently truncate at.
        TypeError: If ``value`` is not a string.
    """
    if not isinstance(value, str):
        raise TypeError(f"{name} must be str, got {type(value).__name__}")
    if "\x00" in value:
        raise InvalidArgumentError(
            f"{name} contains an embedded NUL byte at position {value.index(chr(0))}"
        )
    try:
        return value.encode("utf-8")
    except UnicodeEncodeError as e:
        raise InvalidArgumentError(f"{name} is not encodable as UTF-8: {e}") from e


def parameters_to_text(parameters: Any, name: str = "parameters") -> str:
    """Turn a parameter document into the JSON text passed to the library.

    Strings pass through unmodified; mappings are serialized with
    ``json.dumps``; parameter builders provide ``to_json()``.
    """
    if isinstance(parameters, str):
        return parameters
    to_json = getattr(parameters, "to_json", None)
    if callable(to_json):
        return to_json()
    if isinstance(parameters, Mapping):
        return json.dumps(dict(parameters))
    raise TypeError(
        f"{name} must be a JSON string, a mapping or a parameter builder, "
        f"got {type(parameters).__name__}"
    )


def as_i64_array(values: Any, name: str = "ids") -> np.ndarray:
    """Contiguous 1-D int64 view of ``values`` (copied only if needed)."""
    arr = np.ascontiguousarray(values, dtype=np.int64)
    if arr.ndim != 1:
        raise InvalidArgumentError(f"{name} must be 1-D, got shape {arr.shape}")
    return arr


def as_f32_array(values: Any) -> np.ndarray:
    """Contiguous float32 view of ``values`` (copied only if needed)."""
    return np.ascontiguousarray(values, dtype=np.float32)


def i64_pointer(arr: np.ndarray):
    return arr.ctypes.data_as(I64_P)


def f32_pointer(arr: np.ndarray):
    return arr.ctypes.data_as(F32_P)
