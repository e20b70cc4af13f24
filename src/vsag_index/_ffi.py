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
Native call surface of the VSAG C wrapper.

Every entry point is declared once in ``SIGNATURES``; the same table drives
``argtypes``/``restype`` on the loaded library and ``PROTOTYPES`` used to
wrap callables that stand in for the library.

Fallible calls return a ``CError*`` (declared as ``c_void_p`` so that
callback-based implementations can return it too). NULL means success and
only then are the out-parameters valid.

The library may keep process-wide state (thread pools, allocators) shared by
all handles, so it is loaded at most once per process and never unloaded.
"""

import ctypes
import ctypes.util
import os
import platform as plat
import threading
from typing import Any, Dict, List, Optional, Tuple

from ._logging import get_logger

logger = get_logger(__name__)

# Must match the message buffer length of CError in the C wrapper.
ERROR_MESSAGE_CAPACITY = 256

_i64_p = ctypes.POINTER(ctypes.c_int64)
_f32_p = ctypes.POINTER(ctypes.c_float)


class CError(ctypes.Structure):
    """``struct CError { int type_; char message[256]; }``"""

    _fields_ = [
        ("type_", ctypes.c_int),
        # Raw bytes, not c_char, so ctypes does not stop at the first NUL.
        ("message", ctypes.c_ubyte * ERROR_MESSAGE_CAPACITY),
    ]


CErrorPtr = ctypes.POINTER(CError)


SIGNATURES: Dict[str, Tuple[Any, List[Any]]] = {
    # name: (restype, argtypes)
    "create_index": (
        ctypes.c_void_p,
        [
            ctypes.c_char_p,  # in_index_type
            ctypes.c_char_p,  # in_parameters
            ctypes.POINTER(ctypes.c_void_p),  # out_index_ptr
        ],
    ),
    "build_index": (
        ctypes.c_void_p,
        [
            ctypes.c_void_p,  # in_index_ptr
            ctypes.c_size_t,  # in_num_vectors
            ctypes.c_size_t,  # in_dim
            _i64_p,  # in_ids
            _f32_p,  # in_vectors (num_vectors * dim, row-major)
            ctypes.POINTER(_i64_p),  # out_failed_ids
            ctypes.POINTER(ctypes.c_size_t),  # out_num_failed
        ],
    ),
    "knn_search_index": (
        ctypes.c_void_p,
        [
            ctypes.c_void_p,  # in_index_ptr
            ctypes.c_size_t,  # in_dim
            _f32_p,  # in_query_vector
            ctypes.c_size_t,  # in_k
            ctypes.c_char_p,  # in_search_parameters
            ctypes.POINTER(_i64_p),  # out_ids
            ctypes.POINTER(_f32_p),  # out_distances
            ctypes.POINTER(ctypes.c_size_t),  # out_num_results
        ],
    ),
    "dump_index": (
        ctypes.c_void_p,
        [
            ctypes.c_void_p,  # in_index_ptr
            ctypes.c_char_p,  # in_file_path
        ],
    ),
    "load_index": (
        ctypes.c_void_p,
        [
            ctypes.c_char_p,  # in_file_path
            ctypes.c_char_p,  # in_index_type
            ctypes.c_char_p,  # in_parameters
            ctypes.POINTER(ctypes.c_void_p),  # out_index_ptr
        ],
    ),
    "free_index": (None, [ctypes.c_void_p]),
    "free_error": (None, [ctypes.c_void_p]),
    "free_i64_vector": (None, [_i64_p]),
    "free_f32_vector": (None, [_f32_p]),
}

PROTOTYPES = {
    name: ctypes.CFUNCTYPE(restype, *argtypes)
    for name, (restype, argtypes) in SIGNATURES.items()
}


class LibraryNotFoundError(ImportError):
    """The VSAG shared library could not be located or is incompatible."""


def _get_platform_candidates() -> List[str]:
    """Get list of potential platform directory names."""
    system = plat.system().lower()
    machine = plat.machine().lower()

    if machine in ("x86_64", "amd64"):
        machine = "x86_64"
    elif machine in ("arm64", "aarch64"):
        machine = "aarch64"

    candidates = [f"{system}-{machine}"]

    if system == "darwin":
        candidates.append(f"{machine}-apple-darwin")
    elif system == "linux":
        candidates.append(f"{machine}-unknown-linux-gnu")
    elif system == "windows":
        candidates.append(f"{machine}-pc-windows-msvc")

    return candidates


def _library_names() -> List[str]:
    system = plat.system()
    if system == "Darwin":
        return ["libvsag_c.dylib", "libvsag.dylib"]
    if system == "Windows":
        return ["vsag_c.dll", "vsag.dll"]
    return ["libvsag_c.so", "libvsag.so"]


def find_library() -> Optional[str]:
    """Find the VSAG shared library.

    Search order:
    1. VSAG_LIB_PATH environment variable (file or directory)
    2. Bundled library in wheel (lib/{platform}/, then lib/)
    3. Package directory
    4. System paths, then the platform loader's search
    """
    lib_names = _library_names()

    env_path = os.environ.get("VSAG_LIB_PATH")
    if env_path:
        if os.path.isfile(env_path):
            return env_path
        for name in lib_names:
            full_path = os.path.join(env_path, name)
            if os.path.exists(full_path):
                return full_path
        logger.warning("VSAG_LIB_PATH=%s does not contain %s", env_path, lib_names)

    pkg_dir = os.path.dirname(os.path.abspath(__file__))
    search_paths = [
        os.path.join(pkg_dir, "lib", platform_dir)
        for platform_dir in _get_platform_candidates()
    ]
    search_paths.append(os.path.join(pkg_dir, "lib"))
    search_paths.append(pkg_dir)
    search_paths.extend([
        "/usr/local/lib",
        "/usr/lib",
        "/opt/homebrew/lib",
        os.path.expanduser("~/.vsag/lib"),
    ])

    for path in search_paths:
        for name in lib_names:
            full_path = os.path.join(path, name)
            if os.path.exists(full_path):
                return full_path

    for stem in ("vsag_c", "vsag"):
        found = ctypes.util.find_library(stem)
        if found:
            return found

    return None


def _bind(lib: Any) -> Any:
    """Check every symbol exists; declare signatures on real libraries."""
    typed = isinstance(lib, ctypes.CDLL)
    for name, (restype, argtypes) in SIGNATURES.items():
        try:
            func = getattr(lib, name)
        except AttributeError:
            raise LibraryNotFoundError(
                f"VSAG library {lib!r} does not export {name!r}"
            ) from None
        if typed:
            func.argtypes = argtypes
            func.restype = restype
    return lib


class _FFI:
    """Process-wide holder of the native library."""

    _lib = None
    _lock = threading.Lock()

    @classmethod
    def get_lib(cls):
        lib = cls._lib
        if lib is not None:
            return lib
        with cls._lock:
            if cls._lib is None:
                path = find_library()
                if path is None:
                    raise LibraryNotFoundError(
                        "Could not find the VSAG C library. "
                        "Set VSAG_LIB_PATH to the shared object or the "
                        "directory that contains it."
                    )
                logger.debug("loading VSAG library from %s", path)
                cls._lib = _bind(ctypes.CDLL(path))
            return cls._lib

    @classmethod
    def set_lib(cls, lib) -> None:
        with cls._lock:
            cls._lib = None if lib is None else _bind(lib)


def get_lib():
    """Return the active native library, loading it on first use."""
    return _FFI.get_lib()


def use_library(lib) -> None:
    """Install an already-loaded library object as the active library.

    Accepts a ``ctypes.CDLL`` (signatures are declared on it) or any object
    exposing the entry points of ``SIGNATURES`` as callables built from
    ``PROTOTYPES``. Passing ``None`` forgets the active library so the next
    call searches again. Handles created earlier keep the library they were
    created with.
    """
    _FFI.set_lib(lib)
