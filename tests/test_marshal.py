"""Ownership transfer across the native boundary."""

import ctypes
import json
import logging

import numpy as np
import pytest

from vsag_index._marshal import (
    error_from_native,
    parameters_to_text,
    raise_for_error,
    take_f32_buffer,
    take_i64_buffer,
    take_search_buffers,
    to_c_string,
)
from vsag_index.errors import (
    DimensionMismatchError,
    ErrorKind,
    InternalError,
    InvalidArgumentError,
    UnknownError,
)
from vsag_index.params import HnswSearchParams


# ---------------------------------------------------------------------------
# Native errors
# ---------------------------------------------------------------------------

def test_error_is_decoded_and_freed(native):
    err = native._make_error(int(ErrorKind.DIMENSION_MISMATCH), b"dimension not equal\x00garbage")
    error = error_from_native(native, err)

    assert isinstance(error, DimensionMismatchError)
    assert error.message == "dimension not equal"
    assert native.tracker.freed["error"] == 1
    assert native.tracker.outstanding("error") == 0


def test_message_filling_whole_buffer_is_kept(native):
    message = b"x" * 256
    error = error_from_native(native, native._make_error(3, message))
    assert error.message == "x" * 256


def test_invalid_utf8_is_replaced_not_fatal(native):
    error = error_from_native(native, native._make_error(2, b"bad \xff\xfe bytes"))
    assert error.message == "bad \ufffd\ufffd bytes"
    assert native.tracker.outstanding("error") == 0


def test_unknown_kind_falls_back_and_warns(native, caplog):
    caplog.set_level(logging.WARNING, logger="vsag_index")
    error = error_from_native(native, native._make_error(42, b"new failure mode"))

    assert isinstance(error, UnknownError)
    assert error.raw_kind == 42
    assert "unrecognized error kind 42" in caplog.text
    assert native.tracker.outstanding("error") == 0


def test_raise_for_error_ignores_null(native):
    raise_for_error(native, None)
    raise_for_error(native, 0)
    assert native.tracker.freed["error"] == 0


def test_raise_for_error_raises_converted_error(native):
    with pytest.raises(InvalidArgumentError, match="nope"):
        raise_for_error(native, native._make_error(3, b"nope"))
    assert native.tracker.outstanding("error") == 0


# ---------------------------------------------------------------------------
# Output buffers
# ---------------------------------------------------------------------------

def test_i64_buffer_is_copied_then_freed(native):
    ptr = native._alloc_buffer("i64", ctypes.c_int64, [7, -3, 2**40])
    values = take_i64_buffer(native, ptr, 3)

    assert values.dtype == np.int64
    assert values.tolist() == [7, -3, 2**40]
    assert values.flags.owndata
    assert native.tracker.freed["i64"] == 1
    assert native.tracker.outstanding("i64") == 0


def test_f32_buffer_is_copied_then_freed(native):
    ptr = native._alloc_buffer("f32", ctypes.c_float, [0.5, 1.25])
    values = take_f32_buffer(native, ptr, 2)

    assert values.dtype == np.float32
    assert values.tolist() == [0.5, 1.25]
    assert native.tracker.outstanding("f32") == 0


def test_empty_buffer_is_still_freed(native):
    ptr = native._alloc_buffer("i64", ctypes.c_int64, [])
    values = take_i64_buffer(native, ptr, 0)

    assert values.shape == (0,)
    assert native.tracker.freed["i64"] == 1
    assert native.tracker.outstanding("i64") == 0


def test_null_empty_buffer_is_routed_through_free(native):
    values = take_f32_buffer(native, ctypes.POINTER(ctypes.c_float)(), 0)
    assert values.shape == (0,)
    assert native.tracker.null_frees["f32"] == 1


def test_null_buffer_with_elements_is_an_error_but_still_freed(native):
    with pytest.raises(InternalError):
        take_i64_buffer(native, ctypes.POINTER(ctypes.c_int64)(), 5)
    assert native.tracker.null_frees["i64"] == 1


def test_search_buffers_freed_when_first_copy_fails(native):
    distances = native._alloc_buffer("f32", ctypes.c_float, [1.0, 2.0])
    with pytest.raises(InternalError):
        take_search_buffers(native, ctypes.POINTER(ctypes.c_int64)(), distances, 2)
    assert native.tracker.freed["f32"] == 1
    assert native.tracker.outstanding("f32") == 0


def test_search_buffers_pair_ids_and_distances(native):
    ids = native._alloc_buffer("i64", ctypes.c_int64, [4, 1])
    distances = native._alloc_buffer("f32", ctypes.c_float, [0.25, 0.5])
    got_ids, got_distances = take_search_buffers(native, ids, distances, 2)

    assert got_ids.tolist() == [4, 1]
    assert got_distances.tolist() == [0.25, 0.5]
    assert native.tracker.outstanding() == {}


# ---------------------------------------------------------------------------
# Outbound strings
# ---------------------------------------------------------------------------

def test_to_c_string_encodes_utf8():
    assert to_c_string("hnsw") == b"hnsw"
    assert to_c_string("/tmp/índex") == "/tmp/índex".encode("utf-8")


def test_to_c_string_rejects_embedded_nul():
    with pytest.raises(InvalidArgumentError, match="embedded NUL byte at position 4"):
        to_c_string("hnsw\x00diskann", "index_type")


def test_to_c_string_rejects_lone_surrogates():
    with pytest.raises(InvalidArgumentError):
        to_c_string("bad \udc80")


def test_to_c_string_requires_text():
    with pytest.raises(TypeError):
        to_c_string(b"hnsw")


def test_parameters_pass_through_unmodified():
    text = '{"hnsw": {"ef_search": 100}, "x": [1,2]}'
    assert parameters_to_text(text) is text


def test_parameters_from_mapping_and_builder():
    assert json.loads(parameters_to_text({"hnsw": {"ef_search": 8}})) == {"hnsw": {"ef_search": 8}}
    assert json.loads(parameters_to_text(HnswSearchParams(ef_search=8))) == {"hnsw": {"ef_search": 8}}


def test_parameters_reject_other_types():
    with pytest.raises(TypeError):
        parameters_to_text(42)
