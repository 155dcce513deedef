"""Tests for the request header codec"""

import pytest

from ssekit.errors import MalformedHeaderError
from ssekit.types import DataType, FunctionType, Parameter
from ssekit.wire.headers import (
    COMMON_HEADER_KEY,
    FUNCTION_HEADER_KEY,
    SCRIPT_HEADER_KEY,
    CallKind,
    CommonRequestHeader,
    FunctionRequestHeader,
    ScriptRequestHeader,
    call_kind,
    decode_common,
    decode_function,
    decode_headers,
    decode_script,
    encode_common,
    encode_function,
    encode_metadata,
    encode_script,
)
from ssekit.wire.schema import ScriptRequestHeaderMessage


COMMON = CommonRequestHeader(app_id="app-1", user_id="UserDirectory=X; UserId=me", cardinality=42)
FUNCTION = FunctionRequestHeader(function_id=7, version="1")
SCRIPT = ScriptRequestHeader(
    script="args[0] * 2",
    function_type=FunctionType.TENSOR,
    return_type=DataType.DUAL,
    params=[Parameter(DataType.NUMERIC, "a"), Parameter(DataType.STRING, "b")],
)


# TEST101: Test each header kind roundtrips through its codec
def test_roundtrip():
    assert decode_common(encode_common(COMMON)) == COMMON
    assert decode_function(encode_function(FUNCTION)) == FUNCTION
    assert decode_script(encode_script(SCRIPT)) == SCRIPT


# TEST102: Test default-valued headers roundtrip
def test_default_roundtrip():
    empty_common = CommonRequestHeader()
    assert decode_common(encode_common(empty_common)) == empty_common
    assert decode_function(b"") == FunctionRequestHeader(function_id=0, version="")
    negative = FunctionRequestHeader(function_id=-5)
    assert decode_function(encode_function(negative)) == negative


# TEST103: Test encoding is deterministic
def test_deterministic():
    assert encode_script(SCRIPT) == encode_script(SCRIPT)
    copy = ScriptRequestHeader(
        script=SCRIPT.script,
        function_type=SCRIPT.function_type,
        return_type=SCRIPT.return_type,
        params=list(SCRIPT.params),
    )
    assert encode_script(copy) == encode_script(SCRIPT)


# TEST104: Test truncated bytes fail with MalformedHeaderError
def test_truncated():
    data = encode_common(COMMON)
    with pytest.raises(MalformedHeaderError):
        decode_common(data[:-1])
    with pytest.raises(MalformedHeaderError):
        decode_common(b"\x0a\x05ab")


# TEST105: Test non-binary values fail with MalformedHeaderError
def test_not_binary():
    with pytest.raises(MalformedHeaderError):
        decode_common("not bytes")


# TEST106: Test unknown enum numbers in a script header are rejected
def test_unknown_enum():
    data = ScriptRequestHeaderMessage(script="x", functionType=9, returnType=0).SerializeToString()
    with pytest.raises(MalformedHeaderError):
        decode_script(data)


# TEST107: Test metadata lookup ignores order, case and unrelated entries
def test_metadata_lookup():
    metadata = [
        ("user-agent", "grpc-c/1.0"),
        (FUNCTION_HEADER_KEY.upper(), encode_function(FUNCTION)),
        ("x-unrelated-bin", b"\x00\x01"),
        (COMMON_HEADER_KEY, encode_common(COMMON)),
    ]
    headers = decode_headers(metadata, CallKind.FUNCTION)
    assert headers.common == COMMON
    assert headers.function == FUNCTION
    assert headers.script is None
    assert headers.kind is CallKind.FUNCTION


# TEST108: Test a mapping works as metadata
def test_mapping_metadata():
    metadata = dict(encode_metadata(COMMON, script=SCRIPT))
    headers = decode_headers(metadata, CallKind.SCRIPT)
    assert headers.script == SCRIPT
    assert call_kind(metadata) is CallKind.SCRIPT


# TEST109: Test missing common header fails
def test_missing_common():
    with pytest.raises(MalformedHeaderError):
        decode_headers([(FUNCTION_HEADER_KEY, encode_function(FUNCTION))], CallKind.FUNCTION)


# TEST110: Test both specific headers at once fail
def test_both_specific_headers():
    metadata = encode_metadata(COMMON, function=FUNCTION) + [(SCRIPT_HEADER_KEY, encode_script(SCRIPT))]
    with pytest.raises(MalformedHeaderError):
        call_kind(metadata)
    with pytest.raises(MalformedHeaderError):
        decode_headers(metadata, CallKind.FUNCTION)


# TEST111: Test a header for the wrong call kind fails
def test_wrong_kind():
    with pytest.raises(MalformedHeaderError):
        decode_headers(encode_metadata(COMMON, script=SCRIPT), CallKind.FUNCTION)


# TEST112: Test a duplicated header key fails
def test_duplicate_key():
    metadata = encode_metadata(COMMON, function=FUNCTION) + [(COMMON_HEADER_KEY, encode_common(COMMON))]
    with pytest.raises(MalformedHeaderError):
        decode_headers(metadata, CallKind.FUNCTION)


# TEST113: Test a generator of metadata pairs is accepted
def test_metadata_generator():
    pairs = encode_metadata(COMMON, function=FUNCTION)
    headers = decode_headers((pair for pair in pairs), CallKind.FUNCTION)
    assert headers.function.function_id == 7


# TEST114: Test encode_metadata requires exactly one specific header
def test_encode_metadata_requires_one():
    with pytest.raises(ValueError):
        encode_metadata(COMMON)
    with pytest.raises(ValueError):
        encode_metadata(COMMON, function=FUNCTION, script=SCRIPT)
