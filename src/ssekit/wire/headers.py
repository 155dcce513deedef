"""Request header codec

Every streaming call opens with binary headers carried in the call metadata:

- `qlik-commonrequestheader-bin`: CommonRequestHeader, present on every call
- `qlik-functionrequestheader-bin`: FunctionRequestHeader, ExecuteFunction only
- `qlik-scriptrequestheader-bin`: ScriptRequestHeader, EvaluateScript only

Metadata may arrive in any order and may contain unrelated entries; lookup is
by key only. Keys are matched case-insensitively since HTTP/2 lowercases them.
Encoding is deterministic so a retried call carries identical bytes.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterable, List, Mapping, Optional, Tuple, Union

from google.protobuf.message import DecodeError

from ssekit.errors import MalformedHeaderError
from ssekit.types import DataType, FunctionType, Parameter
from ssekit.wire.schema import (
    CommonRequestHeaderMessage,
    FunctionRequestHeaderMessage,
    ScriptRequestHeaderMessage,
)


COMMON_HEADER_KEY = "qlik-commonrequestheader-bin"
FUNCTION_HEADER_KEY = "qlik-functionrequestheader-bin"
SCRIPT_HEADER_KEY = "qlik-scriptrequestheader-bin"

Metadata = Union[Mapping[str, Any], Iterable[Tuple[str, Any]]]


class CallKind(Enum):
    """Which streaming call a set of metadata opens"""
    FUNCTION = "function"
    SCRIPT = "script"

    @property
    def header_key(self) -> str:
        if self is CallKind.FUNCTION:
            return FUNCTION_HEADER_KEY
        return SCRIPT_HEADER_KEY


@dataclass(frozen=True)
class CommonRequestHeader:
    """Attached to every call. cardinality is a row count hint, not a limit."""
    app_id: str = ""
    user_id: str = ""
    cardinality: int = 0

    def to_message(self) -> Any:
        return CommonRequestHeaderMessage(
            appId=self.app_id,
            userId=self.user_id,
            cardinality=self.cardinality,
        )

    @classmethod
    def from_message(cls, message: Any) -> "CommonRequestHeader":
        return cls(app_id=message.appId, user_id=message.userId, cardinality=message.cardinality)


@dataclass(frozen=True)
class FunctionRequestHeader:
    """Attached to ExecuteFunction calls. version is passed through untouched."""
    function_id: int
    version: str = ""

    def to_message(self) -> Any:
        return FunctionRequestHeaderMessage(functionId=self.function_id, version=self.version)

    @classmethod
    def from_message(cls, message: Any) -> "FunctionRequestHeader":
        return cls(function_id=message.functionId, version=message.version)


@dataclass(frozen=True)
class ScriptRequestHeader:
    """Attached to EvaluateScript calls"""
    script: str
    function_type: FunctionType
    return_type: DataType
    params: Tuple[Parameter, ...] = field(default_factory=tuple)

    def __post_init__(self):
        object.__setattr__(self, "function_type", FunctionType(self.function_type))
        object.__setattr__(self, "return_type", DataType(self.return_type))
        object.__setattr__(self, "params", tuple(self.params))

    def to_message(self) -> Any:
        return ScriptRequestHeaderMessage(
            script=self.script,
            functionType=int(self.function_type),
            returnType=int(self.return_type),
            params=[p.to_message() for p in self.params],
        )

    @classmethod
    def from_message(cls, message: Any) -> "ScriptRequestHeader":
        function_type = FunctionType.from_int(message.functionType)
        if function_type is None:
            raise ValueError(f"Unknown function type {message.functionType}")
        return_type = DataType.from_int(message.returnType)
        if return_type is None:
            raise ValueError(f"Unknown return type {message.returnType}")
        return cls(
            script=message.script,
            function_type=function_type,
            return_type=return_type,
            params=tuple(Parameter.from_message(p) for p in message.params),
        )


@dataclass(frozen=True)
class RequestHeaders:
    """All headers decoded from one call's metadata"""
    common: CommonRequestHeader
    function: Optional[FunctionRequestHeader] = None
    script: Optional[ScriptRequestHeader] = None

    @property
    def kind(self) -> CallKind:
        if self.function is not None:
            return CallKind.FUNCTION
        return CallKind.SCRIPT


# =============================================================================
# Byte codec
# =============================================================================

def _encode(header) -> bytes:
    return header.to_message().SerializeToString(deterministic=True)


def _decode(data, message_cls, header_cls, label: str):
    if not isinstance(data, (bytes, bytearray, memoryview)):
        raise MalformedHeaderError(f"{label} header must be binary, got {type(data).__name__}")
    try:
        message = message_cls.FromString(bytes(data))
        return header_cls.from_message(message)
    except (DecodeError, UnicodeDecodeError, ValueError) as e:
        raise MalformedHeaderError(f"Cannot decode {label} header: {e}") from e


def encode_common(header: CommonRequestHeader) -> bytes:
    return _encode(header)


def decode_common(data: bytes) -> CommonRequestHeader:
    return _decode(data, CommonRequestHeaderMessage, CommonRequestHeader, "common")


def encode_function(header: FunctionRequestHeader) -> bytes:
    return _encode(header)


def decode_function(data: bytes) -> FunctionRequestHeader:
    return _decode(data, FunctionRequestHeaderMessage, FunctionRequestHeader, "function")


def encode_script(header: ScriptRequestHeader) -> bytes:
    return _encode(header)


def decode_script(data: bytes) -> ScriptRequestHeader:
    return _decode(data, ScriptRequestHeaderMessage, ScriptRequestHeader, "script")


# =============================================================================
# Metadata side-channel
# =============================================================================

def _pairs(metadata: Metadata) -> Iterable[Tuple[str, Any]]:
    if isinstance(metadata, Mapping):
        return metadata.items()
    return metadata


def metadata_value(metadata: Metadata, key: str) -> Optional[Any]:
    """Find the single value stored under key, or None if absent.

    Raises MalformedHeaderError if the key appears more than once.
    """
    found = None
    seen = False
    for entry_key, entry_value in _pairs(metadata):
        if entry_key.lower() != key:
            continue
        if seen:
            raise MalformedHeaderError(f"Metadata key '{key}' appears more than once")
        found = entry_value
        seen = True
    return found


def call_kind(metadata: Metadata) -> CallKind:
    """Determine the call kind from which specific header key is present"""
    has_function = metadata_value(metadata, FUNCTION_HEADER_KEY) is not None
    has_script = metadata_value(metadata, SCRIPT_HEADER_KEY) is not None
    if has_function and has_script:
        raise MalformedHeaderError("Both function and script headers are present")
    if has_function:
        return CallKind.FUNCTION
    if has_script:
        return CallKind.SCRIPT
    raise MalformedHeaderError("Neither a function nor a script header is present")


def decode_headers(metadata: Metadata, kind: CallKind) -> RequestHeaders:
    """Decode the common header and the header specific to kind.

    Raises MalformedHeaderError if either is missing or undecodable, or if
    the other kind's header is also present.
    """
    if not isinstance(metadata, Mapping):
        metadata = list(metadata)

    if call_kind(metadata) is not kind:
        raise MalformedHeaderError(f"Metadata does not open a {kind.value} call")

    common_data = metadata_value(metadata, COMMON_HEADER_KEY)
    if common_data is None:
        raise MalformedHeaderError(f"Missing '{COMMON_HEADER_KEY}' metadata")
    common = decode_common(common_data)

    specific = metadata_value(metadata, kind.header_key)
    if kind is CallKind.FUNCTION:
        return RequestHeaders(common=common, function=decode_function(specific))
    return RequestHeaders(common=common, script=decode_script(specific))


def encode_metadata(
    common: CommonRequestHeader,
    function: Optional[FunctionRequestHeader] = None,
    script: Optional[ScriptRequestHeader] = None,
) -> List[Tuple[str, bytes]]:
    """Build the metadata pairs that open a call"""
    if (function is None) == (script is None):
        raise ValueError("Exactly one of function or script header is required")
    metadata = [(COMMON_HEADER_KEY, encode_common(common))]
    if function is not None:
        metadata.append((FUNCTION_HEADER_KEY, encode_function(function)))
    else:
        metadata.append((SCRIPT_HEADER_KEY, encode_script(script)))
    return metadata
