"""Wire-level pieces: the fixed qlik.sse schema, header codec and row bundling"""

from ssekit.wire.bundle import (
    DEFAULT_MAX_BUNDLE_BYTES,
    DEFAULT_MAX_BUNDLE_ROWS,
    BundleLimits,
    Bundler,
    Unbundler,
    decode_bundle,
    encode_bundle,
)
from ssekit.wire.headers import (
    COMMON_HEADER_KEY,
    FUNCTION_HEADER_KEY,
    SCRIPT_HEADER_KEY,
    CallKind,
    CommonRequestHeader,
    FunctionRequestHeader,
    RequestHeaders,
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
