"""SSE kit - engine for server-side extension plugins

This library implements the plugin side of the qlik.sse Connector protocol:
capability advertisement, typed request headers, row bundling, the Dual value
model and a per-call streaming state machine that dispatches to registered
functions or to a script executor.
"""

from ssekit.config import EngineConfig
from ssekit.dual import (
    NULL_DUAL,
    Dual,
    DualKind,
    Row,
    row_from_values,
    row_to_values,
    rows_from_columns,
    rows_to_columns,
)
from ssekit.errors import (
    ArityMismatchError,
    CallCancelledError,
    ConfigError,
    DuplicateFunctionIdError,
    EngineError,
    HandlerError,
    MalformedHeaderError,
    MalformedStreamError,
    RegistryFrozenError,
    RowCountMismatchError,
    ScriptingDisabledError,
    SessionStateError,
    TransportError,
    UnknownFunctionError,
)
from ssekit.registry import Capabilities, CapabilityRegistry, FunctionDefinition, RegisteredFunction
from ssekit.runtime import (
    Binding,
    CallContext,
    FunctionDispatcher,
    ScriptEvaluator,
    ScriptExecutor,
    SessionState,
    StreamingSession,
)
from ssekit.types import DataType, FunctionType, Parameter
from ssekit.wire import (
    BundleLimits,
    Bundler,
    CallKind,
    CommonRequestHeader,
    FunctionRequestHeader,
    ScriptRequestHeader,
    Unbundler,
)

__version__ = "0.1.0"
