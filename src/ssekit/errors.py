"""Engine error taxonomy

Every error raised by the engine derives from EngineError and carries a
stable string code. Per-call errors terminate only their own session and are
reported to the transport as the call's terminal status. Registration and
configuration errors are raised at startup and are fatal to the plugin.
"""


class EngineError(Exception):
    """Base class for all engine errors"""
    code = "ENGINE_ERROR"


# =============================================================================
# Per-call errors
# =============================================================================

class MalformedHeaderError(EngineError):
    """A request header is missing, duplicated or cannot be decoded"""
    code = "MALFORMED_HEADER"


class MalformedStreamError(EngineError):
    """An input bundle cannot be decoded"""
    code = "MALFORMED_STREAM"


class UnknownFunctionError(EngineError):
    """The function ID in the request header is not registered"""
    code = "UNKNOWN_FUNCTION"

    def __init__(self, function_id: int):
        super().__init__(f"No function registered with id {function_id}")
        self.function_id = function_id


class ArityMismatchError(EngineError):
    """A row does not have the number of columns its contract declares"""
    code = "ARITY_MISMATCH"


class RowCountMismatchError(ArityMismatchError):
    """A SCALAR or AGGREGATION handler produced the wrong number of rows"""
    code = "ROW_COUNT_MISMATCH"


class ScriptingDisabledError(EngineError):
    """A script evaluation was requested but the plugin does not allow scripts"""
    code = "SCRIPTING_DISABLED"


class HandlerError(EngineError):
    """A function handler or script executor raised"""
    code = "HANDLER_ERROR"


class TransportError(EngineError):
    """The transport failed while delivering input bundles"""
    code = "TRANSPORT_ERROR"


class CallCancelledError(EngineError):
    """The call was cancelled or closed by the transport"""
    code = "CALL_CANCELLED"


class SessionStateError(EngineError):
    """An operation was attempted in a session state that does not allow it"""
    code = "SESSION_STATE"


# =============================================================================
# Startup errors
# =============================================================================

class DuplicateFunctionIdError(EngineError):
    """A function ID was registered twice"""
    code = "DUPLICATE_FUNCTION_ID"

    def __init__(self, function_id: int):
        super().__init__(f"Function id {function_id} is already registered")
        self.function_id = function_id


class RegistryFrozenError(EngineError):
    """A registration was attempted after the capabilities were first read"""
    code = "REGISTRY_FROZEN"


class ConfigError(EngineError):
    """An engine configuration value is invalid"""
    code = "CONFIG_ERROR"
