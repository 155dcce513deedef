"""gRPC adapter for the qlik.sse.Connector service

Maps the three remote calls onto the engine:

- GetCapabilities: returns the registry's frozen capabilities
- ExecuteFunction: FunctionDispatcher over the raw request bundles
- EvaluateScript: ScriptEvaluator over the raw request bundles

The streaming calls are registered without (de)serializers so the engine sees
the raw bundle bytes and does its own decoding; undecodable input therefore
surfaces as MALFORMED_STREAM rather than as a transport failure. Engine errors
end the call through context.abort() with a status code per error kind and
the details "CODE: message".

# Example

```python
registry = CapabilityRegistry("my-plugin", "1.0.0")
registry.register(definition, fn)
server = serve(registry)
server.wait_for_termination()
```
"""

import logging
from concurrent import futures
from typing import Any, Iterator, Optional

import grpc

from ssekit.config import EngineConfig
from ssekit.errors import (
    ArityMismatchError,
    CallCancelledError,
    EngineError,
    HandlerError,
    MalformedHeaderError,
    MalformedStreamError,
    RowCountMismatchError,
    ScriptingDisabledError,
    SessionStateError,
    TransportError,
    UnknownFunctionError,
)
from ssekit.registry import CapabilityRegistry
from ssekit.runtime.dispatch import FunctionDispatcher, ScriptEvaluator, ScriptExecutor
from ssekit.wire.schema import SERVICE_NAME, CapabilitiesMessage, Empty


logger = logging.getLogger(__name__)

CACHE_METADATA_KEY = "qlik-cache"
CACHE_DISABLED = "no-store"

# Most specific class first
_STATUS_CODES = [
    (MalformedHeaderError, grpc.StatusCode.INVALID_ARGUMENT),
    (MalformedStreamError, grpc.StatusCode.DATA_LOSS),
    (UnknownFunctionError, grpc.StatusCode.NOT_FOUND),
    (RowCountMismatchError, grpc.StatusCode.OUT_OF_RANGE),
    (ArityMismatchError, grpc.StatusCode.FAILED_PRECONDITION),
    (ScriptingDisabledError, grpc.StatusCode.UNIMPLEMENTED),
    (TransportError, grpc.StatusCode.UNAVAILABLE),
    (CallCancelledError, grpc.StatusCode.CANCELLED),
    (HandlerError, grpc.StatusCode.INTERNAL),
    (SessionStateError, grpc.StatusCode.INTERNAL),
]


def status_code_for(error: EngineError) -> grpc.StatusCode:
    for error_cls, status in _STATUS_CODES:
        if isinstance(error, error_cls):
            return status
    return grpc.StatusCode.UNKNOWN


class ConnectorServicer:
    """Implements the Connector service on top of the engine"""

    def __init__(
        self,
        registry: CapabilityRegistry,
        script_executor: Optional[ScriptExecutor] = None,
        config: Optional[EngineConfig] = None,
    ):
        self.registry = registry
        self.config = config if config is not None else EngineConfig()
        self.dispatcher = FunctionDispatcher(registry, self.config)
        self.evaluator = ScriptEvaluator(registry, script_executor, self.config)

    def GetCapabilities(self, request: Any, context: grpc.ServicerContext) -> Any:
        capabilities = self.registry.get_capabilities()
        logger.info(
            "Capabilities requested: %s %s, %d functions",
            capabilities.plugin_identifier,
            capabilities.plugin_version,
            len(capabilities.functions),
        )
        return capabilities.to_message()

    def ExecuteFunction(self, request_iterator: Iterator[bytes], context: grpc.ServicerContext) -> Iterator[bytes]:
        self._send_initial_metadata(context)
        try:
            yield from self.dispatcher.execute(
                context.invocation_metadata(), request_iterator, is_active=context.is_active
            )
        except EngineError as e:
            self._abort(context, e)

    def EvaluateScript(self, request_iterator: Iterator[bytes], context: grpc.ServicerContext) -> Iterator[bytes]:
        self._send_initial_metadata(context)
        try:
            yield from self.evaluator.execute(
                context.invocation_metadata(), request_iterator, is_active=context.is_active
            )
        except EngineError as e:
            self._abort(context, e)

    def _send_initial_metadata(self, context: grpc.ServicerContext) -> None:
        if self.config.disable_cache:
            context.send_initial_metadata(((CACHE_METADATA_KEY, CACHE_DISABLED),))

    def _abort(self, context: grpc.ServicerContext, error: EngineError) -> None:
        status = status_code_for(error)
        logger.warning("Call ended with %s: [%s] %s", status.name, error.code, error)
        context.abort(status, f"{error.code}: {error}")

    def generic_handler(self) -> grpc.GenericRpcHandler:
        return grpc.method_handlers_generic_handler(SERVICE_NAME, {
            "GetCapabilities": grpc.unary_unary_rpc_method_handler(
                self.GetCapabilities,
                request_deserializer=Empty.FromString,
                response_serializer=CapabilitiesMessage.SerializeToString,
            ),
            "ExecuteFunction": grpc.stream_stream_rpc_method_handler(self.ExecuteFunction),
            "EvaluateScript": grpc.stream_stream_rpc_method_handler(self.EvaluateScript),
        })


def create_server(
    servicer: ConnectorServicer,
    credentials: Optional[grpc.ServerCredentials] = None,
) -> grpc.Server:
    """Build (but do not start) a gRPC server hosting the servicer"""
    config = servicer.config
    server = grpc.server(futures.ThreadPoolExecutor(max_workers=config.max_workers))
    server.add_generic_rpc_handlers((servicer.generic_handler(),))
    address = f"[::]:{config.port}"
    if credentials is None:
        server.add_insecure_port(address)
    else:
        server.add_secure_port(address, credentials)
    return server


def serve(
    registry: CapabilityRegistry,
    script_executor: Optional[ScriptExecutor] = None,
    config: Optional[EngineConfig] = None,
    credentials: Optional[grpc.ServerCredentials] = None,
) -> grpc.Server:
    """Start serving the registry. Freezes the registry."""
    servicer = ConnectorServicer(registry, script_executor, config)
    capabilities = registry.get_capabilities()
    server = create_server(servicer, credentials)
    server.start()
    logger.info(
        "Serving %s %s on port %d (%s)",
        capabilities.plugin_identifier,
        capabilities.plugin_version,
        servicer.config.port,
        "secure" if credentials is not None else "insecure",
    )
    return server
