"""Call dispatch: function execution and script evaluation

Both entry points follow the same pattern: create a StreamingSession, decode
the headers, resolve a row handler, bind it, and let the session stream.
prepare() does everything up to binding so that lookup failures surface before
any input bundle is read; execute() returns the output bundle iterator.
"""

import logging
from typing import Any, Callable, Iterable, Iterator, Optional, Protocol, Sequence

from ssekit.config import EngineConfig
from ssekit.errors import EngineError, HandlerError, ScriptingDisabledError, UnknownFunctionError
from ssekit.handlers import RowHandler
from ssekit.registry import CapabilityRegistry
from ssekit.runtime.session import Binding, StreamingSession
from ssekit.types import DataType, FunctionType, Parameter
from ssekit.wire.headers import CallKind, Metadata


logger = logging.getLogger(__name__)


class ScriptExecutor(Protocol):
    """Collaborator that turns a script into a row handler.

    The engine never interprets scripts itself. prepare() receives the script
    text and its declared type contract and returns a row handler, which is
    then driven exactly like a registered function.
    """

    def prepare(
        self,
        script: str,
        function_type: FunctionType,
        return_type: DataType,
        params: Sequence[Parameter],
    ) -> RowHandler:
        ...


class FunctionDispatcher:
    """Resolves ExecuteFunction calls to registered handlers"""

    def __init__(self, registry: CapabilityRegistry, config: Optional[EngineConfig] = None):
        self.registry = registry
        self.config = config if config is not None else EngineConfig()

    def new_session(self, is_active: Optional[Callable[[], bool]] = None) -> StreamingSession:
        return StreamingSession(CallKind.FUNCTION, self.config.bundle_limits(), is_active)

    def prepare(self, session: StreamingSession, metadata: Metadata) -> StreamingSession:
        """Decode headers and bind the requested function.

        Raises MalformedHeaderError or UnknownFunctionError; the session is
        FAILED in both cases and no handler is invoked.
        """
        context = session.open(metadata)
        function_id = context.function.function_id
        entry = self.registry.resolve(function_id)
        if entry is None:
            raise session.fail(UnknownFunctionError(function_id))
        session.bind(Binding.for_definition(entry.definition, entry.handler))
        logger.debug(
            "Dispatching %s (id %d) for app %r, user %r",
            entry.definition.name,
            function_id,
            context.common.app_id,
            context.common.user_id,
        )
        return session

    def execute(
        self,
        metadata: Metadata,
        bundles: Iterable[Any],
        is_active: Optional[Callable[[], bool]] = None,
    ) -> Iterator[bytes]:
        session = self.prepare(self.new_session(is_active), metadata)
        return session.stream(bundles)


class ScriptEvaluator:
    """Resolves EvaluateScript calls through the script executor"""

    def __init__(
        self,
        registry: CapabilityRegistry,
        executor: Optional[ScriptExecutor] = None,
        config: Optional[EngineConfig] = None,
    ):
        self.registry = registry
        self.executor = executor
        self.config = config if config is not None else EngineConfig()

    @property
    def enabled(self) -> bool:
        return self.executor is not None and self.registry.get_capabilities().allow_script

    def new_session(self, is_active: Optional[Callable[[], bool]] = None) -> StreamingSession:
        return StreamingSession(CallKind.SCRIPT, self.config.bundle_limits(), is_active)

    def prepare(self, session: StreamingSession, metadata: Metadata) -> StreamingSession:
        """Decode headers and bind a handler prepared by the executor.

        Raises ScriptingDisabledError straight from INIT when scripts are not
        allowed, before any header or bundle is looked at.
        """
        if not self.enabled:
            raise session.fail(ScriptingDisabledError("Script evaluation is not enabled for this plugin"))

        context = session.open(metadata)
        script = context.script
        try:
            handler = self.executor.prepare(script.script, script.function_type, script.return_type, script.params)
        except EngineError as e:
            raise session.fail(e)
        except Exception as e:
            raise session.fail(HandlerError(f"Script executor rejected the script: {e}")) from e

        session.bind(Binding(
            name="script",
            handler=handler,
            function_type=script.function_type,
            return_type=script.return_type,
            params=script.params,
        ))
        logger.debug(
            "Evaluating %s script with %d params for app %r",
            script.function_type.name,
            len(script.params),
            context.common.app_id,
        )
        return session

    def execute(
        self,
        metadata: Metadata,
        bundles: Iterable[Any],
        is_active: Optional[Callable[[], bool]] = None,
    ) -> Iterator[bytes]:
        session = self.prepare(self.new_session(is_active), metadata)
        return session.stream(bundles)
