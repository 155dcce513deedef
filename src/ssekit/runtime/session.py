"""Streaming session - the per-call state machine

One StreamingSession exists per call. It owns the decoded headers, the
Bundler/Unbundler pair and the handler binding, and walks through:

    INIT -> AWAITING_INPUT -> STREAMING -> DRAINING -> DONE
      \\            \\              \\            \\
       +------------+--------------+------------+--> FAILED

- INIT -> AWAITING_INPUT: headers decoded (open())
- AWAITING_INPUT -> STREAMING: first input bundle unbundled, or input ended
  without any bundle
- STREAMING -> DRAINING: input end-of-stream observed; the handler may still
  produce output
- DRAINING -> DONE: handler finished, result shape checked, last partial
  bundle flushed
- any non-terminal state -> FAILED: handler, codec or transport error, or
  cancellation. Bundles already yielded are not retracted; the caller must
  discard results of a failed call.

stream() is a generator pipeline: the handler pulls input rows lazily through
the Unbundler and every row it produces goes straight into the Bundler. All of
it runs on the thread that consumes stream(), so the handler never runs
concurrently with its own flush and row order is preserved end to end.

Suspension points (where cancellation is observed):
- before pulling the next input bundle from the transport
- after handing an output bundle to the transport
"""

import logging
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Iterable, Iterator, Optional, Tuple

from ssekit.dual import Dual, Row, column_types
from ssekit.errors import (
    ArityMismatchError,
    CallCancelledError,
    EngineError,
    HandlerError,
    MalformedHeaderError,
    RowCountMismatchError,
    SessionStateError,
    TransportError,
)
from ssekit.handlers import RowHandler
from ssekit.types import DataType, FunctionType, Parameter
from ssekit.wire.bundle import BundleLimits, Bundler, Unbundler
from ssekit.wire.headers import (
    CallKind,
    CommonRequestHeader,
    FunctionRequestHeader,
    Metadata,
    ScriptRequestHeader,
    decode_headers,
)


logger = logging.getLogger(__name__)


class SessionState(Enum):
    INIT = "init"
    AWAITING_INPUT = "awaiting_input"
    STREAMING = "streaming"
    DRAINING = "draining"
    DONE = "done"
    FAILED = "failed"


_TRANSITIONS = {
    SessionState.INIT: {SessionState.AWAITING_INPUT, SessionState.FAILED},
    SessionState.AWAITING_INPUT: {SessionState.STREAMING, SessionState.FAILED},
    SessionState.STREAMING: {SessionState.DRAINING, SessionState.FAILED},
    SessionState.DRAINING: {SessionState.DONE, SessionState.FAILED},
    SessionState.DONE: set(),
    SessionState.FAILED: set(),
}


def _always_active() -> bool:
    return True


@dataclass
class CallContext:
    """What a handler may know about the call it is serving"""
    common: CommonRequestHeader
    function: Optional[FunctionRequestHeader] = None
    script: Optional[ScriptRequestHeader] = None
    is_active: Callable[[], bool] = field(default=_always_active, repr=False)


@dataclass(frozen=True)
class Binding:
    """The handler a session drives and the type contract it is held to"""
    name: str
    handler: RowHandler = field(compare=False)
    function_type: FunctionType
    return_type: DataType
    params: Tuple[Parameter, ...]

    @classmethod
    def for_definition(cls, definition, handler: RowHandler) -> "Binding":
        return cls(
            name=definition.name,
            handler=handler,
            function_type=definition.function_type,
            return_type=definition.return_type,
            params=tuple(definition.params),
        )


class StreamingSession:
    """Drives one call from header decode to terminal status"""

    _ids = 0
    _ids_lock = threading.Lock()

    def __init__(
        self,
        kind: CallKind,
        limits: Optional[BundleLimits] = None,
        is_active: Optional[Callable[[], bool]] = None,
    ):
        with StreamingSession._ids_lock:
            StreamingSession._ids += 1
            self.session_id = StreamingSession._ids
        self.kind = kind
        self.limits = limits if limits is not None else BundleLimits.default()
        self.is_active = is_active if is_active is not None else _always_active
        self.state = SessionState.INIT
        self.error: Optional[EngineError] = None
        self.context: Optional[CallContext] = None
        self.binding: Optional[Binding] = None
        self.rows_in = 0
        self.rows_out = 0
        self._bundler: Optional[Bundler] = None
        self._unbundler: Optional[Unbundler] = None
        self._input_error: Optional[EngineError] = None

    def __repr__(self):
        return f"StreamingSession(id={self.session_id}, kind={self.kind.value}, state={self.state.value})"

    # =========================================================================
    # State handling
    # =========================================================================

    def _enter(self, state: SessionState) -> None:
        if state not in _TRANSITIONS[self.state]:
            raise SessionStateError(f"Illegal transition {self.state.value} -> {state.value}")
        logger.debug("Session %d: %s -> %s", self.session_id, self.state.value, state.value)
        self.state = state

    def _require(self, state: SessionState) -> None:
        if self.state is not state:
            raise SessionStateError(f"Session is {self.state.value}, expected {state.value}")

    @property
    def terminated(self) -> bool:
        return self.state in (SessionState.DONE, SessionState.FAILED)

    def fail(self, error: EngineError) -> EngineError:
        """Move to FAILED with error. Returns the error so callers can raise it."""
        if self.terminated:
            return error
        self._enter(SessionState.FAILED)
        self.error = error
        self._bundler = None
        logger.warning("Session %d failed: [%s] %s", self.session_id, error.code, error)
        return error

    def _check_active(self) -> None:
        if not self.is_active():
            raise CallCancelledError("Call was cancelled by the transport")

    # =========================================================================
    # Setup
    # =========================================================================

    def open(self, metadata: Metadata) -> CallContext:
        """Decode the call headers (INIT -> AWAITING_INPUT)"""
        self._require(SessionState.INIT)
        try:
            headers = decode_headers(metadata, self.kind)
        except MalformedHeaderError as e:
            raise self.fail(e)
        self.context = CallContext(
            common=headers.common,
            function=headers.function,
            script=headers.script,
            is_active=self.is_active,
        )
        self._enter(SessionState.AWAITING_INPUT)
        return self.context

    def bind(self, binding: Binding) -> None:
        """Attach the handler this session will drive"""
        self._require(SessionState.AWAITING_INPUT)
        self.binding = binding
        self._unbundler = Unbundler(column_types(binding.params))
        limits = self.limits
        if binding.function_type == FunctionType.SCALAR:
            # SCALAR output has one row per input row
            limits = limits.for_cardinality(self.context.common.cardinality)
        self._bundler = Bundler(limits)
        logger.debug(
            "Session %d bound to %s (%s, %d params)",
            self.session_id,
            binding.name,
            binding.function_type.name,
            len(binding.params),
        )

    # =========================================================================
    # Streaming
    # =========================================================================

    def stream(self, bundles: Iterable[Any]) -> Iterator[bytes]:
        """Run the call: consume input bundles, yield serialized output bundles.

        Raises the session's EngineError once it has moved to FAILED.
        """
        self._require(SessionState.AWAITING_INPUT)
        if self.binding is None:
            raise self.fail(SessionStateError("No handler bound to session"))

        rows_in = self._input_rows(iter(bundles))
        outputs = None
        try:
            try:
                outputs = self.binding.handler(rows_in, self.context)
                for row in outputs:
                    self._raise_input_error()
                    for payload in self._bundler.add(self._check_output(row)):
                        yield payload
                        self._check_active()
            except EngineError:
                raise
            except Exception as e:
                self._raise_input_error()
                raise HandlerError(f"Handler for '{self.binding.name}' failed: {e}") from e
            self._raise_input_error()

            # The handler may stop before reading all input
            for _ in rows_in:
                pass
            if self.state is SessionState.AWAITING_INPUT:
                self._enter(SessionState.STREAMING)
            if self.state is SessionState.STREAMING:
                self._enter(SessionState.DRAINING)

            self._check_result_shape()
            payload = self._bundler.flush()
            if payload is not None:
                yield payload
            self._enter(SessionState.DONE)
            logger.info(
                "Session %d done: %s, %d rows in, %d rows out",
                self.session_id,
                self.binding.name,
                self.rows_in,
                self.rows_out,
            )
        except EngineError as e:
            raise self.fail(e)
        except GeneratorExit:
            self.fail(CallCancelledError("Output stream was closed by the transport"))
            raise
        finally:
            # Run handler cleanup now rather than at garbage collection
            close = getattr(outputs, "close", None)
            if close is not None:
                close()
            rows_in.close()

    def _input_rows(self, bundles: Iterator[Any]) -> Iterator[Row]:
        expected = len(self.binding.params)
        try:
            while True:
                self._check_active()
                try:
                    bundle = next(bundles)
                except StopIteration:
                    break
                except Exception as e:
                    # A cancelled call surfaces as a failing request iterator
                    self._check_active()
                    raise TransportError(f"Input stream failed: {e}") from e

                rows = self._unbundler.unbundle(bundle)
                if self.state is SessionState.AWAITING_INPUT:
                    self._enter(SessionState.STREAMING)
                for row in rows:
                    if len(row) != expected:
                        raise ArityMismatchError(
                            f"Input row {self.rows_in} has {len(row)} columns, "
                            f"'{self.binding.name}' takes {expected}"
                        )
                    self.rows_in += 1
                    yield row

            if self.state is SessionState.AWAITING_INPUT:
                self._enter(SessionState.STREAMING)
            self._enter(SessionState.DRAINING)
        except EngineError as e:
            self._input_error = e
            raise

    def _raise_input_error(self) -> None:
        # Errors on the input side win even if the handler swallowed them
        if self._input_error is not None:
            raise self._input_error

    def _check_output(self, row: Iterable[Dual]) -> Row:
        row = tuple(row)
        for cell in row:
            if not isinstance(cell, Dual):
                raise HandlerError(
                    f"Handler for '{self.binding.name}' produced a {type(cell).__name__}, expected Dual"
                )
        if self.binding.function_type != FunctionType.TENSOR and len(row) != 1:
            raise ArityMismatchError(
                f"Output row {self.rows_out} of '{self.binding.name}' has {len(row)} columns, expected 1"
            )
        self.rows_out += 1
        return row

    def _check_result_shape(self) -> None:
        function_type = self.binding.function_type
        if function_type == FunctionType.SCALAR and self.rows_out != self.rows_in:
            raise RowCountMismatchError(
                f"SCALAR function '{self.binding.name}' returned {self.rows_out} rows "
                f"for {self.rows_in} input rows"
            )
        if function_type == FunctionType.AGGREGATION and self.rows_out != 1:
            raise RowCountMismatchError(
                f"AGGREGATION function '{self.binding.name}' returned {self.rows_out} rows, expected 1"
            )
