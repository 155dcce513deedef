"""Capability registry

The registry holds the plugin's identity, whether it allows script
evaluation, and the functions it offers. It is built at startup and frozen the
first time it is read (get_capabilities() or resolve()); from then on it is
read-only and safe to share across concurrent calls without locking. Any
registration after the freeze raises RegistryFrozenError so the capabilities
the engine saw at handshake cannot drift mid-session.

# Example

```python
registry = CapabilityRegistry("my-plugin", "1.0.0")

@registry.function(FunctionDefinition(
    name="Double",
    function_type=FunctionType.SCALAR,
    return_type=DataType.NUMERIC,
    params=[Parameter(DataType.NUMERIC, "value")],
    function_id=7,
))
def double(value):
    return None if value is None else value * 2
```
"""

import logging
import threading
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional, Tuple

from ssekit.errors import DuplicateFunctionIdError, RegistryFrozenError
from ssekit.handlers import RowHandler, adapt
from ssekit.types import DataType, FunctionType, Parameter
from ssekit.wire.schema import CapabilitiesMessage, FunctionDefinitionMessage


logger = logging.getLogger(__name__)

INT32_MIN = -(2 ** 31)
INT32_MAX = 2 ** 31 - 1


@dataclass(frozen=True)
class FunctionDefinition:
    """How the engine may call a function. function_id is the only lookup key."""
    name: str
    function_type: FunctionType
    return_type: DataType
    params: Tuple[Parameter, ...]
    function_id: int

    def __post_init__(self):
        object.__setattr__(self, "function_type", FunctionType(self.function_type))
        object.__setattr__(self, "return_type", DataType(self.return_type))
        object.__setattr__(self, "params", tuple(self.params))
        if not INT32_MIN <= self.function_id <= INT32_MAX:
            raise ValueError(f"function_id {self.function_id} does not fit in int32")

    def to_message(self) -> Any:
        return FunctionDefinitionMessage(
            name=self.name,
            functionType=int(self.function_type),
            returnType=int(self.return_type),
            params=[p.to_message() for p in self.params],
            functionId=self.function_id,
        )

    @classmethod
    def from_message(cls, message: Any) -> "FunctionDefinition":
        return cls(
            name=message.name,
            function_type=FunctionType(message.functionType),
            return_type=DataType(message.returnType),
            params=tuple(Parameter.from_message(p) for p in message.params),
            function_id=message.functionId,
        )


@dataclass(frozen=True)
class Capabilities:
    """Snapshot of what the plugin advertises at handshake"""
    allow_script: bool
    functions: Tuple[FunctionDefinition, ...]
    plugin_identifier: str
    plugin_version: str

    def function(self, function_id: int) -> Optional[FunctionDefinition]:
        for definition in self.functions:
            if definition.function_id == function_id:
                return definition
        return None

    def to_message(self) -> Any:
        return CapabilitiesMessage(
            allowScript=self.allow_script,
            functions=[f.to_message() for f in self.functions],
            pluginIdentifier=self.plugin_identifier,
            pluginVersion=self.plugin_version,
        )

    @classmethod
    def from_message(cls, message: Any) -> "Capabilities":
        return cls(
            allow_script=message.allowScript,
            functions=tuple(FunctionDefinition.from_message(f) for f in message.functions),
            plugin_identifier=message.pluginIdentifier,
            plugin_version=message.pluginVersion,
        )


@dataclass(frozen=True)
class RegisteredFunction:
    """A definition together with the row handler that executes it"""
    definition: FunctionDefinition
    handler: RowHandler = field(compare=False)


class CapabilityRegistry:
    """Registered functions plus plugin identity, frozen on first read"""

    def __init__(self, plugin_identifier: str, plugin_version: str, allow_script: bool = False):
        self.plugin_identifier = plugin_identifier
        self.plugin_version = plugin_version
        self.allow_script = allow_script
        self._functions: Dict[int, RegisteredFunction] = {}
        self._lock = threading.Lock()
        self._snapshot: Optional[Capabilities] = None

    @property
    def frozen(self) -> bool:
        return self._snapshot is not None

    def register(self, definition: FunctionDefinition, fn: Callable[..., Any]) -> None:
        """Register a function written over native values.

        fn is adapted to a row handler according to the definition's function
        type, see ssekit.handlers.
        """
        self.register_raw(definition, adapt(fn, definition))

    def register_raw(self, definition: FunctionDefinition, handler: RowHandler) -> None:
        """Register a row handler that receives and produces Rows directly.

        Raises DuplicateFunctionIdError if the ID is taken and
        RegistryFrozenError if the registry has already been read.
        """
        with self._lock:
            if self._snapshot is not None:
                raise RegistryFrozenError(
                    f"Cannot register '{definition.name}': capabilities have already been read"
                )
            if definition.function_id in self._functions:
                raise DuplicateFunctionIdError(definition.function_id)
            self._functions[definition.function_id] = RegisteredFunction(definition, handler)
        logger.debug("Registered function %s (id %d)", definition.name, definition.function_id)

    def function(self, definition: FunctionDefinition) -> Callable:
        """Decorator form of register()"""
        def decorator(fn):
            self.register(definition, fn)
            return fn
        return decorator

    def freeze(self) -> Capabilities:
        """Freeze the registry and return its capabilities snapshot"""
        with self._lock:
            if self._snapshot is None:
                functions = tuple(
                    self._functions[function_id].definition
                    for function_id in sorted(self._functions)
                )
                self._snapshot = Capabilities(
                    allow_script=self.allow_script,
                    functions=functions,
                    plugin_identifier=self.plugin_identifier,
                    plugin_version=self.plugin_version,
                )
                logger.info(
                    "Capabilities of %s %s frozen with %d functions (scripts %s)",
                    self.plugin_identifier,
                    self.plugin_version,
                    len(functions),
                    "allowed" if self.allow_script else "disabled",
                )
            return self._snapshot

    def get_capabilities(self) -> Capabilities:
        """Return the capabilities snapshot, freezing the registry on first call"""
        snapshot = self._snapshot
        if snapshot is not None:
            return snapshot
        return self.freeze()

    def resolve(self, function_id: int) -> Optional[RegisteredFunction]:
        """Look up a registered function by ID, freezing the registry on first call"""
        self.get_capabilities()
        return self._functions.get(function_id)
