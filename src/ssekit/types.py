"""Column and function typing shared by the codec, registry and runtime"""

from dataclasses import dataclass
from enum import IntEnum
from typing import Any, Optional


class DataType(IntEnum):
    """Data type of a parameter or return value (wire numbers)"""
    STRING = 0  # Only the string component is meaningful
    NUMERIC = 1  # Only the numeric component is meaningful
    DUAL = 2  # Both components are meaningful

    @classmethod
    def from_int(cls, v: int) -> Optional["DataType"]:
        """Convert a wire number to DataType, returns None if invalid"""
        try:
            return cls(v)
        except ValueError:
            return None


class FunctionType(IntEnum):
    """Shape of a function's result (wire numbers)"""
    SCALAR = 0  # One row out per row in
    AGGREGATION = 1  # N rows in, one row out
    TENSOR = 2  # N rows in, M rows out

    @classmethod
    def from_int(cls, v: int) -> Optional["FunctionType"]:
        """Convert a wire number to FunctionType, returns None if invalid"""
        try:
            return cls(v)
        except ValueError:
            return None


@dataclass(frozen=True)
class Parameter:
    """Contract of one column: its data type and name"""
    data_type: DataType
    name: str

    def __post_init__(self):
        object.__setattr__(self, "data_type", DataType(self.data_type))

    def to_message(self) -> Any:
        from ssekit.wire.schema import ParameterMessage
        return ParameterMessage(dataType=int(self.data_type), name=self.name)

    @classmethod
    def from_message(cls, message: Any) -> "Parameter":
        data_type = DataType.from_int(message.dataType)
        if data_type is None:
            raise ValueError(f"Unknown data type {message.dataType} for parameter '{message.name}'")
        return cls(data_type=data_type, name=message.name)
