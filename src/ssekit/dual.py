"""Dual value model

A Dual is the cell type of the data stream. It carries a numeric component, a
string component, both, or neither (null). Internally it is a tagged union;
the two-field wire shape (numData, strData) is produced and consumed only by
to_wire() / from_wire().

## Wire conventions

proto3 scalars carry no presence, so absence is expressed with NaN:

| Dual            | numData | strData |
|-----------------|---------|---------|
| null            | NaN     | ""      |
| number x        | x       | ""      |
| text s (s != "")| NaN     | s       |
| text ""         | 0.0     | ""      |
| both (x, s)     | x       | s       |

Reading is driven by the declared DataType of the column: STRING ignores the
numeric component (it only uses NaN to recognise null), NUMERIC ignores the
string component, DUAL treats both as populated.

## Native values

- NUMERIC: float or None. NaN is the null marker and reads back as None.
- STRING: str or None.
- DUAL: None or a (number-or-None, str) pair. (None, "") is null.
"""

import math
from dataclasses import dataclass
from enum import Enum
from numbers import Real
from typing import Any, Iterable, List, Optional, Sequence, Tuple

from ssekit.types import DataType, Parameter


class DualKind(Enum):
    """Which components of a Dual are present"""
    NULL = "null"
    NUMERIC = "numeric"
    TEXT = "text"
    BOTH = "both"


@dataclass(frozen=True)
class Dual:
    """An immutable value cell. Use the from_* constructors, not __init__."""
    kind: DualKind
    number: Optional[float] = None
    string: Optional[str] = None

    @classmethod
    def null(cls) -> "Dual":
        return NULL_DUAL

    @classmethod
    def from_number(cls, number: Real) -> "Dual":
        """Numeric cell. NaN is the null marker and yields null."""
        value = float(number)
        if math.isnan(value):
            return NULL_DUAL
        return cls(DualKind.NUMERIC, number=value)

    @classmethod
    def from_string(cls, string: str) -> "Dual":
        if not isinstance(string, str):
            raise TypeError(f"Expected str, got {type(string).__name__}")
        return cls(DualKind.TEXT, string=string)

    @classmethod
    def from_both(cls, number: Optional[Real], string: str) -> "Dual":
        """Cell with both components. A missing or NaN number yields a text cell."""
        if number is None or math.isnan(float(number)):
            if string == "":
                return NULL_DUAL
            return cls.from_string(string)
        if not isinstance(string, str):
            raise TypeError(f"Expected str, got {type(string).__name__}")
        return cls(DualKind.BOTH, number=float(number), string=string)

    def is_null(self) -> bool:
        return self.kind is DualKind.NULL

    def has_number(self) -> bool:
        return self.number is not None

    def has_string(self) -> bool:
        return self.string is not None

    # =========================================================================
    # Native value conversion
    # =========================================================================

    @classmethod
    def from_value(cls, value: Any, data_type: DataType) -> "Dual":
        """Build a Dual from a native value of the given declared type.

        Raises TypeError for values outside the type's domain.
        """
        if value is None:
            return NULL_DUAL
        if isinstance(value, Dual):
            return value

        if data_type == DataType.NUMERIC:
            if isinstance(value, Real):
                return cls.from_number(value)
            raise TypeError(f"NUMERIC value must be a number, got {type(value).__name__}")

        if data_type == DataType.STRING:
            if isinstance(value, str):
                return cls.from_string(value)
            raise TypeError(f"STRING value must be str, got {type(value).__name__}")

        if isinstance(value, tuple) and len(value) == 2:
            number, string = value
            if number is not None and not isinstance(number, Real):
                raise TypeError(f"DUAL number must be a number, got {type(number).__name__}")
            return cls.from_both(number, string)
        if isinstance(value, Real):
            return cls.from_number(value)
        if isinstance(value, str):
            return cls.from_string(value)
        raise TypeError(f"DUAL value must be a (number, str) pair, got {type(value).__name__}")

    def value(self, data_type: DataType) -> Any:
        """Read the declared-type-appropriate native value"""
        if self.kind is DualKind.NULL:
            return None
        if data_type == DataType.NUMERIC:
            return self.number
        if data_type == DataType.STRING:
            return self.string
        if self.kind is DualKind.NUMERIC:
            return (self.number, "")
        return (self.number, self.string)

    # =========================================================================
    # Wire conversion
    # =========================================================================

    def to_wire(self) -> Tuple[float, str]:
        """Return the (numData, strData) pair for this cell"""
        if self.kind is DualKind.NULL:
            return (math.nan, "")
        if self.kind is DualKind.NUMERIC:
            return (self.number, "")
        if self.kind is DualKind.TEXT:
            if self.string == "":
                return (0.0, "")
            return (math.nan, self.string)
        return (self.number, self.string)

    @classmethod
    def from_wire(cls, num_data: float, str_data: str, data_type: DataType) -> "Dual":
        """Read a wire (numData, strData) pair as a cell of the declared type"""
        if data_type == DataType.NUMERIC:
            return cls.from_number(num_data)
        if data_type == DataType.STRING:
            if str_data == "" and math.isnan(num_data):
                return NULL_DUAL
            return cls(DualKind.TEXT, string=str_data)
        return cls.from_both(num_data, str_data)

    def __repr__(self):
        if self.kind is DualKind.NULL:
            return "Dual(null)"
        if self.kind is DualKind.NUMERIC:
            return f"Dual({self.number!r})"
        if self.kind is DualKind.TEXT:
            return f"Dual({self.string!r})"
        return f"Dual({self.number!r}, {self.string!r})"


NULL_DUAL = Dual(DualKind.NULL)

# A row is an immutable, ordered tuple of cells
Row = Tuple[Dual, ...]


def column_types(params: Sequence[Parameter]) -> Tuple[DataType, ...]:
    return tuple(p.data_type for p in params)


def row_from_values(values: Sequence[Any], types: Sequence[DataType]) -> Row:
    """Build a row from native values, one per declared column type"""
    if len(values) != len(types):
        raise ValueError(f"Row has {len(values)} values but {len(types)} columns are declared")
    return tuple(Dual.from_value(v, t) for v, t in zip(values, types))


def row_to_values(row: Row, types: Sequence[DataType]) -> List[Any]:
    """Read a row back as native values, one per declared column type"""
    if len(row) != len(types):
        raise ValueError(f"Row has {len(row)} cells but {len(types)} columns are declared")
    return [d.value(t) for d, t in zip(row, types)]


def rows_to_columns(rows: Iterable[Row], types: Sequence[DataType]) -> List[List[Any]]:
    """Transpose rows into per-column lists of native values"""
    columns: List[List[Any]] = [[] for _ in types]
    for row in rows:
        for column, value in zip(columns, row_to_values(row, types)):
            column.append(value)
    return columns


def rows_from_columns(columns: Sequence[Sequence[Any]], types: Sequence[DataType]) -> List[Row]:
    """Transpose per-column native value lists into rows"""
    if len(columns) != len(types):
        raise ValueError(f"Got {len(columns)} columns but {len(types)} are declared")
    lengths = {len(c) for c in columns}
    if len(lengths) > 1:
        raise ValueError(f"Columns have differing lengths: {sorted(lengths)}")
    return [row_from_values(values, types) for values in zip(*columns)]
