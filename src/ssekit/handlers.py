"""Adapters from plain Python callables to row handlers

A row handler is the execution contract shared by registered functions and
script executors:

    handler(rows: Iterator[Row], context: CallContext) -> Iterable[Row]

It pulls input rows lazily and produces output rows; it may be a generator.
The adapters here let a plugin author write functions over native values
instead, with conversion driven by the function's declared types:

- SCALAR: fn(*values) is called once per input row, its result becomes one row
- AGGREGATION: fn(*columns) is called once with every column as a list
- TENSOR: fn(*columns) returns an iterable; each item becomes one row. An item
  that is a list or a tuple of Duals is taken as a whole row, anything else is
  a single-cell row.
"""

from typing import Any, Callable, Iterable, Iterator

from ssekit.dual import Dual, Row, column_types, row_to_values, rows_to_columns
from ssekit.types import DataType, FunctionType


RowHandler = Callable[[Iterator[Row], Any], Iterable[Row]]


def _result_row(value: Any, return_type: DataType) -> Row:
    if isinstance(value, list) or (isinstance(value, tuple) and value and all(isinstance(v, Dual) for v in value)):
        return tuple(Dual.from_value(v, return_type) for v in value)
    return (Dual.from_value(value, return_type),)


def scalar_handler(fn: Callable[..., Any], definition) -> RowHandler:
    types = column_types(definition.params)
    return_type = definition.return_type

    def handler(rows: Iterator[Row], context) -> Iterator[Row]:
        for row in rows:
            yield (Dual.from_value(fn(*row_to_values(row, types)), return_type),)

    return handler


def aggregation_handler(fn: Callable[..., Any], definition) -> RowHandler:
    types = column_types(definition.params)
    return_type = definition.return_type

    def handler(rows: Iterator[Row], context) -> Iterator[Row]:
        columns = rows_to_columns(rows, types)
        yield (Dual.from_value(fn(*columns), return_type),)

    return handler


def tensor_handler(fn: Callable[..., Any], definition) -> RowHandler:
    types = column_types(definition.params)
    return_type = definition.return_type

    def handler(rows: Iterator[Row], context) -> Iterator[Row]:
        columns = rows_to_columns(rows, types)
        for value in fn(*columns):
            yield _result_row(value, return_type)

    return handler


def adapt(fn: Callable[..., Any], definition) -> RowHandler:
    """Wrap fn according to the definition's function type"""
    if definition.function_type == FunctionType.SCALAR:
        return scalar_handler(fn, definition)
    if definition.function_type == FunctionType.AGGREGATION:
        return aggregation_handler(fn, definition)
    return tensor_handler(fn, definition)
