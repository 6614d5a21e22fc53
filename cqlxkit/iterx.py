"""Iteration over query results with scanning into dataclasses."""

from __future__ import annotations

import dataclasses
from collections.abc import Mapping
from typing import Any, Iterable, List, Optional, Sequence, Tuple

from cqlxkit.mapper import (
    DEFAULT_MAPPER,
    Mapper,
    _Field,
    _is_struct,
    _is_udt,
    _is_unmarshaler,
    _type_name,
    _unwrap_optional,
)

#: When true, new iterators ignore columns that map to no field.
DEFAULT_UNSAFE = False

APPLIED_COLUMN = "[applied]"


class NotFoundError(LookupError):
    """Raised when a single row was requested and the result had none."""

    def __init__(self, message: str = "not found"):
        super().__init__(message)


class ResultSet:
    """An in-memory result: column names, rows and an optional query error."""

    def __init__(self, columns: Sequence[str], rows: Iterable[Sequence[Any]] = (), error: Optional[BaseException] = None):
        self.columns = list(columns)
        self._rows = [tuple(row) for row in rows]
        self.num_rows = len(self._rows)
        self._error = error
        self._position = 0

    def scan(self) -> Optional[Tuple[Any, ...]]:
        """Return the next row, or None when exhausted or failed."""
        if self._error is not None or self._position >= len(self._rows):
            return None
        row = self._rows[self._position]
        self._position += 1
        return row

    def close(self) -> None:
        """Raise the query error, if there was one."""
        if self._error is not None:
            raise self._error


def _new_instance(cls: type) -> Any:
    obj = cls.__new__(cls)
    for f in dataclasses.fields(cls):
        if f.default is not dataclasses.MISSING:
            value = f.default
        elif f.default_factory is not dataclasses.MISSING:
            value = f.default_factory()
        else:
            value = None
        object.__setattr__(obj, f.name, value)
    return obj


def _convert(value: Any, tp: Any, mapper: Mapper, unsafe: bool) -> Any:
    if value is None:
        return None
    tp = _unwrap_optional(tp)
    if not isinstance(tp, type) or isinstance(value, tp):
        return value
    if _is_unmarshaler(tp):
        return tp.from_cql(value)
    if _is_udt(tp) and _is_struct(tp) and isinstance(value, Mapping):
        return _udt_from_mapping(tp, value, mapper, unsafe)
    return value


def _udt_from_mapping(tp: type, value: Mapping, mapper: Mapper, unsafe: bool) -> Any:
    obj = _new_instance(tp)
    fields = mapper._lookup(tp)
    for name, item in value.items():
        f = fields.get(name)
        if f is None:
            if unsafe:
                continue
            raise ValueError(f'missing name "{name}" in {_type_name(tp)}')
        _assign(obj, f, item, mapper, unsafe)
    return obj


def _assign(obj: Any, field: _Field, value: Any, mapper: Mapper, unsafe: bool) -> None:
    *parents, leaf = field.path
    for name, kind in zip(parents, field.types):
        child = getattr(obj, name, None)
        if child is None:
            child = _new_instance(kind)
            object.__setattr__(obj, name, child)
        obj = child
    object.__setattr__(obj, leaf, _convert(value, field.types[-1], mapper, unsafe))


def _struct_only_error(cls: type) -> TypeError:
    name = _type_name(cls)
    if not _is_struct(cls):
        return TypeError(f"expected a struct but got {name}")
    if _is_unmarshaler(cls):
        return TypeError(f"expected a struct but the provided struct type {name} implements from_cql")
    if _is_udt(cls):
        return TypeError(f"expected a struct but the provided struct type {name} is a UDT")
    return TypeError(f"expected a struct, but struct {name} has no fields")


class Iterx:
    """Wraps a result source and scans its rows into values or dataclasses.

    A source provides ``columns``, ``num_rows``, ``scan()`` returning the next
    row or None, and ``close()`` raising any query error.
    """

    def __init__(self, source: Any, mapper: Optional[Mapper] = None):
        self.source = source
        self.mapper = mapper if mapper is not None else DEFAULT_MAPPER
        self.applied = False
        self._unsafe = DEFAULT_UNSAFE
        self._struct_only = False
        self._error: Optional[BaseException] = None
        self._fields: Optional[List[Optional[_Field]]] = None
        self._cas = False

    def unsafe(self) -> "Iterx":
        """Ignore result columns that map to no destination field."""
        self._unsafe = True
        return self

    def struct_only(self) -> "Iterx":
        """Treat dataclasses that would be scanned as one value as structs."""
        self._struct_only = True
        return self

    def get(self, cls: type) -> Any:
        """Scan the first row into a new ``cls`` value and close the iterator.

        Raises NotFoundError if the result has no rows.
        """
        value = self._scan_any(cls)
        self._finish()
        if self._error is not None:
            raise self._error
        if self.source.num_rows == 0:
            raise NotFoundError()
        return value

    def select(self, cls: type) -> List[Any]:
        """Scan all rows into a list of ``cls`` values and close the iterator."""
        values = self._scan_all(cls)
        self._finish()
        if self._error is not None:
            raise self._error
        return values

    def struct_scan(self, target: Any) -> bool:
        """Scan the next row into the attributes of a dataclass instance.

        Returns False at the end of the result or on error; ``close`` then
        raises the error.
        """
        if target is None:
            self._error = TypeError("expected an instance but got None")
            return False
        if isinstance(target, type):
            self._error = TypeError(f"expected an instance but got class {_type_name(target)}")
            return False
        return self._struct_scan(target)

    def scan(self) -> Optional[Tuple[Any, ...]]:
        """Return the next raw row, or None at the end of the result."""
        return self.source.scan()

    def close(self) -> None:
        """Close the source and raise any error met during iteration."""
        self._finish()
        if self._error is not None:
            raise self._error

    def _finish(self) -> None:
        try:
            self.source.close()
        except Exception as exc:
            if self._error is None:
                self._error = exc

    def _is_scannable(self, cls: type) -> bool:
        if _is_unmarshaler(cls) or _is_udt(cls) or not _is_struct(cls):
            return True
        return not self.mapper.has_fields(cls)

    def _resolve_scannable(self, cls: Any) -> Optional[bool]:
        if not isinstance(cls, type):
            self._error = TypeError(f"expected a class but got {cls!r}")
            return None
        scannable = self._is_scannable(cls)
        if self._struct_only and scannable:
            if _is_struct(cls):
                scannable = False
            else:
                self._error = _struct_only_error(cls)
                return None
        columns = len(self.source.columns)
        if scannable and columns > 1:
            self._error = ValueError(
                f"expected 1 column in result while scanning scannable type "
                f"{_type_name(cls)} but got {columns}"
            )
            return None
        return scannable

    def _scan_value(self, cls: type) -> Tuple[bool, Any]:
        row = self.source.scan()
        if row is None:
            return False, None
        value = row[0] if row else None
        try:
            return True, _convert(value, cls, self.mapper, self._unsafe)
        except Exception as exc:
            self._error = exc
            return False, None

    def _scan_any(self, cls: Any) -> Any:
        scannable = self._resolve_scannable(cls)
        if scannable is None:
            return None
        if scannable:
            ok, value = self._scan_value(cls)
            return value if ok else None
        obj = _new_instance(cls)
        return obj if self._struct_scan(obj) else None

    def _scan_all(self, cls: Any) -> List[Any]:
        scannable = self._resolve_scannable(cls)
        if scannable is None:
            return []
        values: List[Any] = []
        while True:
            if scannable:
                ok, value = self._scan_value(cls)
            else:
                value = _new_instance(cls)
                ok = self._struct_scan(value)
            if not ok:
                return values
            values.append(value)

    def _struct_scan(self, target: Any) -> bool:
        cls = type(target)
        if not _is_struct(cls):
            self._error = TypeError(f"expected a struct but got {_type_name(cls)}")
            return False

        if self._fields is None:
            columns = list(self.source.columns)
            cas = bool(columns) and columns[0] == APPLIED_COLUMN
            fields = self.mapper._resolve(cls, columns)
            if not self._unsafe and not cas:
                missing = next((i for i, f in enumerate(fields) if f is None), None)
                if missing is not None:
                    self._error = ValueError(
                        f'missing destination name "{columns[missing]}" in {_type_name(cls)}'
                    )
                    return False
            self._fields = fields
            self._cas = cas

        row = self.source.scan()
        if row is None:
            return False
        for i, (field, value) in enumerate(zip(self._fields, row)):
            if i == 0 and self._cas:
                self.applied = bool(value)
                continue
            if field is None:
                continue
            try:
                _assign(target, field, value, self.mapper, self._unsafe)
            except Exception as exc:
                self._error = exc
                return False
        return True