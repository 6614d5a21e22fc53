"""Mapping between result column names and dataclass attributes."""

from __future__ import annotations

import builtins
import dataclasses
import inspect
import string
import threading
import types
import typing
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

#: Field metadata key that promotes the fields of a nested dataclass
#: to the level of the enclosing class.
EMBED = "embed"

_ALLOWED = frozenset(string.ascii_letters + string.digits)

_OPTIONAL_PREFIXES = ("Optional[", "typing.Optional[")


def camel_to_snake(name: str) -> str:
    """Convert an ASCII CamelCase name to snake_case."""
    out: List[str] = []
    last = len(name) - 1
    for i, ch in enumerate(name):
        if ch not in _ALLOWED and ch != "_":
            raise ValueError(f"not allowed name {name}")
        if ch.isupper():
            prev = name[i - 1] if i > 0 else "_"
            nxt = name[i + 1] if i < last else ""
            if prev != "_" and (prev.islower() or nxt.islower()):
                out.append("_")
            ch = ch.lower()
        out.append(ch)
    return "".join(out)


def _unwrap_optional(tp: Any) -> Any:
    origin = typing.get_origin(tp)
    if origin is typing.Union or origin is types.UnionType:
        args = [a for a in typing.get_args(tp) if a is not type(None)]
        if len(args) == 1:
            return args[0]
    return tp


def _strip_optional(text: str) -> Optional[str]:
    """Reduce an optional annotation string to its single inner name."""
    text = text.strip()
    for prefix in _OPTIONAL_PREFIXES:
        if text.startswith(prefix) and text.endswith("]"):
            text = text[len(prefix):-1].strip()
            break
    if "|" in text:
        parts = [p.strip() for p in text.split("|") if p.strip() != "None"]
        if len(parts) != 1:
            return None
        text = parts[0]
    if not text or "[" in text:
        return None
    return text


def _lookup_dotted(root: Any, parts: Sequence[str]) -> Any:
    obj = root
    for part in parts:
        obj = getattr(obj, part, None)
        if obj is None:
            return None
    return obj


def _resolve_str(cls: type, text: str) -> Any:
    """Resolve a string annotation naming a class, or return it unchanged."""
    name = _strip_optional(text)
    if name is None:
        return text
    parts = name.split(".")
    if not all(p.isidentifier() for p in parts):
        return text
    local = vars(cls).get(parts[0])
    if local is not None:
        found = _lookup_dotted(local, parts[1:])
        if found is not None:
            return found
    module = inspect.getmodule(cls)
    if module is not None:
        found = _lookup_dotted(module, parts)
        if found is not None:
            return found
    found = _lookup_dotted(builtins, parts)
    return found if found is not None else text


def _annotation(cls: type, field: dataclasses.Field) -> Any:
    """Return the field's type, resolved where the annotation allows it."""
    tp = field.type
    if not isinstance(tp, str):
        return tp
    return _resolve_str(cls, tp)


def _is_struct(tp: Any) -> bool:
    return isinstance(tp, type) and dataclasses.is_dataclass(tp)


def _is_unmarshaler(tp: Any) -> bool:
    return isinstance(tp, type) and callable(getattr(tp, "from_cql", None))


def _is_udt(tp: Any) -> bool:
    return isinstance(tp, type) and bool(getattr(tp, "__cql_udt__", False))


def _type_name(tp: Any) -> str:
    return getattr(tp, "__qualname__", None) or repr(tp)


@dataclasses.dataclass(frozen=True)
class _Field:
    """Attribute path of a mapped column and the type at each step."""

    path: Tuple[str, ...]
    types: Tuple[Any, ...]


class Mapper:
    """Maps column names to attribute paths of dataclasses.

    A column name is taken from the field metadata under ``tag`` or, when
    absent, derived from the attribute name with ``name_func``. A tag value
    of ``"-"`` hides the field. Mappings are cached per class.
    """

    def __init__(self, tag: str = "db", name_func: Callable[[str], str] = camel_to_snake):
        self.tag = tag
        self.name_func = name_func
        self._cache: Dict[type, Dict[str, _Field]] = {}
        self._lock = threading.Lock()

    def field_map(self, cls: type) -> Dict[str, Tuple[str, ...]]:
        """Return column name -> attribute path for a dataclass."""
        return {name: f.path for name, f in self._lookup(cls).items()}

    def traversals_by_name(self, cls: type, names: Sequence[str]) -> List[Tuple[str, ...]]:
        """Return the attribute path of every name, an empty tuple if unmapped."""
        fields = self._lookup(cls)
        return [fields[name].path if name in fields else () for name in names]

    def has_fields(self, cls: Any) -> bool:
        """Tell whether ``cls`` is a dataclass with at least one mapped field."""
        return _is_struct(cls) and bool(self._lookup(cls))

    def _resolve(self, cls: type, names: Sequence[str]) -> List[Optional[_Field]]:
        fields = self._lookup(cls)
        return [fields.get(name) for name in names]

    def _lookup(self, cls: Any) -> Dict[str, _Field]:
        if not _is_struct(cls):
            raise TypeError(f"expected a struct but got {_type_name(cls)}")
        with self._lock:
            cached = self._cache.get(cls)
            if cached is None:
                cached = {}
                self._collect(cls, (), (), "", cached, frozenset({cls}))
                self._cache[cls] = cached
        return cached

    def _collect(self, cls, path, kinds, prefix, out, seen) -> None:
        embedded = []
        for f in dataclasses.fields(cls):
            if f.name.startswith("_"):
                continue
            tag = f.metadata.get(self.tag)
            if tag == "-":
                continue
            tp = _unwrap_optional(_annotation(cls, f))
            fpath = path + (f.name,)
            fkinds = kinds + (tp,)
            if f.metadata.get(EMBED) and _is_struct(tp):
                embedded.append((tp, fpath, fkinds))
                continue
            name = tag or self.name_func(f.name)
            full = f"{prefix}.{name}" if prefix else name
            out.setdefault(full, _Field(fpath, fkinds))
            if _is_struct(tp) and tp not in seen:
                self._collect(tp, fpath, fkinds, full, out, seen | {tp})
        for tp, fpath, fkinds in embedded:
            if tp not in seen:
                self._collect(tp, fpath, fkinds, prefix, out, seen | {tp})


#: Mapper used when none is given: ``db`` metadata and snake_case names.
DEFAULT_MAPPER = Mapper("db", camel_to_snake)