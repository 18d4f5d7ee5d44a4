"""
Tagged values for tool parameters and output metadata.

Metadata and tool arguments arrive as loosely typed dictionaries (planner output,
JSON bodies, persisted documents). They are converted once into ``Value`` variants
so that readers get typed accessors: ``get_*`` returns a default on a missing key
or type mismatch, ``require_*`` raises.
"""

from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional, Tuple

from .errors import ValueTypeError


class ValueType(str, Enum):
    STR = "str"
    F64 = "f64"
    I64 = "i64"
    BOOL = "bool"
    LIST = "list"
    MAP = "map"


@dataclass(frozen=True)
class Value:
    """A single tagged value. Lists hold a tuple of Values, maps hold a ValueMap."""
    type: ValueType
    data: Any

    @classmethod
    def of(cls, raw: Any) -> "Value":
        """Convert a plain Python value into a tagged Value."""
        if isinstance(raw, Value):
            return raw
        # bool before int: bool is an int subclass
        if isinstance(raw, bool):
            return cls(ValueType.BOOL, raw)
        if isinstance(raw, int):
            return cls(ValueType.I64, raw)
        if isinstance(raw, float):
            return cls(ValueType.F64, raw)
        if isinstance(raw, str):
            return cls(ValueType.STR, raw)
        if isinstance(raw, datetime):
            return cls(ValueType.STR, raw.isoformat())
        if isinstance(raw, Enum):
            return cls.of(raw.value)
        if isinstance(raw, (list, tuple)):
            return cls(ValueType.LIST, tuple(cls.of(item) for item in raw))
        if isinstance(raw, ValueMap):
            return cls(ValueType.MAP, raw)
        if isinstance(raw, Mapping):
            return cls(ValueType.MAP, ValueMap(raw))
        if raw is None:
            return cls(ValueType.STR, "")
        raise ValueTypeError(f"Unsupported value type: {type(raw).__name__}")

    def to_python(self) -> Any:
        if self.type == ValueType.LIST:
            return [item.to_python() for item in self.data]
        if self.type == ValueType.MAP:
            return self.data.to_dict()
        return self.data

    # Lenient conversions mirror how tool arguments are produced: numbers may arrive as strings

    def as_str(self) -> Optional[str]:
        if self.type == ValueType.STR:
            return self.data
        if self.type in (ValueType.I64, ValueType.F64, ValueType.BOOL):
            return str(self.data).lower() if self.type == ValueType.BOOL else str(self.data)
        return None

    def as_float(self) -> Optional[float]:
        if self.type in (ValueType.F64, ValueType.I64):
            return float(self.data)
        if self.type == ValueType.STR:
            try:
                return float(self.data)
            except ValueError:
                return None
        return None

    def as_int(self) -> Optional[int]:
        if self.type == ValueType.I64:
            return self.data
        if self.type == ValueType.F64:
            return round(self.data)
        if self.type == ValueType.STR:
            try:
                return int(self.data)
            except ValueError:
                return None
        return None

    def as_bool(self) -> Optional[bool]:
        if self.type == ValueType.BOOL:
            return self.data
        if self.type == ValueType.STR:
            return self.data.lower() == "true" or self.data == "1"
        return None

    def as_list(self) -> Optional[Tuple["Value", ...]]:
        return self.data if self.type == ValueType.LIST else None

    def as_map(self) -> Optional["ValueMap"]:
        return self.data if self.type == ValueType.MAP else None

    def __str__(self) -> str:
        text = self.as_str()
        return text if text is not None else str(self.to_python())


class ValueMap(Mapping):
    """Immutable string-keyed map of tagged Values."""

    __slots__ = ("_items",)

    def __init__(self, raw: Optional[Mapping] = None, **kwargs):
        items: Dict[str, Value] = {}
        for source in (raw or {}, kwargs):
            for key, value in source.items():
                items[str(key)] = Value.of(value)
        self._items = items

    def __getitem__(self, key: str) -> Value:
        return self._items[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._items)

    def __len__(self) -> int:
        return len(self._items)

    def __eq__(self, other) -> bool:
        if isinstance(other, ValueMap):
            return self._items == other._items
        if isinstance(other, Mapping):
            return self.to_dict() == dict(other)
        return NotImplemented

    def __hash__(self):
        return hash(tuple(sorted(self._items.items(), key=lambda item: item[0])))

    def __repr__(self) -> str:
        return f"ValueMap({self.to_dict()!r})"

    def _get(self, key: str, reader: str):
        value = self._items.get(key)
        if value is None:
            return None
        return getattr(value, reader)()

    def get_str(self, key: str, default: str = "") -> str:
        result = self._get(key, "as_str")
        return default if result is None else result

    def get_float(self, key: str, default: float = 0.0) -> float:
        result = self._get(key, "as_float")
        return default if result is None else result

    def get_int(self, key: str, default: int = 0) -> int:
        result = self._get(key, "as_int")
        return default if result is None else result

    def get_bool(self, key: str, default: bool = False) -> bool:
        result = self._get(key, "as_bool")
        return default if result is None else result

    def get_list(self, key: str, default: Optional[List[Any]] = None) -> List[Any]:
        result = self._get(key, "as_list")
        if result is None:
            return list(default or [])
        return [item.to_python() for item in result]

    def get_map(self, key: str) -> "ValueMap":
        result = self._get(key, "as_map")
        return result if result is not None else ValueMap()

    def require_str(self, key: str) -> str:
        return self._require(key, "as_str", "string")

    def require_float(self, key: str) -> float:
        return self._require(key, "as_float", "float")

    def require_int(self, key: str) -> int:
        return self._require(key, "as_int", "int")

    def require_bool(self, key: str) -> bool:
        return self._require(key, "as_bool", "bool")

    def _require(self, key: str, reader: str, expected: str):
        if key not in self._items:
            raise KeyError(key)
        result = getattr(self._items[key], reader)()
        if result is None:
            raise ValueTypeError(
                f"Value for '{key}' is {self._items[key].type.value}, expected {expected}"
            )
        return result

    def with_updates(self, other: Optional[Mapping] = None, **kwargs) -> "ValueMap":
        """Return a new map with entries added or replaced."""
        merged = dict(self._items)
        merged.update(ValueMap(other, **kwargs)._items)
        return ValueMap(merged)

    def to_dict(self) -> Dict[str, Any]:
        return {key: value.to_python() for key, value in self._items.items()}

    def to_string_dict(self) -> Dict[str, str]:
        """Flatten to map<str, str> for embedding-record metadata."""
        return {key: str(value) for key, value in self._items.items()}
