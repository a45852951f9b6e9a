"""
Serialization Utilities

Helpers for turning the gamification dataclasses into plain dictionaries and
JSON, with support for datetimes, enums, sets and nested models.

Output is deterministic: dictionary keys are emitted sorted and sets are
rendered as sorted lists, so serializing the same object twice yields the
same bytes.
"""

import json
import datetime
from enum import Enum
from typing import Any, Dict, List
from dataclasses import is_dataclass, fields


def serialize(obj: Any) -> Any:
    """
    Convert an object into JSON-compatible primitives.

    Args:
        obj: The object to serialize

    Returns:
        Plain dict/list/str/int/float/bool/None structure
    """
    if obj is None or isinstance(obj, (str, bool, int, float)):
        return obj

    if isinstance(obj, (datetime.datetime, datetime.date)):
        return obj.isoformat()

    if isinstance(obj, Enum):
        return obj.value

    if isinstance(obj, (set, frozenset)):
        return sorted(serialize(item) for item in obj)

    if isinstance(obj, (list, tuple)):
        return [serialize(item) for item in obj]

    if isinstance(obj, dict):
        return {str(serialize(key)): serialize(value) for key, value in obj.items()}

    if hasattr(obj, 'to_dict') and callable(getattr(obj, 'to_dict')):
        return obj.to_dict()

    if is_dataclass(obj):
        return {f.name: serialize(getattr(obj, f.name)) for f in fields(obj)}

    return str(obj)


def to_json(obj: Any, pretty: bool = False) -> str:
    """
    Serialize an object to a JSON string.

    Args:
        obj: The object to serialize
        pretty: Whether to format the JSON with indentation

    Returns:
        JSON string representation with sorted keys
    """
    indent = 2 if pretty else None
    return json.dumps(serialize(obj), indent=indent, sort_keys=True, ensure_ascii=False)


class SerializableMixin:
    """
    Mixin that provides serialization capabilities to a dataclass.

    Classes using this mixin must define ``__serializable_fields__``, the list
    of attribute names included in ``to_dict``.
    """

    __serializable_fields__: List[str] = []

    def to_dict(self) -> Dict[str, Any]:
        """Convert the object to a dictionary."""
        result = {}
        for field_name in self.__serializable_fields__:
            if hasattr(self, field_name):
                result[field_name] = serialize(getattr(self, field_name))
        return result

    def to_json(self, pretty: bool = False) -> str:
        """Convert the object to a JSON string."""
        return to_json(self.to_dict(), pretty)
