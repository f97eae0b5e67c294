# state.py
# Immutable, path-queryable trace element.
#
# A State wraps one decoded element of a trace. The engine never reads its
# payload. It only pulls the dispatch tag out via extract_tag(). Handlers
# query everything else by path.
#
# stdlib only, zero external dependencies.

import copy
import json
from collections.abc import Mapping
from typing import Any


class StatePathError(KeyError):
    """Raised when a path does not resolve inside a State."""


_MISSING = object()


# ---------------------------------------------------------------------------
# Path parsing
# ---------------------------------------------------------------------------


def _split_dotted(path: str) -> list[str]:
    """Split `a.b\\.c.0` into ['a', 'b.c', '0']. Backslash escapes a dot."""
    segments: list[str] = []
    current: list[str] = []
    chars = iter(path)
    for ch in chars:
        if ch == "\\":
            current.append(next(chars, "\\"))
        elif ch == ".":
            segments.append("".join(current))
            current = []
        else:
            current.append(ch)
    segments.append("".join(current))
    return segments


def _split_pointer(path: str) -> list[str]:
    """RFC 6901 JSON pointer. `/a~1b/~0c` → ['a/b', '~c']."""
    return [
        part.replace("~1", "/").replace("~0", "~")
        for part in path[1:].split("/")
    ]


def parse_path(path: str) -> list[str]:
    """
    Turn a path string into segments.

    A leading '/' selects JSON-pointer syntax; anything else is dotted.
    The empty string addresses the whole state.
    """
    if path == "":
        return []
    if path.startswith("/"):
        return _split_pointer(path)
    return _split_dotted(path)


def _resolve(data: Any, segments: list[str]) -> Any:
    node = data
    for segment in segments:
        if isinstance(node, Mapping):
            if segment not in node:
                return _MISSING
            node = node[segment]
        elif isinstance(node, list):
            # isdigit() alone accepts superscripts and other non-decimal digits
            if not (segment.isascii() and segment.isdigit()) or int(segment) >= len(node):
                return _MISSING
            node = node[int(segment)]
        else:
            return _MISSING
    return node


# ---------------------------------------------------------------------------
# State
# ---------------------------------------------------------------------------


class State:
    """
    Read-only view of one trace element.

    Values handed out are deep copies, so a handler mutating what it read
    cannot change the trace. Construction copies the input for the same
    reason.

    Example:
        state = State({"tag": "transfer", "from": "A", "amount": 20})
        state["amount"]            # 20
        state.get("to", "B")       # "B"
        state.get("/from")         # "A"
    """

    __slots__ = ("_data",)

    def __init__(self, data: Mapping[str, Any]) -> None:
        if not isinstance(data, Mapping):
            raise TypeError(f"State payload must be a mapping, got {type(data).__name__}.")
        object.__setattr__(self, "_data", copy.deepcopy(dict(data)))

    def __setattr__(self, name: str, value: Any) -> None:
        raise AttributeError("State is immutable.")

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get(self, path: str, default: Any = None) -> Any:
        """Value at `path`, or `default` when the path does not resolve."""
        value = _resolve(self._data, parse_path(path))
        if value is _MISSING:
            return default
        return copy.deepcopy(value)

    def __getitem__(self, path: str) -> Any:
        value = _resolve(self._data, parse_path(path))
        if value is _MISSING:
            raise StatePathError(path)
        return copy.deepcopy(value)

    def __contains__(self, path: object) -> bool:
        if not isinstance(path, str):
            return False
        return _resolve(self._data, parse_path(path)) is not _MISSING

    def to_dict(self) -> dict[str, Any]:
        """Deep copy of the whole payload."""
        return copy.deepcopy(self._data)

    # ------------------------------------------------------------------
    # Dunder
    # ------------------------------------------------------------------

    def __eq__(self, other: object) -> bool:
        if isinstance(other, State):
            return self._data == other._data
        return NotImplemented

    __hash__ = None

    def __copy__(self) -> "State":
        return self

    def __deepcopy__(self, memo: dict) -> "State":
        return self

    def __repr__(self) -> str:
        return f"State({json.dumps(self._data, sort_keys=True, default=str)})"


def as_state(value: "State | Mapping[str, Any]") -> State:
    """Wrap a plain mapping; pass States through untouched."""
    if isinstance(value, State):
        return value
    return State(value)


# ---------------------------------------------------------------------------
# Tag extraction
# ---------------------------------------------------------------------------


def extract_tag(state: State, path: str) -> str | None:
    """
    Pull the dispatch tag out of `state`.

    Returns None when the path is absent or points at a container.
    Scalar non-string values (numbers, booleans) are rendered with str().
    """
    value = state.get(path, _MISSING)
    if value is _MISSING or value is None:
        return None
    if isinstance(value, (Mapping, list)):
        return None
    return value if isinstance(value, str) else str(value)
