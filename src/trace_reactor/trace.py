# trace.py
# Reads trace documents produced by an external model checker.
#
# The loader only locates the state list and, on request, unwraps the
# Informal Trace Format (ITF) value encodings used by Apalache and Quint.
# Payload meaning is left to the handlers.

import json
from os import PathLike
from typing import Any

from pydantic import ValidationError

from trace_reactor.models import TraceDocument
from trace_reactor.reactor import TraceFormatError
from trace_reactor.state import State


# ---------------------------------------------------------------------------
# ITF decoding
# ---------------------------------------------------------------------------


def _map_key(key: Any) -> str:
    """
    Render an ITF map key as a string so State paths can address it.

    Numbers use str(); booleans, null and composites are rendered as JSON text.
    """
    if isinstance(key, str):
        return key
    if isinstance(key, (int, float)) and not isinstance(key, bool):
        return str(key)
    return json.dumps(key, sort_keys=True)


def decode_itf(value: Any) -> Any:
    """
    Convert ITF-encoded values into plain Python values.

      {"#bigint": "-12"}          → -12
      {"#tup": [a, b]}            → [a, b]
      {"#set": [a, b]}            → [a, b]
      {"#map": [[k, v], ...]}     → {k: v, ...}
      {"#unserializable": "..."}  → "..."

    `#meta` entries inside records are dropped.
    """
    if isinstance(value, list):
        return [decode_itf(v) for v in value]
    if not isinstance(value, dict):
        return value

    if len(value) == 1:
        (marker, inner), = value.items()
        if marker == "#bigint":
            return int(inner)
        if marker in ("#tup", "#set"):
            return [decode_itf(v) for v in inner]
        if marker == "#map":
            return {_map_key(decode_itf(k)): decode_itf(v) for k, v in inner}
        if marker == "#unserializable":
            return str(inner)

    return {k: decode_itf(v) for k, v in value.items() if k != "#meta"}


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------


def parse_document(text: str, *, key: str = "states", decode: bool = False) -> TraceDocument:
    """
    Parse a trace document from JSON text, keeping its `#meta` and `vars`.

    The state list found under `key` is exposed as `states`. With `decode`,
    ITF encodings in the states are unwrapped.

    Raises TraceFormatError on malformed JSON, a missing `key`, or
    states that are not JSON objects.
    """
    try:
        raw = json.loads(text)
    except json.JSONDecodeError as exc:
        raise TraceFormatError(f"Trace is not valid JSON: {exc}") from exc

    if not isinstance(raw, dict):
        raise TraceFormatError("Trace document must be a JSON object.")
    if key not in raw:
        raise TraceFormatError(f"Trace document has no {key!r} key.")

    if key != "states":
        raw = {k: v for k, v in raw.items() if k != "states"}
        raw["states"] = raw.pop(key)

    try:
        document = TraceDocument.model_validate(raw)
    except ValidationError as exc:
        raise TraceFormatError(f"Trace document does not match the schema: {exc}") from exc

    if decode:
        states = [decode_itf(s) for s in document.states]
        for index, state in enumerate(states):
            if not isinstance(state, dict):
                raise TraceFormatError(f"State {index} does not decode to a record.")
        document = document.model_copy(update={"states": states})
    return document


def parse_trace(text: str, *, key: str = "states", decode: bool = False) -> list[State]:
    """Parse a trace document from JSON text into States."""
    document = parse_document(text, key=key, decode=decode)
    return [State(s) for s in document.states]


def _read(path: str | PathLike) -> str:
    try:
        with open(path, encoding="utf-8") as fh:
            return fh.read()
    except OSError as exc:
        raise TraceFormatError(f"Cannot read trace {path}: {exc}") from exc


def load_document(path: str | PathLike, *, key: str = "states", decode_itf: bool = False) -> TraceDocument:
    """Read and parse the trace document at `path`, metadata included."""
    return parse_document(_read(path), key=key, decode=decode_itf)


def load_trace(path: str | PathLike, *, key: str = "states", decode_itf: bool = False) -> list[State]:
    """Read and parse the trace document at `path`."""
    return parse_trace(_read(path), key=key, decode=decode_itf)
