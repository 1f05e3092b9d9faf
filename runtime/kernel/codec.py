"""
Runtime Kernel — Value Codec

encode(kind, native) → WireValue
decode(kind, wire)   → native

A WireValue is a JSON-compatible dict with exactly one key, "<kind>_value":

  {"bool_value": true}
  {"int_value": 5}
  {"double_value": 1.5}
  {"string_value": "a"}
  {"string_array_value": {"data": ["a", "a", "b"]}}
  {"bytes_value": {"length": 3, "data": "AAEC"}}
  {"json_value": "{\"a\":1}"}
  {"trigger_value": true}
  {"string_trigger_value": {"data": "hello"}}

Encoding is deterministic. Anything that does not match the declared kind
raises MalformedValue; nothing is ever partially decoded.
"""

from __future__ import annotations

import base64
import binascii
import json
import math
from typing import Any

from runtime.kernel.types import VALUE_KINDS, MalformedValue

_SUFFIX = "_value"


def wire_tag(kind: str) -> str:
    """Return the wire key for a kind: "int" → "int_value"."""
    return f"{kind}{_SUFFIX}"


def wire_kind(wire: Any) -> str:
    """
    Infer the kind from a wire value's tag.

    Raises MalformedValue if the wire value is not a single-key dict with a
    known tag.
    """
    if not isinstance(wire, dict) or len(wire) != 1:
        raise MalformedValue(f"wire value must be a single-key dict, got {wire!r}")
    (tag,) = wire.keys()
    if not isinstance(tag, str) or not tag.endswith(_SUFFIX):
        raise MalformedValue(f"unrecognized wire tag {tag!r}")
    kind = tag[: -len(_SUFFIX)]
    if kind not in VALUE_KINDS:
        raise MalformedValue(f"unrecognized wire tag {tag!r}")
    return kind


# ---------------------------------------------------------------------------
# Scalar checks
# ---------------------------------------------------------------------------


def _is_int(value: Any) -> bool:
    # bool is an int subclass but never a valid int widget value
    return isinstance(value, int) and not isinstance(value, bool)


def _is_number(value: Any) -> bool:
    return _is_int(value) or isinstance(value, float)


def _to_float(kind: str, value: Any) -> float:
    try:
        return float(value)
    except OverflowError as e:
        raise MalformedValue(f"{kind} value is out of range for a double") from e


def _check_array(kind: str, value: Any) -> list[Any]:
    if not isinstance(value, (list, tuple)):
        raise MalformedValue(f"{kind} expects a list, got {type(value).__name__}")
    items = list(value)
    if kind == "string_array":
        if not all(isinstance(v, str) for v in items):
            raise MalformedValue("string_array expects only strings")
        return items
    if kind == "int_array":
        if not all(_is_int(v) for v in items):
            raise MalformedValue("int_array expects only integers")
        return items
    if not all(_is_number(v) for v in items):
        raise MalformedValue("double_array expects only numbers")
    return [_to_float(kind, v) for v in items]


# ---------------------------------------------------------------------------
# Encode
# ---------------------------------------------------------------------------


def _encode_bool(value: Any) -> Any:
    if not isinstance(value, bool):
        raise MalformedValue(f"bool expects a bool, got {type(value).__name__}")
    return value


def _encode_int(value: Any) -> Any:
    if not _is_int(value):
        raise MalformedValue(f"int expects an integer, got {type(value).__name__}")
    return value


def _encode_double(value: Any) -> Any:
    if not _is_number(value):
        raise MalformedValue(f"double expects a number, got {type(value).__name__}")
    return _to_float("double", value)


def _encode_string(value: Any) -> Any:
    if not isinstance(value, str):
        raise MalformedValue(f"string expects a str, got {type(value).__name__}")
    return value


def _encode_bytes(value: Any) -> Any:
    if not isinstance(value, (bytes, bytearray, memoryview)):
        raise MalformedValue(f"bytes expects a bytes-like value, got {type(value).__name__}")
    raw = bytes(value)
    return {"length": len(raw), "data": base64.b64encode(raw).decode("ascii")}


def _encode_json(value: Any) -> Any:
    try:
        return json.dumps(value, sort_keys=True, separators=(",", ":"), allow_nan=False)
    except (TypeError, ValueError) as e:
        raise MalformedValue(f"json value is not serializable: {e}") from e


def _encode_trigger(value: Any) -> Any:
    if not isinstance(value, bool):
        raise MalformedValue(f"trigger expects a bool, got {type(value).__name__}")
    return value


def _encode_string_trigger(value: Any) -> Any:
    if not isinstance(value, str):
        raise MalformedValue(f"string_trigger expects a str, got {type(value).__name__}")
    return {"data": value}


def encode(kind: str, value: Any) -> dict[str, Any]:
    """
    Encode a native value into its wire representation.

    Raises MalformedValue for an unknown kind or a value of the wrong shape.
    """
    if kind not in VALUE_KINDS:
        raise MalformedValue(f"unknown value kind {kind!r}")

    if kind in ("string_array", "int_array", "double_array"):
        payload: Any = {"data": _check_array(kind, value)}
    else:
        payload = _ENCODERS[kind](value)

    return {wire_tag(kind): payload}


# ---------------------------------------------------------------------------
# Decode
# ---------------------------------------------------------------------------


def _decode_double(raw: Any) -> float:
    if not _is_number(raw):
        raise MalformedValue(f"double_value must be a number, got {raw!r}")
    return _to_float("double", raw)


def _decode_bytes(raw: Any) -> bytes:
    if not isinstance(raw, dict) or set(raw.keys()) != {"length", "data"}:
        raise MalformedValue("bytes_value must be {length, data}")
    length = raw["length"]
    data = raw["data"]
    if not _is_int(length) or length < 0 or not isinstance(data, str):
        raise MalformedValue("bytes_value has an invalid length or data field")
    try:
        blob = base64.b64decode(data.encode("ascii"), validate=True)
    except (binascii.Error, UnicodeEncodeError) as e:
        raise MalformedValue(f"bytes_value data is not base64: {e}") from e
    if len(blob) != length:
        raise MalformedValue(f"bytes_value length prefix {length} does not match payload size {len(blob)}")
    return blob


def _decode_json(raw: Any) -> Any:
    if not isinstance(raw, str):
        raise MalformedValue("json_value must be a JSON string")
    try:
        return json.loads(raw)
    except json.JSONDecodeError as e:
        raise MalformedValue(f"json_value is not valid JSON: {e}") from e


def _decode_string_trigger(raw: Any) -> str:
    if not isinstance(raw, dict) or set(raw.keys()) != {"data"} or not isinstance(raw["data"], str):
        raise MalformedValue("string_trigger_value must be {data: str}")
    return raw["data"]


def _decode_array(kind: str, raw: Any) -> list[Any]:
    if not isinstance(raw, dict) or set(raw.keys()) != {"data"}:
        raise MalformedValue(f"{kind}_value must be {{data: [...]}}")
    return _check_array(kind, raw["data"])


def decode(kind: str, wire: Any) -> Any:
    """
    Decode a wire value of the given kind into its native value.

    Raises MalformedValue when the tag is missing, unknown, or does not match
    `kind`, or when the payload has the wrong shape.
    """
    if kind not in VALUE_KINDS:
        raise MalformedValue(f"unknown value kind {kind!r}")

    tagged_kind = wire_kind(wire)
    if tagged_kind != kind:
        raise MalformedValue(f"expected {wire_tag(kind)!r}, got {wire_tag(tagged_kind)!r}")

    raw = wire[wire_tag(kind)]

    if kind in ("bool", "trigger"):
        if not isinstance(raw, bool):
            raise MalformedValue(f"{kind}_value must be a bool, got {raw!r}")
        return raw
    if kind == "int":
        if not _is_int(raw):
            raise MalformedValue(f"int_value must be an integer, got {raw!r}")
        return raw
    if kind == "double":
        return _decode_double(raw)
    if kind == "string":
        if not isinstance(raw, str):
            raise MalformedValue(f"string_value must be a str, got {raw!r}")
        return raw
    if kind in ("string_array", "int_array", "double_array"):
        return _decode_array(kind, raw)
    if kind == "bytes":
        return _decode_bytes(raw)
    if kind == "json":
        return _decode_json(raw)
    return _decode_string_trigger(raw)


def decode_any(wire: Any) -> tuple[str, Any]:
    """Decode a wire value whose kind is only known from its tag."""
    kind = wire_kind(wire)
    return kind, decode(kind, wire)


def values_equal(kind: str, a: Any, b: Any) -> bool:
    """
    Compare two native values of the same kind by their encodings.

    Two NaN doubles compare equal here; unencodable values compare unequal.
    """
    if kind == "double" and isinstance(a, float) and isinstance(b, float):
        if math.isnan(a) and math.isnan(b):
            return True
    try:
        return encode(kind, a) == encode(kind, b)
    except MalformedValue:
        return False


_ENCODERS: dict[str, Any] = {
    "bool": _encode_bool,
    "int": _encode_int,
    "double": _encode_double,
    "string": _encode_string,
    "bytes": _encode_bytes,
    "json": _encode_json,
    "trigger": _encode_trigger,
    "string_trigger": _encode_string_trigger,
}
