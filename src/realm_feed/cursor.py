"""
Opaque pagination cursors.

A cursor is base64 of a compact JSON object `{"sortOrder": ..., "id": ...}`.
Clients must treat it as an opaque string and hand it back unchanged.
"""
import base64
import binascii
import json
from enum import Enum
from typing import NamedTuple, Union

from .exceptions import MalformedData


class DecodedCursor(NamedTuple):
    id: str
    sort_order: str


def sort_tag(sort_order: Union[str, Enum]) -> str:
    """String form of a sort order as embedded in cursors."""
    return sort_order.value if isinstance(sort_order, Enum) else str(sort_order)


def encode_cursor(item_id: str, sort_order: Union[str, Enum]) -> str:
    payload = json.dumps({"sortOrder": sort_tag(sort_order), "id": str(item_id)}, separators=(",", ":"))
    return base64.b64encode(payload.encode("utf-8")).decode("ascii")


def decode_cursor(cursor: str) -> DecodedCursor:
    """Inverse of encode_cursor. Raises MalformedData on anything unparseable."""
    try:
        raw = base64.b64decode(cursor.encode("ascii"), validate=True)
        parsed = json.loads(raw.decode("utf-8"))
    except (AttributeError, UnicodeError, binascii.Error, ValueError) as e:
        raise MalformedData(f"Malformed cursor: {e}") from e

    if not isinstance(parsed, dict):
        raise MalformedData("Malformed cursor: expected an object")

    sort_order = parsed.get("sortOrder")
    item_id = parsed.get("id")
    if not isinstance(sort_order, str) or not isinstance(item_id, str):
        raise MalformedData("Malformed cursor: missing sortOrder or id")

    return DecodedCursor(id=item_id, sort_order=sort_order)
